"""Node records, placement capacity and daemon configuration export."""

from .capacity import (
    UNLIMITED_OVERALLOCATE,
    NodeUsage,
    effective_limit,
    has_capacity_for,
    is_viable,
)
from .configuration import get_configuration, to_json, to_yaml
from .crud import (
    NodeCreate,
    create_node,
    delete_node,
    get_node,
    get_node_usage,
    get_nodes,
    get_nodes_for_server_creation,
)

__all__ = [
    "NodeCreate",
    "UNLIMITED_OVERALLOCATE",
    "NodeUsage",
    "create_node",
    "delete_node",
    "effective_limit",
    "get_configuration",
    "get_node",
    "get_node_usage",
    "get_nodes",
    "get_nodes_for_server_creation",
    "has_capacity_for",
    "is_viable",
    "to_json",
    "to_yaml",
]
