"""Network allocations: port list parsing, creation and reservation."""

from .assignment import (
    claim_allocations,
    create_from_ports,
    get_free_allocations,
    reserve_existing,
)
from .ports import MAX_PORT, MIN_PORT, PortSet, normalize_ports

__all__ = [
    "MAX_PORT",
    "MIN_PORT",
    "PortSet",
    "claim_allocations",
    "create_from_ports",
    "get_free_allocations",
    "normalize_ports",
    "reserve_existing",
]
