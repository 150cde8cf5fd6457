"""Server creation, environment building and bulk rebuilds.

Provides the creation orchestrator, rebuild target queries and the rebuild
orchestrator used by both the CLI and the HTTP API.
"""

from .creation import (
    CreatedServer,
    ServerCreationRequest,
    ServerCreationService,
    provision_server_task,
)
from .crud import get_servers_for_rebuild
from .environment import (
    build_environment,
    build_server_configuration,
    server_environment,
)
from .rebuild import (
    RebuildOutcome,
    RebuildReport,
    RebuildState,
    build_rebuild_payload,
    rebuild_servers,
    rebuild_servers_task,
)

__all__ = [
    # Creation
    "CreatedServer",
    "ServerCreationRequest",
    "ServerCreationService",
    "provision_server_task",
    # Queries
    "get_servers_for_rebuild",
    # Environment
    "build_environment",
    "build_server_configuration",
    "server_environment",
    # Rebuild
    "RebuildOutcome",
    "RebuildReport",
    "RebuildState",
    "build_rebuild_payload",
    "rebuild_servers",
    "rebuild_servers_task",
]
