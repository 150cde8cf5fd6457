"""Environment variables and daemon documents describing a server."""

from typing import Any, Iterable, Mapping

from ..models import Allocation, Egg, Server


def build_environment(
    server: Server,
    egg: Egg,
    variable_values: Mapping[int, str],
    allocation: Allocation,
) -> dict[str, str]:
    """Merge egg defaults, server overrides and the panel managed variables.

    Args:
        server: Server being described
        egg: Egg with its variables loaded
        variable_values: Server variable values keyed by egg variable id
        allocation: The server's primary allocation
    """
    environment = {
        variable.env_variable: variable_values.get(variable.id, variable.default_value)
        for variable in egg.variables
    }
    environment.update(
        {
            "STARTUP": server.startup,
            "P_SERVER_UUID": server.uuid,
            "SERVER_MEMORY": str(server.memory),
            "SERVER_IP": allocation.ip,
            "SERVER_PORT": str(allocation.port),
        }
    )
    return environment


def server_environment(server: Server) -> dict[str, str]:
    """Environment of a server whose egg, variables and allocation are loaded."""
    values = {item.variable_id: item.variable_value for item in server.variables}
    return build_environment(server, server.egg, values, server.allocation)


def build_server_configuration(
    server: Server,
    egg: Egg,
    environment: dict[str, str],
    allocations: Iterable[Allocation],
    start_on_completion: bool = True,
) -> dict[str, Any]:
    """Document sent to a daemon when it should create a server container."""
    allocations = list(allocations)
    primary = next(a for a in allocations if a.id == server.allocation_id)

    mappings: dict[str, list[int]] = {}
    for allocation in allocations:
        mappings.setdefault(allocation.ip, []).append(allocation.port)

    return {
        "uuid": server.uuid,
        "start_on_completion": start_on_completion,
        "meta": {"name": server.name, "description": server.description},
        "suspended": False,
        "environment": environment,
        "invocation": server.startup,
        "skip_egg_scripts": server.skip_scripts,
        "build": {
            "memory_limit": server.memory,
            "swap": server.swap,
            "io_weight": server.io,
            "cpu_limit": server.cpu,
            "threads": server.threads,
            "disk_space": server.disk,
            "oom_disabled": server.oom_disabled,
        },
        "container": {"image": server.image},
        "allocations": {
            "default": {"ip": primary.ip, "port": primary.port},
            "mappings": mappings,
        },
        "egg": {"id": egg.uuid},
    }
