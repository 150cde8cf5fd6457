"""Resource oversubscription arithmetic for server placement."""

from dataclasses import dataclass
from typing import Protocol

UNLIMITED_OVERALLOCATE = -1


class NodeLimits(Protocol):
    memory: int
    memory_overallocate: int
    disk: int
    disk_overallocate: int


@dataclass(frozen=True)
class NodeUsage:
    """Memory and disk (MB) already committed to servers on a node."""

    memory: int = 0
    disk: int = 0


def effective_limit(base: int, overallocate: int) -> float:
    return base * (1 + overallocate / 100)


def is_viable(node: NodeLimits, usage: NodeUsage, memory: int, disk: int) -> bool:
    """Whether a server of the given footprint fits on the node.

    Pure arithmetic: an overallocate of -1 is applied literally here. Use
    has_capacity_for when the unlimited sentinel should be honoured.
    """
    memory_limit = effective_limit(node.memory, node.memory_overallocate)
    disk_limit = effective_limit(node.disk, node.disk_overallocate)

    return usage.memory + memory <= memory_limit and usage.disk + disk <= disk_limit


def has_capacity_for(
    node: NodeLimits, usage: NodeUsage, memory: int, disk: int
) -> bool:
    """Placement check that treats an overallocate of -1 as no limit."""
    memory_ok = (
        node.memory_overallocate == UNLIMITED_OVERALLOCATE
        or usage.memory + memory
        <= effective_limit(node.memory, node.memory_overallocate)
    )
    disk_ok = (
        node.disk_overallocate == UNLIMITED_OVERALLOCATE
        or usage.disk + disk <= effective_limit(node.disk, node.disk_overallocate)
    )
    return memory_ok and disk_ok
