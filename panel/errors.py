"""Typed errors raised at component boundaries.

Orchestrators branch on these kinds rather than on transport exceptions.
"""


class PanelError(Exception):
    """Base class for all panel errors."""


class ValidationError(PanelError):
    """Malformed input, e.g. a bad IPv4 literal or an empty port set."""


class NotFound(PanelError):
    """A referenced record does not exist."""


class InsufficientCapacity(PanelError):
    """The node cannot host the requested memory/disk footprint."""


class AllocationUnavailable(PanelError):
    """A requested allocation is on another node or already owned by a server."""


class AllocationConflict(PanelError):
    """A free allocation was claimed by a concurrent request before commit."""


class HasActiveServers(PanelError):
    """A node cannot be deleted while servers are placed on it."""


class DaemonError(PanelError):
    """A call to a node's daemon failed (network, timeout or remote error)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
