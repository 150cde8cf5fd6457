"""Communication with the daemon agents running on nodes."""

import functools

from ..security import get_token_codec
from .cache import TTLCache
from .client import DaemonClient, describe_transport_error, is_ip, resolve_ipv4


@functools.cache
def get_daemon_client() -> DaemonClient:
    """Process-wide daemon client sharing one result cache."""
    return DaemonClient(get_token_codec())


__all__ = [
    "DaemonClient",
    "TTLCache",
    "describe_transport_error",
    "get_daemon_client",
    "is_ip",
    "resolve_ipv4",
]
