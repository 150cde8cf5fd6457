"""HTTP client for the daemon agent running on each node."""

import asyncio
import ipaddress
import logging
import socket
from typing import Any, Awaitable, Callable, Literal, Optional

import httpx

from ..config import DaemonSettings, settings
from ..errors import DaemonError
from ..logger import log_exception, logger
from ..models import Node
from ..security import TokenCodec
from .cache import TTLCache

Resolver = Callable[[str], Awaitable[list[str]]]

_DNS_FAILURE_MARKERS = (
    "name or service not known",
    "nodename nor servname",
    "temporary failure in name resolution",
    "no address associated",
    "getaddrinfo failed",
    "could not resolve host",
)


def is_ip(value: str) -> bool:
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return False
    return True


async def resolve_ipv4(host: str) -> list[str]:
    """IPv4 addresses of a hostname, in resolver order."""
    infos = await asyncio.get_running_loop().getaddrinfo(
        host, None, family=socket.AF_INET, type=socket.SOCK_STREAM
    )
    return list(dict.fromkeys(info[4][0] for info in infos))


def _is_dns_failure(exc: BaseException) -> bool:
    seen: BaseException | None = exc
    while seen is not None:
        if isinstance(seen, socket.gaierror):
            return True
        if any(marker in str(seen).lower() for marker in _DNS_FAILURE_MARKERS):
            return True
        seen = seen.__cause__ or seen.__context__
    return False


def describe_transport_error(exc: httpx.HTTPError, node: Node) -> str:
    """Short human readable message for a failed daemon request."""
    if isinstance(exc, httpx.ConnectError) and _is_dns_failure(exc):
        return "Could not resolve host"
    if isinstance(exc, httpx.ConnectTimeout):
        return f"Failed to connect to {node.fqdn} port {node.daemon_listen}"
    if isinstance(exc, httpx.HTTPStatusError):
        return f"Daemon returned HTTP {exc.response.status_code}"
    return str(exc) or type(exc).__name__


class DaemonClient:
    """Single entry point for panel to daemon calls.

    Every request uses short timeouts so an unreachable node never stalls a
    request handler or CLI run for long.
    """

    def __init__(
        self,
        codec: TokenCodec,
        cache: Optional[TTLCache] = None,
        config: Optional[DaemonSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        resolver: Resolver = resolve_ipv4,
    ) -> None:
        self._codec = codec
        self._cache = cache if cache is not None else TTLCache()
        self._config = config or settings.daemon
        self._transport = transport
        self._resolver = resolver

    @property
    def cache(self) -> TTLCache:
        return self._cache

    def _headers(self, node: Node) -> dict[str, str]:
        token = self._codec.decrypt(node.daemon_token)
        return {
            "Authorization": f"Bearer {node.daemon_token_id}.{token}",
            "Accept": "application/json",
        }

    async def _send_request(
        self,
        node: Node,
        method: Literal["GET", "POST", "PATCH"],
        path: str,
        json: Optional[dict[str, Any]] = None,
        connect_timeout: Optional[float] = None,
        timeout: Optional[float] = None,
    ) -> httpx.Response:
        read_timeout = timeout if timeout is not None else self._config.timeout
        client_timeout = httpx.Timeout(
            read_timeout,
            connect=(
                connect_timeout
                if connect_timeout is not None
                else self._config.connect_timeout
            ),
        )
        try:
            async with httpx.AsyncClient(
                base_url=node.connection_address,
                headers=self._headers(node),
                timeout=client_timeout,
                transport=self._transport,
            ) as client:
                response = await client.request(method, path, json=json)
                response.raise_for_status()
                return response
        except httpx.HTTPStatusError as e:
            raise DaemonError(
                describe_transport_error(e, node), status_code=e.response.status_code
            ) from e
        except httpx.HTTPError as e:
            raise DaemonError(describe_transport_error(e, node)) from e

    async def get_system_information(
        self, node: Node, connect_timeout: float = 3
    ) -> dict[str, Any]:
        """Version and host details reported by the daemon.

        Raises:
            DaemonError: With a normalized message; no retry is attempted
        """
        response = await self._send_request(
            node, "GET", "/api/system", connect_timeout=connect_timeout
        )
        return response.json()

    async def get_server_statuses(self, node: Node) -> dict[str, Any]:
        """Mapping of server uuid to state. Cached; empty when unreachable."""

        async def fetch() -> dict[str, Any]:
            return await self._fetch_server_statuses(node) or {}

        return await self._cache.remember(
            (node.id, "servers"), self._config.status_cache_seconds, fetch
        )

    @log_exception("Server status query for node {node.id}", level=logging.WARNING)
    async def _fetch_server_statuses(self, node: Node) -> dict[str, Any]:
        response = await self._send_request(
            node,
            "GET",
            "/api/servers",
            connect_timeout=self._config.status_timeout,
            timeout=self._config.status_timeout,
        )
        data = response.json() or {}
        if isinstance(data, dict):
            return data

        statuses = {}
        for item in data:
            uuid = item.get("uuid") or item.get("configuration", {}).get("uuid")
            if uuid:
                statuses[uuid] = item.get("state")
        return statuses

    async def get_node_ip_addresses(self, node: Node) -> list[str]:
        """Candidate IPs for new allocations on a node. Cached for an hour.

        Combines the node address (or its DNS records) with the addresses the
        daemon reports. Either source may fail without affecting the other.
        """

        async def collect() -> list[str]:
            if is_ip(node.fqdn):
                addresses = [node.fqdn]
            else:
                addresses = await self._resolve(node.fqdn) or []
            addresses += await self._fetch_daemon_ips(node) or []
            return list(dict.fromkeys(addresses))

        return await self._cache.remember(
            (node.id, "ips"), self._config.ip_cache_seconds, collect
        )

    @log_exception("DNS lookup for {host}", level=logging.WARNING)
    async def _resolve(self, host: str) -> list[str]:
        return await self._resolver(host)

    @log_exception("IP address query for node {node.id}", level=logging.WARNING)
    async def _fetch_daemon_ips(self, node: Node) -> list[str]:
        response = await self._send_request(
            node,
            "GET",
            "/api/system/ips",
            connect_timeout=self._config.status_timeout,
            timeout=self._config.status_timeout,
        )
        return list((response.json() or {}).get("ip_addresses") or [])

    async def create_server(self, node: Node, configuration: dict[str, Any]) -> None:
        """Ask the daemon to create (and optionally start) a server container.

        Raises:
            DaemonError: If the daemon could not be reached or rejected the call
        """
        await self._send_request(node, "POST", "/api/servers", json=configuration)
        logger.info(
            f"Daemon on node {node.id} accepted server {configuration.get('uuid')}"
        )

    async def update_server_build(
        self, node: Node, server_uuid: str, payload: dict[str, Any]
    ) -> None:
        """Push a build definition for a server to its daemon. Never retried.

        Raises:
            DaemonError: If the daemon could not be reached or rejected the call
        """
        await self._send_request(
            node, "PATCH", f"/api/servers/{server_uuid}", json=payload
        )
