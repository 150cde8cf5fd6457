"""Creation and reservation of node allocations."""

import ipaddress
from typing import Iterable, Sequence

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import AllocationConflict, AllocationUnavailable, ValidationError
from ..logger import logger
from ..models import Allocation, Node
from .ports import normalize_ports


def _validate_ipv4(ip: str) -> str:
    try:
        return str(ipaddress.IPv4Address(ip.strip()))
    except ValueError:
        raise ValidationError(f"'{ip}' is not a valid IPv4 address")


async def create_from_ports(
    session: AsyncSession,
    node: Node,
    ip: str,
    ip_alias: str | None,
    ports: Iterable[str | int],
) -> list[Allocation]:
    """Create free allocations on a node for every port in a port list.

    Args:
        session: Database session
        node: Node the allocations belong to
        ip: IPv4 literal shared by all new allocations
        ip_alias: Optional display alias
        ports: Port literals and ranges, normalized before use

    Returns:
        The created allocations, ordered by port

    Raises:
        ValidationError: If the IP is invalid, no usable port remains, or a
            port already exists for this node and IP
    """
    ip = _validate_ipv4(ip)
    port_set = normalize_ports(str(port) for port in ports)
    if not port_set.ports:
        raise ValidationError("At least one valid port is required")

    existing = await session.scalars(
        select(Allocation.port).where(
            Allocation.node_id == node.id,
            Allocation.ip == ip,
            Allocation.port.in_(port_set.ports),
        )
    )
    taken = sorted(existing.all())
    if taken:
        raise ValidationError(
            f"Ports already allocated on {ip}: {', '.join(map(str, taken))}"
        )

    allocations = [
        Allocation(node_id=node.id, ip=ip, ip_alias=ip_alias or None, port=port)
        for port in port_set.ports
    ]
    session.add_all(allocations)
    try:
        await session.commit()
    except IntegrityError as e:
        # Lost a race with another request adding the same ports
        await session.rollback()
        raise ValidationError(f"Ports already allocated on {ip}") from e

    logger.info(
        f"Created {len(allocations)} allocations on node {node.id} for {ip}"
    )
    return allocations


async def get_free_allocations(session: AsyncSession, node_id: int) -> list[Allocation]:
    """Allocations on a node that are not assigned to any server."""
    result = await session.scalars(
        select(Allocation)
        .where(Allocation.node_id == node_id, Allocation.server_id.is_(None))
        .order_by(Allocation.ip, Allocation.port)
    )
    return list(result.all())


async def reserve_existing(
    session: AsyncSession, node: Node, allocation_ids: Sequence[int]
) -> list[Allocation]:
    """Load the requested allocations, checking they can be assigned.

    This only validates; the allocations are claimed by claim_allocations
    inside the server creation transaction.

    Raises:
        AllocationUnavailable: If an id is unknown, on another node, or
            already owned by a server
    """
    ids = list(dict.fromkeys(allocation_ids))
    result = await session.scalars(select(Allocation).where(Allocation.id.in_(ids)))
    found = {allocation.id: allocation for allocation in result.all()}

    for allocation_id in ids:
        allocation = found.get(allocation_id)
        if allocation is None or allocation.node_id != node.id:
            raise AllocationUnavailable(
                f"Allocation {allocation_id} does not belong to node {node.id}"
            )
        if allocation.server_id is not None:
            raise AllocationUnavailable(
                f"Allocation {allocation.address} is already assigned to a server"
            )

    return [found[allocation_id] for allocation_id in ids]


async def claim_allocations(
    session: AsyncSession, node: Node, allocation_ids: Sequence[int], server_id: int
) -> None:
    """Assign allocations to a server within the caller's transaction.

    The update re-checks that each row is still free at write time, so two
    concurrent requests for the same allocation cannot both succeed. The
    caller must roll back when this raises.

    Raises:
        AllocationConflict: If any allocation was taken since it was validated
    """
    ids = list(dict.fromkeys(allocation_ids))
    result = await session.execute(
        update(Allocation)
        .where(
            Allocation.id.in_(ids),
            Allocation.node_id == node.id,
            Allocation.server_id.is_(None),
        )
        .values(server_id=server_id)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != len(ids):
        raise AllocationConflict(
            f"{len(ids) - result.rowcount} of the requested allocations were "
            "assigned to another server"
        )
