"""Queries for server records."""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..models import Egg, Server


def _with_relations():
    return (
        selectinload(Server.node),
        selectinload(Server.egg).selectinload(Egg.variables),
        selectinload(Server.variables),
        selectinload(Server.allocation),
    )


async def get_servers_for_rebuild(
    session: AsyncSession,
    server_id: Optional[int] = None,
    node_id: Optional[int] = None,
) -> list[Server]:
    """Resolve the rebuild target set.

    A server id selects only that server, otherwise a node id selects every
    server on that node, otherwise every server on the panel is returned.

    Args:
        session: Database session
        server_id: Single server to rebuild
        node_id: Node whose servers should be rebuilt (ignored with server_id)

    Returns:
        Servers ordered by id, with node, egg, variables and allocation loaded
    """
    query = select(Server).options(*_with_relations()).order_by(Server.id)
    if server_id is not None:
        query = query.where(Server.id == server_id)
    elif node_id is not None:
        query = query.where(Server.node_id == node_id)

    result = await session.scalars(query)
    return list(result.all())
