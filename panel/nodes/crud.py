"""CRUD operations for node records."""

import uuid
from typing import Literal, Optional

from pydantic import BaseModel, Field
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..errors import HasActiveServers, NotFound
from ..logger import logger
from ..models import Allocation, Node, Server
from ..security import TokenCodec, random_string
from .capacity import NodeUsage


class NodeCreate(BaseModel):
    """Node creation payload with the panel's validation rules."""

    name: str = Field(pattern=r"^[\w .-]{1,100}$")
    description: Optional[str] = None
    public: bool = True
    fqdn: str = Field(min_length=1)
    scheme: Literal["http", "https"] = "https"
    behind_proxy: bool = False
    memory: int = Field(default=0, ge=0)
    memory_overallocate: int = Field(default=0, ge=-1)
    disk: int = Field(default=0, ge=0)
    disk_overallocate: int = Field(default=0, ge=-1)
    upload_size: int = Field(default=100, ge=1, le=1024)
    daemon_base: str = Field(
        default="/var/lib/panel/volumes", pattern=r"^/[\d\w.\-/]+$"
    )
    daemon_sftp: int = Field(default=2022, ge=1, le=65535)
    daemon_listen: int = Field(default=8080, ge=1, le=65535)
    maintenance_mode: bool = False


async def create_node(session: AsyncSession, data: NodeCreate, codec: TokenCodec) -> Node:
    """Create a node with fresh daemon credentials.

    The daemon token is generated here and only stored encrypted.
    """
    node = Node(
        **data.model_dump(),
        uuid=str(uuid.uuid4()),
        daemon_token_id=random_string(Node.DAEMON_TOKEN_ID_LENGTH),
        daemon_token=codec.encrypt(random_string(Node.DAEMON_TOKEN_LENGTH)),
    )
    session.add(node)
    await session.commit()
    await session.refresh(node)
    logger.info(f"Created node {node.id} ({node.name}) at {node.connection_address}")
    return node


async def get_node(session: AsyncSession, node_id: int) -> Node:
    """Get a node with its mounts loaded.

    Raises:
        NotFound: If no node has this id
    """
    node = await session.scalar(
        select(Node).where(Node.id == node_id).options(selectinload(Node.mounts))
    )
    if node is None:
        raise NotFound(f"Node {node_id} not found")
    return node


async def get_nodes(session: AsyncSession) -> list[Node]:
    result = await session.scalars(select(Node).order_by(Node.id))
    return list(result.all())


async def count_node_servers(session: AsyncSession, node_id: int) -> int:
    return await session.scalar(
        select(func.count(Server.id)).where(Server.node_id == node_id)
    ) or 0


async def get_node_usage(session: AsyncSession, node_id: int) -> NodeUsage:
    """Sum of memory and disk assigned to servers on a node."""
    row = (
        await session.execute(
            select(
                func.coalesce(func.sum(Server.memory), 0),
                func.coalesce(func.sum(Server.disk), 0),
            ).where(Server.node_id == node_id)
        )
    ).one()
    return NodeUsage(memory=int(row[0]), disk=int(row[1]))


async def delete_node(session: AsyncSession, node: Node) -> None:
    """Delete a node and its free allocations.

    Raises:
        HasActiveServers: If any server is still placed on the node
    """
    if await count_node_servers(session, node.id):
        raise HasActiveServers(
            f"Cannot delete node {node.name}: it still has servers attached"
        )

    allocations = await session.scalars(
        select(Allocation).where(Allocation.node_id == node.id)
    )
    for allocation in allocations.all():
        await session.delete(allocation)
    await session.delete(node)
    await session.commit()
    logger.info(f"Deleted node {node.id} ({node.name})")


async def get_nodes_for_server_creation(session: AsyncSession) -> list[dict]:
    """Nodes with their free allocations, shaped for a selection form."""
    result = await session.scalars(
        select(Node).options(selectinload(Node.allocations)).order_by(Node.id)
    )
    return [
        {
            "id": node.id,
            "text": node.name,
            "allocations": [
                {"id": allocation.id, "text": allocation.address}
                for allocation in node.allocations
                if allocation.server_id is None
            ],
        }
        for node in result.all()
    ]
