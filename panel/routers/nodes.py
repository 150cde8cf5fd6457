from datetime import datetime
from typing import Any, Literal, Optional

from fastapi import APIRouter, Depends, status
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, ConfigDict
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..daemon import DaemonClient
from ..db.database import get_db
from ..dependencies import get_codec, get_daemon, verify_master_token
from ..errors import DaemonError
from ..nodes import (
    NodeCreate,
    create_node,
    delete_node,
    get_configuration,
    get_node,
    get_node_usage,
    get_nodes,
    get_nodes_for_server_creation,
    to_json,
    to_yaml,
)
from ..security import TokenCodec

router = APIRouter(
    prefix="/nodes",
    tags=["nodes"],
    dependencies=[Depends(verify_master_token)],
)


class NodePublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    uuid: str
    name: str
    description: Optional[str]
    public: bool
    fqdn: str
    scheme: str
    behind_proxy: bool
    maintenance_mode: bool
    memory: int
    memory_overallocate: int
    disk: int
    disk_overallocate: int
    upload_size: int
    daemon_listen: int
    daemon_sftp: int
    daemon_base: str
    created_at: datetime


class NodeUsageResponse(BaseModel):
    memory: int
    disk: int


class SystemInformationResponse(BaseModel):
    information: Optional[dict[str, Any]] = None
    exception: Optional[str] = None


@router.get("", response_model=list[NodePublic])
async def list_nodes(session: AsyncSession = Depends(get_db)):
    return await get_nodes(session)


@router.post("", response_model=NodePublic, status_code=status.HTTP_201_CREATED)
async def create_node_endpoint(
    data: NodeCreate,
    session: AsyncSession = Depends(get_db),
    codec: TokenCodec = Depends(get_codec),
):
    return await create_node(session, data, codec)


@router.get("/creation-options")
async def server_creation_options(session: AsyncSession = Depends(get_db)):
    """Nodes with their free allocations, for server creation forms."""
    return await get_nodes_for_server_creation(session)


@router.delete("/{node_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_node_endpoint(node_id: int, session: AsyncSession = Depends(get_db)):
    node = await get_node(session, node_id)
    await delete_node(session, node)


@router.get("/{node_id}/usage", response_model=NodeUsageResponse)
async def node_usage(node_id: int, session: AsyncSession = Depends(get_db)):
    await get_node(session, node_id)
    usage = await get_node_usage(session, node_id)
    return NodeUsageResponse(memory=usage.memory, disk=usage.disk)


@router.get("/{node_id}/configuration", response_class=PlainTextResponse)
async def node_configuration(
    node_id: int,
    format: Literal["yaml", "json"] = "yaml",
    session: AsyncSession = Depends(get_db),
    codec: TokenCodec = Depends(get_codec),
):
    """Daemon bootstrap configuration for a node."""
    node = await get_node(session, node_id)
    configuration = get_configuration(node, codec, settings.app_url)
    if format == "json":
        return PlainTextResponse(
            to_json(configuration, pretty=True), media_type="application/json"
        )
    return PlainTextResponse(to_yaml(configuration), media_type="application/yaml")


@router.get("/{node_id}/system", response_model=SystemInformationResponse)
async def node_system_information(
    node_id: int,
    session: AsyncSession = Depends(get_db),
    daemon: DaemonClient = Depends(get_daemon),
):
    node = await get_node(session, node_id)
    try:
        information = await daemon.get_system_information(node)
    except DaemonError as e:
        return SystemInformationResponse(exception=e.message)
    return SystemInformationResponse(information=information)


@router.get("/{node_id}/servers/status")
async def node_server_statuses(
    node_id: int,
    session: AsyncSession = Depends(get_db),
    daemon: DaemonClient = Depends(get_daemon),
) -> dict[str, Any]:
    node = await get_node(session, node_id)
    return await daemon.get_server_statuses(node)


@router.get("/{node_id}/ips")
async def node_ip_addresses(
    node_id: int,
    session: AsyncSession = Depends(get_db),
    daemon: DaemonClient = Depends(get_daemon),
) -> list[str]:
    node = await get_node(session, node_id)
    return await daemon.get_node_ip_addresses(node)
