from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from ..allocations import create_from_ports, get_free_allocations, normalize_ports
from ..db.database import get_db
from ..dependencies import verify_master_token
from ..nodes import get_node

router = APIRouter(
    prefix="/nodes/{node_id}/allocations",
    tags=["allocations"],
    dependencies=[Depends(verify_master_token)],
)


class AllocationPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    node_id: int
    ip: str
    ip_alias: Optional[str]
    port: int
    server_id: Optional[int]
    label: str


class CreateAllocationsRequest(BaseModel):
    ip: str
    ip_alias: Optional[str] = None
    ports: list[str] = Field(min_length=1)


class NormalizePortsRequest(BaseModel):
    ports: list[str]


class NormalizePortsResponse(BaseModel):
    ports: list[int]
    modified: bool


@router.get("/free", response_model=list[AllocationPublic])
async def list_free_allocations(node_id: int, session: AsyncSession = Depends(get_db)):
    await get_node(session, node_id)
    return await get_free_allocations(session, node_id)


@router.post(
    "", response_model=list[AllocationPublic], status_code=status.HTTP_201_CREATED
)
async def create_allocations(
    node_id: int,
    request: CreateAllocationsRequest,
    session: AsyncSession = Depends(get_db),
):
    """Create free allocations on a node from port literals and ranges."""
    node = await get_node(session, node_id)
    return await create_from_ports(
        session, node, request.ip, request.ip_alias, request.ports
    )


@router.post("/normalize-ports", response_model=NormalizePortsResponse)
async def normalize_port_tokens(node_id: int, request: NormalizePortsRequest):
    """Normalized form of a port list, for redisplay while the user types."""
    port_set = normalize_ports(request.ports)
    return NormalizePortsResponse(ports=port_set.ports, modified=port_set.modified)
