from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from ...background_tasks import TaskType, task_manager
from ...daemon import DaemonClient
from ...db.database import get_db
from ...dependencies import get_daemon, verify_master_token
from ...servers import get_servers_for_rebuild, rebuild_servers_task

router = APIRouter(
    prefix="/servers",
    tags=["server-rebuild"],
    dependencies=[Depends(verify_master_token)],
)


class RebuildRequest(BaseModel):
    server_id: Optional[int] = None
    node_id: Optional[int] = None


class RebuildResponse(BaseModel):
    task_id: str
    targets: int


@router.post("/rebuild", response_model=RebuildResponse)
async def rebuild(
    rebuild_request: RebuildRequest,
    session: AsyncSession = Depends(get_db),
    daemon: DaemonClient = Depends(get_daemon),
):
    """Rebuild one server, every server on a node, or every server."""
    servers = await get_servers_for_rebuild(
        session, rebuild_request.server_id, rebuild_request.node_id
    )
    if not servers:
        raise HTTPException(status_code=404, detail="No servers matched")

    result = task_manager.submit(
        TaskType.SERVER_REBUILD,
        f"Rebuild {len(servers)} servers",
        rebuild_servers_task(servers, daemon),
        node_id=rebuild_request.node_id,
        cancellable=False,
    )
    return RebuildResponse(task_id=result.task_id, targets=len(servers))
