from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict

from ..background_tasks import TaskStatus, TaskType, task_manager
from ..dependencies import verify_master_token

router = APIRouter(
    prefix="/tasks",
    tags=["tasks"],
    dependencies=[Depends(verify_master_token)],
)


class BackgroundTaskResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    task_id: str
    task_type: TaskType
    name: str
    status: TaskStatus
    progress: float | None
    message: str
    server_uuid: str | None
    node_id: int | None
    cancellable: bool
    created_at: datetime
    started_at: datetime | None
    ended_at: datetime | None
    result: dict[str, Any] | None
    error: str | None


@router.get("", response_model=list[BackgroundTaskResponse])
async def get_tasks(active_only: bool = False, server_uuid: str | None = None):
    tasks = (
        task_manager.get_active_tasks() if active_only else task_manager.get_all_tasks()
    )
    if server_uuid is not None:
        tasks = [t for t in tasks if t.server_uuid == server_uuid]
    return [BackgroundTaskResponse.model_validate(t) for t in tasks]


@router.get("/{task_id}", response_model=BackgroundTaskResponse)
async def get_task(task_id: str):
    task = task_manager.get_task(task_id)
    if not task:
        raise HTTPException(404, "Task not found")
    return BackgroundTaskResponse.model_validate(task)


@router.post("/{task_id}/cancel")
async def cancel_task(task_id: str):
    """Stop a cancellable task at its next progress step."""
    if not await task_manager.cancel(task_id):
        raise HTTPException(400, "Cannot cancel task")
    return {"success": True}


@router.delete("")
async def clear_completed():
    """Forget finished tasks."""
    return {"cleared": task_manager.clear_completed()}
