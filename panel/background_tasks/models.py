import uuid
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field

from .types import TaskStatus, TaskType


def _now() -> datetime:
    return datetime.now(timezone.utc)


class BackgroundTask(BaseModel):
    """In-memory record of a submitted task."""

    task_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    task_type: TaskType
    name: str
    status: TaskStatus = TaskStatus.PENDING
    progress: float | None = None
    message: str = ""
    server_uuid: str | None = None
    node_id: int | None = None
    cancellable: bool = True
    created_at: datetime = Field(default_factory=_now)
    started_at: datetime | None = None
    ended_at: datetime | None = None
    result: dict[str, Any] | None = None
    error: str | None = None

    cancel_requested: bool = Field(default=False, exclude=True)

    def finish(self, status: TaskStatus, message: str | None = None) -> None:
        self.status = status
        self.ended_at = _now()
        if message is not None:
            self.message = message
