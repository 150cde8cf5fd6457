from enum import Enum
from typing import Any

from pydantic import BaseModel


class TaskType(str, Enum):
    SERVER_INSTALL = "server_install"
    SERVER_REBUILD = "server_rebuild"


class TaskStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_active(self) -> bool:
        return self in (TaskStatus.PENDING, TaskStatus.RUNNING)


class TaskProgress(BaseModel):
    """Progress information yielded by task generators."""

    progress: float | None = None
    message: str = ""
    result: dict[str, Any] | None = None


class TaskResult(BaseModel):
    """Outcome delivered through a submitted task's future."""

    success: bool
    data: dict[str, Any] | None = None
    error: str | None = None
