"""In-process background tasks for daemon provisioning and rebuilds.

Tasks are async generators yielding TaskProgress; the manager tracks their
state so the API can report on work that outlives the submitting request.
"""

from .manager import BackgroundTaskManager, SubmitResult, task_manager
from .models import BackgroundTask
from .types import TaskProgress, TaskResult, TaskStatus, TaskType

__all__ = [
    "BackgroundTask",
    "BackgroundTaskManager",
    "SubmitResult",
    "TaskProgress",
    "TaskResult",
    "TaskStatus",
    "TaskType",
    "task_manager",
]
