import asyncio
from datetime import datetime, timezone
from typing import AsyncGenerator

from pydantic import BaseModel

from ..logger import logger
from .models import BackgroundTask
from .types import TaskProgress, TaskResult, TaskStatus, TaskType


class SubmitResult(BaseModel):
    """Handle returned when submitting a task."""

    model_config = {"arbitrary_types_allowed": True}

    task_id: str
    task: BackgroundTask
    awaitable: asyncio.Future[TaskResult]


class BackgroundTaskManager:
    """Runs async generator tasks without blocking the submitting request."""

    def __init__(self):
        self._tasks: dict[str, BackgroundTask] = {}
        self._runners: dict[str, asyncio.Task] = {}

    def submit(
        self,
        task_type: TaskType,
        name: str,
        task_generator: AsyncGenerator[TaskProgress, None],
        server_uuid: str | None = None,
        node_id: int | None = None,
        cancellable: bool = True,
    ) -> SubmitResult:
        """
        Schedule a task generator on the running event loop.

        The generator yields TaskProgress; the last non-empty ``result`` it
        yields becomes the task result. An exception marks the task failed.

        Args:
            task_type: Type of the task
            name: Display name for the task
            task_generator: Instantiated async generator yielding TaskProgress
            server_uuid: Server the task acts on, if any
            node_id: Node the task acts on, if any
            cancellable: Whether cancel() is honoured

        Returns:
            SubmitResult whose ``awaitable`` resolves when the task ends
        """
        task = BackgroundTask(
            task_type=task_type,
            name=name,
            server_uuid=server_uuid,
            node_id=node_id,
            cancellable=cancellable,
        )
        future: asyncio.Future[TaskResult] = asyncio.get_running_loop().create_future()
        self._tasks[task.task_id] = task

        async def run() -> None:
            task.status = TaskStatus.RUNNING
            task.started_at = datetime.now(timezone.utc)
            try:
                async for progress in task_generator:
                    if task.cancel_requested:
                        await task_generator.aclose()
                        task.finish(TaskStatus.CANCELLED, "Cancelled")
                        future.set_result(TaskResult(success=False, error="Cancelled"))
                        logger.info(f"Task {task.task_id} ({task.name}) cancelled")
                        return

                    task.progress = progress.progress
                    task.message = progress.message
                    if progress.result is not None:
                        task.result = progress.result
            except Exception as e:
                task.error = str(e)
                task.finish(TaskStatus.FAILED)
                future.set_result(TaskResult(success=False, error=str(e)))
                logger.warning(f"Task {task.task_id} ({task.name}) failed: {e}")
                return

            task.finish(TaskStatus.COMPLETED)
            if task.progress is not None:
                task.progress = 100
            future.set_result(TaskResult(success=True, data=task.result))
            logger.info(f"Task {task.task_id} ({task.name}) completed")

        self._runners[task.task_id] = asyncio.create_task(run())
        logger.info(
            f"Task {task.task_id} ({task.name}) submitted, type={task_type.value}"
        )
        return SubmitResult(task_id=task.task_id, task=task, awaitable=future)

    async def cancel(self, task_id: str) -> bool:
        """Request cancellation; takes effect at the task's next progress step."""
        task = self._tasks.get(task_id)
        if not task or not task.cancellable or not task.status.is_active:
            return False
        task.cancel_requested = True
        return True

    def get_task(self, task_id: str) -> BackgroundTask | None:
        return self._tasks.get(task_id)

    def get_all_tasks(self) -> list[BackgroundTask]:
        return list(self._tasks.values())

    def get_active_tasks(self) -> list[BackgroundTask]:
        return [t for t in self._tasks.values() if t.status.is_active]

    def clear_completed(self) -> int:
        """Forget every task that is no longer pending or running."""
        finished = [tid for tid, t in self._tasks.items() if not t.status.is_active]
        for tid in finished:
            del self._tasks[tid]
            self._runners.pop(tid, None)
        return len(finished)


task_manager = BackgroundTaskManager()
