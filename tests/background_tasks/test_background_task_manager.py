"""
Tests for BackgroundTaskManager.

Tests cover:
- Submission and completion
- Progress and result capture
- Cancellation rules
- Failure handling
- Queries and clearing
"""

import asyncio

import pytest

from panel.background_tasks import (
    BackgroundTask,
    BackgroundTaskManager,
    TaskProgress,
    TaskStatus,
    TaskType,
)


@pytest.fixture
def task_manager():
    """Create a fresh BackgroundTaskManager for each test."""
    return BackgroundTaskManager()


async def single_step(message="Done", result=None):
    yield TaskProgress(progress=100, message=message, result=result)


async def wait_for_event(event: asyncio.Event):
    yield TaskProgress(progress=0, message="Waiting")
    await event.wait()
    yield TaskProgress(progress=50, message="Resumed")


class TestSubmission:
    async def test_submit_returns_handle(self, task_manager):
        result = task_manager.submit(
            task_type=TaskType.SERVER_INSTALL,
            name="Install survival",
            task_generator=single_step(),
            server_uuid="uuid-1",
            node_id=3,
        )

        assert isinstance(result.task, BackgroundTask)
        assert result.task.task_id == result.task_id
        assert result.task.server_uuid == "uuid-1"
        assert result.task.node_id == 3
        assert result.task.status == TaskStatus.PENDING

        await result.awaitable

    async def test_task_completes(self, task_manager):
        result = task_manager.submit(
            TaskType.SERVER_REBUILD, "Rebuild", single_step(result={"total": 1})
        )

        outcome = await result.awaitable

        assert outcome.success
        assert outcome.data == {"total": 1}
        assert result.task.status == TaskStatus.COMPLETED
        assert result.task.started_at is not None
        assert result.task.ended_at >= result.task.started_at

    async def test_tasks_have_unique_ids(self, task_manager):
        ids = {
            task_manager.submit(TaskType.SERVER_INSTALL, f"t{i}", single_step()).task_id
            for i in range(5)
        }
        assert len(ids) == 5


class TestProgress:
    async def test_progress_and_message_follow_yields(self, task_manager):
        event = asyncio.Event()
        result = task_manager.submit(
            TaskType.SERVER_INSTALL, "Install", wait_for_event(event)
        )

        await asyncio.sleep(0.01)
        assert result.task.status == TaskStatus.RUNNING
        assert result.task.progress == 0
        assert result.task.message == "Waiting"

        event.set()
        await result.awaitable
        assert result.task.message == "Resumed"
        assert result.task.progress == 100

    async def test_progress_stays_none_when_never_reported(self, task_manager):
        async def silent():
            yield TaskProgress(message="working")

        result = task_manager.submit(TaskType.SERVER_INSTALL, "Install", silent())
        await result.awaitable

        assert result.task.progress is None

    async def test_last_result_wins(self, task_manager):
        async def two_results():
            yield TaskProgress(result={"step": 1})
            yield TaskProgress(message="no result here")
            yield TaskProgress(result={"step": 2})

        result = task_manager.submit(TaskType.SERVER_REBUILD, "Rebuild", two_results())
        outcome = await result.awaitable

        assert outcome.data == {"step": 2}


class TestFailures:
    async def test_exception_marks_task_failed(self, task_manager, caplog):
        async def failing():
            yield TaskProgress(progress=30, message="Sending")
            raise RuntimeError("daemon went away")

        result = task_manager.submit(TaskType.SERVER_INSTALL, "Install", failing())
        outcome = await result.awaitable

        assert not outcome.success
        assert outcome.error == "daemon went away"
        assert result.task.status == TaskStatus.FAILED
        assert result.task.error == "daemon went away"
        assert result.task.progress == 30
        assert "daemon went away" in caplog.text


class TestCancellation:
    async def test_cancel_running_task(self, task_manager):
        event = asyncio.Event()
        result = task_manager.submit(
            TaskType.SERVER_REBUILD, "Rebuild", wait_for_event(event)
        )
        await asyncio.sleep(0.01)

        assert await task_manager.cancel(result.task_id)
        event.set()
        outcome = await result.awaitable

        assert not outcome.success
        assert result.task.status == TaskStatus.CANCELLED

    async def test_non_cancellable_task(self, task_manager):
        event = asyncio.Event()
        result = task_manager.submit(
            TaskType.SERVER_INSTALL,
            "Install",
            wait_for_event(event),
            cancellable=False,
        )

        assert not await task_manager.cancel(result.task_id)
        event.set()
        await result.awaitable
        assert result.task.status == TaskStatus.COMPLETED

    async def test_cancel_finished_or_unknown_task(self, task_manager):
        result = task_manager.submit(TaskType.SERVER_INSTALL, "Install", single_step())
        await result.awaitable

        assert not await task_manager.cancel(result.task_id)
        assert not await task_manager.cancel("missing")


class TestQueries:
    async def test_get_task(self, task_manager):
        result = task_manager.submit(TaskType.SERVER_INSTALL, "Install", single_step())
        assert task_manager.get_task(result.task_id) is result.task
        assert task_manager.get_task("missing") is None
        await result.awaitable

    async def test_active_tasks_and_clearing(self, task_manager):
        event = asyncio.Event()
        running = task_manager.submit(
            TaskType.SERVER_REBUILD, "Rebuild", wait_for_event(event)
        )
        finished = task_manager.submit(TaskType.SERVER_INSTALL, "Install", single_step())
        await finished.awaitable

        assert task_manager.get_active_tasks() == [running.task]
        assert len(task_manager.get_all_tasks()) == 2

        assert task_manager.clear_completed() == 1
        assert task_manager.get_all_tasks() == [running.task]

        event.set()
        await running.awaitable
