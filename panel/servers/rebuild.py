"""Bulk rebuild of server build definitions on their daemons."""

import asyncio
from enum import Enum
from typing import Any, AsyncGenerator, Callable, Optional, Sequence

from pydantic import BaseModel

from ..background_tasks import TaskProgress
from ..config import settings
from ..daemon import DaemonClient
from ..errors import DaemonError
from ..logger import logger
from ..models import Server
from .environment import server_environment


class RebuildState(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class RebuildOutcome(BaseModel):
    server_id: int
    server_uuid: str
    server_name: str
    node_name: str
    state: RebuildState = RebuildState.PENDING
    error: Optional[str] = None

    @classmethod
    def for_server(cls, server: Server) -> "RebuildOutcome":
        return cls(
            server_id=server.id,
            server_uuid=server.uuid,
            server_name=server.name,
            node_name=server.node.name,
        )

    @property
    def failure_message(self) -> str:
        return (
            f"Unable to rebuild server {self.server_name} (id: {self.server_id}) "
            f"on node {self.node_name}: {self.error}"
        )


class RebuildReport(BaseModel):
    """Per-target outcomes in the order the targets were given."""

    outcomes: list[RebuildOutcome]

    @property
    def succeeded(self) -> list[RebuildOutcome]:
        return [o for o in self.outcomes if o.state == RebuildState.SUCCEEDED]

    @property
    def failed(self) -> list[RebuildOutcome]:
        return [o for o in self.outcomes if o.state == RebuildState.FAILED]

    def summary(self) -> dict[str, Any]:
        return {
            "total": len(self.outcomes),
            "succeeded": len(self.succeeded),
            "failed": [o.failure_message for o in self.failed],
        }


ProgressCallback = Callable[[RebuildOutcome, int, int], None]


def build_rebuild_payload(server: Server) -> dict[str, Any]:
    """Declarative build document; sending it twice has the same effect."""
    return {
        "build": {
            "image": server.image,
            "env|overwrite": server_environment(server),
        },
        "service": {
            "type": server.egg.service,
            "option": server.egg.tag,
            "pack": None,
            "skip_scripts": server.skip_scripts,
        },
        "rebuild": True,
    }


async def rebuild_servers(
    servers: Sequence[Server],
    daemon: DaemonClient,
    concurrency: Optional[int] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> RebuildReport:
    """Push rebuild payloads to every target, continuing past failures.

    At most ``concurrency`` daemon calls run at once so a few slow nodes do not
    serialize the whole batch. ``on_progress`` is called as each target
    finishes with (outcome, completed count, total).

    Args:
        servers: Targets with node, egg, variables and allocation loaded
        daemon: Client used for the update calls
        concurrency: Parallel call limit, defaults to settings.rebuild_concurrency
        on_progress: Optional completion callback

    Returns:
        RebuildReport with one outcome per target, in target order
    """
    outcomes = [RebuildOutcome.for_server(server) for server in servers]
    semaphore = asyncio.Semaphore(max(1, concurrency or settings.rebuild_concurrency))
    completed = 0

    async def rebuild_one(server: Server, outcome: RebuildOutcome) -> None:
        nonlocal completed
        async with semaphore:
            outcome.state = RebuildState.IN_PROGRESS
            try:
                await daemon.update_server_build(
                    server.node, server.uuid, build_rebuild_payload(server)
                )
            except DaemonError as e:
                outcome.state = RebuildState.FAILED
                outcome.error = e.message
                logger.warning(outcome.failure_message)
            else:
                outcome.state = RebuildState.SUCCEEDED

        completed += 1
        if on_progress is not None:
            on_progress(outcome, completed, len(outcomes))

    await asyncio.gather(
        *(rebuild_one(server, outcome) for server, outcome in zip(servers, outcomes))
    )

    report = RebuildReport(outcomes=outcomes)
    logger.info(
        f"Rebuild finished: {len(report.succeeded)} succeeded, "
        f"{len(report.failed)} failed"
    )
    return report


async def rebuild_servers_task(
    servers: Sequence[Server],
    daemon: DaemonClient,
    concurrency: Optional[int] = None,
) -> AsyncGenerator[TaskProgress, None]:
    """Background task variant of rebuild_servers reporting TaskProgress."""
    total = len(servers)
    yield TaskProgress(progress=0, message=f"Rebuilding {total} servers...")

    finished: asyncio.Queue[tuple[RebuildOutcome, int]] = asyncio.Queue()
    runner = asyncio.create_task(
        rebuild_servers(
            servers,
            daemon,
            concurrency,
            on_progress=lambda outcome, done, _: finished.put_nowait((outcome, done)),
        )
    )

    def progress_for(outcome: RebuildOutcome, count: int) -> TaskProgress:
        message = (
            outcome.failure_message
            if outcome.state == RebuildState.FAILED
            else f"Rebuilt {outcome.server_name}"
        )
        return TaskProgress(progress=count * 100 / total, message=message)

    while not runner.done():
        getter = asyncio.ensure_future(finished.get())
        done, _ = await asyncio.wait(
            {getter, runner}, return_when=asyncio.FIRST_COMPLETED
        )
        if getter in done:
            yield progress_for(*getter.result())
        else:
            getter.cancel()

    while not finished.empty():
        yield progress_for(*finished.get_nowait())

    report = await runner
    yield TaskProgress(
        progress=100,
        message=f"{len(report.succeeded)} of {total} servers rebuilt",
        result=report.summary(),
    )
