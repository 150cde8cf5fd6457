"""Server creation: validation, placement, allocation claim and provisioning."""

import uuid
from dataclasses import dataclass
from typing import Any, AsyncGenerator, Callable, Optional

from pydantic import BaseModel, Field, field_validator, model_validator
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..allocations import claim_allocations, reserve_existing
from ..background_tasks import (
    BackgroundTaskManager,
    SubmitResult,
    TaskProgress,
    TaskType,
    task_manager,
)
from ..daemon import DaemonClient
from ..db.crud.user import get_user_by_id
from ..db.database import get_async_session
from ..eggs import validate_variable
from ..errors import DaemonError, InsufficientCapacity, ValidationError
from ..logger import logger
from ..models import Allocation, Egg, Node, Server, ServerStatus, ServerVariable
from ..nodes import get_node_usage, has_capacity_for
from .environment import build_environment, build_server_configuration


class ServerCreationRequest(BaseModel):
    """Fully structured server creation payload."""

    name: str = Field(min_length=1, max_length=191)
    description: str = ""
    owner_id: int
    node_id: int
    egg_id: int
    allocation_id: int
    allocation_additional: list[int] = Field(default_factory=list)
    memory: int = Field(default=0, ge=0)
    swap: int = Field(default=0, ge=-1)
    disk: int = Field(default=0, ge=0)
    cpu: int = Field(default=0, ge=0)
    io: int = Field(default=500, ge=0, le=1000)
    threads: Optional[str] = Field(default=None, max_length=191, pattern=r"^[\d\-,\s]*$")
    oom_disabled: bool = True
    environment: dict[str, str] = Field(default_factory=dict)
    startup: str = Field(min_length=1)
    image: str = Field(min_length=1, max_length=191)
    skip_scripts: bool = False
    start_on_completion: bool = True

    @field_validator("allocation_additional", mode="before")
    @classmethod
    def drop_empty_entries(cls, value: Any) -> Any:
        # Forms submit blank repeater rows as null or empty strings
        if isinstance(value, list):
            return [item for item in value if item not in (None, "", 0)]
        return value

    @model_validator(mode="after")
    def check_additional_allocations(self) -> "ServerCreationRequest":
        if self.allocation_id in self.allocation_additional:
            raise ValueError("Additional allocations must differ from the primary")
        if len(set(self.allocation_additional)) != len(self.allocation_additional):
            raise ValueError("Additional allocations must not repeat")
        return self

    @property
    def allocation_ids(self) -> list[int]:
        return [self.allocation_id, *self.allocation_additional]


@dataclass
class CreatedServer:
    server: Server
    provisioning: Optional[SubmitResult] = None


SessionFactory = Callable[[], AsyncSession]


async def set_server_status(
    session_factory: SessionFactory, server_id: int, status: Optional[ServerStatus]
) -> None:
    async with session_factory() as session:
        await session.execute(
            update(Server).where(Server.id == server_id).values(status=status)
        )
        await session.commit()


async def provision_server_task(
    daemon: DaemonClient,
    node: Node,
    server_id: int,
    configuration: dict[str, Any],
    session_factory: SessionFactory = get_async_session,
) -> AsyncGenerator[TaskProgress, None]:
    """Background task handing a freshly created server to its daemon.

    The server leaves the installing state once the daemon accepts it. A
    daemon failure marks it install_failed and fails the task; the record
    itself is kept.
    """
    yield TaskProgress(progress=0, message="Sending server to daemon...")
    try:
        await daemon.create_server(node, configuration)
    except DaemonError:
        await set_server_status(session_factory, server_id, ServerStatus.INSTALL_FAILED)
        raise
    await set_server_status(session_factory, server_id, None)
    yield TaskProgress(
        progress=100,
        message="Daemon accepted server",
        result={"uuid": configuration["uuid"], "node_id": node.id},
    )


class ServerCreationService:
    """Creates server records and hands them to the node's daemon.

    The database record is the source of truth: a failed daemon call is
    reported on the provisioning task and never rolls the record back.
    """

    def __init__(
        self,
        daemon: DaemonClient,
        tasks: BackgroundTaskManager = task_manager,
        session_factory: SessionFactory = get_async_session,
    ) -> None:
        self._daemon = daemon
        self._tasks = tasks
        self._session_factory = session_factory

    async def _load_node(self, session: AsyncSession, node_id: int) -> Node:
        node = await session.get(Node, node_id)
        if node is None:
            raise ValidationError(f"Node {node_id} does not exist")
        if node.is_under_maintenance():
            raise ValidationError(f"Node {node.name} is under maintenance")
        return node

    async def _load_egg(self, session: AsyncSession, egg_id: int) -> Egg:
        egg = await session.scalar(
            select(Egg).where(Egg.id == egg_id).options(selectinload(Egg.variables))
        )
        if egg is None:
            raise ValidationError(f"Egg {egg_id} does not exist")
        return egg

    @staticmethod
    def _variable_values(egg: Egg, environment: dict[str, str]) -> dict[int, str]:
        values = {}
        for variable in egg.variables:
            value = environment.get(variable.env_variable, variable.default_value)
            error = validate_variable(variable.name, value, variable.rules)
            if error:
                raise ValidationError(error)
            values[variable.id] = value or ""
        return values

    async def handle(
        self, session: AsyncSession, request: ServerCreationRequest
    ) -> CreatedServer:
        """Create a server.

        Steps:
        1. Validate node, egg, owner and egg variable values
        2. Check the node has capacity for the requested memory and disk
        3. Validate the requested allocations
        4. Insert the server and claim its allocations in one transaction
        5. Dispatch provisioning to the daemon when start_on_completion is set

        Raises:
            ValidationError: Unknown node/egg/owner or invalid variable values
            InsufficientCapacity: The node cannot fit the server
            AllocationUnavailable: An allocation is on another node or taken
            AllocationConflict: An allocation was taken concurrently
        """
        node = await self._load_node(session, request.node_id)
        egg = await self._load_egg(session, request.egg_id)
        if await get_user_by_id(session, request.owner_id) is None:
            raise ValidationError(f"User {request.owner_id} does not exist")
        values = self._variable_values(egg, request.environment)

        usage = await get_node_usage(session, node.id)
        if not has_capacity_for(node, usage, request.memory, request.disk):
            raise InsufficientCapacity(
                f"Node {node.name} cannot fit {request.memory} MB memory and "
                f"{request.disk} MB disk (in use: {usage.memory} MB memory, "
                f"{usage.disk} MB disk)"
            )

        allocations = await reserve_existing(session, node, request.allocation_ids)

        server_uuid = str(uuid.uuid4())
        server = Server(
            uuid=server_uuid,
            uuid_short=server_uuid[:8],
            name=request.name,
            description=request.description,
            owner_id=request.owner_id,
            node_id=node.id,
            egg_id=egg.id,
            allocation_id=request.allocation_id,
            memory=request.memory,
            swap=request.swap,
            disk=request.disk,
            cpu=request.cpu,
            io=request.io,
            threads=request.threads,
            oom_disabled=request.oom_disabled,
            startup=request.startup,
            image=request.image,
            skip_scripts=request.skip_scripts,
            status=ServerStatus.INSTALLING if request.start_on_completion else None,
        )
        try:
            session.add(server)
            await session.flush()
            await claim_allocations(session, node, request.allocation_ids, server.id)
            session.add_all(
                ServerVariable(server_id=server.id, variable_id=vid, variable_value=value)
                for vid, value in values.items()
            )
            await session.commit()
        except Exception:
            await session.rollback()
            raise

        logger.info(
            f"Created server {server.uuid} ({server.name}) on node {node.id} "
            f"with {len(allocations)} allocations"
        )

        created = CreatedServer(server=server)
        if request.start_on_completion:
            primary = next(a for a in allocations if a.id == server.allocation_id)
            created.provisioning = self._dispatch(
                server, node, egg, values, allocations, primary
            )
        return created

    def _dispatch(
        self,
        server: Server,
        node: Node,
        egg: Egg,
        values: dict[int, str],
        allocations: list[Allocation],
        primary: Allocation,
    ) -> SubmitResult:
        environment = build_environment(server, egg, values, primary)
        configuration = build_server_configuration(server, egg, environment, allocations)
        return self._tasks.submit(
            TaskType.SERVER_INSTALL,
            f"Install {server.name}",
            provision_server_task(
                self._daemon, node, server.id, configuration, self._session_factory
            ),
            server_uuid=server.uuid,
            node_id=node.id,
            cancellable=False,
        )
