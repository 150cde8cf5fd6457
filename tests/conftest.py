"""Shared fixtures: isolated SQLite databases and seeded panel records."""

import os
import tempfile
from pathlib import Path

# Settings are read when panel.config is first imported
_TEST_ROOT = Path(tempfile.mkdtemp(prefix="panel-tests-"))
os.environ.setdefault("MASTER_TOKEN", "test-master-token")
os.environ.setdefault("APP_KEY", "test-app-key")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_TEST_ROOT / 'panel.db'}")
os.environ.setdefault("LOGS_DIR", str(_TEST_ROOT / "logs"))

import asyncio  # noqa: E402
import uuid as uuid_lib  # noqa: E402
from typing import Any, Optional  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool  # noqa: E402

from panel.config import settings  # noqa: E402
from panel.errors import DaemonError  # noqa: E402
from panel.models import (  # noqa: E402
    Allocation,
    Base,
    Egg,
    EggVariable,
    Node,
    Server,
    ServerVariable,
    User,
)
from panel.security import JWETokenCodec  # noqa: E402

DAEMON_TOKEN = "d" * 64


@pytest.fixture
def codec():
    return JWETokenCodec(settings.app_key)


@pytest.fixture
async def session_maker():
    """Session factory bound to a fresh temporary database file."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name

    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )

    await engine.dispose()
    Path(db_path).unlink(missing_ok=True)


@pytest.fixture
async def session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def portable_session_maker():
    """Session factory whose connections are opened per use.

    Usable from any event loop, e.g. a TestClient's or one started by
    asyncio.run inside the code under test.
    """
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name

    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}", poolclass=NullPool)

    async def create_tables():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(create_tables())

    yield async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )

    asyncio.run(engine.dispose())
    Path(db_path).unlink(missing_ok=True)


class PanelFactory:
    """Inserts panel records with sensible defaults."""

    def __init__(self, codec: JWETokenCodec):
        self.codec = codec

    async def user(self, session: AsyncSession, username: str = "owner") -> User:
        user = User(username=username)
        session.add(user)
        await session.commit()
        return user

    async def node(self, session: AsyncSession, **overrides: Any) -> Node:
        fields: dict[str, Any] = dict(
            uuid=str(uuid_lib.uuid4()),
            name="node-1",
            fqdn="10.0.0.10",
            scheme="http",
            memory=4096,
            memory_overallocate=0,
            disk=20480,
            disk_overallocate=0,
            daemon_token_id=uuid_lib.uuid4().hex[:16],
            daemon_token=self.codec.encrypt(DAEMON_TOKEN),
        )
        fields.update(overrides)
        node = Node(**fields)
        session.add(node)
        await session.commit()
        return node

    async def allocations(
        self, session: AsyncSession, node: Node, ports: list[int], ip: str = "10.0.0.10"
    ) -> list[Allocation]:
        allocations = [Allocation(node_id=node.id, ip=ip, port=port) for port in ports]
        session.add_all(allocations)
        await session.commit()
        return allocations

    async def egg(
        self, session: AsyncSession, variables: Optional[list[dict[str, Any]]] = None
    ) -> Egg:
        egg = Egg(
            uuid=str(uuid_lib.uuid4()),
            name="Vanilla",
            service="minecraft",
            tag="vanilla",
            startup="java -Xmx{{SERVER_MEMORY}}M -jar server.jar",
            docker_images=["ghcr.io/games/java:21"],
        )
        session.add(egg)
        await session.flush()
        for sort, variable in enumerate(variables or []):
            session.add(EggVariable(egg_id=egg.id, sort=sort, **variable))
        await session.commit()
        return egg

    async def server(
        self,
        session: AsyncSession,
        node: Node,
        egg: Egg,
        owner: User,
        allocation: Allocation,
        values: Optional[dict[int, str]] = None,
        **overrides: Any,
    ) -> Server:
        server_uuid = str(uuid_lib.uuid4())
        fields: dict[str, Any] = dict(
            uuid=server_uuid,
            uuid_short=server_uuid[:8],
            name=f"server-{allocation.port}",
            owner_id=owner.id,
            node_id=node.id,
            egg_id=egg.id,
            allocation_id=allocation.id,
            memory=1024,
            disk=2048,
            startup=egg.startup,
            image="ghcr.io/games/java:21",
        )
        fields.update(overrides)
        server = Server(**fields)
        session.add(server)
        await session.flush()
        allocation.server_id = server.id
        for variable_id, value in (values or {}).items():
            session.add(
                ServerVariable(
                    server_id=server.id, variable_id=variable_id, variable_value=value
                )
            )
        await session.commit()
        return server


@pytest.fixture
def factory(codec):
    return PanelFactory(codec)


class FakeDaemon:
    """Stands in for DaemonClient, recording calls and failing on demand."""

    def __init__(self, failing: Optional[dict[str, str]] = None):
        self.failing = failing or {}
        self.created: list[tuple[int, dict[str, Any]]] = []
        self.updated: list[tuple[int, str, dict[str, Any]]] = []
        self.statuses: dict[str, Any] = {}
        self.ip_addresses: list[str] = []
        self.system_error: Optional[str] = None
        self.create_error: Optional[str] = None

    async def get_system_information(
        self, node: Node, connect_timeout: float = 3
    ) -> dict[str, Any]:
        if self.system_error:
            raise DaemonError(self.system_error)
        return {"version": "1.11.0", "architecture": "amd64"}

    async def get_server_statuses(self, node: Node) -> dict[str, Any]:
        return self.statuses

    async def get_node_ip_addresses(self, node: Node) -> list[str]:
        return self.ip_addresses

    async def create_server(self, node: Node, configuration: dict[str, Any]) -> None:
        self.created.append((node.id, configuration))
        if self.create_error:
            raise DaemonError(self.create_error)
        if configuration["uuid"] in self.failing:
            raise DaemonError(self.failing[configuration["uuid"]])

    async def update_server_build(
        self, node: Node, server_uuid: str, payload: dict[str, Any]
    ) -> None:
        self.updated.append((node.id, server_uuid, payload))
        if server_uuid in self.failing:
            raise DaemonError(self.failing[server_uuid])


@pytest.fixture
def fake_daemon():
    return FakeDaemon()
