from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import (
    JSON,
    TEXT,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Table,
    UniqueConstraint,
)
from sqlalchemy import Enum as SQLAlchemyEnum
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.types import TypeDecorator


class TZDatetime(TypeDecorator):
    """Custom DateTime type that ensures timezone-aware datetimes."""

    impl = DateTime(timezone=True)

    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is None:
            raise ValueError(
                "Naive datetime is not allowed. Please provide a timezone-aware datetime."
            )
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            # Assume UTC if no timezone info is present
            return value.replace(tzinfo=timezone.utc)
        return value


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(AsyncAttrs, DeclarativeBase):
    """SQLAlchemy declarative base for all ORM models with async support."""

    pass


class User(Base):
    """Panel user. Only referenced as a server owner here."""

    __tablename__ = "user"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(50), unique=True, index=True)
    created_at: Mapped[datetime] = mapped_column(TZDatetime(), default=utcnow)


mount_node = Table(
    "mount_node",
    Base.metadata,
    Column("node_id", ForeignKey("node.id", ondelete="CASCADE"), primary_key=True),
    Column("mount_id", ForeignKey("mount.id", ondelete="CASCADE"), primary_key=True),
)


class Mount(Base):
    """Host path that daemons may bind into server containers."""

    __tablename__ = "mount"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(64), unique=True)
    source: Mapped[str] = mapped_column(String(255))
    target: Mapped[str] = mapped_column(String(255))


class Node(Base):
    """Physical or virtual host running a daemon."""

    __tablename__ = "node"

    DAEMON_TOKEN_ID_LENGTH = 16
    DAEMON_TOKEN_LENGTH = 64

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    uuid: Mapped[str] = mapped_column(String(36), unique=True)
    public: Mapped[bool] = mapped_column(Boolean, default=True)
    name: Mapped[str] = mapped_column(String(100))
    description: Mapped[Optional[str]] = mapped_column(TEXT)
    fqdn: Mapped[str] = mapped_column(String(255))
    scheme: Mapped[str] = mapped_column(String(10), default="https")
    behind_proxy: Mapped[bool] = mapped_column(Boolean, default=False)
    maintenance_mode: Mapped[bool] = mapped_column(Boolean, default=False)
    memory: Mapped[int] = mapped_column(Integer, default=0)
    memory_overallocate: Mapped[int] = mapped_column(Integer, default=0)
    disk: Mapped[int] = mapped_column(Integer, default=0)
    disk_overallocate: Mapped[int] = mapped_column(Integer, default=0)
    upload_size: Mapped[int] = mapped_column(Integer, default=100)
    daemon_token_id: Mapped[str] = mapped_column(String(16), unique=True)
    daemon_token: Mapped[str] = mapped_column(TEXT)
    daemon_listen: Mapped[int] = mapped_column(Integer, default=8080)
    daemon_sftp: Mapped[int] = mapped_column(Integer, default=2022)
    daemon_base: Mapped[str] = mapped_column(
        String(255), default="/var/lib/panel/volumes"
    )
    created_at: Mapped[datetime] = mapped_column(TZDatetime(), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        TZDatetime(), default=utcnow, onupdate=utcnow
    )

    mounts: Mapped[list[Mount]] = relationship(secondary=mount_node)
    allocations: Mapped[list["Allocation"]] = relationship(back_populates="node")

    @property
    def connection_address(self) -> str:
        """Base URL used when making calls to this node's daemon."""
        return f"{self.scheme}://{self.fqdn}:{self.daemon_listen}"

    def is_under_maintenance(self) -> bool:
        return self.maintenance_mode


class Allocation(Base):
    """An ip:port pair on a node, owned by at most one server."""

    __tablename__ = "allocation"
    __table_args__ = (UniqueConstraint("node_id", "ip", "port"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    node_id: Mapped[int] = mapped_column(ForeignKey("node.id"), index=True)
    ip: Mapped[str] = mapped_column(String(45))
    ip_alias: Mapped[Optional[str]] = mapped_column(String(255))
    port: Mapped[int] = mapped_column(Integer)
    server_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey(
            "server.id",
            ondelete="SET NULL",
            use_alter=True,
            name="fk_allocation_server",
        ),
        index=True,
    )
    notes: Mapped[Optional[str]] = mapped_column(String(255))

    node: Mapped[Node] = relationship(back_populates="allocations")

    @property
    def address(self) -> str:
        return f"{self.ip}:{self.port}"

    @property
    def label(self) -> str:
        if self.ip_alias:
            return f"{self.address} ({self.ip_alias})"
        return self.address


class Egg(Base):
    """Template describing how a kind of server is built and started."""

    __tablename__ = "egg"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    uuid: Mapped[str] = mapped_column(String(36), unique=True)
    name: Mapped[str] = mapped_column(String(191))
    service: Mapped[str] = mapped_column(String(191))
    tag: Mapped[str] = mapped_column(String(191))
    startup: Mapped[str] = mapped_column(TEXT, default="")
    docker_images: Mapped[list] = mapped_column(JSON, default=list)

    variables: Mapped[list["EggVariable"]] = relationship(
        back_populates="egg", order_by="EggVariable.sort"
    )


class EggVariable(Base):
    __tablename__ = "egg_variable"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    egg_id: Mapped[int] = mapped_column(ForeignKey("egg.id"), index=True)
    name: Mapped[str] = mapped_column(String(191))
    description: Mapped[str] = mapped_column(TEXT, default="")
    env_variable: Mapped[str] = mapped_column(String(191))
    default_value: Mapped[str] = mapped_column(TEXT, default="")
    rules: Mapped[str] = mapped_column(TEXT, default="nullable|string")
    sort: Mapped[int] = mapped_column(Integer, default=0)

    egg: Mapped[Egg] = relationship(back_populates="variables")


class ServerStatus(str, Enum):
    INSTALLING = "installing"
    INSTALL_FAILED = "install_failed"


class Server(Base):
    """A game server placed on a node."""

    __tablename__ = "server"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    uuid: Mapped[str] = mapped_column(String(36), unique=True)
    uuid_short: Mapped[str] = mapped_column(String(8), unique=True)
    name: Mapped[str] = mapped_column(String(191))
    description: Mapped[str] = mapped_column(TEXT, default="")
    status: Mapped[Optional[ServerStatus]] = mapped_column(SQLAlchemyEnum(ServerStatus))
    skip_scripts: Mapped[bool] = mapped_column(Boolean, default=False)
    owner_id: Mapped[int] = mapped_column(ForeignKey("user.id"), index=True)
    node_id: Mapped[int] = mapped_column(ForeignKey("node.id"), index=True)
    egg_id: Mapped[int] = mapped_column(ForeignKey("egg.id"))
    allocation_id: Mapped[int] = mapped_column(ForeignKey("allocation.id"))
    memory: Mapped[int] = mapped_column(Integer, default=0)
    swap: Mapped[int] = mapped_column(Integer, default=0)
    disk: Mapped[int] = mapped_column(Integer, default=0)
    io: Mapped[int] = mapped_column(Integer, default=500)
    cpu: Mapped[int] = mapped_column(Integer, default=0)
    threads: Mapped[Optional[str]] = mapped_column(String(191))
    oom_disabled: Mapped[bool] = mapped_column(Boolean, default=True)
    startup: Mapped[str] = mapped_column(TEXT)
    image: Mapped[str] = mapped_column(String(191))
    created_at: Mapped[datetime] = mapped_column(TZDatetime(), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        TZDatetime(), default=utcnow, onupdate=utcnow
    )

    node: Mapped[Node] = relationship()
    egg: Mapped[Egg] = relationship()
    allocation: Mapped[Allocation] = relationship(foreign_keys=[allocation_id])
    variables: Mapped[list["ServerVariable"]] = relationship(
        back_populates="server", cascade="all, delete-orphan"
    )


class ServerVariable(Base):
    __tablename__ = "server_variable"
    __table_args__ = (UniqueConstraint("server_id", "variable_id"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    server_id: Mapped[int] = mapped_column(ForeignKey("server.id"), index=True)
    variable_id: Mapped[int] = mapped_column(ForeignKey("egg_variable.id"))
    variable_value: Mapped[str] = mapped_column(TEXT, default="")

    server: Mapped[Server] = relationship(back_populates="variables")
    variable: Mapped[EggVariable] = relationship()
