"""ORM entities and Pydantic read models shared by the API and the worker."""

from __future__ import annotations

import json
from datetime import datetime
from enum import Enum
from typing import Any, Iterable

from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class DeliveryType(str, Enum):
    """Channels a notification request asks to be delivered through."""

    BROWSER = "browser"
    EMAIL = "email"
    BOTH = "both"

    @property
    def includes_browser(self) -> bool:
        return self in (DeliveryType.BROWSER, DeliveryType.BOTH)

    @property
    def includes_email(self) -> bool:
        return self in (DeliveryType.EMAIL, DeliveryType.BOTH)


class RoleSet(TypeDecorator):
    """JSON array column exposed to Python as an immutable set of role names.

    Values are stored sorted and de-duplicated so equal memberships always
    serialise the same way; reads always produce a ``frozenset``.
    """

    impl = JSON
    cache_ok = True

    def process_bind_param(self, value: Iterable[str] | None, dialect) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            raise TypeError("roles must be an iterable of role names, not a string")
        return sorted({str(role).strip() for role in value if str(role).strip()})

    def process_result_value(self, value: Any, dialect) -> frozenset[str]:
        if not value:
            return frozenset()
        if isinstance(value, str):
            value = json.loads(value)
        return frozenset(str(role) for role in value)


class Base(DeclarativeBase):
    """Declarative base for SQLAlchemy ORM models."""


class User(Base):
    """Account owned by the identity provider; read-only for the job pipeline."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True)
    roles: Mapped[frozenset[str]] = mapped_column(
        RoleSet, nullable=False, default=frozenset
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )


class Notification(Base):
    """One notification addressed to a single user."""

    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    html_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    delivery_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=DeliveryType.BROWSER.value
    )
    delivery_status: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    read: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )


class Server(Base):
    """Inventory entry for a physical or virtual host."""

    __tablename__ = "servers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    hostname: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    ipv4: Mapped[str | None] = mapped_column(String(45), nullable=True)
    ipv6: Mapped[str | None] = mapped_column(String(45), nullable=True)
    mac_address: Mapped[str | None] = mapped_column(String(50), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    cores: Mapped[int | None] = mapped_column(Integer, nullable=True)
    ram: Mapped[int | None] = mapped_column(Integer, nullable=True)
    onboarded: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )


class ServerScan(Base):
    """Latest snapshot reported by the scanning agent for a server."""

    __tablename__ = "server_scans"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    server_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("servers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        unique=True,
    )
    scan_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    scan_results: Mapped[dict] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )


class NotificationModel(BaseModel):
    """Pydantic representation of the :class:`Notification` entity."""

    model_config = ConfigDict(from_attributes=True)

    id: int | None = Field(default=None, description="Database identifier")
    user_id: str
    title: str
    message: str
    html_message: str | None = None
    delivery_type: str
    delivery_status: dict = Field(default_factory=dict)
    read: bool
    created_at: datetime
    updated_at: datetime


class UserModel(BaseModel):
    """Pydantic representation of :class:`User`."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str | None = None
    email: str | None = None
    roles: list[str] = Field(default_factory=list)

    @field_validator("roles", mode="before")
    @classmethod
    def _sorted_roles(cls, value: Any) -> Any:
        if isinstance(value, (set, frozenset)):
            return sorted(value)
        return value


class ServerModel(BaseModel):
    """Pydantic representation of :class:`Server`."""

    model_config = ConfigDict(from_attributes=True)

    id: int | None = None
    hostname: str
    ipv4: str | None = None
    ipv6: str | None = None
    mac_address: str | None = None
    description: str | None = None
    cores: int | None = None
    ram: int | None = None
    onboarded: bool
    created_at: datetime
    updated_at: datetime


__all__ = [
    "Base",
    "DeliveryType",
    "Notification",
    "NotificationModel",
    "RoleSet",
    "Server",
    "ServerModel",
    "ServerScan",
    "User",
    "UserModel",
]
