from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    Table,
    Text,
    UniqueConstraint,
    Uuid,
    func,
    true,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql.expression import FunctionElement

DEFAULT_PRIMARY_COLOR = "#1E40AF"
DEFAULT_PLAN_TYPE = "basic"
DEFAULT_MEMBER_ROLE = "member"


class random_uuid(FunctionElement):
    """Server-side random UUID default, rendered per dialect."""

    type = Uuid()
    name = "random_uuid"
    inherit_cache = True


@compiles(random_uuid)
def _compile_random_uuid(element, compiler, **kw) -> str:
    return "gen_random_uuid()"


@compiles(random_uuid, "sqlite")
def _compile_random_uuid_sqlite(element, compiler, **kw) -> str:
    # Same 32 hex digit form the Uuid type stores on SQLite.
    return "(lower(hex(randomblob(16))))"


class Base(DeclarativeBase):
    pass


# Owned by the application schema; referenced here, never created.
users = Table("users", Base.metadata, Column("id", Integer, primary_key=True))
contacts = Table("contacts", Base.metadata, Column("id", Integer, primary_key=True))


class Organization(Base):
    __tablename__ = "organizations"
    __table_args__ = (
        UniqueConstraint("uuid", name="uq_organizations_uuid"),
        UniqueConstraint("slug", name="uq_organizations_slug"),
        UniqueConstraint("schema", name="uq_organizations_schema"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    uuid: Mapped[UUID] = mapped_column(Uuid, nullable=False, server_default=random_uuid())
    name: Mapped[str] = mapped_column(Text, nullable=False)
    slug: Mapped[str] = mapped_column(Text, nullable=False)
    schema: Mapped[str] = mapped_column(Text, nullable=False)
    active: Mapped[bool | None] = mapped_column(Boolean, server_default=true())
    logo: Mapped[str | None] = mapped_column(Text, nullable=True)
    primary_color: Mapped[str | None] = mapped_column(Text, server_default=DEFAULT_PRIMARY_COLOR)
    plan_type: Mapped[str | None] = mapped_column(Text, server_default=DEFAULT_PLAN_TYPE)
    support_email: Mapped[str | None] = mapped_column(Text, nullable=True)
    settings: Mapped[dict[str, Any] | None] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )


class OrganizationUser(Base):
    __tablename__ = "organization_users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(Integer, ForeignKey("organizations.id"), nullable=False)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    role: Mapped[str] = mapped_column(Text, nullable=False, server_default=DEFAULT_MEMBER_ROLE)
    active: Mapped[bool | None] = mapped_column(Boolean, server_default=true())
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )


class Opportunity(Base):
    __tablename__ = "opportunities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    contact_id: Mapped[int] = mapped_column(Integer, ForeignKey("contacts.id"), nullable=False)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    value: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    stage: Mapped[str] = mapped_column(Text, nullable=False, server_default="prospecting")
    status: Mapped[str] = mapped_column(Text, nullable=False, server_default="open")
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    expected_close_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
