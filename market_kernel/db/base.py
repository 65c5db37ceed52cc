"""
Module: market_kernel.db.base
Responsibility: Declarative base for all SQLAlchemy ORM models.  Provides
    the UUID primary key convention, the type annotation map for consistent
    column types, and the embedded ``AuditInfo`` value with explicit
    soft-delete helpers.
Architecture position: Kernel > DB.  Lowest-level import target inside the
    kernel; all model files import from here.  MUST NOT import from models/,
    services/, selectors/, or outer layers.

Invariants enforced:
    - UUID primary keys generated with uuid4.
    - Decimal maps to Numeric(38, 9).  Money is NEVER stored as float.
    - Timestamps are stored and returned as timezone-aware UTC.
    - Audit metadata is composed into each entity (``audit`` attribute),
      not inherited.  Soft-deleted rows stay in the table; every read path
      applies ``not_deleted(Model)`` itself.

Failure modes:
    - IntegrityError on INSERT if ``audit`` was never assigned
      (created_at/updated_at are NOT NULL).
"""

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, DateTime, Numeric, String
from sqlalchemy.orm import DeclarativeBase, Mapped, composite, mapped_column
from sqlalchemy.sql.elements import ColumnElement
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """UUID stored as String(36) for cross-database portability."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            return str(value)
        return None

    def process_result_value(self, value, dialect):
        if value is not None:
            return PyUUID(value)
        return None


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware timestamp normalized to UTC.

    Contract:
        PostgreSQL keeps the offset in TIMESTAMPTZ.  SQLite drops it, so
        naive values read back are re-tagged as UTC.  Either way callers
        only ever see aware UTC datetimes.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError(f"Naive datetime not allowed: {value!r}")
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class AuditInfo:
    """
    Creation, modification and soft-delete timestamps of an entity.

    Immutable: a change produces a new value which is assigned back to the
    owning entity's ``audit`` attribute.
    """

    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None = None

    @classmethod
    def new(cls, now: datetime) -> "AuditInfo":
        return cls(created_at=now, updated_at=now, deleted_at=None)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def touched(self, now: datetime) -> "AuditInfo":
        return replace(self, updated_at=now)

    def deleted(self, now: datetime) -> "AuditInfo":
        return replace(self, updated_at=now, deleted_at=now)


def audit_columns() -> Any:
    """Composite ``audit`` attribute backed by created_at/updated_at/deleted_at."""
    return composite(
        AuditInfo,
        mapped_column("created_at", UTCDateTime(), nullable=False),
        mapped_column("updated_at", UTCDateTime(), nullable=False),
        mapped_column("deleted_at", UTCDateTime(), nullable=True, index=True),
    )


def not_deleted(model: type["Base"]) -> ColumnElement[bool]:
    """Filter clause selecting rows of ``model`` that are not soft-deleted."""
    return model.__table__.c.deleted_at.is_(None)


def touch(entity: Any, now: datetime) -> None:
    entity.audit = entity.audit.touched(now)


def soft_delete(entity: Any, now: datetime) -> None:
    entity.audit = entity.audit.deleted(now)


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Guarantees:
        - id is a uuid4-generated UUID stored as String(36).
        - Decimal maps to Numeric(38, 9).
        - datetime maps to UTCDateTime.
        - int maps to BigInteger.
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: UTCDateTime(),
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )


UUID = PyUUID
