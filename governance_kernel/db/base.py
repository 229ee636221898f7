"""
Module: governance_kernel.db.base
Responsibility: Declarative base class for the archive's SQLAlchemy ORM models.
    Provides the UUID primary key convention and the type annotation map
    for consistent column types.
Architecture position: Kernel > DB.  Lowest-level import target within
    the archive.  MUST NOT import from models/, services/, or domain/.

Invariants enforced:
    - UUID primary keys: every model inherits a uuid4-generated key.
    - Timestamps are stored timezone-aware; ``as_utc`` restores the zone
      on backends (SQLite) that drop it.
"""

from datetime import UTC, datetime
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, DateTime, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """
    UUID type stored as String(36) for cross-database portability.

    Guarantees:
        - process_bind_param: UUID -> str on INSERT/UPDATE.
        - process_result_value: str -> UUID on SELECT.
    """

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


class Base(DeclarativeBase):
    """
    Declarative base for all archive models.

    Guarantees:
        - id is always a uuid4-generated UUID stored as String(36).
        - datetime maps to DateTime(timezone=True).
        - int maps to BigInteger.
    """

    type_annotation_map: ClassVar[dict] = {
        datetime: DateTime(timezone=True),
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to a naive timestamp read back from the database."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)
