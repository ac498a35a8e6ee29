"""
Module: kas_kernel.db.base
Responsibility: Declarative base and column types shared by every ORM model.
Architecture position: Kernel > DB.  Lowest-level import target in the
    kernel; MUST NOT import from models/, services/ or domain/.

Invariants enforced:
    - UUID primary keys, generated client-side with uuid4, stored as
      String(36) so SQLite and PostgreSQL behave the same.
    - Amounts map to BigInteger; the fund has no fractional subunit.
    - Timestamps round-trip timezone-aware.  SQLite drops tzinfo, so
      AwareDateTime normalises to UTC on the way in and re-attaches UTC on
      the way out.
"""

from datetime import datetime, timezone
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, DateTime, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """UUID type stored as String(36) for cross-database portability."""

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


class AwareDateTime(TypeDecorator):
    """Timezone-aware datetime, stored as UTC."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError(f"naive datetime not allowed: {value!r}")
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Guarantees:
        - id is always a uuid4-generated UUID stored as String(36).
        - datetime maps to AwareDateTime, int to BigInteger.
    """

    type_annotation_map: ClassVar[dict] = {
        datetime: AwareDateTime(),
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )

    created_at: Mapped[datetime] = mapped_column(
        AwareDateTime(),
        nullable=False,
    )


# Re-export UUID for convenience
UUID = PyUUID
