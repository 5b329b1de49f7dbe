"""
Module: fleet_kernel.db.base
Responsibility: Declarative base classes for every SQLAlchemy ORM model in
    the fleet finance schema. Provides the UUID primary key convention, the
    type annotation map and the TrackedBase audit columns.
Architecture position: Kernel > DB. Lowest-level import target for models.
    MUST NOT import from fleet_services or fleet_engines.

Invariants enforced:
    - Every model gets a uuid4 primary key stored as String(36).
    - Decimal maps to Numeric(38, 9). Money never touches a float column.
    - TrackedBase records who created and last touched each row.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from fleet_kernel.db.types import Amount, CurrencyCode, ExternalId, LongText, Rate, ShortCode


class UUIDString(TypeDecorator):
    """UUID stored as String(36) so the schema runs on PostgreSQL and SQLite."""

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
    Declarative base for all fleet finance models.

    Guarantees:
        - id is a uuid4 UUID.
        - Decimal -> Numeric(38, 9), datetime -> timezone-aware DateTime,
          int -> BigInteger. The fleet_kernel.db.types aliases map to
          their own column types.
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        PyUUID: UUIDString(),
        int: BigInteger,
        Amount: Numeric(38, 9),
        Rate: Numeric(20, 10),
        CurrencyCode: String(3),
        ShortCode: String(50),
        ExternalId: String(64),
        LongText: String(4000),
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )


class TrackedBase(Base):
    """
    Abstract base with audit timestamps and actor tracking.

    created_by_id is mandatory: every reserve, movement, allocation and
    investment row must name the actor that produced it. The updated_*
    columns are audit metadata and may change even on append-only rows.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    created_by_id: Mapped[PyUUID] = mapped_column(UUIDString(), nullable=False)

    updated_by_id: Mapped[PyUUID | None] = mapped_column(UUIDString(), nullable=True)


UUID = PyUUID
