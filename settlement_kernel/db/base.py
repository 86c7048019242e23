"""
Declarative base for the settlement tables.

Every table gets a uuid4 primary key.  UUIDs are stored as 36-character
strings and money as Numeric(38, 9), so one schema serves PostgreSQL in
production and SQLite in the test suite.  Mutable records (settlements,
fee rates, carry rows, bank lines) extend ``TrackedBase`` for server-side
``created_at``/``updated_at``; append-only rows (metrics, ledger entries,
audit) extend ``Base`` directly.

Nothing here imports from models/, services/, selectors/ or domain/.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, Date, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """UUID column stored as text.

    Binds accept UUID objects or their string form (``"ABC..."`` and
    ``"abc..."`` resolve to the same key); results come back as UUID.
    """

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return str(value if isinstance(value, UUID) else UUID(str(value)))

    def process_result_value(self, value, dialect):
        return None if value is None else UUID(value)


class Base(DeclarativeBase):

    type_annotation_map: ClassVar[dict] = {
        UUID: UUIDString(),
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        date: Date,
        int: BigInteger,
    }

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    # refreshed by the ORM on every UPDATE it issues
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )
