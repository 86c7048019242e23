"""
Module: settlement_kernel.models.ledger
Responsibility: Recorded cash movements and the balances carried between
    periods.
Architecture position: Kernel > Models.

Invariants enforced:
    - LedgerEntry.amount is a positive magnitude; direction carries the sign
      (IN = received by the operator, OUT = paid by the operator).
    - LedgerEntry.entity_id is polymorphic: a player id, an agent id, a
      source-system id or a metric-row id, depending on how the movement
      was recorded.  Resolved through AliasSet at read time.
    - (tenant, source, external_ref) is unique when external_ref is set,
      so re-applying the same bank line cannot duplicate a movement.
    - CarryForward is unique per (tenant, club, entity, period) and is
      overwritten, never accumulated, by the period close.

Audit relevance:
    source/external_ref trace each movement to its origin (manual entry,
    bank statement line).  source_settlement_id ties a carry row to the
    settlement whose close produced it.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, Date, DateTime, Index, Numeric, String, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from settlement_kernel.db.base import Base, TrackedBase, UUIDString


class LedgerDirection(str, Enum):
    IN = "in"
    OUT = "out"


class LedgerSource(str, Enum):
    MANUAL = "manual"
    BANK = "bank"
    IMPORT = "import"


class LedgerEntry(Base):
    """One recorded cash movement between the operator and an entity."""

    __tablename__ = "ledger_entries"

    __table_args__ = (
        Index("idx_ledger_tenant_period", "tenant_id", "period_start"),
        Index("idx_ledger_entity", "tenant_id", "entity_id"),
        Index(
            "uq_ledger_external_ref",
            "tenant_id", "source", "external_ref",
            unique=True,
            sqlite_where=text("external_ref IS NOT NULL"),
            postgresql_where=text("external_ref IS NOT NULL"),
        ),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    entity_id: Mapped[str] = mapped_column(String(200), nullable=False)
    entity_name: Mapped[str | None] = mapped_column(String(200), nullable=True)

    period_start: Mapped[date] = mapped_column(Date, nullable=False)

    direction: Mapped[str] = mapped_column(String(3), nullable=False)

    amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    method: Mapped[str | None] = mapped_column(String(50), nullable=True)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    source: Mapped[str] = mapped_column(
        String(20), nullable=False, default=LedgerSource.MANUAL.value
    )
    external_ref: Mapped[str | None] = mapped_column(String(200), nullable=True)

    is_reconciled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Set from the injected clock; drives newest-first ordering
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    def __repr__(self) -> str:
        return f"<LedgerEntry {self.entity_id} {self.direction} {self.amount}>"


class CarryForward(TrackedBase):
    """Signed balance an entity carries into ``period_start``."""

    __tablename__ = "carry_forwards"

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "club_id", "entity_id", "period_start",
            name="uq_carry_forward_entity_period",
        ),
        Index("idx_carry_club_period", "tenant_id", "club_id", "period_start"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    club_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    entity_id: Mapped[str] = mapped_column(String(200), nullable=False)

    # Destination period
    period_start: Mapped[date] = mapped_column(Date, nullable=False)

    amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    source_settlement_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    def __repr__(self) -> str:
        return f"<CarryForward {self.entity_id} -> {self.period_start}: {self.amount}>"
