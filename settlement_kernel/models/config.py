"""
Module: settlement_kernel.models.config
Responsibility: Tenant fee table and per-subclub weekly adjustments, the
    two manually maintained inputs of the league settlement.
Architecture position: Kernel > Models.

Invariants enforced:
    - Fee names are unique per tenant (uq_fee_rate_name).
    - One adjustment row per (tenant, subclub, period).
    - Adjustment categories are signed: positive is revenue to the
      subclub, negative is an expense.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, Date, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from settlement_kernel.db.base import TrackedBase, UUIDString


class FeeBase(str, Enum):
    """Aggregate a fee percentage is applied to."""

    RAKE = "rake"
    REVENUE = "revenue"


class FeeRate(TrackedBase):
    """Named fee percentage.  Tenant-wide, not period-scoped."""

    __tablename__ = "fee_rates"

    __table_args__ = (
        UniqueConstraint("tenant_id", "name", name="uq_fee_rate_name"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    name: Mapped[str] = mapped_column(String(50), nullable=False)

    rate: Mapped[Decimal] = mapped_column(Numeric(9, 4), nullable=False, default=Decimal("0"))

    base: Mapped[str] = mapped_column(String(10), nullable=False, default=FeeBase.RAKE.value)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<FeeRate {self.name} {self.rate}% on {self.base}>"


class SubclubAdjustment(TrackedBase):
    """Manual weekly journal of a subclub, in four signed categories."""

    __tablename__ = "subclub_adjustments"

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "subclub_id", "period_start",
            name="uq_subclub_adjustment_period",
        ),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    subclub_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    period_start: Mapped[date] = mapped_column(Date, nullable=False)

    overlay: Mapped[Decimal] = mapped_column(Numeric(38, 9), default=Decimal("0"))
    purchases: Mapped[Decimal] = mapped_column(Numeric(38, 9), default=Decimal("0"))
    security: Mapped[Decimal] = mapped_column(Numeric(38, 9), default=Decimal("0"))
    other: Mapped[Decimal] = mapped_column(Numeric(38, 9), default=Decimal("0"))

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
