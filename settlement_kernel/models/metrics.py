"""
Module: settlement_kernel.models.metrics
Responsibility: Per-settlement weekly metric rows for players and agents.
    Rows arrive normalized from the import pipeline; derived fields
    (rakeback value, commission, weekly result) are computed with the
    domain balance rules and rounded before insert.
Architecture position: Kernel > Models.

Invariants enforced:
    - rakeback_value = round2(rake * rakeback_rate / 100)
    - weekly_result (player) = round2(winnings + rakeback_value)
    - commission = round2(rake_total * rakeback_rate / 100)
    - weekly_result (agent) = round2(winnings_total + commission)
    Maintained by SettlementService and RateService on every write.

Failure modes:
    - IntegrityError if settlement_id does not reference a settlement.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, Date, ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from settlement_kernel.db.base import Base, UUIDString


class PaymentType(str, Enum):
    """How an agent is paid: deferred to a later period, or on the spot."""

    DEFERRED = "deferred"
    IMMEDIATE = "immediate"


class PlayerWeekMetric(Base):
    """One player's numbers for one settlement."""

    __tablename__ = "player_week_metrics"

    __table_args__ = (
        Index("idx_player_metric_settlement", "settlement_id"),
        Index("idx_player_metric_agent", "settlement_id", "agent_id"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    settlement_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("settlements.id", ondelete="CASCADE"), nullable=False
    )

    period_start: Mapped[date] = mapped_column(Date, nullable=False)

    # Stable player id, when the player is registered
    player_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    # Player id in the source system (import file)
    external_player_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    nickname: Mapped[str | None] = mapped_column(String(200), nullable=True)

    agent_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    external_agent_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    agent_name: Mapped[str | None] = mapped_column(String(200), nullable=True)

    subclub_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    subclub_name: Mapped[str | None] = mapped_column(String(200), nullable=True)

    winnings: Mapped[Decimal] = mapped_column(Numeric(38, 9), default=Decimal("0"))
    rake: Mapped[Decimal] = mapped_column(Numeric(38, 9), default=Decimal("0"))
    revenue: Mapped[Decimal] = mapped_column(Numeric(38, 9), default=Decimal("0"))

    rakeback_rate: Mapped[Decimal] = mapped_column(Numeric(9, 4), default=Decimal("0"))
    rakeback_value: Mapped[Decimal] = mapped_column(Numeric(38, 9), default=Decimal("0"))
    weekly_result: Mapped[Decimal] = mapped_column(Numeric(38, 9), default=Decimal("0"))

    def __repr__(self) -> str:
        return f"<PlayerWeekMetric {self.nickname} {self.weekly_result}>"


class AgentWeekMetric(Base):
    """One agent's aggregated numbers for one subclub of a settlement."""

    __tablename__ = "agent_week_metrics"

    __table_args__ = (
        Index("idx_agent_metric_settlement", "settlement_id"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    settlement_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("settlements.id", ondelete="CASCADE"), nullable=False
    )

    period_start: Mapped[date] = mapped_column(Date, nullable=False)

    # Stable agent id; rows without one are never carried forward
    agent_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    external_agent_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    agent_name: Mapped[str] = mapped_column(String(200), nullable=False)

    subclub_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    subclub_name: Mapped[str | None] = mapped_column(String(200), nullable=True)

    player_count: Mapped[int] = mapped_column(Integer, default=0)

    rake_total: Mapped[Decimal] = mapped_column(Numeric(38, 9), default=Decimal("0"))
    winnings_total: Mapped[Decimal] = mapped_column(Numeric(38, 9), default=Decimal("0"))
    revenue_total: Mapped[Decimal] = mapped_column(Numeric(38, 9), default=Decimal("0"))

    rakeback_rate: Mapped[Decimal] = mapped_column(Numeric(9, 4), default=Decimal("0"))
    commission: Mapped[Decimal] = mapped_column(Numeric(38, 9), default=Decimal("0"))
    weekly_result: Mapped[Decimal] = mapped_column(Numeric(38, 9), default=Decimal("0"))

    payment_type: Mapped[str] = mapped_column(
        String(10), default=PaymentType.DEFERRED.value, nullable=False
    )

    # Each player of the agent settles on their own instead of through the agent
    settles_individually: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    def __repr__(self) -> str:
        return f"<AgentWeekMetric {self.agent_name} {self.weekly_result}>"
