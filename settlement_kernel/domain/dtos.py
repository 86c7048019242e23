"""
Data transfer objects for the settlement kernel.

Responsibility:
    Frozen value objects that cross layer boundaries.  Selectors convert
    ORM rows into these; engines and services consume and return them.
    Nothing above the kernel's models/ package touches ORM instances.

Architecture position:
    Kernel > Domain -- pure data, zero I/O.

Invariants enforced:
    - All DTOs are frozen.
    - Monetary fields are Decimal and already rounded to 2 places by the
      selector that built them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from settlement_kernel.db.types import ZERO, round_money


class SettlementStatus(str, Enum):
    """Lifecycle status of a settlement (mirrors the ORM column values)."""

    DRAFT = "draft"
    FINAL = "final"
    VOID = "void"


@dataclass(frozen=True)
class SettlementInfo:
    id: UUID
    tenant_id: UUID
    club_id: UUID
    period_start: date
    version: int
    status: SettlementStatus
    notes: str | None = None
    import_ref: str | None = None
    finalized_at: datetime | None = None
    finalized_by_id: UUID | None = None
    voided_at: datetime | None = None
    voided_by_id: UUID | None = None
    void_reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "club_id": str(self.club_id),
            "period_start": self.period_start.isoformat(),
            "version": self.version,
            "status": self.status.value,
            "notes": self.notes,
            "finalized_at": self.finalized_at.isoformat() if self.finalized_at else None,
            "voided_at": self.voided_at.isoformat() if self.voided_at else None,
            "void_reason": self.void_reason,
        }


@dataclass(frozen=True)
class PlayerMetricInfo:
    """One player's row of a settlement."""

    id: UUID
    nickname: str | None
    player_id: UUID | None = None
    external_player_id: str | None = None
    agent_id: UUID | None = None
    external_agent_id: str | None = None
    agent_name: str | None = None
    subclub_id: UUID | None = None
    subclub_name: str | None = None
    winnings: Decimal = ZERO
    rake: Decimal = ZERO
    revenue: Decimal = ZERO
    rakeback_rate: Decimal = ZERO
    rakeback_value: Decimal = ZERO
    weekly_result: Decimal = ZERO


@dataclass(frozen=True)
class AgentMetricInfo:
    """One agent's aggregated row for one subclub of a settlement."""

    id: UUID
    agent_name: str
    agent_id: UUID | None = None
    external_agent_id: str | None = None
    subclub_id: UUID | None = None
    subclub_name: str | None = None
    player_count: int = 0
    rake_total: Decimal = ZERO
    winnings_total: Decimal = ZERO
    revenue_total: Decimal = ZERO
    rakeback_rate: Decimal = ZERO
    commission: Decimal = ZERO
    weekly_result: Decimal = ZERO
    payment_type: str = "deferred"
    settles_individually: bool = False


@dataclass(frozen=True)
class PlayerMetricInput:
    """A normalized import row for one player.

    Derived fields are recomputed on write; only the raw inputs are taken.
    """

    nickname: str
    winnings: Decimal = ZERO
    rake: Decimal = ZERO
    revenue: Decimal = ZERO
    rakeback_rate: Decimal = ZERO
    player_id: UUID | None = None
    external_player_id: str | None = None
    agent_id: UUID | None = None
    external_agent_id: str | None = None
    agent_name: str | None = None
    subclub_id: UUID | None = None
    subclub_name: str | None = None


@dataclass(frozen=True)
class AgentMetricInput:
    agent_name: str
    rake_total: Decimal = ZERO
    winnings_total: Decimal = ZERO
    revenue_total: Decimal = ZERO
    rakeback_rate: Decimal = ZERO
    player_count: int = 0
    agent_id: UUID | None = None
    external_agent_id: str | None = None
    subclub_id: UUID | None = None
    subclub_name: str | None = None
    payment_type: str = "deferred"
    settles_individually: bool = False


@dataclass(frozen=True)
class FeeRateSpec:
    """A named fee percentage applied to the rake or revenue aggregate."""

    name: str
    rate: Decimal
    base: str = "rake"


@dataclass(frozen=True)
class AdjustmentInfo:
    """A subclub's manual weekly journal; positive is revenue to the subclub."""

    subclub_id: UUID | None = None
    period_start: date | None = None
    overlay: Decimal = ZERO
    purchases: Decimal = ZERO
    security: Decimal = ZERO
    other: Decimal = ZERO
    notes: str | None = None

    @property
    def total(self) -> Decimal:
        return round_money(self.overlay + self.purchases + self.security + self.other)

    def to_dict(self) -> dict[str, Any]:
        return {
            "overlay": self.overlay,
            "purchases": self.purchases,
            "security": self.security,
            "other": self.other,
            "total": self.total,
            "notes": self.notes,
        }


@dataclass(frozen=True)
class LedgerEntryInfo:
    id: UUID
    entity_id: str
    period_start: date
    direction: str
    amount: Decimal
    created_at: datetime
    entity_name: str | None = None
    method: str | None = None
    description: str | None = None
    source: str = "manual"
    external_ref: str | None = None
    is_reconciled: bool = False

    @property
    def signed_amount(self) -> Decimal:
        return self.amount if self.direction == "in" else -self.amount


@dataclass(frozen=True)
class CarryInfo:
    entity_id: str
    period_start: date
    amount: Decimal
    source_settlement_id: UUID | None = None


@dataclass(frozen=True)
class BankTransactionInfo:
    id: UUID
    source: str
    external_id: str
    tx_date: date
    amount: Decimal
    direction: str
    status: str
    memo: str | None = None
    bank_name: str | None = None
    period_start: date | None = None
    entity_id: str | None = None
    entity_name: str | None = None
    category: str | None = None
    applied_ledger_id: UUID | None = None


@dataclass(frozen=True)
class StagedTransactionInput:
    """A parsed statement line, ready to be staged."""

    external_id: str
    tx_date: date
    amount: Decimal
    direction: str
    memo: str | None = None
    bank_name: str | None = None


@dataclass(frozen=True)
class BatchOutcome:
    """Result of a chunked batch where each item succeeds or fails alone."""

    ok: int
    failed: int
    errors: tuple[str, ...] = field(default_factory=tuple)

    @property
    def total(self) -> int:
        return self.ok + self.failed
