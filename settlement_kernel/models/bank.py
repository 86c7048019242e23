"""
Module: settlement_kernel.models.bank
Responsibility: Staged bank statement lines awaiting classification.
Architecture position: Kernel > Models.

Invariants enforced:
    - (tenant, source, external_id) is unique: importing the same statement
      twice stages each line once.
    - Status flow: PENDING -> LINKED -> APPLIED, or PENDING <-> IGNORED.
      APPLIED is terminal and records applied_ledger_id.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Date, Index, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from settlement_kernel.db.base import TrackedBase, UUIDString


class BankTransactionStatus(str, Enum):
    PENDING = "pending"
    LINKED = "linked"
    APPLIED = "applied"
    IGNORED = "ignored"


class BankTransaction(TrackedBase):
    """One imported statement line."""

    __tablename__ = "bank_transactions"

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "source", "external_id",
            name="uq_bank_transaction_external",
        ),
        Index("idx_bank_tx_period_status", "tenant_id", "period_start", "status"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    # Statement format or bank feed the line came from (ofx, chave_pix, ...)
    source: Mapped[str] = mapped_column(String(30), nullable=False)

    # Idempotency key from the statement (FITID or equivalent)
    external_id: Mapped[str] = mapped_column(String(200), nullable=False)

    tx_date: Mapped[date] = mapped_column(Date, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    direction: Mapped[str] = mapped_column(String(3), nullable=False)

    memo: Mapped[str | None] = mapped_column(String(500), nullable=True)
    bank_name: Mapped[str | None] = mapped_column(String(100), nullable=True)

    period_start: Mapped[date | None] = mapped_column(Date, nullable=True)

    status: Mapped[str] = mapped_column(
        String(10), nullable=False, default=BankTransactionStatus.PENDING.value
    )

    entity_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    entity_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    category: Mapped[str | None] = mapped_column(String(50), nullable=True)

    applied_ledger_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    def __repr__(self) -> str:
        return f"<BankTransaction {self.external_id} {self.direction} {self.amount}: {self.status}>"
