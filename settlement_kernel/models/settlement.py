"""
Module: settlement_kernel.models.settlement
Responsibility: ORM model for a weekly settlement of one club.  A settlement
    is the container of the period's player/agent metric rows and carries
    the DRAFT -> FINAL -> VOID lifecycle.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Lifecycle is monotonic: DRAFT -> FINAL -> VOID.  VOID is terminal.
      Enforced by SettlementService.
    - At most one DRAFT per (tenant, club, period): partial unique index
      uq_settlement_single_draft.
    - (tenant, club, period, version) is unique; versions only increase.

Failure modes:
    - IntegrityError when a second DRAFT or a duplicate version is inserted.

Audit relevance:
    finalized_at/by and voided_at/by/void_reason record who froze or
    cancelled the numbers.  Earlier FINAL/VOID versions stay as history.
"""

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import Date, DateTime, Index, Integer, String, Text, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from settlement_kernel.db.base import TrackedBase, UUIDString
from settlement_kernel.domain.dtos import SettlementStatus


class Settlement(TrackedBase):
    """
    Weekly settlement of one club.

    Contract:
        Only a DRAFT may be deleted or have its metric rows replaced or
        edited.  FINAL numbers are frozen until voided.

    Guarantees:
        - version increases monotonically per (tenant, club, period).
        - A single DRAFT exists per (tenant, club, period).
    """

    __tablename__ = "settlements"

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "club_id", "period_start", "version",
            name="uq_settlement_version",
        ),
        Index(
            "uq_settlement_single_draft",
            "tenant_id", "club_id", "period_start",
            unique=True,
            sqlite_where=text("status = 'draft'"),
            postgresql_where=text("status = 'draft'"),
        ),
        Index("idx_settlement_tenant_period", "tenant_id", "period_start"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    club_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    # Weekly period, identified by its first day
    period_start: Mapped[date] = mapped_column(Date, nullable=False)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    status: Mapped[str] = mapped_column(
        String(10),
        default=SettlementStatus.DRAFT.value,
        nullable=False,
    )

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Reference of the import batch that produced the rows
    import_ref: Mapped[str | None] = mapped_column(String(100), nullable=True)

    created_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    finalized_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    finalized_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    voided_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    voided_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    void_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Settlement {self.period_start} v{self.version}: {self.status}>"

    @property
    def is_draft(self) -> bool:
        return self.status == SettlementStatus.DRAFT.value

    @property
    def is_final(self) -> bool:
        return self.status == SettlementStatus.FINAL.value
