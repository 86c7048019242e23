"""Read access to settlements."""

from datetime import date
from uuid import UUID

from sqlalchemy import func, select

from settlement_kernel.domain.dtos import SettlementInfo, SettlementStatus
from settlement_kernel.models.settlement import Settlement
from settlement_kernel.selectors.base import BaseSelector


def settlement_to_info(row: Settlement) -> SettlementInfo:
    return SettlementInfo(
        id=row.id,
        tenant_id=row.tenant_id,
        club_id=row.club_id,
        period_start=row.period_start,
        version=row.version,
        status=SettlementStatus(row.status),
        notes=row.notes,
        import_ref=row.import_ref,
        finalized_at=row.finalized_at,
        finalized_by_id=row.finalized_by_id,
        voided_at=row.voided_at,
        voided_by_id=row.voided_by_id,
        void_reason=row.void_reason,
    )


class SettlementSelector(BaseSelector):
    """Queries over the settlements table, always tenant scoped."""

    def get(self, tenant_id: UUID, settlement_id: UUID) -> SettlementInfo | None:
        row = self.session.execute(
            select(Settlement).where(
                Settlement.id == settlement_id,
                Settlement.tenant_id == tenant_id,
            )
        ).scalar_one_or_none()
        return settlement_to_info(row) if row is not None else None

    def list_for_club(
        self,
        tenant_id: UUID,
        club_id: UUID | None = None,
        start: date | None = None,
        end: date | None = None,
    ) -> list[SettlementInfo]:
        """Settlements newest period first, then newest version first."""
        stmt = select(Settlement).where(Settlement.tenant_id == tenant_id)
        if club_id is not None:
            stmt = stmt.where(Settlement.club_id == club_id)
        if start is not None:
            stmt = stmt.where(Settlement.period_start >= start)
        if end is not None:
            stmt = stmt.where(Settlement.period_start <= end)
        stmt = stmt.order_by(Settlement.period_start.desc(), Settlement.version.desc())
        return [settlement_to_info(row) for row in self.session.execute(stmt).scalars()]

    def find_draft(
        self, tenant_id: UUID, club_id: UUID, period_start: date
    ) -> SettlementInfo | None:
        row = self.session.execute(
            select(Settlement).where(
                Settlement.tenant_id == tenant_id,
                Settlement.club_id == club_id,
                Settlement.period_start == period_start,
                Settlement.status == SettlementStatus.DRAFT.value,
            )
        ).scalar_one_or_none()
        return settlement_to_info(row) if row is not None else None

    def max_version(self, tenant_id: UUID, club_id: UUID, period_start: date) -> int:
        value = self.session.execute(
            select(func.max(Settlement.version)).where(
                Settlement.tenant_id == tenant_id,
                Settlement.club_id == club_id,
                Settlement.period_start == period_start,
            )
        ).scalar()
        return int(value or 0)

    def has_final(self, tenant_id: UUID, period_start: date) -> bool:
        """True when any club of the tenant has a FINAL settlement for the period."""
        count = self.session.execute(
            select(func.count(Settlement.id)).where(
                Settlement.tenant_id == tenant_id,
                Settlement.period_start == period_start,
                Settlement.status == SettlementStatus.FINAL.value,
            )
        ).scalar()
        return bool(count)
