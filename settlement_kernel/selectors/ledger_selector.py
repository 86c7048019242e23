"""Read access to recorded cash movements."""

from collections.abc import Iterable
from datetime import date
from uuid import UUID

from sqlalchemy import func, select

from settlement_kernel.db.types import round_money
from settlement_kernel.domain.dtos import LedgerEntryInfo
from settlement_kernel.models.ledger import LedgerEntry
from settlement_kernel.selectors.base import BaseSelector


def ledger_to_info(row: LedgerEntry) -> LedgerEntryInfo:
    return LedgerEntryInfo(
        id=row.id,
        entity_id=row.entity_id,
        entity_name=row.entity_name,
        period_start=row.period_start,
        direction=row.direction,
        amount=round_money(row.amount),
        method=row.method,
        description=row.description,
        source=row.source,
        external_ref=row.external_ref,
        is_reconciled=bool(row.is_reconciled),
        created_at=row.created_at,
    )


class LedgerSelector(BaseSelector):

    def for_period(
        self,
        tenant_id: UUID,
        period_start: date,
        entity_ids: Iterable[str] | None = None,
    ) -> list[LedgerEntryInfo]:
        """All movements of the period, newest first.

        When ``entity_ids`` is given only rows keyed by one of them are
        returned.
        """
        stmt = select(LedgerEntry).where(
            LedgerEntry.tenant_id == tenant_id,
            LedgerEntry.period_start == period_start,
        )
        if entity_ids is not None:
            ids = sorted({str(e) for e in entity_ids})
            if not ids:
                return []
            stmt = stmt.where(LedgerEntry.entity_id.in_(ids))
        stmt = stmt.order_by(LedgerEntry.created_at.desc(), LedgerEntry.id)
        return [ledger_to_info(row) for row in self.session.execute(stmt).scalars()]

    def unreconciled_for_period(self, tenant_id: UUID, period_start: date) -> list[LedgerEntryInfo]:
        stmt = (
            select(LedgerEntry)
            .where(
                LedgerEntry.tenant_id == tenant_id,
                LedgerEntry.period_start == period_start,
                LedgerEntry.is_reconciled.is_(False),
            )
            .order_by(LedgerEntry.created_at.desc(), LedgerEntry.id)
        )
        return [ledger_to_info(row) for row in self.session.execute(stmt).scalars()]

    def page(
        self,
        tenant_id: UUID,
        period_start: date | None = None,
        entity_id: str | None = None,
        page: int = 1,
        limit: int = 50,
    ) -> tuple[list[LedgerEntryInfo], int]:
        """One page of movements and the total row count."""
        filters = [LedgerEntry.tenant_id == tenant_id]
        if period_start is not None:
            filters.append(LedgerEntry.period_start == period_start)
        if entity_id is not None:
            filters.append(LedgerEntry.entity_id == entity_id)

        total = self.session.execute(
            select(func.count(LedgerEntry.id)).where(*filters)
        ).scalar() or 0

        page = max(page, 1)
        limit = min(max(limit, 1), 500)
        stmt = (
            select(LedgerEntry)
            .where(*filters)
            .order_by(LedgerEntry.created_at.desc(), LedgerEntry.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        rows = [ledger_to_info(row) for row in self.session.execute(stmt).scalars()]
        return rows, int(total)
