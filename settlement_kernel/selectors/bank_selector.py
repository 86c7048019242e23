"""Read access to staged bank statement lines."""

from datetime import date
from uuid import UUID

from sqlalchemy import select

from settlement_kernel.db.types import round_money
from settlement_kernel.domain.dtos import BankTransactionInfo
from settlement_kernel.models.bank import BankTransaction
from settlement_kernel.selectors.base import BaseSelector


def bank_to_info(row: BankTransaction) -> BankTransactionInfo:
    return BankTransactionInfo(
        id=row.id,
        source=row.source,
        external_id=row.external_id,
        tx_date=row.tx_date,
        amount=round_money(row.amount),
        direction=row.direction,
        status=row.status,
        memo=row.memo,
        bank_name=row.bank_name,
        period_start=row.period_start,
        entity_id=row.entity_id,
        entity_name=row.entity_name,
        category=row.category,
        applied_ledger_id=row.applied_ledger_id,
    )


class BankSelector(BaseSelector):

    def list_transactions(
        self,
        tenant_id: UUID,
        period_start: date | None = None,
        status: str | None = None,
        source: str | None = None,
    ) -> list[BankTransactionInfo]:
        """Staged lines, newest statement date first."""
        stmt = select(BankTransaction).where(BankTransaction.tenant_id == tenant_id)
        if period_start is not None:
            stmt = stmt.where(BankTransaction.period_start == period_start)
        if status is not None:
            stmt = stmt.where(BankTransaction.status == status)
        if source is not None:
            stmt = stmt.where(BankTransaction.source == source)
        stmt = stmt.order_by(BankTransaction.tx_date.desc(), BankTransaction.external_id)
        return [bank_to_info(row) for row in self.session.execute(stmt).scalars()]

    def existing_external_ids(self, tenant_id: UUID, source: str) -> set[str]:
        stmt = select(BankTransaction.external_id).where(
            BankTransaction.tenant_id == tenant_id,
            BankTransaction.source == source,
        )
        return set(self.session.execute(stmt).scalars())
