"""Read access to carried-forward balances."""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from settlement_kernel.db.types import round_money
from settlement_kernel.domain.dtos import CarryInfo
from settlement_kernel.models.ledger import CarryForward
from settlement_kernel.selectors.base import BaseSelector


class CarrySelector(BaseSelector):

    def for_period(self, tenant_id: UUID, club_id: UUID, period_start: date) -> list[CarryInfo]:
        stmt = (
            select(CarryForward)
            .where(
                CarryForward.tenant_id == tenant_id,
                CarryForward.club_id == club_id,
                CarryForward.period_start == period_start,
            )
            .order_by(CarryForward.entity_id)
        )
        return [
            CarryInfo(
                entity_id=row.entity_id,
                period_start=row.period_start,
                amount=round_money(row.amount),
                source_settlement_id=row.source_settlement_id,
            )
            for row in self.session.execute(stmt).scalars()
        ]

    def carry_map(self, tenant_id: UUID, club_id: UUID, period_start: date) -> dict[str, Decimal]:
        """entity_id -> balance carried into ``period_start``."""
        return {c.entity_id: c.amount for c in self.for_period(tenant_id, club_id, period_start)}

    def for_entity(
        self, tenant_id: UUID, club_id: UUID, entity_id: str, period_start: date
    ) -> Decimal:
        amount = self.session.execute(
            select(CarryForward.amount).where(
                CarryForward.tenant_id == tenant_id,
                CarryForward.club_id == club_id,
                CarryForward.entity_id == str(entity_id),
                CarryForward.period_start == period_start,
            )
        ).scalar_one_or_none()
        return round_money(amount) if amount is not None else round_money(0)
