"""Read access to the fee table and subclub adjustments."""

from datetime import date
from uuid import UUID

from sqlalchemy import select

from settlement_kernel.db.types import round_money
from settlement_kernel.domain.dtos import AdjustmentInfo, FeeRateSpec
from settlement_kernel.models.config import FeeRate, SubclubAdjustment
from settlement_kernel.selectors.base import BaseSelector


class ConfigSelector(BaseSelector):

    def fee_rates(self, tenant_id: UUID, active_only: bool = True) -> list[FeeRateSpec]:
        stmt = select(FeeRate).where(FeeRate.tenant_id == tenant_id)
        if active_only:
            stmt = stmt.where(FeeRate.is_active.is_(True))
        stmt = stmt.order_by(FeeRate.name)
        return [
            FeeRateSpec(name=row.name, rate=round_money(row.rate, 4), base=row.base)
            for row in self.session.execute(stmt).scalars()
        ]

    def adjustments(self, tenant_id: UUID, period_start: date) -> dict[UUID, AdjustmentInfo]:
        """subclub_id -> adjustment row of the period."""
        stmt = select(SubclubAdjustment).where(
            SubclubAdjustment.tenant_id == tenant_id,
            SubclubAdjustment.period_start == period_start,
        )
        return {
            row.subclub_id: adjustment_to_info(row)
            for row in self.session.execute(stmt).scalars()
        }


def adjustment_to_info(row: SubclubAdjustment) -> AdjustmentInfo:
    return AdjustmentInfo(
        subclub_id=row.subclub_id,
        period_start=row.period_start,
        overlay=round_money(row.overlay),
        purchases=round_money(row.purchases),
        security=round_money(row.security),
        other=round_money(row.other),
        notes=row.notes,
    )
