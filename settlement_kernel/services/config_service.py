"""
ConfigService -- tenant fee table and subclub weekly adjustments.

Responsibility:
    Upserts the two manually maintained inputs of the league settlement:
    named fee rates (tenant wide) and per-subclub adjustments (per period).

Invariants enforced:
    - Fee rates between 0 and 100, base in {rake, revenue}.
    - One adjustment row per (tenant, subclub, period); writes overwrite.
"""

from collections.abc import Iterable
from datetime import date
from uuid import UUID

from sqlalchemy import select

from settlement_kernel.db.types import round_money
from settlement_kernel.domain.balances import validate_rate
from settlement_kernel.domain.clock import Clock
from settlement_kernel.domain.dtos import AdjustmentInfo, FeeRateSpec
from settlement_kernel.domain.period import parse_period_start
from settlement_kernel.exceptions import ValidationError
from settlement_kernel.logging_config import get_logger
from settlement_kernel.models.config import FeeBase, FeeRate, SubclubAdjustment
from settlement_kernel.selectors.config_selector import ConfigSelector, adjustment_to_info
from settlement_kernel.services.base import BaseService

logger = get_logger("services.config")


class ConfigService(BaseService):

    def __init__(self, session, clock: Clock | None = None):
        super().__init__(session, clock)
        self._selector = ConfigSelector(session)

    def list_fee_rates(self, tenant_id: UUID, active_only: bool = False) -> list[FeeRateSpec]:
        return self._selector.fee_rates(tenant_id, active_only=active_only)

    def set_fee_rates(self, tenant_id: UUID, rates: Iterable[FeeRateSpec]) -> list[FeeRateSpec]:
        """Upsert by name.  Fees not mentioned are left untouched."""
        specs = list(rates)
        for spec in specs:
            try:
                FeeBase(spec.base)
            except ValueError:
                raise ValidationError(
                    f"fee {spec.name!r}: base must be 'rake' or 'revenue', got {spec.base!r}"
                ) from None
            if not spec.name or not spec.name.strip():
                raise ValidationError("fee name must not be empty")

        existing = {
            row.name: row
            for row in self.session.execute(
                select(FeeRate).where(FeeRate.tenant_id == tenant_id)
            ).scalars()
        }
        with self._store_call("set_fee_rates"):
            for spec in specs:
                rate = validate_rate(spec.rate)
                row = existing.get(spec.name)
                if row is None:
                    row = FeeRate(tenant_id=tenant_id, name=spec.name.strip())
                    self.session.add(row)
                    existing[spec.name] = row
                row.rate = rate
                row.base = spec.base
                row.is_active = True
            self.session.flush()

        logger.info("fee_rates_updated", extra={"names": sorted(s.name for s in specs)})
        return self._selector.fee_rates(tenant_id, active_only=False)

    def deactivate_fee(self, tenant_id: UUID, name: str) -> bool:
        row = self.session.execute(
            select(FeeRate).where(FeeRate.tenant_id == tenant_id, FeeRate.name == name)
        ).scalar_one_or_none()
        if row is None:
            return False
        row.is_active = False
        with self._store_call("deactivate_fee"):
            self.session.flush()
        return True

    def get_adjustments(self, tenant_id: UUID, period_start: date | str) -> list[AdjustmentInfo]:
        """Recorded adjustments of the period, one per subclub."""
        period = parse_period_start(period_start)
        return list(self._selector.adjustments(tenant_id, period).values())

    def get_adjustment(
        self, tenant_id: UUID, subclub_id: UUID, period_start: date | str
    ) -> AdjustmentInfo:
        """The subclub's adjustment, or all zeros when none was recorded."""
        period = parse_period_start(period_start)
        found = self._selector.adjustments(tenant_id, period).get(subclub_id)
        return found or AdjustmentInfo(subclub_id=subclub_id, period_start=period)

    def set_adjustment(
        self,
        tenant_id: UUID,
        subclub_id: UUID,
        period_start: date | str,
        *,
        overlay=0,
        purchases=0,
        security=0,
        other=0,
        notes: str | None = None,
    ) -> AdjustmentInfo:
        period = parse_period_start(period_start)
        row = self.session.execute(
            select(SubclubAdjustment).where(
                SubclubAdjustment.tenant_id == tenant_id,
                SubclubAdjustment.subclub_id == subclub_id,
                SubclubAdjustment.period_start == period,
            )
        ).scalar_one_or_none()
        if row is None:
            row = SubclubAdjustment(tenant_id=tenant_id, subclub_id=subclub_id, period_start=period)
            self.session.add(row)

        row.overlay = round_money(overlay)
        row.purchases = round_money(purchases)
        row.security = round_money(security)
        row.other = round_money(other)
        row.notes = notes
        with self._store_call("set_adjustment"):
            self.session.flush()

        info = adjustment_to_info(row)
        logger.info(
            "subclub_adjustment_saved",
            extra={"subclub_id": str(subclub_id), "period_start": period.isoformat(), "total": info.total},
        )
        return info
