"""
settlement_engines.fees -- Fee engine for subclub league settlements.

Responsibility:
    Computes the fees charged on a subclub's weekly aggregates.  Each fee is
    a named percentage applied either to the rake total or to the revenue
    total.  Four well-known fees always appear in the result:

        app_fee              rake     platform fee on rake
        league_fee           rake     league fee on rake
        revenue_league_fee   revenue  league fee on game revenue
        revenue_app_fee      revenue  platform fee on game revenue

    Any other active fee in the schedule is computed on its declared base.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Imports only settlement_kernel domain types and the rounding helper.

Invariants enforced:
    - A fee name missing from the schedule has rate 0.
    - Revenue <= 0 is treated as 0 for revenue-based fees.
    - Each fee is round2(base * rate / 100) and never negative.
    - total = round2(sum of fees); total_signed = -total.  Fees always
      reduce the subclub's settlement.

Failure modes:
    None.  The engine never raises for well-typed input.

Usage:
    from settlement_engines.fees import compute_fees
    from settlement_kernel.domain.dtos import FeeRateSpec

    breakdown = compute_fees(
        rake_total=Decimal("800.00"),
        revenue_total=Decimal("300.00"),
        schedule=[FeeRateSpec("app_fee", Decimal("10"), "rake")],
    )
    breakdown.total_signed   # Decimal("-80.00")
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from settlement_engines.tracer import traced_engine
from settlement_kernel.db.types import ZERO, round_money, sum_money, to_decimal
from settlement_kernel.domain.dtos import FeeRateSpec

APP_FEE = "app_fee"
LEAGUE_FEE = "league_fee"
REVENUE_LEAGUE_FEE = "revenue_league_fee"
REVENUE_APP_FEE = "revenue_app_fee"

RAKE_BASE = "rake"
REVENUE_BASE = "revenue"

WELL_KNOWN_FEES: tuple[FeeRateSpec, ...] = (
    FeeRateSpec(APP_FEE, ZERO, RAKE_BASE),
    FeeRateSpec(LEAGUE_FEE, ZERO, RAKE_BASE),
    FeeRateSpec(REVENUE_LEAGUE_FEE, ZERO, REVENUE_BASE),
    FeeRateSpec(REVENUE_APP_FEE, ZERO, REVENUE_BASE),
)


@dataclass(frozen=True)
class FeeLine:
    """One computed fee."""

    name: str
    rate: Decimal
    base: str
    base_amount: Decimal
    amount: Decimal


@dataclass(frozen=True)
class FeeBreakdown:
    """All fees of one subclub, the total, and the total as a deduction."""

    lines: tuple[FeeLine, ...]
    total: Decimal
    total_signed: Decimal

    def amount(self, name: str) -> Decimal:
        for line in self.lines:
            if line.name == name:
                return line.amount
        return ZERO

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {line.name: line.amount for line in self.lines}
        result["total"] = self.total
        result["total_signed"] = self.total_signed
        return result


def _normalize_schedule(
    schedule: Iterable[FeeRateSpec] | Mapping[str, Any] | None,
) -> list[FeeRateSpec]:
    """Well-known fees first (in fixed order), then extra fees by name."""
    by_name: dict[str, FeeRateSpec] = {spec.name: spec for spec in WELL_KNOWN_FEES}
    well_known_base = {spec.name: spec.base for spec in WELL_KNOWN_FEES}

    if schedule is None:
        entries: Iterable[FeeRateSpec] = ()
    elif isinstance(schedule, Mapping):
        entries = [
            FeeRateSpec(name, to_decimal(rate), well_known_base.get(name, RAKE_BASE))
            for name, rate in schedule.items()
        ]
    else:
        entries = schedule

    for spec in entries:
        base = well_known_base.get(spec.name, spec.base)
        by_name[spec.name] = FeeRateSpec(spec.name, to_decimal(spec.rate), base)

    ordered = [by_name[spec.name] for spec in WELL_KNOWN_FEES]
    extras = sorted(name for name in by_name if name not in well_known_base)
    ordered.extend(by_name[name] for name in extras)
    return ordered


def schedule_from_rates(rates: Mapping[str, Any]) -> list[FeeRateSpec]:
    """Full schedule from a {name: rate} mapping, well-known bases applied."""
    return _normalize_schedule(rates)


class FeeEngine:
    """
    Stateless fee calculator.

    Contract:
        ``compute`` is a pure function of its arguments.

    Guarantees:
        - The four well-known fees are always present in the result.
        - Every amount has at most 2 decimals and is >= 0.
    """

    @traced_engine("fees", "1.0", fingerprint_fields=("rake_total", "revenue_total"))
    def compute(
        self,
        *,
        rake_total: Decimal,
        revenue_total: Decimal,
        schedule: Iterable[FeeRateSpec] | Mapping[str, Any] | None = None,
    ) -> FeeBreakdown:
        rake = max(round_money(rake_total), ZERO)
        revenue = max(round_money(revenue_total), ZERO)

        lines: list[FeeLine] = []
        for spec in _normalize_schedule(schedule):
            base_amount = revenue if spec.base == REVENUE_BASE else rake
            amount = round_money(base_amount * spec.rate / Decimal(100))
            lines.append(
                FeeLine(
                    name=spec.name,
                    rate=spec.rate,
                    base=spec.base,
                    base_amount=base_amount,
                    amount=max(amount, ZERO),
                )
            )

        total = sum_money(line.amount for line in lines)
        return FeeBreakdown(lines=tuple(lines), total=total, total_signed=round_money(-total))


_ENGINE = FeeEngine()


def compute_fees(
    rake_total,
    revenue_total,
    schedule: Iterable[FeeRateSpec] | Mapping[str, Any] | None = None,
) -> FeeBreakdown:
    """Module-level convenience wrapper around ``FeeEngine.compute``."""
    return _ENGINE.compute(
        rake_total=to_decimal(rake_total),
        revenue_total=to_decimal(revenue_total),
        schedule=schedule,
    )
