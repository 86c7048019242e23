"""
Balance rules shared by the breakdown and the period close.

Responsibility:
    The one place where an entity's running balance and the sign labels
    derived from it are defined:

        current_balance = previous_carry + weekly_result - ledger_net

    A positive balance means the operator owes the entity (the entity has
    an amount to receive); a negative balance means the entity owes the
    operator (it has an amount to pay).  Inbound cash, received by the
    operator, lowers the balance; outbound cash raises it.

Architecture position:
    Kernel > Domain -- pure functions, zero I/O.

Invariants enforced:
    - Every returned amount is rounded with round_money().
    - Magnitudes within SETTLED_EPSILON (0.01) are neutral/settled.
"""

from decimal import Decimal, InvalidOperation
from enum import Enum

from settlement_kernel.db.types import SETTLED_EPSILON, round_money, to_decimal
from settlement_kernel.exceptions import InvalidRateError

ROUNDING_POLICY = "round2_each_step"
CALCULATION_VERSION = "2024.1"

FORMULAS: dict[str, str] = {
    "rakeback_value": "round2(rake * rakeback_rate / 100)",
    "player_result": "round2(winnings + rakeback_value)",
    "agent_commission": "round2(rake_total * rakeback_rate / 100)",
    "agent_result": "round2(winnings_total + commission)",
    "subclub_result": "round2(sum(winnings) + sum(rake) + sum(revenue))",
    "league_settlement": "round2(subclub_result + fees_signed + adjustments_total)",
    "ledger_net": "round2(sum(inbound) - sum(outbound))",
    "current_balance": "round2(previous_carry + weekly_result - ledger_net)",
}

FEE_SIGN = "negative"
ADJUSTMENT_SIGN = "positive_is_revenue_to_subclub"


class Situation(str, Enum):
    """Standing of an entity's balance after the period, seen from the entity."""

    RECEIVABLE = "receivable"
    PAYABLE = "payable"
    SETTLED = "settled"


class SettlementDirection(str, Enum):
    """Who pays whom for a subclub's league settlement."""

    OPERATOR_OWES_SUBCLUB = "operator_owes_subclub"
    SUBCLUB_OWES_OPERATOR = "subclub_owes_operator"
    NEUTRAL = "neutral"


DIRECTION_LABELS: dict[SettlementDirection, str] = {
    SettlementDirection.OPERATOR_OWES_SUBCLUB: "Operator pays subclub",
    SettlementDirection.SUBCLUB_OWES_OPERATOR: "Subclub pays operator",
    SettlementDirection.NEUTRAL: "Settled",
}


def validate_rate(rate) -> Decimal:
    """Rakeback rate as a percent in [0, 100], kept to 4 places."""
    try:
        value = to_decimal(rate)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidRateError(str(rate)) from None
    if not value.is_finite() or value < 0 or value > 100:
        raise InvalidRateError(str(rate))
    return round_money(value, 4)


def rakeback_value(rake, rate) -> Decimal:
    return round_money(to_decimal(rake) * to_decimal(rate) / Decimal(100))


def player_result(winnings, rake, rate) -> Decimal:
    return round_money(to_decimal(winnings) + rakeback_value(rake, rate))


def agent_commission(rake_total, rate) -> Decimal:
    return round_money(to_decimal(rake_total) * to_decimal(rate) / Decimal(100))


def agent_result(winnings_total, rake_total, rate) -> Decimal:
    return round_money(to_decimal(winnings_total) + agent_commission(rake_total, rate))


def current_balance(previous_carry, weekly_result, ledger_net) -> Decimal:
    return round_money(
        to_decimal(previous_carry) + to_decimal(weekly_result) - to_decimal(ledger_net)
    )


def classify_situation(balance) -> Situation:
    amount = to_decimal(balance)
    if amount > SETTLED_EPSILON:
        return Situation.RECEIVABLE
    if amount < -SETTLED_EPSILON:
        return Situation.PAYABLE
    return Situation.SETTLED


def classify_direction(league_settlement) -> SettlementDirection:
    amount = to_decimal(league_settlement)
    if amount > SETTLED_EPSILON:
        return SettlementDirection.OPERATOR_OWES_SUBCLUB
    if amount < -SETTLED_EPSILON:
        return SettlementDirection.SUBCLUB_OWES_OPERATOR
    return SettlementDirection.NEUTRAL
