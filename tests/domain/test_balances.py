"""
Tests for the balance formulas and the situation / direction labels.
"""

from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from settlement_kernel.domain.balances import (
    DIRECTION_LABELS,
    SettlementDirection,
    Situation,
    agent_commission,
    agent_result,
    classify_direction,
    classify_situation,
    current_balance,
    player_result,
    rakeback_value,
)


class TestWeeklyResult:
    """result = winnings + rake * rate / 100."""

    def test_player_rakeback_and_result(self):
        assert rakeback_value(Decimal("200.00"), Decimal("10")) == Decimal("20.00")
        assert player_result(Decimal("100.00"), Decimal("200.00"), Decimal("10")) == Decimal("120.00")

    def test_losing_player(self):
        assert player_result(Decimal("-350.00"), Decimal("80.00"), Decimal("25")) == Decimal("-330.00")

    def test_agent_commission_and_result(self):
        assert agent_commission(Decimal("1000.00"), Decimal("30")) == Decimal("300.00")
        assert agent_result(Decimal("-500.00"), Decimal("1000.00"), Decimal("30")) == Decimal("-200.00")

    def test_zero_rate(self):
        assert player_result(Decimal("42.50"), Decimal("999.99"), 0) == Decimal("42.50")


class TestCurrentBalance:
    """balance = previous carry + weekly result - ledger net."""

    def test_close_scenario(self):
        assert current_balance(Decimal("1000.00"), Decimal("-200.00"), Decimal("300.00")) == Decimal("500.00")

    def test_payment_received_reduces_what_is_owed(self):
        assert current_balance(0, Decimal("120.00"), Decimal("120.00")) == Decimal("0.00")

    def test_none_counts_as_zero(self):
        assert current_balance(None, Decimal("10.00"), None) == Decimal("10.00")

    @given(
        carry=st.decimals(min_value=-10**6, max_value=10**6, places=2),
        weekly=st.decimals(min_value=-10**6, max_value=10**6, places=2),
        net=st.decimals(min_value=-10**6, max_value=10**6, places=2),
    )
    @settings(max_examples=200, deadline=None)
    def test_balance_identity(self, carry, weekly, net):
        assert current_balance(carry, weekly, net) == carry + weekly - net


class TestLabels:
    """Epsilon of one cent on both sides of zero."""

    @pytest.mark.parametrize(
        "balance, expected",
        [
            ("0.02", Situation.RECEIVABLE),
            ("0.01", Situation.SETTLED),
            ("0.00", Situation.SETTLED),
            ("-0.01", Situation.SETTLED),
            ("-0.02", Situation.PAYABLE),
        ],
    )
    def test_situation(self, balance, expected):
        assert classify_situation(Decimal(balance)) == expected

    @pytest.mark.parametrize(
        "league, expected",
        [
            ("210.00", SettlementDirection.OPERATOR_OWES_SUBCLUB),
            ("-210.00", SettlementDirection.SUBCLUB_OWES_OPERATOR),
            ("0.005", SettlementDirection.NEUTRAL),
        ],
    )
    def test_direction(self, league, expected):
        assert classify_direction(Decimal(league)) == expected

    def test_every_direction_has_a_label(self):
        assert set(DIRECTION_LABELS) == set(SettlementDirection)
