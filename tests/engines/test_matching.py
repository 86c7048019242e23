"""
Tests for the bank statement matcher.

Each tier is exercised on its own, then the cascade order is checked.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from settlement_engines.matching import (
    BankMatcher,
    EntityKind,
    KnownEntity,
    LedgerAmountDateStrategy,
    MatchConfidence,
    MatchContext,
    MatchTier,
    NameMatchStrategy,
    PartialNameStrategy,
    PaymentMethodStrategy,
    longest_common_substring,
)
from settlement_kernel.domain.dtos import BankTransactionInfo, LedgerEntryInfo

TX_DATE = date(2024, 6, 5)


def _tx(memo, amount="150.00", tx_date=TX_DATE, direction="in"):
    return BankTransactionInfo(
        id=uuid4(),
        source="ofx",
        external_id=f"FIT-{uuid4().hex[:8]}",
        tx_date=tx_date,
        amount=Decimal(amount),
        direction=direction,
        status="pending",
        memo=memo,
    )


def _ledger(entity_id, amount, day=TX_DATE, reconciled=False, entity_name=None):
    return LedgerEntryInfo(
        id=uuid4(),
        entity_id=entity_id,
        period_start=date(2024, 6, 3),
        direction="in",
        amount=Decimal(amount),
        created_at=datetime(day.year, day.month, day.day, 15, 30, tzinfo=timezone.utc),
        entity_name=entity_name,
        is_reconciled=reconciled,
    )


@pytest.fixture
def context():
    return MatchContext.build(
        agents=[KnownEntity("agent-1", "Carlos Agente", EntityKind.AGENT)],
        players=[
            KnownEntity("player-1", "João Silva"),
            KnownEntity("player-2", "Maria Fernanda"),
            KnownEntity("player-3", "Al"),
        ],
    )


class TestNameTier:
    """Tier 1: memo equals, contains, or is contained in a known name."""

    def test_memo_with_payment_prefix_contains_player_name(self, context):
        suggestion = BankMatcher().suggest_one(_tx("PIX JOAO SILVA"), context)

        assert suggestion.tier == MatchTier.NAME
        assert suggestion.confidence == MatchConfidence.HIGH
        assert suggestion.suggested_entity_id == "player-1"
        assert suggestion.suggested_entity_name == "João Silva"

    def test_exact_memo(self, context):
        suggestion = NameMatchStrategy().try_match(_tx("maria fernanda"), context)

        assert suggestion.suggested_entity_id == "player-2"
        assert "equals" in suggestion.reason

    def test_short_names_ignored(self, context):
        assert NameMatchStrategy().try_match(_tx("AL"), context) is None

    def test_memo_contained_in_name(self, context):
        suggestion = NameMatchStrategy().try_match(_tx("FERNANDA"), context)

        assert suggestion.suggested_entity_id == "player-2"

    def test_agent_wins_over_player_with_same_name(self):
        context = MatchContext.build(
            agents=[KnownEntity("agent-9", "ANA LIMA", EntityKind.AGENT)],
            players=[KnownEntity("player-9", "Ana Lima")],
        )

        suggestion = NameMatchStrategy().try_match(_tx("TED ANA LIMA"), context)

        assert suggestion.suggested_entity_id == "agent-9"
        assert len(context.entities) == 1

    def test_longest_contained_name_wins(self):
        context = MatchContext.build(
            players=[KnownEntity("p-short", "JOAO"), KnownEntity("p-long", "JOAO SILVA")],
        )

        suggestion = NameMatchStrategy().try_match(_tx("PIX JOAO SILVA 123"), context)

        assert suggestion.suggested_entity_id == "p-long"


class TestAmountDateTier:
    """Tier 2: same amount and day as an unreconciled ledger row."""

    def test_matches_within_tolerance(self):
        context = MatchContext.build(
            ledger_entries=[_ledger("agent-1", "150.01", entity_name="Carlos")]
        )

        suggestion = LedgerAmountDateStrategy().try_match(_tx("XYZ", "150.00"), context)

        assert suggestion.tier == MatchTier.AMOUNT_DATE
        assert suggestion.confidence == MatchConfidence.MEDIUM
        assert suggestion.suggested_entity_id == "agent-1"
        assert suggestion.suggested_entity_name == "Carlos"

    def test_amount_outside_tolerance(self):
        context = MatchContext.build(ledger_entries=[_ledger("agent-1", "150.02")])

        assert LedgerAmountDateStrategy().try_match(_tx("XYZ", "150.00"), context) is None

    def test_other_day_does_not_match(self):
        context = MatchContext.build(
            ledger_entries=[_ledger("agent-1", "150.00", day=date(2024, 6, 6))]
        )

        assert LedgerAmountDateStrategy().try_match(_tx("XYZ"), context) is None

    def test_reconciled_rows_skipped(self):
        context = MatchContext.build(
            ledger_entries=[_ledger("agent-1", "150.00", reconciled=True)]
        )

        assert LedgerAmountDateStrategy().try_match(_tx("XYZ"), context) is None

    def test_name_falls_back_to_known_entity(self):
        ctx = MatchContext.build(
            agents=[KnownEntity("agent-1", "Carlos Agente", EntityKind.AGENT)],
            ledger_entries=[_ledger("agent-1", "150.00")],
        )

        suggestion = LedgerAmountDateStrategy().try_match(_tx("XYZ"), ctx)

        assert suggestion.suggested_entity_name == "Carlos Agente"


class TestPartialNameTier:
    """Tier 3: a common substring of at least five characters."""

    def test_partial_name(self, context):
        suggestion = PartialNameStrategy().try_match(_tx("DEP FERNAND0 XX"), context)

        assert suggestion.tier == MatchTier.PARTIAL_NAME
        assert suggestion.confidence == MatchConfidence.LOW
        assert suggestion.suggested_entity_id == "player-2"

    def test_short_common_run_does_not_match(self, context):
        assert PartialNameStrategy().try_match(_tx("ZZ SILV ZZ"), context) is None

    def test_longest_common_substring(self):
        assert longest_common_substring("PIX MARIA FER", "MARIA FERNANDA") == "MARIA FER"
        assert longest_common_substring("", "ABC") == ""


class TestPaymentMethodTier:
    """Tier 4: a payment keyword without a resolvable entity."""

    def test_keyword_without_entity(self, context):
        suggestion = PaymentMethodStrategy().try_match(_tx("PIX RECEBIDO 0042"), context)

        assert suggestion.tier == MatchTier.PAYMENT_METHOD
        assert suggestion.suggested_entity_id is None
        assert "PIX" in suggestion.reason

    def test_keyword_matches_token_prefix_only(self, context):
        assert PaymentMethodStrategy().try_match(_tx("APIXABA"), context) is None

    def test_custom_keywords(self):
        context = MatchContext.build(payment_keywords=("ZELLE",))

        suggestion = PaymentMethodStrategy().try_match(_tx("zelle payment"), context)

        assert suggestion is not None


class TestCascade:
    """The first matching tier wins; every line gets a suggestion."""

    def test_unmatched_needs_manual_review(self, context):
        suggestion = BankMatcher().suggest_one(_tx("QWERTY 123"), context)

        assert suggestion.tier == MatchTier.UNMATCHED
        assert suggestion.confidence == MatchConfidence.NONE
        assert suggestion.needs_manual_review

    def test_name_beats_amount_date(self):
        context = MatchContext.build(
            players=[KnownEntity("player-1", "JOAO SILVA")],
            ledger_entries=[_ledger("agent-1", "150.00")],
        )

        suggestion = BankMatcher().suggest_one(_tx("JOAO SILVA"), context)

        assert suggestion.suggested_entity_id == "player-1"

    def test_suggest_keeps_input_order(self, context, captured_logs):
        txs = [_tx("PIX JOAO SILVA"), _tx("nothing here"), _tx("TED 1")]

        suggestions = BankMatcher().suggest(transactions=txs, context=context)

        assert [s.transaction_id for s in suggestions] == [t.id for t in txs]
        assert [s.tier for s in suggestions] == [
            MatchTier.NAME, MatchTier.UNMATCHED, MatchTier.PAYMENT_METHOD,
        ]
        completed = [r for r in captured_logs() if r["message"] == "bank_match_completed"]
        assert completed[-1]["transactions"] == 3

    def test_custom_strategy_list_still_total(self, context):
        matcher = BankMatcher(strategies=[PaymentMethodStrategy()])

        suggestion = matcher.suggest_one(_tx("JOAO SILVA"), context)

        assert suggestion.tier == MatchTier.UNMATCHED

    def test_to_dict(self, context):
        data = BankMatcher().suggest_one(_tx("PIX JOAO SILVA"), context).to_dict()

        assert data["match_tier"] == 1
        assert data["confidence"] == "high"
        assert data["amount"] == "150.00"
        assert data["tx_date"] == "2024-06-05"
