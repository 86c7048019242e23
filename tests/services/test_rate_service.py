"""
Tests for rakeback rate edits and their propagation to player rows.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from settlement_config.loader import parse_config
from settlement_kernel.domain.balances import validate_rate
from settlement_kernel.exceptions import InvalidRateError, PlayerMetricNotFoundError, SettlementStateError
from settlement_kernel.selectors.metrics_selector import MetricsSelector
from settlement_kernel.services.rate_service import RateService
from tests.conftest import agent, player

AGENT_ID = uuid4()


@pytest.fixture
def rates(session, deterministic_clock, settlement_service):
    return RateService(session, deterministic_clock, settlements=settlement_service)


@pytest.fixture
def draft(make_settlement):
    return make_settlement(
        [
            player("ANA", "100.00", "200.00", agent_id=AGENT_ID, agent_name="ZECA"),
            player("BIA", "-50.00", "100.00", agent_id=AGENT_ID, agent_name="ZECA"),
            player("CAIO", "10.00", "10.00", agent_name="OTHER"),
        ],
        [agent("ZECA", "-500.00", "1000.00", agent_id=AGENT_ID)],
    )


class TestValidateRate:

    @pytest.mark.parametrize("value", ["-1", "100.01", "abc", "NaN"])
    def test_out_of_range(self, value):
        with pytest.raises(InvalidRateError):
            validate_rate(value)

    def test_bounds_accepted(self):
        assert validate_rate("0") == Decimal("0")
        assert validate_rate(100) == Decimal("100")


class TestUpdateAgentRate:

    def test_commission_and_result_recomputed(self, session, rates, draft, tenant_id):
        agent_row = MetricsSelector(session).agents(draft.id)[0]

        updated = rates.update_agent_rate(tenant_id, draft.id, agent_row.id, "30")

        assert updated.commission == Decimal("300.00")
        assert updated.weekly_result == Decimal("-200.00")

    def test_final_settlement_rejected(self, session, rates, settlement_service, draft, tenant_id):
        agent_row = MetricsSelector(session).agents(draft.id)[0]
        settlement_service.finalize(tenant_id, draft.id)

        with pytest.raises(SettlementStateError):
            rates.update_agent_rate(tenant_id, draft.id, agent_row.id, "30")


class TestUpdatePlayerRate:

    def test_player_result_recomputed(self, session, rates, draft, tenant_id):
        ana = next(p for p in MetricsSelector(session).players(draft.id) if p.nickname == "ANA")

        updated = rates.update_player_rate(tenant_id, draft.id, ana.id, "10")

        assert updated.rakeback_value == Decimal("20.00")
        assert updated.weekly_result == Decimal("120.00")

    def test_unknown_player(self, rates, draft, tenant_id):
        with pytest.raises(PlayerMetricNotFoundError):
            rates.update_player_rate(tenant_id, draft.id, uuid4(), "10")


class TestPropagateAgentRate:

    def test_players_of_agent_updated(self, session, rates, draft, tenant_id):
        agent_row = MetricsSelector(session).agents(draft.id)[0]

        outcome = rates.propagate_agent_rate(tenant_id, draft.id, agent_row.id, "25", chunk_size=1)

        assert outcome.ok == 2
        assert outcome.failed == 0
        players = {p.nickname: p for p in MetricsSelector(session).players(draft.id)}
        assert players["ANA"].weekly_result == Decimal("150.00")
        assert players["BIA"].weekly_result == Decimal("-25.00")
        assert players["CAIO"].rakeback_rate == Decimal("0")

    def test_agent_without_id_matched_by_name(self, session, rates, make_settlement, tenant_id):
        info = make_settlement(
            [player("ANA", "0", "100.00", agent_name="NOID"), player("BIA", "0", "100.00", agent_name="ELSE")],
            [agent("NOID", "0", "100.00")],
        )
        agent_row = MetricsSelector(session).agents(info.id)[0]

        outcome = rates.propagate_agent_rate(tenant_id, info.id, agent_row.id, "10")

        assert outcome.total == 1
        players = {p.nickname: p for p in MetricsSelector(session).players(info.id)}
        assert players["ANA"].rakeback_value == Decimal("10.00")
        assert players["BIA"].rakeback_value == Decimal("0.00")

    def test_invalidates_cached_breakdowns(self, session, rates, cache, draft, tenant_id):
        cache.set(f"settlement:{tenant_id}:{draft.id}:breakdown:all", object())
        agent_row = MetricsSelector(session).agents(draft.id)[0]

        rates.propagate_agent_rate(tenant_id, draft.id, agent_row.id, "5")

        assert len(cache) == 0

    def test_configured_chunk_size_used_by_default(
        self, session, deterministic_clock, settlement_service, draft, tenant_id, captured_logs
    ):
        chunk_size = parse_config({"batch": {"chunk_size": 1}}).batch.chunk_size
        rates = RateService(
            session, deterministic_clock, settlements=settlement_service, chunk_size=chunk_size
        )
        agent_row = MetricsSelector(session).agents(draft.id)[0]

        rates.propagate_agent_rate(tenant_id, draft.id, agent_row.id, "5")

        done = [r for r in captured_logs() if r["message"] == "batch_completed"]
        assert done[-1]["chunk_size"] == 1
        assert done[-1]["ok"] == 2
