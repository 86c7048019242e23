"""
Tests for the period close.

final_balance = previous_carry + weekly_result - ledger_net, written to the
next week.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from settlement_kernel.exceptions import SettlementNotFoundError
from settlement_kernel.models.ledger import CarryForward
from settlement_kernel.selectors.metrics_selector import MetricsSelector
from settlement_kernel.services.ledger_service import LedgerService
from settlement_services.carry_forward_service import CarryForwardService
from tests.conftest import PERIOD, agent

NEXT = date(2024, 6, 10)
AGENT_ID = uuid4()


@pytest.fixture
def closer(session, deterministic_clock):
    return CarryForwardService(session, deterministic_clock)


@pytest.fixture
def ledger(session, deterministic_clock):
    return LedgerService(session, deterministic_clock)


def _seed_carry(session, tenant_id, club_id, entity_id, amount, period=PERIOD):
    session.add(
        CarryForward(
            tenant_id=tenant_id, club_id=club_id, entity_id=str(entity_id),
            period_start=period, amount=Decimal(amount),
        )
    )
    session.flush()


class TestClosePeriod:

    def test_close_scenario(self, session, closer, ledger, make_settlement, tenant_id, club_id):
        info = make_settlement(agents=[agent("ZECA", "-200.00", agent_id=AGENT_ID)])
        _seed_carry(session, tenant_id, club_id, AGENT_ID, "1000.00")
        ledger.create_entry(tenant_id, str(AGENT_ID), PERIOD, "in", "300.00")

        result = closer.close_period(tenant_id, info.id)

        assert result.count == 1
        assert result.destination_period == NEXT
        carry = result.carries[0]
        assert carry.previous_carry == Decimal("1000.00")
        assert carry.weekly_result == Decimal("-200.00")
        assert carry.ledger_net == Decimal("300.00")
        assert carry.final_balance == Decimal("500.00")
        assert closer.get_carry_for_entity(tenant_id, club_id, str(AGENT_ID), NEXT) == Decimal("500.00")

    def test_close_is_idempotent(self, session, closer, make_settlement, tenant_id, club_id):
        info = make_settlement(agents=[agent("ZECA", "-75.00", agent_id=AGENT_ID)])

        closer.close_period(tenant_id, info.id)
        closer.close_period(tenant_id, info.id)

        rows = session.execute(
            select(func.count(CarryForward.id)).where(
                CarryForward.tenant_id == tenant_id, CarryForward.period_start == NEXT
            )
        ).scalar()
        assert rows == 1
        assert closer.get_carry_map(tenant_id, club_id, NEXT) == {str(AGENT_ID): Decimal("-75.00")}

    def test_reclose_overwrites_after_payment(self, closer, ledger, make_settlement, tenant_id, club_id):
        info = make_settlement(agents=[agent("ZECA", "-75.00", agent_id=AGENT_ID)])
        closer.close_period(tenant_id, info.id)

        ledger.create_entry(tenant_id, str(AGENT_ID), PERIOD, "out", "75.00")
        closer.close_period(tenant_id, info.id)

        assert closer.get_carry_for_entity(tenant_id, club_id, str(AGENT_ID), NEXT) == Decimal("0.00")

    def test_agent_rows_grouped_by_agent_id(self, session, closer, ledger, make_settlement, tenant_id):
        info = make_settlement(
            agents=[
                agent("ZECA", "-50.00", agent_id=AGENT_ID, subclub_id=uuid4(), subclub_name="Alpha"),
                agent("ZECA", "20.00", agent_id=AGENT_ID, subclub_id=uuid4(), subclub_name="Beta"),
            ]
        )
        row_id = MetricsSelector(session).agents(info.id)[1].id
        ledger.create_entry(tenant_id, str(row_id), PERIOD, "in", "10.00")

        result = closer.close_period(tenant_id, info.id)

        assert result.count == 1
        assert result.carries[0].weekly_result == Decimal("-30.00")
        assert result.carries[0].ledger_net == Decimal("10.00")
        assert result.carries[0].final_balance == Decimal("-40.00")

    def test_agent_without_id_skipped(self, closer, make_settlement, tenant_id, captured_logs):
        info = make_settlement(
            agents=[agent("ZECA", "10.00", agent_id=AGENT_ID), agent("NOBODY", "5.00")]
        )

        result = closer.close_period(tenant_id, info.id)

        assert result.count == 1
        assert result.skipped == 1
        assert any(r["message"] == "carry_agent_without_id_skipped" for r in captured_logs())

    def test_no_agents(self, closer, make_settlement, tenant_id):
        info = make_settlement()

        result = closer.close_period(tenant_id, info.id)

        assert result.count == 0
        assert result.carries == ()
        assert result.to_dict()["destination_period"] == "2024-06-10"

    def test_other_clubs_carry_ignored(self, session, closer, make_settlement, tenant_id):
        info = make_settlement(agents=[agent("ZECA", "10.00", agent_id=AGENT_ID)])
        _seed_carry(session, tenant_id, uuid4(), AGENT_ID, "999.00")

        result = closer.close_period(tenant_id, info.id)

        assert result.carries[0].previous_carry == Decimal("0.00")

    def test_unknown_settlement(self, closer, tenant_id):
        with pytest.raises(SettlementNotFoundError):
            closer.close_period(tenant_id, uuid4())

    def test_close_logged(self, closer, make_settlement, tenant_id, captured_logs):
        info = make_settlement(agents=[agent("ZECA", "10.00", agent_id=AGENT_ID)])

        closer.close_period(tenant_id, info.id)

        closed = [r for r in captured_logs() if r["message"] == "carry_period_closed"]
        assert closed[0]["count"] == 1
        assert closed[0]["destination_period"] == "2024-06-10"
