"""
Tests for chunked batch execution with per-item SAVEPOINTs.
"""

from decimal import Decimal

import pytest
from sqlalchemy import func, select

from settlement_kernel.exceptions import InvalidAmountError
from settlement_kernel.models.ledger import CarryForward
from settlement_kernel.utils.batch import chunked, run_isolated
from tests.conftest import PERIOD


class TestChunked:

    def test_splits_into_bounded_chunks(self):
        assert [list(c) for c in chunked([1, 2, 3, 4, 5], 2)] == [[1, 2], [3, 4], [5]]

    def test_empty_input(self):
        assert list(chunked([], 3)) == []

    def test_size_must_be_positive(self):
        with pytest.raises(ValueError):
            list(chunked([1], 0))


class TestRunIsolated:

    def _writer(self, session, tenant_id, club_id):
        def write(amount):
            if amount < 0:
                raise InvalidAmountError(str(amount), "negative carry in batch test")
            session.add(
                CarryForward(
                    tenant_id=tenant_id, club_id=club_id, entity_id=f"agent-{amount}",
                    period_start=PERIOD, amount=Decimal(amount),
                )
            )
        return write

    def _count(self, session, tenant_id):
        return session.execute(
            select(func.count(CarryForward.id)).where(CarryForward.tenant_id == tenant_id)
        ).scalar()

    def test_failing_item_rolls_back_alone(self, session, tenant_id, club_id):
        outcome = run_isolated(
            session, [10, -1, 20], self._writer(session, tenant_id, club_id),
            label="test", chunk_size=2,
        )

        assert outcome.ok == 2
        assert outcome.failed == 1
        assert outcome.total == 3
        assert outcome.errors[0].startswith("-1:")
        assert self._count(session, tenant_id) == 2

    def test_unexpected_errors_propagate(self, session):
        def boom(_):
            raise RuntimeError("not a settlement error")

        with pytest.raises(RuntimeError):
            run_isolated(session, [1], boom, label="test")

    def test_completion_logged(self, session, tenant_id, club_id, captured_logs):
        run_isolated(session, [1, -2], self._writer(session, tenant_id, club_id), label="carry")

        logs = captured_logs()
        failed = [r for r in logs if r["message"] == "batch_item_failed"]
        done = [r for r in logs if r["message"] == "batch_completed"]
        assert failed[0]["item"] == "-2"
        assert done[0]["batch"] == "carry"
        assert done[0]["ok"] == 1
        assert done[0]["failed"] == 1

    def test_constraint_violation_isolated(self, session, tenant_id, club_id):
        outcome = run_isolated(
            session, [5, 5, 7], self._writer(session, tenant_id, club_id), label="test"
        )

        assert outcome.ok == 2
        assert outcome.failed == 1
        assert self._count(session, tenant_id) == 2
