"""Tests for the engine trace decorator."""

from decimal import Decimal

import pytest

from settlement_engines.tracer import input_fingerprint, traced_engine


@traced_engine("echo_amount", "2.1", fingerprint_fields=("amount",))
def _echo_amount(*, amount, fail=False):
    if fail:
        raise ValueError("echo failed")
    return amount


def _traces(captured_logs):
    return [r for r in captured_logs() if r["message"] == "SETTLEMENT_ENGINE_TRACE"]


class TestTracedEngine:

    def test_result_passes_through_and_is_traced(self, captured_logs):
        assert _echo_amount(amount=Decimal("1.50")) == Decimal("1.50")

        trace = _traces(captured_logs)[-1]
        assert trace["engine_name"] == "echo_amount"
        assert trace["engine_version"] == "2.1"
        assert trace["outcome"] == "ok"
        assert trace["input_fingerprint"] == input_fingerprint(("amount",), {"amount": Decimal("1.50")})

    def test_failure_traced_and_reraised(self, captured_logs):
        with pytest.raises(ValueError):
            _echo_amount(amount=Decimal("1"), fail=True)

        assert _traces(captured_logs)[-1]["outcome"] == "error"


class TestInputFingerprint:

    def test_deterministic_and_key_order_independent(self):
        a = input_fingerprint(("x", "y"), {"x": Decimal("1"), "y": {"b": 2, "a": 1}})
        b = input_fingerprint(("y", "x"), {"y": {"a": 1, "b": 2}, "x": Decimal("1")})

        assert a == b
        assert len(a) == 16

    def test_differs_on_input(self):
        assert input_fingerprint(("x",), {"x": 1}) != input_fingerprint(("x",), {"x": 2})

    def test_missing_field_hashes_as_null(self):
        assert input_fingerprint(("x",), {}) == input_fingerprint(("x",), {"x": None})
