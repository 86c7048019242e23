"""
Tests for manual and bank-sourced ledger movements.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from settlement_kernel.exceptions import (
    InvalidAmountError,
    InvalidIdentifierError,
    LedgerEntryNotFoundError,
    PeriodFinalizedError,
    ValidationError,
)
from settlement_kernel.services.ledger_service import LedgerService
from tests.conftest import PERIOD


@pytest.fixture
def ledger(session, deterministic_clock):
    return LedgerService(session, deterministic_clock)


class TestCreateEntry:

    def test_amount_rounded_and_direction_normalized(self, ledger, tenant_id):
        entry = ledger.create_entry(tenant_id, " agent-1 ", "2024-06-03", "IN", "100.005")

        assert entry.entity_id == "agent-1"
        assert entry.direction == "in"
        assert entry.amount == Decimal("100.01")
        assert entry.period_start == PERIOD
        assert entry.signed_amount == Decimal("100.01")

    @pytest.mark.parametrize("amount", ["0", "-5", "abc"])
    def test_amount_must_be_positive_number(self, ledger, tenant_id, amount):
        with pytest.raises(InvalidAmountError):
            ledger.create_entry(tenant_id, "agent-1", PERIOD, "in", amount)

    def test_direction_must_be_in_or_out(self, ledger, tenant_id):
        with pytest.raises(ValidationError):
            ledger.create_entry(tenant_id, "agent-1", PERIOD, "sideways", "10")

    def test_entity_required(self, ledger, tenant_id):
        with pytest.raises(InvalidIdentifierError):
            ledger.create_entry(tenant_id, "  ", PERIOD, "in", "10")

    def test_external_ref_is_idempotent(self, ledger, tenant_id):
        first = ledger.create_entry(
            tenant_id, "agent-1", PERIOD, "in", "10", source="bank", external_ref="FIT-1"
        )
        second = ledger.create_entry(
            tenant_id, "agent-1", PERIOD, "in", "10", source="bank", external_ref="FIT-1"
        )

        assert first.id == second.id
        entries, total = ledger.list_entries(tenant_id, PERIOD)
        assert total == 1


class TestListAndDelete:

    def test_list_filters_by_entity(self, ledger, tenant_id):
        ledger.create_entry(tenant_id, "agent-1", PERIOD, "in", "10")
        ledger.create_entry(tenant_id, "agent-2", PERIOD, "out", "5")

        entries, total = ledger.list_entries(tenant_id, PERIOD, entity_id="agent-2")

        assert total == 1
        assert entries[0].direction == "out"

    def test_delete_entry(self, ledger, tenant_id):
        entry = ledger.create_entry(tenant_id, "agent-1", PERIOD, "in", "10")

        ledger.delete_entry(tenant_id, entry.id)

        assert ledger.list_entries(tenant_id, PERIOD)[1] == 0

    def test_delete_blocked_once_period_is_final(
        self, ledger, settlement_service, make_settlement, tenant_id
    ):
        entry = ledger.create_entry(tenant_id, "agent-1", PERIOD, "in", "10")
        info = make_settlement()
        settlement_service.finalize(tenant_id, info.id)

        with pytest.raises(PeriodFinalizedError):
            ledger.delete_entry(tenant_id, entry.id)

    def test_delete_unknown(self, ledger, tenant_id):
        with pytest.raises(LedgerEntryNotFoundError):
            ledger.delete_entry(tenant_id, uuid4())

    def test_set_reconciled(self, ledger, tenant_id):
        entry = ledger.create_entry(tenant_id, "agent-1", PERIOD, "in", "10")

        updated = ledger.set_reconciled(tenant_id, entry.id)

        assert updated.is_reconciled is True
