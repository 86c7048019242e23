"""
Tests for ledger net resolution over alias sets.
"""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

from hypothesis import given, settings
from hypothesis import strategies as st

from settlement_engines.ledger_net import AliasClaimRegistry, LedgerNetResolver, net_for
from settlement_kernel.domain.dtos import LedgerEntryInfo
from settlement_kernel.domain.identity import AliasSet

PERIOD = date(2024, 6, 3)
T0 = datetime(2024, 6, 4, 9, 0, tzinfo=timezone.utc)


def _entry(entity_id, direction, amount, minutes=0):
    return LedgerEntryInfo(
        id=uuid4(),
        entity_id=entity_id,
        period_start=PERIOD,
        direction=direction,
        amount=Decimal(amount),
        created_at=T0 + timedelta(minutes=minutes),
    )


class TestNetFor:
    """net = sum(in) - sum(out) over rows keyed by any alias."""

    def test_inbound_minus_outbound(self):
        entries = [
            _entry("agent-1", "in", "500.00"),
            _entry("agent-1", "out", "200.00"),
        ]

        result = net_for(entries, AliasSet.of("agent-1"))

        assert result.inbound == Decimal("500.00")
        assert result.outbound == Decimal("200.00")
        assert result.net == Decimal("300.00")

    def test_rows_under_every_alias_are_counted(self):
        entries = [
            _entry("agent-1", "in", "100.00"),
            _entry("row-7", "in", "50.00"),
            _entry("EXT-9", "out", "30.00"),
            _entry("someone-else", "in", "999.00"),
        ]

        result = net_for(entries, AliasSet.of("agent-1", "row-7", "EXT-9"))

        assert result.net == Decimal("120.00")
        assert len(result.entries) == 3

    def test_no_rows_is_zero(self):
        result = net_for([], AliasSet.of("agent-1"))

        assert result.net == Decimal("0")
        assert result.entries == ()

    def test_duplicate_row_counted_once(self):
        row = _entry("agent-1", "in", "100.00")

        result = net_for([row, row], AliasSet.of("agent-1"))

        assert result.net == Decimal("100.00")

    def test_details_newest_first(self):
        old = _entry("agent-1", "in", "1.00", minutes=0)
        new = _entry("agent-1", "in", "2.00", minutes=30)

        result = net_for([old, new], AliasSet.of("agent-1"))

        assert [e.id for e in result.entries] == [new.id, old.id]


class TestAliasClaims:
    """A row is attributed to the first entity that claims its alias."""

    def test_registry_first_claim_wins(self):
        registry = AliasClaimRegistry()

        first = registry.claim(AliasSet.of("player-1", "agent-1"))
        second = registry.claim(AliasSet.of("player-2", "agent-1"))

        assert "agent-1" in first
        assert "agent-1" not in second
        assert registry.owner_of("agent-1") == "player-1"

    def test_shared_agent_row_counted_for_one_player_only(self):
        entries = [_entry("agent-1", "in", "300.00")]
        resolver = LedgerNetResolver(entries)

        first = resolver.resolve(AliasSet.of("player-1", "agent-1"))
        second = resolver.resolve(AliasSet.of("player-2", "agent-1"))

        assert first.net == Decimal("300.00")
        assert second.net == Decimal("0")
        assert resolver.claimed_by("agent-1") == "player-1"

    def test_same_entity_may_resolve_again(self):
        entries = [_entry("agent-1", "out", "40.00")]
        resolver = LedgerNetResolver(entries)

        resolver.resolve(AliasSet.of("agent-1"))
        again = resolver.resolve(AliasSet.of("agent-1"))

        assert again.net == Decimal("-40.00")


_amounts = st.decimals(min_value=Decimal("0.01"), max_value=Decimal("100000"), places=2)
_rows = st.lists(
    st.tuples(st.sampled_from(["a", "b", "c", "x"]), st.sampled_from(["in", "out"]), _amounts),
    max_size=30,
)


class TestNetProperties:

    @given(rows=_rows)
    @settings(max_examples=100, deadline=None)
    def test_net_over_union_is_sum_of_disjoint_nets(self, rows):
        entries = [_entry(eid, d, str(amount)) for eid, d, amount in rows]

        union = net_for(entries, AliasSet.of("a", "b", "c")).net
        parts = (
            net_for(entries, AliasSet.of("a")).net
            + net_for(entries, AliasSet.of("b")).net
            + net_for(entries, AliasSet.of("c")).net
        )

        assert union == parts

    @given(rows=_rows)
    @settings(max_examples=100, deadline=None)
    def test_resolver_never_double_counts(self, rows):
        entries = [_entry(eid, d, str(amount)) for eid, d, amount in rows]
        resolver = LedgerNetResolver(entries)

        nets = [
            resolver.resolve(AliasSet.of("p1", "a", "b")),
            resolver.resolve(AliasSet.of("p2", "b", "c")),
            resolver.resolve(AliasSet.of("p3", "a", "c", "x")),
        ]

        counted = [e.id for n in nets for e in n.entries]
        assert len(counted) == len(set(counted)) == len(entries)
