"""
Tests for alias sets, identifier coercion, periods, and subclub grouping.
"""

from datetime import date, datetime
from uuid import uuid4

import pytest

from settlement_kernel.domain.grouping import OTHERS, SubclubKeyResolver
from settlement_kernel.domain.identity import AliasSet, coerce_uuid, optional_uuid
from settlement_kernel.domain.names import normalize_name
from settlement_kernel.domain.period import next_period, parse_period_start, period_end
from settlement_kernel.exceptions import InvalidIdentifierError, InvalidPeriodError


class TestAliasSet:

    def test_empty_aliases_dropped(self):
        aliases = AliasSet.of("agent-1", None, "", "  ", "row-7")

        assert aliases.aliases == frozenset({"agent-1", "row-7"})
        assert len(aliases) == 2

    def test_ids_are_stringified(self):
        uid = uuid4()

        aliases = AliasSet.of(uid)

        assert aliases.primary_id == str(uid)
        assert uid in aliases

    def test_empty_primary_rejected(self):
        with pytest.raises(InvalidIdentifierError):
            AliasSet.of(None, "x")

    def test_union_keeps_left_primary(self):
        merged = AliasSet.of("p1", "a").union(AliasSet.of("agent", "b"))

        assert merged.primary_id == "p1"
        assert merged.aliases == frozenset({"p1", "a", "agent", "b"})

    def test_without_keeps_primary(self):
        trimmed = AliasSet.of("p1", "a", "b").without({"p1", "a"})

        assert trimmed.aliases == frozenset({"p1", "b"})


class TestCoerceUuid:

    def test_string_parsed(self):
        uid = uuid4()
        assert coerce_uuid(str(uid), "club_id") == uid

    def test_garbage_rejected(self):
        with pytest.raises(InvalidIdentifierError) as exc_info:
            coerce_uuid("not-a-uuid", "club_id")
        assert exc_info.value.code == "INVALID_IDENTIFIER"

    def test_optional_empty_is_none(self):
        assert optional_uuid("", "subclub_id") is None
        assert optional_uuid(None, "subclub_id") is None


class TestPeriod:

    def test_parse_string_and_datetime(self):
        assert parse_period_start("2024-06-03") == date(2024, 6, 3)
        assert parse_period_start("2024-06-03T10:00:00Z") == date(2024, 6, 3)
        assert parse_period_start(datetime(2024, 6, 3, 23, 59)) == date(2024, 6, 3)

    @pytest.mark.parametrize("value", ["", "   ", "2024-13-01", "yesterday", None])
    def test_invalid_period(self, value):
        with pytest.raises(InvalidPeriodError):
            parse_period_start(value)

    def test_next_period_is_seven_days_later(self):
        assert next_period(date(2024, 12, 30)) == date(2025, 1, 6)
        assert period_end(date(2024, 6, 3)) == date(2024, 6, 9)


class TestNames:

    def test_normalize(self):
        assert normalize_name("  João   da  Silva ") == "JOAO DA SILVA"
        assert normalize_name(None) == ""


class _Row:
    def __init__(self, subclub_id, subclub_name):
        self.subclub_id = subclub_id
        self.subclub_name = subclub_name


class TestSubclubKeyResolver:
    """Rows are grouped by subclub id, falling back to the normalized name."""

    def test_name_only_row_joins_group_of_same_name(self):
        sid = uuid4()
        resolver = SubclubKeyResolver.for_rows([_Row(sid, "Alpha"), _Row(None, "ALPHA ")])

        assert resolver.key_of(_Row(None, "alpha")) == str(sid)
        assert resolver.subclub_id(None, "Alpha") == sid

    def test_unknown_name_keyed_by_name(self):
        resolver = SubclubKeyResolver()

        assert resolver.key(None, "Beta") == "name:BETA"
        assert resolver.key(None, None) == f"name:{OTHERS}"
        assert resolver.subclub_id(None, "Beta") is None
