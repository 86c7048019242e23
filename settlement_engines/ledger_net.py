"""
settlement_engines.ledger_net -- Net recorded cash movement per entity.

Responsibility:
    Computes, for one logical entity in one period, the inbound total, the
    outbound total and net = inbound - outbound over every ledger row keyed
    by any of the entity's aliases.  Shared by the settlement breakdown and
    the period close.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Operates on
    LedgerEntryInfo DTOs and AliasSet values from settlement_kernel.domain.

Invariants enforced:
    - A ledger row reachable through two aliases is counted once (rows are
      de-duplicated by id).
    - Within one LedgerNetResolver an alias belongs to the first entity
      that claims it; later claims by other entities drop that alias.  An
      agent's movements are therefore credited to one player only.
    - Empty input yields an all-zero result.
    - All totals are rounded with round_money().
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field
from decimal import Decimal

from settlement_kernel.db.types import ZERO, round_money, sum_money
from settlement_kernel.domain.dtos import LedgerEntryInfo
from settlement_kernel.domain.identity import AliasSet


@dataclass(frozen=True)
class LedgerNet:
    inbound: Decimal = ZERO
    outbound: Decimal = ZERO
    net: Decimal = ZERO
    entries: tuple[LedgerEntryInfo, ...] = field(default_factory=tuple)


def net_for(entries: Iterable[LedgerEntryInfo], alias_set: AliasSet) -> LedgerNet:
    """Net movement of ``alias_set`` over ``entries``, details newest first."""
    seen: set = set()
    matched: list[LedgerEntryInfo] = []
    for entry in entries:
        if entry.id in seen or entry.entity_id not in alias_set.aliases:
            continue
        seen.add(entry.id)
        matched.append(entry)

    if not matched:
        return LedgerNet()

    inbound = sum_money(e.amount for e in matched if e.direction == "in")
    outbound = sum_money(e.amount for e in matched if e.direction == "out")
    matched.sort(key=lambda e: (e.created_at, str(e.id)), reverse=True)
    return LedgerNet(
        inbound=inbound,
        outbound=outbound,
        net=round_money(inbound - outbound),
        entries=tuple(matched),
    )


class AliasClaimRegistry:
    """First entity to claim an alias keeps it."""

    def __init__(self) -> None:
        self._owners: dict[str, str] = {}

    def claim(self, alias_set: AliasSet) -> AliasSet:
        """Register the set's free aliases and return the ones it owns."""
        owned = set()
        for alias in alias_set.aliases:
            owner = self._owners.setdefault(alias, alias_set.primary_id)
            if owner == alias_set.primary_id:
                owned.add(alias)
        return AliasSet(alias_set.primary_id, frozenset(owned))

    def owner_of(self, alias: str) -> str | None:
        return self._owners.get(alias)


class LedgerNetResolver:
    """
    Resolves ledger nets for many entities over one period's rows.

    Contract:
        Built once per aggregation from the period's ledger rows.  Each
        ``resolve`` claims the entity's aliases in call order.

    Guarantees:
        - No ledger row contributes to two entities of the same resolver.
    """

    def __init__(self, entries: Iterable[LedgerEntryInfo]):
        self._by_entity: dict[str, list[LedgerEntryInfo]] = defaultdict(list)
        for entry in entries:
            self._by_entity[entry.entity_id].append(entry)
        self._claims = AliasClaimRegistry()

    def resolve(self, alias_set: AliasSet) -> LedgerNet:
        owned = self._claims.claim(alias_set)
        candidates = [
            entry
            for alias in sorted(owned.aliases)
            for entry in self._by_entity.get(alias, ())
        ]
        return net_for(candidates, owned)

    def claimed_by(self, alias: str) -> str | None:
        return self._claims.owner_of(alias)
