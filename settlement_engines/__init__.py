"""
Module: settlement_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    calculation engines.  This is the import surface for
    settlement_services.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import settlement_kernel domain types, db.types and the
    logging helpers.  MUST NOT import settlement_services.

Invariants enforced:
    - Purity: engines never read the clock or the database.  Everything
      they look at is passed in.
    - Decimal-only arithmetic, rounded with round_money().
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Engine entry points are wrapped with ``@traced_engine`` and emit a
    SETTLEMENT_ENGINE_TRACE record per call.

Usage:
    from settlement_engines import BankMatcher, LedgerNetResolver, compute_fees
"""

from settlement_engines.fees import (
    APP_FEE,
    LEAGUE_FEE,
    REVENUE_APP_FEE,
    REVENUE_LEAGUE_FEE,
    FeeBreakdown,
    FeeEngine,
    FeeLine,
    compute_fees,
    schedule_from_rates,
)
from settlement_engines.ledger_net import (
    AliasClaimRegistry,
    LedgerNet,
    LedgerNetResolver,
    net_for,
)
from settlement_engines.matching import (
    BankMatcher,
    EntityKind,
    KnownEntity,
    MatchConfidence,
    MatchContext,
    MatchStrategy,
    MatchSuggestion,
    MatchTier,
)

__all__ = [
    "APP_FEE",
    "LEAGUE_FEE",
    "REVENUE_APP_FEE",
    "REVENUE_LEAGUE_FEE",
    "AliasClaimRegistry",
    "BankMatcher",
    "EntityKind",
    "FeeBreakdown",
    "FeeEngine",
    "FeeLine",
    "KnownEntity",
    "LedgerNet",
    "LedgerNetResolver",
    "MatchConfidence",
    "MatchContext",
    "MatchStrategy",
    "MatchSuggestion",
    "MatchTier",
    "compute_fees",
    "net_for",
    "schedule_from_rates",
]
