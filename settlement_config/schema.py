"""
SettlementConfig schema.

Runtime settings of the settlement core, parsed from YAML by the loader
into frozen dataclasses.  Every section has defaults so a file only needs
the keys it overrides.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatabaseSettings:
    """Connection and timeout bounds for the backing store."""

    url: str = "sqlite://"
    echo: bool = False
    pool_size: int = 10
    max_overflow: int = 5
    pool_timeout: int = 10  # seconds to wait for a pooled connection
    pool_recycle: int = 1800
    statement_timeout_ms: int = 15000  # PostgreSQL only


@dataclass(frozen=True)
class FeeDefaults:
    """Rates (percent) used by the CLI when a tenant has no fee table yet."""

    app_fee: Decimal = Decimal("0")
    league_fee: Decimal = Decimal("0")
    revenue_league_fee: Decimal = Decimal("0")
    revenue_app_fee: Decimal = Decimal("0")

    def as_mapping(self) -> dict[str, Decimal]:
        return {
            "app_fee": self.app_fee,
            "league_fee": self.league_fee,
            "revenue_league_fee": self.revenue_league_fee,
            "revenue_app_fee": self.revenue_app_fee,
        }


@dataclass(frozen=True)
class CacheSettings:
    breakdown_ttl_seconds: float = 300.0
    max_entries: int = 500


@dataclass(frozen=True)
class MatchingSettings:
    min_name_length: int = 3
    min_partial_length: int = 5
    amount_tolerance: Decimal = Decimal("0.01")
    payment_keywords: tuple[str, ...] = ()  # empty -> matcher defaults

    def as_context_kwargs(self) -> dict:
        kwargs: dict = {
            "min_name_length": self.min_name_length,
            "min_partial_length": self.min_partial_length,
            "amount_tolerance": self.amount_tolerance,
        }
        if self.payment_keywords:
            kwargs["payment_keywords"] = self.payment_keywords
        return kwargs


@dataclass(frozen=True)
class BatchSettings:
    chunk_size: int = 20


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SettlementConfig:
    config_id: str = "default"
    version: int = 1
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    fees: FeeDefaults = field(default_factory=FeeDefaults)
    cache: CacheSettings = field(default_factory=CacheSettings)
    matching: MatchingSettings = field(default_factory=MatchingSettings)
    batch: BatchSettings = field(default_factory=BatchSettings)
    checksum: str = ""
