"""
settlement_engines.matching -- Bank statement line matcher.

Responsibility:
    Proposes, for each staged bank transaction, the entity it most likely
    belongs to.  The proposal is for a human to confirm; the matcher never
    links or applies anything.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Consumes BankTransactionInfo / LedgerEntryInfo DTOs.

Design:
    An ordered list of independent strategies, each a pure
    ``try_match(transaction, context) -> MatchSuggestion | None``.
    The first strategy that returns a suggestion wins:

        tier 1  NameMatchStrategy        memo equals/contains a known name   high
        tier 2  LedgerAmountDateStrategy same amount and day as a ledger row medium
        tier 3  PartialNameStrategy      common substring >= 5 chars         low
        tier 4  PaymentMethodStrategy    payment-method keyword, no entity   low
        tier 5  UnmatchedStrategy        nothing; classify manually          none

Invariants enforced:
    - Names and memos are compared accent-insensitive and upper-cased.
    - Agents take precedence over players sharing the same name.
    - Exactly one suggestion per transaction; inputs are never mutated.

Usage:
    context = MatchContext.build(agents=[...], players=[...], ledger_entries=[...])
    suggestions = BankMatcher().suggest(transactions=pending, context=context)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum, IntEnum
from typing import Any
from uuid import UUID

from settlement_engines.tracer import traced_engine
from settlement_kernel.domain.dtos import BankTransactionInfo, LedgerEntryInfo
from settlement_kernel.domain.names import normalize_name
from settlement_kernel.logging_config import get_logger

logger = get_logger("engines.matching")

DEFAULT_PAYMENT_KEYWORDS: tuple[str, ...] = (
    "PIX",
    "TED",
    "DOC",
    "BOLETO",
    "TRANSFERENCIA",
    "TRANSF",
    "DEPOSITO",
    "DEP",
    "SAQUE",
    "WIRE",
    "TRANSFER",
    "DEPOSIT",
    "WITHDRAWAL",
)


class MatchTier(IntEnum):
    NAME = 1
    AMOUNT_DATE = 2
    PARTIAL_NAME = 3
    PAYMENT_METHOD = 4
    UNMATCHED = 5


class MatchConfidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    NONE = "none"


class EntityKind(str, Enum):
    AGENT = "agent"
    PLAYER = "player"


@dataclass(frozen=True)
class KnownEntity:
    """An agent or player active in the period, as a match target."""

    entity_id: str
    name: str
    kind: EntityKind = EntityKind.PLAYER

    @property
    def key(self) -> str:
        return normalize_name(self.name)


@dataclass(frozen=True)
class MatchSuggestion:
    transaction_id: UUID
    tier: MatchTier
    confidence: MatchConfidence
    reason: str
    memo: str | None
    amount: Decimal
    tx_date: date
    direction: str
    suggested_entity_id: str | None = None
    suggested_entity_name: str | None = None

    @property
    def needs_manual_review(self) -> bool:
        return self.tier == MatchTier.UNMATCHED

    def to_dict(self) -> dict[str, Any]:
        return {
            "transaction_id": str(self.transaction_id),
            "suggested_entity_id": self.suggested_entity_id,
            "suggested_entity_name": self.suggested_entity_name,
            "confidence": self.confidence.value,
            "match_tier": int(self.tier),
            "match_reason": self.reason,
            "memo": self.memo,
            "amount": str(self.amount),
            "tx_date": self.tx_date.isoformat(),
            "direction": self.direction,
        }


@dataclass(frozen=True)
class MatchContext:
    """Everything the strategies may look at besides the transaction."""

    entities: tuple[KnownEntity, ...] = ()
    ledger_entries: tuple[LedgerEntryInfo, ...] = ()
    min_name_length: int = 3
    min_partial_length: int = 5
    amount_tolerance: Decimal = Decimal("0.01")
    payment_keywords: tuple[str, ...] = DEFAULT_PAYMENT_KEYWORDS
    _names_by_id: dict[str, str] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def build(
        cls,
        agents: Iterable[KnownEntity] = (),
        players: Iterable[KnownEntity] = (),
        ledger_entries: Iterable[LedgerEntryInfo] = (),
        **settings: Any,
    ) -> MatchContext:
        """One entity per normalized name; agents are registered first."""
        seen: set[str] = set()
        entities: list[KnownEntity] = []
        for entity in list(agents) + list(players):
            key = entity.key
            if not key or key in seen:
                continue
            seen.add(key)
            entities.append(entity)
        return cls(
            entities=tuple(entities),
            ledger_entries=tuple(ledger_entries),
            _names_by_id={e.entity_id: e.name for e in entities},
            **settings,
        )

    def name_of(self, entity_id: str) -> str | None:
        return self._names_by_id.get(entity_id)


def longest_common_substring(a: str, b: str) -> str:
    """Longest contiguous run shared by ``a`` and ``b`` (first one on ties)."""
    if not a or not b:
        return ""
    best_len = 0
    best_end = 0
    previous = [0] * (len(b) + 1)
    for i in range(1, len(a) + 1):
        current = [0] * (len(b) + 1)
        ca = a[i - 1]
        for j in range(1, len(b) + 1):
            if ca == b[j - 1]:
                current[j] = previous[j - 1] + 1
                if current[j] > best_len:
                    best_len = current[j]
                    best_end = i
        previous = current
    return a[best_end - best_len:best_end]


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------


class MatchStrategy(ABC):
    """One tier of the cascade."""

    tier: MatchTier
    confidence: MatchConfidence

    @abstractmethod
    def try_match(
        self, transaction: BankTransactionInfo, context: MatchContext
    ) -> MatchSuggestion | None:
        ...

    def _suggest(
        self,
        transaction: BankTransactionInfo,
        reason: str,
        entity_id: str | None = None,
        entity_name: str | None = None,
    ) -> MatchSuggestion:
        return MatchSuggestion(
            transaction_id=transaction.id,
            tier=self.tier,
            confidence=self.confidence,
            reason=reason,
            memo=transaction.memo,
            amount=transaction.amount,
            tx_date=transaction.tx_date,
            direction=transaction.direction,
            suggested_entity_id=entity_id,
            suggested_entity_name=entity_name,
        )


class NameMatchStrategy(MatchStrategy):
    """Memo equals a known name, contains it, or is contained in it."""

    tier = MatchTier.NAME
    confidence = MatchConfidence.HIGH

    def try_match(self, transaction, context):
        memo = normalize_name(transaction.memo)
        if not memo:
            return None

        best: KnownEntity | None = None
        for entity in context.entities:
            key = entity.key
            if len(key) < context.min_name_length:
                continue
            if memo == key:
                return self._suggest(
                    transaction, f"Memo equals {entity.kind.value} name",
                    entity.entity_id, entity.name,
                )
            contained = key in memo or (
                len(memo) >= context.min_name_length and memo in key
            )
            if contained and (best is None or len(key) > len(best.key)):
                best = entity

        if best is None:
            return None
        return self._suggest(
            transaction, f"Memo contains {best.kind.value} name {best.name}",
            best.entity_id, best.name,
        )


class LedgerAmountDateStrategy(MatchStrategy):
    """Same amount (within tolerance) and calendar day as an open ledger row."""

    tier = MatchTier.AMOUNT_DATE
    confidence = MatchConfidence.MEDIUM

    def try_match(self, transaction, context):
        for entry in context.ledger_entries:
            if entry.is_reconciled or not entry.entity_id:
                continue
            if abs(entry.amount - transaction.amount) > context.amount_tolerance:
                continue
            if entry.created_at.date() != transaction.tx_date:
                continue
            name = entry.entity_name or context.name_of(entry.entity_id) or entry.entity_id
            return self._suggest(
                transaction,
                f"Amount {transaction.amount} and date match ledger entry for {name}",
                entry.entity_id, name,
            )
        return None


class PartialNameStrategy(MatchStrategy):
    """Longest common substring of memo and a known name."""

    tier = MatchTier.PARTIAL_NAME
    confidence = MatchConfidence.LOW

    def try_match(self, transaction, context):
        memo = normalize_name(transaction.memo)
        if len(memo) < context.min_partial_length:
            return None

        best: KnownEntity | None = None
        best_common = ""
        for entity in context.entities:
            key = entity.key
            if len(key) < context.min_partial_length:
                continue
            common = longest_common_substring(memo, key).strip()
            if len(common) >= context.min_partial_length and len(common) > len(best_common):
                best, best_common = entity, common

        if best is None:
            return None
        return self._suggest(
            transaction, f"Partial name match '{best_common}' with {best.name}",
            best.entity_id, best.name,
        )


class PaymentMethodStrategy(MatchStrategy):
    """Memo names a payment method; the entity stays unresolved."""

    tier = MatchTier.PAYMENT_METHOD
    confidence = MatchConfidence.LOW

    def try_match(self, transaction, context):
        tokens = normalize_name(transaction.memo).split()
        if not tokens:
            return None
        for keyword in context.payment_keywords:
            if any(token.startswith(keyword) for token in tokens):
                return self._suggest(transaction, f"Payment method keyword {keyword}")
        return None


class UnmatchedStrategy(MatchStrategy):
    tier = MatchTier.UNMATCHED
    confidence = MatchConfidence.NONE

    def try_match(self, transaction, context):
        return self._suggest(transaction, "No match found; classify manually")


DEFAULT_STRATEGIES: tuple[MatchStrategy, ...] = (
    NameMatchStrategy(),
    LedgerAmountDateStrategy(),
    PartialNameStrategy(),
    PaymentMethodStrategy(),
    UnmatchedStrategy(),
)


class BankMatcher:
    """
    Runs the strategy cascade.

    Contract:
        Returns one suggestion per transaction, in input order.

    Guarantees:
        - If no configured strategy matches, an UNMATCHED suggestion is
          returned, so the cascade is total even with a custom list.
    """

    def __init__(self, strategies: Sequence[MatchStrategy] | None = None):
        self._strategies = tuple(strategies) if strategies is not None else DEFAULT_STRATEGIES
        self._fallback = UnmatchedStrategy()

    def suggest_one(
        self, transaction: BankTransactionInfo, context: MatchContext
    ) -> MatchSuggestion:
        for strategy in self._strategies:
            suggestion = strategy.try_match(transaction, context)
            if suggestion is not None:
                return suggestion
        return self._fallback.try_match(transaction, context)

    @traced_engine("bank_matcher", "1.0")
    def suggest(
        self,
        *,
        transactions: Sequence[BankTransactionInfo],
        context: MatchContext,
    ) -> list[MatchSuggestion]:
        suggestions = [self.suggest_one(tx, context) for tx in transactions]
        by_tier: dict[int, int] = {}
        for s in suggestions:
            by_tier[int(s.tier)] = by_tier.get(int(s.tier), 0) + 1
        logger.info(
            "bank_match_completed",
            extra={"transactions": len(transactions), "by_tier": by_tier},
        )
        return suggestions
