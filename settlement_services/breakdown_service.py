"""
BreakdownService -- weekly settlement breakdown per subclub.

Responsibility:
    Reads every input of one settlement (player rows, agent rows, active
    fee rates, the period's subclub adjustments, carried balances and
    ledger movements), groups the rows by subclub and produces:

      - per subclub: totals, the fee table (FeeEngine), adjustments, the
        signed league settlement and who pays whom;
      - per player and per agent: carried balance, ledger net
        (LedgerNetResolver), current balance and situation;
      - a tenant roll-up over the visible subclubs;
      - a meta block naming the rounding policy and formula version.

Architecture position:
    Services -- imperative shell.  Reads through kernel selectors within the
    caller's session, calls the pure engines, returns frozen DTOs.

Invariants enforced:
    - Rows are grouped by subclub id, else by normalized subclub name.
    - league_settlement = result + fees.total_signed + adjustments.total
    - An agent's carry and ledger movements are attributed to the first of
      its players only, across every subclub of the settlement (alias
      claims in LedgerNetResolver, carry claims in CarryClaims).  The same
      holds for the agent's own rows.
    - The roll-up is recomputed from raw player rows, never re-summed from
      rounded subclub subtotals.  Fees are defined per subclub, so the
      roll-up fee total is the sum of subclub fee totals.
    - The subclub allow-list is applied after each subclub is computed.

Failure modes:
    - SettlementNotFoundError: settlement absent for the tenant.

Audit relevance:
    The meta block carries CALCULATION_VERSION and the formula strings so a
    stored breakdown can be tied to the rules that produced it.
"""

from __future__ import annotations

from collections import OrderedDict
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from settlement_engines.fees import FeeBreakdown, compute_fees, schedule_from_rates
from settlement_engines.ledger_net import LedgerNet, LedgerNetResolver, net_for
from settlement_kernel.db.types import ZERO, round_money, sum_money
from settlement_kernel.domain.balances import (
    ADJUSTMENT_SIGN,
    CALCULATION_VERSION,
    DIRECTION_LABELS,
    FEE_SIGN,
    FORMULAS,
    ROUNDING_POLICY,
    SettlementDirection,
    Situation,
    classify_direction,
    classify_situation,
    current_balance,
)
from settlement_kernel.domain.clock import Clock, SystemClock
from settlement_kernel.domain.dtos import (
    AdjustmentInfo,
    AgentMetricInfo,
    FeeRateSpec,
    PlayerMetricInfo,
    SettlementInfo,
    SettlementStatus,
)
from settlement_kernel.domain.grouping import OTHERS, SubclubKeyResolver
from settlement_kernel.domain.identity import AliasSet
from settlement_kernel.domain.names import normalize_name
from settlement_kernel.domain.period import parse_period_start
from settlement_kernel.exceptions import SettlementNotFoundError
from settlement_kernel.logging_config import LogContext, get_logger
from settlement_kernel.selectors.carry_selector import CarrySelector
from settlement_kernel.selectors.config_selector import ConfigSelector
from settlement_kernel.selectors.ledger_selector import LedgerSelector
from settlement_kernel.selectors.metrics_selector import MetricsSelector
from settlement_kernel.selectors.settlement_selector import SettlementSelector
from settlement_kernel.services.settlement_service import breakdown_cache_prefix
from settlement_kernel.utils.cache import CacheService

logger = get_logger("services.breakdown")

# Payment-gateway movements are keyed by the player's source id with this prefix.
GATEWAY_ALIAS_PREFIX = "cp_"


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EntityBalance:
    carry_balance: Decimal = ZERO
    ledger_in: Decimal = ZERO
    ledger_out: Decimal = ZERO
    ledger_net: Decimal = ZERO
    current_balance: Decimal = ZERO
    situation: Situation = Situation.SETTLED
    ledger_entry_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "carry_balance": self.carry_balance,
            "ledger_in": self.ledger_in,
            "ledger_out": self.ledger_out,
            "ledger_net": self.ledger_net,
            "current_balance": self.current_balance,
            "situation": self.situation.value,
            "ledger_entry_count": self.ledger_entry_count,
        }


@dataclass(frozen=True)
class PlayerLine:
    metric: PlayerMetricInfo
    balance: EntityBalance

    def to_dict(self) -> dict[str, Any]:
        m = self.metric
        data = {
            "id": str(m.id),
            "nickname": m.nickname,
            "player_id": str(m.player_id) if m.player_id else None,
            "external_player_id": m.external_player_id,
            "agent_name": m.agent_name,
            "winnings": m.winnings,
            "rake": m.rake,
            "revenue": m.revenue,
            "rakeback_rate": m.rakeback_rate,
            "rakeback_value": m.rakeback_value,
            "weekly_result": m.weekly_result,
        }
        data.update(self.balance.to_dict())
        return data


@dataclass(frozen=True)
class AgentLine:
    metric: AgentMetricInfo
    balance: EntityBalance

    def to_dict(self) -> dict[str, Any]:
        m = self.metric
        data = {
            "id": str(m.id),
            "agent_name": m.agent_name,
            "agent_id": str(m.agent_id) if m.agent_id else None,
            "player_count": m.player_count,
            "rake_total": m.rake_total,
            "winnings_total": m.winnings_total,
            "revenue_total": m.revenue_total,
            "rakeback_rate": m.rakeback_rate,
            "commission": m.commission,
            "weekly_result": m.weekly_result,
            "payment_type": m.payment_type,
            "settles_individually": m.settles_individually,
        }
        data.update(self.balance.to_dict())
        return data


@dataclass(frozen=True)
class Totals:
    players: int = 0
    active_players: int = 0
    agents: int = 0
    winnings: Decimal = ZERO
    rake: Decimal = ZERO
    revenue: Decimal = ZERO
    rakeback: Decimal = ZERO
    result: Decimal = ZERO

    def to_dict(self) -> dict[str, Any]:
        return {
            "players": self.players,
            "active_players": self.active_players,
            "agents": self.agents,
            "winnings": self.winnings,
            "rake": self.rake,
            "revenue": self.revenue,
            "rakeback": self.rakeback,
            "result": self.result,
        }


@dataclass(frozen=True)
class SubclubBreakdown:
    key: str
    subclub_id: UUID | None
    name: str
    totals: Totals
    fees: FeeBreakdown
    adjustments: AdjustmentInfo
    league_settlement: Decimal
    direction: SettlementDirection
    players: tuple[PlayerLine, ...] = ()
    agents: tuple[AgentLine, ...] = ()

    @property
    def direction_label(self) -> str:
        return DIRECTION_LABELS[self.direction]

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "subclub_id": str(self.subclub_id) if self.subclub_id else None,
            "name": self.name,
            "totals": self.totals.to_dict(),
            "fees": self.fees.to_dict(),
            "adjustments": self.adjustments.to_dict(),
            "league_settlement": self.league_settlement,
            "direction": self.direction.value,
            "direction_label": self.direction_label,
            "players": [p.to_dict() for p in self.players],
            "agents": [a.to_dict() for a in self.agents],
        }


@dataclass(frozen=True)
class Rollup:
    subclubs: int
    totals: Totals
    fees_total: Decimal
    fees_signed: Decimal
    adjustments_total: Decimal
    league_settlement: Decimal
    direction: SettlementDirection

    def to_dict(self) -> dict[str, Any]:
        data = self.totals.to_dict()
        data.update(
            {
                "subclubs": self.subclubs,
                "fees_total": self.fees_total,
                "fees_signed": self.fees_signed,
                "adjustments_total": self.adjustments_total,
                "league_settlement": self.league_settlement,
                "direction": self.direction.value,
                "direction_label": DIRECTION_LABELS[self.direction],
            }
        )
        return data


@dataclass(frozen=True)
class SettlementBreakdown:
    settlement: SettlementInfo
    fee_schedule: tuple[FeeRateSpec, ...]
    subclubs: tuple[SubclubBreakdown, ...]
    rollup: Rollup
    meta: dict[str, Any] = field(default_factory=dict)

    def subclub(self, name: str) -> SubclubBreakdown | None:
        wanted = normalize_name(name)
        for sc in self.subclubs:
            if normalize_name(sc.name) == wanted:
                return sc
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "settlement": self.settlement.to_dict(),
            "fees": {spec.name: spec.rate for spec in self.fee_schedule},
            "subclubs": [sc.to_dict() for sc in self.subclubs],
            "rollup": self.rollup.to_dict(),
            "meta": dict(self.meta),
        }


@dataclass(frozen=True)
class SettlementDetail:
    """Flat view of one settlement: header, rows and row totals."""

    settlement: SettlementInfo
    players: tuple[PlayerMetricInfo, ...]
    agents: tuple[AgentMetricInfo, ...]
    totals: Totals


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _totals(players: Sequence[PlayerMetricInfo]) -> Totals:
    """Totals straight from raw player rows."""
    winnings = sum_money(p.winnings for p in players)
    rake = sum_money(p.rake for p in players)
    revenue = sum_money(p.revenue for p in players)
    agents = {
        str(p.agent_id) if p.agent_id else normalize_name(p.agent_name)
        for p in players
        if p.agent_id or normalize_name(p.agent_name)
    }
    return Totals(
        players=len(players),
        active_players=sum(1 for p in players if p.winnings != 0 or p.rake > 0),
        agents=len(agents),
        winnings=winnings,
        rake=rake,
        revenue=revenue,
        rakeback=sum_money(p.rakeback_value for p in players),
        result=round_money(
            sum(p.winnings for p in players)
            + sum(p.rake for p in players)
            + sum(p.revenue for p in players)
        ),
    )


def _agent_identity(subclub_key: str, agent_id: UUID | None, agent_name: str | None) -> str:
    if agent_id is not None:
        return str(agent_id)
    return f"{subclub_key}|{normalize_name(agent_name)}"


def player_aliases(player: PlayerMetricInfo) -> AliasSet:
    external = player.external_player_id
    return AliasSet.of(
        player.id,
        player.player_id,
        external,
        f"{GATEWAY_ALIAS_PREFIX}{external}" if external else None,
    )


def agent_aliases(agent: AgentMetricInfo) -> AliasSet:
    return AliasSet.of(agent.id, agent.agent_id, agent.external_agent_id)


def _balance(carry: Decimal, weekly_result: Decimal, net: LedgerNet) -> EntityBalance:
    balance = current_balance(carry, weekly_result, net.net)
    return EntityBalance(
        carry_balance=round_money(carry),
        ledger_in=net.inbound,
        ledger_out=net.outbound,
        ledger_net=net.net,
        current_balance=balance,
        situation=classify_situation(balance),
        ledger_entry_count=len(net.entries),
    )


class CarryClaims:
    """
    Hands out each carried balance once per breakdown.

    ``take(*keys)`` returns the carry of the first key present in the map
    and claims it; a later call reaching the same key gets zero.  One
    instance spans every subclub so an entity with rows in two subclubs is
    credited in the first only.
    """

    def __init__(self, carry_map: Mapping[str, Decimal]) -> None:
        self._carry_map = carry_map
        self._claimed: set[str] = set()

    def take(self, *keys: Any) -> Decimal:
        for key in keys:
            if key is None:
                continue
            name = str(key)
            amount = self._carry_map.get(name)
            if not amount:
                continue
            if name in self._claimed:
                return ZERO
            self._claimed.add(name)
            return amount
        return ZERO


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class BreakdownService:
    """
    Settlement aggregator.

    Contract:
        ``get_breakdown`` is read-only.  All reads go through the session
        passed at construction so one breakdown sees one snapshot.

    Guarantees:
        - Breakdowns of FINAL settlements are cached for ``cache_ttl``
          seconds when a CacheService is injected.  SettlementService drops
          them on void.
        - DRAFT breakdowns are always recomputed.
        - A tenant without any active fee rate is charged ``default_fees``
          (name -> percent), when given.

    Non-goals:
        - Resolving which subclubs a caller may see (the caller passes the
          allow-list).
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        cache: CacheService | None = None,
        cache_ttl: float | None = None,
        default_fees: Mapping[str, Any] | None = None,
    ) -> None:
        self.session = session
        self._default_fees = dict(default_fees or {})
        self._clock = clock or SystemClock()
        self._cache = cache
        self._cache_ttl = cache_ttl
        self._settlements = SettlementSelector(session)
        self._metrics = MetricsSelector(session)
        self._config = ConfigSelector(session)
        self._carry = CarrySelector(session)
        self._ledger = LedgerSelector(session)

    # ------------------------------------------------------------------
    # Breakdown
    # ------------------------------------------------------------------

    def get_breakdown(
        self,
        tenant_id: UUID,
        settlement_id: UUID,
        allowed_subclub_ids: Iterable[UUID | str] | None = None,
    ) -> SettlementBreakdown:
        settlement = self._settlements.get(tenant_id, settlement_id)
        if settlement is None:
            raise SettlementNotFoundError(settlement_id)

        allowed = None if allowed_subclub_ids is None else {str(s) for s in allowed_subclub_ids}
        cache_key = self._cache_key(tenant_id, settlement_id, allowed)
        use_cache = self._cache is not None and settlement.status == SettlementStatus.FINAL
        if use_cache:
            cached = self._cache.get(cache_key)
            if cached is not None:
                logger.debug("breakdown_cache_hit", extra={"cache_key": cache_key})
                return cached

        with LogContext.bind(tenant_id=tenant_id, settlement_id=settlement_id):
            breakdown = self._compute(tenant_id, settlement, allowed)
            logger.info(
                "breakdown_computed",
                extra={
                    "status": settlement.status.value,
                    "subclubs": breakdown.rollup.subclubs,
                    "league_settlement": breakdown.rollup.league_settlement,
                },
            )

        if use_cache:
            self._cache.set(cache_key, breakdown, ttl=self._cache_ttl)
        return breakdown

    def _compute(
        self,
        tenant_id: UUID,
        settlement: SettlementInfo,
        allowed: set[str] | None,
    ) -> SettlementBreakdown:
        players = self._metrics.players(settlement.id)
        agents = self._metrics.agents(settlement.id)
        schedule = self._config.fee_rates(tenant_id, active_only=True)
        if not schedule and self._default_fees:
            schedule = schedule_from_rates(self._default_fees)
        adjustments = self._config.adjustments(tenant_id, settlement.period_start)
        carry_map = self._carry.carry_map(tenant_id, settlement.club_id, settlement.period_start)
        entries = self._ledger.for_period(tenant_id, settlement.period_start)

        resolver = SubclubKeyResolver.for_rows(players, agents)
        groups: OrderedDict[str, dict[str, list]] = OrderedDict()
        for p in players:
            groups.setdefault(resolver.key_of(p), {"players": [], "agents": []})["players"].append(p)
        for a in agents:
            groups.setdefault(resolver.key_of(a), {"players": [], "agents": []})["agents"].append(a)

        agent_rows: dict[str, list[AgentMetricInfo]] = {}
        for a in agents:
            agent_rows.setdefault(_agent_identity(resolver.key_of(a), a.agent_id, a.agent_name), []).append(a)

        player_nets = LedgerNetResolver(entries)
        agent_nets = LedgerNetResolver(entries)
        player_carries = CarryClaims(carry_map)
        agent_carries = CarryClaims(carry_map)
        claimed_agents: set[str] = set()

        subclubs: list[SubclubBreakdown] = []
        for key, rows in groups.items():
            first = (rows["players"] or rows["agents"])[0]
            subclub_id = resolver.subclub_id(first.subclub_id, first.subclub_name)
            name = first.subclub_name or OTHERS

            totals = _totals(rows["players"])
            fees = compute_fees(totals.rake, totals.revenue, schedule)
            adjustment = (
                adjustments.get(subclub_id) if subclub_id is not None else None
            ) or AdjustmentInfo(subclub_id=subclub_id, period_start=settlement.period_start)
            league = round_money(totals.result + fees.total_signed + adjustment.total)

            subclubs.append(
                SubclubBreakdown(
                    key=key,
                    subclub_id=subclub_id,
                    name=name,
                    totals=totals,
                    fees=fees,
                    adjustments=adjustment,
                    league_settlement=league,
                    direction=classify_direction(league),
                    players=self._player_lines(
                        key, rows["players"], agent_rows, claimed_agents, player_carries, player_nets
                    ),
                    agents=tuple(
                        AgentLine(
                            metric=a,
                            balance=_balance(
                                agent_carries.take(a.agent_id),
                                a.weekly_result,
                                agent_nets.resolve(agent_aliases(a)),
                            ),
                        )
                        for a in rows["agents"]
                    ),
                )
            )

        subclubs.sort(key=lambda sc: (normalize_name(sc.name), sc.key))
        if allowed is not None:
            subclubs = [sc for sc in subclubs if sc.subclub_id is not None and str(sc.subclub_id) in allowed]

        return SettlementBreakdown(
            settlement=settlement,
            fee_schedule=tuple(schedule),
            subclubs=tuple(subclubs),
            rollup=self._rollup(subclubs, adjustments),
            meta=self._meta(),
        )

    def _player_lines(
        self,
        subclub_key: str,
        players: Sequence[PlayerMetricInfo],
        agent_rows: Mapping[str, list[AgentMetricInfo]],
        claimed_agents: set[str],
        carries: CarryClaims,
        nets: LedgerNetResolver,
    ) -> tuple[PlayerLine, ...]:
        """Player lines of one subclub.

        The first player reached for an agent, over the whole breakdown,
        takes the agent's aliases and carry.  ``claimed_agents`` records
        the agents already taken.
        """
        lines: list[PlayerLine] = []
        for p in players:
            aliases = player_aliases(p)
            carry = carries.take(p.player_id, p.id, p.external_player_id)

            identity = _agent_identity(subclub_key, p.agent_id, p.agent_name)
            if (p.agent_id or normalize_name(p.agent_name)) and identity not in claimed_agents:
                claimed_agents.add(identity)
                rows = agent_rows.get(identity, [])
                agent_ids = [p.agent_id, p.external_agent_id]
                for row in rows:
                    agent_ids.extend([row.id, row.agent_id, row.external_agent_id])
                aliases = aliases.union(AliasSet.of(aliases.primary_id, *agent_ids))
                carry = round_money(carry + carries.take(p.agent_id))

            lines.append(PlayerLine(metric=p, balance=_balance(carry, p.weekly_result, nets.resolve(aliases))))
        return tuple(lines)

    def _rollup(
        self,
        subclubs: Sequence[SubclubBreakdown],
        adjustments: dict[UUID, AdjustmentInfo],
    ) -> Rollup:
        visible_players = [line.metric for sc in subclubs for line in sc.players]
        totals = _totals(visible_players)
        fees_total = sum_money(sc.fees.total for sc in subclubs)

        visible_ids = {sc.subclub_id for sc in subclubs if sc.subclub_id is not None}
        raw = [adjustments[sid] for sid in visible_ids if sid in adjustments]
        adjustments_total = round_money(
            sum(a.overlay + a.purchases + a.security + a.other for a in raw)
        )

        league = round_money(totals.result - fees_total + adjustments_total)
        return Rollup(
            subclubs=len(subclubs),
            totals=totals,
            fees_total=fees_total,
            fees_signed=round_money(-fees_total),
            adjustments_total=adjustments_total,
            league_settlement=league,
            direction=classify_direction(league),
        )

    def _meta(self) -> dict[str, Any]:
        return {
            "rounding_policy": ROUNDING_POLICY,
            "calculation_version": CALCULATION_VERSION,
            "formulas": dict(FORMULAS),
            "fee_sign": FEE_SIGN,
            "adjustment_sign": ADJUSTMENT_SIGN,
            "generated_at": self._clock.now().isoformat(),
        }

    @staticmethod
    def _cache_key(tenant_id: UUID, settlement_id: UUID, allowed: set[str] | None) -> str:
        scope = "all" if allowed is None else ",".join(sorted(allowed))
        return f"{breakdown_cache_prefix(tenant_id, settlement_id)}breakdown:{scope}"

    # ------------------------------------------------------------------
    # Flat detail and single-entity net
    # ------------------------------------------------------------------

    def get_detail(self, tenant_id: UUID, settlement_id: UUID) -> SettlementDetail:
        settlement = self._settlements.get(tenant_id, settlement_id)
        if settlement is None:
            raise SettlementNotFoundError(settlement_id)
        players = self._metrics.players(settlement.id)
        return SettlementDetail(
            settlement=settlement,
            players=tuple(players),
            agents=tuple(self._metrics.agents(settlement.id)),
            totals=_totals(players),
        )

    def entity_ledger_net(
        self, tenant_id: UUID, period_start: date | str, alias_set: AliasSet
    ) -> LedgerNet:
        """Net movement of one entity over every alias it may be keyed by."""
        period = parse_period_start(period_start)
        entries = self._ledger.for_period(tenant_id, period, entity_ids=alias_set.aliases)
        return net_for(entries, alias_set)
