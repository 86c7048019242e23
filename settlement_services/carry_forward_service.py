"""
CarryForwardService -- period close for agent balances.

Responsibility:
    At period close, computes for every agent of a settlement the balance
    it carries into the next period and upserts one CarryForward row per
    agent, keyed by the destination period.

        final_balance = previous_carry + weekly_result - ledger_net

Architecture position:
    Services -- imperative shell.  Reads through kernel selectors, resolves
    ledger nets with the pure settlement_engines.ledger_net, writes
    CarryForward rows.

Invariants enforced:
    - Agents are grouped by stable agent_id.  Rows without one are skipped
      and logged: a name is not a safe key across periods.
    - The ledger net of an agent covers its agent_id and the id of every
      one of its metric rows in the settlement.
    - destination period = period_start + 7 days.
    - Re-running the close overwrites the destination rows; it never
      accumulates.

Failure modes:
    - SettlementNotFoundError: settlement absent for the tenant.
    - UpstreamUnavailableError: a carry row could not be written.  The
      carry rows are the purpose of the call, so the error propagates.

Audit relevance:
    Each carry row records source_settlement_id.  The close itself is
    logged with the number of agents closed and skipped.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from settlement_engines.ledger_net import net_for
from settlement_kernel.db.types import round_money, sum_money
from settlement_kernel.domain.balances import current_balance
from settlement_kernel.domain.clock import Clock, SystemClock
from settlement_kernel.domain.dtos import AgentMetricInfo
from settlement_kernel.domain.identity import AliasSet
from settlement_kernel.domain.period import next_period, parse_period_start
from settlement_kernel.exceptions import SettlementNotFoundError, UpstreamUnavailableError
from settlement_kernel.logging_config import LogContext, get_logger
from settlement_kernel.models.ledger import CarryForward
from settlement_kernel.selectors.carry_selector import CarrySelector
from settlement_kernel.selectors.ledger_selector import LedgerSelector
from settlement_kernel.selectors.metrics_selector import MetricsSelector
from settlement_kernel.selectors.settlement_selector import SettlementSelector
from settlement_kernel.services.base import BaseService

logger = get_logger("services.carry_forward")


@dataclass(frozen=True)
class AgentCarry:
    entity_id: str
    agent_name: str
    previous_carry: Decimal
    weekly_result: Decimal
    ledger_net: Decimal
    final_balance: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "entity_id": self.entity_id,
            "agent_name": self.agent_name,
            "previous_carry": self.previous_carry,
            "weekly_result": self.weekly_result,
            "ledger_net": self.ledger_net,
            "final_balance": self.final_balance,
        }


@dataclass(frozen=True)
class CarryCloseResult:
    count: int
    closed_period: date
    destination_period: date
    carries: tuple[AgentCarry, ...] = ()
    skipped: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "closed_period": self.closed_period.isoformat(),
            "destination_period": self.destination_period.isoformat(),
            "skipped": self.skipped,
            "carries": [c.to_dict() for c in self.carries],
        }


class CarryForwardService(BaseService):
    """
    Carry-forward closer.

    Contract:
        ``close_period`` may be called any number of times for the same
        settlement; the last call wins.

    Guarantees:
        - Each carry row is written in its own SAVEPOINT.  A unique-key
          collision with a concurrent close is resolved by re-reading the
          row and updating it.

    Non-goals:
        - Requiring the settlement to be FINAL.  Closing a DRAFT is allowed
          so operators can preview next week's opening balances.
        - Carrying player balances (players settle through their agent).
    """

    def __init__(self, session: Session, clock: Clock | None = None) -> None:
        super().__init__(session, clock or SystemClock())
        self._settlements = SettlementSelector(session)
        self._metrics = MetricsSelector(session)
        self._carry = CarrySelector(session)
        self._ledger = LedgerSelector(session)

    def close_period(self, tenant_id: UUID, settlement_id: UUID) -> CarryCloseResult:
        settlement = self._settlements.get(tenant_id, settlement_id)
        if settlement is None:
            raise SettlementNotFoundError(settlement_id)

        period = settlement.period_start
        destination = next_period(period)

        with LogContext.bind(tenant_id=tenant_id, settlement_id=settlement_id, period_start=period):
            groups: OrderedDict[str, list[AgentMetricInfo]] = OrderedDict()
            skipped = 0
            for agent in self._metrics.agents(settlement.id):
                if agent.agent_id is None:
                    skipped += 1
                    logger.warning(
                        "carry_agent_without_id_skipped",
                        extra={"agent_metric_id": str(agent.id), "agent_name": agent.agent_name},
                    )
                    continue
                groups.setdefault(str(agent.agent_id), []).append(agent)

            if not groups:
                logger.info("carry_close_no_agents", extra={"skipped": skipped})
                return CarryCloseResult(
                    count=0, closed_period=period, destination_period=destination, skipped=skipped,
                )

            previous = self._carry.carry_map(tenant_id, settlement.club_id, period)
            aliases = {
                agent_id: AliasSet.of(agent_id, *(row.id for row in rows))
                for agent_id, rows in groups.items()
            }
            entries = self._ledger.for_period(
                tenant_id, period, entity_ids={a for s in aliases.values() for a in s.aliases}
            )

            carries: list[AgentCarry] = []
            for agent_id, rows in groups.items():
                weekly = sum_money(row.weekly_result for row in rows)
                prior = round_money(previous.get(agent_id, 0))
                net = net_for(entries, aliases[agent_id]).net
                final = current_balance(prior, weekly, net)

                self._upsert(
                    tenant_id, settlement.club_id, agent_id, destination, final, settlement.id
                )
                carries.append(
                    AgentCarry(
                        entity_id=agent_id,
                        agent_name=rows[0].agent_name,
                        previous_carry=prior,
                        weekly_result=weekly,
                        ledger_net=net,
                        final_balance=final,
                    )
                )

            logger.info(
                "carry_period_closed",
                extra={
                    "closed_period": period.isoformat(),
                    "destination_period": destination.isoformat(),
                    "count": len(carries),
                    "skipped": skipped,
                },
            )
            return CarryCloseResult(
                count=len(carries),
                closed_period=period,
                destination_period=destination,
                carries=tuple(carries),
                skipped=skipped,
            )

    def _upsert(
        self,
        tenant_id: UUID,
        club_id: UUID,
        entity_id: str,
        period_start: date,
        amount: Decimal,
        settlement_id: UUID,
    ) -> None:
        with self._store_call("upsert_carry_forward"):
            row = self._find(tenant_id, club_id, entity_id, period_start)
            if row is not None:
                row.amount = amount
                row.source_settlement_id = settlement_id
                self.session.flush()
                return

            savepoint = self.session.begin_nested()
            try:
                self.session.add(
                    CarryForward(
                        tenant_id=tenant_id,
                        club_id=club_id,
                        entity_id=entity_id,
                        period_start=period_start,
                        amount=amount,
                        source_settlement_id=settlement_id,
                    )
                )
                self.session.flush()
                savepoint.commit()
            except IntegrityError:
                # Inserted by a concurrent close since our read.
                savepoint.rollback()
                row = self._find(tenant_id, club_id, entity_id, period_start)
                if row is None:
                    raise UpstreamUnavailableError(
                        "upsert_carry_forward", f"carry row for {entity_id} vanished after conflict"
                    ) from None
                row.amount = amount
                row.source_settlement_id = settlement_id
                self.session.flush()
                logger.info("carry_upsert_conflict_resolved", extra={"entity_id": entity_id})

    def _find(
        self, tenant_id: UUID, club_id: UUID, entity_id: str, period_start: date
    ) -> CarryForward | None:
        return self.session.execute(
            select(CarryForward).where(
                CarryForward.tenant_id == tenant_id,
                CarryForward.club_id == club_id,
                CarryForward.entity_id == entity_id,
                CarryForward.period_start == period_start,
            )
        ).scalar_one_or_none()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_carry_map(
        self, tenant_id: UUID, club_id: UUID, period_start: date | str
    ) -> dict[str, Decimal]:
        """entity_id -> balance carried into ``period_start``."""
        return self._carry.carry_map(tenant_id, club_id, parse_period_start(period_start))

    def get_carry_for_entity(
        self, tenant_id: UUID, club_id: UUID, entity_id: str, period_start: date | str
    ) -> Decimal:
        return self._carry.for_entity(
            tenant_id, club_id, str(entity_id), parse_period_start(period_start)
        )
