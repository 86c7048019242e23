"""
RateService -- rakeback rate edits on a DRAFT settlement.

Responsibility:
    Changes the rakeback rate of an agent or player row and recomputes the
    derived fields.  ``propagate_agent_rate`` pushes an agent's rate down to
    every player row of that agent, one SAVEPOINT per row, in bounded
    chunks, reporting how many rows were updated and how many failed.

Architecture position:
    Kernel > Services.  Delegates status checks to SettlementService and
    batch isolation to utils.batch.

Invariants enforced:
    - Rates are between 0 and 100.
    - Only DRAFT settlements are edited.
    - commission / rakeback value / weekly result are recomputed and
      rounded on every edit.

Failure modes:
    - InvalidRateError, SettlementNotFoundError, SettlementStateError,
      AgentMetricNotFoundError.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from settlement_kernel.domain.balances import (
    agent_commission,
    agent_result,
    player_result,
    rakeback_value,
    validate_rate,
)
from settlement_kernel.domain.clock import Clock
from settlement_kernel.domain.dtos import AgentMetricInfo, BatchOutcome, PlayerMetricInfo
from settlement_kernel.exceptions import PlayerMetricNotFoundError
from settlement_kernel.logging_config import get_logger
from settlement_kernel.models.metrics import AgentWeekMetric, PlayerWeekMetric
from settlement_kernel.selectors.metrics_selector import agent_to_info, player_to_info
from settlement_kernel.services.audit_service import AuditService
from settlement_kernel.services.base import BaseService
from settlement_kernel.services.settlement_service import SettlementService
from settlement_kernel.utils.batch import DEFAULT_CHUNK_SIZE, run_isolated

logger = get_logger("services.rate")


def apply_player_rate(row: PlayerWeekMetric, rate: Decimal) -> None:
    row.rakeback_rate = rate
    row.rakeback_value = rakeback_value(row.rake, rate)
    row.weekly_result = player_result(row.winnings, row.rake, rate)


def apply_agent_rate(row: AgentWeekMetric, rate: Decimal) -> None:
    row.rakeback_rate = rate
    row.commission = agent_commission(row.rake_total, rate)
    row.weekly_result = agent_result(row.winnings_total, row.rake_total, rate)


class RateService(BaseService):

    def __init__(
        self,
        session,
        clock: Clock | None = None,
        settlements: SettlementService | None = None,
        audit: AuditService | None = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        super().__init__(session, clock)
        self._audit = audit or AuditService(session, self._clock)
        self._settlements = settlements or SettlementService(session, self._clock, audit=self._audit)
        self._chunk_size = chunk_size

    def update_agent_rate(
        self,
        tenant_id: UUID,
        settlement_id: UUID,
        agent_metric_id: UUID,
        rate,
        actor_id: UUID | None = None,
    ) -> AgentMetricInfo:
        """Set an agent row's rate and recompute its commission and result."""
        value = validate_rate(rate)
        settlement = self._settlements.load_for_edit(tenant_id, settlement_id, "edit rates of")
        agent = self._settlements.load_agent_metric(settlement, agent_metric_id)

        old_rate = agent.rakeback_rate
        apply_agent_rate(agent, value)
        with self._store_call("update_agent_rate"):
            self.session.flush()

        self._audit.record(
            tenant_id, "update", "agent_week_metric", agent.id, actor_id=actor_id,
            old_data={"rakeback_rate": old_rate}, new_data={"rakeback_rate": value},
        )
        self._settlements.invalidate_breakdowns(tenant_id, settlement.id)
        logger.info(
            "agent_rate_updated",
            extra={"agent_metric_id": str(agent.id), "rate": value, "commission": agent.commission},
        )
        return agent_to_info(agent)

    def update_player_rate(
        self,
        tenant_id: UUID,
        settlement_id: UUID,
        player_metric_id: UUID,
        rate,
        actor_id: UUID | None = None,
    ) -> PlayerMetricInfo:
        value = validate_rate(rate)
        settlement = self._settlements.load_for_edit(tenant_id, settlement_id, "edit rates of")
        player = self.session.execute(
            select(PlayerWeekMetric).where(
                PlayerWeekMetric.id == player_metric_id,
                PlayerWeekMetric.settlement_id == settlement.id,
            )
        ).scalar_one_or_none()
        if player is None:
            raise PlayerMetricNotFoundError(player_metric_id)

        old_rate = player.rakeback_rate
        apply_player_rate(player, value)
        with self._store_call("update_player_rate"):
            self.session.flush()

        self._audit.record(
            tenant_id, "update", "player_week_metric", player.id, actor_id=actor_id,
            old_data={"rakeback_rate": old_rate}, new_data={"rakeback_rate": value},
        )
        self._settlements.invalidate_breakdowns(tenant_id, settlement.id)
        return player_to_info(player)

    def propagate_agent_rate(
        self,
        tenant_id: UUID,
        settlement_id: UUID,
        agent_metric_id: UUID,
        rate,
        actor_id: UUID | None = None,
        chunk_size: int | None = None,
    ) -> BatchOutcome:
        """Apply ``rate`` to the agent row and to each of its player rows.

        Player rows are matched by stable agent id, or by agent name within
        the same subclub when the agent has no stable id.  Each player row
        is updated in its own SAVEPOINT, in chunks of ``chunk_size`` (the
        service's configured size when omitted).
        """
        value = validate_rate(rate)
        agent_info = self.update_agent_rate(
            tenant_id, settlement_id, agent_metric_id, value, actor_id=actor_id
        )

        stmt = select(PlayerWeekMetric).where(PlayerWeekMetric.settlement_id == settlement_id)
        if agent_info.agent_id is not None:
            stmt = stmt.where(PlayerWeekMetric.agent_id == agent_info.agent_id)
        else:
            stmt = stmt.where(PlayerWeekMetric.agent_name == agent_info.agent_name)
            if agent_info.subclub_id is not None:
                stmt = stmt.where(PlayerWeekMetric.subclub_id == agent_info.subclub_id)
        players = list(self.session.execute(stmt.order_by(PlayerWeekMetric.id)).scalars())

        outcome = run_isolated(
            self.session,
            players,
            lambda row: apply_player_rate(row, value),
            label="propagate_agent_rate",
            chunk_size=chunk_size or self._chunk_size,
            item_key=lambda row: str(row.id),
        )
        self._settlements.invalidate_breakdowns(tenant_id, settlement_id)
        logger.info(
            "agent_rate_propagated",
            extra={"agent_metric_id": str(agent_metric_id), "ok": outcome.ok, "failed": outcome.failed},
        )
        return outcome
