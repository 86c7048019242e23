"""Read access to the player and agent rows of a settlement."""

from uuid import UUID

from sqlalchemy import select

from settlement_kernel.db.types import round_money
from settlement_kernel.domain.dtos import AgentMetricInfo, PlayerMetricInfo
from settlement_kernel.models.metrics import AgentWeekMetric, PlayerWeekMetric
from settlement_kernel.selectors.base import BaseSelector


def player_to_info(row: PlayerWeekMetric) -> PlayerMetricInfo:
    return PlayerMetricInfo(
        id=row.id,
        nickname=row.nickname,
        player_id=row.player_id,
        external_player_id=row.external_player_id,
        agent_id=row.agent_id,
        external_agent_id=row.external_agent_id,
        agent_name=row.agent_name,
        subclub_id=row.subclub_id,
        subclub_name=row.subclub_name,
        winnings=round_money(row.winnings),
        rake=round_money(row.rake),
        revenue=round_money(row.revenue),
        rakeback_rate=round_money(row.rakeback_rate, 4),
        rakeback_value=round_money(row.rakeback_value),
        weekly_result=round_money(row.weekly_result),
    )


def agent_to_info(row: AgentWeekMetric) -> AgentMetricInfo:
    return AgentMetricInfo(
        id=row.id,
        agent_name=row.agent_name,
        agent_id=row.agent_id,
        external_agent_id=row.external_agent_id,
        subclub_id=row.subclub_id,
        subclub_name=row.subclub_name,
        player_count=row.player_count or 0,
        rake_total=round_money(row.rake_total),
        winnings_total=round_money(row.winnings_total),
        revenue_total=round_money(row.revenue_total),
        rakeback_rate=round_money(row.rakeback_rate, 4),
        commission=round_money(row.commission),
        weekly_result=round_money(row.weekly_result),
        payment_type=row.payment_type,
        settles_individually=bool(row.settles_individually),
    )


class MetricsSelector(BaseSelector):
    """Player and agent rows, ordered by subclub, agent and name so every
    read enumerates them identically."""

    def players(self, settlement_id: UUID) -> list[PlayerMetricInfo]:
        stmt = (
            select(PlayerWeekMetric)
            .where(PlayerWeekMetric.settlement_id == settlement_id)
            .order_by(
                PlayerWeekMetric.subclub_name,
                PlayerWeekMetric.agent_name,
                PlayerWeekMetric.nickname,
                PlayerWeekMetric.id,
            )
        )
        return [player_to_info(row) for row in self.session.execute(stmt).scalars()]

    def players_of_agent(self, settlement_id: UUID, agent_id: UUID) -> list[PlayerMetricInfo]:
        stmt = (
            select(PlayerWeekMetric)
            .where(
                PlayerWeekMetric.settlement_id == settlement_id,
                PlayerWeekMetric.agent_id == agent_id,
            )
            .order_by(PlayerWeekMetric.nickname, PlayerWeekMetric.id)
        )
        return [player_to_info(row) for row in self.session.execute(stmt).scalars()]

    def agents(self, settlement_id: UUID) -> list[AgentMetricInfo]:
        stmt = (
            select(AgentWeekMetric)
            .where(AgentWeekMetric.settlement_id == settlement_id)
            .order_by(AgentWeekMetric.subclub_name, AgentWeekMetric.agent_name, AgentWeekMetric.id)
        )
        return [agent_to_info(row) for row in self.session.execute(stmt).scalars()]
