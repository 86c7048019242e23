"""
SettlementService -- settlement lifecycle and metric row replacement.

Responsibility:
    Opens a DRAFT for a (club, period), replaces its metric rows on each
    import, and drives the DRAFT -> FINAL -> VOID lifecycle.  Edits on the
    agent rows (payment type) live here too because they are guarded by
    the same status rule.

Architecture position:
    Kernel > Services -- imperative shell.  Uses SettlementSelector for
    reads, AuditService for the trail and the injected CacheService to
    drop stale breakdowns.

Invariants enforced:
    - At most one DRAFT per (tenant, club, period).  A re-import merges into
      the existing DRAFT; otherwise a new version = max(version) + 1 opens.
    - finalize only from DRAFT; void only from FINAL and only with a reason.
      VOID is terminal.
    - Metric rows are replaced, deleted or edited only while DRAFT.
    - An import with any rakeback rate outside [0, 100] is refused whole,
      before existing rows are touched.
    - Derived fields of every inserted row are recomputed with the domain
      balance rules and rounded to 2 places.

Failure modes:
    - SettlementNotFoundError: id absent for the tenant.
    - SettlementStateError: transition or edit from the wrong status.
    - MissingReasonError: void without a reason.
    - InvalidRateError: an imported row carries a rate outside [0, 100].
    - UpstreamUnavailableError: store failure while writing.

Audit relevance:
    finalize, void and delete write audit rows (non-critical).  Finalize
    and void stamp actor and timestamp on the settlement itself.
"""

from collections.abc import Sequence
from datetime import date
from uuid import UUID

from sqlalchemy import delete, select

from settlement_kernel.db.types import round_money
from settlement_kernel.domain.balances import (
    agent_commission,
    agent_result,
    player_result,
    rakeback_value,
    validate_rate,
)
from settlement_kernel.domain.clock import Clock
from settlement_kernel.domain.dtos import (
    AgentMetricInfo,
    AgentMetricInput,
    PlayerMetricInput,
    SettlementInfo,
    SettlementStatus,
)
from settlement_kernel.domain.grouping import SubclubKeyResolver
from settlement_kernel.domain.period import parse_period_start
from settlement_kernel.exceptions import (
    AgentMetricNotFoundError,
    MissingReasonError,
    SettlementNotFoundError,
    SettlementStateError,
    ValidationError,
)
from settlement_kernel.logging_config import LogContext, get_logger
from settlement_kernel.models.metrics import AgentWeekMetric, PaymentType, PlayerWeekMetric
from settlement_kernel.models.settlement import Settlement
from settlement_kernel.selectors.metrics_selector import agent_to_info
from settlement_kernel.selectors.settlement_selector import SettlementSelector, settlement_to_info
from settlement_kernel.services.audit_service import AuditService
from settlement_kernel.services.base import BaseService
from settlement_kernel.utils.cache import CacheService

logger = get_logger("services.settlement")


def breakdown_cache_prefix(tenant_id: UUID, settlement_id: UUID) -> str:
    return f"settlement:{tenant_id}:{settlement_id}:"


def build_player_row(
    tenant_id: UUID, settlement: Settlement, data: PlayerMetricInput
) -> PlayerWeekMetric:
    rate = validate_rate(data.rakeback_rate)
    return PlayerWeekMetric(
        tenant_id=tenant_id,
        settlement_id=settlement.id,
        period_start=settlement.period_start,
        player_id=data.player_id,
        external_player_id=data.external_player_id,
        nickname=data.nickname,
        agent_id=data.agent_id,
        external_agent_id=data.external_agent_id,
        agent_name=data.agent_name,
        subclub_id=data.subclub_id,
        subclub_name=data.subclub_name,
        winnings=round_money(data.winnings),
        rake=round_money(data.rake),
        revenue=round_money(data.revenue),
        rakeback_rate=rate,
        rakeback_value=rakeback_value(data.rake, rate),
        weekly_result=player_result(data.winnings, data.rake, rate),
    )


def build_agent_row(
    tenant_id: UUID, settlement: Settlement, data: AgentMetricInput
) -> AgentWeekMetric:
    rate = validate_rate(data.rakeback_rate)
    return AgentWeekMetric(
        tenant_id=tenant_id,
        settlement_id=settlement.id,
        period_start=settlement.period_start,
        agent_id=data.agent_id,
        external_agent_id=data.external_agent_id,
        agent_name=data.agent_name,
        subclub_id=data.subclub_id,
        subclub_name=data.subclub_name,
        player_count=data.player_count,
        rake_total=round_money(data.rake_total),
        winnings_total=round_money(data.winnings_total),
        revenue_total=round_money(data.revenue_total),
        rakeback_rate=rate,
        commission=agent_commission(data.rake_total, rate),
        weekly_result=agent_result(data.winnings_total, data.rake_total, rate),
        payment_type=PaymentType(data.payment_type).value,
        settles_individually=data.settles_individually,
    )


class SettlementService(BaseService):
    """
    Settlement lifecycle.

    Contract:
        Every method is tenant scoped; a settlement of another tenant is
        reported as not found.

    Guarantees:
        - Lifecycle transitions are checked under a row lock (FOR UPDATE on
          PostgreSQL).
        - finalize/void drop every cached breakdown of the settlement.

    Non-goals:
        - Parsing import files into PlayerMetricInput rows.
        - Concurrent edits of one settlement: last write wins.
    """

    def __init__(
        self,
        session,
        clock: Clock | None = None,
        cache: CacheService | None = None,
        audit: AuditService | None = None,
    ):
        super().__init__(session, clock)
        self._cache = cache
        self._audit = audit or AuditService(session, self._clock)
        self._selector = SettlementSelector(session)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, tenant_id: UUID, settlement_id: UUID) -> SettlementInfo:
        info = self._selector.get(tenant_id, settlement_id)
        if info is None:
            raise SettlementNotFoundError(settlement_id)
        return info

    def list_settlements(
        self,
        tenant_id: UUID,
        club_id: UUID | None = None,
        start: date | str | None = None,
        end: date | str | None = None,
    ) -> list[SettlementInfo]:
        return self._selector.list_for_club(
            tenant_id,
            club_id=club_id,
            start=parse_period_start(start) if start is not None else None,
            end=parse_period_start(end) if end is not None else None,
        )

    # ------------------------------------------------------------------
    # Draft management
    # ------------------------------------------------------------------

    def open_draft(
        self,
        tenant_id: UUID,
        club_id: UUID,
        period_start: date | str,
        actor_id: UUID | None = None,
        import_ref: str | None = None,
    ) -> SettlementInfo:
        """Return the period's DRAFT, creating the next version if none is open."""
        period = parse_period_start(period_start)

        existing = self._selector.find_draft(tenant_id, club_id, period)
        if existing is not None:
            logger.info(
                "settlement_draft_reused",
                extra={"settlement_id": str(existing.id), "version": existing.version},
            )
            return existing

        version = self._selector.max_version(tenant_id, club_id, period) + 1
        row = Settlement(
            tenant_id=tenant_id,
            club_id=club_id,
            period_start=period,
            version=version,
            status=SettlementStatus.DRAFT.value,
            import_ref=import_ref,
            created_by_id=actor_id,
        )
        with self._store_call("open_draft"):
            self.session.add(row)
            self.session.flush()

        logger.info(
            "settlement_draft_created",
            extra={
                "settlement_id": str(row.id),
                "club_id": str(club_id),
                "period_start": period.isoformat(),
                "version": version,
            },
        )
        return settlement_to_info(row)

    def replace_metrics(
        self,
        tenant_id: UUID,
        settlement_id: UUID,
        players: Sequence[PlayerMetricInput],
        agents: Sequence[AgentMetricInput] = (),
    ) -> dict[str, int]:
        """Merge an import into a DRAFT.

        Rows of the subclubs present in the payload are replaced; rows of
        other subclubs are kept, so a club can be imported one subclub file
        at a time.
        """
        row = self._load(tenant_id, settlement_id, for_update=True)
        self._require_status(row, SettlementStatus.DRAFT, "replace metrics of")
        for data in (*players, *agents):
            validate_rate(data.rakeback_rate)

        existing_players = list(
            self.session.execute(
                select(PlayerWeekMetric).where(PlayerWeekMetric.settlement_id == row.id)
            ).scalars()
        )
        existing_agents = list(
            self.session.execute(
                select(AgentWeekMetric).where(AgentWeekMetric.settlement_id == row.id)
            ).scalars()
        )
        resolver = SubclubKeyResolver.for_rows(existing_players, existing_agents, players, agents)
        incoming = {resolver.key_of(p) for p in players} | {resolver.key_of(a) for a in agents}

        replaced_players = 0
        replaced_agents = 0
        with self._store_call("replace_metrics"):
            for old in existing_players:
                if resolver.key_of(old) in incoming:
                    self.session.delete(old)
                    replaced_players += 1
            for old in existing_agents:
                if resolver.key_of(old) in incoming:
                    self.session.delete(old)
                    replaced_agents += 1
            self.session.flush()

            for data in players:
                self.session.add(build_player_row(tenant_id, row, data))
            for data in agents:
                self.session.add(build_agent_row(tenant_id, row, data))
            self.session.flush()

        self._invalidate(tenant_id, row.id)
        logger.info(
            "settlement_metrics_replaced",
            extra={
                "settlement_id": str(row.id),
                "subclubs": len(incoming),
                "players": len(players),
                "agents": len(agents),
                "replaced_players": replaced_players,
                "replaced_agents": replaced_agents,
            },
        )
        return {
            "players": len(players),
            "agents": len(agents),
            "replaced_players": replaced_players,
            "replaced_agents": replaced_agents,
        }

    def delete_draft(
        self, tenant_id: UUID, settlement_id: UUID, actor_id: UUID | None = None
    ) -> None:
        row = self._load(tenant_id, settlement_id, for_update=True)
        self._require_status(row, SettlementStatus.DRAFT, "delete")

        snapshot = settlement_to_info(row).to_dict()
        with self._store_call("delete_draft"):
            self.session.execute(
                delete(PlayerWeekMetric).where(PlayerWeekMetric.settlement_id == row.id)
            )
            self.session.execute(
                delete(AgentWeekMetric).where(AgentWeekMetric.settlement_id == row.id)
            )
            self.session.delete(row)
            self.session.flush()

        self._audit.record(
            tenant_id, "delete", "settlement", settlement_id,
            actor_id=actor_id, old_data=snapshot,
        )
        self._invalidate(tenant_id, settlement_id)
        logger.info("settlement_draft_deleted", extra={"settlement_id": str(settlement_id)})

    def update_notes(
        self, tenant_id: UUID, settlement_id: UUID, notes: str | None
    ) -> SettlementInfo:
        row = self._load(tenant_id, settlement_id)
        if row.status == SettlementStatus.VOID.value:
            raise SettlementStateError(row.id, row.status, "edit notes of")
        row.notes = notes
        with self._store_call("update_notes"):
            self.session.flush()
        self._invalidate(tenant_id, row.id)
        return settlement_to_info(row)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def finalize(
        self, tenant_id: UUID, settlement_id: UUID, actor_id: UUID | None = None
    ) -> SettlementInfo:
        """DRAFT -> FINAL."""
        with LogContext.bind(tenant_id=tenant_id, settlement_id=settlement_id, actor_id=actor_id):
            row = self._load(tenant_id, settlement_id, for_update=True)
            self._require_status(row, SettlementStatus.DRAFT, "finalize")

            row.status = SettlementStatus.FINAL.value
            row.finalized_at = self._clock.now()
            row.finalized_by_id = actor_id
            with self._store_call("finalize"):
                self.session.flush()

            self._audit.record(
                tenant_id, "finalize", "settlement", row.id, actor_id=actor_id,
                old_data={"status": SettlementStatus.DRAFT.value},
                new_data={"status": SettlementStatus.FINAL.value, "version": row.version},
            )
            self._invalidate(tenant_id, row.id)
            logger.info(
                "settlement_finalized",
                extra={"period_start": row.period_start.isoformat(), "version": row.version},
            )
            return settlement_to_info(row)

    def void(
        self,
        tenant_id: UUID,
        settlement_id: UUID,
        reason: str,
        actor_id: UUID | None = None,
    ) -> SettlementInfo:
        """FINAL -> VOID.  A reason is mandatory."""
        if not reason or not reason.strip():
            raise MissingReasonError("void a settlement")

        with LogContext.bind(tenant_id=tenant_id, settlement_id=settlement_id, actor_id=actor_id):
            row = self._load(tenant_id, settlement_id, for_update=True)
            self._require_status(row, SettlementStatus.FINAL, "void")

            row.status = SettlementStatus.VOID.value
            row.voided_at = self._clock.now()
            row.voided_by_id = actor_id
            row.void_reason = reason.strip()
            with self._store_call("void"):
                self.session.flush()

            self._audit.record(
                tenant_id, "void", "settlement", row.id, actor_id=actor_id,
                old_data={"status": SettlementStatus.FINAL.value},
                new_data={"status": SettlementStatus.VOID.value, "reason": row.void_reason},
            )
            self._invalidate(tenant_id, row.id)
            logger.info("settlement_voided", extra={"reason": row.void_reason})
            return settlement_to_info(row)

    # ------------------------------------------------------------------
    # Agent row edits
    # ------------------------------------------------------------------

    def set_payment_type(
        self,
        tenant_id: UUID,
        settlement_id: UUID,
        agent_metric_id: UUID,
        payment_type: str,
        actor_id: UUID | None = None,
    ) -> AgentMetricInfo:
        try:
            value = PaymentType(payment_type).value
        except ValueError:
            raise ValidationError(
                f"payment_type must be one of {[p.value for p in PaymentType]}, got {payment_type!r}"
            ) from None

        row = self._load(tenant_id, settlement_id, for_update=True)
        self._require_status(row, SettlementStatus.DRAFT, "edit payment type of")
        agent = self.load_agent_metric(row, agent_metric_id)

        old = agent.payment_type
        agent.payment_type = value
        with self._store_call("set_payment_type"):
            self.session.flush()

        self._audit.record(
            tenant_id, "update", "agent_week_metric", agent.id, actor_id=actor_id,
            old_data={"payment_type": old}, new_data={"payment_type": value},
        )
        self._invalidate(tenant_id, row.id)
        return agent_to_info(agent)

    # ------------------------------------------------------------------
    # Helpers shared with RateService
    # ------------------------------------------------------------------

    def load_for_edit(self, tenant_id: UUID, settlement_id: UUID, action: str) -> Settlement:
        """Locked settlement row, guaranteed to be a DRAFT."""
        row = self._load(tenant_id, settlement_id, for_update=True)
        self._require_status(row, SettlementStatus.DRAFT, action)
        return row

    def load_agent_metric(self, settlement: Settlement, agent_metric_id: UUID) -> AgentWeekMetric:
        agent = self.session.execute(
            select(AgentWeekMetric).where(
                AgentWeekMetric.id == agent_metric_id,
                AgentWeekMetric.settlement_id == settlement.id,
            )
        ).scalar_one_or_none()
        if agent is None:
            raise AgentMetricNotFoundError(agent_metric_id)
        return agent

    def invalidate_breakdowns(self, tenant_id: UUID, settlement_id: UUID) -> None:
        self._invalidate(tenant_id, settlement_id)

    def _load(self, tenant_id: UUID, settlement_id: UUID, for_update: bool = False) -> Settlement:
        stmt = select(Settlement).where(
            Settlement.id == settlement_id,
            Settlement.tenant_id == tenant_id,
        )
        if for_update:
            stmt = stmt.with_for_update()
        with self._store_call("load_settlement"):
            row = self.session.execute(stmt).scalar_one_or_none()
        if row is None:
            raise SettlementNotFoundError(settlement_id)
        return row

    @staticmethod
    def _require_status(row: Settlement, expected: SettlementStatus, action: str) -> None:
        if row.status != expected.value:
            raise SettlementStateError(row.id, row.status, action)

    def _invalidate(self, tenant_id: UUID, settlement_id: UUID) -> None:
        if self._cache is not None:
            self._cache.invalidate_prefix(breakdown_cache_prefix(tenant_id, settlement_id))

