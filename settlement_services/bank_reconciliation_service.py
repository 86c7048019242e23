"""
BankReconciliationService -- staged statement lines and their match cycle.

Responsibility:
    Stages parsed bank statement lines, runs the matcher to propose an
    entity for each pending line, records the operator's decisions (link,
    unlink, ignore) and finally turns linked lines into ledger entries.

        pending --link--> linked --apply--> applied
        pending <--ignore/unignore--> ignored

Architecture position:
    Services -- imperative shell.  Builds the MatchContext from kernel
    selectors and delegates ranking to settlement_engines.matching.
    Ledger entries are created through the kernel LedgerService.

Invariants enforced:
    - Staging is idempotent per (tenant, source, external_id).
    - auto_match never changes a transaction.
    - apply_linked writes one ledger entry per linked line with
      source='bank' and external_ref = the line's external id, so applying
      twice cannot duplicate a movement.
    - An applied line cannot be deleted or re-linked.

Failure modes:
    - BankTransactionNotFoundError, TransactionStateError.
    - UpstreamUnavailableError from the ledger write in apply_linked fails
      the whole call.

Audit relevance:
    link, ignore, delete and apply write audit rows (non-critical).
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from settlement_engines.matching import BankMatcher, EntityKind, KnownEntity, MatchContext, MatchSuggestion
from settlement_kernel.db.types import round_money, to_decimal
from settlement_kernel.domain.clock import Clock
from settlement_kernel.domain.dtos import BankTransactionInfo, SettlementStatus, StagedTransactionInput
from settlement_kernel.domain.period import parse_period_start
from settlement_kernel.exceptions import (
    BankTransactionNotFoundError,
    InvalidAmountError,
    InvalidIdentifierError,
    TransactionStateError,
    ValidationError,
)
from settlement_kernel.logging_config import LogContext, get_logger
from settlement_kernel.models.bank import BankTransaction, BankTransactionStatus
from settlement_kernel.models.ledger import LedgerDirection, LedgerSource
from settlement_kernel.selectors.bank_selector import BankSelector, bank_to_info
from settlement_kernel.selectors.ledger_selector import LedgerSelector
from settlement_kernel.selectors.metrics_selector import MetricsSelector
from settlement_kernel.selectors.settlement_selector import SettlementSelector
from settlement_kernel.services.audit_service import AuditService
from settlement_kernel.services.base import BaseService
from settlement_kernel.services.ledger_service import LedgerService

logger = get_logger("services.bank_reconciliation")

DEFAULT_SOURCE = "ofx"


class BankReconciliationService(BaseService):
    """
    Bank statement staging and reconciliation.

    Contract:
        All methods are tenant scoped.  ``match_settings`` are passed to
        MatchContext.build (min_name_length, min_partial_length,
        amount_tolerance, payment_keywords).

    Non-goals:
        - Parsing statement files (callers pass StagedTransactionInput).
        - Applying a suggestion without an operator's link.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        audit: AuditService | None = None,
        ledger: LedgerService | None = None,
        matcher: BankMatcher | None = None,
        match_settings: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(session, clock)
        self._audit = audit or AuditService(session, self._clock)
        self._ledger = ledger or LedgerService(session, self._clock, audit=self._audit)
        self._matcher = matcher or BankMatcher()
        self._match_settings = dict(match_settings or {})
        self._selector = BankSelector(session)

    # ------------------------------------------------------------------
    # Staging
    # ------------------------------------------------------------------

    def stage_transactions(
        self,
        tenant_id: UUID,
        period_start: date | str | None,
        lines: Sequence[StagedTransactionInput],
        source: str = DEFAULT_SOURCE,
    ) -> dict[str, int]:
        """Stage parsed lines as pending; lines already staged are skipped."""
        period = parse_period_start(period_start) if period_start is not None else None
        known = self._selector.existing_external_ids(tenant_id, source)

        imported = 0
        skipped = 0
        with self._store_call("stage_transactions"):
            for line in lines:
                external_id = (line.external_id or "").strip()
                if not external_id:
                    raise InvalidIdentifierError("external_id", str(line.external_id))
                if external_id in known:
                    skipped += 1
                    continue
                try:
                    direction = LedgerDirection(str(line.direction).lower()).value
                except ValueError:
                    raise ValidationError(
                        f"direction must be 'in' or 'out', got {line.direction!r}"
                    ) from None
                amount = round_money(abs(to_decimal(line.amount)))
                if amount <= 0:
                    raise InvalidAmountError(amount, "must be greater than zero")

                self.session.add(
                    BankTransaction(
                        tenant_id=tenant_id,
                        source=source,
                        external_id=external_id,
                        tx_date=line.tx_date,
                        amount=amount,
                        direction=direction,
                        memo=line.memo,
                        bank_name=line.bank_name,
                        period_start=period,
                        status=BankTransactionStatus.PENDING.value,
                    )
                )
                known.add(external_id)
                imported += 1
            self.session.flush()

        logger.info(
            "bank_transactions_staged",
            extra={"source": source, "imported": imported, "skipped": skipped},
        )
        return {"imported": imported, "skipped": skipped}

    def list_transactions(
        self,
        tenant_id: UUID,
        period_start: date | str | None = None,
        status: str | None = None,
        source: str | None = None,
    ) -> list[BankTransactionInfo]:
        period = parse_period_start(period_start) if period_start is not None else None
        if status is not None:
            status = BankTransactionStatus(status).value
        return self._selector.list_transactions(tenant_id, period, status, source)

    # ------------------------------------------------------------------
    # Matching
    # ------------------------------------------------------------------

    def build_context(self, tenant_id: UUID, period_start: date) -> MatchContext:
        """Known agents and players of the period plus its open ledger rows."""
        settlements = [
            s
            for s in SettlementSelector(self.session).list_for_club(
                tenant_id, start=period_start, end=period_start
            )
            if s.status != SettlementStatus.VOID
        ]
        metrics = MetricsSelector(self.session)
        agents: list[KnownEntity] = []
        players: list[KnownEntity] = []
        for settlement in settlements:
            for a in metrics.agents(settlement.id):
                agents.append(
                    KnownEntity(str(a.agent_id or a.agent_name), a.agent_name, EntityKind.AGENT)
                )
            for p in metrics.players(settlement.id):
                name = p.nickname or p.external_player_id
                if not name:
                    continue
                players.append(
                    KnownEntity(
                        str(p.player_id or p.external_player_id or p.nickname),
                        name,
                        EntityKind.PLAYER,
                    )
                )

        ledger = LedgerSelector(self.session).unreconciled_for_period(tenant_id, period_start)
        return MatchContext.build(
            agents=agents, players=players, ledger_entries=ledger, **self._match_settings
        )

    def auto_match(self, tenant_id: UUID, period_start: date | str) -> list[MatchSuggestion]:
        """One suggestion per pending line of the period.  Read-only."""
        period = parse_period_start(period_start)
        pending = self._selector.list_transactions(
            tenant_id, period, BankTransactionStatus.PENDING.value
        )
        if not pending:
            return []
        with LogContext.bind(tenant_id=tenant_id, period_start=period):
            context = self.build_context(tenant_id, period)
            return self._matcher.suggest(transactions=pending, context=context)

    # ------------------------------------------------------------------
    # Operator decisions
    # ------------------------------------------------------------------

    def link(
        self,
        tenant_id: UUID,
        transaction_id: UUID,
        entity_id: str,
        entity_name: str | None = None,
        category: str | None = None,
        actor_id: UUID | None = None,
    ) -> BankTransactionInfo:
        entity = str(entity_id).strip() if entity_id is not None else ""
        if not entity:
            raise InvalidIdentifierError("entity_id", str(entity_id))

        row = self._load(tenant_id, transaction_id)
        self._require(row, "link", BankTransactionStatus.PENDING, BankTransactionStatus.LINKED)
        row.status = BankTransactionStatus.LINKED.value
        row.entity_id = entity
        row.entity_name = entity_name
        row.category = category
        with self._store_call("link_transaction"):
            self.session.flush()

        self._audit.record(
            tenant_id, "link", "bank_transaction", row.id, actor_id=actor_id,
            new_data={"entity_id": entity, "entity_name": entity_name},
        )
        return bank_to_info(row)

    def unlink(self, tenant_id: UUID, transaction_id: UUID) -> BankTransactionInfo:
        row = self._load(tenant_id, transaction_id)
        self._require(row, "unlink", BankTransactionStatus.LINKED)
        row.status = BankTransactionStatus.PENDING.value
        row.entity_id = None
        row.entity_name = None
        row.category = None
        with self._store_call("unlink_transaction"):
            self.session.flush()
        return bank_to_info(row)

    def ignore(
        self,
        tenant_id: UUID,
        transaction_id: UUID,
        ignore: bool = True,
        actor_id: UUID | None = None,
    ) -> BankTransactionInfo:
        row = self._load(tenant_id, transaction_id)
        if ignore:
            self._require(row, "ignore", BankTransactionStatus.PENDING, BankTransactionStatus.LINKED)
            row.status = BankTransactionStatus.IGNORED.value
        else:
            self._require(row, "unignore", BankTransactionStatus.IGNORED)
            row.status = BankTransactionStatus.PENDING.value
        with self._store_call("ignore_transaction"):
            self.session.flush()

        self._audit.record(
            tenant_id, "ignore" if ignore else "unignore", "bank_transaction", row.id,
            actor_id=actor_id,
        )
        return bank_to_info(row)

    def delete(self, tenant_id: UUID, transaction_id: UUID, actor_id: UUID | None = None) -> None:
        row = self._load(tenant_id, transaction_id)
        if row.status == BankTransactionStatus.APPLIED.value:
            raise TransactionStateError(row.id, row.status, "delete")
        snapshot = {"external_id": row.external_id, "amount": row.amount, "status": row.status}
        with self._store_call("delete_transaction"):
            self.session.delete(row)
            self.session.flush()
        self._audit.record(
            tenant_id, "delete", "bank_transaction", transaction_id,
            actor_id=actor_id, old_data=snapshot,
        )

    # ------------------------------------------------------------------
    # Apply
    # ------------------------------------------------------------------

    def apply_linked(
        self, tenant_id: UUID, period_start: date | str, actor_id: UUID | None = None
    ) -> dict[str, Any]:
        """Turn every linked line of the period into a ledger entry."""
        period = parse_period_start(period_start)
        rows = list(
            self.session.execute(
                select(BankTransaction)
                .where(
                    BankTransaction.tenant_id == tenant_id,
                    BankTransaction.period_start == period,
                    BankTransaction.status == BankTransactionStatus.LINKED.value,
                )
                .order_by(BankTransaction.tx_date, BankTransaction.external_id)
            ).scalars()
        )

        ledger_ids: list[str] = []
        for row in rows:
            if not row.entity_id:
                continue
            entry = self._ledger.create_entry(
                tenant_id,
                row.entity_id,
                period,
                row.direction,
                row.amount,
                entity_name=row.entity_name,
                method=row.bank_name or row.source.upper(),
                description=row.memo or f"{row.source.upper()}: {row.external_id}",
                source=LedgerSource.BANK.value,
                external_ref=row.external_id,
                actor_id=actor_id,
            )
            row.status = BankTransactionStatus.APPLIED.value
            row.applied_ledger_id = entry.id
            ledger_ids.append(str(entry.id))

        with self._store_call("apply_linked"):
            self.session.flush()

        self._audit.record(
            tenant_id, "apply", "bank_transaction", f"period:{period.isoformat()}", actor_id=actor_id,
            new_data={"period_start": period, "applied": len(ledger_ids)},
        )
        logger.info(
            "bank_transactions_applied",
            extra={"period_start": period.isoformat(), "applied": len(ledger_ids)},
        )
        return {"applied": len(ledger_ids), "ledger_entry_ids": ledger_ids}

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _load(self, tenant_id: UUID, transaction_id: UUID) -> BankTransaction:
        row = self.session.execute(
            select(BankTransaction).where(
                BankTransaction.id == transaction_id,
                BankTransaction.tenant_id == tenant_id,
            )
        ).scalar_one_or_none()
        if row is None:
            raise BankTransactionNotFoundError(transaction_id)
        return row

    @staticmethod
    def _require(row: BankTransaction, action: str, *allowed: BankTransactionStatus) -> None:
        if row.status not in {s.value for s in allowed}:
            raise TransactionStateError(row.id, row.status, action)
