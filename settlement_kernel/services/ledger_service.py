"""
LedgerService -- recorded cash movements.

Responsibility:
    Creates, lists, deletes and reconciles ledger entries.  Entries are
    keyed by a polymorphic entity id (see domain.identity.AliasSet) and a
    period; the direction carries the sign.

Architecture position:
    Kernel > Services.

Invariants enforced:
    - amount > 0, direction in {in, out}, entity id non-empty.
    - A movement with an external_ref is recorded once per (tenant, source):
      re-submitting returns the existing entry.
    - Entries of a period that has a FINAL settlement cannot be deleted.

Failure modes:
    - InvalidAmountError / InvalidIdentifierError / ValidationError on input.
    - PeriodFinalizedError on delete in a finalized period.
    - UpstreamUnavailableError when the insert fails: creating the entry is
      the purpose of the call, so the failure is not swallowed.
"""

from datetime import date
from decimal import InvalidOperation
from uuid import UUID

from sqlalchemy import select

from settlement_kernel.db.types import round_money, to_decimal
from settlement_kernel.domain.clock import Clock
from settlement_kernel.domain.dtos import LedgerEntryInfo
from settlement_kernel.domain.period import parse_period_start
from settlement_kernel.exceptions import (
    InvalidAmountError,
    InvalidIdentifierError,
    LedgerEntryNotFoundError,
    PeriodFinalizedError,
    ValidationError,
)
from settlement_kernel.logging_config import get_logger
from settlement_kernel.models.ledger import LedgerDirection, LedgerEntry, LedgerSource
from settlement_kernel.selectors.ledger_selector import LedgerSelector, ledger_to_info
from settlement_kernel.selectors.settlement_selector import SettlementSelector
from settlement_kernel.services.audit_service import AuditService
from settlement_kernel.services.base import BaseService

logger = get_logger("services.ledger")


class LedgerService(BaseService):

    def __init__(self, session, clock: Clock | None = None, audit: AuditService | None = None):
        super().__init__(session, clock)
        self._audit = audit or AuditService(session, self._clock)
        self._selector = LedgerSelector(session)

    def create_entry(
        self,
        tenant_id: UUID,
        entity_id: str,
        period_start: date | str,
        direction: str,
        amount,
        *,
        entity_name: str | None = None,
        method: str | None = None,
        description: str | None = None,
        source: str = LedgerSource.MANUAL.value,
        external_ref: str | None = None,
        actor_id: UUID | None = None,
    ) -> LedgerEntryInfo:
        entity = str(entity_id).strip() if entity_id is not None else ""
        if not entity:
            raise InvalidIdentifierError("entity_id", str(entity_id))
        try:
            dir_value = LedgerDirection(str(direction).lower()).value
        except ValueError:
            raise ValidationError(f"direction must be 'in' or 'out', got {direction!r}") from None
        try:
            magnitude = round_money(to_decimal(amount))
        except (InvalidOperation, TypeError, ValueError):
            raise InvalidAmountError(str(amount), "not a number") from None
        if magnitude <= 0:
            raise InvalidAmountError(magnitude, "must be greater than zero")
        period = parse_period_start(period_start)

        if external_ref:
            existing = self.session.execute(
                select(LedgerEntry).where(
                    LedgerEntry.tenant_id == tenant_id,
                    LedgerEntry.source == source,
                    LedgerEntry.external_ref == external_ref,
                )
            ).scalar_one_or_none()
            if existing is not None:
                logger.info(
                    "ledger_entry_duplicate_ref",
                    extra={"external_ref": external_ref, "entry_id": str(existing.id)},
                )
                return ledger_to_info(existing)

        row = LedgerEntry(
            tenant_id=tenant_id,
            entity_id=entity,
            entity_name=entity_name,
            period_start=period,
            direction=dir_value,
            amount=magnitude,
            method=method,
            description=description,
            source=source,
            external_ref=external_ref,
            is_reconciled=False,
            created_at=self._clock.now(),
            created_by_id=actor_id,
        )
        with self._store_call("create_ledger_entry"):
            self.session.add(row)
            self.session.flush()

        info = ledger_to_info(row)
        self._audit.record(
            tenant_id, "create", "ledger_entry", row.id, actor_id=actor_id,
            new_data={
                "entity_id": entity,
                "period_start": period,
                "direction": dir_value,
                "amount": magnitude,
                "source": source,
            },
        )
        logger.info(
            "ledger_entry_created",
            extra={
                "entry_id": str(row.id),
                "entity_id": entity,
                "direction": dir_value,
                "amount": magnitude,
                "source": source,
            },
        )
        return info

    def list_entries(
        self,
        tenant_id: UUID,
        period_start: date | str | None = None,
        entity_id: str | None = None,
        page: int = 1,
        limit: int = 50,
    ) -> tuple[list[LedgerEntryInfo], int]:
        period = parse_period_start(period_start) if period_start is not None else None
        return self._selector.page(tenant_id, period, entity_id, page=page, limit=limit)

    def delete_entry(
        self, tenant_id: UUID, entry_id: UUID, actor_id: UUID | None = None
    ) -> None:
        row = self._load(tenant_id, entry_id)
        if SettlementSelector(self.session).has_final(tenant_id, row.period_start):
            raise PeriodFinalizedError(row.period_start.isoformat(), "delete ledger entry")

        snapshot = {
            "entity_id": row.entity_id,
            "direction": row.direction,
            "amount": row.amount,
            "period_start": row.period_start,
        }
        with self._store_call("delete_ledger_entry"):
            self.session.delete(row)
            self.session.flush()

        self._audit.record(
            tenant_id, "delete", "ledger_entry", entry_id, actor_id=actor_id, old_data=snapshot,
        )
        logger.info("ledger_entry_deleted", extra={"entry_id": str(entry_id)})

    def set_reconciled(
        self, tenant_id: UUID, entry_id: UUID, reconciled: bool = True
    ) -> LedgerEntryInfo:
        row = self._load(tenant_id, entry_id)
        row.is_reconciled = reconciled
        with self._store_call("set_reconciled"):
            self.session.flush()
        return ledger_to_info(row)

    def _load(self, tenant_id: UUID, entry_id: UUID) -> LedgerEntry:
        row = self.session.execute(
            select(LedgerEntry).where(
                LedgerEntry.id == entry_id,
                LedgerEntry.tenant_id == tenant_id,
            )
        ).scalar_one_or_none()
        if row is None:
            raise LedgerEntryNotFoundError(entry_id)
        return row
