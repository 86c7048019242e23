"""
AuditService -- non-critical audit trail writes.

Responsibility:
    Records who did what to which settlement record.  Audit rows are
    auxiliary: the write happens inside a SAVEPOINT and any store failure
    is logged and swallowed so the audited operation still succeeds.

Architecture position:
    Kernel > Services.  Called by SettlementService, RateService,
    LedgerService and the bank reconciliation service.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from settlement_kernel.logging_config import get_logger
from settlement_kernel.models.audit_log import AuditLogEntry
from settlement_kernel.services.base import BaseService

logger = get_logger("services.audit")


def _jsonable(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (UUID, Enum)):
        return str(value.value if isinstance(value, Enum) else value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


class AuditService(BaseService):

    def record(
        self,
        tenant_id: UUID,
        action: str,
        entity_type: str,
        entity_id: Any,
        actor_id: UUID | None = None,
        old_data: dict | None = None,
        new_data: dict | None = None,
    ) -> bool:
        """Write one audit row.  Returns False (and logs) if the write failed."""
        savepoint = self.session.begin_nested()
        try:
            self.session.add(
                AuditLogEntry(
                    tenant_id=tenant_id,
                    actor_id=actor_id,
                    action=action,
                    entity_type=entity_type,
                    entity_id=str(entity_id),
                    old_data=_jsonable(old_data) if old_data is not None else None,
                    new_data=_jsonable(new_data) if new_data is not None else None,
                    occurred_at=self._clock.now(),
                )
            )
            self.session.flush()
            savepoint.commit()
            return True
        except SQLAlchemyError:
            savepoint.rollback()
            logger.warning(
                "audit_write_failed",
                extra={"action": action, "entity_type": entity_type, "entity_id": str(entity_id)},
                exc_info=True,
            )
            return False
