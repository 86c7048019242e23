"""
Module: settlement_kernel.models.audit_log
Responsibility: Append-only trail of who changed what (finalize, void,
    rate edits, ledger writes, bank applies).
Architecture position: Kernel > Models.

Failure modes:
    Audit rows are auxiliary.  AuditService writes them inside a SAVEPOINT
    and a failure never aborts the operation being audited.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from settlement_kernel.db.base import Base, UUIDString


class AuditLogEntry(Base):

    __tablename__ = "audit_log"

    __table_args__ = (
        Index("idx_audit_entity", "tenant_id", "entity_type", "entity_id"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    actor_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    action: Mapped[str] = mapped_column(String(30), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(200), nullable=False)

    old_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    new_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
