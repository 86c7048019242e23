"""ORM models for the settlement kernel."""

from settlement_kernel.models.audit_log import AuditLogEntry
from settlement_kernel.models.bank import BankTransaction, BankTransactionStatus
from settlement_kernel.models.config import FeeBase, FeeRate, SubclubAdjustment
from settlement_kernel.models.ledger import (
    CarryForward,
    LedgerDirection,
    LedgerEntry,
    LedgerSource,
)
from settlement_kernel.models.metrics import AgentWeekMetric, PaymentType, PlayerWeekMetric
from settlement_kernel.models.settlement import Settlement, SettlementStatus

__all__ = [
    "AgentWeekMetric",
    "AuditLogEntry",
    "BankTransaction",
    "BankTransactionStatus",
    "CarryForward",
    "FeeBase",
    "FeeRate",
    "LedgerDirection",
    "LedgerEntry",
    "LedgerSource",
    "PaymentType",
    "PlayerWeekMetric",
    "Settlement",
    "SettlementStatus",
    "SubclubAdjustment",
]
