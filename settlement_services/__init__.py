"""
settlement_services -- Package init and public API.

Responsibility:
    Orchestration services that compose the pure engines
    (settlement_engines/) with database sessions and the kernel selectors
    and services: the settlement breakdown, the period close and the bank
    reconciliation cycle.

Architecture position:
    Services -- stateful orchestration over engines + kernel.

        settlement_services/ -> settlement_engines/  (allowed)
        settlement_services/ -> settlement_kernel/   (allowed)
        settlement_engines/  -> settlement_services/ (FORBIDDEN)
        settlement_kernel/   -> settlement_services/ (FORBIDDEN)
"""

from settlement_services.bank_reconciliation_service import BankReconciliationService
from settlement_services.breakdown_service import (
    BreakdownService,
    SettlementBreakdown,
    SettlementDetail,
    SubclubBreakdown,
)
from settlement_services.carry_forward_service import (
    AgentCarry,
    CarryCloseResult,
    CarryForwardService,
)

__all__ = [
    "AgentCarry",
    "BankReconciliationService",
    "BreakdownService",
    "CarryCloseResult",
    "CarryForwardService",
    "SettlementBreakdown",
    "SettlementDetail",
    "SubclubBreakdown",
]
