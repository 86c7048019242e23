"""Read-only query selectors returning domain DTOs."""

from settlement_kernel.selectors.bank_selector import BankSelector
from settlement_kernel.selectors.carry_selector import CarrySelector
from settlement_kernel.selectors.config_selector import ConfigSelector
from settlement_kernel.selectors.ledger_selector import LedgerSelector
from settlement_kernel.selectors.metrics_selector import MetricsSelector
from settlement_kernel.selectors.settlement_selector import SettlementSelector

__all__ = [
    "BankSelector",
    "CarrySelector",
    "ConfigSelector",
    "LedgerSelector",
    "MetricsSelector",
    "SettlementSelector",
]
