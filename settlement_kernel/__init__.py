"""
Settlement Kernel

Weekly club settlement core:
- Per-player and per-agent weekly results with rakeback
- Manual cash movements (ledger) and carry-forward balances
- Settlement lifecycle DRAFT -> FINAL -> VOID with audit trail
- Money rounded to 2 places at every derived step
"""

__version__ = "0.1.0"
