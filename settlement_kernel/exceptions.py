"""
Typed Exception Hierarchy for the Settlement Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (HTTP layer, CLI, batch jobs) must react to settlement failures by
kind, not by parsing messages.  Every error therefore has:
  1. A TYPED exception class (catch by type, not message)
  2. A CODE attribute (machine-readable, API-safe)
  3. Structured DATA (ids, statuses) as attributes

Example:
    try:
        service.finalize(tenant_id, settlement_id, actor_id)
    except SettlementStateError as e:
        api_response(code=e.code, status=e.current_status)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    SettlementKernelError (base)
    |
    +-- NotFoundError
    |   +-- SettlementNotFoundError
    |   +-- PlayerMetricNotFoundError
    |   +-- AgentMetricNotFoundError
    |   +-- LedgerEntryNotFoundError
    |   +-- BankTransactionNotFoundError
    |
    +-- InvalidStateError
    |   +-- SettlementStateError
    |   +-- PeriodFinalizedError
    |   +-- TransactionStateError
    |
    +-- ValidationError
    |   +-- InvalidPeriodError
    |   +-- InvalidIdentifierError
    |   +-- InvalidAmountError
    |   +-- InvalidRateError
    |   +-- MissingReasonError
    |
    +-- UpstreamUnavailableError

NotFoundError and InvalidStateError are never retried.  UpstreamUnavailable
wraps store connectivity failures and timeouts; it is swallowed only for
auxiliary writes (audit rows) and always propagates from primary writes.
"""

from decimal import Decimal


class SettlementKernelError(Exception):
    """Base exception for all settlement kernel errors."""

    code: str = "SETTLEMENT_KERNEL_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


# =============================================================================
# Not found
# =============================================================================


class NotFoundError(SettlementKernelError):
    """A referenced record does not exist for the tenant."""

    code: str = "NOT_FOUND"


class SettlementNotFoundError(NotFoundError):
    """Settlement id is absent or belongs to another tenant."""

    code: str = "SETTLEMENT_NOT_FOUND"

    def __init__(self, settlement_id: str):
        self.settlement_id = str(settlement_id)
        super().__init__(f"Settlement {settlement_id} not found")


class PlayerMetricNotFoundError(NotFoundError):
    code: str = "PLAYER_METRIC_NOT_FOUND"

    def __init__(self, player_metric_id: str):
        self.player_metric_id = str(player_metric_id)
        super().__init__(f"Player metric {player_metric_id} not found")


class AgentMetricNotFoundError(NotFoundError):
    code: str = "AGENT_METRIC_NOT_FOUND"

    def __init__(self, agent_metric_id: str):
        self.agent_metric_id = str(agent_metric_id)
        super().__init__(f"Agent metric {agent_metric_id} not found")


class LedgerEntryNotFoundError(NotFoundError):
    code: str = "LEDGER_ENTRY_NOT_FOUND"

    def __init__(self, entry_id: str):
        self.entry_id = str(entry_id)
        super().__init__(f"Ledger entry {entry_id} not found")


class BankTransactionNotFoundError(NotFoundError):
    code: str = "BANK_TRANSACTION_NOT_FOUND"

    def __init__(self, transaction_id: str):
        self.transaction_id = str(transaction_id)
        super().__init__(f"Bank transaction {transaction_id} not found")


# =============================================================================
# Invalid state
# =============================================================================


class InvalidStateError(SettlementKernelError):
    """Operation not allowed in the record's current lifecycle state."""

    code: str = "INVALID_STATE"


class SettlementStateError(InvalidStateError):
    """Lifecycle transition or mutation refused for the settlement status.

    Raised when finalizing a non-DRAFT, voiding a non-FINAL, or editing
    metric rows of a settlement that is no longer a DRAFT.
    """

    code: str = "SETTLEMENT_INVALID_STATE"

    def __init__(self, settlement_id: str, current_status: str, action: str):
        self.settlement_id = str(settlement_id)
        self.current_status = current_status
        self.action = action
        super().__init__(
            f"Cannot {action} settlement {settlement_id}: status is {current_status}"
        )


class PeriodFinalizedError(InvalidStateError):
    """The period already has a FINAL settlement; its ledger is frozen."""

    code: str = "PERIOD_FINALIZED"

    def __init__(self, period_start: str, action: str):
        self.period_start = str(period_start)
        self.action = action
        super().__init__(
            f"Cannot {action}: period {period_start} has a FINAL settlement"
        )


class TransactionStateError(InvalidStateError):
    """Bank transaction is not in a status that permits the action."""

    code: str = "TRANSACTION_INVALID_STATE"

    def __init__(self, transaction_id: str, current_status: str, action: str):
        self.transaction_id = str(transaction_id)
        self.current_status = current_status
        self.action = action
        super().__init__(
            f"Cannot {action} transaction {transaction_id}: status is {current_status}"
        )


# =============================================================================
# Validation
# =============================================================================


class ValidationError(SettlementKernelError):
    """Caller-supplied input is malformed."""

    code: str = "VALIDATION_ERROR"


class InvalidPeriodError(ValidationError):
    code: str = "INVALID_PERIOD"

    def __init__(self, value: str):
        self.value = str(value)
        super().__init__(f"Invalid period start date: {value!r} (expected YYYY-MM-DD)")


class InvalidIdentifierError(ValidationError):
    code: str = "INVALID_IDENTIFIER"

    def __init__(self, field_name: str, value: str):
        self.field_name = field_name
        self.value = str(value)
        super().__init__(f"Invalid identifier for {field_name}: {value!r}")


class InvalidAmountError(ValidationError):
    code: str = "INVALID_AMOUNT"

    def __init__(self, amount: Decimal | str, reason: str):
        self.amount = str(amount)
        self.reason = reason
        super().__init__(f"Invalid amount {amount}: {reason}")


class InvalidRateError(ValidationError):
    code: str = "INVALID_RATE"

    def __init__(self, rate: Decimal | str):
        self.rate = str(rate)
        super().__init__(f"Rate {rate} must be between 0 and 100")


class MissingReasonError(ValidationError):
    code: str = "MISSING_REASON"

    def __init__(self, action: str):
        self.action = action
        super().__init__(f"A reason is required to {action}")


# =============================================================================
# Upstream
# =============================================================================


class UpstreamUnavailableError(SettlementKernelError):
    """The backing store failed or timed out."""

    code: str = "UPSTREAM_UNAVAILABLE"

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Store unavailable during {operation}: {reason}")
