"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Common constructor (session + injected clock) and the translation of
    store failures into UpstreamUnavailableError.

Architecture position:
    Kernel > Services -- imperative shell.  Every write service extends
    this class.

Invariants enforced:
    - Services flush within the caller's transaction and never commit or
      rollback the outer transaction.  The caller (session_scope, CLI,
      test harness) owns commit/rollback.
    - Connectivity failures, statement timeouts and pool exhaustion
      surface as UpstreamUnavailableError, never as raw driver errors.
"""

from abc import ABC
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session

from settlement_kernel.domain.clock import Clock, SystemClock
from settlement_kernel.exceptions import UpstreamUnavailableError


class BaseService(ABC):
    """
    Abstract base class for all kernel services.

    Contract:
        Accepts a SQLAlchemy ``Session`` from the caller and persists
        changes with ``session.flush()``.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Read-only queries belong in ``settlement_kernel/selectors/``.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self._clock = clock or SystemClock()

    @contextmanager
    def _store_call(self, operation: str) -> Iterator[None]:
        """Map store outages raised inside the block to UpstreamUnavailableError."""
        try:
            yield
        except (OperationalError, InterfaceError, PoolTimeoutError) as exc:
            reason = str(getattr(exc, "orig", None) or exc)
            raise UpstreamUnavailableError(operation, reason) from exc
