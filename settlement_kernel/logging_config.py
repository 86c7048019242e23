"""
Structured JSON logging for the settlement kernel.

Every record under the ``settlement_kernel`` logger tree is rendered as one
JSON object per line:

    {"ts": ..., "level": "INFO", "logger": "settlement_kernel.services.ledger",
     "message": "ledger_entry_created", "tenant_id": ..., "amount": "100.00"}

Three sources feed a line, in this order of precedence:

1. the fixed header (ts, level, logger, message);
2. request fields bound with ``LogContext`` (tenant, settlement, actor,
   period, correlation id);
3. the ``extra=`` mapping passed at the call site.

Exceptions logged with ``exc_info`` add ``exc_type``, ``exc_message``, the
kernel ``exc_code`` when present, every public attribute of the exception
as ``exc_<name>``, and the formatted traceback.
"""

__all__ = [
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from types import MappingProxyType
from typing import Any
from uuid import UUID

ROOT_LOGGER_NAME = "settlement_kernel"


# ---------------------------------------------------------------------------
# Request context
# ---------------------------------------------------------------------------

_CONTEXT_FIELDS = (
    "correlation_id",
    "tenant_id",
    "settlement_id",
    "actor_id",
    "period_start",
)

_EMPTY: Mapping[str, str] = MappingProxyType({})

# One immutable mapping per context; writers swap the whole mapping.
_bound: ContextVar[Mapping[str, str]] = ContextVar("settlement_log_context", default=_EMPTY)


def _merged(updates: Mapping[str, Any]) -> Mapping[str, str]:
    fields = dict(_bound.get())
    for name, value in updates.items():
        if name in _CONTEXT_FIELDS and value is not None:
            fields[name] = str(value)
    return MappingProxyType(fields)


class LogContext:
    """Request fields copied onto every record logged in the current context."""

    fields = _CONTEXT_FIELDS

    @classmethod
    def set(
        cls,
        *,
        correlation_id: Any = None,
        tenant_id: Any = None,
        settlement_id: Any = None,
        actor_id: Any = None,
        period_start: Any = None,
    ) -> None:
        """Add fields to the current context; ``None`` leaves a field as is."""
        _bound.set(
            _merged(
                {
                    "correlation_id": correlation_id,
                    "tenant_id": tenant_id,
                    "settlement_id": settlement_id,
                    "actor_id": actor_id,
                    "period_start": period_start,
                }
            )
        )

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_bound.get())

    @classmethod
    def clear(cls) -> None:
        _bound.set(_EMPTY)

    @staticmethod
    @contextmanager
    def bind(**fields: Any) -> Iterator[type["LogContext"]]:
        """Bind fields for the duration of a ``with`` block.

        UUIDs and dates may be passed as is.  Names outside ``LogContext.fields``
        are ignored.  The previous context is restored on exit.
        """
        token = _bound.set(_merged(fields))
        try:
            yield LogContext
        finally:
            _bound.reset(token)


# ---------------------------------------------------------------------------
# Formatter
# ---------------------------------------------------------------------------

_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


def _to_json(value: Any) -> Any:
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (set, frozenset)):
        return sorted(str(v) for v in value)
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    # SettlementKernelError subclasses carry ids and statuses as attributes
    for name, value in vars(exc).items():
        if name.startswith("_") or name in ("args", "code", "message"):
            continue
        fields[f"exc_{name}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """Render a LogRecord as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(_bound.get())

        for name, value in vars(record).items():
            if name not in _RECORD_ATTRS:
                payload.setdefault(name, value)

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_to_json)


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def get_logger(name: str) -> logging.Logger:
    """``get_logger("services.ledger")`` -> ``settlement_kernel.services.ledger``."""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


_setup_lock = threading.Lock()
_handler_installed = False


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Install one JSON handler on the kernel root logger.

    Only the first call has an effect until ``reset_logging()``.
    """
    global _handler_installed
    with _setup_lock:
        if _handler_installed:
            return
        _handler_installed = True

        if handler is None:
            handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(StructuredFormatter())

        root = logging.getLogger(ROOT_LOGGER_NAME)
        root.setLevel(level)
        root.propagate = False
        root.addHandler(handler)


def reset_logging() -> None:
    """Drop handlers and forget the configuration.  Tests only."""
    global _handler_installed
    with _setup_lock:
        _handler_installed = False
        root = logging.getLogger(ROOT_LOGGER_NAME)
        root.handlers.clear()
        root.setLevel(logging.WARNING)
