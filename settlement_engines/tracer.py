"""
``@traced_engine``: one SETTLEMENT_ENGINE_TRACE record per engine call.

The record names the engine and its version, carries a short fingerprint
of the selected keyword inputs (so two runs over the same aggregates can be
matched in the logs), the duration, and whether the call raised.  The
wrapped function's arguments and result pass through untouched.

Fingerprint: SHA-256 over the canonical JSON of the selected kwargs
(sorted keys, Decimals and UUIDs as strings), first 16 hex characters.
Kwargs that were not passed hash as ``null``.
"""

from __future__ import annotations

import functools
import hashlib
import json
import logging
import time
from collections.abc import Callable, Iterable, Mapping
from typing import Any

_logger = logging.getLogger("settlement_kernel.engines.tracer")

TRACE_MESSAGE = "SETTLEMENT_ENGINE_TRACE"


def _jsonable(value: Any) -> Any:
    if isinstance(value, (set, frozenset)):
        return sorted(str(v) for v in value)
    return str(value)


def input_fingerprint(fields: Iterable[str], kwargs: Mapping[str, Any]) -> str:
    selected = {name: kwargs.get(name) for name in fields}
    canonical = json.dumps(selected, sort_keys=True, default=_jsonable)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            started = time.perf_counter()
            outcome = "error"
            try:
                result = func(*args, **kwargs)
                outcome = "ok"
                return result
            finally:
                _logger.info(
                    TRACE_MESSAGE,
                    extra={
                        "trace_type": TRACE_MESSAGE,
                        "engine_name": engine_name,
                        "engine_version": engine_version,
                        "function": func.__qualname__,
                        "input_fingerprint": (
                            input_fingerprint(fingerprint_fields, kwargs) if fingerprint_fields else ""
                        ),
                        "outcome": outcome,
                        "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                    },
                )

        return wrapper

    return decorator
