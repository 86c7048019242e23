"""
Chunked batch execution with per-item SAVEPOINT isolation.

Responsibility:
    Run one callable per item so that a failing item rolls back only its
    own writes and the rest of the batch proceeds.  Items are processed
    in bounded chunks; the outcome reports ok/failed counts.

Architecture position:
    Kernel > Utils.  Used by services; never commits.

Invariants enforced:
    - Each item runs inside ``session.begin_nested()``.  A failure rolls
      back that SAVEPOINT only.
    - Items run sequentially on the caller's session (a Session is not
      safe to share across threads).

Failure modes:
    - Kernel and SQLAlchemy errors raised by an item are recorded as a
      failure of that item.  Anything else propagates.
"""

import time
from collections.abc import Callable, Iterable, Sequence
from typing import TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from settlement_kernel.domain.dtos import BatchOutcome
from settlement_kernel.exceptions import SettlementKernelError
from settlement_kernel.logging_config import get_logger

logger = get_logger("utils.batch")

T = TypeVar("T")

DEFAULT_CHUNK_SIZE = 20


def chunked(items: Sequence[T], size: int) -> Iterable[Sequence[T]]:
    if size < 1:
        raise ValueError(f"chunk size must be positive, got {size}")
    for start in range(0, len(items), size):
        yield items[start:start + size]


def run_isolated(
    session: Session,
    items: Sequence[T],
    action: Callable[[T], None],
    *,
    label: str,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    item_key: Callable[[T], str] = str,
) -> BatchOutcome:
    """Apply ``action`` to every item, each in its own SAVEPOINT."""
    ok = 0
    failed = 0
    errors: list[str] = []
    t0 = time.monotonic()

    for chunk in chunked(items, chunk_size):
        for item in chunk:
            savepoint = session.begin_nested()
            try:
                action(item)
                session.flush()
                savepoint.commit()
                ok += 1
            except (SettlementKernelError, SQLAlchemyError) as exc:
                savepoint.rollback()
                failed += 1
                errors.append(f"{item_key(item)}: {exc}")
                logger.warning(
                    "batch_item_failed",
                    extra={"batch": label, "item": item_key(item), "error": str(exc)},
                )

    logger.info(
        "batch_completed",
        extra={
            "batch": label,
            "ok": ok,
            "failed": failed,
            "chunk_size": chunk_size,
            "duration_ms": round((time.monotonic() - t0) * 1000, 2),
        },
    )
    return BatchOutcome(ok=ok, failed=failed, errors=tuple(errors))
