"""Database layer - engine, base classes and types."""

from settlement_kernel.db.base import Base, TrackedBase, UUIDString
from settlement_kernel.db.engine import create_tables, get_engine, get_session, session_scope
from settlement_kernel.db.types import Money, round_money

__all__ = [
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "Money",
    "round_money",
]
