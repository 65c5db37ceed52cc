"""Database layer - engine, base classes, audit columns and money types."""

from market_kernel.db.base import UUID, AuditInfo, Base, UTCDateTime, UUIDString, not_deleted
from market_kernel.db.engine import create_tables, get_engine, get_session, session_scope
from market_kernel.db.types import Money, round_money, to_money

__all__ = [
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "Base",
    "AuditInfo",
    "not_deleted",
    "UTCDateTime",
    "UUIDString",
    "UUID",
    "Money",
    "round_money",
    "to_money",
]
