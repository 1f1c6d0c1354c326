"""Database layer - engine, base classes, types, and immutability."""

from closing_kernel.db.base import Base, TrackedBase, UUIDString
from closing_kernel.db.engine import create_tables, get_engine, get_session, session_scope
from closing_kernel.db.types import ensure_utc, to_decimal

__all__ = [
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "ensure_utc",
    "to_decimal",
]
