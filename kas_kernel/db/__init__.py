"""Database layer - engine, declarative base, column types and ORM hooks."""

from kas_kernel.db.base import UUID, AwareDateTime, Base, UUIDString
from kas_kernel.db.engine import build_engine, create_tables, session_scope

__all__ = [
    "AwareDateTime",
    "Base",
    "UUID",
    "UUIDString",
    "build_engine",
    "create_tables",
    "session_scope",
]
