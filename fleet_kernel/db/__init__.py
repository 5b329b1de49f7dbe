"""Database layer - engine, base classes and column types."""

from fleet_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from fleet_kernel.db.engine import (
    build_engine,
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    session_scope,
)
from fleet_kernel.db.types import Amount, CurrencyCode, Rate

__all__ = [
    "Amount",
    "Base",
    "CurrencyCode",
    "Rate",
    "TrackedBase",
    "UUID",
    "UUIDString",
    "build_engine",
    "create_tables",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_engine_from_url",
    "session_scope",
]
