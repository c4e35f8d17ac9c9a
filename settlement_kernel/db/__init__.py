"""Database layer - engine, base classes, types, and immutability."""

from settlement_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from settlement_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session_factory,
    init_engine_from_url,
    session_scope,
)
from settlement_kernel.db.types import Currency, Money
from settlement_kernel.domain.values import round_money

__all__ = [
    "init_engine_from_url",
    "get_engine",
    "get_session_factory",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "Money",
    "Currency",
    "round_money",
]
