"""Database layer - engine, base classes, types, and immutability."""

from collection_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from collection_kernel.db.engine import Database
from collection_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from collection_kernel.db.types import MONEY_DECIMAL_PLACES, ZERO, Money, round_money

__all__ = [
    "Database",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "Money",
    "MONEY_DECIMAL_PLACES",
    "ZERO",
    "round_money",
    "register_immutability_listeners",
    "unregister_immutability_listeners",
]
