"""
Ledger Invariants Contract.

These invariants are structural law for the collection ledger.  No
configuration value may switch them off.

This module exists solely to declare them explicitly.  Enforcement is
distributed across CycleService, LedgerService, the partial unique index on
cycles and the withdrawal immutability listeners.
"""

from enum import Enum, unique


@unique
class LedgerInvariant(str, Enum):
    """Non-configurable invariants enforced by the kernel."""

    ONE_ACTIVE_CYCLE = "one_active_cycle"
    """A person has at most one active cycle.  Enforced by CycleService and
    the ``uq_cycle_one_active_per_person`` partial unique index."""

    NON_NEGATIVE_BALANCE = "non_negative_balance"
    """A cycle total never drops below zero.  Enforced by
    CycleService.apply_delta and a CHECK constraint."""

    ONE_ENTRY_PER_DAY = "one_entry_per_day"
    """At most one collection row per (person, date); re-recording replaces
    it.  Enforced by LedgerService and a unique constraint."""

    DELTA_TOTALS = "delta_totals"
    """Cycle totals move by the difference between old and new amounts and
    are never recomputed from history by the write path."""

    ATOMIC_SETTLEMENT = "atomic_settlement"
    """A full withdrawal records the withdrawal, closes the cycle and opens
    its successor in one transaction."""

    CLOSED_CYCLE_SETTLED = "closed_cycle_settled"
    """Days belonging to a closed cycle cannot be recorded, skipped or
    undone."""

    WITHDRAWAL_IMMUTABILITY = "withdrawal_immutability"
    """Withdrawals are append-only.  Enforced by ORM listeners
    (collection_kernel.db.immutability)."""


ALL_LEDGER_INVARIANTS: frozenset[LedgerInvariant] = frozenset(LedgerInvariant)

# The kernel package may not import from these packages.
# This is enforced by tests/architecture/test_kernel_boundary.py.
FORBIDDEN_KERNEL_IMPORTS: tuple[str, ...] = (
    "collection_services",
    "collection_config",
)
