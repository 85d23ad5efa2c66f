"""
ORM-Level Immutability Enforcement for withdrawals.

===============================================================================
WHY THIS EXISTS
===============================================================================

A withdrawal is a settlement: cash physically left the collector's hands.
Editing or deleting one after the fact would make cycle totals impossible to
explain, so withdrawals form an append-only trail.

SQLAlchemy fires events before UPDATE/DELETE operations reach the database.
We register listeners that intercept these events:

    session.flush()
         |
         v
    [before_update event] --> _check_withdrawal_immutability() --> ImmutabilityViolationError
         |
         v
    [before_delete event] --> _check_withdrawal_delete() ---------> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

If a check fails the flush aborts and the enclosing transaction rolls back.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity      | When Immutable        | Why
------------|-----------------------|------------------------------------------
Withdrawal  | ALWAYS (from creation)| Settlement history must stay explainable

Bulk ``delete(Withdrawal)`` statements do not pass through mapper events.
The destructive restore relies on that; nothing else issues bulk deletes.
"""

from sqlalchemy import event

from collection_kernel.exceptions import ImmutabilityViolationError
from collection_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _check_withdrawal_immutability(mapper, connection, target):
    """Prevent any updates to Withdrawal records."""
    from collection_kernel.models.withdrawal import Withdrawal

    if not isinstance(target, Withdrawal):
        return

    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "Withdrawal",
            "entity_id": str(target.id),
            "attempted_operation": "UPDATE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type="Withdrawal",
        entity_id=str(target.id),
        reason="Withdrawals are immutable and cannot be modified",
    )


def _check_withdrawal_delete(mapper, connection, target):
    """Prevent deletion of Withdrawal records."""
    from collection_kernel.models.withdrawal import Withdrawal

    if not isinstance(target, Withdrawal):
        return

    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "Withdrawal",
            "entity_id": str(target.id),
            "attempted_operation": "DELETE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type="Withdrawal",
        entity_id=str(target.id),
        reason="Withdrawals cannot be deleted",
    )


def register_immutability_listeners() -> None:
    """
    Register all immutability enforcement event listeners.

    Idempotent: registering twice does not install duplicate listeners.
    Call this after models are importable but before ledger operations begin.
    """
    from collection_kernel.models.withdrawal import Withdrawal

    if not event.contains(Withdrawal, "before_update", _check_withdrawal_immutability):
        event.listen(Withdrawal, "before_update", _check_withdrawal_immutability)
    if not event.contains(Withdrawal, "before_delete", _check_withdrawal_delete):
        event.listen(Withdrawal, "before_delete", _check_withdrawal_delete)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners() -> None:
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests where you need to intentionally
    violate immutability rules to verify detection.
    """
    from collection_kernel.models.withdrawal import Withdrawal

    _safe_remove_listener(Withdrawal, "before_update", _check_withdrawal_immutability)
    _safe_remove_listener(Withdrawal, "before_delete", _check_withdrawal_delete)
