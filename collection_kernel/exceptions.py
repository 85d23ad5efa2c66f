"""
Typed Exception Hierarchy for the Collection Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (screens, the backup tool, tests) must react to ledger failures
precisely: "nothing to withdraw" is a different message from "amount is more
than the cycle holds". Parsing message strings for that is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (the offending id or value)

Example:
    try:
        ledger.process_partial_withdrawal(person_id, Decimal("600"))
    except InsufficientBalanceError as e:
        show(f"Only {e.available} is available")   # Structured data
        log.info("rejected", extra={"code": e.code})

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    CollectionKernelError (base)
    |
    +-- NotFoundError
    |   +-- PersonNotFoundError
    |   +-- CycleNotFoundError
    |
    +-- CycleError
    |   +-- NoActiveCycleError
    |   +-- MultipleActiveCyclesError
    |   +-- ClosedCycleError
    |
    +-- BalanceError
    |   +-- InsufficientBalanceError
    |   +-- NegativeBalanceError
    |
    +-- InvalidInputError
    |   +-- InvalidAmountError
    |   +-- InvalidDateError
    |
    +-- ImmutabilityViolationError
    +-- StorageFailureError
    +-- ImportFormatError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Lookup          | PERSON_NOT_FOUND            | Person ID doesn't exist
                | CYCLE_NOT_FOUND             | Cycle ID doesn't exist
----------------|-----------------------------|-----------------------------------------
Cycle           | NO_ACTIVE_CYCLE             | Withdrawal with no open cycle
                | MULTIPLE_ACTIVE_CYCLES      | More than one open cycle for a person
                | CLOSED_CYCLE                | Changing a day already settled
----------------|-----------------------------|-----------------------------------------
Balance         | INSUFFICIENT_BALANCE        | Partial withdrawal > cycle total
                | NEGATIVE_BALANCE            | Operation would drive total below 0
----------------|-----------------------------|-----------------------------------------
Input           | INVALID_AMOUNT              | Malformed / negative / non-positive amount
                | INVALID_DATE                | Malformed date string
                | INVALID_INPUT               | Other field validation failures
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Update/delete of a Withdrawal
----------------|-----------------------------|-----------------------------------------
Storage         | STORAGE_FAILURE             | Underlying database error
Import          | IMPORT_FORMAT_ERROR         | Backup payload has the wrong shape

===============================================================================
DESIGN DECISIONS
===============================================================================

1. Domain exceptions inherit from Exception, not ValueError/KeyError, so that
   they can be caught as a group without catching programming errors.

2. ``code`` is a class attribute: ``NoActiveCycleError.code`` is usable
   without an instance.

3. Context is stored as attributes, never only in the message.
===============================================================================
"""

from __future__ import annotations

from decimal import Decimal


class CollectionKernelError(Exception):
    """
    Base exception for all collection kernel errors.

    All subclasses must have a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "COLLECTION_KERNEL_ERROR"


# Lookup exceptions


class NotFoundError(CollectionKernelError):
    """Base exception for missing records."""

    code: str = "NOT_FOUND"


class PersonNotFoundError(NotFoundError):
    """Person with given ID was not found."""

    code: str = "PERSON_NOT_FOUND"

    def __init__(self, person_id: str):
        self.person_id = person_id
        super().__init__(f"Person not found: {person_id}")


class CycleNotFoundError(NotFoundError):
    """Cycle with given ID was not found."""

    code: str = "CYCLE_NOT_FOUND"

    def __init__(self, cycle_id: str):
        self.cycle_id = cycle_id
        super().__init__(f"Cycle not found: {cycle_id}")


# Cycle lifecycle exceptions


class CycleError(CollectionKernelError):
    """Base exception for cycle lifecycle errors."""

    code: str = "CYCLE_ERROR"


class NoActiveCycleError(CycleError):
    """Person has no open cycle to withdraw from."""

    code: str = "NO_ACTIVE_CYCLE"

    def __init__(self, person_id: str):
        self.person_id = person_id
        super().__init__(f"No active cycle for person {person_id}")


class MultipleActiveCyclesError(CycleError):
    """
    More than one open cycle exists for a person.

    This is a data corruption signal; the ledger never produces it.
    """

    code: str = "MULTIPLE_ACTIVE_CYCLES"

    def __init__(self, person_id: str, count: int):
        self.person_id = person_id
        self.count = count
        super().__init__(
            f"Person {person_id} has {count} active cycles (expected at most 1)"
        )


class ClosedCycleError(CycleError):
    """The collection for this date belongs to a cycle that was already withdrawn."""

    code: str = "CLOSED_CYCLE"

    def __init__(self, cycle_id: str, on_date: str):
        self.cycle_id = cycle_id
        self.on_date = on_date
        super().__init__(
            f"Collection on {on_date} belongs to closed cycle {cycle_id} "
            "and cannot be changed"
        )


# Balance exceptions


class BalanceError(CollectionKernelError):
    """Base exception for cycle balance violations."""

    code: str = "BALANCE_ERROR"


class InsufficientBalanceError(BalanceError):
    """Partial withdrawal exceeds the current cycle total."""

    code: str = "INSUFFICIENT_BALANCE"

    def __init__(self, cycle_id: str, requested: Decimal, available: Decimal):
        self.cycle_id = cycle_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Withdrawal of {requested} exceeds cycle {cycle_id} total {available}"
        )


class NegativeBalanceError(BalanceError):
    """An operation would leave a cycle total below zero."""

    code: str = "NEGATIVE_BALANCE"

    def __init__(self, cycle_id: str, current: Decimal, delta: Decimal):
        self.cycle_id = cycle_id
        self.current = current
        self.delta = delta
        super().__init__(
            f"Applying {delta} to cycle {cycle_id} (total {current}) "
            "would make the total negative"
        )


# Input validation exceptions


class InvalidInputError(CollectionKernelError):
    """A field supplied by the caller failed validation."""

    code: str = "INVALID_INPUT"

    def __init__(self, field: str, value: object, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {field} {value!r}: {reason}")


class InvalidAmountError(InvalidInputError):
    """Amount is malformed, negative, or otherwise unacceptable."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, value: object, reason: str, field: str = "amount"):
        super().__init__(field, value, reason)


class InvalidDateError(InvalidInputError):
    """Date string could not be parsed."""

    code: str = "INVALID_DATE"

    def __init__(self, value: object, expected_format: str, field: str = "date"):
        self.expected_format = expected_format
        super().__init__(field, value, f"expected {expected_format}")


# Immutability exceptions


class ImmutabilityViolationError(CollectionKernelError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )


# Storage exceptions


class StorageFailureError(CollectionKernelError):
    """
    The underlying database raised an error.

    Always chained (``raise ... from``) to the original SQLAlchemy error.
    """

    code: str = "STORAGE_FAILURE"

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Storage failure during {operation}: {detail}")


# Backup / restore exceptions


class ImportFormatError(CollectionKernelError):
    """Backup payload is missing required structure."""

    code: str = "IMPORT_FORMAT_ERROR"

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Invalid backup at {path}: {reason}")
