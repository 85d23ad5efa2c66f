"""Domain primitives: clock, dates, amounts, DTOs. No database access."""

from collection_kernel.domain.amounts import parse_amount, require_non_negative, require_positive
from collection_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from collection_kernel.domain.dates import (
    parse_boundary_date,
    parse_display_date,
    parse_iso_date,
    to_display_date,
)

__all__ = [
    "Clock",
    "SystemClock",
    "DeterministicClock",
    "parse_amount",
    "require_non_negative",
    "require_positive",
    "parse_iso_date",
    "parse_boundary_date",
    "parse_display_date",
    "to_display_date",
]
