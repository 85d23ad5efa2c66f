"""
Date parsing and formatting for the ledger boundary.

Storage uses ISO ``YYYY-MM-DD``.  Screens accept ``DD-MM-YYYY``; those strings
are converted here before they reach a service.
"""

from __future__ import annotations

import calendar
import re
from datetime import date, datetime

from collection_kernel.exceptions import InvalidDateError

ISO_FORMAT = "YYYY-MM-DD"
DISPLAY_FORMAT = "DD-MM-YYYY"

_ISO_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_DISPLAY_RE = re.compile(r"^(\d{2})-(\d{2})-(\d{4})$")


def parse_iso_date(value: date | datetime | str, field: str = "date") -> date:
    """Coerce a date, datetime or ISO string into a ``date``."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if _ISO_RE.match(text):
            try:
                return date.fromisoformat(text)
            except ValueError:
                pass
    raise InvalidDateError(value, ISO_FORMAT, field=field)


def parse_display_date(value: str, field: str = "date") -> date:
    """Parse a ``DD-MM-YYYY`` string as typed on the withdrawal and adjust screens."""
    match = _DISPLAY_RE.match(value.strip()) if isinstance(value, str) else None
    if match is None:
        raise InvalidDateError(value, DISPLAY_FORMAT, field=field)
    day, month, year = (int(part) for part in match.groups())
    try:
        return date(year, month, day)
    except ValueError as exc:
        raise InvalidDateError(value, DISPLAY_FORMAT, field=field) from exc


def to_display_date(value: date) -> str:
    """Format a date as ``DD-MM-YYYY``."""
    return value.strftime("%d-%m-%Y")


def month_bounds(year: int, month: int) -> tuple[date, date]:
    """First and last day of a calendar month."""
    if not 1 <= month <= 12:
        raise InvalidDateError(f"{year}-{month}", "month 1-12", field="month")
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def previous_month(year: int, month: int) -> tuple[int, int]:
    if month == 1:
        return year - 1, 12
    return year, month - 1


def parse_boundary_date(value: date | datetime | str, field: str = "date") -> date:
    """Accept either storage (ISO) or display (``DD-MM-YYYY``) input."""
    if isinstance(value, str) and _DISPLAY_RE.match(value.strip()):
        return parse_display_date(value, field=field)
    return parse_iso_date(value, field=field)
