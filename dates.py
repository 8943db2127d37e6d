# dates.py
# =============================================================================
# Canonical YYYY-MM-DD handling shared by the writer, the reader and the API.
# Calendar days are always taken from LOCAL components, never from the UTC
# instant, so a late-evening date never slides into the neighbouring day.
# =============================================================================

from __future__ import annotations

import re
from datetime import date, datetime
from typing import Optional, Union

DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
DATE_FORMAT = "%Y-%m-%d"

# Hour used when turning a calendar day back into a point in time.
ANCHOR_HOUR = 12


def validate_date_str(v: str) -> str:
    if not isinstance(v, str) or not DATE_RE.match(v):
        raise ValueError("date must be YYYY-MM-DD format")
    try:
        datetime.strptime(v, DATE_FORMAT)
    except ValueError:
        raise ValueError("date is not a valid calendar date")
    return v


def is_date_str(v: Optional[str]) -> bool:
    try:
        validate_date_str(v)  # type: ignore[arg-type]
    except ValueError:
        return False
    return True


def to_date_string(value: Union[date, datetime]) -> str:
    """Render a date or datetime as YYYY-MM-DD using its local calendar day.

    Aware datetimes are converted to the host's local timezone first; naive
    datetimes and plain dates are taken as already local.
    """
    if isinstance(value, datetime) and value.tzinfo is not None:
        value = value.astimezone()
    return f"{value.year:04d}-{value.month:02d}-{value.day:02d}"


def from_date_string(value: str) -> datetime:
    """Parse YYYY-MM-DD into an aware local datetime anchored at midday."""
    validate_date_str(value)
    year, month, day = (int(p) for p in value.split("-"))
    return datetime(year, month, day, ANCHOR_HOUR).astimezone()


def today_str() -> str:
    return to_date_string(datetime.now())


def resolve_date_param(value: Optional[str]) -> str:
    """Honor an externally supplied date filter only if it is canonical."""
    if value is not None and is_date_str(value):
        return value
    return today_str()
