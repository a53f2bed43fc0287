"""
Date parsing and spreadsheet date serialization helpers.
"""

import logging
from datetime import date, datetime
from typing import Any, Optional, Union

logger = logging.getLogger(__name__)

# Spreadsheet day zero (Lotus 1-2-3 leap year bug included)
EXCEL_EPOCH = date(1899, 12, 30)

DateLike = Union[date, datetime, str, None]


def coerce_date(value: Any) -> Optional[date]:
    """
    Convert a date-like value to a date.

    Accepts date, datetime and ISO strings ("2025-04-15", "2025-04-15T00:00:00Z",
    "2025-04-15 09:30"). Only the part before a "T" or space separator is
    parsed; blank or unparseable input returns None.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    if not text:
        return None

    try:
        return date.fromisoformat(text.split("T", 1)[0].split(" ", 1)[0])
    except ValueError:
        logger.warning(f"Unparseable date value: {value!r}")
        return None


def to_excel_serial(value: DateLike) -> Optional[int]:
    """Days since 1899-12-30, the spreadsheet date serial."""
    d = coerce_date(value)
    if d is None:
        return None
    return (d - EXCEL_EPOCH).days


def from_excel_serial(serial: Union[int, float]) -> date:
    """Inverse of to_excel_serial; fractional (time) parts are dropped."""
    return date.fromordinal(EXCEL_EPOCH.toordinal() + int(serial))
