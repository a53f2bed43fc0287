# src/pipeline_tracker/services/delivery_days.py
"""
Delivery day apportionment.

A pipeline delivers from its starting date onward; each month of the
quarter contributes the number of days on or after that date.
"""

from typing import Any, List

from pipeline_tracker.utils.date_utils import coerce_date
from pipeline_tracker.utils.fiscal_calendar import CalendarMonth, days_in_month


def delivery_days(starting_date: Any, year: int, month: int) -> int:
    """
    Active delivery days of a pipeline within one calendar month.

    Args:
        starting_date: date, datetime, ISO string or None
        year: Calendar year
        month: Calendar month (1-12)

    Returns:
        0 when delivery starts after the month, the full month length when it
        starts on/before the 1st (or is unknown), otherwise the remaining days
        including the starting day.
    """
    month_days = days_in_month(year, month)
    start = coerce_date(starting_date)
    if start is None:
        return month_days

    month_start = CalendarMonth(year, month).first_day
    month_end = CalendarMonth(year, month).last_day

    if start > month_end:
        return 0
    if start <= month_start:
        return month_days
    return month_days - start.day + 1


def quarterly_delivery_days(starting_date: Any, months: List[CalendarMonth]) -> List[int]:
    return [delivery_days(starting_date, m.year, m.month) for m in months]
