"""
Fiscal Calendar Utility

Fiscal years start in April:
    Q1 = Apr-Jun, Q2 = Jul-Sep, Q3 = Oct-Dec   (calendar year == fiscal year)
    Q4 = Jan-Mar                             (calendar year == fiscal year + 1)

Usage:
    months = quarter_months(2025, 4)
    # [CalendarMonth(2026, 1), CalendarMonth(2026, 2), CalendarMonth(2026, 3)]
"""

import calendar
import logging
from dataclasses import dataclass
from datetime import date
from typing import List, Optional

logger = logging.getLogger(__name__)

FISCAL_YEAR_START_MONTH = 4
MONTH_ABBREVS = [
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
]


def days_in_month(year: int, month: int) -> int:
    """Actual calendar length of a month (28-31)."""
    return calendar.monthrange(year, month)[1]


@dataclass(frozen=True)
class CalendarMonth:
    """A calendar year/month pair."""
    year: int
    month: int

    def __post_init__(self):
        if not (1 <= self.month <= 12):
            raise ValueError(f"Month must be between 1 and 12: {self.month}")

    @property
    def days(self) -> int:
        return days_in_month(self.year, self.month)

    @property
    def first_day(self) -> date:
        return date(self.year, self.month, 1)

    @property
    def last_day(self) -> date:
        return date(self.year, self.month, self.days)

    @property
    def display(self) -> str:
        return f"{MONTH_ABBREVS[self.month - 1]} {self.year}"


@dataclass(frozen=True)
class FiscalQuarter:
    """A fiscal year/quarter pair."""
    fiscal_year: int
    quarter: int

    def __post_init__(self):
        if not (1 <= self.quarter <= 4):
            raise ValueError(f"Invalid quarter: {self.quarter}. Must be 1-4.")

    @property
    def months(self) -> List[CalendarMonth]:
        """The three calendar months of the quarter, in order."""
        # Fiscal month offset from April: Q1 -> 0, Q2 -> 3, Q3 -> 6, Q4 -> 9
        start_index = (FISCAL_YEAR_START_MONTH - 1) + (self.quarter - 1) * 3
        result = []
        for i in range(3):
            total = start_index + i
            result.append(
                CalendarMonth(year=self.fiscal_year + total // 12, month=total % 12 + 1)
            )
        return result

    @property
    def start_date(self) -> date:
        return self.months[0].first_day

    @property
    def end_date(self) -> date:
        return self.months[-1].last_day

    @property
    def label(self) -> str:
        return f"FY{self.fiscal_year} Q{self.quarter}"

    def contains(self, d: date) -> bool:
        return self.start_date <= d <= self.end_date

    def next(self) -> "FiscalQuarter":
        if self.quarter == 4:
            return FiscalQuarter(self.fiscal_year + 1, 1)
        return FiscalQuarter(self.fiscal_year, self.quarter + 1)

    def previous(self) -> "FiscalQuarter":
        if self.quarter == 1:
            return FiscalQuarter(self.fiscal_year - 1, 4)
        return FiscalQuarter(self.fiscal_year, self.quarter - 1)


def fiscal_quarter_for_date(d: date) -> FiscalQuarter:
    """Fiscal quarter containing a calendar date."""
    fiscal_month_index = (d.month - FISCAL_YEAR_START_MONTH) % 12  # Apr=0 .. Mar=11
    fiscal_year = d.year if d.month >= FISCAL_YEAR_START_MONTH else d.year - 1
    return FiscalQuarter(fiscal_year=fiscal_year, quarter=fiscal_month_index // 3 + 1)


def current_fiscal_quarter(today: Optional[date] = None) -> FiscalQuarter:
    return fiscal_quarter_for_date(today or date.today())


def quarter_months(
    fiscal_year: Optional[int] = None,
    fiscal_quarter: Optional[int] = None,
    today: Optional[date] = None,
) -> List[CalendarMonth]:
    """
    Resolve the three calendar months of a fiscal quarter.

    Args:
        fiscal_year: Fiscal year (defaults to the current fiscal year)
        fiscal_quarter: 1-4 (defaults to the current quarter number, inside
            fiscal_year when one is given)
        today: Reference date for the defaults (default: date.today())

    Returns:
        Three CalendarMonth values in chronological order
    """
    current = current_fiscal_quarter(today)

    try:
        quarter = int(fiscal_quarter) if fiscal_quarter is not None else current.quarter
        year = int(fiscal_year) if fiscal_year is not None else current.fiscal_year
        return FiscalQuarter(fiscal_year=year, quarter=quarter).months
    except (TypeError, ValueError):
        logger.warning(
            f"Invalid fiscal period FY{fiscal_year} Q{fiscal_quarter}; "
            f"using current quarter {current.label}"
        )
        return current.months
