"""Tests for per-month delivery day apportionment."""

from datetime import date, datetime

import pytest

from pipeline_tracker.services.delivery_days import delivery_days, quarterly_delivery_days
from pipeline_tracker.utils.fiscal_calendar import FiscalQuarter


@pytest.mark.parametrize(
    "starting_date, expected",
    [
        ("2025-04-15", 16),   # mid-month start counts the starting day
        ("2025-05-01", 0),    # starts after April
        ("2025-01-01", 30),   # started before April
        ("2025-04-01", 30),   # starts on the 1st
        ("2025-04-30", 1),    # starts on the last day
        (None, 30),           # unknown start: full month
        ("", 30),
        ("not-a-date", 30),
    ],
)
def test_delivery_days_april_2025(starting_date, expected):
    assert delivery_days(starting_date, 2025, 4) == expected


def test_accepts_date_datetime_and_timestamp_strings():
    assert delivery_days(date(2025, 4, 15), 2025, 4) == 16
    assert delivery_days(datetime(2025, 4, 15, 18, 30), 2025, 4) == 16
    assert delivery_days("2025-04-15T00:00:00Z", 2025, 4) == 16


def test_uses_real_month_lengths():
    assert delivery_days(None, 2025, 2) == 28
    assert delivery_days(None, 2024, 2) == 29
    assert delivery_days("2024-02-10", 2024, 2) == 20
    assert delivery_days("2025-01-20", 2025, 1) == 12


def test_result_is_bounded_by_month_length():
    for day in range(1, 32):
        result = delivery_days(date(2025, 5, day), 2025, 5)
        assert 0 <= result <= 31


def test_quarterly_delivery_days():
    months = FiscalQuarter(2025, 1).months
    assert quarterly_delivery_days("2025-05-10", months) == [0, 22, 30]
    assert quarterly_delivery_days(None, months) == [30, 31, 30]
    assert quarterly_delivery_days("2025-07-01", months) == [0, 0, 0]
