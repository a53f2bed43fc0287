"""Tests for the quarterly revenue forecast engine."""

import logging
from datetime import date

import pytest

from pipeline_tracker.models.pipeline import MonthlyForecast
from pipeline_tracker.services.revenue_forecast import (
    calculate_monthly_revenue,
    check_forecast_consistency,
    daily_rates,
    derive_max_gross,
    forecast,
    round_currency,
)

TODAY = date(2025, 5, 1)


def _pipeline(**overrides):
    data = {
        "id": "p-1",
        "status": "【S】",
        "max_gross": 3000,
        "revenue_share": 50,
        "starting_date": "2025-04-01",
        "fiscal_year": 2025,
        "fiscal_quarter": 1,
    }
    data.update(overrides)
    return data


class TestRounding:
    @pytest.mark.parametrize(
        "value, expected",
        [(2.675, 2.68), (1.005, 1.01), (0.125, 0.13), (1033.3333, 1033.33), (0, 0.0)],
    )
    def test_round_currency_half_up(self, value, expected):
        assert round_currency(value) == expected

    @pytest.mark.parametrize("value", [float("inf"), float("nan"), 1e30])
    def test_unrepresentable_amount_rounds_to_zero(self, value, caplog):
        with caplog.at_level(logging.WARNING):
            assert round_currency(value) == 0.0
        assert "using 0" in caplog.text


class TestRates:
    def test_supplied_max_gross_wins(self):
        assert derive_max_gross(5000, 1000, 1) == 5000.0

    def test_max_gross_from_impressions(self):
        assert derive_max_gross(None, 100000, 2.5) == 250.0

    def test_zero_max_gross_is_derived_when_possible(self):
        assert derive_max_gross(0, 100000, 2.5) == 250.0

    def test_zero_max_gross_without_inputs_stays_zero(self):
        assert derive_max_gross(0) == 0.0

    def test_unknown_max_gross(self):
        assert derive_max_gross(None) is None
        assert derive_max_gross("", None, 3) is None

    def test_garbage_max_gross_logs_warning(self, caplog):
        with caplog.at_level(logging.WARNING):
            assert derive_max_gross("lots") is None
        assert "Non-numeric max_gross" in caplog.text

    @pytest.mark.parametrize("value", ["inf", float("-inf"), "nan"])
    def test_non_finite_max_gross_is_missing(self, value, caplog):
        with caplog.at_level(logging.WARNING):
            assert derive_max_gross(value) is None
        assert "Non-finite max_gross" in caplog.text

    def test_overflowing_impressions_are_missing(self):
        assert derive_max_gross(None, 1e300, 1e300) is None

    def test_daily_rates(self):
        assert daily_rates(3000, 50) == (100.0, 50.0)
        assert daily_rates(3000, None) == (100.0, None)
        assert daily_rates(None, 50) == (None, None)


class TestForecast:
    def test_full_quarter_closed_deal(self):
        result = forecast(_pipeline(), today=TODAY)

        assert [(m.year, m.month) for m in result.monthly] == [(2025, 4), (2025, 5), (2025, 6)]
        assert [m.delivery_days for m in result.monthly] == [30, 31, 30]
        assert [m.gross_revenue for m in result.monthly] == [3000.0, 3100.0, 3000.0]
        assert [m.net_revenue for m in result.monthly] == [1500.0, 1550.0, 1500.0]
        assert result.q_gross == 9100.0
        assert result.q_net_rev == 4550.0
        assert result.progress_percent == 100
        assert result.day_gross == 100.0
        assert result.day_net_rev == 50.0
        assert result.warnings == []

    def test_mid_month_start_with_partial_progress(self):
        result = forecast(_pipeline(status="【A】", starting_date="2025-04-15"), today=TODAY)

        assert [m.delivery_days for m in result.monthly] == [16, 31, 30]
        assert [m.gross_revenue for m in result.monthly] == [1280.0, 2480.0, 2400.0]
        assert [m.net_revenue for m in result.monthly] == [640.0, 1240.0, 1200.0]
        assert result.q_gross == 6160.0
        assert result.q_net_rev == 3080.0
        assert result.progress_percent == 80

    @pytest.mark.parametrize("status", ["【D】", "【E】", "【F】"])
    def test_zero_revenue_statuses(self, status):
        result = forecast(_pipeline(status=status), today=TODAY)
        assert result.zero_revenue
        assert result.q_gross == 0.0
        assert result.q_net_rev == 0.0
        assert all(m.gross_revenue == 0.0 for m in result.monthly)

    def test_quarterly_breakdown(self):
        result = forecast(_pipeline(), today=TODAY)
        assert result.quarterly_breakdown == {
            "gross": {"first_month": 3000.0, "middle_month": 3100.0, "last_month": 3000.0},
            "net": {"first_month": 1500.0, "middle_month": 1550.0, "last_month": 1500.0},
        }
        assert result.to_dict()["metadata"]["quarterly_breakdown"] == result.quarterly_breakdown

    def test_forecast_is_deterministic(self):
        first = forecast(_pipeline(status="【B】", starting_date="2025-05-20"), today=TODAY)
        second = forecast(_pipeline(status="【B】", starting_date="2025-05-20"), today=TODAY)
        assert first.to_dict() == second.to_dict()

    def test_quarter_totals_match_rounded_months(self):
        result = forecast(
            _pipeline(status="【C】", max_gross=1234.56, revenue_share=37.5, starting_date="2025-05-07"),
            today=TODAY,
        )
        assert result.q_gross == round_currency(sum(m.gross_revenue for m in result.monthly))
        assert result.q_net_rev == round_currency(sum(m.net_revenue for m in result.monthly))

    def test_non_integral_daily_rate(self):
        result = forecast(_pipeline(max_gross=1000), today=TODAY)
        assert [m.gross_revenue for m in result.monthly] == [1000.0, 1033.33, 1000.0]
        assert result.q_gross == 3033.33

    def test_falls_back_to_stored_daily_rates(self):
        result = forecast(
            _pipeline(max_gross=None, revenue_share=None, day_gross=100, day_net_rev=40),
            today=TODAY,
        )
        assert [m.gross_revenue for m in result.monthly] == [3000.0, 3100.0, 3000.0]
        assert [m.net_revenue for m in result.monthly] == [1200.0, 1240.0, 1200.0]

    def test_missing_revenue_share_zeroes_net_only(self):
        result = forecast(_pipeline(revenue_share=None), today=TODAY)
        assert result.q_gross == 9100.0
        assert result.q_net_rev == 0.0
        assert "revenue_share is missing" in result.warnings[0]

    @pytest.mark.parametrize("max_gross", [1e30, "inf", "nan"])
    def test_unusable_max_gross_never_raises(self, max_gross):
        result = forecast(_pipeline(max_gross=max_gross), today=TODAY)
        assert result.q_gross == 0.0
        assert result.q_net_rev == 0.0
        assert len(result.monthly) == 3

    def test_missing_rates_give_zero_with_warning(self):
        result = forecast(_pipeline(max_gross=None), today=TODAY)
        assert result.q_gross == 0.0
        assert result.q_net_rev == 0.0
        assert result.warnings

    def test_missing_fiscal_period_uses_current_quarter(self):
        result = forecast(
            _pipeline(fiscal_year=None, fiscal_quarter=None, starting_date=None),
            today=date(2026, 2, 10),
        )
        assert [(m.year, m.month) for m in result.monthly] == [(2026, 1), (2026, 2), (2026, 3)]
        assert [m.delivery_days for m in result.monthly] == [31, 28, 31]

    def test_accepts_attribute_objects(self, pipeline_data):
        from pipeline_tracker.models.pipeline import Pipeline

        pipeline = Pipeline(**pipeline_data)
        result = forecast(pipeline, today=TODAY)
        assert result.q_gross == 6160.0


class TestManualMonths:
    def test_missing_delivery_days_counts_full_month(self):
        months = [MonthlyForecast(year=2025, month=2, delivery_days=None)]
        result = calculate_monthly_revenue(months, 10, 5, "【S】")
        assert result.monthly[0].gross_revenue == 280.0
        assert result.monthly[0].net_revenue == 140.0
        assert result.monthly[0].delivery_days is None

    def test_supplied_days_are_used(self):
        months = [
            MonthlyForecast(year=2025, month=4, delivery_days=10),
            MonthlyForecast(year=2025, month=5, delivery_days=0),
        ]
        result = calculate_monthly_revenue(months, 100, 50, "【B】")
        assert [m.gross_revenue for m in result.monthly] == [600.0, 0.0]
        assert result.q_gross == 600.0
        assert result.q_net_rev == 300.0


class TestConsistency:
    def _months(self, gross, net):
        return [
            MonthlyForecast(year=2025, month=4 + i, delivery_days=30, gross_revenue=g, net_revenue=n)
            for i, (g, n) in enumerate(zip(gross, net))
        ]

    def test_consistent_totals(self):
        months = self._months([3000, 3100, 3000], [1500, 1550, 1500])
        assert check_forecast_consistency(9100, 4550, months) == []

    def test_small_drift_within_tolerance(self):
        months = self._months([3000, 3100, 3000], [1500, 1550, 1500])
        assert check_forecast_consistency(9100.5, 4550, months) == []

    def test_gross_mismatch(self):
        months = self._months([3000, 3100, 3000], [1500, 1550, 1500])
        warnings = check_forecast_consistency(9500, 4550, months)
        assert len(warnings) == 1
        assert "q_gross" in warnings[0]

    def test_wrong_month_count(self):
        months = self._months([3000, 3100], [1500, 1550])
        warnings = check_forecast_consistency(6100, 3050, months)
        assert warnings == ["Expected 3 monthly forecasts, found 2"]

    def test_accepts_dict_rows(self):
        rows = [{"gross_revenue": 10, "net_revenue": 5}] * 3
        assert check_forecast_consistency(30, 15, rows) == []
