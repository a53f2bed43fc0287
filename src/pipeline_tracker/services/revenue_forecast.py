# src/pipeline_tracker/services/revenue_forecast.py
"""
Revenue Forecast Calculator

Replicates the sales sheet formulas:

    day_gross   = max_gross / 30
    day_net_rev = day_gross * revenue_share / 100
    gross[m]    = IF(status IN [D,E,F], 0, day_gross * progress% * delivery_days[m])
    net[m]      = IF(status IN [D,E,F], 0, day_net_rev * progress% * delivery_days[m])
    q_gross     = SUM(gross[m1..m3])

Each month is rounded to cents (half-up, like the sheet's ROUND), the rounded
months are summed and the totals rounded once more.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pipeline_tracker.models.pipeline import MonthlyForecast
from pipeline_tracker.services.delivery_days import quarterly_delivery_days
from pipeline_tracker.services.status_progress import (
    is_zero_revenue_status,
    progress_from_status,
)
from pipeline_tracker.utils.fiscal_calendar import days_in_month, quarter_months

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
DAYS_PER_RATE_PERIOD = 30
CONSISTENCY_TOLERANCE = 1.0

BREAKDOWN_SLOTS = ("first_month", "middle_month", "last_month")


def round_currency(value: Any) -> float:
    """
    Round to cents with half-up semantics.

    Values that cannot be represented in cents (infinite, NaN or too many
    digits) round to 0 with a warning.
    """
    amount = _decimal(value)
    if not amount.is_finite():
        logger.warning(f"Non-finite amount {value!r}; using 0")
        return 0.0
    try:
        return float(amount.quantize(CENT, rounding=ROUND_HALF_UP))
    except InvalidOperation:
        logger.warning(f"Amount {value!r} is out of range; using 0")
        return 0.0


def _decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return Decimal(0)


def _optional_number(value: Any, name: str) -> Optional[float]:
    """Parse a numeric input; blank is None, garbage is None with a warning."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        logger.warning(f"Non-numeric {name} value {value!r}; treating as missing")
        return None
    if not math.isfinite(number):
        logger.warning(f"Non-finite {name} value {value!r}; treating as missing")
        return None
    return number


def _field(source: Any, name: str) -> Any:
    if isinstance(source, dict):
        return source.get(name)
    return getattr(source, name, None)


# ===================================================================
# RATE DERIVATION
# ===================================================================

def derive_max_gross(max_gross: Any, imp: Any = None, ecpm: Any = None) -> Optional[float]:
    """
    Monthly maximum gross: the supplied value, else (imp / 1000) * ecpm.

    A zero max_gross is treated like a missing one when impressions and eCPM
    are available.
    """
    supplied = _optional_number(max_gross, "max_gross")
    if supplied:
        return supplied

    impressions = _optional_number(imp, "imp")
    rate = _optional_number(ecpm, "ecpm")
    if impressions is not None and rate is not None:
        derived = impressions / 1000 * rate
        if math.isfinite(derived):
            return derived
        logger.warning(f"Derived max_gross overflowed for imp={imp!r} ecpm={ecpm!r}")
        return None

    return supplied


def daily_rates(max_gross: Any, revenue_share: Any) -> Tuple[Optional[float], Optional[float]]:
    """
    Unrounded (day_gross, day_net_rev) for a monthly max gross.

    Returns (None, None) when max_gross is unknown; day_net_rev is None when
    the revenue share is unknown.
    """
    gross = _optional_number(max_gross, "max_gross")
    if gross is None:
        return None, None

    day_gross = gross / DAYS_PER_RATE_PERIOD
    share = _optional_number(revenue_share, "revenue_share")
    day_net_rev = day_gross * share / 100 if share is not None else None
    return day_gross, day_net_rev


# ===================================================================
# RESULT
# ===================================================================

@dataclass
class RevenueForecast:
    """Calculated quarter: three months plus totals and the daily rates."""
    monthly: List[MonthlyForecast]
    q_gross: float
    q_net_rev: float
    progress_percent: int
    day_gross: Optional[float] = None
    day_net_rev: Optional[float] = None
    max_gross: Optional[float] = None
    zero_revenue: bool = False
    warnings: List[str] = field(default_factory=list)

    @property
    def quarterly_breakdown(self) -> Dict[str, Dict[str, float]]:
        gross = {slot: 0.0 for slot in BREAKDOWN_SLOTS}
        net = {slot: 0.0 for slot in BREAKDOWN_SLOTS}
        for slot, month in zip(BREAKDOWN_SLOTS, self.monthly):
            gross[slot] = month.gross_revenue
            net[slot] = month.net_revenue
        return {"gross": gross, "net": net}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "monthly_forecasts": [m.to_dict() for m in self.monthly],
            "q_gross": self.q_gross,
            "q_net_rev": self.q_net_rev,
            "progress_percent": self.progress_percent,
            "day_gross": self.day_gross,
            "day_net_rev": self.day_net_rev,
            "max_gross": self.max_gross,
            "zero_revenue": self.zero_revenue,
            "metadata": {"quarterly_breakdown": self.quarterly_breakdown},
            "warnings": list(self.warnings),
        }


# ===================================================================
# CALCULATION
# ===================================================================

def calculate_monthly_revenue(
    months: Sequence[MonthlyForecast],
    day_gross: Optional[float],
    day_net_rev: Optional[float],
    status: Optional[str],
) -> RevenueForecast:
    """
    Apply the monthly revenue formula to caller-supplied months.

    A month with delivery_days None counts as the full calendar month.
    Missing daily rates produce zero revenue for that side (gross or net).
    """
    progress = progress_from_status(status)
    multiplier = Decimal(progress) / 100
    zero_revenue = is_zero_revenue_status(status)

    gross_rate = _decimal(day_gross) if day_gross is not None else Decimal(0)
    net_rate = _decimal(day_net_rev) if day_net_rev is not None else Decimal(0)

    monthly = []
    for month in months:
        days = month.delivery_days
        if days is None:
            days = days_in_month(month.year, month.month)

        if zero_revenue:
            gross = net = Decimal(0)
        else:
            gross = gross_rate * multiplier * days
            net = net_rate * multiplier * days

        monthly.append(
            MonthlyForecast(
                year=month.year,
                month=month.month,
                delivery_days=month.delivery_days,
                gross_revenue=round_currency(gross),
                net_revenue=round_currency(net),
                pipeline_id=month.pipeline_id,
                notes=month.notes,
            )
        )

    q_gross = round_currency(sum((_decimal(m.gross_revenue) for m in monthly), Decimal(0)))
    q_net_rev = round_currency(sum((_decimal(m.net_revenue) for m in monthly), Decimal(0)))

    return RevenueForecast(
        monthly=monthly,
        q_gross=q_gross,
        q_net_rev=q_net_rev,
        progress_percent=progress,
        day_gross=round_currency(day_gross) if day_gross is not None else None,
        day_net_rev=round_currency(day_net_rev) if day_net_rev is not None else None,
        zero_revenue=zero_revenue,
    )


def forecast(pipeline: Any, today: Optional[date] = None) -> RevenueForecast:
    """
    Full quarterly forecast for a pipeline record (dataclass or dict).

    Never raises for bad inputs: unknown status uses the default progress,
    an unknown starting date counts full months and missing rates give zero.
    """
    months = quarter_months(
        _field(pipeline, "fiscal_year"),
        _field(pipeline, "fiscal_quarter"),
        today=today,
    )
    days = quarterly_delivery_days(_field(pipeline, "starting_date"), months)

    max_gross = derive_max_gross(
        _field(pipeline, "max_gross"), _field(pipeline, "imp"), _field(pipeline, "ecpm")
    )
    if max_gross is not None:
        day_gross, day_net_rev = daily_rates(max_gross, _field(pipeline, "revenue_share"))
    else:
        # No way to derive the rates; fall back to what is stored on the record
        day_gross = _optional_number(_field(pipeline, "day_gross"), "day_gross")
        day_net_rev = _optional_number(_field(pipeline, "day_net_rev"), "day_net_rev")

    pipeline_id = _field(pipeline, "id")
    skeleton = [
        MonthlyForecast(year=m.year, month=m.month, delivery_days=d, pipeline_id=pipeline_id)
        for m, d in zip(months, days)
    ]

    result = calculate_monthly_revenue(
        skeleton, day_gross, day_net_rev, _field(pipeline, "status")
    )
    result.max_gross = round_currency(max_gross) if max_gross is not None else None

    if day_gross is None:
        result.warnings.append("max_gross could not be derived; forecast is zero")
    elif day_net_rev is None:
        result.warnings.append("revenue_share is missing; net forecast is zero")

    logger.debug(
        f"Forecast for pipeline {pipeline_id}: "
        f"{[(m.year, m.month, m.delivery_days) for m in result.monthly]} "
        f"q_gross={result.q_gross} q_net_rev={result.q_net_rev}"
    )
    return result


def check_forecast_consistency(
    q_gross: Any,
    q_net_rev: Any,
    monthly: Sequence[Any],
    tolerance: float = CONSISTENCY_TOLERANCE,
) -> List[str]:
    """
    Compare stored quarterly totals with the sum of the monthly rows.

    Returns human-readable warnings; an empty list means consistent.
    """
    warnings = []

    if len(monthly) != 3:
        warnings.append(f"Expected 3 monthly forecasts, found {len(monthly)}")

    gross_sum = sum(float(_field(m, "gross_revenue") or 0) for m in monthly)
    net_sum = sum(float(_field(m, "net_revenue") or 0) for m in monthly)
    stored_gross = float(q_gross or 0)
    stored_net = float(q_net_rev or 0)

    if abs(stored_gross - gross_sum) > tolerance:
        warnings.append(
            f"q_gross {stored_gross:.2f} differs from monthly sum {gross_sum:.2f}"
        )
    if abs(stored_net - net_sum) > tolerance:
        warnings.append(
            f"q_net_rev {stored_net:.2f} differs from monthly sum {net_sum:.2f}"
        )
    return warnings
