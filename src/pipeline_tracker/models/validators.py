"""
Business rule validators for pipeline create/update payloads.
Separated from data models for clean architecture.
"""

import math
from typing import Any, Dict, Optional

from pipeline_tracker.models.pipeline import (
    ForecastType,
    PipelineGroup,
    PipelineStage,
    ValidationResult,
)
from pipeline_tracker.utils.date_utils import coerce_date

NUMERIC_FIELDS = ("imp", "ecpm", "max_gross", "revenue_share")
# Keeps imp * ecpm within what the cent rounding can represent
MAX_NUMERIC_VALUE = 1e12
DATE_FIELDS = (
    "starting_date",
    "end_date",
    "proposal_date",
    "interested_date",
    "acceptance_date",
    "ready_to_deliver_date",
    "actual_starting_date",
    "close_won_date",
    "action_date",
)


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


class PipelineValidator:
    """Validates raw pipeline payloads before they reach the forecast engine."""

    def validate_create(self, data: Dict[str, Any]) -> ValidationResult:
        """Validate a full create payload."""
        result = ValidationResult()

        for required in ("publisher", "poc"):
            if _is_blank(data.get(required)):
                result.add_error(required, f"{required} is required", "REQUIRED_FIELD")

        if _is_blank(data.get("group")):
            result.add_error("group", "group is required", "REQUIRED_FIELD")

        if _is_blank(data.get("starting_date")):
            result.add_error("starting_date", "starting_date is required", "REQUIRED_FIELD")

        self._validate_formats(data, result)
        self._validate_date_order(data.get("starting_date"), data.get("end_date"), result)
        return result

    def validate_update(
        self, patch: Dict[str, Any], existing: Optional[Dict[str, Any]] = None
    ) -> ValidationResult:
        """
        Validate a partial update.

        Only the supplied keys are checked; the date order check runs against
        the merged record when the stored one is given.
        """
        result = ValidationResult()

        for required in ("publisher", "poc", "group", "starting_date"):
            if required in patch and _is_blank(patch[required]):
                result.add_error(required, f"{required} cannot be empty", "REQUIRED_FIELD")

        self._validate_formats(patch, result)

        merged = dict(existing or {})
        merged.update(patch)
        if "starting_date" in patch or "end_date" in patch:
            self._validate_date_order(merged.get("starting_date"), merged.get("end_date"), result)
        return result

    def _validate_formats(self, data: Dict[str, Any], result: ValidationResult):
        group = data.get("group")
        if not _is_blank(group) and group not in {g.value for g in PipelineGroup}:
            result.add_error("group", f"Invalid group: {group} (expected sales or cs)", "INVALID_VALUE")

        forecast_type = data.get("forecast_type")
        if not _is_blank(forecast_type) and forecast_type not in {f.value for f in ForecastType}:
            result.add_error("forecast_type", f"Invalid forecast type: {forecast_type}", "INVALID_VALUE")

        status = data.get("status")
        if not _is_blank(status) and status not in PipelineStage.codes():
            result.add_warning("status", f"Unknown status code: {status}", "UNKNOWN_STATUS")

        for name in NUMERIC_FIELDS:
            value = data.get(name)
            if _is_blank(value):
                continue
            try:
                number = float(value)
            except (TypeError, ValueError, OverflowError):
                result.add_error(name, f"{name} must be numeric", "INVALID_FORMAT")
                continue
            if not math.isfinite(number):
                result.add_error(name, f"{name} must be a finite number", "INVALID_FINANCIAL_VALUE")
            elif number > MAX_NUMERIC_VALUE:
                result.add_error(name, f"{name} exceeds {MAX_NUMERIC_VALUE:,.0f}", "INVALID_FINANCIAL_VALUE")
            elif number < 0:
                result.add_error(name, f"{name} cannot be negative", "INVALID_FINANCIAL_VALUE")
            elif name == "revenue_share" and number > 100:
                result.add_error(name, "revenue_share must be between 0 and 100", "INVALID_RANGE")

        for name in DATE_FIELDS:
            value = data.get(name)
            if not _is_blank(value) and coerce_date(value) is None:
                result.add_error(name, f"Invalid date for {name}: {value}", "INVALID_FORMAT")

        quarter = data.get("fiscal_quarter")
        if not _is_blank(quarter):
            try:
                if not 1 <= int(quarter) <= 4:
                    result.add_error("fiscal_quarter", "fiscal_quarter must be between 1 and 4", "INVALID_RANGE")
            except (TypeError, ValueError, OverflowError):
                result.add_error("fiscal_quarter", "fiscal_quarter must be an integer", "INVALID_FORMAT")

        year = data.get("fiscal_year")
        if not _is_blank(year):
            try:
                if not 2000 <= int(year) <= 2100:
                    result.add_error("fiscal_year", f"Year {year} is out of valid range", "INVALID_RANGE")
            except (TypeError, ValueError, OverflowError):
                result.add_error("fiscal_year", "fiscal_year must be an integer", "INVALID_FORMAT")

    def _validate_date_order(self, starting: Any, ending: Any, result: ValidationResult):
        start = coerce_date(starting)
        end = coerce_date(ending)
        if start and end and end < start:
            result.add_error("end_date", "End date cannot be before starting date", "INVALID_DATE_RANGE")
