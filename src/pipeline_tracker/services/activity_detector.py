# src/pipeline_tracker/services/activity_detector.py
"""
Field-change detection for the pipeline activity log.

Compares a stored pipeline with incoming field values and classifies every
real change into an activity type.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, FrozenSet, List, Optional

from pipeline_tracker.models.pipeline import ActivityType

logger = logging.getLogger(__name__)

ACTION_FIELDS: FrozenSet[str] = frozenset(
    {"next_action", "action_date", "action_detail", "action_progress"}
)
FORECAST_FIELDS: FrozenSet[str] = frozenset(
    {
        "imp",
        "ecpm",
        "max_gross",
        "revenue_share",
        "day_gross",
        "day_net_rev",
        "q_gross",
        "q_net_rev",
        "progress_percent",
    }
)
IGNORED_FIELDS: FrozenSet[str] = frozenset(
    {
        "id",
        "created_at",
        "updated_at",
        "created_by",
        "updated_by",
        "metadata",
        "monthly_forecasts",
        "user_id",
    }
)


@dataclass(frozen=True)
class FieldChange:
    """One detected change, ready to be written as an activity row."""
    field: str
    activity_type: ActivityType
    old_value: Optional[str]
    new_value: Optional[str]


def classify_field(field_name: str) -> ActivityType:
    if field_name == "status":
        return ActivityType.STATUS_CHANGE
    if field_name in ACTION_FIELDS:
        return ActivityType.ACTION_UPDATE
    if field_name in FORECAST_FIELDS:
        return ActivityType.FORECAST_UPDATE
    return ActivityType.FIELD_UPDATE


def normalize_value(value: Any) -> Optional[str]:
    """
    String form used for comparison and storage.

    None and blank strings are both None; 5.0 and 5 are both "5"; dates and
    datetimes use ISO text (a midnight datetime equals its date).
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, datetime):
        if value.time() == datetime.min.time() and value.tzinfo is None:
            return value.date().isoformat()
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, int):
        return str(value)

    text = str(value).strip()
    if not text:
        return None
    # Numeric strings compare like numbers
    try:
        number = float(text)
    except ValueError:
        return text
    if number != number or number in (float("inf"), float("-inf")):
        return text
    return str(int(number)) if number.is_integer() else repr(number)


def _as_text(value: Any) -> Optional[str]:
    """Stored form of a value: ISO dates, integral floats without '.0'."""
    if value is None:
        return None
    if isinstance(value, (date, datetime, float, bool)):
        return normalize_value(value)
    text = str(value)
    return text if text.strip() else None


def detect_changes(
    old_record: Optional[Dict[str, Any]],
    new_fields: Dict[str, Any],
    status_logged_by_trigger: bool = True,
) -> List[FieldChange]:
    """
    Changes between a stored record and the incoming values.

    Args:
        old_record: Stored pipeline as a dict (None for a brand new pipeline)
        new_fields: Incoming field values; only these keys are compared
        status_logged_by_trigger: Skip status when the database trigger
            already records it

    Returns:
        One FieldChange per changed key, in new_fields order
    """
    old_record = old_record or {}
    changes = []

    for name, new_value in new_fields.items():
        if name in IGNORED_FIELDS:
            continue
        if name == "status" and status_logged_by_trigger:
            continue

        old_norm = normalize_value(old_record.get(name))
        new_norm = normalize_value(new_value)
        if old_norm == new_norm:
            continue

        changes.append(
            FieldChange(
                field=name,
                activity_type=classify_field(name),
                old_value=_as_text(old_record.get(name)),
                new_value=_as_text(new_value),
            )
        )

    if changes:
        logger.debug(f"Detected {len(changes)} field changes: {[c.field for c in changes]}")
    return changes
