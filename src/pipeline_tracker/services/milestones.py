# src/pipeline_tracker/services/milestones.py
"""
Status milestone dates.

Moving into certain stages stamps a milestone date the first time it
happens; an existing date is never overwritten.
"""

from datetime import date, timedelta
from typing import Any, Dict, Optional

from pipeline_tracker.utils.date_utils import coerce_date

STATUS_MILESTONE_FIELDS: Dict[str, str] = {
    "【C】": "interested_date",
    "【C-】": "interested_date",
    "【B】": "acceptance_date",
    "【A】": "ready_to_deliver_date",
    "【S-】": "actual_starting_date",
    "【S】": "close_won_date",
}

CLOSE_WON_OFFSET = timedelta(days=7)


def status_milestones(
    new_status: Optional[str],
    old_status: Optional[str],
    record: Dict[str, Any],
    today: Optional[date] = None,
) -> Dict[str, date]:
    """
    Milestone fields to set for a status transition.

    Args:
        new_status: Status after the change
        old_status: Status before the change (None on create)
        record: Merged pipeline values, used to skip already-set milestones
        today: Reference date (default: date.today())

    Returns:
        Field name -> date for every milestone that should be stamped
    """
    if not new_status or new_status == old_status:
        return {}

    field_name = STATUS_MILESTONE_FIELDS.get(new_status)
    if field_name is None or record.get(field_name):
        return {}

    today = today or date.today()
    if field_name == "close_won_date":
        started = coerce_date(record.get("actual_starting_date")) or today
        return {field_name: started + CLOSE_WON_OFFSET}
    return {field_name: today}
