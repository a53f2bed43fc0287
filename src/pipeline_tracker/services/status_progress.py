# src/pipeline_tracker/services/status_progress.py
"""
Status -> progress percent mapping.

Every stage code has a fixed progress percentage that scales the monthly
revenue forecast. The mapping is the spreadsheet's lookup table and must
stay in sync with it.
"""

import logging
from typing import Dict, FrozenSet, Optional

logger = logging.getLogger(__name__)

STATUS_PROGRESS_MAP: Dict[str, int] = {
    "【S】": 100,
    "【S-】": 100,
    "【A】": 80,
    "【B】": 60,
    "【C+】": 50,
    "【C】": 30,
    "【C-】": 5,
    "【D】": 100,
    "【E】": 0,
}

DEFAULT_PROGRESS_PERCENT = 50

# D (dropped), E (lost) and the legacy F code never generate revenue
ZERO_REVENUE_STATUSES: FrozenSet[str] = frozenset({"【D】", "【E】", "【F】"})


def progress_from_status(status: Optional[str]) -> int:
    """
    Progress percentage (0-100) for a stage code.

    Unknown or missing codes fall back to DEFAULT_PROGRESS_PERCENT.
    """
    if status is not None:
        progress = STATUS_PROGRESS_MAP.get(str(status).strip())
        if progress is not None:
            return progress

    logger.warning(
        f"Unknown status {status!r}; using default progress {DEFAULT_PROGRESS_PERCENT}%"
    )
    return DEFAULT_PROGRESS_PERCENT


def is_zero_revenue_status(status: Optional[str]) -> bool:
    return status is not None and str(status).strip() in ZERO_REVENUE_STATUSES
