"""
Pipeline domain models.

Pure data structures for pipelines, their monthly forecasts and the audit
trail. No persistence or calculation logic lives here.
"""

from dataclasses import dataclass, field, asdict, fields
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional


# ===================================================================
# ENUMS
# ===================================================================

class PipelineStage(Enum):
    """Ordered pipeline stage codes as they appear in the sales sheet."""
    S = "【S】"
    S_MINUS = "【S-】"
    A = "【A】"
    B = "【B】"
    C_PLUS = "【C+】"
    C = "【C】"
    C_MINUS = "【C-】"
    D = "【D】"
    E = "【E】"

    @classmethod
    def codes(cls) -> List[str]:
        return [stage.value for stage in cls]


class PipelineGroup(Enum):
    """Team that owns the pipeline."""
    SALES = "sales"
    CS = "cs"


class ForecastType(Enum):
    ESTIMATE = "estimate"
    OUT_OF_ESTIMATE = "out_of_estimate"


class ActivityType(Enum):
    """Audit log entry categories."""
    STATUS_CHANGE = "status_change"
    NOTE = "note"
    ACTION_UPDATE = "action_update"
    FORECAST_UPDATE = "forecast_update"
    FIELD_UPDATE = "field_update"


# ===================================================================
# VALIDATION INFRASTRUCTURE
# ===================================================================

@dataclass
class ValidationError:
    """Represents a validation error with context."""
    field: str
    message: str
    code: str
    severity: str = "error"  # error, warning


@dataclass
class ValidationResult:
    """Container for validation results with errors and warnings."""
    errors: List[ValidationError] = field(default_factory=list)
    warnings: List[ValidationError] = field(default_factory=list)

    def is_valid(self) -> bool:
        """Check if validation passed (no errors)."""
        return len(self.errors) == 0

    def has_warnings(self) -> bool:
        """Check if there are any warnings."""
        return len(self.warnings) > 0

    def add_error(self, field: str, message: str, code: str = "VALIDATION_ERROR"):
        """Add an error to the validation result."""
        self.errors.append(ValidationError(field, message, code, "error"))

    def add_warning(self, field: str, message: str, code: str = "VALIDATION_WARNING"):
        """Add a warning to the validation result."""
        self.warnings.append(ValidationError(field, message, code, "warning"))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "errors": [asdict(e) for e in self.errors],
            "warnings": [asdict(w) for w in self.warnings],
        }


# ===================================================================
# PURE DATA MODELS
# ===================================================================

@dataclass
class MonthlyForecast:
    """One month of a pipeline's quarterly forecast."""
    year: int
    month: int
    delivery_days: Optional[int]
    gross_revenue: float = 0.0
    net_revenue: float = 0.0
    pipeline_id: Optional[str] = None
    validation_flag: bool = False
    notes: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "year": self.year,
            "month": self.month,
            "delivery_days": self.delivery_days,
            "gross_revenue": self.gross_revenue,
            "net_revenue": self.net_revenue,
            "validation_flag": self.validation_flag,
            "notes": self.notes,
        }


@dataclass
class Pipeline:
    """
    A single sales/CS opportunity.

    Revenue inputs are imp, ecpm, max_gross and revenue_share (0-100).
    progress_percent, day_gross, day_net_rev, q_gross and q_net_rev are
    derived on save and never taken from user input.
    """
    # Required fields
    publisher: str
    poc: str
    group: str
    status: str

    # Metadata
    id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    fiscal_year: Optional[int] = None
    fiscal_quarter: Optional[int] = None

    # Basic info
    classification: Optional[str] = None
    team: Optional[str] = None
    pid: Optional[str] = None
    mid: Optional[str] = None
    domain: Optional[str] = None
    channel: Optional[str] = None
    region: Optional[str] = None
    product: Optional[str] = None

    # Revenue inputs
    imp: Optional[float] = None
    ecpm: Optional[float] = None
    max_gross: Optional[float] = None
    revenue_share: Optional[float] = None

    # Revenue derived
    day_gross: Optional[float] = None
    day_net_rev: Optional[float] = None
    progress_percent: Optional[int] = None
    q_gross: Optional[float] = None
    q_net_rev: Optional[float] = None

    # Timeline
    starting_date: Optional[date] = None
    end_date: Optional[date] = None
    proposal_date: Optional[date] = None
    interested_date: Optional[date] = None
    acceptance_date: Optional[date] = None
    ready_to_deliver_date: Optional[date] = None
    actual_starting_date: Optional[date] = None
    close_won_date: Optional[date] = None

    # Action tracking
    action_date: Optional[date] = None
    next_action: Optional[str] = None
    action_detail: Optional[str] = None
    action_progress: Optional[str] = None

    forecast_type: str = ForecastType.ESTIMATE.value
    competitors: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    # Audit
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    created_by: Optional[str] = None
    updated_by: Optional[str] = None

    monthly_forecasts: List[MonthlyForecast] = field(default_factory=list)

    @classmethod
    def field_names(cls) -> List[str]:
        return [f.name for f in fields(cls)]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        data = {}
        for name in self.field_names():
            value = getattr(self, name)
            if name == "monthly_forecasts":
                value = [forecast.to_dict() for forecast in value]
            elif isinstance(value, (date, datetime)):
                value = value.isoformat()
            data[name] = value
        return data


@dataclass
class ActivityLogEntry:
    """One row of a pipeline's audit trail."""
    pipeline_id: str
    activity_type: ActivityType
    logged_by: str
    field_changed: Optional[str] = None
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    notes: Optional[str] = None
    id: Optional[int] = None
    logged_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["activity_type"] = self.activity_type.value
        return data


@dataclass
class DeletedPipeline:
    """Archived copy of a deleted pipeline."""
    pipeline_id: str
    pipeline_data: Dict[str, Any]
    monthly_forecasts_snapshot: List[Dict[str, Any]]
    deleted_by: Optional[str] = None
    deletion_reason: Optional[str] = None
    deletion_source: Optional[str] = None
    deleted_at: Optional[str] = None
