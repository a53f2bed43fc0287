"""
Pipeline Service - Business logic for pipeline records and their forecasts.

Orchestrates pipeline operations:
- Validating and normalizing create/update payloads
- Running the revenue forecast engine on the merged record
- Writing the pipeline row, its monthly forecasts and activity rows atomically
- Notes, activity history, archive-on-delete
- Forecast consistency checks and bulk recalculation
"""

import logging
import sqlite3
from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from pipeline_tracker.config.settings import ForecastConfig
from pipeline_tracker.database.connection import DatabaseConnection
from pipeline_tracker.models.pipeline import (
    ActivityLogEntry,
    ActivityType,
    DeletedPipeline,
    ForecastType,
    MonthlyForecast,
    Pipeline,
    PipelineStage,
    ValidationResult,
)
from pipeline_tracker.models.validators import DATE_FIELDS, PipelineValidator
from pipeline_tracker.repositories.pipeline_repository import (
    PIPELINE_COLUMNS,
    PipelineRepository,
)
from pipeline_tracker.services.activity_detector import detect_changes, normalize_value
from pipeline_tracker.services.milestones import status_milestones
from pipeline_tracker.services.revenue_forecast import (
    RevenueForecast,
    calculate_monthly_revenue,
    check_forecast_consistency,
    daily_rates,
    derive_max_gross,
    forecast,
    round_currency,
)
from pipeline_tracker.services.status_progress import progress_from_status
from pipeline_tracker.utils.date_utils import coerce_date
from pipeline_tracker.utils.fiscal_calendar import current_fiscal_quarter

logger = logging.getLogger(__name__)

# Inputs whose change invalidates the stored monthly forecast
RECALC_TRIGGER_FIELDS = frozenset(
    {
        "max_gross",
        "imp",
        "ecpm",
        "revenue_share",
        "status",
        "starting_date",
        "end_date",
        "fiscal_year",
        "fiscal_quarter",
    }
)

# Always computed here; ignored when present in a payload
DERIVED_FIELDS = frozenset({"progress_percent", "q_gross", "q_net_rev"})
READ_ONLY_FIELDS = frozenset({"id", "created_at", "updated_at", "created_by", "updated_by"})
EDITABLE_FIELDS = frozenset(PIPELINE_COLUMNS) - DERIVED_FIELDS - READ_ONLY_FIELDS

FLOAT_FIELDS = frozenset({"imp", "ecpm", "max_gross", "revenue_share", "day_gross", "day_net_rev"})
INT_FIELDS = frozenset({"fiscal_year", "fiscal_quarter"})

DEFAULT_STATUS = PipelineStage.E.value


# =========================================================================
# Errors
# =========================================================================

class PipelineServiceError(Exception):
    """Base class for pipeline service failures."""
    pass


class PipelineValidationError(PipelineServiceError):
    """Raised when a payload fails validation."""

    def __init__(self, message: str, validation: Optional[ValidationResult] = None):
        super().__init__(message)
        self.validation = validation or ValidationResult()


class PipelineNotFoundError(PipelineServiceError):
    """Raised when a pipeline id does not exist."""
    pass


class PersistenceError(PipelineServiceError):
    """Raised when the database rejects a write or read."""
    pass


# =========================================================================
# Results
# =========================================================================

@dataclass
class RecalculationResult:
    """Outcome of recalculating one pipeline."""
    pipeline_id: str
    old_q_gross: Optional[float]
    new_q_gross: float
    old_q_net_rev: Optional[float]
    new_q_net_rev: float
    old_progress: Optional[int]
    new_progress: int
    changed: bool
    dry_run: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class RecalculationSummary:
    total: int = 0
    updated: int = 0
    unchanged: int = 0
    failed: int = 0
    errors: List[Tuple[str, str]] = field(default_factory=list)
    results: List[RecalculationResult] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "updated": self.updated,
            "unchanged": self.unchanged,
            "failed": self.failed,
            "errors": [{"pipeline_id": pid, "error": msg} for pid, msg in self.errors],
        }


# =========================================================================
# Service
# =========================================================================

class PipelineService:
    """Service for pipeline CRUD with forecast recalculation and audit logging."""

    def __init__(
        self,
        db_connection: DatabaseConnection,
        forecast_config: Optional[ForecastConfig] = None,
        repository: Optional[PipelineRepository] = None,
    ):
        self.db = db_connection
        self.repository = repository or PipelineRepository(db_connection)
        self.config = forecast_config or ForecastConfig(
            status_logged_by_trigger=True, default_user="system"
        )
        self.validator = PipelineValidator()

    # =========================================================================
    # Reads
    # =========================================================================

    def get_pipeline(self, pipeline_id: str) -> Pipeline:
        pipeline = self._persist(lambda: self.repository.get_pipeline(pipeline_id))
        if pipeline is None:
            raise PipelineNotFoundError(f"Pipeline not found: {pipeline_id}")
        return pipeline

    def list_pipelines(
        self,
        filters: Optional[Dict[str, Any]] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> Tuple[List[Pipeline], int]:
        """Filtered page of pipelines plus the unpaged total."""
        filters = {k: v for k, v in (filters or {}).items() if v not in (None, "")}
        pipelines = self._persist(
            lambda: self.repository.list_pipelines(filters, limit=limit, offset=offset)
        )
        total = self._persist(lambda: self.repository.count_pipelines(filters))
        return pipelines, total

    # =========================================================================
    # Create / Update / Delete
    # =========================================================================

    def create_pipeline(
        self, data: Dict[str, Any], user: Optional[str] = None, today: Optional[date] = None
    ) -> Pipeline:
        """
        Validate, forecast and persist a new pipeline.

        Raises:
            PipelineValidationError: Payload failed validation
            PersistenceError: Database write failed
        """
        validation = self.validator.validate_create(data)
        self._raise_if_invalid(validation, "Invalid pipeline data")
        for warning in validation.warnings:
            logger.warning(f"Create pipeline: {warning.field}: {warning.message}")

        user = user or self.config.default_user
        values = self._normalize(data)
        values.setdefault("status", DEFAULT_STATUS)
        values.setdefault("forecast_type", ForecastType.ESTIMATE.value)
        values["status"] = values["status"] or DEFAULT_STATUS
        values["forecast_type"] = values["forecast_type"] or ForecastType.ESTIMATE.value
        self._resolve_fiscal_period(values, today)
        if not values.get("max_gross"):
            derived = self._derived_max_gross(values)
            if derived is not None:
                values["max_gross"] = derived
        values.update(status_milestones(values["status"], None, values, today))

        pipeline = Pipeline(**values, created_by=user, updated_by=user)
        result = forecast(pipeline, today=today)
        self._apply_forecast(pipeline, result)

        def write():
            with self.repository.safe_transaction():
                pipeline_id = self.repository.insert_pipeline(pipeline)
                self.repository.replace_monthly_forecasts(pipeline_id, pipeline.monthly_forecasts)
                return pipeline_id

        pipeline_id = self._persist(write)
        logger.info(
            f"Created pipeline {pipeline_id} ({pipeline.publisher}, {pipeline.status}) "
            f"q_gross={pipeline.q_gross}"
        )
        return self.get_pipeline(pipeline_id)

    def update_pipeline(
        self,
        pipeline_id: str,
        patch: Dict[str, Any],
        user: Optional[str] = None,
        today: Optional[date] = None,
    ) -> Pipeline:
        """
        Apply a partial update, recalculating the forecast when an input changed.

        Raises:
            PipelineNotFoundError: Unknown pipeline id
            PipelineValidationError: Patch failed validation
            PersistenceError: Database write failed
        """
        existing = self.get_pipeline(pipeline_id)
        old_values = {name: getattr(existing, name) for name in PIPELINE_COLUMNS}

        validation = self.validator.validate_update(patch, old_values)
        self._raise_if_invalid(validation, "Invalid pipeline update")
        for warning in validation.warnings:
            logger.warning(f"Update pipeline {pipeline_id}: {warning.field}: {warning.message}")

        user = user or self.config.default_user
        changes = {
            name: value
            for name, value in self._normalize(patch).items()
            if normalize_value(value) != normalize_value(old_values.get(name))
        }
        if "status" in changes and not changes["status"]:
            changes["status"] = DEFAULT_STATUS

        merged = dict(old_values)
        merged.update(changes)
        if ({"imp", "ecpm"} & set(changes)) and "max_gross" not in patch:
            derived = self._derived_max_gross(merged)
            if derived is not None and normalize_value(derived) != normalize_value(merged.get("max_gross")):
                changes["max_gross"] = derived
                merged["max_gross"] = derived
        changes.update(status_milestones(merged.get("status"), existing.status, merged, today))
        merged.update(changes)

        needs_recalc = bool(RECALC_TRIGGER_FIELDS & set(changes))
        result = None
        if needs_recalc:
            result = forecast(merged, today=today)
            changes.update(self._forecast_fields(result, merged.get("metadata")))
        elif existing.progress_percent != self._progress_for(merged):
            changes["progress_percent"] = self._progress_for(merged)

        if not changes:
            logger.debug(f"Update of pipeline {pipeline_id} changed nothing")
            return existing

        changes["updated_by"] = user
        activities = detect_changes(
            old_values, changes, status_logged_by_trigger=self.config.status_logged_by_trigger
        )

        def write():
            with self.repository.safe_transaction():
                self.repository.update_pipeline(pipeline_id, changes)
                if result is not None:
                    self.repository.replace_monthly_forecasts(pipeline_id, result.monthly)
                for change in activities:
                    self.repository.add_activity(
                        ActivityLogEntry(
                            pipeline_id=pipeline_id,
                            activity_type=change.activity_type,
                            logged_by=user,
                            field_changed=change.field,
                            old_value=change.old_value,
                            new_value=change.new_value,
                        )
                    )

        self._persist(write)
        logger.info(
            f"Updated pipeline {pipeline_id}: {sorted(changes)} "
            f"(recalculated={needs_recalc}, activities={len(activities)})"
        )
        return self.get_pipeline(pipeline_id)

    def delete_pipeline(
        self,
        pipeline_id: str,
        user: Optional[str] = None,
        reason: Optional[str] = None,
        source: str = "api",
    ) -> DeletedPipeline:
        """Archive a pipeline with its forecast snapshot, then delete it."""
        pipeline = self.get_pipeline(pipeline_id)
        data = pipeline.to_dict()
        snapshot = data.pop("monthly_forecasts")
        archived = DeletedPipeline(
            pipeline_id=pipeline_id,
            pipeline_data=data,
            monthly_forecasts_snapshot=snapshot,
            deleted_by=user or self.config.default_user,
            deletion_reason=reason,
            deletion_source=source,
        )

        def write():
            with self.repository.safe_transaction():
                self.repository.archive_pipeline(archived)
                self.repository.delete_pipeline(pipeline_id)

        self._persist(write)
        logger.info(f"Deleted pipeline {pipeline_id} (archived, source={source})")
        return archived

    # =========================================================================
    # Activity Log
    # =========================================================================

    def add_note(self, pipeline_id: str, note: str, user: Optional[str] = None) -> ActivityLogEntry:
        if not note or not str(note).strip():
            validation = ValidationResult()
            validation.add_error("notes", "Note text is required", "REQUIRED_FIELD")
            raise PipelineValidationError("Note text is required", validation)

        self.get_pipeline(pipeline_id)
        entry = ActivityLogEntry(
            pipeline_id=pipeline_id,
            activity_type=ActivityType.NOTE,
            logged_by=user or self.config.default_user,
            notes=str(note).strip(),
        )
        self._persist(lambda: self.repository.add_activity(entry))
        return entry

    def get_activities(
        self,
        pipeline_id: str,
        limit: int = 50,
        offset: int = 0,
        activity_type: Optional[str] = None,
    ) -> List[ActivityLogEntry]:
        kind = None
        if activity_type:
            try:
                kind = ActivityType(activity_type)
            except ValueError:
                validation = ValidationResult()
                validation.add_error("type", f"Unknown activity type: {activity_type}", "INVALID_VALUE")
                raise PipelineValidationError(f"Unknown activity type: {activity_type}", validation)

        self.get_pipeline(pipeline_id)
        return self._persist(
            lambda: self.repository.list_activities(
                pipeline_id, limit=max(1, min(int(limit), 500)), offset=max(0, int(offset)),
                activity_type=kind,
            )
        )

    # =========================================================================
    # Forecast helpers
    # =========================================================================

    def preview_forecast(self, data: Dict[str, Any], today: Optional[date] = None) -> RevenueForecast:
        """
        Forecast for an unsaved payload.

        When the payload carries monthly_forecasts ({year, month, delivery_days}),
        those months are used as-is instead of the fiscal quarter.
        """
        values = self._normalize(data)
        manual = data.get("monthly_forecasts")
        if not manual:
            return forecast(values, today=today)

        try:
            months = [
                MonthlyForecast(
                    year=int(m["year"]),
                    month=int(m["month"]),
                    delivery_days=None if m.get("delivery_days") in (None, "") else int(m["delivery_days"]),
                )
                for m in manual
            ]
        except (KeyError, TypeError, ValueError) as e:
            validation = ValidationResult()
            validation.add_error("monthly_forecasts", f"Invalid monthly input: {e}", "INVALID_FORMAT")
            raise PipelineValidationError("Invalid monthly forecast input", validation) from e

        max_gross = derive_max_gross(values.get("max_gross"), values.get("imp"), values.get("ecpm"))
        day_gross, day_net_rev = daily_rates(max_gross, values.get("revenue_share"))
        result = calculate_monthly_revenue(months, day_gross, day_net_rev, values.get("status"))
        result.max_gross = max_gross
        return result

    def check_forecast(self, pipeline_id: str) -> Dict[str, Any]:
        """Sum-invariant check of the stored quarter totals."""
        pipeline = self.get_pipeline(pipeline_id)
        warnings = check_forecast_consistency(
            pipeline.q_gross, pipeline.q_net_rev, pipeline.monthly_forecasts
        )
        for warning in warnings:
            logger.warning(f"Pipeline {pipeline_id} forecast inconsistency: {warning}")
        return {
            "pipeline_id": pipeline_id,
            "consistent": not warnings,
            "warnings": warnings,
            "q_gross": pipeline.q_gross,
            "q_net_rev": pipeline.q_net_rev,
            "monthly_forecasts": [m.to_dict() for m in pipeline.monthly_forecasts],
        }

    # =========================================================================
    # Recalculation
    # =========================================================================

    def recalculate_pipeline(
        self,
        pipeline_id: str,
        fiscal_year: Optional[int] = None,
        fiscal_quarter: Optional[int] = None,
        dry_run: bool = False,
        today: Optional[date] = None,
    ) -> RecalculationResult:
        """
        Resync progress from status and regenerate the monthly forecast.

        fiscal_year/fiscal_quarter override the stored period for this run.
        """
        pipeline = self.get_pipeline(pipeline_id)
        values = {name: getattr(pipeline, name) for name in PIPELINE_COLUMNS}
        overridden = fiscal_year is not None or fiscal_quarter is not None
        if fiscal_quarter is not None:
            values["fiscal_quarter"] = int(fiscal_quarter)
            values["fiscal_year"] = (
                int(fiscal_year) if fiscal_year is not None
                else current_fiscal_quarter(today).fiscal_year
            )
        elif fiscal_year is not None:
            values["fiscal_year"] = int(fiscal_year)

        result = forecast(values, today=today)
        changes = self._forecast_fields(result, pipeline.metadata)
        months_changed = [
            (m.year, m.month, m.delivery_days, m.gross_revenue, m.net_revenue)
            for m in pipeline.monthly_forecasts
        ] != [
            (m.year, m.month, m.delivery_days, m.gross_revenue, m.net_revenue)
            for m in result.monthly
        ]
        changed = months_changed or any(
            normalize_value(changes[k]) != normalize_value(values.get(k))
            for k in ("progress_percent", "q_gross", "q_net_rev", "day_gross", "day_net_rev")
        )

        outcome = RecalculationResult(
            pipeline_id=pipeline_id,
            old_q_gross=pipeline.q_gross,
            new_q_gross=result.q_gross,
            old_q_net_rev=pipeline.q_net_rev,
            new_q_net_rev=result.q_net_rev,
            old_progress=pipeline.progress_percent,
            new_progress=result.progress_percent,
            changed=changed,
            dry_run=dry_run,
        )
        if dry_run or not changed:
            return outcome

        if overridden:
            changes["fiscal_year"] = values["fiscal_year"]
            changes["fiscal_quarter"] = values["fiscal_quarter"]

        def write():
            with self.repository.safe_transaction():
                self.repository.update_pipeline(pipeline_id, changes)
                self.repository.replace_monthly_forecasts(pipeline_id, result.monthly)

        self._persist(write)
        logger.debug(
            f"Recalculated {pipeline_id}: q_gross {pipeline.q_gross} -> {result.q_gross}"
        )
        return outcome

    def recalculate_all(
        self,
        filters: Optional[Dict[str, Any]] = None,
        fiscal_year: Optional[int] = None,
        fiscal_quarter: Optional[int] = None,
        dry_run: bool = False,
        progress: Optional[Callable[[Iterable[Pipeline]], Iterable[Pipeline]]] = None,
        today: Optional[date] = None,
    ) -> RecalculationSummary:
        """
        Recalculate every matching pipeline; one failure never stops the run.

        Args:
            progress: Optional wrapper around the pipeline iterable (e.g. tqdm)
        """
        pipelines, _ = self.list_pipelines(filters)
        summary = RecalculationSummary(total=len(pipelines))
        iterable = progress(pipelines) if progress else pipelines

        for pipeline in iterable:
            try:
                outcome = self.recalculate_pipeline(
                    pipeline.id,
                    fiscal_year=fiscal_year,
                    fiscal_quarter=fiscal_quarter,
                    dry_run=dry_run,
                    today=today,
                )
            except Exception as e:
                logger.error(f"Failed to recalculate pipeline {pipeline.id}: {e}")
                summary.failed += 1
                summary.errors.append((pipeline.id, str(e)))
                continue

            summary.results.append(outcome)
            if outcome.changed:
                summary.updated += 1
            else:
                summary.unchanged += 1

        logger.info(
            f"Recalculation finished: {summary.updated} updated, {summary.unchanged} unchanged, "
            f"{summary.failed} failed of {summary.total}{' (dry run)' if dry_run else ''}"
        )
        return summary

    # =========================================================================
    # Internals
    # =========================================================================

    def _normalize(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Keep editable keys and coerce them to model types (validated beforehand)."""
        values = {}
        for name, value in data.items():
            if name not in EDITABLE_FIELDS:
                continue
            if isinstance(value, str):
                value = value.strip()
                if value == "":
                    value = None
            if value is not None:
                if name in DATE_FIELDS:
                    value = coerce_date(value)
                elif name in FLOAT_FIELDS:
                    value = float(value)
                elif name in INT_FIELDS:
                    value = int(value)
            values[name] = value

        if "metadata" in values and not isinstance(values["metadata"], dict):
            values["metadata"] = {}
        return values

    def _resolve_fiscal_period(self, values: Dict[str, Any], today: Optional[date]) -> None:
        """Pin the forecast quarter on create so later recalculations stay in it."""
        current = current_fiscal_quarter(today)
        if values.get("fiscal_quarter") is None:
            values["fiscal_quarter"] = current.quarter
            values["fiscal_year"] = values.get("fiscal_year") or current.fiscal_year
        elif values.get("fiscal_year") is None:
            values["fiscal_year"] = current.fiscal_year

    @staticmethod
    def _derived_max_gross(values: Dict[str, Any]) -> Optional[float]:
        """(imp / 1000) * ecpm rounded to cents, or None without both inputs."""
        derived = derive_max_gross(None, values.get("imp"), values.get("ecpm"))
        return round_currency(derived) if derived is not None else None

    @staticmethod
    def _progress_for(values: Dict[str, Any]) -> int:
        return progress_from_status(values.get("status"))

    def _forecast_fields(self, result: RevenueForecast, metadata: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        merged_metadata = dict(metadata or {})
        merged_metadata["quarterly_breakdown"] = result.quarterly_breakdown
        fields = {
            "progress_percent": result.progress_percent,
            "q_gross": result.q_gross,
            "q_net_rev": result.q_net_rev,
            "metadata": merged_metadata,
        }
        # Stored daily rates are kept when max_gross cannot be derived
        if result.day_gross is not None:
            fields["day_gross"] = result.day_gross
        if result.day_net_rev is not None:
            fields["day_net_rev"] = result.day_net_rev
        return fields

    def _apply_forecast(self, pipeline: Pipeline, result: RevenueForecast) -> None:
        for name, value in self._forecast_fields(result, pipeline.metadata).items():
            setattr(pipeline, name, value)
        pipeline.monthly_forecasts = result.monthly

    @staticmethod
    def _raise_if_invalid(validation: ValidationResult, message: str) -> None:
        if not validation.is_valid():
            details = "; ".join(f"{e.field}: {e.message}" for e in validation.errors)
            raise PipelineValidationError(f"{message}: {details}", validation)

    @staticmethod
    def _persist(operation: Callable[[], Any]) -> Any:
        try:
            return operation()
        except sqlite3.Error as e:
            logger.error(f"Database error: {e}")
            raise PersistenceError(f"Database error: {e}") from e
