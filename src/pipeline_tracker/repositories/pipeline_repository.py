"""
Pipeline Repository - Data access layer for pipelines.

Handles all database operations for:
- pipelines
- pipeline_monthly_forecast (three rows per pipeline, replaced wholesale)
- pipeline_activity_log
- deleted_pipelines (archive)

Every method opens its own connection or transaction through BaseService;
calls made inside an outer safe_transaction() share that transaction.
"""

import json
import sqlite3
import logging
import uuid
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional

from pipeline_tracker.database.connection import DatabaseConnection
from pipeline_tracker.services.base_service import BaseService
from pipeline_tracker.models.pipeline import (
    ActivityLogEntry,
    ActivityType,
    DeletedPipeline,
    MonthlyForecast,
    Pipeline,
)
from pipeline_tracker.models.validators import DATE_FIELDS
from pipeline_tracker.utils.date_utils import coerce_date

logger = logging.getLogger(__name__)

PIPELINE_COLUMNS = [name for name in Pipeline.field_names() if name != "monthly_forecasts"]
FILTERABLE_COLUMNS = ("group", "status", "poc", "fiscal_year", "fiscal_quarter")


def _quote(column: str) -> str:
    return f'"{column}"'


def _to_db(value: Any) -> Any:
    """Python value -> SQLite parameter."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    if isinstance(value, bool):
        return int(value)
    return value


class PipelineRepository(BaseService):
    """Repository for pipeline data access."""

    def __init__(self, db_connection: DatabaseConnection):
        super().__init__(db_connection)

    # =========================================================================
    # Pipelines
    # =========================================================================

    def get_pipeline(self, pipeline_id: str, include_forecasts: bool = True) -> Optional[Pipeline]:
        """Get a pipeline by id, optionally with its monthly forecasts."""
        with self.safe_connection() as conn:
            row = conn.execute(
                "SELECT * FROM pipelines WHERE id = ?", (pipeline_id,)
            ).fetchone()
            if row is None:
                return None

            pipeline = self._row_to_pipeline(row)
            if include_forecasts:
                pipeline.monthly_forecasts = self._fetch_forecasts(conn, pipeline_id)
            return pipeline

    def list_pipelines(
        self,
        filters: Optional[Dict[str, Any]] = None,
        limit: Optional[int] = None,
        offset: int = 0,
        include_forecasts: bool = False,
    ) -> List[Pipeline]:
        """
        List pipelines, newest first.

        Args:
            filters: Equality filters on group, status, poc, fiscal_year, fiscal_quarter
            limit: Maximum rows (None for all)
            offset: Rows to skip
            include_forecasts: Attach monthly forecast rows to each pipeline
        """
        where, params = self._build_where(filters or {})
        sql = f"SELECT * FROM pipelines{where} ORDER BY created_at DESC, id"
        if limit is not None:
            sql += " LIMIT ? OFFSET ?"
            params.extend([int(limit), int(offset)])

        with self.safe_connection() as conn:
            pipelines = [self._row_to_pipeline(row) for row in conn.execute(sql, params).fetchall()]
            if include_forecasts:
                for pipeline in pipelines:
                    pipeline.monthly_forecasts = self._fetch_forecasts(conn, pipeline.id)
            return pipelines

    def count_pipelines(self, filters: Optional[Dict[str, Any]] = None) -> int:
        where, params = self._build_where(filters or {})
        with self.safe_connection() as conn:
            return conn.execute(f"SELECT COUNT(*) FROM pipelines{where}", params).fetchone()[0]

    def insert_pipeline(self, pipeline: Pipeline) -> str:
        """Insert a pipeline row (without forecasts); assigns a UUID when missing."""
        if not pipeline.id:
            pipeline.id = str(uuid.uuid4())

        columns = [c for c in PIPELINE_COLUMNS if c not in ("created_at", "updated_at")]
        values = [_to_db(getattr(pipeline, c)) for c in columns]
        placeholders = ", ".join("?" for _ in columns)

        with self.safe_transaction() as conn:
            conn.execute(
                f"INSERT INTO pipelines ({', '.join(_quote(c) for c in columns)}) "
                f"VALUES ({placeholders})",
                values,
            )
        logger.debug(f"Inserted pipeline {pipeline.id}")
        return pipeline.id

    def update_pipeline(self, pipeline_id: str, fields: Dict[str, Any]) -> bool:
        """Update the given columns and bump updated_at. Returns False when no row matched."""
        unknown = set(fields) - set(PIPELINE_COLUMNS)
        if unknown:
            raise ValueError(f"Unknown pipeline columns: {sorted(unknown)}")

        columns = [c for c in fields if c not in ("id", "created_at", "updated_at")]
        assignments = [f"{_quote(c)} = ?" for c in columns]
        assignments.append("updated_at = strftime('%Y-%m-%dT%H:%M:%fZ', 'now')")
        values = [_to_db(fields[c]) for c in columns]

        with self.safe_transaction() as conn:
            cursor = conn.execute(
                f"UPDATE pipelines SET {', '.join(assignments)} WHERE id = ?",
                values + [pipeline_id],
            )
            return cursor.rowcount > 0

    def delete_pipeline(self, pipeline_id: str) -> bool:
        """Delete a pipeline; forecasts and activity rows cascade."""
        with self.safe_transaction() as conn:
            cursor = conn.execute("DELETE FROM pipelines WHERE id = ?", (pipeline_id,))
            return cursor.rowcount > 0

    # =========================================================================
    # Monthly Forecasts
    # =========================================================================

    def get_monthly_forecasts(self, pipeline_id: str) -> List[MonthlyForecast]:
        with self.safe_connection() as conn:
            return self._fetch_forecasts(conn, pipeline_id)

    def replace_monthly_forecasts(self, pipeline_id: str, forecasts: List[MonthlyForecast]) -> int:
        """Delete every forecast row of the pipeline and insert the new ones."""
        with self.safe_transaction() as conn:
            conn.execute(
                "DELETE FROM pipeline_monthly_forecast WHERE pipeline_id = ?", (pipeline_id,)
            )
            conn.executemany(
                """
                INSERT INTO pipeline_monthly_forecast
                    (pipeline_id, year, month, delivery_days, gross_revenue,
                     net_revenue, validation_flag, notes)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        pipeline_id,
                        f.year,
                        f.month,
                        f.delivery_days,
                        f.gross_revenue,
                        f.net_revenue,
                        int(f.validation_flag),
                        f.notes,
                    )
                    for f in forecasts
                ],
            )
        return len(forecasts)

    # =========================================================================
    # Activity Log
    # =========================================================================

    def add_activity(self, entry: ActivityLogEntry) -> int:
        with self.safe_transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO pipeline_activity_log
                    (pipeline_id, activity_type, field_changed, old_value,
                     new_value, notes, logged_by)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entry.pipeline_id,
                    entry.activity_type.value,
                    entry.field_changed,
                    entry.old_value,
                    entry.new_value,
                    entry.notes,
                    entry.logged_by,
                ),
            )
            entry.id = cursor.lastrowid
            return entry.id

    def list_activities(
        self,
        pipeline_id: str,
        limit: int = 50,
        offset: int = 0,
        activity_type: Optional[ActivityType] = None,
    ) -> List[ActivityLogEntry]:
        """Activity rows for a pipeline, newest first."""
        sql = "SELECT * FROM pipeline_activity_log WHERE pipeline_id = ?"
        params: List[Any] = [pipeline_id]
        if activity_type is not None:
            sql += " AND activity_type = ?"
            params.append(activity_type.value)
        sql += " ORDER BY logged_at DESC, id DESC LIMIT ? OFFSET ?"
        params.extend([int(limit), int(offset)])

        with self.safe_connection() as conn:
            return [self._row_to_activity(row) for row in conn.execute(sql, params).fetchall()]

    # =========================================================================
    # Archive
    # =========================================================================

    def archive_pipeline(self, archived: DeletedPipeline) -> int:
        with self.safe_transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO deleted_pipelines
                    (pipeline_id, pipeline_data, monthly_forecasts_snapshot,
                     deleted_by, deletion_reason, deletion_source)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    archived.pipeline_id,
                    json.dumps(archived.pipeline_data, ensure_ascii=False),
                    json.dumps(archived.monthly_forecasts_snapshot, ensure_ascii=False),
                    archived.deleted_by,
                    archived.deletion_reason,
                    archived.deletion_source,
                ),
            )
            return cursor.lastrowid

    def list_deleted_pipelines(self, limit: int = 50) -> List[DeletedPipeline]:
        with self.safe_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM deleted_pipelines ORDER BY deleted_at DESC, id DESC LIMIT ?",
                (int(limit),),
            ).fetchall()
            return [
                DeletedPipeline(
                    pipeline_id=row["pipeline_id"],
                    pipeline_data=json.loads(row["pipeline_data"]),
                    monthly_forecasts_snapshot=json.loads(row["monthly_forecasts_snapshot"]),
                    deleted_by=row["deleted_by"],
                    deletion_reason=row["deletion_reason"],
                    deletion_source=row["deletion_source"],
                    deleted_at=row["deleted_at"],
                )
                for row in rows
            ]

    # =========================================================================
    # Helpers
    # =========================================================================

    def _build_where(self, filters: Dict[str, Any]):
        clauses = []
        params: List[Any] = []
        for column in FILTERABLE_COLUMNS:
            value = filters.get(column)
            if value is None or value == "":
                continue
            clauses.append(f"{_quote(column)} = ?")
            params.append(value)
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        return where, params

    def _fetch_forecasts(self, conn: sqlite3.Connection, pipeline_id: str) -> List[MonthlyForecast]:
        rows = conn.execute(
            """
            SELECT pipeline_id, year, month, delivery_days, gross_revenue,
                   net_revenue, validation_flag, notes
            FROM pipeline_monthly_forecast
            WHERE pipeline_id = ?
            ORDER BY year, month
            """,
            (pipeline_id,),
        ).fetchall()
        return [
            MonthlyForecast(
                year=row["year"],
                month=row["month"],
                delivery_days=row["delivery_days"],
                gross_revenue=row["gross_revenue"],
                net_revenue=row["net_revenue"],
                pipeline_id=row["pipeline_id"],
                validation_flag=bool(row["validation_flag"]),
                notes=row["notes"],
            )
            for row in rows
        ]

    def _row_to_pipeline(self, row: sqlite3.Row) -> Pipeline:
        data = {column: row[column] for column in PIPELINE_COLUMNS}
        for column in DATE_FIELDS:
            data[column] = coerce_date(data[column])
        try:
            data["metadata"] = json.loads(data["metadata"] or "{}")
        except (TypeError, ValueError):
            logger.warning(f"Pipeline {data['id']} has unreadable metadata; resetting")
            data["metadata"] = {}
        return Pipeline(**data)

    def _row_to_activity(self, row: sqlite3.Row) -> ActivityLogEntry:
        return ActivityLogEntry(
            id=row["id"],
            pipeline_id=row["pipeline_id"],
            activity_type=ActivityType(row["activity_type"]),
            field_changed=row["field_changed"],
            old_value=row["old_value"],
            new_value=row["new_value"],
            notes=row["notes"],
            logged_by=row["logged_by"],
            logged_at=row["logged_at"],
        )
