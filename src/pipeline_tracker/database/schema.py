"""
Pipeline tracker schema.

All statements are idempotent; initialize_schema can run on every start.
"""

import logging

from .connection import DatabaseConnection

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS pipelines (
    id TEXT PRIMARY KEY,
    name TEXT,
    description TEXT,
    fiscal_year INTEGER,
    fiscal_quarter INTEGER CHECK (fiscal_quarter IS NULL OR fiscal_quarter BETWEEN 1 AND 4),
    "group" TEXT NOT NULL DEFAULT 'sales' CHECK ("group" IN ('sales', 'cs')),

    classification TEXT,
    poc TEXT NOT NULL,
    team TEXT,
    pid TEXT,
    publisher TEXT NOT NULL,
    mid TEXT,
    domain TEXT,
    channel TEXT,
    region TEXT,
    product TEXT,

    imp REAL,
    ecpm REAL,
    max_gross REAL,
    revenue_share REAL CHECK (revenue_share IS NULL OR revenue_share BETWEEN 0 AND 100),
    day_gross REAL,
    day_net_rev REAL,

    status TEXT NOT NULL DEFAULT '【E】',
    progress_percent INTEGER CHECK (progress_percent IS NULL OR progress_percent BETWEEN 0 AND 100),
    starting_date TEXT,
    end_date TEXT,
    proposal_date TEXT,
    interested_date TEXT,
    acceptance_date TEXT,
    ready_to_deliver_date TEXT,
    actual_starting_date TEXT,
    close_won_date TEXT,

    action_date TEXT,
    next_action TEXT,
    action_detail TEXT,
    action_progress TEXT,

    forecast_type TEXT NOT NULL DEFAULT 'estimate'
        CHECK (forecast_type IN ('estimate', 'out_of_estimate')),
    competitors TEXT,
    q_gross REAL,
    q_net_rev REAL,
    metadata TEXT NOT NULL DEFAULT '{}',

    created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now')),
    updated_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now')),
    created_by TEXT,
    updated_by TEXT
);

CREATE INDEX IF NOT EXISTS idx_pipelines_group ON pipelines ("group");
CREATE INDEX IF NOT EXISTS idx_pipelines_status ON pipelines (status);
CREATE INDEX IF NOT EXISTS idx_pipelines_poc ON pipelines (poc);
CREATE INDEX IF NOT EXISTS idx_pipelines_fiscal ON pipelines (fiscal_year, fiscal_quarter);

CREATE TABLE IF NOT EXISTS pipeline_monthly_forecast (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    pipeline_id TEXT NOT NULL REFERENCES pipelines(id) ON DELETE CASCADE,
    year INTEGER NOT NULL,
    month INTEGER NOT NULL CHECK (month BETWEEN 1 AND 12),
    delivery_days INTEGER CHECK (delivery_days IS NULL OR delivery_days BETWEEN 0 AND 31),
    gross_revenue REAL NOT NULL DEFAULT 0,
    net_revenue REAL NOT NULL DEFAULT 0,
    validation_flag INTEGER NOT NULL DEFAULT 0,
    notes TEXT,
    created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now')),
    UNIQUE (pipeline_id, year, month)
);

CREATE INDEX IF NOT EXISTS idx_monthly_forecast_pipeline
    ON pipeline_monthly_forecast (pipeline_id);

CREATE TABLE IF NOT EXISTS pipeline_activity_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    pipeline_id TEXT NOT NULL REFERENCES pipelines(id) ON DELETE CASCADE,
    activity_type TEXT NOT NULL CHECK (activity_type IN
        ('status_change', 'note', 'action_update', 'forecast_update', 'field_update')),
    field_changed TEXT,
    old_value TEXT,
    new_value TEXT,
    notes TEXT,
    logged_by TEXT NOT NULL,
    logged_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
);

CREATE INDEX IF NOT EXISTS idx_activity_log_pipeline
    ON pipeline_activity_log (pipeline_id, logged_at);

CREATE TABLE IF NOT EXISTS deleted_pipelines (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    pipeline_id TEXT NOT NULL,
    pipeline_data TEXT NOT NULL,
    monthly_forecasts_snapshot TEXT NOT NULL DEFAULT '[]',
    deleted_by TEXT,
    deletion_reason TEXT,
    deletion_source TEXT,
    deleted_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
);
"""

STATUS_TRIGGER_SQL = """
CREATE TRIGGER IF NOT EXISTS auto_log_pipeline_status_change
AFTER UPDATE OF status ON pipelines
WHEN OLD.status IS NOT NEW.status
BEGIN
    INSERT INTO pipeline_activity_log
        (pipeline_id, activity_type, field_changed, old_value, new_value, logged_by)
    VALUES
        (NEW.id, 'status_change', 'status', OLD.status, NEW.status,
         COALESCE(NEW.updated_by, 'system'));
END;
"""

TABLES = (
    "pipelines",
    "pipeline_monthly_forecast",
    "pipeline_activity_log",
    "deleted_pipelines",
)


def initialize_schema(db: DatabaseConnection, status_trigger: bool = True) -> None:
    """
    Create tables and indexes if missing.

    With status_trigger the database writes status_change activity rows
    itself; without it the trigger is dropped and the service logs them.
    """
    with db.connection() as conn:
        conn.executescript(SCHEMA_SQL)
        if status_trigger:
            conn.executescript(STATUS_TRIGGER_SQL)
        else:
            conn.execute("DROP TRIGGER IF EXISTS auto_log_pipeline_status_change")
        conn.commit()
    logger.info(f"Schema initialized at {db.db_path} (status trigger: {status_trigger})")
