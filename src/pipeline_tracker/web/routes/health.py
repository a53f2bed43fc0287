# src/pipeline_tracker/web/routes/health.py
"""
Health monitoring endpoints.
"""

import logging
import time
from datetime import datetime, timedelta, timezone

import psutil
from flask import Blueprint

from pipeline_tracker.services.container import get_container
from pipeline_tracker.web.utils.request_helpers import (
    create_error_response,
    create_success_response,
    handle_request_errors,
    log_requests,
)

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/health")


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@health_bp.route("", methods=["GET"])
@log_requests
@handle_request_errors
def system_health():
    """Service and database status."""
    container = get_container()
    health_report = {
        "timestamp": _timestamp(),
        "services": container.list_services(),
    }

    try:
        db = container.get("database_connection")
        with db.connection() as conn:
            pipelines = conn.execute("SELECT COUNT(*) FROM pipelines").fetchone()[0]
        health_report["database"] = {
            "status": "healthy",
            "path": db.db_path,
            "pipelines": pipelines,
            "settings": db.current_settings(),
        }
        health_report["overall_status"] = "healthy"
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        health_report["database"] = {"status": "error", "error": str(e)}
        health_report["overall_status"] = "unhealthy"
        return create_error_response(
            "Database unavailable", status_code=503, error_code="HEALTH_CHECK_FAILURE",
            details=health_report,
        )

    return create_success_response(health_report)


@health_bp.route("/system", methods=["GET"])
@log_requests
@handle_request_errors
def system_stats():
    """Host resource usage."""
    memory = psutil.virtual_memory()
    disk = psutil.disk_usage("/")
    uptime_seconds = int(time.time() - psutil.boot_time())

    return create_success_response(
        {
            "timestamp": _timestamp(),
            "system": {
                "cpu_percent": round(psutil.cpu_percent(interval=0.1), 1),
                "memory_percent": round(memory.percent, 1),
                "memory_used_mb": round(memory.used / 1024 / 1024, 1),
                "memory_total_mb": round(memory.total / 1024 / 1024, 1),
                "disk_percent": round((disk.used / disk.total) * 100, 1),
                "disk_used_gb": round(disk.used / 1024 / 1024 / 1024, 1),
                "disk_total_gb": round(disk.total / 1024 / 1024 / 1024, 1),
                "uptime_seconds": uptime_seconds,
                "uptime_formatted": str(timedelta(seconds=uptime_seconds)),
            },
        }
    )
