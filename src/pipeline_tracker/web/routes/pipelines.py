# src/pipeline_tracker/web/routes/pipelines.py
"""
Pipeline API endpoints.
CRUD for pipelines with forecast recalculation, activity history and
forecast previews.
"""

import logging
from flask import Blueprint, request

from pipeline_tracker.services.container import get_container
from pipeline_tracker.web.utils.request_helpers import (
    RequestValidationError,
    create_success_response,
    get_json_body,
    get_pagination_parameters,
    get_request_user,
    handle_request_errors,
    log_requests,
    safe_get_service,
)

logger = logging.getLogger(__name__)

pipelines_bp = Blueprint("pipelines", __name__, url_prefix="/api/pipelines")


def _pipeline_service():
    return safe_get_service(get_container(), "pipeline_service")


@pipelines_bp.route("", methods=["GET"])
@log_requests
@handle_request_errors
def list_pipelines():
    """
    List pipelines.

    Query params: group, status, poc, fiscal_year, fiscal_quarter, limit, offset
    """
    filters = {
        "group": request.args.get("group", "").strip() or None,
        "status": request.args.get("status", "").strip() or None,
        "poc": request.args.get("poc", "").strip() or None,
        "fiscal_year": request.args.get("fiscal_year", type=int),
        "fiscal_quarter": request.args.get("fiscal_quarter", type=int),
    }
    page = get_pagination_parameters(default_limit=100, max_limit=1000)

    pipelines, total = _pipeline_service().list_pipelines(
        filters, limit=page["limit"], offset=page["offset"]
    )
    return create_success_response(
        {
            "pipelines": [p.to_dict() for p in pipelines],
            "total": total,
            "limit": page["limit"],
            "offset": page["offset"],
        }
    )


@pipelines_bp.route("", methods=["POST"])
@log_requests
@handle_request_errors
def create_pipeline():
    """
    Create a pipeline and its monthly forecast.

    Request body:
    {
        "publisher": "Example Media",
        "poc": "alice",
        "group": "sales",
        "status": "【A】",
        "max_gross": 3000,
        "revenue_share": 50,
        "starting_date": "2025-04-01",
        "fiscal_year": 2025,
        "fiscal_quarter": 1
    }
    """
    data = get_json_body()
    pipeline = _pipeline_service().create_pipeline(data, user=get_request_user(data))
    return create_success_response(pipeline.to_dict(), "Pipeline created", status_code=201)


@pipelines_bp.route("/calculate", methods=["POST"])
@log_requests
@handle_request_errors
def calculate_forecast():
    """Forecast preview for an unsaved payload; nothing is persisted."""
    data = get_json_body()
    result = _pipeline_service().preview_forecast(data)
    return create_success_response(result.to_dict())


@pipelines_bp.route("/<pipeline_id>", methods=["GET"])
@log_requests
@handle_request_errors
def get_pipeline(pipeline_id):
    pipeline = _pipeline_service().get_pipeline(pipeline_id)
    return create_success_response(pipeline.to_dict())


@pipelines_bp.route("/<pipeline_id>", methods=["PUT", "PATCH"])
@log_requests
@handle_request_errors
def update_pipeline(pipeline_id):
    """Partial update; only the supplied fields change."""
    data = get_json_body()
    pipeline = _pipeline_service().update_pipeline(
        pipeline_id, data, user=get_request_user(data)
    )
    return create_success_response(pipeline.to_dict(), "Pipeline updated")


@pipelines_bp.route("/<pipeline_id>", methods=["DELETE"])
@log_requests
@handle_request_errors
def delete_pipeline(pipeline_id):
    """Archive and delete a pipeline. Optional body: {"reason": "..."}"""
    data = request.get_json(silent=True) or {}
    archived = _pipeline_service().delete_pipeline(
        pipeline_id,
        user=get_request_user(data),
        reason=data.get("reason"),
        source="api",
    )
    return create_success_response(
        {
            "pipeline_id": archived.pipeline_id,
            "deleted_by": archived.deleted_by,
            "archived_forecasts": len(archived.monthly_forecasts_snapshot),
        },
        "Pipeline deleted",
    )


@pipelines_bp.route("/<pipeline_id>/activities", methods=["GET"])
@log_requests
@handle_request_errors
def list_activities(pipeline_id):
    """Activity history, newest first. Query params: limit, offset, type"""
    page = get_pagination_parameters()
    activities = _pipeline_service().get_activities(
        pipeline_id,
        limit=page["limit"],
        offset=page["offset"],
        activity_type=request.args.get("type", "").strip() or None,
    )
    return create_success_response(
        {
            "activities": [a.to_dict() for a in activities],
            "limit": page["limit"],
            "offset": page["offset"],
        }
    )


@pipelines_bp.route("/<pipeline_id>/activities", methods=["POST"])
@log_requests
@handle_request_errors
def add_note(pipeline_id):
    """Append a manual note. Body: {"notes": "..."}"""
    data = get_json_body()
    note = data.get("notes") or data.get("note")
    if not note:
        raise RequestValidationError("notes is required")
    entry = _pipeline_service().add_note(pipeline_id, note, user=get_request_user(data))
    return create_success_response(entry.to_dict(), "Note added", status_code=201)


@pipelines_bp.route("/<pipeline_id>/forecast-check", methods=["GET"])
@log_requests
@handle_request_errors
def forecast_check(pipeline_id):
    """Compare stored quarter totals with the monthly rows."""
    return create_success_response(_pipeline_service().check_forecast(pipeline_id))
