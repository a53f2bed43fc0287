# src/pipeline_tracker/web/utils/request_helpers.py
"""
Request and response helper utilities for Flask routes.
"""
import json
import logging
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from flask import Response, request

from pipeline_tracker.services.pipeline_service import (
    PersistenceError,
    PipelineNotFoundError,
    PipelineValidationError,
)

logger = logging.getLogger(__name__)


class RequestValidationError(Exception):
    """Raised when request parameters are invalid."""
    pass


def serialize_json(data: Any) -> str:
    """JSON text with Decimal, date and Enum support."""

    def default_handler(obj):
        if isinstance(obj, Decimal):
            return float(obj)
        if isinstance(obj, (date, datetime)):
            return obj.isoformat()
        if isinstance(obj, Enum):
            return obj.value
        raise TypeError(f"Object of type {type(obj)} is not JSON serializable")

    return json.dumps(data, default=default_handler, ensure_ascii=False)


def create_json_response(data: Any, status_code: int = 200) -> Response:
    """Create standardized JSON response."""
    try:
        json_data = serialize_json(data)
    except (TypeError, ValueError) as e:
        logger.error(f"Error creating JSON response: {e}")
        error_data = json.dumps({'success': False, 'error': 'Serialization failed', 'status': 500})
        return Response(error_data, status=500, mimetype='application/json')
    return Response(json_data, status=status_code, mimetype='application/json')


def create_success_response(data: Any, message: Optional[str] = None, status_code: int = 200) -> Response:
    """Create standardized success response."""
    response_data = {'success': True, 'data': data}
    if message:
        response_data['message'] = message
    return create_json_response(response_data, status_code)


def create_error_response(
    error_message: str,
    status_code: int = 400,
    error_code: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> Response:
    """Create standardized error response."""
    response_data = {'success': False, 'error': error_message, 'status': status_code}
    if error_code:
        response_data['error_code'] = error_code
    if details:
        response_data['details'] = details
    return create_json_response(response_data, status_code)


def safe_get_service(container, service_name: str):
    """Get a service from the container or fail the request."""
    try:
        service = container.get(service_name)
    except Exception as e:
        logger.error(f"Failed to get service '{service_name}': {e}")
        raise RequestValidationError(f"Service '{service_name}' is not available") from e
    if service is None:
        raise RequestValidationError(f"Service '{service_name}' is not available")
    return service


def get_json_body() -> Dict[str, Any]:
    """Request body as a JSON object."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise RequestValidationError("Request body must be a JSON object")
    return data


def get_request_user(data: Optional[Dict[str, Any]] = None) -> Optional[str]:
    """Acting user from the X-User header or the body's user field."""
    user = request.headers.get('X-User')
    if not user and data:
        user = data.get('user') or data.get('logged_by')
    return user.strip() if isinstance(user, str) and user.strip() else None


def get_pagination_parameters(default_limit: int = 50, max_limit: int = 500) -> Dict[str, int]:
    """limit/offset from the query string, clamped."""
    limit = request.args.get('limit', default_limit, type=int)
    offset = request.args.get('offset', 0, type=int)
    if limit is None or offset is None:
        raise RequestValidationError("limit and offset must be integers")
    return {'limit': min(max(1, limit), max_limit), 'offset': max(0, offset)}


def log_requests(func):
    """Decorator to log request information."""
    def log_wrapper(*args, **kwargs):
        logger.debug(f"Request: {request.method} {request.path}")
        return func(*args, **kwargs)
    log_wrapper.__name__ = f"{func.__name__}_logged"
    log_wrapper.__doc__ = func.__doc__
    return log_wrapper


def handle_request_errors(func):
    """Decorator mapping service errors onto the JSON error envelope."""
    def error_wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except RequestValidationError as e:
            return create_error_response(str(e), 400, "VALIDATION_ERROR")
        except PipelineValidationError as e:
            return create_error_response(str(e), 400, "VALIDATION_ERROR", e.validation.to_dict())
        except PipelineNotFoundError as e:
            return create_error_response(str(e), 404, "NOT_FOUND")
        except PersistenceError as e:
            logger.error(f"Persistence error in {func.__name__}: {e}")
            return create_error_response("A database error occurred", 500, "PERSISTENCE_ERROR")
        except Exception as e:
            logger.exception(f"Unexpected error in {func.__name__}: {e}")
            return create_error_response("An unexpected error occurred", 500, "INTERNAL_ERROR")
    error_wrapper.__name__ = f"{func.__name__}_error_handled"
    error_wrapper.__doc__ = func.__doc__
    return error_wrapper
