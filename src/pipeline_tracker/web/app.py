#!/usr/bin/env python3
"""
Flask application factory with dependency injection.
Route handlers live in blueprints; this module wires configuration,
services and blueprints together.
"""

import logging
from typing import Optional

from flask import Flask

from pipeline_tracker.config.settings import Settings, get_settings
from pipeline_tracker.services.container import ServiceCreationError
from pipeline_tracker.services.factory import initialize_services
from pipeline_tracker.web.routes.health import health_bp
from pipeline_tracker.web.routes.pipelines import pipelines_bp
from pipeline_tracker.web.utils.request_helpers import create_error_response

logger = logging.getLogger(__name__)


def create_app(environment: Optional[str] = None, settings: Optional[Settings] = None) -> Flask:
    settings = settings or get_settings(environment)

    try:
        container = initialize_services(settings)
        # Fail fast on an unusable database path
        container.get("database_connection")
        logger.info("Service container initialized successfully")
    except ServiceCreationError as e:
        logger.error(f"Failed to initialize services: {e}")
        raise

    app = Flask(__name__)
    app.config.update({
        'SECRET_KEY': settings.web.secret_key,
        'DEBUG': settings.web.debug,
        'MAX_CONTENT_LENGTH': settings.web.max_content_length,
        'ENVIRONMENT': settings.environment,
        'PROJECT_ROOT': str(settings.project_root),
        'DB_PATH': settings.database.db_path,
        'TESTING': settings.environment == "test",
    })

    app.register_blueprint(pipelines_bp)
    app.register_blueprint(health_bp)
    logger.info("Blueprints registered: pipelines, health")

    @app.errorhandler(404)
    def not_found(error):
        return create_error_response("Resource not found", 404, "NOT_FOUND")

    @app.errorhandler(405)
    def method_not_allowed(error):
        return create_error_response("Method not allowed", 405, "METHOD_NOT_ALLOWED")

    @app.errorhandler(413)
    def too_large(error):
        return create_error_response("Request body too large", 413, "PAYLOAD_TOO_LARGE")

    return app


def main():
    logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s %(name)s: %(message)s')
    settings = get_settings()
    app = create_app(settings=settings)
    app.run(host=settings.web.host, port=settings.web.port, debug=settings.web.debug)


if __name__ == '__main__':
    main()
