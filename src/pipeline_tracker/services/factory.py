# src/pipeline_tracker/services/factory.py
"""
Service factory functions.
Builds the database connection and pipeline services from settings and
registers them with the global container.
"""

import logging
from pathlib import Path
from typing import Optional

from pipeline_tracker.config.settings import Settings, get_settings
from pipeline_tracker.database.connection import DatabaseConnection
from pipeline_tracker.database.schema import initialize_schema
from pipeline_tracker.repositories.pipeline_repository import PipelineRepository
from pipeline_tracker.services.container import (
    ServiceContainer,
    ServiceCreationError,
    get_container,
)
from pipeline_tracker.services.pipeline_service import PipelineService

logger = logging.getLogger(__name__)


def configure_container_from_environment(settings: Optional[Settings] = None) -> ServiceContainer:
    """Store the resolved settings on the container for the factories below."""
    settings = settings or get_settings()
    container = get_container()

    db_dir = Path(settings.database.db_path).parent
    if str(settings.database.db_path) != ":memory:" and not db_dir.exists():
        logger.info(f"Creating database directory: {db_dir}")
        db_dir.mkdir(parents=True, exist_ok=True)

    container.set_config({
        "SETTINGS": settings,
        "PROJECT_ROOT": str(settings.project_root),
        "DB_PATH": settings.database.db_path,
        "ENVIRONMENT": settings.environment,
        "STATUS_LOGGED_BY_TRIGGER": settings.forecast.status_logged_by_trigger,
        "DEFAULT_USER": settings.forecast.default_user,
    })
    logger.info(f"Configured container for environment: {settings.environment}")
    logger.debug(f"Database path: {settings.database.db_path}")
    return container


def create_database_connection(db_path: Optional[str] = None) -> DatabaseConnection:
    """
    Create the database connection and make sure the schema exists.

    Args:
        db_path: Optional database path override
    """
    container = get_container()
    db_path = db_path or container.get_config("DB_PATH")
    if not db_path:
        raise ServiceCreationError("No database path configured")

    db = DatabaseConnection(db_path)
    initialize_schema(db, status_trigger=container.get_config("STATUS_LOGGED_BY_TRIGGER", True))
    logger.info(f"Database connection ready: {db_path}")
    return db


def create_pipeline_repository() -> PipelineRepository:
    return PipelineRepository(get_container().get("database_connection"))


def create_pipeline_service() -> PipelineService:
    container = get_container()
    settings: Settings = container.get_config("SETTINGS") or get_settings()
    return PipelineService(
        container.get("database_connection"),
        forecast_config=settings.forecast,
        repository=container.get("pipeline_repository"),
    )


def initialize_services(settings: Optional[Settings] = None) -> ServiceContainer:
    """Configure the container and register all services."""
    container = configure_container_from_environment(settings)

    try:
        container.register_singleton("database_connection", create_database_connection)
        container.register_singleton("pipeline_repository", create_pipeline_repository)
        container.register_singleton("pipeline_service", create_pipeline_service)
    except Exception as e:
        logger.error(f"Failed to register services: {e}")
        raise ServiceCreationError(f"Service registration failed: {e}") from e

    logger.info(f"Registered services: {sorted(container.list_services())}")
    return container
