"""Shared pytest fixtures for the test suite."""

from datetime import date

import pytest

from pipeline_tracker.database.connection import DatabaseConnection
from pipeline_tracker.database.schema import initialize_schema
from pipeline_tracker.repositories.pipeline_repository import PipelineRepository
from pipeline_tracker.services.container import reset_container
from pipeline_tracker.services.pipeline_service import PipelineService

# Mid-May 2025 sits in FY2025 Q1 (Apr-Jun)
TODAY = date(2025, 5, 1)


@pytest.fixture
def db(tmp_path):
    """Fresh SQLite database with the schema applied."""
    connection = DatabaseConnection(str(tmp_path / "pipelines_test.db"))
    initialize_schema(connection)
    return connection


@pytest.fixture
def repository(db):
    return PipelineRepository(db)


@pytest.fixture
def service(db, repository):
    return PipelineService(db, repository=repository)


@pytest.fixture
def pipeline_data():
    """Valid create payload: 【A】, 3000/month, 50% share, starting mid-April."""
    return {
        "publisher": "Example Media",
        "poc": "alice",
        "group": "sales",
        "status": "【A】",
        "max_gross": 3000,
        "revenue_share": 50,
        "starting_date": "2025-04-15",
        "fiscal_year": 2025,
        "fiscal_quarter": 1,
        "next_action": "Send proposal",
    }


@pytest.fixture
def app(tmp_path, monkeypatch):
    """Flask app wired to a temporary database."""
    monkeypatch.setenv("DB_PATH", str(tmp_path / "app.db"))
    monkeypatch.setenv("APP_ENV", "test")
    reset_container()

    from pipeline_tracker.web.app import create_app

    app = create_app("test")
    yield app
    reset_container()


@pytest.fixture
def client(app):
    with app.test_client() as client:
        yield client
