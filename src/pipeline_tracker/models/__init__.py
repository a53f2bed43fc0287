# src/pipeline_tracker/models/__init__.py
"""
Domain models for pipelines, monthly forecasts and the activity log.
"""

from .pipeline import (
    ActivityLogEntry,
    ActivityType,
    DeletedPipeline,
    ForecastType,
    MonthlyForecast,
    Pipeline,
    PipelineGroup,
    PipelineStage,
    ValidationError,
    ValidationResult,
)

__all__ = [
    'ActivityLogEntry',
    'ActivityType',
    'DeletedPipeline',
    'ForecastType',
    'MonthlyForecast',
    'Pipeline',
    'PipelineGroup',
    'PipelineStage',
    'ValidationError',
    'ValidationResult',
]
