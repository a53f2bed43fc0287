"""Data access for pipelines."""

from .pipeline_repository import PipelineRepository

__all__ = ['PipelineRepository']
