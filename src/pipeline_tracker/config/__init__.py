# src/pipeline_tracker/config/__init__.py
"""
Configuration module for the pipeline forecast tracker.
"""

from .settings import Settings, get_settings

__all__ = ['Settings', 'get_settings']
