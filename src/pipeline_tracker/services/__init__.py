"""Forecast engine, change detection and the pipeline service."""
