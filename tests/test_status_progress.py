"""Tests for the status -> progress mapping."""

import logging

import pytest

from pipeline_tracker.models.pipeline import PipelineStage
from pipeline_tracker.services.status_progress import (
    DEFAULT_PROGRESS_PERCENT,
    STATUS_PROGRESS_MAP,
    is_zero_revenue_status,
    progress_from_status,
)


@pytest.mark.parametrize(
    "status, expected",
    [
        ("【S】", 100),
        ("【S-】", 100),
        ("【A】", 80),
        ("【B】", 60),
        ("【C+】", 50),
        ("【C】", 30),
        ("【C-】", 5),
        ("【D】", 100),
        ("【E】", 0),
    ],
)
def test_progress_for_every_stage(status, expected):
    assert progress_from_status(status) == expected


def test_every_stage_enum_is_mapped():
    assert set(PipelineStage.codes()) == set(STATUS_PROGRESS_MAP)


@pytest.mark.parametrize("status", ["【Z】", "", None, "A", 42])
def test_unknown_status_defaults_to_fifty(status):
    assert progress_from_status(status) == DEFAULT_PROGRESS_PERCENT == 50


def test_unknown_status_logs_warning(caplog):
    with caplog.at_level(logging.WARNING):
        progress_from_status("【Q】")
    assert "Unknown status" in caplog.text


def test_surrounding_whitespace_is_ignored():
    assert progress_from_status(" 【A】 ") == 80


def test_mapping_is_deterministic():
    assert [progress_from_status("【B】") for _ in range(5)] == [60] * 5


@pytest.mark.parametrize("status", ["【D】", "【E】", "【F】"])
def test_zero_revenue_statuses(status):
    assert is_zero_revenue_status(status)


@pytest.mark.parametrize("status", ["【S】", "【A】", "【C-】", None, "【Z】"])
def test_revenue_generating_statuses(status):
    assert not is_zero_revenue_status(status)
