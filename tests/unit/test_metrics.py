"""Tests for metrics.py - Prometheus helpers."""

from __future__ import annotations

from unittest.mock import patch

import pytest
from prometheus_client import REGISTRY

import noderepair.metrics as metrics


@pytest.fixture
def reset_server_flag():
    original = metrics._server_started
    metrics._server_started = False
    yield
    metrics._server_started = original


def outcome_count(outcome: str) -> float:
    return REGISTRY.get_sample_value(
        "noderepair_repair_outcomes_total", {"outcome": outcome}
    ) or 0.0


class TestRecordOutcome:
    def test_increments_labelled_counter(self):
        before = outcome_count("attempt_failed")
        metrics.record_outcome("attempt_failed")
        assert outcome_count("attempt_failed") == before + 1


class TestStartMetricsServer:
    """Tests for the guarded HTTP server start."""

    def test_starts_once(self, reset_server_flag):
        with patch.object(metrics, "start_http_server") as mock_start:
            assert metrics.start_metrics_server(9123) is True
            assert metrics.start_metrics_server(9123) is False
        mock_start.assert_called_once_with(9123)

    def test_bind_failure(self, reset_server_flag):
        with patch.object(metrics, "start_http_server", side_effect=OSError("in use")):
            assert metrics.start_metrics_server(9123) is False
        assert metrics._server_started is False
