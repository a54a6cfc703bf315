"""Tests for the structured generation log line."""

import json
import logging

import pytest

from promptdesk.telemetry import log_generation


def test_log_generation_emits_json(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO, logger="promptdesk")

    log_generation(
        organization_id="acme",
        prompt_id="summarize",
        model_id="completion-model",
        outcome="provider_timeout",
        status=504,
        duration_ms=5001,
        error="Provider did not respond within 5s.",
        log_id="abc123",
    )

    record = json.loads(caplog.records[-1].getMessage())
    assert record["status"] == 504
    assert record["outcome"] == "provider_timeout"
    assert record["log_id"] == "abc123"
    assert record["error"].startswith("Provider did not respond")


def test_success_line_has_no_error_field(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO, logger="promptdesk")

    log_generation(
        organization_id="acme",
        prompt_id="summarize",
        model_id="completion-model",
        outcome="success",
        status=200,
    )

    record = json.loads(caplog.records[-1].getMessage())
    assert "error" not in record
    assert record["duration_ms"] == 0
