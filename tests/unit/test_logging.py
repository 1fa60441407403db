"""Unit tests for structured logging"""

import json
import logging
import pytest
from recovery_engine.infrastructure.observability.logging import (
    log_record_error,
    log_recommendation,
    setup_logging,
)


@pytest.fixture(autouse=True)
def reset_root_logger():
    yield
    logging.getLogger().handlers.clear()


def _json_lines(capsys):
    return [json.loads(line) for line in capsys.readouterr().out.splitlines() if line.strip()]


def test_recommendation_logged_as_json(capsys):
    # Installed inside the test so the handler binds to the captured stdout
    setup_logging("INFO")

    log_recommendation("run-1", "CUST-1", "Alpha", "Gamma", "90.00", True)

    record = _json_lines(capsys)[-1]
    assert record["message"] == "Category recommendation computed"
    assert record["level"] == "INFO"
    assert record["service"] == "recovery-engine"
    assert record["customer_id"] == "CUST-1"
    assert record["recommended_category"] == "Gamma"
    assert record["override_applied"] is True


def test_record_error_logged_as_warning(capsys):
    setup_logging("INFO")

    log_record_error("run-1", "invoice", "INV-9", "incomplete_data", "interest_rate is missing")

    record = _json_lines(capsys)[-1]
    assert record["level"] == "WARNING"
    assert record["record_id"] == "INV-9"
    assert record["error_kind"] == "incomplete_data"
