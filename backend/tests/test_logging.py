"""
Mama Mind - Logging Tests

Tests for subject masking, context injection and the JSON formatter.

Run with: pytest tests/test_logging.py -v
"""

import json
import logging

import pytest

from mamamind.core import logging as mm_logging
from mamamind.core.logging import (
    HumanReadableFormatter,
    LogContext,
    StructuredFormatter,
    correlation_id_var,
    mask_sensitive_data,
    mask_subject_id,
    subject_id_var,
)


@pytest.fixture(autouse=True)
def anonymized(monkeypatch):
    monkeypatch.setattr(mm_logging, "_anonymize_subjects", True)


def make_record(message: str = "hello", **extra) -> logging.LogRecord:
    record = logging.LogRecord("mamamind.test", logging.INFO, __file__, 1, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestMasking:

    def test_mask_subject_id(self):
        assert mask_subject_id("patient-1") == "pati***"
        assert mask_subject_id("abc") == "***"
        assert mask_subject_id(None) is None

    def test_anonymize_off(self, monkeypatch):
        monkeypatch.setattr(mm_logging, "_anonymize_subjects", False)
        assert mask_subject_id("patient-1") == "patient-1"

    def test_mask_sensitive_data(self):
        masked = mask_sensitive_data({
            "subject_id": "patient-1",
            "api_token": "secret-value",
            "nested": {"Authorization": "Bearer x", "kind": "weight"},
            "count": 3,
        })
        assert masked == {
            "subject_id": "pati***",
            "api_token": "[REDACTED]",
            "nested": {"Authorization": "[REDACTED]", "kind": "weight"},
            "count": 3,
        }


class TestLogContext:

    def test_sets_and_resets(self):
        with LogContext(correlation_id="req_1", subject_id="patient-1"):
            assert correlation_id_var.get() == "req_1"
            assert subject_id_var.get() == "patient-1"
        assert correlation_id_var.get() is None
        assert subject_id_var.get() is None


class TestFormatters:

    def test_structured_formatter(self):
        record = make_record(event_type="intake_metrics", data={"subject_id": "patient-1", "total_ms": 3.5})

        with LogContext(correlation_id="req_abc", subject_id="patient-1"):
            entry = json.loads(StructuredFormatter().format(record))

        assert entry["message"] == "hello"
        assert entry["correlation_id"] == "req_abc"
        assert entry["subject_id"] == "pati***"
        assert entry["event_type"] == "intake_metrics"
        assert entry["data"] == {"subject_id": "pati***", "total_ms": 3.5}

    def test_human_readable_formatter(self):
        with LogContext(correlation_id="req_abc", subject_id="patient-1"):
            line = HumanReadableFormatter().format(make_record())

        assert "req=req_abc" in line
        assert "subject=pati***" in line
        assert "patient-1" not in line
