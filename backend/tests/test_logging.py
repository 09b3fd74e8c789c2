"""
BioTriage - Structured Logging Tests

Run with: pytest tests/test_logging.py -v
"""

import json
import logging

from biotriage.core.logging import (
    HumanReadableFormatter,
    LogContext,
    StructuredFormatter,
    mask_sensitive_data,
    mask_session_id,
    request_id_var,
    session_id_var,
)


def make_record(message: str = "Scoring questionnaire", **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="biotriage.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=message,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestMasking:

    def test_session_id_truncated(self):
        assert mask_session_id("3f2a9c1b-7d4e-4a55") == "3f2a9c1b"
        assert mask_session_id("short") == "short"
        assert mask_session_id(None) is None

    def test_sensitive_fields_redacted(self):
        data = {
            "score": 50,
            "answers": {"main_symptom": "dor no peito"},
            "request": {"medications": "Losartana", "band": "high"},
        }
        masked = mask_sensitive_data(data)

        assert masked["score"] == 50
        assert masked["answers"] == "[REDACTED]"
        assert masked["request"] == {"medications": "[REDACTED]", "band": "high"}


class TestLogContext:

    def test_sets_and_restores(self):
        assert session_id_var.get() is None

        with LogContext(session_id="session-outer", request_id="req_1"):
            assert session_id_var.get() == "session-outer"
            assert request_id_var.get() == "req_1"

        assert session_id_var.get() is None
        assert request_id_var.get() is None

    def test_nested(self):
        with LogContext(session_id="session-outer", request_id="req_1"):
            with LogContext(session_id="session-inner"):
                assert session_id_var.get() == "session-inner"
                assert request_id_var.get() == "req_1"
            assert session_id_var.get() == "session-outer"

    def test_restores_after_exception(self):
        try:
            with LogContext(session_id="session-failing"):
                raise RuntimeError("stage failed")
        except RuntimeError:
            pass
        assert session_id_var.get() is None


class TestFormatters:

    def test_json_line(self):
        formatter = StructuredFormatter()
        with LogContext(session_id="3f2a9c1b-7d4e-4a55", request_id="req_abc"):
            line = formatter.format(make_record(data={"score": 50, "answers": {"breathing": "Sim"}}))

        entry = json.loads(line)
        assert entry["level"] == "INFO"
        assert entry["logger"] == "biotriage.test"
        assert entry["message"] == "Scoring questionnaire"
        assert entry["request_id"] == "req_abc"
        assert entry["session_id"] == "3f2a9c1b"
        assert entry["data"] == {"score": 50, "answers": "[REDACTED]"}

    def test_json_without_context(self):
        entry = json.loads(StructuredFormatter().format(make_record()))
        assert "session_id" not in entry
        assert "request_id" not in entry

    def test_human_readable(self):
        formatter = HumanReadableFormatter()
        with LogContext(session_id="3f2a9c1b-7d4e-4a55"):
            line = formatter.format(make_record())

        assert "| INFO     |" in line
        assert "[session=3f2a9c1b]" in line
        assert line.endswith("Scoring questionnaire")
