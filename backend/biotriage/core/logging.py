"""
BioTriage - Structured Logging

Provides structured JSON logging with context injection for request and
session IDs. Free-text answers and raw audio never reach the log output.
"""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Optional


# =============================================================================
# Context Variables
# =============================================================================

request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)
session_id_var: ContextVar[Optional[str]] = ContextVar('session_id', default=None)


# =============================================================================
# Masking Utilities
# =============================================================================

# Keys whose values may carry patient-entered text or raw recordings
_REDACTED_KEYS = {
    'answers', 'main_symptom', 'medications', 'notes',
    'samples', 'pcm16_base64', 'audio',
}


def mask_session_id(sid: Optional[str]) -> Optional[str]:
    """Mask session ID to first 8 characters."""
    if not sid:
        return None
    return sid[:8] if len(sid) > 8 else sid


def mask_sensitive_data(data: dict) -> dict:
    """Recursively replace patient-entered fields with a placeholder."""
    masked = {}
    for key, value in data.items():
        if key.lower() in _REDACTED_KEYS:
            masked[key] = "[REDACTED]"
        elif isinstance(value, dict):
            masked[key] = mask_sensitive_data(value)
        else:
            masked[key] = value
    return masked


# =============================================================================
# Formatters
# =============================================================================

class StructuredFormatter(logging.Formatter):
    """
    JSON formatter that injects context variables and masks sensitive data.

    Output format:
    {
        "timestamp": "2026-01-01T00:00:00.000000Z",
        "level": "INFO",
        "logger": "biotriage.core.pipeline",
        "request_id": "req_abc123",
        "session_id": "3f2a9c1b",
        "message": "Human-readable message",
        "data": { ... }
    }
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = request_id_var.get()
        if request_id:
            log_entry["request_id"] = request_id

        session_id = session_id_var.get()
        if session_id:
            log_entry["session_id"] = mask_session_id(session_id)

        if hasattr(record, 'data') and record.data:
            log_entry["data"] = mask_sensitive_data(record.data)

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """
    Human-readable formatter for development.
    Includes timestamp, level, logger, and message with context.
    """

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")

        context_parts = []
        request_id = request_id_var.get()
        if request_id:
            context_parts.append(f"req={request_id}")
        session_id = session_id_var.get()
        if session_id:
            context_parts.append(f"session={mask_session_id(session_id)}")

        context_str = f" [{', '.join(context_parts)}]" if context_parts else ""
        message = f"{timestamp} | {record.levelname:<8} | {record.name}{context_str} | {record.getMessage()}"

        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)

        return message


# =============================================================================
# Logger Setup
# =============================================================================

def setup_structured_logging(
    level: str = "INFO",
    json_format: bool = False,
) -> None:
    """
    Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: Use JSON format (True for production, False for development)
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)
    handler.setFormatter(StructuredFormatter() if json_format else HumanReadableFormatter())
    root_logger.addHandler(handler)

    # Suppress noisy loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("numba").setLevel(logging.WARNING)


# =============================================================================
# Context Manager
# =============================================================================

class LogContext:
    """
    Context manager for setting log context variables.

    Previous values are restored on exit, so contexts can be nested.

    Usage:
        with LogContext(session_id="abc123", request_id="req_1"):
            logger.info("Scoring questionnaire")
    """

    def __init__(
        self,
        session_id: Optional[str] = None,
        request_id: Optional[str] = None,
    ):
        self._session_id = session_id
        self._request_id = request_id
        self._tokens = []

    def __enter__(self):
        if self._session_id:
            self._tokens.append((session_id_var, session_id_var.set(self._session_id)))
        if self._request_id:
            self._tokens.append((request_id_var, request_id_var.set(self._request_id)))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens.clear()
        return False
