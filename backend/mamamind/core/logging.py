"""
Mama Mind - Structured Logging

Provides structured JSON logging with context injection for correlation IDs
and subject IDs. Subject identifiers and credentials are masked.
"""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from typing import List, Optional, Tuple


# =============================================================================
# Context Variables
# =============================================================================

# Request-level context
correlation_id_var: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)
subject_id_var: ContextVar[Optional[str]] = ContextVar('subject_id', default=None)

# Toggled by setup_structured_logging from ANONYMIZE_LOGS
_anonymize_subjects = True


# =============================================================================
# Masking Utilities
# =============================================================================

def mask_subject_id(subject_id: Optional[str]) -> Optional[str]:
    """Mask subject ID to its first 4 characters."""
    if not subject_id:
        return None
    if not _anonymize_subjects:
        return subject_id
    return f"{subject_id[:4]}***" if len(subject_id) > 4 else "***"


def mask_sensitive_data(data: dict) -> dict:
    """
    Recursively mask sensitive fields in a dictionary.

    Sensitive fields: tokens, keys, passwords, authorization headers, and
    anything carrying a subject identifier.
    """
    secret_keys = {'password', 'token', 'secret', 'key', 'authorization'}

    masked: dict = {}
    for key, value in data.items():
        key_lower = key.lower()

        if any(s in key_lower for s in secret_keys):
            masked[key] = "[REDACTED]"
        elif key_lower in ('subject_id', 'author_id') and isinstance(value, str):
            masked[key] = mask_subject_id(value)
        elif isinstance(value, dict):
            masked[key] = mask_sensitive_data(value)
        else:
            masked[key] = value

    return masked


# =============================================================================
# Structured Formatter
# =============================================================================

class StructuredFormatter(logging.Formatter):
    """
    JSON formatter that injects context variables and masks sensitive data.

    Output format:
    {
        "timestamp": "2025-01-01T00:00:00.000000Z",
        "level": "INFO",
        "logger": "module.submodule",
        "correlation_id": "req_abc123",
        "subject_id": "3f2a***",
        "message": "Human-readable message",
        "data": { ... }
    }
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict = {
            "timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        correlation_id = correlation_id_var.get()
        if correlation_id:
            log_entry["correlation_id"] = correlation_id

        subject_id = subject_id_var.get()
        if subject_id:
            log_entry["subject_id"] = mask_subject_id(subject_id)

        if hasattr(record, 'event_type'):
            log_entry["event_type"] = record.event_type

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

        correlation_id = correlation_id_var.get()
        if correlation_id:
            context_parts.append(f"req={correlation_id}")

        subject_id = subject_id_var.get()
        if subject_id:
            context_parts.append(f"subject={mask_subject_id(subject_id)}")

        context_str = f" [{', '.join(context_parts)}]" if context_parts else ""

        message = f"{timestamp} | {record.levelname:<8} | {record.name}{context_str} | {record.getMessage()}"

        if hasattr(record, 'data') and record.data:
            message += f" | {json.dumps(mask_sensitive_data(record.data), default=str)}"

        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)

        return message


# =============================================================================
# Logger Setup
# =============================================================================

def setup_structured_logging(
    level: str = "INFO",
    json_format: bool = False,
    anonymize: bool = True,
) -> None:
    """
    Configure structured logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: Use JSON format (True for production, False for development)
        anonymize: Mask subject identifiers in log output
    """
    global _anonymize_subjects
    _anonymize_subjects = anonymize

    log_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)

    if json_format:
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(HumanReadableFormatter())

    root_logger.addHandler(handler)

    # Suppress noisy loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("watchfiles").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# =============================================================================
# Context Managers
# =============================================================================

class LogContext:
    """
    Context manager for setting log context variables.

    Usage:
        with LogContext(correlation_id="req_abc123", subject_id="3f2a..."):
            logger.info("Recording reading")
    """

    def __init__(
        self,
        correlation_id: Optional[str] = None,
        subject_id: Optional[str] = None,
    ):
        self._correlation_id = correlation_id
        self._subject_id = subject_id
        self._tokens: List[Tuple[ContextVar, Token]] = []

    def __enter__(self):
        if self._correlation_id:
            self._tokens.append((correlation_id_var, correlation_id_var.set(self._correlation_id)))
        if self._subject_id:
            self._tokens.append((subject_id_var, subject_id_var.set(self._subject_id)))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens.clear()
        return False
