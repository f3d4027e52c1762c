"""
EmoSense - Structured Logging

Provides structured JSON logging with context injection for session and
turn IDs. User-supplied text fields are masked automatically.
"""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from typing import Any, List, Optional


# =============================================================================
# Context Variables
# =============================================================================

session_id_var: ContextVar[Optional[str]] = ContextVar("session_id", default=None)
turn_id_var: ContextVar[Optional[str]] = ContextVar("turn_id", default=None)


# =============================================================================
# Masking Utilities
# =============================================================================

SENSITIVE_KEYS = {
    "text", "message", "vision", "audio", "physio", "choice",
    "api_key", "key", "token", "secret", "password",
}


def mask_session_id(sid: Optional[str]) -> Optional[str]:
    """Mask session ID to first 8 characters."""
    if not sid:
        return None
    return sid[:8] if len(sid) > 8 else sid


def mask_sensitive_data(data: dict) -> dict:
    """
    Recursively mask sensitive fields in a dictionary.

    User text (message and simulated sensor channels) and credentials are
    replaced by their length so logs stay useful without content.
    """
    masked: dict[str, Any] = {}
    for key, value in data.items():
        if key.lower() in SENSITIVE_KEYS:
            if isinstance(value, str):
                masked[key] = f"[REDACTED, {len(value)} chars]"
            else:
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
        "timestamp": "2024-11-30T00:00:00.000000Z",
        "level": "INFO",
        "logger": "emosense.core.pipeline",
        "session_id": "3f2a9c1b",
        "turn_id": "turn_ab12cd34ef56",
        "message": "Human-readable message",
        "data": { ... }
    }
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        session_id = session_id_var.get()
        if session_id:
            log_entry["session_id"] = mask_session_id(session_id)

        turn_id = turn_id_var.get()
        if turn_id:
            log_entry["turn_id"] = turn_id

        data = getattr(record, "data", None)
        if data:
            log_entry["data"] = mask_sensitive_data(data)

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry)


class HumanReadableFormatter(logging.Formatter):
    """
    Human-readable formatter for development.
    Includes timestamp, level, logger, and message with context.
    """

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")

        context_parts = []

        session_id = session_id_var.get()
        if session_id:
            context_parts.append(f"session={mask_session_id(session_id)}")

        turn_id = turn_id_var.get()
        if turn_id:
            context_parts.append(f"turn={turn_id}")

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
    stream=None,
) -> None:
    """
    Configure structured logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: Use JSON format (True for production, False for development)
        stream: Output stream (default: stderr, so console replies stay clean)
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    root_logger.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(getattr(logging, level.upper()))

    if json_format:
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(HumanReadableFormatter())

    root_logger.addHandler(handler)

    # Suppress noisy loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


# =============================================================================
# Context Managers
# =============================================================================

class LogContext:
    """
    Context manager for setting log context variables.

    Usage:
        with LogContext(session_id="abc123", turn_id="turn_1"):
            logger.info("Processing turn")
    """

    def __init__(
        self,
        session_id: Optional[str] = None,
        turn_id: Optional[str] = None,
    ):
        self._session_id = session_id
        self._turn_id = turn_id
        self._tokens: List[tuple[ContextVar, Token]] = []

    def __enter__(self) -> "LogContext":
        if self._session_id:
            self._tokens.append((session_id_var, session_id_var.set(self._session_id)))
        if self._turn_id:
            self._tokens.append((turn_id_var, turn_id_var.set(self._turn_id)))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens.clear()
        return False
