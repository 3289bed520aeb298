"""
Logging setup for the coinpulse dashboard client.

Every record carries the dashboard session id (set by the app lifespan) and
an ISO timestamp. Output is either a pipe-separated line for terminals or one
JSON object per line. CoinGecko API keys are masked in rendered messages, and
a bounded buffer keeps recent records for the diagnostics endpoint.
"""

import json
import logging
import re
import sys
from collections import deque
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

current_session_id: ContextVar[str | None] = ContextVar("current_session_id", default=None)

REDACTED = "[REDACTED]"

# Keys as they show up in query strings, headers and reprs
_API_KEY_IN_TEXT = re.compile(
    r"(x[-_]cg[-_](?:demo|pro)[-_]api[-_]key['\"]?\s*[=:]\s*['\"]?)[^\s&'\",}]+",
    re.IGNORECASE,
)

_NOISY_LOGGERS = ("uvicorn.access", "httpx", "httpcore")


def redact_text(text: str) -> str:
    """Mask CoinGecko API keys embedded in free text."""
    return _API_KEY_IN_TEXT.sub(rf"\g<1>{REDACTED}", text)


class SessionFormatter(logging.Formatter):
    """Line formatter with timestamp, session prefix and key masking."""

    default_format = "%(timestamp)s | %(levelname)-8s | %(name)s | %(session)s%(message)s"

    def __init__(self, fmt: str | None = None):
        super().__init__(fmt or self.default_format)

    def format(self, record: logging.LogRecord) -> str:
        record.timestamp = datetime.fromtimestamp(record.created, UTC).isoformat()
        session_id = current_session_id.get()
        record.session_id = session_id
        record.session = f"[{session_id}] " if session_id else ""
        return redact_text(super().format(record))


class JsonFormatter(SessionFormatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        super().format(record)
        entry: dict[str, Any] = {
            "timestamp": record.timestamp,
            "level": record.levelname,
            "logger": record.name,
            "session_id": record.session_id,
            "message": redact_text(record.getMessage()),
        }
        if record.exc_info:
            entry["exception"] = redact_text(self.formatException(record.exc_info))
        return json.dumps(entry)


class LogBuffer(logging.Handler):
    """Keeps the most recent records as dicts for /diagnostics/logs."""

    def __init__(self, capacity: int = 500):
        super().__init__()
        self.entries: deque[dict[str, Any]] = deque(maxlen=capacity)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.entries.append(
                {
                    "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
                    "level": record.levelname,
                    "level_no": record.levelno,
                    "logger": record.name,
                    "session_id": current_session_id.get(),
                    "message": redact_text(record.getMessage()),
                }
            )
        except Exception:
            self.handleError(record)

    def select(self, min_level: int, limit: int) -> list[dict[str, Any]]:
        matching = [e for e in self.entries if e["level_no"] >= min_level]
        return matching[-limit:] if limit > 0 else []

    def clear(self) -> None:
        self.entries.clear()


_log_buffer = LogBuffer()


def _to_level(level: str) -> int:
    return getattr(logging, level.upper(), logging.INFO)


def setup_logging(level: str = "INFO", json_output: bool = False) -> logging.Logger:
    """
    Configure the root logger.

    Replaces any existing root handlers with a stdout handler and the
    diagnostics buffer.

    Args:
        level: Logging level name
        json_output: Emit JSON lines instead of pipe-separated text

    Returns:
        The root logger
    """
    root = logging.getLogger()
    root.handlers.clear()

    numeric_level = _to_level(level)
    root.setLevel(numeric_level)

    stream = logging.StreamHandler(sys.stdout)
    stream.setLevel(numeric_level)
    stream.setFormatter(JsonFormatter() if json_output else SessionFormatter())
    root.addHandler(stream)

    _log_buffer.setLevel(numeric_level)
    root.addHandler(_log_buffer)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return root


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def get_in_memory_logs(level: str = "INFO", limit: int = 50) -> list[dict[str, Any]]:
    """Recent buffered records at or above ``level``, oldest first."""
    return _log_buffer.select(_to_level(level), limit)


def set_session_id(session_id: str) -> None:
    current_session_id.set(session_id)


def clear_session_id() -> None:
    current_session_id.set(None)
