"""
Structured logging configuration for the Afilli agent fleet.

Uses the standard library logging module with a JSON formatter for
production and a colored formatter for local work, so every module keeps
plain logging.getLogger(__name__) calls.

Environments:
- production: JSON to stdout
- development/staging/test: colored text to stderr

Usage:
    from afilli.observability.logging_config import configure_logging

    configure_logging()  # reads AFILLI_ENV

    logger = logging.getLogger(__name__)
    logger.info("task_generated", extra={
        "agent_id": agent_id,
        "task_type": "offer_sync",
        "hours_since_sync": 7.5,
    })

Task executors bind the agent and task being processed with
`bind_run_context()`; the ContextFilter stamps them onto every record
emitted while that work is in flight.
"""

from __future__ import annotations

import contextvars
import json
import logging
import os
import sys
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator, Optional

# ─── Run Context ──────────────────────────────────────────────────────

_agent_id: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "afilli_agent_id", default=None
)
_task_id: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "afilli_task_id", default=None
)


def set_run_context(
    agent_id: Optional[str] = None, task_id: Optional[str] = None
) -> None:
    """Set the agent/task the current asyncio context is working on."""
    _agent_id.set(agent_id)
    _task_id.set(task_id)


def get_run_context() -> dict[str, Optional[str]]:
    return {"agent_id": _agent_id.get(), "task_id": _task_id.get()}


def clear_run_context() -> None:
    _agent_id.set(None)
    _task_id.set(None)


@contextmanager
def bind_run_context(
    agent_id: Optional[str] = None, task_id: Optional[str] = None
) -> Iterator[None]:
    """Bind agent/task ids for the duration of a block, then restore."""
    agent_token = _agent_id.set(agent_id)
    task_token = _task_id.set(task_id)
    try:
        yield
    finally:
        _task_id.reset(task_token)
        _agent_id.reset(agent_token)


# ─── Context Filter ───────────────────────────────────────────────────


class ContextFilter(logging.Filter):
    """
    Injects the bound agent_id / task_id into every log record.

    Values passed explicitly through `extra=` win over the bound context.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in get_run_context().items():
            if value and getattr(record, key, None) is None:
                setattr(record, key, value)
        return True


# ─── JSON Formatter (Production) ──────────────────────────────────────


_STANDARD_FIELDS = frozenset({
    "name", "msg", "args", "levelname", "levelno", "pathname",
    "filename", "module", "exc_info", "exc_text", "stack_info",
    "lineno", "funcName", "created", "msecs", "relativeCreated",
    "thread", "threadName", "processName", "process", "message",
    "taskName",
})


class JSONFormatter(logging.Formatter):
    """
    Outputs log records as single-line JSON objects.

    Output format:
        {"timestamp": "...", "level": "INFO", "logger": "afilli.agents.base",
         "message": "task_completed", "agent_id": "...", "task_type": ...}
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key in _STANDARD_FIELDS or key.startswith("_"):
                continue
            try:
                json.dumps(value)
                entry[key] = value
            except (TypeError, ValueError):
                entry[key] = str(value)

        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


# ─── Dev Formatter (Local Development) ────────────────────────────────


class DevFormatter(logging.Formatter):
    """
    Human-readable logs for local development.

    Format: [HH:MM:SS] LEVEL logger: message [key=value key=value]
    """

    COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[41m",
    }
    RESET = "\033[0m"

    _EXTRA_KEYS = (
        "agent_id", "agent_type", "task_id", "task_type",
        "status", "reason", "duration_ms", "error",
    )

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelno, self.RESET)
        timestamp = self.formatTime(record, "%H:%M:%S")

        extras = []
        for key in self._EXTRA_KEYS:
            value = getattr(record, key, None)
            if value is not None:
                extras.append(f"{key}={value}")

        extra_str = f" [{' '.join(extras)}]" if extras else ""

        formatted = (
            f"{self.RESET}[{timestamp}] "
            f"{color}{record.levelname:<8}{self.RESET} "
            f"{record.name}: {record.getMessage()}{extra_str}"
        )

        if record.exc_info and record.exc_info[1]:
            formatted += f"\n{self.formatException(record.exc_info)}"

        return formatted


# ─── Configuration ────────────────────────────────────────────────────


def configure_logging(
    env: Optional[str] = None,
    level: int = logging.INFO,
) -> None:
    """
    Configure the root logger based on environment.

    Args:
        env: Override environment. If None, reads AFILLI_ENV
             (defaults to "development").
        level: Log level (default: INFO).
    """
    env = env or os.environ.get("AFILLI_ENV", "development").lower().strip()

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if env == "production":
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JSONFormatter())
    else:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(DevFormatter())

    handler.addFilter(ContextFilter())
    root_logger.addHandler(handler)

    for noisy in ("httpx", "httpcore", "supabase", "anthropic", "hpack"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
