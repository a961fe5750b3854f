"""
Structured logging for the reconciler (structlog).

Every module logs snake_case event names with keyword context:

    logger = get_logger(__name__)
    logger.info("sync_completed", total_invested="12.5", participant_count=40)

JSON output (LOG_FORMAT=json, the default) renders as
{"event_type": "sync_completed", "total_invested": "12.5", "participant_count": 40,
 "level": "info", "logger": "...", "timestamp": "..."}; LOG_FORMAT=console gives
human-readable lines for local runs.

A reconciliation run binds run-scoped keys (run_id, cutoff) through
structlog.contextvars, so every line logged inside the run carries them,
including lines from the scanner, RPC wrapper and repositories.

No backend_reconciler imports here, to avoid circular imports.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any

import structlog

DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_LOG_FORMAT = "json"


def _rename_event(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """structlog's `event` key is emitted as event_type."""
    if "event" in event_dict and "event_type" not in event_dict:
        event_dict["event_type"] = event_dict.pop("event")
    return event_dict


def configure_logging(level: str | None = None, fmt: str | None = None) -> None:
    """
    (Re)configure structlog. Arguments default to LOG_LEVEL / LOG_FORMAT from
    the environment, read at call time so a loaded .env is honoured.
    """
    level_name = (level or os.getenv("LOG_LEVEL") or DEFAULT_LOG_LEVEL).strip().upper()
    level_value = getattr(logging, level_name, logging.INFO)
    output = (fmt or os.getenv("LOG_FORMAT") or DEFAULT_LOG_FORMAT).strip().lower()

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if output == "json":
        processors += [_rename_event, structlog.processors.JSONRenderer(default=str)]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level_value),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=False,
    )


if not structlog.is_configured():
    configure_logging()


def get_logger(name: str) -> structlog.BoundLogger:
    """Structured logger for a module; the module name is bound as `logger`."""
    return structlog.get_logger(name).bind(logger=name)


def bind_run_context(**values: Any) -> None:
    """Attach keys to every log line emitted from the current task onwards."""
    structlog.contextvars.bind_contextvars(**values)


def clear_run_context(*keys: str) -> None:
    """Remove run-scoped keys (all of them when none are named)."""
    if keys:
        structlog.contextvars.unbind_contextvars(*keys)
    else:
        structlog.contextvars.clear_contextvars()
