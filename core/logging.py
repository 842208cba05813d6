# ============================================================================
# STRUCTURED LOGGING
# ============================================================================
# STATUS: Core - Logging setup and per-task context fields
# PURPOSE: One log line format for the API, the feed and the dispatcher
# CREATED: 18 OCT 2026
# ============================================================================
"""
Structured Logging

Loggers are plain `logging` loggers wrapped in a ContextLogger so every
record carries the fields bound with log_context() (job_id, step_name,
user_id, source, ...). The fields live in a ContextVar: the feed's poll
loop, its delivery loop and each request handler are separate asyncio
tasks and never see each other's context.

Output is a single human-readable line by default, or one JSON object per
line when LOG_FORMAT=json (or json_output=True).

Usage:
    from core.logging import get_logger, log_context

    logger = get_logger(__name__, ComponentType.REALTIME)

    with log_context(job_id="job-123", source="poll"):
        logger.info("Delivering change")
"""

import json
import logging
import os
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Union


class ComponentType(str, Enum):
    """Top-level areas a logger can belong to."""
    API = "api"
    SERVICE = "service"
    REPOSITORY = "repository"
    REALTIME = "realtime"
    NOTIFICATIONS = "notifications"
    CLIENT = "client"


# Fields shown inline by the human formatter, in this order
INLINE_FIELDS = ("job_id", "step_name", "source")

_EMPTY: Mapping[str, Any] = MappingProxyType({})
_context: ContextVar[Mapping[str, Any]] = ContextVar("jobtrack_log_context", default=_EMPTY)


def get_current_context() -> Dict[str, Any]:
    """Fields bound in the current task, None values dropped."""
    return {key: value for key, value in _context.get().items() if value is not None}


@contextmanager
def log_context(**fields):
    """
    Bind fields for everything logged inside the block.

    Nested blocks inherit and may override the outer fields; passing
    None hides an inherited field.

        with log_context(job_id=job_id, step_name=step_name):
            logger.info("Updating step")
    """
    token = _context.set(MappingProxyType({**_context.get(), **fields}))
    try:
        yield get_current_context()
    finally:
        _context.reset(token)


def _record_fields(record: logging.LogRecord) -> Dict[str, Any]:
    return getattr(record, "context", None) or get_current_context()


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        context = _record_fields(record)
        if context:
            payload["context"] = context
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        payload["source"] = f"{record.filename}:{record.lineno}"
        return json.dumps(payload, default=str)


class HumanFormatter(logging.Formatter):
    """`2026-10-18 09:00:00 INFO     realtime.feed [job=..., source=poll]: message`"""

    def format(self, record: logging.LogRecord) -> str:
        stamp = datetime.fromtimestamp(record.created, timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        context = _record_fields(record)
        tags = ", ".join(
            f"{name.split('_')[0]}={context[name]}" for name in INLINE_FIELDS if name in context
        )
        line = f"{stamp} {record.levelname:<8} {record.name}{f' [{tags}]' if tags else ''}: {record.getMessage()}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


class ContextLogger(logging.LoggerAdapter):
    """Attaches the bound log_context() fields (plus the component) to each record."""

    def process(self, msg, kwargs):
        context = get_current_context()
        component = (self.extra or {}).get("component")
        if component:
            context.setdefault("component", component)
        context.update(kwargs.pop("extra", None) or {})
        kwargs["extra"] = {"context": context}
        return msg, kwargs


def get_logger(name: str, component: Optional[ComponentType] = None) -> ContextLogger:
    return ContextLogger(logging.getLogger(name), {"component": component.value if component else None})


def configure_logging(level: Union[str, int] = "INFO", json_output: bool = False) -> None:
    """
    Install a single stdout handler on the root logger.

    Safe to call more than once; previous root handlers are replaced.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    use_json = json_output or os.getenv("LOG_FORMAT", "").lower() == "json"
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredFormatter() if use_json else HumanFormatter())

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)

    # psycopg's pool is chatty at DEBUG
    logging.getLogger("psycopg.pool").setLevel(max(level, logging.INFO))


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "ComponentType",
    "StructuredFormatter",
    "HumanFormatter",
    "ContextLogger",
    "get_logger",
    "configure_logging",
    "log_context",
    "get_current_context",
]
