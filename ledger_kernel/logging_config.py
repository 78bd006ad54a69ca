"""
Structured logging for the ledger.

Every record is one JSON object per line.  Log calls pass their fields
through ``extra``; the formatter adds the request fields bound by
``LogContext`` (organization, actor, and the document being worked on)
so service code does not repeat them on every call.

Usage:
    from ledger_kernel.logging_config import LogContext, get_logger

    logger = get_logger("services.journal_engine")

    with LogContext.bind(organization_id=str(org_id), actor_id=str(actor_id)):
        logger.info("journal_entry_posted", extra={"seq": 17})
"""

from __future__ import annotations

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Iterator
from uuid import UUID

__all__ = [
    "LogContext",
    "StructuredFormatter",
    "configure_logging",
    "get_logger",
    "reset_logging",
]

_ROOT = "ledger_kernel"


class LogContext:
    """
    Request fields attached to every record logged inside ``bind``.

    Only the names in ``FIELDS`` are kept.  Values are stored as strings.
    """

    FIELDS = ("organization_id", "actor_id", "document_id")

    _fields: ContextVar[dict[str, str]] = ContextVar("ledger_log_fields", default={})

    @classmethod
    @contextmanager
    def bind(cls, **fields) -> Iterator[None]:
        """Add fields for the duration of the block; inner binds win."""
        merged = dict(cls._fields.get())
        merged.update(
            (name, str(value))
            for name, value in fields.items()
            if name in cls.FIELDS and value is not None
        )
        token = cls._fields.set(merged)
        try:
            yield
        finally:
            cls._fields.reset(token)

    @classmethod
    def current(cls) -> dict[str, str]:
        return dict(cls._fields.get())

    @classmethod
    def clear(cls) -> None:
        cls._fields.set({})


def _plain(value):
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return str(value)


# Attributes every LogRecord carries; anything else came in through ``extra``.
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "taskName"}


class StructuredFormatter(logging.Formatter):
    """One JSON object per record: ts, level, logger, message, then fields."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.current(),
        }
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS:
                payload.setdefault(key, value)

        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            payload["exc_type"] = type(exc).__name__
            payload["exc_message"] = str(exc)
            code = getattr(exc, "code", None)
            if code is not None:
                payload["exc_code"] = code
                # LedgerError subclasses keep their context as attributes
                for key, value in vars(exc).items():
                    if not key.startswith("_"):
                        payload[f"exc_{key}"] = value
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_plain)


def get_logger(name: str) -> logging.Logger:
    """Logger named ``ledger_kernel.<name>``; modules log under it too."""
    return logging.getLogger(f"{_ROOT}.{name}")


def configure_logging(
    level: int | str = logging.INFO,
    handler: logging.Handler | None = None,
) -> None:
    """
    Send ledger records to ``handler`` (stderr by default) as JSON.

    Only the first call has an effect until ``reset_logging``.
    """
    root = logging.getLogger(_ROOT)
    if root.handlers:
        return
    handler = handler or logging.StreamHandler(sys.stderr)
    handler.setFormatter(StructuredFormatter())
    root.addHandler(handler)
    root.setLevel(level)
    root.propagate = False


def reset_logging() -> None:
    """Drop the handlers installed by ``configure_logging``."""
    root = logging.getLogger(_ROOT)
    for handler in list(root.handlers):
        root.removeHandler(handler)
    root.setLevel(logging.WARNING)
    root.propagate = True
