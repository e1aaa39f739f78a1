"""
Structured JSON logging for the ledger kernel.

Every record under the ``ledger_kernel`` logger tree is written as one JSON
object per line.  A record carries:

    ts, level, logger, message    always
    LogContext fields             correlation_id, actor_id, batch_date, entry_id
    ``extra=`` fields             whatever the call site passes
    exc_* fields                  when logged with exc_info; LedgerKernelError
                                  attributes (batch_date, rejections, ...) are
                                  flattened as exc_<name>

Services bind context once per operation:

    with LogContext.bind(correlation_id=cid, actor_id=str(actor_id)):
        ...
"""

from __future__ import annotations

import json
import logging
import sys
import threading
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Iterator
from uuid import UUID

__all__ = [
    "LogContext",
    "StructuredFormatter",
    "configure_logging",
    "get_logger",
    "reset_logging",
]

_ROOT = "ledger_kernel"
_HANDLER_NAME = "ledger_kernel.json"


class LogContext:
    """Operation-scoped log fields, isolated per thread and per task."""

    FIELDS = ("correlation_id", "actor_id", "batch_date", "entry_id")

    _values: ContextVar[dict[str, str]] = ContextVar("ledger_log_context", default={})

    @classmethod
    def _merged(cls, fields: dict[str, str | None]) -> dict[str, str]:
        unknown = set(fields) - set(cls.FIELDS)
        if unknown:
            raise TypeError(f"unknown log context fields: {sorted(unknown)}")
        merged = dict(cls._values.get())
        merged.update({k: v for k, v in fields.items() if v is not None})
        return merged

    @classmethod
    def set(cls, **fields: str | None) -> None:
        """Set fields for the rest of the current context. None is ignored."""
        cls._values.set(cls._merged(fields))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        current = cls._values.get()
        return {name: current[name] for name in cls.FIELDS if name in current}

    @classmethod
    def clear(cls) -> None:
        cls._values.set({})

    @classmethod
    @contextmanager
    def bind(cls, **fields: str | None) -> Iterator[type[LogContext]]:
        """Set fields for the duration of a with-block, then restore."""
        token = cls._values.set(cls._merged(fields))
        try:
            yield cls
        finally:
            cls._values.reset(token)


_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _json_default(value: Any) -> Any:
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return str(value)


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(LogContext.get_all())
        payload.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and key not in payload
        )
        if record.exc_info and record.exc_info[1] is not None:
            payload.update(self._exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=_json_default)

    @staticmethod
    def _exception_fields(exc: BaseException) -> dict[str, Any]:
        fields: dict[str, Any] = {
            "exc_type": type(exc).__name__,
            "exc_message": str(exc),
        }
        code = getattr(exc, "code", None)
        if code is not None:
            fields["exc_code"] = code
        for name, value in vars(exc).items():
            if not name.startswith("_"):
                fields[f"exc_{name}"] = value
        return fields


def get_logger(name: str) -> logging.Logger:
    """Logger ``ledger_kernel.<name>``."""
    return logging.getLogger(f"{_ROOT}.{name}")


_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach the JSON handler to the ``ledger_kernel`` logger.

    Only the first call has an effect until ``reset_logging()``.
    """
    root = logging.getLogger(_ROOT)
    with _lock:
        if any(h.name == _HANDLER_NAME for h in root.handlers):
            return
        h = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
        h.set_name(_HANDLER_NAME)
        h.setFormatter(StructuredFormatter())
        root.setLevel(level)
        root.propagate = False
        root.addHandler(h)


def reset_logging() -> None:
    """Detach kernel handlers and restore stdlib defaults. Tests only."""
    root = logging.getLogger(_ROOT)
    with _lock:
        for h in list(root.handlers):
            root.removeHandler(h)
        root.setLevel(logging.NOTSET)
        root.propagate = True
