"""
Structured JSON logging for the hypermedia kernel.

Every kernel module logs through ``get_logger(<module path>)`` so records
land under the ``hypermedia_kernel`` hierarchy.  Messages are snake_case
event names (``resource_created``, ``patch_rejected``, ``trigger_fired``);
anything structured goes into ``extra``.

Request-scoped fields (correlation id, resource id, actor, ...) are held in
``LogContext`` and stamped onto every record emitted while they are bound.
``ResourceStore`` binds them for the duration of each operation.

When a record carries ``exc_info`` the formatter adds ``exc_type``,
``exc_message``, the kernel error ``code`` (as ``exc_code``) and every
public attribute of the exception, prefixed with ``exc_``.
"""

__all__ = [
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from collections.abc import Mapping
from contextvars import ContextVar, Token
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any
from uuid import UUID

_LOGGER_PREFIX = "hypermedia_kernel"

# ---------------------------------------------------------------------------
# Context propagation
# ---------------------------------------------------------------------------

CONTEXT_FIELDS: tuple[str, ...] = (
    "correlation_id",
    "resource_id",
    "resource_type",
    "actor",
    "operation_id",
    "trace_id",
)

_EMPTY: Mapping[str, str] = MappingProxyType({})
_context: ContextVar[Mapping[str, str]] = ContextVar("hypermedia_log_context", default=_EMPTY)


def _merged(values: Mapping[str, Any]) -> Mapping[str, str]:
    current = dict(_context.get())
    for key, val in values.items():
        if key in CONTEXT_FIELDS and val is not None:
            current[key] = str(val)
    return MappingProxyType(current)


class LogContext:
    """
    Request-scoped log fields, safe across threads and asyncio tasks.

    Only names in ``CONTEXT_FIELDS`` are kept; ``None`` never overwrites a
    value that is already set.
    """

    @staticmethod
    def set(
        *,
        correlation_id: str | None = None,
        resource_id: str | None = None,
        resource_type: str | None = None,
        actor: str | None = None,
        operation_id: str | None = None,
        trace_id: str | None = None,
    ) -> None:
        _context.set(
            _merged(
                {
                    "correlation_id": correlation_id,
                    "resource_id": resource_id,
                    "resource_type": resource_type,
                    "actor": actor,
                    "operation_id": operation_id,
                    "trace_id": trace_id,
                }
            )
        )

    @staticmethod
    def get_all() -> dict[str, str]:
        """Currently bound fields, in ``CONTEXT_FIELDS`` order."""
        current = _context.get()
        return {name: current[name] for name in CONTEXT_FIELDS if name in current}

    @staticmethod
    def clear() -> None:
        _context.set(_EMPTY)

    @staticmethod
    def bind(**fields: Any) -> "_BoundContext":
        """Bind fields for a ``with`` block; the previous values return on exit."""
        return _BoundContext(fields)


class _BoundContext:
    def __init__(self, fields: Mapping[str, Any]):
        self._fields = fields
        self._token: Token[Mapping[str, str]] | None = None

    def __enter__(self) -> type[LogContext]:
        self._token = _context.set(_merged(self._fields))
        return LogContext

    def __exit__(self, *exc: Any) -> None:
        if self._token is not None:
            _context.reset(self._token)
            self._token = None


# ---------------------------------------------------------------------------
# JSON Formatter
# ---------------------------------------------------------------------------

# Attributes every LogRecord has; anything else on a record came from ``extra``.
_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (UUID, Decimal)):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, (set, frozenset)):
        return sorted(obj, key=str)
    if isinstance(obj, Mapping):
        return dict(obj)
    return str(obj)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    for key, val in vars(exc).items():
        if not key.startswith("_") and key != "code":
            fields[f"exc_{key}"] = val
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per line: ts, level, logger, message, context, extra."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for key, val in vars(record).items():
            if key not in _RECORD_ATTRS:
                payload.setdefault(key, val)

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def get_logger(name: str) -> logging.Logger:
    """Logger ``hypermedia_kernel.<name>``."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


_setup_lock = threading.Lock()
_installed_handler: logging.Handler | None = None


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach a JSON handler to the ``hypermedia_kernel`` logger.

    Only the first call has an effect until ``reset_logging()``.  The kernel
    logger stops propagating so host applications do not print each record
    twice.
    """
    global _installed_handler
    with _setup_lock:
        if _installed_handler is not None:
            return
        _installed_handler = handler if handler is not None else logging.StreamHandler(
            stream or sys.stderr
        )
        _installed_handler.setFormatter(StructuredFormatter())

        kernel_logger = logging.getLogger(_LOGGER_PREFIX)
        kernel_logger.setLevel(level)
        kernel_logger.propagate = False
        kernel_logger.addHandler(_installed_handler)


def reset_logging() -> None:
    """Undo ``configure_logging``.  Tests only."""
    global _installed_handler
    with _setup_lock:
        _installed_handler = None
        kernel_logger = logging.getLogger(_LOGGER_PREFIX)
        kernel_logger.handlers.clear()
        kernel_logger.setLevel(logging.WARNING)
        kernel_logger.propagate = True
