"""
Structured logging for the scheduled jobs.

Responsibility:
    One JSON object per line for everything logged under the ``mes_kernel``
    namespace, with the job-scoped fields from ``LogContext`` merged in, and
    a per-invocation daily log file (``job_log_scope``).

Conventions:
    - Messages are snake_case event names; data goes in ``extra``.
    - Timestamps are local wall-clock time, like every other timestamp the
      jobs write.
    - Exceptions from ``mes_kernel.exceptions`` contribute their ``code``
      and structured fields as ``exc_*`` keys.
"""

from __future__ import annotations

import json
import logging
import sys
import threading
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any, Iterator, Mapping

__all__ = [
    "CONTEXT_FIELDS",
    "LogContext",
    "StructuredFormatter",
    "configure_logging",
    "get_logger",
    "job_log_scope",
    "reset_logging",
]

_LOGGER_PREFIX = "mes_kernel"

# ---------------------------------------------------------------------------
# Job context
# ---------------------------------------------------------------------------

CONTEXT_FIELDS: tuple[str, ...] = (
    "job_name",
    "run_id",
    "calc_date",
    "work_order",
    "asset_no",
)

_context: ContextVar[Mapping[str, str]] = ContextVar("mes_log_context", default={})


def _checked(fields: Mapping[str, str | None]) -> dict[str, str]:
    unknown = set(fields) - set(CONTEXT_FIELDS)
    if unknown:
        raise ValueError(f"Unknown log context field(s): {sorted(unknown)}")
    return {k: v for k, v in fields.items() if v is not None}


class LogContext:
    """
    Job-scoped fields attached to every log line.

    Backed by a single ContextVar holding an immutable snapshot, so nested
    ``bind`` blocks restore exactly what was there before.
    """

    @staticmethod
    def set(**fields: str | None) -> None:
        """Merge non-None fields into the current context."""
        _context.set({**_context.get(), **_checked(fields)})

    @staticmethod
    def get_all() -> dict[str, str]:
        return dict(_context.get())

    @staticmethod
    def clear() -> None:
        _context.set({})

    @staticmethod
    @contextmanager
    def bind(**fields: str | None) -> Iterator[None]:
        """Set fields for the duration of a ``with`` block."""
        token = _context.set({**_context.get(), **_checked(fields)})
        try:
            yield
        finally:
            _context.reset(token)


# ---------------------------------------------------------------------------
# Formatter
# ---------------------------------------------------------------------------

_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (Decimal, Path)):
        return str(value)
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    return str(value)


class StructuredFormatter(logging.Formatter):
    """Renders a record as ``{"ts", "level", "logger", "message", ...}``."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_context.get(),
        }
        payload.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and key not in payload
        )
        if record.exc_info and record.exc_info[1] is not None:
            payload.update(self._exception_fields(record))
        return json.dumps(payload, default=_json_default, ensure_ascii=False)

    def _exception_fields(self, record: logging.LogRecord) -> dict[str, Any]:
        exc = record.exc_info[1]
        fields: dict[str, Any] = {
            "exc_type": type(exc).__name__,
            "exc_message": str(exc),
        }
        code = getattr(exc, "code", None)
        if code is not None:
            fields["exc_code"] = code
        fields.update(
            (f"exc_{name}", value)
            for name, value in vars(exc).items()
            if not name.startswith("_")
        )
        fields["traceback"] = self.formatException(record.exc_info)
        return fields


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def get_logger(name: str) -> logging.Logger:
    """Logger under the ``mes_kernel`` namespace."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach the console handler to the ``mes_kernel`` logger.

    Only the first call has an effect; later calls return immediately so the
    CLI and the test suite can both call it.
    """
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    root = logging.getLogger(_LOGGER_PREFIX)
    root.setLevel(level)
    root.propagate = False

    console = handler or logging.StreamHandler(stream or sys.stderr)
    console.setFormatter(StructuredFormatter())
    root.addHandler(console)


def reset_logging() -> None:
    """Undo ``configure_logging`` (tests only)."""
    global _configured
    with _lock:
        _configured = False
    root = logging.getLogger(_LOGGER_PREFIX)
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.setLevel(logging.WARNING)


# ---------------------------------------------------------------------------
# Per-job daily file
# ---------------------------------------------------------------------------


@contextmanager
def job_log_scope(
    log_dir: Path,
    job_name: str,
    run_id: str,
    *,
    level: int = logging.INFO,
    today: date | None = None,
) -> Iterator[logging.Logger]:
    """
    Append one job invocation's log lines to ``<log_dir>/<YYYY-MM-DD>.log``.

    Every line written while the scope is open carries ``job_name`` and
    ``run_id``.  The file handler is detached and closed on exit.  Yields the
    job logger handed to the job's services.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    day = today or date.today()

    file_handler = logging.FileHandler(
        log_dir / f"{day.isoformat()}.log", mode="a", encoding="utf-8",
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(StructuredFormatter())

    root = logging.getLogger(_LOGGER_PREFIX)
    root.addHandler(file_handler)
    if root.level == logging.NOTSET or root.level > level:
        root.setLevel(level)

    try:
        with LogContext.bind(job_name=job_name, run_id=run_id):
            yield get_logger(f"job.{job_name}")
    finally:
        root.removeHandler(file_handler)
        file_handler.close()
