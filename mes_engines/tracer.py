"""
mes_engines.tracer -- ``@traced_engine`` decorator emitting MES_ENGINE_TRACE.

Responsibility:
    Wrap a pure engine entry point so that each call leaves one structured
    log record: engine name and version, a fingerprint of the inputs that
    determine the result (calculation window, as-of time, thresholds), the
    result size and the elapsed time.  Two runs over the same inputs log the
    same fingerprint, which is how a re-run is recognised from logs alone.

Architecture position:
    Engines -- support code.  Logging is the only side effect.

Failure modes:
    - An exception from the engine is logged with ``outcome="error"`` and
      re-raised unchanged.
    - Fingerprint fields that were not passed as keywords hash as null.
"""

from __future__ import annotations

import functools
import hashlib
import json
import time
from collections.abc import Callable, Sized
from dataclasses import asdict, is_dataclass
from typing import Any

from mes_kernel.logging_config import get_logger

_logger = get_logger("engines.tracer")

TRACE_TYPE = "MES_ENGINE_TRACE"
FINGERPRINT_LENGTH = 16


def _plain(value: Any) -> Any:
    if is_dataclass(value) and not isinstance(value, type):
        return asdict(value)
    return str(value)


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    kwargs: dict[str, Any],
) -> str:
    """SHA-256 prefix over the named keyword arguments, in field order."""
    selected = [[name, kwargs.get(name)] for name in fingerprint_fields]
    canonical = json.dumps(selected, default=_plain, sort_keys=True, ensure_ascii=False)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:FINGERPRINT_LENGTH]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    """
    Decorator for engine entry points called with keyword arguments.

    Args:
        engine_name: Identifier in the trace ("actual_time", "overdue").
        engine_version: Bumped whenever the engine's rules change.
        fingerprint_fields: Keyword arguments that determine the result.
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            trace = {
                "trace_type": TRACE_TYPE,
                "engine_name": engine_name,
                "engine_version": engine_version,
                "function": func.__qualname__,
                "input_fingerprint": (
                    compute_input_fingerprint(fingerprint_fields, kwargs)
                    if fingerprint_fields else ""
                ),
            }
            started = time.monotonic()
            try:
                result = func(*args, **kwargs)
            except Exception as exc:
                trace["duration_ms"] = round((time.monotonic() - started) * 1000, 2)
                _logger.error(
                    TRACE_TYPE,
                    extra={**trace, "outcome": "error", "error": type(exc).__name__},
                )
                raise

            trace["duration_ms"] = round((time.monotonic() - started) * 1000, 2)
            _logger.info(
                TRACE_TYPE,
                extra={
                    **trace,
                    "outcome": "ok",
                    "result_size": len(result) if isinstance(result, Sized) else None,
                },
            )
            return result

        return wrapper

    return decorator
