"""
mes_config -- single public entrypoint for schedule configuration.

Responsibility:
    Provides the ONLY way to obtain settings at runtime through
    ``get_settings()``.  No job, service or engine reads configuration
    files or environment variables directly.

Architecture position:
    Configuration -- YAML plus environment overrides.  Sits above
    ``mes_kernel`` (imports only its exceptions and logging) and below
    ``mes_batch``.

Failure modes:
    - ``ConfigurationError`` -- unreadable or malformed file, mistyped value,
      or an explicitly requested file that does not exist.

Audit relevance:
    Every successful ``get_settings()`` call emits a ``MES_CONFIG_TRACE``
    log entry naming the file the settings came from and which stores are
    configured (never the URLs themselves, which may hold credentials).
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path

from mes_config.loader import load_settings
from mes_config.schema import (
    ActualTimeSettings,
    LoggingSettings,
    MailSettings,
    ScheduleSettings,
    SequenceSettings,
    StencilOverdueSettings,
    StoreSettings,
)
from mes_kernel.logging_config import get_logger

_logger = get_logger("config")


def get_settings(
    config_path: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> ScheduleSettings:
    """
    Load the settings for this invocation.

    Args:
        config_path: Explicit YAML file; overrides ``MES_SCHEDULE_CONFIG``.
        env: Environment mapping; defaults to ``os.environ``.
    """
    settings = load_settings(config_path, env)
    _logger.info(
        "MES_CONFIG_TRACE",
        extra={
            "trace_type": "MES_CONFIG_TRACE",
            "config_file": str(settings.source_path) if settings.source_path else None,
            "source_store_configured": bool(settings.stores.source_url),
            "target_store_configured": bool(settings.stores.target_url),
            "calc_date_override": settings.actual_time.calc_date,
            "stencil_test_mode": settings.stencil_overdue.test_mode,
        },
    )
    return settings


__all__ = [
    "get_settings",
    "ScheduleSettings",
    "StoreSettings",
    "LoggingSettings",
    "SequenceSettings",
    "MailSettings",
    "ActualTimeSettings",
    "StencilOverdueSettings",
]
