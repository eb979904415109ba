"""
Configuration Validator (``mes_config.validator``).

Responsibility
--------------
Checks that the settings a job needs are present and sane before the job
touches any store.  Each job calls the validators for its own sections, so
a missing SMTP host never blocks the timesheet aggregation.

Failure modes
-------------
* Every check raises ``ConfigurationError`` naming the offending setting;
  the dispatcher turns it into exit code 2.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from mes_config.schema import (
    ActualTimeSettings,
    MailSettings,
    ScheduleSettings,
    SequenceSettings,
    StencilOverdueSettings,
    StoreSettings,
)
from mes_kernel.exceptions import ConfigurationError


def require_store_url(stores: StoreSettings, which: str) -> str:
    """Return the URL for ``which`` ("source" or "target") or raise."""
    url = getattr(stores, f"{which}_url")
    if not url:
        raise ConfigurationError(f"stores.{which}_url", "connection URL is not set")
    return url


def validate_logging_level(level: str) -> int:
    value = logging.getLevelName(level.upper())
    if not isinstance(value, int):
        raise ConfigurationError("logging.level", f"unknown level {level!r}")
    return value


def validate_sequence(settings: SequenceSettings) -> None:
    if not settings.counter_name:
        raise ConfigurationError("sequence.counter_name", "must be non-empty")
    if settings.step <= 0:
        raise ConfigurationError("sequence.step", f"must be positive, got {settings.step}")
    if settings.seed > settings.ceiling:
        raise ConfigurationError(
            "sequence.seed",
            f"seed {settings.seed} is above ceiling {settings.ceiling}",
        )


def validate_actual_time(settings: ActualTimeSettings) -> None:
    if settings.lookback_days < 0:
        raise ConfigurationError(
            "actual_time.lookback_days",
            f"cannot be negative, got {settings.lookback_days}",
        )
    try:
        "".encode(settings.export_encoding)
    except LookupError as exc:
        raise ConfigurationError(
            "actual_time.export_encoding",
            f"unknown encoding {settings.export_encoding!r}",
        ) from exc
    if settings.export_newline not in ("\n", "\r\n"):
        raise ConfigurationError(
            "actual_time.export_newline",
            f"must be LF or CRLF, got {settings.export_newline!r}",
        )


def validate_stencil_overdue(settings: StencilOverdueSettings) -> None:
    ratio = settings.usage_ratio_threshold
    if not (Decimal("0") < ratio <= Decimal("1")):
        raise ConfigurationError(
            "stencil_overdue.usage_ratio_threshold",
            f"must be in (0, 1], got {ratio}",
        )
    if settings.days_online_threshold < 0:
        raise ConfigurationError(
            "stencil_overdue.days_online_threshold",
            f"cannot be negative, got {settings.days_online_threshold}",
        )
    if not settings.mail_group_no:
        raise ConfigurationError("stencil_overdue.mail_group_no", "must be non-empty")
    if settings.test_mode and not settings.test_recipient:
        raise ConfigurationError(
            "stencil_overdue.test_recipient",
            "test mode is on but no test recipient is configured",
        )


def validate_mail(settings: MailSettings) -> None:
    if not settings.smtp_host:
        raise ConfigurationError("mail.smtp_host", "SMTP host is not set")
    if not settings.sender_email:
        raise ConfigurationError("mail.sender_email", "sender address is not set")
    if not (0 < settings.smtp_port < 65536):
        raise ConfigurationError("mail.smtp_port", f"invalid port {settings.smtp_port}")
    if settings.username and not settings.password:
        raise ConfigurationError("mail.password", "username given without password")


def validate_for_actual_time_job(settings: ScheduleSettings) -> None:
    require_store_url(settings.stores, "source")
    require_store_url(settings.stores, "target")
    validate_sequence(settings.sequence)
    validate_actual_time(settings.actual_time)


def validate_for_stencil_overdue_job(settings: ScheduleSettings) -> None:
    require_store_url(settings.stores, "source")
    validate_stencil_overdue(settings.stencil_overdue)
    validate_mail(settings.mail)
