"""
ScheduleSettings schema.

Typed, frozen view of ``mes_schedule.yaml``.  The loader parses YAML into
these types and applies environment overrides; jobs receive the sections
they need and never read files or the environment themselves.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from pathlib import Path

# ---------------------------------------------------------------------------
# Stores and infrastructure
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StoreSettings:
    """Connection URLs for the two relational stores."""

    source_url: str | None = None
    target_url: str | None = None
    echo: bool = False


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"
    log_dir: Path = Path("logs")


@dataclass(frozen=True)
class SequenceSettings:
    """Named id counter used for actual-time summaries."""

    counter_name: str = "ACTUAL_ID"
    seed: int = 1000
    step: int = 1
    ceiling: int = 2147483647


@dataclass(frozen=True)
class MailSettings:
    """SMTP relay and sender identity."""

    smtp_host: str | None = None
    smtp_port: int = 25
    use_tls: bool = False
    username: str | None = None
    password: str | None = None
    sender_email: str | None = None
    sender_name: str = "AMES系統"
    timeout_seconds: int = 30


# ---------------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ActualTimeSettings:
    """
    Timesheet aggregation and SAP export.

    ``calc_date`` pins the date to calculate; when None the job uses
    today minus ``lookback_days``.
    """

    calc_date: date | None = None
    lookback_days: int = 3
    output_dir: Path = Path("output")
    export_encoding: str = "utf-8-sig"
    export_newline: str = "\r\n"


@dataclass(frozen=True)
class StencilOverdueSettings:
    """Overdue stencil alerting."""

    days_online_threshold: int = 7
    usage_ratio_threshold: Decimal = Decimal("0.95")
    mail_group_no: str = "STEEL_ALARM"
    test_mode: bool = False
    test_recipient: str | None = None


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ScheduleSettings:
    """Complete settings for one process invocation."""

    stores: StoreSettings = field(default_factory=StoreSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    sequence: SequenceSettings = field(default_factory=SequenceSettings)
    mail: MailSettings = field(default_factory=MailSettings)
    actual_time: ActualTimeSettings = field(default_factory=ActualTimeSettings)
    stencil_overdue: StencilOverdueSettings = field(
        default_factory=StencilOverdueSettings
    )
    source_path: Path | None = None  # YAML file these came from, if any
