"""
Configuration Loader (``mes_config.loader``).

Responsibility
--------------
Loads ``mes_schedule.yaml`` and parses it into typed ``mes_config.schema``
dataclass instances, then applies environment overrides.

Architecture position
---------------------
**Config layer** -- sits beside ``mes_kernel`` (uses only its exceptions)
and below ``mes_batch``.  Services and engines never import it.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* Unknown keys are ignored; missing keys take the schema default.
* Every parse failure raises ``ConfigurationError`` naming the setting.

Failure modes
-------------
* Explicitly requested file missing  -> ``ConfigurationError``.
* Default file missing  -> all defaults (plus environment overrides).
* Malformed YAML or a mistyped value  -> ``ConfigurationError``.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import replace
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from mes_config.schema import (
    ActualTimeSettings,
    LoggingSettings,
    MailSettings,
    ScheduleSettings,
    SequenceSettings,
    StencilOverdueSettings,
    StoreSettings,
)
from mes_kernel.exceptions import ConfigurationError

DEFAULT_CONFIG_FILENAME = "mes_schedule.yaml"

ENV_CONFIG_PATH = "MES_SCHEDULE_CONFIG"
ENV_SOURCE_URL = "MES_SCHEDULE_SOURCE_URL"
ENV_TARGET_URL = "MES_SCHEDULE_TARGET_URL"
ENV_CALC_DATE = "MES_SCHEDULE_CALC_DATE"
ENV_SMTP_PASSWORD = "MES_SCHEDULE_SMTP_PASSWORD"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        ConfigurationError: if the file is unreadable, is not valid YAML,
            or does not hold a mapping at the top level.
    """
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as exc:
        raise ConfigurationError("config_file", f"cannot read {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError("config_file", f"invalid YAML in {path}: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            "config_file", f"{path} must contain a mapping, got {type(data).__name__}",
        )
    return data


def parse_calc_date(value: Any, setting: str = "actual_time.calc_date") -> date | None:
    """
    Parse a calculation date (``yyyy-MM-dd`` string or YAML date).

    Empty values mean "not set".
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return datetime.strptime(value.strip(), "%Y-%m-%d").date()
        except ValueError as exc:
            raise ConfigurationError(
                setting, f"expected yyyy-MM-dd, got {value!r}",
            ) from exc
    raise ConfigurationError(setting, f"cannot parse date from {value!r}")


def _section(data: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, Mapping):
        raise ConfigurationError(name, "must be a mapping")
    return section


def _int(section: Mapping[str, Any], key: str, default: int, setting: str) -> int:
    value = section.get(key, default)
    if isinstance(value, bool):
        raise ConfigurationError(setting, f"expected integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(setting, f"expected integer, got {value!r}") from exc


def _decimal(
    section: Mapping[str, Any], key: str, default: Decimal, setting: str,
) -> Decimal:
    value = section.get(key, default)
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ConfigurationError(setting, f"expected number, got {value!r}") from exc


def _bool(section: Mapping[str, Any], key: str, default: bool, setting: str) -> bool:
    value = section.get(key, default)
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("true", "false"):
        return value.lower() == "true"
    raise ConfigurationError(setting, f"expected true/false, got {value!r}")


def _optional_str(section: Mapping[str, Any], key: str) -> str | None:
    value = section.get(key)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def parse_stores(data: Mapping[str, Any]) -> StoreSettings:
    section = _section(data, "stores")
    return StoreSettings(
        source_url=_optional_str(section, "source_url"),
        target_url=_optional_str(section, "target_url"),
        echo=_bool(section, "echo", False, "stores.echo"),
    )


def parse_logging(data: Mapping[str, Any]) -> LoggingSettings:
    section = _section(data, "logging")
    return LoggingSettings(
        level=str(section.get("level", "INFO")).upper(),
        log_dir=Path(section.get("log_dir", "logs")),
    )


def parse_sequence(data: Mapping[str, Any]) -> SequenceSettings:
    section = _section(data, "sequence")
    defaults = SequenceSettings()
    return SequenceSettings(
        counter_name=str(section.get("counter_name", defaults.counter_name)),
        seed=_int(section, "seed", defaults.seed, "sequence.seed"),
        step=_int(section, "step", defaults.step, "sequence.step"),
        ceiling=_int(section, "ceiling", defaults.ceiling, "sequence.ceiling"),
    )


def parse_mail(data: Mapping[str, Any]) -> MailSettings:
    section = _section(data, "mail")
    defaults = MailSettings()
    return MailSettings(
        smtp_host=_optional_str(section, "smtp_host"),
        smtp_port=_int(section, "smtp_port", defaults.smtp_port, "mail.smtp_port"),
        use_tls=_bool(section, "use_tls", defaults.use_tls, "mail.use_tls"),
        username=_optional_str(section, "username"),
        password=_optional_str(section, "password"),
        sender_email=_optional_str(section, "sender_email"),
        sender_name=str(section.get("sender_name", defaults.sender_name)),
        timeout_seconds=_int(
            section, "timeout_seconds", defaults.timeout_seconds,
            "mail.timeout_seconds",
        ),
    )


def parse_actual_time(data: Mapping[str, Any]) -> ActualTimeSettings:
    section = _section(data, "actual_time")
    defaults = ActualTimeSettings()
    return ActualTimeSettings(
        calc_date=parse_calc_date(section.get("calc_date")),
        lookback_days=_int(
            section, "lookback_days", defaults.lookback_days,
            "actual_time.lookback_days",
        ),
        output_dir=Path(section.get("output_dir", defaults.output_dir)),
        export_encoding=str(section.get("export_encoding", defaults.export_encoding)),
        export_newline=str(section.get("export_newline", defaults.export_newline)),
    )


def parse_stencil_overdue(data: Mapping[str, Any]) -> StencilOverdueSettings:
    section = _section(data, "stencil_overdue")
    defaults = StencilOverdueSettings()
    return StencilOverdueSettings(
        days_online_threshold=_int(
            section, "days_online_threshold", defaults.days_online_threshold,
            "stencil_overdue.days_online_threshold",
        ),
        usage_ratio_threshold=_decimal(
            section, "usage_ratio_threshold", defaults.usage_ratio_threshold,
            "stencil_overdue.usage_ratio_threshold",
        ),
        mail_group_no=str(section.get("mail_group_no", defaults.mail_group_no)),
        test_mode=_bool(
            section, "test_mode", defaults.test_mode, "stencil_overdue.test_mode",
        ),
        test_recipient=_optional_str(section, "test_recipient"),
    )


def parse_settings(
    data: Mapping[str, Any], source_path: Path | None = None,
) -> ScheduleSettings:
    """Parse a full settings mapping (already loaded from YAML)."""
    return ScheduleSettings(
        stores=parse_stores(data),
        logging=parse_logging(data),
        sequence=parse_sequence(data),
        mail=parse_mail(data),
        actual_time=parse_actual_time(data),
        stencil_overdue=parse_stencil_overdue(data),
        source_path=source_path,
    )


def apply_env_overrides(
    settings: ScheduleSettings, env: Mapping[str, str],
) -> ScheduleSettings:
    """Return settings with environment values layered over the file values."""
    stores = settings.stores
    if env.get(ENV_SOURCE_URL):
        stores = replace(stores, source_url=env[ENV_SOURCE_URL])
    if env.get(ENV_TARGET_URL):
        stores = replace(stores, target_url=env[ENV_TARGET_URL])

    actual_time = settings.actual_time
    if env.get(ENV_CALC_DATE):
        actual_time = replace(
            actual_time,
            calc_date=parse_calc_date(env[ENV_CALC_DATE], ENV_CALC_DATE),
        )

    mail = settings.mail
    if env.get(ENV_SMTP_PASSWORD):
        mail = replace(mail, password=env[ENV_SMTP_PASSWORD])

    return replace(settings, stores=stores, actual_time=actual_time, mail=mail)


def resolve_config_path(
    explicit: Path | None, env: Mapping[str, str],
) -> tuple[Path, bool]:
    """
    Decide which file to read.

    Returns:
        ``(path, required)``; a path given on the command line or through
        ``MES_SCHEDULE_CONFIG`` is required to exist, the default is not.
    """
    if explicit is not None:
        return Path(explicit), True
    if env.get(ENV_CONFIG_PATH):
        return Path(env[ENV_CONFIG_PATH]), True
    return Path.cwd() / DEFAULT_CONFIG_FILENAME, False


def load_settings(
    config_path: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> ScheduleSettings:
    """
    Load settings from YAML plus environment overrides.

    Args:
        config_path: Explicit file (``--config``); takes precedence over
            ``MES_SCHEDULE_CONFIG``.
        env: Environment mapping (defaults to ``os.environ``).
    """
    env = os.environ if env is None else env
    path, required = resolve_config_path(config_path, env)

    if path.exists():
        settings = parse_settings(load_yaml_file(path), source_path=path)
    elif required:
        raise ConfigurationError("config_file", f"{path} does not exist")
    else:
        settings = ScheduleSettings()

    return apply_env_overrides(settings, env)
