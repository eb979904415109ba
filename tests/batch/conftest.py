"""Fixtures for the job, dispatcher and CLI tests."""

from datetime import date

import pytest

from mes_batch.orchestrator import ScheduleOrchestrator
from mes_config.schema import (
    ActualTimeSettings,
    LoggingSettings,
    MailSettings,
    ScheduleSettings,
    StencilOverdueSettings,
    StoreSettings,
)


@pytest.fixture
def log_dir(tmp_path):
    return tmp_path / "logs"


@pytest.fixture
def output_dir(tmp_path):
    return tmp_path / "output"


@pytest.fixture
def schedule_settings(source_url, target_url, log_dir, output_dir) -> ScheduleSettings:
    """Settings for both jobs, pointing at the per-test SQLite stores."""
    return ScheduleSettings(
        stores=StoreSettings(source_url=source_url, target_url=target_url),
        logging=LoggingSettings(level="DEBUG", log_dir=log_dir),
        mail=MailSettings(smtp_host="relay.local", sender_email="ames@example.com"),
        actual_time=ActualTimeSettings(calc_date=date(2024, 5, 1), output_dir=output_dir),
        stencil_overdue=StencilOverdueSettings(mail_group_no="STEEL_ALARM"),
    )


@pytest.fixture
def make_orchestrator(
    schedule_settings, source_sessions, target_sessions, deterministic_clock, fake_mailer,
):
    """Orchestrator over the test stores; pass ``settings=`` to override."""
    created = []

    def _make(settings=None):
        orchestrator = ScheduleOrchestrator(
            settings or schedule_settings,
            clock=deterministic_clock,
            source_session_factory=source_sessions,
            target_session_factory=target_sessions,
            mailer_factory=lambda _settings: fake_mailer,
        )
        created.append(orchestrator)
        return orchestrator

    yield _make
    for orchestrator in created:
        orchestrator.close()
