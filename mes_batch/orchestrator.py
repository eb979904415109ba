"""
ScheduleOrchestrator -- DI container for the scheduled jobs.

Contract:
    Wires settings, clock, store sessions and the mailer into the services
    each job needs, and builds the JobRegistry and JobDispatcher.  Single
    place where all job dependencies are composed.

Architecture: mes_batch (top-level).  This is the canonical entry point
    for configuring and running jobs.

Invariants enforced:
    - Clock injection: every service receives the same Clock.
    - Stores are opened lazily, so a job that needs only the source store
      never requires a target URL.
"""

from __future__ import annotations

import logging
from typing import Callable

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from mes_config.schema import ScheduleSettings
from mes_config.validator import require_store_url, validate_logging_level
from mes_engines.overdue import OverdueThresholds
from mes_kernel.db.engine import create_session_factory, create_store_engine
from mes_kernel.domain.clock import Clock, SystemClock
from mes_kernel.logging_config import get_logger
from mes_kernel.services.sequence_service import SequenceAllocator
from mes_services.actual_time_service import ActualTimeService
from mes_services.export_writer import ExportWriter
from mes_services.mailer import Mailer, SmtpMailer
from mes_services.notification_gate import NotificationGate
from mes_services.recipient_directory import RecipientDirectory
from mes_services.stencil_overdue_service import StencilOverdueService
from mes_services.timesheet_reader import TimesheetReader

from mes_batch.jobs.actual_time_job import ActualTimeCalcJob
from mes_batch.jobs.base import JobRegistry
from mes_batch.jobs.stencil_overdue_job import StencilOverdueJob
from mes_batch.services.dispatcher import JobDispatcher

logger = get_logger("batch.orchestrator")

MailerFactory = Callable[[ScheduleSettings], Mailer]


def smtp_mailer_from_settings(settings: ScheduleSettings) -> Mailer:
    mail = settings.mail
    return SmtpMailer(
        host=mail.smtp_host or "",
        port=mail.smtp_port,
        sender_email=mail.sender_email or "",
        sender_name=mail.sender_name,
        use_tls=mail.use_tls,
        username=mail.username,
        password=mail.password,
        timeout=mail.timeout_seconds,
    )


def build_default_registry(orchestrator: ScheduleOrchestrator) -> JobRegistry:
    """Create a JobRegistry pre-loaded with every scheduled job."""
    registry = JobRegistry()
    registry.register(ActualTimeCalcJob(orchestrator))
    registry.register(StencilOverdueJob(orchestrator))
    return registry


class ScheduleOrchestrator:
    """DI container for the scheduled jobs.

    Contract:
        - ``from_settings()`` factory creates a fully wired orchestrator.
        - ``create_dispatcher()`` returns a JobDispatcher over ``job_registry``.
        - ``create_*`` methods build the services a job needs, sharing the
          orchestrator's clock and session factories.
        - ``close()`` disposes any engines the orchestrator created.

    Non-goals:
        - Does NOT create tables -- both stores are owned by other systems.
        - Does NOT run anything itself -- the dispatcher decides.
    """

    def __init__(
        self,
        settings: ScheduleSettings,
        clock: Clock | None = None,
        source_session_factory: sessionmaker[Session] | None = None,
        target_session_factory: sessionmaker[Session] | None = None,
        mailer_factory: MailerFactory | None = None,
    ):
        self._settings = settings
        self._clock = clock or SystemClock()
        self._source = source_session_factory
        self._target = target_session_factory
        self._mailer_factory = mailer_factory or smtp_mailer_from_settings
        self._engines: list[Engine] = []
        self._registry = build_default_registry(self)

        logger.info(
            "schedule_orchestrator_initialized",
            extra={"job_count": len(self._registry)},
        )

    @classmethod
    def from_settings(
        cls,
        settings: ScheduleSettings,
        clock: Clock | None = None,
        mailer_factory: MailerFactory | None = None,
    ) -> ScheduleOrchestrator:
        """Factory: wire everything from settings; stores connect on first use."""
        return cls(settings=settings, clock=clock, mailer_factory=mailer_factory)

    @property
    def settings(self) -> ScheduleSettings:
        return self._settings

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def job_registry(self) -> JobRegistry:
        return self._registry

    # -------------------------------------------------------------------------
    # Stores
    # -------------------------------------------------------------------------

    def _open_store(self, which: str) -> sessionmaker[Session]:
        url = require_store_url(self._settings.stores, which)
        engine = create_store_engine(url, echo=self._settings.stores.echo)
        self._engines.append(engine)
        return create_session_factory(engine)

    def source_sessions(self) -> sessionmaker[Session]:
        if self._source is None:
            self._source = self._open_store("source")
        return self._source

    def target_sessions(self) -> sessionmaker[Session]:
        if self._target is None:
            self._target = self._open_store("target")
        return self._target

    def close(self) -> None:
        for engine in self._engines:
            engine.dispose()
        self._engines.clear()

    # -------------------------------------------------------------------------
    # Services
    # -------------------------------------------------------------------------

    def create_actual_time_service(
        self, job_logger: logging.Logger | None = None,
    ) -> ActualTimeService:
        sequence = self._settings.sequence
        actual_time = self._settings.actual_time
        target = self.target_sessions()
        return ActualTimeService(
            reader=TimesheetReader(self.source_sessions(), logger=job_logger),
            target_session_factory=target,
            allocator=SequenceAllocator(
                target,
                seed=sequence.seed,
                step=sequence.step,
                ceiling=sequence.ceiling,
                clock=self._clock,
            ),
            counter_name=sequence.counter_name,
            exporter=ExportWriter(
                target,
                actual_time.output_dir,
                clock=self._clock,
                encoding=actual_time.export_encoding,
                newline=actual_time.export_newline,
                logger=job_logger,
            ),
            clock=self._clock,
            logger=job_logger,
        )

    def create_overdue_service(
        self, job_logger: logging.Logger | None = None,
    ) -> StencilOverdueService:
        stencil = self._settings.stencil_overdue
        return StencilOverdueService(
            self.source_sessions(),
            thresholds=OverdueThresholds(
                usage_ratio=stencil.usage_ratio_threshold,
                days_online=stencil.days_online_threshold,
            ),
            clock=self._clock,
            logger=job_logger,
        )

    def create_recipient_directory(
        self, job_logger: logging.Logger | None = None,
    ) -> RecipientDirectory:
        return RecipientDirectory(self.source_sessions(), logger=job_logger)

    def create_notification_gate(
        self, job_logger: logging.Logger | None = None,
    ) -> NotificationGate:
        stencil = self._settings.stencil_overdue
        return NotificationGate(
            self._mailer_factory(self._settings),
            self.source_sessions(),
            test_mode=stencil.test_mode,
            test_recipient=stencil.test_recipient,
            clock=self._clock,
            logger=job_logger,
        )

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    def create_dispatcher(self) -> JobDispatcher:
        log_settings = self._settings.logging
        return JobDispatcher(
            registry=self._registry,
            log_dir=log_settings.log_dir,
            clock=self._clock,
            log_level=validate_logging_level(log_settings.level),
        )
