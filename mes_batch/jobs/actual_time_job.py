"""
ActualTimeCalcJob -- daily timesheet aggregation and SAP export.

Contract:
    Resolves the calculation date, runs ``ActualTimeService`` for it, and
    maps the aggregation status onto an exit code.

Architecture: mes_batch/jobs.  Services are obtained from the
    ScheduleOrchestrator; the job itself opens no sessions.

Failure modes:
    - ConfigurationError from validation propagates to the dispatcher (2).
    - FAILURE status (the timesheet read itself failed) -> exit code 3.
    - Per-work-order failures are logged by the service and do not change
      the exit code.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import TYPE_CHECKING

from mes_config.validator import validate_for_actual_time_job
from mes_kernel.logging_config import LogContext, get_logger
from mes_services._run_types import AggregationStatus

from mes_batch.jobs.base import ExitCode

if TYPE_CHECKING:
    from mes_batch.orchestrator import ScheduleOrchestrator


class ActualTimeCalcJob:
    """Aggregates one day of station visits into actual-time summaries."""

    job_name = "ActualTimeCalc"
    description = "Timesheet to actual-time aggregation with SAP export"

    def __init__(self, context: ScheduleOrchestrator):
        self._context = context
        self._logger = get_logger(f"job.{self.job_name}")

    def resolve_calc_date(self) -> date:
        """Pinned ``actual_time.calc_date`` if set, else today minus the lookback."""
        settings = self._context.settings.actual_time
        if settings.calc_date is not None:
            return settings.calc_date
        return self._context.clock.today() - timedelta(days=settings.lookback_days)

    def run(self) -> int:
        validate_for_actual_time_job(self._context.settings)
        calc_date = self.resolve_calc_date()

        with LogContext.bind(calc_date=calc_date.isoformat()):
            service = self._context.create_actual_time_service(self._logger)
            result = service.run(calc_date)

            self._logger.info(
                "actual_time_job_result",
                extra={
                    "status": result.status.value,
                    "entry_count": result.entry_count,
                    "inserted": result.inserted_count,
                    "duplicates": result.duplicate_count,
                    "failed": result.failed_count,
                    "export_path": str(result.export_path) if result.export_path else None,
                },
            )

        if result.status is AggregationStatus.FAILURE:
            return ExitCode.EXECUTION_ERROR
        return ExitCode.SUCCESS
