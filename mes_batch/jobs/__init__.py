"""Scheduled job implementations and the job registry."""

from mes_batch.jobs.actual_time_job import ActualTimeCalcJob
from mes_batch.jobs.base import ExitCode, JobRegistry, ScheduleJob
from mes_batch.jobs.stencil_overdue_job import StencilOverdueJob

__all__ = [
    "ActualTimeCalcJob",
    "ExitCode",
    "JobRegistry",
    "ScheduleJob",
    "StencilOverdueJob",
]
