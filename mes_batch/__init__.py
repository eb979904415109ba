"""
mes_batch -- scheduled job runner.

An external scheduler starts the process with a job name; the dispatcher
runs that one job and the process exits with its status code.

Usage:
    from mes_batch import ScheduleOrchestrator
    orchestrator = ScheduleOrchestrator.from_settings(get_settings())
    exit_code = orchestrator.create_dispatcher().dispatch("ActualTimeCalc")
"""

from mes_batch.jobs import (
    ActualTimeCalcJob,
    ExitCode,
    JobRegistry,
    ScheduleJob,
    StencilOverdueJob,
)
from mes_batch.orchestrator import ScheduleOrchestrator, build_default_registry
from mes_batch.services.dispatcher import JobDispatcher

__all__ = [
    "ActualTimeCalcJob",
    "ExitCode",
    "JobDispatcher",
    "JobRegistry",
    "ScheduleJob",
    "ScheduleOrchestrator",
    "StencilOverdueJob",
    "build_default_registry",
]
