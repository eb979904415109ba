"""
JobDispatcher -- selects one registered job and turns its outcome into an
exit code.

Contract:
    ``dispatch(job_name)`` never raises.  Every path ends in one of the
    ``ExitCode`` values (or the job's own return value).

Architecture: mes_batch/services.  Imports from mes_batch.jobs and kernel
    logging/exceptions only.

Invariants enforced:
    - Exactly one job runs per dispatch; nothing is retried.
    - Each run is wrapped in ``job_log_scope`` so every line the job writes
      lands in that day's log file tagged with job_name and run_id.
"""

from __future__ import annotations

import logging
import time
from contextlib import ExitStack
from pathlib import Path
from typing import Callable
from uuid import uuid4

from mes_kernel.domain.clock import Clock, SystemClock
from mes_kernel.exceptions import ConfigurationError, JobNotRegisteredError
from mes_kernel.logging_config import get_logger, job_log_scope

from mes_batch.jobs.base import ExitCode, JobRegistry

logger = get_logger("batch.dispatcher")


class JobDispatcher:
    """Runs a job by name.

    Contract:
        - Missing or unknown name -> logs the available jobs, returns 1.
        - Log directory cannot be created or opened -> 2 (job not run).
        - ``ConfigurationError`` escaping the job -> 2.
        - Any other exception escaping the job -> 3.
        - Otherwise the job's own exit code.
    """

    def __init__(
        self,
        registry: JobRegistry,
        log_dir: Path,
        clock: Clock | None = None,
        log_level: int = logging.INFO,
        run_id_factory: Callable[[], str] | None = None,
    ):
        self._registry = registry
        self._log_dir = Path(log_dir)
        self._clock = clock or SystemClock()
        self._log_level = log_level
        self._run_id_factory = run_id_factory or (lambda: uuid4().hex)

    @property
    def registry(self) -> JobRegistry:
        return self._registry

    def dispatch(self, job_name: str | None) -> int:
        if not job_name or not job_name.strip():
            logger.error(
                "job_name_missing",
                extra={"available_jobs": list(self._registry.list_jobs())},
            )
            return ExitCode.INVALID_ARGUMENT

        try:
            job = self._registry.get(job_name)
        except JobNotRegisteredError as exc:
            logger.error(
                "job_not_registered",
                extra={"job_name": job_name, "available_jobs": list(exc.available)},
            )
            return ExitCode.INVALID_ARGUMENT

        run_id = self._run_id_factory()
        start_time = time.monotonic()
        with ExitStack() as stack:
            try:
                job_logger = stack.enter_context(
                    job_log_scope(
                        self._log_dir,
                        job.job_name,
                        run_id,
                        level=self._log_level,
                        today=self._clock.today(),
                    )
                )
            except OSError as exc:
                logger.error(
                    "job_log_unavailable",
                    extra={
                        "job_name": job.job_name,
                        "log_dir": self._log_dir,
                        "reason": str(exc),
                    },
                )
                return ExitCode.CONFIGURATION_ERROR

            job_logger.info(
                "job_started",
                extra={"description": job.description, "started_at": self._clock.now()},
            )
            try:
                exit_code = int(job.run())
            except ConfigurationError as exc:
                job_logger.error(
                    "job_configuration_invalid",
                    extra={"setting": exc.setting, "reason": exc.reason},
                )
                exit_code = ExitCode.CONFIGURATION_ERROR
            except Exception:
                job_logger.error("job_failed", exc_info=True)
                exit_code = ExitCode.EXECUTION_ERROR

            job_logger.info(
                "job_finished",
                extra={
                    "exit_code": int(exit_code),
                    "duration_ms": round((time.monotonic() - start_time) * 1000, 2),
                },
            )
        return int(exit_code)
