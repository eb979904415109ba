"""
ScheduleJob protocol, exit codes, and JobRegistry.

Contract:
    ``ScheduleJob`` defines the interface every scheduled job implements.
    ``JobRegistry`` stores registered jobs keyed by name, case-insensitively.
    ``ExitCode`` is the process exit status contract with the invoker.

Architecture:
    mes_batch/jobs.  ZERO imports from engines/services; only kernel
    exceptions and stdlib.

Invariants enforced:
    - One job per name, compared case-insensitively ("actualtimecalc" and
      "ActualTimeCalc" are the same job).
"""

from __future__ import annotations

from enum import IntEnum
from typing import Protocol, runtime_checkable

from mes_kernel.exceptions import JobNotRegisteredError


class ExitCode(IntEnum):
    """Process exit codes understood by the external scheduler."""

    SUCCESS = 0  # Success, including "nothing to do"
    INVALID_ARGUMENT = 1  # Missing or unknown job name
    CONFIGURATION_ERROR = 2  # Required configuration missing or invalid
    EXECUTION_ERROR = 3  # Unhandled failure while running


@runtime_checkable
class ScheduleJob(Protocol):
    """Protocol defining the interface for scheduled job implementations.

    Contract:
        - ``job_name``: unique name the invoker passes on the command line.
        - ``description``: human-readable label for listings and logs.
        - ``run()``: performs the job synchronously and returns an exit code.

    Non-goals:
        - Does NOT catch configuration errors -- the dispatcher maps
          ``ConfigurationError`` to exit code 2.
        - Does NOT manage log files -- the dispatcher owns the log scope.
    """

    @property
    def job_name(self) -> str: ...

    @property
    def description(self) -> str: ...

    def run(self) -> int:
        """Run the job and return an ``ExitCode`` value."""
        ...


class JobRegistry:
    """Registry mapping job names to ScheduleJob implementations.

    Contract:
        - ``register()`` adds a job; raises ValueError on duplicate.
        - ``get()`` retrieves by name ignoring case; raises
          JobNotRegisteredError if missing.
        - ``list_jobs()`` returns all registered job names as registered, sorted.
    """

    def __init__(self) -> None:
        self._jobs: dict[str, ScheduleJob] = {}

    @staticmethod
    def _key(job_name: str) -> str:
        return job_name.strip().casefold()

    def register(self, job: ScheduleJob) -> None:
        """Register a job implementation.

        Raises:
            ValueError: If a job with the same name (ignoring case) exists.
        """
        key = self._key(job.job_name)
        if key in self._jobs:
            raise ValueError(f"Job '{job.job_name}' is already registered")
        self._jobs[key] = job

    def get(self, job_name: str) -> ScheduleJob:
        """Retrieve a registered job by name.

        Raises:
            JobNotRegisteredError: If no job is registered under the name.
        """
        try:
            return self._jobs[self._key(job_name)]
        except KeyError:
            raise JobNotRegisteredError(job_name, self.list_jobs()) from None

    def list_jobs(self) -> tuple[str, ...]:
        """Return all registered job names, sorted."""
        return tuple(sorted((job.job_name for job in self._jobs.values()), key=str.casefold))

    def describe(self) -> tuple[tuple[str, str], ...]:
        """(name, description) pairs in ``list_jobs()`` order."""
        return tuple((name, self.get(name).description) for name in self.list_jobs())

    def __len__(self) -> int:
        return len(self._jobs)

    def __contains__(self, job_name: str) -> bool:
        return self._key(job_name) in self._jobs
