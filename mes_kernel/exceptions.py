"""
Typed Exception Hierarchy for the schedule kernel.

Every error raised by the kernel, engines, services, or jobs is a subclass of
ScheduleKernelError with a machine-readable ``code`` class attribute and its
context stored as attributes (never only inside the message string).

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ScheduleKernelError (base)
    |
    +-- ConfigurationError
    |
    +-- StorageError
    |   +-- SequenceExhaustedError
    |
    +-- TransportError
    |
    +-- PartialRecordError
    |
    +-- JobError
        +-- JobNotRegisteredError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Configuration   | CONFIGURATION_INVALID       | Missing connection / bad threshold
----------------|-----------------------------|-----------------------------------------
Storage         | STORAGE_ERROR               | Query / insert / update failed
                | SEQUENCE_EXHAUSTED          | Counter reached its ceiling
----------------|-----------------------------|-----------------------------------------
Transport       | TRANSPORT_ERROR             | SMTP send failed
----------------|-----------------------------|-----------------------------------------
Partial record  | PARTIAL_RECORD_FAILED       | One work order / asset failed
----------------|-----------------------------|-----------------------------------------
Job             | JOB_ERROR                   | Generic job-level failure
                | JOB_NOT_REGISTERED          | Unknown job name at the dispatcher

===============================================================================
PROPAGATION
===============================================================================

1. ConfigurationError is raised before any data access and becomes exit
   code 2 at the dispatcher.  Not retryable without an operator fix.

2. StorageError raised while processing one work order or one asset is
   caught at that granularity, logged, and wrapped as PartialRecordError
   in the run result.  StorageError raised during setup (initial fetch)
   propagates to the job and becomes exit code 3.

3. TransportError aborts an alerting run before any alert flag changes.
"""


class ScheduleKernelError(Exception):
    """
    Base exception for all schedule kernel errors.

    All subclasses must have a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "SCHEDULE_KERNEL_ERROR"


# Configuration


class ConfigurationError(ScheduleKernelError):
    """Required configuration is missing or invalid."""

    code: str = "CONFIGURATION_INVALID"

    def __init__(self, setting: str, reason: str):
        self.setting = setting
        self.reason = reason
        super().__init__(f"Invalid configuration '{setting}': {reason}")


# Storage


class StorageError(ScheduleKernelError):
    """A query, insert, or update against a backing store failed."""

    code: str = "STORAGE_ERROR"

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Storage operation '{operation}' failed: {detail}")


class SequenceExhaustedError(StorageError):
    """Named counter cannot advance without passing its ceiling."""

    code: str = "SEQUENCE_EXHAUSTED"

    def __init__(self, counter_name: str, current_value: int, ceiling: int):
        self.counter_name = counter_name
        self.current_value = current_value
        self.ceiling = ceiling
        ScheduleKernelError.__init__(
            self,
            f"Sequence '{counter_name}' exhausted at {current_value} "
            f"(ceiling {ceiling})",
        )
        self.operation = "sequence_allocate"
        self.detail = str(self)


# Transport


class TransportError(ScheduleKernelError):
    """Outbound notification could not be delivered."""

    code: str = "TRANSPORT_ERROR"

    def __init__(self, recipients: tuple[str, ...], detail: str):
        self.recipients = recipients
        self.detail = detail
        super().__init__(
            f"Send to {len(recipients)} recipient(s) failed: {detail}"
        )


# Per-item failures


class PartialRecordError(ScheduleKernelError):
    """
    One work order or one asset failed mid-processing.

    Never aborts the batch; collected on the run result instead.
    """

    code: str = "PARTIAL_RECORD_FAILED"

    def __init__(self, record_key: str, detail: str):
        self.record_key = record_key
        self.detail = detail
        super().__init__(f"Record {record_key} failed: {detail}")


# Jobs


class JobError(ScheduleKernelError):
    """Base exception for job-level errors."""

    code: str = "JOB_ERROR"


class JobNotRegisteredError(JobError):
    """No job is registered under the requested name."""

    code: str = "JOB_NOT_REGISTERED"

    def __init__(self, job_name: str, available: tuple[str, ...]):
        self.job_name = job_name
        self.available = available
        super().__init__(
            f"No job registered for name '{job_name}'. "
            f"Available: {list(available)}"
        )
