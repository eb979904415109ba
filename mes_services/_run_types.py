"""
mes_services._run_types -- Pure frozen dataclasses returned by the services.

Follows the pattern of the engine DTOs: frozen dataclasses with enum status
fields and tuples for immutable collections.  ZERO I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from pathlib import Path

from mes_kernel.exceptions import PartialRecordError


# =============================================================================
# Status enums
# =============================================================================


class AggregationStatus(str, Enum):
    """Run-level outcome of one actual-time calculation."""

    SUCCESS = "success"  # Window had entries; per work-order failures are counted
    NO_DATA = "no_data"  # Window was empty; nothing written, no export
    FAILURE = "failure"  # The window could not be read at all


class WorkOrderStatus(str, Enum):
    """Per work-order outcome within a run."""

    INSERTED = "inserted"
    DUPLICATE = "duplicate"  # Summary already present from an earlier run
    FAILED = "failed"


# =============================================================================
# Result DTOs
# =============================================================================


@dataclass(frozen=True)
class WorkOrderOutcome:
    """Outcome of persisting one work-order aggregate."""

    key: str
    status: WorkOrderStatus
    actual_id: int | None = None
    detail_count: int = 0
    error: PartialRecordError | None = None


@dataclass(frozen=True)
class AggregationRunResult:
    """
    Result of one actual-time calculation.

    ``export_path`` is None when nothing was exported (empty window, failed
    read, or failed export; the latter is logged, never raised).
    """

    status: AggregationStatus
    calc_date: date
    entry_count: int = 0
    outcomes: tuple[WorkOrderOutcome, ...] = ()
    export_path: Path | None = None
    message: str | None = None

    @property
    def is_success(self) -> bool:
        return self.status in (AggregationStatus.SUCCESS, AggregationStatus.NO_DATA)

    def _count(self, status: WorkOrderStatus) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    @property
    def inserted_count(self) -> int:
        return self._count(WorkOrderStatus.INSERTED)

    @property
    def duplicate_count(self) -> int:
        return self._count(WorkOrderStatus.DUPLICATE)

    @property
    def failed_count(self) -> int:
        return self._count(WorkOrderStatus.FAILED)

    @property
    def failures(self) -> tuple[PartialRecordError, ...]:
        return tuple(o.error for o in self.outcomes if o.error is not None)


@dataclass(frozen=True)
class NotificationRecipient:
    """Active member of a mail group with an address."""

    user_id: int
    user_name: str
    email: str


@dataclass(frozen=True)
class FlagUpdateResult:
    """Counts from one alert-flag update pass."""

    updated: int = 0
    already_set: int = 0
    failed: int = 0
