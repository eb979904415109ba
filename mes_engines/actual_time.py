"""
Module: mes_engines.actual_time
Responsibility:
    Turn one calculation window's station-visit records into per work order
    production-time aggregates: route selection per process unit, finished
    quantity at the unit's terminal station, per-visit work-time
    contribution, and ordered detail lines.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    The aggregation service reads the entries, allocates ids, and persists.

Invariants enforced:
    - Purity: no clock access, no I/O.  The window is derived from an
      explicit calculation date.
    - Decimal-only arithmetic for cycle and production times.
    - SMT (unit S) visits contribute ``cycle_time * qty`` whatever the
      operator count says, and report an operator count of 1.  Every other
      unit contributes ``cycle_time * op_cnt * qty``.
    - Units with no route are skipped entirely; within a routed unit only
      visits whose station test type equals the route are kept.
    - Group order is first-seen order: units as they first appear in the
      input, work orders as they first appear within a unit, visits in
      input order.  Detail indices run 0..n-1 in that order.

Failure modes:
    - ValueError from CalculationWindow when constructed with end <= start.

Usage:
    from mes_engines.actual_time import CalculationWindow, build_work_order_aggregates

    window = CalculationWindow.for_date(date(2024, 5, 1))
    aggregates = build_work_order_aggregates(entries=entries)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Sequence

from mes_engines.tracer import traced_engine
from mes_kernel.logging_config import get_logger

logger = get_logger("engines.actual_time")

# Process units read from the shop floor.  Anything else is not reported.
REPORTED_UNITS: tuple[str, ...] = ("P", "S", "T", "D", "B")

ROUTE_BY_UNIT: dict[str, str] = {
    "S": "0010",  # SMT
    "D": "0020",  # front end
    "T": "0020",  # test
    "P": "0020",  # packing
    "B": "0030",  # assembly
}

# Station whose output counts as finished for the unit.
TERMINAL_STATION_BY_UNIT: dict[str, int] = {
    "S": 12,   # SMT_TOP
    "T": 229,  # QA hand-off
    "B": 37,   # PACKING
}

# Packing reports finished output at either of its two closing stations.
PACKING_UNIT = "P"
PACKING_FINISH_STATIONS: frozenset[int] = frozenset({212, 213})

SMT_UNIT = "S"

WINDOW_OFFSET = timedelta(minutes=10)

_TWO_PLACES = Decimal("0.01")


@dataclass(frozen=True)
class RawTimesheetEntry:
    """
    One station visit as read from the source store.

    Contract:
        Read-only snapshot.  ``standard_ct`` and ``standard_op_cnt`` come
        from the engineering standard for the item / unit / line / station /
        side and are 0 when no standard exists.
    """

    timesheet_id: int
    wo_no: str
    eng_sr: str | None
    unit_no: str
    line_id: int
    station_id: int
    test_type: str | None
    side: str | None
    op_cnt: int
    open_time: datetime | None
    close_time: datetime | None
    production_qty: int
    total_ct: Decimal
    standard_ct: int = 0
    standard_op_cnt: int = 0
    unit_name: str | None = None
    line_name: str | None = None
    station_name: str | None = None
    memo: str | None = None
    open_user: str | None = None
    close_user: str | None = None


@dataclass(frozen=True)
class CalculationWindow:
    """
    Half-open close-time window ``[start, end)`` for one calculation date.

    A production day runs from 00:10 to 00:10 the next day, so visits
    closed in the first ten minutes after midnight still belong to the
    previous day's shift.
    """

    calc_date: date
    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.end <= self.start:
            raise ValueError(
                f"Window end {self.end} must be after start {self.start}"
            )

    @classmethod
    def for_date(cls, calc_date: date) -> CalculationWindow:
        midnight = datetime.combine(calc_date, time.min)
        return cls(
            calc_date=calc_date,
            start=midnight + WINDOW_OFFSET,
            end=midnight + timedelta(days=1) + WINDOW_OFFSET,
        )

    def contains(self, moment: datetime | None) -> bool:
        if moment is None:
            return False
        return self.start <= moment < self.end


@dataclass(frozen=True)
class DetailLine:
    """One contributing visit inside a work-order aggregate."""

    detail_index: int
    timesheet_id: int
    station_id: int
    open_time: datetime | None
    close_time: datetime | None
    operator_count: int
    cycle_time: Decimal
    quantity: int
    work_time: Decimal


@dataclass(frozen=True)
class WorkOrderAggregate:
    """
    Everything needed to write one summary row and its details.

    Guarantees:
        - ``production_time`` equals the sum of detail ``work_time`` values
          rounded half-up to 2 places.
        - ``details`` is non-empty and indexed 0..n-1.
    """

    wo_no: str
    unit_no: str
    route: str
    terminal_station_id: int
    production_time: Decimal
    production_count: int
    details: tuple[DetailLine, ...]

    @property
    def key(self) -> str:
        return f"{self.wo_no}/{self.unit_no}/{self.route}"


def route_for_unit(unit_no: str) -> str | None:
    """Route code for a process unit, None for units outside the table."""
    return ROUTE_BY_UNIT.get(unit_no)


def terminal_station_for_unit(unit_no: str) -> int:
    """Terminal station id for a unit; 0 when the unit has none."""
    return TERMINAL_STATION_BY_UNIT.get(unit_no, 0)


def finished_quantity(unit_no: str, entries: Sequence[RawTimesheetEntry]) -> int:
    """Sum of quantities produced at the unit's finishing station(s)."""
    if unit_no == PACKING_UNIT:
        finish_stations = PACKING_FINISH_STATIONS
    else:
        finish_stations = frozenset({terminal_station_for_unit(unit_no)})
    return sum(e.production_qty for e in entries if e.station_id in finish_stations)


def entry_contribution(unit_no: str, entry: RawTimesheetEntry) -> tuple[int, Decimal]:
    """
    Work time contributed by one visit.

    Returns:
        ``(operator_count, work_time)`` where operator_count is the value
        reported on the detail line.
    """
    cycle_time = Decimal(entry.total_ct)
    if unit_no == SMT_UNIT:
        return 1, cycle_time * entry.production_qty
    return entry.op_cnt, cycle_time * entry.op_cnt * entry.production_qty


def quantize_time(value: Decimal) -> Decimal:
    return value.quantize(_TWO_PLACES, rounding=ROUND_HALF_UP)


def aggregate_work_order(
    wo_no: str,
    unit_no: str,
    route: str,
    entries: Sequence[RawTimesheetEntry],
) -> WorkOrderAggregate:
    """Build the aggregate for one work order's visits within one unit."""
    if not entries:
        raise ValueError(f"Work order {wo_no} has no entries")

    details: list[DetailLine] = []
    total = Decimal("0")
    for index, entry in enumerate(entries):
        operator_count, work_time = entry_contribution(unit_no, entry)
        total += work_time
        details.append(
            DetailLine(
                detail_index=index,
                timesheet_id=entry.timesheet_id,
                station_id=entry.station_id,
                open_time=entry.open_time,
                close_time=entry.close_time,
                operator_count=operator_count,
                cycle_time=Decimal(entry.total_ct),
                quantity=entry.production_qty,
                work_time=work_time,
            )
        )

    return WorkOrderAggregate(
        wo_no=wo_no,
        unit_no=unit_no,
        route=route,
        terminal_station_id=terminal_station_for_unit(unit_no),
        production_time=quantize_time(total),
        production_count=finished_quantity(unit_no, entries),
        details=tuple(details),
    )


@traced_engine("actual_time", "1.0", fingerprint_fields=("entries",))
def build_work_order_aggregates(
    *,
    entries: Sequence[RawTimesheetEntry],
) -> tuple[WorkOrderAggregate, ...]:
    """
    Group a window's visits into work-order aggregates.

    Units are visited in first-seen order; a unit without a route, or with
    no visit on a station of its route's test type, produces nothing.
    """
    by_unit: dict[str, list[RawTimesheetEntry]] = {}
    for entry in entries:
        by_unit.setdefault(entry.unit_no, []).append(entry)

    aggregates: list[WorkOrderAggregate] = []
    for unit_no, unit_entries in by_unit.items():
        route = route_for_unit(unit_no)
        if route is None:
            logger.debug("unit_without_route_skipped", extra={"unit_no": unit_no})
            continue

        routed = [e for e in unit_entries if e.test_type == route]
        if not routed:
            logger.debug(
                "unit_has_no_routed_entries",
                extra={"unit_no": unit_no, "route": route},
            )
            continue

        by_work_order: dict[str, list[RawTimesheetEntry]] = {}
        for entry in routed:
            by_work_order.setdefault(entry.wo_no, []).append(entry)

        logger.info(
            "unit_grouped",
            extra={
                "unit_no": unit_no,
                "route": route,
                "work_order_count": len(by_work_order),
            },
        )
        for wo_no, wo_entries in by_work_order.items():
            aggregates.append(aggregate_work_order(wo_no, unit_no, route, wo_entries))

    return tuple(aggregates)
