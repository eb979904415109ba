"""
Module: mes_engines
Responsibility:
    Package entrypoint re-exporting the pure calculation engines.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    MUST NOT import mes_services, mes_config or mes_batch.

Invariants enforced:
    - Purity: engines NEVER call ``datetime.now()`` or ``date.today()``.
      Dates and "as of" timestamps are passed in by the services.
    - Decimal-only arithmetic for times and ratios.
    - Every public engine entry point is traced with ``@traced_engine``.
"""

from mes_engines.actual_time import (
    REPORTED_UNITS,
    ROUTE_BY_UNIT,
    CalculationWindow,
    DetailLine,
    RawTimesheetEntry,
    WorkOrderAggregate,
    aggregate_work_order,
    build_work_order_aggregates,
    entry_contribution,
    finished_quantity,
    route_for_unit,
    terminal_station_for_unit,
)
from mes_engines.overdue import (
    DEFAULT_RULES,
    OverdueAsset,
    OverdueRule,
    OverdueThresholds,
    SeverityTier,
    StencilSnapshot,
    classify_overdue,
    classify_stencil,
    count_by_tier,
)
from mes_engines.tracer import traced_engine

__all__ = [
    # actual time
    "REPORTED_UNITS",
    "ROUTE_BY_UNIT",
    "CalculationWindow",
    "DetailLine",
    "RawTimesheetEntry",
    "WorkOrderAggregate",
    "aggregate_work_order",
    "build_work_order_aggregates",
    "entry_contribution",
    "finished_quantity",
    "route_for_unit",
    "terminal_station_for_unit",
    # overdue
    "DEFAULT_RULES",
    "OverdueAsset",
    "OverdueRule",
    "OverdueThresholds",
    "SeverityTier",
    "StencilSnapshot",
    "classify_overdue",
    "classify_stencil",
    "count_by_tier",
    # tracing
    "traced_engine",
]
