"""
ActualTimeService -- timesheet-to-actual-time aggregation for one date.

Responsibility:
    Read a calculation window from the source store, build work-order
    aggregates with the pure engine, persist one summary plus its details
    per work order in the target store, then trigger the SAP export.

Architecture position:
    Services -- imperative shell orchestrating TimesheetReader,
    ``mes_engines.actual_time``, SequenceAllocator and ExportWriter.

Invariants enforced:
    - Summary is the idempotency gate: when a summary for (date, work
      order, unit, route) exists, its details are not written again and
      the work order is reported as DUPLICATE.  Re-running a date adds no
      rows.
    - Summary and details of one work order commit together or not at all.
    - Per work-order isolation: a failure is logged, recorded as a
      PartialRecordError on the result, and the run moves on.
    - The id is allocated before the target transaction opens, in its own
      transaction, so it is never reused.

Failure modes:
    - FAILURE result when the window cannot be read (StorageError).
    - NO_DATA result for an empty window; no rows and no export file.
"""

from __future__ import annotations

import logging
from datetime import date

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from mes_engines.actual_time import (
    CalculationWindow,
    WorkOrderAggregate,
    build_work_order_aggregates,
)
from mes_kernel.db.engine import session_scope
from mes_kernel.db.idempotent import insert_if_absent
from mes_kernel.domain.clock import Clock, SystemClock
from mes_kernel.exceptions import PartialRecordError, StorageError
from mes_kernel.logging_config import LogContext, get_logger
from mes_kernel.models.actual_time import (
    SOURCE_TIMESHEET,
    ActualTime,
    ActualTimeDetail,
)
from mes_kernel.services.sequence_service import SequenceAllocator
from mes_services._run_types import (
    AggregationRunResult,
    AggregationStatus,
    WorkOrderOutcome,
    WorkOrderStatus,
)
from mes_services.export_writer import ExportWriter
from mes_services.timesheet_reader import TimesheetReader

_default_logger = get_logger("services.actual_time")

DETAIL_USER_ID = 0
DETAIL_REST_CT = "0"


class ActualTimeService:
    """
    Aggregates one calculation date into the target store.

    Contract:
        ``run(calc_date)`` never raises for data problems; it returns an
        AggregationRunResult describing what happened.

    Non-goals:
        - Deciding the calculation date (the job does that).
        - Retrying failed work orders within the same run.
    """

    def __init__(
        self,
        reader: TimesheetReader,
        target_session_factory: sessionmaker[Session],
        allocator: SequenceAllocator,
        counter_name: str = SequenceAllocator.ACTUAL_ID,
        exporter: ExportWriter | None = None,
        clock: Clock | None = None,
        logger: logging.Logger | None = None,
    ):
        self._reader = reader
        self._target = target_session_factory
        self._allocator = allocator
        self._counter_name = counter_name
        self._exporter = exporter
        self._clock = clock or SystemClock()
        self._logger = logger or _default_logger

    def run(self, calc_date: date) -> AggregationRunResult:
        """
        Calculate ``calc_date``.

        Steps:
        1. Read visits closed in [date 00:10, date+1 00:10)
        2. Build aggregates (route filter, terminal quantity, contributions)
        3. Persist each work order in isolation
        4. Export the date's totals (only when the window had entries)
        """
        window = CalculationWindow.for_date(calc_date)
        self._logger.info(
            "actual_time_run_started",
            extra={
                "calc_date": calc_date,
                "window_start": window.start,
                "window_end": window.end,
            },
        )

        try:
            entries = self._reader.read_window(window)
        except StorageError as exc:
            self._logger.error(
                "actual_time_read_failed",
                extra={"calc_date": calc_date},
                exc_info=True,
            )
            return AggregationRunResult(
                status=AggregationStatus.FAILURE,
                calc_date=calc_date,
                message=str(exc),
            )

        if not entries:
            self._logger.warning(
                "actual_time_no_entries", extra={"calc_date": calc_date},
            )
            return AggregationRunResult(
                status=AggregationStatus.NO_DATA,
                calc_date=calc_date,
                message="No timesheet entries in window",
            )

        aggregates = build_work_order_aggregates(entries=entries)
        outcomes = tuple(
            self._process_work_order(aggregate, calc_date)
            for aggregate in aggregates
        )

        export_path = self._exporter.export(calc_date) if self._exporter else None

        result = AggregationRunResult(
            status=AggregationStatus.SUCCESS,
            calc_date=calc_date,
            entry_count=len(entries),
            outcomes=outcomes,
            export_path=export_path,
        )
        self._logger.info(
            "actual_time_run_completed",
            extra={
                "calc_date": calc_date,
                "entry_count": result.entry_count,
                "work_orders_inserted": result.inserted_count,
                "work_orders_duplicate": result.duplicate_count,
                "work_orders_failed": result.failed_count,
                "export_path": export_path,
            },
        )
        return result

    def _process_work_order(
        self, aggregate: WorkOrderAggregate, calc_date: date,
    ) -> WorkOrderOutcome:
        with LogContext.bind(work_order=aggregate.wo_no):
            try:
                return self._persist(aggregate, calc_date)
            except Exception as exc:
                error = PartialRecordError(aggregate.key, str(exc))
                self._logger.error(
                    "work_order_failed",
                    extra={
                        "wo_no": aggregate.wo_no,
                        "unit_no": aggregate.unit_no,
                        "route": aggregate.route,
                    },
                    exc_info=True,
                )
                return WorkOrderOutcome(
                    key=aggregate.key,
                    status=WorkOrderStatus.FAILED,
                    error=error,
                )

    def _summary_exists(self, aggregate: WorkOrderAggregate, calc_date: date) -> bool:
        with session_scope(self._target) as session:
            return session.execute(
                select(ActualTime.actual_id)
                .where(ActualTime.actual_date == calc_date)
                .where(ActualTime.wip_no == aggregate.wo_no)
                .where(ActualTime.unit_no == aggregate.unit_no)
                .where(ActualTime.route == aggregate.route)
            ).first() is not None

    def _duplicate(self, aggregate: WorkOrderAggregate) -> WorkOrderOutcome:
        self._logger.info(
            "work_order_already_calculated",
            extra={"wo_no": aggregate.wo_no, "route": aggregate.route},
        )
        return WorkOrderOutcome(key=aggregate.key, status=WorkOrderStatus.DUPLICATE)

    def _persist(
        self, aggregate: WorkOrderAggregate, calc_date: date,
    ) -> WorkOrderOutcome:
        # Skip the id allocation for work orders an earlier run already wrote.
        if self._summary_exists(aggregate, calc_date):
            return self._duplicate(aggregate)

        actual_id = self._allocator.allocate(self._counter_name)
        now = self._clock.now()

        with session_scope(self._target) as session:
            summary = ActualTime(
                actual_id=actual_id,
                actual_date=calc_date,
                wip_no=aggregate.wo_no,
                unit_no=aggregate.unit_no,
                production_time=aggregate.production_time,
                production_cnt=aggregate.production_count,
                production_cnt_sap=aggregate.production_count,
                route=aggregate.route,
                source=SOURCE_TIMESHEET,
                create_date=now,
            )
            if not insert_if_absent(session, summary):
                return self._duplicate(aggregate)

            for line in aggregate.details:
                session.add(
                    ActualTimeDetail(
                        actual_id=actual_id,
                        actual_detail_id=line.detail_index,
                        wip_no=aggregate.wo_no,
                        barcode_id=line.timesheet_id,
                        user_id=DETAIL_USER_ID,
                        station_id=line.station_id,
                        unit_no=aggregate.unit_no,
                        pass_datetime_s=line.open_time,
                        pass_datetime=line.close_time,
                        a_cnt=line.operator_count,
                        a_ct=line.cycle_time,
                        s_ct=line.quantity,
                        work_time=line.work_time,
                        last_station_id=aggregate.terminal_station_id,
                        rest_ct=DETAIL_REST_CT,
                        route=aggregate.route,
                        create_datetime=now,
                    )
                )
            session.flush()

        self._logger.info(
            "work_order_calculated",
            extra={
                "wo_no": aggregate.wo_no,
                "unit_no": aggregate.unit_no,
                "route": aggregate.route,
                "actual_id": actual_id,
                "production_time": aggregate.production_time,
                "production_count": aggregate.production_count,
                "detail_count": len(aggregate.details),
            },
        )
        return WorkOrderOutcome(
            key=aggregate.key,
            status=WorkOrderStatus.INSERTED,
            actual_id=actual_id,
            detail_count=len(aggregate.details),
        )
