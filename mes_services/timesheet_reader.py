"""
TimesheetReader -- reads one calculation window of station visits.

Responsibility:
    Query the source store for visits closed inside a CalculationWindow,
    restricted to the reported process units and to stations with a test
    type, and attach the engineering standard cycle time for each visit.

Architecture position:
    Services -- imperative shell.  Returns engine DTOs
    (``RawTimesheetEntry``); performs no calculation.

Failure modes:
    - StorageError wrapping any SQLAlchemy failure.  The caller treats it
      as a failed run, not a per work-order failure.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, aliased, sessionmaker

from mes_engines.actual_time import REPORTED_UNITS, CalculationWindow, RawTimesheetEntry
from mes_kernel.db.engine import session_scope
from mes_kernel.exceptions import StorageError
from mes_kernel.logging_config import get_logger
from mes_kernel.models.timesheet import (
    FactoryUnit,
    ProductionLine,
    StandardWorktime,
    Station,
    WoInfo,
    WoTimesheet,
)
from mes_kernel.models.user import UserInfo

_default_logger = get_logger("services.timesheet_reader")


def _standard_lookup(column):
    """First matching engineering standard value for the visit, else 0."""
    subquery = (
        select(column)
        .where(StandardWorktime.item_no == WoTimesheet.eng_sr)
        .where(StandardWorktime.unit_no == WoTimesheet.unit_no)
        .where(StandardWorktime.line_id == WoTimesheet.line_id)
        .where(StandardWorktime.station_id == WoTimesheet.station_id)
        .where(StandardWorktime.side == WoTimesheet.side)
        .order_by(StandardWorktime.standard_id)
        .limit(1)
        .correlate(WoTimesheet)
        .scalar_subquery()
    )
    return func.coalesce(subquery, 0)


class TimesheetReader:
    """Read-only access to the shop-floor timesheet in the source store."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        logger: logging.Logger | None = None,
    ):
        self._session_factory = session_factory
        self._logger = logger or _default_logger

    def read_window(self, window: CalculationWindow) -> tuple[RawTimesheetEntry, ...]:
        """
        Visits closed in ``[window.start, window.end)``.

        Ordered by close time then timesheet id, so grouping downstream is
        deterministic across runs.
        """
        open_user = aliased(UserInfo)
        close_user = aliased(UserInfo)

        stmt = (
            select(
                WoTimesheet.timesheet_id,
                WoTimesheet.wo_no,
                func.coalesce(WoInfo.eng_sr, WoTimesheet.eng_sr).label("eng_sr"),
                WoTimesheet.unit_no,
                FactoryUnit.unit_name,
                WoTimesheet.line_id,
                ProductionLine.line_name,
                WoTimesheet.station_id,
                Station.station_name,
                Station.test_type,
                WoTimesheet.side,
                WoTimesheet.op_cnt,
                WoTimesheet.open_time,
                WoTimesheet.close_time,
                WoTimesheet.production_qty,
                WoTimesheet.total_ct,
                WoTimesheet.memo,
                open_user.user_name.label("open_user"),
                close_user.user_name.label("close_user"),
                _standard_lookup(StandardWorktime.ct).label("standard_ct"),
                _standard_lookup(StandardWorktime.op_cnt).label("standard_op_cnt"),
            )
            .select_from(WoTimesheet)
            .join(FactoryUnit, FactoryUnit.unit_no == WoTimesheet.unit_no)
            .join(ProductionLine, ProductionLine.line_id == WoTimesheet.line_id)
            .join(Station, Station.station_id == WoTimesheet.station_id)
            .outerjoin(WoInfo, WoInfo.wo_no == WoTimesheet.wo_no)
            .outerjoin(open_user, open_user.user_id == WoTimesheet.create_userid)
            .outerjoin(close_user, close_user.user_id == WoTimesheet.update_userid)
            .where(WoTimesheet.unit_no.in_(REPORTED_UNITS))
            .where(Station.test_type.is_not(None))
            .where(WoTimesheet.close_time >= window.start)
            .where(WoTimesheet.close_time < window.end)
            .order_by(WoTimesheet.close_time, WoTimesheet.timesheet_id)
        )

        try:
            with session_scope(self._session_factory) as session:
                rows = session.execute(stmt).all()
        except SQLAlchemyError as exc:
            self._logger.error(
                "timesheet_read_failed",
                extra={"window_start": window.start, "window_end": window.end},
                exc_info=True,
            )
            raise StorageError("timesheet_read", str(exc)) from exc

        entries = tuple(
            RawTimesheetEntry(
                timesheet_id=row.timesheet_id,
                wo_no=row.wo_no,
                eng_sr=row.eng_sr,
                unit_no=row.unit_no,
                unit_name=row.unit_name,
                line_id=row.line_id,
                line_name=row.line_name,
                station_id=row.station_id,
                station_name=row.station_name,
                test_type=row.test_type,
                side=row.side,
                op_cnt=row.op_cnt or 0,
                open_time=row.open_time,
                close_time=row.close_time,
                production_qty=row.production_qty or 0,
                total_ct=Decimal(row.total_ct or 0),
                memo=row.memo,
                open_user=row.open_user,
                close_user=row.close_user,
                standard_ct=int(row.standard_ct),
                standard_op_cnt=int(row.standard_op_cnt),
            )
            for row in rows
        )

        self._logger.info(
            "timesheet_window_read",
            extra={
                "window_start": window.start,
                "window_end": window.end,
                "entry_count": len(entries),
            },
        )
        return entries
