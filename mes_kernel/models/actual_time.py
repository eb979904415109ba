"""
Actual-time reporting tables (target store).

Contract:
    ``actual_time`` holds one summary per (actual date, work order, unit,
    route).  That natural key is unique, so re-running a date inserts
    nothing new.  ``actual_time_detail`` rows hang off a summary by
    ``actual_id`` and are numbered 0..n-1 in timesheet order.
"""

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    Date,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from mes_kernel.db.base import TargetBase

SOURCE_TIMESHEET = "1"


class ActualTime(TargetBase):
    """Per work order / route production-time summary for one date."""

    __tablename__ = "actual_time"
    __table_args__ = (
        UniqueConstraint(
            "actual_date", "wip_no", "unit_no", "route",
            name="uq_actual_time_natural_key",
        ),
    )

    actual_id: Mapped[int] = mapped_column(primary_key=True, autoincrement=False)
    actual_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    wip_no: Mapped[str] = mapped_column(String(30), nullable=False)
    unit_no: Mapped[str] = mapped_column(String(10), nullable=False)
    production_time: Mapped[Decimal] = mapped_column(
        Numeric(18, 2), nullable=False,
    )
    production_cnt: Mapped[int] = mapped_column(Integer, nullable=False)
    production_cnt_sap: Mapped[int] = mapped_column(Integer, nullable=False)
    route: Mapped[str] = mapped_column(String(10), nullable=False)
    source: Mapped[str] = mapped_column(
        String(1), nullable=False, default=SOURCE_TIMESHEET,
    )
    create_date: Mapped[datetime] = mapped_column(nullable=False)


class ActualTimeDetail(TargetBase):
    """One contributing timesheet entry of a summary."""

    __tablename__ = "actual_time_detail"

    actual_id: Mapped[int] = mapped_column(
        ForeignKey("actual_time.actual_id"), primary_key=True,
        autoincrement=False,
    )
    actual_detail_id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=False,
    )
    wip_no: Mapped[str] = mapped_column(String(30), nullable=False)
    barcode_id: Mapped[int] = mapped_column(Integer, nullable=False)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    station_id: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_no: Mapped[str] = mapped_column(String(10), nullable=False)
    pass_datetime_s: Mapped[datetime | None]
    pass_datetime: Mapped[datetime | None]
    a_cnt: Mapped[int] = mapped_column(Integer, nullable=False)
    a_ct: Mapped[Decimal] = mapped_column(nullable=False)
    s_ct: Mapped[int] = mapped_column(Integer, nullable=False)
    work_time: Mapped[Decimal] = mapped_column(nullable=False)
    last_station_id: Mapped[int] = mapped_column(Integer, nullable=False)
    rest_ct: Mapped[str] = mapped_column(String(10), nullable=False, default="0")
    route: Mapped[str] = mapped_column(String(10), nullable=False)
    create_datetime: Mapped[datetime] = mapped_column(nullable=False)
