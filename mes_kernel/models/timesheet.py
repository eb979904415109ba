"""
Shop-floor timesheet tables (source store).

Each ``wo_timesheet`` row is one station visit: a work order opened at a
station, a quantity produced, then closed.  The reference tables give the
visit its process unit, line, station test type, and the engineering
standard cycle time for the item.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from mes_kernel.db.base import SourceBase


class FactoryUnit(SourceBase):
    """Process unit (P, S, T, D, B, ...)."""

    __tablename__ = "factory_unit"

    unit_no: Mapped[str] = mapped_column(String(10), primary_key=True)
    unit_name: Mapped[str | None] = mapped_column(String(50))


class ProductionLine(SourceBase):
    __tablename__ = "line"

    line_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    line_name: Mapped[str | None] = mapped_column(String(50))


class Station(SourceBase):
    """
    Production station.

    ``test_type`` holds the route code the station reports under; stations
    without one are not part of any route and never contribute time.
    """

    __tablename__ = "station"

    station_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    station_name: Mapped[str | None] = mapped_column(String(50))
    test_type: Mapped[str | None] = mapped_column(String(10))


class WoInfo(SourceBase):
    """Work-order header; ``eng_sr`` overrides the timesheet's part number."""

    __tablename__ = "wo_info"

    wo_no: Mapped[str] = mapped_column(String(30), primary_key=True)
    eng_sr: Mapped[str | None] = mapped_column(String(50))


class StandardWorktime(SourceBase):
    """Engineering standard cycle time per item / unit / line / station / side."""

    __tablename__ = "standard_worktime"

    standard_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    item_no: Mapped[str] = mapped_column(String(50), nullable=False)
    unit_no: Mapped[str] = mapped_column(String(10), nullable=False)
    line_id: Mapped[int] = mapped_column(Integer, nullable=False)
    station_id: Mapped[int] = mapped_column(Integer, nullable=False)
    side: Mapped[str | None] = mapped_column(String(10))
    ct: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    op_cnt: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class WoTimesheet(SourceBase):
    """One station visit of a work order."""

    __tablename__ = "wo_timesheet"

    timesheet_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    wo_no: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    eng_sr: Mapped[str | None] = mapped_column(String(50))
    unit_no: Mapped[str] = mapped_column(
        String(10), ForeignKey("factory_unit.unit_no"), nullable=False,
    )
    line_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("line.line_id"), nullable=False,
    )
    station_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("station.station_id"), nullable=False,
    )
    side: Mapped[str | None] = mapped_column(String(10))
    op_cnt: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    open_time: Mapped[datetime | None]
    close_time: Mapped[datetime | None] = mapped_column(index=True)
    production_qty: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0,
    )
    total_ct: Mapped[Decimal] = mapped_column(nullable=False, default=0)
    memo: Mapped[str | None] = mapped_column(String(200))
    create_userid: Mapped[int | None] = mapped_column(Integer)
    update_userid: Mapped[int | None] = mapped_column(Integer)
