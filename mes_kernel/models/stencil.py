"""
SMT stencil (steel plate) tables (source store).

Naming follows the MES schema, which is easy to misread:
``used_times`` is the *allowed* number of uses and ``be_use_times`` the
number already consumed.  The attribute names below say what they hold.
"""

from datetime import datetime

from sqlalchemy import ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from mes_kernel.db.base import SourceBase

ACTIVE_STENCIL_STATUS = "1"
ALERT_FLAG_SET = "Y"
ALERT_FLAG_UNSET = "N"


class SteelPlateInfo(SourceBase):
    """Stencil master record; ``usage_frequency_alert`` is the one column this codebase writes."""

    __tablename__ = "steel_plate_info"

    steel_plate_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    steel_plate_no: Mapped[str] = mapped_column(String(50), nullable=False)
    items: Mapped[str | None] = mapped_column(String(200))
    storage_location: Mapped[str | None] = mapped_column(String(50))
    max_uses: Mapped[int | None] = mapped_column("used_times", Integer)
    used_count: Mapped[int | None] = mapped_column("be_use_times", Integer)
    status: Mapped[str] = mapped_column(
        String(1), nullable=False, default=ACTIVE_STENCIL_STATUS,
    )
    usage_frequency_alert: Mapped[str | None] = mapped_column(String(1))
    create_userid: Mapped[int | None] = mapped_column(Integer)
    update_userid: Mapped[int | None] = mapped_column(Integer)
    update_date: Mapped[datetime | None]


class SteelPlateMeasure(SourceBase):
    """
    Deployment event for a stencil.

    ``on_date`` is when the stencil went onto a line for ``wip_no``;
    ``off_date`` stays empty while it is still there.
    """

    __tablename__ = "steel_plate_measure"

    measure_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    steel_plate_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("steel_plate_info.steel_plate_id"),
        nullable=False,
        index=True,
    )
    wip_no: Mapped[str | None] = mapped_column(String(30))
    on_date: Mapped[datetime | None]
    off_date: Mapped[datetime | None]
