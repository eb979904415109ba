"""Named id counters (target store)."""

from datetime import datetime

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from mes_kernel.db.base import TargetBase


class IdKey(TargetBase):
    """
    Sequence counter table.

    Each row is a named counter.  ``current_num`` only ever moves up by
    ``delta_num`` and never past ``limit_num``.
    """

    __tablename__ = "id_key"

    id_name: Mapped[str] = mapped_column(String(50), primary_key=True)
    current_num: Mapped[int] = mapped_column(BigInteger, nullable=False)
    start_num: Mapped[int] = mapped_column(BigInteger, nullable=False)
    limit_num: Mapped[int] = mapped_column(BigInteger, nullable=False)
    delta_num: Mapped[int] = mapped_column(BigInteger, nullable=False, default=1)
    create_date: Mapped[datetime | None]
    update_date: Mapped[datetime | None]
