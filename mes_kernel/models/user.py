"""Users and mail groups (source store)."""

from sqlalchemy import ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from mes_kernel.db.base import SourceBase

ACTIVE_USER_STATUS = 1


class UserInfo(SourceBase):
    __tablename__ = "user_info"

    user_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_no: Mapped[str | None] = mapped_column(String(30))
    user_name: Mapped[str] = mapped_column(String(50), nullable=False)
    user_email: Mapped[str | None] = mapped_column(String(100))
    user_status_id: Mapped[int] = mapped_column(
        Integer, nullable=False, default=ACTIVE_USER_STATUS,
    )


class MailGroup(SourceBase):
    """Named distribution list, looked up by ``group_no``."""

    __tablename__ = "mail_group"

    group_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    group_no: Mapped[str] = mapped_column(String(30), nullable=False, unique=True)
    group_name: Mapped[str | None] = mapped_column(String(100))


class MailGroupDetail(SourceBase):
    __tablename__ = "mail_group_detail"
    __table_args__ = (UniqueConstraint("group_id", "user_id"),)

    detail_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    group_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("mail_group.group_id"), nullable=False,
    )
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("user_info.user_id"), nullable=False,
    )
