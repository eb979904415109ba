"""Resolves a named mail group to its active recipients (source store)."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from mes_kernel.db.engine import session_scope
from mes_kernel.exceptions import StorageError
from mes_kernel.logging_config import get_logger
from mes_kernel.models.user import (
    ACTIVE_USER_STATUS,
    MailGroup,
    MailGroupDetail,
    UserInfo,
)
from mes_services._run_types import NotificationRecipient

_default_logger = get_logger("services.recipients")


class RecipientDirectory:
    def __init__(
        self,
        session_factory: sessionmaker[Session],
        logger: logging.Logger | None = None,
    ):
        self._session_factory = session_factory
        self._logger = logger or _default_logger

    def recipients_for_group(self, group_no: str) -> tuple[NotificationRecipient, ...]:
        """
        Active members of ``group_no`` that have an email address.

        Ordered by user name.  An unknown group yields an empty tuple.
        """
        stmt = (
            select(UserInfo.user_id, UserInfo.user_name, UserInfo.user_email)
            .select_from(MailGroup)
            .join(MailGroupDetail, MailGroupDetail.group_id == MailGroup.group_id)
            .join(UserInfo, UserInfo.user_id == MailGroupDetail.user_id)
            .where(MailGroup.group_no == group_no)
            .where(UserInfo.user_status_id == ACTIVE_USER_STATUS)
            .where(UserInfo.user_email.is_not(None))
            .where(UserInfo.user_email != "")
            .order_by(UserInfo.user_name, UserInfo.user_id)
        )
        try:
            with session_scope(self._session_factory) as session:
                rows = session.execute(stmt).all()
        except SQLAlchemyError as exc:
            self._logger.error(
                "recipient_lookup_failed", extra={"group_no": group_no}, exc_info=True,
            )
            raise StorageError("recipient_lookup", str(exc)) from exc

        recipients = tuple(
            NotificationRecipient(
                user_id=row.user_id,
                user_name=row.user_name,
                email=row.user_email.strip(),
            )
            for row in rows
        )
        self._logger.info(
            "recipients_resolved",
            extra={"group_no": group_no, "recipient_count": len(recipients)},
        )
        return recipients
