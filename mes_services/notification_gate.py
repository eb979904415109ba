"""
NotificationGate -- sends the overdue digest, then marks warned stencils.

Responsibility:
    Render one HTML digest for all overdue stencils, deliver it, and only
    after a confirmed send set the usage alert flag on the usage-ratio
    warnings so the same stencil is not warned about again.

Architecture position:
    Services -- imperative shell (mailer + source store update).

Invariants enforced:
    - No flag changes unless the send succeeded.
    - Only WARNING-tier stencils whose flag is unset or 'N' are updated,
      and the UPDATE itself re-checks the flag so a concurrent writer's 'Y'
      is never overwritten.  URGENT and CRITICAL stencils are never flagged.
    - Each flag update runs in its own SAVEPOINT; one failure is logged and
      the remaining updates still commit.

Failure modes:
    - TransportError from the mailer -> ``notify`` returns False.
    - StorageError opening the source transaction for flag updates
      propagates to the job.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from html import escape
from typing import Sequence

from sqlalchemy import or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from mes_engines.overdue import OverdueAsset, SeverityTier, count_by_tier
from mes_kernel.db.engine import session_scope
from mes_kernel.domain.clock import Clock, SystemClock
from mes_kernel.exceptions import StorageError, TransportError
from mes_kernel.logging_config import LogContext, get_logger
from mes_kernel.models.stencil import ALERT_FLAG_SET, ALERT_FLAG_UNSET, SteelPlateInfo
from mes_services._run_types import FlagUpdateResult, NotificationRecipient
from mes_services.mailer import Mailer

_default_logger = get_logger("services.notification_gate")

SUBJECT = "[AMES系統通知] SMT 鋼板逾期告警"
TEST_SUBJECT_PREFIX = "[測試] "
SYSTEM_USER_ID = 0
ENG_NO_DISPLAY_LIMIT = 20


@dataclass(frozen=True)
class TierStyle:
    row_background: str
    label_color: str
    icon: str


TIER_STYLES: dict[SeverityTier, TierStyle] = {
    SeverityTier.URGENT: TierStyle("#fee2e2", "#dc2626", "🔴"),
    SeverityTier.CRITICAL: TierStyle("#fed7aa", "#ea580c", "🟠"),
    SeverityTier.WARNING: TierStyle("#fef3c7", "#ca8a04", "🟡"),
}
_PLAIN_STYLE = TierStyle("", "#374151", "")

_CELL = "padding: 10px; border: 1px solid #cbd5e1;"
_HEAD_CELL = "padding: 10px; border: 1px solid #cbd5e1; text-align: {align};"
_COLUMNS = (
    ("層級", "left"),
    ("鋼板編號", "left"),
    ("工程編號", "left"),
    ("使用率", "center"),
    ("已用/可用", "center"),
    ("逾期原因", "left"),
    ("上線日期", "left"),
    ("儲位", "left"),
)


def _text(value: object) -> str:
    """Escaped cell text, '-' for empty values."""
    if value is None or value == "":
        return "-"
    return escape(str(value))


def display_eng_no(eng_no: str | None) -> str:
    if not eng_no:
        return "-"
    if len(eng_no) > ENG_NO_DISPLAY_LIMIT:
        return eng_no[:ENG_NO_DISPLAY_LIMIT] + "..."
    return eng_no


def display_usage(asset: OverdueAsset) -> str:
    pct = asset.usage_percent
    if pct is None or pct <= 0:
        return "-"
    return f"{pct:.1f}%"


def display_reason(asset: OverdueAsset) -> str:
    if asset.tier is SeverityTier.URGENT and asset.dwell_days is not None:
        return f"{asset.reason} ({asset.dwell_days}天)"
    return asset.reason


def _render_row(asset: OverdueAsset) -> list[str]:
    snap = asset.snapshot
    style = TIER_STYLES.get(asset.tier, _PLAIN_STYLE)
    label = f"{style.icon} {asset.tier.value}".strip()
    row_style = f"background: {style.row_background};" if style.row_background else ""
    online = f"{snap.online_at:%Y/%m/%d}" if snap.online_at else None
    return [
        f'<tr style="{row_style}">',
        f'<td style="{_CELL}"><strong style="color: {style.label_color};">{escape(label)}</strong></td>',
        f'<td style="{_CELL}">{_text(snap.steel_plate_no)}</td>',
        f'<td style="{_CELL}">{_text(display_eng_no(snap.eng_no))}</td>',
        f'<td style="{_CELL} text-align: center;">{_text(display_usage(asset))}</td>',
        f'<td style="{_CELL} text-align: center;">{_text(snap.used_count)} / {_text(snap.max_uses)}</td>',
        f'<td style="{_CELL}">{_text(display_reason(asset))}</td>',
        f'<td style="{_CELL}">{_text(online)}</td>',
        f'<td style="{_CELL}">{_text(snap.storage_location)}</td>',
        "</tr>",
    ]


def render_digest(assets: Sequence[OverdueAsset], check_date: str) -> str:
    """
    HTML body of the overdue digest.

    Args:
        assets: Overdue stencils, already in digest order.
        check_date: Date shown in the summary banner (yyyy/MM/dd).
    """
    counts = count_by_tier(assets)
    lines = [
        "<!DOCTYPE html>",
        '<html><head><meta charset="UTF-8"></head>',
        "<body style=\"font-family: 'Microsoft JhengHei', 'Segoe UI', sans-serif; padding: 20px;\">",
        '<div style="background: linear-gradient(135deg, #3b82f6, #8b5cf6); color: white; padding: 20px; border-radius: 10px;">',
        f'<h2 style="margin: 0;">🚨 {escape(SUBJECT)}</h2>',
        '<p style="margin: 5px 0 0 0; opacity: 0.9;">Stencil Overdue Alert Notification</p>',
        "</div>",
        '<div style="background: white; padding: 20px; margin-top: 15px;">',
        "<p><strong>Hi~All,</strong></p>",
        "<p>系統偵測到以下鋼板已達逾期條件，請儘速安排處理以避免影響生產線運作。</p>",
        '<div style="background: #fef3c7; padding: 15px; border-radius: 8px; margin: 20px 0; border-left: 4px solid #f59e0b;">',
        '<p style="margin: 0;"><strong>📊 統計資訊</strong></p>',
        f'<p style="margin: 5px 0 0 0;">• 檢查日期：<strong>{escape(check_date)}</strong></p>',
        (
            f'<p style="margin: 5px 0 0 0;">• 逾期數量：<strong>{len(assets)} 筆</strong>'
            f"（警告: {counts[SeverityTier.WARNING]}, "
            f"嚴重: {counts[SeverityTier.CRITICAL]}, "
            f"緊急: {counts[SeverityTier.URGENT]}）</p>"
        ),
        "</div>",
        '<h4 style="margin: 25px 0 15px 0;">📋 逾期鋼板清單</h4>',
        '<table style="width: 100%; border-collapse: collapse; font-size: 13px;">',
        '<thead><tr style="background: #eff6ff;">',
    ]
    for title, align in _COLUMNS:
        lines.append(f'<th style="{_HEAD_CELL.format(align=align)}">{title}</th>')
    lines.append("</tr></thead>")
    lines.append("<tbody>")
    for asset in assets:
        lines.extend(_render_row(asset))
    lines.extend([
        "</tbody></table>",
        '<div style="background: #dbeafe; padding: 15px; border-radius: 8px; margin: 25px 0; border-left: 4px solid #3b82f6;">',
        '<p style="margin: 0;"><strong>💡 處理建議</strong></p>',
        '<p style="margin: 5px 0 0 0;">• <strong>緊急/嚴重</strong>：請立即安排鋼板更換作業</p>',
        '<p style="margin: 5px 0 0 0;">• <strong>警告</strong>：請提前準備新鋼板，避免影響生產排程</p>',
        "</div>",
        '<hr style="border: none; border-top: 1px solid #e5e7eb; margin: 25px 0;">',
        '<p style="font-size: 12px; color: #6b7280;">此為系統自動發送的通知郵件，如有疑問請聯繫 IT 部門。<br/>',
        "查詢路徑：AMES系統 → PCB管理 → PCB016 鋼板量測記錄</p>",
        "</div></body></html>",
    ])
    return "\n".join(lines) + "\n"


def split_addresses(value: str) -> tuple[str, ...]:
    """Split a ',' or ';' separated address list."""
    return tuple(part.strip() for part in re.split(r"[,;]", value) if part.strip())


class NotificationGate:
    """
    Digest sender with post-send alert flag updates.

    Contract:
        ``notify`` returns True only when the digest was delivered.  Flag
        updates happen inside ``notify`` after delivery; their individual
        failures do not change the return value.
    """

    def __init__(
        self,
        mailer: Mailer,
        source_session_factory: sessionmaker[Session],
        test_mode: bool = False,
        test_recipient: str | None = None,
        clock: Clock | None = None,
        logger: logging.Logger | None = None,
    ):
        if test_mode and not test_recipient:
            raise ValueError("test_mode requires a test_recipient")
        self._mailer = mailer
        self._source = source_session_factory
        self._test_mode = test_mode
        self._test_recipient = test_recipient
        self._clock = clock or SystemClock()
        self._logger = logger or _default_logger
        self.last_flag_result: FlagUpdateResult | None = None

    def resolve_delivery(
        self, recipients: Sequence[NotificationRecipient],
    ) -> tuple[tuple[str, ...], str]:
        """Addresses and subject for this send, honouring test mode."""
        if self._test_mode:
            return split_addresses(self._test_recipient or ""), TEST_SUBJECT_PREFIX + SUBJECT
        return tuple(r.email for r in recipients), SUBJECT

    def notify(
        self,
        assets: Sequence[OverdueAsset],
        recipients: Sequence[NotificationRecipient],
    ) -> bool:
        to_emails, subject = self.resolve_delivery(recipients)
        if self._test_mode:
            self._logger.info(
                "notification_test_mode", extra={"test_recipient": self._test_recipient},
            )

        body = render_digest(assets, f"{self._clock.now():%Y/%m/%d}")
        try:
            self._mailer.send(to_emails=to_emails, subject=subject, body_html=body)
        except TransportError:
            self._logger.error(
                "notification_send_failed",
                extra={"recipient_count": len(to_emails)},
                exc_info=True,
            )
            return False

        self._logger.info(
            "notification_sent",
            extra={"recipients": ",".join(to_emails), "asset_count": len(assets)},
        )
        self.last_flag_result = self.mark_alerted(assets)
        return True

    def mark_alerted(self, assets: Sequence[OverdueAsset]) -> FlagUpdateResult:
        """Set the alert flag on every usage-ratio warning not yet flagged."""
        pending = [a for a in assets if a.needs_alert_flag]
        if not pending:
            self._logger.debug("no_alert_flags_to_update")
            return FlagUpdateResult()

        updated = already_set = failed = 0
        try:
            with session_scope(self._source) as session:
                for asset in pending:
                    outcome = self._mark_one(session, asset)
                    if outcome is None:
                        failed += 1
                    elif outcome:
                        updated += 1
                    else:
                        already_set += 1
        except SQLAlchemyError as exc:
            raise StorageError("alert_flag_update", str(exc)) from exc

        result = FlagUpdateResult(updated=updated, already_set=already_set, failed=failed)
        self._logger.info(
            "alert_flags_updated",
            extra={"updated": updated, "already_set": already_set, "failed": failed},
        )
        return result

    def _mark_one(self, session: Session, asset: OverdueAsset) -> bool | None:
        """
        Guarded flag update for one stencil.

        Returns:
            True when the row changed, False when it was already flagged,
            None when the update failed.
        """
        snap = asset.snapshot
        with LogContext.bind(asset_no=snap.steel_plate_no):
            savepoint = session.begin_nested()
            try:
                result = session.execute(
                    update(SteelPlateInfo)
                    .where(SteelPlateInfo.steel_plate_id == snap.steel_plate_id)
                    .where(
                        or_(
                            SteelPlateInfo.usage_frequency_alert.is_(None),
                            SteelPlateInfo.usage_frequency_alert.in_(
                                ("", ALERT_FLAG_UNSET)
                            ),
                        )
                    )
                    .values(
                        usage_frequency_alert=ALERT_FLAG_SET,
                        update_date=self._clock.now(),
                        update_userid=SYSTEM_USER_ID,
                    )
                    .execution_options(synchronize_session=False)
                )
            except SQLAlchemyError:
                savepoint.rollback()
                self._logger.error(
                    "alert_flag_update_failed",
                    extra={"steel_plate_id": snap.steel_plate_id},
                    exc_info=True,
                )
                return None
            savepoint.commit()

            if result.rowcount:
                self._logger.info(
                    "alert_flag_set",
                    extra={
                        "steel_plate_id": snap.steel_plate_id,
                        "steel_plate_no": snap.steel_plate_no,
                        "eng_no": snap.eng_no,
                        "previous_value": snap.alert_flag or ALERT_FLAG_UNSET,
                        "new_value": ALERT_FLAG_SET,
                        "usage_percent": asset.usage_percent,
                        "reason": asset.reason,
                    },
                )
                return True
            return False
