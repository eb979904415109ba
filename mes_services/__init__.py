"""
Services -- imperative shell around the pure engines.

Each service takes its session factories, clock and (optionally) logger by
constructor injection and owns its own transaction boundaries through
``session_scope``.
"""

from mes_services._run_types import (
    AggregationRunResult,
    AggregationStatus,
    FlagUpdateResult,
    NotificationRecipient,
    WorkOrderOutcome,
    WorkOrderStatus,
)
from mes_services.actual_time_service import ActualTimeService
from mes_services.export_writer import ExportLine, ExportWriter
from mes_services.mailer import Mailer, SmtpMailer
from mes_services.notification_gate import NotificationGate, render_digest
from mes_services.recipient_directory import RecipientDirectory
from mes_services.stencil_overdue_service import StencilOverdueService
from mes_services.timesheet_reader import TimesheetReader

__all__ = [
    "ActualTimeService",
    "AggregationRunResult",
    "AggregationStatus",
    "ExportLine",
    "ExportWriter",
    "FlagUpdateResult",
    "Mailer",
    "NotificationGate",
    "NotificationRecipient",
    "RecipientDirectory",
    "SmtpMailer",
    "StencilOverdueService",
    "TimesheetReader",
    "WorkOrderOutcome",
    "WorkOrderStatus",
    "render_digest",
]
