"""
StencilOverdueJob -- overdue SMT stencil digest.

Contract:
    classify -> resolve recipients -> send digest -> flag warned stencils.

Exit codes:
    0  nothing overdue, no recipients configured, or digest sent
    3  the digest could not be delivered
    StorageError from the classification query propagates (dispatcher -> 3);
    ConfigurationError propagates (dispatcher -> 2).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from mes_config.validator import validate_for_stencil_overdue_job
from mes_engines.overdue import count_by_tier
from mes_kernel.logging_config import get_logger

from mes_batch.jobs.base import ExitCode

if TYPE_CHECKING:
    from mes_batch.orchestrator import ScheduleOrchestrator


class StencilOverdueJob:
    job_name = "SMT_Stencil_Overdue"
    description = "Overdue SMT stencil alert digest"

    def __init__(self, context: ScheduleOrchestrator):
        self._context = context
        self._logger = get_logger(f"job.{self.job_name}")

    def run(self) -> int:
        settings = self._context.settings
        validate_for_stencil_overdue_job(settings)

        overdue = self._context.create_overdue_service(self._logger)
        assets = overdue.classify()
        if not assets:
            self._logger.info("stencil_overdue_none_found")
            return ExitCode.SUCCESS

        group_no = settings.stencil_overdue.mail_group_no
        directory = self._context.create_recipient_directory(self._logger)
        recipients = directory.recipients_for_group(group_no)
        if not recipients:
            self._logger.warning(
                "stencil_overdue_no_recipients",
                extra={"group_no": group_no, "asset_count": len(assets)},
            )
            return ExitCode.SUCCESS

        gate = self._context.create_notification_gate(self._logger)
        if not gate.notify(assets, recipients):
            return ExitCode.EXECUTION_ERROR

        flags = gate.last_flag_result
        self._logger.info(
            "stencil_overdue_job_result",
            extra={
                "asset_count": len(assets),
                "recipient_count": len(recipients),
                "flags_updated": flags.updated if flags else 0,
                "flag_failures": flags.failed if flags else 0,
                **{
                    f"tier_{tier.name.lower()}": count
                    for tier, count in count_by_tier(assets).items()
                },
            },
        )
        return ExitCode.SUCCESS
