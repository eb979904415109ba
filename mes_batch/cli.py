"""
mes-schedule command line entry point.

Usage:
    mes-schedule ActualTimeCalc
    mes-schedule ActualTimeCalc --calc-date 2024-03-01
    mes-schedule SMT_Stencil_Overdue --config /etc/mes/mes_schedule.yaml
    mes-schedule --list

Exit codes: 0 success or nothing to do, 1 missing/unknown job name,
2 invalid configuration, 3 execution failure.
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Sequence

from mes_config import get_settings
from mes_config.loader import parse_calc_date
from mes_config.validator import validate_logging_level
from mes_kernel.domain.clock import Clock
from mes_kernel.exceptions import ConfigurationError
from mes_kernel.logging_config import configure_logging, get_logger

from mes_batch.jobs.base import ExitCode
from mes_batch.orchestrator import MailerFactory, ScheduleOrchestrator

logger = get_logger("batch.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mes-schedule",
        description="Run one scheduled MES job and exit with its status code.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "examples:\n"
            "  mes-schedule ActualTimeCalc\n"
            "  mes-schedule ActualTimeCalc --calc-date 2024-03-01\n"
            "  mes-schedule SMT_Stencil_Overdue --config mes_schedule.yaml\n"
            "  mes-schedule --list\n"
        ),
    )
    parser.add_argument(
        "job_name", nargs="?", default=None,
        help="Name of the job to run (case-insensitive)",
    )
    parser.add_argument(
        "--config", type=Path, default=None,
        help="Settings file (default: $MES_SCHEDULE_CONFIG or ./mes_schedule.yaml)",
    )
    parser.add_argument(
        "--calc-date", type=str, default=None,
        help="Calculation date yyyy-MM-dd for ActualTimeCalc (default: today minus lookback)",
    )
    parser.add_argument(
        "--list", action="store_true",
        help="List registered jobs and exit",
    )
    return parser


def _print_jobs(orchestrator: ScheduleOrchestrator, stream=None) -> None:
    out = stream or sys.stdout
    print("Available jobs:", file=out)
    for name, description in orchestrator.job_registry.describe():
        print(f"  {name:<22} {description}", file=out)


def main(
    argv: Sequence[str] | None = None,
    *,
    clock: Clock | None = None,
    mailer_factory: MailerFactory | None = None,
) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(level=logging.INFO)

    try:
        settings = get_settings(args.config)
        if args.calc_date:
            settings = replace(
                settings,
                actual_time=replace(
                    settings.actual_time,
                    calc_date=parse_calc_date(args.calc_date, "--calc-date"),
                ),
            )
        level = validate_logging_level(settings.logging.level)
    except ConfigurationError as exc:
        logger.error(
            "configuration_invalid",
            extra={"setting": exc.setting, "reason": exc.reason},
        )
        print(f"ERROR: {exc}", file=sys.stderr)
        return ExitCode.CONFIGURATION_ERROR

    logging.getLogger("mes_kernel").setLevel(level)

    orchestrator = ScheduleOrchestrator.from_settings(
        settings, clock=clock, mailer_factory=mailer_factory,
    )
    try:
        if args.list:
            _print_jobs(orchestrator)
            return ExitCode.SUCCESS

        if not args.job_name:
            print("ERROR: no job name given", file=sys.stderr)
            _print_jobs(orchestrator, sys.stderr)

        return orchestrator.create_dispatcher().dispatch(args.job_name)
    finally:
        orchestrator.close()


if __name__ == "__main__":
    sys.exit(main())
