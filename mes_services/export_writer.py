"""
ExportWriter -- SAP work-time upload file for one calculation date.

Responsibility:
    Sum the date's actual-time summaries per (work order, route) and write
    them as a comma-separated flat file for the SAP loader to pick up.

Architecture position:
    Services -- imperative shell (target store read + filesystem write).

File format:
    Name ``SFIS_WorkTime_<yyyyMMddHHmmss>.txt`` (timestamp from the injected
    clock, plus ``_<n>`` when that name is already taken), one line per
    group ordered by work order then route:

        <yyyymmdd>,235959,<wip_no>,<route>,<production_time>,<count>

    ``production_time`` always has two fraction digits.  Encoding and line
    terminator are configurable; the defaults (UTF-8 with BOM, CRLF) are
    what the SAP loader expects.

Failure modes:
    - Query and write failures are logged and reported as ``None``.  An
      export problem never fails the calculation that preceded it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path
from typing import TextIO

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from mes_kernel.db.engine import session_scope
from mes_kernel.domain.clock import Clock, SystemClock
from mes_kernel.logging_config import get_logger
from mes_kernel.models.actual_time import ActualTime

_default_logger = get_logger("services.export_writer")

EXPORT_TIME_OF_DAY = "235959"
_TWO_PLACES = Decimal("0.01")


@dataclass(frozen=True)
class ExportLine:
    """One (work order, route) group of a date."""

    calc_date: date
    wip_no: str
    route: str
    production_time: Decimal
    production_count: int

    def render(self) -> str:
        time_text = Decimal(self.production_time).quantize(
            _TWO_PLACES, rounding=ROUND_HALF_UP,
        )
        return (
            f"{self.calc_date:%Y%m%d},{EXPORT_TIME_OF_DAY},{self.wip_no},"
            f"{self.route},{time_text},{self.production_count}"
        )


class ExportWriter:
    """Writes the SAP upload file from target-store summaries."""

    FILE_PREFIX = "SFIS_WorkTime_"
    MAX_NAME_ATTEMPTS = 100

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        output_dir: Path,
        clock: Clock | None = None,
        encoding: str = "utf-8-sig",
        newline: str = "\r\n",
        logger: logging.Logger | None = None,
    ):
        self._session_factory = session_factory
        self._output_dir = Path(output_dir)
        self._clock = clock or SystemClock()
        self._encoding = encoding
        self._newline = newline
        self._logger = logger or _default_logger

    def collect_lines(self, calc_date: date) -> tuple[ExportLine, ...]:
        """Group the date's summaries by (work order, route)."""
        stmt = (
            select(
                ActualTime.wip_no,
                ActualTime.route,
                func.sum(ActualTime.production_time).label("production_time"),
                func.sum(ActualTime.production_cnt_sap).label("production_cnt"),
            )
            .where(ActualTime.actual_date == calc_date)
            .group_by(ActualTime.wip_no, ActualTime.route)
            .order_by(ActualTime.wip_no, ActualTime.route)
        )
        with session_scope(self._session_factory) as session:
            rows = session.execute(stmt).all()

        return tuple(
            ExportLine(
                calc_date=calc_date,
                wip_no=row.wip_no,
                route=row.route,
                production_time=Decimal(str(row.production_time or 0)),
                production_count=int(row.production_cnt or 0),
            )
            for row in rows
        )

    def file_path(self, attempt: int = 0) -> Path:
        stem = f"{self.FILE_PREFIX}{self._clock.now():%Y%m%d%H%M%S}"
        if attempt:
            stem = f"{stem}_{attempt}"
        return self._output_dir / f"{stem}.txt"

    def _open_new_file(self) -> tuple[Path, TextIO]:
        """Create the next unused file name; an earlier run's file is never reused."""
        for attempt in range(self.MAX_NAME_ATTEMPTS):
            path = self.file_path(attempt)
            try:
                return path, open(path, "x", encoding=self._encoding, newline="")
            except FileExistsError:
                continue
        raise FileExistsError(f"No free export file name for {self.file_path()}")

    def export(self, calc_date: date) -> Path | None:
        """
        Write the upload file for ``calc_date``.

        A second export within the same second gets a ``_1``, ``_2``, ...
        suffix instead of overwriting the first.

        Returns:
            Path of the written file, or None when the export failed.
        """
        path = self.file_path()
        try:
            lines = self.collect_lines(calc_date)
            self._output_dir.mkdir(parents=True, exist_ok=True)
            path, f = self._open_new_file()
            with f:
                for line in lines:
                    text = line.render()
                    f.write(text + self._newline)
                    self._logger.debug("export_line_written", extra={"line": text})
        except (SQLAlchemyError, OSError, UnicodeError):
            self._logger.error(
                "export_failed",
                extra={"calc_date": calc_date, "path": path},
                exc_info=True,
            )
            return None

        self._logger.info(
            "export_written",
            extra={"calc_date": calc_date, "path": path, "line_count": len(lines)},
        )
        return path
