"""
Tests for mes_kernel.logging_config -- JSON formatter, LogContext, and the
per-job daily log file.
"""

import json
import logging
from datetime import date
from decimal import Decimal
from pathlib import Path

from mes_kernel.exceptions import StorageError
from mes_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    get_logger,
    job_log_scope,
)


def _record(msg="event_name", exc_info=None, **extra):
    record = logging.LogRecord(
        "mes_kernel.test", logging.INFO, __file__, 1, msg, (), exc_info,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestStructuredFormatter:
    def test_envelope_and_extras(self):
        line = StructuredFormatter().format(
            _record(wo_no="WO-1", production_time=Decimal("50.00"), calc_date=date(2024, 5, 1))
        )
        payload = json.loads(line)
        assert payload["level"] == "INFO"
        assert payload["logger"] == "mes_kernel.test"
        assert payload["message"] == "event_name"
        assert payload["wo_no"] == "WO-1"
        assert payload["production_time"] == "50.00"
        assert payload["calc_date"] == "2024-05-01"

    def test_non_ascii_is_kept_readable(self):
        line = StructuredFormatter().format(_record(reason="已達使用上限"))
        assert "已達使用上限" in line

    def test_context_fields_are_included(self):
        with LogContext.bind(job_name="ActualTimeCalc", work_order="WO-7"):
            payload = json.loads(StructuredFormatter().format(_record()))
        assert payload["job_name"] == "ActualTimeCalc"
        assert payload["work_order"] == "WO-7"

    def test_exception_fields(self):
        try:
            raise StorageError("timesheet_read", "connection reset")
        except StorageError:
            import sys

            payload = json.loads(StructuredFormatter().format(_record(exc_info=sys.exc_info())))
        assert payload["exc_type"] == "StorageError"
        assert payload["exc_code"] == "STORAGE_ERROR"
        assert payload["exc_operation"] == "timesheet_read"
        assert "Traceback" in payload["traceback"]


class TestLogContext:
    def test_bind_restores_previous_values(self):
        LogContext.set(job_name="outer")
        with LogContext.bind(job_name="inner", asset_no="SP-001"):
            assert LogContext.get_all() == {"job_name": "inner", "asset_no": "SP-001"}
        assert LogContext.get_all() == {"job_name": "outer"}

    def test_clear(self):
        LogContext.set(run_id="abc", calc_date="2024-05-01")
        LogContext.clear()
        assert LogContext.get_all() == {}


class TestJobLogScope:
    def test_writes_daily_file_with_job_context(self, tmp_path: Path):
        log_dir = tmp_path / "logs"
        with job_log_scope(log_dir, "SMT_Stencil_Overdue", "run-1", today=date(2024, 5, 4)) as log:
            log.info("job_started")
            get_logger("services.other").warning("from_another_component")

        path = log_dir / "2024-05-04.log"
        lines = [json.loads(l) for l in path.read_text(encoding="utf-8").splitlines()]
        messages = [l["message"] for l in lines]
        assert "job_started" in messages
        assert "from_another_component" in messages
        assert all(l["job_name"] == "SMT_Stencil_Overdue" for l in lines)
        assert all(l["run_id"] == "run-1" for l in lines)

    def test_handler_is_removed_on_exit(self, tmp_path: Path):
        root = logging.getLogger("mes_kernel")
        before = list(root.handlers)
        with job_log_scope(tmp_path, "ActualTimeCalc", "run-2", today=date(2024, 5, 4)):
            assert len(root.handlers) == len(before) + 1
        assert root.handlers == before

        get_logger("after").info("not_in_file")
        text = (tmp_path / "2024-05-04.log").read_text(encoding="utf-8")
        assert "not_in_file" not in text

    def test_appends_across_runs(self, tmp_path: Path):
        for run_id in ("a", "b"):
            with job_log_scope(tmp_path, "ActualTimeCalc", run_id, today=date(2024, 5, 4)) as log:
                log.info("job_started")
        lines = (tmp_path / "2024-05-04.log").read_text(encoding="utf-8").splitlines()
        assert [json.loads(l)["run_id"] for l in lines] == ["a", "b"]
