"""
Tests for mes_batch.services.dispatcher.JobDispatcher -- name resolution,
exit code mapping and the per-run log file.
"""

import json
from datetime import date

import pytest

from mes_batch.jobs import ExitCode, JobRegistry
from mes_batch.services import JobDispatcher
from mes_kernel.exceptions import ConfigurationError, StorageError
from mes_kernel.logging_config import get_logger


class ScriptedJob:
    """Job whose run() returns or raises what the test asks for."""

    def __init__(self, name="Nightly", outcome=0):
        self._name = name
        self._outcome = outcome
        self.runs = 0

    @property
    def job_name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return "scripted"

    def run(self) -> int:
        self.runs += 1
        get_logger(f"job.{self._name}").info("scripted_job_ran")
        if isinstance(self._outcome, BaseException):
            raise self._outcome
        return self._outcome


@pytest.fixture
def make_dispatcher(log_dir, deterministic_clock):
    def _make(*jobs):
        registry = JobRegistry()
        for job in jobs:
            registry.register(job)
        return JobDispatcher(
            registry, log_dir, clock=deterministic_clock, run_id_factory=lambda: "run-1",
        )

    return _make


def _log_lines(log_dir, day=date(2024, 5, 4)):
    path = log_dir / f"{day.isoformat()}.log"
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]


class TestNameResolution:
    @pytest.mark.parametrize("name", [None, "", "   "])
    def test_missing_name_is_invalid_argument(self, make_dispatcher, name, captured_logs):
        dispatcher = make_dispatcher(ScriptedJob())

        assert dispatcher.dispatch(name) == ExitCode.INVALID_ARGUMENT

        record = next(r for r in captured_logs() if r["message"] == "job_name_missing")
        assert record["available_jobs"] == ["Nightly"]

    def test_unknown_name_is_invalid_argument(self, make_dispatcher, captured_logs, log_dir):
        job = ScriptedJob()
        dispatcher = make_dispatcher(job)

        assert dispatcher.dispatch("Weekly") == 1

        assert job.runs == 0
        assert any(r["message"] == "job_not_registered" for r in captured_logs())
        assert not log_dir.exists()

    def test_name_is_case_insensitive(self, make_dispatcher):
        job = ScriptedJob()
        assert make_dispatcher(job).dispatch("NIGHTLY") == 0
        assert job.runs == 1


class TestExitCodes:
    @pytest.mark.parametrize(
        "outcome, expected",
        [
            (0, ExitCode.SUCCESS),
            (ExitCode.EXECUTION_ERROR, ExitCode.EXECUTION_ERROR),
            (ConfigurationError("mail.smtp_host", "SMTP host is not set"),
             ExitCode.CONFIGURATION_ERROR),
            (StorageError("timesheet_read", "connection reset"), ExitCode.EXECUTION_ERROR),
            (RuntimeError("boom"), ExitCode.EXECUTION_ERROR),
        ],
    )
    def test_outcome_mapping(self, make_dispatcher, outcome, expected):
        result = make_dispatcher(ScriptedJob(outcome=outcome)).dispatch("Nightly")
        assert result == expected
        assert type(result) is int


class TestRunLog:
    def test_run_is_written_to_daily_file(self, make_dispatcher, log_dir):
        make_dispatcher(ScriptedJob()).dispatch("Nightly")

        lines = _log_lines(log_dir)
        messages = [line["message"] for line in lines]
        assert messages == ["job_started", "scripted_job_ran", "job_finished"]
        assert all(line["job_name"] == "Nightly" for line in lines)
        assert all(line["run_id"] == "run-1" for line in lines)
        assert lines[-1]["exit_code"] == 0

    def test_failure_is_logged_with_traceback(self, make_dispatcher, log_dir):
        make_dispatcher(ScriptedJob(outcome=RuntimeError("boom"))).dispatch("Nightly")

        failed = next(line for line in _log_lines(log_dir) if line["message"] == "job_failed")
        assert failed["exc_type"] == "RuntimeError"
        assert "boom" in failed["traceback"]

    def test_configuration_error_names_setting(self, make_dispatcher, log_dir):
        job = ScriptedJob(outcome=ConfigurationError("stores.source_url", "not set"))
        make_dispatcher(job).dispatch("Nightly")

        record = next(
            line for line in _log_lines(log_dir) if line["message"] == "job_configuration_invalid"
        )
        assert record["setting"] == "stores.source_url"

    def test_runs_on_the_same_day_append(self, make_dispatcher, log_dir):
        dispatcher = make_dispatcher(ScriptedJob())
        dispatcher.dispatch("Nightly")
        dispatcher.dispatch("Nightly")

        finished = [line for line in _log_lines(log_dir) if line["message"] == "job_finished"]
        assert len(finished) == 2

    def test_unusable_log_dir_is_configuration_error(self, tmp_path, deterministic_clock, captured_logs):
        blocker = tmp_path / "logs_file"
        blocker.write_text("not a directory")
        registry = JobRegistry()
        job = ScriptedJob()
        registry.register(job)
        dispatcher = JobDispatcher(registry, blocker / "logs", clock=deterministic_clock)

        assert dispatcher.dispatch("Nightly") == ExitCode.CONFIGURATION_ERROR

        assert job.runs == 0
        record = next(r for r in captured_logs() if r["message"] == "job_log_unavailable")
        assert record["job_name"] == "Nightly"
