"""
Tests for mes_batch.jobs.base -- ScheduleJob protocol, ExitCode and
JobRegistry registration/lookup/listing.
"""

import pytest

from mes_batch.jobs import ActualTimeCalcJob, ExitCode, JobRegistry, ScheduleJob, StencilOverdueJob
from mes_kernel.exceptions import JobNotRegisteredError


class FakeJob:
    """Minimal ScheduleJob implementation for testing."""

    def __init__(self, name="Nightly", description="Nightly job", exit_code=0):
        self._name = name
        self._description = description
        self.exit_code = exit_code
        self.runs = 0

    @property
    def job_name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return self._description

    def run(self) -> int:
        self.runs += 1
        return self.exit_code


class NotAJob:
    job_name = "Broken"


class TestScheduleJobProtocol:
    def test_fake_job_satisfies_protocol(self):
        assert isinstance(FakeJob(), ScheduleJob)

    def test_object_without_run_does_not(self):
        assert not isinstance(NotAJob(), ScheduleJob)

    def test_real_jobs_satisfy_protocol(self, make_orchestrator):
        orchestrator = make_orchestrator()
        assert isinstance(ActualTimeCalcJob(orchestrator), ScheduleJob)
        assert isinstance(StencilOverdueJob(orchestrator), ScheduleJob)


class TestExitCode:
    def test_values(self):
        assert [int(c) for c in ExitCode] == [0, 1, 2, 3]


class TestJobRegistry:
    def test_register_and_get(self):
        registry = JobRegistry()
        job = FakeJob()
        registry.register(job)
        assert registry.get("Nightly") is job

    def test_lookup_ignores_case_and_whitespace(self):
        registry = JobRegistry()
        job = FakeJob("ActualTimeCalc")
        registry.register(job)
        assert registry.get("actualtimecalc") is job
        assert registry.get("  ACTUALTIMECALC ") is job
        assert "ActualTimeCALC" in registry

    def test_duplicate_rejected_regardless_of_case(self):
        registry = JobRegistry()
        registry.register(FakeJob("Nightly"))
        with pytest.raises(ValueError, match="already registered"):
            registry.register(FakeJob("NIGHTLY"))

    def test_unknown_name_lists_available(self):
        registry = JobRegistry()
        registry.register(FakeJob("b_job"))
        registry.register(FakeJob("A_job"))

        with pytest.raises(JobNotRegisteredError) as exc_info:
            registry.get("missing")

        assert exc_info.value.job_name == "missing"
        assert exc_info.value.available == ("A_job", "b_job")
        assert exc_info.value.code == "JOB_NOT_REGISTERED"

    def test_listing_and_describe(self):
        registry = JobRegistry()
        registry.register(FakeJob("zeta", "last"))
        registry.register(FakeJob("Alpha", "first"))

        assert registry.list_jobs() == ("Alpha", "zeta")
        assert registry.describe() == (("Alpha", "first"), ("zeta", "last"))
        assert len(registry) == 2

    def test_empty_registry(self):
        registry = JobRegistry()
        assert len(registry) == 0
        assert registry.list_jobs() == ()
        assert "anything" not in registry


def test_default_registry_holds_both_jobs(make_orchestrator):
    registry = make_orchestrator().job_registry
    assert registry.list_jobs() == ("ActualTimeCalc", "SMT_Stencil_Overdue")
    assert isinstance(registry.get("smt_stencil_overdue"), StencilOverdueJob)
