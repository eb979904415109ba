"""
Tests for mes_kernel.services.sequence_service.SequenceAllocator.

Validates first-use seeding, monotonic increments, ceiling exhaustion,
persistence of consumed ids across rollbacks, and distinct values under
concurrent allocation.
"""

from concurrent.futures import ThreadPoolExecutor
from threading import Barrier

import pytest

from mes_kernel.db.engine import session_scope
from mes_kernel.exceptions import SequenceExhaustedError, StorageError
from mes_kernel.models.sequence import IdKey
from mes_kernel.services.sequence_service import SequenceAllocator


class TestAllocation:
    def test_new_counter_starts_at_seed(self, target_sessions, deterministic_clock):
        allocator = SequenceAllocator(target_sessions, clock=deterministic_clock)
        assert allocator.allocate("ACTUAL_ID") == 1000

    def test_values_increase_by_step(self, target_sessions):
        allocator = SequenceAllocator(target_sessions, seed=10, step=5)
        values = [allocator.allocate("ACTUAL_ID") for _ in range(4)]
        assert values == [10, 15, 20, 25]

    def test_counters_are_independent(self, target_sessions):
        allocator = SequenceAllocator(target_sessions)
        assert allocator.allocate("A") == 1000
        assert allocator.allocate("A") == 1001
        assert allocator.allocate("B") == 1000

    def test_current_value_tracks_allocation(self, target_sessions):
        allocator = SequenceAllocator(target_sessions)
        assert allocator.current_value("ACTUAL_ID") is None
        allocator.allocate("ACTUAL_ID")
        allocator.allocate("ACTUAL_ID")
        assert allocator.current_value("ACTUAL_ID") == 1001

    def test_counter_row_records_limits(self, target_sessions, deterministic_clock):
        allocator = SequenceAllocator(
            target_sessions, seed=1, step=2, ceiling=99, clock=deterministic_clock,
        )
        allocator.allocate("ACTUAL_ID")
        with session_scope(target_sessions) as session:
            row = session.get(IdKey, "ACTUAL_ID")
            assert row.start_num == 1
            assert row.delta_num == 2
            assert row.limit_num == 99
            assert row.create_date == deterministic_clock.now()

    def test_existing_row_settings_win_over_allocator_defaults(self, target_sessions):
        SequenceAllocator(target_sessions, seed=500, step=10).allocate("X")
        assert SequenceAllocator(target_sessions).allocate("X") == 510

    def test_empty_counter_name_rejected(self, target_sessions):
        with pytest.raises(ValueError):
            SequenceAllocator(target_sessions).allocate("")


class TestNeverReused:
    def test_id_stays_consumed_when_caller_rolls_back(self, target_sessions):
        allocator = SequenceAllocator(target_sessions)
        first = allocator.allocate("ACTUAL_ID")

        with pytest.raises(RuntimeError):
            with session_scope(target_sessions):
                allocator.allocate("ACTUAL_ID")
                raise RuntimeError("caller failed after allocation")

        assert allocator.allocate("ACTUAL_ID") == first + 2


class TestExhaustion:
    def test_raises_when_next_value_passes_ceiling(self, target_sessions):
        allocator = SequenceAllocator(target_sessions, seed=1, ceiling=3)
        assert [allocator.allocate("C") for _ in range(3)] == [1, 2, 3]

        with pytest.raises(SequenceExhaustedError) as exc_info:
            allocator.allocate("C")

        assert exc_info.value.counter_name == "C"
        assert exc_info.value.current_value == 3
        assert exc_info.value.ceiling == 3
        assert allocator.current_value("C") == 3

    def test_exhaustion_is_a_storage_error(self):
        assert issubclass(SequenceExhaustedError, StorageError)
        assert SequenceExhaustedError.code == "SEQUENCE_EXHAUSTED"

    def test_exhaustion_is_logged(self, target_sessions, captured_logs):
        allocator = SequenceAllocator(target_sessions, seed=1, ceiling=1)
        allocator.allocate("C")
        with pytest.raises(SequenceExhaustedError):
            allocator.allocate("C")
        assert any(r["message"] == "sequence_exhausted" for r in captured_logs())


class TestConstruction:
    @pytest.mark.parametrize("step", [0, -1])
    def test_non_positive_step_rejected(self, target_sessions, step):
        with pytest.raises(ValueError):
            SequenceAllocator(target_sessions, step=step)

    def test_seed_above_ceiling_rejected(self, target_sessions):
        with pytest.raises(ValueError):
            SequenceAllocator(target_sessions, seed=10, ceiling=5)


class TestConcurrency:
    def test_concurrent_allocations_are_distinct(self, target_sessions):
        allocator = SequenceAllocator(target_sessions)
        workers = 8
        per_worker = 5
        barrier = Barrier(workers)

        def _allocate_many():
            barrier.wait()
            return [allocator.allocate("ACTUAL_ID") for _ in range(per_worker)]

        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [pool.submit(_allocate_many) for _ in range(workers)]
            values = [v for f in futures for v in f.result()]

        assert len(values) == workers * per_worker
        assert len(set(values)) == len(values)
        assert sorted(values) == list(range(1000, 1000 + len(values)))
