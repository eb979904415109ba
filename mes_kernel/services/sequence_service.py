"""
SequenceAllocator -- named id counters backed by the ``id_key`` table.

Responsibility:
    Hands out unique, strictly increasing integer ids for named counters
    (``ACTUAL_ID`` for actual-time summaries).  A counter that does not exist
    yet is created on first use with its configured seed.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by the actual-time aggregation service once per work order.

Invariants enforced:
    - Atomic increment: the counter advances with a single
      ``UPDATE ... SET current_num = current_num + delta_num`` statement.
      Reading the maximum and adding one is never used.
    - Never reused: each allocation commits in its own transaction, so an id
      stays consumed even when the caller's later work rolls back.  Gaps are
      possible, repeats are not.
    - Bounded: a counter never moves past its ``limit_num``.

Failure modes:
    - IntegrityError on first-use creation race: the loser's insert is
      rolled back to its savepoint and the increment is retried.
    - SequenceExhaustedError when the next value would pass the ceiling.
    - StorageError wrapping any other database failure.
"""

from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from mes_kernel.db.engine import session_scope
from mes_kernel.domain.clock import Clock, SystemClock
from mes_kernel.exceptions import SequenceExhaustedError, StorageError
from mes_kernel.logging_config import get_logger
from mes_kernel.models.sequence import IdKey

logger = get_logger("services.sequence")

DEFAULT_SEED = 1000
DEFAULT_STEP = 1
DEFAULT_CEILING = 2147483647


class SequenceAllocator:
    """
    Allocator for named counters in the target store.

    Contract:
        ``allocate(name)`` returns a value strictly greater than any value
        previously returned for ``name`` by any process sharing the store.

    Guarantees:
        - Concurrent callers receive distinct values.
        - A brand-new counter returns ``seed`` first.

    Non-goals:
        - Gap-free numbering.
        - Taking part in the caller's transaction.

    Usage:
        allocator = SequenceAllocator(target_session_factory)
        actual_id = allocator.allocate("ACTUAL_ID")
    """

    ACTUAL_ID = "ACTUAL_ID"

    _MAX_CREATE_RETRIES = 3

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        seed: int = DEFAULT_SEED,
        step: int = DEFAULT_STEP,
        ceiling: int = DEFAULT_CEILING,
        clock: Clock | None = None,
    ):
        if step <= 0:
            raise ValueError(f"step must be positive, got {step}")
        if seed > ceiling:
            raise ValueError(f"seed {seed} is above ceiling {ceiling}")
        self._session_factory = session_factory
        self._seed = seed
        self._step = step
        self._ceiling = ceiling
        self._clock = clock or SystemClock()

    def allocate(self, counter_name: str) -> int:
        """
        Get the next value for a named counter.

        This method:
        1. Increments the counter row in place (bounded by its limit)
        2. Creates the row with the seed value if it does not exist
        3. Commits before returning

        Args:
            counter_name: Name of the counter.

        Returns:
            The allocated value.

        Raises:
            SequenceExhaustedError: The counter is at its ceiling.
            StorageError: The store could not be read or written.
        """
        if not counter_name:
            raise ValueError("counter_name must be non-empty")

        try:
            for _ in range(self._MAX_CREATE_RETRIES):
                with session_scope(self._session_factory) as session:
                    value = self._try_increment(session, counter_name)
                    if value is None:
                        value = self._try_create(session, counter_name)
                if value is not None:
                    logger.debug(
                        "sequence_allocated",
                        extra={"counter_name": counter_name, "value": value},
                    )
                    return value
        except SequenceExhaustedError:
            raise
        except SQLAlchemyError as exc:
            raise StorageError("sequence_allocate", str(exc)) from exc

        raise StorageError(
            "sequence_allocate",
            f"counter '{counter_name}' could not be created after "
            f"{self._MAX_CREATE_RETRIES} attempts",
        )

    def _try_increment(self, session: Session, counter_name: str) -> int | None:
        """Advance an existing counter; None when the row does not exist."""
        result = session.execute(
            update(IdKey)
            .where(IdKey.id_name == counter_name)
            .where(IdKey.current_num + IdKey.delta_num <= IdKey.limit_num)
            .values(
                current_num=IdKey.current_num + IdKey.delta_num,
                update_date=self._clock.now(),
            )
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 1:
            return session.execute(
                select(IdKey.current_num).where(IdKey.id_name == counter_name)
            ).scalar_one()

        existing = session.execute(
            select(IdKey).where(IdKey.id_name == counter_name)
        ).scalar_one_or_none()
        if existing is not None:
            logger.error(
                "sequence_exhausted",
                extra={
                    "counter_name": counter_name,
                    "current_value": existing.current_num,
                    "ceiling": existing.limit_num,
                },
            )
            raise SequenceExhaustedError(
                counter_name, existing.current_num, existing.limit_num,
            )
        return None

    def _try_create(self, session: Session, counter_name: str) -> int | None:
        """Insert the seed row; None when another process created it first."""
        now = self._clock.now()
        savepoint = session.begin_nested()
        try:
            session.add(
                IdKey(
                    id_name=counter_name,
                    current_num=self._seed,
                    start_num=self._seed,
                    limit_num=self._ceiling,
                    delta_num=self._step,
                    create_date=now,
                    update_date=now,
                )
            )
            session.flush()
        except IntegrityError:
            logger.debug(
                "sequence_counter_race_retry",
                extra={"counter_name": counter_name},
            )
            savepoint.rollback()
            return None
        savepoint.commit()
        logger.info(
            "sequence_counter_created",
            extra={"counter_name": counter_name, "seed": self._seed},
        )
        return self._seed

    def current_value(self, counter_name: str) -> int | None:
        """
        Get the current value of a counter without incrementing.

        Returns:
            Current value, or None if the counter doesn't exist.
        """
        with session_scope(self._session_factory) as session:
            return session.execute(
                select(IdKey.current_num).where(IdKey.id_name == counter_name)
            ).scalar_one_or_none()
