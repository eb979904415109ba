"""
Insert-if-absent helper.

A unique key violation on insert means the row was written by an earlier run
(or a concurrent one) and is treated as success, not failure.  The insert runs
inside a SAVEPOINT so the violation rolls back only that statement and the
surrounding transaction stays usable.
"""

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from mes_kernel.logging_config import get_logger

logger = get_logger("db.idempotent")


def insert_if_absent(session: Session, instance: object) -> bool:
    """
    Add ``instance`` and flush it under a savepoint.

    Returns:
        True if the row was inserted, False if a row with the same key
        already existed (the instance is expunged from the session).

    Raises:
        sqlalchemy.exc.SQLAlchemyError: Any failure other than a key
            violation propagates unchanged.
    """
    savepoint = session.begin_nested()
    try:
        session.add(instance)
        session.flush()
    except IntegrityError:
        savepoint.rollback()
        if instance in session:
            session.expunge(instance)
        logger.debug(
            "insert_skipped_existing_row",
            extra={"table": getattr(instance, "__tablename__", None)},
        )
        return False
    savepoint.commit()
    return True
