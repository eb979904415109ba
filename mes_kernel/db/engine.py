"""
Module: mes_kernel.db.engine
Responsibility: SQLAlchemy engine construction, session factory creation, and
    the transactional scope used by every service.
Architecture position: Kernel > DB.  May import from db/base.py.  MUST NOT
    import from models/, services/, or outer layers.

Invariants enforced:
    - One engine per store URL; the jobs hold two (source and target) and
      never share a session between them.
    - SAVEPOINT support on SQLite: pysqlite's own transaction handling is
      disabled and BEGIN is emitted explicitly, so ``begin_nested()`` behaves
      the same way it does on server databases.
    - Server databases get pre-ping and pool recycling to survive the long
      idle gaps between scheduled runs.

Failure modes:
    - sqlalchemy.exc.ArgumentError for an unparsable URL.
    - OperationalError at first connect when the store is unreachable.
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import MetaData, create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

from mes_kernel.logging_config import get_logger

logger = get_logger("db.engine")


def create_store_engine(
    database_url: str,
    echo: bool = False,
    pool_pre_ping: bool = True,
    pool_recycle: int = 1800,
    sqlite_timeout: int = 30,
) -> Engine:
    """
    Build an engine for one store.

    Args:
        database_url: SQLAlchemy URL (postgresql+psycopg2://..., sqlite:///...).
        echo: If True, log all SQL statements.
        pool_pre_ping: Test pooled connections before use (server databases).
        pool_recycle: Seconds after which a pooled connection is recycled.
        sqlite_timeout: Seconds SQLite waits on a locked database file.

    Returns:
        SQLAlchemy Engine instance.
    """
    url = make_url(database_url)

    if url.get_backend_name() == "sqlite":
        engine = create_engine(
            url,
            echo=echo,
            connect_args={"timeout": sqlite_timeout, "check_same_thread": False},
        )
        _enable_sqlite_savepoints(engine)
    else:
        engine = create_engine(
            url,
            echo=echo,
            pool_pre_ping=pool_pre_ping,
            pool_recycle=pool_recycle,
        )

    logger.info(
        "engine_initialized",
        extra={
            "dialect": url.get_backend_name(),
            "database": url.database,
            "echo": echo,
        },
    )
    return engine


def _enable_sqlite_savepoints(engine: Engine) -> None:
    """Let SQLAlchemy own BEGIN so SAVEPOINT works under pysqlite."""

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        # IMMEDIATE takes the write lock up front; concurrent writers queue
        # on the busy timeout instead of failing on lock upgrade.
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Session factory bound to one store engine."""
    return sessionmaker(bind=engine, expire_on_commit=False)


@contextmanager
def session_scope(
    session_factory: sessionmaker[Session],
) -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.

    Postconditions: On normal exit, session is committed and closed.
        On exception, session is rolled back and closed.  The exception
        is re-raised to the caller.

    Usage:
        with session_scope(factory) as session:
            session.add(entity)
            # Commits on successful exit, rolls back on exception
    """
    session = session_factory()
    logger.debug("transaction_started")
    try:
        yield session
        session.commit()
        logger.debug("transaction_committed")
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables(engine: Engine, metadata: MetaData) -> None:
    """
    Create every table in ``metadata`` that does not exist yet.

    Preconditions: The model modules that populate ``metadata`` have been
        imported (importing ``mes_kernel.models`` does this for both stores).
    """
    metadata.create_all(engine)
    logger.info(
        "tables_created",
        extra={"table_count": len(metadata.tables)},
    )
