"""Database layer - engines, session scope, declarative bases."""

from mes_kernel.db.base import SourceBase, TargetBase
from mes_kernel.db.engine import (
    create_session_factory,
    create_store_engine,
    create_tables,
    session_scope,
)
from mes_kernel.db.idempotent import insert_if_absent

__all__ = [
    "SourceBase",
    "TargetBase",
    "create_store_engine",
    "create_session_factory",
    "create_tables",
    "session_scope",
    "insert_if_absent",
]
