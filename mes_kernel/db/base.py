"""
Module: mes_kernel.db.base
Responsibility: Declarative bases for the two stores the jobs touch.  The
    source store (shop-floor transactions, stencils, users, mail groups) and
    the target store (actual-time summaries, details, id counters) keep
    separate metadata so each store's tables are created independently.
Architecture position: Kernel > DB.  Lowest-level import target within the
    kernel.  ALL model files import from here.  MUST NOT import from models/,
    services/, or outer layers.

Invariants enforced:
    - Decimal maps to Numeric(18, 4); money-like quantities never use float.
      Columns with a fixed scale (production_time) override explicitly.
    - datetime maps to a naive DateTime: the shop floor records local wall
      clock time and every window boundary is computed in that frame.
    - int maps to BigInteger for counter and id columns.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar

from sqlalchemy import BigInteger, DateTime, Numeric
from sqlalchemy.orm import DeclarativeBase

_TYPE_ANNOTATION_MAP: dict = {
    Decimal: Numeric(18, 4),
    datetime: DateTime(timezone=False),
    int: BigInteger,
}


class SourceBase(DeclarativeBase):
    """
    Declarative base for tables read (and flag-updated) in the source store.

    Contract:
        Models mirror existing MES tables.  Their primary keys are assigned
        by the MES itself; this codebase never inserts into them outside
        of tests.
    """

    type_annotation_map: ClassVar[dict] = _TYPE_ANNOTATION_MAP


class TargetBase(DeclarativeBase):
    """
    Declarative base for tables written in the target (reporting) store.

    Contract:
        Every row written here carries an id allocated by the
        SequenceAllocator or a natural composite key, never a
        database-generated surrogate.
    """

    type_annotation_map: ClassVar[dict] = _TYPE_ANNOTATION_MAP
