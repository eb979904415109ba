"""
StencilOverdueService -- finds SMT stencils that need attention.

Responsibility:
    Load active stencils joined to their latest deployment event and their
    creator, then hand them to ``mes_engines.overdue`` for tiering and
    digest ordering.

Architecture position:
    Services -- imperative shell over the source store.  Classification
    itself is pure and lives in the engine.

Candidate filter (applied in the query):
    status '1', and the latest deployment (max on-date) either has no
    off-date or does not exist at all.

Failure modes:
    - StorageError wrapping any SQLAlchemy failure; the job turns it into
      exit code 3.
"""

from __future__ import annotations

import logging

from sqlalchemy import and_, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, aliased, sessionmaker

from mes_engines.overdue import (
    OverdueAsset,
    OverdueThresholds,
    StencilSnapshot,
    classify_overdue,
    count_by_tier,
)
from mes_kernel.db.engine import session_scope
from mes_kernel.domain.clock import Clock, SystemClock
from mes_kernel.exceptions import StorageError
from mes_kernel.logging_config import get_logger
from mes_kernel.models.stencil import (
    ACTIVE_STENCIL_STATUS,
    SteelPlateInfo,
    SteelPlateMeasure,
)
from mes_kernel.models.user import UserInfo

_default_logger = get_logger("services.stencil_overdue")


class StencilOverdueService:
    """Reads stencil snapshots and classifies the overdue ones."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        thresholds: OverdueThresholds | None = None,
        clock: Clock | None = None,
        logger: logging.Logger | None = None,
    ):
        self._session_factory = session_factory
        self._thresholds = thresholds or OverdueThresholds()
        self._clock = clock or SystemClock()
        self._logger = logger or _default_logger

    @property
    def thresholds(self) -> OverdueThresholds:
        return self._thresholds

    def fetch_snapshots(self) -> tuple[StencilSnapshot, ...]:
        """Active stencils still deployed or never deployed."""
        latest = (
            select(
                SteelPlateMeasure.steel_plate_id.label("steel_plate_id"),
                func.max(SteelPlateMeasure.on_date).label("max_on_date"),
            )
            .group_by(SteelPlateMeasure.steel_plate_id)
            .subquery("latest_measure")
        )
        measure = aliased(SteelPlateMeasure, name="measure")
        creator = aliased(UserInfo, name="creator")

        stmt = (
            select(
                SteelPlateInfo.steel_plate_id,
                SteelPlateInfo.steel_plate_no,
                SteelPlateInfo.items,
                SteelPlateInfo.storage_location,
                SteelPlateInfo.max_uses,
                SteelPlateInfo.used_count,
                SteelPlateInfo.usage_frequency_alert,
                measure.wip_no,
                measure.on_date,
                measure.off_date,
                creator.user_name,
            )
            .select_from(SteelPlateInfo)
            .outerjoin(latest, latest.c.steel_plate_id == SteelPlateInfo.steel_plate_id)
            .outerjoin(
                measure,
                and_(
                    measure.steel_plate_id == latest.c.steel_plate_id,
                    measure.on_date == latest.c.max_on_date,
                ),
            )
            .outerjoin(creator, creator.user_id == SteelPlateInfo.create_userid)
            .where(SteelPlateInfo.status == ACTIVE_STENCIL_STATUS)
            .where(or_(measure.off_date.is_(None), measure.on_date.is_(None)))
            .order_by(SteelPlateInfo.steel_plate_id, measure.measure_id.desc())
        )

        try:
            with session_scope(self._session_factory) as session:
                rows = session.execute(stmt).all()
        except SQLAlchemyError as exc:
            self._logger.error("stencil_query_failed", exc_info=True)
            raise StorageError("stencil_overdue_query", str(exc)) from exc

        snapshots: dict[int, StencilSnapshot] = {}
        for row in rows:
            # Two events sharing the latest on-date: keep the newest event.
            if row.steel_plate_id in snapshots:
                continue
            snapshots[row.steel_plate_id] = StencilSnapshot(
                steel_plate_id=row.steel_plate_id,
                steel_plate_no=row.steel_plate_no,
                eng_no=row.items,
                storage_location=row.storage_location,
                max_uses=row.max_uses,
                used_count=row.used_count,
                alert_flag=row.usage_frequency_alert,
                current_wip_no=row.wip_no,
                online_at=row.on_date,
                offline_at=row.off_date,
                created_by=row.user_name,
            )
        return tuple(snapshots.values())

    def classify(self) -> tuple[OverdueAsset, ...]:
        """Overdue stencils in digest order."""
        self._logger.info(
            "stencil_overdue_check_started",
            extra={
                "days_online_threshold": self._thresholds.days_online,
                "usage_ratio_threshold": self._thresholds.usage_ratio,
            },
        )
        snapshots = self.fetch_snapshots()
        assets = classify_overdue(
            snapshots=snapshots,
            as_of=self._clock.now(),
            thresholds=self._thresholds,
        )

        counts = count_by_tier(assets)
        self._logger.info(
            "stencil_overdue_classified",
            extra={
                "candidate_count": len(snapshots),
                "overdue_count": len(assets),
                **{f"tier_{tier.name.lower()}": n for tier, n in counts.items()},
            },
        )
        return assets
