"""
Module: mes_engines.overdue
Responsibility:
    Classify SMT stencils into overdue severity tiers and order them for
    the alert digest.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    The stencil overdue service reads snapshots and supplies ``as_of``.

Invariants enforced:
    - Single tier: rules are evaluated in order and the first match wins,
      so a stencil lands in exactly one tier.
    - Purity: ``as_of`` is always passed in; the engine never reads a clock.
    - Unknown counts never match: a rule comparing counts is false when
      either count is missing.

Rules (first match wins):
    1. used >= max                                   -> 嚴重  已達使用上限
    2. deployed and online longer than N days        -> 緊急  在線超過{N}天
    3. used/max >= threshold and not alerted before  -> 警告  使用率達{pct}%
    otherwise 正常, which is never emitted.

Ordering:
    Tier rank ascending (緊急 = 1, 嚴重 = 2, others = 3), then usage ratio
    descending with unknown ratios last.  Urgent (long-deployed) stencils
    are listed before exhausted ones.

Failure modes:
    - ValueError from OverdueThresholds for a ratio outside (0, 1] or a
      negative day count.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Sequence

from mes_engines.tracer import traced_engine
from mes_kernel.logging_config import get_logger

logger = get_logger("engines.overdue")

_SECONDS_PER_DAY = Decimal(86400)
_ONE_PLACE = Decimal("0.1")
_UNSET_FLAGS = (None, "", "N")


class SeverityTier(str, Enum):
    """Severity tier of an overdue stencil, valued by its display label."""

    CRITICAL = "嚴重"
    URGENT = "緊急"
    WARNING = "警告"
    NORMAL = "正常"


TIER_RANK: dict[SeverityTier, int] = {
    SeverityTier.URGENT: 1,
    SeverityTier.CRITICAL: 2,
}
DEFAULT_TIER_RANK = 3


@dataclass(frozen=True)
class OverdueThresholds:
    """Usage-ratio and dwell-day limits for classification."""

    usage_ratio: Decimal = Decimal("0.95")
    days_online: int = 7

    def __post_init__(self) -> None:
        if not (Decimal("0") < Decimal(self.usage_ratio) <= Decimal("1")):
            raise ValueError(
                f"usage_ratio must be in (0, 1], got {self.usage_ratio}"
            )
        if self.days_online < 0:
            raise ValueError(
                f"days_online cannot be negative, got {self.days_online}"
            )

    @property
    def usage_percent_label(self) -> str:
        """Threshold as a percentage without trailing zeros ("95", "97.5")."""
        pct = (Decimal(self.usage_ratio) * 100).normalize()
        return format(pct, "f")


@dataclass(frozen=True)
class StencilSnapshot:
    """
    A stencil joined to its latest deployment event.

    ``online_at``/``offline_at`` come from the deployment with the most
    recent on-date; both are None when the stencil was never deployed.
    """

    steel_plate_id: int
    steel_plate_no: str
    eng_no: str | None
    storage_location: str | None
    max_uses: int | None
    used_count: int | None
    alert_flag: str | None
    current_wip_no: str | None
    online_at: datetime | None
    offline_at: datetime | None = None
    created_by: str | None = None

    @property
    def usage_ratio(self) -> Decimal | None:
        """used / max, or None when max is 0 or either count is missing."""
        if self.max_uses is None or self.used_count is None or self.max_uses == 0:
            return None
        return Decimal(self.used_count) / Decimal(self.max_uses)

    @property
    def is_deployed(self) -> bool:
        return self.online_at is not None and self.offline_at is None

    @property
    def is_candidate(self) -> bool:
        """Still on a line, or never deployed at all."""
        return self.offline_at is None or self.online_at is None

    @property
    def alert_unset(self) -> bool:
        return self.alert_flag in _UNSET_FLAGS


@dataclass(frozen=True)
class OverdueAsset:
    """
    A stencil that met an overdue rule.

    Contract:
        ``tier`` is never NORMAL.  ``dwell_days`` is whole days online
        (truncated), None when not deployed.
    """

    snapshot: StencilSnapshot
    tier: SeverityTier
    reason: str
    usage_ratio: Decimal | None
    dwell_days: int | None

    @property
    def usage_percent(self) -> Decimal | None:
        """Usage as a percentage rounded to one decimal place."""
        if self.usage_ratio is None:
            return None
        return (self.usage_ratio * 100).quantize(_ONE_PLACE, rounding=ROUND_HALF_UP)

    @property
    def needs_alert_flag(self) -> bool:
        """True for usage-ratio warnings whose alert flag has not been set."""
        return self.tier is SeverityTier.WARNING and self.snapshot.alert_unset

    @property
    def rank(self) -> int:
        return TIER_RANK.get(self.tier, DEFAULT_TIER_RANK)


RulePredicate = Callable[[StencilSnapshot, Decimal | None, OverdueThresholds], bool]


@dataclass(frozen=True)
class OverdueRule:
    """One ordered classification rule."""

    tier: SeverityTier
    predicate: RulePredicate
    reason: Callable[[OverdueThresholds], str]


def _usage_limit_reached(
    s: StencilSnapshot, dwell: Decimal | None, t: OverdueThresholds,
) -> bool:
    if s.used_count is None or s.max_uses is None:
        return False
    return s.used_count >= s.max_uses


def _online_too_long(
    s: StencilSnapshot, dwell: Decimal | None, t: OverdueThresholds,
) -> bool:
    return s.is_deployed and dwell is not None and dwell > t.days_online


def _usage_ratio_reached(
    s: StencilSnapshot, dwell: Decimal | None, t: OverdueThresholds,
) -> bool:
    ratio = s.usage_ratio
    return ratio is not None and ratio >= Decimal(t.usage_ratio) and s.alert_unset


DEFAULT_RULES: tuple[OverdueRule, ...] = (
    OverdueRule(
        SeverityTier.CRITICAL,
        _usage_limit_reached,
        lambda t: "已達使用上限",
    ),
    OverdueRule(
        SeverityTier.URGENT,
        _online_too_long,
        lambda t: f"在線超過{t.days_online}天",
    ),
    OverdueRule(
        SeverityTier.WARNING,
        _usage_ratio_reached,
        lambda t: f"使用率達{t.usage_percent_label}%",
    ),
)


def dwell_days(online_at: datetime | None, as_of: datetime) -> Decimal | None:
    """Fractional days between deployment and ``as_of``."""
    if online_at is None:
        return None
    return Decimal(str((as_of - online_at).total_seconds())) / _SECONDS_PER_DAY


def classify_stencil(
    snapshot: StencilSnapshot,
    as_of: datetime,
    thresholds: OverdueThresholds,
    rules: Sequence[OverdueRule] = DEFAULT_RULES,
) -> OverdueAsset | None:
    """Apply the first matching rule; None for non-candidates and normal stencils."""
    if not snapshot.is_candidate:
        return None

    dwell = dwell_days(snapshot.online_at, as_of)
    for rule in rules:
        if rule.predicate(snapshot, dwell, thresholds):
            return OverdueAsset(
                snapshot=snapshot,
                tier=rule.tier,
                reason=rule.reason(thresholds),
                usage_ratio=snapshot.usage_ratio,
                dwell_days=int(dwell) if dwell is not None else None,
            )
    return None


def digest_sort_key(asset: OverdueAsset) -> tuple[int, bool, Decimal]:
    ratio = asset.usage_ratio
    return (asset.rank, ratio is None, -ratio if ratio is not None else Decimal(0))


@traced_engine("overdue", "1.0", fingerprint_fields=("as_of", "thresholds"))
def classify_overdue(
    *,
    snapshots: Sequence[StencilSnapshot],
    as_of: datetime,
    thresholds: OverdueThresholds,
    rules: Sequence[OverdueRule] = DEFAULT_RULES,
) -> tuple[OverdueAsset, ...]:
    """Classify every snapshot and return the overdue ones in digest order."""
    assets = []
    for snapshot in snapshots:
        asset = classify_stencil(snapshot, as_of, thresholds, rules)
        if asset is not None:
            assets.append(asset)
    return tuple(sorted(assets, key=digest_sort_key))


def count_by_tier(assets: Sequence[OverdueAsset]) -> dict[SeverityTier, int]:
    counts = {
        SeverityTier.WARNING: 0,
        SeverityTier.CRITICAL: 0,
        SeverityTier.URGENT: 0,
    }
    for asset in assets:
        counts[asset.tier] = counts.get(asset.tier, 0) + 1
    return counts
