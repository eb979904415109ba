"""
Tests for mes_engines.overdue -- rule precedence, usage ratio, dwell days,
digest ordering, and threshold validation.
"""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from hypothesis import HealthCheck, given, settings, strategies as st

from mes_engines.overdue import (
    OverdueThresholds,
    SeverityTier,
    StencilSnapshot,
    classify_overdue,
    classify_stencil,
    count_by_tier,
    dwell_days,
)

AS_OF = datetime(2024, 5, 4, 8, 30)
THRESHOLDS = OverdueThresholds()


def snapshot(
    plate_id=1,
    used=10,
    max_uses=100,
    days_online: float | None = 1,
    offline=False,
    flag=None,
):
    online_at = AS_OF - timedelta(days=days_online) if days_online is not None else None
    return StencilSnapshot(
        steel_plate_id=plate_id,
        steel_plate_no=f"SP-{plate_id:03d}",
        eng_no="ENG-100",
        storage_location="RACK-A",
        max_uses=max_uses,
        used_count=used,
        alert_flag=flag,
        current_wip_no="WO-9",
        online_at=online_at,
        offline_at=(online_at + timedelta(hours=1)) if offline and online_at else None,
    )


def classify(snap, thresholds=THRESHOLDS):
    return classify_stencil(snap, AS_OF, thresholds)


class TestRules:
    def test_limit_reached_is_critical_even_when_online_too_long(self):
        asset = classify(snapshot(used=10, max_uses=10, days_online=20))
        assert asset.tier is SeverityTier.CRITICAL
        assert asset.reason == "已達使用上限"

    def test_online_too_long_is_urgent(self):
        asset = classify(snapshot(used=50, days_online=8))
        assert asset.tier is SeverityTier.URGENT
        assert asset.reason == "在線超過7天"
        assert asset.dwell_days == 8

    def test_dwell_uses_fractional_days(self):
        assert classify(snapshot(days_online=7)) is None
        asset = classify(snapshot(days_online=7.05))
        assert asset.tier is SeverityTier.URGENT
        assert asset.dwell_days == 7

    def test_usage_ratio_warning_when_flag_unset(self):
        asset = classify(snapshot(used=96, flag=None))
        assert asset.tier is SeverityTier.WARNING
        assert asset.reason == "使用率達95%"
        assert asset.needs_alert_flag

    @pytest.mark.parametrize("flag", [None, "", "N"])
    def test_unset_flag_values(self, flag):
        assert classify(snapshot(used=95, flag=flag)).tier is SeverityTier.WARNING

    def test_already_flagged_warning_is_suppressed(self):
        assert classify(snapshot(used=96, flag="Y")) is None

    def test_flagged_stencil_still_reported_when_critical(self):
        asset = classify(snapshot(used=100, flag="Y"))
        assert asset.tier is SeverityTier.CRITICAL
        assert not asset.needs_alert_flag

    def test_reason_follows_configured_threshold(self):
        thresholds = OverdueThresholds(usage_ratio=Decimal("0.975"), days_online=3)
        assert classify(snapshot(used=98), thresholds).reason == "使用率達97.5%"
        assert classify(snapshot(used=10, days_online=4), thresholds).reason == "在線超過3天"

    def test_normal_stencil_is_not_emitted(self):
        assert classify(snapshot(used=10, days_online=1)) is None

    def test_offline_stencil_is_not_a_candidate(self):
        assert classify(snapshot(used=100, days_online=20, offline=True)) is None

    def test_never_deployed_stencil_can_be_critical(self):
        asset = classify(snapshot(used=100, days_online=None))
        assert asset.tier is SeverityTier.CRITICAL
        assert asset.dwell_days is None

    def test_never_deployed_stencil_is_never_urgent(self):
        assert classify(snapshot(used=10, days_online=None)) is None


class TestUsageRatio:
    def test_ratio(self):
        assert snapshot(used=96, max_uses=100).usage_ratio == Decimal("0.96")

    @pytest.mark.parametrize("used, max_uses", [(5, 0), (None, 100), (5, None)])
    def test_ratio_undefined(self, used, max_uses):
        assert snapshot(used=used, max_uses=max_uses).usage_ratio is None

    def test_zero_max_uses_counts_as_limit_reached(self):
        asset = classify(snapshot(used=0, max_uses=0))
        assert asset.tier is SeverityTier.CRITICAL
        assert asset.usage_ratio is None
        assert asset.usage_percent is None

    def test_usage_percent_rounds_half_up(self):
        asset = classify(snapshot(used=1909, max_uses=2000))
        assert asset.usage_percent == Decimal("95.5")


class TestDwellDays:
    def test_not_deployed(self):
        assert dwell_days(None, AS_OF) is None

    def test_fractional(self):
        assert dwell_days(AS_OF - timedelta(hours=36), AS_OF) == Decimal("1.5")


class TestDigestOrder:
    def test_urgent_sorts_before_critical_then_warning(self):
        assets = classify_overdue(
            snapshots=[
                snapshot(plate_id=1, used=96),
                snapshot(plate_id=2, used=100),
                snapshot(plate_id=3, used=20, days_online=10),
            ],
            as_of=AS_OF,
            thresholds=THRESHOLDS,
        )
        assert [a.tier for a in assets] == [
            SeverityTier.URGENT,
            SeverityTier.CRITICAL,
            SeverityTier.WARNING,
        ]

    def test_within_tier_ratio_descending_nulls_last(self):
        assets = classify_overdue(
            snapshots=[
                snapshot(plate_id=1, used=0, max_uses=0),
                snapshot(plate_id=2, used=100, max_uses=100),
                snapshot(plate_id=3, used=150, max_uses=100),
            ],
            as_of=AS_OF,
            thresholds=THRESHOLDS,
        )
        assert [a.snapshot.steel_plate_id for a in assets] == [3, 2, 1]

    def test_count_by_tier_always_has_every_alert_tier(self):
        counts = count_by_tier(
            classify_overdue(snapshots=[snapshot(used=100)], as_of=AS_OF, thresholds=THRESHOLDS)
        )
        assert counts == {
            SeverityTier.WARNING: 0,
            SeverityTier.CRITICAL: 1,
            SeverityTier.URGENT: 0,
        }


class TestThresholds:
    @pytest.mark.parametrize("ratio", [Decimal("0"), Decimal("1.01"), Decimal("-0.5")])
    def test_ratio_out_of_range(self, ratio):
        with pytest.raises(ValueError):
            OverdueThresholds(usage_ratio=ratio)

    def test_negative_days(self):
        with pytest.raises(ValueError):
            OverdueThresholds(days_online=-1)

    def test_percent_label(self):
        assert OverdueThresholds().usage_percent_label == "95"


class TestPrecedenceProperty:
    @settings(
        max_examples=200,
        suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
    )
    @given(
        used=st.integers(min_value=0, max_value=200),
        max_uses=st.integers(min_value=1, max_value=200),
        hours_online=st.one_of(st.none(), st.integers(min_value=0, max_value=24 * 30)),
        flag=st.sampled_from([None, "", "N", "Y"]),
    )
    def test_single_tier_selected_by_precedence(self, used, max_uses, hours_online, flag):
        snap = snapshot(
            used=used,
            max_uses=max_uses,
            days_online=None if hours_online is None else hours_online / 24,
            flag=flag,
        )
        asset = classify(snap)

        dwell = None if hours_online is None else Decimal(hours_online) / 24
        if used >= max_uses:
            expected = SeverityTier.CRITICAL
        elif dwell is not None and dwell > 7:
            expected = SeverityTier.URGENT
        elif Decimal(used) / Decimal(max_uses) >= Decimal("0.95") and flag != "Y":
            expected = SeverityTier.WARNING
        else:
            expected = None

        assert (asset.tier if asset else None) is expected
