from __future__ import annotations

from datetime import timedelta

import pytest

from conftest import NOW, evidence
from intel.core.anomaly import (
    ChangeDirection,
    InsightType,
    Severity,
    assess_price_change,
    classify_severity,
    detect_anomaly,
    detect_snapshot_anomalies,
    successive_capture_pairs,
)
from intel.core.errors import MalformedRecordError
from intel.core.policy import AnomalyPolicy


def test_moderate_increase():
    e = detect_anomaly(100, 112, item_name="oak plank", detected_at=NOW)
    assert e is not None
    assert e.change_pct == pytest.approx(12.0)
    assert e.change_direction == ChangeDirection.INCREASED
    assert e.severity == Severity.MODERATE
    assert e.insight_type == InsightType.COST_PRESSURE
    assert e.detected_at == NOW


def test_significant_decrease():
    e = detect_anomaly(100, 70)
    assert e is not None
    assert e.change_pct == pytest.approx(-30.0)
    assert e.change_direction == ChangeDirection.DECREASED
    assert e.severity == Severity.SIGNIFICANT
    assert e.insight_type == InsightType.MARKET_OPPORTUNITY


@pytest.mark.parametrize(
    "pct,expected",
    [
        (9.99, Severity.MINOR),
        (10.0, Severity.MODERATE),
        (25.0, Severity.MODERATE),
        (25.01, Severity.SIGNIFICANT),
        (-10.0, Severity.MODERATE),
        (-26.0, Severity.SIGNIFICANT),
    ],
)
def test_severity_bands(pct, expected):
    assert classify_severity(pct) == expected


def test_minor_changes_are_not_reported():
    assert detect_anomaly(100, 105) is None
    minor = assess_price_change(100, 105)
    assert minor is not None
    assert minor.severity == Severity.MINOR


def test_exact_threshold_is_reported():
    assert detect_anomaly(100, 110) is not None
    assert detect_anomaly(100, 90) is not None


def test_unchanged_price_is_not_an_event():
    assert assess_price_change(50, 50) is None
    assert detect_anomaly(50, 50) is None


@pytest.mark.parametrize("previous,new", [(0, 10), (10, -1), (None, 10), (10, float("inf"))])
def test_non_positive_prices_raise(previous, new):
    with pytest.raises(MalformedRecordError):
        detect_anomaly(previous, new)


def test_report_threshold_is_configurable():
    policy = AnomalyPolicy(min_report_pct=3.0)
    e = detect_anomaly(100, 105, policy=policy)
    assert e is not None
    assert e.severity == Severity.MINOR


def test_successive_pairs_use_single_prior_capture():
    first = evidence(100.0, publisher="P", days_old=20, source_id="s1")
    second = evidence(120.0, publisher="P", days_old=10, source_id="s1")
    third = evidence(90.0, publisher="P", days_old=1, source_id="s1")
    other_source = evidence(500.0, publisher="Q", days_old=5, source_id="s2")
    pairs = list(successive_capture_pairs([third, other_source, first, second]))
    assert [(p.id, c.id) for p, c in pairs] == [(first.id, second.id), (second.id, third.id)]


def test_snapshot_anomalies_skip_unusable_records():
    records = [
        evidence(100.0, publisher="P", days_old=3, source_id="s1", item_name="Oak plank"),
        evidence(None, publisher="P", days_old=2, source_id="s1"),
        evidence(130.0, publisher="P", days_old=1, source_id="s1", item_name="Oak plank"),
    ]
    events = detect_snapshot_anomalies(records)
    assert len(events) == 1
    e = events[0]
    assert e.item_name == "Oak plank"
    assert e.category == "flooring"
    assert e.source_id == "s1"
    assert e.severity == Severity.SIGNIFICANT
    assert e.detected_at == NOW - timedelta(days=1)


def test_snapshot_anomalies_include_minor_on_request():
    records = [
        evidence(100.0, publisher="P", days_old=2),
        evidence(104.0, publisher="P", days_old=1),
    ]
    assert detect_snapshot_anomalies(records) == []
    assert len(detect_snapshot_anomalies(records, include_minor=True)) == 1
