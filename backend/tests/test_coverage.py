from __future__ import annotations

from datetime import timedelta

import pytest

from conftest import NOW, evidence, pipeline_run, source
from intel.core.anomaly import detect_anomaly
from intel.core.coverage import (
    GAP_BELOW_MIN_RECORDS,
    GAP_STALE_AVERAGE_AGE,
    build_health_report,
    find_coverage_gaps,
    summarize_source_health,
)
from intel.core.errors import BenchmarkEngineError, MalformedRecordError
from intel.core.freshness import HealthLevel, category_freshness
from intel.core.policy import CoveragePolicy, EnginePolicy
from intel.core.records import RunStatus


def test_source_health_counts():
    sources = [
        source("fresh"),
        source("aging", days_since=12),
        source("failing", failures=2),
        source("disabled", failures=5, days_since=60),
        source("inactive", active=False, days_since=None),
    ]
    summary = summarize_source_health(sources, now=NOW, latest_run=pipeline_run())
    assert summary.total_sources == 5
    assert summary.active_sources == 3
    assert summary.failing_sources == 1
    assert summary.disabled_sources == 1
    assert summary.fresh_count == 2
    assert summary.aging_count == 1
    assert summary.stale_count == 1
    assert summary.unknown_count == 1
    assert summary.overall_health == HealthLevel.AGING
    assert summary.latest_run_status == RunStatus.COMPLETED
    assert [a.source_id for a in summary.sources] == ["fresh", "aging", "failing", "disabled", "inactive"]


def test_empty_registry_is_healthy():
    summary = summarize_source_health([], now=NOW)
    assert summary.total_sources == 0
    assert summary.overall_health == HealthLevel.HEALTHY
    assert summary.latest_run_status is None


def test_coverage_gap_boundaries_are_not_gaps():
    stats = {
        "exact": {"count": 10, "avgAgeDays": 30},
        "thin": {"count": 9, "avgAgeDays": 1},
        "old": {"count": 50, "avg_age_days": 30.5},
        "both": {"record_count": 1, "avg_age_days": 100},
    }
    gaps = find_coverage_gaps(stats, min_count=10, stale_days=30)
    assert [g.category for g in gaps] == ["both", "old", "thin"]
    by_cat = {g.category: g for g in gaps}
    assert by_cat["thin"].reasons == [GAP_BELOW_MIN_RECORDS]
    assert by_cat["old"].reasons == [GAP_STALE_AVERAGE_AGE]
    assert by_cat["both"].reasons == [GAP_BELOW_MIN_RECORDS, GAP_STALE_AVERAGE_AGE]


@pytest.mark.parametrize(
    "stat",
    [{"count": 3}, {"count": "many", "avgAgeDays": 2}, {"record_count": 3, "avg_age_days": None}, 7],
)
def test_malformed_category_stats_name_the_category(stat):
    with pytest.raises(MalformedRecordError, match="roofing") as ei:
        find_coverage_gaps({"flooring": {"count": 20, "avgAgeDays": 1}, "roofing": stat}, min_count=1)
    assert isinstance(ei.value, BenchmarkEngineError)


def test_coverage_gaps_accept_category_freshness():
    records = [evidence(category="roofing", days_old=3)] * 2
    gaps = find_coverage_gaps(category_freshness(records, now=NOW), min_count=3)
    assert len(gaps) == 1
    assert gaps[0].record_count == 2
    assert gaps[0].avg_age_days == 3.0


def test_health_report_composes_summary_gaps_and_anomalies():
    records = [evidence(category="flooring", days_old=d) for d in (1, 2, 3)]
    older = detect_anomaly(100, 130, item_name="a", detected_at=NOW - timedelta(days=5))
    newer = detect_anomaly(100, 80, item_name="b", detected_at=NOW - timedelta(days=1))
    policy = EnginePolicy(coverage=CoveragePolicy(min_records=2, stale_days=30))

    report = build_health_report(
        [source("a")],
        records,
        now=NOW,
        latest_run=pipeline_run(),
        anomalies=[older, newer],
        policy=policy,
    )
    assert report.generated_at == NOW
    assert report.summary.overall_health == HealthLevel.HEALTHY
    assert [c.category for c in report.categories] == ["flooring"]
    assert report.coverage_gaps == []
    assert [e.item_name for e in report.anomalies] == ["b", "a"]


def test_health_report_uses_default_coverage_thresholds():
    report = build_health_report([source("a")], [evidence(days_old=1)], now=NOW)
    assert [g.category for g in report.coverage_gaps] == ["flooring"]
