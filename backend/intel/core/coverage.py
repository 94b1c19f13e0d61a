"""Coverage and source-health reporting.

Pure aggregation over the source registry and category evidence statistics:

- source counts: total, active, failing, disabled
- per-source freshness assessments and the overall platform health level
- coverage gaps: categories with too few records or a stale average age

Output objects are what dashboards render; nothing is cached between calls.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Optional, Sequence, Union

from intel.core.anomaly import PriceAnomalyEvent
from intel.core.errors import MalformedRecordError
from intel.core.freshness import (
    CategoryFreshness,
    FreshnessAssessment,
    FreshnessLevel,
    HealthLevel,
    SourceStatus,
    assess_source,
    category_freshness,
    overall_health_level,
)
from intel.core.policy import DEFAULT_POLICY, EnginePolicy
from intel.core.records import EvidenceRecord, PipelineRun, RunStatus, SourceRegistryEntry


UTC = timezone.utc

GAP_BELOW_MIN_RECORDS = "below_min_records"
GAP_STALE_AVERAGE_AGE = "stale_average_age"


@dataclass(frozen=True, slots=True)
class HealthSummary:
    total_sources: int
    active_sources: int
    failing_sources: int
    disabled_sources: int
    fresh_count: int
    aging_count: int
    stale_count: int
    unknown_count: int
    overall_health: HealthLevel
    sources: list[FreshnessAssessment]
    latest_run_status: Optional[RunStatus] = None
    reasons: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class CoverageGap:
    category: str
    record_count: int
    avg_age_days: float
    reasons: list[str]


@dataclass(frozen=True, slots=True)
class HealthReport:
    generated_at: datetime
    summary: HealthSummary
    categories: list[CategoryFreshness]
    coverage_gaps: list[CoverageGap]
    anomalies: list[PriceAnomalyEvent]


CategoryStat = Union[CategoryFreshness, Mapping[str, Any]]


def summarize_source_health(
    sources: Sequence[SourceRegistryEntry],
    *,
    now: Optional[datetime] = None,
    latest_run: Optional[PipelineRun] = None,
    policy: EnginePolicy = DEFAULT_POLICY,
) -> HealthSummary:
    now = now or datetime.now(tz=UTC)
    assessments = [assess_source(s, now=now, policy=policy.freshness) for s in sources]
    level, reasons = overall_health_level(assessments, latest_run=latest_run, policy=policy.health)

    by_level = {lvl: 0 for lvl in FreshnessLevel}
    for a in assessments:
        by_level[a.freshness_level] += 1

    return HealthSummary(
        total_sources=len(sources),
        active_sources=sum(1 for s in sources if s.is_active and not s.is_disabled),
        failing_sources=sum(1 for a in assessments if a.source_status == SourceStatus.FAILING),
        disabled_sources=sum(1 for a in assessments if a.source_status == SourceStatus.DISABLED),
        fresh_count=by_level[FreshnessLevel.FRESH],
        aging_count=by_level[FreshnessLevel.AGING],
        stale_count=by_level[FreshnessLevel.STALE],
        unknown_count=by_level[FreshnessLevel.UNKNOWN],
        overall_health=level,
        sources=assessments,
        latest_run_status=latest_run.status if latest_run is not None else None,
        reasons=reasons,
    )


def _stat_values(category: str, stat: CategoryStat) -> tuple[int, float]:
    if isinstance(stat, CategoryFreshness):
        return stat.record_count, stat.avg_age_days
    if not isinstance(stat, Mapping):
        raise MalformedRecordError(
            f"category stats for {category!r} must be a mapping (got {type(stat).__name__})"
        )
    count = stat.get("count", stat.get("record_count"))
    avg = stat.get("avgAgeDays", stat.get("avg_age_days"))
    if count is None or avg is None:
        raise MalformedRecordError(
            f"category stats for {category!r} need count and avg age (got keys {sorted(stat)})"
        )
    try:
        return int(count), float(avg)
    except (TypeError, ValueError) as exc:
        raise MalformedRecordError(
            f"category stats for {category!r} are not numeric (count={count!r}, avg={avg!r})"
        ) from exc


def find_coverage_gaps(
    category_stats: Mapping[str, CategoryStat],
    min_count: int,
    stale_days: int = 30,
) -> list[CoverageGap]:
    """Flag categories with fewer than `min_count` records or average age above `stale_days`."""
    gaps: list[CoverageGap] = []
    for category in sorted(category_stats):
        count, avg = _stat_values(category, category_stats[category])
        reasons: list[str] = []
        if count < min_count:
            reasons.append(GAP_BELOW_MIN_RECORDS)
        if avg > stale_days:
            reasons.append(GAP_STALE_AVERAGE_AGE)
        if reasons:
            gaps.append(CoverageGap(category=category, record_count=count, avg_age_days=avg, reasons=reasons))
    return gaps


def build_health_report(
    sources: Sequence[SourceRegistryEntry],
    records: Iterable[EvidenceRecord],
    *,
    now: Optional[datetime] = None,
    latest_run: Optional[PipelineRun] = None,
    anomalies: Sequence[PriceAnomalyEvent] = (),
    policy: EnginePolicy = DEFAULT_POLICY,
) -> HealthReport:
    now = now or datetime.now(tz=UTC)
    summary = summarize_source_health(sources, now=now, latest_run=latest_run, policy=policy)
    categories = category_freshness(records, now=now, policy=policy.freshness)
    gaps = find_coverage_gaps(
        categories,
        min_count=policy.coverage.min_records,
        stale_days=policy.coverage.stale_days,
    )
    return HealthReport(
        generated_at=now,
        summary=summary,
        categories=list(categories.values()),
        coverage_gaps=gaps,
        anomalies=sorted(anomalies, key=lambda e: e.detected_at, reverse=True),
    )
