"""Freshness classification for sources and categories.

Tiers (inclusive boundaries, policy defaults):
- fresh:   0..7 days since the last successful capture
- aging:   8..30 days
- stale:   more than 30 days
- unknown: never captured

The platform-level health is derived from the per-source tiers plus the status
of the most recent pipeline run. The rule is configurable (HealthPolicy):

- degraded: more stale tracked sources than `stale_tolerance`, or the latest
  run failed
- aging:    more aging sources than `aging_tolerance`, or more never-captured
  sources than `unknown_tolerance`
- healthy:  otherwise

"Tracked" means active and not disabled; disabled sources are surfaced by the
health reporter's counts instead.
"""

from __future__ import annotations

import math
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterable, Optional, Sequence

from intel.core.policy import DEFAULT_POLICY, FreshnessPolicy, HealthPolicy
from intel.core.records import (
    DISABLED_AFTER_FAILURES,
    EvidenceRecord,
    Grade,
    PipelineRun,
    RunStatus,
    SourceRegistryEntry,
)
from intel.core.reliability import parse_grade


class FreshnessLevel(str, Enum):
    FRESH = "fresh"
    AGING = "aging"
    STALE = "stale"
    UNKNOWN = "unknown"


class HealthLevel(str, Enum):
    HEALTHY = "healthy"
    AGING = "aging"
    DEGRADED = "degraded"


class SourceStatus(str, Enum):
    HEALTHY = "healthy"
    FAILING = "failing"
    DISABLED = "disabled"
    INACTIVE = "inactive"


@dataclass(frozen=True, slots=True)
class FreshnessAssessment:
    source_id: str
    source_name: str
    days_since_last_capture: Optional[int]
    freshness_level: FreshnessLevel
    reliability_grade: Grade
    source_status: SourceStatus
    is_active: bool = True

    @property
    def is_tracked(self) -> bool:
        return self.is_active and self.source_status != SourceStatus.DISABLED


@dataclass(frozen=True, slots=True)
class CategoryFreshness:
    category: str
    record_count: int
    avg_age_days: float
    latest_capture_at: Optional[datetime]
    freshness_level: FreshnessLevel


def days_since(ts: Optional[datetime], *, now: datetime) -> Optional[int]:
    """Whole days elapsed (floored, never negative); None when never captured."""
    if ts is None:
        return None
    return max(0, int(math.floor((now - ts).total_seconds() / 86400.0)))


def classify_freshness(
    days_since_capture: Optional[int], policy: FreshnessPolicy = DEFAULT_POLICY.freshness
) -> FreshnessLevel:
    if days_since_capture is None:
        return FreshnessLevel.UNKNOWN
    if days_since_capture <= policy.fresh_max_days:
        return FreshnessLevel.FRESH
    if days_since_capture <= policy.aging_max_days:
        return FreshnessLevel.AGING
    return FreshnessLevel.STALE


def source_status(entry: SourceRegistryEntry) -> SourceStatus:
    if entry.consecutive_failures >= DISABLED_AFTER_FAILURES:
        return SourceStatus.DISABLED
    if entry.consecutive_failures > 0:
        return SourceStatus.FAILING
    if not entry.is_active:
        return SourceStatus.INACTIVE
    return SourceStatus.HEALTHY


def assess_source(
    entry: SourceRegistryEntry,
    *,
    now: datetime,
    policy: FreshnessPolicy = DEFAULT_POLICY.freshness,
) -> FreshnessAssessment:
    days = days_since(entry.last_successful_capture_at, now=now)
    return FreshnessAssessment(
        source_id=entry.id,
        source_name=entry.name,
        days_since_last_capture=days,
        freshness_level=classify_freshness(days, policy),
        reliability_grade=parse_grade(entry.reliability_default),
        source_status=source_status(entry),
        is_active=entry.is_active,
    )


def category_freshness(
    records: Iterable[EvidenceRecord],
    *,
    now: datetime,
    policy: FreshnessPolicy = DEFAULT_POLICY.freshness,
) -> dict[str, CategoryFreshness]:
    """Plain mean age (fractional days) and latest capture per category."""
    ages: dict[str, list[float]] = defaultdict(list)
    latest: dict[str, datetime] = {}
    for r in records:
        ages[r.category].append(max(0.0, (now - r.captured_at).total_seconds() / 86400.0))
        if r.category not in latest or r.captured_at > latest[r.category]:
            latest[r.category] = r.captured_at

    out: dict[str, CategoryFreshness] = {}
    for category in sorted(ages):
        values = ages[category]
        avg = sum(values) / len(values)
        out[category] = CategoryFreshness(
            category=category,
            record_count=len(values),
            avg_age_days=avg,
            latest_capture_at=latest.get(category),
            freshness_level=classify_freshness(int(math.floor(avg)), policy),
        )
    return out


def overall_health_level(
    assessments: Sequence[FreshnessAssessment],
    *,
    latest_run: Optional[PipelineRun] = None,
    policy: HealthPolicy = DEFAULT_POLICY.health,
) -> tuple[HealthLevel, list[str]]:
    """Return (level, reasons) for the whole platform."""
    tracked = [a for a in assessments if a.is_tracked]
    counts = {level: 0 for level in FreshnessLevel}
    for a in tracked:
        counts[a.freshness_level] += 1

    degraded: list[str] = []
    if counts[FreshnessLevel.STALE] > policy.stale_tolerance:
        degraded.append(
            f"{counts[FreshnessLevel.STALE]} tracked source(s) stale (tolerance {policy.stale_tolerance})"
        )
    if policy.degrade_on_failed_run and latest_run is not None and latest_run.status == RunStatus.FAILED:
        degraded.append(f"latest pipeline run {latest_run.id} failed")
    if degraded:
        return HealthLevel.DEGRADED, degraded

    aging: list[str] = []
    if counts[FreshnessLevel.AGING] > policy.aging_tolerance:
        aging.append(
            f"{counts[FreshnessLevel.AGING]} tracked source(s) aging (tolerance {policy.aging_tolerance})"
        )
    if counts[FreshnessLevel.UNKNOWN] > policy.unknown_tolerance:
        aging.append(
            f"{counts[FreshnessLevel.UNKNOWN]} tracked source(s) never captured "
            f"(tolerance {policy.unknown_tolerance})"
        )
    if aging:
        return HealthLevel.AGING, aging

    return HealthLevel.HEALTHY, []
