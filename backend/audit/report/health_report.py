from __future__ import annotations

"""Health report document.

Output: health_report.json (read by the dashboard).
No DB writes. No auto-fixes.
"""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from intel.core.anomaly import PriceAnomalyEvent
from intel.core.coverage import CoverageGap, HealthReport
from intel.core.freshness import CategoryFreshness, FreshnessAssessment


UTC = timezone.utc


def _iso(ts: Optional[datetime]) -> Optional[str]:
    return ts.astimezone(UTC).isoformat() if ts is not None else None


def _source(a: FreshnessAssessment) -> dict[str, Any]:
    return {
        "id": a.source_id,
        "name": a.source_name,
        "daysSince": a.days_since_last_capture,
        "freshness": a.freshness_level.value,
        "reliabilityGrade": a.reliability_grade.value,
        "status": a.source_status.value,
    }


def _category(c: CategoryFreshness) -> dict[str, Any]:
    return {
        "category": c.category,
        "count": c.record_count,
        "avgAgeDays": round(c.avg_age_days, 1),
        "latestCapture": _iso(c.latest_capture_at),
        "freshness": c.freshness_level.value,
    }


def _gap(g: CoverageGap) -> dict[str, Any]:
    return {
        "category": g.category,
        "count": g.record_count,
        "avgAgeDays": round(g.avg_age_days),
        "reasons": list(g.reasons),
    }


def _anomaly(e: PriceAnomalyEvent) -> dict[str, Any]:
    return {
        "itemName": e.item_name,
        "category": e.category,
        "previousPrice": e.previous_price,
        "newPrice": e.new_price,
        "changePct": round(e.change_pct, 2),
        "changeDirection": e.change_direction.value,
        "severity": e.severity.value,
        "insightType": e.insight_type.value,
        "detectedAt": _iso(e.detected_at),
    }


def build_report(report: HealthReport, *, warnings: Optional[list[str]] = None) -> dict:
    s = report.summary
    return {
        "run_time": _iso(report.generated_at),
        "overallHealth": s.overall_health.value,
        "reasons": list(s.reasons),
        "latestRunStatus": s.latest_run_status.value if s.latest_run_status is not None else None,
        "sourceHealth": {
            "total": s.total_sources,
            "active": s.active_sources,
            "failing": s.failing_sources,
            "disabled": s.disabled_sources,
        },
        "freshCount": s.fresh_count,
        "agingCount": s.aging_count,
        "staleCount": s.stale_count,
        "unknownCount": s.unknown_count,
        "sources": [_source(a) for a in s.sources],
        "categoryStats": [_category(c) for c in report.categories],
        "coverageGaps": [_gap(g) for g in report.coverage_gaps],
        "recentPriceChanges": [_anomaly(e) for e in report.anomalies],
        "warnings": list(warnings or []),
    }


def write_report(path: Path, report: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(report, ensure_ascii=False, indent=2) + "\n", encoding="utf-8")
