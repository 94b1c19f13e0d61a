"""Price-change anomaly detection.

Stateless per pair: the caller supplies the single most recent prior capture
of the same item. Severity by absolute change (policy defaults):

- minor:       below 10%
- moderate:    10% to 25% inclusive
- significant: above 25%

`assess_price_change` returns every non-zero change so minor moves can be
recorded; `detect_anomaly` only surfaces changes at or above the minimum
reporting threshold (moderate and above by default).
"""

from __future__ import annotations

import math
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, Iterator, Optional

from intel.core.errors import MalformedRecordError
from intel.core.policy import DEFAULT_POLICY, AnomalyPolicy
from intel.core.records import EvidenceRecord, record_defect


UTC = timezone.utc


class ChangeDirection(str, Enum):
    INCREASED = "increased"
    DECREASED = "decreased"


class Severity(str, Enum):
    MINOR = "minor"
    MODERATE = "moderate"
    SIGNIFICANT = "significant"


class InsightType(str, Enum):
    COST_PRESSURE = "cost_pressure"
    MARKET_OPPORTUNITY = "market_opportunity"


@dataclass(frozen=True, slots=True)
class PriceAnomalyEvent:
    item_name: str
    previous_price: float
    new_price: float
    change_pct: float
    change_direction: ChangeDirection
    severity: Severity
    detected_at: datetime
    category: Optional[str] = None
    source_id: Optional[str] = None

    @property
    def insight_type(self) -> InsightType:
        if self.change_direction == ChangeDirection.INCREASED:
            return InsightType.COST_PRESSURE
        return InsightType.MARKET_OPPORTUNITY


def _require_price(value: float, label: str) -> float:
    if value is None or isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MalformedRecordError(f"{label} price must be a number (got {value!r})")
    if math.isnan(value) or math.isinf(value) or value <= 0:
        raise MalformedRecordError(f"{label} price must be positive (got {value!r})")
    return float(value)


def classify_severity(change_pct: float, policy: AnomalyPolicy = DEFAULT_POLICY.anomaly) -> Severity:
    magnitude = abs(change_pct)
    if magnitude > policy.significant_above_pct:
        return Severity.SIGNIFICANT
    if magnitude >= policy.moderate_min_pct:
        return Severity.MODERATE
    return Severity.MINOR


def assess_price_change(
    previous: float,
    new: float,
    *,
    item_name: str = "",
    category: Optional[str] = None,
    source_id: Optional[str] = None,
    detected_at: Optional[datetime] = None,
    policy: AnomalyPolicy = DEFAULT_POLICY.anomaly,
) -> Optional[PriceAnomalyEvent]:
    """Describe any change between two captures; None when the price is unchanged."""
    prev_price = _require_price(previous, "previous")
    new_price = _require_price(new, "new")
    if new_price == prev_price:
        return None

    change_pct = (new_price - prev_price) / prev_price * 100.0
    return PriceAnomalyEvent(
        item_name=item_name,
        previous_price=prev_price,
        new_price=new_price,
        change_pct=change_pct,
        change_direction=ChangeDirection.INCREASED if change_pct > 0 else ChangeDirection.DECREASED,
        severity=classify_severity(change_pct, policy),
        detected_at=detected_at or datetime.now(tz=UTC),
        category=category,
        source_id=source_id,
    )


def detect_anomaly(
    previous: float,
    new: float,
    *,
    item_name: str = "",
    category: Optional[str] = None,
    source_id: Optional[str] = None,
    detected_at: Optional[datetime] = None,
    policy: AnomalyPolicy = DEFAULT_POLICY.anomaly,
) -> Optional[PriceAnomalyEvent]:
    """Return an event only when |change| reaches the minimum reporting threshold."""
    event = assess_price_change(
        previous,
        new,
        item_name=item_name,
        category=category,
        source_id=source_id,
        detected_at=detected_at,
        policy=policy,
    )
    if event is None or abs(event.change_pct) < policy.min_report_pct:
        return None
    return event


def successive_capture_pairs(
    records: Iterable[EvidenceRecord],
) -> Iterator[tuple[EvidenceRecord, EvidenceRecord]]:
    """Yield (previous, current) for consecutive captures of the same item.

    Items are identified by (category, item_key, source); each capture is
    paired with the single most recent earlier capture. Unusable records are
    ignored here; they never reach a comparison.
    """
    series: dict[tuple[str, str, str], list[EvidenceRecord]] = defaultdict(list)
    for r in records:
        if record_defect(r) is not None:
            continue
        source = r.source_id or r.source_publisher
        series[(r.category, r.item_key, source)].append(r)

    for key in sorted(series):
        ordered = sorted(series[key], key=lambda r: (r.captured_at, r.id))
        for prev, cur in zip(ordered, ordered[1:]):
            yield prev, cur


def detect_snapshot_anomalies(
    records: Iterable[EvidenceRecord],
    *,
    include_minor: bool = False,
    policy: AnomalyPolicy = DEFAULT_POLICY.anomaly,
) -> list[PriceAnomalyEvent]:
    """Run detection over every successive capture pair in a snapshot."""
    check = assess_price_change if include_minor else detect_anomaly
    events: list[PriceAnomalyEvent] = []
    for prev, cur in successive_capture_pairs(records):
        event = check(
            prev.price_typical,
            cur.price_typical,
            item_name=cur.item_name or cur.item_key,
            category=cur.category,
            source_id=cur.source_id,
            detected_at=cur.captured_at,
            policy=policy,
        )
        if event is not None:
            events.append(event)
    return events
