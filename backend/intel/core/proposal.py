"""Benchmark proposal generation.

Turns the evidence for one (category, item) pair into an auditable proposal:

- P25 / P50 / P75 by nearest-rank-floor on sorted typical prices
- Grade-weighted mean (A=3, B=2, C=1)
- Source diversity: distinct publishers, not URLs
- Confidence 0..100 from sample volume (40%), publisher diversity (30%) and
  average grade quality (30%)

Deterministic: the same evidence set and `generated_at` always yield the same
proposal. Nothing here touches storage or writes the audit log; callers do.
"""

from __future__ import annotations

import logging
import math
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Optional, Sequence

from intel.core.errors import InsufficientEvidenceError, MalformedRecordError
from intel.core.policy import DEFAULT_POLICY, ProposalPolicy
from intel.core.records import EvidenceRecord, as_utc, record_defect
from intel.core.reliability import MAX_GRADE_WEIGHT, grade_distribution, weight_of


logger = logging.getLogger(__name__)

UTC = timezone.utc

SAMPLE_TARGET = 10
DIVERSITY_TARGET = 5
SAMPLE_SHARE = 0.4
DIVERSITY_SHARE = 0.3
GRADE_SHARE = 0.3


class Recommendation(str, Enum):
    PUBLISH = "publish"
    REJECT = "reject"


@dataclass(frozen=True, slots=True)
class BenchmarkProposal:
    category: str
    item_key: str
    benchmark_key: str
    p25: float
    p50: float
    p75: float
    weighted_mean: float
    source_diversity: int
    confidence_score: int
    evidence_count: int
    generated_at: datetime
    # Read-only views; excluded from the hash since mappings are unhashable.
    reliability_distribution: Mapping[str, int] = field(hash=False)
    recency_distribution: Mapping[str, int] = field(hash=False)
    recommendation: Recommendation
    rejection_reason: Optional[str]
    evidence_ids: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class SkippedRecord:
    record_id: str
    reason: str


@dataclass(frozen=True, slots=True)
class ProposalBatch:
    run_id: str
    generated_at: datetime
    total_evidence: int
    groups_analyzed: int
    proposals: list[BenchmarkProposal]
    skipped: list[SkippedRecord] = field(default_factory=list)
    insufficient_groups: dict[str, int] = field(default_factory=dict)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def percentile(sorted_prices: Sequence[float], q: float) -> float:
    """Nearest-rank-floor percentile: prices[floor(n*q)], clamped to the last index."""
    n = len(sorted_prices)
    if n == 0:
        raise InsufficientEvidenceError("percentile of an empty price list")
    return sorted_prices[min(int(math.floor(n * q)), n - 1)]


def weighted_mean(records: Sequence[EvidenceRecord]) -> float:
    total_weight = 0
    weighted_sum = 0.0
    for r in records:
        w = weight_of(r.reliability_grade)
        weighted_sum += float(r.price_typical) * w
        total_weight += w
    if total_weight == 0:
        raise InsufficientEvidenceError("weighted mean of an empty evidence set")
    return weighted_sum / total_weight


def _publisher_identity(publisher: str) -> str:
    return " ".join((publisher or "").split()).casefold()


def source_diversity(records: Iterable[EvidenceRecord]) -> int:
    """Count distinct publishers; two pages of the same publisher count once."""
    return len({_publisher_identity(r.source_publisher) for r in records})


def confidence_score(evidence_count: int, diversity: int, total_grade_weight: int) -> int:
    if evidence_count <= 0:
        raise InsufficientEvidenceError("confidence of an empty evidence set")
    sample_score = min(1.0, evidence_count / SAMPLE_TARGET)
    diversity_score = min(1.0, diversity / DIVERSITY_TARGET)
    grade_score = min(1.0, total_grade_weight / (evidence_count * MAX_GRADE_WEIGHT))
    composite = sample_score * SAMPLE_SHARE + diversity_score * DIVERSITY_SHARE + grade_score * GRADE_SHARE
    return max(0, min(100, _round_half_up(composite * 100)))


def recency_distribution(
    records: Iterable[EvidenceRecord], *, now: datetime, policy: ProposalPolicy = DEFAULT_POLICY.proposal
) -> dict[str, int]:
    now = as_utc(now)
    dist = {"recent": 0, "mid": 0, "old": 0}
    for r in records:
        age_days = max(0.0, (now - as_utc(r.captured_at)).total_seconds() / 86400.0)
        if age_days <= policy.recent_max_days:
            dist["recent"] += 1
        elif age_days <= policy.mid_max_days:
            dist["mid"] += 1
        else:
            dist["old"] += 1
    return dist


def recommend(
    evidence_count: int, diversity: int, confidence: int, policy: ProposalPolicy = DEFAULT_POLICY.proposal
) -> tuple[Recommendation, Optional[str]]:
    """Publish unless sample size, diversity or confidence falls short (checked in that order)."""
    if evidence_count < policy.publish_min_evidence:
        return Recommendation.REJECT, (
            f"Insufficient sample size: {evidence_count} < {policy.publish_min_evidence}"
        )
    if diversity < policy.publish_min_diversity:
        return Recommendation.REJECT, (
            f"Insufficient source diversity: {diversity} < {policy.publish_min_diversity}"
        )
    if confidence < policy.publish_min_confidence:
        return Recommendation.REJECT, f"Low confidence score: {confidence} < {policy.publish_min_confidence}"
    return Recommendation.PUBLISH, None


def benchmark_key(record: EvidenceRecord) -> str:
    """`category:finish:unit` when a unit is known, else `category:item_key`."""
    if record.unit:
        finish = (record.finish_level or "standard").strip().lower()
        return f"{record.category}:{finish}:{record.unit}"
    return f"{record.category}:{record.item_key}"


def _validate_batch(records: Sequence[EvidenceRecord]) -> None:
    defects = [(r.id, reason) for r in records if (reason := record_defect(r)) is not None]
    if defects:
        detail = "; ".join(f"{rid}: {reason}" for rid, reason in defects[:5])
        raise MalformedRecordError(
            f"{len(defects)} malformed evidence record(s) rejected ({detail})",
            record_ids=[rid for rid, _ in defects],
        )
    groups = {r.group_key for r in records}
    if len(groups) > 1:
        raise MalformedRecordError(
            f"evidence spans {len(groups)} (category, item) groups; expected exactly one",
            record_ids=[r.id for r in records],
        )


def generate_proposal(
    records: Sequence[EvidenceRecord],
    *,
    generated_at: Optional[datetime] = None,
    policy: ProposalPolicy = DEFAULT_POLICY.proposal,
) -> BenchmarkProposal:
    """Aggregate one (category, item) evidence set into a BenchmarkProposal.

    Raises InsufficientEvidenceError on an empty set and MalformedRecordError
    if any record is unusable (the whole batch is rejected).
    """
    records = list(records)
    if not records:
        raise InsufficientEvidenceError("cannot generate a proposal from zero evidence records")
    _validate_batch(records)

    now = as_utc(generated_at) if generated_at is not None else datetime.now(tz=UTC)
    n = len(records)
    prices = sorted(float(r.price_typical) for r in records)
    total_weight = sum(weight_of(r.reliability_grade) for r in records)
    diversity = source_diversity(records)
    confidence = confidence_score(n, diversity, total_weight)
    recommendation, reason = recommend(n, diversity, confidence, policy)

    first = records[0]
    return BenchmarkProposal(
        category=first.category,
        item_key=first.item_key,
        benchmark_key=benchmark_key(first),
        p25=percentile(prices, 0.25),
        p50=percentile(prices, 0.5),
        p75=percentile(prices, 0.75),
        weighted_mean=weighted_mean(records),
        source_diversity=diversity,
        confidence_score=confidence,
        evidence_count=n,
        generated_at=now,
        reliability_distribution=MappingProxyType(grade_distribution(records)),
        recency_distribution=MappingProxyType(recency_distribution(records, now=now, policy=policy)),
        recommendation=recommendation,
        rejection_reason=reason,
        evidence_ids=tuple(r.id for r in records),
    )


def proposal_audit_fields(proposal: BenchmarkProposal) -> dict[str, Any]:
    """Fields an audit-log writer needs to describe one generation event."""
    return {
        "category": proposal.category,
        "item_key": proposal.item_key,
        "benchmark_key": proposal.benchmark_key,
        "evidence_count": proposal.evidence_count,
        "source_diversity": proposal.source_diversity,
        "weighted_mean": round(proposal.weighted_mean, 2),
        "confidence_score": proposal.confidence_score,
        "recommendation": proposal.recommendation.value,
        "generated_at": proposal.generated_at.isoformat(),
    }


def new_run_id() -> str:
    return f"PROP-{uuid.uuid4().hex[:8]}"


def generate_proposals(
    records: Iterable[EvidenceRecord],
    *,
    category: Optional[str] = None,
    min_evidence_count: Optional[int] = None,
    generated_at: Optional[datetime] = None,
    run_id: Optional[str] = None,
    policy: ProposalPolicy = DEFAULT_POLICY.proposal,
) -> ProposalBatch:
    """Generate one proposal per (category, item) group of a snapshot.

    Malformed records are skipped and reported rather than failing the batch;
    groups smaller than `min_evidence_count` are reported, not generated.
    """
    now = as_utc(generated_at) if generated_at is not None else datetime.now(tz=UTC)
    minimum = policy.min_evidence_count if min_evidence_count is None else min_evidence_count
    records = [r for r in records if category is None or r.category == category]

    skipped: list[SkippedRecord] = []
    groups: dict[tuple[str, str], list[EvidenceRecord]] = defaultdict(list)
    for r in records:
        reason = record_defect(r)
        if reason is not None:
            skipped.append(SkippedRecord(record_id=r.id, reason=reason))
            continue
        groups[r.group_key].append(r)

    if skipped:
        logger.warning("Skipped %d malformed evidence record(s) during proposal generation", len(skipped))

    proposals: list[BenchmarkProposal] = []
    insufficient: dict[str, int] = {}
    for (cat, item), group in sorted(groups.items()):
        if len(group) < minimum:
            insufficient[f"{cat}:{item}"] = len(group)
            continue
        proposals.append(generate_proposal(group, generated_at=now, policy=policy))

    proposals.sort(key=lambda p: (p.benchmark_key, p.category, p.item_key))
    return ProposalBatch(
        run_id=run_id or new_run_id(),
        generated_at=now,
        total_evidence=len(records),
        groups_analyzed=len(groups),
        proposals=proposals,
        skipped=skipped,
        insufficient_groups=insufficient,
    )
