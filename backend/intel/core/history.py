"""Proposal and anomaly history.

Appends engine outputs as new rows. Never updates or deletes: regeneration
produces another proposal row, and the ORM listeners reject in-place edits.

Functions add to the session without committing; the job owns the
transaction.
"""

from __future__ import annotations

from typing import Iterable, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.benchmark_proposal import BenchmarkProposalRow
from app.models.price_change_event import PriceChangeEventRow
from intel.core.anomaly import PriceAnomalyEvent
from intel.core.proposal import BenchmarkProposal, ProposalBatch


def record_proposal(db: Session, proposal: BenchmarkProposal, *, run_id: str) -> BenchmarkProposalRow:
    row = BenchmarkProposalRow(
        run_id=run_id,
        benchmark_key=proposal.benchmark_key,
        category=proposal.category,
        item_key=proposal.item_key,
        p25=proposal.p25,
        p50=proposal.p50,
        p75=proposal.p75,
        weighted_mean=proposal.weighted_mean,
        evidence_count=proposal.evidence_count,
        source_diversity=proposal.source_diversity,
        confidence_score=proposal.confidence_score,
        reliability_distribution=dict(proposal.reliability_distribution),
        recency_distribution=dict(proposal.recency_distribution),
        evidence_ids=list(proposal.evidence_ids),
        recommendation=proposal.recommendation.value,
        rejection_reason=proposal.rejection_reason,
        generated_at=proposal.generated_at,
    )
    db.add(row)
    return row


def record_proposal_batch(db: Session, batch: ProposalBatch) -> list[BenchmarkProposalRow]:
    return [record_proposal(db, p, run_id=batch.run_id) for p in batch.proposals]


def record_price_anomaly(db: Session, anomaly: PriceAnomalyEvent) -> PriceChangeEventRow:
    row = PriceChangeEventRow(
        item_name=anomaly.item_name[:255],
        category=anomaly.category,
        source_id=anomaly.source_id,
        previous_price=anomaly.previous_price,
        new_price=anomaly.new_price,
        change_pct=anomaly.change_pct,
        change_direction=anomaly.change_direction.value,
        severity=anomaly.severity.value,
        insight_type=anomaly.insight_type.value,
        detected_at=anomaly.detected_at,
    )
    db.add(row)
    return row


def price_anomaly_recorded(db: Session, anomaly: PriceAnomalyEvent) -> bool:
    """True when this exact price change (same capture pair) is already stored."""
    stmt = (
        select(PriceChangeEventRow.id)
        .where(
            PriceChangeEventRow.item_name == anomaly.item_name[:255],
            PriceChangeEventRow.category == anomaly.category,
            PriceChangeEventRow.source_id == anomaly.source_id,
            PriceChangeEventRow.detected_at == anomaly.detected_at,
            PriceChangeEventRow.previous_price == anomaly.previous_price,
            PriceChangeEventRow.new_price == anomaly.new_price,
        )
        .limit(1)
    )
    return db.execute(stmt).first() is not None


def record_price_anomalies(db: Session, anomalies: Iterable[PriceAnomalyEvent]) -> int:
    """Append anomalies not stored yet; returns how many rows were added.

    Health checks re-detect every capture pair in a snapshot, so a change
    already recorded by an earlier run is skipped.
    """
    seen: set[tuple] = set()
    count = 0
    for a in anomalies:
        key = (a.item_name[:255], a.category, a.source_id, a.detected_at, a.previous_price, a.new_price)
        if key in seen or price_anomaly_recorded(db, a):
            continue
        seen.add(key)
        record_price_anomaly(db, a)
        count += 1
    return count


def list_proposal_history(
    db: Session, benchmark_key: str, *, limit: Optional[int] = 50
) -> Sequence[BenchmarkProposalRow]:
    """Proposals for one benchmark key, newest first."""
    stmt = (
        select(BenchmarkProposalRow)
        .where(BenchmarkProposalRow.benchmark_key == benchmark_key)
        .order_by(BenchmarkProposalRow.generated_at.desc())
    )
    if limit is not None:
        stmt = stmt.limit(limit)
    return list(db.execute(stmt).scalars().all())
