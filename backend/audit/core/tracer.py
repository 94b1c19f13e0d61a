"""Audit entry writer.

Turns engine outputs into intelligence audit entries. The engine only exposes
the fields; this module is the collaborator that persists them. Entries carry
counts and statistics, never evidence content or source URLs.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.orm import Session

from app.models.intelligence_audit_entry import AuditRunType, IntelligenceAuditEntry
from intel.core.coverage import HealthReport
from intel.core.proposal import ProposalBatch, proposal_audit_fields


logger = logging.getLogger(__name__)

UTC = timezone.utc


def proposal_generation_audit_payload(
    batch: ProposalBatch,
    *,
    category: Optional[str],
    min_evidence_count: int,
) -> dict[str, Any]:
    """Input/output summaries for one proposal generation run."""
    return {
        "input_summary": {
            "category": category,
            "min_evidence_count": min_evidence_count,
            "total_evidence": batch.total_evidence,
            "skipped_records": [s.record_id for s in batch.skipped],
        },
        "output_summary": {
            "proposals_created": len(batch.proposals),
            "groups": batch.groups_analyzed,
            "insufficient_groups": dict(batch.insufficient_groups),
            "proposals": [proposal_audit_fields(p) for p in batch.proposals],
        },
    }


def record_proposal_generation(
    db: Session,
    batch: ProposalBatch,
    *,
    category: Optional[str],
    min_evidence_count: int,
    started_at: datetime,
    completed_at: Optional[datetime] = None,
    actor: Optional[str] = None,
    errors: int = 0,
) -> IntelligenceAuditEntry:
    payload = proposal_generation_audit_payload(batch, category=category, min_evidence_count=min_evidence_count)
    published = sum(1 for p in batch.proposals if p.recommendation.value == "publish")
    summary = (
        f"Generated {len(batch.proposals)} benchmark proposal(s) from {batch.total_evidence} evidence "
        f"record(s); {published} recommended for publication."
    )
    return _create_entry(
        db,
        run_type=AuditRunType.BENCHMARK_PROPOSAL,
        run_id=batch.run_id,
        actor=actor,
        summary=summary,
        input_summary=payload["input_summary"],
        output_summary=payload["output_summary"],
        records_processed=batch.total_evidence,
        records_produced=len(batch.proposals),
        errors=errors,
        started_at=started_at,
        completed_at=completed_at or datetime.now(tz=UTC),
    )


def record_health_check(
    db: Session,
    report: HealthReport,
    *,
    run_id: str,
    started_at: datetime,
    completed_at: Optional[datetime] = None,
    actor: Optional[str] = None,
) -> IntelligenceAuditEntry:
    s = report.summary
    summary = (
        f"Platform health {s.overall_health.value}: {s.total_sources} source(s), "
        f"{s.disabled_sources} disabled, {len(report.coverage_gaps)} coverage gap(s)."
    )
    return _create_entry(
        db,
        run_type=AuditRunType.HEALTH_CHECK,
        run_id=run_id,
        actor=actor,
        summary=summary,
        input_summary={"sources": s.total_sources, "categories": len(report.categories)},
        output_summary={
            "overall_health": s.overall_health.value,
            "reasons": list(s.reasons),
            "coverage_gaps": [g.category for g in report.coverage_gaps],
            "anomalies": len(report.anomalies),
        },
        records_processed=s.total_sources,
        records_produced=len(report.anomalies),
        errors=0,
        started_at=started_at,
        completed_at=completed_at or datetime.now(tz=UTC),
    )


def _create_entry(db: Session, *, run_type: AuditRunType, run_id: str, **fields: Any) -> IntelligenceAuditEntry:
    entry = IntelligenceAuditEntry(run_type=run_type, run_id=run_id, **fields)
    db.add(entry)
    logger.debug("Audit entry queued run_type=%s run_id=%s", run_type.value, run_id)
    # Don't commit here, part of the caller's transaction
    return entry
