"""BenchmarkProposal model.

Persistence rationale:
A proposal is the citable output of the engine for one benchmark key at one
point in time. Each generation appends a new row; history is never rewritten,
so a published benchmark can always be traced back to the evidence and
statistics it was derived from.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    event,
    inspect,
)
from sqlalchemy.orm import Mapped, mapped_column, validates

from app.core.base import Base, CreatedAtMixin, JSONDocument, UUIDPrimaryKeyMixin, require_utc


class ProposalImmutabilityError(RuntimeError):
    """Raised when an attempt is made to mutate or delete a persisted proposal."""


class BenchmarkProposalRow(UUIDPrimaryKeyMixin, CreatedAtMixin, Base):
    """Append-only benchmark proposal."""

    __tablename__ = "benchmark_proposals"

    run_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    benchmark_key: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str] = mapped_column(String(255), nullable=False)
    item_key: Mapped[str] = mapped_column(String(255), nullable=False)

    p25: Mapped[float] = mapped_column(Float, nullable=False)
    p50: Mapped[float] = mapped_column(Float, nullable=False)
    p75: Mapped[float] = mapped_column(Float, nullable=False)
    weighted_mean: Mapped[float] = mapped_column(Float, nullable=False)

    evidence_count: Mapped[int] = mapped_column(Integer, nullable=False)
    source_diversity: Mapped[int] = mapped_column(Integer, nullable=False)
    confidence_score: Mapped[int] = mapped_column(Integer, nullable=False)

    reliability_distribution: Mapped[dict] = mapped_column(JSONDocument, nullable=False, default=dict)
    recency_distribution: Mapped[dict] = mapped_column(JSONDocument, nullable=False, default=dict)
    evidence_ids: Mapped[list] = mapped_column(JSONDocument, nullable=False, default=list)

    recommendation: Mapped[str] = mapped_column(String(16), nullable=False)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    generated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        CheckConstraint(
            "confidence_score >= 0 AND confidence_score <= 100",
            name="ck_benchmark_proposals_confidence_range",
        ),
        CheckConstraint("evidence_count >= 1", name="ck_benchmark_proposals_evidence_count"),
        CheckConstraint(
            "recommendation IN ('publish', 'reject')",
            name="ck_benchmark_proposals_recommendation",
        ),
        Index("ix_benchmark_proposals_key_generated", "benchmark_key", "generated_at"),
    )

    @validates("generated_at")
    def _validate_utc(self, key: str, value: Optional[datetime]) -> Optional[datetime]:
        return require_utc(key, value)


@event.listens_for(BenchmarkProposalRow, "before_update", propagate=True)
def _benchmark_proposal_prevent_update(mapper, connection, target) -> None:
    """Reject any update after insert; regeneration appends a new row."""
    state = inspect(target)
    if not state.persistent:
        return
    for attr in state.attrs:
        if attr.history.has_changes():
            raise ProposalImmutabilityError(
                f"BenchmarkProposal is immutable: field '{attr.key}' cannot be updated. "
                "Generate a new proposal instead."
            )


@event.listens_for(BenchmarkProposalRow, "before_delete", propagate=True)
def _benchmark_proposal_prevent_delete(mapper, connection, target) -> None:
    raise ProposalImmutabilityError(
        "BenchmarkProposal deletion is forbidden. Proposal history must remain citable."
    )
