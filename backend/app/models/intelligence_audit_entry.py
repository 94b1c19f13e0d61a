"""Intelligence audit entry model.

Records each engine run (proposal generation, health check) for compliance
traceability: what went in, what came out, who triggered it.

Rules:
- Append-only.
- Summaries hold counts and statistics, never raw evidence content.
"""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Enum, Integer, String, Text, event
from sqlalchemy.orm import Mapped, mapped_column, validates

from app.core.base import Base, CreatedAtMixin, JSONDocument, UUIDPrimaryKeyMixin, require_utc


class AuditEntryImmutabilityError(RuntimeError):
    """Raised when an attempt is made to mutate or delete an audit entry."""


class AuditRunType(str, enum.Enum):
    BENCHMARK_PROPOSAL = "benchmark_proposal"
    HEALTH_CHECK = "health_check"


class IntelligenceAuditEntry(UUIDPrimaryKeyMixin, CreatedAtMixin, Base):
    """Immutable record of one engine run."""

    __tablename__ = "intelligence_audit_entries"

    run_type: Mapped[AuditRunType] = mapped_column(
        Enum(AuditRunType, name="intelligence_audit_run_type"), nullable=False
    )
    run_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    actor: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Human-readable summary (1-2 sentences)
    summary: Mapped[str] = mapped_column(Text, nullable=False)

    input_summary: Mapped[dict] = mapped_column(JSONDocument, nullable=False, default=dict)
    output_summary: Mapped[dict] = mapped_column(JSONDocument, nullable=False, default=dict)

    records_processed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    records_produced: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    errors: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    @validates("started_at", "completed_at")
    def _validate_utc(self, key: str, value: Optional[datetime]) -> Optional[datetime]:
        return require_utc(key, value)


@event.listens_for(IntelligenceAuditEntry, "before_update", propagate=True)
def _audit_entry_prevent_update(mapper, connection, target) -> None:
    raise AuditEntryImmutabilityError("Audit entries are append-only.")


@event.listens_for(IntelligenceAuditEntry, "before_delete", propagate=True)
def _audit_entry_prevent_delete(mapper, connection, target) -> None:
    raise AuditEntryImmutabilityError("Audit entry deletion is forbidden.")
