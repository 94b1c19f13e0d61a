"""PriceChangeEvent model.

Append-only record of a detected price swing between two successive captures
of the same item. Minor changes may be stored for history; dashboards filter
on severity.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, Float, Index, String, event
from sqlalchemy.orm import Mapped, mapped_column, validates

from app.core.base import Base, CreatedAtMixin, UUIDPrimaryKeyMixin, require_utc


class AnomalyEventImmutabilityError(RuntimeError):
    """Raised when an attempt is made to mutate or delete a price change event."""


class PriceChangeEventRow(UUIDPrimaryKeyMixin, CreatedAtMixin, Base):
    __tablename__ = "price_change_events"

    item_name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    source_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    previous_price: Mapped[float] = mapped_column(Float, nullable=False)
    new_price: Mapped[float] = mapped_column(Float, nullable=False)
    change_pct: Mapped[float] = mapped_column(Float, nullable=False)
    change_direction: Mapped[str] = mapped_column(String(16), nullable=False)
    severity: Mapped[str] = mapped_column(String(16), nullable=False)
    insight_type: Mapped[str] = mapped_column(String(32), nullable=False)

    detected_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        CheckConstraint(
            "change_direction IN ('increased', 'decreased')",
            name="ck_price_change_events_direction",
        ),
        CheckConstraint(
            "severity IN ('minor', 'moderate', 'significant')",
            name="ck_price_change_events_severity",
        ),
        CheckConstraint("previous_price > 0 AND new_price > 0", name="ck_price_change_events_positive"),
        Index("ix_price_change_events_detected_at", "detected_at"),
        Index("ix_price_change_events_item_detected", "item_name", "detected_at"),
    )

    @validates("detected_at")
    def _validate_utc(self, key: str, value: Optional[datetime]) -> Optional[datetime]:
        return require_utc(key, value)


@event.listens_for(PriceChangeEventRow, "before_update", propagate=True)
def _price_change_event_prevent_update(mapper, connection, target) -> None:
    raise AnomalyEventImmutabilityError("PriceChangeEvent is immutable once recorded.")


@event.listens_for(PriceChangeEventRow, "before_delete", propagate=True)
def _price_change_event_prevent_delete(mapper, connection, target) -> None:
    raise AnomalyEventImmutabilityError("PriceChangeEvent deletion is forbidden.")
