"""Typed snapshot records consumed by the engine.

Evidence, source registry rows and pipeline runs arrive as an in-memory
snapshot supplied by the storage layer. They are immutable here: the engine
reads them and never writes back.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


UTC = timezone.utc


# A source is disabled once its failure streak reaches this value,
# regardless of its is_active flag.
DISABLED_AFTER_FAILURES = 5


class Grade(str, Enum):
    A = "A"
    B = "B"
    C = "C"


class Confidentiality(str, Enum):
    PUBLIC = "public"
    INTERNAL = "internal"
    CONFIDENTIAL = "confidential"
    RESTRICTED = "restricted"


class RunStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class EvidenceRecord:
    id: str
    category: str
    item_key: str
    price_typical: Optional[float]
    reliability_grade: Grade
    source_publisher: str
    captured_at: datetime
    price_min: Optional[float] = None
    price_max: Optional[float] = None
    source_url: str = ""
    confidentiality: Confidentiality = Confidentiality.PUBLIC
    unit: Optional[str] = None
    finish_level: Optional[str] = None
    item_name: Optional[str] = None
    source_id: Optional[str] = None

    @property
    def group_key(self) -> tuple[str, str]:
        return (self.category, self.item_key)


@dataclass(frozen=True, slots=True)
class SourceRegistryEntry:
    id: str
    name: str
    source_type: str = ""
    region: str = ""
    is_active: bool = True
    is_whitelisted: bool = False
    reliability_default: Grade = Grade.C
    last_scraped_status: Optional[str] = None
    last_record_count: int = 0
    consecutive_failures: int = 0
    last_successful_capture_at: Optional[datetime] = None

    @property
    def is_disabled(self) -> bool:
        return self.consecutive_failures >= DISABLED_AFTER_FAILURES


@dataclass(frozen=True, slots=True)
class PipelineRun:
    id: str
    status: RunStatus
    started_at: datetime
    completed_at: Optional[datetime] = None


def record_defect(record: EvidenceRecord) -> Optional[str]:
    """Return why a record cannot be aggregated, or None if it is usable."""
    price = record.price_typical
    if price is None:
        return "missing price_typical"
    if isinstance(price, bool) or not isinstance(price, (int, float)):
        return f"price_typical is not numeric ({type(price).__name__})"
    if math.isnan(price) or math.isinf(price):
        return "price_typical is not finite"
    if price <= 0:
        return f"non-positive price_typical ({price})"
    return None


def as_utc(ts: datetime) -> datetime:
    """Naive timestamps are UTC by convention; aware ones are converted."""
    if ts.tzinfo is None or ts.utcoffset() is None:
        return ts.replace(tzinfo=UTC)
    return ts.astimezone(UTC)
