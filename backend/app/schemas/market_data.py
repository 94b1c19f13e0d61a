"""Inbound schemas for market-data snapshots.

The storage layer hands the engine JSON-shaped rows (camelCase, as the
dashboard and exports use). These schemas are the ingestion boundary: shapes
and types are checked here so the statistics functions only ever see the
typed records.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


GradeLiteral = Literal["A", "B", "C"]
ConfidentialityLiteral = Literal["public", "internal", "confidential", "restricted"]
RunStatusLiteral = Literal["running", "completed", "failed"]


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None or value.utcoffset() is None:
        # Naive timestamps from exports are UTC by convention.
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class _Row(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", str_strip_whitespace=True)


class EvidenceRecordPayload(_Row):
    id: str
    category: str = Field(min_length=1)
    item_key: str = Field(alias="itemKey", min_length=1)
    price_typical: float = Field(alias="priceTypical", gt=0, allow_inf_nan=False)
    price_min: Optional[float] = Field(default=None, alias="priceMin")
    price_max: Optional[float] = Field(default=None, alias="priceMax")
    reliability_grade: GradeLiteral = Field(alias="reliabilityGrade")
    source_publisher: str = Field(alias="sourcePublisher", min_length=1)
    source_url: str = Field(default="", alias="sourceUrl")
    captured_at: datetime = Field(alias="capturedAt")
    confidentiality: ConfidentialityLiteral = "public"
    unit: Optional[str] = None
    finish_level: Optional[str] = Field(default=None, alias="finishLevel")
    item_name: Optional[str] = Field(default=None, alias="itemName")
    source_id: Optional[str] = Field(default=None, alias="sourceId")

    @field_validator("id", "source_id", mode="before")
    @classmethod
    def _stringify_ids(cls, v):
        return None if v is None else str(v)

    @field_validator("reliability_grade", mode="before")
    @classmethod
    def _upper_grade(cls, v):
        return v.strip().upper() if isinstance(v, str) else v

    @field_validator("captured_at")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return _as_utc(v)


class SourceRegistryPayload(_Row):
    id: str
    name: str
    source_type: str = Field(default="", alias="sourceType")
    region: str = ""
    is_active: bool = Field(default=True, alias="isActive")
    is_whitelisted: bool = Field(default=False, alias="isWhitelisted")
    reliability_default: GradeLiteral = Field(default="C", alias="reliabilityDefault")
    last_scraped_status: Optional[str] = Field(default=None, alias="lastScrapedStatus")
    last_record_count: int = Field(default=0, alias="lastRecordCount", ge=0)
    consecutive_failures: int = Field(default=0, alias="consecutiveFailures", ge=0)
    last_successful_capture_at: Optional[datetime] = Field(default=None, alias="lastSuccessfulCaptureAt")

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, v):
        return None if v is None else str(v)

    @field_validator("reliability_default", mode="before")
    @classmethod
    def _upper_grade(cls, v):
        return v.strip().upper() if isinstance(v, str) else v

    @field_validator("last_successful_capture_at")
    @classmethod
    def _utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v)


class PipelineRunPayload(_Row):
    id: str
    status: RunStatusLiteral
    started_at: datetime = Field(alias="startedAt")
    completed_at: Optional[datetime] = Field(default=None, alias="completedAt")

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, v):
        return None if v is None else str(v)

    @field_validator("started_at", "completed_at")
    @classmethod
    def _utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v)
