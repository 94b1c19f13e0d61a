"""Snapshot loading: raw rows -> typed engine records.

A snapshot is one JSON document produced by the storage layer:

    {
      "evidence":   [ {...EvidenceRecord row...}, ... ],
      "sources":    [ {...SourceRegistryEntry row...}, ... ],
      "latest_run": {...PipelineRun row...} | null
    }

Evidence rows that fail validation are skipped and reported (or rejected as a
batch with skip_invalid=False). Source and run rows must be valid; a bad one is
a MalformedRecordError for the whole snapshot.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional

from pydantic import ValidationError

from app.schemas.market_data import EvidenceRecordPayload, PipelineRunPayload, SourceRegistryPayload
from intel.core.errors import MalformedRecordError
from intel.core.proposal import SkippedRecord
from intel.core.records import (
    Confidentiality,
    EvidenceRecord,
    Grade,
    PipelineRun,
    RunStatus,
    SourceRegistryEntry,
)


logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Snapshot:
    evidence: list[EvidenceRecord]
    sources: list[SourceRegistryEntry]
    latest_run: Optional[PipelineRun] = None
    rejected: list[SkippedRecord] = field(default_factory=list)


def _first_error(exc: ValidationError) -> str:
    err = exc.errors()[0]
    loc = ".".join(str(p) for p in err.get("loc", ()))
    return f"{loc}: {err.get('msg', 'invalid')}" if loc else str(err.get("msg", "invalid"))


def _evidence_from_payload(p: EvidenceRecordPayload) -> EvidenceRecord:
    return EvidenceRecord(
        id=p.id,
        category=p.category,
        item_key=p.item_key,
        price_typical=p.price_typical,
        price_min=p.price_min,
        price_max=p.price_max,
        reliability_grade=Grade(p.reliability_grade),
        source_publisher=p.source_publisher,
        source_url=p.source_url,
        captured_at=p.captured_at,
        confidentiality=Confidentiality(p.confidentiality),
        unit=p.unit,
        finish_level=p.finish_level,
        item_name=p.item_name,
        source_id=p.source_id,
    )


def parse_evidence_records(
    rows: Iterable[Mapping[str, Any]],
    *,
    skip_invalid: bool = True,
) -> tuple[list[EvidenceRecord], list[SkippedRecord]]:
    records: list[EvidenceRecord] = []
    rejected: list[SkippedRecord] = []
    for index, row in enumerate(rows):
        row_id = str(row.get("id", f"#{index}")) if isinstance(row, Mapping) else f"#{index}"
        try:
            payload = EvidenceRecordPayload.model_validate(row)
        except ValidationError as exc:
            rejected.append(SkippedRecord(record_id=row_id, reason=_first_error(exc)))
            continue
        records.append(_evidence_from_payload(payload))

    if rejected and not skip_invalid:
        raise MalformedRecordError(
            f"{len(rejected)} evidence row(s) failed validation",
            record_ids=[r.record_id for r in rejected],
        )
    if rejected:
        logger.warning("Rejected %d evidence row(s) at the ingestion boundary", len(rejected))
    return records, rejected


def parse_source_entries(rows: Iterable[Mapping[str, Any]]) -> list[SourceRegistryEntry]:
    entries: list[SourceRegistryEntry] = []
    for index, row in enumerate(rows):
        try:
            p = SourceRegistryPayload.model_validate(row)
        except ValidationError as exc:
            row_id = str(row.get("id", f"#{index}")) if isinstance(row, Mapping) else f"#{index}"
            raise MalformedRecordError(
                f"source registry row {row_id} invalid: {_first_error(exc)}", record_ids=[row_id]
            ) from exc
        entries.append(
            SourceRegistryEntry(
                id=p.id,
                name=p.name,
                source_type=p.source_type,
                region=p.region,
                is_active=p.is_active,
                is_whitelisted=p.is_whitelisted,
                reliability_default=Grade(p.reliability_default),
                last_scraped_status=p.last_scraped_status,
                last_record_count=p.last_record_count,
                consecutive_failures=p.consecutive_failures,
                last_successful_capture_at=p.last_successful_capture_at,
            )
        )
    return entries


def parse_pipeline_run(row: Optional[Mapping[str, Any]]) -> Optional[PipelineRun]:
    if row is None:
        return None
    try:
        p = PipelineRunPayload.model_validate(row)
    except ValidationError as exc:
        raise MalformedRecordError(f"pipeline run row invalid: {_first_error(exc)}") from exc
    return PipelineRun(id=p.id, status=RunStatus(p.status), started_at=p.started_at, completed_at=p.completed_at)


def snapshot_from_mapping(raw: Mapping[str, Any], *, skip_invalid: bool = True) -> Snapshot:
    if not isinstance(raw, Mapping):
        raise MalformedRecordError("snapshot must be a JSON object")
    evidence, rejected = parse_evidence_records(raw.get("evidence") or [], skip_invalid=skip_invalid)
    return Snapshot(
        evidence=evidence,
        sources=parse_source_entries(raw.get("sources") or []),
        latest_run=parse_pipeline_run(raw.get("latest_run") or raw.get("latestRun")),
        rejected=rejected,
    )


def load_snapshot(path: Path, *, skip_invalid: bool = True) -> Snapshot:
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise MalformedRecordError(f"snapshot {path} is not valid JSON: {exc}") from exc
    return snapshot_from_mapping(raw, skip_invalid=skip_invalid)
