from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from intel.core.errors import MalformedRecordError
from intel.core.records import Confidentiality, Grade, RunStatus
from intel.lib.snapshot import (
    load_snapshot,
    parse_evidence_records,
    parse_pipeline_run,
    parse_source_entries,
    snapshot_from_mapping,
)


UTC = timezone.utc


def _row(**overrides):
    row = {
        "id": "ev-1",
        "category": "flooring",
        "itemKey": "oak-plank",
        "priceTypical": 120,
        "reliabilityGrade": "a",
        "sourcePublisher": "Alpha Supplies",
        "sourceUrl": "https://alpha.example/oak",
        "capturedAt": "2026-02-20T10:00:00Z",
        "unit": "m2",
    }
    row.update(overrides)
    return row


def test_camel_case_rows_become_typed_records():
    records, rejected = parse_evidence_records([_row()])
    assert rejected == []
    r = records[0]
    assert r.item_key == "oak-plank"
    assert r.price_typical == 120.0
    assert r.reliability_grade is Grade.A
    assert r.confidentiality is Confidentiality.PUBLIC
    assert r.captured_at == datetime(2026, 2, 20, 10, tzinfo=UTC)


def test_snake_case_and_naive_timestamps_are_accepted():
    row = {
        "id": 7,
        "category": "flooring",
        "item_key": "oak-plank",
        "price_typical": "99.5",
        "reliability_grade": "C",
        "source_publisher": "Beta",
        "captured_at": "2026-02-20T10:00:00",
    }
    records, _ = parse_evidence_records([row])
    assert records[0].id == "7"
    assert records[0].captured_at.tzinfo is not None


@pytest.mark.parametrize(
    "overrides",
    [
        {"priceTypical": 0},
        {"priceTypical": -3},
        {"priceTypical": None},
        {"reliabilityGrade": "D"},
        {"capturedAt": "yesterday"},
        {"sourcePublisher": "   "},
    ],
)
def test_invalid_rows_are_skipped_and_reported(overrides):
    records, rejected = parse_evidence_records([_row(), _row(id="bad", **overrides)])
    assert [r.id for r in records] == ["ev-1"]
    assert [r.record_id for r in rejected] == ["bad"]
    assert rejected[0].reason


def test_strict_mode_raises_with_ids():
    with pytest.raises(MalformedRecordError) as ei:
        parse_evidence_records([_row(id="bad", priceTypical=0)], skip_invalid=False)
    assert ei.value.record_ids == ["bad"]


def test_source_rows_parse_and_reject():
    entries = parse_source_entries(
        [{"id": 3, "name": "Alpha", "consecutiveFailures": 5, "reliabilityDefault": "b", "isActive": True}]
    )
    assert entries[0].id == "3"
    assert entries[0].is_disabled
    assert entries[0].reliability_default is Grade.B
    with pytest.raises(MalformedRecordError):
        parse_source_entries([{"id": "x", "name": "Bad", "consecutiveFailures": -1}])


def test_pipeline_run_is_optional():
    assert parse_pipeline_run(None) is None
    run = parse_pipeline_run({"id": "r1", "status": "failed", "startedAt": "2026-03-01T00:00:00Z"})
    assert run.status is RunStatus.FAILED
    with pytest.raises(MalformedRecordError):
        parse_pipeline_run({"id": "r1", "status": "exploded", "startedAt": "2026-03-01T00:00:00Z"})


def test_snapshot_from_mapping_accepts_camel_case_run_key():
    snap = snapshot_from_mapping(
        {
            "evidence": [_row(), _row(id="bad", priceTypical=0)],
            "sources": [{"id": "s1", "name": "Alpha"}],
            "latestRun": {"id": "r1", "status": "completed", "startedAt": "2026-03-01T00:00:00Z"},
        }
    )
    assert len(snap.evidence) == 1
    assert [r.record_id for r in snap.rejected] == ["bad"]
    assert snap.latest_run.status is RunStatus.COMPLETED
    with pytest.raises(MalformedRecordError):
        snapshot_from_mapping(["not", "a", "mapping"])


def test_load_snapshot_file(tmp_path):
    path = tmp_path / "snapshot.json"
    path.write_text(json.dumps({"evidence": [_row()], "sources": []}), encoding="utf-8")
    snap = load_snapshot(path)
    assert len(snap.evidence) == 1
    assert snap.latest_run is None

    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    with pytest.raises(MalformedRecordError):
        load_snapshot(broken)
    with pytest.raises(OSError):
        load_snapshot(tmp_path / "missing.json")
