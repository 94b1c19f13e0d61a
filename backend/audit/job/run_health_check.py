from __future__ import annotations

"""Health check entry point: freshness, coverage and price movement report.

Default mode is READ-ONLY:
- Reads the snapshot file only.
- Writes health_report.json and logs warnings.

With --persist, detected anomalies and one audit entry are appended to the
database in a single transaction.
"""

import argparse
import json
import logging
import sys
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Sequence

# Ensure backend/ is importable as top-level `app`.
BASE_DIR = Path(__file__).resolve().parents[2]
if str(BASE_DIR) not in sys.path:
    sys.path.insert(0, str(BASE_DIR))

from sqlalchemy.exc import SQLAlchemyError  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

import app.models as _models  # noqa: F401,E402
from app.core.base import Base  # noqa: E402
from app.core.db import SessionLocal  # noqa: E402
from app.core.env import load_env_if_present  # noqa: E402
from audit.core.tracer import record_health_check  # noqa: E402
from audit.report.health_report import build_report, write_report  # noqa: E402
from intel.core.anomaly import detect_snapshot_anomalies  # noqa: E402
from intel.core.coverage import HealthReport, build_health_report  # noqa: E402
from intel.core.errors import BenchmarkEngineError  # noqa: E402
from intel.core.freshness import HealthLevel  # noqa: E402
from intel.core.history import record_price_anomalies  # noqa: E402
from intel.core.policy import DEFAULT_POLICY, EnginePolicy, resolve_policy  # noqa: E402
from intel.lib.snapshot import Snapshot, load_snapshot  # noqa: E402


UTC = timezone.utc
DEFAULT_OUT = BASE_DIR / "audit" / "report" / "health_report.json"

logger = logging.getLogger("pricebench.audit")


def _log(event: dict) -> None:
    logger.info(json.dumps(event, ensure_ascii=False, default=str))


def _warnings(report: HealthReport, snapshot: Snapshot) -> list[str]:
    s = report.summary
    out: list[str] = []
    if s.overall_health != HealthLevel.HEALTHY:
        out.extend(s.reasons)
    for g in report.coverage_gaps:
        out.append(f"coverage gap in {g.category}: {', '.join(g.reasons)}")
    if s.disabled_sources:
        out.append(f"{s.disabled_sources} source(s) disabled after repeated failures")
    if snapshot.rejected:
        out.append(f"{len(snapshot.rejected)} evidence row(s) rejected at load")
    return out


def run_health_check_job(
    snapshot: Snapshot,
    *,
    session: Optional[Session] = None,
    policy: EnginePolicy = DEFAULT_POLICY,
    now: Optional[datetime] = None,
    include_minor: bool = False,
    run_id: Optional[str] = None,
    actor: Optional[str] = None,
) -> tuple[HealthReport, dict[str, Any]]:
    """Build the health report; append anomalies and an audit entry when a session is given."""
    now = now or datetime.now(tz=UTC)
    run_id = run_id or f"HC-{uuid.uuid4().hex[:8].upper()}"

    anomalies = detect_snapshot_anomalies(snapshot.evidence, include_minor=include_minor, policy=policy.anomaly)
    report = build_health_report(
        snapshot.sources,
        snapshot.evidence,
        now=now,
        latest_run=snapshot.latest_run,
        anomalies=anomalies,
        policy=policy,
    )
    document = build_report(report, warnings=_warnings(report, snapshot))

    for a in report.summary.sources:
        _log(
            {
                "event": "source_freshness",
                "source_id": a.source_id,
                "freshness": a.freshness_level.value,
                "status": a.source_status.value,
            }
        )
    for g in report.coverage_gaps:
        _log({"event": "coverage_gap", "category": g.category, "reasons": g.reasons})

    if session is not None:
        stored = record_price_anomalies(session, report.anomalies)
        record_health_check(session, report, run_id=run_id, started_at=now, actor=actor)
        session.commit()
        _log(
            {
                "event": "health_check_persisted",
                "run_id": run_id,
                "anomalies": stored,
                "already_recorded": len(report.anomalies) - stored,
            }
        )

    return report, document


def _parse_args(argv: Optional[Sequence[str]]) -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="Platform health report from an evidence snapshot.")
    ap.add_argument("--snapshot", required=True, type=Path, help="Snapshot JSON file.")
    ap.add_argument("--out", type=Path, default=DEFAULT_OUT, help="Where to write health_report.json.")
    ap.add_argument(
        "--policy",
        type=Path,
        default=None,
        help="Policy YAML (default: PRICEBENCH_POLICY_PATH, else the bundled policy).",
    )
    ap.add_argument("--include-minor", action="store_true", help="Also report price changes below the report floor.")
    ap.add_argument("--persist", action="store_true", help="Append anomalies and an audit entry to the database.")
    ap.add_argument("--actor", default=None, help="Who triggered the run (recorded in the audit entry).")
    ap.add_argument("--init-db", action="store_true", help="Create tables before writing (development).")
    return ap.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    if not logging.getLogger().handlers:
        logging.basicConfig(level=logging.INFO, format="%(message)s")
    logger.setLevel(logging.INFO)

    args = _parse_args(argv)
    load_env_if_present()

    try:
        policy = resolve_policy(args.policy)
        snapshot = load_snapshot(args.snapshot)
    except (OSError, BenchmarkEngineError) as exc:
        _log({"event": "health_check_failed", "stage": "load", "error": str(exc)})
        return 1

    db: Optional[Session] = None
    if args.persist:
        try:
            db = SessionLocal()
        except RuntimeError as exc:
            _log({"event": "health_check_failed", "stage": "connect", "error": str(exc)})
            return 1

    try:
        if db is not None and args.init_db:
            Base.metadata.create_all(db.get_bind())
        report, document = run_health_check_job(
            snapshot,
            session=db,
            policy=policy,
            include_minor=args.include_minor,
            actor=args.actor,
        )
    except SQLAlchemyError as exc:
        if db is not None:
            db.rollback()
        _log({"event": "health_check_failed", "stage": "persist", "error": exc.__class__.__name__})
        return 1
    finally:
        if db is not None:
            db.close()

    write_report(args.out, document)
    _log(
        {
            "event": "health_report_written",
            "path": str(args.out),
            "overall_health": report.summary.overall_health.value,
            "coverage_gaps": len(report.coverage_gaps),
            "anomalies": len(report.anomalies),
        }
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
