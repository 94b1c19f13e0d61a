"""Benchmark Proposal Generation Job.

Orchestrates:
1. Load the evidence snapshot (ingestion boundary validation)
2. Group evidence by (category, item) and generate proposals
3. Append proposals to history
4. Write one audit entry for the run

Philosophy:
- Partial success is success: malformed rows and thin groups are reported,
  not fatal
- Deterministic statistics; history is append-only
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Sequence

# Ensure backend/ is importable when run as a script.
BASE_DIR = Path(__file__).resolve().parents[2]
if str(BASE_DIR) not in sys.path:
    sys.path.insert(0, str(BASE_DIR))

from sqlalchemy.exc import SQLAlchemyError  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

import app.models as _models  # noqa: F401,E402
from app.core.base import Base  # noqa: E402
from app.core.db import SessionLocal  # noqa: E402
from app.core.env import load_env_if_present  # noqa: E402
from audit.core.tracer import record_proposal_generation  # noqa: E402
from intel.core.errors import BenchmarkEngineError  # noqa: E402
from intel.core.history import record_proposal_batch  # noqa: E402
from intel.core.policy import DEFAULT_POLICY, EnginePolicy, resolve_policy  # noqa: E402
from intel.core.proposal import generate_proposals  # noqa: E402
from intel.lib.snapshot import Snapshot, load_snapshot  # noqa: E402


UTC = timezone.utc
logger = logging.getLogger("pricebench.jobs")


def _log(event: dict) -> None:
    logger.info(json.dumps(event, ensure_ascii=False, default=str))


def run_proposal_generation_job(
    snapshot: Snapshot,
    *,
    session: Optional[Session] = None,
    category: Optional[str] = None,
    min_evidence_count: Optional[int] = None,
    policy: EnginePolicy = DEFAULT_POLICY,
    now: Optional[datetime] = None,
    run_id: Optional[str] = None,
    actor: Optional[str] = None,
) -> dict[str, Any]:
    """Generate proposals for a snapshot; persist them when a session is given."""
    started_at = now or datetime.now(tz=UTC)
    minimum = policy.proposal.min_evidence_count if min_evidence_count is None else min_evidence_count

    batch = generate_proposals(
        snapshot.evidence,
        category=category,
        min_evidence_count=minimum,
        generated_at=started_at,
        run_id=run_id,
        policy=policy.proposal,
    )

    for p in batch.proposals:
        _log(
            {
                "event": "proposal_generated",
                "run_id": batch.run_id,
                "benchmark_key": p.benchmark_key,
                "evidence_count": p.evidence_count,
                "source_diversity": p.source_diversity,
                "confidence_score": p.confidence_score,
                "recommendation": p.recommendation.value,
            }
        )
    for key, count in batch.insufficient_groups.items():
        _log({"event": "group_skipped", "run_id": batch.run_id, "group": key, "evidence_count": count})

    skipped = len(batch.skipped) + len(snapshot.rejected)
    if session is not None:
        record_proposal_batch(session, batch)
        record_proposal_generation(
            session,
            batch,
            category=category,
            min_evidence_count=minimum,
            started_at=started_at,
            actor=actor,
            errors=skipped,
        )
        session.commit()

    return {
        "status": "success",
        "run_id": batch.run_id,
        "total_evidence": batch.total_evidence,
        "groups_analyzed": batch.groups_analyzed,
        "proposals_created": len(batch.proposals),
        "published": sum(1 for p in batch.proposals if p.recommendation.value == "publish"),
        "skipped_records": skipped,
        "persisted": session is not None,
    }


def _parse_args(argv: Optional[Sequence[str]]) -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="Generate benchmark proposals from an evidence snapshot.")
    ap.add_argument("--snapshot", required=True, type=Path, help="Snapshot JSON file.")
    ap.add_argument("--category", default=None, help="Only generate proposals for this category.")
    ap.add_argument("--min-evidence", type=int, default=None, help="Minimum records per group.")
    ap.add_argument(
        "--policy",
        type=Path,
        default=None,
        help="Policy YAML (default: PRICEBENCH_POLICY_PATH, else the bundled policy).",
    )
    ap.add_argument("--actor", default=None, help="Who triggered the run (recorded in the audit entry).")
    ap.add_argument("--dry-run", action="store_true", help="Compute and log only; no database writes.")
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
        _log({"event": "proposal_job_failed", "stage": "load", "error": str(exc)})
        return 1

    if args.dry_run:
        result = run_proposal_generation_job(
            snapshot, category=args.category, min_evidence_count=args.min_evidence, policy=policy
        )
        _log({"event": "proposal_job_complete", **result})
        return 0

    try:
        db = SessionLocal()
    except RuntimeError as exc:
        _log({"event": "proposal_job_failed", "stage": "connect", "error": str(exc)})
        return 1

    try:
        if args.init_db:
            Base.metadata.create_all(db.get_bind())
        result = run_proposal_generation_job(
            snapshot,
            session=db,
            category=args.category,
            min_evidence_count=args.min_evidence,
            policy=policy,
            actor=args.actor,
        )
    except SQLAlchemyError as exc:
        db.rollback()
        _log({"event": "proposal_job_failed", "stage": "persist", "error": exc.__class__.__name__})
        return 1
    finally:
        db.close()

    _log({"event": "proposal_job_complete", **result})
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
