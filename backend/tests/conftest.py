from __future__ import annotations

import itertools
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Generator, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool


ROOT = Path(__file__).resolve().parents[2]

# Ensure `backend/` packages are importable as top-level `app`, `intel`, `audit`.
BACKEND_DIR = ROOT / "backend"
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

import app.models as _models  # noqa: F401,E402
from app.core.base import Base  # noqa: E402
from intel.core.records import (  # noqa: E402
    EvidenceRecord,
    Grade,
    PipelineRun,
    RunStatus,
    SourceRegistryEntry,
)


UTC = timezone.utc
NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)

_ids = itertools.count(1)


def evidence(
    price: Any = 100.0,
    grade: Any = Grade.B,
    publisher: str = "Publisher",
    *,
    category: str = "flooring",
    item_key: str = "oak-plank",
    days_old: float = 1,
    **overrides: Any,
) -> EvidenceRecord:
    """Evidence record factory; captured `days_old` days before NOW."""
    fields: dict[str, Any] = {
        "id": f"ev-{next(_ids)}",
        "category": category,
        "item_key": item_key,
        "price_typical": price,
        "reliability_grade": grade,
        "source_publisher": publisher,
        "captured_at": NOW - timedelta(days=days_old),
    }
    fields.update(overrides)
    return EvidenceRecord(**fields)


def source(
    source_id: str = "src-1",
    *,
    days_since: Optional[float] = 1,
    failures: int = 0,
    active: bool = True,
    grade: Grade = Grade.B,
) -> SourceRegistryEntry:
    last = NOW - timedelta(days=days_since) if days_since is not None else None
    return SourceRegistryEntry(
        id=source_id,
        name=f"Source {source_id}",
        is_active=active,
        reliability_default=grade,
        consecutive_failures=failures,
        last_successful_capture_at=last,
    )


def pipeline_run(status: RunStatus = RunStatus.COMPLETED) -> PipelineRun:
    return PipelineRun(id="run-1", status=status, started_at=NOW - timedelta(hours=2), completed_at=NOW)


@pytest.fixture()
def engine() -> Generator[Engine, None, None]:
    """Fresh in-memory SQLite database per test."""
    eng = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(eng)
    try:
        yield eng
    finally:
        eng.dispose()


@pytest.fixture()
def db_session(engine: Engine) -> Generator[Session, None, None]:
    """DB session per test with rollback."""
    SessionLocal = sessionmaker(bind=engine, class_=Session, autoflush=False, autocommit=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
