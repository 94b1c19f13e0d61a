from __future__ import annotations

"""Typed errors for the benchmark engine.

Governance intent:
- Programmer errors (unknown grade) fail fast.
- Data-quality errors (empty or malformed evidence) are typed and catchable so
  the caller decides whether to skip a group or block and report.
- None of these are I/O failures; there is nothing to retry.
"""

from typing import Iterable


class BenchmarkEngineError(RuntimeError):
    """Base error for the statistics engine."""


class InvalidGradeError(BenchmarkEngineError, ValueError):
    """Raised when a reliability grade is not one of A/B/C."""

    def __init__(self, grade: object) -> None:
        super().__init__(f"Unrecognized reliability grade: {grade!r} (expected A, B or C).")
        self.grade = grade


class InsufficientEvidenceError(BenchmarkEngineError):
    """Raised when aggregation is invoked on an empty evidence set."""


class MalformedRecordError(BenchmarkEngineError):
    """Raised when evidence fails validation before aggregation."""

    def __init__(self, message: str, *, record_ids: Iterable[str] = ()) -> None:
        super().__init__(message)
        self.record_ids: list[str] = [str(r) for r in record_ids]


class PolicyError(BenchmarkEngineError):
    """Raised when a policy file or override value is invalid."""
