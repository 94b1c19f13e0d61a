"""Reliability grade model.

Maps an A/B/C reliability grade to its aggregation weight. The same weights
drive the weighted mean and the grade sub-score of the confidence score, so
every comparison of reliability in the engine goes through `weight_of`.

- A: most trusted (weight 3)
- B: (weight 2)
- C: baseline (weight 1)
"""

from __future__ import annotations

from typing import Iterable, Union

from intel.core.errors import InvalidGradeError
from intel.core.records import EvidenceRecord, Grade


GRADE_WEIGHTS: dict[Grade, int] = {
    Grade.A: 3,
    Grade.B: 2,
    Grade.C: 1,
}

MAX_GRADE_WEIGHT = max(GRADE_WEIGHTS.values())


def parse_grade(grade: Union[Grade, str]) -> Grade:
    """Coerce a Grade or its letter into a Grade; unknown values fail fast."""
    if isinstance(grade, Grade):
        return grade
    if isinstance(grade, str):
        try:
            return Grade(grade.strip().upper())
        except ValueError:
            raise InvalidGradeError(grade) from None
    raise InvalidGradeError(grade)


def weight_of(grade: Union[Grade, str]) -> int:
    return GRADE_WEIGHTS[parse_grade(grade)]


def grade_distribution(records: Iterable[EvidenceRecord]) -> dict[str, int]:
    """Count records per grade; every grade is present in the result."""
    dist = {g.value: 0 for g in Grade}
    for r in records:
        dist[parse_grade(r.reliability_grade).value] += 1
    return dist
