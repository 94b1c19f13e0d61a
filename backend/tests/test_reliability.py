from __future__ import annotations

import pytest

from conftest import evidence
from intel.core.errors import InvalidGradeError
from intel.core.records import Grade
from intel.core.reliability import grade_distribution, parse_grade, weight_of


def test_grade_weights_are_strictly_ordered():
    assert weight_of(Grade.A) == 3
    assert weight_of(Grade.B) == 2
    assert weight_of(Grade.C) == 1
    assert weight_of("A") > weight_of("B") > weight_of("C")


def test_letter_grades_are_normalized():
    assert parse_grade(" b ") is Grade.B
    assert weight_of("c") == 1


@pytest.mark.parametrize("bad", ["D", "", "AA", None, 3])
def test_unknown_grade_fails_fast(bad):
    with pytest.raises(InvalidGradeError) as ei:
        weight_of(bad)
    assert ei.value.grade == bad


def test_invalid_grade_error_is_a_value_error():
    with pytest.raises(ValueError):
        parse_grade("Z")


def test_grade_distribution_lists_every_grade():
    records = [evidence(grade=Grade.A), evidence(grade=Grade.A), evidence(grade=Grade.C)]
    assert grade_distribution(records) == {"A": 2, "B": 0, "C": 1}
