from __future__ import annotations

import math
from dataclasses import replace
from typing import Any

from cgpatrack.core.errors import (
    AmbiguousPercentageRangeError,
    InvalidCreditsError,
    InvalidGradePointError,
    InvalidNameError,
    InvalidPercentageError,
    InvalidScaleError,
    NoMatchingGradeBandError,
    UnknownGradeError,
    ValidationError,
)
from cgpatrack.core.models import GradeDefinition, GradingScale, ScaleKind, SubjectRecord

# (letter, point, min %, max %)
TEN_POINT_GRADES: list[tuple[str, float, float, float]] = [
    ("O", 10, 90, 100),
    ("A+", 9, 80, 89),
    ("A", 8, 70, 79),
    ("B+", 7, 60, 69),
    ("B", 6, 50, 59),
    ("C", 5, 40, 49),
    ("P", 4, 35, 39),
    ("F", 0, 0, 34),
]

FOUR_POINT_GRADES: list[tuple[str, float, float, float]] = [
    ("A", 4.0, 90, 100),
    ("A-", 3.7, 85, 89),
    ("B+", 3.3, 80, 84),
    ("B", 3.0, 75, 79),
    ("B-", 2.7, 70, 74),
    ("C+", 2.3, 65, 69),
    ("C", 2.0, 60, 64),
    ("C-", 1.7, 55, 59),
    ("D", 1.0, 50, 54),
    ("F", 0.0, 0, 49),
]

DEFAULT_GRADES = {
    ScaleKind.TEN_POINT: TEN_POINT_GRADES,
    ScaleKind.FOUR_POINT: FOUR_POINT_GRADES,
}


def default_scale(kind: ScaleKind) -> GradingScale:
    try:
        bands = DEFAULT_GRADES[kind]
    except KeyError as exc:
        raise InvalidScaleError(f"No default grades for scale {kind.value}", field="grading_scale") from exc
    return GradingScale(kind, tuple(GradeDefinition(*band) for band in bands))


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def resolve_grade_point(scale: GradingScale, grade_letter: str) -> float:
    definition = scale.find(grade_letter)
    if definition is None:
        raise UnknownGradeError(
            f"Unknown grade '{grade_letter}'. Expected one of: {', '.join(scale.letters())}"
        )
    return definition.point


def grade_for_percentage(scale: GradingScale, percentage: float) -> GradeDefinition:
    if not _is_number(percentage) or not math.isfinite(percentage):
        raise InvalidPercentageError("Percentage must be a finite number")
    if not 0 <= percentage <= 100:
        raise InvalidPercentageError(f"Percentage {percentage} is outside 0-100")

    matches = [d for d in scale.definitions if d.covers(percentage)]
    if not matches:
        raise NoMatchingGradeBandError(f"No grade band covers {percentage}%")
    if len(matches) > 1:
        letters = ", ".join(d.letter for d in matches)
        raise AmbiguousPercentageRangeError(f"{percentage}% matches several grade bands: {letters}")
    return matches[0]


def validate_scale(scale: GradingScale) -> list[ValidationError]:
    """
    Check a college's grade definitions: unique letters, points within
    0..max_point, percentage ranges inside 0..100 and no overlap between
    bands. Gaps between bands are allowed.
    """
    errors: list[ValidationError] = []
    seen: set[str] = set()
    for d in scale.definitions:
        if d.letter in seen:
            errors.append(InvalidScaleError(f"Duplicate grade letter '{d.letter}'").to_error())
        seen.add(d.letter)
        if not _is_number(d.point) or not 0 <= d.point <= scale.max_point:
            errors.append(
                InvalidScaleError(f"Grade '{d.letter}' point {d.point} is outside 0-{scale.max_point}").to_error()
            )
        if not 0 <= d.min_percentage <= d.max_percentage <= 100:
            errors.append(
                InvalidScaleError(
                    f"Grade '{d.letter}' range {d.min_percentage}-{d.max_percentage} is invalid"
                ).to_error()
            )

    ordered = sorted(scale.definitions, key=lambda d: d.min_percentage)
    for lower, upper in zip(ordered, ordered[1:]):
        if upper.min_percentage <= lower.max_percentage:
            errors.append(
                InvalidScaleError(f"Grade bands '{lower.letter}' and '{upper.letter}' overlap").to_error()
            )
    return errors


def validate_subject_input(
    subject: SubjectRecord,
    scale: GradingScale,
    *,
    allow_zero_credits: bool = False,
) -> list[ValidationError]:
    """
    Collect every problem with a subject instead of stopping at the first one.
    A percentage is only checked when no grade letter was supplied.
    """
    errors: list[ValidationError] = []

    if not isinstance(subject.name, str) or not subject.name.strip():
        errors.append(InvalidNameError("Subject name is required").to_error())

    credits = subject.credits
    if not _is_number(credits) or not math.isfinite(credits):
        errors.append(InvalidCreditsError("Credits must be a finite number").to_error())
    elif credits < 0 or (credits == 0 and not allow_zero_credits):
        errors.append(InvalidCreditsError("Credits must be greater than 0").to_error())

    if subject.grade_letter is not None:
        try:
            resolve_grade_point(scale, subject.grade_letter)
        except UnknownGradeError as exc:
            errors.append(exc.to_error())
    elif subject.percentage is not None:
        try:
            grade_for_percentage(scale, subject.percentage)
        except (InvalidPercentageError, NoMatchingGradeBandError, AmbiguousPercentageRangeError) as exc:
            errors.append(exc.to_error())
    elif subject.grade_point is not None:
        point = subject.grade_point
        if not _is_number(point) or not math.isfinite(point) or not 0 <= point <= scale.max_point:
            errors.append(
                InvalidGradePointError(f"Grade point must be between 0 and {scale.max_point}").to_error()
            )

    return errors


def resolve_subject(subject: SubjectRecord, scale: GradingScale) -> SubjectRecord:
    if subject.grade_letter is not None:
        return replace(subject, grade_point=resolve_grade_point(scale, subject.grade_letter))
    if subject.percentage is not None:
        definition = grade_for_percentage(scale, subject.percentage)
        return replace(subject, grade_letter=definition.letter, grade_point=definition.point)
    return subject
