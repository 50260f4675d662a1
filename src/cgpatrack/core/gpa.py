from __future__ import annotations

from typing import Iterable

from cgpatrack.core.models import (
    CGPAResult,
    SemesterBreakdown,
    SemesterGPA,
    SemesterRecord,
    SubjectRecord,
)


def round_gpa(value: float, places: int = 2) -> float:
    """Display rounding for API responses; the compute functions never round."""
    return round(value, places)


def compute_semester_gpa(subjects: Iterable[SubjectRecord]) -> SemesterGPA:
    """
    SGPA = Σ(grade_point * credits) / Σ(credits) over graded subjects only.
    Pending subjects (no grade point yet) are left out of both sums.
    """
    weighted = 0.0
    total_credits = 0.0
    completed = 0
    for subject in subjects:
        if subject.grade_point is None:
            continue
        weighted += subject.grade_point * subject.credits
        total_credits += subject.credits
        completed += 1
    sgpa = weighted / total_credits if total_credits > 0 else 0.0
    return SemesterGPA(
        sgpa=sgpa,
        total_credits=total_credits,
        completed_count=completed,
        weighted_sum=weighted,
    )


def compute_cgpa(semesters: Iterable[SemesterRecord]) -> CGPAResult:
    """
    CGPA pools every graded subject of every semester into one credit-weighted
    average. It is not the mean of the per-semester SGPAs.
    """
    weighted = 0.0
    total_credits = 0.0
    breakdown: list[SemesterBreakdown] = []
    for sem in sorted(semesters, key=lambda s: s.semester_number):
        result = compute_semester_gpa(sem.subjects)
        weighted += result.weighted_sum
        total_credits += result.total_credits
        breakdown.append(
            SemesterBreakdown(
                semester_number=sem.semester_number,
                sgpa=result.sgpa,
                total_credits=result.total_credits,
            )
        )
    cgpa = weighted / total_credits if total_credits > 0 else 0.0
    return CGPAResult(cgpa=cgpa, total_credits=total_credits, semester_breakdown=tuple(breakdown))
