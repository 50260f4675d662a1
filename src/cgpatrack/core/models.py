from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ScaleKind(str, Enum):
    TEN_POINT = "TEN_POINT"
    FOUR_POINT = "FOUR_POINT"
    CUSTOM = "CUSTOM"


BUILTIN_MAX_POINT: dict[ScaleKind, float] = {
    ScaleKind.TEN_POINT: 10.0,
    ScaleKind.FOUR_POINT: 4.0,
}


@dataclass(frozen=True)
class GradeDefinition:
    letter: str
    point: float
    min_percentage: float
    max_percentage: float

    def covers(self, percentage: float) -> bool:
        return self.min_percentage <= percentage <= self.max_percentage

    def to_dict(self) -> dict[str, Any]:
        return {
            "gradeLetter": self.letter,
            "gradePoint": self.point,
            "minPercentage": self.min_percentage,
            "maxPercentage": self.max_percentage,
        }


@dataclass(frozen=True)
class GradingScale:
    kind: ScaleKind
    definitions: tuple[GradeDefinition, ...]
    max_point: float | None = None

    def __post_init__(self) -> None:
        # Accept any iterable of definitions but keep the stored value hashable.
        object.__setattr__(self, "definitions", tuple(self.definitions))
        if self.max_point is None:
            fallback = max((d.point for d in self.definitions), default=0.0)
            object.__setattr__(self, "max_point", BUILTIN_MAX_POINT.get(self.kind, fallback))

    def letters(self) -> list[str]:
        return [d.letter for d in self.definitions]

    def find(self, letter: str) -> GradeDefinition | None:
        for definition in self.definitions:
            if definition.letter == letter:
                return definition
        return None


@dataclass(frozen=True)
class SubjectRecord:
    name: str
    credits: float
    grade_letter: str | None = None
    grade_point: float | None = None
    percentage: float | None = None

    @property
    def is_completed(self) -> bool:
        return self.grade_point is not None


@dataclass(frozen=True)
class SemesterRecord:
    semester_number: int
    subjects: tuple[SubjectRecord, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "subjects", tuple(self.subjects))


@dataclass(frozen=True)
class SemesterGPA:
    sgpa: float
    total_credits: float
    completed_count: int
    weighted_sum: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "sgpa": self.sgpa,
            "totalCredits": self.total_credits,
            "completedCount": self.completed_count,
        }


@dataclass(frozen=True)
class SemesterBreakdown:
    semester_number: int
    sgpa: float
    total_credits: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "semesterNumber": self.semester_number,
            "sgpa": self.sgpa,
            "totalCredits": self.total_credits,
        }


@dataclass(frozen=True)
class CGPAResult:
    cgpa: float
    total_credits: float
    semester_breakdown: tuple[SemesterBreakdown, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "cgpa": self.cgpa,
            "totalCredits": self.total_credits,
            "semesterBreakdown": [item.to_dict() for item in self.semester_breakdown],
        }
