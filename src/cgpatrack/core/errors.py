from dataclasses import dataclass
from typing import Dict


@dataclass(frozen=True)
class ValidationError:
    field: str
    kind: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"field": self.field, "kind": self.kind, "message": self.message}


class GradeValidationError(ValueError):
    default_field = "subject"

    def __init__(self, message: str, field: str = "") -> None:
        super().__init__(message)
        self.field = field or self.default_field
        self.message = message

    def to_error(self) -> ValidationError:
        return ValidationError(field=self.field, kind=type(self).__name__, message=self.message)


class UnknownGradeError(GradeValidationError):
    default_field = "grade_letter"


class InvalidCreditsError(GradeValidationError):
    default_field = "credits"


class InvalidNameError(GradeValidationError):
    default_field = "name"


class InvalidPercentageError(GradeValidationError):
    default_field = "percentage"


class AmbiguousPercentageRangeError(GradeValidationError):
    default_field = "percentage"


class NoMatchingGradeBandError(GradeValidationError):
    default_field = "percentage"


class InvalidGradePointError(GradeValidationError):
    default_field = "grade_point"


class InvalidScaleError(GradeValidationError):
    default_field = "definitions"
