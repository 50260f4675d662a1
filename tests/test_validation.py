import unittest

from cgpatrack.core.grades import default_scale, validate_subject_input
from cgpatrack.core.models import GradeDefinition, GradingScale, ScaleKind, SubjectRecord

TEN = default_scale(ScaleKind.TEN_POINT)


def kinds(errors):
    return [e.kind for e in errors]


class SubjectValidationTests(unittest.TestCase):
    def test_valid_subjects(self):
        self.assertEqual(validate_subject_input(SubjectRecord("Physics", 4, grade_letter="A+"), TEN), [])
        self.assertEqual(validate_subject_input(SubjectRecord("Physics", 3.5), TEN), [])
        self.assertEqual(validate_subject_input(SubjectRecord("Physics", 4, percentage=91), TEN), [])
        self.assertEqual(validate_subject_input(SubjectRecord("Physics", 4, grade_point=7.5), TEN), [])

    def test_reports_every_problem_in_order(self):
        errors = validate_subject_input(SubjectRecord("  ", -2, grade_letter="Z"), TEN)
        self.assertEqual(kinds(errors), ["InvalidNameError", "InvalidCreditsError", "UnknownGradeError"])
        self.assertEqual([e.field for e in errors], ["name", "credits", "grade_letter"])

    def test_non_finite_credits(self):
        for credits in (float("nan"), float("inf"), "4", None, True):
            errors = validate_subject_input(SubjectRecord("Chem", credits), TEN)
            self.assertEqual(kinds(errors), ["InvalidCreditsError"], credits)

    def test_zero_credits_depend_on_policy(self):
        audit = SubjectRecord("Seminar", 0, grade_letter="P")
        self.assertEqual(kinds(validate_subject_input(audit, TEN)), ["InvalidCreditsError"])
        self.assertEqual(validate_subject_input(audit, TEN, allow_zero_credits=True), [])

    def test_percentage_errors(self):
        out_of_range = validate_subject_input(SubjectRecord("Bio", 3, percentage=200), TEN)
        self.assertEqual(kinds(out_of_range), ["InvalidPercentageError"])

        gappy = GradingScale(ScaleKind.CUSTOM, [GradeDefinition("P", 1, 50, 100)])
        no_band = validate_subject_input(SubjectRecord("Bio", 3, percentage=20), gappy)
        self.assertEqual(kinds(no_band), ["NoMatchingGradeBandError"])

        overlapping = GradingScale(
            ScaleKind.CUSTOM,
            [GradeDefinition("A", 4, 80, 100), GradeDefinition("B", 3, 70, 85)],
        )
        ambiguous = validate_subject_input(SubjectRecord("", 3, percentage=84), overlapping)
        self.assertEqual(kinds(ambiguous), ["InvalidNameError", "AmbiguousPercentageRangeError"])

    def test_letter_takes_precedence_over_percentage(self):
        errors = validate_subject_input(SubjectRecord("Bio", 3, grade_letter="O", percentage=500), TEN)
        self.assertEqual(errors, [])

    def test_direct_grade_point_out_of_scale(self):
        errors = validate_subject_input(SubjectRecord("Bio", 3, grade_point=11), TEN)
        self.assertEqual(kinds(errors), ["InvalidGradePointError"])

    def test_error_records_serialize(self):
        (error,) = validate_subject_input(SubjectRecord("", 3), TEN)
        self.assertEqual(
            error.to_dict(),
            {"field": "name", "kind": "InvalidNameError", "message": "Subject name is required"},
        )


if __name__ == "__main__":
    unittest.main()
