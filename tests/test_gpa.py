import unittest

from cgpatrack.core.gpa import compute_cgpa, compute_semester_gpa, round_gpa
from cgpatrack.core.models import SemesterRecord, SubjectRecord


def subject(credits, point, name="Subject"):
    return SubjectRecord(name=name, credits=credits, grade_point=point)


class SemesterGPATests(unittest.TestCase):
    def test_pending_subjects_are_excluded(self):
        result = compute_semester_gpa([subject(4, 10), subject(3, 8), subject(3, None)])
        self.assertAlmostEqual(result.sgpa, 64 / 7)
        self.assertEqual(result.total_credits, 7)
        self.assertEqual(result.completed_count, 2)

    def test_empty_semester(self):
        result = compute_semester_gpa([])
        self.assertEqual((result.sgpa, result.total_credits, result.completed_count), (0.0, 0, 0))

    def test_only_pending_subjects(self):
        result = compute_semester_gpa([subject(4, None), subject(2, None)])
        self.assertEqual(result.sgpa, 0.0)
        self.assertEqual(result.total_credits, 0)
        self.assertEqual(result.completed_count, 0)

    def test_zero_point_is_a_completed_grade(self):
        result = compute_semester_gpa([subject(4, 0), subject(4, 10)])
        self.assertAlmostEqual(result.sgpa, 5.0)
        self.assertEqual(result.completed_count, 2)

    def test_matches_independent_weighted_average(self):
        courses = [subject(4, 9), subject(5, 8), subject(2, 10), subject(1.5, 7)]
        expected = sum(c.credits * c.grade_point for c in courses) / sum(c.credits for c in courses)
        self.assertAlmostEqual(compute_semester_gpa(courses).sgpa, expected)

    def test_full_precision_is_kept(self):
        result = compute_semester_gpa([subject(4, 10), subject(3, 8)])
        self.assertNotEqual(result.sgpa, round(result.sgpa, 2))
        self.assertEqual(round_gpa(result.sgpa), 9.14)


class CGPATests(unittest.TestCase):
    def test_credit_weighted_not_mean_of_sgpa(self):
        sem1 = SemesterRecord(1, [subject(2, 10)])
        sem2 = SemesterRecord(2, [subject(20, 4)])
        result = compute_cgpa([sem1, sem2])
        self.assertAlmostEqual(result.cgpa, 100 / 22)
        self.assertAlmostEqual(round_gpa(result.cgpa), 4.55)
        self.assertEqual(result.total_credits, 22)

    def test_pooled_average_over_all_subjects(self):
        sem1 = SemesterRecord(1, [subject(4, 8), subject(4, 9)])
        sem2 = SemesterRecord(2, [subject(5, 10), subject(2, 8)])
        self.assertAlmostEqual(compute_cgpa([sem1, sem2]).cgpa, 134 / 15)

    def test_ungraded_semester_does_not_drag_down_cgpa(self):
        sem1 = SemesterRecord(1, [subject(4, 9)])
        sem2 = SemesterRecord(2, [subject(4, None)])
        sem3 = SemesterRecord(3, [])
        result = compute_cgpa([sem1, sem2, sem3])
        self.assertAlmostEqual(result.cgpa, 9.0)
        self.assertEqual(result.total_credits, 4)
        self.assertEqual([b.sgpa for b in result.semester_breakdown], [9.0, 0.0, 0.0])

    def test_no_completed_subjects(self):
        result = compute_cgpa([SemesterRecord(1, [subject(3, None)])])
        self.assertEqual(result.cgpa, 0.0)
        self.assertEqual(result.total_credits, 0)
        self.assertEqual(compute_cgpa([]).semester_breakdown, ())

    def test_breakdown_is_ordered_by_semester_number(self):
        result = compute_cgpa([SemesterRecord(5, [subject(3, 7)]), SemesterRecord(2, [subject(3, 9)])])
        self.assertEqual([b.semester_number for b in result.semester_breakdown], [2, 5])
        self.assertEqual(
            result.to_dict()["semesterBreakdown"][0],
            {"semesterNumber": 2, "sgpa": 9.0, "totalCredits": 3},
        )

    def test_repeated_calls_are_identical(self):
        semesters = (SemesterRecord(1, [subject(3, 7), subject(4, None)]), SemesterRecord(2, [subject(2, 10)]))
        self.assertEqual(compute_cgpa(semesters), compute_cgpa(semesters))
        self.assertEqual(compute_semester_gpa(semesters[0].subjects), compute_semester_gpa(semesters[0].subjects))


if __name__ == "__main__":
    unittest.main()
