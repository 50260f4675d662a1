from cgpatrack.core.gpa import compute_cgpa, compute_semester_gpa
from cgpatrack.core.models import CGPAResult, SemesterGPA
from cgpatrack.services.storage import Storage


class GpaService:
    """Reads a user's records from the store and hands them to the GPA engine."""

    def __init__(self, store: Storage) -> None:
        self.store = store

    def semester_gpa(self, user_id: int, semester_id: int) -> SemesterGPA:
        record = self.store.load_semester_record(user_id, semester_id)
        return compute_semester_gpa(record.subjects)

    def cumulative_gpa(self, user_id: int) -> CGPAResult:
        return compute_cgpa(self.store.load_semester_records(user_id))
