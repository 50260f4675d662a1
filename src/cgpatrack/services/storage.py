from __future__ import annotations

import hashlib
import logging
import sqlite3
from pathlib import Path
from typing import Any, Iterable

from cgpatrack.config.settings import settings
from cgpatrack.core.errors import ValidationError
from cgpatrack.core.grades import resolve_subject, validate_scale, validate_subject_input
from cgpatrack.core.models import (
    GradeDefinition,
    GradingScale,
    ScaleKind,
    SemesterRecord,
    SubjectRecord,
)

logger = logging.getLogger(__name__)

SEMESTER_FIELDS = ("semester_number", "start_date", "end_date")
SUBJECT_GRADE_FIELDS = ("grade_letter", "grade_point", "percentage")


class StorageError(Exception):
    pass


class NotFoundError(StorageError):
    pass


class ConflictError(StorageError):
    pass


class SubjectValidationError(StorageError):
    def __init__(self, errors: list[ValidationError]) -> None:
        super().__init__("; ".join(e.message for e in errors))
        self.errors = errors


class ScaleValidationError(StorageError):
    def __init__(self, errors: list[ValidationError]) -> None:
        super().__init__("; ".join(e.message for e in errors))
        self.errors = errors


class Storage:
    def __init__(self, db_path: str = "cgpa.db") -> None:
        self.db_path = db_path
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys = ON")
        self._init_schema()

    @classmethod
    def from_settings(cls) -> "Storage":
        return cls(settings.database_path)

    def close(self) -> None:
        self.conn.close()

    def _init_schema(self) -> None:
        cur = self.conn.cursor()
        cur.executescript(
            """
            CREATE TABLE IF NOT EXISTS colleges (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              name TEXT UNIQUE NOT NULL,
              grading_scale TEXT NOT NULL,
              description TEXT,
              max_gpa REAL
            );

            CREATE TABLE IF NOT EXISTS grades (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              college_id INTEGER NOT NULL,
              grade_letter TEXT NOT NULL,
              grade_point REAL NOT NULL,
              min_percentage REAL NOT NULL,
              max_percentage REAL NOT NULL,
              UNIQUE(college_id, grade_letter),
              FOREIGN KEY(college_id) REFERENCES colleges(id) ON DELETE CASCADE
            );

            CREATE TABLE IF NOT EXISTS users (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              username TEXT UNIQUE NOT NULL,
              email TEXT UNIQUE NOT NULL,
              password_hash TEXT NOT NULL,
              college_id INTEGER,
              profile_completed INTEGER NOT NULL DEFAULT 0,
              FOREIGN KEY(college_id) REFERENCES colleges(id)
            );

            CREATE TABLE IF NOT EXISTS semesters (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              user_id INTEGER NOT NULL,
              semester_number INTEGER NOT NULL,
              start_date TEXT,
              end_date TEXT,
              UNIQUE(user_id, semester_number),
              FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE
            );

            CREATE TABLE IF NOT EXISTS subjects (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              semester_id INTEGER NOT NULL,
              name TEXT NOT NULL,
              credits REAL NOT NULL,
              grade_letter TEXT,
              grade_point REAL,
              FOREIGN KEY(semester_id) REFERENCES semesters(id) ON DELETE CASCADE
            );
            """
        )
        self.conn.commit()

    @staticmethod
    def _hash_password(password: str) -> str:
        return hashlib.sha256(password.encode("utf-8")).hexdigest()

    def _insert(self, sql: str, params: tuple, conflict_message: str) -> int:
        try:
            cur = self.conn.execute(sql, params)
        except sqlite3.IntegrityError as exc:
            self.conn.rollback()
            raise ConflictError(conflict_message) from exc
        self.conn.commit()
        return int(cur.lastrowid)

    # Colleges and grading scales

    def create_college(
        self,
        name: str,
        grading_scale: ScaleKind,
        description: str | None = None,
        max_gpa: float | None = None,
    ) -> int:
        college_id = self._insert(
            "INSERT INTO colleges(name, grading_scale, description, max_gpa) VALUES(?,?,?,?)",
            (name.strip(), ScaleKind(grading_scale).value, description, max_gpa),
            f"College '{name.strip()}' already exists",
        )
        logger.debug("Created college %s (%s)", college_id, name)
        return college_id

    def list_colleges(self) -> list[dict[str, Any]]:
        cur = self.conn.execute("SELECT * FROM colleges ORDER BY name")
        return [dict(row) for row in cur.fetchall()]

    def get_college(self, college_id: int) -> dict[str, Any]:
        row = self.conn.execute("SELECT * FROM colleges WHERE id=?", (college_id,)).fetchone()
        if not row:
            raise NotFoundError("College not found")
        return dict(row)

    def find_college_by_name(self, name: str) -> dict[str, Any] | None:
        row = self.conn.execute(
            "SELECT * FROM colleges WHERE lower(name)=lower(?)",
            (name.strip(),),
        ).fetchone()
        return dict(row) if row else None

    def add_grades(self, college_id: int, grades: Iterable[GradeDefinition]) -> int:
        """
        Add the grade definitions a college does not have yet and return how
        many were new. The college's resulting scale has to pass
        `validate_scale`; when it does not, nothing is written.
        """
        college = self.get_college(college_id)
        current = self.get_grading_scale(college_id)
        known = set(current.letters())
        new = [grade for grade in grades if grade.letter not in known]
        if not new:
            return 0

        candidate = GradingScale(
            kind=current.kind,
            definitions=current.definitions + tuple(new),
            max_point=college["max_gpa"],
        )
        errors = validate_scale(candidate)
        if errors:
            raise ScaleValidationError(errors)

        try:
            self.conn.executemany(
                """INSERT INTO grades(college_id, grade_letter, grade_point, min_percentage, max_percentage)
                   VALUES(?,?,?,?,?)""",
                [(college_id, g.letter, g.point, g.min_percentage, g.max_percentage) for g in new],
            )
        except sqlite3.IntegrityError as exc:
            self.conn.rollback()
            raise ConflictError("Grade letter already exists") from exc
        self.conn.commit()
        logger.debug("Added %d grades to college %s", len(new), college_id)
        return len(new)

    def upsert_grade(self, college_id: int, grade: GradeDefinition) -> bool:
        """Insert a grade definition unless the college already has that letter."""
        return self.add_grades(college_id, [grade]) > 0

    def list_grades(self, college_id: int) -> list[dict[str, Any]]:
        cur = self.conn.execute(
            """SELECT grade_letter, grade_point, min_percentage, max_percentage
               FROM grades WHERE college_id=?
               ORDER BY grade_point DESC, min_percentage DESC""",
            (college_id,),
        )
        return [dict(row) for row in cur.fetchall()]

    def get_grading_scale(self, college_id: int) -> GradingScale:
        college = self.get_college(college_id)
        definitions = tuple(
            GradeDefinition(
                letter=row["grade_letter"],
                point=row["grade_point"],
                min_percentage=row["min_percentage"],
                max_percentage=row["max_percentage"],
            )
            for row in self.list_grades(college_id)
        )
        return GradingScale(
            kind=ScaleKind(college["grading_scale"]),
            definitions=definitions,
            max_point=college["max_gpa"],
        )

    # Users

    def create_user(self, username: str, email: str, password: str, college_id: int | None = None) -> int:
        if college_id is not None:
            self.get_college(college_id)
        user_id = self._insert(
            """INSERT INTO users(username, email, password_hash, college_id, profile_completed)
               VALUES(?,?,?,?,?)""",
            (
                username.strip(),
                email.lower().strip(),
                self._hash_password(password),
                college_id,
                1 if college_id is not None else 0,
            ),
            "Username or email already registered",
        )
        logger.debug("Created user %s", user_id)
        return user_id

    def login_user(self, email: str, password: str) -> int | None:
        row = self.conn.execute(
            "SELECT id, password_hash FROM users WHERE email=?",
            (email.lower().strip(),),
        ).fetchone()
        if not row:
            return None
        return int(row["id"]) if row["password_hash"] == self._hash_password(password) else None

    def get_user(self, user_id: int) -> dict[str, Any]:
        row = self.conn.execute(
            """SELECT u.id, u.username, u.email, u.college_id, u.profile_completed,
                      c.name AS college_name, c.grading_scale
               FROM users u LEFT JOIN colleges c ON c.id=u.college_id
               WHERE u.id=?""",
            (user_id,),
        ).fetchone()
        if not row:
            raise NotFoundError("User not found")
        user = dict(row)
        user["profile_completed"] = bool(user["profile_completed"])
        return user

    def complete_profile(self, user_id: int, college_id: int) -> None:
        user = self.get_user(user_id)
        if user["college_id"] is not None:
            raise ConflictError("College is already set for this user")
        self.get_college(college_id)
        self.conn.execute(
            "UPDATE users SET college_id=?, profile_completed=1 WHERE id=?",
            (college_id, user_id),
        )
        self.conn.commit()

    def user_grading_scale(self, user_id: int) -> GradingScale:
        user = self.get_user(user_id)
        if user["college_id"] is None:
            # Without a college every grade letter is unknown; ungraded subjects still work.
            return GradingScale(ScaleKind.CUSTOM, ())
        return self.get_grading_scale(user["college_id"])

    # Semesters

    def create_semester(
        self,
        user_id: int,
        semester_number: int,
        start_date: str | None = None,
        end_date: str | None = None,
    ) -> int:
        if semester_number < 1:
            raise StorageError("Semester number must be a positive integer")
        self.get_user(user_id)
        semester_id = self._insert(
            "INSERT INTO semesters(user_id, semester_number, start_date, end_date) VALUES(?,?,?,?)",
            (user_id, semester_number, start_date, end_date),
            f"Semester {semester_number} already exists",
        )
        logger.debug("Created semester %s for user %s", semester_id, user_id)
        return semester_id

    def _subjects_by_semester(self, user_id: int) -> dict[int, list[dict[str, Any]]]:
        cur = self.conn.execute(
            """SELECT sub.*
               FROM subjects sub JOIN semesters sem ON sem.id=sub.semester_id
               WHERE sem.user_id=?
               ORDER BY sub.name""",
            (user_id,),
        )
        grouped: dict[int, list[dict[str, Any]]] = {}
        for row in cur.fetchall():
            grouped.setdefault(row["semester_id"], []).append(dict(row))
        return grouped

    def list_semesters(self, user_id: int) -> list[dict[str, Any]]:
        cur = self.conn.execute(
            "SELECT * FROM semesters WHERE user_id=? ORDER BY semester_number",
            (user_id,),
        )
        subjects = self._subjects_by_semester(user_id)
        semesters = []
        for row in cur.fetchall():
            semester = dict(row)
            semester["subjects"] = subjects.get(semester["id"], [])
            semesters.append(semester)
        return semesters

    def get_semester(self, user_id: int, semester_id: int) -> dict[str, Any]:
        row = self.conn.execute(
            "SELECT * FROM semesters WHERE id=? AND user_id=?",
            (semester_id, user_id),
        ).fetchone()
        if not row:
            raise NotFoundError("Semester not found")
        semester = dict(row)
        cur = self.conn.execute(
            "SELECT * FROM subjects WHERE semester_id=? ORDER BY name",
            (semester_id,),
        )
        semester["subjects"] = [dict(r) for r in cur.fetchall()]
        return semester

    def update_semester(self, user_id: int, semester_id: int, **changes: Any) -> None:
        self.get_semester(user_id, semester_id)
        fields = {k: v for k, v in changes.items() if k in SEMESTER_FIELDS}
        if not fields:
            return
        assignments = ", ".join(f"{name}=?" for name in fields)
        try:
            self.conn.execute(
                f"UPDATE semesters SET {assignments} WHERE id=? AND user_id=?",
                (*fields.values(), semester_id, user_id),
            )
        except sqlite3.IntegrityError as exc:
            self.conn.rollback()
            raise ConflictError(f"Semester {fields.get('semester_number')} already exists") from exc
        self.conn.commit()

    def delete_semester(self, user_id: int, semester_id: int) -> None:
        cur = self.conn.execute(
            "DELETE FROM semesters WHERE id=? AND user_id=?",
            (semester_id, user_id),
        )
        self.conn.commit()
        if cur.rowcount == 0:
            raise NotFoundError("Semester not found")
        logger.debug("Deleted semester %s for user %s", semester_id, user_id)

    # Subjects

    def _checked_subject(
        self,
        user_id: int,
        record: SubjectRecord,
        allow_zero_credits: bool,
    ) -> SubjectRecord:
        scale = self.user_grading_scale(user_id)
        errors = validate_subject_input(record, scale, allow_zero_credits=allow_zero_credits)
        if errors:
            raise SubjectValidationError(errors)
        return resolve_subject(record, scale)

    def create_subject(
        self,
        user_id: int,
        semester_id: int,
        name: str,
        credits: float,
        grade_letter: str | None = None,
        grade_point: float | None = None,
        percentage: float | None = None,
        *,
        allow_zero_credits: bool = False,
    ) -> int:
        self.get_semester(user_id, semester_id)
        record = self._checked_subject(
            user_id,
            SubjectRecord(
                name=name,
                credits=credits,
                grade_letter=grade_letter,
                grade_point=grade_point,
                percentage=percentage,
            ),
            allow_zero_credits,
        )
        cur = self.conn.execute(
            """INSERT INTO subjects(semester_id, name, credits, grade_letter, grade_point)
               VALUES(?,?,?,?,?)""",
            (semester_id, record.name.strip(), record.credits, record.grade_letter, record.grade_point),
        )
        self.conn.commit()
        logger.debug("Created subject %s in semester %s", cur.lastrowid, semester_id)
        return int(cur.lastrowid)

    def get_subject(self, user_id: int, subject_id: int) -> dict[str, Any]:
        row = self.conn.execute(
            """SELECT sub.*
               FROM subjects sub JOIN semesters sem ON sem.id=sub.semester_id
               WHERE sub.id=? AND sem.user_id=?""",
            (subject_id, user_id),
        ).fetchone()
        if not row:
            raise NotFoundError("Subject not found")
        return dict(row)

    def update_subject(
        self,
        user_id: int,
        subject_id: int,
        *,
        allow_zero_credits: bool = False,
        **changes: Any,
    ) -> None:
        """
        Apply a partial update. Passing any of grade_letter, grade_point or
        percentage replaces the stored grade as a whole; passing them all as
        None marks the subject pending again.
        """
        current = self.get_subject(user_id, subject_id)
        if any(k in changes for k in SUBJECT_GRADE_FIELDS):
            grade = {k: changes.get(k) for k in SUBJECT_GRADE_FIELDS}
        else:
            grade = {"grade_letter": current["grade_letter"], "grade_point": current["grade_point"]}
        record = self._checked_subject(
            user_id,
            SubjectRecord(
                name=changes.get("name", current["name"]),
                credits=changes.get("credits", current["credits"]),
                **grade,
            ),
            allow_zero_credits,
        )
        self.conn.execute(
            "UPDATE subjects SET name=?, credits=?, grade_letter=?, grade_point=? WHERE id=?",
            (record.name.strip(), record.credits, record.grade_letter, record.grade_point, subject_id),
        )
        self.conn.commit()

    def delete_subject(self, user_id: int, subject_id: int) -> None:
        self.get_subject(user_id, subject_id)
        self.conn.execute("DELETE FROM subjects WHERE id=?", (subject_id,))
        self.conn.commit()

    # Read snapshots for the GPA engine

    @staticmethod
    def to_subject_record(row: dict[str, Any]) -> SubjectRecord:
        return SubjectRecord(
            name=row["name"],
            credits=row["credits"],
            grade_letter=row["grade_letter"],
            grade_point=row["grade_point"],
        )

    def load_semester_record(self, user_id: int, semester_id: int) -> SemesterRecord:
        semester = self.get_semester(user_id, semester_id)
        return SemesterRecord(
            semester_number=semester["semester_number"],
            subjects=tuple(self.to_subject_record(s) for s in semester["subjects"]),
        )

    def load_semester_records(self, user_id: int) -> list[SemesterRecord]:
        return [
            SemesterRecord(
                semester_number=semester["semester_number"],
                subjects=tuple(self.to_subject_record(s) for s in semester["subjects"]),
            )
            for semester in self.list_semesters(user_id)
        ]
