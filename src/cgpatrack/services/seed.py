import logging
from typing import Dict, List

from cgpatrack.core.grades import DEFAULT_GRADES, default_scale
from cgpatrack.core.models import BUILTIN_MAX_POINT, ScaleKind
from cgpatrack.logging_config import setup_logging
from cgpatrack.services.storage import Storage

logger = logging.getLogger(__name__)

DEFAULT_COLLEGES: List[Dict] = [
    {
        "name": "Newton School of Technology, ADYPU",
        "grading_scale": ScaleKind.TEN_POINT,
        "description": "10-point grading scale",
    },
    {
        "name": "Newton School of Technology, Rishihood",
        "grading_scale": ScaleKind.TEN_POINT,
        "description": "10-point grading scale",
    },
]


def seed_college_grades(store: Storage, college_id: int, kind: ScaleKind) -> int:
    """Add the default grades for a built-in scale. Returns how many were new."""
    if kind not in DEFAULT_GRADES:
        return 0
    return store.add_grades(college_id, default_scale(kind).definitions)


def seed_database(store: Storage) -> Dict[str, int]:
    colleges_created = 0
    if not store.list_colleges():
        for college in DEFAULT_COLLEGES:
            kind = college["grading_scale"]
            store.create_college(
                college["name"],
                kind,
                description=college["description"],
                max_gpa=BUILTIN_MAX_POINT[kind],
            )
            colleges_created += 1
            logger.info("Created college %s", college["name"])
    else:
        logger.info("Colleges already exist, skipping creation")

    grades_added = 0
    for college in store.list_colleges():
        added = seed_college_grades(store, college["id"], ScaleKind(college["grading_scale"]))
        if added:
            logger.info("%s - %s scale: %d grades added", college["name"], college["grading_scale"], added)
        grades_added += added

    return {"colleges": colleges_created, "grades": grades_added}


def main() -> int:
    setup_logging()
    store = Storage.from_settings()
    try:
        result = seed_database(store)
    except Exception:
        logger.exception("Seeding failed")
        return 1
    finally:
        store.close()
    logger.info("Seeding completed: %d colleges, %d grades", result["colleges"], result["grades"])
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
