"""In-memory content store.

Keeps raw, CMS-shaped records (unsorted, possibly missing ``sort`` or child
lists) and serves them through the same parsing path as the Directus client.
Every completion write bumps an integer version, and writes are conditional
on it, which mirrors the conditional update used against Directus.

Used by the test-suite and by local development (``CONTENT_STORE_BACKEND=memory``
with an optional JSON seed file).
"""

import asyncio
import json
from collections.abc import Iterable, Mapping, Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import structlog

from .exceptions import VersionConflictError
from .models import Course, Enrollment, Lesson


logger = structlog.get_logger(__name__)


class InMemoryContentStore:
    """Content store holding courses and enrollments in process memory."""

    def __init__(self) -> None:
        self._courses: dict[str, dict[str, Any]] = {}
        self._lessons: dict[str, dict[str, Any]] = {}
        self._enrollments: dict[str, dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    @classmethod
    def from_seed(cls, path: str | Path) -> "InMemoryContentStore":
        """Load courses, lessons and enrollments from a JSON seed file.

        Expected shape::

            {
              "courses": [{"id": .., "title": .., "modules": [..]}],
              "lessons": [{"id": .., "title": .., "sort": ..}],
              "enrollments": [{"id": .., "course_id": .., "student": {..},
                               "completed_lesson_ids": [..]}]
            }
        """
        seed = json.loads(Path(path).read_text(encoding="utf-8"))

        store = cls()
        for course in seed.get("courses", []):
            store.add_course(course)
        for lesson in seed.get("lessons", []):
            store.add_lesson(lesson)
        for enrollment in seed.get("enrollments", []):
            store.add_enrollment(
                enrollment["id"],
                course_id=enrollment.get("course_id"),
                completed_lesson_ids=enrollment.get("completed_lesson_ids", ()),
                student=enrollment.get("student"),
                date_created=enrollment.get("date_created"),
            )

        logger.info(
            "memory_content_store_seeded",
            path=str(path),
            courses=len(store._courses),
            lessons=len(store._lessons),
            enrollments=len(store._enrollments),
        )
        return store

    # ==========================================================================
    # Seeding
    # ==========================================================================

    def add_course(self, course: Mapping[str, Any]) -> None:
        """Store a raw course record and index its lessons."""
        parsed = Course.model_validate(course)
        if parsed.id is None:
            msg = "Course record requires an id"
            raise ValueError(msg)

        self._courses[parsed.id] = dict(course)
        for module, lesson in parsed.iter_lessons():
            self._lessons[lesson.id] = {
                "id": lesson.id,
                "title": lesson.title,
                "sort": lesson.sort,
                "module": {"id": module.id, "title": module.title, "sort": module.sort},
            }

    def add_lesson(
        self,
        lesson: Mapping[str, Any],
        module: Mapping[str, Any] | None = None,
    ) -> None:
        """Store a lesson that is not (or no longer) part of a stored course."""
        parsed = Lesson.model_validate(lesson)
        self._lessons[parsed.id] = {
            "id": parsed.id,
            "title": parsed.title,
            "sort": parsed.sort,
            "module": dict(module) if module else None,
        }

    def remove_lesson(self, lesson_id: str) -> None:
        self._lessons.pop(lesson_id, None)

    def add_enrollment(
        self,
        enrollment_id: str,
        course_id: str | None,
        completed_lesson_ids: Iterable[str] = (),
        student: Mapping[str, Any] | None = None,
        date_created: datetime | str | None = None,
        percent_complete: float | None = None,
        is_completed: bool = False,
    ) -> None:
        """Store an enrollment; the completion list is kept as given."""
        self._enrollments[enrollment_id] = {
            "id": enrollment_id,
            "course_id": course_id,
            "student": dict(student) if student else None,
            "completed": list(completed_lesson_ids),
            "date_created": date_created or datetime.now(UTC),
            "date_updated": None,
            "percent_complete": percent_complete,
            "is_completed": is_completed,
            "version": 0,
        }

    def raw_completed_lesson_ids(self, enrollment_id: str) -> list[str]:
        """Completion record exactly as stored (duplicates included)."""
        return list(self._enrollments[enrollment_id]["completed"])

    # ==========================================================================
    # ContentStorePort
    # ==========================================================================

    async def get_enrollment(self, enrollment_id: str) -> Enrollment | None:
        record = self._enrollments.get(enrollment_id)
        if record is None:
            return None

        course_id = record["course_id"]
        course = self._courses.get(course_id) if course_id else None
        enrollment = Enrollment.from_directus(
            {
                "id": record["id"],
                "date_created": record["date_created"],
                "date_updated": record["date_updated"],
                "percent_complete": record["percent_complete"],
                "is_completed": record["is_completed"],
                "user_enrolled": record["student"],
                "course": (
                    {"id": course_id, "title": course.get("title")}
                    if course
                    else course_id
                ),
                "lessons_completed": [
                    {"lms_lessons_id": self._lessons.get(lesson_id, lesson_id)}
                    for lesson_id in record["completed"]
                ],
            }
        )
        return enrollment.model_copy(update={"version": str(record["version"])})

    async def get_course(self, course_id: str) -> Course | None:
        course = self._courses.get(course_id)
        return Course.model_validate(course) if course is not None else None

    async def get_lesson(self, lesson_id: str) -> Lesson | None:
        lesson = self._lessons.get(lesson_id)
        return Lesson.model_validate(lesson) if lesson is not None else None

    async def update_enrollment_completions(
        self,
        enrollment_id: str,
        lesson_ids: Sequence[str],
        expected_version: str | None,
    ) -> str | None:
        async with self._lock:
            record = self._enrollments.get(enrollment_id)
            if record is None or str(record["version"]) != expected_version:
                raise VersionConflictError

            record["completed"] = list(lesson_ids)
            record["version"] += 1
            record["date_updated"] = datetime.now(UTC)
            return str(record["version"])

    async def aclose(self) -> None:
        return None
