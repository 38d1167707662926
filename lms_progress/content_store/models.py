"""Typed entities read from the content store.

Records coming back from the headless CMS are loosely shaped: relations may be
expanded objects, bare ids or null, ``sort`` may be missing, and list fields
may be null. Everything is normalized here so the progress pipeline only ever
sees well-formed values:

- ids are strings (the CMS may use integer primary keys)
- ``sort`` defaults to 0
- missing/null child collections become empty lists
- children without an id are discarded
"""

from collections.abc import Iterator, Mapping
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ==============================================================================
# Normalization Helpers
# ==============================================================================


def coerce_id(value: Any) -> str | None:
    """Normalize an identifier to a non-empty string (None if absent)."""
    if value is None or isinstance(value, bool):
        return None
    text = str(value).strip()
    return text or None


def coerce_sort(value: Any) -> int:
    """Normalize a sort key; anything missing or unparseable sorts as 0."""
    if value is None or isinstance(value, bool):
        return 0
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def coerce_title(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)


def relation_id(value: Any) -> str | None:
    """Id of a relation that may be expanded (mapping) or a bare key."""
    if isinstance(value, Mapping):
        return coerce_id(value.get("id"))
    return coerce_id(value)


def normalize_children(value: Any) -> list[dict[str, Any]]:
    """Turn a child collection into a list of mappings that carry an id."""
    if not isinstance(value, list | tuple):
        return []

    children: list[dict[str, Any]] = []
    for item in value:
        if isinstance(item, BaseModel):
            children.append(item.model_dump())
        elif isinstance(item, Mapping):
            if coerce_id(item.get("id")) is not None:
                children.append(dict(item))
        elif coerce_id(item) is not None:
            # Unexpanded relation: only the key is known
            children.append({"id": item})
    return children


# ==============================================================================
# Course Structure
# ==============================================================================


class _Node(BaseModel):
    """Common fields of courses, modules and lessons."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    id: str
    title: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _normalize_id(cls, value: Any) -> Any:
        return coerce_id(value) or value

    @field_validator("title", mode="before")
    @classmethod
    def _normalize_title(cls, value: Any) -> str | None:
        return coerce_title(value)


class Lesson(_Node):
    """A lesson inside a module."""

    sort: int = 0

    @field_validator("sort", mode="before")
    @classmethod
    def _normalize_sort(cls, value: Any) -> int:
        return coerce_sort(value)


class Module(_Node):
    """A course module with its lessons (in arrival order)."""

    sort: int = 0
    lessons: list[Lesson] = Field(default_factory=list)

    @field_validator("sort", mode="before")
    @classmethod
    def _normalize_sort(cls, value: Any) -> int:
        return coerce_sort(value)

    @field_validator("lessons", mode="before")
    @classmethod
    def _normalize_lessons(cls, value: Any) -> list[dict[str, Any]]:
        return normalize_children(value)


class Course(BaseModel):
    """A course with its modules (in arrival order)."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    id: str | None = None
    title: str | None = None
    modules: list[Module] = Field(default_factory=list)

    @field_validator("id", mode="before")
    @classmethod
    def _normalize_id(cls, value: Any) -> str | None:
        return coerce_id(value)

    @field_validator("title", mode="before")
    @classmethod
    def _normalize_title(cls, value: Any) -> str | None:
        return coerce_title(value)

    @field_validator("modules", mode="before")
    @classmethod
    def _normalize_modules(cls, value: Any) -> list[dict[str, Any]]:
        return normalize_children(value)

    def iter_lessons(self) -> Iterator[tuple[Module, Lesson]]:
        """Yield ``(module, lesson)`` pairs in stored order."""
        for module in self.modules:
            for lesson in module.lessons:
                yield module, lesson

    @property
    def lesson_ids(self) -> frozenset[str]:
        return frozenset(lesson.id for _, lesson in self.iter_lessons())


# ==============================================================================
# Enrollment
# ==============================================================================


class Student(BaseModel):
    """Student attached to an enrollment."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    first_name: str | None = None
    last_name: str | None = None

    @property
    def full_name(self) -> str | None:
        parts = [part for part in (self.first_name, self.last_name) if part]
        return " ".join(parts) or None


class CompletedLessonRef(BaseModel):
    """One entry of an enrollment's completion record.

    Carries the lesson snapshot as stored on the junction, which may be stale
    or point at a lesson that no longer belongs to the course.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    lesson_id: str
    title: str | None = None
    sort: int = 0
    module_id: str | None = None
    module_title: str | None = None
    module_sort: int = 0


class Enrollment(BaseModel):
    """A student's enrollment in a course, including its completion record.

    Attributes:
        id: Enrollment id
        course_id: Id of the enrolled course (None if the relation is empty)
        course_title: Course title, when the relation was expanded
        date_created: Creation timestamp
        date_updated: Last update timestamp
        percent_complete: Completion percentage as stored by the CMS
        is_completed: Completion flag as stored by the CMS
        student: Student name
        completed_lessons: Raw completion record (may contain duplicates)
        version: Opaque token identifying this snapshot; writes are
            conditional on it
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    id: str
    course_id: str | None = None
    course_title: str | None = None
    date_created: datetime | None = None
    date_updated: datetime | None = None
    percent_complete: Decimal | None = None
    is_completed: bool = False
    student: Student = Field(default_factory=Student)
    completed_lessons: list[CompletedLessonRef] = Field(default_factory=list)
    version: str | None = None

    @field_validator("percent_complete", mode="before")
    @classmethod
    def _normalize_percent(cls, value: Any) -> Decimal | None:
        if value is None or isinstance(value, bool):
            return None
        try:
            return Decimal(str(value))
        except InvalidOperation:
            return None

    @field_validator("is_completed", mode="before")
    @classmethod
    def _normalize_is_completed(cls, value: Any) -> bool:
        return bool(value)

    @property
    def completed_lesson_ids(self) -> tuple[str, ...]:
        """Completed lesson ids, deduplicated, in first-seen order."""
        return tuple(dict.fromkeys(ref.lesson_id for ref in self.completed_lessons))

    @classmethod
    def from_directus(cls, data: Mapping[str, Any]) -> "Enrollment":
        """Build an enrollment from a Directus ``lms_enrollments`` item.

        The completion record is a many-to-many junction whose entries look
        like ``{"lms_lessons_id": {"id": .., "module": {..}}}``. Entries whose
        lesson is missing are dropped.
        """
        course = data.get("course")
        student = data.get("user_enrolled")

        completed: list[CompletedLessonRef] = []
        for item in data.get("lessons_completed") or []:
            if not isinstance(item, Mapping):
                continue
            lesson = item.get("lms_lessons_id")
            lesson_id = relation_id(lesson)
            if lesson_id is None:
                continue

            lesson_data = lesson if isinstance(lesson, Mapping) else {}
            module = lesson_data.get("module")
            module_data = module if isinstance(module, Mapping) else {}
            completed.append(
                CompletedLessonRef(
                    lesson_id=lesson_id,
                    title=coerce_title(lesson_data.get("title")),
                    sort=coerce_sort(lesson_data.get("sort")),
                    module_id=relation_id(module),
                    module_title=coerce_title(module_data.get("title")),
                    module_sort=coerce_sort(module_data.get("sort")),
                )
            )

        return cls(
            id=coerce_id(data.get("id")) or "",
            course_id=relation_id(course),
            course_title=(
                coerce_title(course.get("title"))
                if isinstance(course, Mapping)
                else None
            ),
            date_created=data.get("date_created"),
            date_updated=data.get("date_updated"),
            percent_complete=data.get("percent_complete"),
            is_completed=data.get("is_completed"),
            student=Student.model_validate(student)
            if isinstance(student, Mapping)
            else Student(),
            completed_lessons=completed,
            version=coerce_id(data.get("date_updated")),
        )
