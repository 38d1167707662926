"""Pydantic schemas for course progress.

Response models for:
- The progress view (ordered modules/lessons with completion flags)
- Progress statistics
- Lesson completion results
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field

from lms_progress.content_store.models import Enrollment, Lesson, Module


class CompletionStatus(str, Enum):
    """Outcome of a lesson completion request."""

    ALREADY_COMPLETED = "already_completed"  # No write performed
    COMPLETED = "completed"  # Newly recorded


# ==============================================================================
# Progress View Schemas
# ==============================================================================


class ProgressStats(BaseModel):
    """Summary counts for one enrollment.

    ``total == completed + remaining`` and ``remaining >= 0`` always hold.
    """

    total: int = Field(0, ge=0, description="Lessons in the course")
    completed: int = Field(0, ge=0, description="Completed lessons in the course")
    remaining: int = Field(0, ge=0, description="Lessons left to complete")
    percent: Decimal = Field(Decimal(0), description="0-100 percentage")


class LessonView(BaseModel):
    """Lesson annotated with its completion state."""

    id: str
    title: str | None = None
    sort: int = 0
    completed: bool = False

    @classmethod
    def from_entity(cls, lesson: Lesson, completed: bool) -> "LessonView":
        return cls(
            id=lesson.id, title=lesson.title, sort=lesson.sort, completed=completed
        )


class ModuleRef(BaseModel):
    """Module a completed lesson belongs to."""

    id: str
    title: str | None = None
    sort: int = 0


class ModuleView(BaseModel):
    """Module with ordered, completion-annotated lessons."""

    id: str
    title: str | None = None
    sort: int = 0
    lessons_completed: int = 0
    lessons_total: int = 0
    lessons: list[LessonView] = Field(default_factory=list)


class CompletedLessonView(BaseModel):
    """Entry of the completed-lessons list (course order, not completion order)."""

    id: str
    title: str | None = None
    sort: int = 0
    module: ModuleRef

    @classmethod
    def from_entity(cls, module: Module, lesson: Lesson) -> "CompletedLessonView":
        return cls(
            id=lesson.id,
            title=lesson.title,
            sort=lesson.sort,
            module=ModuleRef(id=module.id, title=module.title, sort=module.sort),
        )


class EnrollmentSummary(BaseModel):
    """Enrollment header shown above the progress view."""

    id: str
    course_id: str | None = None
    course_title: str | None = None
    student_name: str | None = None
    date_created: datetime | None = None
    date_updated: datetime | None = None
    percent_complete: Decimal | None = None
    is_completed: bool = False

    @classmethod
    def from_entity(cls, enrollment: Enrollment) -> "EnrollmentSummary":
        return cls(
            id=enrollment.id,
            course_id=enrollment.course_id,
            course_title=enrollment.course_title,
            student_name=enrollment.student.full_name,
            date_created=enrollment.date_created,
            date_updated=enrollment.date_updated,
            percent_complete=enrollment.percent_complete,
            is_completed=enrollment.is_completed,
        )


class CompletionError(BaseModel):
    """Why a completion requested with the progress view was not recorded."""

    code: str
    message: str
    upstream_status: int | None = None


class ProgressView(BaseModel):
    """Complete, ordered progress of one enrollment through its course."""

    enrollment: EnrollmentSummary
    course_id: str | None = None
    course_title: str | None = None
    modules: list[ModuleView] = Field(default_factory=list)
    completed_lessons: list[CompletedLessonView] = Field(default_factory=list)
    stats: ProgressStats = Field(default_factory=ProgressStats)
    next_lesson: LessonView | None = Field(
        None, description="First lesson not yet completed, in course order"
    )
    completion_status: CompletionStatus | None = Field(
        None, description="Set when the request also completed a lesson"
    )
    completion_error: CompletionError | None = Field(
        None, description="Set when the requested completion failed"
    )


# ==============================================================================
# Lesson Completion Schemas
# ==============================================================================


class CompleteLessonResponse(BaseModel):
    """Result of a lesson completion request."""

    enrollment_id: str
    lesson_id: str
    status: CompletionStatus
    completed_lesson_ids: list[str] = Field(
        default_factory=list, description="Completion record after the request"
    )
