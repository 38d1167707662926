"""Course progress service layer.

Business logic for:
- Building the progress view of an enrollment
- Exposing the canonical course structure of an enrollment
- Marking a lesson complete (idempotent, conflict-safe)
"""

from typing import Any

import structlog

from lms_progress.content_store.exceptions import (
    ContentStoreError,
    VersionConflictError,
)
from lms_progress.content_store.models import Course, Enrollment
from lms_progress.content_store.port import ContentStorePort

from .aggregation import (
    CompletionMerge,
    build_course_tree,
    calculate_progress,
    merge_completions,
)
from .schemas import (
    CompletedLessonView,
    CompleteLessonResponse,
    CompletionStatus,
    EnrollmentSummary,
    LessonView,
    ModuleView,
    ProgressView,
)


logger = structlog.get_logger(__name__)

DEFAULT_MAX_ATTEMPTS = 3


# ==============================================================================
# Custom Exceptions
# ==============================================================================


class ProgressError(Exception):
    """Base progress error."""

    def __init__(
        self,
        message: str,
        code: str = "progress_error",
        upstream_status: int | None = None,
    ):
        self.message = message
        self.code = code
        self.upstream_status = upstream_status
        super().__init__(message)


class ProgressValidationError(ProgressError):
    """A required identifier is missing or malformed."""

    def __init__(self, message: str = "Missing required identifier"):
        super().__init__(message, "invalid_identifier")


class NotFoundError(ProgressError):
    """Enrollment, course or lesson does not exist."""

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message, "not_found")


class UpstreamFailureError(ProgressError):
    """The content store failed or could not be reached."""

    def __init__(self, message: str, upstream_status: int | None = None):
        super().__init__(message, "upstream_failure", upstream_status)


def require_identifier(value: Any, name: str) -> str:
    """Validate a caller supplied identifier before any store call."""
    if isinstance(value, int) and not isinstance(value, bool):
        value = str(value)
    if not isinstance(value, str) or not value.strip():
        raise ProgressValidationError(f"Missing required parameter: {name}")
    return value.strip()


def _upstream_failure(error: ContentStoreError) -> UpstreamFailureError:
    return UpstreamFailureError(error.message, upstream_status=error.status_code)


async def fetch_enrollment(store: ContentStorePort, enrollment_id: str) -> Enrollment:
    """Read an enrollment, translating store failures into progress errors."""
    try:
        enrollment = await store.get_enrollment(enrollment_id)
    except ContentStoreError as e:
        raise _upstream_failure(e) from e
    if enrollment is None:
        raise NotFoundError("Enrollment not found")
    return enrollment


# ==============================================================================
# Progress View
# ==============================================================================


class ProgressService:
    """Builds read-only progress views from content store snapshots."""

    def __init__(self, store: ContentStorePort):
        self.store = store

    async def build_progress_view(self, enrollment_id: Any) -> ProgressView:
        """Build the ordered, completion-annotated view of an enrollment.

        Raises:
            ProgressValidationError: If ``enrollment_id`` is missing
            NotFoundError: If the enrollment or its course does not exist
            UpstreamFailureError: If the content store fails
        """
        enrollment_id = require_identifier(enrollment_id, "enrollment_id")
        enrollment, course = await self._load(enrollment_id)

        merge = merge_completions(course, enrollment.completed_lesson_ids)
        if merge.unresolved_lesson_ids:
            logger.warning(
                "completion_drift_detected",
                enrollment_id=enrollment.id,
                course_id=course.id,
                unresolved_lesson_ids=list(merge.unresolved_lesson_ids),
            )

        stats = calculate_progress(course, merge.completed_count)

        return ProgressView(
            enrollment=EnrollmentSummary.from_entity(enrollment),
            course_id=course.id or enrollment.course_id,
            course_title=course.title or enrollment.course_title,
            modules=self._module_views(course, merge),
            completed_lessons=[
                CompletedLessonView.from_entity(item.module, item.lesson)
                for item in merge.completed_lessons
            ],
            stats=stats,
            next_lesson=self._next_lesson(course, merge),
        )

    async def get_lessons_to_complete(self, enrollment_id: Any) -> Course:
        """Return the canonical course structure for an enrollment."""
        enrollment_id = require_identifier(enrollment_id, "enrollment_id")
        _, course = await self._load(enrollment_id)
        return course

    async def _load(self, enrollment_id: str) -> tuple[Enrollment, Course]:
        enrollment = await fetch_enrollment(self.store, enrollment_id)
        if not enrollment.course_id:
            raise NotFoundError("Enrollment or associated course not found")

        try:
            raw_course = await self.store.get_course(enrollment.course_id)
        except ContentStoreError as e:
            raise _upstream_failure(e) from e
        if raw_course is None:
            raise NotFoundError("Course not found")

        return enrollment, build_course_tree(raw_course)

    @staticmethod
    def _module_views(course: Course, merge: CompletionMerge) -> list[ModuleView]:
        views = []
        for module in course.modules:
            lessons = [
                LessonView.from_entity(lesson, merge.is_completed(lesson.id))
                for lesson in module.lessons
            ]
            views.append(
                ModuleView(
                    id=module.id,
                    title=module.title,
                    sort=module.sort,
                    lessons_completed=sum(1 for lesson in lessons if lesson.completed),
                    lessons_total=len(lessons),
                    lessons=lessons,
                )
            )
        return views

    @staticmethod
    def _next_lesson(course: Course, merge: CompletionMerge) -> LessonView | None:
        for _, lesson in course.iter_lessons():
            if not merge.is_completed(lesson.id):
                return LessonView.from_entity(lesson, completed=False)
        return None


# ==============================================================================
# Lesson Completion
# ==============================================================================


class LessonCompletionService:
    """Records lesson completions on enrollments.

    The completion record is replaced as a whole, conditional on the
    enrollment version that was read. When another writer got there first the
    enrollment is re-read and the merge is redone, so concurrent completions
    of different lessons are never lost and repeated completions of the same
    lesson converge to the same record.
    """

    def __init__(
        self,
        store: ContentStorePort,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ):
        self.store = store
        self.max_attempts = max(max_attempts, 1)

    async def complete(
        self, enrollment_id: Any, lesson_id: Any
    ) -> CompleteLessonResponse:
        """Mark ``lesson_id`` complete for ``enrollment_id``.

        Returns:
            Response with status COMPLETED when a write happened, or
            ALREADY_COMPLETED when the lesson was already in the record

        Raises:
            ProgressValidationError: If an identifier is missing
            NotFoundError: If the enrollment or the lesson does not exist
            UpstreamFailureError: If the content store fails, or the record
                kept changing for ``max_attempts`` attempts
        """
        enrollment_id = require_identifier(enrollment_id, "enrollment_id")
        lesson_id = require_identifier(lesson_id, "lesson_id")

        lesson_verified = False
        for attempt in range(1, self.max_attempts + 1):
            enrollment = await fetch_enrollment(self.store, enrollment_id)

            if not lesson_verified:
                await self._ensure_lesson_exists(lesson_id)
                lesson_verified = True

            current = enrollment.completed_lesson_ids
            if lesson_id in current:
                logger.info(
                    "lesson_already_completed",
                    enrollment_id=enrollment_id,
                    lesson_id=lesson_id,
                )
                return CompleteLessonResponse(
                    enrollment_id=enrollment_id,
                    lesson_id=lesson_id,
                    status=CompletionStatus.ALREADY_COMPLETED,
                    completed_lesson_ids=list(current),
                )

            updated = [*current, lesson_id]
            try:
                await self.store.update_enrollment_completions(
                    enrollment_id,
                    updated,
                    expected_version=enrollment.version,
                )
            except VersionConflictError:
                logger.warning(
                    "completion_conflict_retry",
                    enrollment_id=enrollment_id,
                    lesson_id=lesson_id,
                    attempt=attempt,
                    max_attempts=self.max_attempts,
                )
                continue
            except ContentStoreError as e:
                logger.error(
                    "lesson_completion_failed",
                    enrollment_id=enrollment_id,
                    lesson_id=lesson_id,
                    error=e.message,
                    upstream_status=e.status_code,
                )
                raise _upstream_failure(e) from e

            logger.info(
                "lesson_completed",
                enrollment_id=enrollment_id,
                lesson_id=lesson_id,
                completed_count=len(updated),
                attempt=attempt,
            )
            return CompleteLessonResponse(
                enrollment_id=enrollment_id,
                lesson_id=lesson_id,
                status=CompletionStatus.COMPLETED,
                completed_lesson_ids=updated,
            )

        logger.error(
            "completion_conflict_exhausted",
            enrollment_id=enrollment_id,
            lesson_id=lesson_id,
            attempts=self.max_attempts,
        )
        msg = (
            f"Could not record completion of lesson {lesson_id}: enrollment "
            f"{enrollment_id} kept changing after {self.max_attempts} attempts"
        )
        raise UpstreamFailureError(msg)

    async def _ensure_lesson_exists(self, lesson_id: str) -> None:
        try:
            lesson = await self.store.get_lesson(lesson_id)
        except ContentStoreError as e:
            raise _upstream_failure(e) from e
        if lesson is None:
            raise NotFoundError("Lesson not found")
