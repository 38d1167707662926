"""Contract between the progress services and the content store."""

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from .models import Course, Enrollment, Lesson


@runtime_checkable
class ContentStorePort(Protocol):
    """Read and conditional-write access to courses and enrollments.

    Lookups return ``None`` when the record does not exist. Any other failure
    (transport error, unexpected status, malformed payload) raises
    ``ContentStoreError``.
    """

    async def get_enrollment(self, enrollment_id: str) -> Enrollment | None:
        """Fetch an enrollment with its student, course and completion record."""
        ...

    async def get_course(self, course_id: str) -> Course | None:
        """Fetch a course with its modules and lessons (unsorted)."""
        ...

    async def get_lesson(self, lesson_id: str) -> Lesson | None:
        """Fetch a single lesson."""
        ...

    async def update_enrollment_completions(
        self,
        enrollment_id: str,
        lesson_ids: Sequence[str],
        expected_version: str | None,
    ) -> str | None:
        """Replace the enrollment's completion record with ``lesson_ids``.

        The write only applies if the enrollment is still at
        ``expected_version``; otherwise ``VersionConflictError`` is raised.

        Returns:
            The enrollment's new version token.
        """
        ...

    async def aclose(self) -> None:
        """Release underlying resources."""
        ...
