"""Course progress API endpoints.

Provides routes for:
- The progress view of an enrollment (optionally completing a lesson first)
- Lesson completion
- The canonical course structure of an enrollment

Identifiers are optional query parameters on purpose: a missing identifier is
reported as 400 by the services before any content store call. Progress
errors are turned into JSON responses by the handler registered in main.
"""

import structlog
from fastapi import APIRouter, Query, Response, status

from lms_progress.content_store.models import Course

from .dependencies import LessonCompletionServiceDep, ProgressServiceDep
from .schemas import (
    CompleteLessonResponse,
    CompletionError,
    CompletionStatus,
    ProgressView,
)
from .service import NotFoundError, UpstreamFailureError


logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/v1/progress", tags=["progress"])


@router.get(
    "",
    response_model=ProgressView,
    summary="Get enrollment progress",
)
async def get_progress(
    progress_service: ProgressServiceDep,
    completion_service: LessonCompletionServiceDep,
    enrollment_id: str | None = Query(None, description="Enrollment id"),
    completed_lesson_id: str | None = Query(
        None, description="Lesson to mark complete before building the view"
    ),
) -> ProgressView:
    """Get the ordered, completion-annotated progress of an enrollment.

    When ``completed_lesson_id`` is given the lesson is completed first and
    the view is built from a fresh read, reflecting the new state. A lesson
    that cannot be completed (unknown lesson, store failure) does not fail
    the request: the view is still returned with ``completion_error`` set.
    """
    completion_status = None
    completion_error = None
    if completed_lesson_id:
        try:
            result = await completion_service.complete(
                enrollment_id, completed_lesson_id
            )
            completion_status = result.status
        except (NotFoundError, UpstreamFailureError) as e:
            logger.warning(
                "progress_view_completion_failed",
                enrollment_id=enrollment_id,
                lesson_id=completed_lesson_id,
                code=e.code,
                error=e.message,
            )
            completion_error = CompletionError(
                code=e.code, message=e.message, upstream_status=e.upstream_status
            )

    view = await progress_service.build_progress_view(enrollment_id)
    return view.model_copy(
        update={
            "completion_status": completion_status,
            "completion_error": completion_error,
        }
    )


@router.post(
    "/complete",
    response_model=CompleteLessonResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Mark lesson as complete",
    responses={status.HTTP_200_OK: {"model": CompleteLessonResponse}},
)
async def complete_lesson(
    response: Response,
    completion_service: LessonCompletionServiceDep,
    enrollment_id: str | None = Query(None, description="Enrollment id"),
    lesson_id: str | None = Query(None, description="Lesson id"),
) -> CompleteLessonResponse:
    """Mark a lesson complete for an enrollment.

    Returns 201 when the lesson was newly completed and 200 when it was
    already complete (nothing written). Safe to retry.
    """
    result = await completion_service.complete(enrollment_id, lesson_id)
    if result.status == CompletionStatus.ALREADY_COMPLETED:
        response.status_code = status.HTTP_200_OK
    return result


@router.get(
    "/lessons-to-complete",
    response_model=Course,
    summary="Get course structure for an enrollment",
)
async def get_lessons_to_complete(
    progress_service: ProgressServiceDep,
    enrollment_id: str | None = Query(None, description="Enrollment id"),
) -> Course:
    """Get the enrollment's course with modules and lessons in course order."""
    return await progress_service.get_lessons_to_complete(enrollment_id)
