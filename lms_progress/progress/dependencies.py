"""FastAPI dependencies for course progress.

Provides dependency injection for:
- Progress service
- Lesson completion service
- Error to HTTP status mapping
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from .service import (
    LessonCompletionService,
    ProgressError,
    ProgressService,
)


PROGRESS_ERROR_STATUS = {
    "invalid_identifier": status.HTTP_400_BAD_REQUEST,
    "not_found": status.HTTP_404_NOT_FOUND,
    "upstream_failure": status.HTTP_500_INTERNAL_SERVER_ERROR,
}


async def get_progress_service(request: Request) -> ProgressService:
    """Get progress service from app state."""
    service = getattr(request.app.state, "progress_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Progress service not available",
        )
    return service


async def get_lesson_completion_service(request: Request) -> LessonCompletionService:
    """Get lesson completion service from app state."""
    service = getattr(request.app.state, "lesson_completion_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Lesson completion service not available",
        )
    return service


# Type aliases for dependency injection
ProgressServiceDep = Annotated[ProgressService, Depends(get_progress_service)]
LessonCompletionServiceDep = Annotated[
    LessonCompletionService, Depends(get_lesson_completion_service)
]


def progress_error_status(error: ProgressError) -> int:
    """HTTP status code for a progress error."""
    return PROGRESS_ERROR_STATUS.get(
        error.code, status.HTTP_500_INTERNAL_SERVER_ERROR
    )
