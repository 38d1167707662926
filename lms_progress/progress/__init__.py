"""Student course progress.

Provides:
- Canonical ordering of a course's modules and lessons
- Merging of the course with an enrollment's completion record
- Progress statistics
- Idempotent lesson completion
"""

from .aggregation import (
    CompletionMerge,
    build_course_tree,
    calculate_progress,
    merge_completions,
)
from .schemas import CompletionStatus, ProgressStats, ProgressView
from .service import (
    LessonCompletionService,
    NotFoundError,
    ProgressError,
    ProgressService,
    ProgressValidationError,
    UpstreamFailureError,
)


__all__ = [
    "CompletionMerge",
    "CompletionStatus",
    "LessonCompletionService",
    "NotFoundError",
    "ProgressError",
    "ProgressService",
    "ProgressStats",
    "ProgressValidationError",
    "ProgressView",
    "UpstreamFailureError",
    "build_course_tree",
    "calculate_progress",
    "merge_completions",
]
