"""Content store access (headless CMS holding courses and enrollments).

Provides:
- Typed course/enrollment entities with defaulting at the parsing boundary
- The ``ContentStorePort`` contract used by the progress services
- A Directus REST implementation and an in-memory implementation
"""

from .directus import DirectusContentStore
from .exceptions import ContentStoreError, VersionConflictError
from .memory import InMemoryContentStore
from .models import (
    CompletedLessonRef,
    Course,
    Enrollment,
    Lesson,
    Module,
    Student,
)
from .port import ContentStorePort


__all__ = [
    "CompletedLessonRef",
    "ContentStoreError",
    "ContentStorePort",
    "Course",
    "DirectusContentStore",
    "Enrollment",
    "InMemoryContentStore",
    "Lesson",
    "Module",
    "Student",
    "VersionConflictError",
]
