"""Pure progress aggregation.

build_course_tree -> merge_completions -> calculate_progress

None of these functions perform I/O or raise on bad data: malformed input
degrades to empty collections and zero counts.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

import structlog
from pydantic import ValidationError

from lms_progress.content_store.models import Course, Lesson, Module

from .schemas import ProgressStats


logger = structlog.get_logger(__name__)

PERCENT_QUANTUM = Decimal("0.01")


# ==============================================================================
# Course Tree
# ==============================================================================


def build_course_tree(raw: Course | Mapping[str, Any] | None) -> Course:
    """Return the course with modules and lessons in canonical order.

    Modules are ordered by ``sort`` and lessons by ``sort`` within their
    module. ``sorted`` is stable, so nodes with equal keys keep their arrival
    order.
    """
    if isinstance(raw, Course):
        course = raw
    elif isinstance(raw, Mapping):
        try:
            course = Course.model_validate(raw)
        except ValidationError as e:
            logger.warning("course_tree_invalid", error=str(e))
            course = Course()
    else:
        course = Course()

    modules = [
        module.model_copy(
            update={"lessons": sorted(module.lessons, key=lambda lesson: lesson.sort)}
        )
        for module in sorted(course.modules, key=lambda module: module.sort)
    ]
    return course.model_copy(update={"modules": modules})


def count_lessons(course: Course) -> int:
    """Number of distinct lessons; an id listed in two modules counts once."""
    return len(course.lesson_ids)


# ==============================================================================
# Completion Merge
# ==============================================================================


@dataclass(frozen=True)
class CompletedLesson:
    """A completed id resolved to its place in the course tree."""

    module: Module
    lesson: Lesson


@dataclass(frozen=True)
class CompletionMerge:
    """Course tree combined with an enrollment's completion record.

    Attributes:
        completed_ids: Completed ids that resolve to a lesson of the course
        completed_lessons: Resolved completed lessons in course order
        unresolved_lesson_ids: Completed ids absent from the course tree
    """

    completed_ids: frozenset[str] = frozenset()
    completed_lessons: tuple[CompletedLesson, ...] = ()
    unresolved_lesson_ids: tuple[str, ...] = ()

    @property
    def completed_count(self) -> int:
        return len(self.completed_ids)

    def is_completed(self, lesson_id: str) -> bool:
        return lesson_id in self.completed_ids


def merge_completions(course: Course, completed_ids: Iterable[str]) -> CompletionMerge:
    """Resolve completed lesson ids against a canonically ordered course.

    The completed-lessons list follows the course order (module sort, then
    lesson sort), never the order in which lessons were completed. Ids that
    no longer resolve are dropped from the list and reported separately.
    """
    wanted = list(dict.fromkeys(completed_ids))
    wanted_set = frozenset(wanted)

    resolved: list[CompletedLesson] = []
    seen: set[str] = set()
    for module, lesson in course.iter_lessons():
        if lesson.id in wanted_set and lesson.id not in seen:
            seen.add(lesson.id)
            resolved.append(CompletedLesson(module=module, lesson=lesson))

    return CompletionMerge(
        completed_ids=frozenset(seen),
        completed_lessons=tuple(resolved),
        unresolved_lesson_ids=tuple(
            lesson_id for lesson_id in wanted if lesson_id not in seen
        ),
    )


# ==============================================================================
# Statistics
# ==============================================================================


def calculate_progress(course: Course, completed_count: int) -> ProgressStats:
    """Derive total/completed/remaining counts and percentage.

    A completed count above the lesson total is a data-integrity problem, not
    an error: it is logged and clamped so ``remaining`` never goes negative.
    """
    total = count_lessons(course)
    completed = max(completed_count, 0)

    if completed > total:
        logger.warning(
            "progress_count_clamped",
            course_id=course.id,
            completed=completed,
            total=total,
        )
        completed = total

    percent = Decimal(0)
    if total:
        percent = (Decimal(completed) * 100 / Decimal(total)).quantize(
            PERCENT_QUANTUM, rounding=ROUND_HALF_UP
        )

    return ProgressStats(
        total=total,
        completed=completed,
        remaining=total - completed,
        percent=percent,
    )
