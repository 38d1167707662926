"""Shared fixtures: an in-memory content store and an app wired to it."""

import os


os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_FILE_ENABLED", "false")
os.environ.setdefault("CONTENT_STORE_BACKEND", "memory")

import pytest  # noqa: E402
from fastapi import FastAPI  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from lms_progress.content_store.memory import InMemoryContentStore  # noqa: E402
from lms_progress.main import create_app  # noqa: E402
from lms_progress.progress.service import (  # noqa: E402
    LessonCompletionService,
    ProgressService,
)


COURSE = {
    "id": "C1",
    "title": "Optics 101",
    "modules": [
        {
            "id": "M1",
            "title": "Light",
            "sort": 1,
            "lessons": [
                {"id": "L1", "title": "Waves", "sort": 1},
                {"id": "L2", "title": "Particles", "sort": 2},
            ],
        }
    ],
}


@pytest.fixture
def course_record() -> dict:
    """Raw course record: one module with two lessons."""
    return COURSE


@pytest.fixture
def store() -> InMemoryContentStore:
    """Content store with course C1 and enrollment E1 (L1 completed)."""
    store = InMemoryContentStore()
    store.add_course(COURSE)
    store.add_enrollment(
        "E1",
        course_id="C1",
        completed_lesson_ids=["L1"],
        student={"first_name": "Ada", "last_name": "Lovelace"},
    )
    return store


@pytest.fixture
def progress_service(store: InMemoryContentStore) -> ProgressService:
    return ProgressService(store)


@pytest.fixture
def completion_service(store: InMemoryContentStore) -> LessonCompletionService:
    return LessonCompletionService(store, max_attempts=3)


@pytest.fixture
def app(
    store: InMemoryContentStore,
    progress_service: ProgressService,
    completion_service: LessonCompletionService,
) -> FastAPI:
    """App with services set directly on state (lifespan not run)."""
    app = create_app()
    app.state.content_store = store
    app.state.progress_service = progress_service
    app.state.lesson_completion_service = completion_service
    return app


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app)
