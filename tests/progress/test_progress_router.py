"""Tests for the course progress endpoints (/v1/progress).

Services run against the in-memory content store; the HTTP layer is exercised
through TestClient.
"""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from lms_progress.content_store.exceptions import ContentStoreError
from lms_progress.main import create_app


# ==============================================================================
# GET /v1/progress
# ==============================================================================


class TestGetProgress:
    """Progress view endpoint."""

    def test_returns_view(self, client: TestClient) -> None:
        response = client.get("/v1/progress", params={"enrollment_id": "E1"})

        assert response.status_code == 200
        data = response.json()
        assert data["course_id"] == "C1"
        assert data["enrollment"]["student_name"] == "Ada Lovelace"
        assert data["stats"]["total"] == 2
        assert data["stats"]["completed"] == 1
        assert data["stats"]["remaining"] == 1
        assert Decimal(str(data["stats"]["percent"])) == Decimal("50")
        assert [lesson["id"] for lesson in data["completed_lessons"]] == ["L1"]
        assert data["next_lesson"]["id"] == "L2"
        assert data["completion_status"] is None

    def test_completes_lesson_before_building_view(
        self, client: TestClient, store
    ) -> None:
        response = client.get(
            "/v1/progress",
            params={"enrollment_id": "E1", "completed_lesson_id": "L2"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["completion_status"] == "completed"
        assert data["stats"]["completed"] == 2
        assert data["next_lesson"] is None
        assert store.raw_completed_lesson_ids("E1") == ["L1", "L2"]

    def test_already_completed_lesson(self, client: TestClient) -> None:
        response = client.get(
            "/v1/progress",
            params={"enrollment_id": "E1", "completed_lesson_id": "L1"},
        )

        assert response.status_code == 200
        assert response.json()["completion_status"] == "already_completed"

    def test_missing_enrollment_id(self, client: TestClient) -> None:
        response = client.get("/v1/progress")

        assert response.status_code == 400
        data = response.json()
        assert data["error"] is True
        assert data["code"] == "invalid_identifier"
        assert "enrollment_id" in data["message"]

    def test_unknown_enrollment(self, client: TestClient) -> None:
        response = client.get("/v1/progress", params={"enrollment_id": "nope"})

        assert response.status_code == 404
        assert response.json()["code"] == "not_found"

    def test_unknown_completed_lesson_still_returns_view(
        self, client: TestClient, store
    ) -> None:
        response = client.get(
            "/v1/progress",
            params={"enrollment_id": "E1", "completed_lesson_id": "L404"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["completion_status"] is None
        assert data["completion_error"]["code"] == "not_found"
        assert data["completion_error"]["message"] == "Lesson not found"
        assert data["stats"]["completed"] == 1
        assert store.raw_completed_lesson_ids("E1") == ["L1"]

    def test_completion_write_failure_still_returns_view(
        self, client: TestClient, store
    ) -> None:
        store.update_enrollment_completions = AsyncMock(
            side_effect=ContentStoreError(
                "Failed to update lms_enrollments E1: 403 Forbidden",
                status_code=403,
            )
        )

        response = client.get(
            "/v1/progress",
            params={"enrollment_id": "E1", "completed_lesson_id": "L2"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["completion_error"]["code"] == "upstream_failure"
        assert data["completion_error"]["upstream_status"] == 403
        assert data["next_lesson"]["id"] == "L2"

    def test_unknown_enrollment_with_completed_lesson(
        self, client: TestClient
    ) -> None:
        response = client.get(
            "/v1/progress",
            params={"enrollment_id": "nope", "completed_lesson_id": "L1"},
        )

        assert response.status_code == 404
        assert response.json()["code"] == "not_found"

    def test_upstream_failure(self, client: TestClient, store) -> None:
        store.get_enrollment = AsyncMock(
            side_effect=ContentStoreError(
                "Failed to fetch lms_enrollments E1: 502 Bad Gateway",
                status_code=502,
            )
        )

        response = client.get("/v1/progress", params={"enrollment_id": "E1"})

        assert response.status_code == 500
        data = response.json()
        assert data["code"] == "upstream_failure"
        assert data["upstream_status"] == 502
        assert "502 Bad Gateway" in data["message"]

    def test_error_carries_request_id(self, client: TestClient) -> None:
        response = client.get(
            "/v1/progress",
            params={"enrollment_id": "nope"},
            headers={"X-Request-ID": "req-404"},
        )

        assert response.json()["request_id"] == "req-404"
        assert response.headers["X-Request-ID"] == "req-404"


# ==============================================================================
# POST /v1/progress/complete
# ==============================================================================


class TestCompleteLesson:
    """Lesson completion endpoint."""

    def test_new_completion_returns_201(self, client: TestClient, store) -> None:
        response = client.post(
            "/v1/progress/complete",
            params={"enrollment_id": "E1", "lesson_id": "L2"},
        )

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "completed"
        assert data["completed_lesson_ids"] == ["L1", "L2"]
        assert store.raw_completed_lesson_ids("E1") == ["L1", "L2"]

    def test_repeat_completion_returns_200(self, client: TestClient, store) -> None:
        params = {"enrollment_id": "E1", "lesson_id": "L2"}

        first = client.post("/v1/progress/complete", params=params)
        second = client.post("/v1/progress/complete", params=params)

        assert first.status_code == 201
        assert second.status_code == 200
        assert second.json()["status"] == "already_completed"
        assert store.raw_completed_lesson_ids("E1") == ["L1", "L2"]

    @pytest.mark.parametrize(
        "params",
        [
            {"lesson_id": "L2"},
            {"enrollment_id": "E1"},
            {"enrollment_id": "", "lesson_id": "L2"},
        ],
    )
    def test_missing_identifier_returns_400(
        self, client: TestClient, store, params
    ) -> None:
        response = client.post("/v1/progress/complete", params=params)

        assert response.status_code == 400
        assert response.json()["code"] == "invalid_identifier"
        assert store.raw_completed_lesson_ids("E1") == ["L1"]

    def test_unknown_lesson_returns_404(self, client: TestClient) -> None:
        response = client.post(
            "/v1/progress/complete",
            params={"enrollment_id": "E1", "lesson_id": "L404"},
        )

        assert response.status_code == 404
        assert response.json()["message"] == "Lesson not found"

    def test_unknown_enrollment_returns_404(self, client: TestClient) -> None:
        response = client.post(
            "/v1/progress/complete",
            params={"enrollment_id": "E404", "lesson_id": "L1"},
        )

        assert response.status_code == 404

    def test_store_failure_returns_500(self, client: TestClient, store) -> None:
        store.update_enrollment_completions = AsyncMock(
            side_effect=ContentStoreError("Content store timeout: write")
        )

        response = client.post(
            "/v1/progress/complete",
            params={"enrollment_id": "E1", "lesson_id": "L2"},
        )

        assert response.status_code == 500
        data = response.json()
        assert data["code"] == "upstream_failure"
        assert data["upstream_status"] is None


# ==============================================================================
# GET /v1/progress/lessons-to-complete
# ==============================================================================


class TestLessonsToComplete:
    """Course structure endpoint."""

    def test_returns_ordered_course(self, client: TestClient, store) -> None:
        store.add_course(
            {
                "id": "C2",
                "title": "Mechanics",
                "modules": [
                    {"id": "M2", "sort": 2, "lessons": [{"id": "L3"}]},
                    {
                        "id": "M1",
                        "sort": 1,
                        "lessons": [{"id": "Lb", "sort": 2}, {"id": "La"}],
                    },
                ],
            }
        )
        store.add_enrollment("E2", course_id="C2")

        response = client.get(
            "/v1/progress/lessons-to-complete", params={"enrollment_id": "E2"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["id"] == "C2"
        assert [module["id"] for module in data["modules"]] == ["M1", "M2"]
        assert [lesson["id"] for lesson in data["modules"][0]["lessons"]] == [
            "La",
            "Lb",
        ]
        assert data["modules"][0]["lessons"][0]["sort"] == 0

    def test_missing_enrollment_id(self, client: TestClient) -> None:
        response = client.get("/v1/progress/lessons-to-complete")

        assert response.status_code == 400

    def test_unknown_enrollment(self, client: TestClient) -> None:
        response = client.get(
            "/v1/progress/lessons-to-complete", params={"enrollment_id": "nope"}
        )

        assert response.status_code == 404


# ==============================================================================
# Service availability
# ==============================================================================


def test_services_not_initialized_returns_503() -> None:
    """Without the lifespan the services are missing from app state."""
    client = TestClient(create_app())

    response = client.get("/v1/progress", params={"enrollment_id": "E1"})

    assert response.status_code == 503
