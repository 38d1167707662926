"""Tests for the Directus content store client.

HTTP traffic is served by an ``httpx.MockTransport`` so requests can be
inspected without a Directus instance.
"""

import json

import httpx
import pytest
from pydantic import SecretStr

from lms_progress.content_store.directus import (
    COURSE_FIELDS,
    ENROLLMENT_FIELDS,
    DirectusContentStore,
)
from lms_progress.content_store.exceptions import (
    ContentStoreError,
    VersionConflictError,
)


BASE_URL = "https://cms.example.com"


def make_store(handler) -> DirectusContentStore:
    return DirectusContentStore(
        BASE_URL,
        token=SecretStr("static-token"),
        transport=httpx.MockTransport(handler),
    )


class TestReads:
    """GET /items/<collection>/<id>."""

    @pytest.mark.asyncio
    async def test_get_course_requests_nested_fields(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json={
                    "data": {
                        "id": 7,
                        "title": "Optics 101",
                        "modules": [{"id": 1, "sort": None, "lessons": None}],
                    }
                },
            )

        store = make_store(handler)
        course = await store.get_course("7")
        await store.aclose()

        assert course is not None
        assert course.id == "7"
        assert course.modules[0].lessons == []

        request = seen[0]
        assert request.method == "GET"
        assert request.url.path == "/items/lms_courses/7"
        assert request.url.params["fields"] == ",".join(COURSE_FIELDS)
        assert request.headers["Authorization"] == "Bearer static-token"

    @pytest.mark.asyncio
    async def test_get_enrollment_parses_junction(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["fields"] == ",".join(ENROLLMENT_FIELDS)
            assert "user_enrolled.first_name" in request.url.params["fields"]
            return httpx.Response(
                200,
                json={
                    "data": {
                        "id": "E1",
                        "date_updated": "2024-03-02T11:30:00.000Z",
                        "course": {"id": "C1", "title": "Optics 101"},
                        "lessons_completed": [
                            {"lms_lessons_id": {"id": "L1"}},
                            {"lms_lessons_id": {"id": "L1"}},
                        ],
                        "user_enrolled": {
                            "first_name": "Ada",
                            "last_name": "Lovelace",
                        },
                    }
                },
            )

        store = make_store(handler)
        enrollment = await store.get_enrollment("E1")
        await store.aclose()

        assert enrollment is not None
        assert enrollment.completed_lesson_ids == ("L1",)
        assert enrollment.version == "2024-03-02T11:30:00.000Z"
        assert enrollment.student.full_name == "Ada Lovelace"

    @pytest.mark.asyncio
    async def test_not_found_returns_none(self):
        store = make_store(lambda request: httpx.Response(404, json={"errors": []}))

        assert await store.get_enrollment("missing") is None
        assert await store.get_lesson("missing") is None
        await store.aclose()

    @pytest.mark.asyncio
    async def test_null_data_returns_none(self):
        store = make_store(lambda request: httpx.Response(200, json={"data": None}))

        assert await store.get_course("C1") is None
        await store.aclose()

    @pytest.mark.asyncio
    async def test_server_error_raises_with_status(self):
        store = make_store(lambda request: httpx.Response(503, text="maintenance"))

        with pytest.raises(ContentStoreError) as exc_info:
            await store.get_enrollment("E1")
        await store.aclose()

        assert exc_info.value.status_code == 503
        assert "503" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_timeout_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        store = make_store(handler)
        with pytest.raises(ContentStoreError) as exc_info:
            await store.get_course("C1")
        await store.aclose()

        assert exc_info.value.status_code is None
        assert "timeout" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_connection_error_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        store = make_store(handler)
        with pytest.raises(ContentStoreError):
            await store.get_lesson("L1")
        await store.aclose()

    @pytest.mark.asyncio
    async def test_invalid_json_raises(self):
        store = make_store(lambda request: httpx.Response(200, text="<html>"))

        with pytest.raises(ContentStoreError):
            await store.get_course("C1")
        await store.aclose()

    @pytest.mark.asyncio
    async def test_malformed_lesson_raises(self):
        store = make_store(
            lambda request: httpx.Response(200, json={"data": {"title": "no id"}})
        )

        with pytest.raises(ContentStoreError):
            await store.get_lesson("L1")
        await store.aclose()


class TestConditionalUpdate:
    """PATCH /items/lms_enrollments filtered on id and date_updated."""

    @pytest.mark.asyncio
    async def test_update_sends_full_replacement(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json={"data": [{"id": "E1", "date_updated": "2024-03-03T00:00:00Z"}]},
            )

        store = make_store(handler)
        version = await store.update_enrollment_completions(
            "E1", ["L1", "L2"], expected_version="2024-03-02T11:30:00.000Z"
        )
        await store.aclose()

        assert version == "2024-03-03T00:00:00Z"

        request = seen[0]
        assert request.method == "PATCH"
        assert request.url.path == "/items/lms_enrollments"
        body = json.loads(request.content)
        assert body["query"]["filter"] == {
            "id": {"_eq": "E1"},
            "date_updated": {"_eq": "2024-03-02T11:30:00.000Z"},
        }
        assert body["data"] == {
            "lessons_completed": [{"lms_lessons_id": "L1"}, {"lms_lessons_id": "L2"}]
        }

    @pytest.mark.asyncio
    async def test_never_updated_enrollment_filters_on_null(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"data": [{"id": "E1"}]})

        store = make_store(handler)
        version = await store.update_enrollment_completions(
            "E1", ["L1"], expected_version=None
        )
        await store.aclose()

        assert version is None
        body = json.loads(seen[0].content)
        assert body["query"]["filter"]["date_updated"] == {"_null": True}

    @pytest.mark.asyncio
    async def test_no_matching_item_is_a_conflict(self):
        store = make_store(lambda request: httpx.Response(200, json={"data": []}))

        with pytest.raises(VersionConflictError):
            await store.update_enrollment_completions("E1", ["L1"], "stale")
        await store.aclose()

    @pytest.mark.asyncio
    async def test_rejected_update_raises(self):
        store = make_store(
            lambda request: httpx.Response(403, json={"errors": [{"message": "no"}]})
        )

        with pytest.raises(ContentStoreError) as exc_info:
            await store.update_enrollment_completions("E1", ["L1"], None)
        await store.aclose()

        assert not isinstance(exc_info.value, VersionConflictError)
        assert exc_info.value.status_code == 403
