"""Directus REST client for the LMS collections.

Reads use ``GET /items/<collection>/<id>?fields=...`` and the completion
record is replaced with an update-by-query (``PATCH /items/<collection>``)
filtered on both the enrollment id and its ``date_updated`` value, so the
write is skipped when someone else changed the enrollment since it was read.

SECURITY: the static token is only sent as a bearer header and is never
logged.
"""

from collections.abc import Callable, Mapping, Sequence
from typing import Any, TypeVar
from urllib.parse import quote

import httpx
import structlog
from pydantic import SecretStr, ValidationError

from .exceptions import ContentStoreError, VersionConflictError
from .models import Course, Enrollment, Lesson


logger = structlog.get_logger(__name__)

T = TypeVar("T")

ENROLLMENT_FIELDS = (
    "id",
    "date_created",
    "date_updated",
    "percent_complete",
    "is_completed",
    "user_enrolled.first_name",
    "user_enrolled.last_name",
    "course.id",
    "course.title",
    "lessons_completed.lms_lessons_id.id",
    "lessons_completed.lms_lessons_id.title",
    "lessons_completed.lms_lessons_id.sort",
    "lessons_completed.lms_lessons_id.module.id",
    "lessons_completed.lms_lessons_id.module.title",
    "lessons_completed.lms_lessons_id.module.sort",
)

COURSE_FIELDS = (
    "id",
    "title",
    "modules.id",
    "modules.title",
    "modules.sort",
    "modules.lessons.id",
    "modules.lessons.title",
    "modules.lessons.sort",
)

LESSON_FIELDS = ("id", "title", "sort")


class DirectusContentStore:
    """Content store backed by a Directus instance."""

    def __init__(
        self,
        base_url: str,
        token: SecretStr | str | None = None,
        *,
        timeout: float = 10.0,
        enrollments_collection: str = "lms_enrollments",
        courses_collection: str = "lms_courses",
        lessons_collection: str = "lms_lessons",
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the client.

        Args:
            base_url: Directus base URL (without ``/items``)
            token: Static access token
            timeout: Request timeout in seconds
            enrollments_collection: Enrollments collection name
            courses_collection: Courses collection name
            lessons_collection: Lessons collection name
            transport: Optional httpx transport (used by tests)
        """
        if isinstance(token, SecretStr):
            token = token.get_secret_value()

        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self.enrollments_collection = enrollments_collection
        self.courses_collection = courses_collection
        self.lessons_collection = lessons_collection
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    # ==========================================================================
    # Reads
    # ==========================================================================

    async def get_enrollment(self, enrollment_id: str) -> Enrollment | None:
        data = await self._get_item(
            self.enrollments_collection, enrollment_id, ENROLLMENT_FIELDS
        )
        if data is None:
            return None
        return self._parse(Enrollment.from_directus, data, "enrollment")

    async def get_course(self, course_id: str) -> Course | None:
        data = await self._get_item(self.courses_collection, course_id, COURSE_FIELDS)
        if data is None:
            return None
        return self._parse(Course.model_validate, data, "course")

    async def get_lesson(self, lesson_id: str) -> Lesson | None:
        data = await self._get_item(self.lessons_collection, lesson_id, LESSON_FIELDS)
        if data is None:
            return None
        return self._parse(Lesson.model_validate, data, "lesson")

    # ==========================================================================
    # Writes
    # ==========================================================================

    async def update_enrollment_completions(
        self,
        enrollment_id: str,
        lesson_ids: Sequence[str],
        expected_version: str | None,
    ) -> str | None:
        """Replace the completion junction, conditional on ``date_updated``."""
        version_filter: dict[str, Any] = (
            {"_null": True} if expected_version is None else {"_eq": expected_version}
        )
        body = {
            "query": {
                "filter": {
                    "id": {"_eq": enrollment_id},
                    "date_updated": version_filter,
                },
            },
            "data": {
                "lessons_completed": [
                    {"lms_lessons_id": lesson_id} for lesson_id in lesson_ids
                ],
            },
        }

        response = await self._request(
            "PATCH",
            f"/items/{self.enrollments_collection}",
            params={"fields": "id,date_updated"},
            json=body,
        )
        if not response.is_success:
            raise self._status_error(
                response, f"Failed to update enrollment {enrollment_id}"
            )

        updated = self._payload(response).get("data") or []
        if not updated:
            logger.info(
                "content_store_version_conflict",
                enrollment_id=enrollment_id,
                expected_version=expected_version,
            )
            raise VersionConflictError

        first = updated[0] if isinstance(updated, list) else updated
        new_version = first.get("date_updated") if isinstance(first, Mapping) else None
        return str(new_version) if new_version is not None else None

    # ==========================================================================
    # Helpers
    # ==========================================================================

    async def _get_item(
        self,
        collection: str,
        item_id: str,
        fields: Sequence[str],
    ) -> dict[str, Any] | None:
        response = await self._request(
            "GET",
            f"/items/{collection}/{quote(item_id, safe='')}",
            params={"fields": ",".join(fields)},
        )
        if response.status_code == httpx.codes.NOT_FOUND:
            return None
        if not response.is_success:
            raise self._status_error(
                response, f"Failed to fetch {collection} {item_id}"
            )

        data = self._payload(response).get("data")
        return data if isinstance(data, dict) else None

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            logger.error("content_store_timeout", method=method, url=url, error=str(e))
            raise ContentStoreError(f"Content store timeout: {method} {url}") from e
        except httpx.RequestError as e:
            logger.error(
                "content_store_request_error", method=method, url=url, error=str(e)
            )
            raise ContentStoreError(f"Content store request error: {e}") from e

    @staticmethod
    def _payload(response: httpx.Response) -> dict[str, Any]:
        try:
            payload = response.json()
        except ValueError as e:
            raise ContentStoreError(
                "Content store returned invalid JSON", response.status_code
            ) from e
        return payload if isinstance(payload, dict) else {}

    @staticmethod
    def _status_error(response: httpx.Response, action: str) -> ContentStoreError:
        logger.error(
            "content_store_request_failed",
            status_code=response.status_code,
            response_text=response.text[:500],
        )
        return ContentStoreError(
            f"{action}: {response.status_code} {response.reason_phrase}",
            response.status_code,
        )

    @staticmethod
    def _parse(factory: Callable[[Any], T], data: dict[str, Any], entity: str) -> T:
        try:
            return factory(data)
        except ValidationError as e:
            logger.error("content_store_malformed_payload", entity=entity, error=str(e))
            raise ContentStoreError(f"Malformed {entity} payload: {e}") from e
