"""Content store construction from settings."""

from lms_progress.config.settings import Settings

from .directus import DirectusContentStore
from .memory import InMemoryContentStore
from .port import ContentStorePort


def build_content_store(settings: Settings) -> ContentStorePort:
    """Create the configured content store.

    All connection details come from ``settings``; nothing below this point
    reads the environment.
    """
    if settings.content_store_backend == "memory":
        if settings.content_store_seed_file:
            return InMemoryContentStore.from_seed(settings.content_store_seed_file)
        return InMemoryContentStore()

    return DirectusContentStore(
        base_url=settings.content_store_url,
        token=settings.content_store_token,
        timeout=settings.content_store_timeout,
        enrollments_collection=settings.enrollments_collection,
        courses_collection=settings.courses_collection,
        lessons_collection=settings.lessons_collection,
    )

