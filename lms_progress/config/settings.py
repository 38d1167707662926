"""Service configuration.

Values come from environment variables (or a ``.env`` file) and are handed to
the content store and services by the app factory; nothing below ``main``
reads the environment itself.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Course progress API settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = "lms-progress"
    app_version: str = "0.1.0"
    environment: Literal["development", "staging", "production", "testing"] = (
        "development"
    )
    api_host: str = Field(default="0.0.0.0", description="Bind address for `run`")
    api_port: int = Field(default=8000, description="Port for `run`")

    # Content store
    content_store_backend: Literal["directus", "memory"] = Field(
        default="directus",
        description="`directus` for the CMS, `memory` for local runs and tests",
    )
    content_store_url: str = Field(
        default="http://localhost:8055", description="Directus base URL"
    )
    content_store_token: SecretStr | None = Field(
        default=None, description="Directus static token (sent as a bearer token)"
    )
    content_store_timeout: float = Field(
        default=10.0, gt=0, description="Per-request timeout in seconds"
    )
    content_store_seed_file: str | None = Field(
        default=None, description="JSON file loaded into the memory backend"
    )
    enrollments_collection: str = "lms_enrollments"
    courses_collection: str = "lms_courses"
    lessons_collection: str = "lms_lessons"

    completion_max_attempts: int = Field(
        default=3,
        ge=1,
        description="Conditional writes tried before a completion is given up",
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_format: Literal["json", "console"] = "console"
    log_include_caller_info: bool = False
    log_file_enabled: bool = True
    log_dir: str = "logs"
    log_file_max_bytes: int = Field(default=10 * 1024 * 1024, ge=1024)
    log_file_backup_count: int = Field(default=5, ge=0)
    log_requests: bool = True
    log_exclude_paths: list[str] = Field(default_factory=lambda: ["/health"])

    # CORS
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])
    cors_allow_credentials: bool = False
    cors_allow_methods: list[str] = Field(default_factory=lambda: ["GET", "POST"])
    cors_allow_headers: list[str] = Field(default_factory=lambda: ["*"])
    cors_max_age: int = 600

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def content_store_configured(self) -> bool:
        """Whether requests to Directus will be authenticated."""
        return self.content_store_token is not None and bool(
            self.content_store_token.get_secret_value()
        )


@lru_cache
def get_settings() -> Settings:
    return Settings()
