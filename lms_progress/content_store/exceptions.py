"""Content store errors."""


class ContentStoreError(Exception):
    """The content store could not be reached or answered with a failure.

    Attributes:
        message: Human readable description (upstream message preserved)
        status_code: Upstream HTTP status, if a response was received
    """

    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class VersionConflictError(ContentStoreError):
    """A conditional write did not apply because the record changed."""

    def __init__(self, message: str = "Enrollment was modified concurrently"):
        super().__init__(message, status_code=None)
