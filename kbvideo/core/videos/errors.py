"""
Error taxonomy for the video pipeline.

Every error carries the HTTP status it maps to, so the API layer can
render all of them with a single exception handler. Messages are safe to
return to clients; internal details belong in the logs.
"""


class VideoServiceError(Exception):
    """Base class for all expected video pipeline failures."""

    status_code: int = 500
    default_message: str = "Unexpected server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(VideoServiceError):
    """Missing or invalid client input. Raised before any I/O happens."""

    status_code = 400
    default_message = "Invalid request"


class VideoNotFound(VideoServiceError):
    """
    The video does not exist or is not owned by the caller.

    Both cases share one error so callers cannot test for the
    existence of other users' videos.
    """

    status_code = 404
    default_message = "Video not found"


class PayloadTooLarge(VideoServiceError):
    status_code = 413
    default_message = "Video exceeds upload size limit"

    @classmethod
    def for_limit(cls, max_size_bytes: int) -> "PayloadTooLarge":
        return cls(f"Video exceeds {max_size_bytes // (1024 * 1024)}MB limit")


class ForeignKeyViolation(VideoServiceError):
    """The referenced subtopic does not exist."""

    status_code = 400
    default_message = "subtopicId does not exist"


class StorageBackendError(VideoServiceError):
    """Remote upload or delete failed."""

    status_code = 500
    default_message = "Failed to store video"


class UnexpectedError(VideoServiceError):
    status_code = 500
