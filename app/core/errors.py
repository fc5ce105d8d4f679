"""
Error taxonomy for the memory pipeline.

Every error carries the HTTP status the API layer renders it with.
"""


class MemoryPipelineError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__name__


class AuthError(MemoryPipelineError):
    """Missing or invalid bearer token."""

    status_code = 401


class NotFoundError(MemoryPipelineError):
    """Record absent or not visible to the caller."""

    status_code = 404


class ValidationError(MemoryPipelineError):
    """Missing or invalid request field."""

    status_code = 400


class StaleResultError(MemoryPipelineError):
    """The record changed (or vanished) while it was being processed."""

    status_code = 409


class UpstreamError(MemoryPipelineError):
    """LLM or embedding service failure."""

    status_code = 500


class MalformedResponseError(UpstreamError):
    """Upstream answered, but the payload failed validation."""


class TransientUpstreamError(UpstreamError):
    """Upstream failure worth retrying."""


class RateLimitError(TransientUpstreamError):
    """Upstream rate limit hit."""


class UpstreamTimeoutError(TransientUpstreamError):
    """A single upstream call exceeded its timeout."""


class APIQuotaError(UpstreamError):
    """Upstream quota exhausted; retrying will not help."""


class DeadlineExceededError(UpstreamError):
    """The request or job deadline has been spent."""


class PartialDegradation(MemoryPipelineError):
    """
    A non-fatal stage fell back to its default output.

    Never raised to callers; built only to be logged.
    """

    def __init__(self, stage: str, cause: Exception):
        super().__init__(f"{stage} degraded: {cause}")
        self.stage = stage
        self.cause = cause
