"""Custom exception hierarchy for the legal OCR service.

These errors provide clear, typed failure modes so FastAPI exception handlers
can map them to HTTP status codes and logs stay structured consistently.
"""
from __future__ import annotations

NO_CONTENT_MESSAGE = (
    "No text content could be extracted from the PDF. "
    "The document may be empty or contain only images without text."
)


class ValidationError(Exception):
    """Raised when user supplied input (file upload, parameters) is invalid."""


class PayloadTooLargeError(ValidationError):
    """Raised when an upload exceeds the configured size limit."""


class JobNotFoundError(Exception):
    """Raised when a batch job id is unknown for the caller's namespace."""

    def __init__(self, job_id: str) -> None:
        super().__init__("Job not found")
        self.job_id = job_id


class JobNotCompletedError(Exception):
    """Raised when results are requested before a batch job completed."""

    def __init__(self, status: str) -> None:
        super().__init__(f"Job not completed. Current status: {status}")
        self.status = status


class OcrProviderError(Exception):
    """Base class for failures talking to the remote OCR provider."""


class AuthError(OcrProviderError):
    """Raised when the provider rejects the caller's credential (HTTP 401)."""


class RateLimitError(OcrProviderError):
    """Raised when the provider keeps answering HTTP 429 after retries."""

    def __init__(self, message: str, *, retry_after: float | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class ProviderError(OcrProviderError):
    """Raised for any other non-2xx provider response or transport failure."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class UploadError(OcrProviderError):
    """Raised when a document upload to the provider fails."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class NoContentError(OcrProviderError):
    """Raised when OCR succeeded but produced no Markdown at all."""

    def __init__(self, message: str = NO_CONTENT_MESSAGE) -> None:
        super().__init__(message)


class BatchCreationError(OcrProviderError):
    """Raised when the provider batch submission fails.

    The failed job record has already been persisted; it is attached so callers
    can still report the job id.
    """

    def __init__(self, message: str, *, record: object | None = None) -> None:
        super().__init__(message)
        self.record = record


class ReconciliationTransientError(Exception):
    """Raised when a remote status check fails; never written into a record."""


class PollTimeoutError(Exception):
    """Raised when polling gives up before the job reached a terminal state."""

    def __init__(self, message: str = "Batch job timed out") -> None:
        super().__init__(message)


__all__ = [
    "NO_CONTENT_MESSAGE",
    "ValidationError",
    "PayloadTooLargeError",
    "JobNotFoundError",
    "JobNotCompletedError",
    "OcrProviderError",
    "AuthError",
    "RateLimitError",
    "ProviderError",
    "UploadError",
    "NoContentError",
    "BatchCreationError",
    "ReconciliationTransientError",
    "PollTimeoutError",
]
