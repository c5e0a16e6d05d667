"""
Error taxonomy for the pipeline.

Provider-level errors (transient/permanent) are raised by adapters and
handled inside the retry/fallback engine. Job-level errors are what the
pipeline manager surfaces to callers.
"""

from typing import Any

from voicenotes.services.ai_clients.base import (
    AIClientConnectionError,
    AIClientError,
    AIClientOutputError,
    AIClientResponseError,
    AIClientTimeoutError,
)

# HTTP statuses a provider may recover from on its own
TRANSIENT_STATUS_CODES = frozenset({408, 409, 425, 429, 500, 502, 503, 504, 529})


class PipelineError(Exception):
    """
    Base pipeline error with a machine-readable code.

    Attributes:
        message: Error description
        code: Stable error code for API responses
        retryable: Whether the caller may retry the same request
        details: Extra diagnostic context
    """

    code = "PIPELINE_ERROR"
    retryable = False

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class InvalidPayloadError(PipelineError):
    """Submission rejected before a job was created."""

    code = "INVALID_PAYLOAD"


class QueueFullError(PipelineError):
    """Queue is at capacity; retry after a delay."""

    code = "QUEUE_FULL"
    retryable = True

    def __init__(self, capacity: int):
        super().__init__(f"Queue is full (capacity {capacity})", {"capacity": capacity})
        self.capacity = capacity


class JobNotFoundError(PipelineError):
    """No job with the given ID."""

    code = "NOT_FOUND"

    def __init__(self, job_id: str):
        super().__init__(f"Job '{job_id}' not found", {"job_id": job_id})
        self.job_id = job_id


class InvalidTransitionError(PipelineError):
    """Job state change not allowed by the state machine."""

    code = "INVALID_TRANSITION"

    def __init__(self, job_id: str, from_status: str, to_status: str):
        super().__init__(
            f"Job '{job_id}' cannot move from {from_status} to {to_status}",
            {"job_id": job_id, "from": from_status, "to": to_status},
        )


class ProviderError(PipelineError):
    """
    Classified failure of a single provider call.

    Attributes:
        provider: Adapter name that failed
        status_code: HTTP status code if known
        original_error: Underlying exception if available
    """

    code = "PROVIDER_ERROR"

    def __init__(
        self,
        message: str,
        provider: str,
        status_code: int | None = None,
        original_error: Exception | None = None,
    ):
        super().__init__(message, {"provider": provider, "status_code": status_code})
        self.provider = provider
        self.status_code = status_code
        self.original_error = original_error

    def __str__(self) -> str:
        return f"{self.provider}: {self.message}"


class TransientProviderError(ProviderError):
    """Network/timeout/5xx failure; eligible for retry and fallback."""

    code = "TRANSIENT_PROVIDER_ERROR"
    retryable = True


class PermanentProviderError(ProviderError):
    """Bad input/auth/quota failure; never retried."""

    code = "PERMANENT_PROVIDER_ERROR"


class AllProvidersExhaustedError(PipelineError):
    """
    Every candidate provider failed transiently.

    Attributes:
        errors: Failures in attempt order
        attempts: Number of provider attempts made
    """

    code = "ALL_PROVIDERS_FAILED"
    retryable = True

    def __init__(self, errors: list[ProviderError], attempts: int):
        summary = "; ".join(str(e) for e in errors) or "no providers configured"
        super().__init__(
            f"All providers failed after {attempts} attempt(s): {summary}",
            {"attempts": attempts, "providers": [e.provider for e in errors]},
        )
        self.errors = errors
        self.attempts = attempts


class ProviderRejectedError(PipelineError):
    """
    A provider failed permanently; no further fallback was attempted.

    Attributes:
        error: The permanent failure
        errors: All failures in attempt order (last one is ``error``)
        attempts: Number of provider attempts made
    """

    code = "PROVIDER_REJECTED"

    def __init__(self, error: PermanentProviderError, errors: list[ProviderError], attempts: int):
        super().__init__(
            str(error),
            {"attempts": attempts, "provider": error.provider, "status_code": error.status_code},
        )
        self.error = error
        self.errors = errors
        self.attempts = attempts


def classify_error(error: Exception, provider: str) -> ProviderError:
    """
    Map an arbitrary exception from a client into a provider error.

    Timeouts, connection errors, unusable output and 408/429/5xx responses
    are transient. Other 4xx responses and invalid input are permanent.

    Args:
        error: Exception raised by a client or adapter
        provider: Adapter name

    Returns:
        TransientProviderError or PermanentProviderError
    """
    if isinstance(error, ProviderError):
        return error

    if isinstance(error, (AIClientTimeoutError, TimeoutError)):
        return TransientProviderError(
            f"timeout: {error}" if str(error) else "timeout",
            provider=provider,
            original_error=error,
        )

    if isinstance(error, (AIClientConnectionError, AIClientOutputError, ConnectionError)):
        return TransientProviderError(str(error), provider=provider, original_error=error)

    if isinstance(error, AIClientResponseError):
        status = error.status_code
        error_class = (
            TransientProviderError
            if status is None or status in TRANSIENT_STATUS_CODES or status >= 500
            else PermanentProviderError
        )
        return error_class(
            error.message,
            provider=provider,
            status_code=status,
            original_error=error,
        )

    if isinstance(error, (ValueError, TypeError)):
        return PermanentProviderError(
            f"invalid request: {error}", provider=provider, original_error=error
        )

    if isinstance(error, AIClientError):
        return TransientProviderError(str(error), provider=provider, original_error=error)

    return TransientProviderError(
        f"{type(error).__name__}: {error}", provider=provider, original_error=error
    )
