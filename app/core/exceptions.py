"""
Custom exceptions for the application.

Two families live here:
  - APIException and subclasses: rendered by the FastAPI exception handler.
  - PipelineError and subclasses: raised inside the extraction pipeline.
    The class name is what gets stored as `error_type` on events and attempts.
"""
from typing import Optional, Any


class APIException(Exception):
    """
    Base exception for all API errors.
    Provides consistent error response format.
    """

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        details: Optional[Any] = None,
    ):
        self.status_code = status_code
        self.code = code
        self.message = message
        self.details = details
        super().__init__(self.message)


class NotFoundException(APIException):
    """404 Not Found"""

    def __init__(self, message: str = "Resource not found", code: str = "NOT_FOUND"):
        super().__init__(404, code, message)


class ConflictException(APIException):
    """409 Conflict"""

    def __init__(
        self,
        message: str = "Resource conflict",
        code: str = "CONFLICT",
        details: Optional[Any] = None,
    ):
        super().__init__(409, code, message, details)


# Resource specific exceptions
class AttemptNotFoundException(NotFoundException):
    """Scraping attempt not found"""

    def __init__(self):
        super().__init__(message="Scraping attempt not found", code="ATTEMPT_NOT_FOUND")


class JobListingNotFoundException(NotFoundException):
    """Job listing not found"""

    def __init__(self):
        super().__init__(message="Job listing not found", code="JOB_LISTING_NOT_FOUND")


class AttemptNotRetryableException(ConflictException):
    """Only failed attempts can be retried"""

    def __init__(self, status: str):
        super().__init__(
            message=f"Attempt cannot be retried from status '{status}'",
            code="ATTEMPT_NOT_RETRYABLE",
            details={"status": status},
        )


# ─── Pipeline errors ────────────────────────────────────────────


class PipelineError(Exception):
    """Base class for everything the extraction pipeline raises on purpose."""

    retryable = True

    @property
    def error_type(self) -> str:
        return type(self).__name__


class FetchError(PipelineError):
    """Network failure, non-2xx response, or unusable body."""

    def __init__(self, message: str, http_status: Optional[int] = None):
        self.http_status = http_status
        super().__init__(message)


class PermissionDenied(PipelineError):
    """robots.txt disallows the URL."""

    retryable = False


class StrategyError(PipelineError):
    """An extraction strategy produced nothing usable."""

    def __init__(
        self,
        message: str,
        field_results: Optional[dict] = None,
        selectors_tried: Optional[dict] = None,
    ):
        # Kept so a failed HTML pass still gets its diagnostics recorded
        self.field_results = field_results or {}
        self.selectors_tried = selectors_tried or {}
        super().__init__(message)


class ProviderError(PipelineError):
    """Transport or API error from a single LLM provider."""

    def __init__(self, message: str, provider: Optional[str] = None):
        self.provider = provider
        super().__init__(message)


class ProviderTimeout(ProviderError):
    pass


class ProviderRateLimited(ProviderError):
    pass


class ProviderResponseInvalid(ProviderError):
    """Provider answered, but the payload failed schema validation."""


class AllProvidersExhausted(PipelineError):
    """Every enabled LLM provider failed for this extraction."""


class ExtractionExhausted(PipelineError):
    """Every extraction strategy failed and no weak result was kept."""


class InvalidTransition(PipelineError):
    """Attempted a status change that is not an edge of the lifecycle."""

    retryable = False

    def __init__(self, from_status: str, to_status: str):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(f"Invalid attempt transition {from_status} -> {to_status}")


class OperationalFailure(PipelineError):
    """Administrative or reaper-forced failure; error_type is supplied by the caller."""

    retryable = False

    def __init__(self, message: str, error_type: str = "ManuallyMarkedFailed"):
        self._error_type = error_type
        super().__init__(message)

    @property
    def error_type(self) -> str:
        return self._error_type


class EventClosed(PipelineError):
    """The event was closed by someone else (usually an administrative failure)."""

    retryable = False
