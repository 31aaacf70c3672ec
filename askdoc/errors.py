"""Error taxonomy and provider error classification."""

import datetime
from dataclasses import dataclass, field
from enum import StrEnum

import openai

HTTP_BAD_REQUEST = 400
HTTP_NOT_FOUND = 404
HTTP_CONFLICT = 409
HTTP_TOO_MANY_REQUESTS = 429
HTTP_INTERNAL_ERROR = 500
HTTP_BAD_GATEWAY = 502
HTTP_SERVICE_UNAVAILABLE = 503


class ErrorType(StrEnum):
    """Failure categories recorded in session error logs and responses."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    TEXT_EXTRACTION_ERROR = "TEXT_EXTRACTION_ERROR"
    DOCUMENT_SPLITTING_ERROR = "DOCUMENT_SPLITTING_ERROR"
    VECTORSTORE_ERROR = "VECTORSTORE_ERROR"
    SEARCH_ERROR = "SEARCH_ERROR"
    LLM_ERROR = "LLM_ERROR"
    TIMEOUT_ERROR = "TIMEOUT_ERROR"
    SESSION_ERROR = "SESSION_ERROR"
    API_ERROR = "API_ERROR"


class ProviderErrorCategory(StrEnum):
    """Coarse buckets for provider failures, each with its own user message."""

    TIMEOUT = "timeout"
    RATE_LIMIT = "rate_limit"
    CONFIG = "config"
    GENERIC = "generic"


def _utc_now() -> datetime.datetime:
    return datetime.datetime.now(tz=datetime.UTC)


@dataclass(frozen=True)
class ErrorRecord:
    """One entry of a session's ordered error log."""

    type: ErrorType
    message: str
    timestamp: datetime.datetime = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, str]:
        return {
            "type": str(self.type),
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
        }


class PipelineError(Exception):
    """A typed failure raised inside an ingestion or query stage."""

    def __init__(self, error_type: ErrorType, message: str) -> None:
        super().__init__(message)
        self.error_type = error_type
        self.message = message


class ProviderInitError(PipelineError):
    """The embedding/model provider could not be constructed.

    Missing credentials, rejected keys and exhausted quota all land here. The
    user can retry once the configuration is fixed, so this is reported as an
    API_ERROR rather than crashing the process.
    """

    def __init__(
        self,
        message: str,
        category: ProviderErrorCategory = ProviderErrorCategory.CONFIG,
    ) -> None:
        super().__init__(ErrorType.API_ERROR, message)
        self.category = category


_RATE_LIMIT_MARKERS = ("quota", "rate limit", "too many requests", "429")
_CONFIG_MARKERS = ("api key", "authentication", "unauthorized", "401", "403")


def classify_provider_error(error: BaseException) -> ProviderErrorCategory:
    """Bucket a provider exception into a user-facing error category.

    Returns:
        The category whose apology message should be shown to the user.
    """
    if isinstance(error, ProviderInitError):
        return error.category
    if isinstance(error, (TimeoutError, openai.APITimeoutError)):
        return ProviderErrorCategory.TIMEOUT
    if isinstance(error, openai.RateLimitError):
        return ProviderErrorCategory.RATE_LIMIT
    if isinstance(error, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return ProviderErrorCategory.CONFIG

    message = str(error).lower()
    if "timeout" in message or "timed out" in message:
        return ProviderErrorCategory.TIMEOUT
    if any(marker in message for marker in _RATE_LIMIT_MARKERS):
        return ProviderErrorCategory.RATE_LIMIT
    if any(marker in message for marker in _CONFIG_MARKERS):
        return ProviderErrorCategory.CONFIG
    return ProviderErrorCategory.GENERIC


def status_code_for(
    error_type: ErrorType,
    category: ProviderErrorCategory | None = None,
) -> int:
    """Map an error to the HTTP-style status class reported to callers.

    Returns:
        400 for bad input, 429 when rate limited, 503 when the provider is
        unavailable or misconfigured, 500 otherwise.
    """
    if error_type in {
        ErrorType.VALIDATION_ERROR,
        ErrorType.TEXT_EXTRACTION_ERROR,
        ErrorType.DOCUMENT_SPLITTING_ERROR,
    }:
        return HTTP_BAD_REQUEST
    if category is ProviderErrorCategory.RATE_LIMIT:
        return HTTP_TOO_MANY_REQUESTS
    if error_type in {ErrorType.API_ERROR, ErrorType.TIMEOUT_ERROR}:
        return HTTP_SERVICE_UNAVAILABLE
    if category in {ProviderErrorCategory.TIMEOUT, ProviderErrorCategory.CONFIG}:
        return HTTP_SERVICE_UNAVAILABLE
    return HTTP_INTERNAL_ERROR
