"""Error taxonomy for generation jobs.

This module defines the exception classes raised at the provider boundary and
the helpers that classify raw HTTP statuses and provider error messages into
them. Nothing in the orchestration core retries automatically: a transient
error is surfaced as "try again" and the user re-triggers submission.
"""

import logging
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class GenerationError(Exception):
    """Base class for every classified generation failure."""

    retryable: bool = False
    default_code: str = "GENERATION_ERROR"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_type": type(self).__name__,
            "error_code": self.code,
            "error_message": self.message,
            "retryable": self.retryable,
        }


# Transient errors: the user may simply try again
class TransientError(GenerationError):
    """Base class for errors worth re-triggering by hand."""
    retryable = True
    default_code = "TRANSIENT"


class APIError(TransientError):
    """Provider returned a server-side error."""
    default_code = "API_ERROR"


class NetworkError(TransientError):
    """Provider could not be reached."""
    default_code = "NETWORK_ERROR"


class GatewayTimeoutError(TransientError):
    """Request to the provider timed out."""
    default_code = "GATEWAY_TIMEOUT"


class RateLimitError(TransientError):
    """Provider rejected the call because of rate limiting or quota."""
    default_code = "RATE_LIMITED"


class ServiceOverloadedError(TransientError):
    """Provider reported it is overloaded or unavailable."""
    default_code = "SERVICE_OVERLOADED"


# Terminal errors: retrying the same input will not help
class TerminalError(GenerationError):
    """Base class for non-retryable errors."""
    default_code = "TERMINAL"


class ValidationError(TerminalError):
    """Malformed input rejected by the provider or by local validation."""
    default_code = "VALIDATION_ERROR"


class AuthenticationError(TerminalError):
    """Provider credentials were rejected."""
    default_code = "AUTHENTICATION_ERROR"


class ContentModerationError(TerminalError):
    """Provider refused the request on content-policy grounds."""
    default_code = "CONTENT_MODERATION"


class IncompatibleMediaError(TerminalError):
    """Uploaded media cannot be combined in one request."""
    default_code = "INCOMPATIBLE_MEDIA"


class PreflightError(TerminalError):
    """Base class for errors raised before anything is submitted."""
    default_code = "PREFLIGHT"


class InsufficientCreditsError(PreflightError):
    """Credit balance does not cover the cost of the selected mode."""
    default_code = "INSUFFICIENT_CREDITS"

    def __init__(self, required: float, available: float):
        super().__init__(
            f"Insufficient credits: this generation costs {required:g} credits "
            f"but only {available:g} are available"
        )
        self.required = required
        self.available = available

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({"required": self.required, "available": self.available})
        return data


class MissingInputError(PreflightError):
    """The selected mode needs an input that is absent."""
    default_code = "MISSING_INPUT"

    def __init__(self, field: str, message: Optional[str] = None):
        super().__init__(message or f"Missing required input: {field}")
        self.field = field

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["field"] = self.field
        return data


class DuplicateSubmissionError(GenerationError):
    """A job for the same logical slot is already in flight."""
    default_code = "DUPLICATE_SUBMISSION"

    def __init__(self, slot: str):
        super().__init__(f"A generation is already running for slot '{slot}'")
        self.slot = slot


class JobCancelledError(GenerationError):
    """The user cancelled the job before anything was sent."""
    default_code = "CANCELLED"


# Ordered: the first matching pattern wins
MESSAGE_PATTERNS = [
    (("content policy", "prohibited content", "prohibited_content", "sensitive content",
      "inappropriate", "safety checker", "nsfw"), ContentModerationError),
    (("aspect ratio", "invalid image", "unsupported format", "bad request"), ValidationError),
    (("invalid api key", "authentication", "unauthorized", "forbidden"), AuthenticationError),
    (("rate limit", "too many requests", "quota exceeded", "insufficient balance"), RateLimitError),
    (("overloaded", "service unavailable", "bad gateway", "capacity"), ServiceOverloadedError),
    (("gateway timeout", "timed out", "timeout"), GatewayTimeoutError),
    (("connection", "network"), NetworkError),
    (("internal server error", "temporary"), APIError),
]


def classify_message(message: Optional[str], default: type = APIError) -> GenerationError:
    """Turn a provider error message into a classified error.

    Args:
        message: Error text reported by the provider
        default: Error class used when no pattern matches

    Returns:
        GenerationError instance carrying the original message
    """
    text = (message or "").strip() or "Unknown provider error"
    lowered = text.lower()
    for patterns, error_class in MESSAGE_PATTERNS:
        if any(pattern in lowered for pattern in patterns):
            return error_class(text)
    return default(text)


def classify_http_status(status_code: int, body_text: str = "") -> GenerationError:
    """Classify a non-success HTTP response from a provider.

    Args:
        status_code: HTTP status code
        body_text: Response body, used for the message and pattern matching

    Returns:
        GenerationError instance
    """
    message = f"Provider returned HTTP {status_code}"
    if body_text:
        message = f"{message}: {body_text[:300]}"

    if status_code == 429:
        return RateLimitError(message)
    if status_code in (502, 503):
        return ServiceOverloadedError(message)
    if status_code in (408, 504):
        return GatewayTimeoutError(message)
    if status_code >= 500:
        return APIError(message)
    if status_code in (401, 403):
        return AuthenticationError(message)
    if status_code in (400, 404, 413, 415, 422):
        # 400s often carry a moderation verdict in the body
        return classify_message(message, default=ValidationError)
    return classify_message(message, default=TerminalError)
