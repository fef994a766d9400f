"""Failure taxonomy for content generation.

The provider transport and the content client raise ContentError subclasses.
At the runner seam every ContentError is turned into a Failure value, which is
what the state machine actually sees and matches on by `kind`:

  parse                 malformed provider output   → JSON repair, then resend
  shape                 valid JSON, wrong fields    → resend only
  quota                 provider quota exhausted    → images: disable feature
  timeout               request exceeded its budget → retryable, never automatic
  transport             network / unexpected status → retryable
  server_configuration  upstream key misconfigured  → not retryable
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel


class FailureKind(str, Enum):
    PARSE = "parse"
    SHAPE = "shape"
    QUOTA = "quota"
    TIMEOUT = "timeout"
    TRANSPORT = "transport"
    SERVER_CONFIGURATION = "server_configuration"


class Failure(BaseModel):
    """Tagged failure value handed from the runner to the state machine."""

    kind: FailureKind
    message: str
    raw_text: str | None = None  # original provider text, parse failures only

    @property
    def retryable(self) -> bool:
        return self.kind is not FailureKind.SERVER_CONFIGURATION


class ContentError(RuntimeError):
    """Base class for every failure the content layer can surface."""

    kind: FailureKind = FailureKind.TRANSPORT

    def to_failure(self) -> Failure:
        return Failure(kind=self.kind, message=str(self))


class ParseFailure(ContentError):
    """The provider text could not be parsed as JSON."""

    kind = FailureKind.PARSE

    def __init__(self, message: str, raw_text: str, parser_message: str = "") -> None:
        super().__init__(message)
        self.raw_text = raw_text
        self.parser_message = parser_message

    def to_failure(self) -> Failure:
        return Failure(kind=self.kind, message=str(self), raw_text=self.raw_text)


class ShapeValidationFailure(ContentError):
    """Well-formed JSON with missing, mistyped or inconsistent fields."""

    kind = FailureKind.SHAPE


class QuotaExceeded(ContentError):
    kind = FailureKind.QUOTA


class RequestTimeout(ContentError):
    kind = FailureKind.TIMEOUT


class TransportFailure(ContentError):
    kind = FailureKind.TRANSPORT


class ServerConfigurationFailure(ContentError):
    """The proxy's upstream credentials are wrong; resending cannot help."""

    kind = FailureKind.SERVER_CONFIGURATION


SERVER_KEY_ERROR = "API Key configuration error on the server. Please contact support."

_QUOTA_MARKERS = ("quota", "RESOURCE_EXHAUSTED")
_KEY_MARKERS = ("API key not valid", "API Key configuration error")


def is_quota_message(message: str) -> bool:
    lowered = message.lower()
    return any(marker.lower() in lowered for marker in _QUOTA_MARKERS)


def is_key_message(message: str) -> bool:
    return any(marker in message for marker in _KEY_MARKERS)


def classify_http_error(status: int, message: str, context: str) -> ContentError:
    """Map a non-2xx proxy/provider response to the matching ContentError."""
    if is_key_message(message):
        return ServerConfigurationFailure(message)
    # A bare 429 is the proxy's own rate limiter, not a provider quota.
    if is_quota_message(message):
        return QuotaExceeded(f"API quota likely exceeded for {context}. Details: {message}")
    return TransportFailure(message or f"Request for {context} failed with HTTP {status}")


IMAGE_QUOTA_MESSAGE = (
    "Image generation quota has been exceeded. "
    "This feature will be disabled for the remainder of your session."
)


# ── State machine guards ─────────────────────────────────


class TransitionError(ValueError):
    """The event is not valid in the current phase."""


class RequestInFlightError(TransitionError):
    """A narrative request is already running; wait for it to settle."""
