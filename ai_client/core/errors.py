"""
Error taxonomy and classification.

Maps raw API and transport failures onto a closed set of error kinds
and decides which kinds are worth retrying.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Union


class ErrorKind(Enum):
    """Closed set of failure kinds surfaced by the client."""
    AUTH_FAILURE = "auth"
    RATE_LIMITED = "rate-limit"
    SERVICE_FAILURE = "server"
    INVALID_REQUEST = "invalid-request"
    CONNECTIVITY_FAILURE = "network"
    UNKNOWN_FAILURE = "unknown"


# Transport-level codes reported when no HTTP status is available
CONNECTION_REFUSED = "connection-refused"
TIMED_OUT = "timed-out"

_TRANSPORT_ALIASES = {
    CONNECTION_REFUSED: CONNECTION_REFUSED,
    TIMED_OUT: TIMED_OUT,
    "ECONNREFUSED": CONNECTION_REFUSED,
    "ETIMEDOUT": TIMED_OUT,
}

_RETRYABLE_KINDS = frozenset({
    ErrorKind.RATE_LIMITED,
    ErrorKind.SERVICE_FAILURE,
    ErrorKind.CONNECTIVITY_FAILURE,
})

DEFAULT_MESSAGES = {
    ErrorKind.AUTH_FAILURE: "Authentication failed. Check your ANTHROPIC_API_KEY in config.",
    ErrorKind.RATE_LIMITED: "Rate limited by Anthropic API. Retrying with backoff...",
    ErrorKind.SERVICE_FAILURE: "Anthropic service error. Retrying...",
    ErrorKind.INVALID_REQUEST: "Bad request",
    ErrorKind.CONNECTIVITY_FAILURE: "Network error occurred. Check your connection.",
    ErrorKind.UNKNOWN_FAILURE: "Unknown error",
}


class AIClientError(Exception):
    """A classified client failure.

    The ``kind`` tag is the contract consumed by callers; ``status_code``
    is kept when the failure came from an HTTP response.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: Optional[str] = None,
        status_code: Optional[int] = None
    ):
        self.kind = kind
        self.message = message or DEFAULT_MESSAGES[kind]
        self.status_code = status_code
        super().__init__(self.message)

    @property
    def retryable(self) -> bool:
        return is_retryable(self.kind)

    def __repr__(self) -> str:
        return f"AIClientError(kind={self.kind.name}, message={self.message!r}, status_code={self.status_code})"


class ConfigurationError(ValueError):
    """Raised for local misconfiguration. Always fatal, never retried."""


@dataclass(frozen=True)
class FailureDescriptor:
    """Raw failure as reported by the transport layer."""
    status_code: Optional[int] = None
    transport_code: Optional[str] = None
    message: Optional[str] = None


def _describe(failure: Any) -> FailureDescriptor:
    """Extract status, transport code and message from an arbitrary failure."""
    if isinstance(failure, FailureDescriptor):
        return failure

    status = getattr(failure, "status_code", None)
    if status is None:
        status = getattr(failure, "status", None)
    if not isinstance(status, int) or isinstance(status, bool):
        status = None

    code = getattr(failure, "code", None)
    if not isinstance(code, str):
        code = None
    if code is None:
        if isinstance(failure, ConnectionRefusedError):
            code = CONNECTION_REFUSED
        elif isinstance(failure, TimeoutError):
            code = TIMED_OUT

    message = getattr(failure, "message", None)
    if not isinstance(message, str) and isinstance(failure, BaseException):
        message = str(failure)
    if not isinstance(message, str):
        message = None

    return FailureDescriptor(status_code=status, transport_code=code, message=message or None)


def classify_error(failure: Union[AIClientError, FailureDescriptor, BaseException, None]) -> AIClientError:
    """Classify a raw failure into an AIClientError.

    Checks run in precedence order and the first match wins. Never raises:
    anything unrecognised becomes an UNKNOWN_FAILURE.

    Args:
        failure: Classified error, failure descriptor, exception or None

    Returns:
        The classified error (the same object if already classified)
    """
    if isinstance(failure, AIClientError):
        return failure
    if failure is None:
        return AIClientError(ErrorKind.UNKNOWN_FAILURE)

    desc = _describe(failure)
    status = desc.status_code

    if status in (401, 403):
        return AIClientError(ErrorKind.AUTH_FAILURE, status_code=status)
    if status == 429:
        return AIClientError(ErrorKind.RATE_LIMITED, status_code=429)
    if status is not None and 500 <= status <= 599:
        return AIClientError(ErrorKind.SERVICE_FAILURE, desc.message, status_code=status)
    if status is not None and 400 <= status <= 499:
        return AIClientError(ErrorKind.INVALID_REQUEST, desc.message, status_code=status)

    if _TRANSPORT_ALIASES.get(desc.transport_code or "") is not None:
        return AIClientError(ErrorKind.CONNECTIVITY_FAILURE, desc.message)

    return AIClientError(ErrorKind.UNKNOWN_FAILURE, desc.message)


def is_retryable(error: Union[AIClientError, ErrorKind]) -> bool:
    """Whether re-attempting is expected to plausibly succeed.

    Auth and validation failures are deterministic, so only rate limits
    and transient service/network failures qualify.
    """
    kind = error.kind if isinstance(error, AIClientError) else error
    return kind in _RETRYABLE_KINDS
