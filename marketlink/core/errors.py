"""
Error taxonomy and classification for outbound calls.

Every upstream failure, whatever library raised it, is classified into two
flags: whether it is worth retrying and whether it signals a rate limit.
Classification is pure; turning it into control flow is the RetryEngine's job.
"""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass, field
from typing import Any, List, Optional


class MarketLinkError(Exception):
    """Base class for all errors raised by marketlink."""


class UpstreamError(MarketLinkError):
    """
    An error reported by an upstream provider.

    Args:
        message: Human-readable description
        code: Provider-specific error code (e.g. "invalid_api_key")
        status: HTTP status code, if the failure came with one
    """

    def __init__(self, message: str, code: Optional[str] = None, status: Optional[int] = None):
        super().__init__(message)
        self.code = code
        self.status = status


class TransportError(UpstreamError):
    """Network failure or timeout. Retryable."""


class ServerError(TransportError):
    """5xx response from the provider. Retryable."""


class RateLimitError(UpstreamError):
    """429-class rejection. Retryable, and feeds admission control."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        status: Optional[int] = 429,
        retry_after: Optional[float] = None,
    ):
        super().__init__(message, code=code, status=status)
        self.retry_after = retry_after


class AuthError(UpstreamError):
    """Credentials rejected (401/403). Fails fast."""


class ValidationError(UpstreamError):
    """Request rejected as malformed (400/404/422). Fails fast."""


class ExhaustedRetriesError(MarketLinkError):
    """Final failure of one provider after its retries ran out."""

    def __init__(self, provider: str, attempts: int, cause: BaseException):
        super().__init__(f"{provider} failed after {attempts} attempt(s): {cause}")
        self.provider = provider
        self.attempts = attempts
        self.cause = cause


class ChainExhaustedError(MarketLinkError):
    """Every provider in a fallback chain failed."""

    def __init__(self, failures: List[ExhaustedRetriesError], skipped: Optional[List[str]] = None):
        self.failures = list(failures)
        self.skipped = list(skipped or [])
        if self.failures:
            detail = "; ".join(str(f) for f in self.failures)
            message = f"All AI providers failed: {detail}"
        else:
            message = "No AI provider available"
        super().__init__(message)

    @property
    def providers(self) -> List[str]:
        return [f.provider for f in self.failures]


# =============================================================================
# Classification
# =============================================================================

_RATE_LIMIT_PATTERN = re.compile(r"\b429\b|rate.?limit|too many requests")
_NETWORK_PATTERN = re.compile(
    r"timeout|timed out|econnreset|econnrefused|enotfound|connection (reset|refused|aborted|error)"
    r"|network|socket|fetch failed|remote end closed"
)
_SERVER_PATTERN = re.compile(r"\b5\d\d\b|internal server error|bad gateway|service unavailable")
_AUTH_PATTERN = re.compile(r"\b40[13]\b|unauthorized|forbidden|api key|authentication")


@dataclass(frozen=True)
class Classification:
    """Outcome of classifying one error."""

    retryable: bool
    rate_limited: bool = False
    category: str = "unknown"


def _status_of(error: BaseException) -> Optional[int]:
    """HTTP status attached to the error or to a `requests` response on it."""
    status = getattr(error, "status", None)
    if status is None:
        status = getattr(error, "status_code", None)
    if status is None:
        response = getattr(error, "response", None)
        status = getattr(response, "status_code", None)
    try:
        return int(status) if status is not None else None
    except (TypeError, ValueError):
        return None


class ErrorClassifier:
    """
    Decides whether an error is retryable and whether it is a rate limit.

    Typed errors are trusted first, then an attached HTTP status, then the
    error text. Anything unrecognised is non-retryable.
    """

    def classify(self, error: BaseException) -> Classification:
        if isinstance(error, RateLimitError):
            return Classification(retryable=True, rate_limited=True, category="rate_limit")
        if isinstance(error, AuthError):
            return Classification(retryable=False, category="auth")
        if isinstance(error, ValidationError):
            return Classification(retryable=False, category="validation")
        if isinstance(error, ServerError):
            return Classification(retryable=True, category="server")
        if isinstance(error, (TransportError, TimeoutError, asyncio.TimeoutError, ConnectionError)):
            return Classification(retryable=True, category="network")

        status = _status_of(error)
        if status == 429:
            return Classification(retryable=True, rate_limited=True, category="rate_limit")
        if status is not None and 500 <= status < 600:
            return Classification(retryable=True, category="server")
        if status is not None and status in (401, 403):
            return Classification(retryable=False, category="auth")
        if status is not None and 400 <= status < 500:
            return Classification(retryable=False, category="validation")

        text = str(error).lower()
        if _RATE_LIMIT_PATTERN.search(text):
            return Classification(retryable=True, rate_limited=True, category="rate_limit")
        if _AUTH_PATTERN.search(text):
            return Classification(retryable=False, category="auth")
        if _NETWORK_PATTERN.search(text):
            return Classification(retryable=True, category="network")
        if _SERVER_PATTERN.search(text):
            return Classification(retryable=True, category="server")

        return Classification(retryable=False)

    def describe(self, error: BaseException) -> str:
        """Short category label for logs and stats."""
        return self.classify(error).category


default_classifier = ErrorClassifier()


def classify(error: BaseException) -> Classification:
    """Classify with the shared stateless classifier."""
    return default_classifier.classify(error)


# =============================================================================
# Tagged attempt outcomes
# =============================================================================

@dataclass(frozen=True)
class Ok:
    value: Any


@dataclass(frozen=True)
class RetryableFailure:
    error: BaseException
    rate_limited: bool = False


@dataclass(frozen=True)
class TerminalFailure:
    error: BaseException


@dataclass
class AttemptRecord:
    """One attempt inside a single RetryEngine run."""

    attempt_number: int
    delay_before_attempt: float
    error: Optional[BaseException] = field(default=None)
