"""
Structured error types for caseflow.

Provides a typed error hierarchy with metadata for retry decisions,
alerting, and root cause analysis through error chaining.

The job runner never inspects raw exceptions when deciding whether to retry.
Failures are classified exactly once at the call boundary into a closed set
of tagged variants, and the retry policy dispatches on the variant:

    ::

        ┌──────────────────────────────────────────────────────────────┐
        │                       CaseflowError                           │
        │  (category, retryable, retry_after, context, cause)           │
        ├──────────────────────────────────────────────────────────────┤
        │                                                               │
        │  TransientError (retryable)          FatalError               │
        │     │                                (never retried,          │
        │  RateLimitedError    429 / "rate limit"   wraps cause)        │
        │  ServerUnavailableError   500 / 503                           │
        │  NetworkResetError   ECONNRESET                               │
        │                                                               │
        │  ConfigError         StorageError                             │
        └──────────────────────────────────────────────────────────────┘

Examples:
    Classifying an upstream failure:

    >>> err = classify_error(ConnectionResetError("peer closed"))
    >>> type(err).__name__, err.retryable
    ('NetworkResetError', True)

    Unknown failures are fatal:

    >>> classify_error(ValueError("bad pdf")).retryable
    False

Tags:
    error-handling, exception-hierarchy, retry-logic, classification,
    caseflow-core

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

import errno
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    # Infrastructure errors (usually transient)
    NETWORK = "NETWORK"
    UPSTREAM = "UPSTREAM"
    DATABASE = "DATABASE"

    # Configuration errors (never retryable)
    CONFIG = "CONFIG"

    # Application errors
    JOB = "JOB"
    BILLING = "BILLING"

    # Internal errors
    INTERNAL = "INTERNAL"
    UNKNOWN = "UNKNOWN"


class FailureKind(str, Enum):
    """Closed set of failure variants the retry policy dispatches on."""

    RATE_LIMITED = "rate_limited"
    SERVER_UNAVAILABLE = "server_unavailable"
    NETWORK_RESET = "network_reset"
    FATAL = "fatal"


@dataclass
class ErrorContext:
    """
    Structured metadata context for errors.

    Attributes:
        job_id: Job row identifier
        job_type: extraction, ai_analysis, claim_suggestion
        job_key: Idempotency key of the logical attempt
        user_id: Owner of the job
        case_id: Case the job belongs to
        http_status: HTTP status code if applicable
        metadata: Additional key-value pairs
    """

    job_id: str | None = None
    job_type: str | None = None
    job_key: str | None = None
    user_id: str | None = None
    case_id: str | None = None
    http_status: int | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["job_id", "job_type", "job_key", "user_id", "case_id", "http_status"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class CaseflowError(Exception):
    """
    Base exception for all caseflow errors.

    Every instance carries a category, a retryable flag, an optional
    retry-after hint, structured context and the chained cause. Subclasses
    set ``default_category`` and ``default_retryable``.

    Examples:
        >>> error = CaseflowError("Something went wrong")
        >>> error.retryable
        False
        >>> error.with_context(job_key="extract:ev-1").context.job_key
        'extract:ev-1'
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False
    kind: FailureKind = FailureKind.FATAL

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        retry_after: int | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.retry_after = retry_after
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> CaseflowError:
        """
        Add context to this error (fluent API).

        Usage:
            raise FatalError("OCR failed").with_context(job_key="extract:ev-1")
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "kind": self.kind.value,
            "retryable": self.retryable,
        }
        if self.retry_after is not None:
            result["retry_after"] = self.retry_after
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, kind={self.kind.value})"


# =============================================================================
# RETRY VARIANTS
# =============================================================================


class TransientError(CaseflowError):
    """Temporary error that may succeed on retry."""

    default_category = ErrorCategory.NETWORK
    default_retryable = True


class RateLimitedError(TransientError):
    """Upstream rejected the call for exceeding its rate limit (HTTP 429)."""

    default_category = ErrorCategory.UPSTREAM
    kind = FailureKind.RATE_LIMITED


class ServerUnavailableError(TransientError):
    """Upstream returned 500 or 503."""

    default_category = ErrorCategory.UPSTREAM
    kind = FailureKind.SERVER_UNAVAILABLE


class NetworkResetError(TransientError):
    """Connection reset by peer."""

    kind = FailureKind.NETWORK_RESET


class FatalError(CaseflowError):
    """Non-retryable failure. Wraps the original cause."""

    default_category = ErrorCategory.JOB
    default_retryable = False
    kind = FailureKind.FATAL


# =============================================================================
# OTHER ERRORS
# =============================================================================


class ConfigError(CaseflowError):
    """Configuration error. Never retryable."""

    default_category = ErrorCategory.CONFIG


class StorageError(CaseflowError):
    """Backing store failure."""

    default_category = ErrorCategory.DATABASE


# =============================================================================
# CLASSIFICATION
# =============================================================================

_RATE_LIMIT_STATUSES = frozenset({429})
_UNAVAILABLE_STATUSES = frozenset({500, 503})
_RATE_LIMIT_TEXT = re.compile(r"rate[ _-]?limit", re.IGNORECASE)


def _status_of(error: Exception) -> int | None:
    """Pull an HTTP status out of SDK and httpx style exceptions."""
    for attr in ("status", "status_code", "http_status"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(error, "response", None)
    value = getattr(response, "status_code", None)
    if isinstance(value, int):
        return value
    return None


def classify_error(error: Exception) -> CaseflowError:
    """Map any exception onto one of the tagged failure variants.

    Already-classified errors are returned unchanged. The returned error
    chains the original as ``cause``.
    """
    if isinstance(error, CaseflowError):
        return error

    message = str(error) or error.__class__.__name__
    status = _status_of(error)
    context = ErrorContext(http_status=status)

    if status in _RATE_LIMIT_STATUSES:
        return RateLimitedError(message, context=context, cause=error)
    if status in _UNAVAILABLE_STATUSES:
        return ServerUnavailableError(message, context=context, cause=error)
    if isinstance(error, ConnectionResetError) or getattr(error, "errno", None) == errno.ECONNRESET:
        return NetworkResetError(message, context=context, cause=error)
    if "ECONNRESET" in message:
        return NetworkResetError(message, context=context, cause=error)
    if _RATE_LIMIT_TEXT.search(message):
        return RateLimitedError(message, context=context, cause=error)
    return FatalError(message, context=context, cause=error)


def is_retryable(error: Exception) -> bool:
    """Check if an error is retryable."""
    return classify_error(error).retryable


# =============================================================================
# USER-FACING MESSAGES
# =============================================================================

_SECRET_PATTERNS = (
    (re.compile(r"sk-[a-zA-Z0-9]{20,}"), "sk-***"),
    (re.compile(r"key\s*[:=]\s*[\"']?[a-zA-Z0-9_-]{20,}[\"']?", re.IGNORECASE), "key=***"),
    (re.compile(r"Bearer\s+[a-zA-Z0-9_-]{20,}", re.IGNORECASE), "Bearer ***"),
)


def redact_secrets(text: str) -> str:
    """Mask API keys and bearer tokens."""
    for pattern, replacement in _SECRET_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


def humanize_error(error: str | None, *, max_length: int = 200) -> str:
    """Turn a stored job error into a short message safe to show a user."""
    if not error:
        return "Unknown error"

    redacted = redact_secrets(error)
    lowered = redacted.lower()

    if "rate limit" in lowered or "429" in lowered:
        return "Rate limited - too many requests"
    if "401" in lowered or "unauthorized" in lowered:
        return "Authentication error"
    if "timeout" in lowered or "etimedout" in lowered or "timed out" in lowered:
        return "Request timed out"
    if "econnreset" in lowered or "network" in lowered:
        return "Network error"

    if len(redacted) > max_length:
        return redacted[:max_length] + "..."
    return redacted


__all__ = [
    "ErrorCategory",
    "FailureKind",
    "ErrorContext",
    "CaseflowError",
    "TransientError",
    "RateLimitedError",
    "ServerUnavailableError",
    "NetworkResetError",
    "FatalError",
    "ConfigError",
    "StorageError",
    "classify_error",
    "is_retryable",
    "redact_secrets",
    "humanize_error",
]
