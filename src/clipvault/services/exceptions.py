"""Service error hierarchy for storage, record-store and submission operations.

This module defines the exception hierarchy for service-level errors:
- ServiceError: Base for all service errors
- TransientError: Retryable errors (network, rate limits, timeouts)
- PermanentError: Non-retryable errors (authentication, validation, quota)

Provider errors keep the raw provider text in ``detail``. It is a diagnostic
only and is never shown to submitters as the primary message.
"""

from enum import Enum


class FailureKind(str, Enum):
    """User-facing failure category carried by typed results."""

    OFFLINE = "offline"
    TRANSPORT = "transport"
    VALIDATION = "validation"
    PARTIAL_STORAGE = "partial_storage"
    TOTAL_STORAGE = "total_storage"
    RECORD_WRITE = "record_write"
    MODERATION = "moderation"
    NOT_FOUND = "not_found"


class ServiceError(Exception):
    """Base exception for all service errors."""

    retryable: bool = False

    def __init__(self, message: str, *, provider: str | None = None, detail: str | None = None):
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.detail = detail


class TransientError(ServiceError):
    """Transient error that may succeed on retry.

    Examples:
    - Network timeouts
    - Rate limit exceeded (429)
    - Service unavailable (503)
    """

    retryable = True


class PermanentError(ServiceError):
    """Permanent error that will not succeed on retry without changing the input.

    Examples:
    - Authentication failures (401, 403)
    - Invalid request parameters (400)
    - File too large / quota exhausted (413)
    """

    retryable = False


# Storage-provider errors
class StorageNetworkError(TransientError):
    """Connection failure or service unavailable."""

    pass


class StorageTimeoutError(TransientError):
    """Provider call exceeded its timeout."""

    pass


class StorageRateLimitError(TransientError):
    """Rate limit exceeded (429)."""

    pass


class StorageAuthError(PermanentError):
    """Authentication failure (401, 403) or missing credentials."""

    pass


class StorageValidationError(PermanentError):
    """Provider rejected the request (400, 409, 422)."""

    pass


class StorageQuotaError(PermanentError):
    """File too large or provider quota exhausted."""

    pass


# Submission pipeline errors
class OfflineError(ServiceError):
    """No network connectivity detected before the upload started."""

    pass


class TotalStorageFailure(ServiceError):
    """Every configured video storage provider failed."""

    pass


class AttemptNotFoundError(ServiceError):
    """Upload attempt is unknown or has expired."""

    pass


class InvalidSlotTransition(ServiceError):
    """Status-tracker slot moved backwards within one attempt."""

    pass


# Record store errors
class RecordStoreError(TransientError):
    """Record store read or write failed."""

    pass


class SubmissionNotFoundError(PermanentError):
    """Submission row does not exist."""

    pass


def classify_failure(error: BaseException) -> FailureKind:
    """Map an exception to the failure category shown to users.

    Transient errors (and anything unexpected) are transport failures the user
    can retry; permanent errors need the input changed first.
    """
    if isinstance(error, OfflineError):
        return FailureKind.OFFLINE
    if isinstance(error, SubmissionNotFoundError):
        return FailureKind.NOT_FOUND
    if isinstance(error, PermanentError):
        return FailureKind.VALIDATION
    return FailureKind.TRANSPORT
