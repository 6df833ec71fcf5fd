"""Exception hierarchy for authentication and synchronization.

Every failure raised by dashsync derives from :class:`SyncError`, which
carries a machine-readable :class:`SyncErrorCode`, a retryable flag and the
original exception when one was wrapped.
"""

from enum import Enum
from typing import Optional

import httpx


class SyncErrorCode(Enum):
    """Machine-readable error codes."""
    AUTH_REQUIRED = "auth_required"
    AUTH_EXPIRED = "auth_expired"
    AUTH_INVALID = "auth_invalid"
    AUTH_DENIED = "auth_denied"
    CANCELLED = "cancelled"
    CONFIGURATION = "configuration"
    SERVICE_UNAVAILABLE = "service_unavailable"
    NETWORK_ERROR = "network_error"
    NETWORK_TIMEOUT = "network_timeout"
    RATE_LIMIT = "rate_limit"
    NOT_FOUND = "not_found"
    PERMISSION_DENIED = "permission_denied"
    VALIDATION_ERROR = "validation_error"
    REMOTE_ERROR = "remote_error"
    SERVER_ERROR = "server_error"
    NOT_IMPLEMENTED = "not_implemented"
    UNKNOWN = "unknown"


class SyncError(Exception):
    """Base exception for dashsync operations."""

    code = SyncErrorCode.UNKNOWN
    retryable = False
    user_message = "An unexpected error occurred during synchronization."

    def __init__(self, message: str, code: Optional[SyncErrorCode] = None,
                 retryable: Optional[bool] = None,
                 original_error: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if retryable is not None:
            self.retryable = retryable
        self.original_error = original_error

    def __str__(self) -> str:
        return self.message

    @classmethod
    def from_error(cls, error: BaseException) -> "SyncError":
        """Classify an arbitrary exception into the dashsync taxonomy.

        Args:
            error: Exception raised by a collaborator

        Returns:
            The error itself if already a SyncError, otherwise a wrapping
            SyncError subclass chosen from its type or message
        """
        if isinstance(error, SyncError):
            return error

        if isinstance(error, httpx.TimeoutException):
            return TransientNetworkError(
                f"Request timed out: {error}",
                code=SyncErrorCode.NETWORK_TIMEOUT,
                original_error=error,
            )
        if isinstance(error, httpx.RequestError):
            return TransientNetworkError(f"Network request failed: {error}", original_error=error)

        message = str(error) or error.__class__.__name__
        lowered = message.lower()

        if is_reconnect_message(message):
            return SessionExpiredError(message, original_error=error)
        if "401" in lowered or "unauthorized" in lowered:
            return AuthExpiredError(message, original_error=error)
        if "429" in lowered or "rate limit" in lowered:
            return RateLimitError(message, original_error=error)
        if "timeout" in lowered or "timed out" in lowered:
            return TransientNetworkError(message, code=SyncErrorCode.NETWORK_TIMEOUT, original_error=error)
        if "network" in lowered or "connection" in lowered:
            return TransientNetworkError(message, original_error=error)
        if "404" in lowered or "not found" in lowered:
            return NotFoundError(message, original_error=error)
        if "403" in lowered or "forbidden" in lowered:
            return PermissionDeniedError(message, original_error=error)

        return SyncError(message, original_error=error)


class TransientNetworkError(SyncError):
    """Network failure that may succeed on a later attempt."""
    code = SyncErrorCode.NETWORK_ERROR
    retryable = True
    user_message = "Network problem. Check your connection and try again."


class RateLimitError(TransientNetworkError):
    """Provider rate limit exceeded."""
    code = SyncErrorCode.RATE_LIMIT
    user_message = "Too many requests. Wait a moment before syncing again."


class AuthError(SyncError):
    """Base class for authentication failures."""
    code = SyncErrorCode.AUTH_REQUIRED
    user_message = "Authentication required. Please connect your account."


class AuthExpiredError(AuthError):
    """Access was rejected after a refresh, or the authorization flow timed out."""
    code = SyncErrorCode.AUTH_EXPIRED
    user_message = "Your session has expired. Please reconnect."


class SessionExpiredError(AuthError):
    """The refresh grant is no longer valid; the connection has to be recreated."""
    code = SyncErrorCode.AUTH_INVALID
    user_message = "Your session has expired. Please reconnect."


AuthInvalidError = SessionExpiredError


class NoConnectionError(AuthError):
    """No stored connection exists for the provider."""
    user_message = "Not connected. Please connect your account."


class RefreshTokenMissingError(AuthError):
    """The access token expired and no refresh token is available."""
    user_message = "Your session has expired. Please reconnect."


class RefreshNotSupportedError(AuthError):
    """The provider does not support token refresh."""


class AuthorizationDeniedError(AuthError):
    """The provider reported an error on the authorization callback."""
    code = SyncErrorCode.AUTH_DENIED
    user_message = "Authorization was denied."

    def __init__(self, error: str, description: Optional[str] = None, **kwargs):
        message = f"{error}: {description}" if description else error
        super().__init__(message, **kwargs)
        self.error = error
        self.description = description


class UserCancelledError(SyncError):
    """The user closed the authorization window before completing it."""
    code = SyncErrorCode.CANCELLED
    user_message = "Authorization cancelled."


class PopupBlockedError(UserCancelledError):
    """The authorization window could not be opened."""
    user_message = "Could not open the authorization window."


class ProviderNotConfiguredError(SyncError):
    """No authentication provider was configured for the requested key."""
    code = SyncErrorCode.CONFIGURATION
    user_message = "This provider is not configured."


class ExchangeServiceUnavailableError(SyncError):
    """The trusted token exchange service cannot be reached."""
    code = SyncErrorCode.SERVICE_UNAVAILABLE
    retryable = True
    user_message = (
        "The local token exchange service is not reachable. "
        "Your session is fine; start the service and retry."
    )


class NotFoundError(SyncError):
    """The remote resource does not exist."""
    code = SyncErrorCode.NOT_FOUND
    user_message = "The requested item no longer exists."


class StaleReferenceError(NotFoundError):
    """A cached remote collection id kept resolving to a missing collection."""
    user_message = "A remote list disappeared during sync. Try again."


class PermissionDeniedError(SyncError):
    """The provider refused access to the resource."""
    code = SyncErrorCode.PERMISSION_DENIED
    user_message = "Access denied by the provider."


class ValidationError(SyncError):
    """A payload failed schema validation."""
    code = SyncErrorCode.VALIDATION_ERROR
    user_message = "Some items had invalid data and were skipped."


class RemoteApiError(SyncError):
    """Unclassified client error returned by a provider API."""
    code = SyncErrorCode.REMOTE_ERROR

    def __init__(self, message: str, status_code: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.status_code = status_code


class ProviderNotImplementedError(SyncError):
    """Synchronization is not implemented for this provider."""
    code = SyncErrorCode.NOT_IMPLEMENTED
    user_message = "Synchronization is not yet implemented for this provider."


_RECONNECT_MARKERS = ("invalid_grant", "invalid grant", "expired", "reconnect", "revoked")


def is_reconnect_message(message: str) -> bool:
    """Return True if an error message indicates the user must reconnect."""
    lowered = message.lower()
    return any(marker in lowered for marker in _RECONNECT_MARKERS)


def is_auth_error(error: BaseException) -> bool:
    """Check whether an error is an authentication failure."""
    return isinstance(SyncError.from_error(error), AuthError)


def is_network_error(error: BaseException) -> bool:
    """Check whether an error is a transient network failure."""
    return isinstance(SyncError.from_error(error), TransientNetworkError)


def is_retryable(error: BaseException) -> bool:
    """Check whether retrying the failed operation may succeed."""
    return SyncError.from_error(error).retryable


def reconnect_required(error: BaseException) -> bool:
    """Check whether the failure leaves the user needing to reconnect."""
    return isinstance(SyncError.from_error(error), AuthError)
