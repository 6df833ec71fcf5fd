"""Tests for error classification."""

import httpx
import pytest

from dashsync.exceptions import (
    AuthExpiredError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitError,
    SessionExpiredError,
    SyncError,
    SyncErrorCode,
    TransientNetworkError,
    is_auth_error,
    is_network_error,
    is_reconnect_message,
    is_retryable,
    reconnect_required,
)


class TestFromError:
    """Arbitrary exceptions map onto the error taxonomy."""

    def test_sync_errors_pass_through(self):
        error = NotFoundError("gone")
        assert SyncError.from_error(error) is error

    def test_httpx_timeout(self):
        error = SyncError.from_error(httpx.ReadTimeout("slow"))
        assert isinstance(error, TransientNetworkError)
        assert error.code == SyncErrorCode.NETWORK_TIMEOUT
        assert error.retryable

    def test_httpx_transport_error(self):
        assert isinstance(SyncError.from_error(httpx.ConnectError("refused")), TransientNetworkError)

    @pytest.mark.parametrize("message, expected", [
        ("invalid_grant: Token has been expired or revoked.", SessionExpiredError),
        ("HTTP 401 Unauthorized", AuthExpiredError),
        ("429 Too Many Requests", RateLimitError),
        ("operation timed out", TransientNetworkError),
        ("connection reset by peer", TransientNetworkError),
        ("resource not found", NotFoundError),
        ("403 Forbidden", PermissionDeniedError),
    ])
    def test_message_classification(self, message, expected):
        error = SyncError.from_error(RuntimeError(message))
        assert type(error) is expected
        assert str(error) == message

    def test_unknown_errors_keep_their_message(self):
        error = SyncError.from_error(ValueError("bad things"))
        assert type(error) is SyncError
        assert str(error) == "bad things"
        assert error.code == SyncErrorCode.UNKNOWN


class TestPredicates:
    """Helpers used when reporting failures."""

    def test_reconnect_messages(self):
        assert is_reconnect_message("Please reconnect your account")
        assert is_reconnect_message("INVALID_GRANT")
        assert not is_reconnect_message("rate limited")

    def test_auth_and_network(self):
        assert is_auth_error(AuthExpiredError("x"))
        assert reconnect_required(RuntimeError("token revoked"))
        assert not reconnect_required(NotFoundError("x"))
        assert is_network_error(RuntimeError("network unreachable"))
        assert is_retryable(RateLimitError("slow down"))
        assert not is_retryable(PermissionDeniedError("no"))

    def test_user_messages(self):
        assert "reconnect" in AuthExpiredError("x").user_message.lower()
        assert NotFoundError("x").user_message != SyncError("x").user_message
