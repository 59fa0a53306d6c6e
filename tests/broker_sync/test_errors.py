"""
Tests for the error taxonomy and status mapping.

============================================================
PURPOSE
============================================================
Verify exceptions map onto the documented status categories.

TEST CATEGORIES:
1. Error code registry
2. Status mapping
3. Failure payloads
============================================================
"""

import pytest

from broker_sync.errors import (
    ERROR_CODES,
    RETRYABLE_ERROR_CODES,
    ErrorCategory,
    error_response,
    get_error_info,
    http_status_for,
    is_retryable,
)
from broker_sync.types import (
    AuthenticationError,
    BrokerApiError,
    ConnectionNotFoundError,
    CredentialError,
    LinkPersistenceError,
    PersistenceError,
    SyncInProgressError,
    SyncTimeoutError,
)


# ============================================================
# REGISTRY TESTS
# ============================================================

class TestErrorRegistry:
    """Tests for ERROR_CODES."""

    def test_codes_match_keys(self):
        for code, info in ERROR_CODES.items():
            assert info.code == code

    def test_unknown_code(self):
        info = get_error_info("NOPE")
        assert info.category == ErrorCategory.INTERNAL
        assert info.http_status == 500
        assert not info.is_retryable

    def test_retryable_codes(self):
        assert "RATE_LIMIT" in RETRYABLE_ERROR_CODES
        assert "SYNC_IN_PROGRESS" in RETRYABLE_ERROR_CODES
        assert "AUTH_ERROR" not in RETRYABLE_ERROR_CODES
        assert is_retryable("NETWORK_ERROR")
        assert not is_retryable("INVALID_CREDENTIALS")

    def test_exception_codes_registered(self):
        for exc_class in (
            AuthenticationError,
            ConnectionNotFoundError,
            CredentialError,
            SyncInProgressError,
            BrokerApiError,
            SyncTimeoutError,
            PersistenceError,
            LinkPersistenceError,
        ):
            assert exc_class.code in ERROR_CODES


# ============================================================
# STATUS MAPPING TESTS
# ============================================================

class TestStatusMapping:
    """Tests for http_status_for."""

    @pytest.mark.parametrize("error,expected", [
        (AuthenticationError("Not authenticated"), 401),
        (ConnectionNotFoundError("missing"), 404),
        (CredentialError("bad"), 400),
        (SyncInProgressError("busy"), 409),
        (BrokerApiError("Invalid API credentials", 401, code="AUTH_ERROR"), 401),
        (BrokerApiError("Rate limit", 429, code="RATE_LIMIT"), 429),
        (BrokerApiError("Bad gateway", 502), 500),
        (BrokerApiError("Server error", 503), 500),
        (SyncTimeoutError("timed out"), 500),
        (PersistenceError("db down"), 500),
        (RuntimeError("boom"), 500),
    ])
    def test_status(self, error, expected):
        assert http_status_for(error) == expected


# ============================================================
# PAYLOAD TESTS
# ============================================================

class TestErrorResponse:
    """Tests for error_response."""

    def test_domain_error_payload(self):
        status, payload = error_response(SyncInProgressError("A sync is already running"))
        assert status == 409
        assert payload == {
            "success": False,
            "error": "A sync is already running",
            "code": "SYNC_IN_PROGRESS",
        }

    def test_broker_error_keeps_code(self):
        status, payload = error_response(
            BrokerApiError("Rate limit exceeded", 429, code="RATE_LIMIT")
        )
        assert status == 429
        assert payload["code"] == "RATE_LIMIT"

    def test_plain_exception_payload(self):
        status, payload = error_response(RuntimeError("boom"))
        assert status == 500
        assert payload["success"] is False
        assert payload["error"] == "boom"
        assert "code" not in payload
