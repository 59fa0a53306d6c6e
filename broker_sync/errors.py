"""
Broker Sync - Error Taxonomy.

============================================================
PURPOSE
============================================================
Error classification for sync failures and their translation
into HTTP-style status categories.

ERROR CATEGORIES:
1. Caller Errors - Identity, ownership, request shape
2. Credential Errors - Stored credentials unusable
3. Concurrency Errors - Another run in flight
4. Broker Errors - Network, broker auth, rate limits
5. Persistence Errors - Store writes/reads failed
6. Internal Errors - Anything else

STATUS POLICY:
- 4xx for caller and credential errors
- Broker status preserved only when it is 4xx
- 5xx for everything else

============================================================
"""

from enum import Enum
from typing import Dict, Any, Set, Tuple
from dataclasses import dataclass

from .types import BrokerApiError, BrokerSyncError


# ============================================================
# ERROR CATEGORIES
# ============================================================

class ErrorCategory(Enum):
    """Error category classification."""

    CALLER = "CALLER"
    """Bad request, missing identity, unknown connection."""

    CREDENTIALS = "CREDENTIALS"
    """Stored credentials cannot be resolved."""

    CONCURRENCY = "CONCURRENCY"
    """Sync already in progress for the connection."""

    BROKER = "BROKER"
    """Broker API failed."""

    TIMEOUT = "TIMEOUT"
    """Run exceeded its wall-clock budget."""

    PERSISTENCE = "PERSISTENCE"
    """Store operation failed."""

    INTERNAL = "INTERNAL"
    """Unexpected error."""


# ============================================================
# ERROR CODE REGISTRY
# ============================================================

@dataclass
class ErrorCodeInfo:
    """Information about an error code."""

    code: str
    """Error code."""

    category: ErrorCategory
    """Error category."""

    http_status: int
    """Default HTTP-style status."""

    is_retryable: bool
    """Whether re-triggering the sync may succeed."""

    description: str
    """Human-readable description."""


ERROR_CODES: Dict[str, ErrorCodeInfo] = {
    # ========== CALLER ERRORS ==========
    "BAD_REQUEST": ErrorCodeInfo(
        code="BAD_REQUEST",
        category=ErrorCategory.CALLER,
        http_status=400,
        is_retryable=False,
        description="Request body is missing required fields",
    ),
    "NOT_AUTHENTICATED": ErrorCodeInfo(
        code="NOT_AUTHENTICATED",
        category=ErrorCategory.CALLER,
        http_status=401,
        is_retryable=False,
        description="Caller identity is missing or invalid",
    ),
    "CONNECTION_NOT_FOUND": ErrorCodeInfo(
        code="CONNECTION_NOT_FOUND",
        category=ErrorCategory.CALLER,
        http_status=404,
        is_retryable=False,
        description="Broker connection not found for this caller",
    ),

    # ========== CREDENTIAL ERRORS ==========
    "INVALID_CREDENTIALS": ErrorCodeInfo(
        code="INVALID_CREDENTIALS",
        category=ErrorCategory.CREDENTIALS,
        http_status=400,
        is_retryable=False,
        description="Stored credentials could not be resolved",
    ),

    # ========== CONCURRENCY ERRORS ==========
    "SYNC_IN_PROGRESS": ErrorCodeInfo(
        code="SYNC_IN_PROGRESS",
        category=ErrorCategory.CONCURRENCY,
        http_status=409,
        is_retryable=True,
        description="A sync is already running for this connection",
    ),

    # ========== BROKER ERRORS ==========
    "AUTH_ERROR": ErrorCodeInfo(
        code="AUTH_ERROR",
        category=ErrorCategory.BROKER,
        http_status=401,
        is_retryable=False,
        description="Broker rejected the API credentials",
    ),
    "RATE_LIMIT": ErrorCodeInfo(
        code="RATE_LIMIT",
        category=ErrorCategory.BROKER,
        http_status=429,
        is_retryable=True,
        description="Broker rate limit exceeded",
    ),
    "NETWORK_ERROR": ErrorCodeInfo(
        code="NETWORK_ERROR",
        category=ErrorCategory.BROKER,
        http_status=502,
        is_retryable=True,
        description="Could not reach the broker",
    ),
    "BROKER_ERROR": ErrorCodeInfo(
        code="BROKER_ERROR",
        category=ErrorCategory.BROKER,
        http_status=502,
        is_retryable=True,
        description="Broker returned an error",
    ),
    "SYNC_TIMEOUT": ErrorCodeInfo(
        code="SYNC_TIMEOUT",
        category=ErrorCategory.TIMEOUT,
        http_status=504,
        is_retryable=True,
        description="Sync exceeded its time budget",
    ),

    # ========== PERSISTENCE ERRORS ==========
    "PERSISTENCE_ERROR": ErrorCodeInfo(
        code="PERSISTENCE_ERROR",
        category=ErrorCategory.PERSISTENCE,
        http_status=500,
        is_retryable=True,
        description="Failed to persist sync results",
    ),
    "LINK_PERSISTENCE_ERROR": ErrorCodeInfo(
        code="LINK_PERSISTENCE_ERROR",
        category=ErrorCategory.PERSISTENCE,
        http_status=500,
        is_retryable=False,
        description="Failed to persist execution links (trades kept)",
    ),

    # ========== INTERNAL ERRORS ==========
    "SYNC_FAILED": ErrorCodeInfo(
        code="SYNC_FAILED",
        category=ErrorCategory.INTERNAL,
        http_status=500,
        is_retryable=False,
        description="An unexpected error occurred during sync",
    ),
}


def get_error_info(code: str) -> ErrorCodeInfo:
    """
    Get error info for a code.

    Args:
        code: Error code

    Returns:
        ErrorCodeInfo or a generic internal error
    """
    return ERROR_CODES.get(code, ErrorCodeInfo(
        code=code,
        category=ErrorCategory.INTERNAL,
        http_status=500,
        is_retryable=False,
        description=f"Unknown error: {code}",
    ))


def is_retryable(code: str) -> bool:
    """Check if an error code is retryable."""
    return get_error_info(code).is_retryable


RETRYABLE_ERROR_CODES: Set[str] = {
    code for code, info in ERROR_CODES.items() if info.is_retryable
}


# ============================================================
# RESPONSE MAPPING
# ============================================================

def http_status_for(error: Exception) -> int:
    """
    Map an exception to an HTTP-style status.

    Broker errors keep the broker's own status when it is in the
    4xx range. Other domain errors use their registry status.
    Anything unknown is a 500.
    """
    if isinstance(error, BrokerApiError):
        if 400 <= error.status_code < 500:
            return error.status_code
        return 500

    if isinstance(error, BrokerSyncError):
        status = get_error_info(error.code).http_status
        return status if 400 <= status < 500 else 500

    return 500


def error_response(error: Exception) -> Tuple[int, Dict[str, Any]]:
    """
    Build the failure payload for an exception.

    Returns:
        Tuple of (status_code, payload)
    """
    status = http_status_for(error)
    payload: Dict[str, Any] = {"success": False}

    if isinstance(error, BrokerSyncError):
        payload["error"] = error.message or get_error_info(error.code).description
        payload["code"] = error.code
    else:
        payload["error"] = str(error) or get_error_info("SYNC_FAILED").description

    return status, payload
