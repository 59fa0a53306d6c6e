"""
Broker Adapter - Error Mapping.

============================================================
PURPOSE
============================================================
Maps broker HTTP failures onto BrokerApiError with a code from
the broker sync error registry.

============================================================
HTTP STATUS MAPPING
============================================================
401 / 403  -> AUTH_ERROR   (status preserved)
429        -> RATE_LIMIT   (status preserved)
other      -> BROKER_ERROR (broker message, status preserved)
network    -> NETWORK_ERROR (502)

============================================================
"""

import logging
from typing import Any, Optional

from ..types import BrokerApiError


logger = logging.getLogger(__name__)


AUTH_ERROR_MESSAGE = "Invalid API credentials. Please check your API Key and Secret Key."
RATE_LIMIT_MESSAGE = "Rate limit exceeded. Please wait a moment and try again."


def extract_error_message(body: Any) -> Optional[str]:
    """Pull a human-readable message out of a broker error body."""
    if isinstance(body, dict):
        for key in ("message", "error", "errorText", "msg"):
            value = body.get(key)
            if value:
                return str(value)
    if isinstance(body, str) and body.strip():
        return body.strip()[:200]
    return None


def map_http_error(
    broker: str,
    status: int,
    body: Any = None,
    reason: str = "",
) -> BrokerApiError:
    """
    Map a non-2xx broker response to BrokerApiError.

    Args:
        broker: Broker name
        status: HTTP status code
        body: Parsed error body, if any
        reason: HTTP reason phrase

    Returns:
        BrokerApiError carrying the broker's status
    """
    if status in (401, 403):
        return BrokerApiError(AUTH_ERROR_MESSAGE, status, code="AUTH_ERROR", broker=broker)

    if status == 429:
        return BrokerApiError(RATE_LIMIT_MESSAGE, status, code="RATE_LIMIT", broker=broker)

    message = extract_error_message(body) or (
        f"{broker.capitalize()} API error: {status} {reason}".strip()
    )
    return BrokerApiError(message, status, broker=broker)


def create_network_error(broker: str, error: Exception) -> BrokerApiError:
    """Create network error."""
    return BrokerApiError(
        f"Network error contacting {broker.capitalize()}: {error}",
        502,
        code="NETWORK_ERROR",
        broker=broker,
    )


def create_timeout_error(broker: str, timeout_seconds: float) -> BrokerApiError:
    """Create per-request timeout error."""
    return BrokerApiError(
        f"{broker.capitalize()} request timed out after {timeout_seconds:.0f}s",
        504,
        code="NETWORK_ERROR",
        broker=broker,
    )

