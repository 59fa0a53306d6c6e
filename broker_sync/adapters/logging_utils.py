"""
Broker Adapter - Secure Logging Utilities.

============================================================
PURPOSE
============================================================
Secure logging for broker adapter requests with:
- Credential masking (API keys, secrets, tokens)
- Request/response sanitization

============================================================
SECURITY REQUIREMENTS
============================================================
1. NEVER log raw API keys, secrets or passwords
2. Mask sensitive headers (APCA-API-KEY-ID, Authorization, etc.)
3. Mask sensitive query/body parameters

============================================================
"""

import json
import logging
import re
from typing import Any, Dict, Optional


logger = logging.getLogger(__name__)


# ============================================================
# SENSITIVE DATA PATTERNS
# ============================================================

# Exact header/parameter names (lower-cased) that are always masked
SENSITIVE_KEYS = frozenset({
    "authorization",
    "apca-api-key-id",
    "apikey",
    "api_key",
    "x-api-key",
    "sec",
    "cid",
})

# Any key containing one of these is masked
SENSITIVE_FRAGMENTS = ("secret", "password", "token")

# Long opaque strings in free-text values
OPAQUE_STRING = re.compile(r'[A-Za-z0-9]{32,}')


# ============================================================
# MASKING FUNCTIONS
# ============================================================

def mask_value(value: str, show_chars: int = 4) -> str:
    """Keep the first show_chars characters of a secret."""
    if not value or len(value) <= show_chars:
        return "***"
    return f"{value[:show_chars]}...***"


def is_sensitive(key: str) -> bool:
    lowered = key.lower()
    return lowered in SENSITIVE_KEYS or any(part in lowered for part in SENSITIVE_FRAGMENTS)


def _scrub(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            k: (mask_value(str(v)) if v and is_sensitive(str(k)) else _scrub(v))
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [_scrub(item) for item in value]
    if isinstance(value, str):
        return OPAQUE_STRING.sub("***KEY***", value)
    return value


def mask_headers(headers: Optional[Dict[str, str]]) -> Dict[str, str]:
    """Mask credential headers (Alpaca key pair, bearer tokens)."""
    return _scrub(dict(headers)) if headers else {}


def mask_params(params: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Mask sensitive query parameters or JSON body fields.

    Nested objects and lists are walked, so a Tradovate
    accesstokenrequest body is masked field by field.
    """
    return _scrub(dict(params)) if params else {}


# ============================================================
# REQUEST LOGGING
# ============================================================

def log_request(
    broker: str,
    method: str,
    url: str,
    headers: Optional[Dict[str, str]] = None,
    params: Optional[Dict[str, Any]] = None,
) -> None:
    """Log an outgoing broker request at debug level, masked."""
    if not logger.isEnabledFor(logging.DEBUG):
        return
    entry = {
        "broker": broker,
        "method": method,
        "url": url,
        "headers": mask_headers(headers),
        "params": mask_params(params),
    }
    logger.debug(f"REQUEST: {json.dumps(entry, default=str)}")


def log_response(
    broker: str,
    method: str,
    url: str,
    status: int,
    latency_ms: float,
) -> None:
    """Log a broker response; warnings for non-2xx."""
    message = f"RESPONSE: [{broker}] {method} {url} -> {status} ({latency_ms:.0f}ms)"
    if 200 <= status < 300:
        logger.debug(message)
    else:
        logger.warning(message)
