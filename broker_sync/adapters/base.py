"""
Broker Adapter Base.

============================================================
PURPOSE
============================================================
Abstract interface for broker fetch collaborators.

DESIGN PRINCIPLES:
- Broker-agnostic interface: executions since a cursor
- Clean separation from pairing and persistence
- Fully testable with the mock adapter

============================================================
"""

import asyncio
import logging
import re
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import aiohttp

from ..config import FetchConfig, TimeoutConfig
from ..types import BrokerApiError, RawExecution
from .errors import create_network_error, create_timeout_error, map_http_error
from .logging_utils import log_request, log_response


logger = logging.getLogger(__name__)


# ============================================================
# VALUE PARSING
# ============================================================

_FRACTION = re.compile(r"\.(\d+)")


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse a broker ISO-8601 timestamp into naive UTC.

    Accepts a trailing "Z" and sub-microsecond precision.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip().replace("Z", "+00:00")
        text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def format_cursor(cursor: datetime) -> str:
    """RFC-3339 UTC string for a naive UTC cursor."""
    if cursor.tzinfo is not None:
        cursor = cursor.astimezone(timezone.utc).replace(tzinfo=None)
    return cursor.isoformat(timespec="microseconds") + "Z"


def to_float(value: Any) -> Optional[float]:
    """Parse a numeric field that brokers may send as a string."""
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


# ============================================================
# BROKER ADAPTER INTERFACE
# ============================================================

class BrokerAdapter(ABC):
    """
    Abstract interface for broker adapters.

    Implementations:
    - AlpacaAdapter: Alpaca Trading API v2
    - TradovateAdapter: Tradovate REST API
    - MockBrokerAdapter: For testing
    """

    @property
    @abstractmethod
    def broker(self) -> str:
        """Get broker identifier."""
        pass

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Check if adapter is connected."""
        pass

    @abstractmethod
    async def connect(self) -> None:
        """
        Open the adapter's session.

        Raises:
            BrokerApiError: If the broker cannot be reached or rejects credentials
        """
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the adapter's session."""
        pass

    @abstractmethod
    async def fetch_executions_since(
        self,
        cursor: Optional[datetime],
    ) -> List[RawExecution]:
        """
        Fetch executions newer than the cursor.

        Args:
            cursor: Last successful sync time, or None for full history

        Returns:
            Executions in any order, any status

        Raises:
            BrokerApiError: On broker or network failure
        """
        pass

    async def __aenter__(self) -> "BrokerAdapter":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.disconnect()


# ============================================================
# HTTP ADAPTER
# ============================================================

class HttpBrokerAdapter(BrokerAdapter):
    """
    Shared aiohttp session handling for REST brokers.

    Subclasses provide the base URL and auth headers.
    """

    def __init__(
        self,
        fetch_config: Optional[FetchConfig] = None,
        timeout_config: Optional[TimeoutConfig] = None,
    ):
        self._fetch_config = fetch_config or FetchConfig()
        self._timeout_config = timeout_config or TimeoutConfig()
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def is_connected(self) -> bool:
        return self._session is not None and not self._session.closed

    @property
    @abstractmethod
    def base_url(self) -> str:
        pass

    def _auth_headers(self) -> Dict[str, str]:
        return {}

    async def connect(self) -> None:
        if self._session is not None:
            await self.disconnect()

        timeout = aiohttp.ClientTimeout(
            connect=self._timeout_config.connection_timeout_seconds,
            total=self._timeout_config.read_timeout_seconds,
        )
        self._session = aiohttp.ClientSession(timeout=timeout)
        logger.info(f"Opened {self.broker} session ({self.base_url})")

    async def disconnect(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None
            logger.info(f"Closed {self.broker} session")

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Make API request."""
        if self._session is None:
            raise BrokerApiError(f"{self.broker} adapter is not connected", broker=self.broker)

        url = f"{self.base_url}{path}"
        headers = {"Accept": "application/json", **self._auth_headers()}
        params = {k: v for k, v in (params or {}).items() if v is not None and v != ""}

        log_request(self.broker, method, url, headers, {**params, **(json_body or {})})
        started = time.monotonic()

        try:
            async with self._session.request(
                method,
                url,
                params=params or None,
                json=json_body,
                headers=headers,
            ) as response:
                log_response(
                    self.broker, method, url, response.status,
                    (time.monotonic() - started) * 1000,
                )

                if response.status >= 400:
                    try:
                        body = await response.json(content_type=None)
                    except (aiohttp.ContentTypeError, ValueError):
                        body = await response.text()
                    raise map_http_error(self.broker, response.status, body, response.reason or "")

                return await response.json(content_type=None)

        except aiohttp.ClientError as e:
            raise create_network_error(self.broker, e) from e
        except asyncio.TimeoutError as e:
            raise create_timeout_error(self.broker, self._timeout_config.read_timeout_seconds) from e
