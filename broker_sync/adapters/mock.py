"""
Broker Adapter - Mock.

============================================================
PURPOSE
============================================================
Mock adapter for testing the sync controller.

FEATURES:
- Scripted executions
- Cursor honoured or ignored
- Configurable error injection
- Configurable latency
- Call tracking

============================================================
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from ..types import BrokerApiError, RawExecution
from .base import BrokerAdapter


logger = logging.getLogger(__name__)


# ============================================================
# MOCK CONFIGURATION
# ============================================================

@dataclass
class MockConfig:
    """Configuration for mock adapter."""

    executions: List[RawExecution] = field(default_factory=list)
    """Full execution history the broker reports."""

    honour_cursor: bool = True
    """Filter by executed_at > cursor. False returns the full history every time."""

    # Latency simulation
    latency_seconds: float = 0.0
    """Delay before fetch returns."""

    # Error injection
    fetch_error: Optional[Exception] = None
    """Raised from fetch_executions_since."""

    connect_error: Optional[Exception] = None
    """Raised from connect."""


class MockBrokerAdapter(BrokerAdapter):
    """In-memory broker adapter."""

    def __init__(self, config: Optional[MockConfig] = None, broker: str = "mock"):
        self._config = config or MockConfig()
        self._broker = broker
        self._connected = False

        self.fetch_cursors: List[Optional[datetime]] = []
        self.connect_calls = 0
        self.disconnect_calls = 0

    @property
    def broker(self) -> str:
        return self._broker

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def config(self) -> MockConfig:
        return self._config

    def add_executions(self, *executions: RawExecution) -> None:
        self._config.executions.extend(executions)

    async def connect(self) -> None:
        self.connect_calls += 1
        if self._config.connect_error is not None:
            raise self._config.connect_error
        self._connected = True

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        self._connected = False

    async def fetch_executions_since(
        self,
        cursor: Optional[datetime],
    ) -> List[RawExecution]:
        self.fetch_cursors.append(cursor)

        if not self._connected:
            raise BrokerApiError("Mock adapter is not connected", broker=self._broker)

        if self._config.latency_seconds > 0:
            await asyncio.sleep(self._config.latency_seconds)

        if self._config.fetch_error is not None:
            raise self._config.fetch_error

        executions = list(self._config.executions)
        if cursor is not None and self._config.honour_cursor:
            executions = [e for e in executions if e.executed_at > cursor]

        logger.debug(f"Mock broker returned {len(executions)} execution(s)")
        return executions
