"""
Shared fixtures for broker sync tests.
"""

from datetime import datetime, timedelta

import pytest

from broker_sync.types import (
    BrokerConnection,
    ExecutionSide,
    ExecutionStatus,
    RawExecution,
)


BASE_TIME = datetime(2024, 3, 1, 14, 30, 0)


@pytest.fixture
def base_time() -> datetime:
    return BASE_TIME


@pytest.fixture
def make_execution():
    """Factory for RawExecution with sequential ids and minute offsets from BASE_TIME."""
    counter = {"n": 0}

    def _make(
        side: str,
        quantity: float,
        price: float,
        minutes: float = 0,
        symbol: str = "AAPL",
        status: ExecutionStatus = ExecutionStatus.FILLED,
        execution_id: str = None,
    ) -> RawExecution:
        counter["n"] += 1
        execution_id = execution_id or f"exec-{counter['n']}"
        return RawExecution(
            execution_id=execution_id,
            order_id=f"order-{execution_id}",
            symbol=symbol,
            side=ExecutionSide(side),
            filled_quantity=quantity,
            average_price=price,
            executed_at=BASE_TIME + timedelta(minutes=minutes),
            status=status,
            raw={"id": execution_id},
        )

    return _make


@pytest.fixture
def make_connection():
    """Factory for BrokerConnection owned by user-1."""

    def _make(
        connection_id: str = "conn-1",
        user_id: str = "user-1",
        broker: str = "alpaca",
        credentials=None,
        **kwargs,
    ) -> BrokerConnection:
        if credentials is None:
            credentials = {"apiKey": "PKTESTKEY", "secretKey": "secret", "isPaper": True}
        return BrokerConnection(
            connection_id=connection_id,
            user_id=user_id,
            broker=broker,
            credentials=credentials,
            **kwargs,
        )

    return _make
