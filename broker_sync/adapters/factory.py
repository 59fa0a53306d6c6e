"""
Broker Adapter Factory.

============================================================
PURPOSE
============================================================
Creates broker adapters from a connection's broker name and
its resolved credentials.

FEATURES:
- Centralized adapter creation
- Configuration injection
- Adapter registry for extension

============================================================
USAGE
============================================================
```python
adapter = create_broker_adapter("alpaca", credentials, is_paper=True)

AdapterFactory.register("mybroker", creator=lambda creds, paper, config: MyAdapter(creds))
```

============================================================
"""

import logging
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional

from ..config import SyncConfig
from ..types import BrokerApiError, BrokerConnection
from .base import BrokerAdapter


logger = logging.getLogger(__name__)


class BrokerId(Enum):
    """Supported broker identifiers."""

    ALPACA = "alpaca"
    TRADOVATE = "tradovate"
    MOCK = "mock"


AdapterCreator = Callable[[Mapping[str, Any], bool, SyncConfig], BrokerAdapter]


class AdapterFactory:
    """Factory for creating broker adapters."""

    _creators: Dict[str, AdapterCreator] = {}

    @classmethod
    def register(cls, broker: str, creator: AdapterCreator) -> None:
        """Register a creator for a broker name."""
        cls._creators[broker.lower()] = creator

    @classmethod
    def unregister(cls, broker: str) -> None:
        """Unregister a broker."""
        cls._creators.pop(broker.lower(), None)

    @classmethod
    def create(
        cls,
        broker: str,
        credentials: Mapping[str, Any],
        is_paper: bool = False,
        config: Optional[SyncConfig] = None,
    ) -> BrokerAdapter:
        """
        Create a broker adapter.

        Raises:
            BrokerApiError: If the broker is not supported
        """
        broker = broker.lower()
        config = config or SyncConfig()

        if broker in cls._creators:
            return cls._creators[broker](credentials, is_paper, config)

        if broker == BrokerId.ALPACA.value:
            from .alpaca import AlpacaAdapter
            return AlpacaAdapter.from_credentials(
                credentials,
                is_paper=is_paper,
                fetch_config=config.fetch,
                timeout_config=config.timeouts,
            )

        if broker == BrokerId.TRADOVATE.value:
            from .tradovate import TradovateAdapter
            return TradovateAdapter(
                credentials,
                is_demo=bool(credentials.get("isDemo", is_paper)),
                fetch_config=config.fetch,
                timeout_config=config.timeouts,
            )

        if broker == BrokerId.MOCK.value:
            from .mock import MockBrokerAdapter
            return MockBrokerAdapter()

        raise BrokerApiError(f"Unsupported broker: {broker}", 400, code="BROKER_ERROR", broker=broker)


def create_broker_adapter(
    broker: str,
    credentials: Mapping[str, Any],
    is_paper: bool = False,
    config: Optional[SyncConfig] = None,
) -> BrokerAdapter:
    """Create an adapter (convenience wrapper around AdapterFactory)."""
    return AdapterFactory.create(broker, credentials, is_paper=is_paper, config=config)


def default_adapter_factory(
    config: Optional[SyncConfig] = None,
) -> Callable[[BrokerConnection, Mapping[str, Any]], BrokerAdapter]:
    """Adapter factory bound to a config, in the shape the sync controller expects."""

    def factory(connection: BrokerConnection, credentials: Mapping[str, Any]) -> BrokerAdapter:
        return create_broker_adapter(
            connection.broker,
            credentials,
            is_paper=connection.is_paper,
            config=config,
        )

    return factory
