"""
Broker Sync - Adapters Package.

============================================================
PURPOSE
============================================================
Broker fetch collaborators.

AVAILABLE ADAPTERS:
- AlpacaAdapter: Alpaca Trading API v2
- TradovateAdapter: Tradovate REST API
- MockBrokerAdapter: For testing

UTILITIES:
- AdapterFactory / create_broker_adapter
- Secure logging helpers (credential masking)

============================================================
"""

from .base import BrokerAdapter, HttpBrokerAdapter, parse_timestamp
from .alpaca import AlpacaAdapter, map_alpaca_order
from .tradovate import TradovateAdapter, map_tradovate_order
from .mock import MockBrokerAdapter, MockConfig
from .factory import (
    AdapterFactory,
    BrokerId,
    create_broker_adapter,
    default_adapter_factory,
)
from .errors import map_http_error
from .logging_utils import mask_headers, mask_params, mask_value


__all__ = [
    "BrokerAdapter",
    "HttpBrokerAdapter",
    "parse_timestamp",
    "AlpacaAdapter",
    "map_alpaca_order",
    "TradovateAdapter",
    "map_tradovate_order",
    "MockBrokerAdapter",
    "MockConfig",
    "AdapterFactory",
    "BrokerId",
    "create_broker_adapter",
    "default_adapter_factory",
    "map_http_error",
    "mask_headers",
    "mask_params",
    "mask_value",
]
