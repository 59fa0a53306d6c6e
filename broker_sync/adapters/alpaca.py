"""
Broker Adapter - Alpaca.

============================================================
PURPOSE
============================================================
Fetches closed orders from the Alpaca Trading API v2 and maps
them to RawExecution.

PAGINATION:
- GET /v2/orders?status=closed&direction=asc
- page_size orders per request, at most max_pages requests
- Next page starts after the last order's created_at
- Stops on an empty or short page

An Alpaca order is one execution: id doubles as execution id
and order id, filled_avg_price and filled_qty describe the fill.

============================================================
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from ..config import FetchConfig, TimeoutConfig
from ..types import CredentialError, ExecutionSide, ExecutionStatus, RawExecution
from .base import HttpBrokerAdapter, format_cursor, parse_timestamp, to_float


logger = logging.getLogger(__name__)


ORDERS_PATH = "/v2/orders"
ACCOUNT_PATH = "/v2/account"


def map_alpaca_order(order: Mapping[str, Any]) -> Optional[RawExecution]:
    """
    Map one Alpaca order to a RawExecution.

    Filled orders missing a fill time, price or quantity are kept
    with status OTHER so they are counted but never paired.
    Returns None only when the order has no id or side.
    """
    order_id = order.get("id")
    side_value = str(order.get("side") or "").lower()
    if not order_id or side_value not in ("buy", "sell"):
        return None

    status = ExecutionStatus.from_broker(order.get("status"))
    quantity = to_float(order.get("filled_qty")) or 0.0
    price = to_float(order.get("filled_avg_price")) or 0.0
    filled_at = parse_timestamp(order.get("filled_at"))
    executed_at = (
        filled_at
        or parse_timestamp(order.get("updated_at"))
        or parse_timestamp(order.get("created_at"))
    )

    if executed_at is None:
        return None

    if status == ExecutionStatus.FILLED and (filled_at is None or quantity <= 0 or price <= 0):
        logger.debug(f"Alpaca order {order_id} reported filled without fill details")
        status = ExecutionStatus.OTHER

    return RawExecution(
        execution_id=str(order_id),
        order_id=str(order_id),
        symbol=str(order.get("symbol") or ""),
        side=ExecutionSide(side_value),
        filled_quantity=quantity,
        average_price=price,
        executed_at=executed_at,
        status=status,
        raw=dict(order),
    )


class AlpacaAdapter(HttpBrokerAdapter):
    """
    Alpaca Trading API v2 adapter.

    Credentials: {"apiKey", "secretKey", "isPaper"}.
    """

    def __init__(
        self,
        api_key: str,
        secret_key: str,
        is_paper: bool = False,
        fetch_config: Optional[FetchConfig] = None,
        timeout_config: Optional[TimeoutConfig] = None,
    ):
        """
        Initialize Alpaca adapter.

        Args:
            api_key: Alpaca API key id
            secret_key: Alpaca secret key
            is_paper: Use the paper trading endpoint
            fetch_config: Pagination and URL configuration
            timeout_config: HTTP timeouts
        """
        super().__init__(fetch_config, timeout_config)
        if not api_key or not secret_key:
            raise CredentialError("Alpaca credentials require apiKey and secretKey")

        self._api_key = api_key
        self._secret_key = secret_key
        self._is_paper = is_paper

    @classmethod
    def from_credentials(
        cls,
        credentials: Mapping[str, Any],
        is_paper: bool = False,
        fetch_config: Optional[FetchConfig] = None,
        timeout_config: Optional[TimeoutConfig] = None,
    ) -> "AlpacaAdapter":
        return cls(
            api_key=credentials.get("apiKey") or credentials.get("api_key") or "",
            secret_key=credentials.get("secretKey") or credentials.get("secret_key") or "",
            is_paper=bool(credentials.get("isPaper", is_paper)),
            fetch_config=fetch_config,
            timeout_config=timeout_config,
        )

    @property
    def broker(self) -> str:
        return "alpaca"

    @property
    def is_paper(self) -> bool:
        return self._is_paper

    @property
    def base_url(self) -> str:
        if self._is_paper:
            return self._fetch_config.alpaca_paper_url
        return self._fetch_config.alpaca_live_url

    def _auth_headers(self) -> Dict[str, str]:
        return {
            "APCA-API-KEY-ID": self._api_key,
            "APCA-API-SECRET-KEY": self._secret_key,
        }

    # --------------------------------------------------------
    # API
    # --------------------------------------------------------

    async def get_account(self) -> Dict[str, Any]:
        """Verify credentials and get account information."""
        return await self._request("GET", ACCOUNT_PATH)

    async def get_closed_orders(
        self,
        after: Optional[str] = None,
        until: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """One page of closed orders, oldest first."""
        params = {
            "status": "closed",
            "limit": str(limit or self._fetch_config.page_size),
            "direction": "asc",
            "after": after,
            "until": until,
        }
        data = await self._request("GET", ORDERS_PATH, params=params)
        return data if isinstance(data, list) else []

    async def get_all_closed_orders(self, after: Optional[str] = None) -> List[Dict[str, Any]]:
        """Closed orders across pages, bounded by max_pages."""
        page_size = self._fetch_config.page_size
        orders: List[Dict[str, Any]] = []
        seen = set()
        cursor = after

        for page in range(self._fetch_config.max_pages):
            batch = await self.get_closed_orders(after=cursor, limit=page_size)
            if not batch:
                break

            for order in batch:
                if order.get("id") in seen:
                    continue
                seen.add(order.get("id"))
                orders.append(order)

            if len(batch) < page_size:
                break

            cursor = batch[-1].get("created_at")
            if not cursor:
                break
        else:
            logger.warning(
                f"Alpaca pagination stopped at {self._fetch_config.max_pages} pages "
                f"({len(orders)} orders)"
            )

        return orders

    async def fetch_executions_since(
        self,
        cursor: Optional[datetime],
    ) -> List[RawExecution]:
        after = format_cursor(cursor) if cursor is not None else None
        orders = await self.get_all_closed_orders(after=after)

        executions = []
        for order in orders:
            execution = map_alpaca_order(order)
            if execution is not None:
                executions.append(execution)

        logger.info(
            f"Fetched {len(orders)} closed Alpaca order(s), "
            f"{len(executions)} mapped ({'paper' if self._is_paper else 'live'})"
        )
        return executions
