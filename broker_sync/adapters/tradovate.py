"""
Broker Adapter - Tradovate.

============================================================
PURPOSE
============================================================
Fetches filled orders from the Tradovate REST API and maps
them to RawExecution.

FLOW:
1. Authenticate (or reuse a stored access token)
2. Resolve the account id
3. /order/list, /fill/list, /contract/list, /masterInstrument/list
4. Filled orders with fills become executions; the symbol is the
   master instrument name (NQ), falling back to the contract name

The Tradovate list endpoints have no time filter, so the cursor
is applied client-side.

============================================================
"""

import logging
from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from ..config import FetchConfig, TimeoutConfig
from ..types import (
    BrokerApiError,
    CredentialError,
    ExecutionSide,
    ExecutionStatus,
    RawExecution,
)
from .base import HttpBrokerAdapter, parse_timestamp, to_float


logger = logging.getLogger(__name__)


APP_ID = "TradeJournal"
APP_VERSION = "1.0"


def _weighted_fill_price(fills: List[Mapping[str, Any]]) -> Optional[float]:
    total_qty = 0.0
    notional = 0.0
    for fill in fills:
        qty = to_float(fill.get("qty")) or 0.0
        price = to_float(fill.get("price")) or 0.0
        total_qty += qty
        notional += qty * price
    if total_qty <= 0:
        return None
    return notional / total_qty


def map_tradovate_order(
    order: Mapping[str, Any],
    fills: List[Mapping[str, Any]],
    symbol: str,
) -> Optional[RawExecution]:
    """
    Map one Tradovate order and its fills to a RawExecution.

    Average price comes from avgFillPrice, else the fill-weighted
    average. Returns None when the order has no id, action or time.
    """
    order_id = order.get("id")
    action = str(order.get("action") or "").lower()
    executed_at = parse_timestamp(order.get("timestamp"))
    if order_id is None or action not in ("buy", "sell") or executed_at is None:
        return None

    status = ExecutionStatus.from_broker(order.get("orderState"))
    if status == ExecutionStatus.FILLED and not fills:
        status = ExecutionStatus.OTHER

    quantity = to_float(order.get("filledQty"))
    if not quantity:
        quantity = sum(to_float(f.get("qty")) or 0.0 for f in fills)

    price = to_float(order.get("avgFillPrice")) or _weighted_fill_price(fills) or 0.0

    raw = dict(order)
    raw["fills"] = [dict(f) for f in fills]

    return RawExecution(
        execution_id=str(order_id),
        order_id=str(order_id),
        symbol=symbol,
        side=ExecutionSide(action),
        filled_quantity=float(quantity),
        average_price=price,
        executed_at=executed_at,
        status=status,
        account_id=str(order["accountId"]) if order.get("accountId") is not None else None,
        raw=raw,
    )


class TradovateAdapter(HttpBrokerAdapter):
    """
    Tradovate REST adapter.

    Credentials: either {"accessToken", "accountId"?} or
    {"name", "password", "appId"?, "appVersion"?, "cid"?, "sec"?}.
    """

    def __init__(
        self,
        credentials: Mapping[str, Any],
        is_demo: bool = False,
        fetch_config: Optional[FetchConfig] = None,
        timeout_config: Optional[TimeoutConfig] = None,
    ):
        """
        Initialize Tradovate adapter.

        Args:
            credentials: Resolved Tradovate credentials
            is_demo: Use the demo environment
            fetch_config: URL configuration
            timeout_config: HTTP timeouts
        """
        super().__init__(fetch_config, timeout_config)
        if not credentials.get("accessToken") and not (
            credentials.get("name") and credentials.get("password")
        ):
            raise CredentialError("Tradovate credentials require accessToken or name/password")

        self._credentials = dict(credentials)
        self._is_demo = is_demo
        self._access_token: Optional[str] = credentials.get("accessToken")
        self._account_id: Optional[int] = credentials.get("accountId")

    @property
    def broker(self) -> str:
        return "tradovate"

    @property
    def base_url(self) -> str:
        if self._is_demo:
            return self._fetch_config.tradovate_demo_url
        return self._fetch_config.tradovate_live_url

    def _auth_headers(self) -> Dict[str, str]:
        if self._access_token:
            return {"Authorization": f"Bearer {self._access_token}"}
        return {}

    # --------------------------------------------------------
    # AUTH
    # --------------------------------------------------------

    async def connect(self) -> None:
        await super().connect()
        if not self._access_token:
            try:
                await self.authenticate()
            except Exception:
                await self.disconnect()
                raise

    async def authenticate(self) -> str:
        """Request an access token with name/password credentials."""
        body = {
            "name": self._credentials.get("name"),
            "password": self._credentials.get("password"),
            "appId": self._credentials.get("appId", APP_ID),
            "appVersion": self._credentials.get("appVersion", APP_VERSION),
            "cid": self._credentials.get("cid"),
            "sec": self._credentials.get("sec"),
        }
        data = await self._request("POST", "/auth/accesstokenrequest", json_body=body)

        if not isinstance(data, dict) or not data.get("accessToken"):
            message = (data or {}).get("errorText") if isinstance(data, dict) else None
            raise BrokerApiError(
                message or "Tradovate authentication failed",
                401,
                code="AUTH_ERROR",
                broker=self.broker,
            )

        self._access_token = data["accessToken"]
        logger.info(f"Authenticated with Tradovate ({'demo' if self._is_demo else 'live'})")
        return self._access_token

    # --------------------------------------------------------
    # API
    # --------------------------------------------------------

    async def _list(self, path: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        data = await self._request("GET", path, params=params)
        if isinstance(data, list):
            return data
        if isinstance(data, dict):
            for value in data.values():
                if isinstance(value, list):
                    return value
        return []

    async def resolve_account_id(self) -> int:
        if self._account_id is None:
            accounts = await self._list("/account/list")
            if not accounts:
                raise BrokerApiError("No Tradovate accounts found", 404, broker=self.broker)
            self._account_id = accounts[0]["id"]
        return self._account_id

    async def fetch_executions_since(
        self,
        cursor: Optional[datetime],
    ) -> List[RawExecution]:
        account_id = await self.resolve_account_id()

        orders = await self._list("/order/list", {"accountId": account_id})
        fills = await self._list("/fill/list", {"accountId": account_id})
        contracts = await self._list("/contract/list")
        masters = await self._list("/masterInstrument/list")

        fills_by_order: Dict[Any, List[Dict[str, Any]]] = defaultdict(list)
        for fill in fills:
            fills_by_order[fill.get("orderId")].append(fill)

        contract_map = {c.get("id"): c for c in contracts}
        master_map = {m.get("id"): m for m in masters}

        executions = []
        for order in orders:
            contract = contract_map.get(order.get("contractId")) or {}
            master = master_map.get(contract.get("masterInstrumentId")) or {}
            symbol = master.get("name") or contract.get("name") or f"Contract-{order.get('contractId')}"

            execution = map_tradovate_order(order, fills_by_order.get(order.get("id"), []), symbol)
            if execution is None:
                continue
            if cursor is not None and execution.executed_at <= cursor:
                continue
            executions.append(execution)

        logger.info(
            f"Fetched {len(orders)} Tradovate order(s) for account {account_id}, "
            f"{len(executions)} after cursor"
        )
        return executions
