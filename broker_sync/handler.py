"""
Broker Sync - Request Handler.

============================================================
PURPOSE
============================================================
Translates a sync request into a controller call and the
outcome into a status code and JSON payload.

CONTRACT:
    request  {"connectionId": str} + identity
    success  200 {"success": true, "tradesImported",
                  "tradesSkipped", "message"}
    failure  4xx/5xx {"success": false, "error", "code"?}

============================================================
"""

import logging
from typing import Any, Dict, Mapping, Optional, Tuple

from pydantic import ValidationError

from .errors import error_response, get_error_info
from .schemas import ConnectionResetResponse, SyncRequest, SyncResponse
from .sync_controller import SyncController
from .types import BrokerSyncError, SyncTrigger


logger = logging.getLogger(__name__)


class SyncRequestHandler:
    """Framework-neutral request handler around SyncController."""

    def __init__(self, controller: SyncController):
        self._controller = controller

    async def handle(
        self,
        body: Optional[Mapping[str, Any]],
        identity: Any,
        trigger: SyncTrigger = SyncTrigger.MANUAL,
    ) -> Tuple[int, Dict[str, Any]]:
        """
        Handle one sync request.

        Returns:
            Tuple of (status_code, payload)
        """
        try:
            request = SyncRequest.model_validate(body or {})
        except ValidationError:
            info = get_error_info("BAD_REQUEST")
            return info.http_status, {
                "success": False,
                "error": "connectionId is required",
                "code": info.code,
            }

        try:
            result = await self._controller.sync(request.connection_id, identity, trigger)
        except BrokerSyncError as e:
            return error_response(e)
        except Exception as e:
            logger.exception(f"Unexpected error syncing connection {request.connection_id}")
            status, payload = error_response(e)
            payload["error"] = get_error_info("SYNC_FAILED").description
            return status, payload

        response = SyncResponse(
            trades_imported=result.trades_imported,
            trades_skipped=result.trades_skipped,
            message=result.message,
        )
        return 200, response.model_dump(by_alias=True)

    async def handle_reset(
        self,
        connection_id: str,
        identity: Any,
    ) -> Tuple[int, Dict[str, Any]]:
        """Handle a manual connection reset."""
        try:
            connection = await self._controller.reset_connection(connection_id, identity)
        except BrokerSyncError as e:
            return error_response(e)

        response = ConnectionResetResponse(
            connection_id=connection.connection_id,
            status=connection.status.value,
            last_sync_at=connection.last_sync_at,
        )
        return 200, response.model_dump(by_alias=True, mode="json")
