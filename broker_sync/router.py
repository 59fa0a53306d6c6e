"""
FastAPI Router for Broker Sync Endpoints.

Provides REST API for broker synchronization:
- Trigger an incremental sync of a connection
- Reset a stuck connection

The host application supplies identity and the controller by
overriding get_identity and get_sync_controller.
"""

from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from broker_sync.handler import SyncRequestHandler
from broker_sync.schemas import ConnectionResetResponse, SyncErrorResponse, SyncResponse
from broker_sync.sync_controller import SyncController

router = APIRouter(prefix="/brokers", tags=["Broker Sync"])


# =============================================================
# DEPENDENCIES
# =============================================================

def get_identity() -> Optional[Any]:
    """Caller identity. Overridden by the host app's auth layer."""
    return None


def get_sync_controller() -> SyncController:
    """Sync controller. Overridden by the host app."""
    raise HTTPException(status_code=503, detail="Broker sync is not configured")


def get_handler(controller: SyncController = Depends(get_sync_controller)) -> SyncRequestHandler:
    return SyncRequestHandler(controller)


# =============================================================
# SYNC ENDPOINTS
# =============================================================

@router.post(
    "/sync",
    response_model=SyncResponse,
    responses={
        400: {"model": SyncErrorResponse},
        401: {"model": SyncErrorResponse},
        404: {"model": SyncErrorResponse},
        409: {"model": SyncErrorResponse},
        500: {"model": SyncErrorResponse},
    },
)
async def sync_connection(
    request: Request,
    identity: Any = Depends(get_identity),
    handler: SyncRequestHandler = Depends(get_handler),
):
    """
    Import new trades from a broker connection.

    Body: {"connectionId": "..."}
    """
    try:
        body = await request.json()
    except ValueError:
        body = None
    if not isinstance(body, dict):
        body = None

    status_code, payload = await handler.handle(body, identity)
    return JSONResponse(status_code=status_code, content=payload)


@router.post(
    "/{connection_id}/reset",
    response_model=ConnectionResetResponse,
    responses={401: {"model": SyncErrorResponse}, 404: {"model": SyncErrorResponse}},
)
async def reset_connection(
    connection_id: str,
    identity: Any = Depends(get_identity),
    handler: SyncRequestHandler = Depends(get_handler),
):
    """Reset a connection stuck in syncing or error."""
    status_code, payload = await handler.handle_reset(connection_id, identity)
    return JSONResponse(status_code=status_code, content=payload)
