"""
Pydantic Schemas for the Broker Sync API.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


# =============================================================
# REQUEST
# =============================================================

class SyncRequest(BaseModel):
    """Body of POST /brokers/sync."""
    model_config = ConfigDict(populate_by_name=True)

    connection_id: str = Field(..., alias="connectionId", min_length=1)


# =============================================================
# RESPONSES
# =============================================================

class SyncResponse(BaseModel):
    """Successful sync."""
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    trades_imported: int = Field(0, alias="tradesImported")
    trades_skipped: int = Field(0, alias="tradesSkipped")
    message: str


class SyncErrorResponse(BaseModel):
    """Failed sync."""
    success: bool = False
    error: str
    code: Optional[str] = None


class ConnectionResetResponse(BaseModel):
    """Result of a manual connection reset."""
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    connection_id: str = Field(..., alias="connectionId")
    status: str
    last_sync_at: Optional[datetime] = Field(None, alias="lastSyncAt")
