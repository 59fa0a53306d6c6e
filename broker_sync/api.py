"""
Broker Sync - API Application.

============================================================
PURPOSE
============================================================
Builds the FastAPI application serving the broker sync router.

WIRING:
- Database from DATABASE_URL
- SqlAlchemySyncStore over the database
- SyncController with the host's credential decryptor
- Identity from the X-User-Id header set by the auth gateway

Hosts embedding the router in their own app override
get_identity and get_sync_controller instead.

============================================================
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Mapping, Optional

from fastapi import FastAPI, Header, HTTPException

from storage.database import Database, DatabaseConfig

from .config import SyncConfig
from .credentials import Decryptor
from .repository import SqlAlchemySyncStore
from .router import get_identity, get_sync_controller, router
from .sync_controller import SyncController
from .types import CredentialError


logger = logging.getLogger(__name__)


def reject_encrypted(stored: str) -> Mapping[str, Any]:
    """Decryptor used when none is configured."""
    raise CredentialError("No credential decryptor is configured for encrypted credentials")


def identity_from_header(x_user_id: Optional[str] = Header(None)) -> Optional[str]:
    """User id forwarded by the authenticating gateway."""
    return x_user_id or None


def create_app(
    controller: Optional[SyncController] = None,
    decrypt: Optional[Decryptor] = None,
    config: Optional[SyncConfig] = None,
) -> FastAPI:
    """
    Create the broker sync API.

    Args:
        controller: Prebuilt controller. When omitted one is built
            against DATABASE_URL on startup.
        decrypt: Credential decryptor for the built controller
        config: Sync configuration (SyncConfig.from_env() when omitted)
    """
    config = config or SyncConfig.from_env()
    state = {"controller": controller}

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        database = None
        if state["controller"] is None:
            database = Database(DatabaseConfig.from_env())
            await database.create_all()
            state["controller"] = SyncController(
                store=SqlAlchemySyncStore(database),
                decrypt=decrypt or reject_encrypted,
                config=config,
            )
            logger.info("Broker sync controller ready")
        try:
            yield
        finally:
            if database is not None:
                await database.disconnect()

    app = FastAPI(
        title="Broker Sync API",
        description="Imports broker executions as journal trades.",
        version="1.0.0",
        lifespan=lifespan,
    )

    def current_controller() -> SyncController:
        if state["controller"] is None:
            raise HTTPException(status_code=503, detail="Broker sync is starting up")
        return state["controller"]

    app.include_router(router)
    app.dependency_overrides[get_identity] = identity_from_header
    app.dependency_overrides[get_sync_controller] = current_controller

    @app.get("/")
    def root():
        return {"status": "ok", "message": "Broker Sync API is running"}

    return app
