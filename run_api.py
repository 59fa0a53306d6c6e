#!/usr/bin/env python
"""
Broker Sync API Server Runner.

Usage:
    python run_api.py

Or with PM2:
    pm2 start run_api.py --interpreter python
"""

import logging
import os
import sys

import uvicorn

from broker_sync.api import create_app
from broker_sync.config import SyncConfig, configure_logging


logger = logging.getLogger(__name__)


def main():
    """Run the broker sync API server."""
    config = SyncConfig.from_env()
    configure_logging(config.log_level)

    host = os.getenv("BROKER_SYNC_HOST", "0.0.0.0")
    port = int(os.getenv("BROKER_SYNC_PORT", os.getenv("PORT", "8000")))

    logger.info(f"Starting Broker Sync API on {host}:{port}")

    try:
        uvicorn.run(
            create_app(config=config),
            host=host,
            port=port,
            log_level=config.log_level.lower(),
            access_log=True,
        )
    except Exception as e:
        logger.error(f"Failed to start broker sync API: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
