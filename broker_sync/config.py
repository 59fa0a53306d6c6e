"""
Broker Sync - Configuration.

============================================================
PURPOSE
============================================================
All configuration for broker execution synchronization.

CRITICAL CONSTRAINTS:
- Bounded pagination
- Bounded wall-clock time per run
- One run per connection at a time

============================================================
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv


ENV_PREFIX = "BROKER_SYNC_"


# ============================================================
# PAIRING CONFIGURATION
# ============================================================

@dataclass
class PairingConfig:
    """
    Execution pairing configuration.
    """

    long_stop_loss_factor: float = 0.98
    """Default stop-loss for long trades, as a fraction of entry."""

    short_stop_loss_factor: float = 1.02
    """Default stop-loss for short trades, as a fraction of entry."""

    note_prefix: str = "Imported from"
    """Prefix of the free-text note written on imported trades."""


# ============================================================
# FETCH CONFIGURATION
# ============================================================

@dataclass
class FetchConfig:
    """
    Broker fetch configuration.

    SAFETY: Pagination is a bounded sequence of sequential requests.
    """

    page_size: int = 500
    """Orders requested per page."""

    max_pages: int = 20
    """Maximum pages per run (page_size * max_pages executions)."""

    alpaca_paper_url: str = "https://paper-api.alpaca.markets"
    alpaca_live_url: str = "https://api.alpaca.markets"

    tradovate_demo_url: str = "https://demo-api-d.tradovate.com/v1"
    tradovate_live_url: str = "https://api.tradovate.com/v1"


# ============================================================
# TIMEOUT CONFIGURATION
# ============================================================

@dataclass
class TimeoutConfig:
    """
    Timeout configuration.
    """

    connection_timeout_seconds: float = 5.0
    """HTTP connection timeout."""

    read_timeout_seconds: float = 30.0
    """HTTP total timeout per request."""

    run_timeout_seconds: float = 120.0
    """Wall-clock budget for the broker fetch of one run."""


# ============================================================
# LOCK CONFIGURATION
# ============================================================

@dataclass
class LockConfig:
    """
    Per-connection sync lock configuration.
    """

    lock_ttl_seconds: float = 900.0
    """A lock older than this is stale and may be taken over."""


# ============================================================
# MAIN CONFIGURATION
# ============================================================

@dataclass
class SyncConfig:
    """
    Complete broker sync configuration.
    """

    pairing: PairingConfig = field(default_factory=PairingConfig)
    fetch: FetchConfig = field(default_factory=FetchConfig)
    timeouts: TimeoutConfig = field(default_factory=TimeoutConfig)
    lock: LockConfig = field(default_factory=LockConfig)

    database_url: str = "postgresql+asyncpg://localhost:5432/trade_journal"
    """SQLAlchemy async database URL."""

    log_level: str = "INFO"

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "SyncConfig":
        """
        Build configuration from environment variables.

        Reads a .env file first when present. Unset variables keep
        their dataclass defaults.
        """
        load_dotenv(dotenv_path)

        config = cls()
        config.database_url = os.getenv("DATABASE_URL", config.database_url)
        config.log_level = _env_str("LOG_LEVEL", config.log_level)

        config.pairing.long_stop_loss_factor = _env_float(
            "LONG_STOP_LOSS_FACTOR", config.pairing.long_stop_loss_factor
        )
        config.pairing.short_stop_loss_factor = _env_float(
            "SHORT_STOP_LOSS_FACTOR", config.pairing.short_stop_loss_factor
        )

        config.fetch.page_size = _env_int("PAGE_SIZE", config.fetch.page_size)
        config.fetch.max_pages = _env_int("MAX_PAGES", config.fetch.max_pages)

        config.timeouts.connection_timeout_seconds = _env_float(
            "CONNECT_TIMEOUT", config.timeouts.connection_timeout_seconds
        )
        config.timeouts.read_timeout_seconds = _env_float(
            "READ_TIMEOUT", config.timeouts.read_timeout_seconds
        )
        config.timeouts.run_timeout_seconds = _env_float(
            "RUN_TIMEOUT", config.timeouts.run_timeout_seconds
        )

        config.lock.lock_ttl_seconds = _env_float("LOCK_TTL", config.lock.lock_ttl_seconds)

        return config


# ============================================================
# ENV HELPERS
# ============================================================

def _env_str(name: str, default: str) -> str:
    return os.getenv(f"{ENV_PREFIX}{name}", default)


def _env_int(name: str, default: int) -> int:
    value = os.getenv(f"{ENV_PREFIX}{name}")
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{ENV_PREFIX}{name} must be an integer, got {value!r}")


def _env_float(name: str, default: float) -> float:
    value = os.getenv(f"{ENV_PREFIX}{name}")
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{ENV_PREFIX}{name} must be a number, got {value!r}")


# ============================================================
# LOGGING
# ============================================================

def configure_logging(level: str = "INFO") -> None:
    """Configure logging."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
