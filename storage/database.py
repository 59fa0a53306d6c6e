"""
Storage - Database.

============================================================
RESPONSIBILITY
============================================================
Manages database connections and sessions.

- Provides connection pooling
- Manages async database sessions
- Handles connection lifecycle

============================================================
DESIGN PRINCIPLES
============================================================
- Async by default
- One engine per process, sessions per unit of work
- Rollback on any exception inside a session scope

============================================================
DATABASE REQUIREMENTS
============================================================
- PostgreSQL via asyncpg in production
- Any SQLAlchemy async URL accepted (sqlite+aiosqlite in tests)

============================================================
"""

import logging
import os
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

from dotenv import load_dotenv
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from storage.models.base import Base


logger = logging.getLogger(__name__)


DEFAULT_DATABASE_URL = "postgresql+asyncpg://localhost:5432/trade_journal"


@dataclass
class DatabaseConfig:
    """Database connection configuration."""

    url: str = DEFAULT_DATABASE_URL
    pool_size: int = 10
    max_overflow: int = 20
    pool_timeout_seconds: int = 30
    pool_recycle_seconds: int = 1800
    echo: bool = False

    @classmethod
    def from_env(cls) -> "DatabaseConfig":
        """Read DATABASE_URL (and DATABASE_ECHO) after loading .env."""
        load_dotenv()
        return cls(
            url=os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL),
            echo=os.getenv("DATABASE_ECHO", "").lower() in ("1", "true", "yes"),
        )


class Database:
    """
    Async engine and session factory owner.

    Usage:
        db = Database(DatabaseConfig.from_env())
        async with db.session() as session:
            ...
        await db.disconnect()
    """

    def __init__(self, config: Optional[DatabaseConfig] = None):
        self._config = config or DatabaseConfig()
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            self.connect()
        return self._engine

    def connect(self) -> None:
        """Create the engine and session factory."""
        if self._engine is not None:
            return

        kwargs = {"echo": self._config.echo}
        if not self._config.url.startswith("sqlite"):
            kwargs.update(
                pool_size=self._config.pool_size,
                max_overflow=self._config.max_overflow,
                pool_timeout=self._config.pool_timeout_seconds,
                pool_recycle=self._config.pool_recycle_seconds,
                pool_pre_ping=True,
            )

        self._engine = create_async_engine(self._config.url, **kwargs)
        self._session_factory = async_sessionmaker(
            self._engine,
            expire_on_commit=False,
            autoflush=False,
        )
        logger.info(f"Created database engine for: {self._config.url.split('@')[-1]}")

    async def disconnect(self) -> None:
        """Dispose of the engine and its pool."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.info("Database engine disposed")

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """
        Session scope. Rolls back and re-raises on any exception.

        Committing is the caller's responsibility.
        """
        if self._session_factory is None:
            self.connect()

        session = self._session_factory()
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def create_all(self) -> None:
        """Create all tables registered on the shared Base."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info(f"Created {len(Base.metadata.tables)} table(s)")

    async def health_check(self) -> bool:
        """Check the database answers a trivial query."""
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.error(f"Database health check failed: {e}")
            return False
