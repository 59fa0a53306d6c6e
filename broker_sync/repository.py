"""
Broker Sync - Repository.

============================================================
PURPOSE
============================================================
SQLAlchemy implementation of the SyncStore interface.

RESPONSIBILITIES:
- Connection reads (owner-scoped) and updates
- Sync log inserts and updates
- Trade and execution-link inserts
- Sync lock acquire/release

CRITICAL REQUIREMENTS:
- One transaction per operation
- SQLAlchemyError never escapes: wrapped in PersistenceError
- Link-table failures raise LinkPersistenceError

============================================================
"""

import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import AsyncIterator, Iterable, List, Optional, Set, Type

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from storage.database import Database

from .models import (
    BrokerConnectionModel,
    BrokerTradeLinkModel,
    SyncLockModel,
    SyncLogModel,
    TradeModel,
)
from .store import SyncStore
from .types import (
    BrokerConnection,
    CanonicalTrade,
    ExecutionLink,
    LinkPersistenceError,
    PersistenceError,
    SyncRun,
)


logger = logging.getLogger(__name__)


# Bound parameters per IN (...) lookup
LOOKUP_CHUNK_SIZE = 500


class SqlAlchemySyncStore(SyncStore):
    """
    Repository for broker sync persistence.

    Opens one session per operation from the shared Database.
    """

    def __init__(self, database: Database):
        """
        Initialize repository.

        Args:
            database: Database owning the async engine
        """
        self._db = database

    @asynccontextmanager
    async def _session(
        self,
        table: str,
        operation: str,
        error_class: Type[PersistenceError] = PersistenceError,
    ) -> AsyncIterator[AsyncSession]:
        try:
            async with self._db.session() as session:
                yield session
        except SQLAlchemyError as e:
            logger.error(f"{operation} on {table} failed: {e}")
            raise error_class(f"{operation} failed: {e}", table=table) from e

    # --------------------------------------------------------
    # CONNECTIONS
    # --------------------------------------------------------

    async def add_connection(self, connection: BrokerConnection) -> BrokerConnection:
        """Insert a connection row."""
        async with self._session("broker_connections", "add_connection") as session:
            session.add(BrokerConnectionModel.from_domain(connection))
            await session.commit()
        return connection

    async def get_connection(
        self,
        connection_id: str,
        user_id: str,
    ) -> Optional[BrokerConnection]:
        async with self._session("broker_connections", "get_connection") as session:
            result = await session.execute(
                select(BrokerConnectionModel).where(
                    BrokerConnectionModel.id == connection_id,
                    BrokerConnectionModel.user_id == user_id,
                )
            )
            model = result.scalar_one_or_none()
            return model.to_domain() if model else None

    async def update_connection(self, connection: BrokerConnection) -> None:
        now = datetime.utcnow()
        async with self._session("broker_connections", "update_connection") as session:
            result = await session.execute(
                update(BrokerConnectionModel)
                .where(BrokerConnectionModel.id == connection.connection_id)
                .values(
                    status=connection.status.value,
                    last_sync_at=connection.last_sync_at,
                    total_trades_synced=connection.total_trades_synced,
                    error_message=connection.error_message,
                    updated_at=now,
                )
            )
            updated = result.rowcount
            await session.commit()

        if updated == 0:
            raise PersistenceError(
                f"Connection {connection.connection_id} does not exist",
                table="broker_connections",
            )
        connection.updated_at = now

    # --------------------------------------------------------
    # SYNC RUNS
    # --------------------------------------------------------

    async def create_sync_run(self, run: SyncRun) -> SyncRun:
        async with self._session("broker_sync_logs", "create_sync_run") as session:
            session.add(SyncLogModel(
                id=run.run_id,
                connection_id=run.connection_id,
                sync_type=run.trigger.value,
                status=run.status.value,
                started_at=run.started_at,
            ))
            await session.commit()
        return run

    async def update_sync_run(self, run: SyncRun) -> None:
        async with self._session("broker_sync_logs", "update_sync_run") as session:
            await session.execute(
                update(SyncLogModel)
                .where(SyncLogModel.id == run.run_id)
                .values(
                    status=run.status.value,
                    trades_synced=run.trades_synced,
                    trades_skipped=run.trades_skipped,
                    executions_fetched=run.executions_fetched,
                    duplicates_skipped=run.duplicates_skipped,
                    unmatched_executions=run.unmatched_executions,
                    error_message=run.error_message,
                    completed_at=run.completed_at,
                )
            )
            await session.commit()

    async def list_sync_runs(self, connection_id: str, limit: int = 50) -> List[SyncRun]:
        """Most recent sync runs for a connection, newest first."""
        async with self._session("broker_sync_logs", "list_sync_runs") as session:
            result = await session.execute(
                select(SyncLogModel)
                .where(SyncLogModel.connection_id == connection_id)
                .order_by(SyncLogModel.started_at.desc())
                .limit(limit)
            )
            return [model.to_domain() for model in result.scalars().all()]

    # --------------------------------------------------------
    # TRADES / LINKS
    # --------------------------------------------------------

    async def insert_trades(self, trades: List[CanonicalTrade]) -> List[CanonicalTrade]:
        if not trades:
            return trades

        ids = [str(uuid.uuid4()) for _ in trades]
        async with self._session("trades", "insert_trades") as session:
            for trade_id, trade in zip(ids, trades):
                model = TradeModel.from_domain(trade)
                model.id = trade_id
                session.add(model)
            await session.commit()

        for trade_id, trade in zip(ids, trades):
            trade.trade_id = trade_id
        return trades

    async def find_linked_execution_ids(
        self,
        connection_id: str,
        execution_ids: Iterable[str],
    ) -> Set[str]:
        ids = list(dict.fromkeys(execution_ids))
        linked: Set[str] = set()
        if not ids:
            return linked

        async with self._session("broker_trades", "find_linked_execution_ids") as session:
            for start in range(0, len(ids), LOOKUP_CHUNK_SIZE):
                chunk = ids[start:start + LOOKUP_CHUNK_SIZE]
                result = await session.execute(
                    select(BrokerTradeLinkModel.broker_execution_id).where(
                        BrokerTradeLinkModel.connection_id == connection_id,
                        BrokerTradeLinkModel.broker_execution_id.in_(chunk),
                    )
                )
                linked.update(result.scalars().all())
        return linked

    async def insert_execution_links(self, links: List[ExecutionLink]) -> None:
        if not links:
            return
        async with self._session(
            "broker_trades", "insert_execution_links", LinkPersistenceError
        ) as session:
            session.add_all([BrokerTradeLinkModel.from_domain(link) for link in links])
            await session.commit()

    async def count_trades(self, user_id: str) -> int:
        """Number of trades stored for a user."""
        async with self._session("trades", "count_trades") as session:
            result = await session.execute(
                select(TradeModel.id).where(TradeModel.user_id == user_id)
            )
            return len(result.scalars().all())

    # --------------------------------------------------------
    # SYNC LOCKS
    # --------------------------------------------------------

    async def acquire_sync_lock(
        self,
        connection_id: str,
        token: str,
        ttl_seconds: float,
    ) -> bool:
        now = datetime.utcnow()
        stale_before = now - timedelta(seconds=ttl_seconds)

        async with self._session("sync_locks", "acquire_sync_lock") as session:
            stale = await session.execute(
                delete(SyncLockModel).where(
                    SyncLockModel.connection_id == connection_id,
                    SyncLockModel.acquired_at < stale_before,
                )
            )
            if stale.rowcount:
                logger.warning(f"Taking over stale sync lock on {connection_id}")

            session.add(SyncLockModel(connection_id=connection_id, token=token, acquired_at=now))
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                return False
        return True

    async def release_sync_lock(self, connection_id: str, token: Optional[str] = None) -> bool:
        async with self._session("sync_locks", "release_sync_lock") as session:
            statement = delete(SyncLockModel).where(SyncLockModel.connection_id == connection_id)
            if token is not None:
                statement = statement.where(SyncLockModel.token == token)
            result = await session.execute(statement)
            released = result.rowcount
            await session.commit()
        return bool(released)
