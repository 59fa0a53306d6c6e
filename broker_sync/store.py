"""
Broker Sync - Persistence Interface.

============================================================
PURPOSE
============================================================
The persistence collaborator used by the sync controller, and
an in-memory implementation for tests and local runs.

OPERATIONS:
- Connections: read (scoped to owner), update
- Sync runs: insert, update
- Trades: insert (assigns trade ids)
- Execution links: read by execution id, insert
- Sync locks: acquire, release

The SQLAlchemy implementation lives in broker_sync.repository.

============================================================
"""

import copy
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .types import (
    BrokerConnection,
    CanonicalTrade,
    ExecutionLink,
    LinkPersistenceError,
    PersistenceError,
    SyncRun,
)


logger = logging.getLogger(__name__)


# ============================================================
# STORE INTERFACE
# ============================================================

class SyncStore(ABC):
    """
    Abstract persistence interface for broker sync.

    Implementations raise PersistenceError (LinkPersistenceError
    for the link table) on storage failures.
    """

    # --------------------------------------------------------
    # CONNECTIONS
    # --------------------------------------------------------

    @abstractmethod
    async def get_connection(
        self,
        connection_id: str,
        user_id: str,
    ) -> Optional[BrokerConnection]:
        """Get a connection owned by user_id, or None."""
        pass

    @abstractmethod
    async def update_connection(self, connection: BrokerConnection) -> None:
        """Persist status, cursor, counters and error message."""
        pass

    # --------------------------------------------------------
    # SYNC RUNS
    # --------------------------------------------------------

    @abstractmethod
    async def create_sync_run(self, run: SyncRun) -> SyncRun:
        """Insert a new sync log entry."""
        pass

    @abstractmethod
    async def update_sync_run(self, run: SyncRun) -> None:
        """Update status, counts and completion of a sync log entry."""
        pass

    # --------------------------------------------------------
    # TRADES / LINKS
    # --------------------------------------------------------

    @abstractmethod
    async def insert_trades(self, trades: List[CanonicalTrade]) -> List[CanonicalTrade]:
        """
        Insert trades in one batch.

        Returns:
            The same trades with trade_id assigned
        """
        pass

    @abstractmethod
    async def find_linked_execution_ids(
        self,
        connection_id: str,
        execution_ids: Iterable[str],
    ) -> Set[str]:
        """Subset of execution_ids already linked to a trade on this connection."""
        pass

    @abstractmethod
    async def insert_execution_links(self, links: List[ExecutionLink]) -> None:
        """Insert execution-to-trade link rows."""
        pass

    # --------------------------------------------------------
    # SYNC LOCKS
    # --------------------------------------------------------

    @abstractmethod
    async def acquire_sync_lock(
        self,
        connection_id: str,
        token: str,
        ttl_seconds: float,
    ) -> bool:
        """
        Try to take the connection's sync lock.

        A held lock older than ttl_seconds is stale and is taken over.

        Returns:
            True if acquired
        """
        pass

    @abstractmethod
    async def release_sync_lock(self, connection_id: str, token: Optional[str] = None) -> bool:
        """
        Release the connection's sync lock.

        Only the holder's token releases it; token=None force-releases.

        Returns:
            True if a lock row was removed
        """
        pass


# ============================================================
# IN-MEMORY STORE
# ============================================================

@dataclass
class InMemoryStoreConfig:
    """Configuration for the in-memory store."""

    # Error injection
    fail_trade_insert: bool = False
    """Raise PersistenceError from insert_trades."""

    fail_link_insert: bool = False
    """Raise LinkPersistenceError from insert_execution_links."""

    fail_run_update: bool = False
    """Raise PersistenceError from update_sync_run."""

    fail_link_lookup: bool = False
    """Raise PersistenceError from find_linked_execution_ids."""

    fail_connection_update_on: Optional[int] = None
    """Raise PersistenceError from the Nth update_connection call (1-based)."""


@dataclass
class _LockRow:
    token: str
    acquired_at: datetime = field(default_factory=datetime.utcnow)


class InMemorySyncStore(SyncStore):
    """
    Dictionary-backed SyncStore.

    Enforces the same uniqueness rule as the database: one link
    per (connection_id, execution_id).
    """

    def __init__(self, config: Optional[InMemoryStoreConfig] = None):
        self._config = config or InMemoryStoreConfig()

        self.connections: Dict[str, BrokerConnection] = {}
        self.sync_runs: Dict[str, SyncRun] = {}
        self.trades: Dict[str, CanonicalTrade] = {}
        self.links: Dict[Tuple[str, str], ExecutionLink] = {}
        self.locks: Dict[str, _LockRow] = {}
        self.connection_updates = 0

    @property
    def config(self) -> InMemoryStoreConfig:
        return self._config

    def add_connection(self, connection: BrokerConnection) -> BrokerConnection:
        """Seed a connection."""
        self.connections[connection.connection_id] = connection
        return connection

    # --------------------------------------------------------
    # CONNECTIONS
    # --------------------------------------------------------

    async def get_connection(
        self,
        connection_id: str,
        user_id: str,
    ) -> Optional[BrokerConnection]:
        connection = self.connections.get(connection_id)
        if connection is None or connection.user_id != user_id:
            return None
        return copy.copy(connection)

    async def update_connection(self, connection: BrokerConnection) -> None:
        self.connection_updates += 1
        if self.connection_updates == self._config.fail_connection_update_on:
            raise PersistenceError("Injected connection update failure", table="broker_connections")

        if connection.connection_id not in self.connections:
            raise PersistenceError(
                f"Connection {connection.connection_id} does not exist",
                table="broker_connections",
            )
        connection.updated_at = datetime.utcnow()
        self.connections[connection.connection_id] = copy.copy(connection)

    # --------------------------------------------------------
    # SYNC RUNS
    # --------------------------------------------------------

    async def create_sync_run(self, run: SyncRun) -> SyncRun:
        self.sync_runs[run.run_id] = copy.copy(run)
        return run

    async def update_sync_run(self, run: SyncRun) -> None:
        if self._config.fail_run_update:
            raise PersistenceError("Injected sync log update failure", table="broker_sync_logs")
        self.sync_runs[run.run_id] = copy.copy(run)

    def runs_for(self, connection_id: str) -> List[SyncRun]:
        """Sync runs for a connection, oldest first."""
        runs = [r for r in self.sync_runs.values() if r.connection_id == connection_id]
        return sorted(runs, key=lambda r: r.started_at)

    # --------------------------------------------------------
    # TRADES / LINKS
    # --------------------------------------------------------

    async def insert_trades(self, trades: List[CanonicalTrade]) -> List[CanonicalTrade]:
        if self._config.fail_trade_insert:
            raise PersistenceError("Injected trade insert failure", table="trades")

        for trade in trades:
            trade.trade_id = str(uuid.uuid4())
            self.trades[trade.trade_id] = trade
        return trades

    async def find_linked_execution_ids(
        self,
        connection_id: str,
        execution_ids: Iterable[str],
    ) -> Set[str]:
        if self._config.fail_link_lookup:
            raise PersistenceError("Injected link lookup failure", table="broker_trades")

        return {
            execution_id for execution_id in execution_ids
            if (connection_id, execution_id) in self.links
        }

    async def insert_execution_links(self, links: List[ExecutionLink]) -> None:
        if self._config.fail_link_insert:
            raise LinkPersistenceError("Injected link insert failure", table="broker_trades")

        for link in links:
            key = (link.connection_id, link.execution_id)
            if key in self.links:
                raise LinkPersistenceError(
                    f"Execution {link.execution_id} already linked on {link.connection_id}",
                    table="broker_trades",
                )

        for link in links:
            self.links[(link.connection_id, link.execution_id)] = link

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
        held = self.locks.get(connection_id)

        if held is not None:
            age = now - held.acquired_at
            if age < timedelta(seconds=ttl_seconds):
                return False
            logger.warning(
                f"Taking over stale sync lock on {connection_id} "
                f"(held {age.total_seconds():.0f}s)"
            )

        self.locks[connection_id] = _LockRow(token=token, acquired_at=now)
        return True

    async def release_sync_lock(self, connection_id: str, token: Optional[str] = None) -> bool:
        held = self.locks.get(connection_id)
        if held is None:
            return False
        if token is not None and held.token != token:
            return False
        del self.locks[connection_id]
        return True
