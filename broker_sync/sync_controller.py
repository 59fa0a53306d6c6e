"""
Broker Sync - Synchronization Controller.

============================================================
PURPOSE
============================================================
Orchestrates one incremental sync of a broker connection.

This is the primary entry point for broker sync. It resolves
the connection and its credentials, fetches new executions,
filters and deduplicates them, pairs them into trades and
persists the result with a sync log entry.

============================================================
SYNC WORKFLOW
============================================================
1. Resolve identity and the caller-owned connection
2. Resolve stored credentials
3. Take the connection's sync lock, mark it SYNCING
4. Open a RUNNING sync log entry
5. Fetch executions since last_sync_at (bounded in time)
6. Keep filled executions only
7. Drop executions already linked on this connection
8. Pair into round-trip trades
9. Insert trades (fatal on failure)
10. Insert execution links (warning on failure)
11. Close the sync log entry, mark the connection CONNECTED
12. On failure: sync log ERROR, connection ERROR, re-raise

The lock is released on every path once taken.

============================================================
"""

import asyncio
import logging
import uuid
from datetime import datetime
from typing import Any, Callable, List, Mapping, Optional

from .adapters.base import BrokerAdapter
from .adapters.factory import default_adapter_factory
from .config import SyncConfig
from .credentials import Decryptor, StoredCredentials
from .instruments import DEFAULT_REGISTRY, InstrumentRegistry
from .pairing import PairingEngine
from .state_machine import transition
from .store import SyncStore
from .types import (
    AuthenticationError,
    BrokerConnection,
    ConnectionNotFoundError,
    ConnectionStatus,
    LinkPersistenceError,
    RawExecution,
    SyncInProgressError,
    SyncResult,
    SyncRun,
    SyncRunStatus,
    SyncTimeoutError,
    SyncTrigger,
)


logger = logging.getLogger(__name__)


AdapterFactory = Callable[[BrokerConnection, Mapping[str, Any]], BrokerAdapter]
"""adapter_factory(connection, credentials) -> BrokerAdapter"""


def user_id_from_identity(identity: Any) -> str:
    """
    Extract the caller's user id.

    Accepts a user id string, a mapping with "user_id" or "id",
    or an object with a user_id / id attribute.

    Raises:
        AuthenticationError: If no user id can be found
    """
    if identity is None:
        raise AuthenticationError("Not authenticated")

    if isinstance(identity, str):
        user_id = identity
    elif isinstance(identity, Mapping):
        user_id = identity.get("user_id") or identity.get("id")
    else:
        user_id = getattr(identity, "user_id", None) or getattr(identity, "id", None)

    if not user_id:
        raise AuthenticationError("Not authenticated")
    return str(user_id)


# ============================================================
# SYNC CONTROLLER
# ============================================================

class SyncController:
    """
    Incremental broker sync orchestrator.

    One instance serves every connection; per-connection mutual
    exclusion comes from the store's sync lock.
    """

    def __init__(
        self,
        store: SyncStore,
        decrypt: Decryptor,
        adapter_factory: Optional[AdapterFactory] = None,
        registry: Optional[InstrumentRegistry] = None,
        config: Optional[SyncConfig] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        """
        Initialize sync controller.

        Args:
            store: Persistence collaborator
            decrypt: Credential decryption capability
            adapter_factory: Builds the broker adapter for a connection
            registry: Instrument registry for P&L scaling
            config: Sync configuration
            clock: Source of "now" in naive UTC
        """
        self._store = store
        self._decrypt = decrypt
        self._config = config or SyncConfig()
        self._adapter_factory = adapter_factory or default_adapter_factory(self._config)
        self._registry = registry or DEFAULT_REGISTRY
        self._engine = PairingEngine(self._registry, self._config.pairing)
        self._clock = clock

    @property
    def config(self) -> SyncConfig:
        return self._config

    # --------------------------------------------------------
    # SYNC
    # --------------------------------------------------------

    async def sync(
        self,
        connection_id: str,
        identity: Any,
        trigger: SyncTrigger = SyncTrigger.MANUAL,
    ) -> SyncResult:
        """
        Run one sync for a connection.

        Args:
            connection_id: Broker connection to sync
            identity: Caller identity (user id or object carrying one)
            trigger: Manual or scheduled

        Returns:
            SyncResult with counts and the imported trades

        Raises:
            AuthenticationError: No identity
            ConnectionNotFoundError: Unknown or foreign connection
            CredentialError: Stored credentials unusable
            SyncInProgressError: Another run holds the lock
            BrokerSyncError / Exception: Failures after the run started,
                already recorded on the sync log and connection
        """
        user_id = user_id_from_identity(identity)

        connection = await self._store.get_connection(connection_id, user_id)
        if connection is None:
            raise ConnectionNotFoundError(f"Broker connection {connection_id} not found")

        credentials = StoredCredentials.from_stored(connection.credentials).resolve(self._decrypt)

        token = uuid.uuid4().hex
        acquired = await self._store.acquire_sync_lock(
            connection_id, token, self._config.lock.lock_ttl_seconds
        )
        if not acquired:
            raise SyncInProgressError(f"A sync is already running for connection {connection_id}")

        run: Optional[SyncRun] = None
        try:
            self._enter_syncing(connection)
            await self._store.update_connection(connection)

            run = SyncRun(
                run_id=str(uuid.uuid4()),
                connection_id=connection_id,
                trigger=trigger,
                started_at=self._clock(),
            )
            await self._store.create_sync_run(run)

            logger.info(
                f"Sync {run.run_id} started for {connection.broker} connection "
                f"{connection_id} ({trigger.value}, cursor={connection.last_sync_at})"
            )
            return await self._run(connection, credentials, run)

        except Exception as e:
            await self._record_failure(connection, run, e)
            raise

        finally:
            await self._store.release_sync_lock(connection_id, token)

    async def _run(
        self,
        connection: BrokerConnection,
        credentials: Mapping[str, Any],
        run: SyncRun,
    ) -> SyncResult:
        result = SyncResult(
            run_id=run.run_id,
            connection_id=connection.connection_id,
            broker=connection.broker,
        )

        fetch_started = self._clock()
        executions = await self._fetch(connection, credentials)
        run.executions_fetched = result.executions_fetched = len(executions)

        filled = self._unique_filled(executions)
        result.filled_executions = len(filled)

        linked = await self._store.find_linked_execution_ids(
            connection.connection_id, [e.execution_id for e in filled]
        )
        fresh = [e for e in filled if e.execution_id not in linked]
        run.duplicates_skipped = result.duplicates_skipped = len(filled) - len(fresh)

        logger.info(
            f"Sync {run.run_id}: fetched={len(executions)} filled={len(filled)} "
            f"new={len(fresh)} duplicates={result.duplicates_skipped}"
        )

        pairing = self._engine.pair(fresh, user_id=connection.user_id, source=connection.broker)
        run.unmatched_executions = result.unmatched_executions = len(pairing.unmatched)
        run.trades_skipped = result.trades_skipped = (
            len(executions) - len(pairing.consumed_execution_ids)
        )

        if pairing.trades:
            trades = await self._store.insert_trades(pairing.trades)
            result.trades = trades
            result.trades_imported = len(trades)
            logger.info(f"Sync {run.run_id}: inserted {len(trades)} trade(s)")

            links = [link for trade in trades for link in trade.links(connection.connection_id)]
            try:
                await self._store.insert_execution_links(links)
            except LinkPersistenceError as e:
                warning = f"Failed to record execution links: {e.message}"
                logger.warning(
                    f"Sync {run.run_id}: {warning} "
                    f"({len(links)} link(s), trades kept)"
                )
                result.warnings.append(warning)

        run.trades_synced = result.trades_imported
        run.status = SyncRunStatus.SUCCESS
        run.completed_at = self._clock()
        await self._store.update_sync_run(run)

        transition(connection.connection_id, connection.status, ConnectionStatus.CONNECTED, "sync succeeded")
        connection.status = ConnectionStatus.CONNECTED
        connection.error_message = None
        connection.total_trades_synced += result.trades_imported
        connection.last_sync_at = self._advance_cursor(connection.last_sync_at, fetch_started)
        await self._store.update_connection(connection)

        logger.info(
            f"Sync {run.run_id} succeeded: imported={result.trades_imported} "
            f"skipped={result.trades_skipped} unmatched={result.unmatched_executions} "
            f"({run.duration_ms}ms)"
        )
        return result

    async def _fetch(
        self,
        connection: BrokerConnection,
        credentials: Mapping[str, Any],
    ) -> List[RawExecution]:
        adapter = self._adapter_factory(connection, credentials)
        timeout = self._config.timeouts.run_timeout_seconds

        async def fetch() -> List[RawExecution]:
            async with adapter:
                return await adapter.fetch_executions_since(connection.last_sync_at)

        try:
            return await asyncio.wait_for(fetch(), timeout=timeout)
        except asyncio.TimeoutError:
            raise SyncTimeoutError(
                f"Sync timed out after {timeout:.0f}s fetching from {connection.broker}",
                broker=connection.broker,
            )

    @staticmethod
    def _unique_filled(executions: List[RawExecution]) -> List[RawExecution]:
        """Filled executions, first occurrence of each execution id."""
        seen = set()
        filled = []
        for execution in executions:
            if not execution.is_filled or execution.execution_id in seen:
                continue
            seen.add(execution.execution_id)
            filled.append(execution)
        return filled

    @staticmethod
    def _advance_cursor(current: Optional[datetime], candidate: datetime) -> datetime:
        if current is not None and current > candidate:
            return current
        return candidate

    def _enter_syncing(self, connection: BrokerConnection) -> None:
        if connection.status == ConnectionStatus.SYNCING:
            # Lock was stale, the previous run never finished
            logger.warning(
                f"Connection {connection.connection_id} was left SYNCING by an earlier run"
            )
        else:
            transition(connection.connection_id, connection.status, ConnectionStatus.SYNCING)
        connection.status = ConnectionStatus.SYNCING
        connection.error_message = None

    async def _record_failure(
        self,
        connection: BrokerConnection,
        run: Optional[SyncRun],
        error: Exception,
    ) -> None:
        message = getattr(error, "message", None) or str(error) or type(error).__name__
        label = run.run_id if run is not None else "(not started)"
        logger.error(
            f"Sync {label} failed for connection {connection.connection_id}: {message}"
        )

        if run is not None and run.status != SyncRunStatus.RUNNING:
            # A closed run is final
            logger.warning(
                f"Sync {run.run_id} already closed as {run.status.value}, "
                f"keeping it after: {message}"
            )
        elif run is not None:
            run.status = SyncRunStatus.ERROR
            run.error_message = message
            run.completed_at = self._clock()
            try:
                await self._store.update_sync_run(run)
            except Exception as e:
                logger.error(f"Could not record failed sync {run.run_id}: {e}")

        if connection.status == ConnectionStatus.SYNCING:
            transition(connection.connection_id, connection.status, ConnectionStatus.ERROR, message)
        connection.status = ConnectionStatus.ERROR
        connection.error_message = message
        try:
            await self._store.update_connection(connection)
        except Exception as e:
            logger.error(f"Could not mark connection {connection.connection_id} as errored: {e}")

    # --------------------------------------------------------
    # OPERATOR RESET
    # --------------------------------------------------------

    async def reset_connection(self, connection_id: str, identity: Any) -> BrokerConnection:
        """
        Manually reset a stuck connection.

        Moves SYNCING or ERROR back to CONNECTED (IDLE if it never
        synced) and force-releases the sync lock.

        Raises:
            AuthenticationError: No identity
            ConnectionNotFoundError: Unknown or foreign connection
        """
        user_id = user_id_from_identity(identity)
        connection = await self._store.get_connection(connection_id, user_id)
        if connection is None:
            raise ConnectionNotFoundError(f"Broker connection {connection_id} not found")

        released = await self._store.release_sync_lock(connection_id)
        if released:
            logger.warning(f"Force-released sync lock on connection {connection_id}")

        if connection.status in (ConnectionStatus.SYNCING, ConnectionStatus.ERROR):
            target = ConnectionStatus.CONNECTED if connection.last_sync_at else ConnectionStatus.IDLE
            transition(connection_id, connection.status, target, "manual reset", manual_reset=True)
            connection.status = target
            connection.error_message = None
            await self._store.update_connection(connection)

        return connection
