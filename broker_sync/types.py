"""
Broker Sync - Types.

============================================================
PURPOSE
============================================================
All type definitions for broker execution synchronization.

CRITICAL PRINCIPLE:
    "Only closed round-trips are journal-worthy."
    "An execution is imported at most once per connection."

============================================================
"""

from datetime import datetime
from typing import Optional, Dict, Any, List
from dataclasses import dataclass, field
from enum import Enum


# ============================================================
# EXECUTION TYPES
# ============================================================

class ExecutionSide(Enum):
    """Side of a broker execution."""

    BUY = "buy"
    SELL = "sell"


class ExecutionStatus(Enum):
    """Broker-reported status of the order behind an execution."""

    FILLED = "filled"
    """Fully filled. The only status that is paired."""

    PARTIALLY_FILLED = "partially_filled"

    CANCELED = "canceled"

    OTHER = "other"
    """Any status the broker reports that we do not model."""

    @classmethod
    def from_broker(cls, status: Optional[str]) -> "ExecutionStatus":
        """Map a broker status string onto an ExecutionStatus."""
        if not status:
            return cls.OTHER

        normalized = status.strip().lower().replace(" ", "_")
        mapping = {
            "filled": cls.FILLED,
            "partially_filled": cls.PARTIALLY_FILLED,
            "partial": cls.PARTIALLY_FILLED,
            "canceled": cls.CANCELED,
            "cancelled": cls.CANCELED,
        }
        return mapping.get(normalized, cls.OTHER)


class TradeDirection(Enum):
    """Direction of a round-trip trade."""

    LONG = "long"
    SHORT = "short"


class TradeOutcome(Enum):
    """Outcome of a closed trade, derived from the sign of its P&L."""

    WIN = "win"
    LOSS = "loss"
    BREAKEVEN = "breakeven"


class LinkRole(Enum):
    """Role an execution plays in the trade it produced."""

    ENTRY = "entry"
    EXIT = "exit"


class UnmatchedReason(Enum):
    """Why an execution was left out of every trade."""

    NO_OPPOSITE_LEG = "NO_OPPOSITE_LEG"
    """No later opposite-side execution exists (position still open)."""

    QUANTITY_MISMATCH = "QUANTITY_MISMATCH"
    """Later opposite-side executions exist but none with equal quantity."""


# ============================================================
# CONNECTION / SYNC STATES
# ============================================================

class ConnectionStatus(Enum):
    """
    Broker connection status.

    State Machine:

        IDLE ──► SYNCING ──► CONNECTED
                   │  ▲          │
                   ▼  └──────────┘
                 ERROR ──► SYNCING
    """

    IDLE = "idle"
    """Never synced."""

    SYNCING = "syncing"
    """Exactly one sync run in flight."""

    CONNECTED = "connected"
    """Resting state after any successful run."""

    ERROR = "error"
    """Last run failed. The connection stays usable."""


class SyncRunStatus(Enum):
    """Sync log entry status."""

    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"

    def is_terminal(self) -> bool:
        """Check if this is a terminal status."""
        return self in {SyncRunStatus.SUCCESS, SyncRunStatus.ERROR}


class SyncTrigger(Enum):
    """What started a sync run."""

    MANUAL = "manual"
    SCHEDULED = "scheduled"


# ============================================================
# RAW EXECUTION
# ============================================================

@dataclass
class RawExecution:
    """
    One fill or filled order reported by a broker.

    Sourced fresh on every sync call. Never persisted on its own:
    the raw payload is kept on the link row of the trade it produces.
    """

    execution_id: str
    """Broker execution identifier."""

    order_id: str
    """Broker order identifier."""

    symbol: str
    """Instrument symbol as reported by the broker."""

    side: ExecutionSide
    """Buy or sell."""

    filled_quantity: float
    """Filled quantity."""

    average_price: float
    """Average fill price."""

    executed_at: datetime
    """Execution timestamp."""

    status: ExecutionStatus = ExecutionStatus.FILLED
    """Order status at fetch time."""

    account_id: Optional[str] = None
    """Broker account, when the broker reports one."""

    raw: Dict[str, Any] = field(default_factory=dict)
    """Opaque broker payload, preserved for audit."""

    @property
    def is_filled(self) -> bool:
        return self.status == ExecutionStatus.FILLED


@dataclass
class UnmatchedExecution:
    """An execution that ended up in no trade during a pairing pass."""

    execution: RawExecution
    reason: UnmatchedReason


# ============================================================
# P&L RESULT
# ============================================================

@dataclass(frozen=True)
class PnLResult:
    """Normalized P&L figures for one price move."""

    raw_pnl: float
    """price_delta * size, no instrument adjustment."""

    adjusted_pnl: float
    """price_delta * size * multiplier. The authoritative figure."""

    points: float
    """Absolute price delta."""

    pips: float
    """Pip count for forex, mirrors points elsewhere."""

    percentage: float
    """Delta as a percentage of entry price, 0 when entry is 0."""


# ============================================================
# CANONICAL TRADE
# ============================================================

@dataclass
class CanonicalTrade:
    """
    A reconciled round-trip trade.

    Created exclusively by the pairing engine.
    """

    user_id: str
    symbol: str
    direction: TradeDirection
    entry_price: float
    exit_price: float
    size: float
    stop_loss: float
    pnl: float
    """Adjusted (multiplier-scaled) P&L."""

    outcome: TradeOutcome
    entry_execution: RawExecution
    exit_execution: Optional[RawExecution] = None
    """None only for broker formats that already report a closed round-trip."""

    pnl_breakdown: Optional[PnLResult] = None
    notes: str = ""
    trade_id: Optional[str] = None
    """Assigned by the store on insert."""

    @property
    def trade_key(self) -> str:
        """Deterministic key built from the source execution ids."""
        if self.exit_execution is None:
            return self.entry_execution.execution_id
        return f"{self.entry_execution.execution_id}-{self.exit_execution.execution_id}"

    @property
    def opened_at(self) -> datetime:
        return self.entry_execution.executed_at

    @property
    def closed_at(self) -> datetime:
        if self.exit_execution is None:
            return self.entry_execution.executed_at
        return self.exit_execution.executed_at

    @property
    def trade_date(self) -> str:
        """Entry date as YYYY-MM-DD."""
        return self.opened_at.date().isoformat()

    @property
    def source_executions(self) -> List[RawExecution]:
        executions = [self.entry_execution]
        if self.exit_execution is not None:
            executions.append(self.exit_execution)
        return executions

    def links(self, connection_id: str) -> List["ExecutionLink"]:
        """Build link rows mapping this trade back to its executions."""
        if self.trade_id is None:
            raise ValueError(f"Trade {self.trade_key} has not been persisted")

        links = [
            ExecutionLink(
                connection_id=connection_id,
                trade_id=self.trade_id,
                execution_id=self.entry_execution.execution_id,
                order_id=self.entry_execution.order_id,
                role=LinkRole.ENTRY,
                raw=self.entry_execution.raw,
            )
        ]
        if self.exit_execution is not None:
            links.append(
                ExecutionLink(
                    connection_id=connection_id,
                    trade_id=self.trade_id,
                    execution_id=self.exit_execution.execution_id,
                    order_id=self.exit_execution.order_id,
                    role=LinkRole.EXIT,
                    raw=self.exit_execution.raw,
                )
            )
        return links


@dataclass
class ExecutionLink:
    """Execution-to-trade link row. Drives the dedup pass."""

    connection_id: str
    trade_id: str
    execution_id: str
    order_id: Optional[str]
    role: LinkRole
    raw: Dict[str, Any] = field(default_factory=dict)


# ============================================================
# BROKER CONNECTION / SYNC RUN
# ============================================================

@dataclass
class BrokerConnection:
    """One user's link to one broker."""

    connection_id: str
    user_id: str
    broker: str
    """Adapter name, e.g. "alpaca"."""

    credentials: Any
    """Encrypted string or legacy plain object, as stored."""

    is_paper: bool = False
    status: ConnectionStatus = ConnectionStatus.IDLE
    last_sync_at: Optional[datetime] = None
    total_trades_synced: int = 0
    error_message: Optional[str] = None
    account_id: Optional[str] = None
    updated_at: Optional[datetime] = None


@dataclass
class SyncRun:
    """One append-only sync log entry."""

    run_id: str
    connection_id: str
    trigger: SyncTrigger
    status: SyncRunStatus = SyncRunStatus.RUNNING
    started_at: datetime = field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None
    trades_synced: int = 0
    trades_skipped: int = 0
    executions_fetched: int = 0
    duplicates_skipped: int = 0
    unmatched_executions: int = 0
    error_message: Optional[str] = None

    @property
    def duration_ms(self) -> Optional[int]:
        if self.completed_at is None:
            return None
        return int((self.completed_at - self.started_at).total_seconds() * 1000)


@dataclass
class SyncResult:
    """Outcome of one successful sync invocation."""

    run_id: str
    connection_id: str
    broker: str
    trades_imported: int = 0
    trades_skipped: int = 0
    executions_fetched: int = 0
    filled_executions: int = 0
    duplicates_skipped: int = 0
    unmatched_executions: int = 0
    warnings: List[str] = field(default_factory=list)
    trades: List[CanonicalTrade] = field(default_factory=list)

    @property
    def message(self) -> str:
        """Human-readable summary for the request handler."""
        if self.trades_imported == 0:
            if self.duplicates_skipped and self.duplicates_skipped == self.filled_executions:
                return "All orders have already been imported"
            return "No new filled orders to import"
        plural = "" if self.trades_imported == 1 else "s"
        return (
            f"Successfully imported {self.trades_imported} trade{plural} "
            f"from {self.broker.capitalize()}"
        )


# ============================================================
# EXCEPTIONS
# ============================================================

class BrokerSyncError(Exception):
    """Base exception for broker sync."""

    code: str = "SYNC_FAILED"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class AuthenticationError(BrokerSyncError):
    """Missing or invalid caller identity."""

    code = "NOT_AUTHENTICATED"


class ConnectionNotFoundError(BrokerSyncError):
    """Connection does not exist or is not owned by the caller."""

    code = "CONNECTION_NOT_FOUND"


class CredentialError(BrokerSyncError):
    """Stored credentials are in an unknown format or fail to decrypt."""

    code = "INVALID_CREDENTIALS"


class SyncInProgressError(BrokerSyncError):
    """Another run holds the connection's sync lock."""

    code = "SYNC_IN_PROGRESS"


class BrokerApiError(BrokerSyncError):
    """The broker fetch collaborator failed."""

    code = "BROKER_ERROR"

    def __init__(
        self,
        message: str,
        status_code: int = 502,
        code: Optional[str] = None,
        broker: Optional[str] = None,
    ):
        super().__init__(message, code)
        self.status_code = status_code
        self.broker = broker


class SyncTimeoutError(BrokerApiError):
    """The run exceeded its wall-clock budget."""

    code = "SYNC_TIMEOUT"

    def __init__(self, message: str, broker: Optional[str] = None):
        super().__init__(message, status_code=504, broker=broker)


class PersistenceError(BrokerSyncError):
    """A write or read against the store failed."""

    code = "PERSISTENCE_ERROR"

    def __init__(self, message: str, table: str = "", code: Optional[str] = None):
        super().__init__(message, code)
        self.table = table


class LinkPersistenceError(PersistenceError):
    """Writing execution-to-trade links failed. Never fatal to a run."""

    code = "LINK_PERSISTENCE_ERROR"
