"""
Broker Sync Package.

============================================================
PURPOSE
============================================================
Imports broker executions into the trade journal as closed
round-trip trades.

CRITICAL PRINCIPLE:
    "Only closed round-trips are journal-worthy."
    "An execution is imported at most once per connection."

AUTHORITY BOUNDARIES:
    CAN:
        - Read executions from connected brokers
        - Create trades and execution links
        - Update connection sync state

    MUST NOT:
        - Place, modify or cancel orders
        - Edit or delete existing trades
        - Log credentials

============================================================
MODULES
============================================================
- types: Executions, trades, connections, runs, exceptions
- config: Sync configuration
- errors: Error taxonomy and HTTP mapping
- instruments: Instrument profile registry
- pnl: P&L normalization
- pairing: Directional FIFO execution pairing
- credentials: Stored credential resolution
- state_machine: Connection status transitions
- store: Persistence interface, in-memory store
- sync_controller: Incremental sync orchestrator
- handler / router / schemas: Request surface
- adapters: Broker fetch collaborators
- models / repository: SQLAlchemy persistence
- api: FastAPI application wiring

============================================================
"""

# ============================================================
# TYPES
# ============================================================
from .types import (
    # Enums
    ExecutionSide,
    ExecutionStatus,
    TradeDirection,
    TradeOutcome,
    LinkRole,
    UnmatchedReason,
    ConnectionStatus,
    SyncRunStatus,
    SyncTrigger,
    # Dataclasses
    RawExecution,
    UnmatchedExecution,
    PnLResult,
    CanonicalTrade,
    ExecutionLink,
    BrokerConnection,
    SyncRun,
    SyncResult,
    # Exceptions
    BrokerSyncError,
    AuthenticationError,
    ConnectionNotFoundError,
    CredentialError,
    SyncInProgressError,
    BrokerApiError,
    SyncTimeoutError,
    PersistenceError,
    LinkPersistenceError,
)

# ============================================================
# CONFIGURATION
# ============================================================
from .config import (
    PairingConfig,
    FetchConfig,
    TimeoutConfig,
    LockConfig,
    SyncConfig,
    configure_logging,
)

# ============================================================
# ERRORS
# ============================================================
from .errors import (
    ErrorCategory,
    ErrorCodeInfo,
    ERROR_CODES,
    RETRYABLE_ERROR_CODES,
    get_error_info,
    is_retryable,
    http_status_for,
    error_response,
)

# ============================================================
# INSTRUMENTS / P&L / PAIRING
# ============================================================
from .instruments import (
    InstrumentCategory,
    InstrumentProfile,
    InstrumentRegistry,
    BUILTIN_PROFILES,
    DEFAULT_REGISTRY,
    default_profile,
)
from .pnl import (
    PnLDisplayFormat,
    compute_pnl,
    compute_pnl_for_profile,
    format_pnl,
    outcome_for,
    pip_size,
)
from .pairing import PairingEngine, PairingResult, pair_executions

# ============================================================
# CREDENTIALS / STATE MACHINE
# ============================================================
from .credentials import (
    StoredCredentials,
    EncryptedCredentials,
    LegacyCredentials,
    resolve_credentials,
)
from .state_machine import (
    VALID_TRANSITIONS,
    ConnectionTransition,
    InvalidTransitionError,
    TransitionGuard,
)

# ============================================================
# SYNC
# ============================================================
from .store import SyncStore, InMemorySyncStore, InMemoryStoreConfig
from .sync_controller import SyncController
from .handler import SyncRequestHandler

# ============================================================
# PERSISTENCE
# ============================================================
from .models import (
    BrokerConnectionModel,
    SyncLogModel,
    TradeModel,
    BrokerTradeLinkModel,
    SyncLockModel,
)
from .repository import SqlAlchemySyncStore


__version__ = "1.0.0"
