"""
Broker Sync - Connection State Machine.

============================================================
PURPOSE
============================================================
Guards status transitions on a broker connection.

STATE MACHINE:

    IDLE ─────► SYNCING ─────► CONNECTED
                  ▲  │             │
                  │  ▼             │
                  ERROR ◄──────────┘ (via SYNCING)

    Manual reset: SYNCING / ERROR ──► IDLE or CONNECTED

INVARIANTS:
- SYNCING is entered only while holding the connection's lock
- CONNECTED is the resting state once a connection has synced
- All transitions are logged

============================================================
"""

import logging
from datetime import datetime
from dataclasses import dataclass, field
from typing import Dict, Set, Tuple

from .types import ConnectionStatus


logger = logging.getLogger(__name__)


# ============================================================
# STATE TRANSITION RULES
# ============================================================

VALID_TRANSITIONS: Dict[ConnectionStatus, Set[ConnectionStatus]] = {
    ConnectionStatus.IDLE: {
        ConnectionStatus.SYNCING,
    },
    ConnectionStatus.SYNCING: {
        ConnectionStatus.CONNECTED,
        ConnectionStatus.ERROR,
    },
    ConnectionStatus.CONNECTED: {
        ConnectionStatus.SYNCING,
    },
    ConnectionStatus.ERROR: {
        ConnectionStatus.SYNCING,
    },
}

RESET_TRANSITIONS: Dict[ConnectionStatus, Set[ConnectionStatus]] = {
    ConnectionStatus.SYNCING: {ConnectionStatus.IDLE, ConnectionStatus.CONNECTED},
    ConnectionStatus.ERROR: {ConnectionStatus.IDLE, ConnectionStatus.CONNECTED},
}


# ============================================================
# STATE TRANSITION EVENT
# ============================================================

@dataclass
class ConnectionTransition:
    """A status change on one connection."""

    connection_id: str
    from_status: ConnectionStatus
    to_status: ConnectionStatus
    timestamp: datetime = field(default_factory=datetime.utcnow)
    reason: str = ""


class InvalidTransitionError(ValueError):
    """Raised for a transition the state machine does not allow."""


# ============================================================
# TRANSITION GUARD
# ============================================================

class TransitionGuard:
    """Checks transitions and explains denials."""

    @staticmethod
    def can_transition(
        from_status: ConnectionStatus,
        to_status: ConnectionStatus,
        manual_reset: bool = False,
    ) -> Tuple[bool, str]:
        """
        Check if transition is allowed.

        Returns:
            Tuple of (allowed, reason)
        """
        if manual_reset:
            if to_status in RESET_TRANSITIONS.get(from_status, set()):
                return True, "Manual reset"
            return False, f"Cannot reset from {from_status.value} to {to_status.value}"

        if to_status in VALID_TRANSITIONS.get(from_status, set()):
            return True, "Valid transition"

        return False, f"Invalid transition: {from_status.value} -> {to_status.value}"


def transition(
    connection_id: str,
    from_status: ConnectionStatus,
    to_status: ConnectionStatus,
    reason: str = "",
    manual_reset: bool = False,
) -> ConnectionTransition:
    """
    Validate and record a connection status change.

    Raises:
        InvalidTransitionError: If the transition is not allowed
    """
    allowed, why = TransitionGuard.can_transition(from_status, to_status, manual_reset)
    if not allowed:
        raise InvalidTransitionError(f"Connection {connection_id}: {why}")

    event = ConnectionTransition(
        connection_id=connection_id,
        from_status=from_status,
        to_status=to_status,
        reason=reason,
    )
    logger.info(
        f"Connection {connection_id}: {from_status.value} -> {to_status.value}"
        + (f" ({reason})" if reason else "")
    )
    return event
