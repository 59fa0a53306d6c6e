"""
Broker Sync - Execution Pairing Engine.

============================================================
PURPOSE
============================================================
Turns a list of raw executions into closed round-trip trades
using directional FIFO matching.

ALGORITHM (per symbol):
1. Split into buys and sells, each ascending by timestamp
2. Long pass: each unconsumed buy takes the EARLIEST unconsumed
   sell with equal quantity and a strictly later timestamp
3. Short pass: each unconsumed sell takes the earliest unconsumed
   later buy of equal quantity
4. Leftovers are reported as unmatched, never as errors

CRITICAL INVARIANTS:
- Exact-quantity, two-leg matching only
- An execution is consumed by at most one trade
- No I/O, no shared mutable state

============================================================
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from .config import PairingConfig
from .instruments import DEFAULT_REGISTRY, InstrumentRegistry
from .pnl import compute_pnl_for_profile, outcome_for
from .types import (
    CanonicalTrade,
    ExecutionSide,
    RawExecution,
    TradeDirection,
    UnmatchedExecution,
    UnmatchedReason,
)


logger = logging.getLogger(__name__)


# ============================================================
# PAIRING RESULT
# ============================================================

@dataclass
class PairingResult:
    """Output of one pairing pass."""

    trades: List[CanonicalTrade] = field(default_factory=list)
    """Closed round-trips, ordered by entry time."""

    unmatched: List[UnmatchedExecution] = field(default_factory=list)
    """Executions left out of every trade. Not persisted."""

    @property
    def consumed_execution_ids(self) -> Set[str]:
        ids: Set[str] = set()
        for trade in self.trades:
            for execution in trade.source_executions:
                ids.add(execution.execution_id)
        return ids


# ============================================================
# PAIRING ENGINE
# ============================================================

class PairingEngine:
    """
    Directional FIFO matcher.

    Stateless apart from its read-only registry and config, so one
    instance can serve any number of accounts and symbols.
    """

    def __init__(
        self,
        registry: Optional[InstrumentRegistry] = None,
        config: Optional[PairingConfig] = None,
    ):
        """
        Initialize pairing engine.

        Args:
            registry: Instrument registry for P&L scaling
            config: Pairing configuration
        """
        self._registry = registry or DEFAULT_REGISTRY
        self._config = config or PairingConfig()

    @property
    def registry(self) -> InstrumentRegistry:
        return self._registry

    def pair(
        self,
        executions: List[RawExecution],
        user_id: str = "",
        source: str = "",
    ) -> PairingResult:
        """
        Pair executions into round-trip trades.

        Args:
            executions: Raw executions for one account
            user_id: Owner stamped on every trade
            source: Broker name used in trade notes

        Returns:
            PairingResult with trades and unmatched executions
        """
        result = PairingResult()
        if not executions:
            return result

        for symbol, group in self._group_by_symbol(executions).items():
            trades, unmatched = self._pair_symbol(symbol, group, user_id, source)
            result.trades.extend(trades)
            result.unmatched.extend(unmatched)

        result.trades.sort(key=lambda t: t.opened_at)

        if result.unmatched:
            logger.debug(
                f"Pairing left {len(result.unmatched)} execution(s) unmatched "
                f"out of {len(executions)}"
            )

        return result

    # --------------------------------------------------------
    # INTERNALS
    # --------------------------------------------------------

    @staticmethod
    def _group_by_symbol(executions: List[RawExecution]) -> Dict[str, List[RawExecution]]:
        groups: Dict[str, List[RawExecution]] = OrderedDict()
        for execution in executions:
            groups.setdefault(execution.symbol.strip().upper(), []).append(execution)
        return groups

    def _pair_symbol(
        self,
        symbol: str,
        executions: List[RawExecution],
        user_id: str,
        source: str,
    ) -> Tuple[List[CanonicalTrade], List[UnmatchedExecution]]:
        # sorted() is stable, so equal timestamps keep input order
        buys = sorted(
            (e for e in executions if e.side == ExecutionSide.BUY),
            key=lambda e: e.executed_at,
        )
        sells = sorted(
            (e for e in executions if e.side == ExecutionSide.SELL),
            key=lambda e: e.executed_at,
        )

        consumed: Set[int] = set()
        trades: List[CanonicalTrade] = []

        for entries, exits, direction in (
            (buys, sells, TradeDirection.LONG),
            (sells, buys, TradeDirection.SHORT),
        ):
            for entry in entries:
                if id(entry) in consumed:
                    continue
                exit_ = self._find_exit(entry, exits, consumed)
                if exit_ is None:
                    continue
                consumed.add(id(entry))
                consumed.add(id(exit_))
                trades.append(self._build_trade(symbol, direction, entry, exit_, user_id, source))

        unmatched = [
            UnmatchedExecution(execution=e, reason=self._unmatched_reason(e, executions))
            for e in executions
            if id(e) not in consumed
        ]
        return trades, unmatched

    @staticmethod
    def _find_exit(
        entry: RawExecution,
        candidates: List[RawExecution],
        consumed: Set[int],
    ) -> Optional[RawExecution]:
        """Earliest unconsumed, strictly later, equal-quantity candidate."""
        for candidate in candidates:
            if id(candidate) in consumed:
                continue
            if candidate.filled_quantity != entry.filled_quantity:
                continue
            if candidate.executed_at > entry.executed_at:
                return candidate
        return None

    @staticmethod
    def _unmatched_reason(execution: RawExecution, executions: List[RawExecution]) -> UnmatchedReason:
        later_opposite = [
            other for other in executions
            if other.side != execution.side and other.executed_at > execution.executed_at
        ]
        if later_opposite and all(
            other.filled_quantity != execution.filled_quantity for other in later_opposite
        ):
            return UnmatchedReason.QUANTITY_MISMATCH
        return UnmatchedReason.NO_OPPOSITE_LEG

    def _build_trade(
        self,
        symbol: str,
        direction: TradeDirection,
        entry: RawExecution,
        exit_: RawExecution,
        user_id: str,
        source: str,
    ) -> CanonicalTrade:
        profile = self._registry.lookup(symbol, price_hint=entry.average_price)
        size = entry.filled_quantity
        breakdown = compute_pnl_for_profile(
            profile, direction, entry.average_price, exit_.average_price, size
        )

        if direction == TradeDirection.LONG:
            stop_loss = entry.average_price * self._config.long_stop_loss_factor
        else:
            stop_loss = entry.average_price * self._config.short_stop_loss_factor

        return CanonicalTrade(
            user_id=user_id,
            symbol=entry.symbol,
            direction=direction,
            entry_price=entry.average_price,
            exit_price=exit_.average_price,
            size=size,
            stop_loss=stop_loss,
            pnl=breakdown.adjusted_pnl,
            outcome=outcome_for(breakdown.adjusted_pnl),
            entry_execution=entry,
            exit_execution=exit_,
            pnl_breakdown=breakdown,
            notes=self._note(direction, entry, exit_, source),
        )

    def _note(
        self,
        direction: TradeDirection,
        entry: RawExecution,
        exit_: RawExecution,
        source: str,
    ) -> str:
        parts = []
        if source:
            parts.append(f"{self._config.note_prefix} {source.capitalize()}")
        parts.append(
            f"{entry.side.value.capitalize()} order {entry.order_id} -> "
            f"{exit_.side.value.capitalize()} order {exit_.order_id}"
        )
        parts.append(f"Direction: {direction.value}")
        return " | ".join(parts)


def pair_executions(
    executions: List[RawExecution],
    registry: Optional[InstrumentRegistry] = None,
    user_id: str = "",
) -> List[CanonicalTrade]:
    """Pair executions and return only the trades."""
    return PairingEngine(registry).pair(executions, user_id=user_id).trades
