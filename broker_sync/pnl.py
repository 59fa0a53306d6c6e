"""
Broker Sync - P&L Normalization.

============================================================
PURPOSE
============================================================
Converts a directional price delta and a size into normalized
P&L figures using instrument economics.

NUMERIC SEMANTICS:
- Floats in, floats out
- No rounding here; display rounding uses profile.display_decimals
- Zero entry price yields a zero percentage, never an error

============================================================
"""

from enum import Enum
from typing import Optional

from .instruments import DEFAULT_REGISTRY, InstrumentProfile, InstrumentRegistry
from .types import PnLResult, TradeDirection, TradeOutcome


STANDARD_PIP_SIZE = 0.0001
JPY_PIP_SIZE = 0.01


class PnLDisplayFormat(Enum):
    """How a P&L figure is rendered."""

    DOLLARS = "dollars"
    POINTS = "points"
    PIPS = "pips"
    PERCENTAGE = "percentage"


def price_delta(direction: TradeDirection, entry_price: float, exit_price: float) -> float:
    """Signed price move in the trade's favour."""
    if direction == TradeDirection.LONG:
        return exit_price - entry_price
    return entry_price - exit_price


def pip_size(symbol: str) -> float:
    """Pip size for a forex pair: 0.01 when either leg is JPY."""
    pair = symbol.strip().upper().replace("/", "")
    legs = (pair[:3], pair[3:6]) if len(pair) >= 6 else (pair,)
    if any("JPY" in leg for leg in legs):
        return JPY_PIP_SIZE
    return STANDARD_PIP_SIZE


def compute_pnl(
    symbol: str,
    direction: TradeDirection,
    entry_price: float,
    exit_price: float,
    size: float,
    registry: Optional[InstrumentRegistry] = None,
) -> PnLResult:
    """
    Compute normalized P&L for one round-trip.

    Args:
        symbol: Instrument symbol
        direction: Long or short
        entry_price: Entry fill price
        exit_price: Exit fill price
        size: Quantity traded
        registry: Instrument registry (DEFAULT_REGISTRY when omitted)

    Returns:
        PnLResult with raw, adjusted, points, pips and percentage
    """
    registry = registry or DEFAULT_REGISTRY
    profile = registry.lookup(symbol, price_hint=entry_price)
    return compute_pnl_for_profile(profile, direction, entry_price, exit_price, size)


def compute_pnl_for_profile(
    profile: InstrumentProfile,
    direction: TradeDirection,
    entry_price: float,
    exit_price: float,
    size: float,
) -> PnLResult:
    """Compute normalized P&L against an already resolved profile."""
    delta = price_delta(direction, entry_price, exit_price)

    raw_pnl = delta * size
    adjusted_pnl = delta * size * profile.multiplier
    points = abs(delta)

    if profile.is_forex:
        pips = points / pip_size(profile.symbol)
    else:
        pips = points

    percentage = (delta / entry_price) * 100 if entry_price > 0 else 0.0

    return PnLResult(
        raw_pnl=raw_pnl,
        adjusted_pnl=adjusted_pnl,
        points=points,
        pips=pips,
        percentage=percentage,
    )


def outcome_for(pnl: float) -> TradeOutcome:
    """Win above zero, loss below, breakeven at exactly zero."""
    if pnl > 0:
        return TradeOutcome.WIN
    if pnl < 0:
        return TradeOutcome.LOSS
    return TradeOutcome.BREAKEVEN


def format_pnl(
    result: PnLResult,
    display_format: PnLDisplayFormat,
    profile: InstrumentProfile,
) -> str:
    """
    Render a P&L figure for display.

    Points use the instrument's display precision. Pips are only
    rendered as pips for forex; other categories fall back to points.
    """
    if display_format == PnLDisplayFormat.POINTS:
        return f"{result.points:.{profile.display_decimals}f} pts"

    if display_format == PnLDisplayFormat.PIPS:
        if profile.is_forex:
            return f"{result.pips:.1f} pips"
        return f"{result.points:.2f} pts"

    if display_format == PnLDisplayFormat.PERCENTAGE:
        return f"{result.percentage:.2f}%"

    return f"${result.adjusted_pnl:.2f}"
