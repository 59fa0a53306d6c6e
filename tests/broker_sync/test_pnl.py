"""
Tests for P&L normalization.

============================================================
PURPOSE
============================================================
Verify raw, adjusted, points, pips and percentage figures.

TEST CATEGORIES:
1. Stocks (multiplier 1)
2. Futures (multiplier scaling)
3. Forex (pips)
4. Outcome and display formatting
============================================================
"""

import pytest

from broker_sync.instruments import DEFAULT_REGISTRY
from broker_sync.pnl import (
    PnLDisplayFormat,
    compute_pnl,
    format_pnl,
    outcome_for,
    pip_size,
    price_delta,
)
from broker_sync.types import TradeDirection, TradeOutcome


LONG = TradeDirection.LONG
SHORT = TradeDirection.SHORT


# ============================================================
# STOCK TESTS
# ============================================================

class TestStockPnL:
    """P&L for multiplier 1 instruments."""

    def test_long_winner(self):
        """150 -> 156 long, 10 shares."""
        result = compute_pnl("AAPL", LONG, 150.0, 156.0, 10)
        assert result.raw_pnl == pytest.approx(60.0)
        assert result.adjusted_pnl == pytest.approx(60.0)
        assert result.points == pytest.approx(6.0)
        assert result.pips == pytest.approx(6.0)
        assert result.percentage == pytest.approx(4.0)

    def test_short_winner(self):
        """Price falling is a gain for a short."""
        result = compute_pnl("AAPL", SHORT, 100.0, 90.0, 5)
        assert result.adjusted_pnl == pytest.approx(50.0)
        assert result.percentage == pytest.approx(10.0)

    def test_short_loser(self):
        """Price rising is a loss for a short, points stay positive."""
        result = compute_pnl("AAPL", SHORT, 100.0, 110.0, 5)
        assert result.adjusted_pnl == pytest.approx(-50.0)
        assert result.points == pytest.approx(10.0)
        assert result.percentage == pytest.approx(-10.0)

    def test_zero_entry_price(self):
        """Zero entry yields a zero percentage."""
        result = compute_pnl("XYZ", LONG, 0.0, 1.0, 1)
        assert result.percentage == 0.0
        assert result.adjusted_pnl == pytest.approx(1.0)

    def test_unknown_symbol_uses_multiplier_one(self):
        """Unknown symbols are not scaled."""
        result = compute_pnl("UNLISTED", LONG, 10.0, 12.0, 3)
        assert result.raw_pnl == result.adjusted_pnl == pytest.approx(6.0)


# ============================================================
# FUTURES TESTS
# ============================================================

class TestFuturesPnL:
    """P&L for contract multipliers."""

    def test_nq_multiplier(self):
        """Ten NQ points on one contract is 200 dollars."""
        result = compute_pnl("NQ", LONG, 18000.0, 18010.0, 1)
        assert result.raw_pnl == pytest.approx(10.0)
        assert result.adjusted_pnl == pytest.approx(200.0)
        assert result.pips == pytest.approx(result.points)

    def test_adjusted_scales_with_size(self):
        """Adjusted P&L equals raw P&L times the multiplier."""
        result = compute_pnl("ES", SHORT, 5000.0, 4990.0, 3)
        assert result.adjusted_pnl == pytest.approx(result.raw_pnl * 50)
        assert result.adjusted_pnl == pytest.approx(1500.0)


# ============================================================
# FOREX TESTS
# ============================================================

class TestForexPnL:
    """Pip computation for forex pairs."""

    def test_eurusd_ten_pips(self):
        """1.10500 -> 1.10600 is ten pips."""
        result = compute_pnl("EURUSD", LONG, 1.10500, 1.10600, 1)
        assert result.points == pytest.approx(0.001)
        assert result.pips == pytest.approx(10.0)
        assert result.adjusted_pnl == pytest.approx(100.0)

    def test_jpy_pip_size(self):
        """JPY pairs use a 0.01 pip."""
        result = compute_pnl("USDJPY", LONG, 150.00, 150.50, 1)
        assert result.pips == pytest.approx(50.0)

    @pytest.mark.parametrize("symbol,expected", [
        ("EURUSD", 0.0001),
        ("USDJPY", 0.01),
        ("EURJPY", 0.01),
        ("eur/jpy", 0.01),
        ("GBPUSD", 0.0001),
    ])
    def test_pip_size(self, symbol, expected):
        assert pip_size(symbol) == expected


# ============================================================
# OUTCOME / FORMAT TESTS
# ============================================================

class TestOutcomeAndFormat:
    """Tests for outcome classification and display."""

    def test_price_delta_sign(self):
        assert price_delta(LONG, 10.0, 12.0) == pytest.approx(2.0)
        assert price_delta(SHORT, 10.0, 12.0) == pytest.approx(-2.0)

    @pytest.mark.parametrize("pnl,expected", [
        (0.01, TradeOutcome.WIN),
        (-0.01, TradeOutcome.LOSS),
        (0.0, TradeOutcome.BREAKEVEN),
    ])
    def test_outcome_for(self, pnl, expected):
        assert outcome_for(pnl) == expected

    def test_format_dollars(self):
        result = compute_pnl("AAPL", LONG, 150.0, 156.0, 10)
        profile = DEFAULT_REGISTRY.lookup("AAPL")
        assert format_pnl(result, PnLDisplayFormat.DOLLARS, profile) == "$60.00"
        assert format_pnl(result, PnLDisplayFormat.PERCENTAGE, profile) == "4.00%"

    def test_format_points_uses_display_decimals(self):
        result = compute_pnl("NQ", LONG, 18000.0, 18010.0, 1)
        profile = DEFAULT_REGISTRY.lookup("NQ")
        assert format_pnl(result, PnLDisplayFormat.POINTS, profile) == "10.00 pts"

    def test_format_pips_for_forex(self):
        result = compute_pnl("EURUSD", LONG, 1.10500, 1.10600, 1)
        profile = DEFAULT_REGISTRY.lookup("EURUSD")
        assert format_pnl(result, PnLDisplayFormat.PIPS, profile) == "10.0 pips"

    def test_format_pips_falls_back_to_points(self):
        """Non-forex instruments never render pips."""
        result = compute_pnl("AAPL", LONG, 150.0, 156.0, 10)
        profile = DEFAULT_REGISTRY.lookup("AAPL")
        assert format_pnl(result, PnLDisplayFormat.PIPS, profile) == "6.00 pts"
