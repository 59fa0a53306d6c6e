"""
Tests for the instrument profile registry.

============================================================
PURPOSE
============================================================
Verify symbol lookup, custom overrides and the default profile.

TEST CATEGORIES:
1. Built-in lookup
2. Default profile for unknown symbols
3. Custom profiles
============================================================
"""

import pytest

from broker_sync.instruments import (
    BUILTIN_PROFILES,
    DEFAULT_REGISTRY,
    InstrumentCategory,
    InstrumentProfile,
    InstrumentRegistry,
    default_profile,
    quoted_decimals,
)


# ============================================================
# BUILT-IN LOOKUP TESTS
# ============================================================

class TestBuiltinLookup:
    """Tests for lookups against the built-in table."""

    def test_nq_multiplier(self):
        """NQ carries a 20 dollar point value."""
        profile = DEFAULT_REGISTRY.lookup("NQ")
        assert profile.multiplier == 20
        assert profile.category == InstrumentCategory.FUTURES
        assert profile.tick_size == 0.25

    def test_lookup_is_case_insensitive(self):
        """Lower-case and padded symbols resolve to the same profile."""
        assert DEFAULT_REGISTRY.lookup("nq") is DEFAULT_REGISTRY.lookup("NQ")
        assert DEFAULT_REGISTRY.lookup(" eurusd ").symbol == "EURUSD"

    def test_forex_profile(self):
        """Forex majors use a standard lot multiplier."""
        profile = DEFAULT_REGISTRY.lookup("EURUSD")
        assert profile.is_forex
        assert profile.multiplier == 100000
        assert profile.display_decimals == 5

    def test_every_builtin_is_known(self):
        """Every table entry is reachable."""
        for profile in BUILTIN_PROFILES:
            assert profile.symbol in DEFAULT_REGISTRY
        assert len(DEFAULT_REGISTRY) == len(BUILTIN_PROFILES)

    def test_to_dict(self):
        """to_dict exposes the category value."""
        data = DEFAULT_REGISTRY.lookup("ES").to_dict()
        assert data["symbol"] == "ES"
        assert data["category"] == "futures"
        assert data["multiplier"] == 50
        assert data["is_custom"] is False


# ============================================================
# DEFAULT PROFILE TESTS
# ============================================================

class TestDefaultProfile:
    """Tests for the fallback profile."""

    def test_unknown_symbol_never_raises(self):
        """Unknown symbols get a multiplier 1 profile."""
        profile = DEFAULT_REGISTRY.lookup("zzzz")
        assert profile.symbol == "ZZZZ"
        assert profile.multiplier == 1
        assert profile.category == InstrumentCategory.UNKNOWN
        assert "ZZZZ" not in DEFAULT_REGISTRY

    def test_default_precision_without_hint(self):
        """Two decimals when no price hint is given."""
        profile = default_profile("XYZ")
        assert profile.display_decimals == 2
        assert profile.tick_size == pytest.approx(0.01)

    def test_precision_follows_price_hint(self):
        """Tick size follows the quoted precision of the price hint."""
        profile = DEFAULT_REGISTRY.lookup("XYZ", price_hint=1.2345)
        assert profile.display_decimals == 4
        assert profile.tick_size == pytest.approx(0.0001)

    def test_price_hint_never_below_two_decimals(self):
        """Whole-number prices still display two decimals."""
        assert DEFAULT_REGISTRY.lookup("XYZ", price_hint=150.0).display_decimals == 2

    def test_price_hint_ignored_for_known_symbols(self):
        """Known symbols keep their table precision."""
        assert DEFAULT_REGISTRY.lookup("AAPL", price_hint=1.23456).display_decimals == 2

    @pytest.mark.parametrize("price,expected", [
        (1.10500, 3),
        (100, 0),
        (150.25, 2),
        (0.00012, 5),
        (-2.5, 1),
    ])
    def test_quoted_decimals(self, price, expected):
        """Trailing zeros do not count as quoted decimals."""
        assert quoted_decimals(price) == expected


# ============================================================
# CUSTOM PROFILE TESTS
# ============================================================

class TestCustomProfiles:
    """Tests for user-defined instruments."""

    @pytest.fixture
    def custom_nq(self):
        return InstrumentProfile(
            symbol="nq",
            name="Custom NQ",
            category=InstrumentCategory.FUTURES,
            multiplier=10,
            tick_size=0.25,
            tick_value=2.5,
        )

    def test_custom_overrides_builtin(self, custom_nq):
        """A custom profile wins over the built-in table."""
        registry = InstrumentRegistry(custom_profiles=[custom_nq])
        profile = registry.lookup("NQ")
        assert profile.multiplier == 10
        assert profile.is_custom
        assert profile.symbol == "NQ"

    def test_custom_symbol_not_double_counted(self, custom_nq):
        """Overriding a built-in does not grow the registry."""
        registry = InstrumentRegistry(custom_profiles=[custom_nq])
        assert len(registry) == len(BUILTIN_PROFILES)

        listed = [p for p in registry.list_instruments() if p.symbol == "NQ"]
        assert len(listed) == 1
        assert listed[0].is_custom

    def test_with_custom_leaves_original_untouched(self, custom_nq):
        """with_custom returns a new registry."""
        layered = DEFAULT_REGISTRY.with_custom([custom_nq])
        assert layered.lookup("NQ").multiplier == 10
        assert DEFAULT_REGISTRY.lookup("NQ").multiplier == 20

    def test_new_custom_symbol(self):
        """A brand new symbol becomes known."""
        registry = InstrumentRegistry(custom_profiles=[
            InstrumentProfile(
                symbol="ZB",
                name="30-Year T-Bond",
                category=InstrumentCategory.FUTURES,
                multiplier=1000,
                tick_size=0.03125,
                tick_value=31.25,
            )
        ])
        assert registry.is_known("zb")
        assert registry.lookup("ZB").multiplier == 1000
        assert len(registry) == len(BUILTIN_PROFILES) + 1

    def test_custom_base_table(self):
        """The base table can be replaced entirely."""
        registry = InstrumentRegistry(profiles=[])
        assert len(registry) == 0
        assert registry.lookup("NQ").multiplier == 1
