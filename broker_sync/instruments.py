"""
Broker Sync - Instrument Profile Registry.

============================================================
PURPOSE
============================================================
Static per-symbol contract economics used for P&L scaling.

LIFECYCLE:
    Built once at startup, passed by reference into the P&L
    module and the pairing engine. Read-only afterwards.

LOOKUP RULES:
- Case-insensitive exact match on symbol
- Custom profiles override built-in ones
- Unknown symbols never fail: multiplier 1 default profile

============================================================
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Any


# ============================================================
# INSTRUMENT TYPES
# ============================================================

class InstrumentCategory(Enum):
    """Instrument category."""

    FUTURES = "futures"
    FOREX = "forex"
    STOCKS = "stocks"
    CRYPTO = "crypto"
    COMMODITIES = "commodities"
    OPTIONS = "options"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class InstrumentProfile:
    """Contract economics for one symbol."""

    symbol: str
    name: str
    category: InstrumentCategory
    multiplier: float
    """Dollar value of one full point for one contract."""

    tick_size: float
    """Smallest price increment."""

    tick_value: float
    """Dollar value of one tick."""

    currency: str = "USD"
    display_decimals: int = 2
    is_custom: bool = False

    @property
    def is_forex(self) -> bool:
        return self.category == InstrumentCategory.FOREX

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "symbol": self.symbol,
            "name": self.name,
            "category": self.category.value,
            "multiplier": self.multiplier,
            "tick_size": self.tick_size,
            "tick_value": self.tick_value,
            "currency": self.currency,
            "display_decimals": self.display_decimals,
            "is_custom": self.is_custom,
        }


def _profile(
    symbol: str,
    name: str,
    category: InstrumentCategory,
    multiplier: float,
    tick_size: float,
    tick_value: float,
    display_decimals: int,
) -> InstrumentProfile:
    return InstrumentProfile(
        symbol=symbol,
        name=name,
        category=category,
        multiplier=multiplier,
        tick_size=tick_size,
        tick_value=tick_value,
        currency="USD",
        display_decimals=display_decimals,
    )


_F = InstrumentCategory.FUTURES
_FX = InstrumentCategory.FOREX
_S = InstrumentCategory.STOCKS
_C = InstrumentCategory.CRYPTO
_CM = InstrumentCategory.COMMODITIES
_O = InstrumentCategory.OPTIONS


# ============================================================
# BUILT-IN TABLE
# ============================================================

BUILTIN_PROFILES: List[InstrumentProfile] = [
    # Futures - Index
    _profile("NQ", "E-mini NASDAQ-100", _F, 20, 0.25, 5, 2),
    _profile("MNQ", "Micro E-mini NASDAQ-100", _F, 2, 0.25, 0.5, 2),
    _profile("ES", "E-mini S&P 500", _F, 50, 0.25, 12.5, 2),
    _profile("MES", "Micro E-mini S&P 500", _F, 5, 0.25, 1.25, 2),
    _profile("YM", "E-mini Dow Jones", _F, 5, 1, 5, 0),
    _profile("MYM", "Micro E-mini Dow Jones", _F, 0.5, 1, 0.5, 0),
    _profile("RTY", "E-mini Russell 2000", _F, 50, 0.1, 5, 1),
    _profile("M2K", "Micro E-mini Russell 2000", _F, 5, 0.1, 0.5, 1),

    # Futures - Energy
    _profile("CL", "Crude Oil", _F, 1000, 0.01, 10, 2),
    _profile("MCL", "Micro Crude Oil", _F, 100, 0.01, 1, 2),
    _profile("NG", "Natural Gas", _F, 10000, 0.001, 10, 3),

    # Futures - Metals
    _profile("GC", "Gold", _F, 100, 0.1, 10, 1),
    _profile("MGC", "Micro Gold", _F, 10, 0.1, 1, 1),
    _profile("SI", "Silver", _F, 5000, 0.005, 25, 3),

    # Forex - Major (standard lot)
    _profile("EURUSD", "Euro/US Dollar", _FX, 100000, 0.00001, 1, 5),
    _profile("GBPUSD", "British Pound/US Dollar", _FX, 100000, 0.00001, 1, 5),
    _profile("USDJPY", "US Dollar/Japanese Yen", _FX, 100000, 0.001, 1, 3),
    _profile("USDCHF", "US Dollar/Swiss Franc", _FX, 100000, 0.00001, 1, 5),
    _profile("AUDUSD", "Australian Dollar/US Dollar", _FX, 100000, 0.00001, 1, 5),
    _profile("USDCAD", "US Dollar/Canadian Dollar", _FX, 100000, 0.00001, 1, 5),
    _profile("NZDUSD", "New Zealand Dollar/US Dollar", _FX, 100000, 0.00001, 1, 5),

    # Forex - Cross
    _profile("EURJPY", "Euro/Japanese Yen", _FX, 100000, 0.001, 1, 3),
    _profile("GBPJPY", "British Pound/Japanese Yen", _FX, 100000, 0.001, 1, 3),
    _profile("EURGBP", "Euro/British Pound", _FX, 100000, 0.00001, 1, 5),

    # Stocks
    _profile("AAPL", "Apple Inc.", _S, 1, 0.01, 0.01, 2),
    _profile("MSFT", "Microsoft Corp.", _S, 1, 0.01, 0.01, 2),
    _profile("GOOGL", "Alphabet Inc.", _S, 1, 0.01, 0.01, 2),
    _profile("AMZN", "Amazon.com Inc.", _S, 1, 0.01, 0.01, 2),
    _profile("NVDA", "NVIDIA Corp.", _S, 1, 0.01, 0.01, 2),
    _profile("TSLA", "Tesla Inc.", _S, 1, 0.01, 0.01, 2),
    _profile("JPM", "JPMorgan Chase & Co.", _S, 1, 0.01, 0.01, 2),
    _profile("BAC", "Bank of America Corp.", _S, 1, 0.01, 0.01, 2),

    # Crypto
    _profile("BTCUSD", "Bitcoin/US Dollar", _C, 1, 0.01, 0.01, 2),
    _profile("ETHUSD", "Ethereum/US Dollar", _C, 1, 0.01, 0.01, 2),
    _profile("ADAUSD", "Cardano/US Dollar", _C, 1, 0.0001, 0.0001, 4),
    _profile("SOLUSD", "Solana/US Dollar", _C, 1, 0.01, 0.01, 2),

    # Commodities - Spot
    _profile("GOLD", "Gold Spot", _CM, 1, 0.01, 0.01, 2),
    _profile("SILVER", "Silver Spot", _CM, 1, 0.001, 0.001, 3),

    # Options (index ETF wrappers, 100 shares per contract)
    _profile("SPY", "SPDR S&P 500 ETF Options", _O, 100, 0.01, 1, 2),
    _profile("QQQ", "Invesco QQQ ETF Options", _O, 100, 0.01, 1, 2),
]


# ============================================================
# DEFAULT PROFILE
# ============================================================

DEFAULT_DISPLAY_DECIMALS = 2


def quoted_decimals(price: float, max_decimals: int = 8) -> int:
    """
    Number of decimals a price is quoted with.

    Trailing zeros do not count: 1.10500 quotes 3 decimals.
    """
    text = f"{abs(price):.{max_decimals}f}".rstrip("0")
    if "." not in text:
        return 0
    return len(text.split(".", 1)[1])


def default_profile(symbol: str, price_hint: Optional[float] = None) -> InstrumentProfile:
    """
    Fallback profile for symbols outside the table.

    Multiplier 1, so adjusted P&L equals the raw price delta times size.
    Tick size follows the quoted precision of price_hint when given.
    """
    decimals = DEFAULT_DISPLAY_DECIMALS
    if price_hint is not None:
        decimals = max(quoted_decimals(price_hint), DEFAULT_DISPLAY_DECIMALS)

    tick_size = 10 ** -decimals
    return InstrumentProfile(
        symbol=symbol.upper(),
        name=symbol.upper(),
        category=InstrumentCategory.UNKNOWN,
        multiplier=1,
        tick_size=tick_size,
        tick_value=tick_size,
        currency="USD",
        display_decimals=decimals,
    )


# ============================================================
# REGISTRY
# ============================================================

class InstrumentRegistry:
    """
    Immutable symbol -> InstrumentProfile lookup.

    Custom profiles supplied at construction take precedence
    over the built-in table.
    """

    def __init__(
        self,
        profiles: Optional[Iterable[InstrumentProfile]] = None,
        custom_profiles: Optional[Iterable[InstrumentProfile]] = None,
    ):
        """
        Initialize registry.

        Args:
            profiles: Base table (defaults to BUILTIN_PROFILES)
            custom_profiles: User-defined instruments
        """
        table: Dict[str, InstrumentProfile] = {}
        for profile in profiles if profiles is not None else BUILTIN_PROFILES:
            table[profile.symbol.upper()] = profile

        self._custom: Dict[str, InstrumentProfile] = {}
        for profile in custom_profiles or []:
            key = profile.symbol.upper()
            if not profile.is_custom:
                profile = InstrumentProfile(
                    symbol=key,
                    name=profile.name,
                    category=profile.category,
                    multiplier=profile.multiplier,
                    tick_size=profile.tick_size,
                    tick_value=profile.tick_value,
                    currency=profile.currency,
                    display_decimals=profile.display_decimals,
                    is_custom=True,
                )
            self._custom[key] = profile

        self._table = table

    def __len__(self) -> int:
        return len(self._table.keys() | self._custom.keys())

    def __contains__(self, symbol: str) -> bool:
        return self.is_known(symbol)

    def is_known(self, symbol: str) -> bool:
        """Check whether the symbol has a table or custom profile."""
        key = symbol.strip().upper()
        return key in self._custom or key in self._table

    def lookup(self, symbol: str, price_hint: Optional[float] = None) -> InstrumentProfile:
        """
        Look up a profile. Never raises for unknown symbols.

        Args:
            symbol: Instrument symbol, any case
            price_hint: Sample price, used only for the default profile

        Returns:
            Matching profile or a multiplier-1 default
        """
        key = symbol.strip().upper()
        profile = self._custom.get(key) or self._table.get(key)
        if profile is not None:
            return profile
        return default_profile(key, price_hint)

    def list_instruments(self) -> List[InstrumentProfile]:
        """All known profiles, built-in first, then custom ones."""
        builtin = [p for key, p in self._table.items() if key not in self._custom]
        return builtin + list(self._custom.values())

    def with_custom(self, custom_profiles: Iterable[InstrumentProfile]) -> "InstrumentRegistry":
        """New registry with extra custom profiles layered on top."""
        merged = dict(self._custom)
        for profile in custom_profiles:
            merged[profile.symbol.upper()] = profile
        return InstrumentRegistry(self._table.values(), merged.values())


DEFAULT_REGISTRY = InstrumentRegistry()
"""Registry over the built-in table, built once at import."""
