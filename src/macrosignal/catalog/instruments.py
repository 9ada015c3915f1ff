"""Static instrument catalog: symbol → currency legs and benchmark."""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class AssetClass(Enum):
    """Broad asset class of a traded instrument."""

    FX = "fx"
    METAL = "metal"
    INDEX = "index"


# Benchmark symbol → currency whose macro score drives it
BENCHMARK_CURRENCY = {
    "DXY": "USD",
}

# ISO codes accepted when a pair is scored without a catalogue entry
KNOWN_CURRENCIES = frozenset({
    "USD", "EUR", "GBP", "JPY", "AUD", "NZD", "CAD", "CHF", "SEK", "NOK",
    "DKK", "CNH", "HKD", "SGD", "MXN", "ZAR", "PLN", "XAU", "XAG",
})

_PAIR_PATTERN = re.compile(r"^([A-Z]{3})[/_\-]?([A-Z]{3})$")


def parse_pair(symbol: str) -> Optional[tuple[str, str]]:
    """Split a pair symbol into (base, quote).

    Accepts "EURUSD", "EUR/USD", "EUR_USD" and "eur-usd".

    Returns:
        (base, quote) tuple, or None if the symbol is not a pair
    """
    match = _PAIR_PATTERN.match(symbol.strip().upper())
    if match is None:
        return None
    return match.group(1), match.group(2)


@dataclass(frozen=True)
class Instrument:
    """Traded instrument with its currency legs.

    Attributes:
        symbol: Canonical symbol (e.g. "EURUSD")
        asset_class: FX, metal or index
        base: Base currency/asset code (None for indices)
        quote: Quote currency (None for indices)
        benchmark: Correlation benchmark symbol
        usd_sensitivity: Signed USD exposure for instruments without a
            USD leg (e.g. -0.5 for an equity index); ignored otherwise
    """

    symbol: str
    asset_class: AssetClass
    base: Optional[str] = None
    quote: Optional[str] = None
    benchmark: str = "DXY"
    usd_sensitivity: float = 0.0

    @property
    def legs(self) -> tuple[str, ...]:
        """Currency legs present on the instrument."""
        return tuple(leg for leg in (self.base, self.quote) if leg is not None)

    @property
    def is_usd_quote(self) -> bool:
        """True for XXX/USD instruments."""
        return self.quote == "USD"

    @property
    def is_usd_base(self) -> bool:
        """True for USD/XXX instruments."""
        return self.base == "USD"

    @property
    def usd_exposure(self) -> float:
        """Sign of the instrument's move for a stronger USD."""
        if self.is_usd_quote:
            return -1.0
        if self.is_usd_base:
            return 1.0
        return self.usd_sensitivity

    def side_of(self, currency: str) -> int:
        """+1 if currency is the base leg, -1 if quote, 0 if not a leg."""
        if currency == self.base:
            return 1
        if currency == self.quote:
            return -1
        return 0


def fx(symbol: str, benchmark: str = "DXY") -> Instrument:
    """Build an FX instrument from a pair symbol.

    Raises:
        ValueError: If the symbol is not a currency pair
    """
    pair = parse_pair(symbol)
    if pair is None:
        raise ValueError(f"Not a currency pair: {symbol}")
    base, quote = pair
    return Instrument(symbol=f"{base}{quote}", asset_class=AssetClass.FX, base=base, quote=quote, benchmark=benchmark)


DEFAULT_INSTRUMENTS: tuple[Instrument, ...] = (
    fx("EURUSD"),
    fx("GBPUSD"),
    fx("AUDUSD"),
    fx("USDJPY"),
    fx("USDCAD"),
    fx("EURGBP"),
    Instrument(symbol="XAUUSD", asset_class=AssetClass.METAL, base="XAU", quote="USD"),
    Instrument(symbol="SPX", asset_class=AssetClass.INDEX, usd_sensitivity=-0.5),
)


def instruments_by_symbol(
    instruments: Optional[tuple[Instrument, ...] | list[Instrument]] = None,
) -> dict[str, Instrument]:
    """Index instruments by symbol (default: DEFAULT_INSTRUMENTS)."""
    return {i.symbol: i for i in (instruments if instruments is not None else DEFAULT_INSTRUMENTS)}
