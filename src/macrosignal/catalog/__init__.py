"""Static catalogs: indicator definitions and traded instruments."""

from macrosignal.catalog.indicators import (
    Category,
    DEFAULT_INDICATORS,
    Directionality,
    Frequency,
    IndicatorDefinition,
    PERIODS_PER_YEAR,
    Transform,
    get_indicator,
    indicators_by_currency,
)
from macrosignal.catalog.instruments import (
    AssetClass,
    BENCHMARK_CURRENCY,
    DEFAULT_INSTRUMENTS,
    Instrument,
    KNOWN_CURRENCIES,
    fx,
    instruments_by_symbol,
    parse_pair,
)

__all__ = [
    "Category",
    "DEFAULT_INDICATORS",
    "Directionality",
    "Frequency",
    "IndicatorDefinition",
    "PERIODS_PER_YEAR",
    "Transform",
    "get_indicator",
    "indicators_by_currency",
    "AssetClass",
    "BENCHMARK_CURRENCY",
    "DEFAULT_INSTRUMENTS",
    "Instrument",
    "KNOWN_CURRENCIES",
    "fx",
    "instruments_by_symbol",
    "parse_pair",
]
