"""Static indicator catalog.

Each IndicatorDefinition says how a raw provider series is transformed
into an analysis value, how often it is published, which currency it
describes and whether a rising value is positive for that currency.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Transform(Enum):
    """Raw observation → analysis value rule."""

    NONE = "none"    # Raw level
    YOY = "yoy"      # % change vs one year earlier
    QOQ = "qoq"      # Annualized quarter-on-quarter %
    MOM = "mom"      # % change vs previous observation
    DELTA = "delta"  # Absolute change vs previous observation
    SMA4 = "sma4"    # 4-observation moving average


class Frequency(Enum):
    """Publication frequency class of a series."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUAL = "annual"


# Observations per year, used for YoY / QoQ lags
PERIODS_PER_YEAR = {
    Frequency.DAILY: 252,
    Frequency.WEEKLY: 52,
    Frequency.MONTHLY: 12,
    Frequency.QUARTERLY: 4,
    Frequency.ANNUAL: 1,
}


class Directionality(Enum):
    """Whether a rising indicator value is positive for its currency."""

    HIGHER_IS_POSITIVE = "higher_is_positive"
    LOWER_IS_POSITIVE = "lower_is_positive"

    @property
    def sign(self) -> int:
        """+1 when higher is positive, -1 otherwise."""
        return 1 if self is Directionality.HIGHER_IS_POSITIVE else -1


class Category(Enum):
    """Macro category an indicator belongs to."""

    GROWTH = "growth"
    INFLATION = "inflation"
    LABOR = "labor"
    MONETARY = "monetary"
    SENTIMENT = "sentiment"


@dataclass(frozen=True)
class IndicatorDefinition:
    """Static definition of one macro indicator.

    Attributes:
        key: Catalog key (e.g. "cpi_yoy")
        series_id: Repository series identifier the raw values live under
        currency: ISO currency the indicator describes
        category: Macro category
        transform: Raw → analysis value rule
        frequency: Publication frequency class
        directionality: Whether higher values are positive for the currency
        weight: Diagnosis weight (0 disables the indicator)
        unit: Unit of the transformed value
        label: Human-readable name
        typical_surprise_pct: Typical |actual - consensus| / |consensus| for
            releases of this indicator. None means uncalibrated.
        plausible_range: Inclusive (low, high) bounds for transformed values;
            anything outside is treated as an outlier
    """

    key: str
    series_id: str
    currency: str
    category: Category
    transform: Transform
    frequency: Frequency
    directionality: Directionality = Directionality.HIGHER_IS_POSITIVE
    weight: float = 1.0
    unit: str = ""
    label: str = ""
    typical_surprise_pct: Optional[float] = None
    plausible_range: Optional[tuple[float, float]] = None

    def __post_init__(self) -> None:
        if self.weight < 0:
            raise ValueError(f"Indicator {self.key}: weight ({self.weight}) must be >= 0")
        if self.typical_surprise_pct is not None and self.typical_surprise_pct <= 0:
            raise ValueError(
                f"Indicator {self.key}: typical_surprise_pct "
                f"({self.typical_surprise_pct}) must be > 0"
            )
        if self.plausible_range is not None and self.plausible_range[0] > self.plausible_range[1]:
            raise ValueError(f"Indicator {self.key}: plausible_range low > high")


def _ind(key, series_id, currency, category, transform, frequency, direction, **kwargs):
    return IndicatorDefinition(
        key=key,
        series_id=series_id,
        currency=currency,
        category=category,
        transform=transform,
        frequency=frequency,
        directionality=direction,
        **kwargs,
    )


_UP = Directionality.HIGHER_IS_POSITIVE
_DOWN = Directionality.LOWER_IS_POSITIVE
_M = Frequency.MONTHLY
_Q = Frequency.QUARTERLY

DEFAULT_INDICATORS: tuple[IndicatorDefinition, ...] = (
    # United States
    _ind("gdp_qoq", "GDPC1", "USD", Category.GROWTH, Transform.QOQ, _Q, _UP,
         unit="% saar", label="Real GDP", typical_surprise_pct=0.15, plausible_range=(-40.0, 40.0)),
    _ind("retail_sales_mom", "RSAFS", "USD", Category.GROWTH, Transform.MOM, _M, _UP,
         unit="%", label="Retail sales", typical_surprise_pct=0.5, plausible_range=(-25.0, 25.0)),
    _ind("cpi_yoy", "CPIAUCSL", "USD", Category.INFLATION, Transform.YOY, _M, _UP,
         unit="%", label="CPI", typical_surprise_pct=0.03, plausible_range=(-5.0, 25.0)),
    _ind("core_pce_yoy", "PCEPILFE", "USD", Category.INFLATION, Transform.YOY, _M, _UP,
         unit="%", label="Core PCE", typical_surprise_pct=0.03, plausible_range=(-5.0, 25.0)),
    _ind("payrolls", "PAYEMS", "USD", Category.LABOR, Transform.DELTA, _M, _UP,
         unit="k", label="Nonfarm payrolls", typical_surprise_pct=0.25,
         plausible_range=(-25000.0, 25000.0)),
    _ind("unemployment", "UNRATE", "USD", Category.LABOR, Transform.NONE, _M, _DOWN,
         unit="%", label="Unemployment rate", typical_surprise_pct=0.03, plausible_range=(0.0, 30.0)),
    _ind("claims_4w", "ICSA", "USD", Category.LABOR, Transform.SMA4, Frequency.WEEKLY, _DOWN,
         unit="k", label="Initial claims (4w avg)", typical_surprise_pct=0.05),
    _ind("fed_funds", "FEDFUNDS", "USD", Category.MONETARY, Transform.NONE, _M, _UP,
         unit="%", label="Fed funds rate", plausible_range=(-1.0, 25.0)),
    _ind("consumer_sentiment", "UMCSENT", "USD", Category.SENTIMENT, Transform.NONE, _M, _UP,
         label="UMich sentiment", typical_surprise_pct=0.04, plausible_range=(0.0, 200.0)),
    # Euro area
    _ind("eu_gdp_qoq", "CLVMNACSCAB1GQEA19", "EUR", Category.GROWTH, Transform.QOQ, _Q, _UP,
         unit="% saar", label="Euro area GDP", typical_surprise_pct=0.2, plausible_range=(-40.0, 40.0)),
    _ind("eu_hicp_yoy", "CP0000EZ19M086NEST", "EUR", Category.INFLATION, Transform.YOY, _M, _UP,
         unit="%", label="HICP", typical_surprise_pct=0.03, plausible_range=(-5.0, 25.0)),
    _ind("eu_unemployment", "LRHUTTTTEZM156S", "EUR", Category.LABOR, Transform.NONE, _M, _DOWN,
         unit="%", label="Euro area unemployment", typical_surprise_pct=0.02, plausible_range=(0.0, 30.0)),
    _ind("ecb_deposit_rate", "ECBDFR", "EUR", Category.MONETARY, Transform.NONE, Frequency.DAILY, _UP,
         unit="%", label="ECB deposit rate", plausible_range=(-1.0, 15.0)),
    # United Kingdom
    _ind("uk_gdp_qoq", "NGDPRSAXDCGBQ", "GBP", Category.GROWTH, Transform.QOQ, _Q, _UP,
         unit="% saar", label="UK GDP", typical_surprise_pct=0.2, plausible_range=(-40.0, 40.0)),
    _ind("uk_cpi_yoy", "GBRCPIALLMINMEI", "GBP", Category.INFLATION, Transform.YOY, _M, _UP,
         unit="%", label="UK CPI", typical_surprise_pct=0.03, plausible_range=(-5.0, 25.0)),
    _ind("uk_unemployment", "LRHUTTTTGBM156S", "GBP", Category.LABOR, Transform.NONE, _M, _DOWN,
         unit="%", label="UK unemployment", typical_surprise_pct=0.02, plausible_range=(0.0, 30.0)),
    _ind("boe_rate", "IUDSOIA", "GBP", Category.MONETARY, Transform.NONE, Frequency.DAILY, _UP,
         unit="%", label="SONIA", plausible_range=(-1.0, 20.0)),
    # Japan
    _ind("jp_gdp_qoq", "JPNRGDPEXP", "JPY", Category.GROWTH, Transform.QOQ, _Q, _UP,
         unit="% saar", label="Japan GDP", typical_surprise_pct=0.25, plausible_range=(-40.0, 40.0)),
    _ind("jp_cpi_yoy", "JPNCPIALLMINMEI", "JPY", Category.INFLATION, Transform.YOY, _M, _UP,
         unit="%", label="Japan CPI", typical_surprise_pct=0.05, plausible_range=(-5.0, 25.0)),
    _ind("jp_unemployment", "LRUN64TTJPM156S", "JPY", Category.LABOR, Transform.NONE, _M, _DOWN,
         unit="%", label="Japan unemployment", typical_surprise_pct=0.03, plausible_range=(0.0, 30.0)),
    # Australia
    _ind("au_cpi_yoy", "AUSCPIALLQINMEI", "AUD", Category.INFLATION, Transform.YOY, _Q, _UP,
         unit="%", label="Australia CPI", typical_surprise_pct=0.04, plausible_range=(-5.0, 25.0)),
    _ind("au_unemployment", "LRUNTTTTAUM156S", "AUD", Category.LABOR, Transform.NONE, _M, _DOWN,
         unit="%", label="Australia unemployment", typical_surprise_pct=0.03, plausible_range=(0.0, 30.0)),
    _ind("au_gdp_qoq", "NGDPRSAXDCAUQ", "AUD", Category.GROWTH, Transform.QOQ, _Q, _UP,
         unit="% saar", label="Australia GDP", typical_surprise_pct=0.2, plausible_range=(-40.0, 40.0)),
)


def indicators_by_currency(
    definitions: Optional[tuple[IndicatorDefinition, ...] | list[IndicatorDefinition]] = None,
) -> dict[str, list[IndicatorDefinition]]:
    """Group indicator definitions by currency.

    Args:
        definitions: Definitions to group (default: DEFAULT_INDICATORS)

    Returns:
        Dict of currency → definitions, in catalog order
    """
    grouped: dict[str, list[IndicatorDefinition]] = {}
    for definition in definitions if definitions is not None else DEFAULT_INDICATORS:
        grouped.setdefault(definition.currency, []).append(definition)
    return grouped


def get_indicator(
    key: str,
    definitions: Optional[tuple[IndicatorDefinition, ...] | list[IndicatorDefinition]] = None,
) -> IndicatorDefinition:
    """Look up a definition by key.

    Raises:
        KeyError: If the key is not catalogued
    """
    for definition in definitions if definitions is not None else DEFAULT_INDICATORS:
        if definition.key == key:
            return definition
    raise KeyError(f"Unknown indicator: {key}")
