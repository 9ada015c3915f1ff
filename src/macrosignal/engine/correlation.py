"""Rolling correlation between an asset and its benchmark.

For each configured window:
1. Convert closes to simple daily returns
2. Inner-join asset and benchmark returns by date
3. Keep the most recent `trading_days` aligned returns
4. Below `min_obs` aligned returns → value is None (never computed on too few points)
5. Otherwise Pearson correlation, clipped to [-1, 1]

Stale or missing price data yields None for every window with an explicit
reason. The engine never raises on data problems.
"""

import logging
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Optional

import numpy as np
import pandas as pd

from macrosignal.errors import InsufficientSampleError
from macrosignal.transforms.indicator import to_series

logger = logging.getLogger(__name__)


class CorrelationTrend(Enum):
    """Short-window vs long-window correlation trend."""

    STRENGTHENING = "Strengthening"
    WEAKENING = "Weakening"
    STABLE = "Stable"
    INCONCLUSIVE = "Inconclusive"


class NullReason(Enum):
    """Why a correlation value is None."""

    NO_DATA = "NO_DATA"
    STALE_ASSET = "STALE_ASSET"
    STALE_BENCHMARK = "STALE_BENCHMARK"
    TOO_FEW_POINTS = "TOO_FEW_POINTS"
    CONSTANT_SERIES = "CONSTANT_SERIES"


@dataclass(frozen=True)
class CorrelationWindow:
    """Lookback window definition.

    Attributes:
        label: Window label (e.g. "3m", "12m")
        trading_days: Aligned returns kept for the window
        min_obs: Minimum aligned returns for a valid correlation
    """

    label: str
    trading_days: int
    min_obs: int

    def __post_init__(self) -> None:
        if self.min_obs < 2:
            raise ValueError(f"Window {self.label}: min_obs ({self.min_obs}) must be >= 2")
        if self.min_obs > self.trading_days:
            raise ValueError(
                f"Window {self.label}: min_obs ({self.min_obs}) cannot exceed "
                f"trading_days ({self.trading_days})"
            )


DEFAULT_WINDOWS = (
    CorrelationWindow("3m", trading_days=63, min_obs=40),
    CorrelationWindow("12m", trading_days=252, min_obs=150),
)


@dataclass
class CorrelationResult:
    """Correlation of one symbol vs its benchmark over one window.

    Attributes:
        symbol: Asset symbol
        benchmark: Benchmark symbol
        window: Window label
        value: Pearson correlation in [-1, 1], or None
        n_observations: Aligned returns in the window (0 when stale / no data)
        as_of_date: Date the correlation describes
        trend: Short vs long window trend (same on every window of a symbol)
        reason_null: Why value is None (None when value is present)
    """

    symbol: str
    benchmark: str
    window: str
    value: Optional[float]
    n_observations: int
    as_of_date: date
    trend: CorrelationTrend = CorrelationTrend.INCONCLUSIVE
    reason_null: Optional[NullReason] = None

    @property
    def key(self) -> tuple[str, str, str]:
        """Natural identity (symbol, benchmark, window)."""
        return (self.symbol, self.benchmark, self.window)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "symbol": self.symbol,
            "benchmark": self.benchmark,
            "window": self.window,
            "value": self.value,
            "n_observations": self.n_observations,
            "as_of_date": self.as_of_date.isoformat(),
            "trend": self.trend.value,
            "reason_null": self.reason_null.value if self.reason_null else None,
        }


def simple_returns(prices: pd.Series) -> pd.Series:
    """Simple daily returns r_t = close_t / close_{t-1} - 1.

    Missing closes are dropped before differencing; non-finite returns
    (zero previous close) are dropped.
    """
    closes = to_series(prices).dropna()
    with np.errstate(divide="ignore", invalid="ignore"):
        returns = closes / closes.shift(1) - 1.0
    returns = returns.replace([np.inf, -np.inf], np.nan)
    return returns.dropna()


def align_returns(asset: pd.Series, benchmark: pd.Series) -> pd.DataFrame:
    """Inner-join asset and benchmark returns by date.

    Returns:
        DataFrame with columns asset, benchmark; dates missing in either dropped
    """
    frame = pd.concat({"asset": asset, "benchmark": benchmark}, axis=1, join="inner")
    return frame.dropna().sort_index()


def pearson(aligned: pd.DataFrame, min_obs: int) -> float:
    """Pearson correlation of an aligned returns frame, clipped to [-1, 1].

    Returns NaN for a constant series.

    Raises:
        InsufficientSampleError: If fewer than min_obs rows
    """
    n = len(aligned)
    if n < min_obs:
        raise InsufficientSampleError(n, min_obs)
    if np.isclose(aligned[["asset", "benchmark"]].std(), 0.0, atol=1e-12).any():
        return float("nan")
    value = aligned["asset"].corr(aligned["benchmark"])
    if pd.isna(value):
        return float("nan")
    return float(np.clip(value, -1.0, 1.0))


def classify_trend(
    short: Optional[float],
    long: Optional[float],
    tolerance: float = 0.1,
) -> CorrelationTrend:
    """Classify the short-window correlation relative to the long window.

    Rules (first match wins):
    1. Either value None → Inconclusive
    2. |short - long| <= tolerance → Stable
    3. Sign flip → Weakening
    4. |short| > |long| → Strengthening
    5. Otherwise → Weakening

    Example:
        >>> classify_trend(-0.35, -0.82)
        <CorrelationTrend.WEAKENING: 'Weakening'>
    """
    if short is None or long is None:
        return CorrelationTrend.INCONCLUSIVE
    if abs(short - long) <= tolerance:
        return CorrelationTrend.STABLE
    if short * long < 0:
        return CorrelationTrend.WEAKENING
    if abs(short) > abs(long):
        return CorrelationTrend.STRENGTHENING
    return CorrelationTrend.WEAKENING


class CorrelationEngine:
    """Rolling-window Pearson correlation vs a benchmark.

    Args:
        windows: Windows to compute, shortest first (default: 3m/63/40, 12m/252/150)
        stale_days: Calendar days after which a price series is stale
        trend_tolerance: Stability band for trend classification
    """

    def __init__(
        self,
        windows: tuple[CorrelationWindow, ...] = DEFAULT_WINDOWS,
        stale_days: int = 30,
        trend_tolerance: float = 0.1,
    ) -> None:
        if not windows:
            raise ValueError("At least one correlation window is required")
        if stale_days < 1:
            raise ValueError(f"stale_days ({stale_days}) must be >= 1")

        self.windows = tuple(sorted(windows, key=lambda w: w.trading_days))
        self.stale_days = stale_days
        self.trend_tolerance = trend_tolerance

    @property
    def short_window(self) -> CorrelationWindow:
        return self.windows[0]

    @property
    def long_window(self) -> CorrelationWindow:
        return self.windows[-1]

    def _null_all(
        self,
        symbol: str,
        benchmark: str,
        as_of: date,
        reason: NullReason,
    ) -> list[CorrelationResult]:
        return [
            CorrelationResult(
                symbol=symbol,
                benchmark=benchmark,
                window=w.label,
                value=None,
                n_observations=0,
                as_of_date=as_of,
                trend=CorrelationTrend.INCONCLUSIVE,
                reason_null=reason,
            )
            for w in self.windows
        ]

    def _is_stale(self, prices: pd.Series, as_of: date) -> bool:
        last = prices.index[-1].date()
        return (as_of - last).days > self.stale_days

    def compute_window(
        self,
        symbol: str,
        benchmark: str,
        aligned: pd.DataFrame,
        window: CorrelationWindow,
        as_of: date,
    ) -> CorrelationResult:
        """Correlation for one window over pre-aligned returns."""
        tail = aligned.tail(window.trading_days)
        n = len(tail)
        try:
            value = pearson(tail, window.min_obs)
        except InsufficientSampleError as e:
            logger.debug("%s/%s %s: %s", symbol, benchmark, window.label, e)
            return CorrelationResult(
                symbol, benchmark, window.label, None, n, as_of,
                reason_null=NullReason.TOO_FEW_POINTS,
            )

        if np.isnan(value):
            return CorrelationResult(
                symbol, benchmark, window.label, None, n, as_of,
                reason_null=NullReason.CONSTANT_SERIES,
            )
        return CorrelationResult(symbol, benchmark, window.label, value, n, as_of)

    def compute(
        self,
        symbol: str,
        asset_prices: pd.Series,
        benchmark: str,
        benchmark_prices: pd.Series,
        as_of: date,
    ) -> list[CorrelationResult]:
        """Compute every window for one symbol.

        Args:
            symbol: Asset symbol
            asset_prices: Asset closes indexed by date
            benchmark: Benchmark symbol
            benchmark_prices: Benchmark closes indexed by date
            as_of: Date the run describes (staleness reference)

        Returns:
            One CorrelationResult per window, shortest first, all stamped
            with the same trend
        """
        # Prices after as_of are ignored
        cutoff = pd.Timestamp(as_of)
        asset = to_series(asset_prices).dropna()
        bench = to_series(benchmark_prices).dropna()
        asset = asset[asset.index <= cutoff]
        bench = bench[bench.index <= cutoff]

        if asset.empty or bench.empty:
            return self._null_all(symbol, benchmark, as_of, NullReason.NO_DATA)
        if self._is_stale(asset, as_of):
            logger.info("%s: last price %s is stale", symbol, asset.index[-1].date())
            return self._null_all(symbol, benchmark, as_of, NullReason.STALE_ASSET)
        if self._is_stale(bench, as_of):
            logger.info("%s: benchmark %s last price %s is stale", symbol, benchmark, bench.index[-1].date())
            return self._null_all(symbol, benchmark, as_of, NullReason.STALE_BENCHMARK)

        aligned = align_returns(simple_returns(asset), simple_returns(bench))
        results = [
            self.compute_window(symbol, benchmark, aligned, w, as_of)
            for w in self.windows
        ]

        trend = classify_trend(results[0].value, results[-1].value, self.trend_tolerance)
        for result in results:
            result.trend = trend
        return results
