"""Indicator transforms: raw observations → analysis values.

Every Transform member has exactly one handler in TRANSFORMS. The table is
checked at import, so adding a Transform without a handler fails loudly
instead of falling through to a default.

Nulls are preserved: a missing raw value yields a missing transformed
value, and a percentage change against a zero or missing base is NaN.
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import date
from typing import Any, Optional

import numpy as np
import pandas as pd

from macrosignal.catalog.indicators import (
    PERIODS_PER_YEAR,
    Frequency,
    IndicatorDefinition,
    Transform,
)
from macrosignal.errors import DataGapError


def empty_series(name: Optional[str] = None) -> pd.Series:
    """Empty float Series on a DatetimeIndex, so date comparisons still work."""
    return pd.Series(dtype=float, index=pd.DatetimeIndex([]), name=name)


def to_series(observations: pd.Series | Iterable[tuple[Any, Optional[float]]]) -> pd.Series:
    """Normalize observations into a float Series with a sorted DatetimeIndex.

    Later duplicates of the same date win (a revision replaces the value).

    Args:
        observations: Series indexed by date, or iterable of (date, value) pairs

    Returns:
        Float Series sorted by date. Empty Series if no observations.
    """
    if isinstance(observations, pd.Series):
        series = observations.copy()
    else:
        pairs = list(observations)
        if not pairs:
            return empty_series()
        dates, values = zip(*pairs)
        series = pd.Series(list(values), index=list(dates))

    if series.empty:
        return empty_series(series.name)

    series.index = pd.to_datetime(series.index)
    series = pd.to_numeric(series, errors="coerce").astype(float)
    series = series[~series.index.duplicated(keep="last")]
    return series.sort_index()


def _pct_change(values: pd.Series, periods: int) -> pd.Series:
    base = values.shift(periods)
    with np.errstate(divide="ignore", invalid="ignore"):
        change = (values - base) / base.abs() * 100.0
    change[base == 0] = np.nan
    return change.replace([np.inf, -np.inf], np.nan)


def transform_none(values: pd.Series, frequency: Frequency) -> pd.Series:
    """Raw level, unchanged."""
    return values.copy()


def transform_yoy(values: pd.Series, frequency: Frequency) -> pd.Series:
    """Year-over-year % change.

    Compares each observation with the one PERIODS_PER_YEAR[frequency]
    observations earlier (12 back for monthly, 4 for quarterly).

    Example:
        >>> monthly = pd.Series([100.0] * 12 + [103.4])
        >>> transform_yoy(monthly, Frequency.MONTHLY).iloc[-1]
        3.4
    """
    return _pct_change(values, PERIODS_PER_YEAR[frequency])


def transform_qoq(values: pd.Series, frequency: Frequency) -> pd.Series:
    """Annualized quarter-on-quarter % change.

    Formula:
        QoQ_t = ((x_t / x_{t-k}) ** 4 - 1) * 100,  k = periods per quarter

    Ratios that are not strictly positive are NaN.
    """
    lag = max(1, PERIODS_PER_YEAR[frequency] // 4)
    base = values.shift(lag)
    with np.errstate(divide="ignore", invalid="ignore"):
        ratio = values / base
    ratio = ratio.where(ratio > 0)
    return ((ratio ** 4 - 1.0) * 100.0).replace([np.inf, -np.inf], np.nan)


def transform_mom(values: pd.Series, frequency: Frequency) -> pd.Series:
    """Period-over-period % change."""
    return _pct_change(values, 1)


def transform_delta(values: pd.Series, frequency: Frequency) -> pd.Series:
    """Absolute change vs the previous observation (e.g. payrolls added)."""
    return values.diff()


def transform_sma4(values: pd.Series, frequency: Frequency) -> pd.Series:
    """4-observation simple moving average (e.g. jobless claims 4-week average).

    Requires 4 non-null values in the window; otherwise NaN.
    """
    return values.rolling(window=4, min_periods=4).mean()


TRANSFORMS: dict[Transform, Callable[[pd.Series, Frequency], pd.Series]] = {
    Transform.NONE: transform_none,
    Transform.YOY: transform_yoy,
    Transform.QOQ: transform_qoq,
    Transform.MOM: transform_mom,
    Transform.DELTA: transform_delta,
    Transform.SMA4: transform_sma4,
}

_unhandled = set(Transform) - set(TRANSFORMS)
if _unhandled:
    raise RuntimeError(f"Transforms without a handler: {sorted(t.value for t in _unhandled)}")


def apply_transform(definition: IndicatorDefinition, observations: pd.Series) -> pd.Series:
    """Apply a definition's transform to its raw observations.

    Args:
        definition: Indicator definition (selects the transform)
        observations: Raw observations (see to_series)

    Returns:
        Transformed Series on the same index as the raw observations
    """
    values = to_series(observations)
    if values.empty:
        return values
    return TRANSFORMS[definition.transform](values, definition.frequency)


def apply_plausibility(definition: IndicatorDefinition, values: pd.Series) -> tuple[pd.Series, int]:
    """Null out transformed values outside the definition's plausible range.

    Returns:
        Tuple of (cleaned series, number of outliers removed)
    """
    if definition.plausible_range is None or values.empty:
        return values, 0

    low, high = definition.plausible_range
    outside = values.notna() & ((values < low) | (values > high))
    outliers = int(outside.sum())
    if outliers == 0:
        return values, 0
    return values.mask(outside), outliers


@dataclass
class IndicatorReading:
    """Latest two transformed values of one indicator.

    Attributes:
        key: Indicator key
        current: Most recent transformed value (None if missing)
        prior: Transformed value before it (None if missing)
        current_date: Observation date of current
        prior_date: Observation date of prior
        outliers: Values dropped by the plausibility guard
        excluded_reason: Why the reading cannot vote (None when usable)
    """

    key: str
    current: Optional[float] = None
    prior: Optional[float] = None
    current_date: Optional[date] = None
    prior_date: Optional[date] = None
    outliers: int = 0
    excluded_reason: Optional[str] = None

    @property
    def is_usable(self) -> bool:
        """True when both current and prior are present."""
        return self.current is not None and self.prior is not None


def _last_two(values: pd.Series) -> tuple[tuple[date, float], tuple[date, float]]:
    valid = values.dropna()
    if len(valid) < 2:
        raise DataGapError(f"{len(valid)} transformed value(s), need 2")
    return (
        (valid.index[-1].date(), float(valid.iloc[-1])),
        (valid.index[-2].date(), float(valid.iloc[-2])),
    )


def latest_reading(definition: IndicatorDefinition, observations: pd.Series) -> IndicatorReading:
    """Build the current/prior reading for one indicator.

    Never raises on missing data: gaps become None values with an
    explicit excluded_reason.

    Args:
        definition: Indicator definition
        observations: Raw observations for definition.series_id

    Returns:
        IndicatorReading (usable when both values are present)
    """
    transformed = apply_transform(definition, observations)
    if transformed.empty:
        return IndicatorReading(key=definition.key, excluded_reason="no observations")

    cleaned, outliers = apply_plausibility(definition, transformed)

    try:
        (current_date, current), (prior_date, prior) = _last_two(cleaned)
    except DataGapError as e:
        valid = cleaned.dropna()
        reading = IndicatorReading(
            key=definition.key,
            outliers=outliers,
            excluded_reason=f"data gap: {e}",
        )
        if len(valid) == 1:
            reading.current = float(valid.iloc[-1])
            reading.current_date = valid.index[-1].date()
        return reading

    return IndicatorReading(
        key=definition.key,
        current=current,
        prior=prior,
        current_date=current_date,
        prior_date=prior_date,
        outliers=outliers,
    )
