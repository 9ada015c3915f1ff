"""Observation repository contract.

The engine only reads from a repository. Any adapter implementing
ObservationRepository can back a run.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional, Protocol, runtime_checkable

import pandas as pd

from macrosignal.engine.surprise import EconomicEvent
from macrosignal.transforms.indicator import empty_series


@dataclass(frozen=True)
class Observation:
    """One (series_id, date) value; a later write to the same key revises it."""

    series_id: str
    date: date
    value: Optional[float]


@dataclass(frozen=True)
class PendingRelease:
    """A realized print waiting to be processed."""

    event: EconomicEvent
    actual: float
    released_at: datetime


@runtime_checkable
class ObservationRepository(Protocol):
    """Read-only access to indicator observations, prices and releases."""

    async def get_observations(self, series_id: str) -> pd.Series:
        """Observations for a series, indexed by date (NaN for null values)."""
        ...

    async def get_prices(self, symbol: str) -> pd.Series:
        """Closing prices for a symbol, indexed by date."""
        ...

    async def get_pending_releases(self, start: datetime, end: datetime) -> list[PendingRelease]:
        """Releases with released_at in [start, end]."""
        ...


def rows_to_series(rows: dict[date, Optional[float]], name: str) -> pd.Series:
    """Build a date-indexed float Series from a date → value mapping."""
    if not rows:
        return empty_series(name)
    ordered = sorted(rows.items())
    index = pd.DatetimeIndex([pd.Timestamp(d) for d, _ in ordered])
    values = [float("nan") if v is None else float(v) for _, v in ordered]
    return pd.Series(values, index=index, name=name, dtype=float)
