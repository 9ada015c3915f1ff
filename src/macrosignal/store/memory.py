"""In-memory observation repository."""

import logging
from collections.abc import Iterable
from datetime import date, datetime
from typing import Optional

import pandas as pd

from macrosignal.engine.surprise import EconomicEvent
from macrosignal.store.base import Observation, PendingRelease, rows_to_series

logger = logging.getLogger(__name__)


class MemoryRepository:
    """ObservationRepository kept in process memory.

    Writes are upserts keyed by (series_id, date) / (symbol, date) /
    event_id, so re-ingesting the same data is a no-op and a revised value
    replaces the old one.

    Usage:
        repo = MemoryRepository()
        repo.upsert_observations("CPIAUCSL", [(date(2024, 1, 1), 308.4)])
        series = await repo.get_observations("CPIAUCSL")
    """

    def __init__(self) -> None:
        self._observations: dict[str, dict[date, Optional[float]]] = {}
        self._prices: dict[str, dict[date, float]] = {}
        self._releases: dict[str, PendingRelease] = {}

    def upsert_observations(
        self,
        series_id: str,
        rows: Iterable[tuple[date, Optional[float]]] | Iterable[Observation],
    ) -> int:
        """Insert or revise observations. Returns the number of rows written."""
        series = self._observations.setdefault(series_id, {})
        count = 0
        for row in rows:
            if isinstance(row, Observation):
                series[row.date] = row.value
            else:
                series[row[0]] = row[1]
            count += 1
        return count

    def upsert_prices(self, symbol: str, rows: Iterable[tuple[date, float]] | pd.Series) -> int:
        """Insert or revise closing prices. Returns the number of rows written."""
        prices = self._prices.setdefault(symbol.upper(), {})
        items = rows.items() if isinstance(rows, pd.Series) else rows
        count = 0
        for dt, close in items:
            prices[pd.Timestamp(dt).date()] = close
            count += 1
        return count

    def add_release(self, event: EconomicEvent, actual: float, released_at: datetime) -> None:
        """Record a realized print (keyed by event_id, last write wins)."""
        self._releases[event.event_id] = PendingRelease(event, actual, released_at)

    async def get_observations(self, series_id: str) -> pd.Series:
        return rows_to_series(self._observations.get(series_id, {}), series_id)

    async def get_prices(self, symbol: str) -> pd.Series:
        return rows_to_series(self._prices.get(symbol.upper(), {}), symbol.upper())

    async def get_pending_releases(self, start: datetime, end: datetime) -> list[PendingRelease]:
        pending = [p for p in self._releases.values() if start <= p.released_at <= end]
        return sorted(pending, key=lambda p: (p.released_at, p.event.event_id))
