"""Parquet-backed observation repository.

Stores one columnar file per series / symbol plus a single release log.
Writes are upserts: new rows are merged with existing ones by date and a
revised value for an existing date replaces the old value.

Storage structure:
    data/observations/{series_id}.parquet     columns: date, value
    data/prices/{SYMBOL}.parquet              columns: date, close
    data/events/releases.parquet              one row per event_id

All I/O operations are async-compatible using asyncio.to_thread for non-blocking
execution.
"""

import asyncio
import logging
from datetime import date, datetime
from pathlib import Path
from typing import Any, Optional

import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq

from macrosignal.catalog.indicators import Directionality
from macrosignal.engine.surprise import EconomicEvent
from macrosignal.errors import RepositoryUnavailableError
from macrosignal.store.base import PendingRelease
from macrosignal.transforms.indicator import empty_series

logger = logging.getLogger(__name__)

RELEASE_COLUMNS = [
    "event_id", "currency", "indicator_key", "scheduled_time", "consensus",
    "previous", "directionality", "name", "typical_surprise_pct", "actual",
    "released_at", "reference_period",
]


def write_table(frame: pd.DataFrame, file_path: Path) -> None:
    file_path.parent.mkdir(parents=True, exist_ok=True)
    table = pa.Table.from_pandas(frame, preserve_index=False)
    pq.write_table(
        table,
        file_path,
        compression="snappy",  # Fast compression
        use_dictionary=True,  # Efficient for repeated values
        write_statistics=True,  # Enable column statistics
    )


def read_table(file_path: Path) -> Optional[pd.DataFrame]:
    if not file_path.exists():
        return None
    try:
        return pq.read_table(file_path).to_pandas()
    except (OSError, pa.ArrowException) as e:
        raise RepositoryUnavailableError(f"Cannot read {file_path}: {e}") from e


def _utc(value: Any) -> datetime:
    ts = pd.Timestamp(value)
    if ts.tzinfo is None:
        ts = ts.tz_localize("UTC")
    return ts.tz_convert("UTC").to_pydatetime()


def _optional(value: Any) -> Optional[float]:
    return None if pd.isna(value) else float(value)


def _optional_date(value: Any) -> Optional[date]:
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return None
    return date.fromisoformat(str(value))


class ParquetRepository:
    """Async Parquet store implementing ObservationRepository.

    Args:
        base_path: Root directory for the repository. Defaults to 'data/'.
    """

    def __init__(self, base_path: str | Path = "data") -> None:
        self.base_path = Path(base_path)
        try:
            self.base_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise RepositoryUnavailableError(f"Cannot create repository at {self.base_path}: {e}") from e

    def _observation_path(self, series_id: str) -> Path:
        return self.base_path / "observations" / f"{series_id}.parquet"

    def _price_path(self, symbol: str) -> Path:
        return self.base_path / "prices" / f"{symbol.upper()}.parquet"

    @property
    def _release_path(self) -> Path:
        return self.base_path / "events" / "releases.parquet"

    async def _upsert_dated(self, file_path: Path, frame: pd.DataFrame, column: str) -> int:
        if frame.empty:
            raise ValueError("Cannot write empty DataFrame to repository")
        for col in ("date", column):
            if col not in frame.columns:
                raise ValueError(f"Missing required column: {col}")

        incoming = frame[["date", column]].copy()
        incoming["date"] = pd.to_datetime(incoming["date"]).dt.normalize()
        incoming[column] = pd.to_numeric(incoming[column], errors="coerce").astype(float)

        def _upsert() -> int:
            existing = read_table(file_path)
            merged = incoming if existing is None else pd.concat([existing, incoming], ignore_index=True)
            merged = (
                merged.drop_duplicates(subset="date", keep="last")
                .sort_values("date")
                .reset_index(drop=True)
            )
            write_table(merged, file_path)
            return len(merged)

        return await asyncio.to_thread(_upsert)

    async def write_observations(self, series_id: str, frame: pd.DataFrame) -> int:
        """Upsert observations (columns: date, value). Returns rows stored."""
        return await self._upsert_dated(self._observation_path(series_id), frame, "value")

    async def write_prices(self, symbol: str, frame: pd.DataFrame) -> int:
        """Upsert closing prices (columns: date, close). Returns rows stored."""
        return await self._upsert_dated(self._price_path(symbol), frame, "close")

    async def write_release(self, event: EconomicEvent, actual: float, released_at: datetime) -> None:
        """Record a realized print, keyed by event_id (last write wins)."""
        row = pd.DataFrame([{
            "event_id": event.event_id,
            "currency": event.currency,
            "indicator_key": event.indicator_key,
            "scheduled_time": pd.Timestamp(_utc(event.scheduled_time)),
            "consensus": event.consensus,
            "previous": event.previous,
            "directionality": event.directionality.value,
            "name": event.name,
            "typical_surprise_pct": event.typical_surprise_pct,
            "actual": float(actual),
            "released_at": pd.Timestamp(_utc(released_at)),
            "reference_period": event.reference_period.isoformat() if event.reference_period else None,
        }], columns=RELEASE_COLUMNS)
        for col in ("consensus", "previous", "typical_surprise_pct"):
            row[col] = row[col].astype(float)

        def _append() -> None:
            existing = read_table(self._release_path)
            merged = row if existing is None else pd.concat([existing, row], ignore_index=True)
            merged = merged.drop_duplicates(subset="event_id", keep="last").reset_index(drop=True)
            write_table(merged, self._release_path)

        await asyncio.to_thread(_append)

    async def _read_dated(self, file_path: Path, column: str, name: str) -> pd.Series:
        def _read() -> pd.Series:
            frame = read_table(file_path)
            if frame is None or frame.empty:
                return empty_series(name)
            series = pd.Series(
                frame[column].astype(float).to_numpy(),
                index=pd.DatetimeIndex(frame["date"]),
                name=name,
            )
            return series.sort_index()

        return await asyncio.to_thread(_read)

    async def get_observations(self, series_id: str) -> pd.Series:
        """Observations for a series (empty Series if never written)."""
        return await self._read_dated(self._observation_path(series_id), "value", series_id)

    async def get_prices(self, symbol: str) -> pd.Series:
        """Closing prices for a symbol (empty Series if never written)."""
        return await self._read_dated(self._price_path(symbol), "close", symbol.upper())

    async def get_pending_releases(self, start: datetime, end: datetime) -> list[PendingRelease]:
        """Releases with released_at in [start, end], oldest first."""
        def _read() -> list[PendingRelease]:
            frame = read_table(self._release_path)
            if frame is None or frame.empty:
                return []
            pending = []
            for rec in frame.to_dict("records"):
                released_at = _utc(rec["released_at"])
                if not _utc(start) <= released_at <= _utc(end):
                    continue
                event = EconomicEvent(
                    event_id=rec["event_id"],
                    currency=rec["currency"],
                    indicator_key=rec["indicator_key"],
                    scheduled_time=_utc(rec["scheduled_time"]),
                    consensus=_optional(rec["consensus"]),
                    previous=_optional(rec["previous"]),
                    directionality=Directionality(rec["directionality"]),
                    name=rec["name"] or "",
                    typical_surprise_pct=_optional(rec["typical_surprise_pct"]),
                    reference_period=_optional_date(rec.get("reference_period")),
                )
                pending.append(PendingRelease(event, float(rec["actual"]), released_at))
            return sorted(pending, key=lambda p: (p.released_at, p.event.event_id))

        return await asyncio.to_thread(_read)

    async def list_series(self) -> list[str]:
        """Series ids with stored observations."""
        directory = self.base_path / "observations"

        def _list() -> list[str]:
            if not directory.exists():
                return []
            return sorted(p.stem for p in directory.glob("*.parquet"))

        return await asyncio.to_thread(_list)

    async def get_stats(self) -> dict[str, Any]:
        """Repository statistics.

        Returns:
            Dictionary with:
                - series: Number of observation series
                - symbols: Number of price series
                - total_files: Total number of parquet files
                - size_bytes: Total size on disk
        """
        def _stats() -> dict[str, Any]:
            files = list(self.base_path.rglob("*.parquet"))
            return {
                "series": len(list((self.base_path / "observations").glob("*.parquet"))),
                "symbols": len(list((self.base_path / "prices").glob("*.parquet"))),
                "total_files": len(files),
                "size_bytes": sum(f.stat().st_size for f in files),
            }

        return await asyncio.to_thread(_stats)


def observations_frame(rows: list[tuple[date, Optional[float]]]) -> pd.DataFrame:
    """Build a (date, value) frame for write_observations."""
    return pd.DataFrame(rows, columns=["date", "value"])


def prices_frame(rows: list[tuple[date, float]]) -> pd.DataFrame:
    """Build a (date, close) frame for write_prices."""
    return pd.DataFrame(rows, columns=["date", "close"])
