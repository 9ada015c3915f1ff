"""Result store: idempotent upserts of engine outputs keyed by natural identity.

Keys:
    correlations     (symbol, benchmark, window)
    biases           symbol
    releases         event_id          (append-only, one per event)
    impact snapshots release_id        (append-only, one per release)
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

import pandas as pd

from macrosignal.engine.bias import MacroBias
from macrosignal.engine.correlation import CorrelationResult
from macrosignal.engine.surprise import EconomicRelease, ImpactSnapshot
from macrosignal.errors import DuplicateReleaseError
from macrosignal.store.parquet_store import read_table, write_table

logger = logging.getLogger(__name__)


class ResultStore:
    """In-process store for engine outputs, exportable to Parquet.

    Implements the ReleaseLedger protocol used by SurpriseEngine.
    """

    def __init__(self) -> None:
        self._correlations: dict[tuple[str, str, str], CorrelationResult] = {}
        self._biases: dict[str, MacroBias] = {}
        self._releases: dict[str, EconomicRelease] = {}
        self._impacts: dict[str, ImpactSnapshot] = {}

    # Correlations

    def upsert_correlations(self, results: list[CorrelationResult]) -> None:
        for result in results:
            self._correlations[result.key] = result

    def correlations(self, symbol: Optional[str] = None) -> list[CorrelationResult]:
        rows = sorted(self._correlations.values(), key=lambda r: r.key)
        if symbol is None:
            return rows
        return [r for r in rows if r.symbol == symbol]

    # Biases

    def upsert_bias(self, bias: MacroBias) -> None:
        self._biases[bias.symbol] = bias

    def get_bias(self, symbol: str) -> Optional[MacroBias]:
        return self._biases.get(symbol)

    def biases(self) -> dict[str, MacroBias]:
        return dict(sorted(self._biases.items()))

    # Releases (append-only)

    def get_release(self, event_id: str) -> Optional[EconomicRelease]:
        return self._releases.get(event_id)

    def add_release(self, release: EconomicRelease) -> None:
        """Append a release.

        Raises:
            DuplicateReleaseError: If the event already has a release
        """
        if release.event_id in self._releases:
            raise DuplicateReleaseError(release.event_id)
        self._releases[release.event_id] = release

    def releases(self) -> list[EconomicRelease]:
        return sorted(self._releases.values(), key=lambda r: (r.released_at, r.event_id))

    # Impact snapshots (append-only)

    def get_impact(self, release_id: str) -> Optional[ImpactSnapshot]:
        return self._impacts.get(release_id)

    def add_impact(self, impact: ImpactSnapshot) -> None:
        """Append an impact snapshot; a second snapshot for a release is ignored."""
        if impact.release_id in self._impacts:
            logger.debug("Impact for %s already recorded", impact.release_id)
            return
        self._impacts[impact.release_id] = impact

    def impacts(self) -> list[ImpactSnapshot]:
        return [self._impacts[k] for k in sorted(self._impacts)]

    # Export

    def to_frame(self, kind: str) -> pd.DataFrame:
        """Flatten one result kind into a DataFrame.

        Args:
            kind: "correlations", "biases", "releases" or "impacts"

        Raises:
            ValueError: If kind is unknown
        """
        if kind == "correlations":
            records = [r.to_dict() for r in self.correlations()]
        elif kind == "biases":
            records = []
            for bias in self.biases().values():
                record = bias.to_dict()
                meta = record.pop("meta")
                record["drivers"] = ", ".join(f"{d['key']}={d['value']:+.3f}" for d in record["drivers"])
                record.update(meta)
                records.append(record)
        elif kind == "releases":
            records = [r.to_dict() for r in self.releases()]
        elif kind == "impacts":
            records = [i.to_dict() for i in self.impacts()]
        else:
            raise ValueError(f"Unknown result kind: {kind}")
        return pd.DataFrame.from_records(records)

    # Release ledger persistence

    async def load_ledger(self, directory: str | Path) -> int:
        """Load releases and impact snapshots saved by save_ledger() or export().

        Entries already held in memory are kept. Returns the number of
        releases loaded.
        """
        directory = Path(directory)
        releases = await asyncio.to_thread(read_table, directory / "releases.parquet")
        impacts = await asyncio.to_thread(read_table, directory / "impacts.parquet")

        loaded = 0
        for record in ([] if releases is None else releases.to_dict("records")):
            release = EconomicRelease.from_dict(record)
            if release.event_id not in self._releases:
                self._releases[release.event_id] = release
                loaded += 1
        for record in ([] if impacts is None else impacts.to_dict("records")):
            self.add_impact(ImpactSnapshot.from_dict(record))

        logger.info("Loaded %d release(s) from %s", loaded, directory)
        return loaded

    async def save_ledger(self, directory: str | Path) -> list[Path]:
        """Write releases and impact snapshots to {directory}/{kind}.parquet."""
        return await self._write_kinds(directory, ("releases", "impacts"))

    async def export(self, directory: str | Path) -> list[Path]:
        """Write every non-empty result kind to {directory}/{kind}.parquet."""
        written = await self._write_kinds(directory, ("correlations", "biases", "releases", "impacts"))
        logger.info("Exported %d result file(s) to %s", len(written), directory)
        return written

    async def _write_kinds(self, directory: str | Path, kinds: tuple[str, ...]) -> list[Path]:
        directory = Path(directory)
        written = []
        for kind in kinds:
            frame = self.to_frame(kind)
            if frame.empty:
                continue
            path = directory / f"{kind}.parquet"
            await asyncio.to_thread(write_table, frame, path)
            written.append(path)
        return written
