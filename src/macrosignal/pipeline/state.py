"""Per-run state: everything one pipeline run computes, owned by that run.

A RunState is opened at the start of a run, passed into every operation and
closed at the end. Nothing here is shared between runs.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from typing import Optional

import pandas as pd

from macrosignal.engine.bias import MacroBias
from macrosignal.engine.correlation import CorrelationResult
from macrosignal.engine.diagnosis import MacroDiagnosis
from macrosignal.engine.surprise import ReleaseOutcome
from macrosignal.transforms.indicator import IndicatorReading

logger = logging.getLogger(__name__)


@dataclass
class RunState:
    """Explicitly owned, explicitly lifetimed state of one run.

    Attributes:
        as_of: Date the run describes
        run_id: Unique run identifier
        started_at: Run start (UTC)
        readings: Indicator key → latest reading
        diagnosis: Current diagnosis (replaced on each rerun)
        correlations: Symbol → correlation rows
        biases: Symbol → bias
        releases: Releases processed during the run
        errors: Symbol → error message for failed symbols
        price_cache: Symbol → prices fetched during the run
    """

    as_of: date
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    readings: dict[str, IndicatorReading] = field(default_factory=dict)
    diagnosis: Optional[MacroDiagnosis] = None
    correlations: dict[str, list[CorrelationResult]] = field(default_factory=dict)
    biases: dict[str, MacroBias] = field(default_factory=dict)
    releases: list[ReleaseOutcome] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)
    price_cache: dict[str, pd.Series] = field(default_factory=dict)
    closed: bool = False

    @classmethod
    def open(cls, as_of: Optional[date] = None) -> "RunState":
        """Start a new run (default as_of: today, UTC)."""
        state = cls(as_of=as_of or datetime.now(timezone.utc).date())
        logger.info("Run %s opened for %s", state.run_id, state.as_of.isoformat())
        return state

    @property
    def as_of_datetime(self) -> datetime:
        """End of the as_of day in UTC (releases up to then are in scope)."""
        return datetime.combine(self.as_of, time.max, tzinfo=timezone.utc)

    @property
    def outliers(self) -> int:
        return sum(r.outliers for r in self.readings.values())

    def ensure_open(self) -> None:
        if self.closed:
            raise RuntimeError(f"Run {self.run_id} is closed")

    def close(self) -> None:
        """Tear down run-scoped caches. Results remain readable."""
        self.price_cache.clear()
        self.closed = True
        logger.info(
            "Run %s closed: %d biases, %d errors",
            self.run_id, len(self.biases), len(self.errors),
        )

    def __enter__(self) -> "RunState":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
