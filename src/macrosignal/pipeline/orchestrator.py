"""Orchestrator — Main pipeline coordinator.

Pipeline (one run):
  1. Diagnosis:     repository observations → readings → MacroDiagnosis
  2. Correlations:  per-symbol, concurrent, bounded by max_concurrency
  3. Releases:      pending prints → EconomicRelease + ImpactSnapshot (triggers rerun)
  4. Bias:          per-symbol, concurrent, errors isolated per symbol
  5. Quality:       invariant battery over the combined snapshot

Usage:
    orchestrator = Orchestrator(repository=ParquetRepository("data/"))
    report = await orchestrator.run(as_of=date(2024, 1, 15))
"""

import asyncio
import logging
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta
from typing import Optional

import pandas as pd

from macrosignal.catalog.indicators import DEFAULT_INDICATORS, IndicatorDefinition, Transform
from macrosignal.catalog.instruments import DEFAULT_INSTRUMENTS, KNOWN_CURRENCIES, Instrument, fx, parse_pair
from macrosignal.config import Settings, settings
from macrosignal.engine.bias import BiasContext, BiasEngine, DriverKind, MacroBias
from macrosignal.engine.correlation import CorrelationEngine, CorrelationResult, CorrelationWindow
from macrosignal.engine.diagnosis import DiagnosisEngine, MacroDiagnosis
from macrosignal.engine.narrative import row_from_bias
from macrosignal.engine.quality import DriverFreshness, QualityChecker, QualityReport, QualitySnapshot
from macrosignal.engine.surprise import (
    CurrencySnapshot,
    EconomicEvent,
    EconomicRelease,
    ReleaseOutcome,
    SurpriseEngine,
)
from macrosignal.errors import RepositoryUnavailableError
from macrosignal.pipeline.lock import RunLock
from macrosignal.pipeline.state import RunState
from macrosignal.store.base import ObservationRepository
from macrosignal.store.results import ResultStore
from macrosignal.transforms.indicator import IndicatorReading, latest_reading

logger = logging.getLogger(__name__)

# Transforms whose output is in the units a headline print is published in
RELEASE_UNIT_TRANSFORMS = frozenset({
    Transform.NONE, Transform.YOY, Transform.QOQ, Transform.MOM, Transform.DELTA,
})


@dataclass
class RunReport:
    """Outcome of one full pipeline run."""

    run_id: str
    as_of: date
    diagnosis: Optional[MacroDiagnosis]
    correlations: list[CorrelationResult]
    biases: dict[str, MacroBias]
    releases: list[ReleaseOutcome]
    quality: QualityReport
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def error_count(self) -> int:
        return len(self.errors)

    def format_report(self) -> str:
        """Multi-line human-readable summary."""
        lines = [f"MACROSIGNAL run {self.run_id} — {self.as_of.isoformat()}", ""]
        if self.diagnosis is not None:
            lines.append(self.diagnosis.format_summary())
            lines.append("")
        lines.append("Biases:")
        for symbol, bias in self.biases.items():
            lines.append(
                f"  {symbol:<7} {bias.direction.value:<8} score={bias.score:+.2f} "
                f"conf={bias.confidence:.2f} drivers={bias.meta.drivers_used}/{bias.meta.drivers_total}"
            )
        for symbol, message in sorted(self.errors.items()):
            lines.append(f"  {symbol:<7} ERROR {message}")
        if self.releases:
            lines.append("")
            lines.append("Releases:")
            for outcome in self.releases:
                r = outcome.release
                direction = r.surprise_direction.value if r.surprise_direction else "n/a"
                lines.append(f"  {r.event_id}: actual={r.actual} consensus={r.consensus} ({direction})")
        lines.append("")
        lines.append(self.quality.format_report())
        return "\n".join(lines)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "run_id": self.run_id,
            "as_of": self.as_of.isoformat(),
            "diagnosis": self.diagnosis.to_dict() if self.diagnosis else None,
            "correlations": [r.to_dict() for r in self.correlations],
            "biases": {s: b.to_dict() for s, b in self.biases.items()},
            "releases": [
                {
                    "release": o.release.to_dict(),
                    "impact": o.impact.to_dict() if o.impact else None,
                    "created": o.created,
                }
                for o in self.releases
            ],
            "quality": self.quality.to_dict(),
            "errors": dict(self.errors),
        }


class Orchestrator:
    """Main pipeline orchestrator for MACROSIGNAL.

    Wires the engines from Settings and runs them against a repository.

    Args:
        repository: Observation repository (read-only)
        indicators: Indicator catalogue (default: DEFAULT_INDICATORS)
        instruments: Instrument catalogue (default: DEFAULT_INSTRUMENTS)
        results: Result store (default: a new ResultStore)
        config: Settings (default: the global settings)
    """

    def __init__(
        self,
        repository: ObservationRepository,
        indicators: Optional[list[IndicatorDefinition] | tuple[IndicatorDefinition, ...]] = None,
        instruments: Optional[list[Instrument] | tuple[Instrument, ...]] = None,
        results: Optional[ResultStore] = None,
        config: Optional[Settings] = None,
    ) -> None:
        cfg = config or settings
        self.config = cfg
        self.repository = repository
        self.indicators = tuple(indicators if indicators is not None else DEFAULT_INDICATORS)
        if instruments is None:
            # Catalogue defaults follow the configured benchmark
            instruments = [replace(i, benchmark=cfg.benchmark) for i in DEFAULT_INSTRUMENTS]
        self.instruments = {i.symbol: i for i in instruments}
        self.results = results if results is not None else ResultStore()
        self.lock = RunLock()

        self.diagnosis_engine = DiagnosisEngine(
            min_indicators=cfg.min_indicators,
            regime_threshold=cfg.regime_threshold,
            stable_tolerance=cfg.stable_tolerance,
            quadrant_threshold=cfg.quadrant_threshold,
        )
        self.windows = (
            CorrelationWindow("3m", cfg.short_window_days, cfg.short_window_min_obs),
            CorrelationWindow("12m", cfg.long_window_days, cfg.long_window_min_obs),
        )
        self.correlation_engine = CorrelationEngine(
            windows=self.windows,
            stale_days=cfg.price_stale_days,
            trend_tolerance=cfg.trend_tolerance,
        )
        self.bias_engine = BiasEngine(
            weights={DriverKind(k): w for k, w in cfg.driver_weights.items()},
            direction_threshold=cfg.direction_threshold,
            min_confidence=cfg.min_confidence,
            min_drivers=cfg.min_drivers,
            full_conviction_score=cfg.full_conviction_score,
        )
        self.quality_checker = QualityChecker(
            fx_rule_confidence_floor=cfg.fx_rule_confidence_floor,
            min_drivers=cfg.min_drivers,
            fx_sign_tolerance=cfg.fx_sign_tolerance,
            correlation_max_age_days=cfg.correlation_max_age_days,
            stale_share_fail=cfg.stale_share_fail,
        )
        self.calibration = {
            d.key: d.typical_surprise_pct
            for d in self.indicators
            if d.typical_surprise_pct is not None
        }

    def instrument(self, symbol: str) -> Instrument:
        """Catalogued instrument for a symbol.

        A currency pair missing from the catalogue is added as a plain FX
        instrument against the configured benchmark.

        Raises:
            ValueError: If the symbol is neither catalogued nor a currency pair
        """
        key = symbol.upper()
        if key in self.instruments:
            return self.instruments[key]
        pair = parse_pair(key)
        if pair is None or not set(pair) <= KNOWN_CURRENCIES or pair[0] == pair[1]:
            raise ValueError(f"Unknown symbol: {symbol}")
        instrument = fx(key, benchmark=self.config.benchmark)
        if instrument.symbol in self.instruments:
            return self.instruments[instrument.symbol]
        logger.info("%s not catalogued, scoring it as an FX pair", instrument.symbol)
        self.instruments[instrument.symbol] = instrument
        return instrument

    def _semaphore(self) -> asyncio.Semaphore:
        return asyncio.Semaphore(self.config.max_concurrency)

    # --- Diagnosis ---

    async def load_readings(self, state: RunState) -> dict[str, IndicatorReading]:
        """Fetch and transform every catalogued indicator into state.readings."""
        state.ensure_open()
        series = await asyncio.gather(
            *(self.repository.get_observations(d.series_id) for d in self.indicators)
        )
        for definition, observations in zip(self.indicators, series):
            # Observations dated after as_of are not visible to the run
            if not observations.empty:
                observations = observations[observations.index <= pd.Timestamp(state.as_of)]
            state.readings[definition.key] = latest_reading(definition, observations)
        return state.readings

    async def compute_diagnosis(self, state: RunState) -> MacroDiagnosis:
        """Compute the diagnosis (loading readings on first call)."""
        state.ensure_open()
        if not state.readings:
            await self.load_readings(state)
        state.diagnosis = self.diagnosis_engine.diagnose(self.indicators, state.readings)
        logger.info(
            "Diagnosis: %s (%+.2f), USD %s, quadrant %s",
            state.diagnosis.regime.value, state.diagnosis.global_score,
            state.diagnosis.usd_bias.value, state.diagnosis.macro_quadrant.value,
        )
        return state.diagnosis

    # --- Correlations ---

    async def _prices(self, symbol: str, state: RunState) -> pd.Series:
        if symbol not in state.price_cache:
            state.price_cache[symbol] = await self.repository.get_prices(symbol)
        return state.price_cache[symbol]

    async def _correlate(self, symbol: str, state: RunState) -> list[CorrelationResult]:
        instrument = self.instrument(symbol)
        asset = await self._prices(instrument.symbol, state)
        bench = await self._prices(instrument.benchmark, state)
        rows = self.correlation_engine.compute(
            instrument.symbol, asset, instrument.benchmark, bench, state.as_of,
        )
        state.correlations[instrument.symbol] = rows
        self.results.upsert_correlations(rows)
        return rows

    async def compute_correlations(self, symbols: list[str], state: RunState) -> list[CorrelationResult]:
        """Correlations for several symbols, concurrently.

        A symbol that fails is recorded in state.errors; repository outages
        propagate.
        """
        state.ensure_open()
        semaphore = self._semaphore()

        async def _one(symbol: str) -> list[CorrelationResult]:
            async with semaphore:
                try:
                    return await self._correlate(symbol, state)
                except RepositoryUnavailableError:
                    raise
                except Exception as e:
                    logger.error("Correlation failed for %s: %s", symbol, e, exc_info=True)
                    state.errors[symbol] = f"correlation: {e}"
                    return []

        batches = await asyncio.gather(*(_one(s) for s in symbols))
        return [row for batch in batches for row in batch]

    # --- Bias ---

    async def compute_bias(self, symbol: str, state: RunState) -> MacroBias:
        """Score one symbol (computing diagnosis / correlations if missing)."""
        state.ensure_open()
        instrument = self.instrument(symbol)
        if state.diagnosis is None:
            await self.compute_diagnosis(state)
        if instrument.symbol not in state.correlations:
            await self._correlate(instrument.symbol, state)

        ctx = BiasContext(
            instrument=instrument,
            diagnosis=state.diagnosis,
            correlations=state.correlations[instrument.symbol],
            releases=self.results.releases(),
            as_of=state.as_of_datetime,
            correlation_window=self.correlation_engine.long_window.label,
            surprise_validity=timedelta(hours=self.config.surprise_validity_hours),
        )
        bias = self.bias_engine.score(ctx)
        state.biases[instrument.symbol] = bias
        self.results.upsert_bias(bias)
        return bias

    async def compute_biases(self, symbols: list[str], state: RunState) -> dict[str, MacroBias]:
        """Score several symbols concurrently; one failure does not stop the rest."""
        state.ensure_open()
        if state.diagnosis is None:
            await self.compute_diagnosis(state)
        semaphore = self._semaphore()

        async def _one(symbol: str) -> None:
            async with semaphore:
                try:
                    await self.compute_bias(symbol, state)
                except RepositoryUnavailableError:
                    raise
                except Exception as e:
                    logger.error("Bias failed for %s: %s", symbol, e, exc_info=True)
                    state.errors[symbol] = f"bias: {e}"

        await asyncio.gather(*(_one(s) for s in symbols))
        return {s: state.biases[s] for s in sorted(state.biases)}

    # --- Releases ---

    def _snapshot(self, state: RunState, currency: str) -> CurrencySnapshot:
        diagnosis = state.diagnosis
        if diagnosis is None:
            return CurrencySnapshot(score=None, regime="Neutral", usd_direction="Neutral")
        cs = diagnosis.score_for(currency)
        return CurrencySnapshot(
            score=cs.total_score if cs else None,
            regime=cs.regime_label.value if cs else "Neutral",
            usd_direction=diagnosis.usd_bias.value,
        )

    def _reports_latest_period(self, release: EconomicRelease, previous: IndicatorReading) -> bool:
        """Whether the release reports the period of the latest observation.

        Uses the release's reference period when known. Otherwise the latest
        observation belongs to whichever print it sits closer to: the one
        being released or the previously published one.
        """
        if release.reference_period is not None:
            return previous.current_date == release.reference_period
        if release.previous is None:
            return False
        return abs(previous.current - release.actual) < abs(previous.current - release.previous)

    def _overlay_release(self, release: EconomicRelease, state: RunState) -> None:
        """Make the released value the indicator's latest reading in state.readings."""
        definition = next((d for d in self.indicators if d.key == release.indicator_key), None)
        if definition is None:
            logger.warning("Release %s: indicator %s not catalogued", release.event_id, release.indicator_key)
            return
        if definition.transform not in RELEASE_UNIT_TRANSFORMS:
            logger.info(
                "Release %s: %s is scored as %s, keeping the observed reading",
                release.event_id, definition.key, definition.transform.value,
            )
            return

        previous = state.readings.get(definition.key)
        period = release.reference_period or release.released_at.date()

        if previous is None or previous.current is None:
            reading = IndicatorReading(
                key=definition.key,
                current=release.actual,
                prior=release.previous,
                current_date=period,
                outliers=previous.outliers if previous else 0,
                excluded_reason=None if release.previous is not None else "data gap: no prior value",
            )
        elif (
            release.reference_period is not None
            and previous.current_date is not None
            and previous.current_date > release.reference_period
        ):
            logger.info(
                "Release %s: observations already run past %s",
                release.event_id, release.reference_period.isoformat(),
            )
            return
        elif self._reports_latest_period(release, previous):
            # Same period as the latest observation: the print revises it
            reading = replace(previous, current=release.actual)
        else:
            reading = IndicatorReading(
                key=definition.key,
                current=release.actual,
                prior=previous.current,
                current_date=period,
                prior_date=previous.current_date,
                outliers=previous.outliers,
            )
        state.readings[definition.key] = reading

    async def _rerun_for_release(self, release: EconomicRelease, state: RunState) -> None:
        """Targeted Diagnosis+Bias rerun with the released value as the latest reading."""
        self._overlay_release(release, state)

        await self.compute_diagnosis(state)
        affected = [
            s for s in state.biases
            if release.currency in self.instruments[s].legs
            or (release.currency == "USD" and self.instruments[s].usd_exposure != 0)
        ]
        for symbol in affected:
            await self.compute_bias(symbol, state)

    async def process_release(
        self,
        event: EconomicEvent,
        actual: float,
        state: RunState,
        released_at: Optional[datetime] = None,
    ) -> ReleaseOutcome:
        """Record a release and its before/after ImpactSnapshot (idempotent per event)."""
        state.ensure_open()
        if state.diagnosis is None:
            await self.compute_diagnosis(state)

        async def _rerun(release: EconomicRelease) -> None:
            await self._rerun_for_release(release, state)

        engine = SurpriseEngine(
            ledger=self.results,
            snapshot=lambda currency: self._snapshot(state, currency),
            rerun=_rerun,
            calibration=self.calibration,
        )
        outcome = await engine.process(event, actual, released_at)
        if outcome.created:
            state.releases.append(outcome)
        return outcome

    # --- Quality ---

    def build_snapshot(self, state: RunState) -> QualitySnapshot:
        """Combined snapshot of a run for the quality checker."""
        usable = [
            d for d in self.indicators
            if (r := state.readings.get(d.key)) is not None and r.is_usable
        ]
        return QualitySnapshot(
            as_of=state.as_of,
            biases=dict(state.biases),
            instruments=dict(self.instruments),
            correlations=[row for rows in state.correlations.values() for row in rows],
            rows=[row_from_bias(b) for b in state.biases.values()],
            freshness=[
                DriverFreshness(d.key, d.currency, d.frequency, state.readings[d.key].current_date)
                for d in usable
            ],
            outliers=state.outliers,
            windows=self.windows,
        )

    def run_quality_checks(self, snapshot: QualitySnapshot) -> QualityReport:
        """Run the invariant battery over a snapshot."""
        return self.quality_checker.run(snapshot)

    # --- Full run ---

    async def run(
        self,
        as_of: Optional[date] = None,
        symbols: Optional[list[str]] = None,
    ) -> Optional[RunReport]:
        """Run the full pipeline.

        Returns None without doing anything if another run holds the lock.

        Args:
            as_of: Date to describe (default: today, UTC)
            symbols: Symbols to score (default: every catalogued instrument)

        Returns:
            RunReport, or None when skipped

        Raises:
            RepositoryUnavailableError: If the repository cannot be read
        """
        with self.lock.hold() as acquired:
            if not acquired:
                return None

            symbols = [s.upper() for s in (symbols or sorted(self.instruments))]
            with RunState.open(as_of) as state:
                await self.compute_diagnosis(state)
                await self.compute_correlations(symbols, state)

                end = state.as_of_datetime
                start = end - timedelta(hours=self.config.pending_release_window_hours)
                pending = await self.repository.get_pending_releases(start, end)
                for p in pending:
                    await self.process_release(p.event, p.actual, state, p.released_at)

                await self.compute_biases(symbols, state)
                quality = self.run_quality_checks(self.build_snapshot(state))

                report = RunReport(
                    run_id=state.run_id,
                    as_of=state.as_of,
                    diagnosis=state.diagnosis,
                    correlations=[row for s in symbols for row in state.correlations.get(s, [])],
                    biases={s: state.biases[s] for s in sorted(state.biases)},
                    releases=list(state.releases),
                    quality=quality,
                    errors=dict(state.errors),
                )

            if report.error_count:
                logger.warning("Run %s finished with %d symbol error(s)", report.run_id, report.error_count)
            return report

    async def run_single_symbol(self, symbol: str, as_of: Optional[date] = None) -> MacroBias:
        """Ad-hoc bias for one symbol (no releases processed, no lock taken)."""
        with RunState.open(as_of) as state:
            await self.compute_diagnosis(state)
            return await self.compute_bias(symbol, state)
