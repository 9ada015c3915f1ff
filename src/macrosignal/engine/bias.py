"""Bias scoring: diagnosis + correlation + surprises → per-symbol MacroBias.

Driver kinds form a closed set resolved through DRIVER_BUILDERS; the table
is checked against DriverKind at import.

Score:
    score = Σ_d w_d × v_d / Σ_d w_d        over drivers actually present

Confidence (|score| and coverage jointly):
    strength   = min(1, |score| / full_conviction_score)
    coverage   = drivers_used / drivers_total
    coherence  = 1 - conflicting_pairs / pairs       (non-zero drivers)
    confidence = strength × coverage × (0.5 + 0.5 × coherence)
    confidence ≤ 0.5 when drivers_used < min_drivers

Direction is a pure function of (score, confidence, drivers_used), see
direction_from(), so it can be re-derived from any stored MacroBias.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from itertools import combinations
from typing import Optional

from macrosignal.catalog.instruments import BENCHMARK_CURRENCY, Instrument
from macrosignal.engine.correlation import CorrelationResult
from macrosignal.engine.diagnosis import CurrencyScore, MacroDiagnosis
from macrosignal.engine.narrative import build_narrative
from macrosignal.engine.surprise import EconomicRelease

logger = logging.getLogger(__name__)


class Direction(Enum):
    """Directional trading bias."""

    LONG = "long"
    SHORT = "short"
    NEUTRAL = "neutral"


class DriverKind(Enum):
    """Closed set of bias driver kinds."""

    USD_BIAS = "usd_bias"
    COUNTER_CURRENCY_BIAS = "counter_currency_bias"
    CORRELATION_ALIGNMENT = "correlation_alignment"
    EVENT_SURPRISE = "event_surprise"


DEFAULT_DRIVER_WEIGHTS = {
    DriverKind.USD_BIAS: 0.35,
    DriverKind.COUNTER_CURRENCY_BIAS: 0.30,
    DriverKind.CORRELATION_ALIGNMENT: 0.15,
    DriverKind.EVENT_SURPRISE: 0.20,
}


def _clamp(x: float) -> float:
    return max(-1.0, min(1.0, x))


def _sign(x: float) -> int:
    return (x > 0) - (x < 0)


@dataclass
class BiasDriver:
    """One weighted input to a MacroBias.

    Attributes:
        key: Driver key (kind value, or "event_surprise:<event_id>")
        kind: Driver kind
        value: Signed signal in [-1, 1] (positive favors long)
        weight: Weight >= 0
        detail: Short provenance note
    """

    key: str
    kind: DriverKind
    value: float
    weight: float
    detail: str = ""

    @property
    def contribution(self) -> float:
        return self.value * self.weight

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "kind": self.kind.value,
            "value": self.value,
            "weight": self.weight,
            "detail": self.detail,
        }


@dataclass
class BiasMeta:
    """Coverage metadata of a MacroBias."""

    drivers_used: int
    drivers_total: int
    coverage: float
    coherence: float

    def to_dict(self) -> dict:
        return {
            "drivers_used": self.drivers_used,
            "drivers_total": self.drivers_total,
            "coverage": self.coverage,
            "coherence": self.coherence,
        }


@dataclass
class MacroBias:
    """Directional bias for one symbol."""

    symbol: str
    score: float
    direction: Direction
    confidence: float
    drivers: list[BiasDriver]
    narrative: str
    meta: BiasMeta
    computed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def driver(self, key: str) -> Optional[BiasDriver]:
        """Driver by key, or None."""
        for d in self.drivers:
            if d.key == key:
                return d
        return None

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "symbol": self.symbol,
            "score": self.score,
            "direction": self.direction.value,
            "confidence": self.confidence,
            "drivers": [d.to_dict() for d in self.drivers],
            "narrative": self.narrative,
            "meta": self.meta.to_dict(),
            "computed_at": self.computed_at.isoformat(),
        }


@dataclass
class BiasContext:
    """Everything the driver builders read for one symbol."""

    instrument: Instrument
    diagnosis: Optional[MacroDiagnosis]
    correlations: list[CorrelationResult]
    releases: list[EconomicRelease]
    as_of: datetime
    correlation_window: str = "12m"
    surprise_validity: timedelta = timedelta(hours=24)

    def score(self, currency: Optional[str]) -> Optional[CurrencyScore]:
        """CurrencyScore with at least one usable indicator, else None."""
        if self.diagnosis is None or currency is None:
            return None
        cs = self.diagnosis.score_for(currency)
        if cs is None or cs.drivers_used == 0:
            return None
        return cs


# Builder output: (candidate slots, [(key, value, detail), ...])
BuilderResult = tuple[int, list[tuple[str, float, str]]]


def _usd_bias(ctx: BiasContext) -> BuilderResult:
    exposure = ctx.instrument.usd_exposure
    if exposure == 0:
        return 0, []
    usd = ctx.score("USD")
    if usd is None:
        return 1, []
    value = _clamp(usd.total_score * exposure)
    detail = f"USD {usd.regime_label.value} {usd.total_score:+.2f} x {exposure:+.2f}"
    return 1, [(DriverKind.USD_BIAS.value, value, detail)]


def _counter_currency_bias(ctx: BiasContext) -> BuilderResult:
    instrument = ctx.instrument
    legs = [c for c in instrument.legs if c != "USD"]
    catalogued = [
        c for c in legs
        if ctx.diagnosis is not None and ctx.diagnosis.score_for(c) is not None
    ]
    if not catalogued:
        return 0, []

    total = 0.0
    parts = []
    for currency in catalogued:
        cs = ctx.score(currency)
        if cs is None:
            continue
        side = instrument.side_of(currency)
        total += side * cs.total_score
        parts.append(f"{currency} {cs.total_score:+.2f}")
    if not parts:
        return 1, []
    return 1, [(DriverKind.COUNTER_CURRENCY_BIAS.value, _clamp(total), ", ".join(parts))]


def _currency_implied(ctx: BiasContext) -> float:
    _, usd = _usd_bias(ctx)
    _, counter = _counter_currency_bias(ctx)
    return sum(value for _, value, _ in usd + counter)


def _correlation_alignment(ctx: BiasContext) -> BuilderResult:
    row = next(
        (r for r in ctx.correlations if r.window == ctx.correlation_window),
        None,
    )
    if row is None or row.value is None:
        return 1, []

    bench = ctx.score(BENCHMARK_CURRENCY.get(ctx.instrument.benchmark))
    implied = _sign(_currency_implied(ctx))
    if bench is None or _sign(bench.total_score) == 0 or implied == 0:
        return 1, []

    # Agreement is positive when the benchmark-implied move matches the
    # currency drivers; the driver value orients it along that direction.
    agreement = _clamp(row.value * _sign(bench.total_score) * implied)
    value = agreement * implied
    verdict = "agrees" if agreement > 0 else "contradicts"
    detail = f"corr {row.window} {row.value:+.2f} vs {row.benchmark} {verdict}"
    return 1, [(DriverKind.CORRELATION_ALIGNMENT.value, value, detail)]


def _event_surprise(ctx: BiasContext) -> BuilderResult:
    instrument = ctx.instrument
    start = ctx.as_of - ctx.surprise_validity
    drivers = []
    for release in sorted(ctx.releases, key=lambda r: (r.released_at, r.event_id)):
        if not start <= release.released_at <= ctx.as_of:
            continue
        if release.surprise_score is None or release.surprise_direction is None:
            continue
        side = instrument.side_of(release.currency)
        if side == 0 and release.currency == "USD":
            side = _sign(instrument.usd_exposure)
        if side == 0:
            continue
        value = abs(release.surprise_score) * release.surprise_direction.sign * side
        detail = f"{release.currency} {release.indicator_key} {release.surprise_direction.value}"
        drivers.append((f"{DriverKind.EVENT_SURPRISE.value}:{release.event_id}", _clamp(value), detail))
    return len(drivers), drivers


DRIVER_BUILDERS: dict[DriverKind, Callable[[BiasContext], BuilderResult]] = {
    DriverKind.USD_BIAS: _usd_bias,
    DriverKind.COUNTER_CURRENCY_BIAS: _counter_currency_bias,
    DriverKind.CORRELATION_ALIGNMENT: _correlation_alignment,
    DriverKind.EVENT_SURPRISE: _event_surprise,
}

_unhandled = set(DriverKind) - set(DRIVER_BUILDERS)
if _unhandled:
    raise RuntimeError(f"Driver kinds without a builder: {sorted(k.value for k in _unhandled)}")


def coherence_of(values: list[float]) -> float:
    """Share of non-conflicting sign pairs among non-zero driver values.

    1.0 with fewer than two non-zero values.
    """
    signs = [_sign(v) for v in values if v != 0]
    pairs = list(combinations(signs, 2))
    if not pairs:
        return 1.0
    conflicts = sum(1 for a, b in pairs if a != b)
    return 1.0 - conflicts / len(pairs)


def direction_from(
    score: float,
    confidence: float,
    drivers_used: int,
    threshold: float = 0.1,
    min_confidence: float = 0.35,
    min_drivers: int = 3,
) -> Direction:
    """Map score to a direction, forced neutral below the confidence/coverage floors.

    Example:
        >>> direction_from(0.42, 0.8, 3)
        <Direction.LONG: 'long'>
        >>> direction_from(0.42, 0.8, 2)
        <Direction.NEUTRAL: 'neutral'>
    """
    if drivers_used < min_drivers or confidence < min_confidence:
        return Direction.NEUTRAL
    if score > 0 and score >= threshold:
        return Direction.LONG
    if score < 0 and score <= -threshold:
        return Direction.SHORT
    return Direction.NEUTRAL


class BiasEngine:
    """Scores one symbol from its driver set.

    Args:
        weights: Weight budget per driver kind (default: DEFAULT_DRIVER_WEIGHTS).
            A kind's budget is split evenly across its drivers.
        direction_threshold: |score| needed for long/short
        min_confidence: Confidence floor for a directional bias
        min_drivers: Driver count floor for a directional bias
        full_conviction_score: |score| at which strength saturates
        max_thin_confidence: Confidence cap when drivers_used < min_drivers
    """

    def __init__(
        self,
        weights: Optional[dict[DriverKind, float]] = None,
        direction_threshold: float = 0.1,
        min_confidence: float = 0.35,
        min_drivers: int = 3,
        full_conviction_score: float = 0.5,
        max_thin_confidence: float = 0.5,
    ) -> None:
        self.weights = dict(weights) if weights is not None else DEFAULT_DRIVER_WEIGHTS.copy()
        negative = [k.value for k, w in self.weights.items() if w < 0]
        if negative:
            raise ValueError(f"Driver weights must be >= 0: {negative}")
        if full_conviction_score <= 0:
            raise ValueError(f"full_conviction_score ({full_conviction_score}) must be > 0")
        if min_drivers < 1:
            raise ValueError(f"min_drivers ({min_drivers}) must be >= 1")

        self.direction_threshold = direction_threshold
        self.min_confidence = min_confidence
        self.min_drivers = min_drivers
        self.full_conviction_score = full_conviction_score
        self.max_thin_confidence = max_thin_confidence

    def build_drivers(self, ctx: BiasContext) -> tuple[list[BiasDriver], int]:
        """Build the weighted driver set.

        Returns:
            Tuple of (drivers sorted by |contribution| desc, candidate slot count)
        """
        drivers: list[BiasDriver] = []
        total = 0
        for kind in DriverKind:
            budget = self.weights.get(kind, 0.0)
            if budget == 0:
                continue
            candidates, built = DRIVER_BUILDERS[kind](ctx)
            total += candidates
            for key, value, detail in built:
                drivers.append(BiasDriver(key, kind, value, budget / len(built), detail))

        drivers.sort(key=lambda d: (-abs(d.contribution), d.key))
        return drivers, total

    def direction_for(self, score: float, confidence: float, drivers_used: int) -> Direction:
        """direction_from() with this engine's floors."""
        return direction_from(
            score,
            confidence,
            drivers_used,
            threshold=self.direction_threshold,
            min_confidence=self.min_confidence,
            min_drivers=self.min_drivers,
        )

    def score(self, ctx: BiasContext) -> MacroBias:
        """Score one symbol. Never raises on missing data.

        Args:
            ctx: Instrument, diagnosis, correlations and releases for the symbol

        Returns:
            MacroBias (neutral with confidence 0 when no driver is available)
        """
        symbol = ctx.instrument.symbol
        drivers, total = self.build_drivers(ctx)

        if not drivers:
            logger.info("%s: no drivers available, neutral", symbol)
            return MacroBias(
                symbol=symbol,
                score=0.0,
                direction=Direction.NEUTRAL,
                confidence=0.0,
                drivers=[],
                narrative=build_narrative(symbol, Direction.NEUTRAL.value, 0.0, []),
                meta=BiasMeta(drivers_used=0, drivers_total=total, coverage=0.0, coherence=1.0),
            )

        weight_sum = sum(d.weight for d in drivers)
        score = _clamp(sum(d.contribution for d in drivers) / weight_sum)

        used = len(drivers)
        coverage = used / max(total, used)
        coherence = coherence_of([d.value for d in drivers])
        strength = min(1.0, abs(score) / self.full_conviction_score)
        confidence = strength * coverage * (0.5 + 0.5 * coherence)
        if used < self.min_drivers:
            confidence = min(confidence, self.max_thin_confidence)

        score = round(score, 4)
        confidence = round(max(0.0, min(1.0, confidence)), 4)
        direction = self.direction_for(score, confidence, used)

        bias = MacroBias(
            symbol=symbol,
            score=score,
            direction=direction,
            confidence=confidence,
            drivers=drivers,
            narrative=build_narrative(symbol, direction.value, confidence, drivers),
            meta=BiasMeta(
                drivers_used=used,
                drivers_total=total,
                coverage=round(coverage, 4),
                coherence=round(coherence, 4),
            ),
        )
        logger.debug(
            "%s: %s score=%.3f conf=%.3f (%d/%d drivers)",
            symbol, direction.value, score, confidence, used, total,
        )
        return bias
