"""Macro diagnosis: indicator readings → per-currency regime + global regime.

Each usable indicator casts a directional vote from its trailing trend:

    vote_k = sign(current_k - prior_k) × directionality_k   (0 if |Δ|/|prior| < tolerance)

Votes are weighted and normalized by the weights of indicators actually
used, never by the full catalogue:

    score_c = Σ_{k ∈ used(c)} w_k × vote_k / Σ_{k ∈ used(c)} w_k

A missing reading is excluded from both numerator and denominator. A
currency with fewer than min_indicators usable readings is always labelled
Neutral, whatever its score.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from macrosignal.catalog.indicators import Category, IndicatorDefinition
from macrosignal.transforms.indicator import IndicatorReading

logger = logging.getLogger(__name__)


class RegimeLabel(Enum):
    """Per-currency monetary regime."""

    HAWKISH = "Hawkish"
    DOVISH = "Dovish"
    NEUTRAL = "Neutral"


class GlobalRegime(Enum):
    """Global risk regime from all usable indicators."""

    RISK_ON = "Risk ON"
    RISK_OFF = "Risk OFF"
    NEUTRAL = "Neutral"


class UsdBias(Enum):
    """USD view derived from the USD currency regime."""

    STRONG = "Strong"
    WEAK = "Weak"
    NEUTRAL = "Neutral"


class MacroQuadrant(Enum):
    """Growth × inflation quadrant."""

    REFLATION = "reflation"      # Growth up, inflation up
    STAGFLATION = "stagflation"  # Growth down, inflation up
    RECESSION = "recession"      # Growth down, inflation down
    GOLDILOCKS = "goldilocks"    # Growth up, inflation down
    MIXED = "mixed"

    def get_description(self) -> str:
        """Human-readable description of the quadrant."""
        descriptions = {
            MacroQuadrant.REFLATION: "Growth and inflation both accelerating",
            MacroQuadrant.STAGFLATION: "Growth slowing while inflation accelerates",
            MacroQuadrant.RECESSION: "Growth and inflation both slowing",
            MacroQuadrant.GOLDILOCKS: "Growth accelerating with inflation easing",
            MacroQuadrant.MIXED: "No clear growth/inflation signal",
        }
        return descriptions[self]


@dataclass
class ExcludedIndicator:
    """Record of an indicator excluded from the diagnosis.

    Attributes:
        key: Indicator key
        reason: Why it was excluded (e.g. "no observations", "weight is zero")
    """

    key: str
    reason: str

    def __str__(self) -> str:
        return f"{self.key} ({self.reason})"


@dataclass
class IndicatorVote:
    """One indicator's directional vote."""

    key: str
    currency: str
    category: Category
    vote: int
    weight: float
    current: float
    prior: float

    @property
    def change(self) -> float:
        return self.current - self.prior

    @property
    def contribution(self) -> float:
        return self.vote * self.weight


@dataclass
class CurrencyScore:
    """Aggregated diagnosis for one currency.

    Attributes:
        currency: ISO currency code
        total_score: Weighted vote average in [-1, 1] (0.0 when nothing is usable)
        regime_label: Hawkish / Dovish / Neutral
        drivers_used: Usable indicators that voted
        drivers_total: Catalogued indicators for the currency
        category_scores: Weighted vote average per category (used categories only)
        votes: Individual votes
    """

    currency: str
    total_score: float
    regime_label: RegimeLabel
    drivers_used: int
    drivers_total: int
    category_scores: dict[str, float] = field(default_factory=dict)
    votes: list[IndicatorVote] = field(default_factory=list)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "currency": self.currency,
            "total_score": self.total_score,
            "regime_label": self.regime_label.value,
            "drivers_used": self.drivers_used,
            "drivers_total": self.drivers_total,
            "category_scores": dict(self.category_scores),
            "votes": {v.key: v.vote for v in self.votes},
        }


@dataclass
class MacroDiagnosis:
    """Complete diagnosis for one pass over the indicator catalogue."""

    currency_scores: dict[str, CurrencyScore]
    global_score: float
    regime: GlobalRegime
    usd_bias: UsdBias
    macro_quadrant: MacroQuadrant
    category_scores: dict[str, float]
    drivers_used: int
    drivers_total: int
    excluded: list[ExcludedIndicator] = field(default_factory=list)
    computed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def score_for(self, currency: str) -> Optional[CurrencyScore]:
        """CurrencyScore for a currency, or None if not catalogued."""
        return self.currency_scores.get(currency)

    def format_summary(self) -> str:
        """Multi-line human-readable summary."""
        lines = [
            f"Global regime: {self.regime.value} (score {self.global_score:+.2f}, "
            f"{self.drivers_used}/{self.drivers_total} indicators)",
            f"USD bias: {self.usd_bias.value}",
            f"Quadrant: {self.macro_quadrant.value} — {self.macro_quadrant.get_description()}",
        ]
        for currency in sorted(self.currency_scores):
            cs = self.currency_scores[currency]
            lines.append(
                f"  {currency}: {cs.regime_label.value:<8} {cs.total_score:+.2f} "
                f"({cs.drivers_used}/{cs.drivers_total})"
            )
        if self.excluded:
            lines.append("Excluded: " + ", ".join(str(e) for e in self.excluded))
        return "\n".join(lines)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "global_score": self.global_score,
            "regime": self.regime.value,
            "usd_bias": self.usd_bias.value,
            "macro_quadrant": self.macro_quadrant.value,
            "category_scores": dict(self.category_scores),
            "drivers_used": self.drivers_used,
            "drivers_total": self.drivers_total,
            "currency_scores": {c: s.to_dict() for c, s in self.currency_scores.items()},
            "excluded": [{"key": e.key, "reason": e.reason} for e in self.excluded],
            "computed_at": self.computed_at.isoformat(),
        }


def _weighted_average(votes: list[IndicatorVote]) -> float:
    total_weight = sum(v.weight for v in votes)
    if total_weight == 0:
        return 0.0
    return sum(v.contribution for v in votes) / total_weight


def _category_scores(votes: list[IndicatorVote]) -> dict[str, float]:
    by_category: dict[str, list[IndicatorVote]] = {}
    for v in votes:
        by_category.setdefault(v.category.value, []).append(v)
    return {category: _weighted_average(vs) for category, vs in by_category.items()}


class DiagnosisEngine:
    """Aggregates indicator votes into currency and global regimes.

    Args:
        min_indicators: Usable indicators needed before a regime is labelled
        regime_threshold: |score| at or above which Hawkish/Dovish (Risk ON/OFF) applies
        stable_tolerance: Relative change below which an indicator votes 0
        quadrant_threshold: Category score magnitude for the growth/inflation quadrant

    Example:
        >>> engine = DiagnosisEngine()
        >>> diagnosis = engine.diagnose(definitions, readings)
        >>> diagnosis.currency_scores["USD"].regime_label
        <RegimeLabel.HAWKISH: 'Hawkish'>
    """

    def __init__(
        self,
        min_indicators: int = 3,
        regime_threshold: float = 0.3,
        stable_tolerance: float = 0.01,
        quadrant_threshold: float = 0.1,
    ) -> None:
        if min_indicators < 1:
            raise ValueError(f"min_indicators ({min_indicators}) must be >= 1")
        if not 0.0 < regime_threshold <= 1.0:
            raise ValueError(f"regime_threshold ({regime_threshold}) must be in (0, 1]")
        if stable_tolerance < 0:
            raise ValueError(f"stable_tolerance ({stable_tolerance}) must be >= 0")

        self.min_indicators = min_indicators
        self.regime_threshold = regime_threshold
        self.stable_tolerance = stable_tolerance
        self.quadrant_threshold = quadrant_threshold

    def vote(self, definition: IndicatorDefinition, reading: IndicatorReading) -> int:
        """Directional vote (+1 / 0 / -1) for a usable reading.

        Raises:
            ValueError: If the reading is not usable
        """
        if not reading.is_usable:
            raise ValueError(f"Reading for {reading.key} is not usable")

        change = reading.current - reading.prior
        relative = abs(change) / abs(reading.prior) if reading.prior != 0 else abs(change)
        if relative < self.stable_tolerance:
            return 0

        trend = 1 if change > 0 else -1
        return trend * definition.directionality.sign

    def label_for(self, score: float, drivers_used: int) -> RegimeLabel:
        """Map a currency score to a regime label (Neutral below the coverage floor)."""
        if drivers_used < self.min_indicators:
            return RegimeLabel.NEUTRAL
        if score >= self.regime_threshold:
            return RegimeLabel.HAWKISH
        if score <= -self.regime_threshold:
            return RegimeLabel.DOVISH
        return RegimeLabel.NEUTRAL

    def global_regime_for(self, score: float, drivers_used: int) -> GlobalRegime:
        """Map the global score to Risk ON / Risk OFF / Neutral."""
        label = self.label_for(score, drivers_used)
        if label is RegimeLabel.HAWKISH:
            return GlobalRegime.RISK_ON
        if label is RegimeLabel.DOVISH:
            return GlobalRegime.RISK_OFF
        return GlobalRegime.NEUTRAL

    def classify_quadrant(self, growth: Optional[float], inflation: Optional[float]) -> MacroQuadrant:
        """Place growth and inflation category scores in a quadrant."""
        if growth is None or inflation is None:
            return MacroQuadrant.MIXED

        q = self.quadrant_threshold
        if growth > q and inflation > q:
            return MacroQuadrant.REFLATION
        if growth < -q and inflation > q:
            return MacroQuadrant.STAGFLATION
        if growth < -q and inflation < -q:
            return MacroQuadrant.RECESSION
        if growth > q and inflation < -q:
            return MacroQuadrant.GOLDILOCKS
        return MacroQuadrant.MIXED

    def diagnose(
        self,
        definitions: list[IndicatorDefinition] | tuple[IndicatorDefinition, ...],
        readings: dict[str, IndicatorReading],
    ) -> MacroDiagnosis:
        """Run the diagnosis over a catalogue and its readings.

        Args:
            definitions: Indicator catalogue
            readings: Indicator key → latest reading (missing keys are data gaps)

        Returns:
            MacroDiagnosis with one CurrencyScore per catalogued currency
        """
        votes_by_currency: dict[str, list[IndicatorVote]] = {}
        totals: dict[str, int] = {}
        excluded: list[ExcludedIndicator] = []

        for definition in definitions:
            currency = definition.currency
            totals[currency] = totals.get(currency, 0) + 1
            votes_by_currency.setdefault(currency, [])

            reading = readings.get(definition.key)
            if reading is None:
                excluded.append(ExcludedIndicator(definition.key, "no reading"))
                continue
            if definition.weight == 0:
                excluded.append(ExcludedIndicator(definition.key, "weight is zero"))
                continue
            if not reading.is_usable:
                reason = reading.excluded_reason or "missing current or prior value"
                excluded.append(ExcludedIndicator(definition.key, reason))
                continue

            votes_by_currency[currency].append(
                IndicatorVote(
                    key=definition.key,
                    currency=currency,
                    category=definition.category,
                    vote=self.vote(definition, reading),
                    weight=definition.weight,
                    current=reading.current,
                    prior=reading.prior,
                )
            )

        currency_scores: dict[str, CurrencyScore] = {}
        for currency, votes in votes_by_currency.items():
            score = _weighted_average(votes)
            currency_scores[currency] = CurrencyScore(
                currency=currency,
                total_score=score,
                regime_label=self.label_for(score, len(votes)),
                drivers_used=len(votes),
                drivers_total=totals[currency],
                category_scores=_category_scores(votes),
                votes=votes,
            )

        all_votes = [v for votes in votes_by_currency.values() for v in votes]
        global_score = _weighted_average(all_votes)
        category_scores = _category_scores(all_votes)

        usd = currency_scores.get("USD")
        if usd is not None and usd.regime_label is RegimeLabel.HAWKISH:
            usd_bias = UsdBias.STRONG
        elif usd is not None and usd.regime_label is RegimeLabel.DOVISH:
            usd_bias = UsdBias.WEAK
        else:
            usd_bias = UsdBias.NEUTRAL

        diagnosis = MacroDiagnosis(
            currency_scores=currency_scores,
            global_score=global_score,
            regime=self.global_regime_for(global_score, len(all_votes)),
            usd_bias=usd_bias,
            macro_quadrant=self.classify_quadrant(
                category_scores.get(Category.GROWTH.value),
                category_scores.get(Category.INFLATION.value),
            ),
            category_scores=category_scores,
            drivers_used=len(all_votes),
            drivers_total=sum(totals.values()),
            excluded=excluded,
        )

        logger.debug(
            "Diagnosis: %s (%.3f) from %d/%d indicators, %d excluded",
            diagnosis.regime.value, global_score, diagnosis.drivers_used,
            diagnosis.drivers_total, len(excluded),
        )
        return diagnosis
