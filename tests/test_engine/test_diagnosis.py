"""Tests for the macro diagnosis engine.

Test Coverage:
    - Vote sign from trend and directionality
    - Normalization by weights of used indicators only
    - Coverage floor forcing Neutral
    - Global regime, USD bias and quadrant mapping
    - Exclusion reasons
"""

import pytest

from macrosignal.catalog.indicators import (
    Category,
    Directionality,
    Frequency,
    IndicatorDefinition,
    Transform,
)
from macrosignal.engine.diagnosis import (
    DiagnosisEngine,
    GlobalRegime,
    MacroQuadrant,
    RegimeLabel,
    UsdBias,
)
from macrosignal.transforms.indicator import IndicatorReading


def make_definition(
    key: str,
    currency: str = "USD",
    category: Category = Category.INFLATION,
    directionality: Directionality = Directionality.HIGHER_IS_POSITIVE,
    weight: float = 1.0,
) -> IndicatorDefinition:
    return IndicatorDefinition(
        key=key,
        series_id=key.upper(),
        currency=currency,
        category=category,
        transform=Transform.NONE,
        frequency=Frequency.MONTHLY,
        directionality=directionality,
        weight=weight,
    )


def reading(key: str, prior: float, current: float) -> IndicatorReading:
    return IndicatorReading(key=key, current=current, prior=prior)


@pytest.fixture
def engine() -> DiagnosisEngine:
    return DiagnosisEngine(min_indicators=3, regime_threshold=0.3)


class TestInitialization:
    """Test parameter validation."""

    def test_rejects_zero_min_indicators(self):
        with pytest.raises(ValueError, match="min_indicators"):
            DiagnosisEngine(min_indicators=0)

    def test_rejects_out_of_range_threshold(self):
        with pytest.raises(ValueError, match="regime_threshold"):
            DiagnosisEngine(regime_threshold=1.5)


class TestVote:
    """Test single-indicator votes."""

    def test_rising_higher_is_positive(self, engine):
        assert engine.vote(make_definition("cpi"), reading("cpi", 3.1, 3.4)) == 1

    def test_rising_lower_is_positive(self, engine):
        """Rising unemployment votes against the currency."""
        definition = make_definition("ur", directionality=Directionality.LOWER_IS_POSITIVE)
        assert engine.vote(definition, reading("ur", 3.7, 3.9)) == -1

    def test_stable_votes_zero(self, engine):
        """A change below the relative tolerance votes 0."""
        assert engine.vote(make_definition("cpi"), reading("cpi", 100.0, 100.5)) == 0

    def test_unusable_reading_rejected(self, engine):
        with pytest.raises(ValueError, match="not usable"):
            engine.vote(make_definition("cpi"), IndicatorReading(key="cpi", current=1.0))


class TestDiagnose:
    """Test aggregation into currency and global regimes."""

    def test_single_driver_forced_neutral(self, engine):
        """CPI 3.1 → 3.4 votes hawkish but one driver is below the coverage floor."""
        definitions = [make_definition("cpi_yoy")]
        diagnosis = engine.diagnose(definitions, {"cpi_yoy": reading("cpi_yoy", 3.1, 3.4)})

        usd = diagnosis.score_for("USD")
        assert usd.votes[0].vote == 1
        assert usd.total_score > 0
        assert usd.drivers_used == 1
        assert usd.regime_label is RegimeLabel.NEUTRAL
        assert diagnosis.usd_bias is UsdBias.NEUTRAL
        assert diagnosis.regime is GlobalRegime.NEUTRAL

    def test_hawkish_with_enough_drivers(self, engine):
        definitions = [make_definition(k) for k in ("a", "b", "c")]
        readings = {k: reading(k, 1.0, 2.0) for k in ("a", "b", "c")}
        diagnosis = engine.diagnose(definitions, readings)

        usd = diagnosis.score_for("USD")
        assert usd.total_score == pytest.approx(1.0)
        assert usd.regime_label is RegimeLabel.HAWKISH
        assert diagnosis.usd_bias is UsdBias.STRONG
        assert diagnosis.regime is GlobalRegime.RISK_ON

    def test_dovish_maps_to_weak_usd(self, engine):
        definitions = [make_definition(k) for k in ("a", "b", "c")]
        readings = {k: reading(k, 2.0, 1.0) for k in ("a", "b", "c")}
        diagnosis = engine.diagnose(definitions, readings)

        assert diagnosis.score_for("USD").regime_label is RegimeLabel.DOVISH
        assert diagnosis.usd_bias is UsdBias.WEAK
        assert diagnosis.regime is GlobalRegime.RISK_OFF

    def test_missing_reading_excluded_from_denominator(self, engine):
        """Score is normalized by the weights of used indicators only."""
        definitions = [make_definition(k) for k in ("a", "b", "c", "d")]
        readings = {
            "a": reading("a", 1.0, 2.0),
            "b": reading("b", 1.0, 2.0),
            "c": reading("c", 2.0, 1.0),
        }
        diagnosis = engine.diagnose(definitions, readings)

        usd = diagnosis.score_for("USD")
        assert usd.total_score == pytest.approx(1 / 3)
        assert usd.drivers_used == 3
        assert usd.drivers_total == 4
        assert [e.key for e in diagnosis.excluded] == ["d"]
        assert diagnosis.excluded[0].reason == "no reading"

    def test_weights_applied(self, engine):
        definitions = [
            make_definition("a", weight=3.0),
            make_definition("b"),
            make_definition("c"),
        ]
        readings = {
            "a": reading("a", 1.0, 2.0),
            "b": reading("b", 2.0, 1.0),
            "c": reading("c", 2.0, 1.0),
        }
        usd = engine.diagnose(definitions, readings).score_for("USD")
        assert usd.total_score == pytest.approx((3 - 1 - 1) / 5)

    def test_zero_weight_excluded(self, engine):
        definitions = [make_definition("a", weight=0.0)]
        diagnosis = engine.diagnose(definitions, {"a": reading("a", 1.0, 2.0)})
        assert diagnosis.score_for("USD").drivers_used == 0
        assert diagnosis.excluded[0].reason == "weight is zero"

    def test_unusable_reading_reason_propagated(self, engine):
        definitions = [make_definition("a")]
        readings = {"a": IndicatorReading(key="a", excluded_reason="no observations")}
        diagnosis = engine.diagnose(definitions, readings)
        assert diagnosis.excluded[0].reason == "no observations"

    def test_currency_without_data_scores_zero(self, engine):
        """A catalogued currency with nothing usable still appears, at 0.0."""
        definitions = [make_definition("eur_cpi", currency="EUR")]
        diagnosis = engine.diagnose(definitions, {})
        eur = diagnosis.score_for("EUR")
        assert eur.total_score == 0.0
        assert eur.regime_label is RegimeLabel.NEUTRAL

    def test_score_bounded(self, engine):
        definitions = [make_definition(k) for k in "abcdef"]
        readings = {k: reading(k, 1.0, 5.0) for k in "abcdef"}
        diagnosis = engine.diagnose(definitions, readings)
        assert -1.0 <= diagnosis.global_score <= 1.0

    def test_to_dict(self, engine):
        definitions = [make_definition(k) for k in ("a", "b", "c")]
        readings = {k: reading(k, 1.0, 2.0) for k in ("a", "b", "c")}
        data = engine.diagnose(definitions, readings).to_dict()
        assert data["regime"] == "Risk ON"
        assert data["currency_scores"]["USD"]["regime_label"] == "Hawkish"
        assert data["currency_scores"]["USD"]["votes"] == {"a": 1, "b": 1, "c": 1}


class TestQuadrant:
    """Test growth × inflation quadrant classification."""

    @pytest.mark.parametrize(
        "growth, inflation, expected",
        [
            (0.5, 0.5, MacroQuadrant.REFLATION),
            (-0.5, 0.5, MacroQuadrant.STAGFLATION),
            (-0.5, -0.5, MacroQuadrant.RECESSION),
            (0.5, -0.5, MacroQuadrant.GOLDILOCKS),
            (0.05, 0.5, MacroQuadrant.MIXED),
            (None, 0.5, MacroQuadrant.MIXED),
        ],
    )
    def test_classify(self, engine, growth, inflation, expected):
        assert engine.classify_quadrant(growth, inflation) is expected

    def test_quadrant_from_categories(self, engine):
        definitions = [
            make_definition("gdp", category=Category.GROWTH),
            make_definition("cpi", category=Category.INFLATION),
        ]
        readings = {"gdp": reading("gdp", 1.0, 2.0), "cpi": reading("cpi", 3.0, 2.0)}
        diagnosis = engine.diagnose(definitions, readings)
        assert diagnosis.macro_quadrant is MacroQuadrant.GOLDILOCKS

    def test_every_quadrant_has_description(self):
        for quadrant in MacroQuadrant:
            assert quadrant.get_description()
