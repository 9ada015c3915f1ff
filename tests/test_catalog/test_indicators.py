"""Tests for the indicator catalog."""

import pytest

from macrosignal.catalog.indicators import (
    DEFAULT_INDICATORS,
    PERIODS_PER_YEAR,
    Category,
    Directionality,
    Frequency,
    IndicatorDefinition,
    Transform,
    get_indicator,
    indicators_by_currency,
)


def make_definition(**overrides) -> IndicatorDefinition:
    params = dict(
        key="cpi_yoy",
        series_id="CPI",
        currency="USD",
        category=Category.INFLATION,
        transform=Transform.YOY,
        frequency=Frequency.MONTHLY,
    )
    params.update(overrides)
    return IndicatorDefinition(**params)


class TestIndicatorDefinition:
    """Test definition validation."""

    def test_defaults(self):
        """Definitions default to weight 1 and higher-is-positive."""
        definition = make_definition()
        assert definition.weight == 1.0
        assert definition.directionality is Directionality.HIGHER_IS_POSITIVE
        assert definition.typical_surprise_pct is None

    def test_negative_weight_rejected(self):
        """Weights must be non-negative."""
        with pytest.raises(ValueError, match="weight"):
            make_definition(weight=-1.0)

    def test_zero_weight_allowed(self):
        """Weight 0 disables an indicator without removing it."""
        assert make_definition(weight=0.0).weight == 0.0

    def test_non_positive_calibration_rejected(self):
        """A typical surprise magnitude must be strictly positive."""
        with pytest.raises(ValueError, match="typical_surprise_pct"):
            make_definition(typical_surprise_pct=0.0)

    def test_inverted_range_rejected(self):
        """Plausible range low must not exceed high."""
        with pytest.raises(ValueError, match="plausible_range"):
            make_definition(plausible_range=(10.0, -10.0))


class TestDirectionality:
    """Test directionality signs."""

    def test_signs(self):
        assert Directionality.HIGHER_IS_POSITIVE.sign == 1
        assert Directionality.LOWER_IS_POSITIVE.sign == -1


class TestDefaultCatalog:
    """Test the shipped indicator set."""

    def test_keys_unique(self):
        """Catalog keys are unique."""
        keys = [d.key for d in DEFAULT_INDICATORS]
        assert len(keys) == len(set(keys))

    def test_every_frequency_has_periods(self):
        """Every frequency maps to a number of periods per year."""
        assert set(PERIODS_PER_YEAR) == set(Frequency)

    def test_usd_has_enough_indicators(self):
        """USD carries at least the minimum number of indicators for a regime."""
        grouped = indicators_by_currency()
        assert len(grouped["USD"]) >= 3
        assert {"USD", "EUR", "GBP", "JPY", "AUD"} <= set(grouped)

    def test_unemployment_is_lower_is_positive(self):
        """Rising unemployment is negative for a currency."""
        assert get_indicator("unemployment").directionality is Directionality.LOWER_IS_POSITIVE

    def test_get_indicator_unknown(self):
        """Unknown keys raise KeyError."""
        with pytest.raises(KeyError, match="Unknown indicator"):
            get_indicator("does_not_exist")

    def test_get_indicator_custom_catalog(self):
        """Lookups can target a custom catalog."""
        custom = [make_definition(key="x")]
        assert get_indicator("x", custom).key == "x"
