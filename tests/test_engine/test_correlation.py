"""Tests for the rolling correlation engine.

Test Coverage:
    - Returns and alignment
    - Minimum sample enforcement (None, never a value on too few points)
    - Staleness and missing data reasons
    - Trend classification
"""

from datetime import date

import numpy as np
import pandas as pd
import pytest

from macrosignal.engine.correlation import (
    CorrelationEngine,
    CorrelationTrend,
    CorrelationWindow,
    NullReason,
    align_returns,
    classify_trend,
    pearson,
    simple_returns,
)
from macrosignal.errors import InsufficientSampleError

AS_OF = date(2024, 6, 28)


def random_walk(n_days: int, seed: int, end: date = AS_OF) -> pd.Series:
    rng = np.random.default_rng(seed)
    dates = pd.bdate_range(end=end, periods=n_days)
    return pd.Series(100.0 * np.exp(np.cumsum(rng.normal(0, 0.01, n_days))), index=dates)


@pytest.fixture
def engine() -> CorrelationEngine:
    return CorrelationEngine()


class TestHelpers:
    """Test returns, alignment and Pearson helpers."""

    def test_simple_returns(self):
        prices = pd.Series([100.0, 110.0, 99.0], index=pd.bdate_range("2024-01-01", periods=3))
        returns = simple_returns(prices)
        assert list(returns.round(6)) == [0.1, -0.1]

    def test_simple_returns_drop_missing_closes(self):
        prices = pd.Series([100.0, np.nan, 110.0], index=pd.bdate_range("2024-01-01", periods=3))
        assert simple_returns(prices).iloc[0] == pytest.approx(0.1)

    def test_align_inner_join(self):
        a = pd.Series([0.1, 0.2, 0.3], index=pd.to_datetime(["2024-01-01", "2024-01-02", "2024-01-03"]))
        b = pd.Series([0.5, 0.6], index=pd.to_datetime(["2024-01-02", "2024-01-04"]))
        aligned = align_returns(a, b)
        assert list(aligned.index) == [pd.Timestamp("2024-01-02")]

    def test_pearson_below_min_obs(self):
        frame = pd.DataFrame({"asset": [0.1, 0.2], "benchmark": [0.1, 0.3]})
        with pytest.raises(InsufficientSampleError) as exc_info:
            pearson(frame, min_obs=3)
        assert exc_info.value.n_observations == 2
        assert "n = 2 < 3" in str(exc_info.value)

    def test_pearson_constant_is_nan(self):
        frame = pd.DataFrame({"asset": [0.1, 0.1, 0.1], "benchmark": [0.1, 0.2, 0.3]})
        assert np.isnan(pearson(frame, min_obs=2))

    def test_pearson_rounding_noise_is_nan(self):
        frame = pd.DataFrame({"asset": [1e-17, -1e-17, 1e-17, 0.0], "benchmark": [0.1, 0.2, 0.3, 0.1]})
        assert np.isnan(pearson(frame, min_obs=2))


class TestWindow:
    """Test window validation."""

    def test_min_obs_above_days_rejected(self):
        with pytest.raises(ValueError, match="cannot exceed"):
            CorrelationWindow("bad", trading_days=10, min_obs=20)

    def test_min_obs_below_two_rejected(self):
        with pytest.raises(ValueError, match=">= 2"):
            CorrelationWindow("bad", trading_days=10, min_obs=1)


class TestClassifyTrend:
    """Test short vs long window trend rules."""

    def test_weakening_magnitude(self):
        """Long -0.82, short -0.35 → Weakening."""
        assert classify_trend(-0.35, -0.82) is CorrelationTrend.WEAKENING

    def test_strengthening(self):
        assert classify_trend(0.8, 0.4) is CorrelationTrend.STRENGTHENING

    def test_stable(self):
        assert classify_trend(0.45, 0.5) is CorrelationTrend.STABLE

    def test_sign_flip_is_weakening(self):
        assert classify_trend(0.6, -0.5) is CorrelationTrend.WEAKENING

    def test_missing_is_inconclusive(self):
        assert classify_trend(None, 0.5) is CorrelationTrend.INCONCLUSIVE
        assert classify_trend(0.5, None) is CorrelationTrend.INCONCLUSIVE


class TestCompute:
    """Test full per-symbol computation."""

    def test_inverse_asset_is_strongly_negative(self, engine):
        bench = random_walk(300, seed=1)
        asset = 10000.0 / bench
        results = engine.compute("EURUSD", asset, "DXY", bench, AS_OF)

        assert [r.window for r in results] == ["3m", "12m"]
        for r in results:
            assert r.value is not None
            assert -1.0 <= r.value <= -0.9
            assert r.reason_null is None
        assert results[0].n_observations == 63
        assert results[1].n_observations == 252
        assert results[0].trend is results[1].trend

    def test_values_bounded(self, engine):
        results = engine.compute("X", random_walk(300, 2), "DXY", random_walk(300, 3), AS_OF)
        for r in results:
            assert r.value is None or -1.0 <= r.value <= 1.0

    def test_short_history_nulls_long_window(self, engine):
        """100 days of prices fill the 3m window but not the 12m one."""
        bench = random_walk(100, seed=4)
        results = engine.compute("EURUSD", 1.0 / bench, "DXY", bench, AS_OF)
        short, long = results
        assert short.value is not None
        assert long.value is None
        assert long.reason_null is NullReason.TOO_FEW_POINTS
        assert long.n_observations == 99
        assert short.trend is CorrelationTrend.INCONCLUSIVE

    def test_no_data(self, engine):
        results = engine.compute("EURUSD", pd.Series(dtype=float), "DXY", random_walk(300, 5), AS_OF)
        assert all(r.value is None and r.reason_null is NullReason.NO_DATA for r in results)

    def test_stale_asset(self, engine):
        asset = random_walk(300, seed=6, end=date(2024, 4, 30))
        results = engine.compute("EURUSD", asset, "DXY", random_walk(300, 7), AS_OF)
        assert all(r.reason_null is NullReason.STALE_ASSET for r in results)
        assert all(r.n_observations == 0 for r in results)

    def test_stale_benchmark(self, engine):
        bench = random_walk(300, seed=8, end=date(2024, 4, 30))
        results = engine.compute("EURUSD", random_walk(300, 9), "DXY", bench, AS_OF)
        assert all(r.reason_null is NullReason.STALE_BENCHMARK for r in results)

    def test_constant_series(self, engine):
        bench = random_walk(300, seed=10)
        flat = pd.Series(1.0, index=bench.index)
        results = engine.compute("PEG", flat, "DXY", bench, AS_OF)
        assert all(r.reason_null is NullReason.CONSTANT_SERIES for r in results)

    def test_float_noise_counts_as_constant(self, engine):
        """A pegged price whose returns are rounding noise has no correlation."""
        bench = random_walk(300, seed=14)
        pegged = pd.Series([0.1 + 0.2 if i % 2 else 0.3 for i in range(len(bench))], index=bench.index)
        results = engine.compute("PEG", pegged, "DXY", bench, AS_OF)
        assert all(r.value is None for r in results)
        assert all(r.reason_null is NullReason.CONSTANT_SERIES for r in results)

    def test_prices_after_as_of_ignored(self, engine):
        bench = random_walk(320, seed=11, end=date(2024, 7, 26))
        asset = 1.0 / bench
        as_of = date(2024, 6, 28)
        results = engine.compute("EURUSD", asset, "DXY", bench, as_of)
        expected = engine.compute(
            "EURUSD",
            asset[asset.index <= pd.Timestamp(as_of)],
            "DXY",
            bench[bench.index <= pd.Timestamp(as_of)],
            as_of,
        )
        assert [r.value for r in results] == [r.value for r in expected]

    def test_key(self, engine):
        result = engine.compute("EURUSD", random_walk(300, 12), "DXY", random_walk(300, 13), AS_OF)[0]
        assert result.key == ("EURUSD", "DXY", "3m")
        assert result.to_dict()["as_of_date"] == "2024-06-28"
