"""Tests for the quality invariant checker.

Test Coverage:
    - Each invariant in isolation
    - Rendered row drift detected as FAIL naming the symbol
    - Freshness SLA warnings and FAIL escalation
    - PASS line per clean check, report helpers
"""

from dataclasses import replace
from datetime import date

import pytest

from macrosignal.catalog.indicators import Frequency
from macrosignal.catalog.instruments import instruments_by_symbol
from macrosignal.engine.bias import BiasDriver, BiasMeta, Direction, DriverKind, MacroBias
from macrosignal.engine.correlation import CorrelationResult
from macrosignal.engine.narrative import ACTION_LONG, row_from_bias
from macrosignal.engine.quality import (
    CheckLevel,
    DriverFreshness,
    QualityChecker,
    QualitySnapshot,
    is_stale,
)
from macrosignal.errors import InconsistentStateError

AS_OF = date(2024, 6, 28)


def make_bias(
    symbol: str = "EURUSD",
    direction: Direction = Direction.LONG,
    confidence: float = 0.8,
    score: float = 0.5,
    usd_value: float = 0.6,
    used: int = 3,
) -> MacroBias:
    drivers = [BiasDriver(DriverKind.USD_BIAS.value, DriverKind.USD_BIAS, usd_value, 0.35)]
    return MacroBias(
        symbol=symbol,
        score=score,
        direction=direction,
        confidence=confidence,
        drivers=drivers,
        narrative=f"{symbol}: {direction.value} bias",
        meta=BiasMeta(drivers_used=used, drivers_total=3, coverage=used / 3, coherence=1.0),
    )


def snapshot(**kwargs) -> QualitySnapshot:
    kwargs.setdefault("instruments", instruments_by_symbol())
    return QualitySnapshot(as_of=AS_OF, **kwargs)


@pytest.fixture
def checker() -> QualityChecker:
    return QualityChecker()


class TestUsdBiasFxRule:
    """Test XXX/USD direction vs the USD driver."""

    def test_agreement_passes(self, checker):
        snap = snapshot(biases={"EURUSD": make_bias()})
        assert checker.check_usd_bias_fx_rule(snap) == []

    def test_confident_mismatch_warns(self, checker):
        bias = make_bias(direction=Direction.SHORT, usd_value=0.6, confidence=0.8)
        results = checker.check_usd_bias_fx_rule(snapshot(biases={"EURUSD": bias}))
        assert [r.level for r in results] == [CheckLevel.WARN]
        assert "EURUSD" in results[0].message

    def test_low_confidence_mismatch_passes(self, checker):
        bias = make_bias(direction=Direction.NEUTRAL, usd_value=0.6, confidence=0.4)
        results = checker.check_usd_bias_fx_rule(snapshot(biases={"EURUSD": bias}))
        assert [r.level for r in results] == [CheckLevel.PASS]

    def test_usd_base_pair_not_checked(self, checker):
        bias = make_bias(symbol="USDJPY", direction=Direction.SHORT, usd_value=0.6)
        assert checker.check_usd_bias_fx_rule(snapshot(biases={"USDJPY": bias})) == []


class TestMinCoverage:
    """Test thin-coverage enforcement."""

    def test_thin_directional_fails(self, checker):
        bias = make_bias(used=2, direction=Direction.LONG, confidence=0.4)
        results = checker.check_min_coverage(snapshot(biases={"EURUSD": bias}))
        assert [r.level for r in results] == [CheckLevel.FAIL]

    def test_thin_overconfident_fails(self, checker):
        bias = make_bias(used=2, direction=Direction.NEUTRAL, confidence=0.6)
        assert checker.check_min_coverage(snapshot(biases={"EURUSD": bias}))

    def test_thin_neutral_passes(self, checker):
        bias = make_bias(used=2, direction=Direction.NEUTRAL, confidence=0.3)
        assert checker.check_min_coverage(snapshot(biases={"EURUSD": bias})) == []


class TestCorrelationChecks:
    """Test correlation sign, freshness and sample checks."""

    def test_positive_xxxusd_warns(self, checker):
        row = CorrelationResult("EURUSD", "DXY", "12m", 0.4, 252, AS_OF)
        results = checker.check_fx_correlation_signs(snapshot(correlations=[row]))
        assert results[0].level is CheckLevel.WARN
        assert "expected <= 0" in results[0].message

    def test_negative_usdxxx_warns(self, checker):
        row = CorrelationResult("USDJPY", "DXY", "12m", -0.4, 252, AS_OF)
        results = checker.check_fx_correlation_signs(snapshot(correlations=[row]))
        assert "expected >= 0" in results[0].message

    def test_expected_signs_pass(self, checker):
        rows = [
            CorrelationResult("EURUSD", "DXY", "12m", -0.9, 252, AS_OF),
            CorrelationResult("USDJPY", "DXY", "12m", 0.6, 252, AS_OF),
            CorrelationResult("EURGBP", "DXY", "12m", 0.3, 252, AS_OF),
        ]
        assert checker.check_fx_correlation_signs(snapshot(correlations=rows)) == []

    def test_old_row_warns(self, checker):
        row = CorrelationResult("EURUSD", "DXY", "12m", -0.9, 252, date(2024, 6, 20))
        results = checker.check_correlation_freshness(snapshot(correlations=[row]))
        assert "8 days old" in results[0].message

    def test_value_below_min_obs_warns(self, checker):
        row = CorrelationResult("EURUSD", "DXY", "12m", -0.9, 100, AS_OF)
        results = checker.check_min_observations(snapshot(correlations=[row]))
        assert "n = 100 < 150" in results[0].message

    def test_null_value_not_flagged(self, checker):
        row = CorrelationResult("EURUSD", "DXY", "12m", None, 100, AS_OF)
        assert checker.check_min_observations(snapshot(correlations=[row])) == []


class TestTableVsBias:
    """Test rendered row consistency."""

    def test_matching_row_passes(self, checker):
        bias = make_bias()
        snap = snapshot(biases={"EURUSD": bias}, rows=[row_from_bias(bias)])
        assert checker.check_table_vs_bias(snap) == []

    def test_action_drift_fails(self, checker):
        """A row whose action differs from the bias-derived action is one FAIL."""
        bias = make_bias(direction=Direction.SHORT, confidence=0.8)
        row = replace(row_from_bias(bias), action=ACTION_LONG)
        results = checker.check_table_vs_bias(snapshot(biases={"EURUSD": bias}, rows=[row]))

        assert len(results) == 1
        assert results[0].level is CheckLevel.FAIL
        assert results[0].name == "table_vs_bias"
        assert "EURUSD" in results[0].message
        assert "action" in results[0].message

    def test_orphan_row_fails(self, checker):
        row = row_from_bias(make_bias(symbol="GBPUSD"))
        results = checker.check_table_vs_bias(snapshot(rows=[row]))
        assert results[0].level is CheckLevel.FAIL


class TestFreshness:
    """Test per-driver staleness."""

    def test_daily_uses_business_days(self):
        # Friday → following Wednesday is 3 business days
        f = DriverFreshness("ecb", "EUR", Frequency.DAILY, date(2024, 6, 21))
        assert not is_stale(f, date(2024, 6, 26))
        assert is_stale(f, date(2024, 6, 27))

    def test_monthly(self):
        f = DriverFreshness("cpi", "USD", Frequency.MONTHLY, date(2024, 4, 1))
        assert not is_stale(f, date(2024, 5, 31))
        assert is_stale(f, date(2024, 6, 28))

    def test_missing_date_is_stale(self):
        assert is_stale(DriverFreshness("x", "USD", Frequency.MONTHLY, None), AS_OF)

    def test_warn_then_fail_above_share(self, checker):
        freshness = [
            DriverFreshness("cpi", "USD", Frequency.MONTHLY, date(2024, 1, 1)),
            DriverFreshness("ur", "USD", Frequency.MONTHLY, date(2024, 6, 1)),
            DriverFreshness("rs", "USD", Frequency.MONTHLY, date(2024, 6, 1)),
        ]
        results = checker.check_freshness_sla(snapshot(freshness=freshness))
        assert [r.level for r in results] == [CheckLevel.WARN, CheckLevel.FAIL]
        assert "USD: 1/3" in results[1].message

    def test_warn_only_below_share(self, checker):
        freshness = [DriverFreshness("cpi", "USD", Frequency.MONTHLY, date(2024, 1, 1))] + [
            DriverFreshness(f"k{i}", "USD", Frequency.MONTHLY, date(2024, 6, 1)) for i in range(4)
        ]
        results = checker.check_freshness_sla(snapshot(freshness=freshness))
        assert [r.level for r in results] == [CheckLevel.WARN]


class TestRun:
    """Test the full battery and report helpers."""

    def test_clean_snapshot_all_pass(self, checker):
        report = checker.run(snapshot())
        assert report.counts == {"PASS": len(checker.checks), "WARN": 0, "FAIL": 0}
        assert not report.has_failures
        report.raise_for_failures()

    def test_failure_reported_not_raised(self, checker):
        bias = make_bias(direction=Direction.SHORT)
        row = replace(row_from_bias(bias), action=ACTION_LONG)
        report = checker.run(snapshot(biases={"EURUSD": bias}, rows=[row]))

        assert report.has_failures
        assert report.by_name("table_vs_bias")[0].level is CheckLevel.FAIL
        with pytest.raises(InconsistentStateError, match="table_vs_bias"):
            report.raise_for_failures()

    def test_plausibility_warns_on_outliers(self, checker):
        report = checker.run(snapshot(outliers=2))
        assert report.by_name("plausibility")[0].level is CheckLevel.WARN
        assert report.outliers == 2

    def test_stale_drivers_listed(self, checker):
        freshness = [DriverFreshness("cpi", "USD", Frequency.MONTHLY, date(2024, 1, 1))]
        report = checker.run(snapshot(freshness=freshness))
        assert report.stale_drivers == ["cpi"]
        assert "Stale drivers: cpi" in report.format_report()

    def test_input_not_mutated(self, checker):
        bias = make_bias()
        snap = snapshot(biases={"EURUSD": bias}, rows=[row_from_bias(bias)])
        before = snap.biases.copy(), list(snap.rows)
        checker.run(snap)
        assert (snap.biases, snap.rows) == before

    def test_to_dict(self, checker):
        data = checker.run(snapshot()).to_dict()
        assert data["counts"]["FAIL"] == 0
        assert all(r["level"] == "PASS" for r in data["results"])
