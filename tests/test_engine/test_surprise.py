"""Tests for event surprise processing.

Test Coverage:
    - Surprise formulas and directionality
    - Per-indicator calibration (uncalibrated → no score)
    - Before snapshot captured strictly before the rerun
    - Idempotence per event
"""

from datetime import date, datetime, timezone

import pytest

from macrosignal.catalog.indicators import Directionality
from macrosignal.engine.surprise import (
    CurrencySnapshot,
    EconomicEvent,
    SurpriseDirection,
    SurpriseEngine,
    compute_surprise,
    release_id_for,
)
from macrosignal.store.results import ResultStore

RELEASED_AT = datetime(2024, 6, 7, 12, 30, tzinfo=timezone.utc)


def nfp_event(**overrides) -> EconomicEvent:
    params = dict(
        event_id="US-NFP-2024-06",
        currency="USD",
        indicator_key="payrolls",
        scheduled_time=RELEASED_AT,
        consensus=150.0,
        previous=160.0,
        directionality=Directionality.HIGHER_IS_POSITIVE,
        name="Nonfarm payrolls",
    )
    params.update(overrides)
    return EconomicEvent(**params)


class FakeDiagnosis:
    """Mutable stand-in for the pipeline's diagnosis state."""

    def __init__(self) -> None:
        self.score = -0.1
        self.regime = "Neutral"
        self.calls: list[str] = []

    def snapshot(self, currency: str) -> CurrencySnapshot:
        self.calls.append("snapshot")
        return CurrencySnapshot(score=self.score, regime=self.regime, usd_direction="Neutral")

    async def rerun(self, release) -> None:
        self.calls.append("rerun")
        self.score = 0.4
        self.regime = "Hawkish"


@pytest.fixture
def state() -> FakeDiagnosis:
    return FakeDiagnosis()


@pytest.fixture
def engine(state) -> SurpriseEngine:
    return SurpriseEngine(
        ledger=ResultStore(),
        snapshot=state.snapshot,
        rerun=state.rerun,
        calibration={"payrolls": 0.25},
    )


class TestComputeSurprise:
    """Test the standardized surprise."""

    def test_positive_surprise(self):
        """NFP 180k vs 150k consensus is a positive surprise."""
        s = compute_surprise(180.0, 150.0, Directionality.HIGHER_IS_POSITIVE, 0.25)
        assert s.raw == 30.0
        assert s.pct == pytest.approx(0.2)
        assert s.score == pytest.approx(0.8)
        assert s.direction is SurpriseDirection.POSITIVE

    def test_lower_is_positive_flips_direction(self):
        s = compute_surprise(3.7, 3.9, Directionality.LOWER_IS_POSITIVE, 0.03)
        assert s.raw == pytest.approx(-0.2)
        assert s.direction is SurpriseDirection.POSITIVE

    def test_score_clamped(self):
        s = compute_surprise(300.0, 150.0, Directionality.HIGHER_IS_POSITIVE, 0.25)
        assert s.score == 1.0

    def test_uncalibrated_has_no_score(self):
        """Without a typical surprise magnitude there is no standardized score."""
        s = compute_surprise(180.0, 150.0, Directionality.HIGHER_IS_POSITIVE, None)
        assert s.raw == 30.0
        assert s.score is None
        assert s.direction is SurpriseDirection.POSITIVE

    def test_missing_consensus(self):
        s = compute_surprise(180.0, None, Directionality.HIGHER_IS_POSITIVE, 0.25)
        assert s.raw is None
        assert s.pct is None
        assert s.score is None
        assert s.direction is None

    def test_zero_consensus_has_no_pct(self):
        s = compute_surprise(0.1, 0.0, Directionality.HIGHER_IS_POSITIVE, 0.25)
        assert s.raw == pytest.approx(0.1)
        assert s.pct is None
        assert s.score is None

    def test_in_line_has_no_direction(self):
        s = compute_surprise(150.0, 150.0, Directionality.HIGHER_IS_POSITIVE, 0.25)
        assert s.raw == 0.0
        assert s.direction is None


class TestCalibration:
    """Test calibration lookup."""

    def test_event_override_wins(self, engine):
        assert engine.typical_surprise_for(nfp_event(typical_surprise_pct=0.1)) == 0.1

    def test_indicator_calibration(self, engine):
        assert engine.typical_surprise_for(nfp_event()) == 0.25

    def test_unknown_indicator(self, engine):
        assert engine.typical_surprise_for(nfp_event(indicator_key="unknown")) is None


class TestProcess:
    """Test release processing."""

    @pytest.mark.asyncio
    async def test_creates_release_and_impact(self, engine, state):
        outcome = await engine.process(nfp_event(), 180.0, RELEASED_AT)

        assert outcome.created
        release = outcome.release
        assert release.release_id == release_id_for("US-NFP-2024-06")
        assert release.surprise_raw == 30.0
        assert release.surprise_direction is SurpriseDirection.POSITIVE
        assert release.released_at == RELEASED_AT

        impact = outcome.impact
        assert impact.release_id == release.release_id
        assert impact.score_before == -0.1
        assert impact.score_after == 0.4
        assert impact.regime_before == "Neutral"
        assert impact.regime_after == "Hawkish"
        assert impact.regime_changed

    @pytest.mark.asyncio
    async def test_release_carries_reference_period(self, engine):
        outcome = await engine.process(nfp_event(reference_period=date(2024, 5, 1)), 180.0, RELEASED_AT)
        assert outcome.release.reference_period == date(2024, 5, 1)
        assert outcome.release.to_dict()["reference_period"] == "2024-05-01"

    @pytest.mark.asyncio
    async def test_before_snapshot_precedes_rerun(self, engine, state):
        await engine.process(nfp_event(), 180.0, RELEASED_AT)
        assert state.calls == ["snapshot", "rerun", "snapshot"]

    @pytest.mark.asyncio
    async def test_idempotent_per_event(self, engine, state):
        """A second observation of the same event returns the stored pair."""
        first = await engine.process(nfp_event(), 180.0, RELEASED_AT)
        second = await engine.process(nfp_event(), 180.0, RELEASED_AT)

        assert not second.created
        assert second.release == first.release
        assert second.impact == first.impact
        assert state.calls.count("rerun") == 1
        assert len(engine.ledger.releases()) == 1
        assert len(engine.ledger.impacts()) == 1

    @pytest.mark.asyncio
    async def test_different_actual_ignored(self, engine, state):
        await engine.process(nfp_event(), 180.0, RELEASED_AT)
        again = await engine.process(nfp_event(), 200.0, RELEASED_AT)
        assert again.release.actual == 180.0
        assert state.calls.count("rerun") == 1

    @pytest.mark.asyncio
    async def test_uncalibrated_release_has_no_score(self, state):
        engine = SurpriseEngine(ResultStore(), state.snapshot, state.rerun, calibration={})
        outcome = await engine.process(nfp_event(), 180.0, RELEASED_AT)
        assert outcome.release.surprise_score is None
        assert outcome.release.surprise_raw == 30.0
