"""Quality invariants: PASS/WARN/FAIL diagnostics over a combined snapshot.

The checker is stateless and never mutates its input. A FAIL means two code
paths disagree or coverage rules were broken; it is reported, not raised,
unless the consumer calls QualityReport.raise_for_failures().

Checks:
    usd_bias_fx_rule            XXX/USD direction agrees with the USD driver
    min_coverage                thin coverage ⇒ neutral and confidence <= 0.5      (FAIL)
    fx_correlation_signs        XXX/USD <= 0, USD/XXX >= 0 vs the benchmark
    correlation_freshness_sla   correlation rows not older than the SLA
    min_observations            non-null correlations meet their window minimum
    table_vs_bias               rendered rows equal their source bias                (FAIL)
    freshness_sla               per-driver staleness by frequency; >25% ⇒ FAIL
    plausibility                outliers removed by the transform guard
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Optional

import numpy as np

from macrosignal.catalog.indicators import Frequency
from macrosignal.catalog.instruments import Instrument
from macrosignal.engine.bias import Direction, DriverKind, MacroBias
from macrosignal.engine.correlation import DEFAULT_WINDOWS, CorrelationResult, CorrelationWindow
from macrosignal.engine.narrative import BiasRow, row_from_bias
from macrosignal.errors import InconsistentStateError

logger = logging.getLogger(__name__)


class CheckLevel(Enum):
    PASS = "PASS"
    WARN = "WARN"
    FAIL = "FAIL"


# Daily series are measured in business days, everything else in calendar days
STALENESS_SLA_DAYS = {
    Frequency.DAILY: 3,
    Frequency.WEEKLY: 10,
    Frequency.MONTHLY: 60,
    Frequency.QUARTERLY: 150,
    Frequency.ANNUAL: 548,
}


@dataclass(frozen=True)
class QualityInvariantResult:
    """One diagnostic line."""

    name: str
    level: CheckLevel
    message: str

    def __str__(self) -> str:
        return f"[{self.level.value}] {self.name}: {self.message}"

    def to_dict(self) -> dict:
        return {"name": self.name, "level": self.level.value, "message": self.message}


@dataclass(frozen=True)
class DriverFreshness:
    """Last observation date of one contributing indicator."""

    key: str
    currency: str
    frequency: Frequency
    last_date: Optional[date]


@dataclass
class QualitySnapshot:
    """Combined output checked by the QualityChecker.

    Attributes:
        as_of: Date the snapshot describes
        biases: Symbol → MacroBias
        instruments: Symbol → Instrument
        correlations: All correlation rows
        rows: Externally rendered bias rows
        freshness: Contributing indicator dates
        outliers: Values removed by the plausibility guard
        windows: Correlation windows (for minimum-sample checks)
    """

    as_of: date
    biases: dict[str, MacroBias] = field(default_factory=dict)
    instruments: dict[str, Instrument] = field(default_factory=dict)
    correlations: list[CorrelationResult] = field(default_factory=list)
    rows: list[BiasRow] = field(default_factory=list)
    freshness: list[DriverFreshness] = field(default_factory=list)
    outliers: int = 0
    windows: tuple[CorrelationWindow, ...] = DEFAULT_WINDOWS


@dataclass
class QualityReport:
    """Checker output."""

    results: list[QualityInvariantResult]
    stale_drivers: list[str]
    outliers: int

    @property
    def counts(self) -> dict[str, int]:
        """Results per level."""
        counts = {level.value: 0 for level in CheckLevel}
        for r in self.results:
            counts[r.level.value] += 1
        return counts

    @property
    def failures(self) -> list[QualityInvariantResult]:
        return [r for r in self.results if r.level is CheckLevel.FAIL]

    @property
    def has_failures(self) -> bool:
        return bool(self.failures)

    def by_name(self, name: str) -> list[QualityInvariantResult]:
        return [r for r in self.results if r.name == name]

    def raise_for_failures(self) -> None:
        """Raise InconsistentStateError if any check failed."""
        if self.has_failures:
            raise InconsistentStateError(self.failures)

    def format_report(self) -> str:
        counts = self.counts
        lines = [
            f"Quality: {counts['PASS']} PASS, {counts['WARN']} WARN, {counts['FAIL']} FAIL",
        ]
        lines.extend(f"  {r}" for r in self.results if r.level is not CheckLevel.PASS)
        if self.stale_drivers:
            lines.append(f"  Stale drivers: {', '.join(self.stale_drivers)}")
        return "\n".join(lines)

    def to_dict(self) -> dict:
        return {
            "results": [r.to_dict() for r in self.results],
            "stale_drivers": list(self.stale_drivers),
            "outliers": self.outliers,
            "counts": self.counts,
        }


def is_stale(freshness: DriverFreshness, as_of: date) -> bool:
    """True when the driver's last observation breaches its frequency SLA."""
    if freshness.last_date is None:
        return True
    limit = STALENESS_SLA_DAYS[freshness.frequency]
    if freshness.frequency is Frequency.DAILY:
        return int(np.busday_count(freshness.last_date, as_of)) > limit
    return (as_of - freshness.last_date).days > limit


class QualityChecker:
    """Stateless battery of quality invariants.

    Args:
        fx_rule_threshold: |usd_bias driver| above which it implies a direction
        fx_rule_confidence_floor: Below this confidence an fx-rule mismatch passes
        min_drivers: Coverage floor for min_coverage
        max_thin_confidence: Confidence cap under thin coverage
        fx_sign_tolerance: Slack on the FX correlation sign expectation
        correlation_max_age_days: Correlation row freshness SLA
        stale_share_fail: Stale share per currency that escalates to FAIL
        action_floor: Confidence floor used when rendering actions
    """

    def __init__(
        self,
        fx_rule_threshold: float = 0.2,
        fx_rule_confidence_floor: float = 0.6,
        min_drivers: int = 3,
        max_thin_confidence: float = 0.5,
        fx_sign_tolerance: float = 0.0,
        correlation_max_age_days: int = 3,
        stale_share_fail: float = 0.25,
        action_floor: float = 0.6,
    ) -> None:
        self.fx_rule_threshold = fx_rule_threshold
        self.fx_rule_confidence_floor = fx_rule_confidence_floor
        self.min_drivers = min_drivers
        self.max_thin_confidence = max_thin_confidence
        self.fx_sign_tolerance = fx_sign_tolerance
        self.correlation_max_age_days = correlation_max_age_days
        self.stale_share_fail = stale_share_fail
        self.action_floor = action_floor

        self.checks = (
            ("usd_bias_fx_rule", self.check_usd_bias_fx_rule),
            ("min_coverage", self.check_min_coverage),
            ("fx_correlation_signs", self.check_fx_correlation_signs),
            ("correlation_freshness_sla", self.check_correlation_freshness),
            ("min_observations", self.check_min_observations),
            ("table_vs_bias", self.check_table_vs_bias),
            ("freshness_sla", self.check_freshness_sla),
            ("plausibility", self.check_plausibility),
        )

    def check_usd_bias_fx_rule(self, snapshot: QualitySnapshot) -> list[QualityInvariantResult]:
        name = "usd_bias_fx_rule"
        results = []
        for symbol, bias in sorted(snapshot.biases.items()):
            instrument = snapshot.instruments.get(symbol)
            if instrument is None or not instrument.is_usd_quote:
                continue
            driver = bias.driver(DriverKind.USD_BIAS.value)
            if driver is None:
                continue
            if driver.value > self.fx_rule_threshold:
                expected = Direction.LONG
            elif driver.value < -self.fx_rule_threshold:
                expected = Direction.SHORT
            else:
                continue
            if bias.direction is expected:
                continue
            message = (
                f"{symbol}: USD driver {driver.value:+.2f} implies {expected.value}, "
                f"bias is {bias.direction.value} (confidence {bias.confidence:.2f})"
            )
            level = CheckLevel.PASS if bias.confidence < self.fx_rule_confidence_floor else CheckLevel.WARN
            results.append(QualityInvariantResult(name, level, message))
        return results

    def check_min_coverage(self, snapshot: QualitySnapshot) -> list[QualityInvariantResult]:
        results = []
        for symbol, bias in sorted(snapshot.biases.items()):
            if bias.meta.drivers_used >= self.min_drivers:
                continue
            if bias.direction is not Direction.NEUTRAL or bias.confidence > self.max_thin_confidence:
                results.append(QualityInvariantResult(
                    "min_coverage",
                    CheckLevel.FAIL,
                    f"{symbol}: {bias.meta.drivers_used} drivers < {self.min_drivers} but "
                    f"direction={bias.direction.value}, confidence={bias.confidence:.2f}",
                ))
        return results

    def check_fx_correlation_signs(self, snapshot: QualitySnapshot) -> list[QualityInvariantResult]:
        results = []
        tol = self.fx_sign_tolerance
        for row in snapshot.correlations:
            instrument = snapshot.instruments.get(row.symbol)
            if instrument is None or row.value is None:
                continue
            if instrument.is_usd_quote and row.value > tol:
                expected = "<= 0"
            elif instrument.is_usd_base and row.value < -tol:
                expected = ">= 0"
            else:
                continue
            results.append(QualityInvariantResult(
                "fx_correlation_signs",
                CheckLevel.WARN,
                f"{row.symbol} vs {row.benchmark} {row.window}: {row.value:+.2f}, expected {expected}",
            ))
        return results

    def check_correlation_freshness(self, snapshot: QualitySnapshot) -> list[QualityInvariantResult]:
        results = []
        for row in snapshot.correlations:
            age = (snapshot.as_of - row.as_of_date).days
            if age > self.correlation_max_age_days:
                results.append(QualityInvariantResult(
                    "correlation_freshness_sla",
                    CheckLevel.WARN,
                    f"{row.symbol} {row.window}: {age} days old > {self.correlation_max_age_days}",
                ))
        return results

    def check_min_observations(self, snapshot: QualitySnapshot) -> list[QualityInvariantResult]:
        min_obs = {w.label: w.min_obs for w in snapshot.windows}
        results = []
        for row in snapshot.correlations:
            required = min_obs.get(row.window)
            if row.value is None or required is None or row.n_observations >= required:
                continue
            results.append(QualityInvariantResult(
                "min_observations",
                CheckLevel.WARN,
                f"{row.symbol} {row.window}: n = {row.n_observations} < {required}",
            ))
        return results

    def check_table_vs_bias(self, snapshot: QualitySnapshot) -> list[QualityInvariantResult]:
        results = []
        for row in snapshot.rows:
            bias = snapshot.biases.get(row.symbol)
            if bias is None:
                results.append(QualityInvariantResult(
                    "table_vs_bias", CheckLevel.FAIL, f"{row.symbol}: rendered row has no source bias",
                ))
                continue
            expected = row_from_bias(bias, self.action_floor)
            if row == expected:
                continue
            fields = [
                f for f in ("trend", "action", "confidence_label", "score", "narrative")
                if getattr(row, f) != getattr(expected, f)
            ]
            results.append(QualityInvariantResult(
                "table_vs_bias",
                CheckLevel.FAIL,
                f"{row.symbol}: rendered row differs from bias in {', '.join(fields)}",
            ))
        return results

    def check_freshness_sla(self, snapshot: QualitySnapshot) -> list[QualityInvariantResult]:
        results = []
        by_currency: dict[str, list[DriverFreshness]] = {}
        for f in snapshot.freshness:
            by_currency.setdefault(f.currency, []).append(f)

        for currency in sorted(by_currency):
            drivers = by_currency[currency]
            stale = [f for f in drivers if is_stale(f, snapshot.as_of)]
            for f in stale:
                results.append(QualityInvariantResult(
                    "freshness_sla",
                    CheckLevel.WARN,
                    f"{currency} {f.key}: last observation {f.last_date} exceeds "
                    f"{f.frequency.value} SLA",
                ))
            share = len(stale) / len(drivers)
            if share > self.stale_share_fail:
                results.append(QualityInvariantResult(
                    "freshness_sla",
                    CheckLevel.FAIL,
                    f"{currency}: {len(stale)}/{len(drivers)} contributing drivers stale "
                    f"({share:.0%} > {self.stale_share_fail:.0%})",
                ))
        return results

    def check_plausibility(self, snapshot: QualitySnapshot) -> list[QualityInvariantResult]:
        if snapshot.outliers == 0:
            return []
        return [QualityInvariantResult(
            "plausibility",
            CheckLevel.WARN,
            f"{snapshot.outliers} implausible value(s) removed from indicator series",
        )]

    def run(self, snapshot: QualitySnapshot) -> QualityReport:
        """Run every check over a snapshot.

        A check that flags nothing contributes a single PASS line.

        Returns:
            QualityReport with results, stale driver keys and outlier count
        """
        results: list[QualityInvariantResult] = []
        for name, check in self.checks:
            found = check(snapshot)
            if found:
                results.extend(found)
            else:
                results.append(QualityInvariantResult(name, CheckLevel.PASS, "ok"))

        stale = sorted(f.key for f in snapshot.freshness if is_stale(f, snapshot.as_of))
        report = QualityReport(results=results, stale_drivers=stale, outliers=snapshot.outliers)

        counts = report.counts
        logger.info(
            "Quality checks: %d PASS, %d WARN, %d FAIL",
            counts["PASS"], counts["WARN"], counts["FAIL"],
        )
        for failure in report.failures:
            logger.warning("%s", failure)
        return report
