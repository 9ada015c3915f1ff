"""Event surprise: actual vs consensus → standardized surprise + audit snapshot.

Formulas:
    surprise_raw   = actual - consensus
    surprise_pct   = surprise_raw / |consensus|                  (None if consensus is None or 0)
    surprise_score = clamp(surprise_pct / typical_surprise_pct, -1, 1)   (None if uncalibrated)

The typical surprise magnitude is a per-indicator calibration parameter;
there is no universal constant, and an uncalibrated indicator produces no
surprise_score.

Processing a release is idempotent per event: the first (event, actual)
observed creates one EconomicRelease and one ImpactSnapshot; later calls
return the stored pair unchanged.
"""

import logging
import math
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional, Protocol

from macrosignal.catalog.indicators import Directionality
from macrosignal.errors import DuplicateReleaseError

logger = logging.getLogger(__name__)


def _optional_float(value) -> Optional[float]:
    if value is None:
        return None
    value = float(value)
    return None if math.isnan(value) else value


def _as_datetime(value) -> datetime:
    """Parse an ISO timestamp (or pass a datetime through) as aware UTC."""
    parsed = value if isinstance(value, datetime) else datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class SurpriseDirection(Enum):
    """Whether a surprise is favorable to the event's currency."""

    POSITIVE = "positive"
    NEGATIVE = "negative"

    @property
    def sign(self) -> int:
        return 1 if self is SurpriseDirection.POSITIVE else -1


@dataclass(frozen=True)
class EconomicEvent:
    """Scheduled release metadata.

    Attributes:
        event_id: Natural identity of the event
        currency: Currency the release describes
        indicator_key: Catalog indicator the release updates
        scheduled_time: Scheduled release time (UTC)
        consensus: Consensus forecast (None if unavailable)
        previous: Previously published value
        directionality: Whether higher prints are positive for the currency
        name: Display name
        typical_surprise_pct: Per-event calibration override
        reference_period: Observation date the print reports (e.g. the first
            of the month for a monthly series), None if not known
    """

    event_id: str
    currency: str
    indicator_key: str
    scheduled_time: datetime
    consensus: Optional[float] = None
    previous: Optional[float] = None
    directionality: Directionality = Directionality.HIGHER_IS_POSITIVE
    name: str = ""
    typical_surprise_pct: Optional[float] = None
    reference_period: Optional[date] = None


@dataclass(frozen=True)
class Surprise:
    """Standardized surprise of one print."""

    raw: Optional[float]
    pct: Optional[float]
    score: Optional[float]
    direction: Optional[SurpriseDirection]


def compute_surprise(
    actual: float,
    consensus: Optional[float],
    directionality: Directionality,
    typical_surprise_pct: Optional[float] = None,
) -> Surprise:
    """Standardize actual vs consensus.

    Args:
        actual: Released value
        consensus: Consensus forecast (None if unavailable)
        directionality: Whether higher values are positive for the currency
        typical_surprise_pct: Typical |surprise_pct| for the indicator

    Returns:
        Surprise; direction is None when consensus is missing or the print
        matches consensus exactly

    Example:
        >>> s = compute_surprise(180, 150, Directionality.HIGHER_IS_POSITIVE, 0.25)
        >>> s.raw, s.pct, s.score, s.direction.value
        (30, 0.2, 0.8, 'positive')
    """
    if consensus is None:
        return Surprise(raw=None, pct=None, score=None, direction=None)

    raw = actual - consensus
    pct = raw / abs(consensus) if consensus != 0 else None

    score = None
    if pct is not None and typical_surprise_pct:
        score = max(-1.0, min(1.0, pct / typical_surprise_pct))

    direction = None
    if raw != 0:
        favorable = (raw > 0) == (directionality is Directionality.HIGHER_IS_POSITIVE)
        direction = SurpriseDirection.POSITIVE if favorable else SurpriseDirection.NEGATIVE

    return Surprise(raw=raw, pct=pct, score=score, direction=direction)


@dataclass(frozen=True)
class EconomicRelease:
    """Realized outcome of an EconomicEvent (at most one per event)."""

    release_id: str
    event_id: str
    currency: str
    indicator_key: str
    released_at: datetime
    actual: float
    previous: Optional[float]
    consensus: Optional[float]
    surprise_raw: Optional[float]
    surprise_pct: Optional[float]
    surprise_score: Optional[float]
    surprise_direction: Optional[SurpriseDirection]
    reference_period: Optional[date] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "release_id": self.release_id,
            "event_id": self.event_id,
            "currency": self.currency,
            "indicator_key": self.indicator_key,
            "released_at": self.released_at.isoformat(),
            "actual": self.actual,
            "previous": self.previous,
            "consensus": self.consensus,
            "surprise_raw": self.surprise_raw,
            "surprise_pct": self.surprise_pct,
            "surprise_score": self.surprise_score,
            "surprise_direction": self.surprise_direction.value if self.surprise_direction else None,
            "reference_period": self.reference_period.isoformat() if self.reference_period else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "EconomicRelease":
        """Rebuild a release from its to_dict() form."""
        direction = data.get("surprise_direction")
        period = data.get("reference_period")
        return cls(
            release_id=data["release_id"],
            event_id=data["event_id"],
            currency=data["currency"],
            indicator_key=data["indicator_key"],
            released_at=_as_datetime(data["released_at"]),
            actual=float(data["actual"]),
            previous=_optional_float(data.get("previous")),
            consensus=_optional_float(data.get("consensus")),
            surprise_raw=_optional_float(data.get("surprise_raw")),
            surprise_pct=_optional_float(data.get("surprise_pct")),
            surprise_score=_optional_float(data.get("surprise_score")),
            surprise_direction=SurpriseDirection(direction) if isinstance(direction, str) else None,
            reference_period=date.fromisoformat(period) if isinstance(period, str) else None,
        )


@dataclass(frozen=True)
class CurrencySnapshot:
    """Point-in-time view of one currency's diagnosis."""

    score: Optional[float]
    regime: str
    usd_direction: str


@dataclass(frozen=True)
class ImpactSnapshot:
    """Before/after audit of the rerun triggered by a release."""

    release_id: str
    currency: str
    score_before: Optional[float]
    score_after: Optional[float]
    regime_before: str
    regime_after: str
    usd_direction_before: str
    usd_direction_after: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def regime_changed(self) -> bool:
        return self.regime_before != self.regime_after

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "release_id": self.release_id,
            "currency": self.currency,
            "score_before": self.score_before,
            "score_after": self.score_after,
            "regime_before": self.regime_before,
            "regime_after": self.regime_after,
            "usd_direction_before": self.usd_direction_before,
            "usd_direction_after": self.usd_direction_after,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ImpactSnapshot":
        """Rebuild a snapshot from its to_dict() form."""
        return cls(
            release_id=data["release_id"],
            currency=data["currency"],
            score_before=_optional_float(data.get("score_before")),
            score_after=_optional_float(data.get("score_after")),
            regime_before=data["regime_before"],
            regime_after=data["regime_after"],
            usd_direction_before=data["usd_direction_before"],
            usd_direction_after=data["usd_direction_after"],
            created_at=_as_datetime(data["created_at"]),
        )


@dataclass(frozen=True)
class ReleaseOutcome:
    """Result of processing one (event, actual) observation."""

    release: EconomicRelease
    impact: Optional[ImpactSnapshot]
    created: bool


class ReleaseLedger(Protocol):
    """Append-only storage for releases and their impact snapshots."""

    def get_release(self, event_id: str) -> Optional[EconomicRelease]: ...

    def add_release(self, release: EconomicRelease) -> None: ...

    def get_impact(self, release_id: str) -> Optional[ImpactSnapshot]: ...

    def add_impact(self, impact: ImpactSnapshot) -> None: ...


def release_id_for(event_id: str) -> str:
    """Deterministic release identity (one release per event)."""
    return f"{event_id}:release"


class SurpriseEngine:
    """Turns observed prints into releases and before/after audit snapshots.

    The engine triggers, but does not perform, the Diagnosis+Bias rerun:
    `rerun` is supplied by the pipeline, `snapshot` reads the current
    diagnosis of a currency.

    Args:
        ledger: Release/impact storage (idempotent per event)
        snapshot: Callable currency → CurrencySnapshot
        rerun: Async callable invoked with the new release
        calibration: Indicator key → typical surprise pct
    """

    def __init__(
        self,
        ledger: ReleaseLedger,
        snapshot: Callable[[str], CurrencySnapshot],
        rerun: Callable[[EconomicRelease], Awaitable[None]],
        calibration: Optional[dict[str, float]] = None,
    ) -> None:
        self.ledger = ledger
        self.snapshot = snapshot
        self.rerun = rerun
        self.calibration = dict(calibration or {})

    def typical_surprise_for(self, event: EconomicEvent) -> Optional[float]:
        """Per-event override, else the indicator's calibration, else None."""
        if event.typical_surprise_pct is not None:
            return event.typical_surprise_pct
        return self.calibration.get(event.indicator_key)

    def build_release(
        self,
        event: EconomicEvent,
        actual: float,
        released_at: Optional[datetime] = None,
    ) -> EconomicRelease:
        """Build (but do not store) the release for an observed print."""
        surprise = compute_surprise(
            actual,
            event.consensus,
            event.directionality,
            self.typical_surprise_for(event),
        )
        return EconomicRelease(
            release_id=release_id_for(event.event_id),
            event_id=event.event_id,
            currency=event.currency,
            indicator_key=event.indicator_key,
            released_at=released_at or datetime.now(timezone.utc),
            actual=actual,
            previous=event.previous,
            consensus=event.consensus,
            surprise_raw=surprise.raw,
            surprise_pct=surprise.pct,
            surprise_score=surprise.score,
            surprise_direction=surprise.direction,
            reference_period=event.reference_period,
        )

    def _existing(self, event: EconomicEvent, actual: float) -> Optional[ReleaseOutcome]:
        existing = self.ledger.get_release(event.event_id)
        if existing is None:
            return None
        if existing.actual != actual:
            logger.warning(
                "Event %s already released with actual=%s; ignoring actual=%s",
                event.event_id, existing.actual, actual,
            )
        return ReleaseOutcome(
            release=existing,
            impact=self.ledger.get_impact(existing.release_id),
            created=False,
        )

    async def process(
        self,
        event: EconomicEvent,
        actual: float,
        released_at: Optional[datetime] = None,
    ) -> ReleaseOutcome:
        """Record a release and audit the rerun it triggers.

        Order: snapshot before → store release → rerun → snapshot after →
        store ImpactSnapshot.

        Args:
            event: Scheduled event metadata
            actual: Observed value
            released_at: Release time (default: now, UTC)

        Returns:
            ReleaseOutcome; created is False when the event was already released
        """
        outcome = self._existing(event, actual)
        if outcome is not None:
            return outcome

        release = self.build_release(event, actual, released_at)
        before = self.snapshot(event.currency)

        try:
            self.ledger.add_release(release)
        except DuplicateReleaseError:
            # Recorded concurrently
            return self._existing(event, actual)

        logger.info(
            "Release %s (%s): actual=%s consensus=%s surprise=%s",
            release.release_id, event.currency, actual, event.consensus,
            release.surprise_direction.value if release.surprise_direction else "n/a",
        )

        await self.rerun(release)
        after = self.snapshot(event.currency)

        impact = ImpactSnapshot(
            release_id=release.release_id,
            currency=event.currency,
            score_before=before.score,
            score_after=after.score,
            regime_before=before.regime,
            regime_after=after.regime,
            usd_direction_before=before.usd_direction,
            usd_direction_after=after.usd_direction,
        )
        self.ledger.add_impact(impact)

        if impact.regime_changed:
            logger.info(
                "%s regime %s → %s after %s",
                event.currency, impact.regime_before, impact.regime_after, event.event_id,
            )
        return ReleaseOutcome(release=release, impact=impact, created=True)
