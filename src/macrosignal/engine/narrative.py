"""Deterministic narrative and rendered-row labels for a MacroBias.

Every string here is a pure function of a MacroBias's stored fields, so a
presentation layer can reproduce identical text without recomputation and
the quality checker can detect a row that drifted from its source.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from macrosignal.engine.bias import MacroBias

ACTION_RANGE = "Range/tactical"
ACTION_LONG = "Look for longs"
ACTION_SHORT = "Look for shorts"

TREND_LABELS = {
    "long": "Bullish",
    "short": "Bearish",
    "neutral": "Neutral",
}


class DriverLike(Protocol):
    key: str
    value: float
    weight: float
    detail: str


def confidence_bucket(confidence: float) -> str:
    """High (>= 0.7), Medium (>= 0.5) or Low."""
    if confidence >= 0.7:
        return "High"
    if confidence >= 0.5:
        return "Medium"
    return "Low"


def trend_for(direction: str) -> str:
    """Rendered trend label for a bias direction."""
    return TREND_LABELS[direction]


def action_for(direction: str, confidence: float, floor: float = 0.6) -> str:
    """Rendered action: range-trade unless directional with confidence >= floor."""
    if direction == "neutral" or confidence < floor:
        return ACTION_RANGE
    return ACTION_LONG if direction == "long" else ACTION_SHORT


def build_narrative(
    symbol: str,
    direction: str,
    confidence: float,
    drivers: Sequence[DriverLike],
) -> str:
    """Build the rationale text from the drivers actually used.

    Args:
        symbol: Instrument symbol
        direction: "long", "short" or "neutral"
        confidence: Bias confidence in [0, 1]
        drivers: Drivers in display order

    Returns:
        Single-paragraph narrative

    Example:
        >>> build_narrative("EURUSD", "neutral", 0.0, [])
        'EURUSD: insufficient data, no drivers available. Bias neutral, confidence 0.00.'
    """
    if not drivers:
        return (
            f"{symbol}: insufficient data, no drivers available. "
            f"Bias neutral, confidence {confidence:.2f}."
        )

    parts = []
    for d in drivers:
        part = f"{d.key} {d.value:+.2f} (w {d.weight:.2f})"
        if d.detail:
            part += f" [{d.detail}]"
        parts.append(part)

    return (
        f"{symbol}: {direction} bias, confidence {confidence:.2f} "
        f"({confidence_bucket(confidence)}). "
        f"Drivers: {'; '.join(parts)}."
    )


@dataclass(frozen=True)
class BiasRow:
    """One externally rendered bias table row."""

    symbol: str
    trend: str
    action: str
    confidence_label: str
    score: float
    narrative: str

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "trend": self.trend,
            "action": self.action,
            "confidence_label": self.confidence_label,
            "score": self.score,
            "narrative": self.narrative,
        }


def row_from_bias(bias: "MacroBias", action_floor: float = 0.6) -> BiasRow:
    """Render the table row a MacroBias must produce."""
    direction = bias.direction.value
    return BiasRow(
        symbol=bias.symbol,
        trend=trend_for(direction),
        action=action_for(direction, bias.confidence, action_floor),
        confidence_label=confidence_bucket(bias.confidence),
        score=bias.score,
        narrative=bias.narrative,
    )
