"""Indicator transform layer — raw observations → analysis values."""

from macrosignal.transforms.indicator import (
    IndicatorReading,
    TRANSFORMS,
    apply_plausibility,
    apply_transform,
    empty_series,
    latest_reading,
    to_series,
    transform_delta,
    transform_mom,
    transform_none,
    transform_qoq,
    transform_sma4,
    transform_yoy,
)

__all__ = [
    "IndicatorReading",
    "TRANSFORMS",
    "apply_plausibility",
    "apply_transform",
    "empty_series",
    "latest_reading",
    "to_series",
    "transform_delta",
    "transform_mom",
    "transform_none",
    "transform_qoq",
    "transform_sma4",
    "transform_yoy",
]
