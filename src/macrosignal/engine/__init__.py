"""Core engines for MACROSIGNAL.

Modules:
    - diagnosis: Indicator votes → currency regime + global regime
    - correlation: Rolling asset vs benchmark correlation + trend
    - bias: Driver set → per-symbol directional bias
    - narrative: Deterministic rationale + rendered row labels
    - surprise: Actual vs consensus → release + impact snapshot
    - quality: PASS/WARN/FAIL invariants over a combined snapshot
"""

from macrosignal.engine.diagnosis import (
    CurrencyScore,
    DiagnosisEngine,
    ExcludedIndicator,
    GlobalRegime,
    MacroDiagnosis,
    MacroQuadrant,
    RegimeLabel,
    UsdBias,
)
from macrosignal.engine.correlation import (
    CorrelationEngine,
    CorrelationResult,
    CorrelationTrend,
    CorrelationWindow,
    DEFAULT_WINDOWS,
    NullReason,
    classify_trend,
)
from macrosignal.engine.bias import (
    BiasContext,
    BiasDriver,
    BiasEngine,
    BiasMeta,
    DEFAULT_DRIVER_WEIGHTS,
    Direction,
    DriverKind,
    MacroBias,
    direction_from,
)
from macrosignal.engine.narrative import (
    BiasRow,
    build_narrative,
    row_from_bias,
)
from macrosignal.engine.surprise import (
    CurrencySnapshot,
    EconomicEvent,
    EconomicRelease,
    ImpactSnapshot,
    ReleaseOutcome,
    SurpriseDirection,
    SurpriseEngine,
    compute_surprise,
)
from macrosignal.engine.quality import (
    CheckLevel,
    DriverFreshness,
    QualityChecker,
    QualityInvariantResult,
    QualityReport,
    QualitySnapshot,
)

__all__ = [
    "CurrencyScore",
    "DiagnosisEngine",
    "ExcludedIndicator",
    "GlobalRegime",
    "MacroDiagnosis",
    "MacroQuadrant",
    "RegimeLabel",
    "UsdBias",
    "CorrelationEngine",
    "CorrelationResult",
    "CorrelationTrend",
    "CorrelationWindow",
    "DEFAULT_WINDOWS",
    "NullReason",
    "classify_trend",
    "BiasContext",
    "BiasDriver",
    "BiasEngine",
    "BiasMeta",
    "DEFAULT_DRIVER_WEIGHTS",
    "Direction",
    "DriverKind",
    "MacroBias",
    "direction_from",
    "BiasRow",
    "build_narrative",
    "row_from_bias",
    "CurrencySnapshot",
    "EconomicEvent",
    "EconomicRelease",
    "ImpactSnapshot",
    "ReleaseOutcome",
    "SurpriseDirection",
    "SurpriseEngine",
    "compute_surprise",
    "CheckLevel",
    "DriverFreshness",
    "QualityChecker",
    "QualityInvariantResult",
    "QualityReport",
    "QualitySnapshot",
]
