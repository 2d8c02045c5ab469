"""
Analysis module for the breakout engine.

Provides series statistics, the technical indicator library and chart
pattern recognition over oldest-first OHLCV frames.
"""

from .indicators import (
    ATRResult,
    BollingerResult,
    FibonacciResult,
    IndicatorSnapshot,
    MACDResult,
    MFIResult,
    MovingAverageResult,
    OBVResult,
    RSIResult,
    SqueezeState,
    SupportResistance,
    TechnicalAnalyzer,
    VolumeResult,
)
from .patterns import (
    ConvergencePoint,
    Neckline,
    PatternAnalysis,
    PatternMatch,
    PatternRecognizer,
)
from .statistics import (
    RegressionLine,
    ema,
    ema_series,
    linear_regression,
    sma,
    sma_series,
    standard_deviation,
)

__all__ = [
    # Statistics
    "RegressionLine",
    "sma",
    "sma_series",
    "ema",
    "ema_series",
    "standard_deviation",
    "linear_regression",
    # Technical Indicators
    "TechnicalAnalyzer",
    "IndicatorSnapshot",
    "RSIResult",
    "MACDResult",
    "BollingerResult",
    "SqueezeState",
    "ATRResult",
    "MFIResult",
    "FibonacciResult",
    "MovingAverageResult",
    "OBVResult",
    "VolumeResult",
    "SupportResistance",
    # Patterns
    "PatternRecognizer",
    "PatternAnalysis",
    "PatternMatch",
    "ConvergencePoint",
    "Neckline",
]
