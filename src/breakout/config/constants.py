"""
Signal Engine Constants for the breakout engine.

This module defines the indicator periods, pattern thresholds, fusion weights
and stop-loss parameters used throughout the engine. They are empirical
constants carried over unchanged for behavioral compatibility; treat them as
tunable parameters, not calibrated statistical cutoffs.

All constants are immutable (Final) and serve as defaults for the
pydantic settings in ``breakout.config.settings``.
"""

from typing import Final


# =============================================================================
# Data Requirements
# =============================================================================

MIN_ANALYSIS_BARS: Final[int] = 50
"""
Minimum number of bars accepted by ``analyze()``.
Shorter series fail fast with InsufficientDataError.
"""


# =============================================================================
# Indicator Periods
# =============================================================================

RSI_PERIOD: Final[int] = 14
"""Lookback for the Relative Strength Index."""

RSI_OVERBOUGHT: Final[float] = 70.0
RSI_OVERSOLD: Final[float] = 30.0

MACD_FAST: Final[int] = 12
MACD_SLOW: Final[int] = 26
MACD_SIGNAL: Final[int] = 9

MACD_ZERO_TOLERANCE: Final[float] = 1e-9
"""
Histogram magnitudes below this fraction of price count as zero when voting.
Keeps rounding noise on flat series from producing a momentum vote.
"""

BOLLINGER_PERIOD: Final[int] = 20
BOLLINGER_STD_MULTIPLIER: Final[float] = 2.0

SQUEEZE_LOOKBACK: Final[int] = 20
"""
Number of prior bandwidth readings averaged for squeeze detection.
"""

SQUEEZE_RATIO: Final[float] = 0.5
"""
Squeeze is active when the current bandwidth is below this fraction
of the trailing average bandwidth.
"""

SQUEEZE_STRONG_PERCENTILE: Final[float] = 20.0
SQUEEZE_MODERATE_PERCENTILE: Final[float] = 40.0

VOLATILITY_LOOKBACK: Final[int] = 50
"""Bandwidth history length used for the volatility state."""

VOLATILITY_HIGH_RATIO: Final[float] = 1.5
VOLATILITY_LOW_RATIO: Final[float] = 0.5

ATR_PERIOD: Final[int] = 14

ATR_HIGH_RISK_PCT: Final[float] = 3.0
"""ATR above 3% of price marks HIGH risk."""

ATR_MEDIUM_RISK_PCT: Final[float] = 1.5
"""ATR above 1.5% of price marks MEDIUM risk."""

MFI_PERIOD: Final[int] = 14
MFI_OVERBOUGHT: Final[float] = 80.0
MFI_OVERSOLD: Final[float] = 20.0
MFI_ACCUMULATION: Final[float] = 60.0
MFI_DISTRIBUTION: Final[float] = 40.0

INSTITUTIONAL_VOLUME: Final[int] = 1_000_000
"""
Volume above which MFI extremes are read as institutional activity.
"""

FIBONACCI_RATIOS: Final[tuple[float, ...]] = (0.236, 0.382, 0.5, 0.618, 0.786)

EMA_TREND_PERIOD: Final[int] = 20
SMA_MEDIUM_PERIOD: Final[int] = 50
SMA_LONG_PERIOD: Final[int] = 200

OBV_MOMENTUM_LOOKBACK: Final[int] = 5


# =============================================================================
# Volume Analysis
# =============================================================================

VOLUME_AVERAGE_PERIOD: Final[int] = 20

VOLUME_STRONG_RATIO: Final[float] = 150.0
"""Relative volume (%) above which volume is STRONG."""

VOLUME_MODERATE_RATIO: Final[float] = 120.0
"""Relative volume (%) above which volume is MODERATE."""

VOLUME_INCREASING_RATIO: Final[float] = 110.0
VOLUME_DECREASING_RATIO: Final[float] = 90.0


# =============================================================================
# Support / Resistance
# =============================================================================

PIVOT_WINDOW: Final[int] = 10
LEVEL_CLUSTER_TOLERANCE: Final[float] = 0.02


# =============================================================================
# Pattern Recognition
# =============================================================================

MIN_PATTERN_BARS: Final[int] = 5
MAX_PATTERN_BARS: Final[int] = 30

PRICE_DEVIATION: Final[float] = 0.02
"""
Maximum (max-min)/min range of a consolidation (2%).
"""

POLE_FRACTION: Final[float] = 0.3
"""Fraction of the lookback window used as the flag/pennant pole."""

TREND_STRENGTH_THRESHOLD: Final[float] = 0.7
STRONG_MOVE_THRESHOLD: Final[float] = 0.10

CONVERGENCE_RATE_SCALE: Final[float] = 0.01
"""Slope gap (fraction of price per bar) that maps to full convergence quality."""

TRIANGLE_SLOPE_TOLERANCE: Final[float] = 0.001
"""Normalized slope below which a trendline counts as flat."""

HEAD_SHOULDER_MIN_RISE: Final[float] = 0.1
SHOULDER_SYMMETRY_THRESHOLD: Final[float] = 0.8
NECKLINE_MIN_R2: Final[float] = 0.7
TROUGH_SEARCH_BARS: Final[int] = 10

PRICE_ACTION_VOLATILITY_CAP: Final[float] = 0.02
"""Average absolute return that maps to full volatility in price-action scoring."""

FLAG_WEIGHTS: Final[dict[str, float]] = {
    "trend_strength": 0.3,
    "consolidation_quality": 0.3,
    "volume_pattern": 0.2,
}

PENNANT_WEIGHTS: Final[dict[str, float]] = {
    "trend_strength": 0.3,
    "convergence_quality": 0.3,
    "volume_pattern": 0.2,
}

TRIANGLE_WEIGHTS: Final[dict[str, float]] = {
    "trendline_quality": 0.3,
    "convergence_quality": 0.3,
    "price_action": 0.2,
}

HEAD_AND_SHOULDERS_WEIGHTS: Final[dict[str, float]] = {
    "shoulder_symmetry": 0.4,
    "neckline_quality": 0.3,
    "volume_pattern": 0.2,
}


# =============================================================================
# Breakout Fusion
# =============================================================================

FUSION_WEIGHTS: Final[dict[str, float]] = {
    "technical": 0.25,
    "momentum": 0.20,
    "volume": 0.15,
    "pattern": 0.25,
    "fibonacci": 0.15,
}
"""
Weight per signal source. Must sum to 1.0.
"""

DIRECTION_THRESHOLD: Final[float] = 0.2
"""Weighted score beyond +/-0.2 yields LONG/SHORT."""

MODERATE_VOLUME_VOTE: Final[float] = 0.5

MIN_PROBABILITY: Final[float] = 5.0
MAX_PROBABILITY: Final[float] = 95.0


# =============================================================================
# Stop-Loss Parameters
# =============================================================================

TIGHT_ATR_MULTIPLIER: Final[float] = 1.5
NORMAL_ATR_MULTIPLIER: Final[float] = 2.0
WIDE_ATR_MULTIPLIER: Final[float] = 3.0

SHORT_TERM_PERIOD: Final[int] = 5
MEDIUM_TERM_PERIOD: Final[int] = 10
LONG_TERM_PERIOD: Final[int] = 20

SUPPORT_BUFFER: Final[float] = 0.005
RESISTANCE_BUFFER: Final[float] = 0.005

HIGH_VOLATILITY_THRESHOLD: Final[float] = 0.03
"""ATR/price ratio at or above which the market is treated as highly volatile."""

LOW_VOLATILITY_THRESHOLD: Final[float] = 0.01
"""ATR/price ratio at or below which the market is treated as quiet."""

TRAILING_ACTIVATION_THRESHOLD: Final[float] = 0.02
TRAILING_STEP_SIZE: Final[float] = 0.005

HIGH_VOLATILITY_TRAILING_FACTOR: Final[float] = 1.5
LOW_VOLATILITY_TRAILING_FACTOR: Final[float] = 0.75

HIGH_PATTERN_CONFIDENCE: Final[float] = 0.7
"""Pattern confidence (0-1) above which the conservative tier is preferred."""

RECOMMENDED_STOP_WEIGHTS: Final[dict[str, float]] = {
    "ATR": 1.0,
    "Technical": 0.8,
    "Volatility": 0.6,
}

UPTREND_WEIGHT_FACTOR: Final[float] = 1.2
DOWNTREND_WEIGHT_FACTOR: Final[float] = 0.8


# =============================================================================
# Position Sizing
# =============================================================================

DEFAULT_CAPITAL: Final[float] = 100_000.0
DEFAULT_RISK_PERCENT: Final[float] = 1.0
MAX_RISK_PERCENT: Final[float] = 2.0

POSITION_SCALING: Final[dict[str, float]] = {
    "HIGH": 1.0,
    "MEDIUM": 0.75,
    "LOW": 0.5,
}

TREND_STRENGTH_CONFIRMATION: Final[float] = 0.6
LOW_VOLATILITY_CONFIRMATION: Final[float] = 0.02

DEFAULT_REWARD_MULTIPLE: Final[float] = 2.0
"""Target distance in multiples of risk when no level lies beyond price."""

TRAILING_ACTIVATION_BY_TIER: Final[dict[str, float]] = {
    "CONSERVATIVE": 0.02,
    "MODERATE": 0.015,
    "AGGRESSIVE": 0.01,
}


# =============================================================================
# Entry Analysis
# =============================================================================

ENTRY_LOOKBACK: Final[int] = 20
"""Bars used for dynamic levels and volume metrics."""

DYNAMIC_LEVEL_EMA_PERIOD: Final[int] = 5

ENTRY_VOLUME_CONSERVATIVE: Final[float] = 1.2
ENTRY_VOLUME_AGGRESSIVE: Final[float] = 1.5

ENTRY_PRICE_THRESHOLD: Final[float] = 0.02
"""Maximum distance (fraction) from support or from the breakout level."""

MIN_RR_CONSERVATIVE: Final[float] = 1.5
MIN_RR_AGGRESSIVE: Final[float] = 2.0

ENTRY_RSI_LOW: Final[float] = 40.0
ENTRY_RSI_HIGH: Final[float] = 60.0

ENTRY_STOP_FACTOR: Final[float] = 0.99
CONSERVATIVE_TARGET_FACTOR: Final[float] = 0.95
BREAKOUT_TARGET_FACTOR: Final[float] = 1.05

VOLUME_TREND_THRESHOLD: Final[float] = 0.1
"""Second-half over first-half volume change marking a volume trend."""

FIBONACCI_LEVEL_STRENGTH: Final[dict[str, str]] = {
    "0.236": "WEAK",
    "0.382": "MEDIUM",
    "0.5": "STRONG",
    "0.618": "STRONG",
    "0.786": "MEDIUM",
}
