"""Closed vocabularies shared by the indicator, pattern, fusion and risk layers."""

from enum import Enum


class Direction(Enum):
    """Trade direction of a fused breakout signal."""

    LONG = "LONG"
    SHORT = "SHORT"
    NEUTRAL = "NEUTRAL"

    @property
    def sign(self) -> int:
        return {Direction.LONG: 1, Direction.SHORT: -1, Direction.NEUTRAL: 0}[self]

    def __str__(self) -> str:
        return self.value


class Timeframe(Enum):
    """Suggested holding timeframe."""

    SHORT = "SHORT"
    MEDIUM = "MEDIUM"
    LONG = "LONG"

    def __str__(self) -> str:
        return self.value


class TrendSignal(Enum):
    """Directional reading of a single indicator."""

    BULLISH = "BULLISH"
    BEARISH = "BEARISH"
    NEUTRAL = "NEUTRAL"

    def __str__(self) -> str:
        return self.value


class RiskLevel(Enum):
    """ATR-based risk classification."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class VolumeStrength(Enum):
    """Relative volume tier against the 20-bar average."""

    STRONG = "STRONG"
    MODERATE = "MODERATE"
    WEAK = "WEAK"


class VolumeTrend(Enum):
    INCREASING = "INCREASING"
    DECREASING = "DECREASING"
    NEUTRAL = "NEUTRAL"


class VolatilityState(Enum):
    """Bollinger bandwidth relative to its own history."""

    HIGH = "HIGH"
    NORMAL = "NORMAL"
    LOW = "LOW"


class SqueezeIntensity(Enum):
    STRONG = "STRONG"
    MODERATE = "MODERATE"
    NONE = "NONE"


class BandPosition(Enum):
    """Close relative to the Bollinger bands."""

    ABOVE_BANDS = "ABOVE_BANDS"
    BELOW_BANDS = "BELOW_BANDS"
    ABOVE_MIDDLE = "ABOVE_MIDDLE"
    BELOW_MIDDLE = "BELOW_MIDDLE"
    AT_MIDDLE = "AT_MIDDLE"


class OscillatorSignal(Enum):
    """Overbought/oversold reading of RSI or MFI."""

    OVERBOUGHT = "OVERBOUGHT"
    OVERSOLD = "OVERSOLD"
    NEUTRAL = "NEUTRAL"


class InstitutionalActivity(Enum):
    ACCUMULATION = "ACCUMULATION"
    DISTRIBUTION = "DISTRIBUTION"
    NEUTRAL = "NEUTRAL"


class LevelType(Enum):
    """Role of a price level relative to the current close."""

    SUPPORT = "SUPPORT"
    RESISTANCE = "RESISTANCE"
    NEUTRAL = "NEUTRAL"


class OBVTrend(Enum):
    RISING = "RISING"
    FALLING = "FALLING"
    FLAT = "FLAT"


class PatternType(Enum):
    """Chart formations recognized by the pattern engine."""

    BULL_FLAG = "BULL_FLAG"
    BEAR_FLAG = "BEAR_FLAG"
    BULL_PENNANT = "BULL_PENNANT"
    BEAR_PENNANT = "BEAR_PENNANT"
    SYMMETRIC_TRIANGLE = "SYMMETRIC_TRIANGLE"
    ASCENDING_TRIANGLE = "ASCENDING_TRIANGLE"
    DESCENDING_TRIANGLE = "DESCENDING_TRIANGLE"
    EXPANDING_TRIANGLE = "EXPANDING_TRIANGLE"
    HEAD_AND_SHOULDERS = "HEAD_AND_SHOULDERS"

    @property
    def bias(self) -> Direction:
        """Directional implication; NEUTRAL types need outside context."""
        if self in _BULLISH_PATTERNS:
            return Direction.LONG
        if self in _BEARISH_PATTERNS:
            return Direction.SHORT
        return Direction.NEUTRAL

    def __str__(self) -> str:
        return self.value


_BULLISH_PATTERNS = frozenset(
    {PatternType.BULL_FLAG, PatternType.BULL_PENNANT, PatternType.ASCENDING_TRIANGLE}
)
_BEARISH_PATTERNS = frozenset(
    {
        PatternType.BEAR_FLAG,
        PatternType.BEAR_PENNANT,
        PatternType.DESCENDING_TRIANGLE,
        PatternType.HEAD_AND_SHOULDERS,
    }
)


class StopTier(Enum):
    """Stop-loss aggressiveness tier."""

    CONSERVATIVE = "CONSERVATIVE"
    MODERATE = "MODERATE"
    AGGRESSIVE = "AGGRESSIVE"


class TradeConfidence(Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class EntryStyle(Enum):
    """Entry approach: buy near support or buy the breakout."""

    CONSERVATIVE = "CONSERVATIVE"
    AGGRESSIVE = "AGGRESSIVE"


class LevelStrength(Enum):
    STRONG = "STRONG"
    MEDIUM = "MEDIUM"
    WEAK = "WEAK"
