"""
Breakout Fusion Engine.

This module fuses the indicator snapshot and the pattern analysis into a
single explainable breakout signal. Five sources each cast a vote in
[-1, 1]:

1. Technical (25%): Bollinger band position
2. Momentum (20%): MACD histogram sign
3. Volume (15%): relative volume tier, signed by the latest close change
4. Pattern (25%): bias of the dominant chart pattern
5. Fibonacci (15%): role of the nearest retracement level

The weighted sum decides the direction; its magnitude becomes the breakout
probability. Every vote is kept in the result so a caller can see why a
signal fired.
"""

from dataclasses import dataclass, field
import math

from breakout.analysis.indicators import IndicatorSnapshot
from breakout.analysis.patterns import PatternAnalysis
from breakout.config import FusionSettings, get_settings
from breakout.config.constants import MACD_ZERO_TOLERANCE
from breakout.enums import (
    Direction,
    LevelType,
    PatternType,
    Timeframe,
    TrendSignal,
    VolumeStrength,
)
from breakout.utils import SerializableMixin, get_logger

logger = get_logger(__name__)

# Sources whose vote reflects the direction of the setup rather than participation
TREND_SOURCES = ("technical", "momentum", "pattern", "fibonacci")


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class SignalVote(SerializableMixin):
    """
    A single source's contribution to the fused score.

    Attributes:
        source: Source name (technical, momentum, volume, pattern, fibonacci)
        vote: Directional vote in [-1, 1]
        weight: Source weight
        contribution: vote * weight
        reason: Short description of the reading behind the vote
    """

    source: str
    vote: float
    weight: float
    contribution: float
    reason: str


@dataclass(frozen=True)
class BreakoutSignal(SerializableMixin):
    """
    Fused breakout signal.

    Attributes:
        direction: LONG, SHORT or NEUTRAL
        probability: Breakout probability (5-95)
        confidence: Probability adjusted by the dominant pattern (5-95)
        timeframe: Suggested holding timeframe
        weighted_score: Sum of weighted votes in [-1, 1]
        signals: Vote per source
        warnings: Sources whose inputs were degenerate and voted 0 instead
    """

    direction: Direction
    probability: float
    confidence: float
    timeframe: Timeframe
    weighted_score: float
    signals: dict[str, SignalVote] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_actionable(self) -> bool:
        return self.direction is not Direction.NEUTRAL

    def __repr__(self) -> str:
        """Human-readable signal summary."""
        return (
            f"BreakoutSignal({self.direction}, probability={self.probability:.1f}, "
            f"confidence={self.confidence:.1f}, timeframe={self.timeframe}, "
            f"score={self.weighted_score:+.3f})"
        )


# =============================================================================
# Helpers
# =============================================================================


def _trend_to_score(signal: TrendSignal) -> float:
    """Convert trend enum to numeric score."""
    if signal is TrendSignal.BULLISH:
        return 1.0
    elif signal is TrendSignal.BEARISH:
        return -1.0
    else:
        return 0.0


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


# =============================================================================
# Breakout Decision Engine
# =============================================================================


class BreakoutDecisionEngine:
    """
    Rule-based fusion of indicator and pattern readings.

    The engine is stateless apart from its frozen settings; ``evaluate`` never
    raises on a valid snapshot. Non-finite indicator values vote 0 and are
    listed in ``BreakoutSignal.warnings``.
    """

    def __init__(self, settings: FusionSettings | None = None):
        """
        Initialize decision engine.

        Args:
            settings: Fusion settings; defaults to the global settings
        """
        self.settings = settings or get_settings().fusion

    def evaluate(
        self,
        indicators: IndicatorSnapshot,
        patterns: PatternAnalysis,
    ) -> BreakoutSignal:
        """
        Fuse indicator and pattern readings into a breakout signal.

        Args:
            indicators: Indicator snapshot for the current bar
            patterns: Pattern analysis over the recent window

        Returns:
            BreakoutSignal with direction, probability, confidence and votes
        """
        warnings: list[str] = []
        weights = self.settings.weights

        raw_votes = {
            "technical": self._technical_vote(indicators, warnings),
            "momentum": self._momentum_vote(indicators, warnings),
            "volume": self._volume_vote(indicators, warnings),
            "pattern": self._pattern_vote(indicators, patterns),
            "fibonacci": self._fibonacci_vote(indicators, warnings),
        }

        signals = {
            source: SignalVote(
                source=source,
                vote=vote,
                weight=weights[source],
                contribution=vote * weights[source],
                reason=reason,
            )
            for source, (vote, reason) in raw_votes.items()
        }
        score = sum(v.contribution for v in signals.values())

        # =====================================================================
        # Direction, Probability, Confidence
        # =====================================================================

        threshold = self.settings.direction_threshold
        if score > threshold:
            direction = Direction.LONG
        elif score < -threshold:
            direction = Direction.SHORT
        else:
            direction = Direction.NEUTRAL

        low, high = self.settings.min_probability, self.settings.max_probability
        probability = _clamp(abs(score) * 100, low, high)

        confidence = probability
        if patterns.dominant is not None:
            confidence = probability * (1 + (patterns.dominant.confidence - 50) / 100)
        confidence = _clamp(confidence, low, high)

        # =====================================================================
        # Timeframe
        # =====================================================================

        if indicators.volume.strength is VolumeStrength.STRONG:
            timeframe = Timeframe.SHORT
        elif any(signals[source].vote != 0 for source in TREND_SOURCES):
            timeframe = Timeframe.MEDIUM
        else:
            timeframe = Timeframe.LONG

        signal = BreakoutSignal(
            direction=direction,
            probability=probability,
            confidence=confidence,
            timeframe=timeframe,
            weighted_score=score,
            signals=signals,
            warnings=warnings,
        )

        logger.info(
            "breakout_signal_generated",
            direction=direction.value,
            probability=round(probability, 2),
            confidence=round(confidence, 2),
            timeframe=timeframe.value,
            score=round(score, 4),
            votes={source: v.vote for source, v in signals.items()},
        )
        return signal

    # =========================================================================
    # Votes
    # =========================================================================

    def _degenerate(self, source: str, value: float, warnings: list[str]) -> bool:
        if math.isfinite(value):
            return False
        warnings.append(f"{source}: non-finite input {value!r} replaced by a neutral vote")
        logger.warning("degenerate_vote_substituted", source=source, value=str(value))
        return True

    def _technical_vote(
        self, indicators: IndicatorSnapshot, warnings: list[str]
    ) -> tuple[float, str]:
        bollinger = indicators.bollinger
        if self._degenerate("technical", bollinger.bandwidth, warnings):
            return 0.0, "bandwidth undefined"
        return float(bollinger.signal.sign), f"price {bollinger.position.value}"

    def _momentum_vote(
        self, indicators: IndicatorSnapshot, warnings: list[str]
    ) -> tuple[float, str]:
        histogram = indicators.macd.histogram
        if self._degenerate("momentum", histogram, warnings):
            return 0.0, "histogram undefined"
        if abs(histogram) <= MACD_ZERO_TOLERANCE * indicators.price:
            return 0.0, "histogram flat"
        if histogram > 0:
            return 1.0, "histogram positive"
        return -1.0, "histogram negative"

    def _volume_vote(
        self, indicators: IndicatorSnapshot, warnings: list[str]
    ) -> tuple[float, str]:
        volume = indicators.volume
        if self._degenerate("volume", volume.ratio, warnings):
            return 0.0, "relative volume undefined"

        if volume.strength is VolumeStrength.STRONG:
            tier = 1.0
        elif volume.strength is VolumeStrength.MODERATE:
            tier = self.settings.moderate_volume_vote
        else:
            tier = 0.0

        vote = tier * _trend_to_score(volume.price_direction)
        return vote, f"{volume.strength.value} volume ({volume.ratio:.0f}%) on {volume.price_direction.value} close"

    def _pattern_vote(
        self, indicators: IndicatorSnapshot, patterns: PatternAnalysis
    ) -> tuple[float, str]:
        dominant = patterns.dominant
        if dominant is None or dominant.pattern_type is None:
            return 0.0, "no pattern"

        pattern_type = dominant.pattern_type
        if pattern_type is PatternType.SYMMETRIC_TRIANGLE:
            # Symmetric triangles break in the direction of the prevailing trend
            trend = indicators.moving_averages.trend
            return _trend_to_score(trend), f"{pattern_type.value} with {trend.value} trend"
        return float(pattern_type.bias.sign), pattern_type.value

    def _fibonacci_vote(
        self, indicators: IndicatorSnapshot, warnings: list[str]
    ) -> tuple[float, str]:
        fibonacci = indicators.fibonacci
        if self._degenerate("fibonacci", fibonacci.nearest_level, warnings):
            return 0.0, "levels undefined"

        if fibonacci.nearest_type is LevelType.SUPPORT:
            vote = 1.0
        elif fibonacci.nearest_type is LevelType.RESISTANCE:
            vote = -1.0
        else:
            vote = 0.0
        return vote, f"{fibonacci.nearest_type.value} at {fibonacci.nearest_ratio}"
