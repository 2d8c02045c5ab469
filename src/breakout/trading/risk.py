"""
Stop-Loss and Risk Management for the breakout engine.

This module turns a breakout signal into protective levels and a sized
trade plan:

Stop methodologies:
- ATR multiples (tight 1.5x, normal 2x, wide 3x)
- Time-based extremes over 5/10/20 bars
- Technical levels (nearest support/resistance with a 0.5% buffer)
- Historical volatility of log returns
- Pattern-specific ATR multiples gated by pattern confidence

Each tier (conservative, moderate, aggressive) takes the widest of its
candidates; market conditions select the optimal tier. Position sizing risks
a fixed fraction of capital against the stop distance, scaled by trade
confidence.

All prices are derived for the signal direction: stops sit below the entry
for LONG and above it for SHORT. NEUTRAL signals use LONG geometry and are
flagged as not actionable in the trade plan.
"""

from dataclasses import dataclass, field
import math

import numpy as np
import pandas as pd

from breakout.analysis.indicators import IndicatorSnapshot
from breakout.analysis.patterns import PatternAnalysis
from breakout.config import RiskSettings, get_settings
from breakout.config.constants import (
    DEFAULT_REWARD_MULTIPLE,
    DOWNTREND_WEIGHT_FACTOR,
    HIGH_VOLATILITY_TRAILING_FACTOR,
    LOW_VOLATILITY_CONFIRMATION,
    LOW_VOLATILITY_TRAILING_FACTOR,
    POSITION_SCALING,
    RECOMMENDED_STOP_WEIGHTS,
    TRAILING_ACTIVATION_BY_TIER,
    TREND_STRENGTH_CONFIRMATION,
    UPTREND_WEIGHT_FACTOR,
)
from breakout.enums import (
    Direction,
    PatternType,
    RiskLevel,
    StopTier,
    TradeConfidence,
    TrendSignal,
    VolumeStrength,
)
from breakout.trading.decision_engine import BreakoutSignal
from breakout.utils import SerializableMixin, get_logger

logger = get_logger(__name__)


# (ATR multiplier, confidence threshold on a 0-1 scale)
PATTERN_STOP_RULES: dict[PatternType, tuple[float, float]] = {
    PatternType.HEAD_AND_SHOULDERS: (1.5, 0.7),
    PatternType.SYMMETRIC_TRIANGLE: (1.75, 0.65),
    PatternType.ASCENDING_TRIANGLE: (1.75, 0.65),
    PatternType.DESCENDING_TRIANGLE: (1.75, 0.65),
    PatternType.EXPANDING_TRIANGLE: (1.75, 0.65),
    PatternType.BULL_FLAG: (1.5, 0.6),
    PatternType.BEAR_FLAG: (1.5, 0.6),
    PatternType.BULL_PENNANT: (1.5, 0.6),
    PatternType.BEAR_PENNANT: (1.5, 0.6),
}

TIER_TIMEFRAMES: dict[StopTier, str] = {
    StopTier.CONSERVATIVE: "LONG_TERM",
    StopTier.MODERATE: "MEDIUM_TERM",
    StopTier.AGGRESSIVE: "SHORT_TERM",
}


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class StopLossLevel(SerializableMixin):
    """
    A candidate stop price.

    Attributes:
        price: Stop price
        distance: Absolute distance from the entry
        percentage: Distance as % of the entry
        source: Methodology that produced the level
    """

    price: float
    distance: float
    percentage: float
    source: str


@dataclass(frozen=True)
class VolatilityStop(SerializableMixin):
    stop: StopLossLevel
    volatility: float
    level: RiskLevel


@dataclass(frozen=True)
class TierStop(SerializableMixin):
    """Widest stop among a tier's candidates."""

    tier: StopTier
    stop: StopLossLevel | None
    timeframe: str
    candidates: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class OptimalStop(SerializableMixin):
    tier: StopTier
    stop: StopLossLevel | None
    timeframe: str
    reason: str


@dataclass(frozen=True)
class RecommendedStop(SerializableMixin):
    price: float
    source: str
    weight: float


@dataclass(frozen=True)
class TrailingStop(SerializableMixin):
    """
    Trailing stop parameters.

    Attributes:
        distance: Trail distance in price units
        activation_threshold: Profit fraction that arms the trail
        step_size: Minimum move (fraction) before the trail is raised
        adjustment_factors: Volatility and pattern factors applied
    """

    distance: float
    activation_threshold: float
    step_size: float
    adjustment_factors: dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class StopLossAnalysis(SerializableMixin):
    """All stop methodologies, tiers and the selected levels."""

    direction: Direction
    entry: float
    atr: dict[str, StopLossLevel]
    time_based: dict[str, StopLossLevel | None]
    technical: dict[str, StopLossLevel | None]
    volatility: VolatilityStop
    pattern: StopLossLevel | None
    tiers: dict[str, TierStop]
    optimal: OptimalStop
    recommended: RecommendedStop | None
    trailing: TrailingStop


@dataclass(frozen=True)
class RiskMetrics(SerializableMixin):
    capital_at_risk: float
    max_position_value: float
    stop_distance_percent: float


@dataclass(frozen=True)
class TradePlan(SerializableMixin):
    """
    Sized trade plan derived from a breakout signal.

    Attributes:
        direction: Trade direction (NEUTRAL plans use LONG geometry)
        actionable: False for NEUTRAL signals
        entry: Entry price (latest close)
        stop: Stop price from the optimal tier
        target: Nearest level beyond price, or entry +/- 2R
        position_size: Units to trade
        risk_reward: Reward per unit of risk
        max_risk: Loss at the stop for the full position
        confidence: Trade confidence tier driving the size multiplier
        risk_metrics: Capital at risk, position value and stop distance
        trailing_activations: Price arming the trail, per tier
    """

    direction: Direction
    actionable: bool
    entry: float
    stop: float
    target: float
    position_size: int
    risk_reward: float
    max_risk: float
    confidence: TradeConfidence
    risk_metrics: RiskMetrics
    trailing_activations: dict[str, float] = field(default_factory=dict)


# =============================================================================
# Stop-Loss Calculator
# =============================================================================


class StopLossCalculator:
    """
    Stop-loss level calculator.

    Handles:
    - ATR, time, technical, volatility and pattern stops
    - Tier selection (widest candidate per tier)
    - Optimal tier and recommended stop
    - Trailing stop parameters
    """

    def __init__(self, settings: RiskSettings | None = None):
        self.settings = settings or get_settings().risk

    def calculate(
        self,
        frame: pd.DataFrame,
        indicators: IndicatorSnapshot,
        patterns: PatternAnalysis,
        direction: Direction = Direction.LONG,
    ) -> StopLossAnalysis:
        """
        Calculate every stop methodology for the current bar.

        Args:
            frame: Oldest-first OHLCV frame
            indicators: Indicator snapshot for the current bar
            patterns: Pattern analysis
            direction: Signal direction; NEUTRAL uses LONG geometry

        Returns:
            StopLossAnalysis with candidates, tiers and selected levels
        """
        is_short = direction is Direction.SHORT
        entry = indicators.price
        atr = indicators.atr.value

        atr_stops = self.atr_stops(entry, atr, is_short)
        time_stops = self.time_stops(frame, entry, is_short)
        technical = self.technical_stops(entry, indicators)
        volatility = self.volatility_stop(frame, entry, is_short)
        pattern = self.pattern_stop(entry, atr, patterns, is_short)

        protective = technical["resistance"] if is_short else technical["support"]
        tier_candidates = {
            StopTier.CONSERVATIVE: [atr_stops.get("wide"), time_stops["long"], protective],
            StopTier.MODERATE: [atr_stops.get("normal"), time_stops["medium"], pattern],
            StopTier.AGGRESSIVE: [atr_stops.get("tight"), time_stops["short"]],
        }
        tiers = {
            tier.value: self._tier(tier, candidates, is_short)
            for tier, candidates in tier_candidates.items()
        }

        optimal = self.optimal_tier(entry, atr, patterns, tiers)
        recommended = self.recommended_stop(
            atr_stops.get("normal"), protective, volatility.stop, indicators.moving_averages.trend
        )
        trailing = self.trailing_stop(entry, atr, patterns)

        logger.debug(
            "stop_loss_calculated",
            direction=direction.value,
            entry=entry,
            atr=atr,
            optimal_tier=optimal.tier.value,
            optimal_stop=optimal.stop.price if optimal.stop else None,
            reason=optimal.reason,
        )

        return StopLossAnalysis(
            direction=direction,
            entry=entry,
            atr=atr_stops,
            time_based=time_stops,
            technical=technical,
            volatility=volatility,
            pattern=pattern,
            tiers=tiers,
            optimal=optimal,
            recommended=recommended,
            trailing=trailing,
        )

    @staticmethod
    def _level(entry: float, price: float, source: str) -> StopLossLevel:
        distance = abs(entry - price)
        return StopLossLevel(
            price=price,
            distance=distance,
            percentage=distance / entry * 100 if entry else 0.0,
            source=source,
        )

    # =========================================================================
    # Methodologies
    # =========================================================================

    def atr_stops(self, entry: float, atr: float, is_short: bool = False) -> dict[str, StopLossLevel]:
        """ATR-multiple stops; empty when ATR is zero or undefined."""
        if not math.isfinite(atr) or atr <= 0:
            return {}

        sign = 1 if is_short else -1
        multipliers = {
            "tight": self.settings.tight_atr_multiplier,
            "normal": self.settings.normal_atr_multiplier,
            "wide": self.settings.wide_atr_multiplier,
        }
        return {
            name: self._level(entry, entry + sign * atr * mult, f"ATR_{name.upper()}")
            for name, mult in multipliers.items()
        }

    def time_stops(
        self, frame: pd.DataFrame, entry: float, is_short: bool = False
    ) -> dict[str, StopLossLevel | None]:
        """Lowest low (long) or highest high (short) over each lookback."""
        periods = {
            "short": self.settings.short_term_period,
            "medium": self.settings.medium_term_period,
            "long": self.settings.long_term_period,
        }
        result: dict[str, StopLossLevel | None] = {}
        for term, period in periods.items():
            if len(frame) < period:
                result[term] = None
                continue
            recent = frame.tail(period)
            price = float(recent["high"].max()) if is_short else float(recent["low"].min())
            result[term] = self._level(entry, price, f"TIME_{period}")
        return result

    def technical_stops(
        self, entry: float, indicators: IndicatorSnapshot
    ) -> dict[str, StopLossLevel | None]:
        """Buffered stops beyond the nearest support and resistance."""
        support = indicators.levels.nearest_support
        resistance = indicators.levels.nearest_resistance
        return {
            "support": self._level(entry, support * (1 - self.settings.support_buffer), "SUPPORT")
            if support is not None
            else None,
            "resistance": self._level(
                entry, resistance * (1 + self.settings.resistance_buffer), "RESISTANCE"
            )
            if resistance is not None
            else None,
        }

    def volatility_stop(
        self, frame: pd.DataFrame, entry: float, is_short: bool = False
    ) -> VolatilityStop:
        """Stop one population standard deviation of log returns away."""
        closes = frame["close"].to_numpy(dtype=float)
        log_returns = np.diff(np.log(closes))
        volatility = float(np.std(log_returns)) if log_returns.size else 0.0

        price = entry * (1 + volatility) if is_short else entry * (1 - volatility)
        if volatility >= self.settings.high_volatility_threshold:
            level = RiskLevel.HIGH
        elif volatility <= self.settings.low_volatility_threshold:
            level = RiskLevel.LOW
        else:
            level = RiskLevel.MEDIUM

        return VolatilityStop(
            stop=self._level(entry, price, "VOLATILITY"),
            volatility=volatility,
            level=level,
        )

    def pattern_stop(
        self,
        entry: float,
        atr: float,
        patterns: PatternAnalysis,
        is_short: bool = False,
    ) -> StopLossLevel | None:
        """
        ATR stop scaled by the dominant pattern's multiplier.

        Below the pattern's confidence threshold the multiplier shrinks in
        proportion to confidence / threshold.
        """
        dominant = patterns.dominant
        if dominant is None or dominant.pattern_type not in PATTERN_STOP_RULES:
            return None
        if not math.isfinite(atr) or atr <= 0:
            return None

        multiplier, threshold = PATTERN_STOP_RULES[dominant.pattern_type]
        confidence = patterns.dominant_confidence
        if confidence < threshold:
            multiplier = multiplier * confidence / threshold

        offset = atr * multiplier
        price = entry + offset if is_short else entry - offset
        return self._level(entry, price, f"PATTERN_{dominant.pattern_type.value}")

    # =========================================================================
    # Selection
    # =========================================================================

    @staticmethod
    def _tier(
        tier: StopTier, candidates: list[StopLossLevel | None], is_short: bool
    ) -> TierStop:
        available = [c for c in candidates if c is not None]
        if not available:
            stop = None
        elif is_short:
            stop = max(available, key=lambda c: c.price)
        else:
            stop = min(available, key=lambda c: c.price)
        return TierStop(
            tier=tier,
            stop=stop,
            timeframe=TIER_TIMEFRAMES[tier],
            candidates=[c.source for c in available],
        )

    def optimal_tier(
        self,
        entry: float,
        atr: float,
        patterns: PatternAnalysis,
        tiers: dict[str, TierStop],
    ) -> OptimalStop:
        """
        Pick the tier that suits current conditions.

        Priority: high pattern confidence, then high volatility (both
        conservative), then low volatility (aggressive), else moderate.
        """
        ratio = atr / entry if entry else 0.0

        if patterns.dominant_confidence > self.settings.high_pattern_confidence:
            tier, reason = StopTier.CONSERVATIVE, "HIGH_PATTERN_CONFIDENCE"
        elif ratio >= self.settings.high_volatility_threshold:
            tier, reason = StopTier.CONSERVATIVE, "HIGH_VOLATILITY"
        elif ratio <= self.settings.low_volatility_threshold:
            tier, reason = StopTier.AGGRESSIVE, "LOW_VOLATILITY"
        else:
            tier, reason = StopTier.MODERATE, "NORMAL_CONDITIONS"

        selected = tiers[tier.value]
        return OptimalStop(tier=tier, stop=selected.stop, timeframe=selected.timeframe, reason=reason)

    def recommended_stop(
        self,
        atr_normal: StopLossLevel | None,
        technical: StopLossLevel | None,
        volatility: StopLossLevel | None,
        trend: TrendSignal,
    ) -> RecommendedStop | None:
        """Highest-weighted candidate among ATR, technical and volatility stops."""
        candidates = [
            (level, source)
            for level, source in ((atr_normal, "ATR"), (technical, "Technical"), (volatility, "Volatility"))
            if level is not None
        ]
        if not candidates:
            return None

        if trend is TrendSignal.BULLISH:
            factor = UPTREND_WEIGHT_FACTOR
        elif trend is TrendSignal.BEARISH:
            factor = DOWNTREND_WEIGHT_FACTOR
        else:
            factor = 1.0

        # max keeps the first listed candidate on equal weights
        level, source = max(candidates, key=lambda c: RECOMMENDED_STOP_WEIGHTS[c[1]])
        return RecommendedStop(
            price=level.price,
            source=source,
            weight=RECOMMENDED_STOP_WEIGHTS[source] * factor,
        )

    def trailing_stop(self, entry: float, atr: float, patterns: PatternAnalysis) -> TrailingStop:
        """
        Trailing stop widened in volatile markets and for weak patterns.

        Returns:
            TrailingStop with distance, activation threshold and step size
        """
        ratio = atr / entry if entry else 0.0
        if ratio >= self.settings.high_volatility_threshold:
            volatility_factor = HIGH_VOLATILITY_TRAILING_FACTOR
        elif ratio <= self.settings.low_volatility_threshold:
            volatility_factor = LOW_VOLATILITY_TRAILING_FACTOR
        else:
            volatility_factor = 1.0

        if patterns.dominant is not None:
            pattern_factor = 1 + (0.5 - patterns.dominant_confidence) * 0.5
            pattern_factor = max(0.75, min(1.25, pattern_factor))
        else:
            pattern_factor = 1.0

        return TrailingStop(
            distance=atr * self.settings.normal_atr_multiplier * volatility_factor * pattern_factor,
            activation_threshold=self.settings.trailing_activation_threshold * volatility_factor,
            step_size=self.settings.trailing_step_size * volatility_factor * pattern_factor,
            adjustment_factors={"volatility": volatility_factor, "pattern": pattern_factor},
        )


# =============================================================================
# Risk Manager
# =============================================================================


class RiskManager:
    """
    Position sizing and trade plan generation.

    Handles:
    - Fixed-fractional position sizing capped at the max risk percent
    - Trade confidence from confirming signals
    - Trade plan with target, risk/reward and trailing activations
    """

    def __init__(self, settings: RiskSettings | None = None):
        self.settings = settings or get_settings().risk
        self.stop_loss = StopLossCalculator(self.settings)

    def calculate_position_size(
        self,
        entry: float,
        stop: float,
        capital: float | None = None,
        risk_percent: float | None = None,
        confidence: TradeConfidence = TradeConfidence.MEDIUM,
    ) -> int:
        """
        Calculate position size in units.

        Formula: floor(floor(capital * min(risk%, max%) / 100 / |entry - stop|) * scale)

        Args:
            entry: Entry price
            stop: Stop price
            capital: Account capital (default: settings.capital)
            risk_percent: Capital risked in % (default: settings.risk_percent)
            confidence: Trade confidence selecting the scale multiplier

        Returns:
            Units to trade; 0 when the stop distance is zero
        """
        capital = self.settings.capital if capital is None else capital
        risk_percent = self.settings.risk_percent if risk_percent is None else risk_percent

        stop_distance = abs(entry - stop)
        if not math.isfinite(stop_distance) or stop_distance == 0:
            logger.warning("zero_stop_distance", entry=entry, stop=stop)
            return 0

        risk_amount = capital * min(risk_percent, self.settings.max_risk_percent) / 100
        base_size = math.floor(risk_amount / stop_distance)
        size = math.floor(base_size * POSITION_SCALING[confidence.value])

        logger.debug(
            "position_size_calculated",
            entry=entry,
            stop=stop,
            risk_amount=risk_amount,
            base_size=base_size,
            confidence=confidence.value,
            size=size,
        )
        return size

    def determine_trade_confidence(
        self,
        indicators: IndicatorSnapshot,
        patterns: PatternAnalysis,
        signal: BreakoutSignal,
    ) -> TradeConfidence:
        """
        Count confirming conditions.

        Confirmations: dominant pattern confidence above 0.7, fused score
        magnitude above 0.6, STRONG or MODERATE volume, ATR below 2% of price.
        Three or more is HIGH, two MEDIUM, otherwise LOW.
        """
        confirmations = 0
        if patterns.dominant_confidence > self.settings.high_pattern_confidence:
            confirmations += 1
        if abs(signal.weighted_score) > TREND_STRENGTH_CONFIRMATION:
            confirmations += 1
        if indicators.volume.strength in (VolumeStrength.STRONG, VolumeStrength.MODERATE):
            confirmations += 1
        if indicators.price and indicators.atr.value / indicators.price < LOW_VOLATILITY_CONFIRMATION:
            confirmations += 1

        if confirmations >= 3:
            return TradeConfidence.HIGH
        if confirmations >= 2:
            return TradeConfidence.MEDIUM
        return TradeConfidence.LOW

    def generate_trade_plan(
        self,
        frame: pd.DataFrame,
        indicators: IndicatorSnapshot,
        patterns: PatternAnalysis,
        signal: BreakoutSignal,
        capital: float | None = None,
    ) -> tuple[TradePlan, StopLossAnalysis]:
        """
        Build the stop analysis and a sized trade plan for a signal.

        Args:
            frame: Oldest-first OHLCV frame
            indicators: Indicator snapshot
            patterns: Pattern analysis
            signal: Fused breakout signal
            capital: Account capital (default: settings.capital)

        Returns:
            Tuple of (TradePlan, StopLossAnalysis)
        """
        capital = self.settings.capital if capital is None else capital
        stops = self.stop_loss.calculate(frame, indicators, patterns, signal.direction)

        is_short = signal.direction is Direction.SHORT
        entry = indicators.price
        stop = stops.optimal.stop.price if stops.optimal.stop else entry
        risk = abs(entry - stop)

        if is_short:
            level = indicators.levels.nearest_support
            target = level if level is not None else entry - DEFAULT_REWARD_MULTIPLE * risk
        else:
            level = indicators.levels.nearest_resistance
            target = level if level is not None else entry + DEFAULT_REWARD_MULTIPLE * risk

        confidence = self.determine_trade_confidence(indicators, patterns, signal)
        size = self.calculate_position_size(entry, stop, capital=capital, confidence=confidence)
        max_risk = risk * size

        sign = -1 if is_short else 1
        plan = TradePlan(
            direction=signal.direction,
            actionable=signal.is_actionable,
            entry=entry,
            stop=stop,
            target=target,
            position_size=size,
            risk_reward=abs(target - entry) / risk if risk > 0 else 0.0,
            max_risk=max_risk,
            confidence=confidence,
            risk_metrics=RiskMetrics(
                capital_at_risk=max_risk / capital * 100 if capital else 0.0,
                max_position_value=size * entry,
                stop_distance_percent=risk / entry * 100 if entry else 0.0,
            ),
            trailing_activations={
                tier: entry * (1 + sign * fraction)
                for tier, fraction in TRAILING_ACTIVATION_BY_TIER.items()
            },
        )

        logger.info(
            "trade_plan_generated",
            direction=signal.direction.value,
            actionable=plan.actionable,
            entry=entry,
            stop=round(stop, 4),
            target=round(target, 4),
            size=size,
            confidence=confidence.value,
        )
        return plan, stops
