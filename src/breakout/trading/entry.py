"""
Entry Point Analysis for the breakout engine.

Describes two long entry setups for the current bar:
- Conservative: buy a pullback near dynamic support
- Aggressive: buy the push through dynamic resistance

Dynamic levels are the 5-period EMA of the recent lows (support) and highs
(resistance), bounded by the window extremes. Each setup lists the
conditions it needs (proximity, relative volume, risk/reward and a momentum
or RSI filter) and is valid only when all of them hold. Fibonacci levels
within one ATR of price are reported as additional entry candidates.
"""

from dataclasses import dataclass, field
import math

import numpy as np
import pandas as pd

from breakout.analysis.indicators import IndicatorSnapshot
from breakout.config import EntrySettings, get_settings
from breakout.config.constants import (
    BREAKOUT_TARGET_FACTOR,
    CONSERVATIVE_TARGET_FACTOR,
    ENTRY_STOP_FACTOR,
    FIBONACCI_LEVEL_STRENGTH,
    NORMAL_ATR_MULTIPLIER,
    VOLUME_TREND_THRESHOLD,
)
from breakout.enums import (
    EntryStyle,
    InstitutionalActivity,
    LevelStrength,
    LevelType,
    OscillatorSignal,
    TrendSignal,
)
from breakout.trading.risk import StopLossAnalysis
from breakout.utils import SerializableMixin, get_logger

logger = get_logger(__name__)


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class VolumeMetrics(SerializableMixin):
    """
    Recent volume profile.

    Attributes:
        average: Mean volume over the lookback (latest bar included)
        current: Latest bar volume
        relative: current / average
        trend: Second-half mean over first-half mean, minus one
        increasing: trend above +10%
        decreasing: trend below -10%
    """

    average: float
    current: float
    relative: float
    trend: float
    increasing: bool
    decreasing: bool


@dataclass(frozen=True)
class KeyLevels(SerializableMixin):
    """Window extreme (strong) and EMA (weak) level."""

    strong: float
    weak: float


@dataclass(frozen=True)
class EntrySetup(SerializableMixin):
    """
    One entry setup and the conditions that validate it.

    Attributes:
        style: CONSERVATIVE (support pullback) or AGGRESSIVE (breakout)
        valid: Every condition holds
        price: Current close
        trigger: Support level (conservative) or breakout level (aggressive)
        required_volume: Volume needed to confirm the entry
        stop: Stop price 1% below the trigger
        target: Target price
        risk_reward: |target - price| / |price - stop|, 0 when the risk is 0
        conditions: Condition name to outcome
    """

    style: EntryStyle
    valid: bool
    price: float
    trigger: float
    required_volume: int
    stop: float
    target: float
    risk_reward: float
    conditions: dict[str, bool] = field(default_factory=dict)


@dataclass(frozen=True)
class FibonacciEntry(SerializableMixin):
    ratio: str
    price: float
    level_type: LevelType
    strength: LevelStrength
    conservative_stop: float
    aggressive_stop: float
    risk_reward: float


@dataclass(frozen=True)
class EntryAnalysis(SerializableMixin):
    """
    Entry setups for the current bar.

    Attributes:
        conservative: Support pullback setup
        aggressive: Breakout setup
        volume: Recent volume profile
        support_levels: Lowest low and EMA of lows
        resistance_levels: Highest high and EMA of highs
        fibonacci_entries: Fibonacci levels within one ATR of price
        nearest_fibonacci: Label of the Fibonacci level closest to price
        mfi_signal: Money flow reading
        institutional_activity: Accumulation/distribution from MFI
        optimal_risk_reward: Conservative target against the optimal tier
            stop; None without a stop or with zero risk
    """

    conservative: EntrySetup
    aggressive: EntrySetup
    volume: VolumeMetrics
    support_levels: KeyLevels
    resistance_levels: KeyLevels
    fibonacci_entries: list[FibonacciEntry]
    nearest_fibonacci: str
    mfi_signal: OscillatorSignal
    institutional_activity: InstitutionalActivity
    optimal_risk_reward: float | None = None

    @property
    def has_valid_entry(self) -> bool:
        return self.conservative.valid or self.aggressive.valid


def _risk_reward(entry: float, stop: float, target: float) -> float:
    risk = abs(entry - stop)
    if risk == 0 or not math.isfinite(risk):
        return 0.0
    return abs(target - entry) / risk


# =============================================================================
# Entry Analyzer
# =============================================================================


class EntryAnalyzer:
    """
    Entry point analyzer.

    Handles:
    - Dynamic support/resistance from the EMA of recent lows and highs
    - Volume metrics (relative volume and half-over-half trend)
    - Conservative and aggressive entry setups
    - Fibonacci entry candidates
    """

    def __init__(self, settings: EntrySettings | None = None):
        self.settings = settings or get_settings().entry

    def analyze(
        self,
        frame: pd.DataFrame,
        indicators: IndicatorSnapshot,
        stops: StopLossAnalysis | None = None,
    ) -> EntryAnalysis:
        """
        Analyze entry points for the latest bar.

        Args:
            frame: Oldest-first OHLCV frame
            indicators: Indicator snapshot for the current bar
            stops: Stop analysis; its optimal stop prices the overall risk/reward

        Returns:
            EntryAnalysis
        """
        price = indicators.price
        support_levels = self.support_levels(frame)
        resistance_levels = self.resistance_levels(frame)
        support = max(support_levels.strong, support_levels.weak)
        resistance = min(resistance_levels.strong, resistance_levels.weak)
        volume = self.volume_metrics(frame)

        conservative = self.conservative_entry(price, support, resistance, volume, indicators.rsi.value)
        aggressive = self.aggressive_entry(price, resistance, volume, indicators.macd.trend)

        optimal_risk_reward = None
        if stops is not None and stops.optimal.stop is not None:
            risk = abs(price - stops.optimal.stop.price)
            if risk > 0:
                optimal_risk_reward = abs(conservative.target - price) / risk

        analysis = EntryAnalysis(
            conservative=conservative,
            aggressive=aggressive,
            volume=volume,
            support_levels=support_levels,
            resistance_levels=resistance_levels,
            fibonacci_entries=self.fibonacci_entries(price, indicators),
            nearest_fibonacci=indicators.fibonacci.nearest_ratio,
            mfi_signal=indicators.mfi.signal,
            institutional_activity=indicators.mfi.institutional_activity,
            optimal_risk_reward=optimal_risk_reward,
        )

        logger.debug(
            "entry_analysis_completed",
            support=round(support, 4),
            resistance=round(resistance, 4),
            relative_volume=round(volume.relative, 4),
            conservative_valid=conservative.valid,
            aggressive_valid=aggressive.valid,
            fibonacci_entries=len(analysis.fibonacci_entries),
        )
        return analysis

    # =========================================================================
    # Levels and Volume
    # =========================================================================

    def _dynamic_ema(self, values: pd.Series) -> float:
        # Seeded on the first value of the window, not on an SMA
        return float(values.ewm(span=self.settings.dynamic_level_period, adjust=False).mean().iloc[-1])

    def support_levels(self, frame: pd.DataFrame) -> KeyLevels:
        lows = frame["low"].tail(self.settings.lookback).reset_index(drop=True)
        return KeyLevels(strong=float(lows.min()), weak=self._dynamic_ema(lows))

    def resistance_levels(self, frame: pd.DataFrame) -> KeyLevels:
        highs = frame["high"].tail(self.settings.lookback).reset_index(drop=True)
        return KeyLevels(strong=float(highs.max()), weak=self._dynamic_ema(highs))

    def volume_metrics(self, frame: pd.DataFrame) -> VolumeMetrics:
        """Relative volume and the change between the two halves of the lookback."""
        volumes = frame["volume"].tail(self.settings.lookback).to_numpy(dtype=float)
        average = float(volumes.mean())
        current = float(volumes[-1])
        relative = current / average if average > 0 else 0.0

        half = volumes.size // 2
        first, second = volumes[:half], volumes[half:]
        first_avg = float(first.mean()) if first.size else 0.0
        trend = float(np.mean(second)) / first_avg - 1 if first_avg > 0 else 0.0

        return VolumeMetrics(
            average=average,
            current=current,
            relative=relative,
            trend=trend,
            increasing=trend > VOLUME_TREND_THRESHOLD,
            decreasing=trend < -VOLUME_TREND_THRESHOLD,
        )

    # =========================================================================
    # Entry Setups
    # =========================================================================

    def conservative_entry(
        self,
        price: float,
        support: float,
        resistance: float,
        volume: VolumeMetrics,
        rsi: float,
    ) -> EntrySetup:
        """
        Pullback entry near support.

        Stop 1% below support, target 5% below resistance. Needs price within
        2% of support, relative volume of 1.2, risk/reward of 1.5 and RSI
        between 40 and 60.
        """
        stop = support * ENTRY_STOP_FACTOR
        target = resistance * CONSERVATIVE_TARGET_FACTOR
        risk_reward = _risk_reward(price, stop, target)

        conditions = {
            "price_near_support": support > 0
            and abs(price - support) / support <= self.settings.price_threshold,
            "volume_sufficient": volume.relative >= self.settings.conservative_volume_ratio,
            "risk_reward_met": risk_reward >= self.settings.min_rr_conservative,
            "rsi_favorable": self.settings.rsi_low <= rsi <= self.settings.rsi_high,
        }
        return EntrySetup(
            style=EntryStyle.CONSERVATIVE,
            valid=all(conditions.values()),
            price=price,
            trigger=support,
            required_volume=round(volume.average * self.settings.conservative_volume_ratio),
            stop=stop,
            target=target,
            risk_reward=risk_reward,
            conditions=conditions,
        )

    def aggressive_entry(
        self,
        price: float,
        resistance: float,
        volume: VolumeMetrics,
        momentum: TrendSignal,
    ) -> EntrySetup:
        """
        Breakout entry at resistance.

        Stop 1% below the breakout level, target 5% above it. Needs price
        within 2% below the level, relative volume of 1.5, risk/reward of 2
        and a bullish MACD.
        """
        stop = resistance * ENTRY_STOP_FACTOR
        target = resistance * BREAKOUT_TARGET_FACTOR
        risk_reward = _risk_reward(price, stop, target)

        conditions = {
            "price_near_breakout": price > 0
            and (resistance - price) / price <= self.settings.price_threshold,
            "volume_sufficient": volume.relative >= self.settings.aggressive_volume_ratio,
            "risk_reward_met": risk_reward >= self.settings.min_rr_aggressive,
            "momentum_favorable": momentum is TrendSignal.BULLISH,
        }
        return EntrySetup(
            style=EntryStyle.AGGRESSIVE,
            valid=all(conditions.values()),
            price=price,
            trigger=resistance,
            required_volume=round(volume.average * self.settings.aggressive_volume_ratio),
            stop=stop,
            target=target,
            risk_reward=risk_reward,
            conditions=conditions,
        )

    def fibonacci_entries(self, price: float, indicators: IndicatorSnapshot) -> list[FibonacciEntry]:
        """Fibonacci levels within one ATR of price, in ratio order."""
        atr = indicators.atr.value
        if not math.isfinite(atr) or atr <= 0:
            return []

        entries = []
        for ratio, level in indicators.fibonacci.levels.items():
            if abs(price - level) > atr:
                continue
            if level < price:
                level_type = LevelType.SUPPORT
            elif level > price:
                level_type = LevelType.RESISTANCE
            else:
                level_type = LevelType.NEUTRAL
            entries.append(
                FibonacciEntry(
                    ratio=ratio,
                    price=level,
                    level_type=level_type,
                    strength=LevelStrength(FIBONACCI_LEVEL_STRENGTH.get(ratio, "MEDIUM")),
                    conservative_stop=level - atr * NORMAL_ATR_MULTIPLIER,
                    aggressive_stop=level - atr,
                    risk_reward=abs(price - level) / (atr * NORMAL_ATR_MULTIPLIER),
                )
            )
        return entries
