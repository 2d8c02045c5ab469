"""Technical Analysis Indicators Module.

This module computes the indicator set consumed by the breakout fusion and
risk layers. All calculations are vectorized with numpy/pandas over an
oldest-first OHLCV frame (the last row is the current bar) and are recomputed
in full on every call.

Indicators:
    - RSI (Relative Strength Index)
    - MACD (Moving Average Convergence Divergence)
    - Bollinger Bands with squeeze detection
    - ATR (Average True Range, Wilder smoothing)
    - MFI (Money Flow Index)
    - Fibonacci Retracement
    - Moving-average trend and crosses (EMA20 / SMA50 / SMA200)
    - OBV (On-Balance Volume)
    - Relative volume
    - Support / resistance levels
"""

from dataclasses import dataclass, field
import math

import numpy as np
import pandas as pd

from breakout.analysis.statistics import (
    ema_series,
    sma,
    sma_series,
    standard_deviation,
)
from breakout.config import IndicatorSettings, get_settings
from breakout.config.constants import (
    ATR_HIGH_RISK_PCT,
    ATR_MEDIUM_RISK_PCT,
    INSTITUTIONAL_VOLUME,
    MFI_ACCUMULATION,
    MFI_DISTRIBUTION,
    MFI_OVERBOUGHT,
    MFI_OVERSOLD,
    RSI_OVERBOUGHT,
    RSI_OVERSOLD,
    SQUEEZE_MODERATE_PERCENTILE,
    SQUEEZE_STRONG_PERCENTILE,
    VOLATILITY_HIGH_RATIO,
    VOLATILITY_LOW_RATIO,
    VOLUME_DECREASING_RATIO,
    VOLUME_INCREASING_RATIO,
)
from breakout.data.bars import OHLCV_COLUMNS
from breakout.enums import (
    BandPosition,
    Direction,
    InstitutionalActivity,
    LevelType,
    OBVTrend,
    OscillatorSignal,
    RiskLevel,
    SqueezeIntensity,
    TrendSignal,
    VolatilityState,
    VolumeStrength,
    VolumeTrend,
)
from breakout.errors import InsufficientDataError
from breakout.utils import SerializableMixin, get_logger

logger = get_logger(__name__)


# ==================== Result Types ====================


@dataclass(frozen=True)
class RSIResult(SerializableMixin):
    """RSI reading.

    Attributes:
        value: RSI (0-100)
        signal: OVERBOUGHT above 70, OVERSOLD below 30
        trend: BULLISH above 50, BEARISH below 50
    """

    value: float
    signal: OscillatorSignal
    trend: TrendSignal


@dataclass(frozen=True)
class MACDResult(SerializableMixin):
    """MACD line, signal line and histogram at the current bar."""

    macd: float
    signal: float
    histogram: float
    previous_histogram: float
    trend: TrendSignal


@dataclass(frozen=True)
class SqueezeState(SerializableMixin):
    """Bollinger squeeze reading.

    Attributes:
        is_squeezing: Current bandwidth below half the trailing average
        bandwidth_percentile: Current bandwidth as % of the trailing average
        average_bandwidth: Mean of the prior bandwidth readings
        intensity: STRONG below 20%, MODERATE below 40%
    """

    is_squeezing: bool
    bandwidth_percentile: float
    average_bandwidth: float
    intensity: SqueezeIntensity


@dataclass(frozen=True)
class BollingerResult(SerializableMixin):
    upper: float
    middle: float
    lower: float
    bandwidth: float
    squeeze: SqueezeState
    volatility_state: VolatilityState
    position: BandPosition
    signal: Direction


@dataclass(frozen=True)
class ATRResult(SerializableMixin):
    value: float
    percent: float
    risk_level: RiskLevel


@dataclass(frozen=True)
class MFIResult(SerializableMixin):
    value: float
    signal: OscillatorSignal
    institutional_activity: InstitutionalActivity


@dataclass(frozen=True)
class FibonacciResult(SerializableMixin):
    """Retracement levels between the series high and low.

    Attributes:
        swing_high: Highest high of the series
        swing_low: Lowest low of the series
        levels: Ratio label ("0.236", ...) to price
        nearest_ratio: Label of the level closest to the close
        nearest_level: Price of that level
        nearest_type: SUPPORT if the close is above it, RESISTANCE if below
        distance_pct: Distance from close to the nearest level (% of close)
        supports: Levels below the close, nearest first
        resistances: Levels above the close, nearest first
    """

    swing_high: float
    swing_low: float
    levels: dict[str, float]
    nearest_ratio: str
    nearest_level: float
    nearest_type: LevelType
    distance_pct: float
    supports: list[float] = field(default_factory=list)
    resistances: list[float] = field(default_factory=list)


@dataclass(frozen=True)
class MovingAverageResult(SerializableMixin):
    """Trend from EMA20/SMA50/SMA200 alignment.

    ``sma_long`` is None when the series is shorter than its period; the trend
    then compares price and the short EMA against the medium SMA only.
    """

    ema_short: float
    sma_medium: float
    sma_long: float | None
    crosses: dict[str, TrendSignal]
    trend: TrendSignal


@dataclass(frozen=True)
class OBVResult(SerializableMixin):
    value: float
    momentum: float
    trend: OBVTrend
    signal: TrendSignal


@dataclass(frozen=True)
class VolumeResult(SerializableMixin):
    """Current volume against its recent average.

    Attributes:
        current: Latest bar volume
        average: Mean volume over the averaging window (latest bar included)
        ratio: current / average * 100
        strength: STRONG above 150%, MODERATE above 120%
        trend: INCREASING above 110%, DECREASING below 90%
        is_accumulation: Current volume above average
        price_direction: Sign of the latest close-to-close change
    """

    current: float
    average: float
    ratio: float
    strength: VolumeStrength
    trend: VolumeTrend
    is_accumulation: bool
    price_direction: TrendSignal


@dataclass(frozen=True)
class SupportResistance(SerializableMixin):
    """Price levels around the current close, nearest first."""

    supports: list[float]
    resistances: list[float]

    @property
    def nearest_support(self) -> float | None:
        return self.supports[0] if self.supports else None

    @property
    def nearest_resistance(self) -> float | None:
        return self.resistances[0] if self.resistances else None


@dataclass(frozen=True)
class IndicatorSnapshot(SerializableMixin):
    """Every indicator computed for the current bar."""

    price: float
    rsi: RSIResult
    macd: MACDResult
    bollinger: BollingerResult
    atr: ATRResult
    mfi: MFIResult
    fibonacci: FibonacciResult
    moving_averages: MovingAverageResult
    obv: OBVResult
    volume: VolumeResult
    levels: SupportResistance


# ==================== Analyzer ====================


class TechnicalAnalyzer:
    """Indicator calculator over an oldest-first OHLCV frame.

    The analyzer keeps a private copy of the data and an immutable settings
    record; it holds no other state, so instances are safe to use from
    several threads.
    """

    def __init__(self, ohlcv_data: pd.DataFrame, settings: IndicatorSettings | None = None):
        """Initialize analyzer with OHLCV data.

        Args:
            ohlcv_data: Oldest-first frame with open, high, low, close, volume
            settings: Indicator settings; defaults to the global settings

        Raises:
            ValueError: If required columns are missing
            InsufficientDataError: If the frame is shorter than ``settings.min_bars``
        """
        self.settings = settings or get_settings().indicators
        self.data = ohlcv_data.reset_index(drop=True).copy()
        self._validate_data()
        self._precompute_common()

    def _validate_data(self) -> None:
        required_cols = set(OHLCV_COLUMNS)
        if not required_cols.issubset(self.data.columns):
            raise ValueError(f"Data must contain columns: {sorted(required_cols)}")

        if len(self.data) < self.settings.min_bars:
            raise InsufficientDataError(
                required=self.settings.min_bars,
                received=len(self.data),
                context="indicator analysis",
            )

    def _precompute_common(self) -> None:
        self.data["hlc3"] = (self.data["high"] + self.data["low"] + self.data["close"]) / 3

    def _require(self, bars: int, context: str) -> None:
        if len(self.data) < bars:
            raise InsufficientDataError(required=bars, received=len(self.data), context=context)

    @property
    def price(self) -> float:
        return float(self.data["close"].iloc[-1])

    # ==================== RSI ====================

    def calculate_rsi(self, period: int | None = None) -> RSIResult:
        """Calculate Relative Strength Index.

        Average gain and average loss are the sums of the most recent
        ``period`` close-to-close changes divided by ``period``. A zero
        average loss yields 100.

        Args:
            period: Lookback period (default: settings.rsi_period)

        Returns:
            RSIResult with value, overbought/oversold signal and trend
        """
        period = period or self.settings.rsi_period
        self._require(period + 1, f"RSI({period})")

        changes = self.data["close"].diff().iloc[-period:]
        avg_gain = float(changes.clip(lower=0).sum()) / period
        avg_loss = float((-changes.clip(upper=0)).sum()) / period

        if avg_loss == 0:
            rsi = 100.0
        else:
            rsi = 100.0 - 100.0 / (1.0 + avg_gain / avg_loss)

        if rsi > RSI_OVERBOUGHT:
            signal = OscillatorSignal.OVERBOUGHT
        elif rsi < RSI_OVERSOLD:
            signal = OscillatorSignal.OVERSOLD
        else:
            signal = OscillatorSignal.NEUTRAL

        if rsi > 50:
            trend = TrendSignal.BULLISH
        elif rsi < 50:
            trend = TrendSignal.BEARISH
        else:
            trend = TrendSignal.NEUTRAL

        return RSIResult(value=rsi, signal=signal, trend=trend)

    # ==================== MACD ====================

    def calculate_macd(
        self, fast: int | None = None, slow: int | None = None, signal: int | None = None
    ) -> MACDResult:
        """Calculate Moving Average Convergence Divergence.

        Both EMAs and the signal line are SMA-seeded; the signal line is
        the EMA of the MACD line starting where the slow EMA becomes valid.

        Args:
            fast: Fast EMA period (default: 12)
            slow: Slow EMA period (default: 26)
            signal: Signal line period (default: 9)

        Returns:
            MACDResult; trend is BULLISH iff the histogram is positive
        """
        fast = fast or self.settings.macd_fast
        slow = slow or self.settings.macd_slow
        signal = signal or self.settings.macd_signal

        close = self.data["close"]
        macd_line = ema_series(close, fast) - ema_series(close, slow)
        signal_line = ema_series(macd_line, signal)
        histogram = macd_line - signal_line

        current_hist = float(histogram.iloc[-1])
        prev_hist = float(histogram.iloc[-2]) if len(histogram) > 1 else float("nan")

        return MACDResult(
            macd=float(macd_line.iloc[-1]),
            signal=float(signal_line.iloc[-1]),
            histogram=current_hist,
            previous_histogram=prev_hist,
            trend=TrendSignal.BULLISH if current_hist > 0 else TrendSignal.BEARISH,
        )

    # ==================== Bollinger Bands ====================

    def calculate_bollinger_bands(
        self, period: int | None = None, std_dev: float | None = None
    ) -> BollingerResult:
        """Calculate Bollinger Bands with squeeze and volatility state.

        Args:
            period: Moving average period (default: 20)
            std_dev: Standard deviation multiplier (default: 2.0)

        Returns:
            BollingerResult with bands, bandwidth, squeeze state and band position
        """
        period = period or self.settings.bollinger_period
        std_dev = std_dev or self.settings.bollinger_std
        self._require(period, f"Bollinger({period})")

        close = self.data["close"]
        middle = sma(close, period)
        sigma = standard_deviation(close.iloc[-period:], middle)
        upper = middle + std_dev * sigma
        lower = middle - std_dev * sigma
        bandwidth = (upper - lower) / middle * 100

        rolling_mid = sma_series(close, period)
        rolling_sigma = close.rolling(window=period).std(ddof=0).clip(lower=0)
        bandwidth_history = (2 * std_dev * rolling_sigma / rolling_mid * 100).dropna()

        prior = bandwidth_history.iloc[:-1].tail(self.settings.squeeze_lookback)
        average_bw = float(prior.mean()) if len(prior) else bandwidth
        if average_bw > 0:
            percentile = bandwidth / average_bw * 100
            is_squeezing = bandwidth < self.settings.squeeze_ratio * average_bw
        else:
            percentile = 100.0
            is_squeezing = False

        if percentile < SQUEEZE_STRONG_PERCENTILE:
            intensity = SqueezeIntensity.STRONG
        elif percentile < SQUEEZE_MODERATE_PERCENTILE:
            intensity = SqueezeIntensity.MODERATE
        else:
            intensity = SqueezeIntensity.NONE

        long_average = float(bandwidth_history.tail(self.settings.volatility_lookback).mean())
        if long_average > 0 and bandwidth > VOLATILITY_HIGH_RATIO * long_average:
            volatility_state = VolatilityState.HIGH
        elif long_average > 0 and bandwidth < VOLATILITY_LOW_RATIO * long_average:
            volatility_state = VolatilityState.LOW
        else:
            volatility_state = VolatilityState.NORMAL

        price = self.price
        if price > upper:
            position, signal = BandPosition.ABOVE_BANDS, Direction.LONG
        elif price < lower:
            position, signal = BandPosition.BELOW_BANDS, Direction.SHORT
        elif price > middle:
            position, signal = BandPosition.ABOVE_MIDDLE, Direction.NEUTRAL
        elif price < middle:
            position, signal = BandPosition.BELOW_MIDDLE, Direction.NEUTRAL
        else:
            position, signal = BandPosition.AT_MIDDLE, Direction.NEUTRAL

        logger.debug(
            "bollinger_calculated",
            bandwidth=round(bandwidth, 4),
            percentile=round(percentile, 2),
            squeezing=is_squeezing,
            position=position.value,
        )

        return BollingerResult(
            upper=upper,
            middle=middle,
            lower=lower,
            bandwidth=bandwidth,
            squeeze=SqueezeState(
                is_squeezing=bool(is_squeezing),
                bandwidth_percentile=percentile,
                average_bandwidth=average_bw,
                intensity=intensity,
            ),
            volatility_state=volatility_state,
            position=position,
            signal=signal,
        )

    # ==================== ATR ====================

    def true_range(self) -> pd.Series:
        """True range per bar; the first bar uses high - low."""
        high = self.data["high"]
        low = self.data["low"]
        prev_close = self.data["close"].shift()

        tr = pd.concat(
            [high - low, (high - prev_close).abs(), (low - prev_close).abs()], axis=1
        ).max(axis=1)
        return tr

    def calculate_atr(self, period: int | None = None) -> ATRResult:
        """Calculate Average True Range with Wilder smoothing.

        ``ATR_t = (ATR_{t-1} * (period - 1) + TR_t) / period`` seeded with the
        first true range, i.e. an EWM with alpha = 1/period.

        Args:
            period: Smoothing period (default: 14)

        Returns:
            ATRResult with value, percent of price and risk level
        """
        period = period or self.settings.atr_period
        atr = self.true_range().ewm(alpha=1.0 / period, adjust=False).mean()

        current_atr = float(atr.iloc[-1])
        percent = current_atr / self.price * 100

        if percent > ATR_HIGH_RISK_PCT:
            risk_level = RiskLevel.HIGH
        elif percent > ATR_MEDIUM_RISK_PCT:
            risk_level = RiskLevel.MEDIUM
        else:
            risk_level = RiskLevel.LOW

        return ATRResult(value=current_atr, percent=percent, risk_level=risk_level)

    # ==================== MFI ====================

    def calculate_mfi(self, period: int | None = None) -> MFIResult:
        """Calculate Money Flow Index.

        Flow counts as positive when the typical price rose against the prior
        bar and negative when it fell. With no negative flow the index is 100,
        or 50 when there was no flow at all.

        Args:
            period: Lookback period (default: 14)

        Returns:
            MFIResult with value, signal and institutional-activity reading
        """
        period = period or self.settings.mfi_period
        self._require(period + 1, f"MFI({period})")

        typical = self.data["hlc3"]
        money_flow = typical * self.data["volume"]
        delta = typical.diff()

        positive = float(money_flow.where(delta > 0, 0.0).iloc[-period:].sum())
        negative = float(money_flow.where(delta < 0, 0.0).iloc[-period:].sum())

        if negative == 0:
            mfi = 100.0 if positive > 0 else 50.0
        else:
            mfi = 100.0 - 100.0 / (1.0 + positive / negative)

        if mfi > MFI_OVERBOUGHT:
            signal = OscillatorSignal.OVERBOUGHT
        elif mfi < MFI_OVERSOLD:
            signal = OscillatorSignal.OVERSOLD
        else:
            signal = OscillatorSignal.NEUTRAL

        volume = float(self.data["volume"].iloc[-1])
        if mfi > MFI_ACCUMULATION and volume > INSTITUTIONAL_VOLUME:
            activity = InstitutionalActivity.ACCUMULATION
        elif mfi < MFI_DISTRIBUTION and volume > INSTITUTIONAL_VOLUME:
            activity = InstitutionalActivity.DISTRIBUTION
        else:
            activity = InstitutionalActivity.NEUTRAL

        return MFIResult(value=mfi, signal=signal, institutional_activity=activity)

    # ==================== Fibonacci Retracement ====================

    def calculate_fibonacci(self) -> FibonacciResult:
        """Calculate Fibonacci retracement levels over the whole series.

        Returns:
            FibonacciResult with levels and the nearest level's role
        """
        swing_high = float(self.data["high"].max())
        swing_low = float(self.data["low"].min())
        diff = swing_high - swing_low

        levels = {f"{ratio:g}": swing_high - diff * ratio for ratio in self.settings.fibonacci_ratios}

        price = self.price
        nearest_ratio, nearest_level = min(levels.items(), key=lambda item: abs(item[1] - price))
        if price > nearest_level:
            nearest_type = LevelType.SUPPORT
        elif price < nearest_level:
            nearest_type = LevelType.RESISTANCE
        else:
            nearest_type = LevelType.NEUTRAL

        return FibonacciResult(
            swing_high=swing_high,
            swing_low=swing_low,
            levels=levels,
            nearest_ratio=nearest_ratio,
            nearest_level=nearest_level,
            nearest_type=nearest_type,
            distance_pct=abs(price - nearest_level) / price * 100,
            supports=sorted((lvl for lvl in levels.values() if lvl < price), reverse=True),
            resistances=sorted(lvl for lvl in levels.values() if lvl > price),
        )

    # ==================== Moving Averages ====================

    @staticmethod
    def _cross(fast: pd.Series, slow: pd.Series) -> TrendSignal:
        """Cross of ``fast`` over ``slow`` between the prior and current bar."""
        if len(fast) < 2 or len(slow) < 2:
            return TrendSignal.NEUTRAL
        curr_fast, prev_fast = fast.iloc[-1], fast.iloc[-2]
        curr_slow, prev_slow = slow.iloc[-1], slow.iloc[-2]
        if any(pd.isna(v) for v in (curr_fast, prev_fast, curr_slow, prev_slow)):
            return TrendSignal.NEUTRAL
        if prev_fast <= prev_slow and curr_fast > curr_slow:
            return TrendSignal.BULLISH
        if prev_fast >= prev_slow and curr_fast < curr_slow:
            return TrendSignal.BEARISH
        return TrendSignal.NEUTRAL

    def calculate_moving_averages(self) -> MovingAverageResult:
        """Calculate EMA20/SMA50/SMA200 trend and cross detection.

        Returns:
            MovingAverageResult with current averages, crosses and trend
        """
        short_p = self.settings.ema_trend_period
        medium_p = self.settings.sma_medium_period
        long_p = self.settings.sma_long_period
        self._require(max(short_p, medium_p), "moving average trend")

        close = self.data["close"]
        ema_short = ema_series(close, short_p)
        sma_medium = sma_series(close, medium_p)
        sma_long = sma_series(close, long_p) if len(close) >= long_p else None

        crosses = {f"ema{short_p}_sma{medium_p}": self._cross(ema_short, sma_medium)}
        long_value = None
        if sma_long is not None:
            crosses[f"ema{short_p}_sma{long_p}"] = self._cross(ema_short, sma_long)
            crosses[f"sma{medium_p}_sma{long_p}"] = self._cross(sma_medium, sma_long)
            long_value = float(sma_long.iloc[-1])

        price = self.price
        e, m = float(ema_short.iloc[-1]), float(sma_medium.iloc[-1])
        if long_value is not None:
            bullish = price > long_value and e > m > long_value
            bearish = price < long_value and e < m < long_value
        else:
            bullish = price > m and e > m
            bearish = price < m and e < m

        if bullish:
            trend = TrendSignal.BULLISH
        elif bearish:
            trend = TrendSignal.BEARISH
        else:
            trend = TrendSignal.NEUTRAL

        return MovingAverageResult(
            ema_short=e,
            sma_medium=m,
            sma_long=long_value,
            crosses=crosses,
            trend=trend,
        )

    # ==================== OBV ====================

    def calculate_obv(self, lookback: int | None = None) -> OBVResult:
        """Calculate On-Balance Volume and its momentum.

        Momentum is the % change against the value ``lookback`` bars back,
        0 when that value is 0.

        Args:
            lookback: Momentum lookback (default: 5)

        Returns:
            OBVResult with value, momentum and trend
        """
        lookback = lookback or self.settings.obv_lookback
        self._require(lookback + 1, "OBV momentum")

        direction = np.sign(self.data["close"].diff()).fillna(0)
        obv = (direction * self.data["volume"]).cumsum()

        current = float(obv.iloc[-1])
        past = float(obv.iloc[-1 - lookback])
        momentum = (current - past) / abs(past) * 100 if past != 0 else 0.0

        if current > past:
            trend, signal = OBVTrend.RISING, TrendSignal.BULLISH
        elif current < past:
            trend, signal = OBVTrend.FALLING, TrendSignal.BEARISH
        else:
            trend, signal = OBVTrend.FLAT, TrendSignal.NEUTRAL

        return OBVResult(value=current, momentum=momentum, trend=trend, signal=signal)

    # ==================== Volume ====================

    def calculate_volume(self, period: int | None = None) -> VolumeResult:
        """Relative volume against the recent average.

        Args:
            period: Averaging window including the current bar (default: 20)

        Returns:
            VolumeResult with ratio, strength tier and trend
        """
        period = period or self.settings.volume_average_period
        volume = self.data["volume"]
        current = float(volume.iloc[-1])
        average = float(volume.tail(period).mean())
        ratio = current / average * 100 if average > 0 else 0.0

        if ratio > self.settings.volume_strong_ratio:
            strength = VolumeStrength.STRONG
        elif ratio > self.settings.volume_moderate_ratio:
            strength = VolumeStrength.MODERATE
        else:
            strength = VolumeStrength.WEAK

        if ratio > VOLUME_INCREASING_RATIO:
            trend = VolumeTrend.INCREASING
        elif ratio < VOLUME_DECREASING_RATIO:
            trend = VolumeTrend.DECREASING
        else:
            trend = VolumeTrend.NEUTRAL

        close = self.data["close"]
        change = float(close.iloc[-1] - close.iloc[-2]) if len(close) > 1 else 0.0
        if change > 0:
            price_direction = TrendSignal.BULLISH
        elif change < 0:
            price_direction = TrendSignal.BEARISH
        else:
            price_direction = TrendSignal.NEUTRAL

        return VolumeResult(
            current=current,
            average=average,
            ratio=ratio,
            strength=strength,
            trend=trend,
            is_accumulation=current > average,
            price_direction=price_direction,
        )

    # ==================== Support / Resistance ====================

    def find_support_resistance(
        self,
        window: int | None = None,
        tolerance: float | None = None,
        fibonacci: FibonacciResult | None = None,
    ) -> SupportResistance:
        """Find support and resistance levels around the current close.

        Pivot highs/lows over a centred rolling window are clustered within
        ``tolerance``; Fibonacci levels, when given, are merged in.

        Args:
            window: Window size for pivot detection
            tolerance: Price tolerance for level clustering (as fraction)
            fibonacci: Optional retracement result to merge

        Returns:
            SupportResistance with levels below and above price, nearest first
        """
        window = window or self.settings.pivot_window
        tolerance = self.settings.level_tolerance if tolerance is None else tolerance

        highs = self.data["high"].rolling(window=window, center=True).max()
        lows = self.data["low"].rolling(window=window, center=True).min()
        resistance_pivots = self.data.loc[self.data["high"] == highs, "high"].to_numpy()
        support_pivots = self.data.loc[self.data["low"] == lows, "low"].to_numpy()

        candidates = np.concatenate([resistance_pivots, support_pivots])
        if fibonacci is not None:
            candidates = np.concatenate([candidates, np.array(list(fibonacci.levels.values()))])

        price = self.price
        levels = _cluster_levels(candidates, tolerance)
        return SupportResistance(
            supports=sorted((lvl for lvl in levels if lvl < price), reverse=True),
            resistances=sorted(lvl for lvl in levels if lvl > price),
        )

    # ==================== Composite Analysis ====================

    def calculate_all(self) -> IndicatorSnapshot:
        """Calculate every indicator for the current bar.

        Returns:
            IndicatorSnapshot aggregating all results
        """
        fibonacci = self.calculate_fibonacci()
        snapshot = IndicatorSnapshot(
            price=self.price,
            rsi=self.calculate_rsi(),
            macd=self.calculate_macd(),
            bollinger=self.calculate_bollinger_bands(),
            atr=self.calculate_atr(),
            mfi=self.calculate_mfi(),
            fibonacci=fibonacci,
            moving_averages=self.calculate_moving_averages(),
            obv=self.calculate_obv(),
            volume=self.calculate_volume(),
            levels=self.find_support_resistance(fibonacci=fibonacci),
        )

        logger.debug(
            "indicators_calculated",
            bars=len(self.data),
            price=snapshot.price,
            rsi=round(snapshot.rsi.value, 2),
            macd_trend=snapshot.macd.trend.value,
            atr=round(snapshot.atr.value, 4),
            volume_ratio=round(snapshot.volume.ratio, 1),
        )
        return snapshot


def _cluster_levels(levels: np.ndarray, tolerance: float) -> list[float]:
    """Merge levels within ``tolerance`` of their neighbour into their mean."""
    finite = levels[np.isfinite(levels)]
    if finite.size == 0:
        return []

    sorted_levels = np.sort(finite)
    clusters = []
    current_cluster = [sorted_levels[0]]

    for level in sorted_levels[1:]:
        if level - current_cluster[-1] <= current_cluster[-1] * tolerance:
            current_cluster.append(level)
        else:
            clusters.append(float(np.mean(current_cluster)))
            current_cluster = [level]

    clusters.append(float(np.mean(current_cluster)))
    return [c for c in clusters if math.isfinite(c)]
