"""
Chart Pattern Recognition.

Detects flags, pennants, triangles and head-and-shoulders formations over the
most recent bars of an oldest-first OHLCV frame. Every detector is a pure
function of the window: it either returns a scored ``PatternMatch`` with
``detected=True`` or an undetected match. Degenerate geometry (flat or
parallel trendlines, too few peaks) never raises.

Example:
    >>> recognizer = PatternRecognizer()
    >>> analysis = recognizer.analyze(frame)
    >>> if analysis.dominant:
    ...     print(analysis.dominant.pattern_type, analysis.dominant.confidence)
"""

from dataclasses import dataclass, field, replace
import math

import numpy as np
import pandas as pd

from breakout.analysis.statistics import RegressionLine, linear_regression
from breakout.config import PatternSettings, get_settings
from breakout.config.constants import (
    CONVERGENCE_RATE_SCALE,
    FLAG_WEIGHTS,
    HEAD_AND_SHOULDERS_WEIGHTS,
    HEAD_SHOULDER_MIN_RISE,
    NECKLINE_MIN_R2,
    PENNANT_WEIGHTS,
    PRICE_ACTION_VOLATILITY_CAP,
    SHOULDER_SYMMETRY_THRESHOLD,
    TRIANGLE_WEIGHTS,
    TROUGH_SEARCH_BARS,
)
from breakout.enums import PatternType
from breakout.utils import SerializableMixin, get_logger

logger = get_logger(__name__)


# ==================== Result Types ====================


@dataclass(frozen=True)
class ConvergencePoint(SerializableMixin):
    """Intersection of the triangle trendlines.

    Attributes:
        index: Frame position of the intersection (fractional)
        price: Price at the intersection
        bars_away: Distance in bars from the latest bar (converging) or from
            the window start (expanding)
        quality: Mean trendline R² discounted by the distance
    """

    index: float
    price: float
    bars_away: float
    quality: float


@dataclass(frozen=True)
class Neckline(SerializableMixin):
    """Least-squares neckline of a head-and-shoulders formation.

    Fitted through the troughs on either side of the head and every other
    local low between the shoulders; the left and right points are the
    fitted prices at the two main troughs.
    """

    left_index: int
    left_price: float
    right_index: int
    right_price: float
    slope: float
    r_squared: float
    points: int = 2

    def price_at(self, index: float) -> float:
        return self.left_price + self.slope * (index - self.left_index)


@dataclass(frozen=True)
class PatternMatch(SerializableMixin):
    """Outcome of a single pattern detector.

    Attributes:
        pattern_type: Detected formation; None when nothing was found
        detected: Whether the formation is present
        confidence: Weighted component score (0-100)
        start_index: Frame position where the formation starts
        end_index: Frame position where it ends
        components: Component scores feeding the confidence
        convergence_point: Triangle apex (triangles only)
        neckline: Neckline (head-and-shoulders only)
    """

    pattern_type: PatternType | None = None
    detected: bool = False
    confidence: float = 0.0
    start_index: int | None = None
    end_index: int | None = None
    components: dict[str, float] = field(default_factory=dict)
    convergence_point: ConvergencePoint | None = None
    neckline: Neckline | None = None


NOT_DETECTED = PatternMatch()


@dataclass(frozen=True)
class PatternAnalysis(SerializableMixin):
    """All detector outputs plus the dominant formation."""

    bull_flag: PatternMatch
    bear_flag: PatternMatch
    pennant: PatternMatch
    triangle: PatternMatch
    head_and_shoulders: PatternMatch
    dominant: PatternMatch | None = None

    @property
    def matches(self) -> list[PatternMatch]:
        """Detector outputs in tie-break order."""
        return [self.bull_flag, self.bear_flag, self.pennant, self.triangle, self.head_and_shoulders]

    @property
    def detected(self) -> list[PatternMatch]:
        return [m for m in self.matches if m.detected]

    @property
    def dominant_confidence(self) -> float:
        """Dominant pattern confidence on a 0-1 scale (0 without a pattern)."""
        return self.dominant.confidence / 100.0 if self.dominant else 0.0


# ==================== Helpers ====================


def _returns(prices: np.ndarray) -> np.ndarray:
    if prices.size < 2:
        return np.array([], dtype=float)
    return np.diff(prices) / prices[:-1]


def _confidence(factors: dict[str, float], weights: dict[str, float]) -> float:
    """Weighted mean of the component scores, as a percentage in [0, 100]."""
    total_weight = sum(weights[name] for name in factors)
    weighted = sum(value * weights[name] for name, value in factors.items())
    score = weighted / total_weight * 100 if total_weight > 0 else 0.0
    return float(min(100.0, max(0.0, score)))


def _volume_declining(volumes: np.ndarray) -> bool:
    return linear_regression(volumes).slope < 0


# ==================== Recognizer ====================


class PatternRecognizer:
    """
    Chart pattern detector.

    Each detector inspects the most recent ``min(max_pattern_bars, len)``
    bars. The first part of the window (``pole_fraction``) is treated as the
    pole of flags and pennants, the rest as the consolidation.
    """

    def __init__(self, settings: PatternSettings | None = None):
        self.settings = settings or get_settings().patterns

    def analyze(self, frame: pd.DataFrame) -> PatternAnalysis:
        """
        Run every detector and pick the dominant pattern.

        Args:
            frame: Oldest-first OHLCV frame

        Returns:
            PatternAnalysis with all five detector outputs
        """
        window = self._window(frame)
        if window is None:
            analysis = PatternAnalysis(
                bull_flag=NOT_DETECTED,
                bear_flag=NOT_DETECTED,
                pennant=NOT_DETECTED,
                triangle=NOT_DETECTED,
                head_and_shoulders=NOT_DETECTED,
            )
        else:
            analysis = PatternAnalysis(
                bull_flag=self.detect_flag(window, bullish=True),
                bear_flag=self.detect_flag(window, bullish=False),
                pennant=self.detect_pennant(window),
                triangle=self.detect_triangle(window),
                head_and_shoulders=self.detect_head_and_shoulders(window),
            )
            detected = analysis.detected
            if detected:
                # max keeps the first of equal scores, which is the tie-break order
                dominant = max(detected, key=lambda m: m.confidence)
                analysis = replace(analysis, dominant=dominant)

        logger.debug(
            "patterns_analyzed",
            bars=len(frame),
            detected=[str(m.pattern_type) for m in analysis.detected],
            dominant=str(analysis.dominant.pattern_type) if analysis.dominant else None,
        )
        return analysis

    def _window(self, frame: pd.DataFrame) -> pd.DataFrame | None:
        size = min(self.settings.max_pattern_bars, len(frame))
        if size < self.settings.min_pattern_bars:
            return None
        return frame.reset_index(drop=True).iloc[-size:]

    def _split(self, window: pd.DataFrame) -> tuple[pd.DataFrame, pd.DataFrame]:
        pole_length = int(math.floor(len(window) * self.settings.pole_fraction))
        return window.iloc[:pole_length], window.iloc[pole_length:]

    @staticmethod
    def _span(window: pd.DataFrame) -> tuple[int, int]:
        return int(window.index[0]), int(window.index[-1])

    # ==================== Flags ====================

    def _trend_strength(self, closes: np.ndarray, bullish: bool) -> float | None:
        """Same-sign return fraction of the pole, None when the pole is not a trend."""
        returns = _returns(closes)
        if returns.size == 0:
            return None
        slope = linear_regression(closes).slope
        if bullish:
            strength = float(np.mean(returns > 0))
            valid = slope > 0
        else:
            strength = float(np.mean(returns < 0))
            valid = slope < 0
        if not valid or strength <= self.settings.trend_strength_threshold:
            return None
        return strength

    def _consolidation_quality(self, closes: np.ndarray) -> float | None:
        if closes.size == 0:
            return None
        low = float(closes.min())
        price_range = (float(closes.max()) - low) / low
        if price_range > self.settings.price_deviation:
            return None
        return 1.0 - price_range / self.settings.price_deviation

    def detect_flag(self, window: pd.DataFrame, bullish: bool = True) -> PatternMatch:
        """
        Detect a bull (or bear) flag.

        Requirements:
        1. Pole trends in the flag direction with more than 70% same-sign returns
        2. The remaining closes stay within a 2% range
        3. Declining consolidation volume raises the score

        Args:
            window: Pattern window (oldest-first)
            bullish: Detect a bull flag when True, a bear flag otherwise

        Returns:
            PatternMatch for BULL_FLAG or BEAR_FLAG
        """
        pole, consolidation = self._split(window)

        strength = self._trend_strength(pole["close"].to_numpy(dtype=float), bullish)
        if strength is None:
            return NOT_DETECTED

        quality = self._consolidation_quality(consolidation["close"].to_numpy(dtype=float))
        if quality is None:
            return NOT_DETECTED

        components = {
            "trend_strength": strength,
            "consolidation_quality": quality,
            "volume_pattern": 1.0
            if _volume_declining(consolidation["volume"].to_numpy(dtype=float))
            else 0.5,
        }
        start, end = self._span(window)
        return PatternMatch(
            pattern_type=PatternType.BULL_FLAG if bullish else PatternType.BEAR_FLAG,
            detected=True,
            confidence=_confidence(components, FLAG_WEIGHTS),
            start_index=start,
            end_index=end,
            components=components,
        )

    # ==================== Pennant ====================

    def detect_pennant(self, window: pd.DataFrame) -> PatternMatch:
        """
        Detect a pennant: a strong pole followed by converging trendlines.

        The pole qualifies when its summed close-to-close returns exceed 10%
        in magnitude; the sign picks BULL_PENNANT or BEAR_PENNANT.
        """
        pole, rest = self._split(window)

        returns = _returns(pole["close"].to_numpy(dtype=float))
        move = float(returns.sum()) if returns.size else 0.0
        if abs(move) <= self.settings.strong_move_threshold:
            return NOT_DETECTED

        if len(rest) < 2:
            return NOT_DETECTED
        high_line = linear_regression(rest["high"].to_numpy(dtype=float))
        low_line = linear_regression(rest["low"].to_numpy(dtype=float))
        if not (high_line.slope < 0 and low_line.slope > 0):
            return NOT_DETECTED

        mean_price = float(rest["close"].mean())
        convergence = min(
            1.0, abs(high_line.slope - low_line.slope) / (CONVERGENCE_RATE_SCALE * mean_price)
        )

        components = {
            "trend_strength": min(1.0, abs(move)),
            "convergence_quality": convergence,
            "volume_pattern": 1.0 if _volume_declining(rest["volume"].to_numpy(dtype=float)) else 0.5,
        }
        start, end = self._span(window)
        return PatternMatch(
            pattern_type=PatternType.BULL_PENNANT if move > 0 else PatternType.BEAR_PENNANT,
            detected=True,
            confidence=_confidence(components, PENNANT_WEIGHTS),
            start_index=start,
            end_index=end,
            components=components,
        )

    # ==================== Triangle ====================

    def _triangle_type(self, upper: float, lower: float) -> PatternType | None:
        """Classify price-normalized trendline slopes."""
        tol = self.settings.triangle_slope_tolerance
        if abs(upper + lower) < tol:
            return PatternType.SYMMETRIC_TRIANGLE
        if abs(upper) < tol and lower > 0:
            return PatternType.ASCENDING_TRIANGLE
        if abs(lower) < tol and upper < 0:
            return PatternType.DESCENDING_TRIANGLE
        if upper > 0 and lower < 0:
            return PatternType.EXPANDING_TRIANGLE
        return None

    def _convergence_point(
        self,
        upper: RegressionLine,
        lower: RegressionLine,
        size: int,
        start: int,
        expanding: bool,
    ) -> ConvergencePoint | None:
        if upper.slope == lower.slope:
            return None

        x = (lower.intercept - upper.intercept) / (upper.slope - lower.slope)
        max_distance = 2 * self.settings.max_pattern_bars
        # Converging lines meet ahead of the latest bar, expanding ones behind the start
        distance = -x if expanding else x - (size - 1)
        if not (0 < distance < max_distance):
            return None

        average_r2 = (upper.r_squared + lower.r_squared) / 2
        return ConvergencePoint(
            index=start + x,
            price=upper.value_at(x),
            bars_away=distance,
            quality=average_r2 * (1 - min(distance / max_distance, 1.0)),
        )

    @staticmethod
    def _price_action(closes: np.ndarray) -> float:
        """Blend of calmness (low average return) and recent-vs-old momentum."""
        returns = np.abs(_returns(closes))
        volatility = min(1.0, float(returns.mean()) / PRICE_ACTION_VOLATILITY_CAP) if returns.size else 0.0

        third = closes.size // 3
        if third == 0:
            momentum = 0.5
        else:
            old = float(closes[:third].mean())
            recent = float(closes[-third:].mean())
            momentum = max(0.0, min(1.0, (recent - old) / old + 0.5))

        return (1 - volatility) * 0.5 + momentum * 0.5

    def detect_triangle(self, window: pd.DataFrame) -> PatternMatch:
        """
        Detect symmetric, ascending, descending and expanding triangles.

        Trendlines are least-squares fits of the highs and lows over the whole
        window; their slopes are divided by the mean close before
        classification so the tolerance is scale free.
        """
        upper = linear_regression(window["high"].to_numpy(dtype=float))
        lower = linear_regression(window["low"].to_numpy(dtype=float))
        mean_price = float(window["close"].mean())

        pattern_type = self._triangle_type(upper.slope / mean_price, lower.slope / mean_price)
        if pattern_type is None:
            return NOT_DETECTED

        start, end = self._span(window)
        point = self._convergence_point(
            upper,
            lower,
            size=len(window),
            start=start,
            expanding=pattern_type is PatternType.EXPANDING_TRIANGLE,
        )
        if point is None:
            return NOT_DETECTED

        components = {
            "trendline_quality": (upper.r_squared + lower.r_squared) / 2,
            "convergence_quality": point.quality,
            "price_action": self._price_action(window["close"].to_numpy(dtype=float)),
        }
        return PatternMatch(
            pattern_type=pattern_type,
            detected=True,
            confidence=_confidence(components, TRIANGLE_WEIGHTS),
            start_index=start,
            end_index=end,
            components=components,
            convergence_point=point,
        )

    # ==================== Head and Shoulders ====================

    @staticmethod
    def _find_peaks(highs: np.ndarray) -> list[int]:
        """Strict local maxima spaced at least ``max(1, n // 10)`` bars apart."""
        min_distance = max(1, highs.size // 10)
        peaks: list[int] = []
        for i in range(1, highs.size - 1):
            if highs[i] > highs[i - 1] and highs[i] > highs[i + 1]:
                if not peaks or i - peaks[-1] >= min_distance:
                    peaks.append(i)
        return peaks

    @staticmethod
    def _trough(lows: np.ndarray, peak: int, next_peak: int) -> int:
        """Lowest low in the bars after a peak, bounded by ``TROUGH_SEARCH_BARS`` and the next peak."""
        stop = min(next_peak, peak + TROUGH_SEARCH_BARS)
        segment = lows[peak + 1:stop]
        return peak + 1 + int(np.argmin(segment))

    @staticmethod
    def _neckline_troughs(lows: np.ndarray, left: int, right: int, anchors: tuple[int, int]) -> list[int]:
        """Anchor troughs plus every strict local minimum between the shoulders."""
        troughs = set(anchors)
        for i in range(left + 1, right):
            if lows[i] < lows[i - 1] and lows[i] < lows[i + 1]:
                troughs.add(i)
        return sorted(troughs)

    def detect_head_and_shoulders(self, window: pd.DataFrame) -> PatternMatch:
        """
        Detect a head-and-shoulders top.

        The three highest peaks form the formation; the head must be the
        middle one, rise more than 10% above the higher shoulder, and the
        shoulders must be within 20% of each other. The neckline is fitted
        through every trough between the shoulders and needs R² above 0.7.
        """
        highs = window["high"].to_numpy(dtype=float)
        lows = window["low"].to_numpy(dtype=float)
        volumes = window["volume"].to_numpy(dtype=float)

        peaks = self._find_peaks(highs)
        if len(peaks) < 3:
            return NOT_DETECTED

        top_three = sorted(peaks, key=lambda i: highs[i], reverse=True)[:3]
        left, head, right = sorted(top_three)
        if head != top_three[0]:
            return NOT_DETECTED

        head_price = highs[head]
        rise = (head_price - max(highs[left], highs[right])) / head_price
        symmetry = 1 - abs(highs[left] - highs[right]) / head_price
        if rise <= HEAD_SHOULDER_MIN_RISE or symmetry <= SHOULDER_SYMMETRY_THRESHOLD:
            return NOT_DETECTED

        left_trough = self._trough(lows, left, head)
        right_trough = self._trough(lows, head, right)
        troughs = self._neckline_troughs(lows, left, right, (left_trough, right_trough))
        fit = linear_regression(lows[troughs], positions=troughs)
        if fit.r_squared <= NECKLINE_MIN_R2:
            logger.debug("neckline_rejected", troughs=len(troughs), r_squared=round(fit.r_squared, 4))
            return NOT_DETECTED

        offset = int(window.index[0])
        neckline = Neckline(
            left_index=offset + left_trough,
            left_price=fit.value_at(left_trough),
            right_index=offset + right_trough,
            right_price=fit.value_at(right_trough),
            slope=fit.slope,
            r_squared=fit.r_squared,
            points=len(troughs),
        )

        volume_decreasing = volumes[left] > volumes[head] > volumes[right]
        components = {
            "shoulder_symmetry": float(symmetry),
            "neckline_quality": fit.r_squared,
            "volume_pattern": 1.0 if volume_decreasing else 0.5,
        }
        return PatternMatch(
            pattern_type=PatternType.HEAD_AND_SHOULDERS,
            detected=True,
            confidence=_confidence(components, HEAD_AND_SHOULDERS_WEIGHTS),
            start_index=offset + left,
            end_index=offset + right,
            components=components,
            neckline=neckline,
        )
