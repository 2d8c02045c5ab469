"""
Breakout signal engine.

Derives a composite breakout signal (direction, probability, confidence and
timeframe) from daily OHLCV bars, together with stop-loss levels and a sized
trade plan.
"""

from .analyzer import AnalysisResult, BreakoutAnalyzer, analyze, configure_logging
from .data import PriceBar, bars_to_frame, frame_to_bars
from .enums import Direction, PatternType, StopTier, Timeframe, TradeConfidence
from .errors import BreakoutError, InsufficientDataError, InvalidBarError

__version__ = "0.1.0"

__all__ = [
    "analyze",
    "configure_logging",
    "BreakoutAnalyzer",
    "AnalysisResult",
    "PriceBar",
    "bars_to_frame",
    "frame_to_bars",
    "Direction",
    "Timeframe",
    "PatternType",
    "StopTier",
    "TradeConfidence",
    "BreakoutError",
    "InsufficientDataError",
    "InvalidBarError",
]
