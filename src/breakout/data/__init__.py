"""
Data module for the breakout engine.

Provides the PriceBar model, conversion between the newest-first public
series and the oldest-first working frame, and bar validation.
"""

from .bars import OHLCV_COLUMNS, PriceBar, bars_to_frame, frame_to_bars
from .validation import BarValidator, DataQualityReport

__all__ = [
    "PriceBar",
    "OHLCV_COLUMNS",
    "bars_to_frame",
    "frame_to_bars",
    "BarValidator",
    "DataQualityReport",
]
