"""
Price bar model and the ingestion boundary.

Series arrive newest-first (index 0 is the most recent session). The engine
converts them once, here, into an oldest-first DataFrame so every rolling
window and exponential average downstream runs in chronological order. The
caller's sequence is never modified.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

import pandas as pd

OHLCV_COLUMNS = ["open", "high", "low", "close", "volume"]


@dataclass(frozen=True)
class PriceBar:
    """One trading session.

    Attributes:
        date: Session date
        open: Opening price
        high: Session high
        low: Session low
        close: Closing price
        volume: Shares traded
    """

    date: date
    open: float
    high: float
    low: float
    close: float
    volume: int

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PriceBar":
        """Build a bar from a provider record with a ``date`` or ``timestamp`` key."""
        raw_date = data.get("date", data.get("timestamp"))
        if isinstance(raw_date, str):
            raw_date = pd.Timestamp(raw_date).date()
        elif isinstance(raw_date, datetime):
            raw_date = raw_date.date()
        return cls(
            date=raw_date,
            open=float(data["open"]),
            high=float(data["high"]),
            low=float(data["low"]),
            close=float(data["close"]),
            volume=int(data["volume"]),
        )

    def to_dict(self) -> dict:
        return {
            "date": self.date.isoformat() if self.date is not None else None,
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
        }


def bars_to_frame(bars: Sequence[PriceBar]) -> pd.DataFrame:
    """Convert a newest-first bar sequence into an oldest-first DataFrame.

    Args:
        bars: Bars ordered most recent first

    Returns:
        DataFrame with columns timestamp, open, high, low, close, volume and a
        RangeIndex where the last row is the most recent bar
    """
    chronological = list(reversed(bars))
    frame = pd.DataFrame(
        {
            "timestamp": pd.to_datetime([bar.date for bar in chronological]),
            "open": [float(bar.open) for bar in chronological],
            "high": [float(bar.high) for bar in chronological],
            "low": [float(bar.low) for bar in chronological],
            "close": [float(bar.close) for bar in chronological],
            "volume": [float(bar.volume) for bar in chronological],
        }
    )
    return frame


def frame_to_bars(frame: pd.DataFrame) -> list[PriceBar]:
    """Convert an oldest-first DataFrame back into a newest-first bar list."""
    bars = [
        PriceBar(
            date=pd.Timestamp(row.timestamp).date(),
            open=float(row.open),
            high=float(row.high),
            low=float(row.low),
            close=float(row.close),
            volume=int(row.volume),
        )
        for row in frame.itertuples(index=False)
    ]
    bars.reverse()
    return bars
