"""
Series statistics primitives.

All functions take oldest-first sequences: the last element is the most
recent value, so "the most recent ``period`` values" is the tail. This is the
order pandas rolling windows and exponential averages assume, and it makes
the EMA walk chronologically from its SMA seed to the newest value.
"""

from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np
import pandas as pd

from breakout.errors import InsufficientDataError

Values = Sequence[float] | np.ndarray | pd.Series


@dataclass(frozen=True)
class RegressionLine:
    """Least-squares line of value against bar position.

    Attributes:
        slope: Change in value per bar
        intercept: Fitted value at position 0
        r_squared: Coefficient of determination (0-1 for non-degenerate fits)
    """

    slope: float
    intercept: float
    r_squared: float

    def value_at(self, x: float) -> float:
        return self.slope * x + self.intercept


def _as_array(values: Values) -> np.ndarray:
    return np.asarray(values, dtype=float)


def _as_series(values: Values) -> pd.Series:
    return pd.Series(_as_array(values))


def sma(values: Values, period: int) -> float:
    """Mean of the most recent ``period`` values.

    Raises:
        InsufficientDataError: If fewer than ``period`` values are given
    """
    arr = _as_array(values)
    if period < 1:
        raise ValueError("period must be positive")
    if len(arr) < period:
        raise InsufficientDataError(required=period, received=len(arr), context=f"SMA({period})")
    return float(arr[-period:].mean())


def sma_series(values: Values, period: int) -> pd.Series:
    """Rolling mean aligned with the input, NaN before the first full window."""
    return _as_series(values).rolling(window=period).mean()


def ema_series(values: Values, period: int) -> pd.Series:
    """Exponential moving average seeded with an SMA.

    The first ``period`` valid values are averaged into the seed, placed on the
    last of them, and the recurrence
    ``ema_t = (x_t - ema_{t-1}) * 2 / (period + 1) + ema_{t-1}`` runs forward
    from there. Leading NaNs in the input (e.g. an unfilled MACD line) are
    skipped. Positions before the seed are NaN.

    Raises:
        InsufficientDataError: If fewer than ``period`` valid values exist
    """
    if period < 1:
        raise ValueError("period must be positive")
    series = _as_series(values)
    first = series.first_valid_index()
    available = 0 if first is None else len(series) - first
    if available < period:
        raise InsufficientDataError(required=period, received=available, context=f"EMA({period})")

    seed_at = first + period - 1
    seeded = series.copy()
    seeded.iloc[:seed_at] = np.nan
    seeded.iloc[seed_at] = series.iloc[first:seed_at + 1].mean()
    return seeded.ewm(span=period, adjust=False).mean()


def ema(values: Values, period: int) -> float:
    """Current (most recent) value of the SMA-seeded EMA."""
    return float(ema_series(values, period).iloc[-1])


def standard_deviation(values: Values, mean: float | None = None) -> float:
    """Population standard deviation (divides by N).

    Args:
        values: Sample
        mean: Precomputed mean; computed from ``values`` when omitted
    """
    arr = _as_array(values)
    if arr.size == 0:
        raise InsufficientDataError(required=1, received=0, context="standard deviation")
    center = float(arr.mean()) if mean is None else mean
    return float(np.sqrt(np.mean((arr - center) ** 2)))


def linear_regression(values: Values, positions: Values | None = None) -> RegressionLine:
    """Ordinary least squares of value against index.

    Degenerate inputs return sentinels instead of raising: fewer than two
    points give slope 0 and R² 0; a constant series gives slope 0 and R² 1.

    Args:
        values: Observations
        positions: Bar position of each observation (default: 0..n-1)
    """
    y = _as_array(values)
    n = y.size
    if n == 0:
        return RegressionLine(slope=0.0, intercept=0.0, r_squared=0.0)
    if n < 2:
        return RegressionLine(slope=0.0, intercept=float(y[0]), r_squared=0.0)
    if np.ptp(y) == 0:
        return RegressionLine(slope=0.0, intercept=float(y[0]), r_squared=1.0)

    x = np.arange(n, dtype=float) if positions is None else _as_array(positions)
    if x.size != n:
        raise ValueError(f"positions has {x.size} entries for {n} values")
    if np.ptp(x) == 0:
        return RegressionLine(slope=0.0, intercept=float(y.mean()), r_squared=0.0)
    x_mean = x.mean()
    y_mean = y.mean()
    slope = float(((x - x_mean) * (y - y_mean)).sum() / ((x - x_mean) ** 2).sum())
    intercept = float(y_mean - slope * x_mean)

    ss_total = float(((y - y_mean) ** 2).sum())
    ss_residual = float(((y - (slope * x + intercept)) ** 2).sum())
    r_squared = 1.0 - ss_residual / ss_total if ss_total > 0 else 1.0
    return RegressionLine(slope=slope, intercept=intercept, r_squared=r_squared)
