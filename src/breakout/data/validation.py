"""
Price bar validation and data quality checks.

Hard violations (broken OHLC ordering, non-positive prices, negative volume,
non-finite values, unsorted or duplicate dates) raise InvalidBarError before
any indicator runs. Soft findings (statistical outliers, oversized single-bar
moves, volume spikes, opening gaps) are collected into a DataQualityReport
and logged, but never abort an analysis.
"""

from dataclasses import dataclass, field

import numpy as np
import pandas as pd
from scipy import stats

from breakout.data.bars import OHLCV_COLUMNS
from breakout.errors import InsufficientDataError, InvalidBarError
from breakout.utils import get_logger

logger = get_logger(__name__)

PRICE_COLUMNS = ["open", "high", "low", "close"]
ZSCORE_MIN_RELATIVE_STD = 1e-12


@dataclass
class DataQualityReport:
    """
    Soft data quality findings for a validated series.

    Attributes:
        total_rows: Number of bars inspected
        outliers_detected: Bars flagged by z-score, jump or volume checks
        gaps_detected: Opening gaps larger than the gap threshold
        missing_dates: Bars without a session date
        quality_score: 0-100, 100 meaning no findings
        issues: Human-readable descriptions
    """

    total_rows: int
    outliers_detected: int = 0
    gaps_detected: int = 0
    missing_dates: int = 0
    quality_score: float = 100.0
    issues: list[str] = field(default_factory=list)

    @property
    def is_clean(self) -> bool:
        return not self.issues

    def __str__(self) -> str:
        return (
            f"Data Quality Report:\n"
            f"  Total Rows: {self.total_rows}\n"
            f"  Quality Score: {self.quality_score:.2f}%\n"
            f"  Outliers: {self.outliers_detected}\n"
            f"  Gaps: {self.gaps_detected}\n"
            f"  Missing Dates: {self.missing_dates}\n"
            f"  Issues: {len(self.issues)}"
        )


class BarValidator:
    """
    Validator for oldest-first OHLCV frames.

    Attributes:
        outlier_zscore_threshold: Z-score above which a price is an outlier
        max_single_bar_change: Close-to-close move flagged as a jump
        volume_outlier_multiplier: Volume this many times the median is a spike
        gap_threshold: Close-to-next-open gap flagged as significant
    """

    def __init__(
        self,
        outlier_zscore_threshold: float = 4.0,
        max_single_bar_change: float = 0.20,
        volume_outlier_multiplier: float = 10.0,
        gap_threshold: float = 0.02,
    ):
        self.outlier_zscore_threshold = outlier_zscore_threshold
        self.max_single_bar_change = max_single_bar_change
        self.volume_outlier_multiplier = volume_outlier_multiplier
        self.gap_threshold = gap_threshold

    def validate(self, df: pd.DataFrame) -> DataQualityReport:
        """
        Check hard invariants, then collect soft quality findings.

        Args:
            df: Oldest-first frame with timestamp and OHLCV columns

        Returns:
            DataQualityReport with soft findings

        Raises:
            InvalidBarError: If any bar violates an OHLCV invariant
            InsufficientDataError: If the frame is empty
        """
        missing_cols = [col for col in ["timestamp", *OHLCV_COLUMNS] if col not in df.columns]
        if missing_cols:
            raise InvalidBarError(f"Missing required columns: {missing_cols}")
        if df.empty:
            raise InsufficientDataError(required=1, received=0, context="validation")

        self._check_integrity(df)

        issues: list[str] = []
        outliers = self._detect_outliers(df)
        if outliers:
            issues.append(f"Found {outliers} outliers")
        gaps = self._detect_gaps(df)
        if gaps:
            issues.append(f"Found {gaps} significant price gaps")
        missing_dates = int(pd.to_datetime(df["timestamp"]).isna().sum())
        if missing_dates:
            issues.append(f"Found {missing_dates} bars without a date")

        total_rows = len(df)
        quality_score = max(
            0.0, 100.0 * (1 - (outliers + missing_dates) / total_rows) - (gaps / total_rows) * 5
        )
        report = DataQualityReport(
            total_rows=total_rows,
            outliers_detected=outliers,
            gaps_detected=gaps,
            missing_dates=missing_dates,
            quality_score=float(quality_score),
            issues=issues,
        )

        if issues:
            logger.warning(
                "data_quality_issues",
                rows=total_rows,
                outliers=outliers,
                gaps=gaps,
                missing_dates=missing_dates,
                quality_score=round(report.quality_score, 2),
            )
        return report

    def _check_integrity(self, df: pd.DataFrame) -> None:
        values = df[OHLCV_COLUMNS]
        non_finite = ~np.isfinite(values.to_numpy(dtype=float)).all(axis=1)
        self._raise_first(non_finite, "Bar contains NaN or infinite values")
        self._raise_first((df[PRICE_COLUMNS] <= 0).any(axis=1), "Prices must be positive")
        self._raise_first(df["volume"] < 0, "Volume must be non-negative")
        self._raise_first(df["high"] < df["low"], "High is below low")
        self._raise_first(
            df["high"] < df[["open", "close"]].max(axis=1), "High is below open or close"
        )
        self._raise_first(
            df["low"] > df[["open", "close"]].min(axis=1), "Low is above open or close"
        )

        timestamps = pd.to_datetime(df["timestamp"])
        self._raise_first(
            (timestamps.diff() <= pd.Timedelta(0)).fillna(False),
            "Bar dates must be strictly increasing (newest-first input, no duplicates)",
        )

    @staticmethod
    def _raise_first(mask: pd.Series | np.ndarray, message: str) -> None:
        positions = np.flatnonzero(np.asarray(mask, dtype=bool))
        if positions.size:
            index = int(positions[0])
            logger.error("invalid_bar", index=index, reason=message, violations=int(positions.size))
            raise InvalidBarError(message, index=index, violations=int(positions.size))

    def _detect_outliers(self, df: pd.DataFrame) -> int:
        """Count z-score outliers, sudden close jumps and volume spikes."""
        if len(df) < 3:
            return 0

        outliers = 0
        for col in PRICE_COLUMNS:
            values = df[col].to_numpy(dtype=float)
            # Near-constant columns lose all precision in the z-score
            if values.std() > ZSCORE_MIN_RELATIVE_STD * abs(values.mean()):
                z_scores = np.abs(stats.zscore(values))
                outliers += int((z_scores > self.outlier_zscore_threshold).sum())

        price_change = df["close"].pct_change().abs()
        outliers += int((price_change > self.max_single_bar_change).sum())

        median_volume = df["volume"].median()
        if median_volume > 0:
            outliers += int((df["volume"] > median_volume * self.volume_outlier_multiplier).sum())

        return outliers

    def _detect_gaps(self, df: pd.DataFrame) -> int:
        """Count gaps between a close and the next session's open."""
        if len(df) < 2:
            return 0
        gap = ((df["open"].shift(-1) - df["close"]) / df["close"]).abs()
        return int((gap > self.gap_threshold).sum())
