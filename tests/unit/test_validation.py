"""
Unit tests for the price bar model, series conversion and bar validation.
"""

from dataclasses import replace
from datetime import date, datetime
import warnings

import numpy as np
import pytest

from breakout.data import BarValidator, DataQualityReport, PriceBar, bars_to_frame, frame_to_bars
from breakout.errors import InsufficientDataError, InvalidBarError


@pytest.fixture
def validator():
    return BarValidator()


@pytest.fixture
def clean_frame(make_frame):
    return make_frame([100.0 + 0.5 * i for i in range(30)])


@pytest.mark.unit
class TestPriceBar:
    """Tests for PriceBar construction and serialization."""

    def test_from_dict_with_string_date(self):
        bar = PriceBar.from_dict(
            {"date": "2024-03-01", "open": 10, "high": 11, "low": 9, "close": 10.5, "volume": 1000}
        )
        assert bar.date == date(2024, 3, 1)
        assert bar.close == 10.5
        assert isinstance(bar.open, float)

    def test_from_dict_with_timestamp_key(self):
        bar = PriceBar.from_dict(
            {
                "timestamp": datetime(2024, 3, 1, 16, 0),
                "open": 10,
                "high": 11,
                "low": 9,
                "close": 10.5,
                "volume": 1000.0,
            }
        )
        assert bar.date == date(2024, 3, 1)
        assert bar.volume == 1000

    def test_to_dict(self):
        bar = PriceBar(date(2024, 3, 1), 10.0, 11.0, 9.0, 10.5, 1000)
        assert bar.to_dict() == {
            "date": "2024-03-01",
            "open": 10.0,
            "high": 11.0,
            "low": 9.0,
            "close": 10.5,
            "volume": 1000,
        }


@pytest.mark.unit
class TestSeriesConversion:
    """Tests for the newest-first to oldest-first boundary."""

    def test_reverses_order(self, make_bars):
        bars = make_bars([100.0, 101.0, 102.0])

        frame = bars_to_frame(bars)

        assert bars[0].close == 102.0
        assert frame["close"].tolist() == [100.0, 101.0, 102.0]
        assert frame["timestamp"].is_monotonic_increasing
        assert list(frame.index) == [0, 1, 2]

    def test_input_not_modified(self, make_bars):
        bars = make_bars([100.0, 101.0, 102.0])
        snapshot = list(bars)

        bars_to_frame(bars)

        assert bars == snapshot

    def test_round_trip(self, clean_frame):
        frame = bars_to_frame(frame_to_bars(clean_frame))

        assert np.allclose(frame["close"], clean_frame["close"])
        assert (frame["timestamp"] == clean_frame["timestamp"]).all()


@pytest.mark.unit
class TestBarValidator:
    """Tests for hard invariants and soft quality findings."""

    def test_clean_series(self, validator, clean_frame):
        report = validator.validate(clean_frame)

        assert isinstance(report, DataQualityReport)
        assert report.is_clean
        assert report.quality_score == 100.0
        assert report.total_rows == 30

    @pytest.mark.parametrize(
        "column,value,message",
        [
            ("high", 50.0, "High is below"),
            ("low", 106.0, "Low is above"),
            ("close", -1.0, "positive"),
            ("volume", -5.0, "non-negative"),
            ("open", float("nan"), "NaN"),
        ],
    )
    def test_hard_violations(self, validator, clean_frame, column, value, message):
        frame = clean_frame.copy()
        frame.loc[12, column] = value

        with pytest.raises(InvalidBarError, match=message) as exc_info:
            validator.validate(frame)

        assert exc_info.value.index == 12
        assert exc_info.value.code == "INVALID_BAR"

    def test_duplicate_dates(self, validator, clean_frame):
        frame = clean_frame.copy()
        frame.loc[5, "timestamp"] = frame.loc[4, "timestamp"]

        with pytest.raises(InvalidBarError, match="strictly increasing") as exc_info:
            validator.validate(frame)

        assert exc_info.value.index == 5

    def test_unsorted_newest_first_frame(self, validator, clean_frame):
        frame = clean_frame.iloc[::-1].reset_index(drop=True)

        with pytest.raises(InvalidBarError):
            validator.validate(frame)

    def test_missing_column(self, validator, clean_frame):
        with pytest.raises(InvalidBarError, match="Missing required columns"):
            validator.validate(clean_frame.drop(columns=["timestamp"]))

    def test_empty_frame(self, validator, clean_frame):
        with pytest.raises(InsufficientDataError):
            validator.validate(clean_frame.iloc[0:0])

    def test_soft_findings_do_not_raise(self, validator, make_frame):
        closes = [100.0] * 20 + [150.0] + [100.0] * 9
        volumes = [100_000.0] * 29 + [5_000_000.0]

        report = validator.validate(make_frame(closes, volumes))

        assert not report.is_clean
        assert report.outliers_detected >= 3
        assert report.quality_score < 100.0
        assert "Outliers" in str(report)

    def test_gap_detection(self, validator, clean_frame):
        frame = clean_frame.copy()
        frame.loc[15, "open"] = frame.loc[14, "close"] * 1.05
        frame.loc[15, "high"] = max(frame.loc[15, "high"], frame.loc[15, "open"])

        report = validator.validate(frame)

        assert report.gaps_detected == 1

    def test_error_serialization(self):
        error = InvalidBarError("High is below low", index=3, violations=1)
        assert error.to_dict() == {
            "code": "INVALID_BAR",
            "message": "High is below low",
            "metadata": {"index": 3, "violations": 1},
        }

    def test_near_constant_series_skips_zscore(self, validator, make_frame):
        frame = make_frame([100.0] * 29 + [100.0 + 1e-13])

        with warnings.catch_warnings():
            warnings.simplefilter("error", RuntimeWarning)
            report = validator.validate(frame)

        assert report.outliers_detected == 0
        assert report.is_clean

    def test_missing_date_is_soft_finding(self, validator, make_bars):
        bars = make_bars([100.0 + 0.5 * i for i in range(30)])
        bars[5] = replace(bars[5], date=None)

        report = validator.validate(bars_to_frame(bars))

        assert report.missing_dates == 1
        assert not report.is_clean
        assert "without a date" in report.issues[-1]
        assert report.quality_score == pytest.approx(100.0 * (1 - 1 / 30))
        assert "Missing Dates: 1" in str(report)
