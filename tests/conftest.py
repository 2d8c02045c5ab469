"""
Shared pytest fixtures for the breakout engine test suite.

This module provides fixtures for:
- Synthetic bar builders (oldest-first frames, newest-first bar lists)
- Scenario series (steady uptrend breakout, Bollinger squeeze, flat market)
- Test settings overrides
"""

import math

import numpy as np
import pandas as pd
import pytest

from breakout.config import Settings
from breakout.data import PriceBar, frame_to_bars

# ============================================================================
# Pytest Configuration
# ============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "slow: Slow-running tests")


# ============================================================================
# Bar Builders
# ============================================================================


def build_frame(closes, volumes=None, start="2024-01-02") -> pd.DataFrame:
    """
    Build an oldest-first OHLCV frame from closes.

    Each bar opens at the previous close; the high and low sit 0.5% beyond
    the open/close body.
    """
    closes = np.asarray(closes, dtype=float)
    if volumes is None:
        volumes = np.full(closes.size, 100_000.0)
    opens = np.concatenate([[closes[0]], closes[:-1]])
    body_high = np.maximum(opens, closes)
    body_low = np.minimum(opens, closes)
    return pd.DataFrame(
        {
            "timestamp": pd.bdate_range(start=start, periods=closes.size),
            "open": opens,
            "high": body_high * 1.005,
            "low": body_low * 0.995,
            "close": closes,
            "volume": np.asarray(volumes, dtype=float),
        }
    )


@pytest.fixture
def make_frame():
    """Factory fixture returning ``build_frame``."""
    return build_frame


@pytest.fixture
def make_bars():
    """Factory fixture building a newest-first PriceBar list from closes."""

    def _make_bars(closes, volumes=None) -> list[PriceBar]:
        return frame_to_bars(build_frame(closes, volumes))

    return _make_bars


# ============================================================================
# Scenario Series
# ============================================================================


@pytest.fixture
def steady_uptrend_frame() -> pd.DataFrame:
    """50 bars rising 1% per bar with triple volume on the last 3."""
    closes = [100.0 * 1.01**i for i in range(50)]
    volumes = [100_000.0] * 47 + [300_000.0] * 3
    return build_frame(closes, volumes)


@pytest.fixture
def uptrend_breakout_frame() -> pd.DataFrame:
    """
    47 bars rising 1% per bar, then 3 bars rising 4% per bar on triple volume.

    A steady 1% climb keeps the close inside the upper Bollinger band; the
    4% bars push the final close above it with STRONG volume.
    """
    closes = [100.0 * 1.01**i for i in range(47)]
    for _ in range(3):
        closes.append(closes[-1] * 1.04)
    volumes = [100_000.0] * 47 + [300_000.0] * 3
    return build_frame(closes, volumes)


@pytest.fixture
def downtrend_breakdown_frame() -> pd.DataFrame:
    """Mirror of the uptrend breakout: steady decline then a 4% per bar drop."""
    closes = [200.0 * 0.99**i for i in range(47)]
    for _ in range(3):
        closes.append(closes[-1] * 0.96)
    volumes = [100_000.0] * 47 + [300_000.0] * 3
    return build_frame(closes, volumes)


@pytest.fixture
def squeeze_frame() -> pd.DataFrame:
    """25 bars oscillating +/-10 around 100, then 25 bars oscillating +/-1."""
    closes = [
        100.0 + (10.0 if i < 25 else 1.0) * math.sin(i * math.pi / 2) for i in range(50)
    ]
    return build_frame(closes)


@pytest.fixture
def flat_frame() -> pd.DataFrame:
    """50 identical closes at 100 inside a fixed 99-101 range."""
    frame = build_frame([100.0] * 50)
    frame["high"] = 101.0
    frame["low"] = 99.0
    return frame


@pytest.fixture
def random_walk_frame() -> pd.DataFrame:
    """Seeded geometric random walk of 250 bars."""
    rng = np.random.default_rng(42)
    closes = 100.0 * np.exp(np.cumsum(rng.normal(0.0005, 0.015, 250)))
    volumes = rng.integers(50_000, 150_000, 250)
    return build_frame(closes, volumes)


# ============================================================================
# Settings Fixtures
# ============================================================================


@pytest.fixture
def test_settings() -> Settings:
    """Default settings, isolated from any environment overrides."""
    return Settings()
