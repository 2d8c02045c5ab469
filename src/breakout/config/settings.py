"""
Configuration settings for the breakout engine.

Uses pydantic-settings for environment variable management with nested models
for the indicator, pattern, fusion, risk, entry and logging domains. Every
model is frozen: components receive an immutable record at construction and
never share mutable state between analyses.
"""

from collections.abc import Mapping
from functools import lru_cache
from types import MappingProxyType
from typing import Literal, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from breakout.config import constants as c


class IndicatorSettings(BaseSettings):
    """Indicator periods and thresholds."""

    min_bars: int = Field(default=c.MIN_ANALYSIS_BARS, ge=2, description="Minimum bars per analysis")
    rsi_period: int = Field(default=c.RSI_PERIOD, ge=1, description="RSI lookback")
    macd_fast: int = Field(default=c.MACD_FAST, ge=1, description="MACD fast EMA period")
    macd_slow: int = Field(default=c.MACD_SLOW, ge=2, description="MACD slow EMA period")
    macd_signal: int = Field(default=c.MACD_SIGNAL, ge=1, description="MACD signal period")
    bollinger_period: int = Field(default=c.BOLLINGER_PERIOD, ge=2, description="Bollinger SMA period")
    bollinger_std: float = Field(
        default=c.BOLLINGER_STD_MULTIPLIER, gt=0, description="Bollinger band width in sigmas"
    )
    squeeze_lookback: int = Field(
        default=c.SQUEEZE_LOOKBACK, ge=1, description="Prior bandwidths averaged for squeeze"
    )
    squeeze_ratio: float = Field(default=c.SQUEEZE_RATIO, gt=0, description="Squeeze trigger ratio")
    volatility_lookback: int = Field(
        default=c.VOLATILITY_LOOKBACK, ge=1, description="Bandwidth history for volatility state"
    )
    atr_period: int = Field(default=c.ATR_PERIOD, ge=1, description="ATR smoothing period")
    mfi_period: int = Field(default=c.MFI_PERIOD, ge=1, description="MFI lookback")
    ema_trend_period: int = Field(default=c.EMA_TREND_PERIOD, ge=1, description="Trend EMA period")
    sma_medium_period: int = Field(default=c.SMA_MEDIUM_PERIOD, ge=1, description="Medium SMA period")
    sma_long_period: int = Field(default=c.SMA_LONG_PERIOD, ge=1, description="Long SMA period")
    obv_lookback: int = Field(
        default=c.OBV_MOMENTUM_LOOKBACK, ge=1, description="OBV momentum lookback"
    )
    volume_average_period: int = Field(
        default=c.VOLUME_AVERAGE_PERIOD, ge=1, description="Relative volume averaging window"
    )
    volume_strong_ratio: float = Field(
        default=c.VOLUME_STRONG_RATIO, description="Relative volume % for STRONG"
    )
    volume_moderate_ratio: float = Field(
        default=c.VOLUME_MODERATE_RATIO, description="Relative volume % for MODERATE"
    )
    pivot_window: int = Field(default=c.PIVOT_WINDOW, ge=3, description="Pivot detection window")
    level_tolerance: float = Field(
        default=c.LEVEL_CLUSTER_TOLERANCE, ge=0, description="Support/resistance cluster tolerance"
    )
    fibonacci_ratios: tuple[float, ...] = Field(
        default=c.FIBONACCI_RATIOS, description="Retracement fractions below the swing high"
    )

    model_config = SettingsConfigDict(
        env_prefix="BREAKOUT_INDICATOR_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    @model_validator(mode="after")
    def check_periods(self) -> "IndicatorSettings":
        """Reject MACD periods that would invert the oscillator."""
        if self.macd_fast >= self.macd_slow:
            raise ValueError("macd_fast must be smaller than macd_slow")
        if self.volume_moderate_ratio > self.volume_strong_ratio:
            raise ValueError("volume_moderate_ratio must not exceed volume_strong_ratio")
        return self


class PatternSettings(BaseSettings):
    """Pattern recognition window and heuristics."""

    min_pattern_bars: int = Field(default=c.MIN_PATTERN_BARS, ge=3, description="Minimum window")
    max_pattern_bars: int = Field(default=c.MAX_PATTERN_BARS, ge=3, description="Maximum window")
    price_deviation: float = Field(
        default=c.PRICE_DEVIATION, gt=0, description="Consolidation range limit"
    )
    pole_fraction: float = Field(
        default=c.POLE_FRACTION, gt=0, lt=1, description="Window fraction used as the pole"
    )
    trend_strength_threshold: float = Field(
        default=c.TREND_STRENGTH_THRESHOLD, description="Same-sign return fraction for a trend"
    )
    strong_move_threshold: float = Field(
        default=c.STRONG_MOVE_THRESHOLD, description="Summed return for a pennant pole"
    )
    triangle_slope_tolerance: float = Field(
        default=c.TRIANGLE_SLOPE_TOLERANCE, description="Flat trendline tolerance"
    )

    model_config = SettingsConfigDict(
        env_prefix="BREAKOUT_PATTERN_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    @model_validator(mode="after")
    def check_window(self) -> "PatternSettings":
        if self.min_pattern_bars > self.max_pattern_bars:
            raise ValueError("min_pattern_bars must not exceed max_pattern_bars")
        return self


class FusionSettings(BaseSettings):
    """Breakout fusion weights and thresholds."""

    weights: Mapping[str, float] = Field(
        default_factory=lambda: dict(c.FUSION_WEIGHTS),
        validate_default=True,
        description="Weight per signal source (read-only)",
    )
    direction_threshold: float = Field(
        default=c.DIRECTION_THRESHOLD, gt=0, description="Score needed for LONG/SHORT"
    )
    moderate_volume_vote: float = Field(
        default=c.MODERATE_VOLUME_VOTE, description="Vote value of MODERATE volume"
    )
    min_probability: float = Field(default=c.MIN_PROBABILITY, description="Probability floor")
    max_probability: float = Field(default=c.MAX_PROBABILITY, description="Probability cap")

    model_config = SettingsConfigDict(
        env_prefix="BREAKOUT_FUSION_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    @field_validator("weights")
    @classmethod
    def check_weights(cls, value: Mapping[str, float]) -> Mapping[str, float]:
        """Weights must cover every source exactly once and sum to 1.0."""
        expected = set(c.FUSION_WEIGHTS)
        if set(value) != expected:
            raise ValueError(f"weights must have keys {sorted(expected)}")
        total = sum(value.values())
        if abs(total - 1.0) > 1e-9:
            raise ValueError(f"weights must sum to 1.0, got {total}")
        return MappingProxyType(dict(value))


class RiskSettings(BaseSettings):
    """Stop-loss methodology and position sizing parameters."""

    tight_atr_multiplier: float = Field(default=c.TIGHT_ATR_MULTIPLIER, gt=0)
    normal_atr_multiplier: float = Field(default=c.NORMAL_ATR_MULTIPLIER, gt=0)
    wide_atr_multiplier: float = Field(default=c.WIDE_ATR_MULTIPLIER, gt=0)
    short_term_period: int = Field(default=c.SHORT_TERM_PERIOD, ge=1)
    medium_term_period: int = Field(default=c.MEDIUM_TERM_PERIOD, ge=1)
    long_term_period: int = Field(default=c.LONG_TERM_PERIOD, ge=1)
    support_buffer: float = Field(default=c.SUPPORT_BUFFER, ge=0)
    resistance_buffer: float = Field(default=c.RESISTANCE_BUFFER, ge=0)
    high_volatility_threshold: float = Field(default=c.HIGH_VOLATILITY_THRESHOLD, gt=0)
    low_volatility_threshold: float = Field(default=c.LOW_VOLATILITY_THRESHOLD, gt=0)
    trailing_activation_threshold: float = Field(default=c.TRAILING_ACTIVATION_THRESHOLD, gt=0)
    trailing_step_size: float = Field(default=c.TRAILING_STEP_SIZE, gt=0)
    high_pattern_confidence: float = Field(default=c.HIGH_PATTERN_CONFIDENCE)
    capital: float = Field(default=c.DEFAULT_CAPITAL, gt=0, description="Account capital for sizing")
    risk_percent: float = Field(
        default=c.DEFAULT_RISK_PERCENT, gt=0, description="Capital risked per trade (%)"
    )
    max_risk_percent: float = Field(
        default=c.MAX_RISK_PERCENT, gt=0, description="Hard cap on risk per trade (%)"
    )

    model_config = SettingsConfigDict(
        env_prefix="BREAKOUT_RISK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    @model_validator(mode="after")
    def check_ordering(self) -> "RiskSettings":
        if not self.tight_atr_multiplier <= self.normal_atr_multiplier <= self.wide_atr_multiplier:
            raise ValueError("ATR multipliers must be ordered tight <= normal <= wide")
        if self.low_volatility_threshold >= self.high_volatility_threshold:
            raise ValueError("low_volatility_threshold must be below high_volatility_threshold")
        return self


class EntrySettings(BaseSettings):
    """Entry point thresholds for support pullbacks and breakouts."""

    lookback: int = Field(default=c.ENTRY_LOOKBACK, ge=2, description="Bars for levels and volume")
    dynamic_level_period: int = Field(
        default=c.DYNAMIC_LEVEL_EMA_PERIOD, ge=1, description="EMA period of dynamic levels"
    )
    conservative_volume_ratio: float = Field(default=c.ENTRY_VOLUME_CONSERVATIVE, gt=0)
    aggressive_volume_ratio: float = Field(default=c.ENTRY_VOLUME_AGGRESSIVE, gt=0)
    price_threshold: float = Field(
        default=c.ENTRY_PRICE_THRESHOLD, gt=0, description="Max distance from the trigger level"
    )
    min_rr_conservative: float = Field(default=c.MIN_RR_CONSERVATIVE, gt=0)
    min_rr_aggressive: float = Field(default=c.MIN_RR_AGGRESSIVE, gt=0)
    rsi_low: float = Field(default=c.ENTRY_RSI_LOW, ge=0, le=100)
    rsi_high: float = Field(default=c.ENTRY_RSI_HIGH, ge=0, le=100)

    model_config = SettingsConfigDict(
        env_prefix="BREAKOUT_ENTRY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    @model_validator(mode="after")
    def check_bands(self) -> "EntrySettings":
        if self.rsi_low >= self.rsi_high:
            raise ValueError("rsi_low must be below rsi_high")
        return self


class LoggingSettings(BaseSettings):
    """Logging configuration settings."""

    level: str = Field(default="INFO", description="Logging level")
    format: Literal["json", "pretty"] = Field(default="pretty", description="Renderer")
    file_path: Optional[str] = Field(default=None, description="Optional log file path")

    model_config = SettingsConfigDict(
        env_prefix="BREAKOUT_LOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )


class Settings(BaseSettings):
    """
    Main settings class combining all configuration domains.

    Loads configuration from environment variables and .env file.
    """

    indicators: IndicatorSettings = Field(default_factory=IndicatorSettings)
    patterns: PatternSettings = Field(default_factory=PatternSettings)
    fusion: FusionSettings = Field(default_factory=FusionSettings)
    risk: RiskSettings = Field(default_factory=RiskSettings)
    entry: EntrySettings = Field(default_factory=EntrySettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Singleton Settings instance
    """
    return Settings()
