"""
Breakout analysis pipeline.

Runs validation, indicators, pattern recognition, fusion, the risk layer and
entry analysis over one price series:

    >>> from breakout import analyze
    >>> result = analyze(bars, symbol="AAPL")
    >>> result.signal.direction, result.signal.probability
    (<Direction.LONG: 'LONG'>, 75.0)

The public series is newest-first; it is converted once into an oldest-first
frame and never modified.
"""

from collections.abc import Sequence
from dataclasses import dataclass

import pandas as pd

from breakout.analysis import IndicatorSnapshot, PatternAnalysis, PatternRecognizer, TechnicalAnalyzer
from breakout.config import Settings, get_settings
from breakout.data import BarValidator, DataQualityReport, PriceBar, bars_to_frame
from breakout.errors import InsufficientDataError
from breakout.trading import (
    BreakoutDecisionEngine,
    BreakoutSignal,
    EntryAnalysis,
    EntryAnalyzer,
    RiskManager,
    StopLossAnalysis,
    TradePlan,
)
from breakout.utils import LogConfig, SerializableMixin, add_context, get_logger, setup_logging

logger = get_logger(__name__)


@dataclass(frozen=True)
class AnalysisResult(SerializableMixin):
    """
    Complete analysis of one series.

    Attributes:
        symbol: Optional ticker the series belongs to
        bars: Number of bars analyzed
        quality: Soft data quality findings
        indicators: Indicator snapshot for the latest bar
        patterns: Pattern analysis over the recent window
        signal: Fused breakout signal
        stop_loss: Stop-loss methodologies and selected levels
        trade_plan: Sized trade plan for the signal
        entries: Conservative and aggressive entry setups
    """

    symbol: str | None
    bars: int
    quality: DataQualityReport
    indicators: IndicatorSnapshot
    patterns: PatternAnalysis
    signal: BreakoutSignal
    stop_loss: StopLossAnalysis
    trade_plan: TradePlan
    entries: EntryAnalysis


class BreakoutAnalyzer:
    """
    End-to-end breakout analyzer.

    Holds only the frozen settings and stateless components, so a single
    instance can serve concurrent callers.
    """

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self.validator = BarValidator()
        self.recognizer = PatternRecognizer(self.settings.patterns)
        self.engine = BreakoutDecisionEngine(self.settings.fusion)
        self.risk_manager = RiskManager(self.settings.risk)
        self.entry_analyzer = EntryAnalyzer(self.settings.entry)

    def analyze(self, series: Sequence[PriceBar], symbol: str | None = None) -> AnalysisResult:
        """
        Analyze a newest-first bar series.

        Args:
            series: Bars ordered most recent first
            symbol: Optional ticker used for log context and the result

        Returns:
            AnalysisResult

        Raises:
            InsufficientDataError: If the series is shorter than the minimum
            InvalidBarError: If any bar violates an OHLCV invariant
        """
        self._check_length(len(series))
        return self.analyze_frame(bars_to_frame(series), symbol=symbol)

    def analyze_frame(self, frame: pd.DataFrame, symbol: str | None = None) -> AnalysisResult:
        """
        Analyze an oldest-first OHLCV frame.

        The frame is copied; the caller's object is left untouched.
        """
        frame = frame.reset_index(drop=True).copy()
        self._check_length(len(frame))

        with add_context(symbol=symbol):
            quality = self.validator.validate(frame)

            indicators = TechnicalAnalyzer(frame, self.settings.indicators).calculate_all()
            patterns = self.recognizer.analyze(frame)
            signal = self.engine.evaluate(indicators, patterns)
            plan, stops = self.risk_manager.generate_trade_plan(frame, indicators, patterns, signal)
            entries = self.entry_analyzer.analyze(frame, indicators, stops)

            logger.info(
                "analysis_completed",
                bars=len(frame),
                direction=signal.direction.value,
                probability=round(signal.probability, 2),
                dominant_pattern=str(patterns.dominant.pattern_type) if patterns.dominant else None,
                quality_score=round(quality.quality_score, 2),
                valid_entry=entries.has_valid_entry,
            )

        return AnalysisResult(
            symbol=symbol,
            bars=len(frame),
            quality=quality,
            indicators=indicators,
            patterns=patterns,
            signal=signal,
            stop_loss=stops,
            trade_plan=plan,
            entries=entries,
        )

    def _check_length(self, received: int) -> None:
        required = self.settings.indicators.min_bars
        if received < required:
            logger.warning("insufficient_data", required=required, received=received)
            raise InsufficientDataError(required=required, received=received)


def analyze(
    series: Sequence[PriceBar],
    *,
    symbol: str | None = None,
    settings: Settings | None = None,
) -> AnalysisResult:
    """
    Analyze a newest-first bar series with a one-off analyzer.

    Args:
        series: Bars ordered most recent first
        symbol: Optional ticker
        settings: Settings override (default: global settings)

    Returns:
        AnalysisResult
    """
    return BreakoutAnalyzer(settings).analyze(series, symbol=symbol)


def configure_logging(settings: Settings | None = None, **overrides) -> None:
    """
    Configure structlog from ``settings.logging``.

    Reads the BREAKOUT_LOG_* level, format and file path. Call once at
    application startup, before the first analysis.

    Args:
        settings: Settings override (default: global settings)
        **overrides: Extra LogConfig fields, e.g. ``console_output=False``
    """
    settings = settings or get_settings()
    setup_logging(LogConfig.from_settings(settings.logging, **overrides))
    logger.debug(
        "logging_configured",
        level=settings.logging.level,
        format=settings.logging.format,
        file_path=settings.logging.file_path,
    )
