"""
Unit tests for stop-loss calculation and position sizing.

Tests each stop methodology, tier and optimal-tier selection, the weighted
recommendation, trailing parameters, position sizing and trade plans for
long, short and neutral signals.
"""

from dataclasses import replace
import math

import numpy as np
import pytest

from breakout.analysis import PatternRecognizer, TechnicalAnalyzer
from breakout.analysis.indicators import SupportResistance
from breakout.analysis.patterns import NOT_DETECTED, PatternAnalysis, PatternMatch
from breakout.config import FusionSettings, PatternSettings, RiskSettings
from breakout.config.constants import TRAILING_ACTIVATION_BY_TIER
from breakout.enums import (
    Direction,
    PatternType,
    RiskLevel,
    StopTier,
    Timeframe,
    TradeConfidence,
    TrendSignal,
    VolumeStrength,
)
from breakout.trading.decision_engine import BreakoutDecisionEngine, BreakoutSignal
from breakout.trading.risk import (
    PATTERN_STOP_RULES,
    TIER_TIMEFRAMES,
    RiskManager,
    StopLossCalculator,
    StopLossLevel,
    TierStop,
)

# =============================================================================
# Fixtures
# =============================================================================


NO_PATTERNS = PatternAnalysis(
    bull_flag=NOT_DETECTED,
    bear_flag=NOT_DETECTED,
    pennant=NOT_DETECTED,
    triangle=NOT_DETECTED,
    head_and_shoulders=NOT_DETECTED,
)


def dominant(pattern_type, confidence):
    """Pattern analysis with a single dominant formation."""
    match = PatternMatch(pattern_type=pattern_type, detected=True, confidence=confidence)
    return replace(NO_PATTERNS, dominant=match)


def empty_tiers():
    return {tier.value: TierStop(tier=tier, stop=None, timeframe=TIER_TIMEFRAMES[tier]) for tier in StopTier}


def make_signal(direction=Direction.LONG, score=0.75):
    return BreakoutSignal(
        direction=direction,
        probability=abs(score) * 100,
        confidence=abs(score) * 100,
        timeframe=Timeframe.MEDIUM,
        weighted_score=score,
    )


@pytest.fixture
def calculator():
    """Create StopLossCalculator with default settings."""
    return StopLossCalculator(RiskSettings())


@pytest.fixture
def risk_manager():
    """Create RiskManager with default settings."""
    return RiskManager(RiskSettings())


@pytest.fixture
def flat_snapshot(flat_frame):
    return TechnicalAnalyzer(flat_frame).calculate_all()


def full_readings(frame):
    indicators = TechnicalAnalyzer(frame).calculate_all()
    patterns = PatternRecognizer(PatternSettings()).analyze(frame)
    signal = BreakoutDecisionEngine(FusionSettings()).evaluate(indicators, patterns)
    return indicators, patterns, signal


# =============================================================================
# Stop Methodologies
# =============================================================================


@pytest.mark.unit
class TestATRStops:
    """Tests for ATR-multiple stops."""

    def test_long_stops(self, calculator):
        stops = calculator.atr_stops(100.0, 2.0)

        assert stops["tight"].price == pytest.approx(97.0)
        assert stops["normal"].price == pytest.approx(96.0)
        assert stops["wide"].price == pytest.approx(94.0)
        assert stops["tight"].source == "ATR_TIGHT"
        assert stops["wide"].percentage == pytest.approx(6.0)
        assert stops["normal"].distance == pytest.approx(4.0)

    def test_short_stops_above_entry(self, calculator):
        stops = calculator.atr_stops(100.0, 2.0, is_short=True)

        assert stops["tight"].price == pytest.approx(103.0)
        assert stops["wide"].price == pytest.approx(106.0)

    @pytest.mark.parametrize("atr", [0.0, -1.0, float("nan")])
    def test_undefined_atr_gives_no_stops(self, calculator, atr):
        assert calculator.atr_stops(100.0, atr) == {}


@pytest.mark.unit
class TestTimeStops:
    """Tests for time-based extremes."""

    def test_lowest_low_per_lookback(self, calculator, make_frame):
        closes = [100.0 + i for i in range(30)]
        frame = make_frame(closes)
        entry = closes[-1]

        stops = calculator.time_stops(frame, entry)

        assert stops["short"].price == pytest.approx(frame["low"].iloc[-5:].min())
        assert stops["medium"].price == pytest.approx(frame["low"].iloc[-10:].min())
        assert stops["long"].price == pytest.approx(frame["low"].iloc[-20:].min())
        assert [s.source for s in stops.values()] == ["TIME_5", "TIME_10", "TIME_20"]

    def test_highest_high_for_short(self, calculator, make_frame):
        frame = make_frame([130.0 - i for i in range(30)])

        stops = calculator.time_stops(frame, 101.0, is_short=True)

        assert stops["short"].price == pytest.approx(frame["high"].iloc[-5:].max())
        assert stops["short"].price > 101.0

    def test_short_history(self, calculator, make_frame):
        stops = calculator.time_stops(make_frame([100.0] * 7), 100.0)

        assert stops["short"] is not None
        assert stops["medium"] is None
        assert stops["long"] is None


@pytest.mark.unit
class TestTechnicalStops:
    """Tests for buffered support/resistance stops."""

    def test_buffered_levels(self, calculator, flat_snapshot):
        snapshot = replace(flat_snapshot, levels=SupportResistance(supports=[95.0], resistances=[110.0]))

        stops = calculator.technical_stops(100.0, snapshot)

        assert stops["support"].price == pytest.approx(95.0 * 0.995)
        assert stops["resistance"].price == pytest.approx(110.0 * 1.005)

    def test_missing_levels(self, calculator, flat_snapshot):
        snapshot = replace(flat_snapshot, levels=SupportResistance(supports=[], resistances=[]))

        stops = calculator.technical_stops(100.0, snapshot)

        assert stops == {"support": None, "resistance": None}


@pytest.mark.unit
class TestVolatilityStop:
    """Tests for the historical volatility stop."""

    def test_constant_prices(self, calculator, flat_frame):
        result = calculator.volatility_stop(flat_frame, 100.0)

        assert result.volatility == 0.0
        assert result.level == RiskLevel.LOW
        assert result.stop.price == 100.0

    def test_high_volatility(self, calculator, make_frame):
        frame = make_frame([100.0, 110.0] * 15)

        result = calculator.volatility_stop(frame, 110.0)

        assert result.volatility == pytest.approx(math.log(1.1), rel=1e-2)
        assert result.level == RiskLevel.HIGH
        assert result.stop.price == pytest.approx(110.0 * (1 - result.volatility))

    def test_short_direction(self, calculator, make_frame):
        frame = make_frame([100.0, 102.0] * 15)

        result = calculator.volatility_stop(frame, 102.0, is_short=True)

        assert result.stop.price > 102.0
        assert result.level == RiskLevel.MEDIUM


@pytest.mark.unit
class TestPatternStop:
    """Tests for pattern-specific ATR stops."""

    def test_full_confidence_head_and_shoulders(self, calculator):
        stop = calculator.pattern_stop(100.0, 2.0, dominant(PatternType.HEAD_AND_SHOULDERS, 100.0))

        assert stop.price == pytest.approx(97.0)
        assert stop.source == "PATTERN_HEAD_AND_SHOULDERS"

    def test_low_confidence_shrinks_multiplier(self, calculator):
        stop = calculator.pattern_stop(100.0, 2.0, dominant(PatternType.HEAD_AND_SHOULDERS, 35.0))

        # 1.5 * (0.35 / 0.7) = 0.75 ATR
        assert stop.price == pytest.approx(98.5)

    def test_triangle_short(self, calculator):
        stop = calculator.pattern_stop(
            100.0, 2.0, dominant(PatternType.DESCENDING_TRIANGLE, 90.0), is_short=True
        )
        assert stop.price == pytest.approx(103.5)

    def test_every_pattern_has_a_rule(self):
        assert set(PATTERN_STOP_RULES) == set(PatternType)

    def test_no_pattern(self, calculator):
        assert calculator.pattern_stop(100.0, 2.0, NO_PATTERNS) is None

    def test_zero_atr(self, calculator):
        assert calculator.pattern_stop(100.0, 0.0, dominant(PatternType.BULL_FLAG, 90.0)) is None


# =============================================================================
# Selection
# =============================================================================


@pytest.mark.unit
class TestTierSelection:
    """Tests for tier stops and the optimal tier."""

    def test_tier_takes_widest_long_stop(self, calculator):
        candidates = [
            StopLossLevel(price=96.0, distance=4.0, percentage=4.0, source="ATR_NORMAL"),
            StopLossLevel(price=94.5, distance=5.5, percentage=5.5, source="TIME_10"),
            None,
        ]

        tier = calculator._tier(StopTier.MODERATE, candidates, is_short=False)

        assert tier.stop.source == "TIME_10"
        assert tier.timeframe == "MEDIUM_TERM"
        assert tier.candidates == ["ATR_NORMAL", "TIME_10"]

    def test_tier_takes_widest_short_stop(self, calculator):
        candidates = [
            StopLossLevel(price=104.0, distance=4.0, percentage=4.0, source="ATR_NORMAL"),
            StopLossLevel(price=106.0, distance=6.0, percentage=6.0, source="RESISTANCE"),
        ]

        tier = calculator._tier(StopTier.CONSERVATIVE, candidates, is_short=True)

        assert tier.stop.source == "RESISTANCE"

    def test_empty_tier(self, calculator):
        tier = calculator._tier(StopTier.AGGRESSIVE, [None, None], is_short=False)
        assert tier.stop is None
        assert tier.candidates == []

    @pytest.mark.parametrize(
        "atr,patterns,tier,reason",
        [
            (2.0, dominant(PatternType.BULL_FLAG, 80.0), StopTier.CONSERVATIVE, "HIGH_PATTERN_CONFIDENCE"),
            (5.0, NO_PATTERNS, StopTier.CONSERVATIVE, "HIGH_VOLATILITY"),
            (0.5, NO_PATTERNS, StopTier.AGGRESSIVE, "LOW_VOLATILITY"),
            (2.0, NO_PATTERNS, StopTier.MODERATE, "NORMAL_CONDITIONS"),
            (0.5, dominant(PatternType.BULL_FLAG, 50.0), StopTier.AGGRESSIVE, "LOW_VOLATILITY"),
        ],
    )
    def test_optimal_tier(self, calculator, atr, patterns, tier, reason):
        optimal = calculator.optimal_tier(100.0, atr, patterns, empty_tiers())

        assert optimal.tier == tier
        assert optimal.reason == reason
        assert optimal.timeframe == TIER_TIMEFRAMES[tier]


@pytest.mark.unit
class TestRecommendedStop:
    """Tests for the weighted stop recommendation."""

    def _levels(self):
        return (
            StopLossLevel(price=96.0, distance=4.0, percentage=4.0, source="ATR_NORMAL"),
            StopLossLevel(price=97.0, distance=3.0, percentage=3.0, source="SUPPORT"),
            StopLossLevel(price=98.0, distance=2.0, percentage=2.0, source="VOLATILITY"),
        )

    def test_atr_preferred_in_uptrend(self, calculator):
        result = calculator.recommended_stop(*self._levels(), TrendSignal.BULLISH)

        assert result.source == "ATR"
        assert result.price == 96.0
        assert result.weight == pytest.approx(1.2)

    def test_downtrend_scaling(self, calculator):
        result = calculator.recommended_stop(*self._levels(), TrendSignal.BEARISH)
        assert result.weight == pytest.approx(0.8)

    def test_technical_without_atr(self, calculator):
        _, technical, volatility = self._levels()

        result = calculator.recommended_stop(None, technical, volatility, TrendSignal.NEUTRAL)

        assert result.source == "Technical"
        assert result.weight == pytest.approx(0.8)

    def test_no_candidates(self, calculator):
        assert calculator.recommended_stop(None, None, None, TrendSignal.NEUTRAL) is None


@pytest.mark.unit
class TestTrailingStop:
    """Tests for trailing stop parameters."""

    def test_normal_conditions(self, calculator):
        trailing = calculator.trailing_stop(100.0, 2.0, NO_PATTERNS)

        assert trailing.distance == pytest.approx(4.0)
        assert trailing.activation_threshold == pytest.approx(0.02)
        assert trailing.step_size == pytest.approx(0.005)
        assert trailing.adjustment_factors == {"volatility": 1.0, "pattern": 1.0}

    def test_high_volatility_widens(self, calculator):
        trailing = calculator.trailing_stop(100.0, 5.0, NO_PATTERNS)

        assert trailing.adjustment_factors["volatility"] == 1.5
        assert trailing.distance == pytest.approx(15.0)
        assert trailing.activation_threshold == pytest.approx(0.03)

    def test_low_volatility_tightens(self, calculator):
        trailing = calculator.trailing_stop(100.0, 0.5, NO_PATTERNS)
        assert trailing.adjustment_factors["volatility"] == 0.75

    @pytest.mark.parametrize(
        "confidence,factor",
        [(100.0, 0.75), (50.0, 1.0), (10.0, 1.2), (0.0, 1.25)],
    )
    def test_pattern_factor(self, calculator, confidence, factor):
        trailing = calculator.trailing_stop(100.0, 2.0, dominant(PatternType.BULL_FLAG, confidence))

        assert trailing.adjustment_factors["pattern"] == pytest.approx(factor)
        assert trailing.distance == pytest.approx(4.0 * factor)


@pytest.mark.unit
class TestStopLossAnalysis:
    """Tests for the combined calculation."""

    def test_long_geometry(self, calculator, uptrend_breakout_frame):
        indicators, patterns, _ = full_readings(uptrend_breakout_frame)

        analysis = calculator.calculate(uptrend_breakout_frame, indicators, patterns, Direction.LONG)

        assert analysis.entry == indicators.price
        for tier in analysis.tiers.values():
            assert tier.stop.price < analysis.entry
        conservative = analysis.tiers["CONSERVATIVE"]
        assert conservative.stop.price <= analysis.tiers["AGGRESSIVE"].stop.price
        assert analysis.optimal.stop is not None
        assert analysis.pattern is None

    def test_short_geometry(self, calculator, downtrend_breakdown_frame):
        indicators, patterns, _ = full_readings(downtrend_breakdown_frame)

        analysis = calculator.calculate(downtrend_breakdown_frame, indicators, patterns, Direction.SHORT)

        assert analysis.direction == Direction.SHORT
        for name in ("tight", "normal", "wide"):
            assert analysis.atr[name].price > analysis.entry
        for tier in analysis.tiers.values():
            assert tier.stop.price > analysis.entry

    def test_to_dict(self, calculator, flat_frame, flat_snapshot):
        data = calculator.calculate(flat_frame, flat_snapshot, NO_PATTERNS).to_dict()

        assert data["direction"] == "LONG"
        assert set(data["tiers"]) == {"CONSERVATIVE", "MODERATE", "AGGRESSIVE"}
        assert data["pattern"] is None


# =============================================================================
# Position Sizing
# =============================================================================


@pytest.mark.unit
class TestPositionSizing:
    """Tests for fixed-fractional position sizing."""

    @pytest.mark.parametrize(
        "confidence,expected",
        [
            (TradeConfidence.HIGH, 500),
            (TradeConfidence.MEDIUM, 375),
            (TradeConfidence.LOW, 250),
        ],
    )
    def test_confidence_scaling(self, risk_manager, confidence, expected):
        size = risk_manager.calculate_position_size(100.0, 98.0, capital=100_000.0, confidence=confidence)
        assert size == expected

    def test_risk_capped(self, risk_manager):
        size = risk_manager.calculate_position_size(
            100.0, 98.0, capital=100_000.0, risk_percent=5.0, confidence=TradeConfidence.HIGH
        )
        assert size == 1000

    def test_short_stop_above_entry(self, risk_manager):
        size = risk_manager.calculate_position_size(100.0, 102.0, confidence=TradeConfidence.HIGH)
        assert size == 500

    def test_zero_distance(self, risk_manager):
        assert risk_manager.calculate_position_size(100.0, 100.0) == 0

    def test_rounds_down(self, risk_manager):
        size = risk_manager.calculate_position_size(
            100.0, 97.0, capital=10_000.0, confidence=TradeConfidence.MEDIUM
        )
        # floor(100 / 3) = 33, then floor(33 * 0.75) = 24
        assert size == 24


@pytest.mark.unit
class TestTradeConfidence:
    """Tests for confirmation counting."""

    def test_no_confirmations(self, risk_manager, flat_snapshot):
        confidence = risk_manager.determine_trade_confidence(
            flat_snapshot, NO_PATTERNS, make_signal(Direction.NEUTRAL, 0.0)
        )
        assert confidence == TradeConfidence.LOW

    def test_two_confirmations(self, risk_manager, flat_snapshot):
        snapshot = replace(
            flat_snapshot,
            volume=replace(flat_snapshot.volume, strength=VolumeStrength.STRONG),
            atr=replace(flat_snapshot.atr, value=3.0),
        )

        confidence = risk_manager.determine_trade_confidence(snapshot, NO_PATTERNS, make_signal(score=0.75))

        assert confidence == TradeConfidence.MEDIUM

    def test_all_confirmations(self, risk_manager, flat_snapshot):
        snapshot = replace(
            flat_snapshot,
            volume=replace(flat_snapshot.volume, strength=VolumeStrength.MODERATE),
            atr=replace(flat_snapshot.atr, value=1.0),
        )

        confidence = risk_manager.determine_trade_confidence(
            snapshot, dominant(PatternType.BULL_FLAG, 90.0), make_signal(score=-0.8)
        )

        assert confidence == TradeConfidence.HIGH


# =============================================================================
# Trade Plans
# =============================================================================


@pytest.mark.unit
class TestTradePlan:
    """Tests for trade plan generation."""

    def test_long_plan(self, risk_manager, uptrend_breakout_frame):
        indicators, patterns, signal = full_readings(uptrend_breakout_frame)

        plan, stops = risk_manager.generate_trade_plan(uptrend_breakout_frame, indicators, patterns, signal)

        assert plan.direction == Direction.LONG
        assert plan.actionable
        assert plan.entry == indicators.price
        assert plan.stop == stops.optimal.stop.price
        assert plan.stop < plan.entry < plan.target
        risk = plan.entry - plan.stop
        assert plan.risk_reward == pytest.approx((plan.target - plan.entry) / risk)
        assert plan.position_size == risk_manager.calculate_position_size(
            plan.entry, plan.stop, confidence=plan.confidence
        )
        assert plan.max_risk == pytest.approx(risk * plan.position_size)
        assert plan.risk_metrics.max_position_value == pytest.approx(plan.position_size * plan.entry)
        for tier, fraction in TRAILING_ACTIVATION_BY_TIER.items():
            assert plan.trailing_activations[tier] == pytest.approx(plan.entry * (1 + fraction))

    def test_default_target_is_two_r(self, risk_manager, uptrend_breakout_frame):
        indicators, patterns, signal = full_readings(uptrend_breakout_frame)
        indicators = replace(
            indicators, levels=SupportResistance(supports=indicators.levels.supports, resistances=[])
        )

        plan, _ = risk_manager.generate_trade_plan(uptrend_breakout_frame, indicators, patterns, signal)

        assert plan.target == pytest.approx(plan.entry + 2 * (plan.entry - plan.stop))
        assert plan.risk_reward == pytest.approx(2.0)

    def test_short_plan(self, risk_manager, downtrend_breakdown_frame):
        indicators, patterns, signal = full_readings(downtrend_breakdown_frame)

        plan, _ = risk_manager.generate_trade_plan(downtrend_breakdown_frame, indicators, patterns, signal)

        assert plan.direction == Direction.SHORT
        assert plan.target < plan.entry < plan.stop
        for tier, fraction in TRAILING_ACTIVATION_BY_TIER.items():
            assert plan.trailing_activations[tier] == pytest.approx(plan.entry * (1 - fraction))

    def test_neutral_plan_uses_long_geometry(self, risk_manager, flat_frame, flat_snapshot):
        signal = make_signal(Direction.NEUTRAL, 0.0)

        plan, stops = risk_manager.generate_trade_plan(flat_frame, flat_snapshot, NO_PATTERNS, signal)

        assert not plan.actionable
        assert stops.optimal.tier == StopTier.MODERATE
        assert plan.stop == pytest.approx(96.0)
        assert plan.confidence == TradeConfidence.LOW
        assert plan.position_size == math.floor(math.floor(1000.0 / (plan.entry - plan.stop)) * 0.5)

    def test_custom_capital(self, risk_manager, uptrend_breakout_frame):
        indicators, patterns, signal = full_readings(uptrend_breakout_frame)

        small, _ = risk_manager.generate_trade_plan(
            uptrend_breakout_frame, indicators, patterns, signal, capital=10_000.0
        )
        large, _ = risk_manager.generate_trade_plan(
            uptrend_breakout_frame, indicators, patterns, signal, capital=1_000_000.0
        )

        assert small.position_size < large.position_size
        assert np.isclose(small.risk_metrics.stop_distance_percent, large.risk_metrics.stop_distance_percent)
