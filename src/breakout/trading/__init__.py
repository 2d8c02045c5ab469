"""
Trading module for the breakout engine.

Provides the breakout fusion engine, stop-loss calculation, position sizing,
trade plan generation and entry point analysis.
"""

from .decision_engine import BreakoutDecisionEngine, BreakoutSignal, SignalVote
from .entry import EntryAnalysis, EntryAnalyzer, EntrySetup, FibonacciEntry, KeyLevels, VolumeMetrics
from .risk import (
    OptimalStop,
    RecommendedStop,
    RiskManager,
    RiskMetrics,
    StopLossAnalysis,
    StopLossCalculator,
    StopLossLevel,
    TierStop,
    TradePlan,
    TrailingStop,
    VolatilityStop,
)

__all__ = [
    # Fusion
    "BreakoutDecisionEngine",
    "BreakoutSignal",
    "SignalVote",
    # Stop-Loss
    "StopLossCalculator",
    "StopLossAnalysis",
    "StopLossLevel",
    "VolatilityStop",
    "TierStop",
    "OptimalStop",
    "RecommendedStop",
    "TrailingStop",
    # Risk Management
    "RiskManager",
    "RiskMetrics",
    "TradePlan",
    # Entry Analysis
    "EntryAnalyzer",
    "EntryAnalysis",
    "EntrySetup",
    "FibonacciEntry",
    "KeyLevels",
    "VolumeMetrics",
]
