"""
Exception hierarchy for the breakout engine.

Only conditions that make an analysis meaningless are raised. Degenerate
arithmetic (zero average loss, flat trendlines, parallel lines) is handled
where it occurs with documented sentinel values.
"""

from typing import Any


class BreakoutError(Exception):
    """Base class for engine errors.

    Attributes:
        code: Stable machine-readable error code
        metadata: Extra details about the failure
    """

    code = "BREAKOUT_ERROR"

    def __init__(self, message: str, **metadata: Any):
        super().__init__(message)
        self.metadata = metadata

    def to_dict(self) -> dict:
        return {"code": self.code, "message": str(self), "metadata": self.metadata}


class InsufficientDataError(BreakoutError, ValueError):
    """Series shorter than the longest required lookback."""

    code = "INSUFFICIENT_DATA"

    def __init__(self, required: int, received: int, context: str = "analysis"):
        super().__init__(
            f"Insufficient data for {context}: need at least {required} bars, got {received}",
            required=required,
            received=received,
            context=context,
        )
        self.required = required
        self.received = received


class InvalidBarError(BreakoutError, ValueError):
    """Price bar violating OHLCV invariants."""

    code = "INVALID_BAR"

    def __init__(self, message: str, index: int | None = None, **metadata: Any):
        super().__init__(message, index=index, **metadata)
        self.index = index
