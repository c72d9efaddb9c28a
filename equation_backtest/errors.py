"""
Backtest Errors

Exception taxonomy for the equation backtester.

Only grammar problems and malformed input reach the caller. Per-bar
evaluation failures are raised as EvalError and absorbed by the engine.
"""
from typing import Optional


class BacktestError(Exception):
    """Base class for all backtester errors"""
    pass


class GrammarError(BacktestError, ValueError):
    """
    An equation is outside the fixed grammar

    Raised once, while compiling, before any simulation state exists.
    """

    def __init__(
        self,
        reason: str,
        expression: str = "",
        position: Optional[int] = None
    ):
        self.reason = reason
        self.expression = expression
        self.position = position
        super().__init__(self._format())

    def _format(self) -> str:
        if self.position is None:
            return self.reason
        return f"{self.reason} (at position {self.position})"


class TokenizeError(GrammarError):
    """Character, word or numeric literal outside the token alphabet"""
    pass


class ParseError(GrammarError):
    """Token stream does not form a valid expression"""
    pass


class EvalError(BacktestError):
    """Expression could not be evaluated for one bar (e.g. division by zero)"""
    pass


class InvalidCandlesError(BacktestError, ValueError):
    """Candle series is not strictly ascending by date"""
    pass
