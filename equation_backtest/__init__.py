"""
Equation Backtesting Module

Bar-by-bar backtesting of entry/exit equations written in a small, closed
expression grammar over price fields and technical indicators.
"""

from .errors import (
    BacktestError,
    GrammarError,
    TokenizeError,
    ParseError,
    EvalError,
    InvalidCandlesError,
)

from .models import (
    Candle,
    ExecutionParams,
    Trade,
    Position,
    Metrics,
    RunDiagnostics,
    BacktestResult,
    Side,
    ExitReason,
)

from .parser import (
    Expression,
    compile_expression,
)

from .engine import (
    BacktestEngine,
    run_backtest,
)

from .metrics import calculate_metrics

from .validation import (
    ValidationReport,
    validate_equation,
)

__all__ = [
    # Errors
    "BacktestError",
    "GrammarError",
    "TokenizeError",
    "ParseError",
    "EvalError",
    "InvalidCandlesError",

    # Data model
    "Candle",
    "ExecutionParams",
    "Trade",
    "Position",
    "Metrics",
    "RunDiagnostics",
    "BacktestResult",
    "Side",
    "ExitReason",

    # Equations
    "Expression",
    "compile_expression",
    "ValidationReport",
    "validate_equation",

    # Engine
    "BacktestEngine",
    "run_backtest",
    "calculate_metrics",
]
