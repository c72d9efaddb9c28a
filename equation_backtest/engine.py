"""
Backtesting Engine

Bar-by-bar, long-only simulation of an entry/exit equation pair.

Both equations are compiled before any simulation state exists, so a bad
equation is rejected up front instead of silently producing no trades.
"""
import math
from collections import Counter
from typing import Any, Iterable, List, Mapping, Optional, Tuple, Union

from loguru import logger

from equation_backtest.errors import GrammarError, InvalidCandlesError
from equation_backtest.metrics import calculate_metrics
from equation_backtest.models import (
    BacktestResult,
    Candle,
    ExecutionParams,
    ExitReason,
    Position,
    PositionState,
    RunDiagnostics,
    Side,
    Trade,
    overlay_enabled,
)
from equation_backtest.parser import Expression, compile_expression
from equation_backtest.variables import IndicatorSet, VariableTable

CandleInput = Union[Candle, Mapping[str, Any]]


def prepare_candles(candles: Iterable[CandleInput]) -> List[Candle]:
    """
    Coerce candles and check their ordering

    Raises:
        pydantic.ValidationError: On malformed bars
        InvalidCandlesError: When dates are not strictly ascending
    """
    bars = [c if isinstance(c, Candle) else Candle.model_validate(c) for c in candles]
    for i in range(1, len(bars)):
        if bars[i].date <= bars[i - 1].date:
            raise InvalidCandlesError(
                f"Candles must be strictly ascending by date: "
                f"bar {i} ({bars[i].date}) follows {bars[i - 1].date}"
            )
    return bars


class BacktestEngine:
    """
    Equation backtesting engine

    One engine holds one set of execution parameters and can run any number
    of independent backtests; runs share no mutable state.
    """

    def __init__(self, params: Optional[ExecutionParams] = None, **overrides: Any):
        if params is None:
            params = ExecutionParams(**overrides)
        elif overrides:
            params = ExecutionParams(**{**params.model_dump(), **overrides})
        self.params = params

        logger.debug(
            f"Initialized BacktestEngine (capital: ${params.initial_capital:,.2f}, "
            f"commission: {params.commission_pct}%, slippage: {params.slippage_bps}bps)"
        )

    @staticmethod
    def compile_strategy(entry_logic: str, exit_logic: str) -> Tuple[Expression, Expression]:
        """
        Compile the entry and exit equations

        Raises:
            GrammarError: Naming which equation failed and why
        """
        compiled = []
        for side, equation in (("entry", entry_logic), ("exit", exit_logic)):
            try:
                compiled.append(compile_expression(equation))
            except GrammarError as e:
                logger.warning(f"Rejected {side} equation {equation!r}: {e}")
                raise type(e)(f"{side} equation: {e.reason}", e.expression, e.position) from e
        return compiled[0], compiled[1]

    def run(
        self,
        candles: Iterable[CandleInput],
        entry_logic: str,
        exit_logic: str
    ) -> BacktestResult:
        """
        Run one backtest

        Args:
            candles: Bars in ascending date order
            entry_logic: Equation that opens a position when true
            exit_logic: Equation that closes a position when true

        Returns:
            Frozen BacktestResult

        Raises:
            GrammarError: If either equation is outside the grammar
            InvalidCandlesError: If candles are not strictly ascending
        """
        entry, exit_ = self.compile_strategy(entry_logic, exit_logic)
        bars = prepare_candles(candles)

        logger.info(
            f"Running backtest: {len(bars)} bars | entry: {entry.normalized} | "
            f"exit: {exit_.normalized}"
        )

        series = IndicatorSet(bars, entry.references | exit_.references)
        result = self._simulate(bars, series, entry, exit_)

        metrics = result.metrics
        logger.success(
            f"Backtest complete: Return={metrics.total_return_pct}%, "
            f"Sharpe={metrics.sharpe_ratio}, Trades={metrics.num_trades}"
        )
        return result

    def _simulate(
        self,
        bars: List[Candle],
        series: IndicatorSet,
        entry: Expression,
        exit_: Expression
    ) -> BacktestResult:
        p = self.params
        cash = p.initial_capital
        position: Optional[Position] = None
        trades: List[Trade] = []
        equity: List[float] = []
        counters: Counter = Counter()

        for i, bar in enumerate(bars):
            table = series.table_at(i)

            if self._state(position) is PositionState.FLAT and entry.holds(table, counters):
                fill_price = bar.close + bar.close * (p.slippage_bps / 10_000)
                max_notional = cash * (p.max_position_pct / 100)
                quantity = math.floor(max_notional / fill_price)
                notional = quantity * fill_price
                commission = notional * (p.commission_pct / 100)

                if quantity > 0 and notional + commission <= cash:
                    cash -= notional + commission
                    position = Position(
                        quantity=quantity,
                        entry_price=fill_price,
                        highest_price_since_entry=fill_price,
                    )
                    trades.append(Trade(
                        date=bar.date,
                        side=Side.BUY,
                        price=fill_price,
                        quantity=quantity,
                        notional_value=notional,
                        commission=commission,
                    ))
                    logger.debug(f"{bar.date} BUY {quantity} @ {fill_price:.4f}")
                else:
                    counters["skipped_funds"] += 1
                    logger.debug(
                        f"{bar.date} entry skipped: {quantity} shares, cash {cash:.2f}"
                    )

            # A position opened on this bar is checked for exit on the same bar
            if self._state(position) is PositionState.LONG:
                position.highest_price_since_entry = max(
                    position.highest_price_since_entry, bar.high
                )
                reason, exit_price = self._exit_trigger(position, bar, exit_, table, counters)

                if reason is not None:
                    fill_price = exit_price - exit_price * (p.slippage_bps / 10_000)
                    proceeds = position.quantity * fill_price
                    commission = proceeds * (p.commission_pct / 100)
                    pnl = proceeds - commission - position.quantity * position.entry_price

                    cash += proceeds - commission
                    trades.append(Trade(
                        date=bar.date,
                        side=Side.SELL,
                        price=fill_price,
                        quantity=position.quantity,
                        notional_value=proceeds,
                        commission=commission,
                        pnl=pnl,
                        exit_reason=reason,
                    ))
                    logger.debug(
                        f"{bar.date} SELL {position.quantity} @ {fill_price:.4f} "
                        f"({reason.value}) pnl={pnl:.2f}"
                    )
                    position = None

            held = position.quantity if position is not None else 0
            equity.append(cash + held * bar.close)

        return BacktestResult(
            dates=tuple(bar.date for bar in bars),
            equity=tuple(equity),
            trades=tuple(trades),
            metrics=calculate_metrics(equity, trades, p.initial_capital),
            diagnostics=RunDiagnostics(
                skipped_entries_insufficient_funds=counters["skipped_funds"],
                eval_errors=counters["eval_errors"],
                warmup_bars=counters["warmup"],
            ),
        )

    @staticmethod
    def _state(position: Optional[Position]) -> PositionState:
        return PositionState.FLAT if position is None else PositionState.LONG

    def _exit_trigger(
        self,
        position: Position,
        bar: Candle,
        exit_: Expression,
        table: VariableTable,
        counters: Counter
    ) -> Tuple[Optional[ExitReason], float]:
        """
        First matching exit for the bar

        Priority: stop-loss, trailing stop, take-profit, exit signal.
        Risk overlays fill at their threshold, the signal at the close.
        """
        p = self.params

        if overlay_enabled(p.stop_loss_pct):
            stop_price = position.entry_price * (1 - p.stop_loss_pct / 100)
            if bar.low <= stop_price:
                logger.debug(
                    f"Stop-loss triggered at {bar.date}: entry={position.entry_price:.2f}, "
                    f"stop={stop_price:.2f}"
                )
                return ExitReason.STOP_LOSS, stop_price

        if overlay_enabled(p.trailing_stop_pct):
            trail_price = position.highest_price_since_entry * (1 - p.trailing_stop_pct / 100)
            if bar.low <= trail_price:
                logger.debug(
                    f"Trailing stop triggered at {bar.date}: "
                    f"peak={position.highest_price_since_entry:.2f}, stop={trail_price:.2f}"
                )
                return ExitReason.TRAILING_STOP, trail_price

        if overlay_enabled(p.take_profit_pct):
            target_price = position.entry_price * (1 + p.take_profit_pct / 100)
            if bar.high >= target_price:
                logger.debug(
                    f"Take-profit triggered at {bar.date}: entry={position.entry_price:.2f}, "
                    f"target={target_price:.2f}"
                )
                return ExitReason.TAKE_PROFIT, target_price

        if exit_.holds(table, counters):
            return ExitReason.SIGNAL, bar.close

        return None, 0.0


def run_backtest(
    candles: Iterable[CandleInput],
    entry_logic: str,
    exit_logic: str,
    params: Optional[ExecutionParams] = None,
    **overrides: Any
) -> BacktestResult:
    """
    Convenience function to run one backtest

    Args:
        candles: Bars in ascending date order
        entry_logic: Entry equation
        exit_logic: Exit equation
        params: Execution parameters (defaults when None)
        **overrides: Individual ExecutionParams fields

    Returns:
        BacktestResult
    """
    return BacktestEngine(params, **overrides).run(candles, entry_logic, exit_logic)
