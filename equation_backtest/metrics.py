"""
Performance Metrics

Derives the summary statistics of a finished backtest from its equity
curve and trade log. Ratios and percentages are rounded to PRECISION
decimals so reports are reproducible to the digit.
"""
import math
from typing import Sequence

import numpy as np
from loguru import logger

from equation_backtest.models import ExitReason, Metrics, Side, Trade

TRADING_DAYS = 252
PRECISION = 2


def _round(value: float, digits: int = PRECISION) -> float:
    """Round half up at `digits` places, e.g. 3.125 -> 3.13 and -3.125 -> -3.12"""
    value = float(value)
    if not math.isfinite(value):
        return value
    scale = 10 ** digits
    # + 0.0 folds -0.0 into 0.0
    return math.floor(value * scale + 0.5) / scale + 0.0


def calculate_total_return_pct(equity: Sequence[float], initial_capital: float) -> float:
    """Final equity versus initial capital, in percent"""
    if len(equity) == 0:
        return 0.0
    return (equity[-1] - initial_capital) / initial_capital * 100


def daily_returns(equity: Sequence[float]) -> np.ndarray:
    """Bar-over-bar simple returns; one element shorter than the curve"""
    curve = np.asarray(equity, dtype=float)
    if len(curve) < 2:
        return np.array([], dtype=float)
    with np.errstate(divide="ignore", invalid="ignore"):
        returns = np.diff(curve) / curve[:-1]
    return np.nan_to_num(returns, nan=0.0, posinf=0.0, neginf=0.0)


def calculate_sharpe_ratio(
    returns: np.ndarray,
    periods_per_year: int = TRADING_DAYS
) -> float:
    """
    Annualized Sharpe ratio with a zero risk-free rate

    Args:
        returns: Per-bar returns
        periods_per_year: Bars per year used to annualize

    Returns:
        mean / population std * sqrt(periods_per_year), or 0 when the
        returns have no dispersion
    """
    if len(returns) == 0:
        return 0.0

    std = float(np.std(returns))
    if std == 0:
        return 0.0
    return float(np.mean(returns)) / std * math.sqrt(periods_per_year)


def calculate_max_drawdown_pct(equity: Sequence[float]) -> float:
    """Largest peak-to-trough decline, in percent of the running peak"""
    curve = np.asarray(equity, dtype=float)
    if len(curve) == 0:
        return 0.0
    running_peak = np.maximum.accumulate(curve)
    with np.errstate(divide="ignore", invalid="ignore"):
        drawdown = (running_peak - curve) / running_peak * 100
    drawdown = np.nan_to_num(drawdown, nan=0.0, posinf=0.0, neginf=0.0)
    return max(float(drawdown.max()), 0.0)


def calculate_win_rate_pct(trades: Sequence[Trade]) -> float:
    """Share of SELL fills with positive P&L, in percent"""
    sells = [t for t in trades if t.side is Side.SELL]
    if not sells:
        return 0.0
    winners = [t for t in sells if (t.pnl or 0.0) > 0]
    return len(winners) / len(sells) * 100


def calculate_cagr_pct(final_equity: float, initial_capital: float, num_bars: int) -> float:
    """
    Compound annual growth rate, in percent

    A year is TRADING_DAYS bars. Returns 0 for an empty run.
    """
    if num_bars == 0:
        return 0.0
    ratio = final_equity / initial_capital
    if ratio <= 0:
        return -100.0
    try:
        return (math.pow(ratio, TRADING_DAYS / num_bars) - 1) * 100
    except OverflowError:
        logger.warning(f"CAGR overflow (ratio={ratio:.4f}, bars={num_bars})")
        return math.inf


def calculate_metrics(
    equity: Sequence[float],
    trades: Sequence[Trade],
    initial_capital: float
) -> Metrics:
    """
    Calculate the full metrics block

    Args:
        equity: Equity per bar
        trades: Chronological trade log
        initial_capital: Starting cash

    Returns:
        Metrics with ratios and percentages rounded
    """
    if len(equity) == 0:
        return Metrics()

    sells = [t for t in trades if t.side is Side.SELL]
    metrics = Metrics(
        total_return_pct=_round(calculate_total_return_pct(equity, initial_capital)),
        sharpe_ratio=_round(calculate_sharpe_ratio(daily_returns(equity))),
        max_drawdown_pct=_round(calculate_max_drawdown_pct(equity)),
        win_rate_pct=_round(calculate_win_rate_pct(trades)),
        cagr_pct=_round(calculate_cagr_pct(equity[-1], initial_capital, len(equity))),
        num_trades=len(trades),
        stop_loss_hits=sum(1 for t in sells if t.exit_reason is ExitReason.STOP_LOSS),
        take_profit_hits=sum(1 for t in sells if t.exit_reason is ExitReason.TAKE_PROFIT),
        trailing_stop_hits=sum(1 for t in sells if t.exit_reason is ExitReason.TRAILING_STOP),
    )

    logger.debug(
        f"Metrics: return={metrics.total_return_pct}% sharpe={metrics.sharpe_ratio} "
        f"maxDD={metrics.max_drawdown_pct}% winRate={metrics.win_rate_pct}% "
        f"cagr={metrics.cagr_pct}% trades={metrics.num_trades}"
    )
    return metrics
