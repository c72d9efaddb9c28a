"""
Unit tests for performance metrics
"""
import datetime as dt
import math

import numpy as np
import pytest

from equation_backtest.metrics import (
    calculate_cagr_pct,
    calculate_max_drawdown_pct,
    calculate_metrics,
    calculate_sharpe_ratio,
    calculate_total_return_pct,
    calculate_win_rate_pct,
    daily_returns,
)
from equation_backtest.models import ExitReason, Metrics, Side, Trade

DAY = dt.date(2024, 1, 2)


def sell(pnl, reason=ExitReason.SIGNAL):
    return Trade(DAY, Side.SELL, 10.0, 1, 10.0, 0.0, pnl=pnl, exit_reason=reason)


def buy():
    return Trade(DAY, Side.BUY, 10.0, 1, 10.0, 0.0)


class TestReturns:
    """Test return-based metrics"""

    def test_total_return(self):
        """Test total return in percent"""
        assert calculate_total_return_pct([100.0, 110.0], 100.0) == pytest.approx(10.0)

    def test_daily_returns(self):
        """Test bar-over-bar simple returns"""
        returns = daily_returns([100.0, 110.0, 99.0])
        assert returns.tolist() == pytest.approx([0.1, -0.1])

    def test_daily_returns_short_curve(self):
        """Test a single point giving no returns"""
        assert len(daily_returns([100.0])) == 0

    def test_sharpe_flat_is_zero(self):
        """Test a flat curve having zero Sharpe"""
        assert calculate_sharpe_ratio(daily_returns([100.0] * 10)) == 0.0

    def test_sharpe_empty_is_zero(self):
        """Test no returns giving zero Sharpe"""
        assert calculate_sharpe_ratio(np.array([])) == 0.0

    def test_sharpe_annualized_population_std(self):
        """Test annualizing with the population standard deviation"""
        returns = np.array([0.01, 0.03])
        # mean 0.02, population std 0.01
        assert calculate_sharpe_ratio(returns) == pytest.approx(2 * math.sqrt(252))


class TestDrawdown:
    """Test maximum drawdown"""

    def test_peak_to_trough(self):
        """Test drawdown from the running peak"""
        assert calculate_max_drawdown_pct([100, 120, 90, 130]) == pytest.approx(25.0)

    def test_monotonic_curve_has_no_drawdown(self):
        """Test a rising curve having no drawdown"""
        assert calculate_max_drawdown_pct([100, 101, 102]) == 0.0


class TestWinRate:
    """Test win rate over closed trades"""

    def test_only_sells_count(self):
        """Test win rate counting SELL records only"""
        trades = [buy(), sell(50.0), buy(), sell(-20.0), buy(), sell(0.0), buy()]
        assert calculate_win_rate_pct(trades) == pytest.approx(100 / 3)

    def test_no_sells(self):
        """Test zero win rate without closed trades"""
        assert calculate_win_rate_pct([buy()]) == 0.0


class TestCAGR:
    """Test compound annual growth rate"""

    def test_one_year(self):
        """Test CAGR over 252 bars"""
        assert calculate_cagr_pct(110.0, 100.0, 252) == pytest.approx(10.0)

    def test_empty_run(self):
        """Test zero CAGR for an empty run"""
        assert calculate_cagr_pct(100.0, 100.0, 0) == 0.0

    def test_wiped_out(self):
        """Test -100% CAGR when equity is gone"""
        assert calculate_cagr_pct(0.0, 100.0, 10) == -100.0

    def test_overflow_is_infinite(self):
        """Test CAGR overflow becoming infinity"""
        assert calculate_cagr_pct(1e12, 1.0, 1) == math.inf


class TestCalculateMetrics:
    """Test the assembled metrics block"""

    def test_empty_equity(self):
        """Test empty equity giving default metrics"""
        assert calculate_metrics([], [], 100.0) == Metrics()

    def test_rounded_to_two_decimals(self):
        """Test rounding metrics to two decimals"""
        metrics = calculate_metrics([100.0, 100.0, 101.234567], [], 100.0)
        assert metrics.total_return_pct == 1.23

    def test_exit_reason_counters(self):
        """Test hit counters derived from exit reasons"""
        trades = [
            buy(), sell(-5.0, ExitReason.STOP_LOSS),
            buy(), sell(8.0, ExitReason.TAKE_PROFIT),
            buy(), sell(2.0, ExitReason.TRAILING_STOP),
            buy(), sell(1.0, ExitReason.STOP_LOSS),
        ]
        metrics = calculate_metrics([100.0, 106.0], trades, 100.0)
        assert metrics.num_trades == 8
        assert metrics.stop_loss_hits == 2
        assert metrics.take_profit_hits == 1
        assert metrics.trailing_stop_hits == 1
        assert metrics.win_rate_pct == 75.0

    def test_win_rate_half_rounds_up(self):
        """Test a 3.125% win rate rounding up to 3.13"""
        trades = [buy(), sell(1.0)] + [buy(), sell(-1.0)] * 31
        metrics = calculate_metrics([100.0, 100.0], trades, 100.0)
        assert metrics.win_rate_pct == 3.13

    @pytest.mark.parametrize("final_equity, expected", [
        (103.125, 3.13),
        (96.875, -3.12),
    ])
    def test_total_return_half_rounds_up(self, final_equity, expected):
        """Test ties rounding toward positive infinity"""
        metrics = calculate_metrics([100.0, final_equity], [], 100.0)
        assert metrics.total_return_pct == expected

    def test_infinite_cagr_survives_rounding(self):
        """Test rounding leaving an infinite CAGR untouched"""
        metrics = calculate_metrics([1.0, 1e12], [], 1.0)
        assert metrics.cagr_pct == math.inf

    def test_negative_zero_folded(self):
        """Test -0.0 folding into 0.0"""
        metrics = calculate_metrics([100.0, 99.999], [], 100.0)
        assert metrics.total_return_pct == 0.0
        assert math.copysign(1.0, metrics.total_return_pct) == 1.0

    def test_wire_names(self):
        """Test camelCase metric names in order"""
        data = Metrics(num_trades=2).to_dict()
        assert list(data) == [
            "totalReturnPct",
            "sharpeRatio",
            "maxDrawdownPct",
            "winRatePct",
            "cagrPct",
            "numTrades",
            "stopLossHits",
            "takeProfitHits",
            "trailingStopHits",
        ]
        assert data["numTrades"] == 2


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
