"""
Shared fixtures for backtest tests
"""
import datetime as dt

import pytest

from equation_backtest.models import Candle


def build_candles(closes, highs=None, lows=None, start=dt.date(2024, 1, 1)):
    """Daily candles with open == close; high/low default to the close"""
    highs = highs or closes
    lows = lows or closes
    return [
        Candle(
            date=start + dt.timedelta(days=i),
            open=close,
            high=high,
            low=low,
            close=close,
            volume=1_000,
        )
        for i, (close, high, low) in enumerate(zip(closes, highs, lows))
    ]


@pytest.fixture
def make_candles():
    return build_candles


@pytest.fixture
def frictionless():
    """Execution parameters without costs, investing all cash"""
    return {"commission_pct": 0.0, "slippage_bps": 0.0, "max_position_pct": 100.0}
