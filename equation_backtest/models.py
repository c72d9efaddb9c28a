"""
Backtest Data Model

Inputs are pydantic models so candles and parameters coming from JSON or
CSV are coerced and validated at the boundary. Simulation records are
frozen dataclasses: they compare by value, which makes two runs over the
same inputs deeply equal.
"""
import datetime as dt
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

import pandas as pd
from pydantic import BaseModel, ConfigDict, Field


class Side(str, Enum):
    """Fill side"""
    BUY = "BUY"
    SELL = "SELL"


class ExitReason(str, Enum):
    """Why a long position was closed"""
    SIGNAL = "signal"
    STOP_LOSS = "stop_loss"
    TAKE_PROFIT = "take_profit"
    TRAILING_STOP = "trailing_stop"


class PositionState(str, Enum):
    """Simulation state of the single instrument (long-only)"""
    FLAT = "flat"
    LONG = "long"


class Candle(BaseModel):
    """One OHLCV bar"""
    date: dt.date = Field(description="Trading date")
    open: float = Field(gt=0, description="Open price")
    high: float = Field(gt=0, description="High price")
    low: float = Field(gt=0, description="Low price")
    close: float = Field(gt=0, description="Close price")
    volume: int = Field(default=0, ge=0, description="Traded volume")

    model_config = ConfigDict(frozen=True)


class ExecutionParams(BaseModel):
    """Execution and risk parameters of one backtest"""
    initial_capital: float = Field(default=100_000.0, gt=0, description="Starting cash")
    commission_pct: float = Field(default=0.1, ge=0, description="Commission, % of notional")
    slippage_bps: float = Field(default=5.0, ge=0, description="Adverse slippage in basis points")
    max_position_pct: float = Field(default=10.0, ge=0, description="Max % of cash per entry")
    stop_loss_pct: Optional[float] = Field(default=None, ge=0, description="Fixed stop below entry, %")
    take_profit_pct: Optional[float] = Field(default=None, ge=0, description="Target above entry, %")
    trailing_stop_pct: Optional[float] = Field(default=None, ge=0, description="Stop below running high, %")

    model_config = ConfigDict(frozen=True)


def overlay_enabled(pct: Optional[float]) -> bool:
    """A risk overlay is active only when set to a positive percentage"""
    return pct is not None and pct > 0


@dataclass
class Position:
    """Open long position, owned by the simulation loop"""
    quantity: int
    entry_price: float
    highest_price_since_entry: float


@dataclass(frozen=True)
class Trade:
    """A single fill"""
    date: dt.date
    side: Side
    price: float
    quantity: int
    notional_value: float
    commission: float
    pnl: Optional[float] = None
    exit_reason: Optional[ExitReason] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "date": self.date.isoformat(),
            "side": self.side.value,
            "price": self.price,
            "quantity": self.quantity,
            "notionalValue": self.notional_value,
            "commission": self.commission,
        }
        if self.side is Side.SELL:
            data["pnl"] = self.pnl
            data["exitReason"] = self.exit_reason.value if self.exit_reason else None
        return data


@dataclass(frozen=True)
class Metrics:
    """Summary statistics derived from the equity curve and trade log"""
    total_return_pct: float = 0.0
    sharpe_ratio: float = 0.0
    max_drawdown_pct: float = 0.0
    win_rate_pct: float = 0.0
    cagr_pct: float = 0.0
    num_trades: int = 0
    stop_loss_hits: int = 0
    take_profit_hits: int = 0
    trailing_stop_hits: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalReturnPct": self.total_return_pct,
            "sharpeRatio": self.sharpe_ratio,
            "maxDrawdownPct": self.max_drawdown_pct,
            "winRatePct": self.win_rate_pct,
            "cagrPct": self.cagr_pct,
            "numTrades": self.num_trades,
            "stopLossHits": self.stop_loss_hits,
            "takeProfitHits": self.take_profit_hits,
            "trailingStopHits": self.trailing_stop_hits,
        }


@dataclass(frozen=True)
class RunDiagnostics:
    """
    Non-fatal conditions absorbed during the run

    None of these change trade semantics; they only explain why a signal
    did not turn into a fill.
    """
    skipped_entries_insufficient_funds: int = 0
    eval_errors: int = 0
    warmup_bars: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "skippedEntriesInsufficientFunds": self.skipped_entries_insufficient_funds,
            "evalErrors": self.eval_errors,
            "warmupBars": self.warmup_bars,
        }


@dataclass(frozen=True)
class BacktestResult:
    """Frozen output of one backtest"""
    dates: Tuple[dt.date, ...]
    equity: Tuple[float, ...]
    trades: Tuple[Trade, ...]
    metrics: Metrics
    diagnostics: RunDiagnostics = field(default_factory=RunDiagnostics)

    def to_dict(self) -> Dict[str, Any]:
        """Wire representation consumed by reporting collaborators"""
        return {
            "dates": [d.isoformat() for d in self.dates],
            "equity": list(self.equity),
            "trades": [t.to_dict() for t in self.trades],
            "metrics": self.metrics.to_dict(),
            "diagnostics": self.diagnostics.to_dict(),
        }

    def equity_curve(self) -> pd.Series:
        """Equity as a pandas Series indexed by date"""
        index = pd.DatetimeIndex(pd.to_datetime(list(self.dates)), name="date")
        return pd.Series(list(self.equity), index=index, name="equity", dtype=float)
