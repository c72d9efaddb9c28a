"""
Equation Vocabulary and Variable Tables

The fixed set of names an equation may reference, the per-bar table that
binds them to values, and the precomputed indicator series behind it.
"""
from dataclasses import dataclass
from functools import cached_property
from typing import Dict, Iterable, Iterator, Mapping, Optional, Sequence, Tuple

import numpy as np
from loguru import logger

from equation_backtest import indicators
from equation_backtest.models import Candle

PRICE_FIELDS = ("OPEN", "HIGH", "LOW", "CLOSE", "VOLUME")

DEFAULT_PERIOD = 14

# Names that take parenthesised period arguments, e.g. SMA(20)
INDICATOR_FUNCTIONS: Dict[str, str] = {
    "SMA": "Simple Moving Average",
    "EMA": "Exponential Moving Average",
    "RSI": "Relative Strength Index",
    "ATR": "Average True Range",
    "ADX": "Average Directional Index",
    "STOCHASTIC": "Stochastic %K, same as STOCH_K",
}

# (min, max) period arguments; a missing period means DEFAULT_PERIOD
FUNCTION_ARITY: Dict[str, Tuple[int, int]] = {
    "SMA": (1, 1),
    "EMA": (1, 1),
    "RSI": (1, 1),
    "ATR": (0, 1),
    "ADX": (0, 1),
    "STOCHASTIC": (0, 3),
}

# Bare names backed by indicators with fixed parameters
DERIVED_VALUES: Dict[str, str] = {
    "MACD_LINE": "MACD line (EMA12 - EMA26)",
    "MACD_SIGNAL": "MACD signal line (EMA9 of MACD)",
    "MACD_HISTOGRAM": "MACD line minus signal line",
    "BB_UPPER": "Upper Bollinger Band (20, 2)",
    "BB_MIDDLE": "Middle Bollinger Band (SMA20)",
    "BB_LOWER": "Lower Bollinger Band (20, 2)",
    "STOCH_K": "Stochastic %K (14)",
    "STOCH_D": "Stochastic %D (3)",
}

VOCABULARY = frozenset(PRICE_FIELDS) | frozenset(INDICATOR_FUNCTIONS) | frozenset(DERIVED_VALUES)


def function_signature(name: str) -> str:
    """How an indicator function may be written, e.g. "ATR or ATR(n)" """
    if name == "STOCHASTIC":
        return "STOCHASTIC or STOCHASTIC(k[, d[, smooth]])"
    if FUNCTION_ARITY[name][0] == 0:
        return f"{name} or {name}(n)"
    return f"{name}(n)"


@dataclass(frozen=True)
class IndicatorRef:
    """
    A reference to one vocabulary entry

    `period` is set for indicator functions (SMA(20)) and None for price
    fields and derived values. STOCHASTIC(k) is read as STOCH_K with
    period k; the default %K period is stored as None.
    """
    name: str
    period: Optional[int] = None

    def __lt__(self, other: "IndicatorRef") -> bool:
        return (self.name, self.period or 0) < (other.name, other.period or 0)

    @property
    def is_price_field(self) -> bool:
        return self.name in PRICE_FIELDS

    def __str__(self) -> str:
        if self.period is None:
            return self.name
        return f"{self.name}({self.period})"


class VariableTable(Mapping[IndicatorRef, Optional[float]]):
    """Read-only values of the referenced vocabulary entries at one bar"""

    __slots__ = ("_values",)

    def __init__(self, values: Mapping[IndicatorRef, Optional[float]]):
        self._values = dict(values)

    def __getitem__(self, ref: IndicatorRef) -> Optional[float]:
        return self._values[ref]

    def __iter__(self) -> Iterator[IndicatorRef]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        items = ", ".join(f"{ref}={value}" for ref, value in sorted(self._values.items()))
        return f"VariableTable({items})"


def _optional(value: float) -> Optional[float]:
    return None if np.isnan(value) else float(value)


class IndicatorSet:
    """
    Indicator series precomputed once for a candle series

    Only the references passed in are computed. MACD, Bollinger and
    Stochastic outputs are computed once per family and shared.
    """

    def __init__(self, candles: Sequence[Candle], refs: Iterable[IndicatorRef]):
        self._opens = np.array([c.open for c in candles], dtype=float)
        self._highs = np.array([c.high for c in candles], dtype=float)
        self._lows = np.array([c.low for c in candles], dtype=float)
        self._closes = np.array([c.close for c in candles], dtype=float)
        self._volumes = np.array([c.volume for c in candles], dtype=float)

        self.refs = tuple(sorted(set(refs)))
        self._series: Dict[IndicatorRef, np.ndarray] = {
            ref: self._compute(ref) for ref in self.refs
        }
        logger.debug(
            f"Computed {len(self._series)} series over {len(self._closes)} bars: "
            f"{', '.join(str(r) for r in self.refs) or 'none'}"
        )

    def table_at(self, index: int) -> VariableTable:
        """Variable table for bar `index`"""
        return VariableTable(
            {ref: _optional(series[index]) for ref, series in self._series.items()}
        )

    @cached_property
    def _macd(self) -> indicators.MACDSeries:
        return indicators.macd(self._closes)

    @cached_property
    def _bollinger(self) -> indicators.BollingerBands:
        return indicators.bollinger_bands(self._closes)

    @cached_property
    def _stochastic(self) -> indicators.StochasticSeries:
        return indicators.stochastic(self._highs, self._lows, self._closes)

    def _compute(self, ref: IndicatorRef) -> np.ndarray:
        name, period = ref.name, ref.period
        if name == "OPEN":
            return self._opens
        if name == "HIGH":
            return self._highs
        if name == "LOW":
            return self._lows
        if name == "CLOSE":
            return self._closes
        if name == "VOLUME":
            return self._volumes

        if name == "SMA":
            return indicators.sma(self._closes, period)
        if name == "EMA":
            return indicators.ema(self._closes, period)
        if name == "RSI":
            return indicators.rsi(self._closes, period)
        if name == "ATR":
            return indicators.atr(self._highs, self._lows, self._closes, period)
        if name == "ADX":
            return indicators.adx(self._highs, self._lows, self._closes, period)

        if name == "MACD_LINE":
            return self._macd.line
        if name == "MACD_SIGNAL":
            return self._macd.signal
        if name == "MACD_HISTOGRAM":
            return self._macd.histogram
        if name == "BB_UPPER":
            return self._bollinger.upper
        if name == "BB_MIDDLE":
            return self._bollinger.middle
        if name == "BB_LOWER":
            return self._bollinger.lower
        if name == "STOCH_K" and period is not None:
            return indicators.stochastic(
                self._highs, self._lows, self._closes, k_period=period
            ).k
        if name == "STOCH_K":
            return self._stochastic.k
        if name == "STOCH_D":
            return self._stochastic.d

        raise KeyError(f"Unknown indicator reference: {ref}")
