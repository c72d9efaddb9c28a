"""
Technical Indicators

Pure functions turning price arrays into index-aligned indicator series.

Every series has the same length as its input. Bars inside an indicator's
warm-up window hold NaN, which is the library's "undefined" marker.

Available indicators:
- SMA, EMA
- RSI
- MACD
- Bollinger Bands
- ATR
- Stochastic
- ADX
"""
from typing import Callable, NamedTuple, Sequence, Union

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

ArrayLike = Union[Sequence[float], np.ndarray]

MACD_FAST = 12
MACD_SLOW = 26
MACD_SIGNAL = 9
BOLLINGER_PERIOD = 20
BOLLINGER_STD = 2.0
STOCH_K_PERIOD = 14
STOCH_D_PERIOD = 3


class MACDSeries(NamedTuple):
    line: np.ndarray
    signal: np.ndarray
    histogram: np.ndarray


class BollingerBands(NamedTuple):
    upper: np.ndarray
    middle: np.ndarray
    lower: np.ndarray


class StochasticSeries(NamedTuple):
    k: np.ndarray
    d: np.ndarray


def _as_array(values: ArrayLike) -> np.ndarray:
    return np.asarray(values, dtype=float)


def _check_period(period: int, name: str = "period") -> None:
    if isinstance(period, bool) or not isinstance(period, (int, np.integer)) or period < 1:
        raise ValueError(f"{name} must be a positive integer, got {period!r}")


def _check_same_length(*arrays: np.ndarray) -> None:
    if len({len(a) for a in arrays}) > 1:
        raise ValueError("high, low and close must have the same length")


def _undefined(length: int) -> np.ndarray:
    return np.full(length, np.nan)


def _windows(values: np.ndarray, period: int) -> np.ndarray:
    return sliding_window_view(values, period)


def _over_defined(
    series: np.ndarray,
    transform: Callable[[np.ndarray], np.ndarray]
) -> np.ndarray:
    """
    Apply a transform to the defined values of a series only

    The defined values are compressed, transformed, and scattered back to
    their original positions. Undefined bars stay undefined.
    """
    out = _undefined(len(series))
    mask = ~np.isnan(series)
    if mask.any():
        out[mask] = transform(series[mask])
    return out


def sma(prices: ArrayLike, period: int) -> np.ndarray:
    """Simple moving average, undefined for the first period-1 bars"""
    _check_period(period)
    values = _as_array(prices)
    out = _undefined(len(values))
    if len(values) >= period:
        out[period - 1:] = _windows(values, period).mean(axis=1)
    return out


def ema(prices: ArrayLike, period: int) -> np.ndarray:
    """
    Exponential moving average

    Seeded with the SMA at bar period-1, then
    ema[i] = (price[i] - ema[i-1]) * 2/(period+1) + ema[i-1].
    """
    _check_period(period)
    values = _as_array(prices)
    out = _undefined(len(values))
    if len(values) < period:
        return out

    multiplier = 2.0 / (period + 1)
    prev = float(sma(values[:period], period)[-1])
    out[period - 1] = prev
    for i in range(period, len(values)):
        prev = (values[i] - prev) * multiplier + prev
        out[i] = prev
    return out


def rsi(prices: ArrayLike, period: int = 14) -> np.ndarray:
    """
    Relative Strength Index

    Average gain and average loss are the means of the trailing `period`
    one-bar changes, so the first defined bar is index `period`.
    RSI is 100 when the average loss is zero.
    """
    _check_period(period)
    values = _as_array(prices)
    out = _undefined(len(values))
    if len(values) <= period:
        return out

    changes = np.diff(values)
    gains = np.clip(changes, 0.0, None)
    losses = np.clip(-changes, 0.0, None)
    avg_gain = _windows(gains, period).mean(axis=1)
    avg_loss = _windows(losses, period).mean(axis=1)

    with np.errstate(divide="ignore", invalid="ignore"):
        strength = 100.0 - 100.0 / (1.0 + avg_gain / avg_loss)
    out[period:] = np.where(avg_loss == 0, 100.0, strength)
    return out


def macd(
    prices: ArrayLike,
    fast: int = MACD_FAST,
    slow: int = MACD_SLOW,
    signal: int = MACD_SIGNAL
) -> MACDSeries:
    """MACD line, signal line (EMA of the defined MACD values) and histogram"""
    _check_period(signal, "signal")
    values = _as_array(prices)
    line = ema(values, fast) - ema(values, slow)
    signal_line = _over_defined(line, lambda s: ema(s, signal))
    return MACDSeries(line=line, signal=signal_line, histogram=line - signal_line)


def bollinger_bands(
    prices: ArrayLike,
    period: int = BOLLINGER_PERIOD,
    num_std: float = BOLLINGER_STD
) -> BollingerBands:
    """SMA envelope at +/- num_std population standard deviations"""
    values = _as_array(prices)
    middle = sma(values, period)
    deviation = _undefined(len(values))
    if len(values) >= period:
        deviation[period - 1:] = _windows(values, period).std(axis=1)
    return BollingerBands(
        upper=middle + num_std * deviation,
        middle=middle,
        lower=middle - num_std * deviation,
    )


def true_range(high: ArrayLike, low: ArrayLike, close: ArrayLike) -> np.ndarray:
    """True range; the first bar uses high - low only"""
    highs, lows, closes = _as_array(high), _as_array(low), _as_array(close)
    _check_same_length(highs, lows, closes)
    tr = highs - lows
    if len(tr) > 1:
        prev_close = closes[:-1]
        tr[1:] = np.maximum.reduce([
            highs[1:] - lows[1:],
            np.abs(highs[1:] - prev_close),
            np.abs(lows[1:] - prev_close),
        ])
    return tr


def atr(high: ArrayLike, low: ArrayLike, close: ArrayLike, period: int = 14) -> np.ndarray:
    """Average True Range: SMA of the true range"""
    return sma(true_range(high, low, close), period)


def stochastic(
    high: ArrayLike,
    low: ArrayLike,
    close: ArrayLike,
    k_period: int = STOCH_K_PERIOD,
    d_period: int = STOCH_D_PERIOD
) -> StochasticSeries:
    """
    Stochastic oscillator

    %K is the close's position inside the trailing k_period high/low range
    (50 when the range is empty). %D is the SMA of the defined %K values.
    """
    _check_period(k_period, "k_period")
    _check_period(d_period, "d_period")
    highs, lows, closes = _as_array(high), _as_array(low), _as_array(close)
    _check_same_length(highs, lows, closes)

    k = _undefined(len(closes))
    if len(closes) >= k_period:
        highest = _windows(highs, k_period).max(axis=1)
        lowest = _windows(lows, k_period).min(axis=1)
        span = highest - lowest
        with np.errstate(divide="ignore", invalid="ignore"):
            position = 100.0 * (closes[k_period - 1:] - lowest) / span
        k[k_period - 1:] = np.where(span == 0, 50.0, position)

    d = _over_defined(k, lambda s: sma(s, d_period))
    return StochasticSeries(k=k, d=d)


def adx(high: ArrayLike, low: ArrayLike, close: ArrayLike, period: int = 14) -> np.ndarray:
    """
    Average Directional Index

    +DM, -DM and true range are smoothed with the EMA recurrence. DX is
    undefined where the smoothed range is undefined or zero, and 0 when the
    directional indicators sum to zero. ADX is the EMA of the defined DX.
    """
    _check_period(period)
    highs, lows, closes = _as_array(high), _as_array(low), _as_array(close)
    _check_same_length(highs, lows, closes)

    up = np.diff(highs)
    down = -np.diff(lows)
    plus_dm = np.concatenate(([0.0], np.where((up > down) & (up > 0), up, 0.0)))
    minus_dm = np.concatenate(([0.0], np.where((down > up) & (down > 0), down, 0.0)))

    smooth_plus = ema(plus_dm, period)
    smooth_minus = ema(minus_dm, period)
    smooth_tr = ema(true_range(highs, lows, closes), period)

    dx = _undefined(len(closes))
    valid = ~np.isnan(smooth_tr) & (smooth_tr != 0)
    if valid.any():
        plus_di = 100.0 * smooth_plus[valid] / smooth_tr[valid]
        minus_di = 100.0 * smooth_minus[valid] / smooth_tr[valid]
        di_sum = plus_di + minus_di
        with np.errstate(divide="ignore", invalid="ignore"):
            ratio = 100.0 * np.abs(plus_di - minus_di) / di_sum
        dx[valid] = np.where(di_sum == 0, 0.0, ratio)

    return _over_defined(dx, lambda s: ema(s, period))


__all__ = [
    "MACDSeries",
    "BollingerBands",
    "StochasticSeries",
    "sma",
    "ema",
    "rsi",
    "macd",
    "bollinger_bands",
    "true_range",
    "atr",
    "stochastic",
    "adx",
]
