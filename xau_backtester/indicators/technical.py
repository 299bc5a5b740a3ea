"""
Technical indicators over price series.

**Conceptual**: Every function here is pure. It takes a 1-D series of length N
(and a lookback period P) and returns a float `numpy.ndarray` of length N.
Positions before the lookback window is full hold `NaN`, the "undefined"
sentinel; positions at or after it hold a defined value. Strategies compute
these arrays once over the whole candle set in their `on_init` hook and then
read element `index` on each candle.

**Warm-up conventions** (index of the first defined value):
  - sma, ema, highest, lowest, stddev, bollinger_bands, atr: P - 1
  - rsi: P (it needs P price *changes*, so P + 1 prices)
  - macd line: slow - 1; signal and histogram: slow + signal - 2

**Teaching note**: Precomputed arrays physically contain values derived from
future candles at later positions. That is fine as long as a strategy only
reads positions <= the current index; every value at position i depends only
on inputs at positions <= i.
"""

from dataclasses import dataclass
from typing import Sequence

import numpy as np
import pandas as pd

from xau_backtester.backtesting.models import Candle


CANDLE_FIELDS = ("open", "high", "low", "close", "volume")


@dataclass(frozen=True)
class BollingerBands:
    """Upper, middle and lower Bollinger bands (same length as the input)."""
    upper: np.ndarray
    middle: np.ndarray
    lower: np.ndarray


@dataclass(frozen=True)
class MACD:
    """MACD line, signal line and histogram (same length as the input)."""
    macd: np.ndarray
    signal: np.ndarray
    histogram: np.ndarray


def _check_period(period: int, name: str = "period") -> int:
    if isinstance(period, float) and period.is_integer():
        period = int(period)
    if not isinstance(period, (int, np.integer)) or period < 1:
        raise ValueError(f"{name} must be a positive integer, got: {period!r}")
    return int(period)


def _as_array(values: Sequence[float]) -> np.ndarray:
    return np.asarray(values, dtype=float)


def candle_field(candles: Sequence[Candle], name: str) -> np.ndarray:
    """
    Extract one OHLCV field from a candle list as a float array.

    Missing volumes (None) become NaN.

    Raises:
        ValueError: If `name` is not an OHLCV field.
    """
    if name not in CANDLE_FIELDS:
        raise ValueError(f"Unknown candle field '{name}'. Expected one of {CANDLE_FIELDS}.")
    return np.array(
        [np.nan if getattr(c, name) is None else getattr(c, name) for c in candles],
        dtype=float,
    )


def sma(values: Sequence[float], period: int) -> np.ndarray:
    """
    Simple moving average.

    **Mathematical**:
        sma[i] = (1/P) * Σ_{j=i-P+1..i} x[j]     for i >= P-1

    Args:
        values: Input series.
        period: Window length P (>= 1).

    Returns:
        Array of length N, NaN for i < P-1.
    """
    period = _check_period(period)
    series = pd.Series(_as_array(values))
    return series.rolling(window=period, min_periods=period).mean().to_numpy()


def ema(values: Sequence[float], period: int) -> np.ndarray:
    """
    Exponential moving average seeded with an SMA.

    **Mathematical**:
        k = 2 / (P + 1)
        ema[P-1] = mean(x[0..P-1])
        ema[i]   = (x[i] - ema[i-1]) * k + ema[i-1]     for i >= P

    **Edge cases**:
      - N < P: all NaN.
      - A NaN input after the seed propagates forward (callers pass clean series).

    Args:
        values: Input series.
        period: Smoothing period P (>= 1).

    Returns:
        Array of length N, NaN for i < P-1.
    """
    period = _check_period(period)
    data = _as_array(values)
    out = np.full(len(data), np.nan)
    if len(data) < period:
        return out

    k = 2.0 / (period + 1)
    out[period - 1] = data[:period].mean()
    for i in range(period, len(data)):
        out[i] = (data[i] - out[i - 1]) * k + out[i - 1]
    return out


def rsi(values: Sequence[float], period: int = 14) -> np.ndarray:
    """
    Relative Strength Index with Wilder smoothing.

    **Mathematical**:
        change[i] = x[i] - x[i-1]
        avg_gain[P] = mean(max(change[1..P], 0))
        avg_loss[P] = mean(max(-change[1..P], 0))
        avg[i] = (avg[i-1] * (P - 1) + current) / P            for i > P
        rsi[i] = 100 - 100 / (1 + avg_gain[i] / avg_loss[i])
        rsi[i] = 100 when avg_loss[i] == 0

    **Edge cases**:
      - N <= P: all NaN.
      - A perfectly flat series has avg_loss == 0 and reads 100.

    Args:
        values: Price series (typically closes).
        period: Lookback P (>= 1), default 14.

    Returns:
        Array of length N, NaN for i < P.
    """
    period = _check_period(period)
    data = _as_array(values)
    out = np.full(len(data), np.nan)
    if len(data) <= period:
        return out

    changes = np.diff(data)
    gains = np.where(changes > 0, changes, 0.0)
    losses = np.where(changes < 0, -changes, 0.0)

    avg_gain = gains[:period].mean()
    avg_loss = losses[:period].mean()
    out[period] = _rsi_value(avg_gain, avg_loss)

    for i in range(period + 1, len(data)):
        avg_gain = (avg_gain * (period - 1) + gains[i - 1]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i - 1]) / period
        out[i] = _rsi_value(avg_gain, avg_loss)
    return out


def _rsi_value(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0:
        return 100.0
    return 100.0 - 100.0 / (1.0 + avg_gain / avg_loss)


def atr(
    highs: Sequence[float],
    lows: Sequence[float],
    closes: Sequence[float],
    period: int = 14,
) -> np.ndarray:
    """
    Average True Range with Wilder smoothing.

    **Mathematical**:
        tr[0] = high[0] - low[0]
        tr[i] = max(high[i] - low[i], |high[i] - close[i-1]|, |low[i] - close[i-1]|)
        atr[P-1] = mean(tr[0..P-1])
        atr[i]   = (atr[i-1] * (P - 1) + tr[i]) / P        for i >= P

    Args:
        highs, lows, closes: Aligned OHLC columns of equal length.
        period: Lookback P (>= 1), default 14.

    Returns:
        Array of length N, NaN for i < P-1.

    Raises:
        ValueError: If the input columns differ in length.
    """
    period = _check_period(period)
    high = _as_array(highs)
    low = _as_array(lows)
    close = _as_array(closes)
    if not len(high) == len(low) == len(close):
        raise ValueError("highs, lows and closes must have the same length")

    out = np.full(len(close), np.nan)
    if len(close) < period:
        return out

    tr = high - low
    if len(close) > 1:
        prev_close = close[:-1]
        tr[1:] = np.maximum.reduce([
            high[1:] - low[1:],
            np.abs(high[1:] - prev_close),
            np.abs(low[1:] - prev_close),
        ])

    out[period - 1] = tr[:period].mean()
    for i in range(period, len(close)):
        out[i] = (out[i - 1] * (period - 1) + tr[i]) / period
    return out


def stddev(values: Sequence[float], period: int) -> np.ndarray:
    """Rolling population standard deviation (divide by P); NaN for i < P-1."""
    period = _check_period(period)
    series = pd.Series(_as_array(values))
    return series.rolling(window=period, min_periods=period).std(ddof=0).to_numpy()


def bollinger_bands(
    values: Sequence[float],
    period: int = 20,
    num_std: float = 2.0,
) -> BollingerBands:
    """
    Bollinger Bands: SMA plus and minus k population standard deviations.

    **Mathematical**:
        middle = sma(x, P)
        upper  = middle + k * stddev(x, P)
        lower  = middle - k * stddev(x, P)

    Args:
        values: Price series.
        period: Window length P (>= 1), default 20.
        num_std: Band width k in standard deviations, default 2.

    Returns:
        BollingerBands with three arrays, NaN for i < P-1.
    """
    middle = sma(values, period)
    width = stddev(values, period) * num_std
    return BollingerBands(upper=middle + width, middle=middle, lower=middle - width)


def macd(
    values: Sequence[float],
    fast_period: int = 12,
    slow_period: int = 26,
    signal_period: int = 9,
) -> MACD:
    """
    Moving Average Convergence Divergence.

    **Mathematical**:
        macd   = ema(x, fast) - ema(x, slow)
        signal = ema(macd, signal_period)    over the defined part of macd
        hist   = macd - signal

    The signal EMA is seeded from the first `signal_period` *defined* MACD
    values, so it becomes defined at index slow + signal - 2.

    Args:
        values: Price series.
        fast_period: Fast EMA period, default 12.
        slow_period: Slow EMA period, default 26.
        signal_period: Signal EMA period, default 9.

    Returns:
        MACD with three arrays of length N.
    """
    _check_period(fast_period, "fast_period")
    _check_period(slow_period, "slow_period")
    signal_period = _check_period(signal_period, "signal_period")

    line = ema(values, fast_period) - ema(values, slow_period)
    signal = np.full(len(line), np.nan)

    defined = np.flatnonzero(~np.isnan(line))
    if len(defined) > 0:
        start = defined[0]
        signal[start:] = ema(line[start:], signal_period)

    return MACD(macd=line, signal=signal, histogram=line - signal)


def highest(values: Sequence[float], period: int) -> np.ndarray:
    """Rolling maximum over the trailing P values (current included); NaN for i < P-1."""
    period = _check_period(period)
    series = pd.Series(_as_array(values))
    return series.rolling(window=period, min_periods=period).max().to_numpy()


def lowest(values: Sequence[float], period: int) -> np.ndarray:
    """Rolling minimum over the trailing P values (current included); NaN for i < P-1."""
    period = _check_period(period)
    series = pd.Series(_as_array(values))
    return series.rolling(window=period, min_periods=period).min().to_numpy()


def _defined(*values: float) -> bool:
    return all(np.isfinite(v) for v in values)


def crossover(fast: Sequence[float], slow: Sequence[float], index: int) -> bool:
    """
    True iff `fast` crosses above `slow` at `index`.

    **Functionally**: fast[i-1] <= slow[i-1] and fast[i] > slow[i]. False at
    index 0 and whenever any of the four operands is NaN.
    """
    if index < 1 or index >= len(fast) or index >= len(slow):
        return False
    prev_fast, prev_slow = fast[index - 1], slow[index - 1]
    cur_fast, cur_slow = fast[index], slow[index]
    if not _defined(prev_fast, prev_slow, cur_fast, cur_slow):
        return False
    return prev_fast <= prev_slow and cur_fast > cur_slow


def crossunder(fast: Sequence[float], slow: Sequence[float], index: int) -> bool:
    """True iff `fast` crosses below `slow` at `index` (mirror of `crossover`)."""
    if index < 1 or index >= len(fast) or index >= len(slow):
        return False
    prev_fast, prev_slow = fast[index - 1], slow[index - 1]
    cur_fast, cur_slow = fast[index], slow[index]
    if not _defined(prev_fast, prev_slow, cur_fast, cur_slow):
        return False
    return prev_fast >= prev_slow and cur_fast < cur_slow
