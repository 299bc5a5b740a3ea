"""
Synthetic XAU/USD candle generation for testing strategies and the engine.

This module provides functions to generate synthetic 1-minute candle series
with known properties, enabling controlled testing of strategy logic,
engine accounting and optimizer behavior without depending on market data.

**Why synthetic data?**
  - Known ground truth: a linear ramp has exactly one SMA regime, a flat
    series has none, so expected trades can be derived by hand.
  - Reproducibility: seeded generators produce identical series on every run.
  - Coverage: stress the engine under trending and noisy regimes on demand.
"""

from typing import List, Optional

import numpy as np

from xau_backtester.backtesting.models import Candle
from xau_backtester.utils.time import MINUTES_PER_YEAR, MS_PER_MINUTE


# 2024-01-01 00:00:00 UTC
DEFAULT_START_TS = 1_704_067_200_000


def _build_candles(
    closes: np.ndarray,
    start_ts: int,
    interval_minutes: int,
    wicks: np.ndarray,
    volumes: Optional[np.ndarray] = None,
) -> List[Candle]:
    candles = []
    step_ms = interval_minutes * MS_PER_MINUTE
    for i, close in enumerate(closes):
        open_ = closes[i - 1] if i > 0 else close
        candles.append(
            Candle(
                timestamp=start_ts + i * step_ms,
                open=float(open_),
                high=float(max(open_, close) + wicks[i]),
                low=float(min(open_, close) - wicks[i]),
                close=float(close),
                volume=None if volumes is None else float(volumes[i]),
            )
        )
    return candles


def generate_linear_candles(
    n: int = 100,
    start_price: float = 2650.0,
    end_price: float = 2750.0,
    start_ts: int = DEFAULT_START_TS,
    interval_minutes: int = 1,
    wick: float = 0.0,
) -> List[Candle]:
    """
    Generate candles whose closes move linearly from `start_price` to `end_price`.

    **Functionally**:
      - close[i] = start + (end - start) * i / (n - 1)
      - open[i] = close[i-1] (open[0] = close[0])
      - high/low extend `wick` beyond the body on both sides
      - start_price == end_price with wick=0 gives a perfectly flat series

    Args:
        n: Number of candles (>= 1).
        start_price: First close.
        end_price: Last close.
        start_ts: Timestamp of the first candle (ms).
        interval_minutes: Spacing between candles.
        wick: Distance of high/low beyond the candle body.

    Returns:
        List of n candles in ascending time order.

    Raises:
        ValueError: If n < 1 or wick < 0.
    """
    if n < 1:
        raise ValueError(f"n must be >= 1, got {n}")
    if wick < 0:
        raise ValueError(f"wick must be non-negative, got {wick}")
    closes = np.linspace(start_price, end_price, n)
    return _build_candles(closes, start_ts, interval_minutes, np.full(n, wick))


def generate_gbm_candles(
    n: int,
    initial_price: float = 2650.0,
    drift: float = 0.05,
    volatility: float = 0.15,
    start_ts: int = DEFAULT_START_TS,
    interval_minutes: int = 1,
    rng: Optional[np.random.Generator] = None,
    seed: Optional[int] = None,
) -> List[Candle]:
    """
    Generate candles from a Geometric Brownian Motion close path.

    **Mathematical**: with dt = interval_minutes / 525,600 (years),
        S_{t+1} = S_t * exp((μ - 0.5 σ²) dt + σ sqrt(dt) Z_t),  Z_t ~ N(0, 1)

    Wicks are |N(0, 1)| * S_t * σ * sqrt(dt), so bar ranges scale with the
    per-bar volatility. Volume is a positive random integer-like count.

    Args:
        n: Number of candles (>= 1).
        initial_price: First close.
        drift: Annualized drift μ.
        volatility: Annualized volatility σ (>= 0).
        start_ts: Timestamp of the first candle (ms).
        interval_minutes: Spacing between candles.
        rng: Random generator to draw from. Takes precedence over `seed`.
        seed: Seed for a fresh `numpy.random.default_rng` when `rng` is None.

    Returns:
        List of n candles in ascending time order.

    Raises:
        ValueError: If n < 1, initial_price <= 0 or volatility < 0.
    """
    if n < 1:
        raise ValueError(f"n must be >= 1, got {n}")
    if initial_price <= 0:
        raise ValueError(f"initial_price must be positive, got {initial_price}")
    if volatility < 0:
        raise ValueError(f"volatility must be non-negative, got {volatility}")

    rng = rng if rng is not None else np.random.default_rng(seed)
    dt = interval_minutes / MINUTES_PER_YEAR

    shocks = rng.standard_normal(n - 1)
    log_steps = (drift - 0.5 * volatility ** 2) * dt + volatility * np.sqrt(dt) * shocks
    closes = initial_price * np.exp(np.concatenate([[0.0], np.cumsum(log_steps)]))

    wicks = np.abs(rng.standard_normal(n)) * closes * volatility * np.sqrt(dt)
    volumes = rng.integers(1, 500, size=n).astype(float)
    return _build_candles(closes, start_ts, interval_minutes, wicks, volumes)
