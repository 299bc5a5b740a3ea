"""
Mathematical and statistical helpers for backtest analytics.

Small numeric building blocks shared by the metrics calculator, the Monte Carlo
simulator and the optimizers: guarded division, clamping, population standard
deviation and nearest-rank percentiles over pre-sorted samples.
"""

import math
from typing import Sequence

import numpy as np


def safe_divide(numerator: float, denominator: float, default: float = 0.0) -> float:
    """
    Divide, returning `default` instead of raising or producing NaN/inf.

    **Functionally**:
    - Returns `default` when the denominator is zero or not finite.
    - Used wherever a ratio is reported to users (win rate, expectancy,
      averages) so that empty inputs yield a clean sentinel.

    Args:
        numerator: Dividend.
        denominator: Divisor.
        default: Value returned when the division is undefined.

    Returns:
        numerator / denominator, or `default`.
    """
    if denominator == 0 or not math.isfinite(denominator):
        return default
    return numerator / denominator


def clamp(value: float, lower: float, upper: float) -> float:
    """Clamp `value` into the closed interval [lower, upper]."""
    return max(lower, min(upper, value))


def population_std(values: Sequence[float]) -> float:
    """
    Population standard deviation (divide by N, not N-1).

    **Mathematical**:
        σ = sqrt( (1/N) * Σ (x_i - mean)^2 )

    **Edge cases**:
    - Empty input returns 0.0.
    - A single value returns 0.0.

    Args:
        values: Sample values.

    Returns:
        Population standard deviation as a float.
    """
    if len(values) == 0:
        return 0.0
    return float(np.std(np.asarray(values, dtype=float), ddof=0))


def sample_std(values: Sequence[float]) -> float:
    """Sample standard deviation (N-1 denominator); 0.0 for fewer than two values."""
    if len(values) < 2:
        return 0.0
    return float(np.std(np.asarray(values, dtype=float), ddof=1))


def nearest_rank_percentile(sorted_values: Sequence[float], p: float) -> float:
    """
    Read a percentile from an ascending-sorted sample by index.

    **Mathematical**: For N sorted values and fraction p in [0, 1]:
        index = min(floor(N * p), N - 1)
        percentile = sorted_values[index]

    No interpolation is performed, so the result is always an observed value.
    This keeps Monte Carlo bands reproducible and easy to verify by hand.

    Args:
        sorted_values: Values sorted ascending (caller's responsibility).
        p: Fraction in [0, 1] (0.05 for the 5th percentile).

    Returns:
        The selected sample value.

    Raises:
        ValueError: If `sorted_values` is empty or p is outside [0, 1].
    """
    if len(sorted_values) == 0:
        raise ValueError("Cannot take a percentile of an empty sample.")
    if not 0.0 <= p <= 1.0:
        raise ValueError(f"Percentile fraction must be in [0, 1], got: {p}")
    index = min(int(math.floor(len(sorted_values) * p)), len(sorted_values) - 1)
    return float(sorted_values[index])
