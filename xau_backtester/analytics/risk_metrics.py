"""
Risk and return building blocks for backtest evaluation.

This module holds the individual formulas behind `PerformanceMetrics`:
  - Returns: per-bar equity returns, CAGR in percent
  - Risk-adjusted: Sharpe and Sortino ratios annualized for 1-minute bars
  - Drawdown/pain: running-peak drawdown series, max drawdown, Calmar ratio
  - Trade-style: profit factor, longest win/loss streaks

**Conventions**:
  - Percentages are expressed as percent (12.5 means 12.5%), matching how the
    metrics are reported to users.
  - Ratios never return NaN. Undefined cases return 0.0, or +inf where the
    ratio is unbounded by construction (a profitable system with no losses).
"""

import math
from typing import Sequence, Tuple

import numpy as np
import pandas as pd

from xau_backtester.utils.math import population_std, safe_divide
from xau_backtester.utils.time import MINUTES_PER_YEAR


RISK_FREE_RATE_PERCENT = 2.0
PERIODS_PER_YEAR = MINUTES_PER_YEAR


def compute_period_returns(equity_curve: pd.Series) -> np.ndarray:
    """
    Simple returns between consecutive equity points.

    **Mathematical**:
        r_i = (E_i - E_{i-1}) / E_{i-1}        for every i with E_{i-1} > 0

    **Edge cases**:
      - Pairs whose previous equity is <= 0 are skipped (a blown-up account
        has no meaningful percentage return).
      - Fewer than two points returns an empty array.

    Args:
        equity_curve: Equity values in time order.

    Returns:
        1-D float array of period returns.
    """
    values = np.asarray(equity_curve, dtype=float)
    if len(values) < 2:
        return np.array([], dtype=float)
    prev, curr = values[:-1], values[1:]
    mask = prev > 0
    return (curr[mask] - prev[mask]) / prev[mask]


def compute_cagr_percent(initial_capital: float, final_equity: float, days: float) -> float:
    """
    Compound annual growth rate, in percent.

    **Mathematical**:
        years = days / 365
        CAGR  = ((final / initial) ** (1 / years) - 1) * 100

    **Edge cases**:
      - years <= 0 returns 0.0 (a zero-length backtest has no annual rate).
      - final <= 0 returns -100.0 (the account is gone; a fractional power of
        a negative ratio is undefined).
      - Short profitable runs compound past the float range (a 15% gain over
        100 one-minute bars); the result is then +inf.

    Args:
        initial_capital: Starting equity (> 0).
        final_equity: Ending equity.
        days: Elapsed calendar days.

    Returns:
        CAGR in percent.
    """
    years = days / 365.0
    if years <= 0:
        return 0.0
    if final_equity <= 0:
        return -100.0
    try:
        growth = (final_equity / initial_capital) ** (1.0 / years)
    except OverflowError:
        return math.inf
    return (growth - 1.0) * 100.0


def compute_sharpe_ratio(
    returns: Sequence[float],
    annual_return_percent: float,
    risk_free_rate_percent: float = RISK_FREE_RATE_PERCENT,
    periods_per_year: int = PERIODS_PER_YEAR,
) -> float:
    """
    Sharpe ratio from CAGR and per-bar volatility.

    **Mathematical**:
        σ_annual = population_std(returns) * sqrt(periods_per_year)
        Sharpe   = (CAGR% - rf%) / σ_annual

    **Teaching note**: The numerator is in percent while σ is a fraction, so
    values are not comparable to textbook Sharpe ratios in absolute terms.
    They are comparable across strategies evaluated by this library, which is
    what optimization needs.

    **Edge cases**:
      - Fewer than two returns, or zero volatility: 0.0.

    Args:
        returns: Per-bar returns.
        annual_return_percent: CAGR in percent.
        risk_free_rate_percent: Annual risk-free rate in percent (default 2).
        periods_per_year: Bars per year (default 525,600 one-minute bars).

    Returns:
        Sharpe ratio.
    """
    if len(returns) < 2:
        return 0.0
    annual_std = population_std(returns) * np.sqrt(periods_per_year)
    if annual_std == 0:
        return 0.0
    return float((annual_return_percent - risk_free_rate_percent) / annual_std)


def compute_sortino_ratio(
    returns: Sequence[float],
    annual_return_percent: float,
    risk_free_rate_percent: float = RISK_FREE_RATE_PERCENT,
    periods_per_year: int = PERIODS_PER_YEAR,
) -> float:
    """
    Sortino ratio: Sharpe with only downside deviation in the denominator.

    **Mathematical**:
        downside_dev = sqrt( Σ_{r<0} r^2 / N )        (N = all returns)
        Sortino      = (CAGR% - rf%) / (downside_dev * sqrt(periods_per_year))

    **Edge cases**:
      - Fewer than two returns: 0.0.
      - No negative returns: +inf if CAGR > 0, else 0.0.

    Returns:
        Sortino ratio.
    """
    if len(returns) < 2:
        return 0.0
    values = np.asarray(returns, dtype=float)
    negatives = values[values < 0]
    if len(negatives) == 0:
        return float("inf") if annual_return_percent > 0 else 0.0

    downside = np.sqrt(np.sum(negatives ** 2) / len(values)) * np.sqrt(periods_per_year)
    if downside == 0:
        return 0.0
    return float((annual_return_percent - risk_free_rate_percent) / downside)


def compute_drawdown_series(equity_curve: pd.Series, initial_capital: float) -> pd.DataFrame:
    """
    Running-peak drawdown in dollars and percent.

    **Mathematical**:
        peak_t  = max(initial_capital, max_{s<=t} E_s)
        dd_t    = peak_t - E_t
        dd%_t   = dd_t / peak_t * 100

    The peak starts at initial capital, so an equity curve that opens below
    its starting capital already shows a drawdown on the first bar.

    Args:
        equity_curve: Equity values in time order.
        initial_capital: Starting equity, the floor of the running peak.

    Returns:
        DataFrame with columns `peak`, `drawdown`, `drawdown_percent`.
    """
    equity = pd.Series(equity_curve, dtype=float).reset_index(drop=True)
    peak = equity.cummax().clip(lower=initial_capital)
    drawdown = peak - equity
    drawdown_percent = drawdown / peak * 100.0
    return pd.DataFrame({
        "peak": peak,
        "drawdown": drawdown,
        "drawdown_percent": drawdown_percent,
    })


def compute_max_drawdown(equity_curve: pd.Series, initial_capital: float) -> Tuple[float, float]:
    """
    Largest peak-to-trough decline, in dollars and in percent.

    The percent is the one at the trough of the largest dollar drawdown (the
    first such trough on ties), so both numbers describe the same decline.
    A deeper percentage drawdown from a lower peak is not reported.

    Returns:
        (max_drawdown, max_drawdown_percent); (0.0, 0.0) for an empty curve.
    """
    if len(equity_curve) == 0:
        return 0.0, 0.0
    series = compute_drawdown_series(equity_curve, initial_capital)
    worst = series["drawdown"].idxmax()
    return float(series.at[worst, "drawdown"]), float(series.at[worst, "drawdown_percent"])


def compute_calmar_ratio(cagr_percent: float, max_drawdown_percent: float) -> float:
    """Calmar ratio = CAGR% / max drawdown%; 0.0 when there was no drawdown."""
    if max_drawdown_percent <= 0:
        return 0.0
    return cagr_percent / max_drawdown_percent


def compute_profit_factor(total_wins: float, total_losses: float) -> float:
    """
    Gross profit over gross loss.

    Args:
        total_wins: Sum of winning trade P&L (>= 0).
        total_losses: Absolute sum of losing trade P&L (>= 0).

    Returns:
        wins / losses; +inf when there are wins but no losses; 0.0 when both are zero.
    """
    if total_losses > 0:
        return total_wins / total_losses
    return float("inf") if total_wins > 0 else 0.0


def compute_streaks(pnls: Sequence[float]) -> Tuple[int, int]:
    """
    Longest runs of consecutive winning and losing trades.

    Break-even trades (pnl == 0) neither extend nor reset a streak.

    Returns:
        (max_consecutive_wins, max_consecutive_losses).
    """
    best_wins = best_losses = 0
    wins = losses = 0
    for pnl in pnls:
        if pnl > 0:
            wins += 1
            losses = 0
            best_wins = max(best_wins, wins)
        elif pnl < 0:
            losses += 1
            wins = 0
            best_losses = max(best_losses, losses)
    return best_wins, best_losses


def compute_win_rate(winning: int, total: int) -> float:
    """Winning trades as a percentage of all closed trades."""
    return safe_divide(winning, total) * 100.0
