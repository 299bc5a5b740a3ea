"""
Tests for xau_backtester/analytics/risk_metrics.py

These tests verify the individual risk/return formulas using small,
hand-crafted equity curves and trade lists.
"""

import math

import numpy as np
import pandas as pd
import pytest

from xau_backtester.analytics.risk_metrics import (
    compute_cagr_percent,
    compute_calmar_ratio,
    compute_drawdown_series,
    compute_max_drawdown,
    compute_period_returns,
    compute_profit_factor,
    compute_sharpe_ratio,
    compute_sortino_ratio,
    compute_streaks,
    compute_win_rate,
)


def test_period_returns_skip_non_positive_previous_equity():
    returns = compute_period_returns(pd.Series([100.0, 110.0, 0.0, 50.0]))
    # 100 -> 110 and 110 -> 0 count; 0 -> 50 is skipped
    assert np.allclose(returns, [0.10, -1.0])


def test_period_returns_short_curve_is_empty():
    assert len(compute_period_returns(pd.Series([100.0]))) == 0


def test_cagr_one_year_doubling():
    """Doubling in exactly 365 days is 100% CAGR."""
    assert compute_cagr_percent(10_000, 20_000, 365) == pytest.approx(100.0)


def test_cagr_edge_cases():
    assert compute_cagr_percent(10_000, 20_000, 0) == 0.0
    assert compute_cagr_percent(10_000, -500, 30) == -100.0


def test_cagr_overflow_is_infinite():
    """+15% over 99 minutes compounds to 1.15 ** 5309 per year, past the float range."""
    days = 99 / (24 * 60)
    assert compute_cagr_percent(10_000, 11_500, days) == math.inf
    assert compute_sharpe_ratio([0.0, 0.01, 0.02], math.inf) == math.inf
    assert compute_calmar_ratio(math.inf, 5.0) == math.inf


def test_sharpe_ratio_formula():
    """(CAGR - 2) / (population std * sqrt(periods))."""
    returns = [0.01, -0.01, 0.02, 0.0]
    expected = (12.0 - 2.0) / (np.std(returns) * np.sqrt(525_600))
    assert compute_sharpe_ratio(returns, 12.0) == pytest.approx(expected)
    assert type(compute_sharpe_ratio(returns, 12.0)) is float


def test_sharpe_ratio_degenerate():
    assert compute_sharpe_ratio([0.01], 10.0) == 0.0
    assert compute_sharpe_ratio([0.01, 0.01, 0.01], 10.0) == 0.0


def test_sortino_uses_downside_over_all_returns():
    """downside = sqrt((0.01² + 0.03²) / 4) * sqrt(periods)."""
    returns = [0.02, -0.01, 0.01, -0.03]
    downside = math.sqrt((0.01 ** 2 + 0.03 ** 2) / 4) * math.sqrt(525_600)
    assert compute_sortino_ratio(returns, 12.0) == pytest.approx(10.0 / downside)
    assert type(compute_sortino_ratio(returns, 12.0)) is float


def test_sortino_without_losses():
    assert compute_sortino_ratio([0.01, 0.02], 5.0) == math.inf
    assert compute_sortino_ratio([0.01, 0.02], -1.0) == 0.0


def test_drawdown_peak_floored_at_initial_capital():
    """
    Equity 9,000 -> 12,000 -> 9,000 with initial 10,000:
      peaks 10,000, 12,000, 12,000
      drawdown 1,000 (10%), 0, 3,000 (25%)
    """
    series = compute_drawdown_series(pd.Series([9_000.0, 12_000.0, 9_000.0]), 10_000.0)
    assert np.allclose(series["peak"], [10_000.0, 12_000.0, 12_000.0])
    assert np.allclose(series["drawdown"], [1_000.0, 0.0, 3_000.0])
    assert np.allclose(series["drawdown_percent"], [10.0, 0.0, 25.0])


def test_max_drawdown_percent_belongs_to_largest_dollar_drawdown():
    """
    10,000 -> 5,000 (-5,000, 50%) -> 100,000 -> 90,000 (-10,000, 10%).
    The largest dollar drawdown is the second one, so its 10% is reported,
    not the deeper 50% from the lower peak.
    """
    equity = pd.Series([10_000.0, 5_000.0, 100_000.0, 90_000.0])
    dd, dd_percent = compute_max_drawdown(equity, 10_000.0)
    assert dd == pytest.approx(10_000.0)
    assert dd_percent == pytest.approx(10.0)
    assert compute_max_drawdown(pd.Series([], dtype=float), 10_000.0) == (0.0, 0.0)


def test_calmar_ratio():
    assert compute_calmar_ratio(30.0, 10.0) == pytest.approx(3.0)
    assert compute_calmar_ratio(30.0, 0.0) == 0.0


def test_profit_factor_cases():
    assert compute_profit_factor(300.0, 100.0) == pytest.approx(3.0)
    assert compute_profit_factor(300.0, 0.0) == math.inf
    assert compute_profit_factor(0.0, 0.0) == 0.0
    assert compute_profit_factor(0.0, 50.0) == 0.0


def test_streaks_ignore_break_even_trades():
    pnls = [10, 5, 0, 7, -1, -2, 0, -3, 4]
    assert compute_streaks(pnls) == (3, 3)


def test_win_rate():
    assert compute_win_rate(3, 4) == pytest.approx(75.0)
    assert compute_win_rate(0, 0) == 0.0
