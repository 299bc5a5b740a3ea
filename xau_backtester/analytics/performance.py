"""
Performance metrics for a completed backtest.

**Conceptual**: `calculate_metrics` is a pure function from a trade list and
an equity curve to a `PerformanceMetrics` record. The engine calls it at the
end of every run, optimizers rank parameter sets by one of its fields, and
walk-forward analysis compares the in-sample and out-of-sample values.

**Conventions**:
  - Money fields are in account currency; `*_percent`, `cagr` and `win_rate`
    are in percent.
  - `average_loss` and `largest_loss` are reported as positive magnitudes.
  - With zero closed trades every field is 0 (`PerformanceMetrics.empty()`),
    never NaN, so optimizers can compare results without special cases.
"""

from dataclasses import asdict, dataclass, fields
import math
from typing import Dict, Sequence

import numpy as np
import pandas as pd

from xau_backtester.analytics.risk_metrics import (
    compute_cagr_percent,
    compute_calmar_ratio,
    compute_max_drawdown,
    compute_period_returns,
    compute_profit_factor,
    compute_sharpe_ratio,
    compute_sortino_ratio,
    compute_streaks,
    compute_win_rate,
)
from xau_backtester.backtesting.models import EquityPoint, Trade
from xau_backtester.utils.math import safe_divide
from xau_backtester.utils.time import MS_PER_MINUTE, elapsed_days


@dataclass(frozen=True)
class PerformanceMetrics:
    """
    Summary statistics of one backtest.

    Attributes:
        total_return: Final equity minus initial capital ($).
        total_return_percent: total_return / initial capital * 100.
        cagr: Compound annual growth rate (%).
        sharpe_ratio: (CAGR - 2%) / annualized per-bar volatility.
        sortino_ratio: As Sharpe, with downside deviation only.
        max_drawdown: Largest peak-to-trough equity decline ($).
        max_drawdown_percent: The max_drawdown decline relative to its peak (%).
        calmar_ratio: CAGR / max_drawdown_percent.
        win_rate: Winning trades / total trades * 100.
        profit_factor: Gross profit / gross loss (+inf with no losses).
        total_trades, winning_trades, losing_trades: Trade counts.
        average_win: Mean P&L of winning trades ($).
        average_loss: Mean absolute P&L of losing trades ($).
        average_trade_duration: Mean holding time in minutes.
        largest_win: Best trade P&L ($).
        largest_loss: Worst trade P&L as a positive magnitude ($).
        consecutive_wins, consecutive_losses: Longest streaks.
        expectancy: total_return / total_trades ($ per trade).
    """
    total_return: float = 0.0
    total_return_percent: float = 0.0
    cagr: float = 0.0
    sharpe_ratio: float = 0.0
    sortino_ratio: float = 0.0
    max_drawdown: float = 0.0
    max_drawdown_percent: float = 0.0
    calmar_ratio: float = 0.0
    win_rate: float = 0.0
    profit_factor: float = 0.0
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    average_win: float = 0.0
    average_loss: float = 0.0
    average_trade_duration: float = 0.0
    largest_win: float = 0.0
    largest_loss: float = 0.0
    consecutive_wins: int = 0
    consecutive_losses: int = 0
    expectancy: float = 0.0

    @classmethod
    def empty(cls) -> "PerformanceMetrics":
        """All-zero metrics for a run without closed trades."""
        return cls()

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


METRIC_NAMES = tuple(f.name for f in fields(PerformanceMetrics))


def validate_metric_name(name: str) -> str:
    """Return `name` unchanged if it is a known metric, else raise ValueError."""
    if name not in METRIC_NAMES:
        raise ValueError(f"Unknown metric '{name}'. Expected one of: {', '.join(METRIC_NAMES)}")
    return name


def metric_value(metrics: PerformanceMetrics, name: str) -> float:
    """
    Read one metric by name, as optimizers do with their target metric.

    Raises:
        ValueError: If `name` is not a PerformanceMetrics field.
    """
    return float(getattr(metrics, validate_metric_name(name)))


def calculate_metrics(
    trades: Sequence[Trade],
    equity_curve: Sequence[EquityPoint],
    initial_capital: float,
    start_ts: int,
    end_ts: int,
) -> PerformanceMetrics:
    """
    Compute performance metrics for one backtest.

    **Functionally**:
      1. No trades: return `PerformanceMetrics.empty()`.
      2. Final equity is the last equity point (initial capital if the curve
         is empty); total return follows from it.
      3. CAGR uses elapsed calendar days between `start_ts` and `end_ts`.
      4. Win/loss statistics split trades by the sign of their P&L;
         break-even trades count toward `total_trades` only.
      5. Drawdown runs over the equity curve with the peak floored at
         initial capital.
      6. Sharpe and Sortino use per-bar equity returns annualized for
         1-minute bars with a 2% risk-free rate.

    Args:
        trades: Closed trades in exit order.
        equity_curve: One point per candle.
        initial_capital: Starting equity (> 0).
        start_ts: First candle timestamp (ms).
        end_ts: Last candle timestamp (ms).

    Returns:
        PerformanceMetrics.
    """
    if len(trades) == 0:
        return PerformanceMetrics.empty()

    equity = pd.Series([p.equity for p in equity_curve], dtype=float)
    final_equity = float(equity.iloc[-1]) if len(equity) else initial_capital

    total_return = final_equity - initial_capital
    total_return_percent = total_return / initial_capital * 100.0
    cagr = compute_cagr_percent(initial_capital, final_equity, elapsed_days(start_ts, end_ts))

    pnls = np.array([t.pnl for t in trades], dtype=float)
    wins = pnls[pnls > 0]
    losses = pnls[pnls < 0]
    total_wins = float(wins.sum())
    total_losses = float(abs(losses.sum()))

    max_dd, max_dd_percent = compute_max_drawdown(equity, initial_capital)
    returns = compute_period_returns(equity)

    durations = [(t.exit_time - t.entry_time) / MS_PER_MINUTE for t in trades]
    consecutive_wins, consecutive_losses = compute_streaks(pnls)

    return PerformanceMetrics(
        total_return=total_return,
        total_return_percent=total_return_percent,
        cagr=cagr,
        sharpe_ratio=compute_sharpe_ratio(returns, cagr),
        sortino_ratio=compute_sortino_ratio(returns, cagr),
        max_drawdown=max_dd,
        max_drawdown_percent=max_dd_percent,
        calmar_ratio=compute_calmar_ratio(cagr, max_dd_percent),
        win_rate=compute_win_rate(len(wins), len(trades)),
        profit_factor=compute_profit_factor(total_wins, total_losses),
        total_trades=len(trades),
        winning_trades=len(wins),
        losing_trades=len(losses),
        average_win=safe_divide(total_wins, len(wins)),
        average_loss=safe_divide(total_losses, len(losses)),
        average_trade_duration=float(np.mean(durations)),
        largest_win=float(wins.max()) if len(wins) else 0.0,
        largest_loss=float(abs(losses.min())) if len(losses) else 0.0,
        consecutive_wins=consecutive_wins,
        consecutive_losses=consecutive_losses,
        expectancy=total_return / len(trades),
    )


def _ratio(value: float) -> str:
    return "∞" if math.isinf(value) and value > 0 else f"{value:.2f}"


def format_metrics(metrics: PerformanceMetrics) -> Dict[str, str]:
    """Human-readable labels and values, in display order."""
    return {
        "Total Return": f"${metrics.total_return:.2f} ({metrics.total_return_percent:.2f}%)",
        "CAGR": f"{_ratio(metrics.cagr)}%",
        "Sharpe Ratio": _ratio(metrics.sharpe_ratio),
        "Sortino Ratio": _ratio(metrics.sortino_ratio),
        "Max Drawdown": f"${metrics.max_drawdown:.2f} ({metrics.max_drawdown_percent:.2f}%)",
        "Calmar Ratio": _ratio(metrics.calmar_ratio),
        "Win Rate": f"{metrics.win_rate:.1f}%",
        "Profit Factor": _ratio(metrics.profit_factor),
        "Total Trades": str(metrics.total_trades),
        "Winning Trades": str(metrics.winning_trades),
        "Losing Trades": str(metrics.losing_trades),
        "Average Win": f"${metrics.average_win:.2f}",
        "Average Loss": f"${metrics.average_loss:.2f}",
        "Largest Win": f"${metrics.largest_win:.2f}",
        "Largest Loss": f"${metrics.largest_loss:.2f}",
        "Avg Trade Duration": f"{metrics.average_trade_duration:.1f} min",
        "Expectancy": f"${metrics.expectancy:.2f}",
        "Max Consecutive Wins": str(metrics.consecutive_wins),
        "Max Consecutive Losses": str(metrics.consecutive_losses),
    }
