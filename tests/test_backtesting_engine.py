"""
Tests for the backtest engine.

This module tests the backtest engine's ability to:
  - Iterate through candles and call strategy and broker in the right order.
  - Close positions on stops/targets before the strategy sees the candle.
  - Reverse positions and force-close at the end of data.
  - Keep Σ trade.pnl == final equity - initial capital.
  - Stay free of state leaks when one engine is reused.

Tests use trivial strategies (NeverSignalStrategy, BuyAndHoldStrategy, small
scripted strategies) and synthetic candles with known expected outcomes.
"""

import math

import pytest

from xau_backtester.backtesting.engine import BacktestEngine, run_backtest
from xau_backtester.backtesting.models import BacktestConfig, Signal, SignalType
from xau_backtester.data.synthetic import generate_gbm_candles, generate_linear_candles
from xau_backtester.strategies.base import BuyAndHoldStrategy, NeverSignalStrategy, Strategy
from xau_backtester.strategies.sma_crossover import SMACrossoverStrategy


class ScriptedStrategy(Strategy):
    """Emits a fixed signal at given candle indices."""

    name = "Scripted"

    def __init__(self, script):
        super().__init__({})
        self.script = script
        self.seen_lengths = []

    def on_candle(self, index, history, position):
        self.seen_lengths.append(len(history))
        return self.script.get(index)


def test_backtest_never_signal_keeps_equity_constant(frictionless_config):
    """
    Scenario: flat series, strategy never trades.

    Expected:
      - Zero trades, equity equal to initial capital on every candle.
      - All metrics zero.
    """
    candles = generate_linear_candles(n=50, start_price=2000.0, end_price=2000.0)
    result = run_backtest(candles, NeverSignalStrategy(), frictionless_config)

    assert result.trades == []
    assert len(result.equity_curve) == 50
    assert all(p.equity == 10_000.0 for p in result.equity_curve)
    assert result.metrics.total_trades == 0
    assert result.metrics.total_return == 0.0
    assert result.candle_count == 50
    assert result.start_date == candles[0].timestamp
    assert result.end_date == candles[-1].timestamp


def test_buy_and_hold_force_closed_at_end(frictionless_config):
    """
    Long $10,000 at 2650, rising linearly to 2750, force-closed at the last close.

    Expected pnl = (2750 - 2650) / 2650 * 10,000.
    """
    candles = generate_linear_candles(n=100)
    result = run_backtest(candles, BuyAndHoldStrategy(), frictionless_config)

    assert len(result.trades) == 1
    trade = result.trades[0]
    assert trade.exit_reason == "End of backtest"
    assert trade.entry_time == candles[0].timestamp
    assert trade.exit_time == candles[-1].timestamp
    assert trade.pnl == pytest.approx(100.0 / 2650.0 * 10_000)
    assert result.final_equity == pytest.approx(10_000 + trade.pnl)


def test_linear_sma_crossover_single_winning_trade(frictionless_config):
    """
    Scenario: 100 rising candles, SMA(5/20), no commission or slippage.

    Expected:
      - The slow SMA is first defined at index 19 with fast above slow,
        so the strategy enters long there.
      - Prices never fall, so no stop and no opposite cross: exactly one
        trade, force-closed at the end, 100% win rate.
    """
    candles = generate_linear_candles(n=100)
    strategy = SMACrossoverStrategy({"fast_period": 5, "slow_period": 20})
    result = run_backtest(candles, strategy, frictionless_config)

    assert len(result.trades) == 1
    trade = result.trades[0]
    entry_index = [c.timestamp for c in candles].index(trade.entry_time)
    assert 19 <= entry_index <= 20
    assert trade.pnl > 0
    assert result.metrics.win_rate == pytest.approx(100.0)
    assert result.metrics.profit_factor == float("inf")


def test_linear_sma_crossover_at_default_leverage():
    """
    Same scenario at 100x leverage and 10% per position ($100k notional).

    A ~30% gain in 99 minutes annualizes past the float range: CAGR is +inf,
    and the ratios built on it stay free of NaN.
    """
    candles = generate_linear_candles(n=100)
    strategy = SMACrossoverStrategy({"fast_period": 5, "slow_period": 20})
    result = run_backtest(candles, strategy, BacktestConfig(10_000.0, 0.0, 0.0, 100.0, 0.1))

    assert len(result.trades) == 1
    assert result.trades[0].size == pytest.approx(100_000.0)
    assert result.metrics.total_return_percent > 14.0
    assert result.metrics.cagr == math.inf
    assert not any(math.isnan(value) for value in result.metrics.to_dict().values())


def test_accounting_identity_with_costs():
    """Σ trade.pnl == final equity - initial capital, with commission and slippage."""
    candles = generate_gbm_candles(3_000, volatility=0.3, seed=5)
    result = run_backtest(candles, SMACrossoverStrategy({"fast_period": 5, "slow_period": 15}))

    assert len(result.trades) > 0
    total_pnl = sum(t.pnl for t in result.trades)
    assert total_pnl == pytest.approx(result.final_equity - result.config.initial_capital)
    assert result.metrics.total_return == pytest.approx(total_pnl)
    assert result.metrics.winning_trades + result.metrics.losing_trades <= result.metrics.total_trades


def test_stop_exit_runs_before_strategy(frictionless_config):
    """
    The stop at 2600 is crossed by candle 2's low; the trade closes at exactly
    2600 even though the candle closes higher.
    """
    candles = generate_linear_candles(n=5, start_price=2650.0, end_price=2650.0)
    crash = candles[2]
    candles[2] = type(crash)(crash.timestamp, 2650.0, 2660.0, 2590.0, 2655.0)
    candles[3] = type(crash)(candles[3].timestamp, 2655.0, 2655.0, 2650.0, 2650.0)

    strategy = ScriptedStrategy({0: Signal(type=SignalType.BUY, stop_loss=2600.0)})
    result = run_backtest(candles, strategy, frictionless_config)

    assert len(result.trades) == 1
    trade = result.trades[0]
    assert trade.exit_reason == "Stop loss hit"
    assert trade.exit_price == pytest.approx(2600.0)
    assert trade.exit_time == candles[2].timestamp


def test_reversal_closes_then_opens(frictionless_config):
    candles = generate_linear_candles(n=6)
    strategy = ScriptedStrategy({
        1: Signal(type=SignalType.BUY),
        3: Signal(type=SignalType.SELL),
    })
    result = run_backtest(candles, strategy, frictionless_config)

    assert [t.exit_reason for t in result.trades] == ["Reverse to short", "End of backtest"]
    assert result.trades[0].direction.value == "long"
    assert result.trades[1].direction.value == "short"
    assert result.trades[0].exit_time == result.trades[1].entry_time == candles[3].timestamp


def test_close_signal_reason_and_default(frictionless_config):
    candles = generate_linear_candles(n=6)
    strategy = ScriptedStrategy({
        0: Signal(type=SignalType.BUY),
        1: Signal(type=SignalType.CLOSE, reason="Exit rule"),
        2: Signal(type=SignalType.SELL),
        3: Signal(type=SignalType.CLOSE),
        4: Signal(type=SignalType.CLOSE),
    })
    result = run_backtest(candles, strategy, frictionless_config)
    assert [t.exit_reason for t in result.trades] == ["Exit rule", "Close signal"]


def test_strategy_sees_only_past_candles(frictionless_config):
    candles = generate_linear_candles(n=10)
    strategy = ScriptedStrategy({})
    run_backtest(candles, strategy, frictionless_config)
    assert strategy.seen_lengths == list(range(1, 11))


def test_engine_reuse_does_not_leak_state(frictionless_config):
    """Two runs on one engine produce identical trades with ids starting at 1."""
    engine = BacktestEngine(frictionless_config)
    candles = generate_gbm_candles(1_500, volatility=0.3, seed=9)
    strategy = SMACrossoverStrategy({"fast_period": 5, "slow_period": 15})

    first = engine.run(candles, strategy.clone())
    second = engine.run(candles, strategy.clone())

    assert first.trades[0].id == second.trades[0].id == 1
    assert [t.pnl for t in first.trades] == [t.pnl for t in second.trades]
    assert first.final_equity == second.final_equity


def test_empty_candles_rejected():
    with pytest.raises(ValueError):
        BacktestEngine().run([], NeverSignalStrategy())
