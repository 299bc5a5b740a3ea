"""
Tests for xau_backtester/analytics/monte_carlo.py

Permutation keeps the sum of P&L fixed, so total return is the same in every
simulation; tests lean on that invariant and on orderings whose drawdowns can
be bounded by hand.
"""

import pytest

from xau_backtester.analytics.monte_carlo import (
    MonteCarloConfig,
    MonteCarloSimulator,
    replay_trades,
)
from xau_backtester.backtesting.engine import run_backtest
from xau_backtester.backtesting.models import Direction, Trade
from xau_backtester.data.synthetic import generate_gbm_candles
from xau_backtester.strategies.sma_crossover import SMACrossoverStrategy
from xau_backtester.utils.cancellation import CancellationToken, OptimizationCancelled


def make_trades(pnls):
    return [
        Trade(
            id=i + 1, entry_time=1000 * i, exit_time=1000 * i + 500,
            entry_price=2000.0, exit_price=2000.0, direction=Direction.LONG,
            size=10_000.0, pnl=pnl, pnl_percent=pnl / 100.0, commission=0.0,
        )
        for i, pnl in enumerate(pnls)
    ]


def test_replay_trades_known_path():
    """
    1,000 -> 1,100 -> 900:
      peak 1,100, max drawdown 200 / 1,100, total return -10%.
    """
    outcome = replay_trades([100.0, -200.0], 1_000.0, 0.5)
    assert outcome.final_equity == pytest.approx(900.0)
    assert outcome.total_return == pytest.approx(-10.0)
    assert outcome.max_drawdown == pytest.approx(200.0 / 1_100.0 * 100.0)
    assert not outcome.hit_ruin


def test_single_simulation_matches_backtest_total_return():
    """One permutation of a real backtest's trades ends where the backtest ended."""
    backtest = run_backtest(
        generate_gbm_candles(3_000, volatility=0.3, seed=5),
        SMACrossoverStrategy({"fast_period": 5, "slow_period": 15}),
    )
    assert len(backtest.trades) > 1

    config = MonteCarloConfig(simulations=1, initial_capital=backtest.config.initial_capital)
    result = MonteCarloSimulator(backtest.trades, backtest.metrics, config, seed=1).simulate()

    assert result.simulations == 1
    for band in result.percentiles.values():
        assert band.total_return == pytest.approx(backtest.metrics.total_return_percent)
        assert band.final_equity == pytest.approx(backtest.final_equity)


def test_total_return_identical_across_permutations():
    trades = make_trades([120.0, -80.0, 40.0, -30.0, 75.0, -60.0])
    result = MonteCarloSimulator(trades, config=MonteCarloConfig(simulations=200), seed=3).simulate()
    returns = {round(o.total_return, 9) for o in result.outcomes}
    assert len(returns) == 1


def test_small_losses_never_ruin():
    """Alternating +100 / -50 can lose at most 500 of 10,000; 99% ruin is unreachable."""
    trades = make_trades([100.0, -50.0] * 10)
    config = MonteCarloConfig(simulations=500, ruin_threshold=0.99)
    result = MonteCarloSimulator(trades, config=config, seed=7).simulate()
    assert result.risk_of_ruin == pytest.approx(0.0)


def test_large_losses_always_ruin():
    trades = make_trades([-6_000.0, -100.0])
    result = MonteCarloSimulator(trades, config=MonteCarloConfig(simulations=50), seed=7).simulate()
    assert result.risk_of_ruin == pytest.approx(100.0)


def test_drawdown_bands_are_inverted():
    """The p5 band is the pessimistic one, so it carries the larger drawdown."""
    trades = make_trades([300.0, -250.0, 150.0, -400.0, 500.0, -100.0, 50.0, -200.0])
    result = MonteCarloSimulator(trades, config=MonteCarloConfig(simulations=300), seed=11).simulate()
    assert result.p5.max_drawdown >= result.p50.max_drawdown >= result.p95.max_drawdown
    assert result.confidence_interval_95.drawdown_low <= result.confidence_interval_95.drawdown_high


def test_seed_reproducibility():
    trades = make_trades([120.0, -80.0, 40.0, -30.0, 75.0, -60.0])
    config = MonteCarloConfig(simulations=100)
    first = MonteCarloSimulator(trades, config=config, seed=42).simulate()
    second = MonteCarloSimulator(trades, config=config, seed=42).simulate()
    assert [o.max_drawdown for o in first.outcomes] == [o.max_drawdown for o in second.outcomes]
    assert first.p5 == second.p5


def test_empty_trades_returns_empty_result():
    result = MonteCarloSimulator([], config=MonteCarloConfig(initial_capital=5_000.0)).simulate()
    assert result.simulations == 0
    assert result.risk_of_ruin == 0.0
    assert result.p50.final_equity == 5_000.0


def test_progress_reports_fractions_and_completion():
    fractions = []
    trades = make_trades([10.0, -5.0])
    MonteCarloSimulator(trades, config=MonteCarloConfig(simulations=250), seed=0).simulate(
        on_progress=fractions.append
    )
    assert fractions[0] == pytest.approx(1 / 250)
    assert fractions[-1] == 1.0
    assert all(a <= b for a, b in zip(fractions, fractions[1:]))


def test_cancellation_stops_simulation():
    token = CancellationToken()
    token.cancel()
    simulator = MonteCarloSimulator(make_trades([10.0]), seed=0, cancel_token=token)
    with pytest.raises(OptimizationCancelled):
        simulator.simulate()


def test_config_validation():
    with pytest.raises(ValueError):
        MonteCarloConfig(simulations=0)
    with pytest.raises(ValueError):
        MonteCarloConfig(simulations=10_001)
    with pytest.raises(ValueError):
        MonteCarloConfig(ruin_threshold=0.0)
