#!/usr/bin/env python3
"""
Walk-forward analysis of the RSI reversal strategy, followed by a Monte Carlo
stress test of its full-sample trades.

**Purpose**: Answer two robustness questions:
  1. Do grid-optimized parameters keep working on data the optimizer never
     saw? (walk-forward degradation and robustness score)
  2. How bad could the drawdown have been with the same trades in a
     different order? (Monte Carlo percentile bands and risk of ruin)

**Usage**:
    python actions/run_walk_forward_analysis.py [rolling|anchored]
"""

import sys
from pathlib import Path

# Ensure project root is on path for imports
repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from xau_backtester.analytics.monte_carlo import MonteCarloConfig, MonteCarloSimulator
from xau_backtester.backtesting.engine import run_backtest
from xau_backtester.config.settings import get_settings
from xau_backtester.data.synthetic import generate_gbm_candles
from xau_backtester.data.timeframe import aggregate_candles
from xau_backtester.optimization.grid_search import OptimizationConfig, ParameterRange
from xau_backtester.optimization.walk_forward import (
    WalkForwardAnalyzer,
    WalkForwardConfig,
    WindowType,
)
from xau_backtester.strategies.registry import create_strategy, strategy_factory
from xau_backtester.utils.logging import ProgressReporter, configure_logging
from xau_backtester.utils.time import ms_to_timestamp


def main():
    settings = get_settings()
    configure_logging(settings.logging)
    config = settings.backtest.to_backtest_config()
    seed = settings.random_seed if settings.random_seed is not None else 11
    window_type = WindowType(sys.argv[1]) if len(sys.argv) > 1 else WindowType.ROLLING

    print("=" * 80)
    print(f"RSI Reversal Walk-Forward Analysis ({window_type.value})")
    print("=" * 80)

    candles = aggregate_candles(generate_gbm_candles(40_000, volatility=0.25, seed=seed), 15)
    print(f"  {len(candles)} M15 candles")
    print()

    # ========================================================================
    # Step 1: Walk-forward
    # ========================================================================
    wf_config = WalkForwardConfig(
        window_type=window_type,
        train_ratio=0.7,
        num_windows=4,
        optimization_config=OptimizationConfig(
            param_ranges={
                "rsi_period": ParameterRange(10, 20, 5),
                "oversold_level": ParameterRange(20, 35, 5),
            },
            metric="sharpe_ratio",
        ),
    )
    analyzer = WalkForwardAnalyzer(candles, config, wf_config)
    reporter = ProgressReporter("Walk-forward", len(analyzer.generate_windows()), unit="windows")
    analyzer.on_progress = reporter.as_callback()
    wf = analyzer.analyze(strategy_factory("rsi_reversal"), {})
    reporter.finish()

    for i, window in enumerate(wf.windows, start=1):
        print(f"  Window {i}: train {ms_to_timestamp(window.window.train_start):%Y-%m-%d} "
              f"-> test {ms_to_timestamp(window.window.test_start):%Y-%m-%d}..."
              f"{ms_to_timestamp(window.window.test_end):%Y-%m-%d}")
        print(f"    params={window.optimized_params}")
        print(f"    in-sample {window.in_sample_value:8.3f}  out-of-sample "
              f"{window.out_of_sample_value:8.3f}  degradation {window.degradation:7.1f}%")

    oos = wf.aggregated_out_of_sample
    print()
    print(f"  Out-of-sample: return {oos.total_return:.2f}%, sharpe {oos.sharpe_ratio:.3f}, "
          f"max DD {oos.max_drawdown:.2f}%, win rate {oos.win_rate:.1f}% "
          f"over {oos.total_trades} trades")
    print(f"  Average degradation {wf.average_degradation:.1f}%, "
          f"robustness score {wf.robustness_score:.1f}/100")
    print()

    # ========================================================================
    # Step 2: Monte Carlo on the full-sample trades
    # ========================================================================
    result = run_backtest(candles, create_strategy("rsi_reversal"), config)
    mc_config = MonteCarloConfig(simulations=2000, initial_capital=config.initial_capital)
    reporter = ProgressReporter("Monte Carlo", mc_config.simulations, unit="simulations")
    mc = MonteCarloSimulator(result.trades, result.metrics, mc_config, seed=seed).simulate(
        on_progress=reporter.update
    )
    reporter.finish()

    print(f"  {len(result.trades)} trades permuted {mc.simulations} times")
    for name, band in mc.percentiles.items():
        print(f"  {name:>4}: return {band.total_return:8.2f}%  max DD {band.max_drawdown:6.2f}%  "
              f"equity ${band.final_equity:,.2f}  sharpe {band.sharpe_ratio:6.2f}")
    ci = mc.confidence_interval_95
    print(f"  95% CI drawdown: {ci.drawdown_low:.2f}% .. {ci.drawdown_high:.2f}%")
    print(f"  Risk of ruin (>= {mc_config.ruin_threshold:.0%} drawdown): {mc.risk_of_ruin:.2f}%")
    print("=" * 80)


if __name__ == "__main__":
    main()
