#!/usr/bin/env python3
"""
Run the SMA crossover strategy on synthetic XAU/USD candles and report results.

**Purpose**: This script demonstrates how to:
  1. Load settings (backtest assumptions, logging, random seed) from .env.
  2. Generate a reproducible 1-minute candle series and validate it.
  3. Run a backtest with the SMA crossover strategy.
  4. Print metrics, the trade ledger and position-sizing recommendations.

**Usage**:
    From project root:
    ```bash
    python actions/run_sma_crossover_backtest.py
    ```

**Teaching note**: Synthetic data keeps this script runnable anywhere. To
backtest real data, build a DataFrame with timestamp/open/high/low/close
columns and pass it through `candles_from_dataframe`, which validates the
OHLC contract before the engine ever sees it.
"""

import sys
from pathlib import Path

# Ensure project root is on path for imports
repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from xau_backtester.analytics.performance import format_metrics
from xau_backtester.analytics.position_sizing import (
    calculate_all_position_sizes,
    position_size_inputs_from_metrics,
)
from xau_backtester.backtesting.engine import run_backtest
from xau_backtester.config.settings import get_settings
from xau_backtester.data.schemas import candles_to_dataframe, trades_to_dataframe, validate_candles
from xau_backtester.data.synthetic import generate_gbm_candles
from xau_backtester.data.timeframe import aggregate_candles
from xau_backtester.strategies.registry import create_strategy
from xau_backtester.utils.logging import configure_logging


N_CANDLES = 20_000
TIMEFRAME_MINUTES = 5


def main():
    """
    Main entrypoint for the SMA crossover backtest.

    Steps:
      1. Configure logging and load settings.
      2. Generate and validate candles, aggregate to M5.
      3. Run backtest.
      4. Print metrics, trades and position sizes.
    """
    settings = get_settings()
    configure_logging(settings.logging)
    config = settings.backtest.to_backtest_config()

    print("=" * 80)
    print("XAU/USD SMA Crossover Backtest")
    print("=" * 80)
    print()

    # ========================================================================
    # Step 1: Candles
    # ========================================================================
    print("Step 1: Generating synthetic candles...")
    seed = settings.random_seed if settings.random_seed is not None else 42
    minute_candles = generate_gbm_candles(N_CANDLES, volatility=0.2, seed=seed)
    validate_candles(minute_candles, context="synthetic M1")
    candles = aggregate_candles(minute_candles, TIMEFRAME_MINUTES)

    df = candles_to_dataframe(candles)
    print(f"  ✓ {len(minute_candles)} M1 candles -> {len(candles)} M{TIMEFRAME_MINUTES} candles")
    print(f"    From {df.index.min()} to {df.index.max()}")
    print(f"    Close range: {df['close'].min():.2f} .. {df['close'].max():.2f}")
    print()

    # ========================================================================
    # Step 2: Backtest
    # ========================================================================
    print("Step 2: Running backtest...")
    strategy = create_strategy("sma_crossover", {"fast_period": 10, "slow_period": 30})
    print(f"  Strategy: {strategy.name} {strategy.params}")
    print(f"  Capital: ${config.initial_capital:,.2f}, leverage {config.leverage:g}x, "
          f"commission {config.commission:.4%}, slippage {config.slippage:g} pips")

    result = run_backtest(candles, strategy, config)
    print(f"  ✓ {result.candle_count} candles, {len(result.trades)} trades, "
          f"final equity ${result.final_equity:,.2f}")
    print()

    # ========================================================================
    # Step 3: Metrics
    # ========================================================================
    print("Step 3: Performance metrics")
    print("-" * 80)
    for label, value in format_metrics(result.metrics).items():
        print(f"  {label:<24} {value}")
    print()

    trades = trades_to_dataframe(result.trades)
    if not trades.empty:
        print("Last 10 trades:")
        print(trades[["id", "direction", "entry_price", "exit_price", "pnl", "exit_reason"]]
              .tail(10).to_string(index=False))
        print()

    # ========================================================================
    # Step 4: Position sizing
    # ========================================================================
    print("Step 4: Position sizing recommendations")
    print("-" * 80)
    inputs = position_size_inputs_from_metrics(result.metrics, result.final_equity)
    for sizing in calculate_all_position_sizes(inputs):
        print(f"  {sizing.method:<18} {sizing.position_size:6.2f}%  {sizing.notes}")
    print()
    print("=" * 80)


if __name__ == "__main__":
    main()
