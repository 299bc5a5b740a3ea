#!/usr/bin/env python3
"""
Parameter sweep for the SMA crossover strategy: grid search, then genetic search.

**Purpose**: Run an exhaustive grid over fast/slow SMA periods and compare it
with a genetic search over a larger grid that would be slow to enumerate.

**Usage**:
    python actions/sweep_sma_crossover_params.py

**Outputs**:
  - Terminal: top 10 grid configurations by Sharpe ratio, the genetic
    search's best configuration and how many backtests each method needed.

**Warning**: Parameter sweeps overfit to the sample they are run on. Use
`run_walk_forward_analysis.py` to see how much of the in-sample performance
survives on unseen data.
"""

import sys
from pathlib import Path

import pandas as pd

# Ensure project root is on path for imports
repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from xau_backtester.config.settings import get_settings
from xau_backtester.data.synthetic import generate_gbm_candles
from xau_backtester.data.timeframe import aggregate_candles
from xau_backtester.optimization.genetic import GeneticConfig, GeneticOptimizer
from xau_backtester.optimization.grid_search import (
    GridSearchOptimizer,
    OptimizationConfig,
    ParameterRange,
)
from xau_backtester.strategies.registry import strategy_factory
from xau_backtester.utils.logging import ProgressReporter, configure_logging


def results_to_frame(records) -> pd.DataFrame:
    """Flatten evaluation records into one row per parameter set."""
    rows = []
    for record in records:
        row = dict(record.params)
        row["metric"] = record.metric_value
        row["total_return_percent"] = record.metrics.total_return_percent
        row["max_drawdown_percent"] = record.metrics.max_drawdown_percent
        row["total_trades"] = record.metrics.total_trades
        row["error"] = record.error
        rows.append(row)
    return pd.DataFrame(rows)


def main():
    settings = get_settings()
    configure_logging(settings.logging)
    config = settings.backtest.to_backtest_config()
    seed = settings.random_seed if settings.random_seed is not None else 7

    print("=" * 80)
    print("SMA Crossover Parameter Sweep")
    print("=" * 80)

    candles = aggregate_candles(generate_gbm_candles(30_000, volatility=0.2, seed=seed), 15)
    factory = strategy_factory("sma_crossover")
    base_params = {"use_atr_stop_loss": True, "allow_short": True}
    print(f"  {len(candles)} M15 candles")
    print()

    # ========================================================================
    # Grid search
    # ========================================================================
    grid_config = OptimizationConfig(
        param_ranges={
            "fast_period": ParameterRange(5, 20, 5),
            "slow_period": ParameterRange(30, 60, 10),
        },
        metric="sharpe_ratio",
        maximize=True,
    )
    optimizer = GridSearchOptimizer(candles, config, grid_config)
    reporter = ProgressReporter("Grid search", optimizer.total_combinations())
    optimizer.on_progress = reporter.as_callback()
    grid = optimizer.optimize(factory, base_params)
    reporter.finish()

    print("Top 10 grid configurations:")
    print(results_to_frame(grid.all_results).head(10).to_string(index=False))
    print(f"  Best: {grid.best_params} sharpe={grid.best_metric_value:.3f} "
          f"({grid.total_combinations} backtests, {grid.processing_time:.2f}s)")
    print()

    # ========================================================================
    # Genetic search over a finer grid
    # ========================================================================
    genetic_config = OptimizationConfig(
        param_ranges={
            "fast_period": ParameterRange(3, 30, 1),
            "slow_period": ParameterRange(20, 120, 2),
            "atr_multiplier": ParameterRange(1.0, 4.0, 0.25),
        },
        metric="sharpe_ratio",
        maximize=True,
    )
    full_grid = GridSearchOptimizer(candles, config, genetic_config).total_combinations()
    genetic = GeneticOptimizer(
        candles,
        config,
        genetic_config,
        GeneticConfig(population_size=20, generations=15, early_stop_generations=5, seed=seed),
        on_progress=lambda gen, params, fitness: print(
            f"  generation {gen:3d}: best fitness {fitness:.3f} {params}"
        ),
    ).optimize(factory, base_params)

    print(f"  Best: {genetic.best_params} sharpe={genetic.best_metric_value:.3f}")
    print(f"  {genetic.total_combinations} distinct backtests instead of {full_grid} "
          f"({genetic.processing_time:.2f}s, {genetic.failed_evaluations} failed)")
    print("=" * 80)


if __name__ == "__main__":
    main()
