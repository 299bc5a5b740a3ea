"""
Tests for xau_backtester/optimization/genetic.py
"""

import math

import numpy as np
import pytest

from xau_backtester.optimization.genetic import GeneticConfig, GeneticOptimizer, Individual
from xau_backtester.optimization.grid_search import OptimizationConfig, ParameterRange


def hold_config(maximize=True):
    return OptimizationConfig(
        param_ranges={"hold": ParameterRange(1, 8, 1)},
        metric="total_return",
        maximize=maximize,
    )


def small_ga(seed=3, **overrides):
    settings = dict(population_size=6, generations=10, early_stop_generations=3, seed=seed)
    settings.update(overrides)
    return GeneticConfig(**settings)


def test_seeded_runs_are_reproducible(rising_candles, frictionless_config, hold_factory):
    runs = [
        GeneticOptimizer(rising_candles, frictionless_config, hold_config(), small_ga(seed=21))
        .optimize(hold_factory, {"hold": 1})
        for _ in range(2)
    ]
    assert runs[0].best_params == runs[1].best_params
    assert [r.params for r in runs[0].all_results] == [r.params for r in runs[1].all_results]


def test_ledger_is_deduplicated(rising_candles, frictionless_config, hold_factory):
    result = GeneticOptimizer(
        rising_candles, frictionless_config, hold_config(), small_ga()
    ).optimize(hold_factory, {"hold": 1})

    holds = [r.params["hold"] for r in result.all_results]
    assert len(holds) == len(set(holds))
    assert result.total_combinations == len(holds) <= 8


@pytest.mark.parametrize("seed", range(10))
def test_empty_base_params_get_full_gene_set(rising_candles, frictionless_config, hold_factory, seed):
    """
    With base params {} the first individual still carries every optimized
    gene, so crossover never misses one and {} is not a separate ledger entry.
    """
    result = GeneticOptimizer(
        rising_candles, frictionless_config, hold_config(),
        GeneticConfig(population_size=6, generations=5, seed=seed),
    ).optimize(hold_factory, {})

    holds = [r.params["hold"] for r in result.all_results]
    assert all(set(r.params) == {"hold"} for r in result.all_results)
    assert len(holds) == len(set(holds))
    assert result.failed_evaluations == 0
    assert "hold" in result.best_params


def test_finds_best_on_small_grid(rising_candles, frictionless_config, hold_factory):
    """Every offspring mutates, so the 8-point grid is covered long before early stop."""
    result = GeneticOptimizer(
        rising_candles, frictionless_config, hold_config(),
        small_ga(population_size=8, generations=30, early_stop_generations=10, mutation_rate=1.0),
    ).optimize(hold_factory, {"hold": 1})

    assert result.best_params["hold"] == 8
    assert result.best_metric_value == pytest.approx(result.best_metrics.total_return)


def test_minimize_reports_metric_not_fitness(rising_candles, frictionless_config, hold_factory):
    result = GeneticOptimizer(
        rising_candles, frictionless_config, hold_config(maximize=False), small_ga()
    ).optimize(hold_factory, {"hold": 1})

    assert result.best_params["hold"] == 1
    assert result.best_metric_value == pytest.approx(result.best_metrics.total_return)
    assert result.best_metric_value > 0


def test_failed_evaluation_gets_worst_fitness(rising_candles, frictionless_config, hold_factory):
    """The base individual (hold=8) raises; the search continues without it."""
    result = GeneticOptimizer(
        rising_candles, frictionless_config, hold_config(), small_ga()
    ).optimize(hold_factory, {"hold": 8, "fail_on": 8})

    assert result.failed_evaluations == 1
    assert result.best_params["hold"] != 8
    assert math.isfinite(result.best_metric_value)


def test_early_stop(rising_candles, frictionless_config, hold_factory):
    generations = []
    optimizer = GeneticOptimizer(
        rising_candles, frictionless_config, hold_config(),
        small_ga(generations=100, early_stop_generations=2),
        on_progress=lambda gen, params, fitness: generations.append(gen),
    )
    optimizer.optimize(hold_factory, {"hold": 1})

    assert generations == list(range(1, len(generations) + 1))
    assert len(generations) < 100


def test_operators_stay_on_grid(rising_candles, frictionless_config):
    optimizer = GeneticOptimizer(
        rising_candles, frictionless_config, hold_config(), small_ga(),
        rng=np.random.default_rng(0),
    )
    valid = set(range(1, 9))
    for _ in range(50):
        params = optimizer.random_params({"fail_on": None})
        assert params["hold"] in valid and params["fail_on"] is None
        assert optimizer.mutate(params)["hold"] in valid
        child = optimizer.crossover({"hold": 1}, {"hold": 8})
        assert child["hold"] in (1, 8)


def test_tournament_picks_fittest_of_draw(rising_candles, frictionless_config):
    optimizer = GeneticOptimizer(
        rising_candles, frictionless_config, hold_config(),
        small_ga(tournament_size=200), rng=np.random.default_rng(0),
    )
    population = [Individual({"hold": h}, fitness=float(h)) for h in range(1, 9)]
    assert optimizer.tournament_select(population).params["hold"] == 8


def test_config_validation():
    with pytest.raises(ValueError):
        GeneticConfig(population_size=0)
    with pytest.raises(ValueError):
        GeneticConfig(population_size=4, elite_count=5)
    with pytest.raises(ValueError):
        GeneticConfig(mutation_rate=1.5)
