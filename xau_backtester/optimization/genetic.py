"""
Genetic-algorithm search over strategy parameters.

**Conceptual**: When a grid has too many points to evaluate exhaustively, a
genetic algorithm samples it adaptively. A population of parameter sets is
evaluated, the fittest survive, and new candidates are bred from them:

  - Elitism: the top `elite_count` individuals pass unchanged into the next
    generation, so the best solution found is never lost.
  - Tournament selection: each parent is the fittest of `tournament_size`
    randomly drawn individuals.
  - Uniform crossover (with probability `crossover_rate`): each gene is taken
    from the second parent with probability 0.5; otherwise the child copies
    the first parent.
  - Mutation (with probability `mutation_rate`): one random gene is reset to
    a random value on its grid.

**Fitness**: the target metric, negated when minimizing. An evaluation that
raises, or yields a non-finite value, gets fitness -inf: the individual is
culled by selection but the search continues.

**Reproducibility**: all randomness comes from one `numpy.random.Generator`,
injected or seeded from `GeneticConfig.seed`. The same seed, candles and
configuration produce the same search.

**Early stopping**: the search ends once the best-ever fitness has not
improved for `early_stop_generations` consecutive generations.
"""

from dataclasses import dataclass
import json
import math
from time import perf_counter
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

import numpy as np
from loguru import logger

from xau_backtester.analytics.performance import PerformanceMetrics, metric_value
from xau_backtester.backtesting.engine import BacktestEngine
from xau_backtester.backtesting.models import BacktestConfig, Candle
from xau_backtester.optimization.grid_search import (
    EvaluationRecord,
    OptimizationConfig,
    OptimizationResult,
    evaluate_params,
)
from xau_backtester.strategies.registry import StrategyFactory
from xau_backtester.utils.cancellation import CancellationToken, check_cancelled


GeneticProgressCallback = Callable[[int, Dict[str, Any], float], None]


@dataclass(frozen=True)
class GeneticConfig:
    """
    Genetic algorithm settings.

    Attributes:
        population_size: Individuals per generation (>= 1).
        generations: Maximum number of generations after the initial one.
        mutation_rate: Probability that an offspring gets one gene reset.
        crossover_rate: Probability that an offspring is bred by crossover.
        elite_count: Individuals carried over unchanged (<= population_size).
        early_stop_generations: Stop after this many generations without improvement.
        tournament_size: Individuals drawn per tournament (>= 1).
        seed: Seed for the default generator; None for OS entropy.
    """
    population_size: int = 50
    generations: int = 100
    mutation_rate: float = 0.1
    crossover_rate: float = 0.7
    elite_count: int = 2
    early_stop_generations: int = 20
    tournament_size: int = 3
    seed: Optional[int] = None

    def __post_init__(self):
        if self.population_size < 1:
            raise ValueError(f"population_size must be >= 1, got {self.population_size}")
        if self.generations < 0:
            raise ValueError(f"generations must be >= 0, got {self.generations}")
        if not 0.0 <= self.mutation_rate <= 1.0:
            raise ValueError(f"mutation_rate must be in [0, 1], got {self.mutation_rate}")
        if not 0.0 <= self.crossover_rate <= 1.0:
            raise ValueError(f"crossover_rate must be in [0, 1], got {self.crossover_rate}")
        if not 0 <= self.elite_count <= self.population_size:
            raise ValueError(
                f"elite_count must be in [0, population_size], got {self.elite_count}"
            )
        if self.early_stop_generations < 1:
            raise ValueError(
                f"early_stop_generations must be >= 1, got {self.early_stop_generations}"
            )
        if self.tournament_size < 1:
            raise ValueError(f"tournament_size must be >= 1, got {self.tournament_size}")


DEFAULT_GENETIC_CONFIG = GeneticConfig()


@dataclass
class Individual:
    params: Dict[str, Any]
    fitness: float = -math.inf
    metrics: Optional[PerformanceMetrics] = None
    evaluated: bool = False


def _params_key(params: Mapping[str, Any]) -> str:
    return json.dumps(params, sort_keys=True, default=str)


class GeneticOptimizer:
    """
    Evolutionary parameter search.

    Example:
        optimizer = GeneticOptimizer(
            candles, backtest_config, optimization_config,
            GeneticConfig(population_size=20, generations=30, seed=7),
        )
        result = optimizer.optimize(strategy_factory("rsi_reversal"), {})
    """

    def __init__(
        self,
        candles: Sequence[Candle],
        backtest_config: BacktestConfig,
        optimization_config: OptimizationConfig,
        genetic_config: GeneticConfig = DEFAULT_GENETIC_CONFIG,
        on_progress: Optional[GeneticProgressCallback] = None,
        rng: Optional[np.random.Generator] = None,
        cancel_token: Optional[CancellationToken] = None,
    ):
        self.candles = candles
        self.backtest_config = backtest_config
        self.optimization_config = optimization_config
        self.genetic_config = genetic_config
        self.on_progress = on_progress
        self.rng = rng if rng is not None else np.random.default_rng(genetic_config.seed)
        self.cancel_token = cancel_token

        self._engine = BacktestEngine(backtest_config)
        self._ledger: List[EvaluationRecord] = []
        self._cache: Dict[str, Individual] = {}
        self._failed = 0

    # ------------------------------------------------------------------
    # Genetic operators
    # ------------------------------------------------------------------

    def random_params(self, base_params: Mapping[str, Any]) -> Dict[str, Any]:
        """Base params with every optimized gene drawn uniformly from its grid."""
        params = dict(base_params)
        for name, r in self.optimization_config.param_ranges.items():
            params[name] = r.value_at(int(self.rng.integers(0, r.count)))
        return params

    def tournament_select(self, population: Sequence[Individual]) -> Individual:
        best = None
        for _ in range(self.genetic_config.tournament_size):
            candidate = population[int(self.rng.integers(0, len(population)))]
            if best is None or candidate.fitness > best.fitness:
                best = candidate
        return best

    def crossover(self, first: Mapping[str, Any], second: Mapping[str, Any]) -> Dict[str, Any]:
        """Uniform crossover: each gene from `second` with probability 0.5."""
        child = dict(first)
        for name in self.optimization_config.param_ranges:
            if self.rng.random() < 0.5:
                child[name] = second[name]
        return child

    def mutate(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        """Reset one randomly chosen gene to a random value on its grid."""
        mutated = dict(params)
        names = list(self.optimization_config.param_ranges)
        if not names:
            return mutated
        name = names[int(self.rng.integers(0, len(names)))]
        r = self.optimization_config.param_ranges[name]
        mutated[name] = r.value_at(int(self.rng.integers(0, r.count)))
        return mutated

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def _evaluate(self, individual: Individual, strategy_factory: StrategyFactory) -> Individual:
        if individual.evaluated:
            return individual

        key = _params_key(individual.params)
        cached = self._cache.get(key)
        if cached is not None:
            return Individual(dict(individual.params), cached.fitness, cached.metrics, True)

        check_cancelled(self.cancel_token)
        config = self.optimization_config
        try:
            metrics = evaluate_params(self._engine, self.candles, strategy_factory, individual.params)
        except Exception as e:
            self._failed += 1
            logger.warning("Backtest failed for params {}: {}", individual.params, e)
            evaluated = Individual(dict(individual.params), -math.inf, None, True)
        else:
            value = metric_value(metrics, config.metric)
            self._ledger.append(
                EvaluationRecord(params=dict(individual.params), metric_value=value, metrics=metrics)
            )
            fitness = value if config.maximize else -value
            evaluated = Individual(
                dict(individual.params),
                fitness if math.isfinite(fitness) else -math.inf,
                metrics,
                True,
            )

        self._cache[key] = evaluated
        return evaluated

    def _evaluate_population(
        self,
        population: Sequence[Individual],
        strategy_factory: StrategyFactory,
    ) -> List[Individual]:
        return [self._evaluate(ind, strategy_factory) for ind in population]

    @staticmethod
    def _best(population: Sequence[Individual]) -> Individual:
        best = population[0]
        for ind in population[1:]:
            if ind.fitness > best.fitness:
                best = ind
        return best

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def optimize(
        self,
        strategy_factory: StrategyFactory,
        base_params: Optional[Mapping[str, Any]] = None,
    ) -> OptimizationResult:
        """
        Run the genetic search.

        Args:
            strategy_factory: `params -> Strategy`.
            base_params: Fixed parameters. Completed with the first grid value of
                         every optimized gene it leaves out, it is also the
                         first individual of the initial population.

        Returns:
            OptimizationResult. `best_metric_value` is the metric itself (not
            the negated fitness); `all_results` holds each distinct evaluated
            parameter set once, sorted best first.

        Raises:
            OptimizationCancelled: If the cancel token is set between evaluations.
        """
        cfg = self.genetic_config
        config = self.optimization_config
        base_params = dict(base_params or {})
        start = perf_counter()

        self._ledger = []
        self._cache = {}
        self._failed = 0

        logger.info(
            "Genetic search: population={} generations={} (metric={}, maximize={})",
            cfg.population_size, cfg.generations, config.metric, config.maximize,
        )

        seed_params = dict(base_params)
        for name, r in config.param_ranges.items():
            seed_params.setdefault(name, r.value_at(0))

        population = [Individual(seed_params)]
        population += [
            Individual(self.random_params(base_params)) for _ in range(cfg.population_size - 1)
        ]
        population = self._evaluate_population(population, strategy_factory)

        best = self._best(population)
        stale = 0
        generation = 0

        for generation in range(1, cfg.generations + 1):
            ranked = sorted(population, key=lambda ind: ind.fitness, reverse=True)
            next_population = ranked[: cfg.elite_count]

            while len(next_population) < cfg.population_size:
                first = self.tournament_select(population)
                second = self.tournament_select(population)
                if self.rng.random() < cfg.crossover_rate:
                    child = self.crossover(first.params, second.params)
                else:
                    child = dict(first.params)
                if self.rng.random() < cfg.mutation_rate:
                    child = self.mutate(child)
                next_population.append(Individual(child))

            population = self._evaluate_population(next_population, strategy_factory)

            current = self._best(population)
            if current.fitness > best.fitness:
                best = current
                stale = 0
            else:
                stale += 1

            if self.on_progress is not None:
                self.on_progress(generation, dict(best.params), best.fitness)

            if stale >= cfg.early_stop_generations:
                logger.info("Early stopping at generation {}", generation)
                break

        self._ledger.sort(key=lambda r: config.sort_key(r.metric_value))
        elapsed = perf_counter() - start

        if config.maximize:
            best_value = best.fitness
        else:
            best_value = -best.fitness

        logger.info(
            "Genetic search done in {:.2f}s after {} generations: best {}={} params={} "
            "({} evaluated, {} failed)",
            elapsed, generation, config.metric, best_value, best.params,
            len(self._ledger), self._failed,
        )

        return OptimizationResult(
            best_params=dict(best.params),
            best_metric_value=best_value,
            best_metrics=best.metrics,
            all_results=list(self._ledger),
            total_combinations=len(self._ledger),
            processing_time=elapsed,
            failed_evaluations=self._failed,
        )
