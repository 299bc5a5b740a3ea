"""
Exhaustive grid search over strategy parameters.

**Conceptual**: Given a range `{min, max, step}` per parameter, grid search
runs one backtest for every point of the Cartesian product and ranks them by
a target metric. It is the brute-force baseline: slow for many parameters,
but it finds the true optimum of the grid and its full result surface is
useful for judging how sensitive a strategy is to its settings.

**Mathematical**:
    values(range)      = { min + k * step : k = 0 .. floor((max - min) / step) }
    total_combinations = Π_params ( floor((max - min) / step) + 1 )

**Failure tolerance**: A strategy or engine exception during one evaluation
is logged, recorded with a worst-case metric value and excluded from best
selection. One bad parameter set never aborts a search of thousands.

**Teaching note**: The best parameters of a grid are almost always
overfitted to the sample. Use walk-forward analysis to measure how much of
the in-sample performance survives on unseen data.
"""

from dataclasses import dataclass, field
import itertools
import math
from time import perf_counter
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from loguru import logger

from xau_backtester.analytics.performance import (
    PerformanceMetrics,
    metric_value,
    validate_metric_name,
)
from xau_backtester.backtesting.engine import BacktestEngine
from xau_backtester.backtesting.models import BacktestConfig, Candle
from xau_backtester.strategies.registry import StrategyFactory
from xau_backtester.utils.cancellation import CancellationToken, check_cancelled


# Float tolerance when counting steps, so that e.g. (0.3 - 0.1) / 0.1 counts 2 steps.
_STEP_EPSILON = 1e-9

GridProgressCallback = Callable[[float, Dict[str, Any], Optional[PerformanceMetrics]], None]


@dataclass(frozen=True)
class ParameterRange:
    """
    Inclusive range of values for one parameter.

    Attributes:
        min: First value.
        max: Upper bound (included when reachable by whole steps).
        step: Increment (> 0).

    Raises:
        ValueError: If step <= 0 or max < min.
    """
    min: float
    max: float
    step: float

    def __post_init__(self):
        if self.step <= 0:
            raise ValueError(f"step must be positive, got {self.step}")
        if self.max < self.min:
            raise ValueError(f"max ({self.max}) must be >= min ({self.min})")

    @property
    def steps(self) -> int:
        """Number of whole steps between min and max."""
        return int(math.floor((self.max - self.min) / self.step + _STEP_EPSILON))

    @property
    def count(self) -> int:
        """Number of values in the range (steps + 1)."""
        return self.steps + 1

    @property
    def is_integer(self) -> bool:
        return all(float(v).is_integer() for v in (self.min, self.max, self.step))

    def value_at(self, k: int):
        """
        The k-th value, min + k * step, rounded to 3 decimals.

        Returned as int when min, max and step are all whole numbers.
        """
        value = round(self.min + k * self.step, 3)
        return int(value) if self.is_integer else value

    def values(self) -> List[Any]:
        return [self.value_at(k) for k in range(self.count)]

    @classmethod
    def from_mapping(cls, data: Mapping[str, float]) -> "ParameterRange":
        return cls(min=data["min"], max=data["max"], step=data["step"])


@dataclass
class OptimizationConfig:
    """
    What to search and what to optimize for.

    Attributes:
        param_ranges: Parameter name -> ParameterRange (plain {min, max, step}
                      mappings are converted). Iteration order is preserved.
        metric: Name of the PerformanceMetrics field to rank by.
        maximize: True to prefer larger metric values.

    Raises:
        ValueError: If `metric` is not a PerformanceMetrics field.
    """
    param_ranges: Dict[str, ParameterRange] = field(default_factory=dict)
    metric: str = "sharpe_ratio"
    maximize: bool = True

    def __post_init__(self):
        validate_metric_name(self.metric)
        self.param_ranges = {
            name: r if isinstance(r, ParameterRange) else ParameterRange.from_mapping(r)
            for name, r in self.param_ranges.items()
        }

    @property
    def worst_value(self) -> float:
        """Metric value assigned to failed evaluations."""
        return -math.inf if self.maximize else math.inf

    def is_better(self, candidate: float, incumbent: float) -> bool:
        return candidate > incumbent if self.maximize else candidate < incumbent

    def sort_key(self, value: float) -> float:
        return -value if self.maximize else value


@dataclass(frozen=True)
class EvaluationRecord:
    """
    One evaluated parameter set.

    Attributes:
        params: Full parameter dict the strategy ran with.
        metric_value: Value of the target metric (worst-case on failure).
        metrics: Full metrics (all zeros on failure).
        error: Exception message when the evaluation failed, else None.
    """
    params: Dict[str, Any]
    metric_value: float
    metrics: PerformanceMetrics
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None


@dataclass
class OptimizationResult:
    """
    Outcome of a parameter search.

    Attributes:
        best_params: Best parameter set (the base params if nothing finite was found).
        best_metric_value: Its metric value (±inf if nothing finite was found).
        best_metrics: Its full metrics, or None if nothing finite was found.
        all_results: Every evaluation, sorted best first.
        total_combinations: Number of parameter sets evaluated.
        processing_time: Wall-clock seconds.
        failed_evaluations: Number of evaluations that raised.
    """
    best_params: Dict[str, Any]
    best_metric_value: float
    best_metrics: Optional[PerformanceMetrics]
    all_results: List[EvaluationRecord]
    total_combinations: int
    processing_time: float
    failed_evaluations: int = 0


def evaluate_params(
    engine: BacktestEngine,
    candles: Sequence[Candle],
    strategy_factory: StrategyFactory,
    params: Mapping[str, Any],
) -> PerformanceMetrics:
    """Build a fresh strategy for `params`, run it and return its metrics."""
    strategy = strategy_factory(dict(params))
    return engine.run(candles, strategy).metrics


class GridSearchOptimizer:
    """
    Exhaustive parameter search.

    Example:
        config = OptimizationConfig(
            param_ranges={"fast_period": ParameterRange(5, 15, 5),
                          "slow_period": ParameterRange(20, 40, 10)},
            metric="sharpe_ratio",
        )
        optimizer = GridSearchOptimizer(candles, backtest_config, config)
        result = optimizer.optimize(strategy_factory("sma_crossover"), {})
    """

    def __init__(
        self,
        candles: Sequence[Candle],
        backtest_config: BacktestConfig,
        optimization_config: OptimizationConfig,
        on_progress: Optional[GridProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ):
        self.candles = candles
        self.backtest_config = backtest_config
        self.optimization_config = optimization_config
        self.on_progress = on_progress
        self.cancel_token = cancel_token

    def total_combinations(self) -> int:
        """Π (floor((max - min) / step) + 1) over all parameter ranges."""
        total = 1
        for r in self.optimization_config.param_ranges.values():
            total *= r.count
        return total

    def generate_combinations(self, base_params: Mapping[str, Any]) -> List[Dict[str, Any]]:
        """Every grid point merged over `base_params`, first parameter varying slowest."""
        ranges = self.optimization_config.param_ranges
        names = list(ranges)
        grids = [ranges[name].values() for name in names]
        return [
            {**base_params, **dict(zip(names, combo))}
            for combo in itertools.product(*grids)
        ]

    def optimize(
        self,
        strategy_factory: StrategyFactory,
        base_params: Optional[Mapping[str, Any]] = None,
    ) -> OptimizationResult:
        """
        Evaluate every grid point and return the ranked results.

        Args:
            strategy_factory: `params -> Strategy`; called once per grid point.
            base_params: Fixed parameters merged under each grid point.

        Returns:
            OptimizationResult with results sorted best first.

        Raises:
            OptimizationCancelled: If the cancel token is set between evaluations.
        """
        config = self.optimization_config
        base_params = dict(base_params or {})
        start = perf_counter()

        combinations = self.generate_combinations(base_params)
        engine = BacktestEngine(self.backtest_config)

        logger.info(
            "Grid search: {} combinations over {} candles (metric={}, maximize={})",
            len(combinations), len(self.candles), config.metric, config.maximize,
        )

        results: List[EvaluationRecord] = []
        best_params: Dict[str, Any] = base_params
        best_value = config.worst_value
        best_metrics: Optional[PerformanceMetrics] = None
        failed = 0

        for i, params in enumerate(combinations):
            check_cancelled(self.cancel_token)

            try:
                metrics = evaluate_params(engine, self.candles, strategy_factory, params)
            except Exception as e:
                failed += 1
                logger.warning("Backtest failed for params {}: {}", params, e)
                results.append(EvaluationRecord(
                    params=params,
                    metric_value=config.worst_value,
                    metrics=PerformanceMetrics.empty(),
                    error=str(e),
                ))
                metrics = None
            else:
                value = metric_value(metrics, config.metric)
                results.append(EvaluationRecord(params=params, metric_value=value, metrics=metrics))
                if math.isfinite(value) and config.is_better(value, best_value):
                    best_value, best_params, best_metrics = value, params, metrics

            if self.on_progress is not None:
                self.on_progress((i + 1) / len(combinations), params, metrics)

        results.sort(key=lambda r: config.sort_key(r.metric_value))
        elapsed = perf_counter() - start

        logger.info(
            "Grid search done in {:.2f}s: best {}={} params={} ({} failed)",
            elapsed, config.metric, best_value, best_params, failed,
        )

        return OptimizationResult(
            best_params=best_params,
            best_metric_value=best_value,
            best_metrics=best_metrics,
            all_results=results,
            total_combinations=len(combinations),
            processing_time=elapsed,
            failed_evaluations=failed,
        )
