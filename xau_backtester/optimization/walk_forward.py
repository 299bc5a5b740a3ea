"""
Walk-forward analysis: optimize in-sample, validate out-of-sample.

**Conceptual**: A grid search on the full history tells you which parameters
*would have* worked. Walk-forward analysis asks whether that choice would
have held up in real time. The candle series is split into windows; in each
window the grid search runs on the training slice only, and the winning
parameters are then backtested on the test slice that follows it, data the
optimizer never saw.

**Window policies** (n candles, N windows, train ratio r):
  - rolling: window_size = n // N; window i covers
    [i * window_size, (i + 1) * window_size - 1], of which the first
    floor(window_size * r) candles train and the rest test. Windows never
    overlap.
  - anchored: training always starts at candle 0 and ends at
    floor((i + 1) * n * r / N); the test slice of n // N candles follows it
    directly.
  Windows whose test slice would be empty are skipped.

**Degradation** per window, for the target metric:
    degradation% = (in_sample - out_of_sample) / |in_sample| * 100
    (0 when in_sample == 0)

**Robustness score** = clamp(100 - average_degradation, 0, 100). A strategy
that keeps its in-sample performance scores near 100; one whose performance
collapses out-of-sample scores near 0.
"""

from dataclasses import dataclass, field
from enum import Enum
import math
from time import perf_counter
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from loguru import logger

from xau_backtester.analytics.performance import PerformanceMetrics, metric_value
from xau_backtester.backtesting.engine import BacktestEngine
from xau_backtester.backtesting.models import BacktestConfig, Candle
from xau_backtester.optimization.grid_search import GridSearchOptimizer, OptimizationConfig
from xau_backtester.strategies.registry import StrategyFactory
from xau_backtester.utils.cancellation import CancellationToken, check_cancelled
from xau_backtester.utils.math import clamp, safe_divide


WalkForwardProgressCallback = Callable[[float, int], None]


class WindowType(str, Enum):
    ROLLING = "rolling"
    ANCHORED = "anchored"


@dataclass
class WalkForwardConfig:
    """
    Attributes:
        window_type: ROLLING or ANCHORED (strings are converted).
        train_ratio: Fraction of each window used for training, in (0, 1).
        num_windows: Number of windows N (>= 1).
        optimization_config: Grid search ranges, metric and direction.
    """
    window_type: WindowType = WindowType.ROLLING
    train_ratio: float = 0.7
    num_windows: int = 5
    optimization_config: OptimizationConfig = field(default_factory=OptimizationConfig)

    def __post_init__(self):
        self.window_type = WindowType(self.window_type)
        if not 0.0 < self.train_ratio < 1.0:
            raise ValueError(f"train_ratio must be in (0, 1), got {self.train_ratio}")
        if self.num_windows < 1:
            raise ValueError(f"num_windows must be >= 1, got {self.num_windows}")


@dataclass(frozen=True)
class WalkForwardWindow:
    """
    One train/test split. Index ranges are inclusive.

    Attributes:
        train_start, train_end, test_start, test_end: Candle timestamps (ms).
        train_index: (start, end) candle indices of the training slice.
        test_index: (start, end) candle indices of the test slice.
    """
    train_start: int
    train_end: int
    test_start: int
    test_end: int
    train_index: tuple
    test_index: tuple


@dataclass
class WalkForwardWindowResult:
    window: WalkForwardWindow
    optimized_params: Dict[str, Any]
    in_sample_metrics: PerformanceMetrics
    out_of_sample_metrics: PerformanceMetrics
    in_sample_value: float
    out_of_sample_value: float
    degradation: float


@dataclass(frozen=True)
class AggregatedOutOfSample:
    """
    Out-of-sample performance across all windows.

    Attributes:
        total_return: Sum of per-window total_return_percent (%).
        sharpe_ratio: Mean of per-window Sharpe ratios.
        max_drawdown: Worst per-window max_drawdown_percent (%).
        win_rate: Winning trades / trades pooled over all windows (%).
        total_trades: Trades summed over all windows.
    """
    total_return: float = 0.0
    sharpe_ratio: float = 0.0
    max_drawdown: float = 0.0
    win_rate: float = 0.0
    total_trades: int = 0


@dataclass
class WalkForwardResult:
    windows: List[WalkForwardWindowResult]
    aggregated_out_of_sample: AggregatedOutOfSample
    average_degradation: float
    robustness_score: float
    processing_time: float


def generate_windows(candles: Sequence[Candle], config: WalkForwardConfig) -> List[WalkForwardWindow]:
    """
    Split `candles` into walk-forward windows under `config.window_type`.

    Returns:
        Viable windows in chronological order (possibly fewer than
        `num_windows` when some would have an empty test slice).
    """
    n = len(candles)
    windows: List[WalkForwardWindow] = []

    def make(train_start: int, train_end: int, test_start: int, test_end: int) -> WalkForwardWindow:
        return WalkForwardWindow(
            train_start=candles[train_start].timestamp,
            train_end=candles[train_end].timestamp,
            test_start=candles[test_start].timestamp,
            test_end=candles[test_end].timestamp,
            train_index=(train_start, train_end),
            test_index=(test_start, test_end),
        )

    if config.window_type is WindowType.ROLLING:
        window_size = n // config.num_windows
        train_size = int(math.floor(window_size * config.train_ratio))
        test_size = window_size - train_size
        for i in range(config.num_windows):
            train_start = i * window_size
            train_end = train_start + train_size - 1
            test_start = train_end + 1
            test_end = min(test_start + test_size - 1, n - 1)
            if train_end < train_start or test_end <= train_end:
                continue
            windows.append(make(train_start, train_end, test_start, test_end))
    else:
        test_size = n // config.num_windows
        for i in range(config.num_windows):
            train_end = int(math.floor((i + 1) * n * config.train_ratio / config.num_windows))
            test_start = train_end + 1
            test_end = min(test_start + test_size - 1, n - 1)
            if test_end <= test_start:
                continue
            windows.append(make(0, train_end, test_start, test_end))

    return windows


def aggregate_out_of_sample(results: Sequence[WalkForwardWindowResult]) -> AggregatedOutOfSample:
    """Combine per-window out-of-sample metrics (see `AggregatedOutOfSample`)."""
    if not results:
        return AggregatedOutOfSample()
    oos = [r.out_of_sample_metrics for r in results]
    total_trades = sum(m.total_trades for m in oos)
    total_wins = sum(m.winning_trades for m in oos)
    return AggregatedOutOfSample(
        total_return=sum(m.total_return_percent for m in oos),
        sharpe_ratio=sum(m.sharpe_ratio for m in oos) / len(oos),
        max_drawdown=max(m.max_drawdown_percent for m in oos),
        win_rate=safe_divide(total_wins, total_trades) * 100.0,
        total_trades=total_trades,
    )


def compute_degradation(in_sample: float, out_of_sample: float) -> float:
    """(in - out) / |in| * 100, or 0 when in-sample is 0."""
    if in_sample == 0:
        return 0.0
    return (in_sample - out_of_sample) / abs(in_sample) * 100.0


class WalkForwardAnalyzer:
    """
    Chains grid search and out-of-sample backtests across windows.

    Example:
        analyzer = WalkForwardAnalyzer(candles, backtest_config, WalkForwardConfig(
            window_type="rolling", train_ratio=0.7, num_windows=4,
            optimization_config=opt_config,
        ))
        result = analyzer.analyze(strategy_factory("sma_crossover"), {})
    """

    def __init__(
        self,
        candles: Sequence[Candle],
        backtest_config: BacktestConfig,
        walk_forward_config: WalkForwardConfig,
        on_progress: Optional[WalkForwardProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ):
        self.candles = candles
        self.backtest_config = backtest_config
        self.walk_forward_config = walk_forward_config
        self.on_progress = on_progress
        self.cancel_token = cancel_token

    def generate_windows(self) -> List[WalkForwardWindow]:
        return generate_windows(self.candles, self.walk_forward_config)

    def analyze(
        self,
        strategy_factory: StrategyFactory,
        base_params: Optional[Mapping[str, Any]] = None,
    ) -> WalkForwardResult:
        """
        Run walk-forward analysis.

        **Functionally**, for each window:
          1. Grid search on the training slice.
          2. Backtest the best parameters on the test slice.
          3. Degradation of the target metric from in-sample to out-of-sample.
        Then aggregate out-of-sample results and score robustness.

        If no grid point produced a finite metric in a window, the base
        parameters are tested, the in-sample value is taken as 0 and the
        out-of-sample metrics stand in for the in-sample ones.

        Raises:
            ValueError: If the series is too short for any viable window.
            OptimizationCancelled: If the cancel token is set.
        """
        config = self.walk_forward_config
        opt_config = config.optimization_config
        base_params = dict(base_params or {})
        start = perf_counter()

        windows = self.generate_windows()
        if not windows:
            raise ValueError(
                f"No viable walk-forward windows for {len(self.candles)} candles "
                f"with num_windows={config.num_windows}, train_ratio={config.train_ratio}."
            )

        logger.info(
            "Walk-forward ({}): {} windows over {} candles",
            config.window_type.value, len(windows), len(self.candles),
        )

        engine = BacktestEngine(self.backtest_config)
        results: List[WalkForwardWindowResult] = []

        for i, window in enumerate(windows):
            check_cancelled(self.cancel_token)

            train = self.candles[window.train_index[0]: window.train_index[1] + 1]
            test = self.candles[window.test_index[0]: window.test_index[1] + 1]

            optimization = GridSearchOptimizer(
                train,
                self.backtest_config,
                opt_config,
                cancel_token=self.cancel_token,
            ).optimize(strategy_factory, base_params)

            params = dict(optimization.best_params)
            out_of_sample = engine.run(test, strategy_factory(params)).metrics
            oos_value = metric_value(out_of_sample, opt_config.metric)

            if optimization.best_metrics is not None:
                in_sample = optimization.best_metrics
                is_value = optimization.best_metric_value
            else:
                in_sample = out_of_sample
                is_value = 0.0

            degradation = compute_degradation(is_value, oos_value)
            results.append(WalkForwardWindowResult(
                window=window,
                optimized_params=params,
                in_sample_metrics=in_sample,
                out_of_sample_metrics=out_of_sample,
                in_sample_value=is_value,
                out_of_sample_value=oos_value,
                degradation=degradation,
            ))

            logger.info(
                "Window {}/{}: params={} in-sample {}={:.4f} out-of-sample={:.4f} degradation={:.1f}%",
                i + 1, len(windows), params, opt_config.metric, is_value, oos_value, degradation,
            )

            if self.on_progress is not None:
                self.on_progress((i + 1) / len(windows), i)

        finite = [r.degradation for r in results if math.isfinite(r.degradation)]
        average_degradation = sum(finite) / len(finite) if finite else 0.0
        robustness = clamp(100.0 - average_degradation, 0.0, 100.0)

        return WalkForwardResult(
            windows=results,
            aggregated_out_of_sample=aggregate_out_of_sample(results),
            average_degradation=average_degradation,
            robustness_score=robustness,
            processing_time=perf_counter() - start,
        )
