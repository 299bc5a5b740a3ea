"""
Tests for xau_backtester/optimization/walk_forward.py
"""

import pytest

from xau_backtester.data.synthetic import generate_linear_candles
from xau_backtester.optimization.grid_search import OptimizationConfig, ParameterRange
from xau_backtester.optimization.walk_forward import (
    AggregatedOutOfSample,
    WalkForwardAnalyzer,
    WalkForwardConfig,
    WindowType,
    aggregate_out_of_sample,
    compute_degradation,
    generate_windows,
)
from xau_backtester.utils.cancellation import CancellationToken, OptimizationCancelled
from xau_backtester.utils.time import MS_PER_MINUTE


def hold_opt_config(metric="total_return"):
    return OptimizationConfig(param_ranges={"hold": ParameterRange(1, 3, 1)}, metric=metric)


# ============================================================================
# Window generation
# ============================================================================

def test_rolling_windows_partition_series():
    """
    n=100, N=4, r=0.7:
      window_size 25, train floor(17.5) = 17 candles, test 8 candles.
    """
    candles = generate_linear_candles(n=100)
    windows = generate_windows(candles, WalkForwardConfig(num_windows=4, train_ratio=0.7))

    assert [w.train_index for w in windows] == [(0, 16), (25, 41), (50, 66), (75, 91)]
    assert [w.test_index for w in windows] == [(17, 24), (42, 49), (67, 74), (92, 99)]
    for w in windows:
        assert w.train_start < w.train_end < w.test_start <= w.test_end
        assert w.test_start == candles[w.test_index[0]].timestamp
    for earlier, later in zip(windows, windows[1:]):
        assert earlier.test_index[1] < later.train_index[0]


def test_anchored_windows_grow_from_start():
    """train_end = floor((i + 1) * 100 * 0.7 / 4) = 17, 35, 52, 70; test slices of 25."""
    candles = generate_linear_candles(n=100)
    config = WalkForwardConfig(window_type="anchored", num_windows=4, train_ratio=0.7)
    windows = generate_windows(candles, config)

    assert config.window_type is WindowType.ANCHORED
    assert [w.train_index for w in windows] == [(0, 17), (0, 35), (0, 52), (0, 70)]
    assert [w.test_index for w in windows] == [(18, 42), (36, 60), (53, 77), (71, 95)]
    assert all(w.train_start == candles[0].timestamp for w in windows)


def test_too_few_candles_gives_no_windows():
    candles = generate_linear_candles(n=3)
    assert generate_windows(candles, WalkForwardConfig(num_windows=5)) == []


def test_config_validation():
    with pytest.raises(ValueError):
        WalkForwardConfig(train_ratio=1.0)
    with pytest.raises(ValueError):
        WalkForwardConfig(train_ratio=0.0)
    with pytest.raises(ValueError):
        WalkForwardConfig(num_windows=0)
    with pytest.raises(ValueError):
        WalkForwardConfig(window_type="expanding")


# ============================================================================
# Degradation and aggregation
# ============================================================================

def test_compute_degradation():
    assert compute_degradation(10.0, 5.0) == pytest.approx(50.0)
    assert compute_degradation(-10.0, -5.0) == pytest.approx(-50.0)
    assert compute_degradation(0.0, 5.0) == 0.0


def test_aggregate_out_of_sample_empty():
    assert aggregate_out_of_sample([]) == AggregatedOutOfSample()


# ============================================================================
# Analysis
# ============================================================================

def test_analyze_end_to_end(frictionless_config, hold_factory):
    """
    40 rising candles, 2 rolling windows of 20: train 14, test 6.
    hold=3 wins every training slice and stays profitable out-of-sample.
    """
    candles = generate_linear_candles(n=40, start_price=2000.0, end_price=2039.0)
    progress = []
    analyzer = WalkForwardAnalyzer(
        candles,
        frictionless_config,
        WalkForwardConfig(num_windows=2, train_ratio=0.7, optimization_config=hold_opt_config()),
        on_progress=lambda fraction, window: progress.append((fraction, window)),
    )
    result = analyzer.analyze(hold_factory, {"hold": 1})

    assert len(result.windows) == 2
    assert all(w.optimized_params["hold"] == 3 for w in result.windows)
    assert all(w.out_of_sample_value > 0 for w in result.windows)
    assert 0.0 <= result.robustness_score <= 100.0
    assert result.aggregated_out_of_sample.total_trades == 2
    assert result.aggregated_out_of_sample.win_rate == pytest.approx(100.0)
    assert progress == [(0.5, 0), (1.0, 1)]


def test_analyze_without_finite_in_sample_metric(frictionless_config, hold_factory):
    """Profit factor is +inf on every grid point: in-sample value falls back to 0."""
    candles = generate_linear_candles(n=40, start_price=2000.0, end_price=2039.0)
    analyzer = WalkForwardAnalyzer(
        candles,
        frictionless_config,
        WalkForwardConfig(num_windows=2, optimization_config=hold_opt_config("profit_factor")),
    )
    result = analyzer.analyze(hold_factory, {"hold": 2})

    for window in result.windows:
        assert window.optimized_params == {"hold": 2}
        assert window.in_sample_value == 0.0
        assert window.degradation == 0.0
        assert window.in_sample_metrics is window.out_of_sample_metrics
    assert result.robustness_score == pytest.approx(100.0)


def test_analyze_rejects_short_series(frictionless_config, hold_factory):
    candles = generate_linear_candles(n=3)
    analyzer = WalkForwardAnalyzer(candles, frictionless_config, WalkForwardConfig(num_windows=5))
    with pytest.raises(ValueError, match="No viable walk-forward windows"):
        analyzer.analyze(hold_factory)


def test_analyze_cancellation(frictionless_config, hold_factory):
    token = CancellationToken()
    token.cancel()
    candles = generate_linear_candles(n=40, interval_minutes=1)
    analyzer = WalkForwardAnalyzer(
        candles, frictionless_config,
        WalkForwardConfig(num_windows=2, optimization_config=hold_opt_config()),
        cancel_token=token,
    )
    with pytest.raises(OptimizationCancelled):
        analyzer.analyze(hold_factory)


def test_window_timestamps_follow_candles():
    candles = generate_linear_candles(n=20, interval_minutes=5)
    window = generate_windows(candles, WalkForwardConfig(num_windows=1, train_ratio=0.5))[0]
    assert window.train_index == (0, 9) and window.test_index == (10, 19)
    assert window.test_end - window.train_start == 19 * 5 * MS_PER_MINUTE
