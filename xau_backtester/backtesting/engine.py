"""
Candle-by-candle backtest engine.

**Conceptual**: The engine is the orchestrator that brings together candles,
a strategy and a paper broker. It walks the candles forward once, asks the
strategy for a signal on each bar, lets the broker execute it, and records
equity. The output is a `BacktestResult` with trades, the equity curve and
performance metrics.

**Per-candle order** (the order matters for correctness):
  1. Exit check: an open position's stop/target is tested against the
     candle's high/low and, if hit, closed at the exact level. This runs
     *before* the strategy, so a close-based signal can never override a
     level that was already crossed intrabar.
  2. Strategy signal: `on_candle(index, history, position)`.
       - BUY/SELL: an opposing position is closed at the close first
         (reversal), then a new one opens if flat.
       - CLOSE: any open position is closed at the close.
  3. Equity: realized equity plus unrealized P&L at the close.

At end of data a still-open position is force-closed at the last close with
reason "End of backtest", and the last equity point is restated to realized
equity so that Σ trade.pnl == final equity - initial capital.

**Reuse**: A single `BacktestEngine` is reused across thousands of optimizer
evaluations. Every `run` creates a fresh `PaperBroker`, so trade ids,
positions and equity never leak between runs.

**Teaching note**: The most common backtest bug is time travel. Strategies
receive a `CandleHistory` view that ends at the current bar, and the engine
only ever acts on the current candle's prices.
"""

from typing import Optional, Sequence

from loguru import logger

from xau_backtester.analytics.performance import calculate_metrics
from xau_backtester.backtesting.models import (
    DEFAULT_BACKTEST_CONFIG,
    BacktestConfig,
    BacktestResult,
    Candle,
    CandleHistory,
    Direction,
    Signal,
    SignalType,
)
from xau_backtester.execution.paper_broker import END_OF_BACKTEST_REASON, PaperBroker
from xau_backtester.strategies.base import Strategy


class BacktestEngine:
    """
    Deterministic single-pass backtest simulator.

    Attributes:
        config: Account and cost assumptions applied to every run.
    """

    def __init__(self, config: BacktestConfig = DEFAULT_BACKTEST_CONFIG):
        self.config = config

    def run(self, candles: Sequence[Candle], strategy: Strategy) -> BacktestResult:
        """
        Replay `candles` through `strategy`.

        Args:
            candles: Candles in ascending timestamp order (validated upstream).
            strategy: A strategy instance; `init` is called on it here.

        Returns:
            BacktestResult with trades, equity curve and metrics.

        Raises:
            ValueError: If `candles` is empty.
        """
        if len(candles) == 0:
            raise ValueError("Cannot run backtest: candle list is empty.")

        broker = PaperBroker(self.config)

        strategy.init(candles, self.config)

        for index, candle in enumerate(candles):
            broker.check_exits(candle)

            signal = strategy.on_candle(index, CandleHistory(candles, index), broker.position)
            if signal is not None:
                self._execute(signal, candle, broker)

            broker.mark_to_market(candle)

        last = candles[-1]
        if broker.position is not None:
            broker.close_position(last.close, last.timestamp, END_OF_BACKTEST_REASON)
            broker.restate_final_equity()

        strategy.on_complete(list(broker.trades))

        metrics = calculate_metrics(
            broker.trades,
            broker.equity_curve,
            self.config.initial_capital,
            candles[0].timestamp,
            last.timestamp,
        )

        logger.debug(
            "Backtest {} {}: {} candles, {} trades, final equity {:.2f}",
            strategy.name, strategy.params, len(candles), len(broker.trades), broker.equity,
        )

        return BacktestResult(
            strategy=strategy.name,
            params=dict(strategy.params),
            config=self.config,
            trades=list(broker.trades),
            equity_curve=list(broker.equity_curve),
            metrics=metrics,
            start_date=candles[0].timestamp,
            end_date=last.timestamp,
            candle_count=len(candles),
        )

    @staticmethod
    def _execute(signal: Signal, candle: Candle, broker: PaperBroker) -> None:
        position = broker.position

        if signal.type is SignalType.CLOSE:
            if position is not None:
                broker.close_position(candle.close, candle.timestamp, signal.reason or "Close signal")
            return

        direction = Direction.LONG if signal.type is SignalType.BUY else Direction.SHORT
        if position is not None and position.direction is not direction:
            broker.close_position(candle.close, candle.timestamp, f"Reverse to {direction.value}")

        if broker.position is None:
            broker.open_position(direction, candle, signal)


def run_backtest(
    candles: Sequence[Candle],
    strategy: Strategy,
    config: Optional[BacktestConfig] = None,
) -> BacktestResult:
    """
    Run one backtest with a throwaway engine.

    Args:
        candles: Candles in ascending order.
        strategy: Strategy instance.
        config: Backtest configuration; defaults to `DEFAULT_BACKTEST_CONFIG`.

    Returns:
        BacktestResult.
    """
    return BacktestEngine(config or DEFAULT_BACKTEST_CONFIG).run(candles, strategy)
