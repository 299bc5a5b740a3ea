"""
Strategy interface and trivial implementations for backtesting.

**Conceptual**: This module defines the contract between strategies and the
backtest engine. A Strategy looks at the candle history up to the current bar
and the currently open position (if any) and answers with a `Signal` or None.
The engine owns execution; the strategy never touches the broker.

**Lifecycle** (one strategy instance per backtest run):
  1. `init(candles, config)` once: stores references and calls `on_init()`,
     where subclasses precompute indicator arrays over the full candle set.
  2. `on_candle(index, history, position)` once per candle, in increasing
     index order. `history` is a read-only view of `candles[0..index]`.
  3. `on_complete(trades)` once after the last candle.

**Why `clone`?**
  - Optimizers evaluate thousands of parameter sets. Each evaluation gets a
    fresh instance from `clone(params)`, so indicator caches and state flags
    (e.g. "was oversold") are never shared between evaluations.

**Teaching note**: Precomputed indicator arrays physically contain values
derived from future candles. Subclasses must only read positions <= index;
the history view enforces this for candles, discipline enforces it for arrays.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Sequence

from xau_backtester.backtesting.models import (
    BacktestConfig,
    Candle,
    CandleHistory,
    Position,
    Signal,
    SignalType,
    Trade,
)


class Strategy(ABC):
    """
    Base class for all strategies.

    Subclasses set `name` and `default_params`, implement `on_candle`, and
    usually override `on_init` to precompute indicators. Parameters passed to
    the constructor are merged over `default_params`.

    Attributes:
        name: Human-readable strategy name.
        default_params: Defaults merged under user-supplied params.
        params: Effective parameters for this instance.
        candles: Full candle list (set by `init`).
        config: Backtest configuration (set by `init`).
    """

    name: str = "Strategy"
    default_params: Mapping[str, Any] = {}

    def __init__(self, params: Optional[Mapping[str, Any]] = None):
        self.params: Dict[str, Any] = {**self.default_params, **(params or {})}
        self.candles: Sequence[Candle] = []
        self.config: Optional[BacktestConfig] = None

    def init(self, candles: Sequence[Candle], config: BacktestConfig) -> None:
        """Store run inputs and trigger the `on_init` precompute hook."""
        self.candles = candles
        self.config = config
        self.on_init()

    def on_init(self) -> None:
        """Precompute indicator series and reset per-run state. Default: no-op."""

    @abstractmethod
    def on_candle(
        self,
        index: int,
        history: CandleHistory,
        position: Optional[Position],
    ) -> Optional[Signal]:
        """
        Decide what to do on candle `index`.

        Args:
            index: Position of the current candle in the full series.
            history: Read-only view of candles[0..index].
            position: Currently open position, or None when flat.

        Returns:
            A Signal, or None for "do nothing".
        """

    def on_complete(self, trades: List[Trade]) -> None:
        """Called once after the last candle with the run's closed trades. Default: no-op."""

    def clone(self, params: Optional[Mapping[str, Any]] = None) -> "Strategy":
        """
        Return a fresh, independent instance of the same strategy class.

        Args:
            params: Parameters for the new instance; None reuses this instance's.

        Returns:
            New strategy sharing no mutable state with `self`.
        """
        return type(self)(dict(self.params if params is None else params))

    # Parameter accessors: optimizers hand out floats such as 10.0 for
    # integer parameters, so periods are rounded on read.

    def int_param(self, key: str) -> int:
        return int(round(float(self.params[key])))

    def float_param(self, key: str) -> float:
        return float(self.params[key])

    def bool_param(self, key: str) -> bool:
        value = self.params[key]
        if isinstance(value, str):
            return value.strip().lower() in ("true", "1", "yes")
        return bool(value)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.params!r})"


# ============================================================================
# Simple strategy implementations for testing and demonstration
# ============================================================================

class NeverSignalStrategy(Strategy):
    """
    Trivial strategy that never trades.

    **Expected behavior in backtest**:
      - No positions are ever opened, zero trades.
      - Equity stays at initial capital on every candle.

    Useful to verify engine plumbing and as the zero baseline.
    """

    name = "Never Signal"

    def on_candle(self, index, history, position):
        return None


class BuyAndHoldStrategy(Strategy):
    """
    Trivial strategy that goes long on the first candle and holds to the end.

    **Expected behavior in backtest**:
      - Exactly one trade, opened on candle 0 and force-closed on the last
        candle with reason "End of backtest".
      - Equity tracks the price move scaled by position notional.
    """

    name = "Buy and Hold"

    def on_candle(self, index, history, position):
        if position is None and index == 0:
            return Signal(type=SignalType.BUY, reason="Buy and hold entry")
        return None
