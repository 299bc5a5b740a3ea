"""
Core data model for XAU/USD backtests.

**Conceptual**: Every component of the system speaks in these types. Candles
flow in, strategies answer with Signals, the broker turns Signals into
Positions and closes Positions into Trades, and each candle leaves one
EquityPoint behind. A BacktestResult packages all of it for analysis.

**Ownership**:
  - `Candle`, `Trade` and `BacktestConfig` are frozen: once created, they are
    historical facts or run inputs and never change.
  - `Position` is mutable but owned exclusively by the broker during a run.
    Strategies receive it read-only (by convention) to decide what to do.
  - `Signal` is ephemeral: created by a strategy, consumed once by the engine.

**Units**:
  - Timestamps are Unix milliseconds (int).
  - `Position.size` / `Trade.size` are notional in account currency (USD),
    not ounces or lots. P&L is `price_change / entry_price * size`.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class Candle:
    """
    One OHLCV bar.

    Attributes:
        timestamp: Bar open time in Unix milliseconds (> 0, ascending within a series).
        open: First traded price of the bar.
        high: Highest price of the bar (>= open, close).
        low: Lowest price of the bar (<= open, close).
        close: Last traded price of the bar.
        volume: Traded volume, or None when the feed has none (typical for spot gold).
    """
    timestamp: int
    open: float
    high: float
    low: float
    close: float
    volume: Optional[float] = None


class Direction(str, Enum):
    """Side of a position."""
    LONG = "long"
    SHORT = "short"

    @property
    def sign(self) -> int:
        """+1 for long, -1 for short (multiplies price changes into P&L)."""
        return 1 if self is Direction.LONG else -1


class SignalType(str, Enum):
    """What a strategy asks the engine to do on the current candle."""
    BUY = "buy"
    SELL = "sell"
    CLOSE = "close"


@dataclass
class Position:
    """
    An open, unrealized trade.

    **Conceptual**: A Position lives from the candle that opened it until a
    stop, target, opposite signal, close signal or end of data converts it
    into a `Trade`. Only the broker creates or mutates Positions.

    Attributes:
        id: Run-local sequence number (1, 2, ...), reset at every engine run.
        direction: LONG or SHORT.
        entry_time: Timestamp (ms) of the candle the position was opened on.
        entry_price: Fill price including adverse slippage.
        size: Notional in account currency.
        stop_loss: Protective stop price, or None.
        take_profit: Profit target price, or None.
    """
    id: int
    direction: Direction
    entry_time: int
    entry_price: float
    size: float
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None

    def unrealized_pnl(self, price: float) -> float:
        """
        Mark-to-market P&L at `price`, before exit commission.

        **Mathematical**:
            pnl = sign * (price - entry_price) / entry_price * size
        """
        return self.direction.sign * (price - self.entry_price) / self.entry_price * self.size


@dataclass(frozen=True)
class Trade:
    """
    A closed position with realized P&L.

    Attributes:
        id: Id of the Position this trade closed.
        entry_time: Entry timestamp (ms).
        exit_time: Exit timestamp (ms).
        entry_price: Entry fill price.
        exit_price: Exit fill price (stop/target level or slipped close).
        direction: LONG or SHORT.
        size: Notional in account currency.
        pnl: Net realized P&L after entry and exit commission.
        pnl_percent: pnl as a percentage of initial capital.
        commission: Total commission charged (entry + exit).
        stop_loss: Stop that was attached to the position, if any.
        take_profit: Target that was attached to the position, if any.
        exit_reason: Human-readable reason ("Stop loss hit", "End of backtest", ...).
    """
    id: int
    entry_time: int
    exit_time: int
    entry_price: float
    exit_price: float
    direction: Direction
    size: float
    pnl: float
    pnl_percent: float
    commission: float
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    exit_reason: str = ""

    @property
    def duration_ms(self) -> int:
        return self.exit_time - self.entry_time


@dataclass(frozen=True)
class Signal:
    """
    A strategy's request for the current candle.

    Attributes:
        type: BUY opens (or reverses into) a long, SELL opens (or reverses into)
              a short, CLOSE flattens any open position.
        size: Requested notional. Capped at equity * max_position_size * leverage;
              None, zero or a negative value means "use the cap".
        stop_loss: Stop price for the new position.
        take_profit: Target price for the new position.
        reason: Free-text explanation, logged at debug level.
    """
    type: SignalType
    size: Optional[float] = None
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    reason: Optional[str] = None


@dataclass(frozen=True)
class EquityPoint:
    """Account value (realized + unrealized) at one candle's close."""
    timestamp: int
    equity: float


@dataclass(frozen=True)
class BacktestConfig:
    """
    Account and cost assumptions for one backtest.

    Attributes:
        initial_capital: Starting equity in account currency (> 0).
        commission: Fraction of notional charged on entry and again on exit.
        slippage: Adverse fill offset in pips.
        leverage: Notional multiplier on the position-size cap (>= 1).
        max_position_size: Fraction of current equity per position (0, 1].
        pip_size: Price value of one pip (0.01 for XAU/USD).

    Raises:
        ValueError: If any field is out of range.
    """
    initial_capital: float
    commission: float
    slippage: float
    leverage: float
    max_position_size: float
    pip_size: float = 0.01

    def __post_init__(self):
        if self.initial_capital <= 0:
            raise ValueError(f"initial_capital must be positive, got {self.initial_capital}")
        if self.commission < 0:
            raise ValueError(f"commission must be non-negative, got {self.commission}")
        if self.slippage < 0:
            raise ValueError(f"slippage must be non-negative, got {self.slippage}")
        if self.leverage <= 0:
            raise ValueError(f"leverage must be positive, got {self.leverage}")
        if self.max_position_size <= 0:
            raise ValueError(
                f"max_position_size must be positive, got {self.max_position_size}"
            )
        if self.pip_size <= 0:
            raise ValueError(f"pip_size must be positive, got {self.pip_size}")

    @property
    def slippage_price(self) -> float:
        """Slippage converted from pips to a price offset."""
        return self.slippage * self.pip_size


DEFAULT_BACKTEST_CONFIG = BacktestConfig(
    initial_capital=10_000.0,
    commission=0.0001,
    slippage=0.1,
    leverage=100.0,
    max_position_size=0.1,
)


@dataclass
class BacktestResult:
    """
    Everything produced by one engine run.

    Attributes:
        strategy: Strategy name.
        params: Parameters the strategy ran with (copy).
        config: BacktestConfig used.
        trades: Closed trades in exit order.
        equity_curve: One EquityPoint per candle.
        metrics: PerformanceMetrics computed from trades and equity_curve.
        start_date: Timestamp (ms) of the first candle.
        end_date: Timestamp (ms) of the last candle.
        candle_count: Number of candles replayed.
    """
    strategy: str
    params: Dict[str, Any]
    config: BacktestConfig
    trades: List[Trade] = field(default_factory=list)
    equity_curve: List[EquityPoint] = field(default_factory=list)
    metrics: Any = None
    start_date: int = 0
    end_date: int = 0
    candle_count: int = 0

    @property
    def final_equity(self) -> float:
        if not self.equity_curve:
            return self.config.initial_capital
        return self.equity_curve[-1].equity


class CandleHistory(Sequence):
    """
    Read-only view of `candles[0..index]`.

    **Conceptual**: Strategies receive this instead of the full candle list, so
    indexing past the current bar raises IndexError just as it would on a
    truncated list, without copying the prefix on every candle (which would
    make a backtest O(N^2)).

    **Edge cases**:
      - Negative indices count from the current bar, not from the end of data.
      - Slices return plain lists clipped to the visible prefix.
    """

    __slots__ = ("_candles", "_length")

    def __init__(self, candles: Sequence[Candle], index: int):
        if index < 0 or index >= len(candles):
            raise IndexError(f"history index {index} out of range for {len(candles)} candles")
        self._candles = candles
        self._length = index + 1

    def __len__(self) -> int:
        return self._length

    def __getitem__(self, item):
        if isinstance(item, slice):
            return [self._candles[i] for i in range(*item.indices(self._length))]
        if item < 0:
            item += self._length
        if item < 0 or item >= self._length:
            raise IndexError(f"history index {item} out of range (length {self._length})")
        return self._candles[item]

    @property
    def current(self) -> Candle:
        """The candle being processed."""
        return self._candles[self._length - 1]
