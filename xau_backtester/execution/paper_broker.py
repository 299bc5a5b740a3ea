"""
Paper broker: position and trade bookkeeping for a single backtest run.

**Conceptual**: The broker owns everything that changes during a run: the one
open position slot, the list of closed trades, realized equity, the trade id
sequence and the equity curve. The engine decides *when* to open, close or
mark to market; the broker decides *how* (fill prices, sizing, commission,
P&L).

**Why a fresh broker per run?**
  - A `BacktestEngine` is reused thousands of times by the optimizers. Creating
    a new broker at the start of every `run` means no trade id, position or
    equity point can leak from one evaluation into the next.
  - No module-level state: two brokers never share anything, which keeps
    future parallel evaluation safe.

**Financial assumptions**:
  - One position at a time (long or short), sized in notional USD.
  - Size = min(requested, realized_equity * max_position_size * leverage).
  - Fills: entries and exits move `slippage * pip_size` against the trader.
  - Stops and targets fill at their exact level (plus slippage), not at close.
  - Commission = size * commission on entry and again on exit, deducted from
    the trade's P&L when it closes.
  - P&L = sign * (exit - entry) / entry * size - 2 * size * commission.

**Teaching note**: Stops are checked before targets. When a single bar spans
both levels we cannot know which was touched first from OHLC alone, so the
broker takes the pessimistic reading.
"""

from typing import List, Optional

from loguru import logger

from xau_backtester.backtesting.models import (
    BacktestConfig,
    Candle,
    Direction,
    EquityPoint,
    Position,
    Signal,
    Trade,
)


STOP_LOSS_REASON = "Stop loss hit"
TAKE_PROFIT_REASON = "Take profit hit"
END_OF_BACKTEST_REASON = "End of backtest"


class PaperBroker:
    """
    Simulated single-slot broker.

    Attributes:
        config: Cost and sizing assumptions.
        position: Currently open position, or None when flat.
        trades: Closed trades, in exit order.
        equity: Realized equity (initial capital plus closed-trade P&L).
        equity_curve: One EquityPoint per `mark_to_market` call.
    """

    def __init__(self, config: BacktestConfig):
        self.config = config
        self.position: Optional[Position] = None
        self.trades: List[Trade] = []
        self.equity: float = config.initial_capital
        self.equity_curve: List[EquityPoint] = []
        self._next_id = 1

    @property
    def max_position_notional(self) -> float:
        """Largest notional allowed for a new position at current realized equity."""
        return self.equity * self.config.max_position_size * self.config.leverage

    def open_position(self, direction: Direction, candle: Candle, signal: Signal) -> Position:
        """
        Open a new position at the candle close.

        **Functionally**:
          - Entry price = close + slippage for longs, close - slippage for shorts.
          - Size = min(signal.size, cap) when a positive size is requested,
            else the cap (None, zero or negative sizes all mean "use the cap").

        Args:
            direction: Side to open.
            candle: Candle whose close is the reference fill price.
            signal: Signal carrying optional size, stop and target.

        Returns:
            The newly opened Position.

        Raises:
            RuntimeError: If a position is already open.
        """
        if self.position is not None:
            raise RuntimeError(
                f"Cannot open {direction.value} position: position {self.position.id} is still open"
            )

        cap = self.max_position_notional
        size = cap if signal.size is None or signal.size <= 0 else min(signal.size, cap)
        slip = self.config.slippage_price
        entry_price = candle.close + slip if direction is Direction.LONG else candle.close - slip

        self.position = Position(
            id=self._next_id,
            direction=direction,
            entry_time=candle.timestamp,
            entry_price=entry_price,
            size=size,
            stop_loss=signal.stop_loss,
            take_profit=signal.take_profit,
        )
        self._next_id += 1

        logger.debug(
            "Opened {} #{} at {:.2f} size={:.2f} sl={} tp={} ({})",
            direction.value, self.position.id, entry_price, size,
            signal.stop_loss, signal.take_profit, signal.reason or "signal",
        )
        return self.position

    def close_position(self, price: float, timestamp: int, reason: str) -> Trade:
        """
        Close the open position and record the resulting Trade.

        **Mathematical**:
            exit = price - slip (long) or price + slip (short)
            gross = sign * (exit - entry) / entry * size
            commission = 2 * size * commission_rate
            pnl = gross - commission
            pnl_percent = pnl / initial_capital * 100

        Args:
            price: Reference exit price (stop/target level or candle close).
            timestamp: Exit time in ms.
            reason: Exit reason recorded on the trade.

        Returns:
            The Trade created from the closed position.

        Raises:
            RuntimeError: If no position is open.
        """
        position = self.position
        if position is None:
            raise RuntimeError("Cannot close position: no position is open")

        slip = self.config.slippage_price
        exit_price = price - slip if position.direction is Direction.LONG else price + slip

        gross = position.unrealized_pnl(exit_price)
        commission = position.size * self.config.commission * 2
        pnl = gross - commission

        trade = Trade(
            id=position.id,
            entry_time=position.entry_time,
            exit_time=timestamp,
            entry_price=position.entry_price,
            exit_price=exit_price,
            direction=position.direction,
            size=position.size,
            pnl=pnl,
            pnl_percent=pnl / self.config.initial_capital * 100,
            commission=commission,
            stop_loss=position.stop_loss,
            take_profit=position.take_profit,
            exit_reason=reason,
        )
        self.trades.append(trade)
        self.equity += pnl
        self.position = None

        logger.debug(
            "Closed {} #{} at {:.2f} pnl={:.2f} ({})",
            trade.direction.value, trade.id, exit_price, pnl, reason,
        )
        return trade

    def check_exits(self, candle: Candle) -> Optional[Trade]:
        """
        Close the open position if the candle's range reached its stop or target.

        **Functionally**:
          - Long: stop when low <= stop_loss, else target when high >= take_profit.
          - Short: stop when high >= stop_loss, else target when low <= take_profit.
          - The fill reference is the level itself, not the candle close.

        Returns:
            The Trade if an exit fired, else None.
        """
        position = self.position
        if position is None:
            return None

        if position.direction is Direction.LONG:
            if position.stop_loss is not None and candle.low <= position.stop_loss:
                return self.close_position(position.stop_loss, candle.timestamp, STOP_LOSS_REASON)
            if position.take_profit is not None and candle.high >= position.take_profit:
                return self.close_position(position.take_profit, candle.timestamp, TAKE_PROFIT_REASON)
        else:
            if position.stop_loss is not None and candle.high >= position.stop_loss:
                return self.close_position(position.stop_loss, candle.timestamp, STOP_LOSS_REASON)
            if position.take_profit is not None and candle.low <= position.take_profit:
                return self.close_position(position.take_profit, candle.timestamp, TAKE_PROFIT_REASON)
        return None

    def mark_to_market(self, candle: Candle) -> EquityPoint:
        """Append realized equity plus open P&L at the candle close to the equity curve."""
        unrealized = self.position.unrealized_pnl(candle.close) if self.position else 0.0
        point = EquityPoint(timestamp=candle.timestamp, equity=self.equity + unrealized)
        self.equity_curve.append(point)
        return point

    def restate_final_equity(self) -> None:
        """
        Replace the last equity point with realized equity.

        Called after the end-of-data force close so the curve ends exactly at
        initial capital plus the sum of trade P&L (commission and exit
        slippage included).
        """
        if self.equity_curve:
            last = self.equity_curve[-1]
            self.equity_curve[-1] = EquityPoint(timestamp=last.timestamp, equity=self.equity)
