"""
RSI mean-reversion strategy.

**Conceptual**: When RSI has been oversold and climbs back above the oversold
level, selling pressure is exhausted and we buy the bounce. When RSI has been
overbought and drops back under the overbought level, we close a long or
open a short.

**Rules** (RSI is Wilder-smoothed, see `indicators.technical.rsi`):
  - Once the previous bar's RSI is below `oversold_level`, the strategy is
    "armed" for a long. It fires BUY when RSI crosses from <= oversold to
    > oversold, then disarms.
  - Mirror logic for `overbought_level`: CLOSE an open long, else SELL.
  - With ATR stops enabled, stop = close -/+ atr_multiplier * ATR and the
    target sits `take_profit_ratio` times that risk away on the other side.

**Parameters**:
  - rsi_period (14), oversold_level (30), overbought_level (70).
  - use_atr_stop_loss (True), atr_multiplier (1.5), atr_period (14).
  - take_profit_ratio (2.0): reward-to-risk multiple for the target.
"""

import math

from xau_backtester.backtesting.models import Direction, Signal, SignalType
from xau_backtester.indicators.technical import atr, candle_field, rsi
from xau_backtester.strategies.base import Strategy


class RSIReversalStrategy(Strategy):
    """Buy oversold recoveries, sell overbought rollovers."""

    name = "RSI Reversal"
    default_params = {
        "rsi_period": 14,
        "oversold_level": 30.0,
        "overbought_level": 70.0,
        "use_atr_stop_loss": True,
        "atr_multiplier": 1.5,
        "atr_period": 14,
        "take_profit_ratio": 2.0,
    }

    def on_init(self) -> None:
        closes = candle_field(self.candles, "close")
        self._rsi = rsi(closes, self.int_param("rsi_period"))
        self._atr = atr(
            candle_field(self.candles, "high"),
            candle_field(self.candles, "low"),
            closes,
            self.int_param("atr_period"),
        )
        self._was_oversold = False
        self._was_overbought = False

    def _levels(self, close: float, index: int, direction: Direction):
        """Return (stop_loss, take_profit) for a new position, or (None, None)."""
        if not self.bool_param("use_atr_stop_loss"):
            return None, None
        current_atr = self._atr[index]
        if not math.isfinite(current_atr) or current_atr <= 0:
            return None, None
        risk = current_atr * self.float_param("atr_multiplier")
        stop = close - direction.sign * risk
        target = close + direction.sign * risk * self.float_param("take_profit_ratio")
        return stop, target

    def on_candle(self, index, history, position):
        if index < 1:
            return None
        current, previous = self._rsi[index], self._rsi[index - 1]
        if math.isnan(current) or math.isnan(previous):
            return None

        oversold = self.float_param("oversold_level")
        overbought = self.float_param("overbought_level")

        if previous < oversold:
            self._was_oversold = True
        if previous > overbought:
            self._was_overbought = True

        close = history.current.close

        if self._was_oversold and previous <= oversold < current:
            self._was_oversold = False
            stop, target = self._levels(close, index, Direction.LONG)
            return Signal(
                type=SignalType.BUY,
                stop_loss=stop,
                take_profit=target,
                reason=f"RSI ({current:.1f}) crossed above {oversold:g}",
            )

        if self._was_overbought and previous >= overbought > current:
            self._was_overbought = False
            reason = f"RSI ({current:.1f}) crossed below {overbought:g}"
            if position is not None and position.direction is Direction.LONG:
                return Signal(type=SignalType.CLOSE, reason=reason)
            stop, target = self._levels(close, index, Direction.SHORT)
            return Signal(
                type=SignalType.SELL,
                stop_loss=stop,
                take_profit=target,
                reason=reason,
            )

        return None
