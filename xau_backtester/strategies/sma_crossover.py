"""
Dual simple-moving-average crossover strategy.

**Conceptual**: Trend following in its most classic form. When the fast SMA
crosses above the slow SMA, recent prices are outrunning the longer-term
average and we go long. When it crosses below, we close the long, or open a
short if flat.

**Rules**:
  - Bullish cross (fast goes from <= slow to > slow): BUY. An open short is
    reversed by the engine.
  - Bearish cross: CLOSE an open long; when flat, SELL (open a short) unless
    `allow_short` is False.
  - The first candle where both averages are defined counts as a cross toward
    whichever side is on top, so a series that trends from the very start
    still produces an entry once the slow average has warmed up.
  - Optional protective stop at close -/+ atr_multiplier * ATR.

**Parameters**:
  - fast_period (10), slow_period (30): SMA lengths.
  - use_atr_stop_loss (True), atr_multiplier (2.0), atr_period (14).
  - allow_short (True).
"""

import math

from xau_backtester.backtesting.models import Direction, Signal, SignalType
from xau_backtester.indicators.technical import atr, candle_field, crossover, crossunder, sma
from xau_backtester.strategies.base import Strategy


class SMACrossoverStrategy(Strategy):
    """Fast/slow SMA crossover with an optional ATR stop."""

    name = "SMA Crossover"
    default_params = {
        "fast_period": 10,
        "slow_period": 30,
        "use_atr_stop_loss": True,
        "atr_multiplier": 2.0,
        "atr_period": 14,
        "allow_short": True,
    }

    def on_init(self) -> None:
        closes = candle_field(self.candles, "close")
        self._fast = sma(closes, self.int_param("fast_period"))
        self._slow = sma(closes, self.int_param("slow_period"))
        self._atr = atr(
            candle_field(self.candles, "high"),
            candle_field(self.candles, "low"),
            closes,
            self.int_param("atr_period"),
        )
        self._primed = False

    def _stop(self, close: float, index: int, direction: Direction):
        if not self.bool_param("use_atr_stop_loss"):
            return None
        current_atr = self._atr[index]
        if not math.isfinite(current_atr) or current_atr <= 0:
            return None
        return close - direction.sign * current_atr * self.float_param("atr_multiplier")

    def on_candle(self, index, history, position):
        fast, slow = self._fast[index], self._slow[index]
        if math.isnan(fast) or math.isnan(slow):
            return None

        if not self._primed:
            self._primed = True
            crossed_up, crossed_down = fast > slow, fast < slow
        else:
            crossed_up = crossover(self._fast, self._slow, index)
            crossed_down = crossunder(self._fast, self._slow, index)

        close = history.current.close
        fast_p, slow_p = self.int_param("fast_period"), self.int_param("slow_period")

        if crossed_up:
            if position is not None and position.direction is Direction.LONG:
                return None
            return Signal(
                type=SignalType.BUY,
                stop_loss=self._stop(close, index, Direction.LONG),
                reason=f"Fast SMA ({fast_p}) crossed above Slow SMA ({slow_p})",
            )

        if crossed_down:
            reason = f"Fast SMA ({fast_p}) crossed below Slow SMA ({slow_p})"
            if position is not None and position.direction is Direction.LONG:
                return Signal(type=SignalType.CLOSE, reason=reason)
            if position is None and self.bool_param("allow_short"):
                return Signal(
                    type=SignalType.SELL,
                    stop_loss=self._stop(close, index, Direction.SHORT),
                    reason=reason,
                )

        return None
