"""
Price-channel breakout strategy.

**Conceptual**: A close (or high/low) beyond the highest high / lowest low of
the last `lookback_period` bars signals that a range has resolved. The channel
is taken from the *previous* bar, so the current candle never defines the
level it is breaking.

**Rules**:
  - Up breakout: close > channel_high and previous close <= channel_high
    (with `wait_for_close`), else high > channel_high and previous high <=
    channel_high. An open short is closed; when flat, BUY with an ATR stop
    and a target at `take_profit_ratio` times the risk.
  - Down breakout mirrors it with the channel low.
  - Only one signal per breakout direction: after an up breakout, further up
    breakouts are ignored until a down breakout occurs (and vice versa).

**Parameters**:
  - lookback_period (20), atr_period (14), atr_multiplier (1.5),
    take_profit_ratio (2.0), wait_for_close (True).
"""

import math

from xau_backtester.backtesting.models import Direction, Signal, SignalType
from xau_backtester.indicators.technical import atr, candle_field, highest, lowest
from xau_backtester.strategies.base import Strategy


class BreakoutStrategy(Strategy):
    """Donchian-style channel breakout with ATR risk management."""

    name = "Breakout"
    default_params = {
        "lookback_period": 20,
        "atr_period": 14,
        "atr_multiplier": 1.5,
        "take_profit_ratio": 2.0,
        "wait_for_close": True,
    }

    def on_init(self) -> None:
        highs = candle_field(self.candles, "high")
        lows = candle_field(self.candles, "low")
        closes = candle_field(self.candles, "close")
        lookback = self.int_param("lookback_period")
        self._channel_high = highest(highs, lookback)
        self._channel_low = lowest(lows, lookback)
        self._atr = atr(highs, lows, closes, self.int_param("atr_period"))
        self._last_breakout = None

    def _entry(self, close: float, index: int, direction: Direction, reason: str) -> Signal:
        current_atr = self._atr[index]
        stop = target = None
        if math.isfinite(current_atr) and current_atr > 0:
            risk = current_atr * self.float_param("atr_multiplier")
            stop = close - direction.sign * risk
            target = close + direction.sign * risk * self.float_param("take_profit_ratio")
        return Signal(
            type=SignalType.BUY if direction is Direction.LONG else SignalType.SELL,
            stop_loss=stop,
            take_profit=target,
            reason=reason,
        )

    def on_candle(self, index, history, position):
        if index < 2:
            return None
        channel_high = self._channel_high[index - 1]
        channel_low = self._channel_low[index - 1]
        if math.isnan(channel_high) or math.isnan(channel_low):
            return None

        candle, prev = history[index], history[index - 1]
        lookback = self.int_param("lookback_period")

        if self.bool_param("wait_for_close"):
            up = candle.close > channel_high and prev.close <= channel_high
            down = candle.close < channel_low and prev.close >= channel_low
        else:
            up = candle.high > channel_high and prev.high <= channel_high
            down = candle.low < channel_low and prev.low >= channel_low

        if up and self._last_breakout is not Direction.LONG:
            self._last_breakout = Direction.LONG
            if position is not None and position.direction is Direction.SHORT:
                return Signal(type=SignalType.CLOSE, reason="Upside breakout - closing short")
            if position is None:
                return self._entry(
                    candle.close, index, Direction.LONG,
                    f"Price broke above {lookback}-period high ({channel_high:.2f})",
                )

        if down and self._last_breakout is not Direction.SHORT:
            self._last_breakout = Direction.SHORT
            if position is not None and position.direction is Direction.LONG:
                return Signal(type=SignalType.CLOSE, reason="Downside breakout - closing long")
            if position is None:
                return self._entry(
                    candle.close, index, Direction.SHORT,
                    f"Price broke below {lookback}-period low ({channel_low:.2f})",
                )

        return None
