"""
Candle data contracts, validation and pandas conversion.

**Conceptual**: The backtest engine consumes `Candle` lists and trusts them:
it does not re-check OHLC consistency on every bar. This module is the gate
in front of it. Data coming from a DataFrame (a CSV loaded elsewhere, a
notebook, a generator) is validated once and converted here; results flow
back out as DataFrames for analysis.

**Schema** (DataFrame side):
  - Required columns: `timestamp`, `open`, `high`, `low`, `close`.
  - Optional column: `volume`.
  - `timestamp` is either Unix milliseconds (integers) or datetime-like
    values (naive values are taken as UTC).
  - Rows are in strictly ascending timestamp order (oldest first), the order
    the engine replays them in.

**Teaching note**: Validating at the boundary and failing with a precise
message (row index, offending values) is much cheaper than debugging a
backtest whose equity curve looks subtly wrong because one bar had low > high.
"""

from typing import List, Optional, Sequence

import numpy as np
import pandas as pd

from xau_backtester.backtesting.models import Candle, EquityPoint, Trade
from xau_backtester.utils.time import ms_to_timestamp


class SchemaValidationError(Exception):
    """
    Raised when candle data does not conform to the expected schema.

    The message names the offending row (or column) and values so the data
    can be fixed at the source.
    """
    pass


CANDLE_REQUIRED_COLUMNS = ["timestamp", "open", "high", "low", "close"]

TRADE_COLUMNS = [
    "id", "direction", "entry_time", "exit_time", "entry_price", "exit_price",
    "size", "pnl", "pnl_percent", "commission", "stop_loss", "take_profit",
    "exit_reason",
]


def validate_candles(candles: Sequence[Candle], context: Optional[str] = None) -> None:
    """
    Check the candle invariants the engine relies on.

    **Functionally**:
      - timestamp > 0 for every candle.
      - low <= min(open, close) and high >= max(open, close).
      - All prices finite.
      - Timestamps strictly ascending (no duplicates, no reordering).

    Args:
        candles: Candles to validate.
        context: Optional label (file name, symbol) added to error messages.

    Raises:
        SchemaValidationError: On the first violation found.
    """
    where = f" in {context}" if context else ""
    previous_ts = None
    for i, c in enumerate(candles):
        if c.timestamp <= 0:
            raise SchemaValidationError(
                f"Candle {i}{where} has non-positive timestamp {c.timestamp}."
            )
        prices = (c.open, c.high, c.low, c.close)
        if not all(np.isfinite(p) for p in prices):
            raise SchemaValidationError(f"Candle {i}{where} has non-finite prices {prices}.")
        if c.low > min(c.open, c.close) or c.high < max(c.open, c.close):
            raise SchemaValidationError(
                f"Candle {i}{where} violates low <= open, close <= high: "
                f"open={c.open}, high={c.high}, low={c.low}, close={c.close}."
            )
        if previous_ts is not None and c.timestamp <= previous_ts:
            raise SchemaValidationError(
                f"Candle {i}{where} timestamp {c.timestamp} is not after previous "
                f"timestamp {previous_ts}. Candles must be strictly ascending."
            )
        previous_ts = c.timestamp


def _timestamps_to_ms(column: pd.Series) -> np.ndarray:
    if pd.api.types.is_integer_dtype(column):
        return column.to_numpy(dtype=np.int64)
    parsed = pd.to_datetime(column, utc=True)
    epoch = pd.Timestamp(0, tz="UTC")
    return ((parsed - epoch) // pd.Timedelta(milliseconds=1)).to_numpy(dtype=np.int64)


def candles_from_dataframe(df: pd.DataFrame, context: Optional[str] = None) -> List[Candle]:
    """
    Convert a DataFrame into validated candles.

    Args:
        df: Frame with the candle schema (see module docstring).
        context: Optional label for error messages.

    Returns:
        List of Candle in the frame's row order.

    Raises:
        SchemaValidationError: If columns are missing, timestamps cannot be
            parsed, or any candle invariant is violated.
    """
    missing = [col for col in CANDLE_REQUIRED_COLUMNS if col not in df.columns]
    if missing:
        where = f" in {context}" if context else ""
        raise SchemaValidationError(
            f"Missing required candle columns{where}: {missing}. "
            f"Expected at least {CANDLE_REQUIRED_COLUMNS}."
        )

    try:
        timestamps = _timestamps_to_ms(df["timestamp"])
    except (ValueError, TypeError) as e:
        raise SchemaValidationError(f"Could not parse 'timestamp' column: {e}") from e

    volumes = df["volume"].to_numpy(dtype=float) if "volume" in df.columns else None
    candles = [
        Candle(
            timestamp=int(timestamps[i]),
            open=float(row_open),
            high=float(row_high),
            low=float(row_low),
            close=float(row_close),
            volume=None if volumes is None or np.isnan(volumes[i]) else float(volumes[i]),
        )
        for i, (row_open, row_high, row_low, row_close) in enumerate(
            zip(df["open"], df["high"], df["low"], df["close"])
        )
    ]
    validate_candles(candles, context)
    return candles


def candles_to_dataframe(candles: Sequence[Candle]) -> pd.DataFrame:
    """
    Convert candles into a DataFrame indexed by UTC datetime.

    Returns:
        Frame with columns timestamp (ms), open, high, low, close, volume and
        a `DatetimeIndex` named `datetime`.
    """
    df = pd.DataFrame(
        {
            "timestamp": [c.timestamp for c in candles],
            "open": [c.open for c in candles],
            "high": [c.high for c in candles],
            "low": [c.low for c in candles],
            "close": [c.close for c in candles],
            "volume": [np.nan if c.volume is None else c.volume for c in candles],
        }
    )
    df.index = pd.to_datetime(df["timestamp"], unit="ms", utc=True)
    df.index.name = "datetime"
    return df


def trades_to_dataframe(trades: Sequence[Trade]) -> pd.DataFrame:
    """Trade ledger as a DataFrame, one row per trade in exit order."""
    rows = [
        {
            "id": t.id,
            "direction": t.direction.value,
            "entry_time": ms_to_timestamp(t.entry_time),
            "exit_time": ms_to_timestamp(t.exit_time),
            "entry_price": t.entry_price,
            "exit_price": t.exit_price,
            "size": t.size,
            "pnl": t.pnl,
            "pnl_percent": t.pnl_percent,
            "commission": t.commission,
            "stop_loss": t.stop_loss,
            "take_profit": t.take_profit,
            "exit_reason": t.exit_reason,
        }
        for t in trades
    ]
    return pd.DataFrame(rows, columns=TRADE_COLUMNS)


def equity_curve_to_series(points: Sequence[EquityPoint]) -> pd.Series:
    """Equity curve as a float Series indexed by UTC datetime, named `equity`."""
    index = pd.to_datetime([p.timestamp for p in points], unit="ms", utc=True)
    return pd.Series([p.equity for p in points], index=index, name="equity", dtype=float)
