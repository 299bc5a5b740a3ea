"""
Timeframe aggregation of 1-minute candles.

Buckets are aligned to the Unix epoch: a 30-minute bucket always starts at
:00 or :30, whatever minute the data begins on. Gaps in the input simply
produce no bucket; they are not filled.

Aggregation runs on the pandas frame from `candles_to_dataframe`, grouped by
bucket start, and converts back through `candles_from_dataframe`.
"""

from typing import List, Sequence

import numpy as np
import pandas as pd

from xau_backtester.backtesting.models import Candle
from xau_backtester.data.schemas import candles_from_dataframe, candles_to_dataframe
from xau_backtester.utils.time import MS_PER_MINUTE, floor_to_period


OHLCV_AGGREGATION = {
    "open": "first",
    "high": "max",
    "low": "min",
    "close": "last",
    "volume": "sum",
}


def _bucket_starts(timestamps: pd.Series, period_minutes: int) -> pd.Series:
    return floor_to_period(timestamps.astype("int64"), int(period_minutes * MS_PER_MINUTE))


def aggregate_candles(candles: Sequence[Candle], period_minutes: int) -> List[Candle]:
    """
    Aggregate ascending 1-minute candles into `period_minutes` candles.

    **Functionally**:
      - bucket = floor(timestamp / period_ms) * period_ms
      - open of the first candle, close of the last, max high, min low
      - volume summed; None when the sum is zero (no volume data)
      - the aggregated candle's timestamp is the bucket start

    Args:
        candles: Candles in ascending timestamp order.
        period_minutes: Target timeframe (30 for M30, 60 for H1).

    Returns:
        Aggregated candles. With `period_minutes <= 1` the input is returned
        as a list unchanged.
    """
    if len(candles) == 0:
        return []
    if period_minutes <= 1:
        return list(candles)

    df = candles_to_dataframe(candles).reset_index(drop=True)
    buckets = _bucket_starts(df["timestamp"], period_minutes).rename("bucket")

    bars = df.groupby(buckets, sort=True).agg(OHLCV_AGGREGATION)
    bars["volume"] = bars["volume"].where(bars["volume"] > 0)
    bars = bars.rename_axis("timestamp").reset_index()
    return candles_from_dataframe(bars, context=f"M{period_minutes} aggregation")


def aggregated_index(index: int, candles: Sequence[Candle], period_minutes: int) -> int:
    """
    Index of the aggregated candle that contains `candles[index]`.

    Counts the distinct buckets among candles[0..index], so the result agrees
    with `aggregate_candles` even when the input has gaps.
    """
    if period_minutes <= 1:
        return index
    timestamps = pd.Series([c.timestamp for c in candles[: index + 1]], dtype="int64")
    return int(_bucket_starts(timestamps, period_minutes).nunique()) - 1


def find_period_start_index(
    agg_index: int,
    candles: Sequence[Candle],
    aggregated: Sequence[Candle],
) -> int:
    """
    Index of the first 1-minute candle belonging to `aggregated[agg_index]`.

    Returns:
        The index, or -1 when `agg_index` is out of range or no candle falls
        at or after the bucket start.
    """
    if agg_index < 0 or agg_index >= len(aggregated):
        return -1
    timestamps = np.array([c.timestamp for c in candles], dtype=np.int64)
    position = int(np.searchsorted(timestamps, aggregated[agg_index].timestamp, side="left"))
    return position if position < len(candles) else -1
