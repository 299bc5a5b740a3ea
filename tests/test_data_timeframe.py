"""
Tests for xau_backtester/data/timeframe.py
"""

import pytest

from xau_backtester.backtesting.models import Candle
from xau_backtester.data.synthetic import generate_gbm_candles
from xau_backtester.data.timeframe import (
    aggregate_candles,
    aggregated_index,
    find_period_start_index,
)
from xau_backtester.utils.time import MS_PER_MINUTE


# 2024-01-01 00:00:00 UTC, a multiple of every period used below
MIDNIGHT = 1_704_067_200_000


def minute_candles(minutes, base=100.0):
    """One candle per listed minute offset; prices step by 1 per candle, volume 1."""
    candles = []
    for i, minute in enumerate(minutes):
        price = base + i
        candles.append(Candle(
            timestamp=MIDNIGHT + minute * MS_PER_MINUTE,
            open=price,
            high=price + 0.5,
            low=price - 0.5,
            close=price + 0.25,
            volume=1.0,
        ))
    return candles


def test_aggregate_ohlcv():
    """Six M1 candles -> two M3 candles with first open, max high, min low, last close."""
    candles = minute_candles(range(6))
    agg = aggregate_candles(candles, 3)

    assert len(agg) == 2
    first = agg[0]
    assert first.timestamp == MIDNIGHT
    assert first.open == 100.0
    assert first.high == 102.5
    assert first.low == 99.5
    assert first.close == 102.25
    assert first.volume == 3.0
    assert agg[1].timestamp == MIDNIGHT + 3 * MS_PER_MINUTE


def test_buckets_align_to_epoch():
    """Data starting at 00:10 fills the 00:00 bucket partially, then 00:30."""
    candles = minute_candles(range(10, 40))
    agg = aggregate_candles(candles, 30)

    assert [c.timestamp for c in agg] == [MIDNIGHT, MIDNIGHT + 30 * MS_PER_MINUTE]
    assert agg[0].open == candles[0].open
    assert agg[0].close == candles[19].close
    assert agg[0].volume == 20.0


def test_gaps_produce_no_bucket():
    """Minutes 0-4 and 20-24 with M5: the empty 5-19 buckets are not filled."""
    candles = minute_candles(list(range(5)) + list(range(20, 25)))
    agg = aggregate_candles(candles, 5)
    assert [(c.timestamp - MIDNIGHT) // MS_PER_MINUTE for c in agg] == [0, 20]


def test_missing_volume_stays_none():
    candles = [
        Candle(MIDNIGHT + i * MS_PER_MINUTE, 1.0, 1.0, 1.0, 1.0) for i in range(4)
    ]
    assert all(c.volume is None for c in aggregate_candles(candles, 2))


def test_period_one_or_less_returns_copy():
    candles = minute_candles(range(3))
    same = aggregate_candles(candles, 1)
    assert same == candles
    assert same is not candles
    assert aggregate_candles([], 30) == []


def test_aggregated_index_with_gaps():
    """The candle at minute 21 is in the second non-empty bucket, not the fifth."""
    candles = minute_candles(list(range(5)) + list(range(20, 25)))
    assert aggregated_index(0, candles, 5) == 0
    assert aggregated_index(4, candles, 5) == 0
    assert aggregated_index(6, candles, 5) == 1
    assert aggregated_index(6, candles, 1) == 6


def test_find_period_start_index():
    candles = minute_candles(range(10, 40))
    agg = aggregate_candles(candles, 30)

    assert find_period_start_index(0, candles, agg) == 0
    assert find_period_start_index(1, candles, agg) == 20
    assert find_period_start_index(2, candles, agg) == -1
    assert find_period_start_index(-1, candles, agg) == -1


def test_gbm_aggregation_preserves_range_and_volume():
    """M15 bars over seeded GBM data: 600 minutes -> 40 bars, volume and extremes kept."""
    candles = generate_gbm_candles(600, seed=9)
    agg = aggregate_candles(candles, 15)

    assert len(agg) == 40
    assert sum(c.volume for c in agg) == pytest.approx(sum(c.volume for c in candles))
    assert max(c.high for c in agg) == max(c.high for c in candles)
    assert min(c.low for c in agg) == min(c.low for c in candles)
    assert agg[-1].close == candles[-1].close
    assert aggregated_index(len(candles) - 1, candles, 15) == 39
    assert find_period_start_index(39, candles, agg) == 585
