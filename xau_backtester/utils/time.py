"""
Millisecond timestamp helpers.

Candles carry Unix timestamps in milliseconds. This module centralizes the
conversions between those integers, pandas timestamps, elapsed durations and
period buckets, so that metrics and timeframe aggregation agree on the same
arithmetic.
"""

import pandas as pd


MS_PER_SECOND = 1_000
MS_PER_MINUTE = 60 * MS_PER_SECOND
MS_PER_DAY = 24 * 60 * MS_PER_MINUTE

# One year of 1-minute bars, used to annualize per-bar statistics.
MINUTES_PER_YEAR = 525_600


def ms_to_timestamp(ms: int) -> pd.Timestamp:
    """
    Convert a Unix millisecond timestamp into a timezone-aware UTC pandas Timestamp.

    Args:
        ms: Milliseconds since the Unix epoch.

    Returns:
        pd.Timestamp in UTC.
    """
    return pd.Timestamp(ms, unit="ms", tz="UTC")


def timestamp_to_ms(ts: pd.Timestamp) -> int:
    """
    Convert a pandas Timestamp (naive = UTC) into Unix milliseconds.

    Args:
        ts: Timestamp to convert. Naive timestamps are interpreted as UTC.

    Returns:
        Integer milliseconds since the Unix epoch.
    """
    ts = pd.Timestamp(ts)
    if ts.tzinfo is None:
        ts = ts.tz_localize("UTC")
    return int((ts - pd.Timestamp(0, tz="UTC")) // pd.Timedelta(milliseconds=1))


def elapsed_days(start_ms: int, end_ms: int) -> float:
    """Fractional number of days between two millisecond timestamps."""
    return (end_ms - start_ms) / MS_PER_DAY


def elapsed_minutes(start_ms: int, end_ms: int) -> float:
    """Fractional number of minutes between two millisecond timestamps."""
    return (end_ms - start_ms) / MS_PER_MINUTE


def floor_to_period(ms: int, period_ms: int) -> int:
    """
    Floor a timestamp to the start of its period bucket.

    **Mathematical**:
        bucket_start = floor(ms / period_ms) * period_ms

    Buckets are aligned to the Unix epoch, so a 30-minute period always starts
    at :00 or :30 regardless of where the data begins. Also works element-wise
    on an integer pandas Series of timestamps.

    Args:
        ms: Timestamp in milliseconds.
        period_ms: Bucket length in milliseconds (must be positive).

    Returns:
        Start of the bucket containing `ms`, in milliseconds.
    """
    if period_ms <= 0:
        raise ValueError(f"period_ms must be positive, got: {period_ms}")
    return (ms // period_ms) * period_ms
