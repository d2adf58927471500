"""Timeframe arithmetic anchored to wall-clock UTC boundaries"""
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Sequence

ENTRY_TIMEFRAME = "15m"
BIAS_TIMEFRAME = "1h"

TIMEFRAME_DURATIONS = {
    ENTRY_TIMEFRAME: timedelta(minutes=15),
    BIAS_TIMEFRAME: timedelta(hours=1),
}

# Our timeframe labels -> vendor interval parameter
VENDOR_INTERVALS = {
    ENTRY_TIMEFRAME: "15min",
    BIAS_TIMEFRAME: "1h",
}

_EPOCH = datetime(1970, 1, 1)


def utc_now() -> datetime:
    """Current time as a naive UTC datetime (the storage convention)"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(dt: datetime) -> datetime:
    """Normalize an aware datetime to naive UTC; naive values are assumed UTC"""
    if dt.tzinfo is not None:
        return dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def timeframe_duration(timeframe: str) -> timedelta:
    try:
        return TIMEFRAME_DURATIONS[timeframe]
    except KeyError:
        raise ValueError(f"Unsupported timeframe: {timeframe}") from None


def latest_closed_candle(candles: Sequence[Any], duration: timedelta, now: datetime) -> Optional[Any]:
    """
    Return the most recent candle whose window has fully elapsed.

    A bar opened at ``t`` is closed once ``t + duration <= now``.

    Args:
        candles: Candles ordered most-recent-first
        duration: Timeframe duration
        now: Reference instant (naive UTC)

    Returns:
        The latest closed candle, or None
    """
    for candle in candles:
        if candle.datetime_utc + duration <= now:
            return candle
    return None


def seconds_until_next_boundary(now: datetime, period_seconds: float) -> float:
    """
    Seconds from ``now`` to the next wall-clock multiple of ``period_seconds``.

    Exactly on a boundary yields a full period, so a tick never fires twice
    for the same boundary.
    """
    elapsed = (to_naive_utc(now) - _EPOCH).total_seconds()
    remainder = elapsed % period_seconds
    if remainder == 0:
        return float(period_seconds)
    return period_seconds - remainder


def seconds_until_next_minute(now: datetime) -> float:
    """Seconds until the next minute boundary (0 when exactly on one)"""
    elapsed = (to_naive_utc(now) - _EPOCH).total_seconds()
    remainder = elapsed % 60
    if remainder == 0:
        return 0.0
    return 60 - remainder


def minute_floor(now: datetime) -> datetime:
    return to_naive_utc(now).replace(second=0, microsecond=0)
