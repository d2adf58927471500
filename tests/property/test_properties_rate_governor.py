"""
Property-based tests for the per-minute credit governor.
"""
from datetime import datetime, timedelta

import pytest
from hypothesis import given, strategies as st

from signal_scanner.data.rate_governor import RateGovernor, parse_header_int


class FakeClock:
    """Manual clock whose sleep advances time instead of waiting"""

    def __init__(self, now: datetime):
        self.now = now
        self.sleeps = []

    def __call__(self) -> datetime:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += timedelta(seconds=seconds)


def make_governor(now=datetime(2024, 1, 1, 12, 0, 10), jitter=0.0, **kwargs):
    clock = FakeClock(now)
    governor = RateGovernor(clock=clock, sleep=clock.sleep, jitter=lambda: jitter, **kwargs)
    return governor, clock


@pytest.mark.asyncio
async def test_acquire_is_immediate_under_budget():
    governor, clock = make_governor()

    await governor.acquire()

    assert clock.sleeps == []


# Property 11: Budget deferral to the next minute
@pytest.mark.asyncio
async def test_budget_defers_to_next_minute():
    """
    Property 11: Budget deferral to the next minute

    At the target the next request waits for the minute boundary (plus a
    small pad), and the new window starts with clean counters.
    """
    governor, clock = make_governor()
    for _ in range(520):
        governor.record_completion({})

    assert governor.over_budget()

    await governor.acquire()

    assert clock.sleeps == [pytest.approx(50.025)]
    assert governor.credits_used == 0
    assert governor.credits_left == 610
    assert governor.window_start == datetime(2024, 1, 1, 12, 1)


@given(completions=st.integers(min_value=0, max_value=519))
def test_below_target_is_not_over_budget(completions):
    governor, _ = make_governor()
    for _ in range(completions):
        governor.record_completion({})

    assert not governor.over_budget()
    assert governor.credits_used == completions
    assert governor.credits_left == 610 - completions


# Property 12: Vendor-reported counters win
def test_headers_override_local_estimate():
    """
    Property 12: Vendor-reported counters win

    Header counters replace local estimates, and a completion with headers
    does not add to them.
    """
    governor, _ = make_governor()
    governor.record_completion({})

    headers = {"api-credits-used": "530", "api-credits-left": "80"}
    governor.record_headers(headers)
    governor.record_completion(headers)

    assert governor.credits_used == 530
    assert governor.credits_left == 80
    assert governor.over_budget()


def test_low_credits_left_is_over_budget():
    governor, _ = make_governor()
    governor.record_headers({"api-credits-left": "90"})

    assert governor.over_budget()


def test_batch_completion_counts_every_request():
    governor, _ = make_governor()
    governor.record_completion({}, credits=9)

    assert governor.credits_used == 9


# Property 13: Throttle pause
@pytest.mark.asyncio
async def test_pause_until_next_minute_plus_jitter():
    """
    Property 13: Throttle pause

    A throttling response pauses until the next minute boundary plus
    jitter; acquire blocks until then.
    """
    governor, clock = make_governor(now=datetime(2024, 1, 1, 12, 0, 20), jitter=0.3)

    wait = governor.pause()

    assert wait == pytest.approx(40.3)
    assert governor.paused
    assert governor.retry_count == 1
    pause_until = governor.pause_until

    await governor.acquire()

    assert clock.now >= pause_until
    assert not governor.paused
    assert governor.retry_count == 0


@pytest.mark.asyncio
async def test_pause_survives_minute_rollover():
    """Jitter past the boundary still holds requests back in the new window"""
    governor, clock = make_governor(now=datetime(2024, 1, 1, 12, 0, 59, 900000), jitter=0.4)

    governor.pause()
    assert governor.pause_until == datetime(2024, 1, 1, 12, 1, 0, 400000)

    clock.now = datetime(2024, 1, 1, 12, 1, 0, 100000)
    await governor.acquire()

    assert clock.sleeps == [pytest.approx(0.3)]
    assert clock.now >= datetime(2024, 1, 1, 12, 1, 0, 400000)
    assert governor.window_start == datetime(2024, 1, 1, 12, 1)
    assert not governor.paused
    assert governor.pause_until is None


def test_target_above_plan_limit_rejected():
    with pytest.raises(ValueError):
        RateGovernor(plan_limit=100, target_credits=200)


def test_parse_header_int():
    assert parse_header_int("42") == 42
    assert parse_header_int(" 7 ") == 7
    assert parse_header_int("") is None
    assert parse_header_int(None) is None
    assert parse_header_int("abc") is None


def test_snapshot_is_serializable():
    governor, _ = make_governor()
    snapshot = governor.snapshot()

    assert snapshot["credits_used"] == 0
    assert snapshot["window_start"] == "2024-01-01T12:00:00"
    assert snapshot["pause_until"] is None
