"""Per-minute API credit budget shared by every outbound vendor request"""
import asyncio
import logging
import random
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Mapping, Optional

from signal_scanner.core.timeframes import minute_floor, seconds_until_next_minute, utc_now

logger = logging.getLogger(__name__)

PLAN_LIMIT_PER_MIN = 610
# Kept below the plan ceiling for bursts and header-reporting latency
TARGET_CREDITS_PER_MIN = 520
BOUNDARY_PAD_SECONDS = 0.025
MAX_JITTER_SECONDS = 0.5

CREDITS_USED_HEADER = "api-credits-used"
CREDITS_LEFT_HEADER = "api-credits-left"


def parse_header_int(value: Optional[str]) -> Optional[int]:
    """Parse an integer header value, None when absent or malformed"""
    if value is None or value == "":
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        return None


class RateGovernor:
    """
    Tracks credit usage within the current minute window and decides when
    it is safe to send the next request.

    The window is aligned to wall-clock minutes, matching the vendor's own
    reset. Counters reported in response headers always win over local
    estimates. Not safe for concurrent mutation: callers must go through a
    single serialized request path.
    """

    def __init__(
        self,
        plan_limit: int = PLAN_LIMIT_PER_MIN,
        target_credits: int = TARGET_CREDITS_PER_MIN,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        jitter: Optional[Callable[[], float]] = None,
    ):
        """
        Initialize governor.

        Args:
            plan_limit: Hard credits-per-minute ceiling of the plan
            target_credits: Usage at which requests are deferred
            clock: Returns "now" as naive UTC
            sleep: Async sleep used for deferrals
            jitter: Returns extra seconds added to a throttle pause
        """
        if target_credits > plan_limit:
            raise ValueError("target_credits must not exceed plan_limit")

        self.plan_limit = plan_limit
        self.target_credits = target_credits
        self._clock = clock
        self._sleep = sleep
        self._jitter = jitter or (lambda: random.uniform(0, MAX_JITTER_SECONDS))

        self.credits_used = 0
        self.credits_left = plan_limit
        self.window_start = minute_floor(clock())
        self.paused = False
        self.pause_until: Optional[datetime] = None
        self.retry_count = 0

    def _roll_window_if_needed(self, now: datetime) -> bool:
        if now < self.window_start + timedelta(minutes=1):
            return False
        self.window_start = minute_floor(now)
        self.credits_used = 0
        self.credits_left = self.plan_limit
        self.retry_count = 0
        # A throttle pause outlives the rollover until its jittered deadline
        if self.pause_until is None or now >= self.pause_until:
            self.paused = False
            self.pause_until = None
        return True

    def over_budget(self) -> bool:
        return (
            self.credits_used >= self.target_credits
            or self.credits_left <= self.plan_limit - self.target_credits
        )

    async def acquire(self) -> None:
        """
        Wait until a request may be sent.

        Returns once the governor is not paused and usage is below target,
        re-checking after every wake-up (a wake-up at the minute boundary
        rolls the window and clears the counters).
        """
        while True:
            now = self._clock()
            self._roll_window_if_needed(now)

            if self.paused and self.pause_until is not None:
                if now < self.pause_until:
                    wait = (self.pause_until - now).total_seconds()
                    logger.info(f"Vendor throttled, resuming in {wait:.3f}s", extra={'component': 'RateGovernor'})
                    await self._sleep(wait)
                    continue
                self.paused = False
                self.pause_until = None

            if self.over_budget():
                wait = seconds_until_next_minute(now) + BOUNDARY_PAD_SECONDS
                logger.info(
                    f"Credit budget reached ({self.credits_used}/{self.target_credits}), deferring {wait:.3f}s",
                    extra={'component': 'RateGovernor'}
                )
                await self._sleep(wait)
                continue

            return

    def pause(self) -> float:
        """
        Enter the paused state after a throttling response.

        Resumes at the next minute boundary plus random jitter so that
        instances do not all resume on the same instant.

        Returns:
            Seconds until resumption
        """
        now = self._clock()
        wait = seconds_until_next_minute(now) + self._jitter()
        self.retry_count += 1
        self.paused = True
        self.pause_until = now + timedelta(seconds=wait)
        return wait

    def record_headers(self, headers: Mapping[str, str]) -> None:
        """Adopt vendor-reported counters when present"""
        used = parse_header_int(headers.get(CREDITS_USED_HEADER))
        left = parse_header_int(headers.get(CREDITS_LEFT_HEADER))
        if used is not None:
            self.credits_used = used
        if left is not None:
            self.credits_left = left

    def record_completion(self, headers: Mapping[str, str], credits: int = 1) -> None:
        """
        Account ``credits`` for a successful request whose headers did not
        report the counters.
        """
        if parse_header_int(headers.get(CREDITS_USED_HEADER)) is None:
            self.credits_used += credits
        if parse_header_int(headers.get(CREDITS_LEFT_HEADER)) is None:
            self.credits_left = max(self.credits_left - credits, 0)

    def snapshot(self) -> dict:
        return {
            "credits_used": self.credits_used,
            "credits_left": self.credits_left,
            "window_start": self.window_start.isoformat(),
            "paused": self.paused,
            "pause_until": self.pause_until.isoformat() if self.pause_until else None,
            "retry_count": self.retry_count,
        }
