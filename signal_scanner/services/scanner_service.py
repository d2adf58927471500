"""Scan scheduler service"""
import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, ContextManager, Optional, Sequence

from sqlalchemy.orm import Session

from signal_scanner.core.domain.signal import EvaluationContext, SignalStatus
from signal_scanner.core.strategy import Strategy, passes_data_quality_gate, run_strategies
from signal_scanner.core.timeframes import (
    BIAS_TIMEFRAME,
    ENTRY_TIMEFRAME,
    VENDOR_INTERVALS,
    latest_closed_candle,
    seconds_until_next_boundary,
    timeframe_duration,
    utc_now,
)
from signal_scanner.data.indicator_merge import merge_indicator_rows, normalize_candles
from signal_scanner.data.rate_governor import RateGovernor
from signal_scanner.data.twelvedata_client import DEFAULT_OUTPUT_SIZE, TwelveDataClient
from signal_scanner.db.models import Instrument, ScanRunStatus
from signal_scanner.db.queries import (
    create_scan_run,
    find_active_signal,
    finish_scan_run,
    get_candles,
    get_enabled_instruments,
    get_indicators,
    get_scan_progress,
    get_settings,
    upsert_candles,
    upsert_indicators,
    upsert_scan_progress,
    upsert_signal,
)
from signal_scanner.db.session import get_db_session
from signal_scanner.notifications.email_service import EmailAlertService
from signal_scanner.notifications.notification_service import Alerter
from signal_scanner.services.locks import DistributedLock, lock_for_engine
from signal_scanner.utils.error_handler import ErrorHandler

logger = logging.getLogger(__name__)

TICK_PERIOD_SECONDS = 15 * 60
DEFAULT_GRACE_SECONDS = 2.0
ENTRY_LOOKBACK = 100
BIAS_LOOKBACK = 20


class SchedulerState(str, Enum):
    """Scheduler lifecycle"""
    IDLE = "idle"
    SCHEDULED = "scheduled"
    RUNNING = "running"
    STOPPED = "stopped"


class ScanScheduler:
    """
    Runs scan cycles on 15-minute wall-clock boundaries.

    Responsibilities:
    - Hold the fleet-wide scanner lock (stay passive without it)
    - Wake at each boundary plus a grace delay and run a cycle when enabled
    - Ingest, evaluate, persist and alert per instrument
    - Record every cycle as a ScanRun
    """

    def __init__(
        self,
        client: TwelveDataClient,
        alerter: Alerter,
        lock: DistributedLock,
        session_factory: Callable[[], ContextManager[Session]] = get_db_session,
        clock=utc_now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        grace_seconds: float = DEFAULT_GRACE_SECONDS,
        strategies: Optional[Sequence[Strategy]] = None,
        output_size: int = DEFAULT_OUTPUT_SIZE,
    ):
        """
        Initialize scheduler.

        Args:
            client: Vendor client (owns the rate governor)
            alerter: Alert channel
            lock: Fleet-wide single-flight lock
            session_factory: Context manager yielding a database session
            clock: Returns "now" as naive UTC
            sleep: Async sleep for the tick timer and burst pauses
            grace_seconds: Delay after each boundary before ticking
            strategies: Strategies to evaluate (all by default)
            output_size: Rows fetched per vendor endpoint
        """
        self.client = client
        self.alerter = alerter
        self.lock = lock
        self._session_factory = session_factory
        self._clock = clock
        self._sleep = sleep
        self.grace_seconds = grace_seconds
        self.strategies = strategies
        self.output_size = output_size

        self.state = SchedulerState.IDLE
        self.is_leader = False
        self._task: Optional[asyncio.Task] = None
        self._timer: Optional[asyncio.Future] = None
        self._stopped = False
        self._in_flight = False

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    # --- Lifecycle -----------------------------------------------------------

    async def start(self) -> bool:
        """
        Take the scanner lock and start the tick loop.

        Returns:
            True if this instance now runs the scanner; False if another
            instance holds the lock (this one stays passive, no retry)
        """
        if self._task is not None and not self._task.done():
            return True

        if not self.lock.try_acquire():
            logger.info(
                "Scanner lock not acquired; another instance is active",
                extra={'component': 'ScanScheduler'}
            )
            return False

        self.is_leader = True
        self._stopped = False
        self._task = asyncio.create_task(self._loop())
        logger.info("Scanner started - anchored to 15-minute wall-clock boundaries", extra={'component': 'ScanScheduler'})
        return True

    def stop(self) -> None:
        """
        Stop scheduling further ticks.

        Cancels only the pending timer; a cycle already running completes,
        then the loop exits and releases the lock.
        """
        self._stopped = True
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        if not self._in_flight:
            self.state = SchedulerState.STOPPED
        logger.info("Scanner stopped", extra={'component': 'ScanScheduler'})

    async def wait_stopped(self) -> None:
        """Wait for the loop to exit after ``stop``"""
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    async def _loop(self) -> None:
        try:
            while not self._stopped:
                delay = seconds_until_next_boundary(self._clock(), TICK_PERIOD_SECONDS) + self.grace_seconds
                self.state = SchedulerState.SCHEDULED
                logger.info(f"Next scan tick in {delay:.0f}s", extra={'component': 'ScanScheduler'})

                self._timer = asyncio.ensure_future(self._sleep(delay))
                try:
                    await self._timer
                except asyncio.CancelledError:
                    if self._stopped:
                        break
                    raise
                finally:
                    self._timer = None

                if self._stopped:
                    break

                try:
                    await self.tick()
                except Exception as e:
                    logger.error(f"Scanner tick error: {e}", exc_info=True, extra={'component': 'ScanScheduler'})
        finally:
            self.state = SchedulerState.STOPPED
            self.lock.release()
            self.is_leader = False

    def _settled_state(self) -> SchedulerState:
        if self._stopped:
            return SchedulerState.STOPPED
        if self._task is not None and not self._task.done():
            return SchedulerState.SCHEDULED
        return SchedulerState.IDLE

    # --- Cycles --------------------------------------------------------------

    async def tick(self) -> Optional[int]:
        """
        One timer firing: run a cycle if scanning is enabled and none is running.

        Returns:
            ScanRun id, or None when nothing ran
        """
        with self._session_factory() as db:
            scan_enabled = get_settings(db).scan_enabled

        if not scan_enabled:
            logger.debug("Scanning disabled, tick skipped", extra={'component': 'ScanScheduler'})
            return None
        if self._in_flight:
            return None
        return await self.run_cycle()

    async def run_cycle(self, timeframe: str = ENTRY_TIMEFRAME) -> Optional[int]:
        """
        Run one scan cycle over every enabled instrument.

        Instruments are processed one at a time in bursts separated by the
        configured sleep. A failing instrument is recorded and skipped; an
        exception outside the per-instrument handling marks the run as error.

        Args:
            timeframe: Timeframe label recorded on the ScanRun

        Returns:
            ScanRun id, or None if a cycle was already in flight
        """
        if self._in_flight:
            logger.info("Scan already in progress, skipping", extra={'component': 'ScanScheduler'})
            return None

        self._in_flight = True
        self.state = SchedulerState.RUNNING
        try:
            with self._session_factory() as db:
                settings = get_settings(db)
                burst_size = max(settings.max_symbols_per_burst, 1)
                burst_sleep = settings.burst_sleep_ms / 1000

                scan_run_id = create_scan_run(db, timeframe).id
                error_handler = ErrorHandler(db)
                logger.info(
                    f"Scan started: {timeframe} (run #{scan_run_id})",
                    extra={'component': 'ScanScheduler', 'scan_run_id': scan_run_id}
                )

                try:
                    await self._run_bursts(db, scan_run_id, error_handler, burst_size, burst_sleep)
                except Exception as e:
                    db.rollback()
                    error_handler.handle_cycle_error(e, scan_run_id)
                    finish_scan_run(db, scan_run_id, ScanRunStatus.ERROR, notes={"error": str(e)})

                return scan_run_id
        finally:
            self._in_flight = False
            self.state = self._settled_state()

    async def _run_bursts(
        self,
        db: Session,
        scan_run_id: int,
        error_handler: ErrorHandler,
        burst_size: int,
        burst_sleep: float,
    ) -> None:
        instruments = get_enabled_instruments(db)
        processed_count = 0
        signal_count = 0
        failures = []

        for start in range(0, len(instruments), burst_size):
            for instrument in instruments[start:start + burst_size]:
                symbol = instrument.canonical_symbol
                try:
                    signal_count += await self.process_instrument(db, instrument)
                    processed_count += 1
                except Exception as e:
                    db.rollback()
                    failures.append({"symbol": symbol, "error": str(e)})
                    error_handler.handle_instrument_error(symbol, e)

            if start + burst_size < len(instruments):
                await self._sleep(burst_sleep)

        governor = self.client.governor
        status = ScanRunStatus.COMPLETED_WITH_ERRORS if failures else ScanRunStatus.COMPLETED
        finish_scan_run(
            db,
            scan_run_id,
            status,
            notes={
                "processed_count": processed_count,
                "total": len(instruments),
                "signal_count": signal_count,
                "failures": failures,
                "retry_count": governor.retry_count,
            },
            credits_used_est=governor.credits_used,
        )
        logger.info(
            f"Scan completed: {processed_count} instruments, {signal_count} signals, {len(failures)} failures",
            extra={'component': 'ScanScheduler', 'scan_run_id': scan_run_id}
        )

    # --- Per instrument ------------------------------------------------------

    async def ingest(self, db: Session, instrument: Instrument, timeframe: str) -> int:
        """
        Fetch, normalize and upsert candles and indicators for one timeframe.

        Returns:
            Number of candle rows stored
        """
        pack = await self.client.fetch_all_indicators(
            instrument.vendor_symbol, VENDOR_INTERVALS[timeframe], self.output_size
        )

        candles = normalize_candles(pack.candles, instrument.id, timeframe)
        if not candles:
            logger.warning(
                f"No candle data for {instrument.canonical_symbol} ({timeframe})",
                extra={'component': 'ScanScheduler', 'symbol': instrument.canonical_symbol, 'timeframe': timeframe}
            )
            return 0

        upsert_candles(db, candles)
        upsert_indicators(db, merge_indicator_rows(pack, instrument.id, timeframe))
        return len(candles)

    async def process_instrument(self, db: Session, instrument: Instrument) -> int:
        """
        Ingest both timeframes, evaluate the latest closed entry bar once, and
        persist and alert on the results.

        Steps:
        1. Ingest 15m and 1h data
        2. Find the latest closed bar of each timeframe
        3. Skip if the 15m watermark already covers that bar
        4. Drop forming bars from every series
        5. Skip (watermark untouched) if the bar's indicators are incomplete
        6. Evaluate strategies; suppress keys with an open signal
        7. Upsert signals and alert when enabled and above the threshold
        8. Advance the watermark

        Args:
            db: Database session
            instrument: Instrument to process

        Returns:
            Number of signals stored
        """
        symbol = instrument.canonical_symbol

        await self.ingest(db, instrument, ENTRY_TIMEFRAME)
        await self.ingest(db, instrument, BIAS_TIMEFRAME)

        entry_candles = get_candles(db, instrument.id, ENTRY_TIMEFRAME, ENTRY_LOOKBACK)
        entry_indicators = get_indicators(db, instrument.id, ENTRY_TIMEFRAME, ENTRY_LOOKBACK)
        bias_candles = get_candles(db, instrument.id, BIAS_TIMEFRAME, BIAS_LOOKBACK)
        bias_indicators = get_indicators(db, instrument.id, BIAS_TIMEFRAME, BIAS_LOOKBACK)

        now = self._clock()
        latest_entry = latest_closed_candle(entry_candles, timeframe_duration(ENTRY_TIMEFRAME), now)
        latest_bias = latest_closed_candle(bias_candles, timeframe_duration(BIAS_TIMEFRAME), now)
        if latest_entry is None or latest_bias is None:
            logger.debug(f"{symbol}: no closed bar yet", extra={'component': 'ScanScheduler', 'symbol': symbol})
            return 0

        bar_time = latest_entry.datetime_utc
        progress = get_scan_progress(db, instrument.id, ENTRY_TIMEFRAME)
        if progress is not None and progress.last_processed_bar_utc >= bar_time:
            logger.debug(f"{symbol}: bar {bar_time} already evaluated", extra={'component': 'ScanScheduler', 'symbol': symbol})
            return 0

        bias_cutoff = latest_bias.datetime_utc
        ctx = EvaluationContext(
            instrument_id=instrument.id,
            entry_candles=[c for c in entry_candles if c.datetime_utc <= bar_time],
            entry_indicators=[i for i in entry_indicators if i.datetime_utc <= bar_time],
            bias_candles=[c for c in bias_candles if c.datetime_utc <= bias_cutoff],
            bias_indicators=[i for i in bias_indicators if i.datetime_utc <= bias_cutoff],
            entry_timeframe=ENTRY_TIMEFRAME,
            symbol=symbol,
        )

        if not passes_data_quality_gate(ctx):
            return 0

        results = run_strategies(ctx, self.strategies)
        settings = get_settings(db)

        signal_count = 0
        for result in results:
            strategy = result.strategy.value
            direction = result.direction.value

            if find_active_signal(db, instrument.id, ENTRY_TIMEFRAME, strategy, direction):
                logger.info(
                    f"{symbol}: open {strategy} {direction} signal exists, suppressed",
                    extra={'component': 'ScanScheduler', 'symbol': symbol}
                )
                continue

            signal = upsert_signal(
                db,
                instrument_id=instrument.id,
                timeframe=ENTRY_TIMEFRAME,
                strategy=strategy,
                direction=direction,
                candle_datetime_utc=bar_time,
                score=result.score,
                reason_json=result.reasons,
            )
            signal_count += 1
            logger.info(
                f"Signal {strategy} {direction} {symbol} score {result.score}",
                extra={'component': 'ScanScheduler', 'symbol': symbol, 'candle': bar_time.isoformat()}
            )

            if (
                settings.email_enabled
                and signal.status == SignalStatus.NEW.value
                and result.score >= settings.min_score_to_alert
            ):
                await self.alerter.send_signal_alert(db, signal, instrument, result.reasons, settings)

        upsert_scan_progress(db, instrument.id, ENTRY_TIMEFRAME, bar_time)
        return signal_count


def build_scheduler(config, engine) -> ScanScheduler:
    """
    Wire the governor, vendor client, alerter and lock from configuration.

    Args:
        config: AppConfig
        engine: Initialized SQLAlchemy engine (chooses the lock backend)
    """
    governor = RateGovernor()
    client = TwelveDataClient(
        api_key=config.vendor.api_key,
        governor=governor,
        base_url=config.vendor.base_url,
    )
    alerter = EmailAlertService.from_config(config.smtp)
    lock = lock_for_engine(engine, config.scheduler.lock_key)

    return ScanScheduler(
        client=client,
        alerter=alerter,
        lock=lock,
        grace_seconds=config.scheduler.grace_seconds,
        output_size=config.vendor.output_size,
    )
