"""Centralized error handling"""
import logging
import traceback
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from signal_scanner.core.timeframes import utc_now

logger = logging.getLogger(__name__)


class ErrorHandler:
    """
    Centralized error handling for scan cycles.

    Handles different types of errors:
    - Instrument errors (non-fatal, the cycle continues)
    - Cycle errors (the run is marked as error, the scheduler keeps going)
    - Data-quality skips (not errors, logged as structured events)
    """

    def __init__(self, db: Session):
        """
        Initialize error handler.

        Args:
            db: Database session
        """
        self.db = db

    def _record(
        self,
        component: str,
        severity: str,
        error: Exception,
        symbol: Optional[str],
        stack_trace: Optional[str],
    ) -> None:
        try:
            from signal_scanner.db.queries import create_error_log
            create_error_log(
                db=self.db,
                timestamp_utc=utc_now(),
                component=component,
                severity=severity,
                message=str(error),
                exception_type=type(error).__name__,
                symbol=symbol,
                stack_trace=stack_trace,
            )
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to log error to database: {e}")

    def handle_instrument_error(
        self,
        symbol: str,
        error: Exception,
        component: str = "ScanScheduler",
    ) -> None:
        """
        Handle a failure while processing one instrument.

        Actions:
        1. Log error with stack trace
        2. Write to error_logs table
        3. Continue with the next instrument

        Args:
            symbol: Canonical symbol being processed
            error: The exception
            component: Component where error occurred
        """
        logger.error(
            f"Instrument {symbol} failed: {error}",
            extra={'component': component, 'symbol': symbol},
            exc_info=error,
        )
        self._record(component, "ERROR", error, symbol, "".join(traceback.format_exception(error)))

    def handle_cycle_error(self, error: Exception, scan_run_id: Optional[int] = None) -> None:
        """
        Handle an exception that aborted a whole cycle.

        Args:
            error: The exception
            scan_run_id: Affected scan run
        """
        logger.error(
            f"Scan cycle failed: {error}",
            extra={'component': 'ScanScheduler', 'scan_run_id': scan_run_id},
            exc_info=error,
        )
        self._record("ScanScheduler", "CRITICAL", error, None, "".join(traceback.format_exception(error)))


def log_data_quality(
    symbol: Optional[str],
    timeframe: str,
    candle: datetime,
    missing: List[str],
) -> None:
    """
    Emit the structured ``data_quality_gate`` event for a skipped evaluation.

    Args:
        symbol: Canonical symbol, None when evaluated without one
        timeframe: Evaluated timeframe
        candle: Open time of the evaluated bar
        missing: Indicator fields that were null
    """
    extra = {
        'component': 'StrategyEngine',
        'event': 'data_quality_gate',
        'timeframe': timeframe,
        'candle': candle.isoformat(),
        'reason': 'missing_indicators',
    }
    if symbol is not None:
        extra['symbol'] = symbol
    logger.warning(
        f"Skipping {symbol or 'evaluation'} {timeframe} at {candle.isoformat()}: missing {', '.join(missing)}",
        extra=extra
    )
