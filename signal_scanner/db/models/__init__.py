"""Database models"""
from signal_scanner.db.models.instrument import Instrument
from signal_scanner.db.models.candle import Candle
from signal_scanner.db.models.indicator import Indicator, INDICATOR_FIELDS, VENDOR_INDICATOR_FIELDS
from signal_scanner.db.models.scan_run import ScanRun, ScanRunStatus
from signal_scanner.db.models.scan_progress import ScanProgress
from signal_scanner.db.models.signal import Signal
from signal_scanner.db.models.alert_event import AlertEvent
from signal_scanner.db.models.settings import Settings
from signal_scanner.db.models.error_log import ErrorLog

__all__ = [
    "Instrument",
    "Candle",
    "Indicator",
    "INDICATOR_FIELDS",
    "VENDOR_INDICATOR_FIELDS",
    "ScanRun",
    "ScanRunStatus",
    "ScanProgress",
    "Signal",
    "AlertEvent",
    "Settings",
    "ErrorLog",
]
