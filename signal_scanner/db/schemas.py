"""Validation schemas for operator-supplied updates"""
import re
from datetime import datetime
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

_EMAIL_RE = re.compile(r"[^@\s]+@[^@\s]+\.[^@\s]+")


class SettingsUpdate(BaseModel):
    """Partial update of the runtime settings row"""
    model_config = ConfigDict(extra="forbid")

    scan_enabled: Optional[bool] = None
    email_enabled: Optional[bool] = None
    alert_to_email: Optional[str] = None
    smtp_from: Optional[str] = None
    min_score_to_alert: Optional[int] = Field(None, ge=0, le=100)
    max_symbols_per_burst: Optional[int] = Field(None, ge=1, le=10)
    burst_sleep_ms: Optional[int] = Field(None, ge=500, le=5000)
    alert_cooldown_minutes: Optional[int] = Field(None, ge=1, le=1440)

    @field_validator("alert_to_email", "smtp_from")
    @classmethod
    def _email_or_blank(cls, value: Optional[str]) -> Optional[str]:
        # Blank clears the address
        if value is None or value == "":
            return value
        if not _EMAIL_RE.fullmatch(value):
            raise ValueError(f"invalid email address: {value!r}")
        return value


class InstrumentEnabledUpdate(BaseModel):
    """Enable or disable one instrument"""
    model_config = ConfigDict(extra="forbid")

    enabled: bool


class InstrumentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    canonical_symbol: str
    asset_class: str
    vendor_symbol: str
    enabled: bool
    created_at: datetime
    updated_at: datetime


class CandleOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    datetime_utc: datetime
    open: float
    high: float
    low: float
    close: float
    volume: Optional[float] = None


class IndicatorOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    datetime_utc: datetime
    ema9: Optional[float] = None
    ema21: Optional[float] = None
    ema55: Optional[float] = None
    ema200: Optional[float] = None
    bb_upper: Optional[float] = None
    bb_middle: Optional[float] = None
    bb_lower: Optional[float] = None
    bb_width: Optional[float] = None
    macd: Optional[float] = None
    macd_signal: Optional[float] = None
    macd_hist: Optional[float] = None
    atr: Optional[float] = None
    adx: Optional[float] = None


class ScanRunOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    timeframe: str
    status: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    credits_used_est: Optional[int] = None
    notes: Optional[Dict[str, Any]] = None


class SignalOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    instrument_id: int
    timeframe: str
    strategy: str
    direction: str
    detected_at: datetime
    candle_datetime_utc: datetime
    score: int
    reason_json: Optional[Dict[str, Any]] = None
    status: str


class SettingsOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    scan_enabled: bool
    email_enabled: bool
    alert_to_email: Optional[str] = None
    smtp_from: Optional[str] = None
    min_score_to_alert: int
    max_symbols_per_burst: int
    burst_sleep_ms: int
    alert_cooldown_minutes: int


class DashboardStats(BaseModel):
    total_instruments: int
    enabled_instruments: int
    total_signals: int
    new_signals: int
    last_scan: Optional[ScanRunOut] = None
    scan_enabled: bool


class ScanStatus(BaseModel):
    scan_enabled: bool
    last_scan_time: Optional[datetime] = None
    scheduler_state: Optional[str] = None
    is_leader: bool = False
    in_flight: bool = False
    rate_limit: Optional[Dict[str, Any]] = None


class SeedResult(BaseModel):
    count: int
