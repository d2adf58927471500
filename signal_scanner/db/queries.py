"""Database query utilities"""
from datetime import datetime
from typing import Iterable, Iterator, List, Optional, Sequence
from sqlalchemy import func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from signal_scanner.core.domain.instrument import whitelist_entries
from signal_scanner.core.domain.signal import SignalStatus
from signal_scanner.core.timeframes import utc_now
from signal_scanner.db.models import (
    AlertEvent,
    Candle,
    ErrorLog,
    Indicator,
    INDICATOR_FIELDS,
    Instrument,
    ScanProgress,
    ScanRun,
    ScanRunStatus,
    Settings,
    Signal,
)
from signal_scanner.db.schemas import SettingsUpdate

UPSERT_CHUNK_SIZE = 100


def _insert_for(db: Session):
    """Dialect-native INSERT supporting ON CONFLICT"""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    raise RuntimeError(f"Upserts are not supported on dialect {dialect!r}")


def _chunks(rows: Sequence[dict], size: int = UPSERT_CHUNK_SIZE) -> Iterator[Sequence[dict]]:
    for i in range(0, len(rows), size):
        yield rows[i:i + size]


# --- Instruments -------------------------------------------------------------

def get_instruments(db: Session) -> List[Instrument]:
    """All instruments ordered by asset class then symbol"""
    stmt = select(Instrument).order_by(Instrument.asset_class, Instrument.canonical_symbol)
    return list(db.scalars(stmt))


def get_instrument_by_symbol(db: Session, canonical_symbol: str) -> Optional[Instrument]:
    stmt = select(Instrument).where(Instrument.canonical_symbol == canonical_symbol)
    return db.scalars(stmt).first()


def get_enabled_instruments(db: Session) -> List[Instrument]:
    stmt = select(Instrument).where(Instrument.enabled.is_(True)).order_by(Instrument.canonical_symbol)
    return list(db.scalars(stmt))


def upsert_instrument(db: Session, canonical_symbol: str, asset_class: str, vendor_symbol: str) -> Instrument:
    """
    Create or update an instrument by canonical symbol.

    The enabled flag of an existing instrument is left untouched.
    """
    insert = _insert_for(db)
    now = utc_now()
    stmt = insert(Instrument).values(
        canonical_symbol=canonical_symbol,
        asset_class=asset_class,
        vendor_symbol=vendor_symbol,
        enabled=True,
        created_at=now,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[Instrument.canonical_symbol],
        set_={
            "asset_class": stmt.excluded.asset_class,
            "vendor_symbol": stmt.excluded.vendor_symbol,
            "updated_at": now,
        },
    )
    db.execute(stmt)
    db.commit()
    return get_instrument_by_symbol(db, canonical_symbol)


def bulk_upsert_instruments(db: Session, rows: Iterable[dict]) -> int:
    """Upsert many instruments; returns the number processed"""
    count = 0
    for row in rows:
        upsert_instrument(db, row["canonical_symbol"], row["asset_class"], row["vendor_symbol"])
        count += 1
    return count


def seed_instruments(db: Session) -> int:
    """Upsert the whitelisted instrument universe; returns the number seeded"""
    return bulk_upsert_instruments(db, whitelist_entries())


def set_instrument_enabled(db: Session, canonical_symbol: str, enabled: bool) -> Instrument:
    instrument = get_instrument_by_symbol(db, canonical_symbol)
    if not instrument:
        raise ValueError(f"Instrument {canonical_symbol} not found")
    instrument.enabled = enabled
    instrument.updated_at = utc_now()
    db.commit()
    db.refresh(instrument)
    return instrument


# --- Candles / indicators ----------------------------------------------------

def get_candles(db: Session, instrument_id: int, timeframe: str, limit: int = 300) -> List[Candle]:
    """Candles newest first"""
    stmt = (
        select(Candle)
        .where(Candle.instrument_id == instrument_id, Candle.timeframe == timeframe)
        .order_by(Candle.datetime_utc.desc())
        .limit(limit)
    )
    return list(db.scalars(stmt))


def upsert_candles(db: Session, rows: Sequence[dict]) -> None:
    """
    Insert candles, overwriting OHLCV of existing bars (last write wins).
    """
    if not rows:
        return
    insert = _insert_for(db)
    for batch in _chunks(rows):
        stmt = insert(Candle).values(list(batch))
        stmt = stmt.on_conflict_do_update(
            index_elements=[Candle.instrument_id, Candle.timeframe, Candle.datetime_utc],
            set_={
                "open": stmt.excluded.open,
                "high": stmt.excluded.high,
                "low": stmt.excluded.low,
                "close": stmt.excluded.close,
                "volume": stmt.excluded.volume,
            },
        )
        db.execute(stmt)
    db.commit()


def get_indicators(db: Session, instrument_id: int, timeframe: str, limit: int = 300) -> List[Indicator]:
    """Indicator rows newest first"""
    stmt = (
        select(Indicator)
        .where(Indicator.instrument_id == instrument_id, Indicator.timeframe == timeframe)
        .order_by(Indicator.datetime_utc.desc())
        .limit(limit)
    )
    return list(db.scalars(stmt))


def upsert_indicators(db: Session, rows: Sequence[dict]) -> None:
    """
    Insert indicator rows, overwriting every indicator column of existing
    rows (last write wins).
    """
    if not rows:
        return
    insert = _insert_for(db)
    for batch in _chunks(rows):
        stmt = insert(Indicator).values(list(batch))
        stmt = stmt.on_conflict_do_update(
            index_elements=[Indicator.instrument_id, Indicator.timeframe, Indicator.datetime_utc],
            set_={name: stmt.excluded[name] for name in INDICATOR_FIELDS},
        )
        db.execute(stmt)
    db.commit()


# --- Scan runs / progress ----------------------------------------------------

def create_scan_run(db: Session, timeframe: str, started_at: Optional[datetime] = None) -> ScanRun:
    """Create a scan run in status running"""
    scan_run = ScanRun(
        timeframe=timeframe,
        status=ScanRunStatus.RUNNING.value,
        started_at=started_at or utc_now(),
    )
    db.add(scan_run)
    db.commit()
    db.refresh(scan_run)
    return scan_run


def finish_scan_run(
    db: Session,
    scan_run_id: int,
    status: str,
    notes: Optional[dict] = None,
    credits_used_est: Optional[int] = None,
    finished_at: Optional[datetime] = None,
) -> ScanRun:
    """Move a running scan run to its terminal status"""
    scan_run = db.get(ScanRun, scan_run_id)
    if not scan_run:
        raise ValueError(f"ScanRun {scan_run_id} not found")
    if scan_run.finished_at is not None:
        raise ValueError(f"ScanRun {scan_run_id} already finished")

    scan_run.status = ScanRunStatus(status).value
    scan_run.finished_at = finished_at or utc_now()
    scan_run.notes = notes
    if credits_used_est is not None:
        scan_run.credits_used_est = credits_used_est

    db.commit()
    db.refresh(scan_run)
    return scan_run


def get_scan_runs(db: Session, limit: int = 20) -> List[ScanRun]:
    stmt = select(ScanRun).order_by(ScanRun.started_at.desc(), ScanRun.id.desc()).limit(limit)
    return list(db.scalars(stmt))


def get_scan_run(db: Session, scan_run_id: int) -> Optional[ScanRun]:
    return db.get(ScanRun, scan_run_id)


def get_scan_progress(db: Session, instrument_id: int, timeframe: str) -> Optional[ScanProgress]:
    stmt = select(ScanProgress).where(
        ScanProgress.instrument_id == instrument_id,
        ScanProgress.timeframe == timeframe,
    )
    return db.scalars(stmt).first()


def upsert_scan_progress(db: Session, instrument_id: int, timeframe: str, last_processed_bar_utc: datetime) -> None:
    """
    Advance the watermark. An older timestamp never overwrites a newer one.
    """
    insert = _insert_for(db)
    now = utc_now()
    stmt = insert(ScanProgress).values(
        instrument_id=instrument_id,
        timeframe=timeframe,
        last_processed_bar_utc=last_processed_bar_utc,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[ScanProgress.instrument_id, ScanProgress.timeframe],
        set_={"last_processed_bar_utc": stmt.excluded.last_processed_bar_utc, "updated_at": now},
        where=ScanProgress.last_processed_bar_utc < stmt.excluded.last_processed_bar_utc,
    )
    db.execute(stmt)
    db.commit()


# --- Signals -----------------------------------------------------------------

def get_signals(
    db: Session,
    strategy: Optional[str] = None,
    direction: Optional[str] = None,
    status: Optional[str] = None,
    symbol: Optional[str] = None,
    limit: int = 100,
) -> List[Signal]:
    """Signals newest first, optionally filtered"""
    stmt = select(Signal).join(Instrument, Signal.instrument_id == Instrument.id)
    if strategy:
        stmt = stmt.where(Signal.strategy == strategy)
    if direction:
        stmt = stmt.where(Signal.direction == direction)
    if status:
        stmt = stmt.where(Signal.status == status)
    if symbol:
        stmt = stmt.where(Instrument.canonical_symbol == symbol)
    stmt = stmt.order_by(Signal.detected_at.desc(), Signal.id.desc()).limit(limit)
    return list(db.scalars(stmt))


def find_active_signal(
    db: Session,
    instrument_id: int,
    timeframe: str,
    strategy: str,
    direction: str,
) -> Optional[Signal]:
    """An open (status NEW) signal for the key, regardless of bar"""
    stmt = select(Signal).where(
        Signal.instrument_id == instrument_id,
        Signal.timeframe == timeframe,
        Signal.strategy == strategy,
        Signal.direction == direction,
        Signal.status == SignalStatus.NEW.value,
    )
    return db.scalars(stmt).first()


def upsert_signal(
    db: Session,
    instrument_id: int,
    timeframe: str,
    strategy: str,
    direction: str,
    candle_datetime_utc: datetime,
    score: int,
    reason_json: Optional[dict] = None,
) -> Signal:
    """
    Insert a NEW signal, or refresh score/reason/detected_at of the existing
    row with the same five-part key. Status is never touched on conflict.
    """
    insert = _insert_for(db)
    now = utc_now()
    stmt = insert(Signal).values(
        instrument_id=instrument_id,
        timeframe=timeframe,
        strategy=strategy,
        direction=direction,
        candle_datetime_utc=candle_datetime_utc,
        score=score,
        reason_json=reason_json,
        detected_at=now,
        status=SignalStatus.NEW.value,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[
            Signal.instrument_id,
            Signal.timeframe,
            Signal.strategy,
            Signal.direction,
            Signal.candle_datetime_utc,
        ],
        set_={
            "score": stmt.excluded.score,
            "reason_json": stmt.excluded.reason_json,
            "detected_at": stmt.excluded.detected_at,
        },
    )
    db.execute(stmt)
    db.commit()

    lookup = select(Signal).where(
        Signal.instrument_id == instrument_id,
        Signal.timeframe == timeframe,
        Signal.strategy == strategy,
        Signal.direction == direction,
        Signal.candle_datetime_utc == candle_datetime_utc,
    ).execution_options(populate_existing=True)
    return db.scalars(lookup).one()


def update_signal_status(db: Session, signal_id: int, status: SignalStatus) -> None:
    db.execute(update(Signal).where(Signal.id == signal_id).values(status=SignalStatus(status).value))
    db.commit()


# --- Alerts ------------------------------------------------------------------

def create_alert_event(
    db: Session,
    signal_id: int,
    recipient: str,
    subject: str,
    status: str,
    error: Optional[str] = None,
    channel: str = "EMAIL",
) -> AlertEvent:
    """Append an alert dispatch record"""
    event = AlertEvent(
        signal_id=signal_id,
        channel=channel,
        recipient=recipient,
        subject=subject,
        status=status,
        error=error,
        sent_at=utc_now(),
    )
    db.add(event)
    db.commit()
    db.refresh(event)
    return event


# --- Settings ----------------------------------------------------------------

def get_settings(db: Session) -> Settings:
    """Return the settings singleton, creating it with defaults if absent"""
    settings = db.scalars(select(Settings).order_by(Settings.id).limit(1)).first()
    if settings is None:
        settings = Settings()
        db.add(settings)
        db.commit()
        db.refresh(settings)
    return settings


def update_settings(db: Session, changes: SettingsUpdate) -> Settings:
    """Apply a validated partial update to the settings singleton"""
    settings = get_settings(db)
    for name, value in changes.model_dump(exclude_unset=True).items():
        setattr(settings, name, value)
    db.commit()
    db.refresh(settings)
    return settings


# --- Dashboard / errors ------------------------------------------------------

def get_dashboard_stats(db: Session) -> dict:
    """Aggregate counts for the operational surface"""
    total_instruments = db.scalar(select(func.count()).select_from(Instrument))
    enabled_instruments = db.scalar(
        select(func.count()).select_from(Instrument).where(Instrument.enabled.is_(True))
    )
    total_signals = db.scalar(select(func.count()).select_from(Signal))
    new_signals = db.scalar(
        select(func.count()).select_from(Signal).where(Signal.status == SignalStatus.NEW.value)
    )
    runs = get_scan_runs(db, limit=1)
    settings = get_settings(db)

    return {
        "total_instruments": total_instruments,
        "enabled_instruments": enabled_instruments,
        "total_signals": total_signals,
        "new_signals": new_signals,
        "last_scan": runs[0] if runs else None,
        "scan_enabled": settings.scan_enabled,
    }


def create_error_log(
    db: Session,
    timestamp_utc: datetime,
    component: str,
    severity: str,
    message: str,
    exception_type: Optional[str] = None,
    symbol: Optional[str] = None,
    stack_trace: Optional[str] = None,
) -> ErrorLog:
    """Create an error log record"""
    error_log = ErrorLog(
        timestamp_utc=timestamp_utc,
        component=component,
        severity=severity,
        message=message,
        exception_type=exception_type,
        symbol=symbol,
        stack_trace=stack_trace,
    )
    db.add(error_log)
    db.commit()
    db.refresh(error_log)
    return error_log


def get_recent_errors(db: Session, since: datetime, symbol: Optional[str] = None) -> List[ErrorLog]:
    """Error logs at or after ``since``, newest first"""
    stmt = select(ErrorLog).where(ErrorLog.timestamp_utc >= since)
    if symbol:
        stmt = stmt.where(ErrorLog.symbol == symbol)
    return list(db.scalars(stmt.order_by(ErrorLog.timestamp_utc.desc())))
