"""
Property-based tests for database operations.
"""
from datetime import datetime, timedelta

import pytest
from hypothesis import given, strategies as st
from pydantic import ValidationError
from sqlalchemy import inspect, select

from signal_scanner.core.domain.signal import SignalStatus
from signal_scanner.db.migration_runner import run_migrations
from signal_scanner.db.models import Candle, ScanRunStatus, Signal
from signal_scanner.db.queries import (
    create_error_log,
    create_scan_run,
    find_active_signal,
    finish_scan_run,
    get_candles,
    get_dashboard_stats,
    get_recent_errors,
    get_scan_progress,
    get_scan_runs,
    get_settings,
    get_signals,
    update_settings,
    update_signal_status,
    upsert_candles,
    upsert_instrument,
    upsert_scan_progress,
    upsert_signal,
)
from signal_scanner.db.schemas import SettingsUpdate

BAR = datetime(2024, 1, 1, 11, 45)


@pytest.fixture
def instrument(db):
    return upsert_instrument(db, "EURUSD", "FOREX", "EUR/USD")


def store_signal(db, instrument, score=80, direction="LONG", bar=BAR, reasons=None):
    return upsert_signal(
        db,
        instrument_id=instrument.id,
        timeframe="15m",
        strategy="TREND_CONTINUATION",
        direction=direction,
        candle_datetime_utc=bar,
        score=score,
        reason_json=reasons or {"score": score},
    )


# Property 18: Signal uniqueness
def test_signal_upsert_keeps_one_row_per_key(db, instrument):
    """
    Property 18: Signal uniqueness

    Re-detecting the same (instrument, timeframe, strategy, direction, bar)
    refreshes score and reasons on the existing row.
    """
    first = store_signal(db, instrument, score=60)
    second = store_signal(db, instrument, score=85)

    assert second.id == first.id
    rows = list(db.scalars(select(Signal)))
    assert len(rows) == 1
    assert rows[0].score == 85
    assert rows[0].reason_json == {"score": 85}
    assert rows[0].status == SignalStatus.NEW.value


def test_signal_upsert_never_resets_status(db, instrument):
    signal = store_signal(db, instrument)
    update_signal_status(db, signal.id, SignalStatus.ALERTED)

    refreshed = store_signal(db, instrument, score=90)

    assert refreshed.status == SignalStatus.ALERTED.value
    assert refreshed.score == 90


def test_different_bars_are_different_signals(db, instrument):
    store_signal(db, instrument, bar=BAR)
    store_signal(db, instrument, bar=BAR + timedelta(minutes=15))
    store_signal(db, instrument, direction="SHORT")

    assert len(get_signals(db)) == 3
    assert len(get_signals(db, direction="SHORT")) == 1
    assert len(get_signals(db, symbol="EURUSD")) == 3
    assert get_signals(db, symbol="GBPUSD") == []


def test_find_active_signal_only_matches_new(db, instrument):
    signal = store_signal(db, instrument)

    assert find_active_signal(db, instrument.id, "15m", "TREND_CONTINUATION", "LONG").id == signal.id
    assert find_active_signal(db, instrument.id, "15m", "TREND_CONTINUATION", "SHORT") is None

    update_signal_status(db, signal.id, SignalStatus.IGNORED)
    assert find_active_signal(db, instrument.id, "15m", "TREND_CONTINUATION", "LONG") is None


# Property 19: Monotonic watermark
def test_watermark_never_moves_backwards(db, instrument):
    """
    Property 19: Monotonic watermark

    An older bar never overwrites a newer processed bar.
    """
    upsert_scan_progress(db, instrument.id, "15m", BAR)
    upsert_scan_progress(db, instrument.id, "15m", BAR - timedelta(minutes=15))

    db.expire_all()
    assert get_scan_progress(db, instrument.id, "15m").last_processed_bar_utc == BAR

    upsert_scan_progress(db, instrument.id, "15m", BAR + timedelta(minutes=15))

    db.expire_all()
    assert get_scan_progress(db, instrument.id, "15m").last_processed_bar_utc == BAR + timedelta(minutes=15)


def test_candle_upsert_last_write_wins(db, instrument):
    row = dict(instrument_id=instrument.id, timeframe="15m", datetime_utc=BAR,
               open=1.0, high=1.1, low=0.9, close=1.05, volume=None, source="twelvedata")
    upsert_candles(db, [row])
    upsert_candles(db, [{**row, "close": 1.07, "volume": 12.0}])

    candles = list(db.scalars(select(Candle)))
    assert len(candles) == 1
    db.refresh(candles[0])
    assert candles[0].close == 1.07
    assert candles[0].volume == 12.0


def test_candles_are_returned_newest_first(db, instrument):
    rows = [
        dict(instrument_id=instrument.id, timeframe="15m", datetime_utc=BAR - timedelta(minutes=15 * i),
             open=1.0, high=1.1, low=0.9, close=1.0, volume=None, source="twelvedata")
        for i in range(5)
    ]
    upsert_candles(db, rows[::-1])

    candles = get_candles(db, instrument.id, "15m", limit=3)

    assert [c.datetime_utc for c in candles] == [BAR, BAR - timedelta(minutes=15), BAR - timedelta(minutes=30)]


# Property 20: Settings defaults and bounds
def test_settings_defaults(db):
    """
    Property 20: Settings defaults and bounds

    The singleton is created on first read with scanning and email off.
    """
    settings = get_settings(db)

    assert settings.scan_enabled is False
    assert settings.email_enabled is False
    assert settings.min_score_to_alert == 60
    assert settings.max_symbols_per_burst == 4
    assert settings.burst_sleep_ms == 1000
    assert settings.alert_cooldown_minutes == 60
    assert get_settings(db).id == settings.id


def test_partial_settings_update(db):
    update_settings(db, SettingsUpdate(scan_enabled=True, min_score_to_alert=75))
    settings = update_settings(db, SettingsUpdate(alert_to_email="ops@example.com"))

    assert settings.scan_enabled is True
    assert settings.min_score_to_alert == 75
    assert settings.alert_to_email == "ops@example.com"
    assert settings.burst_sleep_ms == 1000


@given(
    min_score=st.integers(min_value=0, max_value=100),
    burst=st.integers(min_value=1, max_value=10),
    sleep_ms=st.integers(min_value=500, max_value=5000),
    cooldown=st.integers(min_value=1, max_value=1440),
)
def test_settings_update_accepts_in_range_values(min_score, burst, sleep_ms, cooldown):
    update = SettingsUpdate(
        min_score_to_alert=min_score,
        max_symbols_per_burst=burst,
        burst_sleep_ms=sleep_ms,
        alert_cooldown_minutes=cooldown,
    )
    assert update.model_dump(exclude_unset=True) == {
        "min_score_to_alert": min_score,
        "max_symbols_per_burst": burst,
        "burst_sleep_ms": sleep_ms,
        "alert_cooldown_minutes": cooldown,
    }


@pytest.mark.parametrize("changes", [
    {"min_score_to_alert": 101},
    {"min_score_to_alert": -1},
    {"max_symbols_per_burst": 0},
    {"max_symbols_per_burst": 11},
    {"burst_sleep_ms": 499},
    {"burst_sleep_ms": 5001},
    {"alert_cooldown_minutes": 0},
    {"alert_to_email": "not-an-email"},
    {"alert_to_email": "ops@example.com\n"},
    {"smtp_from": "ops@example.com\r\nBcc: x@evil.io"},
    {"unknown_field": True},
])
def test_settings_update_rejects_out_of_range(changes):
    with pytest.raises(ValidationError):
        SettingsUpdate(**changes)


def test_blank_email_clears_address(db):
    update_settings(db, SettingsUpdate(alert_to_email="ops@example.com"))
    settings = update_settings(db, SettingsUpdate(alert_to_email=""))

    assert settings.alert_to_email == ""


# Property 21: Scan run lifecycle
def test_scan_run_finishes_once(db):
    """
    Property 21: Scan run lifecycle

    A run starts as running and moves to exactly one terminal status.
    """
    run = create_scan_run(db, "15m")
    assert run.status == ScanRunStatus.RUNNING.value
    assert run.finished_at is None

    finished = finish_scan_run(db, run.id, ScanRunStatus.COMPLETED, notes={"processed_count": 0}, credits_used_est=18)
    assert finished.status == "completed"
    assert finished.finished_at is not None
    assert finished.credits_used_est == 18
    assert finished.notes == {"processed_count": 0}

    with pytest.raises(ValueError):
        finish_scan_run(db, run.id, ScanRunStatus.ERROR)


def test_scan_run_rejects_unknown_status(db):
    run = create_scan_run(db, "15m")
    with pytest.raises(ValueError):
        finish_scan_run(db, run.id, "done")


def test_scan_runs_newest_first(db):
    first = create_scan_run(db, "15m", started_at=datetime(2024, 1, 1, 12, 0))
    second = create_scan_run(db, "15m", started_at=datetime(2024, 1, 1, 12, 15))

    assert [r.id for r in get_scan_runs(db)] == [second.id, first.id]


def test_dashboard_stats(db, instrument):
    store_signal(db, instrument)
    create_scan_run(db, "15m")

    stats = get_dashboard_stats(db)

    assert stats["total_instruments"] == 1
    assert stats["enabled_instruments"] == 1
    assert stats["total_signals"] == 1
    assert stats["new_signals"] == 1
    assert stats["last_scan"] is not None
    assert stats["scan_enabled"] is False


def test_error_log_round_trip(db):
    now = datetime(2024, 1, 1, 12, 0)
    create_error_log(db, now, "ScanScheduler", "ERROR", "boom", exception_type="RuntimeError", symbol="EURUSD")

    errors = get_recent_errors(db, now - timedelta(minutes=1))
    assert len(errors) == 1
    assert errors[0].symbol == "EURUSD"
    assert get_recent_errors(db, now + timedelta(minutes=1)) == []


def test_migrations_create_schema(tmp_path):
    url = f"sqlite:///{tmp_path / 'migrated.db'}"

    run_migrations(url)

    from sqlalchemy import create_engine
    engine = create_engine(url)
    tables = set(inspect(engine).get_table_names())
    engine.dispose()

    assert {
        "instruments", "candles", "indicators", "scan_runs", "scan_progress",
        "signals", "alert_events", "settings", "error_logs",
    } <= tables
