"""
Main application entry point.

This module initializes the scanner service and its operational HTTP surface.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session

from signal_scanner.core.timeframes import ENTRY_TIMEFRAME, TIMEFRAME_DURATIONS
from signal_scanner.db.database import get_session
from signal_scanner.db import queries
from signal_scanner.db.schemas import (
    CandleOut,
    DashboardStats,
    IndicatorOut,
    InstrumentEnabledUpdate,
    InstrumentOut,
    ScanRunOut,
    ScanStatus,
    SeedResult,
    SettingsOut,
    SettingsUpdate,
    SignalOut,
)

logger = logging.getLogger(__name__)

TIMEFRAME_PATTERN = "^(" + "|".join(TIMEFRAME_DURATIONS) + ")$"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    from signal_scanner.config import get_config
    from signal_scanner.db.database import get_engine, init_database
    from signal_scanner.db.migration_runner import run_migrations
    from signal_scanner.services.scanner_service import build_scheduler
    from signal_scanner.utils.logging_config import setup_logging

    # Startup
    try:
        config = get_config()
        setup_logging(config.log_level, config.log_structured)
        logger.info("Signal Scanner starting...")

        init_database(config.database.url)
        logger.info("Database initialized")

        run_migrations(config.database.url)

        if not config.vendor.api_key:
            logger.warning("TWELVEDATA__API_KEY not set; every fetch will fail until it is configured")

        scheduler = build_scheduler(config, get_engine())
        app.state.config = config
        app.state.scheduler = scheduler

        if config.scheduler.autostart:
            is_leader = await scheduler.start()
            logger.info(f"Scheduler {'active' if is_leader else 'passive'}")

    except Exception as e:
        logger.error(f"Failed to start application: {e}", exc_info=True)
        raise

    yield

    # Shutdown
    logger.info("Signal Scanner shutting down...")
    scheduler.stop()
    await scheduler.client.close()


app = FastAPI(
    title="Signal Scanner",
    description="15-minute trading signal scanner over Twelve Data",
    version="1.0.0",
    lifespan=lifespan
)


def _scheduler(request: Request):
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        raise HTTPException(status_code=503, detail="Scheduler not initialized")
    return scheduler


def _instrument_or_404(db: Session, symbol: str):
    instrument = queries.get_instrument_by_symbol(db, symbol)
    if instrument is None:
        raise HTTPException(status_code=404, detail="Instrument not found")
    return instrument


@app.get("/health")
async def health_check(request: Request):
    """
    Health check endpoint.

    Returns:
        JSON with database and scheduler status
    """
    try:
        from signal_scanner.db.database import get_engine

        engine = get_engine()
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))

        db_status = "healthy"
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        db_status = "unhealthy"

    scheduler = getattr(request.app.state, "scheduler", None)
    is_healthy = db_status == "healthy"

    response = {
        "status": "healthy" if is_healthy else "unhealthy",
        "database": db_status,
        "scheduler": scheduler.state.value if scheduler else None,
        "is_leader": bool(scheduler and scheduler.is_leader),
    }
    return JSONResponse(content=response, status_code=200 if is_healthy else 503)


# --- Instruments ---------------------------------------------------------------

@app.get("/instruments", response_model=List[InstrumentOut])
def list_instruments(db: Session = Depends(get_session)):
    return queries.get_instruments(db)


@app.post("/instruments/seed", response_model=SeedResult)
def seed_instruments(db: Session = Depends(get_session)):
    count = queries.seed_instruments(db)
    logger.info(f"Seeded {count} instruments")
    return SeedResult(count=count)


@app.get("/instruments/{symbol}", response_model=InstrumentOut)
def get_instrument(symbol: str, db: Session = Depends(get_session)):
    return _instrument_or_404(db, symbol)


@app.patch("/instruments/{symbol}", response_model=InstrumentOut)
def set_instrument_enabled(symbol: str, body: InstrumentEnabledUpdate, db: Session = Depends(get_session)):
    _instrument_or_404(db, symbol)
    return queries.set_instrument_enabled(db, symbol, body.enabled)


@app.get("/candles", response_model=List[CandleOut])
def list_candles(
    symbol: str,
    tf: str = Query(ENTRY_TIMEFRAME, pattern=TIMEFRAME_PATTERN),
    limit: int = Query(300, ge=1, le=1000),
    db: Session = Depends(get_session),
):
    instrument = _instrument_or_404(db, symbol)
    return queries.get_candles(db, instrument.id, tf, limit)


@app.get("/indicators", response_model=List[IndicatorOut])
def list_indicators(
    symbol: str,
    tf: str = Query(ENTRY_TIMEFRAME, pattern=TIMEFRAME_PATTERN),
    limit: int = Query(300, ge=1, le=1000),
    db: Session = Depends(get_session),
):
    instrument = _instrument_or_404(db, symbol)
    return queries.get_indicators(db, instrument.id, tf, limit)


# --- Scanning ------------------------------------------------------------------

@app.post("/scan/run", status_code=202)
async def trigger_scan(request: Request):
    """Start a cycle in the background; 409 while one is running"""
    scheduler = _scheduler(request)
    if scheduler.in_flight:
        raise HTTPException(status_code=409, detail="Scan already in progress")

    task = asyncio.create_task(scheduler.run_cycle())
    request.app.state.manual_scan = task
    return {"message": "Scan triggered"}


@app.get("/scan/status", response_model=ScanStatus)
def scan_status(request: Request, db: Session = Depends(get_session)):
    settings = queries.get_settings(db)
    runs = queries.get_scan_runs(db, limit=1)
    scheduler = getattr(request.app.state, "scheduler", None)

    return ScanStatus(
        scan_enabled=settings.scan_enabled,
        last_scan_time=runs[0].finished_at if runs else None,
        scheduler_state=scheduler.state.value if scheduler else None,
        is_leader=bool(scheduler and scheduler.is_leader),
        in_flight=bool(scheduler and scheduler.in_flight),
        rate_limit=scheduler.client.governor.snapshot() if scheduler else None,
    )


@app.get("/scan/runs", response_model=List[ScanRunOut])
def list_scan_runs(limit: int = Query(20, ge=1, le=200), db: Session = Depends(get_session)):
    return queries.get_scan_runs(db, limit)


# --- Settings ------------------------------------------------------------------

@app.get("/settings", response_model=SettingsOut)
def read_settings(db: Session = Depends(get_session)):
    return queries.get_settings(db)


@app.post("/settings", response_model=SettingsOut)
def write_settings(changes: SettingsUpdate, db: Session = Depends(get_session)):
    return queries.update_settings(db, changes)


# --- Signals / dashboard -------------------------------------------------------

@app.get("/signals", response_model=List[SignalOut])
def list_signals(
    strategy: Optional[str] = None,
    direction: Optional[str] = None,
    status: Optional[str] = None,
    symbol: Optional[str] = None,
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_session),
):
    return queries.get_signals(db, strategy=strategy, direction=direction, status=status, symbol=symbol, limit=limit)


@app.get("/dashboard/stats", response_model=DashboardStats)
def dashboard_stats(db: Session = Depends(get_session)):
    return queries.get_dashboard_stats(db)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "signal_scanner.main:app",
        host="0.0.0.0",
        port=8000,
        log_level="info",
        access_log=True
    )
