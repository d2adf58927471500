"""Command line interface.

Examples:
  signal-scanner migrate
  signal-scanner seed
  signal-scanner scan
  signal-scanner settings show
  signal-scanner settings set --scan-enabled true --min-score 70
  signal-scanner instruments disable BTCUSD
  signal-scanner serve --port 8000
"""
import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from pydantic import ValidationError

from signal_scanner.config import get_config
from signal_scanner.db import queries
from signal_scanner.db.database import get_engine, init_database
from signal_scanner.db.schemas import SettingsOut, SettingsUpdate
from signal_scanner.db.session import get_db_session
from signal_scanner.utils.logging_config import setup_logging

logger = logging.getLogger("signal_scanner.cli")


def _bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise argparse.ArgumentTypeError(f"expected true/false, got {value!r}")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="signal-scanner", description="Twelve Data signal scanner")
    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("migrate", help="Apply database migrations")
    sub.add_parser("seed", help="Upsert the whitelisted instruments")
    sub.add_parser("scan", help="Run one scan cycle now")

    settings = sub.add_parser("settings", help="Read or update runtime settings")
    settings_sub = settings.add_subparsers(dest="settings_command", required=True)
    settings_sub.add_parser("show", help="Print current settings")
    set_cmd = settings_sub.add_parser("set", help="Update settings")
    set_cmd.add_argument("--scan-enabled", type=_bool, dest="scan_enabled")
    set_cmd.add_argument("--email-enabled", type=_bool, dest="email_enabled")
    set_cmd.add_argument("--alert-to", dest="alert_to_email")
    set_cmd.add_argument("--smtp-from", dest="smtp_from")
    set_cmd.add_argument("--min-score", type=int, dest="min_score_to_alert")
    set_cmd.add_argument("--burst-size", type=int, dest="max_symbols_per_burst")
    set_cmd.add_argument("--burst-sleep-ms", type=int, dest="burst_sleep_ms")
    set_cmd.add_argument("--cooldown-minutes", type=int, dest="alert_cooldown_minutes")

    instruments = sub.add_parser("instruments", help="List, enable or disable instruments")
    inst_sub = instruments.add_subparsers(dest="instruments_command", required=True)
    inst_sub.add_parser("list", help="List instruments")
    for name in ("enable", "disable"):
        cmd = inst_sub.add_parser(name, help=f"{name.capitalize()} an instrument")
        cmd.add_argument("symbol", help="Canonical symbol, e.g. EURUSD")

    serve = sub.add_parser("serve", help="Run the HTTP service and scheduler")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=8000)

    return p.parse_args(argv)


def _settings_changes(args: argparse.Namespace) -> SettingsUpdate:
    fields = (
        "scan_enabled", "email_enabled", "alert_to_email", "smtp_from",
        "min_score_to_alert", "max_symbols_per_burst", "burst_sleep_ms", "alert_cooldown_minutes",
    )
    return SettingsUpdate(**{name: getattr(args, name) for name in fields if getattr(args, name) is not None})


def _print_settings(settings) -> None:
    print(json.dumps(SettingsOut.model_validate(settings).model_dump(), indent=2))


async def run_scan(config) -> Optional[int]:
    """Run one cycle immediately, whatever ``scan_enabled`` says"""
    from signal_scanner.services.scanner_service import build_scheduler

    scheduler = build_scheduler(config, get_engine())
    try:
        return await scheduler.run_cycle()
    finally:
        await scheduler.client.close()


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    config = get_config()
    setup_logging(config.log_level, config.log_structured)

    if args.command == "serve":
        import uvicorn
        uvicorn.run("signal_scanner.main:app", host=args.host, port=args.port, log_level="info")
        return 0

    init_database(config.database.url)

    if args.command == "migrate":
        from signal_scanner.db.migration_runner import run_migrations
        run_migrations(config.database.url)
        return 0

    if args.command == "scan":
        scan_run_id = asyncio.run(run_scan(config))
        if scan_run_id is None:
            print("Scan already in progress", file=sys.stderr)
            return 1
        with get_db_session() as db:
            run = queries.get_scan_run(db, scan_run_id)
            print(json.dumps({"scan_run_id": run.id, "status": run.status, "notes": run.notes}, indent=2, default=str))
        return 0

    with get_db_session() as db:
        if args.command == "seed":
            print(f"Seeded {queries.seed_instruments(db)} instruments")

        elif args.command == "settings":
            if args.settings_command == "show":
                _print_settings(queries.get_settings(db))
            else:
                try:
                    changes = _settings_changes(args)
                except ValidationError as e:
                    print(f"Invalid settings:\n{e}", file=sys.stderr)
                    return 2
                _print_settings(queries.update_settings(db, changes))

        elif args.command == "instruments":
            if args.instruments_command == "list":
                for inst in queries.get_instruments(db):
                    flag = "on " if inst.enabled else "off"
                    print(f"{flag} {inst.asset_class:<7} {inst.canonical_symbol:<8} {inst.vendor_symbol}")
            else:
                try:
                    queries.set_instrument_enabled(db, args.symbol, args.instruments_command == "enable")
                except ValueError as e:
                    print(str(e), file=sys.stderr)
                    return 1
                print(f"{args.symbol} {args.instruments_command}d")

    return 0


if __name__ == "__main__":
    sys.exit(main())
