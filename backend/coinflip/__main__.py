"""Coinflip CLI entry point."""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import ValidationError

env_file = Path(__file__).parent.parent / ".env"
load_dotenv(env_file)

from coinflip import __version__
from coinflip.config import Settings, get_settings
from coinflip.rounds import SettlementCycleError

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

logger = logging.getLogger(__name__)


def _load_settings() -> Settings | None:
    """Load settings; missing secrets are fatal."""
    try:
        settings = get_settings()
    except ValidationError as e:
        missing = ", ".join(str(err["loc"][0]).upper() for err in e.errors())
        logger.error(f"Invalid configuration: {missing}")
        print(f"\nConfiguration error, check environment: {missing}\n")
        return None

    logging.getLogger().setLevel(settings.log_level.upper())
    return settings


def cmd_settle(args: argparse.Namespace) -> int:
    """Run one settlement cycle and print the report."""
    from coinflip.settlement import create_settlement_driver

    settings = _load_settings()
    if settings is None:
        return 1

    async def run() -> dict:
        driver = create_settlement_driver(settings)
        try:
            report = await driver.run_settlement_cycle()
            return report.to_response()
        finally:
            await driver.store.close()

    try:
        response = asyncio.run(run())
    except SettlementCycleError as e:
        print(json.dumps({"success": False, "error": str(e)}, indent=2))
        return 1

    print(json.dumps(response, indent=2))
    return 0


def cmd_current(args: argparse.Namespace) -> int:
    """Print the current round, creating it if needed."""
    from coinflip.settlement import create_settlement_driver

    settings = _load_settings()
    if settings is None:
        return 1

    async def run() -> dict:
        driver = create_settlement_driver(settings)
        try:
            return (await driver.ensure_current_round()).model_dump(mode="json")
        finally:
            await driver.store.close()

    try:
        print(json.dumps(asyncio.run(run()), indent=2))
    except SettlementCycleError as e:
        logger.error(f"Could not get current round: {e}")
        return 1
    return 0


def cmd_init_db(args: argparse.Namespace) -> int:
    """Create the coinflip tables if they do not exist."""
    from coinflip.database import create_engine_from_settings, init_db

    settings = _load_settings()
    if settings is None:
        return 1

    async def run() -> None:
        engine = create_engine_from_settings(settings)
        try:
            await init_db(engine)
        finally:
            await engine.dispose()

    asyncio.run(run())
    print("Database tables ready.")
    return 0


def cmd_schedule(args: argparse.Namespace) -> int:
    """Run the settlement cycle on the configured interval."""
    from coinflip.scheduler import start_scheduler

    settings = _load_settings()
    if settings is None:
        return 1

    if args.interval:
        settings.scheduler.settle_interval_seconds = args.interval

    print(f"Settling rounds every {settings.scheduler.settle_interval_seconds}s...\n")
    start_scheduler(settings)
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    """Start the HTTP API."""
    import uvicorn

    settings = _load_settings()
    if settings is None:
        return 1

    uvicorn.run(
        "coinflip.api.server:create_app",
        factory=True,
        host=args.host or settings.host,
        port=args.port or settings.port,
        log_level=settings.log_level.lower(),
    )
    return 0


def main() -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Coinflip: round lifecycle and settlement engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"Coinflip {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    parser_settle = subparsers.add_parser(
        "settle",
        help="Run one settlement cycle and print the report",
    )
    parser_settle.set_defaults(func=cmd_settle)

    parser_current = subparsers.add_parser(
        "current",
        help="Show the current round, opening one if needed",
    )
    parser_current.set_defaults(func=cmd_current)

    parser_init_db = subparsers.add_parser(
        "init-db",
        help="Create database tables",
    )
    parser_init_db.set_defaults(func=cmd_init_db)

    parser_schedule = subparsers.add_parser(
        "schedule",
        help="Settle rounds on a fixed interval until interrupted",
    )
    parser_schedule.add_argument(
        "--interval",
        type=int,
        help="Override the settle interval in seconds",
    )
    parser_schedule.set_defaults(func=cmd_schedule)

    parser_serve = subparsers.add_parser(
        "serve",
        help="Start the HTTP API",
    )
    parser_serve.add_argument("--host", help="Bind address")
    parser_serve.add_argument("--port", type=int, help="Bind port")
    parser_serve.set_defaults(func=cmd_serve)

    args = parser.parse_args()

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
