"""Command line entry point for the backfill."""

from __future__ import annotations

import asyncio
import sys
from argparse import ArgumentParser, Namespace
from datetime import datetime
from pathlib import Path
from typing import Any

import structlog

from .config import Settings, settings
from .container import build_container

logger = structlog.get_logger("cryptohist")


def resolve_path(db_path: str | Path) -> Path:
    """Absolute version of ``db_path``, relative paths taken from the working directory"""
    path = Path(db_path).expanduser()
    if not path.is_absolute():
        path = Path.cwd() / path
    return path


def build_parser() -> ArgumentParser:
    parser = ArgumentParser(
        prog="cryptohist",
        description="Backfill hourly USD price history for crypto symbols into SQLite",
    )
    parser.add_argument("symbols", nargs="+", help="Instrument symbols, e.g. BTC ETH")
    parser.add_argument(
        "--dbpath",
        default=settings.db_path,
        help="Path to the database file where information will be stored (default: %(default)s)",
    )
    parser.add_argument(
        "--delay",
        type=float,
        help=f"Seconds to wait between page requests (default: {settings.request_delay})",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        help=f"HTTP request timeout in seconds (default: {settings.request_timeout})",
    )
    parser.add_argument(
        "--retries",
        type=int,
        help=f"Attempts per request on transient errors (default: {settings.max_retries})",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=settings.log_level,
        help="Logging level (default: %(default)s)",
    )
    return parser


def settings_from_args(args: Namespace, base: Settings | None = None) -> Settings:
    """Apply command line overrides on top of the environment settings"""
    base = base or settings
    update: dict[str, Any] = {
        "db_path": str(resolve_path(args.dbpath)),
        "log_level": args.log_level,
    }
    if args.delay is not None:
        update["request_delay"] = args.delay
    if args.timeout is not None:
        update["request_timeout"] = args.timeout
    if args.retries is not None:
        update["max_retries"] = args.retries
    return base.model_copy(update=update)


async def main_async(args: Namespace) -> int:
    """Run the backfill; returns the process exit status."""
    app_settings = settings_from_args(args)
    container = build_container(app_settings)

    try:
        container.init_resources()
    except Exception as e:
        logger.error("startup_failed", db_path=app_settings.db_path, error=str(e))
        return 1

    try:
        logger.info("database_opened", db_path=app_settings.db_path)
        coordinator = container.coordinator()

        start_time = datetime.now()
        try:
            report = await coordinator.run(args.symbols)
        except Exception as e:
            logger.error("backfill_aborted", error=str(e))
            return 1
        duration = (datetime.now() - start_time).total_seconds()

        logger.info("backfill_summary", duration_s=round(duration, 2), **report.summary())
        for outcome in report.outcomes:
            if not outcome.ok:
                logger.warning("incomplete_history", symbol=outcome.symbol, error=outcome.error)
        return 0
    finally:
        container.shutdown_resources()


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    args = build_parser().parse_args(argv)

    try:
        status = asyncio.run(main_async(args))
    except KeyboardInterrupt:
        logger.warning("interrupted")
        status = 130

    sys.exit(status)


if __name__ == "__main__":
    main()
