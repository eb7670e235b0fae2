"""Command line entry point.

Usage:
    feedsync init-db
    feedsync run-due
    feedsync run-feed FEED_ID
"""

import argparse
import asyncio
import json
import sys

import structlog

from feedsync.application.feed_runner import get_feed_runner
from feedsync.infrastructure.database import create_tables
from feedsync.infrastructure.logging_setup import configure_logging

logger = structlog.get_logger()


async def init_db() -> int:
    """Create database tables."""
    await create_tables()
    logger.info("Database tables created")
    return 0


async def run_due() -> int:
    """Run one scheduled pass; exit code 1 if any run failed."""
    runner = get_feed_runner()
    try:
        results = await runner.run_scheduled_feeds()
    finally:
        await runner.close()

    print(json.dumps([r.to_dict() for r in results], indent=2))
    return 1 if any(r.status == "error" for r in results) else 0


async def run_feed(feed_id: str) -> int:
    """Generate one feed now; exit code 1 unless it produced a version."""
    runner = get_feed_runner()
    try:
        result = await runner.run_feed(feed_id)
    finally:
        await runner.close()

    print(json.dumps(result.to_dict(), indent=2))
    return 0 if result.version_id else 1


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="feedsync",
        description="Scheduled product feed generation",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level (defaults to LOG_LEVEL)",
    )
    parser.add_argument(
        "--console-logs",
        action="store_true",
        help="Human readable logs instead of JSON",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("init-db", help="Create database tables")
    subparsers.add_parser("run-due", help="Regenerate every feed that is due")
    run = subparsers.add_parser("run-feed", help="Regenerate one feed now")
    run.add_argument("feed_id", help="Feed ID")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    configure_logging(level=args.log_level, json_logs=False if args.console_logs else None)

    if args.command == "init-db":
        return asyncio.run(init_db())
    if args.command == "run-due":
        return asyncio.run(run_due())
    return asyncio.run(run_feed(args.feed_id))


if __name__ == "__main__":
    sys.exit(main())
