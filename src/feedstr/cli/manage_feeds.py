"""Manage registered feeds from the command line.

Usage:
    feedstr-cli add https://example.com/feed.xml [--dry-run]
    feedstr-cli delete https://example.com/feed.xml
    feedstr-cli list
    feedstr-cli version
"""

import argparse
import asyncio
import sys

from feedstr.definitions import FEEDSTR_VERSION
from feedstr.feeds.domain.feed_source import FeedSource
from feedstr.main.config import get_settings, set_settings
from feedstr.main.exceptions import FeedstrException
from feedstr.main.logging import get_logger
from feedstr.main.models import FeedState
from feedstr.server.dependencies.lifespan import shutdown, startup

logger = get_logger(__name__)


def format_feed(feed: FeedSource) -> str:
    line = f"{feed.npub} {feed.url}"
    if feed.state != FeedState.ACTIVE:
        line += f" [{feed.state.value}, failures: {feed.failure_count}]"
    return line


async def run_command(args: argparse.Namespace) -> int:
    container = await startup(run_scheduler=False)
    feed_service = container.feed_service()

    try:
        if args.command == "add":
            feed = await feed_service.add_feed(args.url)
            print(f"Added {feed.url} as {feed.npub}")
        elif args.command == "delete":
            await feed_service.delete_feed(args.url)
            print(f"Removed {args.url}")
        elif args.command == "list":
            for feed in await feed_service.list_feeds():
                print(format_feed(feed))
    except FeedstrException as e:
        logger.error(f"{args.command} failed: {e}")
        return 1
    finally:
        await shutdown(container)

    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="feedstr-cli", description="Manage feedstr feeds")
    subparsers = parser.add_subparsers(dest="command", required=True)

    add = subparsers.add_parser("add", help="Register a feed")
    add.add_argument("url")
    add.add_argument(
        "--dry-run",
        action="store_true",
        help="Log events instead of publishing them",
    )

    delete = subparsers.add_parser("delete", help="Remove a feed")
    delete.add_argument("url")

    subparsers.add_parser("list", help="List registered feeds")
    subparsers.add_parser("version", help="Print the version")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Entry point for CLI script."""
    args = build_parser().parse_args(argv)

    if args.command == "version":
        print(f"feedstr {FEEDSTR_VERSION}")
        return 0

    if getattr(args, "dry_run", False):
        set_settings(get_settings().model_copy(update={"dry_run": True}))

    try:
        return asyncio.run(run_command(args))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())
