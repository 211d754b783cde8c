"""
Command-line interface for patent-browser.

    patent-browser search --query "machine learning" --limit 25
    patent-browser search --patent US9152718B2
    patent-browser search --patent US9152718B2 --raw
    patent-browser config --set-browser /usr/bin/chromium
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Optional, Sequence

from patent_browser import __version__
from patent_browser.config import AppConfig, load_config, save_config
from patent_browser.exceptions import PatentBrowserError
from patent_browser.models import SearchOptions
from patent_browser.searcher import PatentSearcher

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer: {value!r}")
    if number < 1:
        raise argparse.ArgumentTypeError("must be at least 1")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="patent-browser",
        description="Search Google Patents through a local Chrome over CDP",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    search = subparsers.add_parser("search", help="Search for patents or fetch one patent")
    search.add_argument("-q", "--query", help="Search query")
    search.add_argument("-p", "--patent", help="Patent number (e.g., US9152718B2)")
    search.add_argument(
        "--assignee",
        action="append",
        help="Filter by assignee (repeat for several)",
    )
    search.add_argument("-c", "--country", help="Filter by country code (e.g., US, JP)")
    search.add_argument("-a", "--after", help="Filter by priority date after (YYYY-MM-DD)")
    search.add_argument("-b", "--before", help="Filter by priority date before (YYYY-MM-DD)")
    search.add_argument("-n", "--limit", type=_positive_int, help="Maximum number of results")
    search.add_argument(
        "--head",
        action="store_true",
        help="Run with a visible browser window (default is headless)",
    )
    search.add_argument(
        "--raw",
        action="store_true",
        help="Print the patent page HTML instead of JSON (requires --patent)",
    )
    search.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging (shows CDP traffic and Chrome output)",
    )

    config = subparsers.add_parser("config", help="Show or change the configuration")
    config.add_argument("--set-browser", metavar="PATH", help="Path to the browser executable")

    return parser


def setup_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format=LOG_FORMAT,
        stream=sys.stderr,
    )


async def run_search(args: argparse.Namespace, config: AppConfig) -> str:
    """Run the search subcommand and return the text to print."""
    options = SearchOptions(
        query=args.query,
        assignee=args.assignee,
        country=args.country,
        patent_number=args.patent,
        after_date=args.after,
        before_date=args.before,
        limit=args.limit,
    )
    # Fail before paying for a browser launch
    options.validate_target()

    headless = config.headless and not args.head
    searcher = await PatentSearcher.launch(
        config.browser_path,
        headless=headless,
        debug=args.debug,
    )
    async with searcher:
        if args.raw:
            return await searcher.get_raw_html(args.patent)
        result = await searcher.search(options)
        return result.to_json()


def _search_command(args: argparse.Namespace) -> int:
    if args.raw and not args.patent:
        print("Error: --raw flag requires --patent <ID>", file=sys.stderr)
        return 1

    config = load_config()
    output = asyncio.run(run_search(args, config))
    print(output)
    return 0


def _config_command(args: argparse.Namespace) -> int:
    if args.set_browser:
        config = load_config(use_env=False)
        config = config.model_copy(update={"browser_path": args.set_browser})
        path = save_config(config)
        print(f"Browser path updated in {path}.")
        return 0

    config = load_config()
    print("Current configuration:")
    print(config.model_dump_json(indent=2))
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(getattr(args, "debug", False))

    try:
        if args.command == "search":
            return _search_command(args)
        return _config_command(args)
    except PatentBrowserError as e:
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
