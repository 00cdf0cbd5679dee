"""Command-line entry for ical_merger."""

from __future__ import annotations

import argparse
import sys
from typing import NoReturn, Optional

from . import __version__, run


def _create_parser() -> argparse.ArgumentParser:
    """Create argument parser for the ical_merger CLI.

    Returns:
        Configured argument parser
    """
    parser = argparse.ArgumentParser(
        prog="ical-merger",
        description="Merge several iCalendar feeds into one calendar",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  ical-merger --config config.json                # Merge now, then every syncIntervalMinutes
  ical-merger --config config.json --once         # Single merge, then exit
  ical-merger --serve --addr :8080                # Also serve /calendar over HTTP
  ical-merger --local --calendar-dir ./calendars  # Read <name>.ics files instead of URLs
        """,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--config",
        metavar="PATH",
        help="Path to config.json (default: $CONFIG_PATH or /app/config.json)",
    )
    parser.add_argument(
        "--output",
        metavar="PATH",
        help="Output file path (overrides outputPath from the config)",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single merge cycle and exit (status 1 if nothing was written)",
    )
    parser.add_argument(
        "--serve",
        action="store_true",
        help="Serve the merged calendar over HTTP alongside the refresh loop",
    )
    parser.add_argument(
        "--addr",
        metavar="HOST:PORT",
        help="Address for --serve (default: serverBind:serverPort from config, 0.0.0.0:8080)",
    )
    parser.add_argument(
        "--local",
        action="store_true",
        help="Read calendars from local files named <name>.ics",
    )
    parser.add_argument(
        "--calendar-dir",
        metavar="DIR",
        default="./calendars",
        help="Directory with calendar files for --local (default: ./calendars)",
    )
    return parser


def main(argv: Optional[list[str]] = None) -> NoReturn:
    """Run the ical_merger CLI."""
    parser = _create_parser()
    args = parser.parse_args(argv)
    sys.exit(run(args))


if __name__ == "__main__":
    main()
