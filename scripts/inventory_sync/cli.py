"""
cli.py – Operator commands: run a sync, manage the manual start row.

Usage:
  inventory-sync run inventory.csv
  inventory-sync set-start 120
  inventory-sync run-manual inventory.csv
  inventory-sync clear-start
"""

import argparse
import logging
from typing import Optional

from .batch import FIRST_DATA_ROW, run_batch
from .client import WordPressClient
from .config import Settings, build_notifier, load_settings
from .media import MediaPipeline
from .record_manager import RecordManager
from .sources import CsvRecordSource, load_header_map
from .state import open_state

log = logging.getLogger(__name__)

DEFAULT_STATE_FILE = ".inventory_sync_state.yaml"


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Synchronise the vehicle inventory sheet with WordPress."
    )
    parser.add_argument("--config", help="YAML settings file (environment variables override it)")
    parser.add_argument("--state-file", default=DEFAULT_STATE_FILE, help="Where the token and start row are kept")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    sub = parser.add_subparsers(dest="command", required=True)
    run = sub.add_parser("run", help="Sync rows changed since their last sync")
    run.add_argument("csv_file", help="Inventory CSV export")
    manual = sub.add_parser("run-manual", help="Sync from the manual start row, ignoring timestamps")
    manual.add_argument("csv_file", help="Inventory CSV export")
    start = sub.add_parser("set-start", help="Set the manual start row")
    start.add_argument("row", type=int, help=f"Sheet row number (>= {FIRST_DATA_ROW})")
    sub.add_parser("clear-start", help="Clear the manual start row")
    return parser.parse_args(argv)


def run_sync(csv_file: str, settings: Settings, state_file: str) -> int:
    """Run one batch and return the process exit code."""
    with open_state(state_file) as state:
        client = WordPressClient(
            settings.api_base, settings.username, settings.password, state,
            timeout=settings.http_timeout,
        )
        source = CsvRecordSource(csv_file, load_header_map(settings.header_map_file))
        media = MediaPipeline(client, delay=settings.media_delay, timeout=settings.http_timeout)
        manager = RecordManager(client, source, media, settings.relation_ids)
        report = run_batch(
            source, manager, state,
            batch_size=settings.batch_size,
            delay=settings.record_delay,
            notifier=build_notifier(settings),
        )
    return 1 if report.error else 0


def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )

    if args.command == "set-start":
        if args.row < FIRST_DATA_ROW:
            log.error("Row must be %d or greater (row 1 holds the headers)", FIRST_DATA_ROW)
            return 2
        with open_state(args.state_file) as state:
            state.manual_start_row = args.row
        log.info("Manual start row set to %d", args.row)
        return 0

    if args.command == "clear-start":
        with open_state(args.state_file) as state:
            state.manual_start_row = None
        log.info("Manual start row cleared; runs use modification times again")
        return 0

    if args.command == "run-manual":
        with open_state(args.state_file) as state:
            if state.manual_start_row is None:
                log.error("No manual start row set. Use 'set-start ROW' first.")
                return 1

    return run_sync(args.csv_file, load_settings(args.config), args.state_file)


if __name__ == "__main__":
    raise SystemExit(main())
