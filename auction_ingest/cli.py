# auction_ingest/cli.py
"""
auction-ingest: pull marketplace auction listings into the listing store.

Usage
-----
    # Incremental BaT run through the Apify actor
    auction-ingest --source bat --mode incremental --limit 200

    # Everything, scraped directly, nothing written
    auction-ingest --source all --strategy direct --dry-run

    # Sold in the last year only, continuing a previous run
    auction-ingest --sold-within-months 12 --resume run_20260101000000_ab12cd34

On success the path of the run report is the only thing printed to stdout.
"""
import argparse
import sys
import traceback
from typing import List, Optional

from .config import Settings, load_env_files
from .pipeline import IngestRunner
from .schemas import IngestOptions
from .sources import SOURCE_PROFILES
from .utils import configure_logging


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="auction-ingest",
        description="Ingest marketplace auction listings for the tracked marque",
    )
    parser.add_argument(
        "--source",
        choices=[key.value for key in SOURCE_PROFILES] + ["all"],
        default="bat",
        help="Marketplace to ingest (default: bat)",
    )
    parser.add_argument(
        "--mode",
        choices=["sample", "incremental", "backfill"],
        default="incremental",
        help="Run mode (default: incremental)",
    )
    parser.add_argument("--limit", type=int, default=100, help="Max records per source, 1-5000 (default: 100)")
    parser.add_argument("--dry-run", action="store_true", default=False, help="Do everything except write")
    parser.add_argument("--fail-fast", action="store_true", default=False, help="Abort on the first source error")
    parser.add_argument("--sold-only", action="store_true", default=False, help="Keep sold/ended listings only")
    parser.add_argument(
        "--sold-within-months",
        type=int,
        default=None,
        metavar="N",
        help="Keep listings sold in the last N months, 1-120",
    )
    parser.add_argument("--active-only", action="store_true", default=False, help="Keep active listings only")
    parser.add_argument("--since", default=None, help="Lower bound passed through to the source")
    parser.add_argument("--from", dest="from_", default=None, help="Start marker passed through to the source")
    parser.add_argument("--resume", default=None, metavar="RUN_ID", help="Reuse RUN_ID and skip what it already wrote")
    parser.add_argument(
        "--strategy",
        choices=["delegated", "direct"],
        default="delegated",
        help="delegated = Apify actors, direct = scrape search pages (default: delegated)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", default=False, help="Enable DEBUG logging")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)
    load_env_files()
    try:
        settings = Settings.from_env()
        configure_logging(settings.log_level, args.verbose)
        options = IngestOptions(
            source=args.source,
            mode=args.mode,
            limit=args.limit,
            dry_run=args.dry_run,
            fail_fast=args.fail_fast,
            sold_only=args.sold_only,
            sold_within_months=args.sold_within_months,
            active_only=args.active_only,
            since=args.since,
            from_=args.from_,
            resume=args.resume,
            strategy=args.strategy,
        )
        result = IngestRunner(options, settings).run()
    except Exception:
        traceback.print_exc(file=sys.stderr)
        return 1
    print(result.report_path)
    return 0


if __name__ == "__main__":
    sys.exit(main())
