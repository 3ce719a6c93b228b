"""
Link unresolved RoadRatingHistory rows to their surveys.

Usage:
    python -m services.roadops.jobs.reconcile_ratings
    python -m services.roadops.jobs.reconcile_ratings --segment <edgeId> --dry-run

SIGINT / SIGTERM stop the run after the current chunk; the partial summary is
still printed.
"""

import argparse
import asyncio
import signal
from typing import Optional

from services.roadops.config import settings
from services.roadops.db import job_pool
from services.roadops.jobs._common import (
    EXIT_ABORTED,
    EXIT_CONFIG,
    EXIT_OK,
    configure_logging,
    preflight,
    print_summary,
)
from services.roadops.reconciliation.backfill import run_rating_backfill
from services.roadops.reconciliation.stores import Stores


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Backfill survey/project links on historical road ratings")
    parser.add_argument(
        "--segment",
        default=None,
        help="Only process ratings of this road segment (edgeId).",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Score and count as usual without writing anything.",
    )
    parser.add_argument(
        "--chunk-size",
        type=int,
        default=settings.reconcile_chunk_size,
        help="Ratings processed concurrently per chunk.",
    )
    return parser


def _install_cancel_handlers(cancel_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, cancel_event.set)
        except (NotImplementedError, RuntimeError):
            # Windows event loops do not support signal handlers
            pass


async def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(settings)
    if not preflight(settings):
        return EXIT_CONFIG

    cancel_event = asyncio.Event()
    _install_cancel_handlers(cancel_event)

    async with job_pool(settings) as pool:
        summary = await run_rating_backfill(
            Stores.from_pool(pool),
            segment_id=args.segment,
            chunk_size=args.chunk_size,
            dry_run=args.dry_run,
            record_timeout_s=settings.reconcile_record_timeout_s,
            cancel_event=cancel_event,
        )

    print_summary("reconcile_ratings", summary.as_dict())
    return EXIT_ABORTED if summary.aborted else EXIT_OK


if __name__ == "__main__":
    raise SystemExit(asyncio.run(main()))
