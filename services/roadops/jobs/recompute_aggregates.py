"""
Recompute RoadRating aggregates from RoadRatingHistory.

Usage:
    python -m services.roadops.jobs.recompute_aggregates
    python -m services.roadops.jobs.recompute_aggregates --tenant <cityHallId> --dry-run
"""

import argparse
import asyncio
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
from services.roadops.reconciliation.aggregates import run_aggregate_backfill
from services.roadops.reconciliation.stores import Stores


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Recompute per-road RoadRating aggregates")
    parser.add_argument(
        "--tenant",
        default=None,
        help="Only recompute roads of this city hall (entityId).",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Compute aggregates without writing them.",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=settings.aggregate_batch_size,
        help="Roads recomputed concurrently per batch.",
    )
    return parser


async def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(settings)
    if not preflight(settings):
        return EXIT_CONFIG

    async with job_pool(settings) as pool:
        summary = await run_aggregate_backfill(
            Stores.from_pool(pool),
            tenant_id=args.tenant,
            batch_size=args.batch_size,
            dry_run=args.dry_run,
        )

    print_summary("recompute_aggregates", summary.as_dict())
    return EXIT_ABORTED if summary.aborted else EXIT_OK


if __name__ == "__main__":
    raise SystemExit(asyncio.run(main()))
