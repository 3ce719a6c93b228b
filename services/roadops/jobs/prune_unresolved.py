"""
Delete historical ratings that were never linked to a survey.

Usage:
    python -m services.roadops.jobs.prune_unresolved --dry-run
    python -m services.roadops.jobs.prune_unresolved --tenant <cityHallId> --yes
"""

import argparse
import asyncio
from typing import Optional

from services.roadops.config import settings
from services.roadops.db import job_pool
from services.roadops.jobs._common import (
    EXIT_CONFIG,
    EXIT_OK,
    configure_logging,
    logger,
    preflight,
    print_summary,
)
from services.roadops.reconciliation.prune import prune_unresolved


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Delete RoadRatingHistory rows with no survey/project link")
    parser.add_argument("--tenant", default=None, help="Only prune this city hall (entityId).")
    parser.add_argument("--dry-run", action="store_true", help="Count and sample only.")
    parser.add_argument("--yes", action="store_true", help="Confirm the delete.")
    return parser


async def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(settings)
    if not args.dry_run and not args.yes:
        logger.error("refusing to delete without --yes (use --dry-run to preview)")
        return EXIT_CONFIG
    if not preflight(settings):
        return EXIT_CONFIG

    async with job_pool(settings) as pool:
        result = await prune_unresolved(
            pool, args.tenant, dry_run=args.dry_run, confirm=args.yes,
        )

    print_summary("prune_unresolved", result)
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(asyncio.run(main()))
