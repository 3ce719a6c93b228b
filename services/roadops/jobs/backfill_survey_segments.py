"""
Derive Survey.edgeIds / lengthMeters from stored survey geometry.

Usage:
    python -m services.roadops.jobs.backfill_survey_segments
    python -m services.roadops.jobs.backfill_survey_segments --project <projectId> --dry-run
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
    preflight,
    print_summary,
)
from services.roadops.reconciliation.survey_segments import run_survey_segment_backfill


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Backfill road-segment ids on surveys from their geometry")
    parser.add_argument(
        "--project",
        default=None,
        help="Rewrite every survey of this project (default: surveys with no segments).",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Parse geometry and count without writing.",
    )
    return parser


async def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(settings)
    if not preflight(settings):
        return EXIT_CONFIG

    async with job_pool(settings) as pool:
        summary = await run_survey_segment_backfill(
            pool, args.project, dry_run=args.dry_run,
        )

    print_summary("backfill_survey_segments", summary.as_dict())
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(asyncio.run(main()))
