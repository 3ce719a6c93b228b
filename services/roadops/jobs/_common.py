"""Shared startup for the job entry points."""

import json
import logging
import sys
from typing import Any

from services.roadops.config import Settings, validate_for_jobs
from services.roadops.reconciliation.errors import ConfigurationError
from services.roadops.sentry import setup_sentry

logger = logging.getLogger("roadops.jobs")

EXIT_OK = 0
EXIT_ABORTED = 1
EXIT_CONFIG = 2


def configure_logging(cfg: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, cfg.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    logging.getLogger("asyncpg").setLevel(logging.WARNING)


def preflight(cfg: Settings) -> bool:
    """Validate configuration and start Sentry. False means abort before any work."""
    try:
        validate_for_jobs(cfg)
    except ConfigurationError as exc:
        logger.error("configuration error: %s", exc)
        return False
    setup_sentry()
    return True


def print_summary(name: str, summary: dict[str, Any]) -> None:
    print(f"{name} complete: {json.dumps(summary, indent=2, default=str)}", file=sys.stdout)
