"""
Historical rating backfill: links RoadRatingHistory rows to the survey and
project that produced them.

Entry point:
    async def run_rating_backfill(stores, *, segment_id=None, dry_run=False, ...)

Flow per record:
    locate candidates -> score each -> resolve -> on a winner, count hazards
    for the winning project on the record's segment in the record's window
    and persist {surveyId, projectId, anomaliesCount}.

Scheduling:
  - Unresolved rows are processed in fixed-size chunks, oldest first.
  - Records inside a chunk run concurrently; the driver waits for the whole
    chunk before starting the next one, so at most chunk_size records touch
    the database at a time and progress is monotonic.
  - A failing record is captured as a result and counted; it never cancels
    its siblings or aborts the batch.
  - Each record's lookups run under a timeout (the write is not cut short);
    a cancel event is checked between chunks. If the unresolved rows cannot
    be loaded the run is reported as aborted.
  - Dry-run does every read and the same scoring, counts identically, and
    issues no writes.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Optional

from services.roadops.reconciliation.errors import AlreadyResolvedError
from services.roadops.reconciliation.locator import MATCH_WINDOW, CandidateLocator
from services.roadops.reconciliation.models import (
    HistoricalRating,
    MatchOutcome,
    MatchResolved,
    Resolved,
    TimeWindow,
    UnresolvedReason,
)
from services.roadops.reconciliation.policy import resolve
from services.roadops.reconciliation.scorer import score
from services.roadops.reconciliation.stores import Stores

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_CHUNK_SIZE = 50
DEFAULT_RECORD_TIMEOUT_S = 30.0

# Record outcomes
UPDATED = "updated"
AMBIGUOUS = "ambiguous"
SKIPPED = "skipped"

# Skip reason when another run resolved the row between read and write
REASON_ALREADY_RESOLVED = "already_resolved"
REASON_ERROR = "error"
# The unresolved rows could not be loaded; nothing was processed
REASON_ABORTED = "aborted"


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RecordResult:
    rating_id: str
    outcome: str
    reason: Optional[str] = None
    survey_id: Optional[str] = None
    tie_broken: bool = False


@dataclass
class BackfillSummary:
    """Accumulator returned by run_rating_backfill. No module-level state."""
    total: int = 0
    processed: int = 0
    updated: int = 0
    ambiguous: int = 0
    skipped: int = 0
    errored: int = 0
    reasons: dict[str, int] = field(default_factory=dict)
    tie_broken: list[str] = field(default_factory=list)
    error_ids: list[str] = field(default_factory=list)
    dry_run: bool = False
    cancelled: bool = False
    aborted: bool = False
    duration_ms: int = 0

    def _bump_reason(self, reason: str) -> None:
        self.reasons[reason] = self.reasons.get(reason, 0) + 1

    def add_result(self, result: RecordResult) -> None:
        self.processed += 1
        if result.outcome == UPDATED:
            self.updated += 1
            if result.tie_broken:
                self.tie_broken.append(result.rating_id)
        elif result.outcome == AMBIGUOUS:
            self.ambiguous += 1
        else:
            self.skipped += 1
        if result.reason:
            self._bump_reason(result.reason)

    def add_error(self, rating_id: str) -> None:
        self.errored += 1
        self.error_ids.append(rating_id)
        self._bump_reason(REASON_ERROR)

    def abort(self) -> None:
        self.aborted = True
        self._bump_reason(REASON_ABORTED)

    def as_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "processed": self.processed,
            "updated": self.updated,
            "ambiguous": self.ambiguous,
            "skipped": self.skipped,
            "errored": self.errored,
            "reasons": dict(sorted(self.reasons.items())),
            "tie_broken": list(self.tie_broken),
            "error_ids": list(self.error_ids),
            "dry_run": self.dry_run,
            "cancelled": self.cancelled,
            "aborted": self.aborted,
            "duration_ms": self.duration_ms,
        }


# ---------------------------------------------------------------------------
# Single record
# ---------------------------------------------------------------------------

async def _match_record(
    record: HistoricalRating,
    stores: Stores,
    locator: CandidateLocator,
) -> tuple[MatchOutcome, Optional[Resolved]]:
    """Read side of one record: the policy outcome and, on a winner, its resolution."""
    candidates = await locator.locate_candidates(record)
    matches = [score(record, survey) for survey in candidates]
    outcome = resolve(matches)
    if not isinstance(outcome, MatchResolved):
        return outcome, None

    winner = outcome.winner
    window = TimeWindow.around(record.created_at, locator.window)
    anomaly_count = await stores.anomalies.count_anomalies(
        winner.project_id, record.road_segment_id, window,
    )
    return outcome, Resolved(winner.survey_id, winner.project_id, anomaly_count)


async def reconcile_record(
    record: HistoricalRating,
    stores: Stores,
    locator: CandidateLocator,
    *,
    dry_run: bool = False,
    read_timeout_s: Optional[float] = None,
) -> RecordResult:
    """
    Locate, score, resolve and (unless dry-run) persist one rating.

    read_timeout_s bounds the lookups only. The resolution write is never
    cancelled half-way, so a record written to the database is always
    counted as updated.
    """
    outcome, resolution = await asyncio.wait_for(
        _match_record(record, stores, locator), timeout=read_timeout_s,
    )

    if not isinstance(outcome, MatchResolved):
        kind = AMBIGUOUS if outcome.reason is UnresolvedReason.AMBIGUOUS else SKIPPED
        return RecordResult(record.id, kind, reason=outcome.reason.value)

    winner = outcome.winner
    if outcome.tie_broken:
        logger.warning(
            "backfill: rating=%s has %d candidates with several high-confidence matches, "
            "using closest survey=%s time_delta_ms=%d",
            record.id,
            outcome.candidate_count,
            winner.survey_id,
            winner.time_delta_ms,
        )

    # Raises if the in-memory record already carries a resolution
    record.with_resolution(resolution)

    if not dry_run:
        try:
            await stores.ratings.update_resolution(record.id, resolution)
        except AlreadyResolvedError:
            logger.info("backfill: rating=%s already resolved elsewhere, skipping", record.id)
            return RecordResult(record.id, SKIPPED, reason=REASON_ALREADY_RESOLVED)

    return RecordResult(
        record.id,
        UPDATED,
        survey_id=winner.survey_id,
        tie_broken=outcome.tie_broken,
    )


# ---------------------------------------------------------------------------
# Batch driver
# ---------------------------------------------------------------------------

async def _run_chunk(
    chunk: list[HistoricalRating],
    stores: Stores,
    locator: CandidateLocator,
    *,
    dry_run: bool,
    record_timeout_s: float,
) -> list[Any]:
    """Run every record of a chunk concurrently; exceptions come back as results."""
    tasks = [
        reconcile_record(
            record, stores, locator, dry_run=dry_run, read_timeout_s=record_timeout_s,
        )
        for record in chunk
    ]
    return await asyncio.gather(*tasks, return_exceptions=True)


async def run_rating_backfill(
    stores: Stores,
    *,
    segment_id: Optional[str] = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    dry_run: bool = False,
    window: timedelta = MATCH_WINDOW,
    record_timeout_s: float = DEFAULT_RECORD_TIMEOUT_S,
    cancel_event: Optional[asyncio.Event] = None,
) -> BackfillSummary:
    """
    Reconcile every unresolved historical rating.

    Args:
        stores:           Survey / rating / anomaly / aggregate stores.
        segment_id:       Restrict to one road segment (incremental or test runs).
        chunk_size:       Records dispatched concurrently per chunk.
        dry_run:          Read and score as usual but write nothing.
        window:           Candidate time window around each rating.
        record_timeout_s: Upper bound on one record's lookups (not its write).
        cancel_event:     When set, the driver stops before the next chunk.

    Returns:
        BackfillSummary with updated / ambiguous / skipped / errored counts.
    """
    if chunk_size < 1:
        raise ValueError("chunk_size must be >= 1")

    start_ts = time.monotonic()
    summary = BackfillSummary(dry_run=dry_run)
    locator = CandidateLocator(stores.surveys, window=window)

    logger.info(
        "backfill: starting segment=%s dry_run=%s chunk_size=%d",
        segment_id or "ALL",
        dry_run,
        chunk_size,
    )

    try:
        records = await stores.ratings.find_unresolved(segment_id)
    except Exception:
        logger.exception("backfill: could not load unresolved ratings, aborting")
        summary.abort()
        summary.duration_ms = int((time.monotonic() - start_ts) * 1000)
        return summary

    summary.total = len(records)
    logger.info("backfill: %d unresolved ratings to process", summary.total)

    for chunk_start in range(0, len(records), chunk_size):
        if cancel_event is not None and cancel_event.is_set():
            summary.cancelled = True
            logger.warning(
                "backfill: cancelled after %d/%d ratings",
                chunk_start,
                summary.total,
            )
            break

        chunk = records[chunk_start : chunk_start + chunk_size]
        results = await _run_chunk(
            chunk, stores, locator, dry_run=dry_run, record_timeout_s=record_timeout_s,
        )

        # gather preserves input order, so tallying is deterministic
        for record, result in zip(chunk, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                summary.add_error(record.id)
                logger.error(
                    "backfill: rating=%s failed: %r",
                    record.id,
                    result,
                    exc_info=result,
                )
            else:
                summary.add_result(result)

        done = chunk_start + len(chunk)
        logger.info(
            "backfill: progress %d/%d (%.1f%%) updated=%d ambiguous=%d skipped=%d errored=%d",
            done,
            summary.total,
            done / summary.total * 100,
            summary.updated,
            summary.ambiguous,
            summary.skipped,
            summary.errored,
        )

    summary.duration_ms = int((time.monotonic() - start_ts) * 1000)
    logger.info(
        "backfill: complete processed=%d updated=%d ambiguous=%d skipped=%d errored=%d "
        "tie_broken=%d dry_run=%s duration_ms=%d",
        summary.processed,
        summary.updated,
        summary.ambiguous,
        summary.skipped,
        summary.errored,
        len(summary.tie_broken),
        dry_run,
        summary.duration_ms,
    )
    if summary.reasons:
        for reason, count in sorted(summary.reasons.items()):
            logger.info("backfill:   %-18s %d", reason, count)
    return summary
