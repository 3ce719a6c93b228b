"""
RoadRating aggregate recomputation.

Recomputes per-(tenant, road segment) statistics from the full
RoadRatingHistory of the pair and upserts them:

  totalSurveys     distinct non-null surveyId
  totalAnomalies   sum of anomaliesCount over all rows, missing counted as 0
  uniqueUsers      distinct userId over all rows
  lastSurveyDate   max createdAt over rows linked to a survey
  eiri             mean of eiri over all rows

Every run recomputes from source rows rather than maintaining counters, so
historical corrections are picked up and re-running with unchanged data
writes an identical row. All five fields are written together.

Entry points:
    async def recompute(stores, tenant_id, segment_id, dry_run=False)
    async def run_aggregate_backfill(stores, tenant_id=None, batch_size=100, dry_run=False)
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from services.roadops.geo.eiri import condition_band
from services.roadops.reconciliation.models import (
    AggregateWrite,
    HistoryRow,
    RoadSegmentAggregate,
    SegmentKey,
)
from services.roadops.reconciliation.stores import Stores

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 100


# ---------------------------------------------------------------------------
# Pure computation
# ---------------------------------------------------------------------------

def compute_aggregate(
    tenant_id: str,
    segment_id: str,
    rows: Iterable[HistoryRow],
) -> RoadSegmentAggregate:
    """Derive the five aggregate fields from every history row of the pair."""
    survey_ids: set[str] = set()
    authors: set[str] = set()
    total_anomalies = 0
    value_sum = 0.0
    row_count = 0
    last_survey_date = None

    for row in rows:
        row_count += 1
        value_sum += row.ride_quality_value
        authors.add(row.author_id)
        total_anomalies += row.anomaly_count or 0

        if row.survey_id:
            survey_ids.add(row.survey_id)
            if last_survey_date is None or row.created_at > last_survey_date:
                last_survey_date = row.created_at

    return RoadSegmentAggregate(
        tenant_id=tenant_id,
        road_segment_id=segment_id,
        total_surveys=len(survey_ids),
        total_anomalies=total_anomalies,
        unique_contributors=len(authors),
        last_survey_date=last_survey_date,
        average_ride_quality=value_sum / row_count if row_count else None,
    )


# ---------------------------------------------------------------------------
# Single segment
# ---------------------------------------------------------------------------

async def recompute(
    stores: Stores,
    tenant_id: str,
    segment_id: str,
    *,
    dry_run: bool = False,
) -> AggregateWrite:
    """
    Recompute and upsert one segment's aggregate.

    Store failures propagate; the batch driver isolates them per segment.
    In dry-run the existing row is only looked up to report created vs updated.
    """
    rows = await stores.ratings.find_by_segment(tenant_id, segment_id)
    aggregate = compute_aggregate(tenant_id, segment_id, rows)

    if dry_run:
        exists = await stores.aggregates.exists(tenant_id, segment_id)
        return AggregateWrite(aggregate, created=not exists, written=False)

    created = await stores.aggregates.upsert(aggregate)
    return AggregateWrite(aggregate, created=created, written=True)


# ---------------------------------------------------------------------------
# Batch driver
# ---------------------------------------------------------------------------

@dataclass
class AggregateSummary:
    total: int = 0
    processed: int = 0
    created: int = 0
    updated: int = 0
    errored: int = 0
    error_keys: list[str] = field(default_factory=list)
    by_condition: dict[str, int] = field(default_factory=dict)
    dry_run: bool = False
    aborted: bool = False
    duration_ms: int = 0

    def add_write(self, write: AggregateWrite) -> None:
        self.processed += 1
        if write.created:
            self.created += 1
        else:
            self.updated += 1
        band = condition_band(write.aggregate.average_ride_quality)
        self.by_condition[band] = self.by_condition.get(band, 0) + 1

    def add_error(self, key: SegmentKey) -> None:
        self.errored += 1
        self.error_keys.append(f"{key.tenant_id}/{key.road_segment_id}")

    def as_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "processed": self.processed,
            "created": self.created,
            "updated": self.updated,
            "errored": self.errored,
            "error_keys": list(self.error_keys),
            "by_condition": dict(sorted(self.by_condition.items())),
            "dry_run": self.dry_run,
            "aborted": self.aborted,
            "duration_ms": self.duration_ms,
        }


class SegmentLocks:
    """One asyncio.Lock per (tenant, segment) so the same pair never recomputes twice at once."""

    def __init__(self) -> None:
        self._locks: dict[SegmentKey, asyncio.Lock] = {}

    def for_key(self, key: SegmentKey) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock


async def _recompute_locked(
    stores: Stores,
    key: SegmentKey,
    locks: SegmentLocks,
    dry_run: bool,
) -> AggregateWrite:
    async with locks.for_key(key):
        return await recompute(stores, key.tenant_id, key.road_segment_id, dry_run=dry_run)


async def run_aggregate_backfill(
    stores: Stores,
    *,
    tenant_id: Optional[str] = None,
    batch_size: int = DEFAULT_BATCH_SIZE,
    dry_run: bool = False,
    locks: Optional[SegmentLocks] = None,
) -> AggregateSummary:
    """
    Recompute every (tenant, segment) pair that has rating history.

    Args:
        stores:     Rating and aggregate stores.
        tenant_id:  Restrict to one tenant (city hall).
        batch_size: Segments recomputed concurrently per batch.
        dry_run:    Compute everything, write nothing.
        locks:      Shared per-segment locks when several drivers run in one process.

    Returns:
        AggregateSummary with processed / created / updated / errored counts.
    """
    if batch_size < 1:
        raise ValueError("batch_size must be >= 1")

    start_ts = time.monotonic()
    summary = AggregateSummary(dry_run=dry_run)
    locks = locks or SegmentLocks()

    try:
        keys = await stores.ratings.list_segment_keys(tenant_id)
    except Exception:
        logger.exception("aggregates: could not list segments, aborting")
        summary.aborted = True
        summary.duration_ms = int((time.monotonic() - start_ts) * 1000)
        return summary

    summary.total = len(keys)
    logger.info(
        "aggregates: %d segments to recompute tenant=%s dry_run=%s batch_size=%d",
        summary.total,
        tenant_id or "ALL",
        dry_run,
        batch_size,
    )

    for batch_no, batch_start in enumerate(range(0, len(keys), batch_size), 1):
        batch = keys[batch_start : batch_start + batch_size]
        results = await asyncio.gather(
            *(_recompute_locked(stores, key, locks, dry_run) for key in batch),
            return_exceptions=True,
        )

        for key, result in zip(batch, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                summary.add_error(key)
                logger.error(
                    "aggregates: segment=%s tenant=%s failed: %r",
                    key.road_segment_id,
                    key.tenant_id,
                    result,
                    exc_info=result,
                )
            else:
                summary.add_write(result)

        logger.info(
            "aggregates: batch %d done %d/%d created=%d updated=%d errored=%d",
            batch_no,
            batch_start + len(batch),
            summary.total,
            summary.created,
            summary.updated,
            summary.errored,
        )

    summary.duration_ms = int((time.monotonic() - start_ts) * 1000)
    logger.info(
        "aggregates: complete processed=%d created=%d updated=%d errored=%d dry_run=%s duration_ms=%d",
        summary.processed,
        summary.created,
        summary.updated,
        summary.errored,
        dry_run,
        summary.duration_ms,
    )
    return summary
