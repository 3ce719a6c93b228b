"""
Survey road-segment backfill.

Surveys recorded before segment tracking have no "edgeIds"; the candidate
locator can never match them. This job derives the segment set (and route
length) from the survey's stored geometryJson FeatureCollection:

  edgeIds       distinct edgeId / edge_id / roadId / road_id feature properties
  lengthMeters  haversine length of every LineString in the collection

Entry point:
    async def run_survey_segment_backfill(pool, project_id=None, dry_run=False)

With project_id, every survey of that project is rewritten. Without it, only
surveys whose edgeIds are NULL or empty are touched. A survey whose geometry
carries no segment ids is counted under without_segments and left unwritten.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Optional

from services.roadops.geo.geometry import extract_segment_ids, geojson_length_meters

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# SQL
# ---------------------------------------------------------------------------

_SURVEYS_FOR_PROJECT_SQL = """
SELECT id, "geometryJson"
FROM "Survey"
WHERE "projectId" = $1
ORDER BY "createdAt" ASC
"""

_SURVEYS_MISSING_SEGMENTS_SQL = """
SELECT id, "geometryJson"
FROM "Survey"
WHERE ("edgeIds" IS NULL OR cardinality("edgeIds") = 0)
  AND "geometryJson" IS NOT NULL
ORDER BY "createdAt" ASC
"""

_UPDATE_SURVEY_SQL = """
UPDATE "Survey"
SET "edgeIds" = $2,
    "lengthMeters" = COALESCE($3, "lengthMeters"),
    "updatedAt" = NOW()
WHERE id = $1
"""


# ---------------------------------------------------------------------------
# Stats
# ---------------------------------------------------------------------------

@dataclass
class SurveySegmentSummary:
    total: int = 0
    updated: int = 0
    without_segments: int = 0
    errored: int = 0
    error_ids: list[str] = field(default_factory=list)
    dry_run: bool = False
    duration_ms: int = 0

    def as_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "updated": self.updated,
            "without_segments": self.without_segments,
            "errored": self.errored,
            "error_ids": list(self.error_ids),
            "dry_run": self.dry_run,
            "duration_ms": self.duration_ms,
        }


# ---------------------------------------------------------------------------
# Core logic
# ---------------------------------------------------------------------------

def _load_geometry(raw: Any) -> Any:
    """asyncpg returns json/jsonb as text unless a codec is registered."""
    if isinstance(raw, (str, bytes)):
        return json.loads(raw)
    return raw


def derive_survey_segments(geometry: Any) -> tuple[list[str], Optional[float]]:
    """Segment ids and route length (None when the geometry has no lines)."""
    segment_ids = extract_segment_ids(geometry)
    length = geojson_length_meters(geometry)
    return segment_ids, (round(length, 2) if length > 0 else None)


async def run_survey_segment_backfill(
    pool: Any,
    project_id: Optional[str] = None,
    *,
    dry_run: bool = False,
) -> SurveySegmentSummary:
    """
    Populate Survey.edgeIds / lengthMeters from stored geometry.

    Args:
        pool:       asyncpg connection pool.
        project_id: Rewrite every survey of one project; None = all surveys
                    that have no segments yet.
        dry_run:    Parse and count without writing.
    """
    start_ts = time.monotonic()
    summary = SurveySegmentSummary(dry_run=dry_run)

    async with pool.acquire() as conn:
        if project_id:
            rows = await conn.fetch(_SURVEYS_FOR_PROJECT_SQL, project_id)
        else:
            rows = await conn.fetch(_SURVEYS_MISSING_SEGMENTS_SQL)

        summary.total = len(rows)
        logger.info(
            "survey_segments: %d surveys to process project=%s dry_run=%s",
            summary.total,
            project_id or "ALL",
            dry_run,
        )
        if not rows:
            logger.info("survey_segments: no surveys found")

        for row in rows:
            survey_id = row["id"]
            try:
                geometry = _load_geometry(row["geometryJson"])
                segment_ids, length_m = derive_survey_segments(geometry)
                if not segment_ids:
                    # Nothing to link; leave existing edgeIds untouched
                    summary.without_segments += 1
                    logger.info("survey_segments: survey=%s has no segment ids", survey_id)
                    continue
                logger.debug(
                    "survey_segments: survey=%s segments=%d length_m=%s",
                    survey_id,
                    len(segment_ids),
                    length_m,
                )
                if not dry_run:
                    await conn.execute(_UPDATE_SURVEY_SQL, survey_id, segment_ids, length_m)
                summary.updated += 1
            except Exception:
                summary.errored += 1
                summary.error_ids.append(survey_id)
                logger.exception("survey_segments: survey=%s failed", survey_id)

    summary.duration_ms = int((time.monotonic() - start_ts) * 1000)
    logger.info(
        "survey_segments: complete updated=%d without_segments=%d errored=%d duration_ms=%d",
        summary.updated,
        summary.without_segments,
        summary.errored,
        summary.duration_ms,
    )
    return summary
