"""
Store interfaces consumed by the reconciliation engine, plus their asyncpg
implementations.

Tables are owned by Prisma Migrate on the NestJS side; this module only reads
and writes existing columns (camelCase, quoted):

  "RoadRatingHistory"  id, entityId, roadId, eiri, userId, createdAt,
                       surveyId, projectId, anomaliesCount
  "Survey"             id, projectId, edgeIds (TEXT[]), eIriAvg, createdAt,
                       assignedUser
  "Project"            id, cityHallId, createdBy, createdAt
  "Hazard"             projectId, edgeId, createdAt
  "RoadRating"         id, entityId, roadId, segmentId, eiri, totalSurveys,
                       totalAnomalies, uniqueUsers, lastSurveyDate, updatedAt

Every method acquires its own connection so concurrent record tasks never
share one.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Protocol

from services.roadops.reconciliation.errors import AlreadyResolvedError
from services.roadops.reconciliation.models import (
    UNRESOLVED,
    HistoricalRating,
    HistoryRow,
    Project,
    Resolved,
    RoadSegmentAggregate,
    SegmentKey,
    Survey,
    TimeWindow,
)


# ---------------------------------------------------------------------------
# Interfaces
# ---------------------------------------------------------------------------

class SurveyStore(Protocol):
    async def find_surveys_by_tenant_and_segment(
        self, tenant_id: str, segment_id: str, window: TimeWindow
    ) -> list[Survey]: ...

    async def find_project_creator(self, project_id: str) -> Optional[str]: ...


class RatingStore(Protocol):
    async def find_unresolved(self, segment_id: Optional[str] = None) -> list[HistoricalRating]: ...

    async def update_resolution(self, rating_id: str, resolution: Resolved) -> None: ...

    async def list_segment_keys(self, tenant_id: Optional[str] = None) -> list[SegmentKey]: ...

    async def find_by_segment(self, tenant_id: str, segment_id: str) -> list[HistoryRow]: ...


class AnomalyStore(Protocol):
    async def count_anomalies(self, project_id: str, segment_id: str, window: TimeWindow) -> int: ...


class AggregateStore(Protocol):
    async def upsert(self, aggregate: RoadSegmentAggregate) -> bool: ...

    async def exists(self, tenant_id: str, segment_id: str) -> bool: ...


@dataclass
class Stores:
    """The four stores the engine talks to, bundled for the drivers."""
    surveys: SurveyStore
    ratings: RatingStore
    anomalies: AnomalyStore
    aggregates: AggregateStore

    @classmethod
    def from_pool(cls, pool: Any) -> "Stores":
        return cls(
            surveys=PgSurveyStore(pool),
            ratings=PgRatingStore(pool),
            anomalies=PgAnomalyStore(pool),
            aggregates=PgAggregateStore(pool),
        )


# ---------------------------------------------------------------------------
# Row mapping
# ---------------------------------------------------------------------------

def rating_from_row(row: Any) -> HistoricalRating:
    survey_id = row["surveyId"]
    project_id = row["projectId"]
    if survey_id and project_id:
        resolution = Resolved(survey_id, project_id, row["anomaliesCount"] or 0)
    else:
        resolution = UNRESOLVED
    return HistoricalRating(
        id=row["id"],
        tenant_id=row["entityId"],
        road_segment_id=row["roadId"],
        ride_quality_value=float(row["eiri"]),
        author_id=row["userId"],
        created_at=row["createdAt"],
        resolution=resolution,
    )


def history_from_row(row: Any) -> HistoryRow:
    return HistoryRow(
        tenant_id=row["entityId"],
        road_segment_id=row["roadId"],
        ride_quality_value=float(row["eiri"]),
        author_id=row["userId"],
        created_at=row["createdAt"],
        survey_id=row["surveyId"] or None,
        anomaly_count=row["anomaliesCount"] or 0,
    )


def project_from_row(row: Any) -> Project:
    return Project(
        id=row["id"],
        tenant_id=row["cityHallId"],
        creator_id=row["createdBy"],
        created_at=row["createdAt"],
    )


def survey_from_row(row: Any) -> Survey:
    avg = row["eIriAvg"]
    return Survey(
        id=row["id"],
        project_id=row["projectId"],
        tenant_id=row["cityHallId"],
        road_segment_ids=frozenset(row["edgeIds"] or ()),
        average_ride_quality=float(avg) if avg is not None else None,
        created_at=row["createdAt"],
        author_id=row["assignedUser"],
        project_creator_id=row["createdBy"],
    )


# ---------------------------------------------------------------------------
# SQL
# ---------------------------------------------------------------------------

_RATING_COLUMNS = """
    id, "entityId", "roadId", eiri, "userId", "createdAt",
    "surveyId", "projectId", "anomaliesCount"
"""

_FIND_UNRESOLVED_SQL = f"""
SELECT {_RATING_COLUMNS}
FROM "RoadRatingHistory"
WHERE ("surveyId" IS NULL OR "projectId" IS NULL)
  AND ($1::text IS NULL OR "roadId" = $1)
ORDER BY "createdAt" ASC
"""

# Only rows still unresolved are touched: a record resolves at most once
_UPDATE_RESOLUTION_SQL = """
UPDATE "RoadRatingHistory"
SET "surveyId" = $2,
    "projectId" = $3,
    "anomaliesCount" = $4
WHERE id = $1
  AND ("surveyId" IS NULL OR "projectId" IS NULL)
"""

_SEGMENT_KEYS_SQL = """
SELECT DISTINCT "entityId", "roadId"
FROM "RoadRatingHistory"
WHERE ($1::text IS NULL OR "entityId" = $1)
ORDER BY "entityId", "roadId"
"""

_RATINGS_FOR_SEGMENT_SQL = f"""
SELECT {_RATING_COLUMNS}
FROM "RoadRatingHistory"
WHERE "entityId" = $1 AND "roadId" = $2
ORDER BY "createdAt" ASC
"""

_CANDIDATE_SURVEYS_SQL = """
SELECT s.id, s."projectId", s."edgeIds", s."eIriAvg", s."createdAt",
       s."assignedUser", p."cityHallId", p."createdBy"
FROM "Survey" s
JOIN "Project" p ON p.id = s."projectId"
WHERE p."cityHallId" = $1
  AND $2 = ANY(s."edgeIds")
  AND s."createdAt" >= $3
  AND s."createdAt" <= $4
ORDER BY s."createdAt" ASC
"""

_PROJECT_SQL = """
SELECT id, "cityHallId", "createdBy", "createdAt" FROM "Project" WHERE id = $1
"""

_COUNT_ANOMALIES_SQL = """
SELECT COUNT(*)
FROM "Hazard"
WHERE "projectId" = $1
  AND "edgeId" = $2
  AND "createdAt" >= $3
  AND "createdAt" <= $4
"""

# RoadRating's unique index includes a nullable segmentId, so ON CONFLICT
# cannot target whole-road rows. Update-then-insert inside one transaction.
_UPDATE_AGGREGATE_SQL = """
UPDATE "RoadRating"
SET eiri = $3,
    "totalSurveys" = $4,
    "totalAnomalies" = $5,
    "uniqueUsers" = $6,
    "lastSurveyDate" = $7,
    "updatedAt" = NOW()
WHERE "entityId" = $1 AND "roadId" = $2 AND "segmentId" IS NULL
RETURNING id
"""

_INSERT_AGGREGATE_SQL = """
INSERT INTO "RoadRating" (
    id, "entityId", "roadId", eiri, "totalSurveys", "totalAnomalies",
    "uniqueUsers", "lastSurveyDate", "updatedAt"
)
VALUES (gen_random_uuid()::text, $1, $2, $3, $4, $5, $6, $7, NOW())
"""

_AGGREGATE_EXISTS_SQL = """
SELECT id FROM "RoadRating"
WHERE "entityId" = $1 AND "roadId" = $2 AND "segmentId" IS NULL
LIMIT 1
"""


def _rows_affected(status: str) -> int:
    """asyncpg returns command tags like 'UPDATE 3'."""
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (ValueError, AttributeError):
        return 0


# ---------------------------------------------------------------------------
# asyncpg implementations
# ---------------------------------------------------------------------------

class PgSurveyStore:
    def __init__(self, pool: Any) -> None:
        self._pool = pool

    async def find_surveys_by_tenant_and_segment(
        self, tenant_id: str, segment_id: str, window: TimeWindow
    ) -> list[Survey]:
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(
                _CANDIDATE_SURVEYS_SQL, tenant_id, segment_id, window.start, window.end,
            )
        return [survey_from_row(r) for r in rows]

    async def find_project_creator(self, project_id: str) -> Optional[str]:
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(_PROJECT_SQL, project_id)
        return project_from_row(row).creator_id if row is not None else None


class PgRatingStore:
    def __init__(self, pool: Any) -> None:
        self._pool = pool

    async def find_unresolved(self, segment_id: Optional[str] = None) -> list[HistoricalRating]:
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(_FIND_UNRESOLVED_SQL, segment_id)
        return [rating_from_row(r) for r in rows]

    async def update_resolution(self, rating_id: str, resolution: Resolved) -> None:
        # A zero count is stored as NULL, matching rows written at ingestion
        anomalies = resolution.anomaly_count or None
        async with self._pool.acquire() as conn:
            status = await conn.execute(
                _UPDATE_RESOLUTION_SQL,
                rating_id,
                resolution.survey_id,
                resolution.project_id,
                anomalies,
            )
        if _rows_affected(status) == 0:
            raise AlreadyResolvedError(f"rating {rating_id} was resolved by another run")

    async def list_segment_keys(self, tenant_id: Optional[str] = None) -> list[SegmentKey]:
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(_SEGMENT_KEYS_SQL, tenant_id)
        return [SegmentKey(r["entityId"], r["roadId"]) for r in rows]

    async def find_by_segment(self, tenant_id: str, segment_id: str) -> list[HistoryRow]:
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(_RATINGS_FOR_SEGMENT_SQL, tenant_id, segment_id)
        return [history_from_row(r) for r in rows]


class PgAnomalyStore:
    def __init__(self, pool: Any) -> None:
        self._pool = pool

    async def count_anomalies(self, project_id: str, segment_id: str, window: TimeWindow) -> int:
        async with self._pool.acquire() as conn:
            count = await conn.fetchval(
                _COUNT_ANOMALIES_SQL, project_id, segment_id, window.start, window.end,
            )
        return int(count or 0)


class PgAggregateStore:
    def __init__(self, pool: Any) -> None:
        self._pool = pool

    async def upsert(self, aggregate: RoadSegmentAggregate) -> bool:
        """Write all five fields together. Returns True when the row was created."""
        # eiri is NOT NULL on RoadRating
        eiri = aggregate.average_ride_quality if aggregate.average_ride_quality is not None else 0.0
        values = (
            eiri,
            aggregate.total_surveys,
            aggregate.total_anomalies,
            aggregate.unique_contributors,
            aggregate.last_survey_date,
        )
        async with self._pool.acquire() as conn:
            async with conn.transaction():
                updated = await conn.fetchrow(
                    _UPDATE_AGGREGATE_SQL,
                    aggregate.tenant_id,
                    aggregate.road_segment_id,
                    *values,
                )
                if updated is not None:
                    return False
                await conn.execute(
                    _INSERT_AGGREGATE_SQL,
                    aggregate.tenant_id,
                    aggregate.road_segment_id,
                    *values,
                )
        return True

    async def exists(self, tenant_id: str, segment_id: str) -> bool:
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(_AGGREGATE_EXISTS_SQL, tenant_id, segment_id)
        return row is not None
