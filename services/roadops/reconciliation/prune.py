"""
Delete RoadRatingHistory rows that could not be linked to a survey.

Run after the rating backfill when the remaining unresolved rows have been
reviewed and are known to be orphans. Destructive: requires confirm=True
unless dry_run is set.

Entry point:
    async def prune_unresolved(pool, tenant_id=None, dry_run=False, confirm=False)
"""

from __future__ import annotations

import logging
from typing import Any, Optional

logger = logging.getLogger(__name__)

SAMPLE_SIZE = 5

_UNRESOLVED_WHERE = """
("surveyId" IS NULL OR "projectId" IS NULL)
AND ($1::text IS NULL OR "entityId" = $1)
"""

_COUNT_SQL = f'SELECT COUNT(*) FROM "RoadRatingHistory" WHERE {_UNRESOLVED_WHERE}'

_SAMPLE_SQL = f"""
SELECT id, "roadId", eiri, "createdAt"
FROM "RoadRatingHistory"
WHERE {_UNRESOLVED_WHERE}
ORDER BY "createdAt" ASC
LIMIT {SAMPLE_SIZE}
"""

_DELETE_SQL = f'DELETE FROM "RoadRatingHistory" WHERE {_UNRESOLVED_WHERE}'


async def prune_unresolved(
    pool: Any,
    tenant_id: Optional[str] = None,
    *,
    dry_run: bool = False,
    confirm: bool = False,
) -> dict[str, Any]:
    """
    Returns::

        {"found": int, "deleted": int, "sample": [ {...}, ... ], "dry_run": bool}
    """
    if not dry_run and not confirm:
        raise ValueError("prune_unresolved deletes history rows; pass confirm=True or dry_run=True")

    async with pool.acquire() as conn:
        found = int(await conn.fetchval(_COUNT_SQL, tenant_id) or 0)
        logger.info("prune: %d unresolved rows tenant=%s", found, tenant_id or "ALL")
        if found == 0:
            return {"found": 0, "deleted": 0, "sample": [], "dry_run": dry_run}

        sample_rows = await conn.fetch(_SAMPLE_SQL, tenant_id)
        sample = [
            {
                "id": r["id"],
                "road_segment_id": r["roadId"],
                "ride_quality_value": r["eiri"],
                "created_at": r["createdAt"].isoformat() if r["createdAt"] else None,
            }
            for r in sample_rows
        ]
        for entry in sample:
            logger.info("prune:   sample %s", entry)

        deleted = 0
        if not dry_run:
            async with conn.transaction():
                status = await conn.execute(_DELETE_SQL, tenant_id)
            deleted = int(status.rsplit(" ", 1)[-1])
            logger.info("prune: deleted %d rows", deleted)

    return {"found": found, "deleted": deleted, "sample": sample, "dry_run": dry_run}
