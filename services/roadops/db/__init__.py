"""
asyncpg database access.

Tables are owned by Prisma Migrate on the NestJS side; this service only
reads and writes existing columns.
"""

from services.roadops.db.pool import create_pool, job_pool

__all__ = [
    "create_pool",
    "job_pool",
]
