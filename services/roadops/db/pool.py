"""
asyncpg pool factory for the batch jobs.

Pool size bounds concurrent store load: a reconciliation chunk can have up to
chunk_size records waiting on a connection, and they queue on acquire().
"""

from contextlib import asynccontextmanager

import asyncpg

from services.roadops.config import Settings, settings as default_settings


async def create_pool(cfg: Settings = default_settings) -> asyncpg.Pool:
    return await asyncpg.create_pool(
        cfg.database_url,
        min_size=cfg.db_pool_min_size,
        max_size=cfg.db_pool_max_size,
        command_timeout=cfg.db_command_timeout_s,
    )


@asynccontextmanager
async def job_pool(cfg: Settings = default_settings):
    """For standalone jobs: opens a pool and always closes it."""
    pool = await create_pool(cfg)
    try:
        yield pool
    finally:
        await pool.close()
