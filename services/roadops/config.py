"""
Application configuration via pydantic-settings.
All config read from environment variables with sensible defaults for local dev.
"""

from pydantic import Field
from pydantic_settings import BaseSettings

from services.roadops.reconciliation.errors import ConfigurationError


class Settings(BaseSettings):
    # App
    app_name: str = "roadops-reconciler"
    app_version: str = "0.1.0"
    environment: str = Field(default="development", pattern=r"^(development|staging|production)$")
    debug: bool = False
    log_level: str = Field(default="INFO", pattern=r"^(DEBUG|INFO|WARNING|ERROR)$")

    # Database (no default: jobs refuse to start without one)
    database_url: str = ""
    db_pool_min_size: int = Field(default=1, ge=1)
    db_pool_max_size: int = Field(default=5, ge=1)
    db_command_timeout_s: float = 30.0

    # Sentry
    sentry_dsn: str = ""
    sentry_traces_sample_rate: float = Field(default=0.0, ge=0.0, le=1.0)

    # Rating reconciliation (the 5-minute match window and tier thresholds are fixed in code)
    reconcile_chunk_size: int = Field(default=50, ge=1)
    reconcile_record_timeout_s: float = Field(default=30.0, gt=0.0)

    # Aggregate recomputation
    aggregate_batch_size: int = Field(default=100, ge=1)

    model_config = {"env_prefix": "", "env_file": ".env", "extra": "ignore"}


settings = Settings()


def validate_for_jobs(cfg: Settings) -> None:
    """
    Pre-flight check run by every job before a pool is opened.

    Raises ConfigurationError when the database is not configured.
    """
    if not cfg.database_url:
        raise ConfigurationError("DATABASE_URL is not set")
    if not cfg.database_url.startswith(("postgresql://", "postgres://")):
        raise ConfigurationError(
            f"DATABASE_URL must be a postgres URL (got scheme {cfg.database_url.split(':', 1)[0]!r})"
        )
    if cfg.db_pool_min_size > cfg.db_pool_max_size:
        raise ConfigurationError(
            f"DB_POOL_MIN_SIZE ({cfg.db_pool_min_size}) exceeds DB_POOL_MAX_SIZE ({cfg.db_pool_max_size})"
        )
