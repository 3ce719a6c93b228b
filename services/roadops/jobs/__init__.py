"""
Operational batch jobs for road-rating reconciliation.

These run as standalone Python scripts on demand (or from a scheduler),
NOT inside the API process.

Usage:
    python -m services.roadops.jobs.reconcile_ratings [--segment ID] [--dry-run]
    python -m services.roadops.jobs.recompute_aggregates [--tenant ID] [--dry-run]
    python -m services.roadops.jobs.backfill_survey_segments [--project ID] [--dry-run]
    python -m services.roadops.jobs.prune_unresolved [--tenant ID] [--dry-run] [--yes]

Suggested order after an ingestion gap:
    backfill_survey_segments -> reconcile_ratings -> recompute_aggregates
"""
