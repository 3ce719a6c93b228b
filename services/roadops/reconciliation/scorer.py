"""
Confidence scoring for candidate surveys.

Time proximity is the primary signal; ride-quality agreement corroborates it.
Tiers, first match wins (strict <):

  high    Δt < 60s  and |Δvalue| < 0.1
  medium  Δt < 180s and |Δvalue| < 0.5
  low     anything else, including surveys with no recorded average
"""

from __future__ import annotations

import math
from typing import Optional

from services.roadops.reconciliation.models import (
    CandidateMatch,
    ConfidenceTier,
    HistoricalRating,
    Survey,
)

HIGH_MAX_TIME_DELTA_MS = 60_000
HIGH_MAX_VALUE_DELTA = 0.1

MEDIUM_MAX_TIME_DELTA_MS = 180_000
MEDIUM_MAX_VALUE_DELTA = 0.5


def classify_tier(time_delta_ms: float, value_delta: float) -> ConfidenceTier:
    if time_delta_ms < HIGH_MAX_TIME_DELTA_MS and value_delta < HIGH_MAX_VALUE_DELTA:
        return ConfidenceTier.HIGH
    if time_delta_ms < MEDIUM_MAX_TIME_DELTA_MS and value_delta < MEDIUM_MAX_VALUE_DELTA:
        return ConfidenceTier.MEDIUM
    return ConfidenceTier.LOW


def value_delta(record_value: float, survey_average: Optional[float]) -> float:
    """Absolute difference; a missing average is unbounded."""
    if survey_average is None:
        return math.inf
    return abs(survey_average - record_value)


def score(record: HistoricalRating, candidate: Survey) -> CandidateMatch:
    delta = candidate.created_at - record.created_at
    time_delta_ms = abs(round(delta.total_seconds() * 1000))
    v_delta = value_delta(record.ride_quality_value, candidate.average_ride_quality)
    return CandidateMatch(
        survey_id=candidate.id,
        project_id=candidate.project_id,
        tier=classify_tier(time_delta_ms, v_delta),
        time_delta_ms=time_delta_ms,
        value_delta=v_delta,
    )
