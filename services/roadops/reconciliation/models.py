"""
Data model for historical road-rating reconciliation.

Column names in the database are camelCase (Prisma owns the schema); the
dataclasses here use snake_case and the stores translate.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Union

from services.roadops.reconciliation.errors import AlreadyResolvedError


# ---------------------------------------------------------------------------
# Historical ratings (resolution is an explicit sum type)
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Unresolved:
    """No survey has been linked yet."""


@dataclass(frozen=True)
class Resolved:
    survey_id: str
    project_id: str
    anomaly_count: int = 0


Resolution = Union[Unresolved, Resolved]

UNRESOLVED = Unresolved()


@dataclass(frozen=True)
class HistoricalRating:
    """One point-in-time ride-quality reading recorded before linkage metadata existed."""
    id: str
    tenant_id: str
    road_segment_id: str
    ride_quality_value: float
    author_id: str
    created_at: datetime
    resolution: Resolution = UNRESOLVED

    @property
    def is_resolved(self) -> bool:
        return isinstance(self.resolution, Resolved)

    def with_resolution(self, resolution: Resolved) -> "HistoricalRating":
        """Return a copy carrying the resolution. A record resolves at most once."""
        if self.is_resolved:
            raise AlreadyResolvedError(f"rating {self.id} is already resolved")
        return replace(self, resolution=resolution)


@dataclass(frozen=True)
class HistoryRow:
    """
    A history row as aggregate recomputation reads it.

    Carries the raw survey link and anomaly count, so rows linked to a survey
    but not to a project still count towards the road's totals.
    """
    tenant_id: str
    road_segment_id: str
    ride_quality_value: float
    author_id: str
    created_at: datetime
    survey_id: Optional[str] = None
    anomaly_count: int = 0

    @classmethod
    def from_rating(cls, rating: HistoricalRating) -> "HistoryRow":
        resolution = rating.resolution
        linked = isinstance(resolution, Resolved)
        return cls(
            tenant_id=rating.tenant_id,
            road_segment_id=rating.road_segment_id,
            ride_quality_value=rating.ride_quality_value,
            author_id=rating.author_id,
            created_at=rating.created_at,
            survey_id=resolution.survey_id if linked else None,
            anomaly_count=resolution.anomaly_count if linked else 0,
        )


# ---------------------------------------------------------------------------
# Surveys / projects (read-only inputs)
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Survey:
    id: str
    project_id: str
    tenant_id: str
    road_segment_ids: frozenset[str]
    average_ride_quality: Optional[float]
    created_at: datetime
    author_id: Optional[str]
    # Filled when the store joins the project row; None means "ask the store"
    project_creator_id: Optional[str] = None


@dataclass(frozen=True)
class Project:
    id: str
    tenant_id: str
    creator_id: Optional[str]
    created_at: datetime


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------

class ConfidenceTier(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True)
class CandidateMatch:
    """A scored candidate survey. Transient, never persisted."""
    survey_id: str
    project_id: str
    tier: ConfidenceTier
    time_delta_ms: int
    value_delta: float = math.inf


class UnresolvedReason(str, Enum):
    NO_CANDIDATES = "no_candidates"
    AMBIGUOUS = "ambiguous"
    LOW_CONFIDENCE = "low_confidence"


@dataclass(frozen=True)
class MatchResolved:
    winner: CandidateMatch
    # True when several high-confidence candidates competed and the
    # closest-in-time one was picked
    tie_broken: bool = False
    candidate_count: int = 1

    status = "resolved"


@dataclass(frozen=True)
class MatchUnresolved:
    reason: UnresolvedReason

    status = "unresolved"


MatchOutcome = Union[MatchResolved, MatchUnresolved]


# ---------------------------------------------------------------------------
# Time windows
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TimeWindow:
    start: datetime
    end: datetime

    @classmethod
    def around(cls, ts: datetime, width: timedelta) -> "TimeWindow":
        return cls(ts - width, ts + width)

    def contains(self, ts: datetime) -> bool:
        return self.start <= ts <= self.end


# ---------------------------------------------------------------------------
# Aggregates
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RoadSegmentAggregate:
    tenant_id: str
    road_segment_id: str
    total_surveys: int
    total_anomalies: int
    unique_contributors: int
    last_survey_date: Optional[datetime]
    average_ride_quality: Optional[float]

    def as_dict(self) -> dict:
        return {
            "tenant_id": self.tenant_id,
            "road_segment_id": self.road_segment_id,
            "total_surveys": self.total_surveys,
            "total_anomalies": self.total_anomalies,
            "unique_contributors": self.unique_contributors,
            "last_survey_date": self.last_survey_date.isoformat() if self.last_survey_date else None,
            "average_ride_quality": self.average_ride_quality,
        }


@dataclass(frozen=True)
class SegmentKey:
    tenant_id: str
    road_segment_id: str


@dataclass
class AggregateWrite:
    aggregate: RoadSegmentAggregate
    created: bool
    written: bool = True
