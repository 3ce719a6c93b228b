"""
Candidate locator: which surveys could have produced a historical rating.

A survey is a candidate when all four hold:
  1. same tenant as the rating
  2. the rating's road segment is in the survey's segment set (exact membership)
  3. |survey.createdAt - rating.createdAt| <= W  (W = 5 minutes)
  4. the rating's author created the survey's project OR is the survey's author

The window is tight on purpose: ingestion wrote the rating immediately after
survey completion, and a wider window pulls in unrelated surveys of the same
road.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional

from services.roadops.reconciliation.models import HistoricalRating, Survey, TimeWindow
from services.roadops.reconciliation.stores import SurveyStore

logger = logging.getLogger(__name__)

MATCH_WINDOW = timedelta(minutes=5)


def is_candidate(
    record: HistoricalRating,
    survey: Survey,
    window: timedelta = MATCH_WINDOW,
    project_creator_id: Optional[str] = None,
) -> bool:
    """Pure check of the four candidate constraints."""
    if survey.tenant_id != record.tenant_id:
        return False
    if record.road_segment_id not in survey.road_segment_ids:
        return False
    if abs(survey.created_at - record.created_at) > window:
        return False

    creator = project_creator_id if project_creator_id is not None else survey.project_creator_id
    return record.author_id in (creator, survey.author_id)


class CandidateLocator:
    def __init__(self, survey_store: SurveyStore, window: timedelta = MATCH_WINDOW) -> None:
        self._surveys = survey_store
        self.window = window

    async def locate_candidates(self, record: HistoricalRating) -> list[Survey]:
        """
        Surveys that satisfy every candidate constraint for this record.

        The store narrows by tenant, segment and time; the constraints are
        re-applied here so a loose store query can never widen the result.
        An empty list is the normal "insufficient history" outcome.
        """
        window = TimeWindow.around(record.created_at, self.window)
        surveys = await self._surveys.find_surveys_by_tenant_and_segment(
            record.tenant_id, record.road_segment_id, window,
        )

        creators: dict[str, Optional[str]] = {}
        candidates: list[Survey] = []
        for survey in surveys:
            creator = survey.project_creator_id
            if creator is None:
                if survey.project_id not in creators:
                    creators[survey.project_id] = await self._surveys.find_project_creator(
                        survey.project_id
                    )
                creator = creators[survey.project_id]
            if is_candidate(record, survey, self.window, project_creator_id=creator):
                candidates.append(survey)

        logger.debug(
            "locator: rating=%s segment=%s fetched=%d candidates=%d",
            record.id,
            record.road_segment_id,
            len(surveys),
            len(candidates),
        )
        return candidates
