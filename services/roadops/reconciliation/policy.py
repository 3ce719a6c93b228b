"""
Resolution policy: pick at most one winning survey from scored candidates.

Decision procedure, top-down:
  1. no candidates                      -> unresolved(no_candidates)
  2. exactly one high                   -> resolved
     several highs                      -> resolved with smallest Δt,
                                           flagged tie_broken for the caller to warn
  3. no high, exactly one medium        -> resolved
     no high, several mediums           -> unresolved(ambiguous)
     no high, no medium                 -> unresolved(low_confidence)

Several highs resolve but several mediums do not: an unresolved record can be
picked up by hand later, a wrong match silently corrupts road aggregates.
"""

from __future__ import annotations

from typing import Sequence

from services.roadops.reconciliation.models import (
    CandidateMatch,
    ConfidenceTier,
    MatchOutcome,
    MatchResolved,
    MatchUnresolved,
    UnresolvedReason,
)


def _closest_in_time(matches: Sequence[CandidateMatch]) -> CandidateMatch:
    # survey_id breaks exact ties so input order never matters
    return min(matches, key=lambda m: (m.time_delta_ms, m.survey_id))


def resolve(matches: Sequence[CandidateMatch]) -> MatchOutcome:
    """Pure: the same candidate set always yields the same outcome."""
    if not matches:
        return MatchUnresolved(UnresolvedReason.NO_CANDIDATES)

    highs = [m for m in matches if m.tier is ConfidenceTier.HIGH]
    if len(highs) == 1:
        return MatchResolved(highs[0], tie_broken=False, candidate_count=len(matches))
    if len(highs) > 1:
        best = _closest_in_time(highs)
        return MatchResolved(best, tie_broken=True, candidate_count=len(matches))

    mediums = [m for m in matches if m.tier is ConfidenceTier.MEDIUM]
    if len(mediums) == 1:
        return MatchResolved(mediums[0], tie_broken=False, candidate_count=len(matches))
    if len(mediums) > 1:
        return MatchUnresolved(UnresolvedReason.AMBIGUOUS)
    return MatchUnresolved(UnresolvedReason.LOW_CONFIDENCE)
