"""
Resolution policy tests.

Covers:
- no candidates / low confidence / ambiguous mediums stay unresolved
- a single high or single medium resolves
- several highs resolve to the closest in time and are flagged
- determinism regardless of input order
"""

import itertools

from services.roadops.reconciliation.models import (
    CandidateMatch,
    ConfidenceTier,
    MatchResolved,
    MatchUnresolved,
    UnresolvedReason,
)
from services.roadops.reconciliation.policy import resolve


def match(survey_id, tier, dt_ms, project_id="project-1"):
    return CandidateMatch(survey_id, project_id, tier, dt_ms, 0.0)


HIGH, MEDIUM, LOW = ConfidenceTier.HIGH, ConfidenceTier.MEDIUM, ConfidenceTier.LOW


class TestResolve:
    def test_no_candidates(self):
        assert resolve([]) == MatchUnresolved(UnresolvedReason.NO_CANDIDATES)

    def test_single_high(self):
        m = match("s1", HIGH, 20_000)
        outcome = resolve([m, match("s2", LOW, 250_000)])

        assert isinstance(outcome, MatchResolved)
        assert outcome.winner == m
        assert not outcome.tie_broken
        assert outcome.candidate_count == 2

    def test_several_highs_pick_closest(self):
        first = match("s1", HIGH, 10_000)
        second = match("s2", HIGH, 5_000)

        outcome = resolve([first, second])

        assert isinstance(outcome, MatchResolved)
        assert outcome.winner == second
        assert outcome.tie_broken

    def test_high_beats_medium(self):
        high = match("s2", HIGH, 50_000)
        outcome = resolve([match("s1", MEDIUM, 1_000), high])
        assert outcome.winner == high

    def test_single_medium(self):
        m = match("s1", MEDIUM, 120_000)
        outcome = resolve([m, match("s2", LOW, 10_000)])

        assert isinstance(outcome, MatchResolved)
        assert outcome.winner == m

    def test_several_mediums_ambiguous(self):
        outcome = resolve([match("s1", MEDIUM, 70_000), match("s2", MEDIUM, 90_000)])
        assert outcome == MatchUnresolved(UnresolvedReason.AMBIGUOUS)

    def test_only_low(self):
        outcome = resolve([match("s1", LOW, 10_000), match("s2", LOW, 20_000)])
        assert outcome == MatchUnresolved(UnresolvedReason.LOW_CONFIDENCE)

    def test_deterministic_under_permutation(self):
        matches = [
            match("s3", HIGH, 8_000),
            match("s1", HIGH, 8_000),
            match("s2", HIGH, 9_000),
            match("s4", MEDIUM, 100),
        ]
        outcomes = {resolve(list(p)) for p in itertools.permutations(matches)}

        assert len(outcomes) == 1
        assert outcomes.pop().winner.survey_id == "s1"
