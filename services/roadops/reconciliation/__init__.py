"""
Historical road-rating reconciliation.

Links RoadRatingHistory rows to the survey and project that produced them
(locator -> scorer -> policy -> backfill driver) and recomputes the per-road
RoadRating aggregates from that history.
"""
