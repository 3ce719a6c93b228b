"""
Ride-quality (eIRI) condition bands used by dashboard colouring.

Lower is better. Band edges are exclusive upper bounds.
"""

from __future__ import annotations

import math
from typing import Optional

# (exclusive upper bound, band name)
CONDITION_BANDS: tuple[tuple[float, str], ...] = (
    (1.5, "green"),
    (2.5, "light_green"),
    (3.5, "light_orange"),
    (4.5, "orange"),
)

NO_RATING_BAND = "gray"
WORST_BAND = "red"


def condition_band(value: Optional[float]) -> str:
    """Map a ride-quality value to its condition band name."""
    if value is None or math.isnan(value) or value <= 0:
        return NO_RATING_BAND
    for upper, name in CONDITION_BANDS:
        if value < upper:
            return name
    return WORST_BAND
