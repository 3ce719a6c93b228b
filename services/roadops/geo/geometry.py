"""
Geometry helpers for survey routes and road segments.

All coordinates are GeoJSON order: (lng, lat) in degrees.
Distances use the haversine great-circle formula using only the math module,
accurate to well under 0.5% at road-segment scale.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Sequence

Coord = tuple[float, float]

# Mean earth radius (IUGG)
EARTH_RADIUS_M = 6_371_008.8

# Road segments are split into pieces of roughly this length
SEGMENT_LENGTH_M = 50.0

# Max distance for a GPS point to count as "on" a line
DEFAULT_POINT_TOLERANCE_M = 10.0

# Feature property keys that carry a road-segment id, in priority order
SEGMENT_ID_KEYS = ("edgeId", "edge_id", "roadId", "road_id")


# ---------------------------------------------------------------------------
# Distance
# ---------------------------------------------------------------------------

def haversine_meters(a: Sequence[float], b: Sequence[float]) -> float:
    """Great-circle distance in meters between two (lng, lat) points."""
    lng1, lat1 = a[0], a[1]
    lng2, lat2 = b[0], b[1]

    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lng2 - lng1)

    h = (
        math.sin(dphi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    )
    return 2 * EARTH_RADIUS_M * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def path_length_meters(coords: Sequence[Sequence[float]]) -> float:
    """Sum of haversine legs along a polyline. 0.0 for fewer than 2 points."""
    total = 0.0
    for i in range(1, len(coords)):
        total += haversine_meters(coords[i - 1], coords[i])
    return total


# ---------------------------------------------------------------------------
# Bounding boxes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BBox:
    min_lng: float
    min_lat: float
    max_lng: float
    max_lat: float

    def as_list(self) -> list[float]:
        return [self.min_lng, self.min_lat, self.max_lng, self.max_lat]


def bounding_box(coords: Iterable[Sequence[float]]) -> BBox:
    """Smallest axis-aligned box containing every coordinate."""
    lngs: list[float] = []
    lats: list[float] = []
    for c in coords:
        lngs.append(c[0])
        lats.append(c[1])
    if not lngs:
        raise ValueError("bounding_box requires at least one coordinate")
    return BBox(min(lngs), min(lats), max(lngs), max(lats))


def bbox_contains(bbox: BBox, point: Sequence[float]) -> bool:
    """Inclusive on all edges."""
    return (
        bbox.min_lng <= point[0] <= bbox.max_lng
        and bbox.min_lat <= point[1] <= bbox.max_lat
    )


def bbox_intersects(a: BBox, b: BBox) -> bool:
    return not (
        a.max_lng < b.min_lng
        or b.max_lng < a.min_lng
        or a.max_lat < b.min_lat
        or b.max_lat < a.min_lat
    )


# ---------------------------------------------------------------------------
# Point / line containment
# ---------------------------------------------------------------------------

def _to_local_xy(origin: Sequence[float], point: Sequence[float]) -> tuple[float, float]:
    """Equirectangular projection around origin, in meters."""
    lat0 = math.radians(origin[1])
    x = math.radians(point[0] - origin[0]) * math.cos(lat0) * EARTH_RADIUS_M
    y = math.radians(point[1] - origin[1]) * EARTH_RADIUS_M
    return x, y


def _point_to_leg_meters(
    point: Sequence[float], start: Sequence[float], end: Sequence[float]
) -> float:
    px, py = _to_local_xy(point, point)
    ax, ay = _to_local_xy(point, start)
    bx, by = _to_local_xy(point, end)

    dx, dy = bx - ax, by - ay
    seg_len_sq = dx * dx + dy * dy
    if seg_len_sq == 0.0:
        return math.hypot(px - ax, py - ay)

    t = ((px - ax) * dx + (py - ay) * dy) / seg_len_sq
    t = max(0.0, min(1.0, t))
    return math.hypot(px - (ax + t * dx), py - (ay + t * dy))


def point_to_line_distance_meters(
    point: Sequence[float], line: Sequence[Sequence[float]]
) -> float:
    """Shortest distance from point to any leg of the polyline."""
    if not line:
        raise ValueError("line must contain at least one coordinate")
    if len(line) == 1:
        return haversine_meters(point, line[0])
    return min(
        _point_to_leg_meters(point, line[i - 1], line[i])
        for i in range(1, len(line))
    )


def point_on_line(
    point: Sequence[float],
    line: Sequence[Sequence[float]],
    tolerance_m: float = DEFAULT_POINT_TOLERANCE_M,
) -> bool:
    """True when the point lies within tolerance_m of the polyline."""
    if not line:
        return False
    return point_to_line_distance_meters(point, line) <= tolerance_m


# ---------------------------------------------------------------------------
# Segmentation
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LinePiece:
    index: int
    piece_id: str
    coords: tuple[Coord, ...]
    start_m: float
    end_m: float


def split_line(
    segment_id: str,
    coords: Sequence[Sequence[float]],
    segment_length_m: float = SEGMENT_LENGTH_M,
) -> list[LinePiece]:
    """
    Split a road segment's polyline into pieces of ~segment_length_m.

    Pieces break at existing vertices (no interpolation), so a piece can run
    longer than segment_length_m when vertices are sparse. Piece ids are
    "{segment_id}_seg_{n}".
    """
    if len(coords) < 2:
        return []

    points = [(float(c[0]), float(c[1])) for c in coords]
    cumulative = [0.0]
    for i in range(1, len(points)):
        cumulative.append(cumulative[-1] + haversine_meters(points[i - 1], points[i]))
    total = cumulative[-1]

    if total == 0.0:
        return [LinePiece(0, f"{segment_id}_seg_0", (points[0], points[-1]), 0.0, 0.0)]

    pieces: list[LinePiece] = []
    index = 0
    piece_start = 0.0
    current = [points[0]]

    for i in range(1, len(points)):
        current.append(points[i])
        if cumulative[i] - piece_start >= segment_length_m:
            pieces.append(
                LinePiece(index, f"{segment_id}_seg_{index}", tuple(current), piece_start, cumulative[i])
            )
            index += 1
            piece_start = cumulative[i]
            current = [points[i]]

    if len(current) >= 2 and piece_start < total:
        pieces.append(
            LinePiece(index, f"{segment_id}_seg_{index}", tuple(current), piece_start, total)
        )
    return pieces


# ---------------------------------------------------------------------------
# GeoJSON helpers
# ---------------------------------------------------------------------------

def _feature_segment_id(properties: Any) -> Optional[str]:
    if not isinstance(properties, dict):
        return None
    for key in SEGMENT_ID_KEYS:
        value = properties.get(key)
        if value is None:
            continue
        if isinstance(value, str) and value.strip():
            return value.strip()
        # first present key wins, even if it is unusable
        return None
    return None


def extract_segment_ids(geojson: Any) -> list[str]:
    """
    Distinct road-segment ids carried by a FeatureCollection's feature
    properties, in first-seen order. Anything else yields [].
    """
    if not isinstance(geojson, dict):
        return []
    features = geojson.get("features")
    if not isinstance(features, list):
        return []

    seen: dict[str, None] = {}
    for feature in features:
        if not isinstance(feature, dict):
            continue
        segment_id = _feature_segment_id(feature.get("properties"))
        if segment_id:
            seen.setdefault(segment_id, None)
    return list(seen)


def line_coordinates(geojson: Any) -> list[list[Coord]]:
    """
    Polylines contained in a LineString, MultiLineString, Feature or
    FeatureCollection. Other geometry types are ignored.
    """
    if not isinstance(geojson, dict):
        return []

    kind = geojson.get("type")
    if kind == "FeatureCollection":
        lines: list[list[Coord]] = []
        for feature in geojson.get("features") or []:
            lines.extend(line_coordinates(feature))
        return lines
    if kind == "Feature":
        return line_coordinates(geojson.get("geometry"))

    coords = geojson.get("coordinates") or []
    if kind == "LineString":
        return [[(float(c[0]), float(c[1])) for c in coords]] if coords else []
    if kind == "MultiLineString":
        return [[(float(c[0]), float(c[1])) for c in part] for part in coords if part]
    return []


def geojson_length_meters(geojson: Any) -> float:
    """Total length of every polyline in the geometry."""
    return sum(path_length_meters(line) for line in line_coordinates(geojson))
