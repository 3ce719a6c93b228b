"""
Geometry helper tests.

Covers:
- haversine distance and path length
- bounding boxes (containment, intersection, empty input)
- point-on-line containment with tolerance
- ~50 m line splitting
- segment-id extraction from survey FeatureCollections
"""

import math

import pytest

from services.roadops.geo.geometry import (
    BBox,
    bbox_contains,
    bbox_intersects,
    bounding_box,
    extract_segment_ids,
    geojson_length_meters,
    haversine_meters,
    line_coordinates,
    path_length_meters,
    point_on_line,
    point_to_line_distance_meters,
    split_line,
)

ONE_DEGREE_M = 2 * math.pi * 6_371_008.8 / 360


class TestDistance:
    def test_zero_distance(self):
        assert haversine_meters((-9.14, 38.72), (-9.14, 38.72)) == 0.0

    def test_one_degree_of_latitude(self):
        assert haversine_meters((0.0, 0.0), (0.0, 1.0)) == pytest.approx(ONE_DEGREE_M, rel=1e-6)

    def test_symmetric(self):
        a, b = (-9.14, 38.72), (-8.61, 41.15)
        assert haversine_meters(a, b) == pytest.approx(haversine_meters(b, a))

    def test_lisbon_porto_is_about_274km(self):
        d = haversine_meters((-9.1393, 38.7223), (-8.6291, 41.1579))
        assert 270_000 < d < 280_000

    def test_path_length_sums_legs(self):
        coords = [(0.0, 0.0), (0.0, 0.5), (0.0, 1.0)]
        assert path_length_meters(coords) == pytest.approx(ONE_DEGREE_M, rel=1e-6)

    def test_path_length_needs_two_points(self):
        assert path_length_meters([]) == 0.0
        assert path_length_meters([(1.0, 1.0)]) == 0.0


class TestBoundingBox:
    def test_bounding_box(self):
        bbox = bounding_box([(-9.2, 38.7), (-9.1, 38.8), (-9.15, 38.65)])
        assert bbox == BBox(-9.2, 38.65, -9.1, 38.8)
        assert bbox.as_list() == [-9.2, 38.65, -9.1, 38.8]

    def test_empty_raises(self):
        with pytest.raises(ValueError):
            bounding_box([])

    def test_contains_is_inclusive(self):
        bbox = BBox(0.0, 0.0, 1.0, 1.0)
        assert bbox_contains(bbox, (0.5, 0.5))
        assert bbox_contains(bbox, (1.0, 0.0))
        assert not bbox_contains(bbox, (1.01, 0.5))

    def test_intersects(self):
        a = BBox(0.0, 0.0, 1.0, 1.0)
        assert bbox_intersects(a, BBox(0.5, 0.5, 2.0, 2.0))
        assert bbox_intersects(a, BBox(1.0, 1.0, 2.0, 2.0))
        assert not bbox_intersects(a, BBox(1.5, 0.0, 2.0, 1.0))


class TestPointOnLine:
    LINE = [(0.0, 0.0), (0.001, 0.0)]  # ~111 m along the equator

    def test_point_near_middle_is_on_line(self):
        assert point_on_line((0.0005, 0.00005), self.LINE)  # ~5.6 m off

    def test_point_far_from_line(self):
        assert not point_on_line((0.0005, 0.0002), self.LINE)  # ~22 m off

    def test_point_beyond_end_uses_endpoint_distance(self):
        d = point_to_line_distance_meters((0.002, 0.0), self.LINE)
        assert d == pytest.approx(haversine_meters((0.002, 0.0), (0.001, 0.0)), rel=1e-3)

    def test_custom_tolerance(self):
        assert point_on_line((0.0005, 0.0002), self.LINE, tolerance_m=25.0)

    def test_single_point_line(self):
        assert point_to_line_distance_meters((0.0, 0.0), [(0.0, 0.0)]) == 0.0

    def test_empty_line_is_never_containing(self):
        assert not point_on_line((0.0, 0.0), [])


class TestSplitLine:
    def test_splits_at_vertices_after_50m(self):
        coords = [(i * 0.0002, 0.0) for i in range(6)]  # 5 legs of ~22 m
        pieces = split_line("edge-1", coords)

        assert [p.piece_id for p in pieces] == ["edge-1_seg_0", "edge-1_seg_1"]
        assert pieces[0].coords == tuple(coords[:4])
        assert pieces[1].coords == tuple(coords[3:])
        assert pieces[0].start_m == 0.0
        assert pieces[1].start_m == pytest.approx(pieces[0].end_m)
        assert pieces[1].end_m == pytest.approx(path_length_meters(coords))

    def test_short_line_is_one_piece(self):
        pieces = split_line("edge-2", [(0.0, 0.0), (0.0001, 0.0)])
        assert len(pieces) == 1
        assert pieces[0].index == 0

    def test_zero_length_line(self):
        pieces = split_line("edge-3", [(1.0, 1.0), (1.0, 1.0)])
        assert len(pieces) == 1
        assert pieces[0].start_m == pieces[0].end_m == 0.0

    def test_fewer_than_two_points(self):
        assert split_line("edge-4", [(1.0, 1.0)]) == []


class TestGeoJson:
    def test_extract_segment_ids(self):
        fc = {
            "type": "FeatureCollection",
            "features": [
                {"properties": {"edgeId": "a"}},
                {"properties": {"edge_id": " b "}},
                {"properties": {"roadId": "a"}},
                {"properties": {"road_id": ""}},
                {"properties": None},
                {"properties": {"edgeId": None, "edge_id": "c"}},
                {"properties": {"edgeId": 5, "road_id": "d"}},
                "not-a-feature",
            ],
        }
        assert extract_segment_ids(fc) == ["a", "b", "c"]

    def test_extract_segment_ids_rejects_non_collections(self):
        assert extract_segment_ids(None) == []
        assert extract_segment_ids({"type": "LineString", "coordinates": []}) == []

    def test_line_coordinates_flattens_collections(self):
        fc = {
            "type": "FeatureCollection",
            "features": [
                {"type": "Feature", "geometry": {"type": "LineString", "coordinates": [[0, 0], [0, 1]]}},
                {"type": "Feature", "geometry": {"type": "Point", "coordinates": [0, 0]}},
                {
                    "type": "Feature",
                    "geometry": {"type": "MultiLineString", "coordinates": [[[1, 1], [1, 2]], []]},
                },
            ],
        }
        assert line_coordinates(fc) == [[(0.0, 0.0), (0.0, 1.0)], [(1.0, 1.0), (1.0, 2.0)]]

    def test_geojson_length(self):
        geom = {"type": "LineString", "coordinates": [[0, 0], [0, 1]]}
        assert geojson_length_meters(geom) == pytest.approx(ONE_DEGREE_M, rel=1e-6)
        assert geojson_length_meters({"type": "Point", "coordinates": [0, 0]}) == 0.0
