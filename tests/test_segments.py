"""Tests for cutting roads into fixed-length segments."""

from __future__ import annotations

import pytest
from shapely.geometry import LineString, MultiLineString

from conftest import build_layers, road
from crossing_difficulty.segments import cut_line, segment_count, segmentize_roads


def test_segment_count_rounds_up_with_minimum_of_one() -> None:
    assert segment_count(45.0, 20.0) == 3
    assert segment_count(40.0, 20.0) == 2
    assert segment_count(5.0, 20.0) == 1
    assert segment_count(0.0, 20.0) == 1


def test_cut_line_is_lossless_and_ordered() -> None:
    line = LineString([(0, 0), (30, 0), (30, 15)])
    pieces = cut_line(line, 20.0)

    assert [round(piece.length, 9) for piece in pieces] == [20.0, 20.0, 5.0]
    assert sum(piece.length for piece in pieces) == pytest.approx(line.length)
    assert pieces[0].coords[0] == line.coords[0]
    assert pieces[-1].coords[-1] == pytest.approx(line.coords[-1])
    for before, after in zip(pieces, pieces[1:]):
        assert before.coords[-1] == pytest.approx(after.coords[0])


def test_segmentize_assigns_dense_sequence_numbers_and_ids() -> None:
    roads, _ = build_layers(
        road(7, [(0, 0), (45, 0)], name="Main St"),
        road(8, [(0, 10), (40, 10)], "residential"),
    )
    segments = segmentize_roads(roads, 20.0)

    assert segments[segments["road_id"] == 7]["sequence_no"].tolist() == [0, 1, 2]
    assert segments[segments["road_id"] == 8]["sequence_no"].tolist() == [0, 1]
    assert segments["segment_id"].tolist() == ["7_0", "7_1", "7_2", "8_0", "8_1"]
    assert set(segments[segments["road_id"] == 7]["name"]) == {"Main St"}
    assert set(segments[segments["road_id"] == 8]["highway_class"]) == {"residential"}


def test_multipart_roads_are_cut_per_part_under_one_road_id() -> None:
    roads, _ = build_layers(road(1, [(0, 0), (1, 0)]))
    multi = MultiLineString([[(0, 0), (30, 0)], [(100, 0), (110, 0)]])
    roads = roads.set_geometry([multi], crs=roads.crs)

    segments = segmentize_roads(roads, 20.0)

    assert segments["sequence_no"].tolist() == [0, 1, 2]
    assert segments.geometry.length.sum() == pytest.approx(multi.length)


def test_degenerate_roads_produce_no_segments() -> None:
    roads, _ = build_layers(road(1, [(0, 0), (0, 0)]), road(2, [(0, 0), (10, 0)]))

    segments = segmentize_roads(roads, 20.0)

    assert segments["road_id"].tolist() == [2]


def test_segmentation_is_deterministic() -> None:
    roads, _ = build_layers(
        road(1, [(0, 0), (33.3, 12.1), (70.7, -4.2)]),
        road(2, [(5, 5), (5, 91.25)]),
    )
    first = segmentize_roads(roads, 20.0)
    second = segmentize_roads(roads, 20.0)

    assert first["segment_id"].tolist() == second["segment_id"].tolist()
    assert all(a.equals_exact(b, 0.0) for a, b in zip(first.geometry, second.geometry))


def test_segmentize_rejects_non_positive_length() -> None:
    roads, _ = build_layers(road(1, [(0, 0), (10, 0)]))

    with pytest.raises(ValueError):
        segmentize_roads(roads, 0.0)
