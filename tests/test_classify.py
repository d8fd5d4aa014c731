"""Tests for road and crossing classification."""

from __future__ import annotations

import pandas as pd
from shapely.geometry import LineString, Point, Polygon

from conftest import build_features, build_layers, crossing, road
from crossing_difficulty import PipelineConfig
from crossing_difficulty.classify import (
    classify_crossings,
    classify_roads,
    crossing_type_of,
    is_marked,
    is_unmarked,
)


def test_crossing_flags_follow_tag_vocabularies() -> None:
    _, crossings = build_layers(
        crossing(1, 0, 0, "zebra"),
        crossing(2, 1, 0, "unmarked"),
        crossing(3, 2, 0, None),
        crossing(4, 3, 0, "informal", crossing__markings="yes"),
        crossing(5, 4, 0, "informal", crossing__markings="no"),
        crossing(6, 5, 0, "uncontrolled"),
        crossing(7, 6, 0, "unmarked", crossing__markings="lines"),
        crossing(8, 7, 0, "informal", crossing__signals="yes"),
    )
    by_id = crossings.set_index("crossing_id")

    assert by_id.loc[1, "marked"] and not by_id.loc[1, "unmarked"]
    assert by_id.loc[2, "unmarked"] and not by_id.loc[2, "marked"]
    assert by_id.loc[3, "crossing_type"] == "unknown"
    assert not by_id.loc[3, "marked"] and not by_id.loc[3, "unmarked"]
    assert by_id.loc[4, "marked"]
    assert not by_id.loc[5, "marked"] and not by_id.loc[5, "unmarked"]
    assert by_id.loc[6, "marked"]
    assert by_id.loc[7, "unmarked"] and not by_id.loc[7, "marked"]
    assert by_id.loc[8, "marked"]
    assert not (crossings["marked"] & crossings["unmarked"]).any()


def test_crossing_helpers_handle_empty_tags() -> None:
    assert crossing_type_of({"crossing": ""}) == "unknown"
    assert crossing_type_of(None) == "unknown"
    assert not is_marked({})
    assert is_unmarked({"crossing": " unmarked "})
    assert not is_unmarked({"crossing": "zebra"})
    assert not is_unmarked(None)


def test_only_highway_crossing_points_become_crossings() -> None:
    features = build_features(
        crossing(1, 0, 0),
        (2, {"highway": "traffic_signals"}, Point(1, 1)),
        (3, {"highway": "crossing"}, LineString([(0, 0), (1, 0)])),
    )
    crossings = classify_crossings(features)

    assert crossings["crossing_id"].tolist() == [1]


def test_roads_keep_drivable_lines_with_name_and_class() -> None:
    features = build_features(
        road(10, [(0, 0), (10, 0)], "primary", "Main St"),
        road(11, [(0, 5), (10, 5)], "residential", "  "),
        road(12, [(0, 9), (10, 9)], "footway", "Path"),
        road(13, [(0, 12), (10, 12)], "secondary_link"),
        (14, {"highway": "primary"}, Point(3, 3)),
        (15, {"highway": "primary"}, None),
        (16, {"highway": "primary"}, Polygon([(0, 0), (1, 0), (1, 1)])),
    )
    roads = classify_roads(features, PipelineConfig())

    assert roads["road_id"].tolist() == [10, 11, 13]
    by_id = roads.set_index("road_id")
    assert by_id.loc[10, "name"] == "Main St"
    assert by_id.loc[10, "highway_class"] == "primary"
    assert pd.isna(by_id.loc[11, "name"])
    assert by_id.loc[13, "highway_class"] == "secondary_link"


def test_road_vocabulary_is_configurable() -> None:
    features = build_features(
        road(1, [(0, 0), (10, 0)], "service"),
        road(2, [(0, 5), (10, 5)], "primary"),
    )
    roads = classify_roads(features, PipelineConfig(road_highway_classes=("primary",)))

    assert roads["road_id"].tolist() == [2]


def test_classifiers_return_empty_layers_for_empty_input() -> None:
    features = build_features()

    assert classify_roads(features, PipelineConfig()).empty
    crossings = classify_crossings(features)
    assert crossings.empty
    assert {"crossing_id", "marked", "unmarked"} <= set(crossings.columns)
