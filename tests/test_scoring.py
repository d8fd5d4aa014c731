"""Tests for sub-scores, the composite difficulty index and labels."""

from __future__ import annotations


import pandas as pd
import pytest

from conftest import build_features, build_layers, crossing, road
from crossing_difficulty import PipelineConfig, ScoringWeights, run_pipeline
from crossing_difficulty.errors import StagePreconditionError
from crossing_difficulty.scoring import (
    combine_scores,
    difficulty_label,
    distance_score,
    effective_distance,
    lanes_score,
    road_attributes,
    score_segments,
    speed_score,
    volume_score,
)
from crossing_difficulty.segments import segmentize_roads


def _segment(result, segment_id: str) -> pd.Series:
    return result.scored_segments.set_index("segment_id").loc[segment_id]


def test_distance_score_caps_and_defaults_to_worst() -> None:
    assert distance_score(0.0) == 0.0
    assert distance_score(120.0) == pytest.approx(0.24)
    assert distance_score(900.0) == 1.0
    assert distance_score(None) == 1.0
    assert distance_score(float("nan")) == 1.0


def test_effective_distance_uses_cap_when_nothing_was_found() -> None:
    assert effective_distance(30.0, None, 500.0) == 500.0
    assert effective_distance(float("nan"), 7, 500.0) == 500.0
    assert effective_distance(620.0, 7, 500.0) == 500.0
    assert effective_distance(42.5, 7, 500.0) == 42.5


def test_speed_and_lane_scores_fall_back_to_class_defaults() -> None:
    assert speed_score(30.0, "primary") == pytest.approx(0.25)
    assert speed_score(80.0, "primary") == 1.0
    assert speed_score(None, "primary") == pytest.approx(0.375)
    assert speed_score(None, "bridleway") == 0.5

    assert lanes_score(4, "primary") == pytest.approx(0.6)
    assert lanes_score(None, "residential") == pytest.approx(0.2)
    assert lanes_score(pd.NA, "unknown") == 0.5


def test_volume_score_is_ordinal_by_class() -> None:
    order = ["trunk", "secondary", "tertiary", "residential", "service"]
    scores = [volume_score(highway_class) for highway_class in order]

    assert scores == sorted(scores, reverse=True)
    assert volume_score("footway") == 0.0


def test_combine_scores_clamps_and_overrides() -> None:
    weights = ScoringWeights()

    assert combine_scores((1, 1, 1, 1), weights, "primary", {"residential"}) == 1.0
    assert combine_scores((0.2, 0.4, 0.6, 0.8), weights, "primary", set()) == pytest.approx(0.5)
    assert combine_scores((1, 1, 1, 1), weights, "residential", {"residential"}) == 0.0


@pytest.mark.parametrize(
    ("index", "label"),
    [
        (0.0, "easy"),
        (0.1999, "easy"),
        (0.2, "medium"),
        (0.4, "hard"),
        (0.5999, "hard"),
        (0.6, "severe"),
        (1.0, "severe"),
        (None, "easy"),
        (float("nan"), "easy"),
    ],
)
def test_difficulty_label_breakpoints(index, label) -> None:
    assert difficulty_label(index) == label


def test_road_attributes_parse_tags() -> None:
    roads, _ = build_layers(
        road(1, [(0, 0), (10, 0)], maxspeed="30 mph", lanes="4"),
        road(2, [(0, 10), (10, 10)], maxspeed="fast"),
    )
    attributes = road_attributes(roads).set_index("road_id")

    assert attributes.loc[1, "maxspeed"] == "30 mph"
    assert attributes.loc[1, "speed_mph"] == pytest.approx(30.0)
    assert attributes.loc[1, "lane_count"] == 4
    assert pd.isna(attributes.loc[2, "speed_mph"])
    assert pd.isna(attributes.loc[2, "lane_count"])


def test_main_street_scenario_is_not_overridden() -> None:
    features = build_features(
        road(1, [(0, 0), (200, 0)], name="Main St", maxspeed="30 mph", lanes="4"),
        crossing(10, 140, 0),
    )
    result = run_pipeline(features, PipelineConfig(search_scope_policy="name-radius"))
    row = _segment(result, "1_0")

    assert row["distance_to_marked_m"] == pytest.approx(120.0)
    assert row["distance_score"] == pytest.approx(0.24)
    assert row["speed_score"] == pytest.approx(0.25)
    assert row["lanes_score"] == pytest.approx(0.6)
    assert row["volume_score"] == pytest.approx(1.0)
    assert row["difficulty_index"] == pytest.approx(0.5225)
    assert row["difficulty_label"] == "hard"


def test_residential_scenario_is_forced_to_zero() -> None:
    features = build_features(
        road(2, [(0, 0), (40, 0)], highway="residential", maxspeed="25 mph"),
        crossing(11, 25, 0),
    )
    result = run_pipeline(features, PipelineConfig())
    row = _segment(result, "2_0")

    assert row["distance_score"] == pytest.approx(0.01)
    assert row["difficulty_index"] == 0.0
    assert row["difficulty_label"] == "easy"


def test_elm_street_name_radius_reports_cap_distance() -> None:
    features = build_features(
        road(1, [(0, 0), (60, 0)], name="Elm St"),
        road(2, [(60, 0), (100, 0)], name="Elm St"),
        crossing(70, 70, 0),
    )
    result = run_pipeline(
        features, PipelineConfig(search_scope_policy="name-radius", search_radius=30)
    )
    row = _segment(result, "1_0")

    assert row["search_distance_m"] == pytest.approx(30.0)
    assert row["distance_to_marked_m"] == pytest.approx(500.0)
    assert row["distance_score"] == 1.0


def test_indices_stay_in_unit_interval() -> None:
    features = build_features(
        road(1, [(0, 0), (300, 0)], highway="trunk", maxspeed="120", lanes="8"),
        road(2, [(0, 50), (300, 50)], highway="service"),
        road(3, [(0, 100), (300, 100)], highway="tertiary", lanes="garbage"),
    )
    scored = run_pipeline(features).scored_segments

    for column in ["distance_score", "speed_score", "lanes_score", "volume_score", "difficulty_index"]:
        assert scored[column].between(0.0, 1.0).all()
    assert (scored.loc[scored["highway_class"] == "service", "difficulty_index"] == 0.0).all()


def test_score_segments_requires_complete_nearest_results(config: PipelineConfig) -> None:
    roads, _ = build_layers(road(1, [(0, 0), (60, 0)]))
    segments = segmentize_roads(roads, config.segment_length)
    partial = pd.DataFrame(
        {
            "segment_id": ["1_0"],
            "nearest_marked_crossing_id": pd.array([None], dtype="Int64"),
            "distance_m": [float("nan")],
        }
    )

    with pytest.raises(StagePreconditionError) as excinfo:
        score_segments(segments, roads, partial, config)
    assert excinfo.value.stage == "score"


@pytest.mark.parametrize(
    "weights",
    [
        dict(distance=0.5, speed=0.5, lanes=0.5, volume=0.5),
        dict(distance=-0.25, speed=0.75, lanes=0.25, volume=0.25),
        dict(distance=float("nan"), speed=0.25, lanes=0.25, volume=0.25),
    ],
)
def test_invalid_weights_are_rejected(weights) -> None:
    with pytest.raises(ValueError):
        ScoringWeights(**weights)


def test_plain_weight_tuple_runs_end_to_end() -> None:
    features = build_features(road(1, [(0, 0), (40, 0)], maxspeed="30 mph", lanes="4"))
    result = run_pipeline(features, PipelineConfig(scoring_weights=(0.0, 0.0, 0.0, 1.0)))

    assert (result.scored_segments["difficulty_index"] == 1.0).all()
