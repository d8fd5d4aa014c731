"""Difficulty scoring of road segments.

Each segment gets four sub-scores in ``[0, 1]``:

* ``distance_score`` - distance to the nearest marked crossing over the cap
  (``distance_cap_m``, 500 by default). No marked crossing counts as the cap.
* ``speed_score`` - ``(mph - 20) / 40``; unknown speed falls back to a
  typical speed for the highway class.
* ``lanes_score`` - ``(lanes - 1) / 5``; unknown lane count falls back to a
  typical count for the highway class.
* ``volume_score`` - ordinal traffic volume of the highway class.

The difficulty index is the weighted sum of the sub-scores, clamped to
``[0, 1]``. Low-volume classes (``override_classes``) are forced to exactly 0.

Labels use the fixed breakpoints 0.2 / 0.4 / 0.6 consumed by the map and the
minigame: easy, medium, hard, severe.
"""

from __future__ import annotations

import logging
import math
from typing import Iterable, Optional

import geopandas as gpd
import numpy as np
import pandas as pd

from .config import PipelineConfig, ScoringWeights
from .errors import StagePreconditionError
from .tags import parse_lane_count, parse_speed_mph, tag_value

logger = logging.getLogger(__name__)

SPEED_FLOOR_MPH = 20.0
SPEED_RANGE_MPH = 40.0
LANES_FLOOR = 1.0
LANES_RANGE = 5.0
UNKNOWN_CLASS_SCORE = 0.5

DIFFICULTY_BREAKPOINTS: tuple[tuple[float, str], ...] = (
    (0.2, "easy"),
    (0.4, "medium"),
    (0.6, "hard"),
)
TOP_DIFFICULTY_LABEL = "severe"

# -----------------------------------------------------------
# Highway class profiles (US urban defaults)
# -----------------------------------------------------------
VOLUME_SCORE_BY_CLASS = {
    "trunk": 1.0,
    "primary": 1.0,
    "trunk_link": 0.8,
    "primary_link": 0.8,
    "secondary": 0.7,
    "secondary_link": 0.55,
    "tertiary": 0.5,
    "tertiary_link": 0.4,
    "residential": 0.2,
    "living_street": 0.1,
    "service": 0.1,
}

DEFAULT_SPEED_MPH_BY_CLASS = {
    "trunk": 45.0,
    "trunk_link": 35.0,
    "primary": 35.0,
    "primary_link": 30.0,
    "secondary": 30.0,
    "secondary_link": 25.0,
    "tertiary": 25.0,
    "tertiary_link": 25.0,
    "residential": 25.0,
    "living_street": 10.0,
    "service": 15.0,
}

DEFAULT_LANES_BY_CLASS = {
    "trunk": 4,
    "trunk_link": 1,
    "primary": 4,
    "primary_link": 1,
    "secondary": 2,
    "secondary_link": 1,
    "tertiary": 2,
    "tertiary_link": 1,
    "residential": 2,
    "living_street": 1,
    "service": 1,
}


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return min(max(value, low), high)


def _known(value: Optional[float]) -> bool:
    return value is not None and not pd.isna(value) and math.isfinite(float(value))


def effective_distance(distance_m: Optional[float], crossing_id: object, cap: float) -> float:
    """Distance used for scoring and publishing: capped, and the cap when nothing was found."""

    if pd.isna(crossing_id) or not _known(distance_m):
        return float(cap)
    return min(float(distance_m), float(cap))


def distance_score(distance_m: Optional[float], cap: float = 500.0) -> float:
    if not _known(distance_m):
        return 1.0
    return clamp(float(distance_m) / cap)


def speed_score(speed_mph: Optional[float], highway_class: Optional[str]) -> float:
    if not _known(speed_mph):
        speed_mph = DEFAULT_SPEED_MPH_BY_CLASS.get(highway_class)
        if speed_mph is None:
            return UNKNOWN_CLASS_SCORE
    return clamp((float(speed_mph) - SPEED_FLOOR_MPH) / SPEED_RANGE_MPH)


def lanes_score(lane_count: Optional[float], highway_class: Optional[str]) -> float:
    if not _known(lane_count):
        lane_count = DEFAULT_LANES_BY_CLASS.get(highway_class)
        if lane_count is None:
            return UNKNOWN_CLASS_SCORE
    return clamp((float(lane_count) - LANES_FLOOR) / LANES_RANGE)


def volume_score(highway_class: Optional[str]) -> float:
    return VOLUME_SCORE_BY_CLASS.get(highway_class, 0.0)


def combine_scores(
    sub_scores: Iterable[float],
    weights: ScoringWeights,
    highway_class: Optional[str],
    override_classes: Iterable[str],
) -> float:
    """Weighted, clamped composite; override classes are always exactly 0."""

    if highway_class in set(override_classes):
        return 0.0
    total = sum(w * s for w, s in zip(weights.as_tuple(), sub_scores))
    return clamp(total)


def difficulty_label(index: Optional[float]) -> str:
    """Map a difficulty index onto easy / medium / hard / severe."""

    if not _known(index):
        return "easy"
    for upper, label in DIFFICULTY_BREAKPOINTS:
        if index < upper:
            return label
    return TOP_DIFFICULTY_LABEL


def road_attributes(roads: gpd.GeoDataFrame) -> pd.DataFrame:
    """Parsed ``maxspeed``/``speed_mph``/``lane_count`` per road, from its tags."""

    tags = roads["tags"]
    maxspeed = tags.map(lambda t: tag_value(t, "maxspeed"))
    return pd.DataFrame(
        {
            "road_id": roads["road_id"].astype("int64"),
            "maxspeed": maxspeed.astype("object"),
            "speed_mph": pd.to_numeric(maxspeed.map(parse_speed_mph), errors="coerce").astype(
                "float64"
            ),
            "lane_count": pd.array(list(tags.map(parse_lane_count)), dtype="Int64"),
        }
    )


def score_segments(
    segments: gpd.GeoDataFrame,
    roads: gpd.GeoDataFrame,
    nearest: pd.DataFrame,
    config: PipelineConfig,
    nearest_any: Optional[pd.DataFrame] = None,
) -> gpd.GeoDataFrame:
    """Attach road attributes, sub-scores, difficulty index and label to every segment."""

    missing = set(segments["segment_id"]) - set(nearest["segment_id"])
    if missing or len(nearest) != len(segments):
        raise StagePreconditionError(
            "score",
            f"nearest-crossing results cover {len(nearest)} rows for {len(segments)} "
            f"segments ({len(missing)} segments missing)",
        )

    scored = segments.merge(road_attributes(roads), on="road_id", how="left")
    scored = scored.merge(nearest, on="segment_id", how="left", validate="one_to_one")
    if nearest_any is not None:
        scored = scored.merge(nearest_any, on="segment_id", how="left", validate="one_to_one")
    else:
        scored["nearest_crossing_id"] = pd.array([None] * len(scored), dtype="Int64")
        scored["nearest_crossing_is_marked"] = False

    cap = config.distance_cap_m
    scored["distance_to_marked_m"] = [
        effective_distance(d, cid, cap)
        for d, cid in zip(scored["distance_m"], scored["nearest_marked_crossing_id"])
    ]
    scored["distance_score"] = [distance_score(d, cap) for d in scored["distance_to_marked_m"]]
    scored["speed_score"] = [
        speed_score(s, h) for s, h in zip(scored["speed_mph"], scored["highway_class"])
    ]
    scored["lanes_score"] = [
        lanes_score(n, h) for n, h in zip(scored["lane_count"], scored["highway_class"])
    ]
    scored["volume_score"] = [volume_score(h) for h in scored["highway_class"]]

    sub_score_columns = ["distance_score", "speed_score", "lanes_score", "volume_score"]
    scored["difficulty_index"] = [
        combine_scores(
            sub_scores,
            config.scoring_weights,
            highway_class,
            config.override_classes,
        )
        for sub_scores, highway_class in zip(
            scored[sub_score_columns].itertuples(index=False, name=None),
            scored["highway_class"],
        )
    ]
    scored["difficulty_label"] = scored["difficulty_index"].map(difficulty_label)
    scored["nearest_crossing_is_marked"] = scored["nearest_crossing_is_marked"].fillna(False).astype(bool)
    scored = scored.rename(columns={"distance_m": "search_distance_m"})

    ordered_cols = [
        "segment_id",
        "road_id",
        "sequence_no",
        "name",
        "highway_class",
        "maxspeed",
        "speed_mph",
        "lane_count",
        "nearest_marked_crossing_id",
        "search_distance_m",
        "distance_to_marked_m",
        "nearest_crossing_id",
        "nearest_crossing_is_marked",
        *sub_score_columns,
        "difficulty_index",
        "difficulty_label",
        "geometry",
    ]
    scored = gpd.GeoDataFrame(scored[ordered_cols], geometry="geometry", crs=segments.crs)
    scored = scored.astype({"difficulty_index": "float64", "distance_to_marked_m": "float64"})

    if len(scored):
        logger.info(
            "Scored %d segments; mean difficulty %.3f, %d above 0.",
            len(scored),
            float(np.mean(scored["difficulty_index"])),
            int((scored["difficulty_index"] > 0).sum()),
        )
    return scored
