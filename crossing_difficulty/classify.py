"""Classification of raw features into roads and crossing points."""

from __future__ import annotations

import logging
from typing import Mapping, Optional

import geopandas as gpd

from .config import PipelineConfig
from .tags import tag_value
from .utils import empty_layer, iter_lines, sort_table

logger = logging.getLogger(__name__)

# -----------------------------------------------------------
# Crossing vocabularies
# -----------------------------------------------------------
MARKED_CROSSING_TYPES = frozenset(
    {
        "controlled",
        "marked",
        "pedestrian_signals",
        "traffic_signals",
        "zebra",
        "uncontrolled",
    }
)
MARKING_HINT_TAGS: tuple[str, ...] = ("crossing:markings", "crossing:signals")
UNKNOWN_CROSSING_TYPE = "unknown"

ROAD_COLUMNS = {
    "road_id": "int64",
    "name": "object",
    "highway_class": "object",
    "tags": "object",
}
CROSSING_COLUMNS = {
    "crossing_id": "int64",
    "crossing_type": "object",
    "marked": "bool",
    "unmarked": "bool",
    "tags": "object",
}


def crossing_type_of(tags: Optional[Mapping[str, str]]) -> str:
    """Value of the ``crossing`` tag, or ``unknown`` when absent or empty."""

    return tag_value(tags, "crossing") or UNKNOWN_CROSSING_TYPE


def is_marked(tags: Optional[Mapping[str, str]]) -> bool:
    """
    A crossing counts as marked when its type is in the marked vocabulary or
    when ``crossing:markings`` / ``crossing:signals`` carry anything but ``no``.
    """
    if tag_value(tags, "crossing") in MARKED_CROSSING_TYPES:
        return True
    for key in MARKING_HINT_TAGS:
        value = tag_value(tags, key)
        if value is not None and value != "no":
            return True
    return False


def is_unmarked(tags: Optional[Mapping[str, str]]) -> bool:
    return crossing_type_of(tags) == "unmarked"


def classify_crossings(features: gpd.GeoDataFrame) -> gpd.GeoDataFrame:
    """Crossing points: point features tagged ``highway=crossing``."""

    if features.empty:
        return empty_layer(CROSSING_COLUMNS, features.crs)

    points = features[features["kind"] == "point"]
    highway = points["tags"].map(lambda tags: tag_value(tags, "highway"))
    points = points[highway == "crossing"]
    valid = points.geometry.notna() & ~points.geometry.is_empty
    if (~valid).any():
        logger.warning("Skipping %d crossing points without geometry.", int((~valid).sum()))
    points = points[valid]
    if points.empty:
        return empty_layer(CROSSING_COLUMNS, features.crs)

    crossing_type = points["tags"].map(crossing_type_of)
    marked = points["tags"].map(is_marked).astype(bool)
    unmarked = points["tags"].map(is_unmarked).astype(bool)
    # the marked vocabulary never contains "unmarked", but hint tags can
    marked = marked & ~unmarked

    crossings = gpd.GeoDataFrame(
        {
            "crossing_id": points["id"].astype("int64"),
            "crossing_type": crossing_type,
            "marked": marked,
            "unmarked": unmarked,
            "tags": points["tags"],
        },
        geometry=points.geometry,
        crs=features.crs,
    )
    crossings = sort_table(crossings, ["crossing_id"])
    logger.info(
        "Classified %d crossing points (%d marked, %d unmarked).",
        len(crossings),
        int(crossings["marked"].sum()),
        int(crossings["unmarked"].sum()),
    )
    return crossings


def classify_roads(
    features: gpd.GeoDataFrame, config: PipelineConfig
) -> gpd.GeoDataFrame:
    """Roads: line features whose ``highway`` tag is a drivable class."""

    if features.empty:
        return empty_layer(ROAD_COLUMNS, features.crs)

    lines = features[features["kind"] == "line"]
    highway = lines["tags"].map(lambda tags: tag_value(tags, "highway"))
    drivable = highway.isin(set(config.road_highway_classes))
    lines = lines[drivable]
    highway = highway[drivable]

    has_line = lines.geometry.map(lambda geom: next(iter_lines(geom), None) is not None)
    if (~has_line).any():
        logger.warning("Skipping %d roads with null or empty geometry.", int((~has_line).sum()))
    lines = lines[has_line]
    highway = highway[has_line]
    if lines.empty:
        return empty_layer(ROAD_COLUMNS, features.crs)

    names = lines["tags"].map(lambda tags: tag_value(tags, "name"))
    roads = gpd.GeoDataFrame(
        {
            "road_id": lines["id"].astype("int64"),
            "name": names,
            "highway_class": highway,
            "tags": lines["tags"],
        },
        geometry=lines.geometry,
        crs=features.crs,
    )
    roads = sort_table(roads, ["road_id"])
    logger.info("Classified %d roads.", len(roads))
    return roads


__all__ = [
    "MARKED_CROSSING_TYPES",
    "classify_crossings",
    "classify_roads",
    "crossing_type_of",
    "is_marked",
    "is_unmarked",
]
