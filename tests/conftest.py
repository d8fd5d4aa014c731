"""Shared builders for synthetic street networks in a planar CRS."""

from __future__ import annotations

from typing import Optional

import geopandas as gpd
import pytest
from shapely.geometry import LineString, Point

from crossing_difficulty import PipelineConfig, features_from_records
from crossing_difficulty.classify import classify_crossings, classify_roads

CRS = "EPSG:3857"


def road(
    road_id: int,
    coords: list[tuple[float, float]],
    highway: str = "primary",
    name: Optional[str] = None,
    **extra_tags: str,
) -> tuple[int, dict[str, str], LineString]:
    tags = {"highway": highway, **{k.replace("__", ":"): v for k, v in extra_tags.items()}}
    if name is not None:
        tags["name"] = name
    return road_id, tags, LineString(coords)


def crossing(
    crossing_id: int, x: float, y: float, crossing_type: Optional[str] = "marked", **extra_tags: str
) -> tuple[int, dict[str, str], Point]:
    tags = {"highway": "crossing", **{k.replace("__", ":"): v for k, v in extra_tags.items()}}
    if crossing_type is not None:
        tags["crossing"] = crossing_type
    return crossing_id, tags, Point(x, y)


def build_features(*records) -> gpd.GeoDataFrame:
    return features_from_records(records, crs=CRS)


def build_layers(*records, config: Optional[PipelineConfig] = None):
    """Return ``(roads, crossings)`` classified from the given records."""

    features = build_features(*records)
    return classify_roads(features, config or PipelineConfig()), classify_crossings(features)


@pytest.fixture
def config() -> PipelineConfig:
    return PipelineConfig()
