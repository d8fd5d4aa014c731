"""Raw feature layer: construction, OSM retrieval and range queries."""

from __future__ import annotations

import logging
import math
from typing import Iterable, Mapping, Optional, Tuple

import geopandas as gpd
import osmnx as ox
import pandas as pd
from shapely.geometry import LineString, MultiLineString, Point, Polygon, box
from shapely.geometry.base import BaseGeometry

from .config import BBox, PipelineConfig
from .utils import apply_osmnx_settings, empty_layer, ensure_projected, format_osm_index

logger = logging.getLogger(__name__)

FEATURE_COLUMNS = {"id": "int64", "kind": "object", "tags": "object"}

_NON_TAG_COLUMNS = {"geometry", "nodes", "ways", "element", "element_type", "osmid", "id"}
_EMPTY_RESPONSE_ERRORS = {"EmptyOverpassResponse", "InsufficientResponseError"}


def empty_features(crs: Optional[str]) -> gpd.GeoDataFrame:
    """Return an empty layer matching the feature schema."""

    return empty_layer(FEATURE_COLUMNS, crs)


def _feature_kind(geom: Optional[BaseGeometry]) -> Optional[str]:
    if geom is None or geom.is_empty:
        return None
    if isinstance(geom, Point):
        return "point"
    if isinstance(geom, (LineString, MultiLineString)):
        return "line"
    return None


def _clean_tags(tags: Mapping[object, object]) -> dict[str, str]:
    cleaned: dict[str, str] = {}
    for key, value in tags.items():
        if value is None or isinstance(value, (list, tuple, dict)):
            continue
        if isinstance(value, float) and math.isnan(value):
            continue
        cleaned[str(key)] = str(value)
    return cleaned


def features_from_records(
    records: Iterable[Tuple[int, Mapping[str, object], Optional[BaseGeometry]]],
    crs: Optional[str] = "EPSG:3857",
) -> gpd.GeoDataFrame:
    """Build a feature layer from ``(id, tags, geometry)`` records.

    Records whose geometry is missing, empty or neither point nor line are
    skipped with a warning; they never abort ingestion.
    """

    ids: list[int] = []
    kinds: list[str] = []
    tag_maps: list[dict[str, str]] = []
    geoms: list[BaseGeometry] = []
    skipped = 0
    for feature_id, tags, geom in records:
        kind = _feature_kind(geom)
        if kind is None:
            skipped += 1
            continue
        ids.append(int(feature_id))
        kinds.append(kind)
        tag_maps.append(_clean_tags(tags or {}))
        geoms.append(geom)

    if skipped:
        logger.warning("Skipped %d features without usable point/line geometry.", skipped)
    if not ids:
        return empty_features(crs)

    return gpd.GeoDataFrame(
        {
            "id": pd.Series(ids, dtype="int64"),
            "kind": kinds,
            "tags": tag_maps,
        },
        geometry=gpd.GeoSeries(geoms, crs=crs),
        crs=crs,
    )


def features_from_osmnx(raw_gdf: Optional[gpd.GeoDataFrame]) -> gpd.GeoDataFrame:
    """Convert an osmnx features layer (wide tag columns) into the feature schema."""

    if raw_gdf is None or raw_gdf.empty:
        crs = raw_gdf.crs if raw_gdf is not None else "EPSG:4326"
        return empty_features(crs)

    tag_columns = [col for col in raw_gdf.columns if col not in _NON_TAG_COLUMNS]

    def _records():
        for osm_index, row in raw_gdf.iterrows():
            tags = {col: row[col] for col in tag_columns}
            yield format_osm_index(osm_index), tags, row.geometry

    return features_from_records(_records(), crs=raw_gdf.crs)


def fetch_osm_features(
    polygon: Polygon | BaseGeometry, config: PipelineConfig
) -> gpd.GeoDataFrame:
    """Fetch all ``highway=*`` points and lines inside the polygon from OSM."""

    apply_osmnx_settings(config)

    try:
        raw = ox.features_from_polygon(polygon, tags={"highway": True})
    except Exception as exc:
        if exc.__class__.__name__ in _EMPTY_RESPONSE_ERRORS:
            logger.info("OSM returned no highway features for the requested area.")
            return empty_features(config.crs)
        raise

    features = features_from_osmnx(raw)
    if features.empty:
        return empty_features(config.crs)
    features = ensure_projected(features, config.crs)
    logger.info("Fetched %d highway features from OSM.", len(features))
    return features


def select_features(
    features: gpd.GeoDataFrame,
    bbox: Optional[BBox] = None,
    tag: Optional[Tuple[str, Optional[str]]] = None,
) -> gpd.GeoDataFrame:
    """Range query over the feature layer.

    ``bbox`` keeps features whose geometry intersects the window; ``tag`` is a
    ``(key, value)`` pair where a ``None`` value matches any non-empty value.
    """

    selected = features
    if bbox is not None and not selected.empty:
        window = box(*bbox)
        hits = selected.sindex.query(window, predicate="intersects")
        selected = selected.iloc[sorted(hits)]
    if tag is not None and not selected.empty:
        key, value = tag

        def _matches(tags: Mapping[str, str]) -> bool:
            found = (tags or {}).get(key)
            if not found:
                return False
            return value is None or found == value

        selected = selected[selected["tags"].map(_matches)]
    return selected.reset_index(drop=True)
