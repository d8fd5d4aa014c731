"""Utility helpers shared across pipeline stages."""

from __future__ import annotations

import logging
from typing import Iterator, Mapping, Optional, Sequence

import geopandas as gpd
import osmnx as ox
import numpy as np
import pandas as pd
import shapely
from pyproj import CRS
from shapely.geometry import LineString, MultiLineString
from shapely.geometry.base import BaseGeometry
from shapely.ops import linemerge

from .config import PipelineConfig

logger = logging.getLogger(__name__)


def apply_osmnx_settings(cfg: PipelineConfig) -> None:
    """Synchronize osmnx global settings with the current pipeline config."""

    ox.settings.use_cache = cfg.use_cache
    ox.settings.requests_timeout = cfg.timeout


def empty_layer(
    columns: Mapping[str, str], crs: Optional[str]
) -> gpd.GeoDataFrame:
    """Return an empty GeoDataFrame with the given column dtypes and a geometry column."""

    data = {name: pd.Series(dtype=dtype) for name, dtype in columns.items()}
    geometry = gpd.GeoSeries([], crs=crs)
    return gpd.GeoDataFrame(data, geometry=geometry, crs=geometry.crs)


def empty_table(columns: Mapping[str, str]) -> pd.DataFrame:
    """Return an empty DataFrame with the given column dtypes."""

    return pd.DataFrame({name: pd.Series(dtype=dtype) for name, dtype in columns.items()})


def format_osm_index(osm_index: object) -> int:
    """Convert osmnx ``(element_type, osmid)`` index values to the integer osm id."""

    if isinstance(osm_index, tuple) and len(osm_index) >= 2:
        return int(osm_index[1])
    return int(osm_index)


def ensure_projected(gdf: gpd.GeoDataFrame, crs: str) -> gpd.GeoDataFrame:
    """Project a layer into the working CRS if it is missing, geographic or different."""

    if gdf.crs is None:
        logger.warning("Layer has no CRS; assuming working CRS %s.", crs)
        return gdf.set_crs(crs)

    current = CRS.from_user_input(gdf.crs)
    target = CRS.from_user_input(crs)
    if current.is_geographic:
        logger.warning("Layer CRS is geographic; projecting to %s.", crs)
        return gdf.to_crs(target)
    if current != target:
        logger.info("Converting layer from %s to %s.", current.to_string(), crs)
        return gdf.to_crs(target)
    return gdf


def iter_lines(geom: Optional[BaseGeometry]) -> Iterator[LineString]:
    """Yield the simple line parts of a (multi)line geometry, merged where they touch."""

    if geom is None or geom.is_empty:
        return
    if isinstance(geom, MultiLineString):
        geom = linemerge(geom)
    if isinstance(geom, LineString):
        yield geom
        return
    if isinstance(geom, MultiLineString):
        for part in geom.geoms:
            if not part.is_empty:
                yield part


def single_line(geom: Optional[BaseGeometry]) -> Optional[LineString]:
    """Return the geometry as one LineString, or None when it is multi-part."""

    parts = list(iter_lines(geom))
    if len(parts) != 1:
        return None
    return parts[0]


def sort_table(df: pd.DataFrame, by: Sequence[str]) -> pd.DataFrame:
    """Stable sort with a fresh RangeIndex, so outputs never depend on input order."""

    return df.sort_values(list(by), kind="mergesort").reset_index(drop=True)


def expanded_envelopes(geoms: np.ndarray, distance: float) -> np.ndarray:
    """Bounding boxes of ``geoms`` grown by ``distance`` on every side."""

    minx, miny, maxx, maxy = shapely.bounds(geoms).T
    return shapely.box(minx - distance, miny - distance, maxx + distance, maxy + distance)
