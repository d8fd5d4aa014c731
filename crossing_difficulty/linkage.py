"""Spatial linkage between crossing points and the roads they sit on."""

from __future__ import annotations

import logging

import geopandas as gpd
import numpy as np
import pandas as pd
import shapely

from .utils import empty_table, expanded_envelopes, sort_table

logger = logging.getLogger(__name__)

LINKAGE_COLUMNS = {"road_id": "int64", "crossing_id": "int64"}


def link_crossings_to_roads(
    roads: gpd.GeoDataFrame,
    crossings: gpd.GeoDataFrame,
    snap_distance: float,
) -> pd.DataFrame:
    """Return every ``(road_id, crossing_id)`` pair within ``snap_distance``.

    Each crossing's envelope is expanded by the snap distance and probed against
    an STR-tree over the road geometries; candidates are then confirmed with the
    exact planar distance. Crossings with no road in range simply produce no rows.
    """

    if roads.empty or crossings.empty:
        return empty_table(LINKAGE_COLUMNS)

    points = np.asarray(crossings.geometry.values)
    envelopes = expanded_envelopes(points, snap_distance)
    crossing_idx, road_idx = roads.sindex.query(envelopes, predicate="intersects")
    if len(crossing_idx) == 0:
        return empty_table(LINKAGE_COLUMNS)

    distances = shapely.distance(
        points[crossing_idx], np.asarray(roads.geometry.values)[road_idx]
    )
    keep = distances <= snap_distance

    linkages = pd.DataFrame(
        {
            "road_id": roads["road_id"].to_numpy()[road_idx[keep]],
            "crossing_id": crossings["crossing_id"].to_numpy()[crossing_idx[keep]],
        }
    ).astype(LINKAGE_COLUMNS)
    linkages = sort_table(linkages.drop_duplicates(), ["road_id", "crossing_id"])

    logger.info(
        "Linked %d of %d crossings to roads (%d linkages, snap %.3f).",
        linkages["crossing_id"].nunique(),
        len(crossings),
        len(linkages),
        snap_distance,
    )
    return linkages
