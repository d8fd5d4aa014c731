"""Nearest marked crossing per road segment.

Two search-scope policies decide which marked crossings a segment may see:

``name-radius``
    crossings linked to any road with exactly the segment's name, within
    ``search_radius``. Nothing in range yields ``distance_m == search_radius``
    and no crossing id.
``connected-component``
    crossings linked to any road in the segment road's same-name component,
    without a distance cap. Nothing found yields a null distance.

Equidistant candidates are broken by the smallest crossing id.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable, Mapping, Optional

import geopandas as gpd
import numpy as np
import pandas as pd
from shapely.geometry.base import BaseGeometry
from shapely.strtree import STRtree

from .config import PipelineConfig
from .connectivity import membership_sets
from .errors import StagePreconditionError
from .utils import empty_layer, sort_table

logger = logging.getLogger(__name__)

MARKED_BY_ROAD_COLUMNS = {"road_id": "int64", "crossing_id": "int64"}
NEAREST_COLUMNS = ["segment_id", "nearest_marked_crossing_id", "distance_m"]


class CandidateIndex:
    """STR-tree over a fixed set of candidate crossings."""

    def __init__(self, crossings: Mapping[int, BaseGeometry]) -> None:
        self.ids = sorted(int(crossing_id) for crossing_id in crossings)
        self.tree = STRtree([crossings[crossing_id] for crossing_id in self.ids])

    def __len__(self) -> int:
        return len(self.ids)

    def nearest(
        self, geom: BaseGeometry, max_distance: Optional[float] = None
    ) -> tuple[Optional[int], Optional[float]]:
        if not self.ids:
            return None, None
        indices, distances = self.tree.query_nearest(
            geom, max_distance=max_distance, return_distance=True, all_matches=True
        )
        if len(indices) == 0:
            return None, None
        # ids are sorted, so the smallest tree index is the smallest crossing id
        best = int(np.argmin(indices))
        distance = float(distances[best])
        if max_distance is not None and distance > max_distance:
            return None, None
        return self.ids[int(indices[best])], distance


def marked_crossings_by_road(
    crossings: gpd.GeoDataFrame, linkages: pd.DataFrame
) -> gpd.GeoDataFrame:
    """Distinct ``(road_id, crossing_id, geometry)`` rows for marked crossings."""

    if crossings.empty or linkages.empty:
        return empty_layer(MARKED_BY_ROAD_COLUMNS, crossings.crs)

    marked = crossings.loc[crossings["marked"], ["crossing_id", "geometry"]]
    joined = linkages.merge(marked, on="crossing_id", how="inner")
    joined = joined.drop_duplicates(subset=["road_id", "crossing_id"])
    if joined.empty:
        return empty_layer(MARKED_BY_ROAD_COLUMNS, crossings.crs)
    joined = gpd.GeoDataFrame(joined, geometry="geometry", crs=crossings.crs)
    return sort_table(joined, ["road_id", "crossing_id"])


def _geometry_lookup(marked_by_road: gpd.GeoDataFrame) -> dict[int, BaseGeometry]:
    return {
        int(crossing_id): geom
        for crossing_id, geom in zip(marked_by_road["crossing_id"], marked_by_road.geometry)
    }


def _nearest_by_name_radius(
    segments: gpd.GeoDataFrame,
    roads: gpd.GeoDataFrame,
    marked_by_road: gpd.GeoDataFrame,
    membership: pd.DataFrame,
    config: PipelineConfig,
) -> Iterable[tuple[Optional[int], Optional[float]]]:
    radius = float(config.search_radius)
    geoms = _geometry_lookup(marked_by_road)

    road_names = roads.set_index("road_id")["name"]
    named = marked_by_road.assign(name=marked_by_road["road_id"].map(road_names))
    named = named[named["name"].notna()]

    indexes: dict[str, CandidateIndex] = {}
    for name, group in named.groupby("name", sort=True):
        if not str(name).strip():
            continue
        ids = set(int(crossing_id) for crossing_id in group["crossing_id"])
        indexes[name] = CandidateIndex({crossing_id: geoms[crossing_id] for crossing_id in ids})
    logger.debug("Name-radius policy: %d street names with marked crossings.", len(indexes))

    for name, geom in zip(segments["name"], segments.geometry):
        index = indexes.get(name) if isinstance(name, str) and name.strip() else None
        if index is None:
            yield None, radius
            continue
        crossing_id, distance = index.nearest(geom, max_distance=radius)
        if crossing_id is None:
            yield None, radius
        else:
            yield crossing_id, distance


def _nearest_by_component(
    segments: gpd.GeoDataFrame,
    roads: gpd.GeoDataFrame,
    marked_by_road: gpd.GeoDataFrame,
    membership: pd.DataFrame,
    config: PipelineConfig,
) -> Iterable[tuple[Optional[int], Optional[float]]]:
    geoms = _geometry_lookup(marked_by_road)
    components = membership_sets(membership)

    crossings_on_road: dict[int, set[int]] = {}
    for road_id, crossing_id in zip(marked_by_road["road_id"], marked_by_road["crossing_id"]):
        crossings_on_road.setdefault(int(road_id), set()).add(int(crossing_id))

    by_candidates: dict[frozenset[int], CandidateIndex] = {}
    by_road: dict[int, Optional[CandidateIndex]] = {}

    def _index_for(road_id: int) -> Optional[CandidateIndex]:
        if road_id in by_road:
            return by_road[road_id]
        members = components.get(road_id, frozenset({road_id}))
        candidates: set[int] = set()
        for member in members:
            candidates |= crossings_on_road.get(member, set())
        index = None
        if candidates:
            key = frozenset(candidates)
            index = by_candidates.get(key)
            if index is None:
                index = CandidateIndex({crossing_id: geoms[crossing_id] for crossing_id in key})
                by_candidates[key] = index
        by_road[road_id] = index
        return index

    for road_id, geom in zip(segments["road_id"], segments.geometry):
        index = _index_for(int(road_id))
        if index is None:
            yield None, None
            continue
        yield index.nearest(geom)


SearchPolicy = Callable[
    [gpd.GeoDataFrame, gpd.GeoDataFrame, gpd.GeoDataFrame, pd.DataFrame, PipelineConfig],
    Iterable[tuple[Optional[int], Optional[float]]],
]

SEARCH_POLICIES: dict[str, SearchPolicy] = {
    "name-radius": _nearest_by_name_radius,
    "connected-component": _nearest_by_component,
}


def resolve_nearest_marked(
    segments: gpd.GeoDataFrame,
    roads: gpd.GeoDataFrame,
    crossings: gpd.GeoDataFrame,
    linkages: pd.DataFrame,
    membership: pd.DataFrame,
    config: PipelineConfig,
) -> pd.DataFrame:
    """Exactly one nearest-marked-crossing row per segment, in segment order."""

    policy = SEARCH_POLICIES.get(config.search_scope_policy)
    if policy is None:
        raise StagePreconditionError(
            "nearest", f"unknown search scope policy {config.search_scope_policy!r}"
        )

    marked_by_road = marked_crossings_by_road(crossings, linkages)
    results = list(policy(segments, roads, marked_by_road, membership, config))
    if len(results) != len(segments):
        raise StagePreconditionError(
            "nearest", f"produced {len(results)} results for {len(segments)} segments"
        )

    crossing_ids = [crossing_id for crossing_id, _ in results]
    distances = [np.nan if distance is None else distance for _, distance in results]
    nearest = pd.DataFrame(
        {
            "segment_id": segments["segment_id"].to_numpy(),
            "nearest_marked_crossing_id": pd.array(crossing_ids, dtype="Int64"),
            "distance_m": np.asarray(distances, dtype="float64"),
        },
        columns=NEAREST_COLUMNS,
    )
    logger.info(
        "Resolved nearest marked crossing (%s) for %d segments, %d with a match.",
        config.search_scope_policy,
        len(nearest),
        int(nearest["nearest_marked_crossing_id"].notna().sum()),
    )
    return nearest


def nearest_any_crossing(
    segments: gpd.GeoDataFrame, crossings: gpd.GeoDataFrame
) -> pd.DataFrame:
    """Nearest crossing of any type per segment and whether it is marked."""

    ids: list[Optional[int]] = [None] * len(segments)
    flags = [False] * len(segments)
    if not crossings.empty and not segments.empty:
        index = CandidateIndex(
            {int(cid): geom for cid, geom in zip(crossings["crossing_id"], crossings.geometry)}
        )
        marked = dict(zip(crossings["crossing_id"].astype(int), crossings["marked"]))
        for position, geom in enumerate(segments.geometry):
            crossing_id, _ = index.nearest(geom)
            ids[position] = crossing_id
            flags[position] = bool(marked.get(crossing_id, False))

    return pd.DataFrame(
        {
            "segment_id": segments["segment_id"].to_numpy(),
            "nearest_crossing_id": pd.array(ids, dtype="Int64"),
            "nearest_crossing_is_marked": np.asarray(flags, dtype=bool),
        }
    )
