"""Attach the worst nearby road segment to every unmarked crossing."""

from __future__ import annotations

import logging

import geopandas as gpd
import numpy as np
import pandas as pd
import shapely

from .scoring import difficulty_label
from .utils import expanded_envelopes

logger = logging.getLogger(__name__)

COPIED_SEGMENT_COLUMNS = [
    "road_id",
    "segment_id",
    "name",
    "highway_class",
    "maxspeed",
    "speed_mph",
    "lane_count",
    "nearest_marked_crossing_id",
    "distance_to_marked_m",
    "distance_score",
    "speed_score",
    "lanes_score",
    "volume_score",
    "difficulty_index",
]

ENRICHED_COLUMNS = [
    "crossing_id",
    "crossing_type",
    *COPIED_SEGMENT_COLUMNS,
    "difficulty_label",
    "geometry",
]


def _candidate_pairs(
    crossings: gpd.GeoDataFrame,
    scored: gpd.GeoDataFrame,
    linkages: pd.DataFrame,
    tolerance: float,
) -> pd.DataFrame:
    """Every (crossing, segment) pair on a linked road within ``tolerance``."""

    columns = ["crossing_id", "segment_pos", "snap_distance_m"]
    if crossings.empty or scored.empty or linkages.empty:
        return pd.DataFrame(columns=columns)

    points = np.asarray(crossings.geometry.values)
    envelopes = expanded_envelopes(points, tolerance)
    crossing_idx, segment_idx = scored.sindex.query(envelopes, predicate="intersects")
    if len(crossing_idx) == 0:
        return pd.DataFrame(columns=columns)

    distances = shapely.distance(points[crossing_idx], np.asarray(scored.geometry.values)[segment_idx])
    pairs = pd.DataFrame(
        {
            "crossing_id": crossings["crossing_id"].to_numpy()[crossing_idx],
            "road_id": scored["road_id"].to_numpy()[segment_idx],
            "segment_pos": segment_idx,
            "snap_distance_m": distances,
        }
    )
    pairs = pairs[pairs["snap_distance_m"] <= tolerance]
    linked = linkages[["road_id", "crossing_id"]].drop_duplicates()
    pairs = pairs.merge(linked, on=["road_id", "crossing_id"], how="inner")
    return pairs[columns]


def enrich_unmarked_crossings(
    crossings: gpd.GeoDataFrame,
    scored: gpd.GeoDataFrame,
    linkages: pd.DataFrame,
    tolerance: float,
    override_classes,
) -> gpd.GeoDataFrame:
    """One row per unmarked crossing, carrying its most difficult snapped segment.

    Candidates are segments of roads linked to the crossing that lie within
    ``tolerance`` of the point. The highest ``difficulty_index`` wins, then the
    smallest distance to the point, then the smallest ``segment_id``. Crossings
    without a candidate keep null road attributes. The low-volume override is
    applied again to the copied index rather than trusting the stored value.
    """

    unmarked = crossings[crossings["unmarked"]].reset_index(drop=True)
    pairs = _candidate_pairs(unmarked, scored, linkages, tolerance)

    if not pairs.empty:
        pairs = pairs.assign(
            difficulty_index=scored["difficulty_index"].to_numpy()[pairs["segment_pos"].astype(int)],
            segment_id=scored["segment_id"].to_numpy()[pairs["segment_pos"].astype(int)],
        )
        pairs = pairs.sort_values(
            ["crossing_id", "difficulty_index", "snap_distance_m", "segment_id"],
            ascending=[True, False, True, True],
            na_position="last",
            kind="mergesort",
        )
        best = pairs.drop_duplicates(subset=["crossing_id"], keep="first")
        winners = scored.iloc[best["segment_pos"].astype(int).to_numpy()][COPIED_SEGMENT_COLUMNS]
        winners = pd.DataFrame(winners).assign(crossing_id=best["crossing_id"].to_numpy())
    else:
        winners = pd.DataFrame(
            {column: pd.Series(dtype="object") for column in COPIED_SEGMENT_COLUMNS}
        ).assign(crossing_id=pd.Series(dtype="int64"))

    enriched = unmarked[["crossing_id", "crossing_type", "geometry"]].merge(
        winners, on="crossing_id", how="left"
    )
    overridden = enriched["highway_class"].isin(set(override_classes))
    enriched["difficulty_index"] = pd.to_numeric(enriched["difficulty_index"], errors="coerce")
    enriched.loc[overridden, "difficulty_index"] = 0.0
    enriched["difficulty_label"] = [
        difficulty_label(index) if highway_class is not None and not pd.isna(highway_class) else None
        for index, highway_class in zip(enriched["difficulty_index"], enriched["highway_class"])
    ]

    enriched = gpd.GeoDataFrame(enriched[ENRICHED_COLUMNS], geometry="geometry", crs=crossings.crs)
    logger.info(
        "Enriched %d unmarked crossings, %d matched to a road segment.",
        len(enriched),
        int(enriched["segment_id"].notna().sum()),
    )
    return enriched
