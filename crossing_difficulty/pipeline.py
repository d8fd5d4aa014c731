"""End-to-end scoring run: classify, link, segment, connect, resolve, score, enrich."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import geopandas as gpd
import pandas as pd

from .classify import classify_crossings, classify_roads
from .config import PipelineConfig
from .connectivity import resolve_connectivity
from .enrich import enrich_unmarked_crossings
from .errors import StagePreconditionError
from .features import select_features
from .linkage import link_crossings_to_roads
from .nearest import nearest_any_crossing, resolve_nearest_marked
from .scoring import score_segments
from .segments import segmentize_roads
from .utils import ensure_projected

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineResult:
    """Every intermediate and final table of one run."""

    config: PipelineConfig
    roads: gpd.GeoDataFrame
    crossings: gpd.GeoDataFrame
    linkages: pd.DataFrame
    segments: gpd.GeoDataFrame
    edges: pd.DataFrame
    membership: pd.DataFrame
    nearest: pd.DataFrame
    scored_segments: gpd.GeoDataFrame
    unmarked_crossings: gpd.GeoDataFrame


def _require_columns(stage: str, table: pd.DataFrame, columns: tuple[str, ...]) -> None:
    missing = [column for column in columns if column not in table.columns]
    if missing:
        raise StagePreconditionError(stage, f"input is missing columns {missing}")


def run_pipeline(
    features: gpd.GeoDataFrame, config: Optional[PipelineConfig] = None
) -> PipelineResult:
    """Run every stage over the feature layer and return the complete result.

    Nothing is returned unless every stage finished; a precondition failure in
    any stage raises :class:`StagePreconditionError`.
    """

    config = config or PipelineConfig()
    _require_columns("classify", features, ("id", "kind", "tags", "geometry"))

    if not features.empty:
        features = ensure_projected(features, config.crs)
    if config.bbox is not None:
        features = select_features(features, bbox=config.bbox)
        logger.info("Restricted run to %d features inside %s.", len(features), config.bbox)

    roads = classify_roads(features, config)
    crossings = classify_crossings(features)

    linkages = link_crossings_to_roads(roads, crossings, config.snap_distance)
    segments = segmentize_roads(roads, config.segment_length)
    edges, membership = resolve_connectivity(roads)

    if not set(roads["road_id"]).issubset(set(membership["start_road_id"])):
        raise StagePreconditionError("connectivity", "membership does not cover every road")

    nearest = resolve_nearest_marked(segments, roads, crossings, linkages, membership, config)
    nearest_any = nearest_any_crossing(segments, crossings)
    scored = score_segments(segments, roads, nearest, config, nearest_any=nearest_any)
    unmarked = enrich_unmarked_crossings(
        crossings,
        scored,
        linkages,
        config.enrich_snap_distance,
        config.override_classes,
    )

    logger.info(
        "Run complete: %d roads, %d crossings, %d segments, %d unmarked crossings.",
        len(roads),
        len(crossings),
        len(scored),
        len(unmarked),
    )
    return PipelineResult(
        config=config,
        roads=roads,
        crossings=crossings,
        linkages=linkages,
        segments=segments,
        edges=edges,
        membership=membership,
        nearest=nearest,
        scored_segments=scored,
        unmarked_crossings=unmarked,
    )
