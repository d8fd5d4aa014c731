"""Cutting roads into fixed-length segments."""

from __future__ import annotations

import logging
import math
from typing import Iterator, Optional

import geopandas as gpd
from shapely.geometry import LineString
from shapely.geometry.base import BaseGeometry
from shapely.ops import substring

from .utils import empty_layer, iter_lines

logger = logging.getLogger(__name__)

SEGMENT_COLUMNS = {
    "segment_id": "object",
    "road_id": "int64",
    "sequence_no": "int64",
    "name": "object",
    "highway_class": "object",
}


def format_segment_id(road_id: int, sequence_no: int) -> str:
    """Stable join key of a segment, e.g. ``(1234, 5) -> '1234_5'``."""

    return f"{int(road_id)}_{int(sequence_no)}"


def iter_line_parts(geom: Optional[BaseGeometry]) -> Iterator[LineString]:
    """Yield the non-degenerate simple line parts of a road geometry."""

    for part in iter_lines(geom):
        if part.length > 0.0:
            yield part


def segment_count(length: float, segment_length: float) -> int:
    """Number of pieces a line of ``length`` is cut into (at least one)."""

    return max(int(math.ceil(length / segment_length)), 1)


def cut_line(line: LineString, segment_length: float) -> list[LineString]:
    """Cut a line into consecutive pieces of ``segment_length``; the last may be shorter.

    Piece ``n`` spans the normalized interval ``[n*L/len, min((n+1)*L/len, 1)]``.
    """

    length = line.length
    pieces: list[LineString] = []
    for n in range(segment_count(length, segment_length)):
        start = (n * segment_length) / length
        end = min(((n + 1) * segment_length) / length, 1.0)
        piece = substring(line, start, end, normalized=True)
        if isinstance(piece, LineString) and not piece.is_empty:
            pieces.append(piece)
    return pieces


def segmentize_roads(roads: gpd.GeoDataFrame, segment_length: float) -> gpd.GeoDataFrame:
    """Split every road into segments with a dense, 0-based ``sequence_no``.

    Multi-part roads are cut part by part under the same ``road_id``; the
    numbering runs on across parts in their merged order.
    """

    if segment_length <= 0:
        raise ValueError("segment_length must be positive.")
    if roads.empty:
        return empty_layer(SEGMENT_COLUMNS, roads.crs)

    rows: list[dict[str, object]] = []
    geoms: list[LineString] = []
    skipped = 0
    for road in roads.itertuples(index=False):
        sequence_no = 0
        for part in iter_line_parts(road.geometry):
            for piece in cut_line(part, segment_length):
                rows.append(
                    {
                        "segment_id": format_segment_id(road.road_id, sequence_no),
                        "road_id": int(road.road_id),
                        "sequence_no": sequence_no,
                        "name": road.name,
                        "highway_class": road.highway_class,
                    }
                )
                geoms.append(piece)
                sequence_no += 1
        if sequence_no == 0:
            skipped += 1

    if skipped:
        logger.warning("Skipped %d roads with only degenerate geometry.", skipped)
    if not rows:
        return empty_layer(SEGMENT_COLUMNS, roads.crs)

    segments = gpd.GeoDataFrame(rows, geometry=geoms, crs=roads.crs)
    segments = segments.astype({"road_id": "int64", "sequence_no": "int64"})
    logger.info(
        "Cut %d roads into %d segments of %.1f units.",
        segments["road_id"].nunique(),
        len(segments),
        segment_length,
    )
    return segments
