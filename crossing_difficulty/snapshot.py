"""Publishing scoring results as immutable, versioned snapshots.

A run is written into a hidden staging directory, renamed to its version
directory once every table is on disk, and only then made current by
atomically replacing the ``CURRENT`` pointer file. Readers following
``CURRENT`` therefore never see a half-written run.
"""

from __future__ import annotations

import logging
import os
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import geopandas as gpd

from .pipeline import PipelineResult

logger = logging.getLogger(__name__)

CURRENT_POINTER = "CURRENT"
SEGMENTS_FILE = "segments.parquet"
UNMARKED_FILE = "unmarked_crossings.parquet"

SEGMENT_OUTPUT_COLUMNS = [
    "segment_id",
    "road_id",
    "sequence_no",
    "name",
    "highway_class",
    "distance_to_marked_m",
    "nearest_marked_crossing_id",
    "nearest_crossing_is_marked",
    "speed_limit",
    "speed_mph",
    "lane_count",
    "difficulty_index",
    "difficulty_label",
    "geometry",
]

UNMARKED_OUTPUT_COLUMNS = [
    "crossing_id",
    "crossing_type",
    "road_id",
    "segment_id",
    "name",
    "highway_class",
    "speed_limit",
    "speed_mph",
    "lane_count",
    "nearest_marked_crossing_id",
    "distance_to_marked_m",
    "distance_score",
    "speed_score",
    "lanes_score",
    "volume_score",
    "difficulty_index",
    "difficulty_label",
    "geometry",
]


def segment_output_table(scored: gpd.GeoDataFrame) -> gpd.GeoDataFrame:
    """One row per road segment, keyed by the stable ``segment_id``."""

    table = scored.rename(columns={"maxspeed": "speed_limit"})
    return table[SEGMENT_OUTPUT_COLUMNS].reset_index(drop=True)


def unmarked_output_table(unmarked: gpd.GeoDataFrame) -> gpd.GeoDataFrame:
    """One row per unmarked crossing point with its enriched road attributes."""

    table = unmarked.rename(columns={"maxspeed": "speed_limit"})
    return table[UNMARKED_OUTPUT_COLUMNS].reset_index(drop=True)


def _write_geoparquet(gdf: gpd.GeoDataFrame, output_path: Path) -> None:
    logger.info("Saving %d features to %s", len(gdf), output_path)
    gdf.to_parquet(output_path, index=False, compression="snappy")


def _default_version() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")


def current_version(root: str | Path) -> Optional[str]:
    pointer = Path(root) / CURRENT_POINTER
    if not pointer.exists():
        return None
    return pointer.read_text(encoding="utf-8").strip() or None


def publish_snapshot(
    result: PipelineResult,
    root: str | Path,
    version: Optional[str] = None,
) -> Path:
    """Write the run's output tables as a new snapshot and make it current."""

    root = Path(root)
    root.mkdir(parents=True, exist_ok=True)
    version = version or _default_version()
    if version.startswith(".") or os.sep in version or version == CURRENT_POINTER:
        raise ValueError(f"Invalid snapshot version {version!r}.")

    final_dir = root / version
    if final_dir.exists():
        raise FileExistsError(f"Snapshot {version!r} already exists in {root}.")

    staging_dir = root / f".staging-{version}"
    if staging_dir.exists():
        shutil.rmtree(staging_dir)
    staging_dir.mkdir()
    try:
        _write_geoparquet(segment_output_table(result.scored_segments), staging_dir / SEGMENTS_FILE)
        _write_geoparquet(unmarked_output_table(result.unmarked_crossings), staging_dir / UNMARKED_FILE)
        os.replace(staging_dir, final_dir)
    except BaseException:
        logger.error("Publishing snapshot %s failed; discarding staged output.", version)
        shutil.rmtree(staging_dir, ignore_errors=True)
        raise

    pointer_tmp = root / f".{CURRENT_POINTER}.{version}.tmp"
    pointer_tmp.write_text(version + "\n", encoding="utf-8")
    os.replace(pointer_tmp, root / CURRENT_POINTER)
    logger.info("Published snapshot %s to %s", version, final_dir)
    return final_dir


def read_current_snapshot(root: str | Path) -> dict[str, gpd.GeoDataFrame]:
    """Read the tables of the snapshot ``CURRENT`` points to."""

    version = current_version(root)
    if version is None:
        raise FileNotFoundError(f"No published snapshot in {root}.")
    snapshot_dir = Path(root) / version
    return {
        "segments": gpd.read_parquet(snapshot_dir / SEGMENTS_FILE),
        "unmarked_crossings": gpd.read_parquet(snapshot_dir / UNMARKED_FILE),
    }
