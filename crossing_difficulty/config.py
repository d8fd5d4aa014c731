"""Configuration objects and type aliases for the crossing difficulty pipeline."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import FrozenSet, Literal, Optional, Sequence, Tuple


SearchScopePolicyLiteral = Literal["name-radius", "connected-component"]
BBox = Tuple[float, float, float, float]

SEARCH_SCOPE_POLICIES: tuple[str, ...] = ("name-radius", "connected-component")

DRIVABLE_HIGHWAY_CLASSES: tuple[str, ...] = (
    "living_street",
    "primary",
    "primary_link",
    "residential",
    "secondary",
    "secondary_link",
    "service",
    "tertiary",
    "tertiary_link",
    "trunk",
    "trunk_link",
)

DEFAULT_OVERRIDE_CLASSES: FrozenSet[str] = frozenset(
    {"residential", "living_street", "service"}
)


@dataclass(frozen=True)
class ScoringWeights:
    """Weights of the four sub-scores in the composite difficulty index."""

    distance: float = 0.25
    speed: float = 0.25
    lanes: float = 0.25
    volume: float = 0.25

    def __post_init__(self) -> None:
        values = self.as_tuple()
        if any(not math.isfinite(v) or v < 0.0 for v in values):
            raise ValueError(f"scoring weights must be finite and non-negative: {values}")
        if not math.isclose(sum(values), 1.0, rel_tol=0.0, abs_tol=1e-9):
            raise ValueError(f"scoring weights must sum to 1, got {sum(values)!r}")

    def as_tuple(self) -> tuple[float, float, float, float]:
        return (self.distance, self.speed, self.lanes, self.volume)


def _coerce_weights(weights: object) -> ScoringWeights:
    """Accept a ``ScoringWeights`` or a plain 4-sequence of floats."""

    if isinstance(weights, ScoringWeights):
        return weights
    if isinstance(weights, (str, bytes)) or not isinstance(weights, Sequence):
        raise ValueError(
            f"scoring_weights must be ScoringWeights or four floats, got {type(weights).__name__}."
        )
    if len(weights) != 4:
        raise ValueError(f"scoring_weights needs four values, got {len(weights)}.")
    try:
        values = [float(w) for w in weights]
    except (TypeError, ValueError) as exc:
        raise ValueError(f"scoring_weights must be numeric: {weights!r}") from exc
    return ScoringWeights(*values)


@dataclass
class PipelineConfig:
    """User-facing configuration for a scoring run."""

    segment_length: float = 20.0
    snap_distance: float = 0.2
    enrich_snap_distance: float = 0.1
    search_radius: float = 500.0
    search_scope_policy: SearchScopePolicyLiteral = "connected-component"
    scoring_weights: ScoringWeights = field(default_factory=ScoringWeights)
    override_classes: FrozenSet[str] = DEFAULT_OVERRIDE_CLASSES
    road_highway_classes: tuple[str, ...] = DRIVABLE_HIGHWAY_CLASSES
    distance_cap_m: float = 500.0
    crs: str = "EPSG:3857"  # working planar projection, distances in ~meters
    bbox: Optional[BBox] = None
    use_cache: bool = True
    timeout: int = 180

    def __post_init__(self) -> None:
        if not self.segment_length > 0:
            raise ValueError("segment_length must be positive.")
        if self.snap_distance < 0 or self.enrich_snap_distance < 0:
            raise ValueError("snap distances must be non-negative.")
        if self.enrich_snap_distance > self.snap_distance:
            raise ValueError("enrich_snap_distance must not exceed snap_distance.")
        if not self.search_radius > 0:
            raise ValueError("search_radius must be positive.")
        if not self.distance_cap_m > 0:
            raise ValueError("distance_cap_m must be positive.")
        if self.search_scope_policy not in SEARCH_SCOPE_POLICIES:
            raise ValueError(
                f"Unknown search_scope_policy {self.search_scope_policy!r}; "
                f"expected one of {SEARCH_SCOPE_POLICIES}."
            )
        if self.bbox is not None and len(self.bbox) != 4:
            raise ValueError("bbox must be (minx, miny, maxx, maxy).")
        self.override_classes = frozenset(self.override_classes)
        self.road_highway_classes = tuple(self.road_highway_classes)
        self.scoring_weights = _coerce_weights(self.scoring_weights)
