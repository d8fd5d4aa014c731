from .config import PipelineConfig, ScoringWeights
from .errors import CrossingPipelineError, StagePreconditionError
from .features import features_from_records, features_from_osmnx, fetch_osm_features, select_features
from .classify import classify_crossings, classify_roads
from .linkage import link_crossings_to_roads
from .segments import segmentize_roads
from .connectivity import resolve_connectivity
from .nearest import resolve_nearest_marked
from .scoring import difficulty_label, score_segments
from .enrich import enrich_unmarked_crossings
from .pipeline import PipelineResult, run_pipeline
from .snapshot import publish_snapshot, read_current_snapshot
