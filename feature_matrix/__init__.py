"""
Feature Matrix Package - Bounded-concurrency loader for per-subject features.

Fetches (subject, emotion) feature rows from the viz analytics service,
at most five subjects at a time, merging rows as they arrive. Completed
matrices and their PCA projections are cached for five minutes per
(study, features, subjects) shape.

Features:
- Continuous worker pool, no wave batching
- Per-subject failures degrade completeness, never abort the batch
- Progress published after every subject
- Process-wide TTL caches, replaceable per session

Quick Start:
    from feature_matrix import FeatureMatrixLoader, VizApiClient

    async def show():
        async with VizApiClient() as client:
            loader = FeatureMatrixLoader(client)
            rows = await loader.load(3, ["ECG", "EDA"], [1, 2, 3, 4, 5, 6, 7])
            projection = await loader.trigger_projection()

            for row in projection.rows:
                print(row.subject_id, row.emotion, row.pc1, row.pc2)
"""

from feature_matrix.cache import (
    TTLCache,
    build_cache_key,
    get_pca_cache,
    get_row_cache,
    reset_caches,
)
from feature_matrix.client import VizApiClient
from feature_matrix.clock import MockClock, SystemClock, get_clock, set_clock
from feature_matrix.config import FeatureMatrixConfig, get_config, set_config
from feature_matrix.exceptions import (
    ConfigurationError,
    FeatureMatrixError,
    ProtocolError,
    RemoteError,
)
from feature_matrix.fetcher import SubjectRowFetcher
from feature_matrix.loader import FeatureMatrixLoader
from feature_matrix.models import (
    SUPPORTED_SIGNALS,
    BatchProgress,
    BatchResult,
    CacheEntry,
    FeatureColumnSet,
    FeatureRow,
    LoadStatus,
    MatrixSnapshot,
    ProjectionPoint,
    ProjectionResponse,
    ProjectionResult,
    SubjectTaskState,
)
from feature_matrix.projection import ProjectionOrchestrator
from feature_matrix.scheduler import BoundedTaskScheduler


__version__ = "1.0.0"

__all__ = [
    # Loader
    "FeatureMatrixLoader",
    "BoundedTaskScheduler",
    "SubjectRowFetcher",
    "ProjectionOrchestrator",
    "VizApiClient",

    # Cache
    "TTLCache",
    "build_cache_key",
    "get_row_cache",
    "get_pca_cache",
    "reset_caches",

    # Clock
    "SystemClock",
    "MockClock",
    "get_clock",
    "set_clock",

    # Config
    "FeatureMatrixConfig",
    "get_config",
    "set_config",

    # Models
    "SUPPORTED_SIGNALS",
    "FeatureRow",
    "FeatureColumnSet",
    "CacheEntry",
    "BatchProgress",
    "BatchResult",
    "MatrixSnapshot",
    "ProjectionPoint",
    "ProjectionResponse",
    "ProjectionResult",
    "SubjectTaskState",
    "LoadStatus",

    # Exceptions
    "FeatureMatrixError",
    "RemoteError",
    "ProtocolError",
    "ConfigurationError",
]
