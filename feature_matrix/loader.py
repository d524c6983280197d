"""
Feature Matrix Loader - Session object the presentation layer binds to.

============================================================
RESPONSIBILITY
============================================================
- Filter requested signals to the supported set
- Serve rows from the row cache or run a bounded batch
- Expose a growing row collection, progress and status
- Notify listeners after every change
- Trigger the PCA projection for the loaded query

============================================================
LIFECYCLE
============================================================
1. load(study, signals, subject_ids)
2. listeners observe rows/progress while the batch runs
3. trigger_projection() once rows are present

Starting a new load supersedes the running one: updates from the older
batch are discarded and its rows are never cached.

============================================================
"""

import logging
from typing import Any, Callable, Optional

from .cache import TTLCache, build_cache_key, get_pca_cache, get_row_cache
from .client import VizApiClient
from .config import FeatureMatrixConfig
from .exceptions import ConfigurationError, FeatureMatrixError
from .fetcher import SubjectRowFetcher
from .models import (
    BatchProgress,
    FeatureColumnSet,
    FeatureRow,
    LoadStatus,
    MatrixSnapshot,
    ProjectionResponse,
    ProjectionResult,
)
from .projection import ProjectionOrchestrator
from .scheduler import BoundedTaskScheduler


logger = logging.getLogger(__name__)

Listener = Callable[["FeatureMatrixLoader"], None]

MIN_PROJECTION_COLUMNS = 2


class FeatureMatrixLoader:
    """
    Loads a feature matrix for one (study, signals, subjects) query at a time.

    Usage:
        async with VizApiClient() as client:
            loader = FeatureMatrixLoader(client)
            loader.add_listener(lambda l: print(l.progress))
            rows = await loader.load(3, ["ECG", "EDA"], [1, 2, 3])
            projection = await loader.trigger_projection()
    """

    def __init__(
        self,
        client: VizApiClient,
        config: Optional[FeatureMatrixConfig] = None,
        row_cache: Optional[TTLCache[MatrixSnapshot]] = None,
        pca_cache: Optional[TTLCache[ProjectionResponse]] = None,
    ) -> None:
        self._config = config or client.config
        errors = self._config.validate()
        if errors:
            raise ConfigurationError(f"Invalid configuration: {'; '.join(errors)}")

        self._row_cache = row_cache if row_cache is not None else get_row_cache()
        self._fetcher = SubjectRowFetcher(client)
        self._projector = ProjectionOrchestrator(
            client,
            pca_cache if pca_cache is not None else get_pca_cache(),
        )

        # Query
        self._study_number: Optional[int] = None
        self._features: list[str] = []
        self._subject_ids: list[int] = []

        # Presentation state
        self._rows: list[FeatureRow] = []
        self._columns: tuple[str, ...] = ()
        self._progress = BatchProgress(completed=0, total=0)
        self._status = LoadStatus.IDLE
        self._error: Optional[str] = None
        self._failed_subjects: list[int] = []

        self._generation = 0
        self._listeners: list[Listener] = []

    # ---------------------------------------------------------
    # State exposed to the presentation layer
    # ---------------------------------------------------------

    @property
    def rows(self) -> list[FeatureRow]:
        return list(self._rows)

    @property
    def columns(self) -> tuple[str, ...]:
        return self._columns

    @property
    def progress(self) -> BatchProgress:
        return self._progress

    @property
    def status(self) -> LoadStatus:
        return self._status

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def is_loading(self) -> bool:
        return self._status == LoadStatus.LOADING

    @property
    def features(self) -> list[str]:
        return list(self._features)

    @property
    def failed_subjects(self) -> list[int]:
        return list(self._failed_subjects)

    def add_listener(self, listener: Listener) -> None:
        """Register a callback invoked after every state change."""
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self) -> None:
        for listener in self._listeners:
            try:
                listener(self)
            except Exception as e:
                logger.error(f"Listener error: {e}")

    # ---------------------------------------------------------
    # Loading
    # ---------------------------------------------------------

    async def load(
        self,
        study_number: int,
        signals: list[str],
        subject_ids: list[int],
    ) -> list[FeatureRow]:
        """
        Load the feature matrix for a query.

        Returns:
            All rows that arrived; subjects that failed are simply missing
        """
        self._generation += 1
        generation = self._generation

        features = self._config.filter_signals(signals)
        self._study_number = study_number
        self._features = features
        self._subject_ids = list(subject_ids)
        self._failed_subjects = []
        self._error = None

        if not features or not subject_ids:
            logger.info(f"[study={study_number}] Nothing to load for signals={signals}")
            self._set_rows([], (), BatchProgress(completed=0, total=0), LoadStatus.OK)
            return []

        key = build_cache_key(study_number, features, subject_ids)
        entry = self._row_cache.get(key)
        if entry is not None:
            snapshot = entry.payload
            logger.debug(f"[study={study_number}] Row cache hit ({len(snapshot.rows)} rows)")
            done = BatchProgress(completed=len(subject_ids), total=len(subject_ids))
            self._set_rows(list(snapshot.rows), snapshot.columns, done, LoadStatus.OK)
            return list(snapshot.rows)

        self._set_rows([], (), BatchProgress(completed=0, total=len(subject_ids)), LoadStatus.LOADING)

        column_set = FeatureColumnSet()

        async def fetch_one(subject_id: int) -> list[FeatureRow]:
            return await self._fetcher.fetch_subject_rows(
                study_number, features, subject_id, column_set
            )

        def on_progress(rows: list[FeatureRow], progress: BatchProgress) -> None:
            if generation != self._generation:
                return
            self._set_rows(rows, column_set.columns, progress, LoadStatus.LOADING)

        try:
            scheduler = BoundedTaskScheduler(self._config.concurrency_limit)
            result = await scheduler.run_batch(list(subject_ids), fetch_one, on_progress)
        except Exception as e:
            if generation == self._generation:
                self._error = str(e) or "Failed to fetch feature matrix data"
                self._status = LoadStatus.ERROR
                self._notify()
            raise

        if generation != self._generation:
            logger.debug(f"[study={study_number}] Discarding superseded batch")
            return result.rows

        self._failed_subjects = list(result.failed_subjects)
        if result.is_partial:
            logger.warning(
                f"[study={study_number}] Not caching partial matrix; "
                f"failed subjects: {result.failed_subjects}"
            )
        else:
            self._row_cache.set(key, MatrixSnapshot(rows=tuple(result.rows), columns=column_set.columns))

        self._set_rows(result.rows, column_set.columns, self._progress, LoadStatus.OK)
        return list(result.rows)

    def _set_rows(
        self,
        rows: list[FeatureRow],
        columns: tuple[str, ...],
        progress: BatchProgress,
        status: LoadStatus,
    ) -> None:
        self._rows = rows
        self._columns = columns
        self._progress = progress
        self._status = status
        self._notify()

    # ---------------------------------------------------------
    # Projection
    # ---------------------------------------------------------

    async def trigger_projection(self) -> ProjectionResult:
        """
        Project the currently loaded rows onto two principal components.

        A failure leaves the loaded rows untouched and is re-raised.

        Raises:
            FeatureMatrixError: Still loading, nothing loaded, too few columns,
                or request failed
        """
        if self.is_loading:
            raise FeatureMatrixError(
                "Cannot project while subjects are still loading",
                study_number=self._study_number,
            )
        if self._study_number is None or not self._rows:
            raise FeatureMatrixError("No feature rows loaded to project")
        if len(self._columns) < MIN_PROJECTION_COLUMNS:
            raise FeatureMatrixError(
                f"Projection needs at least {MIN_PROJECTION_COLUMNS} feature columns, "
                f"got {len(self._columns)}",
                study_number=self._study_number,
            )

        self._error = None
        try:
            return await self._projector.get_projection(
                self._study_number,
                self._features,
                self._subject_ids,
                self._rows,
            )
        except FeatureMatrixError as e:
            self._error = e.message
            self._notify()
            raise

    def to_dict(self) -> dict[str, Any]:
        return {
            "study_number": self._study_number,
            "features": self._features,
            "subject_ids": self._subject_ids,
            "status": self._status.value,
            "error": self._error,
            "progress": self._progress.to_dict(),
            "row_count": len(self._rows),
            "columns": list(self._columns),
            "failed_subjects": self._failed_subjects,
        }
