"""
PCA Request Orchestrator - Cached 2-D projection joined back onto rows.

The projection is requested once for the whole (study, features, subjects)
shape. The PCA cache is written only after a response validated cleanly.
"""

import logging
from typing import Any, Optional

from .cache import TTLCache, build_cache_key, get_pca_cache
from .client import VizApiClient
from .exceptions import ProtocolError, RemoteError
from .models import FeatureRow, ProjectionResponse, ProjectionResult


logger = logging.getLogger(__name__)


class ProjectionOrchestrator:
    """Serves projections from cache or one aggregate request."""

    def __init__(
        self,
        client: VizApiClient,
        cache: Optional[TTLCache[ProjectionResponse]] = None,
    ) -> None:
        self._client = client
        self._cache = cache if cache is not None else get_pca_cache()

    async def get_projection(
        self,
        study_number: int,
        features: list[str],
        subject_ids: list[int],
        rows: list[FeatureRow],
    ) -> ProjectionResult:
        """
        Attach projection coordinates to rows.

        Rows without a matching (subject, emotion) point are returned
        unprojected, never dropped. Row order is preserved.

        Raises:
            RemoteError: Aggregate request failed
            ProtocolError: Response lacks a usable point collection
        """
        key = build_cache_key(study_number, features, subject_ids)

        entry = self._cache.get(key)
        if entry is not None:
            logger.debug(f"[study={study_number}] PCA cache hit")
            projection = entry.payload
            from_cache = True
        else:
            try:
                body = await self._client.get_frequency_pca(study_number, features, subject_ids)
                projection = self._parse(body, study_number)
            except (RemoteError, ProtocolError) as e:
                logger.error(f"[study={study_number}] PCA request failed: {e}")
                raise
            self._cache.set(key, projection)
            from_cache = False

        joined = self.join(rows, projection)
        result = ProjectionResult(
            rows=joined,
            variance_explained=projection.variance_explained,
            features_used=projection.features_used,
            from_cache=from_cache,
        )
        logger.info(
            f"[study={study_number}] Projected {result.projected_count}/{len(rows)} rows"
        )
        return result

    @staticmethod
    def _parse(body: Any, study_number: int) -> ProjectionResponse:
        """Validate the aggregate response shape."""
        if not isinstance(body, dict) or not isinstance(body.get("data_points"), list):
            raise ProtocolError(
                "Invalid PCA response: data_points not found",
                study_number=study_number,
                field_name="data_points",
                raw_data=body,
            )
        try:
            return ProjectionResponse.from_dict(body)
        except (KeyError, TypeError, ValueError, IndexError) as e:
            raise ProtocolError(
                f"Invalid PCA response: {e}",
                study_number=study_number,
                field_name="data_points",
                raw_data=body,
                original_error=e,
            )

    @staticmethod
    def join(rows: list[FeatureRow], projection: ProjectionResponse) -> list[FeatureRow]:
        """Match points to rows by (subject id, emotion)."""
        points = {point.key: point for point in projection.points}
        joined = []
        for row in rows:
            point = points.get(row.key)
            if point is None:
                joined.append(row)
            else:
                joined.append(row.with_projection(point.pc1, point.pc2))

        unmatched = len(points.keys() - {row.key for row in rows})
        if unmatched:
            logger.debug(f"{unmatched} projection points had no matching row")
        return joined
