"""
Per-Subject Fetcher - One matrix request per subject, normalized to rows.

Safe to run concurrently for different subjects. The only shared state it
touches is the batch's FeatureColumnSet, which is first-writer-wins.
"""

import logging
from numbers import Real
from typing import Any, Optional

from .client import VizApiClient
from .exceptions import ProtocolError
from .models import FeatureColumnSet, FeatureRow


logger = logging.getLogger(__name__)


def _is_numeric(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


class SubjectRowFetcher:
    """
    Fetches and normalizes feature rows for a single subject.

    A non-success response raises RemoteError. A missing or malformed row
    collection yields an empty list instead.
    """

    def __init__(self, client: VizApiClient) -> None:
        self._client = client

    async def fetch_subject_rows(
        self,
        study_number: int,
        features: list[str],
        subject_id: int,
        column_set: FeatureColumnSet,
    ) -> list[FeatureRow]:
        """
        Fetch one subject's rows.

        Args:
            study_number: Study to query
            features: Signal names, sent comma-joined
            subject_id: The single subject to fetch
            column_set: Column set shared by the current batch

        Returns:
            One FeatureRow per emotion present in the subject's data

        Raises:
            RemoteError: On non-2xx status or transport failure
        """
        try:
            body = await self._client.get_feature_matrix(study_number, features, [subject_id])
        except ProtocolError as e:
            logger.warning(f"[study={study_number} subject={subject_id}] Unreadable response: {e}")
            return []

        raw_rows = self._extract_rows(body, study_number, subject_id)
        if raw_rows is None:
            return []

        columns = body.get("columns")
        if isinstance(columns, list) and column_set.capture(columns):
            logger.debug(
                f"[study={study_number}] Feature columns captured from subject {subject_id}: "
                f"{len(column_set)} columns"
            )

        rows = []
        for item in raw_rows:
            row = self._to_row(item, column_set, subject_id)
            if row is not None:
                rows.append(row)
        return rows

    @staticmethod
    def _extract_rows(
        body: Any,
        study_number: int,
        subject_id: int,
    ) -> Optional[list[Any]]:
        """Return the raw row list, or None if the payload has none."""
        if not isinstance(body, dict) or not isinstance(body.get("rows"), list):
            logger.warning(
                f"[study={study_number} subject={subject_id}] Response has no row collection"
            )
            return None
        return body["rows"]

    @staticmethod
    def _to_row(
        item: Any,
        column_set: FeatureColumnSet,
        fallback_subject_id: int,
    ) -> Optional[FeatureRow]:
        """Project one raw row, keeping numeric feature fields only."""
        if not isinstance(item, dict) or "Emotion" not in item:
            logger.debug(f"[subject={fallback_subject_id}] Skipping malformed row: {item!r}")
            return None

        features = {
            col: float(item[col])
            for col in column_set
            if _is_numeric(item.get(col))
        }
        try:
            subject_id = int(item.get("Subject", fallback_subject_id))
        except (TypeError, ValueError):
            subject_id = fallback_subject_id

        return FeatureRow(
            subject_id=subject_id,
            emotion=str(item["Emotion"]),
            color=str(item.get("_color", "")),
            features=features,
        )
