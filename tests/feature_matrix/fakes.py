"""
Fake viz service client and response builders for feature matrix tests.
"""

import asyncio
from typing import Any, Callable, Optional

from feature_matrix.client import VizApiClient
from feature_matrix.config import FeatureMatrixConfig
from feature_matrix.exceptions import RemoteError


FEATURE_COLUMNS = ["ECG_dom_freq", "ECG_energy", "EDA_mean", "EDA_std"]


def matrix_body(
    subject_id: int,
    emotions: tuple[str, ...] = ("Baseline", "Fear1"),
    columns: Optional[list[str]] = None,
) -> dict[str, Any]:
    """Build a /features/matrix response for one subject."""
    columns = FEATURE_COLUMNS if columns is None else columns
    return {
        "study_number": 3,
        "columns": ["Subject", "Emotion", "_color", *columns],
        "signals_used": ["ECG", "EDA"],
        "rows": [
            {
                "Subject": subject_id,
                "Emotion": emotion,
                "_color": "#808080",
                **{col: float(subject_id * 10 + i) for i, col in enumerate(columns)},
            }
            for emotion in emotions
        ],
    }


def pca_body(points: list[tuple[int, str, float, float]]) -> dict[str, Any]:
    """Build a /pca/frequency response."""
    return {
        "study_number": 3,
        "features_used": ["ECG", "EDA"],
        "variance_explained": [0.62, 0.21],
        "data_points": [
            {"subject_id": s, "emotion": e, "color": "#808080", "pc1": x, "pc2": y}
            for s, e, x, y in points
        ],
    }


class FakeVizClient(VizApiClient):
    """VizApiClient whose endpoints are answered from Python callables."""

    def __init__(
        self,
        matrix_handler: Optional[Callable[[int], Any]] = None,
        pca_handler: Optional[Callable[[], Any]] = None,
        config: Optional[FeatureMatrixConfig] = None,
        delay: float = 0.0,
    ) -> None:
        super().__init__(config=config or FeatureMatrixConfig())
        self._matrix_handler = matrix_handler or matrix_body
        self._pca_handler = pca_handler or (lambda: pca_body([]))
        self._delay = delay
        self.matrix_calls: list[int] = []
        self.pca_calls = 0

    async def get_feature_matrix(self, study_number, features, subject_ids):
        subject_id = list(subject_ids)[0]
        self.matrix_calls.append(subject_id)
        await asyncio.sleep(self._delay)
        return self._matrix_handler(subject_id)

    async def get_frequency_pca(self, study_number, features, subject_ids):
        self.pca_calls += 1
        await asyncio.sleep(self._delay)
        return self._pca_handler()

    async def get_subjects(self, study_number):
        return [1, 2, 3]


def failing_for(*subject_ids: int, status: int = 500) -> Callable[[int], Any]:
    """Matrix handler that raises RemoteError for the given subjects."""
    def handler(subject_id: int) -> Any:
        if subject_id in subject_ids:
            raise RemoteError(f"HTTP {status}", subject_id=subject_id, status_code=status)
        return matrix_body(subject_id)
    return handler
