"""
Viz API Client - Read-only HTTP access to the analytics service.

All calls are GETs without bodies. Non-2xx responses and transport failures
raise RemoteError; bodies that are not JSON raise ProtocolError. Nothing is
retried here.
"""

import asyncio
import logging
import time
from typing import Any, Iterable, Optional

import aiohttp

from .config import FeatureMatrixConfig, get_config
from .exceptions import ProtocolError, RemoteError


logger = logging.getLogger(__name__)


class VizApiClient:
    """
    Thin async client for the viz and study APIs.

    Usage:
        async with VizApiClient() as client:
            body = await client.get_feature_matrix(3, ["ECG", "EDA"], [1])
    """

    def __init__(
        self,
        config: Optional[FeatureMatrixConfig] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self._config = config or get_config()
        self._session = session
        self._owns_session = session is None
        self._request_count = 0
        self._error_count = 0

    @property
    def config(self) -> FeatureMatrixConfig:
        return self._config

    # ---------------------------------------------------------
    # Endpoints
    # ---------------------------------------------------------

    async def get_feature_matrix(
        self,
        study_number: int,
        features: Iterable[str],
        subject_ids: Iterable[int],
    ) -> Any:
        """Fetch feature matrix rows for the given subjects."""
        url = f"{self._config.viz_base_url}/features/matrix/{study_number}"
        params = {
            "features": ",".join(features),
            "subject_ids": ",".join(str(s) for s in subject_ids),
        }
        return await self._get(url, params, study_number=study_number)

    async def get_frequency_pca(
        self,
        study_number: int,
        features: Iterable[str],
        subject_ids: Iterable[int],
    ) -> Any:
        """Request the 2-D projection over all given subjects at once."""
        url = f"{self._config.viz_base_url}/pca/frequency/{study_number}"
        params = {
            "features": ",".join(features),
            "subject_ids": ",".join(str(s) for s in subject_ids),
        }
        return await self._get(url, params, study_number=study_number)

    async def get_features(self, study_number: int) -> list[dict[str, Any]]:
        """List the feature catalogue the service offers for a study."""
        url = f"{self._config.viz_base_url}/features/{study_number}"
        body = await self._get(url, study_number=study_number)
        if not isinstance(body, list):
            raise ProtocolError(
                "Feature catalogue is not a list",
                study_number=study_number,
                raw_data=body,
            )
        return body

    async def get_subjects(self, study_number: int) -> list[int]:
        """List subject ids available in a study."""
        url = f"{self._config.api_base_url}/study/{study_number}/subjects"
        body = await self._get(url, study_number=study_number)
        if not isinstance(body, list):
            raise ProtocolError(
                "Subject list is not a list",
                study_number=study_number,
                raw_data=body,
            )
        try:
            return [int(item["id"]) if isinstance(item, dict) else int(item) for item in body]
        except (KeyError, TypeError, ValueError) as e:
            raise ProtocolError(
                "Subject entry without a usable id",
                study_number=study_number,
                field_name="id",
                raw_data=body,
                original_error=e,
            )

    # ---------------------------------------------------------
    # HTTP plumbing
    # ---------------------------------------------------------

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._config.request_timeout_seconds),
                headers=self._get_default_headers(),
            )
            self._owns_session = True
        return self._session

    def _get_default_headers(self) -> dict[str, str]:
        return {
            "Accept": "application/json",
            "User-Agent": "FeatureMatrixLoader/1.0",
        }

    async def _get(
        self,
        url: str,
        params: Optional[dict[str, str]] = None,
        study_number: Optional[int] = None,
    ) -> Any:
        """Issue one GET and decode the JSON body."""
        session = await self._get_session()
        self._request_count += 1

        start_time = time.time()
        try:
            async with session.request("GET", url, params=params) as response:
                latency_ms = (time.time() - start_time) * 1000

                if not 200 <= response.status < 300:
                    self._error_count += 1
                    body = await response.text()
                    raise RemoteError(
                        message=f"HTTP {response.status}",
                        study_number=study_number,
                        status_code=response.status,
                        response_body=body[:1000],
                        request_url=url,
                    )

                try:
                    data = await response.json(content_type=None)
                except ValueError as e:
                    self._error_count += 1
                    raise ProtocolError(
                        message="Response body is not valid JSON",
                        study_number=study_number,
                        original_error=e,
                        context={"url": url},
                    )

                logger.debug(f"GET {url} completed in {latency_ms:.1f}ms")
                return data

        except aiohttp.ClientError as e:
            self._error_count += 1
            raise RemoteError(
                message=f"Connection error: {e}",
                study_number=study_number,
                request_url=url,
                original_error=e,
            )

        except asyncio.TimeoutError as e:
            self._error_count += 1
            raise RemoteError(
                message="Request timed out",
                study_number=study_number,
                request_url=url,
                original_error=e,
            )

    def get_stats(self) -> dict[str, Any]:
        return {
            "requests": self._request_count,
            "errors": self._error_count,
        }

    async def close(self) -> None:
        """Close resources."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> "VizApiClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"<VizApiClient(viz={self._config.viz_base_url})>"
