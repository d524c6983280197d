"""
Feature Matrix Cache - Query-shape keys and TTL-bound stores.

Two process-wide stores exist: one for assembled matrix rows, one for PCA
projections. Both start empty and only expire entries lazily on read.
Embedders serving several users should hand each session its own
TTLCache instances instead of the module-level ones.
"""

import logging
import threading
from typing import Any, Generic, Iterable, Optional, TypeVar

from .clock import ClockProtocol, get_clock
from .config import DEFAULT_CACHE_TTL_SECONDS
from .models import CacheEntry, MatrixSnapshot, ProjectionResponse


logger = logging.getLogger(__name__)

T = TypeVar("T")


def build_cache_key(
    study_number: int,
    features: Iterable[str],
    subject_ids: Iterable[int],
) -> str:
    """
    Build a key identifying a (study, feature set, subject set) query.

    Both lists are sorted before joining so input order never matters.
    Caller lists are not modified.

    Raises:
        ValueError: If either list is empty
    """
    feature_list = sorted(features)
    subject_list = sorted(int(s) for s in subject_ids)

    if not feature_list:
        raise ValueError("At least one feature is required")
    if not subject_list:
        raise ValueError("At least one subject id is required")

    return (
        f"{study_number}:"
        f"{','.join(feature_list)}:"
        f"{','.join(str(s) for s in subject_list)}"
    )


class TTLCache(Generic[T]):
    """
    Keyed store whose entries are valid while younger than the TTL.

    `set` always replaces the entry under a key; there is no eviction
    policy beyond expiry.
    """

    def __init__(
        self,
        name: str,
        ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS,
        clock: Optional[ClockProtocol] = None,
    ) -> None:
        self._name = name
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry[T]] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def ttl_seconds(self) -> float:
        return self._ttl_seconds

    def _now(self):
        return (self._clock or get_clock()).now()

    def get(self, key: str) -> Optional[CacheEntry[T]]:
        """Return the entry for key, or None if absent or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None

            if entry.is_expired(self._now()):
                del self._entries[key]
                self._misses += 1
                logger.debug(f"[{self._name}] Expired entry evicted: {key}")
                return None

            entry.hits += 1
            self._hits += 1
            return entry

    def set(self, key: str, payload: T) -> CacheEntry[T]:
        """Store payload under key with the current timestamp."""
        entry = CacheEntry(
            payload=payload,
            created_at=self._now(),
            ttl_seconds=self._ttl_seconds,
        )
        with self._lock:
            self._entries[key] = entry
        logger.debug(f"[{self._name}] Stored entry: {key}")
        return entry

    def invalidate(self, key: str) -> bool:
        """Drop a single entry. Returns True if something was removed."""
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0

    def stats(self) -> dict[str, Any]:
        """Get cache statistics."""
        with self._lock:
            return {
                "name": self._name,
                "size": len(self._entries),
                "hits": self._hits,
                "misses": self._misses,
                "ttl_seconds": self._ttl_seconds,
            }

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def __repr__(self) -> str:
        return f"<TTLCache(name={self._name}, size={len(self._entries)})>"


# Process-wide stores, empty on startup
_row_cache: TTLCache[MatrixSnapshot] = TTLCache("feature_matrix_rows")
_pca_cache: TTLCache[ProjectionResponse] = TTLCache("feature_matrix_pca")


def get_row_cache() -> TTLCache[MatrixSnapshot]:
    """Get the process-wide matrix row cache."""
    return _row_cache


def get_pca_cache() -> TTLCache[ProjectionResponse]:
    """Get the process-wide PCA projection cache."""
    return _pca_cache


def reset_caches() -> None:
    """Empty both process-wide caches."""
    _row_cache.clear()
    _pca_cache.clear()
