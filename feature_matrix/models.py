"""
Feature Matrix Models - Row, progress and cache structures.

Rows are immutable once built. Projection coordinates are attached by
producing a new row so cached batches stay untouched.
"""

import threading
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Generic, Mapping, Optional, TypeVar


T = TypeVar("T")


# Signals the viz service can compute frequency features for
SUPPORTED_SIGNALS: tuple[str, ...] = (
    "ECG", "EDA", "SBP", "DBP", "temp", "respiration", "dzdt", "dz", "z0",
)

# Fields in a matrix payload that identify a row rather than measure it
IDENTITY_FIELDS: frozenset[str] = frozenset({"Subject", "Emotion", "_color"})


class SubjectTaskState(Enum):
    """Lifecycle of one subject inside a batch."""
    QUEUED = "queued"
    IN_FLIGHT = "in_flight"
    COMPLETED = "completed"
    FAILED = "failed"

    def is_terminal(self) -> bool:
        return self in (SubjectTaskState.COMPLETED, SubjectTaskState.FAILED)


class LoadStatus(Enum):
    """Status exposed to the presentation layer."""
    IDLE = "idle"
    LOADING = "loading"
    OK = "ok"
    ERROR = "error"


@dataclass(frozen=True)
class FeatureRow:
    """
    One (subject, emotion) observation.

    `features` maps column names such as `ECG_dom_freq` to numeric values
    and is read-only.
    `pc1`/`pc2` are only set once a PCA round has been joined onto the row.
    """
    subject_id: int
    emotion: str
    color: str
    features: Mapping[str, float] = field(default_factory=dict)
    pc1: Optional[float] = None
    pc2: Optional[float] = None

    def __post_init__(self) -> None:
        # Read-only view over a private copy
        object.__setattr__(self, "features", MappingProxyType(dict(self.features)))

    @property
    def key(self) -> tuple[int, str]:
        """Join key used to match projection points."""
        return (self.subject_id, self.emotion)

    @property
    def has_projection(self) -> bool:
        return self.pc1 is not None and self.pc2 is not None

    def with_projection(self, pc1: float, pc2: float) -> "FeatureRow":
        """Return a copy carrying projection coordinates."""
        return replace(self, pc1=pc1, pc2=pc2)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "subject_id": self.subject_id,
            "emotion": self.emotion,
            "color": self.color,
            "features": dict(self.features),
            "pc1": self.pc1,
            "pc2": self.pc2,
        }


class FeatureColumnSet:
    """
    Ordered feature column names for one batch.

    The first successful response wins; later captures are ignored so the
    set never changes mid-batch.
    """

    def __init__(self) -> None:
        self._columns: tuple[str, ...] = ()
        self._captured = False
        self._lock = threading.Lock()

    @property
    def columns(self) -> tuple[str, ...]:
        return self._columns

    @property
    def is_captured(self) -> bool:
        return self._captured

    def capture(self, columns: list[str]) -> bool:
        """
        Store columns if nothing has been captured yet.

        Returns:
            True if this call established the set
        """
        with self._lock:
            if self._captured:
                return False
            self._columns = tuple(c for c in columns if c not in IDENTITY_FIELDS)
            self._captured = True
            return True

    def __len__(self) -> int:
        return len(self._columns)

    def __iter__(self):
        return iter(self._columns)

    def __repr__(self) -> str:
        return f"<FeatureColumnSet(columns={list(self._columns)})>"


@dataclass
class CacheEntry(Generic[T]):
    """Cached payload with its capture time."""
    payload: T
    created_at: datetime
    ttl_seconds: float
    hits: int = 0

    def age_seconds(self, now: datetime) -> float:
        """Get age of cache entry in seconds."""
        return (now - self.created_at).total_seconds()

    def is_expired(self, now: datetime) -> bool:
        """An entry is valid only while its age is below the TTL."""
        return self.age_seconds(now) >= self.ttl_seconds


@dataclass(frozen=True)
class BatchProgress:
    """Completed/total counters for the running batch."""
    completed: int
    total: int

    @property
    def percent(self) -> int:
        if self.total <= 0:
            return 0
        return round(self.completed / self.total * 100)

    @property
    def is_done(self) -> bool:
        return self.total > 0 and self.completed >= self.total

    def to_dict(self) -> dict[str, Any]:
        return {"completed": self.completed, "total": self.total}


@dataclass
class BatchResult:
    """Outcome of one scheduler run."""
    rows: list[FeatureRow]
    failed_subjects: list[int] = field(default_factory=list)
    states: dict[int, SubjectTaskState] = field(default_factory=dict)

    @property
    def subject_ids(self) -> set[int]:
        return {row.subject_id for row in self.rows}

    @property
    def is_partial(self) -> bool:
        return bool(self.failed_subjects)


@dataclass(frozen=True)
class MatrixSnapshot:
    """What the row cache stores for one query shape."""
    rows: tuple[FeatureRow, ...]
    columns: tuple[str, ...]


@dataclass(frozen=True)
class ProjectionPoint:
    """One point of the remote 2-D projection."""
    subject_id: int
    emotion: str
    color: str
    pc1: float
    pc2: float

    @property
    def key(self) -> tuple[int, str]:
        return (self.subject_id, self.emotion)


@dataclass(frozen=True)
class ProjectionResponse:
    """Validated body of the aggregate PCA endpoint."""
    points: tuple[ProjectionPoint, ...]
    variance_explained: tuple[float, float]
    features_used: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProjectionResponse":
        """Build from a response body whose `data_points` were already checked."""
        variance = data.get("variance_explained") or (0.0, 0.0)
        return cls(
            points=tuple(
                ProjectionPoint(
                    subject_id=int(p["subject_id"]),
                    emotion=str(p["emotion"]),
                    color=str(p.get("color", "")),
                    pc1=float(p["pc1"]),
                    pc2=float(p["pc2"]),
                )
                for p in data["data_points"]
            ),
            variance_explained=(float(variance[0]), float(variance[1])),
            features_used=tuple(data.get("features_used") or ()),
        )


@dataclass
class ProjectionResult:
    """Rows with projection coordinates attached, plus variance explained."""
    rows: list[FeatureRow]
    variance_explained: tuple[float, float]
    features_used: tuple[str, ...] = ()
    from_cache: bool = False

    @property
    def projected_count(self) -> int:
        return sum(1 for row in self.rows if row.has_projection)
