"""Core domain models used by the metrics pipeline and the retention engine."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .errors import error_kind

SNAPSHOT_SUFFIX = "-SNAPSHOT"


@dataclass(frozen=True)
class ProjectVersionCoordinate:
    """Group/artifact/version triple identifying one cached artifact version."""

    group_id: str
    artifact_id: str
    version_id: str

    @property
    def is_snapshot(self) -> bool:
        return self.version_id.endswith(SNAPSHOT_SUFFIX)

    def __str__(self) -> str:
        return f"{self.group_id}:{self.artifact_id}:{self.version_id}"


@dataclass(frozen=True)
class QueryEvent:
    """A single query against a cached version, waiting to be drained."""

    coordinate: ProjectVersionCoordinate
    timestamp: datetime


@dataclass(frozen=True)
class VersionQueryMetric:
    """Durable query counter for one coordinate."""

    group_id: str
    artifact_id: str
    version_id: str
    query_count: int
    last_query_time: datetime
    record_id: Optional[int] = None
    # Ids of the stored records a summary was built from; empty for stored rows.
    merged_record_ids: Tuple[int, ...] = field(default=(), compare=False, repr=False)

    @property
    def coordinate(self) -> ProjectVersionCoordinate:
        return ProjectVersionCoordinate(self.group_id, self.artifact_id, self.version_id)

    @classmethod
    def from_event(cls, event: QueryEvent) -> "VersionQueryMetric":
        coordinate = event.coordinate
        return cls(
            group_id=coordinate.group_id,
            artifact_id=coordinate.artifact_id,
            version_id=coordinate.version_id,
            query_count=1,
            last_query_time=event.timestamp,
        )


class VersionState(Enum):
    """Lifecycle state of a cached version."""

    ACTIVE = "active"
    EVICTED = "evicted"
    DEPRECATED = "deprecated"
    DELETED = "deleted"


ALLOWED_TRANSITIONS: Dict[VersionState, frozenset] = {
    VersionState.ACTIVE: frozenset({VersionState.EVICTED, VersionState.DEPRECATED, VersionState.DELETED}),
    VersionState.EVICTED: frozenset({VersionState.DEPRECATED, VersionState.DELETED}),
    VersionState.DEPRECATED: frozenset({VersionState.EVICTED, VersionState.DELETED}),
    VersionState.DELETED: frozenset(),
}


def can_transition(source: VersionState, target: VersionState) -> bool:
    return target in ALLOWED_TRANSITIONS[source]


@dataclass(frozen=True)
class ProjectVersionRecord:
    """A version held in the project/version store."""

    group_id: str
    artifact_id: str
    version_id: str
    state: VersionState
    created_at: datetime
    updated_at: Optional[datetime] = None

    @property
    def coordinate(self) -> ProjectVersionCoordinate:
        return ProjectVersionCoordinate(self.group_id, self.artifact_id, self.version_id)


class Outcome(Enum):
    """Per-coordinate result of a batch operation."""

    EVICTED = "evicted"
    DELETED = "deleted"
    DEPRECATED = "deprecated"
    CONSOLIDATED = "consolidated"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class ItemResult:
    outcome: Outcome
    message: Optional[str] = None
    error_kind: Optional[str] = None

    @classmethod
    def from_error(cls, exc: BaseException) -> "ItemResult":
        return cls(outcome=Outcome.FAILED, message=str(exc), error_kind=error_kind(exc))

    @property
    def label(self) -> str:
        if self.outcome is Outcome.FAILED:
            return f"failed:{self.error_kind or 'internal'}"
        return self.outcome.value


@dataclass
class MetadataEventResponse:
    """Aggregated result of a batch operation, returned to the caller."""

    results: Dict[ProjectVersionCoordinate, ItemResult] = field(default_factory=dict)
    messages: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        return len(self.results)

    @property
    def failed(self) -> int:
        return sum(1 for result in self.results.values() if result.outcome is Outcome.FAILED)

    @property
    def succeeded(self) -> int:
        return self.attempted - self.failed

    def add_result(self, coordinate: ProjectVersionCoordinate, result: ItemResult) -> None:
        self.results[coordinate] = result
        if result.outcome is Outcome.FAILED:
            self.errors.append(f"{coordinate}: {result.message}")
        elif result.message:
            self.messages.append(f"{coordinate}: {result.message}")

    def add_message(self, message: str) -> None:
        self.messages.append(message)

    def coordinates_with(self, outcome: Outcome) -> List[ProjectVersionCoordinate]:
        return [coordinate for coordinate, result in self.results.items() if result.outcome is outcome]

    def to_dict(self) -> Dict:
        return {
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "results": {str(coordinate): result.label for coordinate, result in self.results.items()},
            "messages": list(self.messages),
            "errors": list(self.errors),
        }
