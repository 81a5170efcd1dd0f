"""Thread-safe in-memory implementations of the verkeep ports."""

import itertools
import threading
from dataclasses import replace
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Set

from ..errors import NotFoundError
from ..models import ProjectVersionCoordinate, ProjectVersionRecord, VersionQueryMetric, VersionState
from ..policies import superseded_record_ids


class InMemoryQueryMetricsStore:
    """Metric records kept in insertion order, keyed by a monotonic ``record_id``."""

    def __init__(self):
        self._records: Dict[int, VersionQueryMetric] = {}
        self._ids = itertools.count(1)
        self._lock = threading.RLock()

    def get(self, group_id: str, artifact_id: str, version_id: str) -> List[VersionQueryMetric]:
        coordinate = ProjectVersionCoordinate(group_id, artifact_id, version_id)
        with self._lock:
            return [record for record in self._records.values() if record.coordinate == coordinate]

    def find(self, group_id: str, artifact_id: str) -> List[VersionQueryMetric]:
        with self._lock:
            return [
                record
                for record in self._records.values()
                if record.group_id == group_id and record.artifact_id == artifact_id
            ]

    def find_metrics_before(self, cutoff: datetime) -> List[VersionQueryMetric]:
        with self._lock:
            return [record for record in self._records.values() if record.last_query_time < cutoff]

    def get_all_stored_entities_coordinates(self) -> Set[ProjectVersionCoordinate]:
        with self._lock:
            return {record.coordinate for record in self._records.values()}

    def insert(self, metric: VersionQueryMetric) -> VersionQueryMetric:
        with self._lock:
            stored = replace(metric, record_id=next(self._ids))
            self._records[stored.record_id] = stored
            return stored

    def consolidate(self, canonical: VersionQueryMetric) -> int:
        with self._lock:
            records = self.get(canonical.group_id, canonical.artifact_id, canonical.version_id)
            current = [record.record_id for record in records]
            superseded = superseded_record_ids(canonical, current)
            if not superseded:
                return 0
            self.insert(replace(canonical, merged_record_ids=()))
            deleted = self._delete_ids(superseded)
            if canonical.record_id is not None:
                self._delete_ids([canonical.record_id])
            return deleted

    def delete(self, group_id: str, artifact_id: str, version_id: str) -> int:
        with self._lock:
            ids = [record.record_id for record in self.get(group_id, artifact_id, version_id)]
            return self._delete_ids(ids)

    def _delete_ids(self, ids: Iterable[int]) -> int:
        return sum(1 for record_id in ids if self._records.pop(record_id, None) is not None)


class InMemoryProjectVersionStore:
    def __init__(self, records: Iterable[ProjectVersionRecord] = ()):
        self._records: Dict[ProjectVersionCoordinate, ProjectVersionRecord] = {}
        self._lock = threading.Lock()
        for record in records:
            self.insert(record)

    def get(self, coordinate: ProjectVersionCoordinate) -> Optional[ProjectVersionRecord]:
        with self._lock:
            return self._records.get(coordinate)

    def find(self, group_id: str, artifact_id: str) -> List[ProjectVersionRecord]:
        with self._lock:
            return [
                record
                for record in self._records.values()
                if record.group_id == group_id and record.artifact_id == artifact_id
            ]

    def get_all(self) -> List[ProjectVersionRecord]:
        with self._lock:
            return list(self._records.values())

    def insert(self, record: ProjectVersionRecord) -> ProjectVersionRecord:
        with self._lock:
            self._records[record.coordinate] = record
        return record

    def update_state(
        self,
        coordinate: ProjectVersionCoordinate,
        state: VersionState,
        updated_at: datetime,
    ) -> ProjectVersionRecord:
        with self._lock:
            record = self._records.get(coordinate)
            if record is None:
                raise NotFoundError(f"project version {coordinate} not found")
            updated = replace(record, state=state, updated_at=updated_at)
            self._records[coordinate] = updated
            return updated

    def delete(self, coordinate: ProjectVersionCoordinate) -> bool:
        with self._lock:
            return self._records.pop(coordinate, None) is not None


class InMemoryArtifactRepository:
    """Upstream repository backed by a ``{(group_id, artifact_id): [version_id]}`` map."""

    def __init__(self, versions: Optional[Dict[tuple, List[str]]] = None):
        self._versions = {key: list(value) for key, value in (versions or {}).items()}

    def find_versions(self, group_id: str, artifact_id: str) -> List[str]:
        return list(self._versions.get((group_id, artifact_id), []))

    def find_version(self, group_id: str, artifact_id: str, version_id: str) -> Optional[str]:
        return version_id if version_id in self._versions.get((group_id, artifact_id), []) else None
