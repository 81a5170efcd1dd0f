"""Port definitions for the stores and the upstream repository verkeep depends on."""

from datetime import datetime
from typing import List, Optional, Protocol, Sequence, Set

from .models import (
    ProjectVersionCoordinate,
    ProjectVersionRecord,
    VersionQueryMetric,
    VersionState,
)


class QueryMetricsStore(Protocol):
    """Durable store of per-coordinate query metrics."""

    def get(self, group_id: str, artifact_id: str, version_id: str) -> List[VersionQueryMetric]:
        """Return every record for the coordinate, in insertion order."""

    def find(self, group_id: str, artifact_id: str) -> List[VersionQueryMetric]:
        """Return every record for all versions of a project."""

    def find_metrics_before(self, cutoff: datetime) -> List[VersionQueryMetric]:
        """Return records whose last query time is earlier than ``cutoff``."""

    def get_all_stored_entities_coordinates(self) -> Set[ProjectVersionCoordinate]:
        """Return the distinct coordinates that have at least one record."""

    def insert(self, metric: VersionQueryMetric) -> VersionQueryMetric:
        """Append a record and return it with its assigned ``record_id``."""

    def consolidate(self, canonical: VersionQueryMetric) -> int:
        """Store ``canonical`` in place of the records it was merged from.

        Returns how many records other than the summary's own were removed;
        0 means the coordinate was already consolidated.
        """

    def delete(self, group_id: str, artifact_id: str, version_id: str) -> int:
        """Remove every record for the coordinate."""


class ProjectVersionStore(Protocol):
    """Store of cached versions and their lifecycle state."""

    def get(self, coordinate: ProjectVersionCoordinate) -> Optional[ProjectVersionRecord]:
        """Return the record for a coordinate, if any."""

    def find(self, group_id: str, artifact_id: str) -> Sequence[ProjectVersionRecord]:
        """Return all versions of a project."""

    def get_all(self) -> Sequence[ProjectVersionRecord]:
        """Return every stored version."""

    def insert(self, record: ProjectVersionRecord) -> ProjectVersionRecord:
        """Add or replace a version record."""

    def update_state(
        self,
        coordinate: ProjectVersionCoordinate,
        state: VersionState,
        updated_at: datetime,
    ) -> ProjectVersionRecord:
        """Set the state of a version, raising ``NotFoundError`` if it is missing."""

    def delete(self, coordinate: ProjectVersionCoordinate) -> bool:
        """Remove a version record; return whether one existed."""


class ArtifactRepository(Protocol):
    """Upstream artifact source; failures raise ``RepositoryUnavailableError``."""

    def find_versions(self, group_id: str, artifact_id: str) -> List[str]:
        """Return the version ids published upstream for a project."""

    def find_version(self, group_id: str, artifact_id: str, version_id: str) -> Optional[str]:
        """Return the version id if it is still published upstream."""
