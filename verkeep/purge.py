"""Retention policy engine: eviction, deletion and deprecation of cached versions."""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from .config import RetentionConfig
from .errors import InvalidStateTransitionError, NotFoundError, StoreInconsistencyError
from .metrics import QueryMetricsHandler
from .models import (
    ItemResult,
    MetadataEventResponse,
    Outcome,
    ProjectVersionCoordinate,
    ProjectVersionRecord,
    VersionState,
    can_transition,
)
from .policies import is_expired, is_past_grace_period, select_versions_to_evict, ttl_for_version
from .ports import ArtifactRepository, ProjectVersionStore
from .sweep import run_sweep
from .versions import is_snapshot_version, validate_coordinate, validate_project

logger = logging.getLogger(__name__)

EVICTABLE_STATES = frozenset({VersionState.ACTIVE, VersionState.DEPRECATED})
RECONCILED_STATES = frozenset({VersionState.ACTIVE, VersionState.EVICTED})


class ArtifactsPurgeService:
    """Applies retention policies to the project/version store.

    Sweeps return a ``MetadataEventResponse`` and never raise for a single
    coordinate; single-version calls raise so callers can tell ``NotFoundError``
    apart from transient failures.
    """

    def __init__(
        self,
        metrics_handler: QueryMetricsHandler,
        project_versions: ProjectVersionStore,
        artifact_repository: ArtifactRepository,
        config: Optional[RetentionConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.metrics_handler = metrics_handler
        self.project_versions = project_versions
        self.artifact_repository = artifact_repository
        self.config = config or metrics_handler.config
        self._clock = clock or _utcnow

    def evict_least_recently_used(
        self,
        ttl_for_versions_days: Optional[int] = None,
        ttl_for_snapshots_days: Optional[int] = None,
    ) -> MetadataEventResponse:
        ttl_versions = self.config.ttl_for_versions_days if ttl_for_versions_days is None else ttl_for_versions_days
        ttl_snapshots = (
            self.config.ttl_for_snapshots_days if ttl_for_snapshots_days is None else ttl_for_snapshots_days
        )
        now = self._clock()

        def evict_if_expired(coordinate: ProjectVersionCoordinate) -> ItemResult:
            summary = self.metrics_handler.get_summary(
                coordinate.group_id, coordinate.artifact_id, coordinate.version_id
            )
            if summary is None:
                raise StoreInconsistencyError(f"no metric records found for stored coordinate {coordinate}")
            ttl = ttl_for_version(coordinate.version_id, ttl_versions, ttl_snapshots)
            if not is_expired(summary.last_query_time, now, ttl):
                return ItemResult(outcome=Outcome.SKIPPED)
            record = self.project_versions.get(coordinate)
            if record is None:
                return ItemResult(outcome=Outcome.SKIPPED, message="no project version record")
            if record.state not in EVICTABLE_STATES:
                return ItemResult(outcome=Outcome.SKIPPED, message=f"already {record.state.value}")
            self._transition(record, VersionState.EVICTED, now)
            return ItemResult(
                outcome=Outcome.EVICTED,
                message=f"last queried {summary.last_query_time.isoformat()}, ttl {ttl} days",
            )

        return self._sweep("evict-least-recently-used", self.metrics_handler.stored_coordinates(), evict_if_expired)

    def evict_versions_not_used(self) -> MetadataEventResponse:
        now = self._clock()
        grace_days = self.config.not_used_grace_period_days
        queried = self.metrics_handler.stored_coordinates()
        candidates = {
            record.coordinate: record
            for record in self.project_versions.get_all()
            if record.state is VersionState.ACTIVE and record.coordinate not in queried
        }

        def evict_if_unused(coordinate: ProjectVersionCoordinate) -> ItemResult:
            record = candidates[coordinate]
            if not is_past_grace_period(record.created_at, now, grace_days):
                return ItemResult(outcome=Outcome.SKIPPED, message=f"published within {grace_days} days")
            # A query may have been persisted since the candidates were listed.
            if self.metrics_handler.get_summary(coordinate.group_id, coordinate.artifact_id, coordinate.version_id):
                return ItemResult(outcome=Outcome.SKIPPED, message="queried")
            self._transition(record, VersionState.EVICTED, now)
            return ItemResult(outcome=Outcome.EVICTED, message="never queried")

        return self._sweep("evict-versions-not-used", candidates, evict_if_unused)

    def evict_oldest_project_versions(
        self,
        group_id: str,
        artifact_id: str,
        versions_to_keep: int,
    ) -> MetadataEventResponse:
        validate_project(group_id, artifact_id)
        now = self._clock()
        records = {
            record.version_id: record
            for record in self.project_versions.find(group_id, artifact_id)
            if record.state in EVICTABLE_STATES and not is_snapshot_version(record.version_id)
        }
        response = MetadataEventResponse()
        for version_id in select_versions_to_evict(records, versions_to_keep):
            record = records[version_id]
            try:
                self._transition(record, VersionState.EVICTED, now)
            except Exception as exc:
                logger.error(f"Error evicting {record.coordinate}: {exc}")
                response.add_result(record.coordinate, ItemResult.from_error(exc))
            else:
                response.add_result(record.coordinate, ItemResult(outcome=Outcome.EVICTED))
        logger.info(
            f"Evicted [{response.succeeded}] old versions of {group_id}:{artifact_id}, "
            f"keeping {versions_to_keep}"
        )
        return response

    def evict(self, group_id: str, artifact_id: str, version_id: str) -> None:
        record = self._require_record(group_id, artifact_id, version_id)
        self._transition(record, VersionState.EVICTED, self._clock())

    def delete(self, group_id: str, artifact_id: str, version_id: str) -> None:
        record = self._require_record(group_id, artifact_id, version_id)
        if not can_transition(record.state, VersionState.DELETED):
            raise InvalidStateTransitionError(f"cannot delete {record.coordinate} in state {record.state.value}")
        if not self.project_versions.delete(record.coordinate):
            raise NotFoundError(f"project version {record.coordinate} not found")
        removed = self.metrics_handler.delete_metrics(record.coordinate)
        logger.info(f"Deleted project version {record.coordinate} and [{removed}] metric records")

    def deprecate(self, group_id: str, artifact_id: str, version_id: str) -> MetadataEventResponse:
        record = self._require_record(group_id, artifact_id, version_id)
        response = MetadataEventResponse()
        if self._transition(record, VersionState.DEPRECATED, self._clock()):
            response.add_result(record.coordinate, ItemResult(outcome=Outcome.DEPRECATED))
        else:
            response.add_result(record.coordinate, ItemResult(outcome=Outcome.SKIPPED, message="already deprecated"))
        return response

    def deprecate_versions_not_in_repository(self) -> MetadataEventResponse:
        now = self._clock()
        candidates = {
            record.coordinate: record
            for record in self.project_versions.get_all()
            if record.state in RECONCILED_STATES and not is_snapshot_version(record.version_id)
        }

        def deprecate_if_missing(coordinate: ProjectVersionCoordinate) -> ItemResult:
            found = self.artifact_repository.find_version(
                coordinate.group_id, coordinate.artifact_id, coordinate.version_id
            )
            if found is not None:
                return ItemResult(outcome=Outcome.SKIPPED)
            self._transition(candidates[coordinate], VersionState.DEPRECATED, now)
            return ItemResult(outcome=Outcome.DEPRECATED, message="no longer in repository")

        return self._sweep("deprecate-versions-not-in-repository", candidates, deprecate_if_missing)

    def _sweep(self, name, coordinates, task) -> MetadataEventResponse:
        return run_sweep(
            name,
            coordinates,
            task,
            max_workers=self.config.max_workers,
            timeout_seconds=self.config.sweep_timeout_seconds,
        )

    def _require_record(self, group_id: str, artifact_id: str, version_id: str) -> ProjectVersionRecord:
        coordinate = validate_coordinate(group_id, artifact_id, version_id)
        record = self.project_versions.get(coordinate)
        if record is None:
            raise NotFoundError(f"project version {coordinate} not found")
        return record

    def _transition(self, record: ProjectVersionRecord, target: VersionState, now: datetime) -> bool:
        """Move a record to ``target``; return False if it is already there."""
        if record.state is target:
            return False
        if not can_transition(record.state, target):
            raise InvalidStateTransitionError(
                f"cannot move {record.coordinate} from {record.state.value} to {target.value}"
            )
        self.project_versions.update_state(record.coordinate, target, now)
        logger.info(f"Project version {record.coordinate}: {record.state.value} -> {target.value}")
        return True


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)
