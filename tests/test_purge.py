from datetime import datetime, timedelta, timezone

import pytest

from verkeep.adapters.memory import (
    InMemoryArtifactRepository,
    InMemoryProjectVersionStore,
    InMemoryQueryMetricsStore,
)
from verkeep.config import RetentionConfig
from verkeep.errors import InvalidArgumentError, NotFoundError, RepositoryUnavailableError
from verkeep.metrics import QueryMetricsHandler
from verkeep.models import (
    Outcome,
    ProjectVersionCoordinate,
    ProjectVersionRecord,
    VersionQueryMetric,
    VersionState,
)
from verkeep.purge import ArtifactsPurgeService
from verkeep.registry import QueryMetricsRegistry

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)
GROUP = "examples.metadata"
ARTIFACT = "test"


def _coordinate(version_id, artifact_id=ARTIFACT):
    return ProjectVersionCoordinate(GROUP, artifact_id, version_id)


def _record(version_id, state=VersionState.ACTIVE, created_at=None, artifact_id=ARTIFACT):
    return ProjectVersionRecord(
        group_id=GROUP,
        artifact_id=artifact_id,
        version_id=version_id,
        state=state,
        created_at=created_at or NOW - timedelta(days=400),
    )


def _metric(version_id, when, count=1):
    return VersionQueryMetric(
        group_id=GROUP,
        artifact_id=ARTIFACT,
        version_id=version_id,
        query_count=count,
        last_query_time=when,
    )


class Fixture:
    def __init__(self, records=(), repository=None, **config):
        self.metrics_store = InMemoryQueryMetricsStore()
        self.registry = QueryMetricsRegistry()
        self.projects = InMemoryProjectVersionStore(records)
        self.repository = repository if repository is not None else InMemoryArtifactRepository()
        self.config = RetentionConfig(max_workers=4, **config)
        self.handler = QueryMetricsHandler(self.metrics_store, self.registry, self.config)
        self.service = ArtifactsPurgeService(
            self.handler,
            self.projects,
            self.repository,
            self.config,
            clock=lambda: NOW,
        )

    def state(self, version_id):
        record = self.projects.get(_coordinate(version_id))
        return record.state if record else None


class FlakyRepository(InMemoryArtifactRepository):
    def __init__(self, versions, unreachable):
        super().__init__(versions)
        self.unreachable = set(unreachable)

    def find_version(self, group_id, artifact_id, version_id):
        if version_id in self.unreachable:
            raise RepositoryUnavailableError(f"timed out looking up {version_id}")
        return super().find_version(group_id, artifact_id, version_id)


def test_evict_least_recently_used_ttl_boundary():
    fixture = Fixture([_record("1.0.0"), _record("1.0.1"), _record("1.0.2")])
    boundary = NOW - timedelta(days=90)
    fixture.metrics_store.insert(_metric("1.0.0", boundary))
    fixture.metrics_store.insert(_metric("1.0.1", boundary + timedelta(seconds=1)))
    fixture.metrics_store.insert(_metric("1.0.2", boundary - timedelta(seconds=1)))

    response = fixture.service.evict_least_recently_used(90, 10)

    assert response.coordinates_with(Outcome.EVICTED) == [_coordinate("1.0.2")]
    assert fixture.state("1.0.0") is VersionState.ACTIVE
    assert fixture.state("1.0.1") is VersionState.ACTIVE
    assert fixture.state("1.0.2") is VersionState.EVICTED
    assert response.attempted == 3
    assert response.failed == 0


def test_evict_least_recently_used_applies_snapshot_ttl():
    fixture = Fixture([_record("1.0.0"), _record("master-SNAPSHOT")])
    last_query = NOW - timedelta(days=20)
    fixture.metrics_store.insert(_metric("1.0.0", last_query))
    fixture.metrics_store.insert(_metric("master-SNAPSHOT", last_query))

    fixture.service.evict_least_recently_used(ttl_for_versions_days=365, ttl_for_snapshots_days=10)

    assert fixture.state("1.0.0") is VersionState.ACTIVE
    assert fixture.state("master-SNAPSHOT") is VersionState.EVICTED


def test_evict_least_recently_used_uses_latest_duplicate():
    fixture = Fixture([_record("1.0.0")])
    fixture.metrics_store.insert(_metric("1.0.0", NOW - timedelta(days=200)))
    fixture.metrics_store.insert(_metric("1.0.0", NOW - timedelta(days=1)))

    response = fixture.service.evict_least_recently_used(30, 30)

    assert response.coordinates_with(Outcome.EVICTED) == []
    assert fixture.state("1.0.0") is VersionState.ACTIVE


def test_evict_least_recently_used_defaults_to_config_and_skips_unknown_versions():
    fixture = Fixture([_record("1.0.0", VersionState.EVICTED)], ttl_for_versions_days=10)
    fixture.metrics_store.insert(_metric("1.0.0", NOW - timedelta(days=11)))
    fixture.metrics_store.insert(_metric("2.0.0", NOW - timedelta(days=11)))

    response = fixture.service.evict_least_recently_used()

    assert response.results[_coordinate("1.0.0")].outcome is Outcome.SKIPPED
    assert response.results[_coordinate("2.0.0")].outcome is Outcome.SKIPPED
    assert response.failed == 0


def test_never_queried_versions_are_evicted_only_by_not_used_sweep():
    fixture = Fixture([_record("1.0.0"), _record("2.0.0")])
    fixture.metrics_store.insert(_metric("2.0.0", NOW - timedelta(days=1)))

    lru = fixture.service.evict_least_recently_used(1, 1)
    assert _coordinate("1.0.0") not in lru.results
    assert fixture.state("1.0.0") is VersionState.ACTIVE

    response = fixture.service.evict_versions_not_used()

    assert response.coordinates_with(Outcome.EVICTED) == [_coordinate("1.0.0")]
    assert fixture.state("1.0.0") is VersionState.EVICTED
    assert fixture.state("2.0.0") is VersionState.ACTIVE


def test_evict_versions_not_used_respects_grace_period():
    fixture = Fixture(
        [
            _record("1.0.0", created_at=NOW - timedelta(days=2)),
            _record("0.9.0", created_at=NOW - timedelta(days=60)),
        ],
        not_used_grace_period_days=30,
    )

    response = fixture.service.evict_versions_not_used()

    assert response.results[_coordinate("1.0.0")].outcome is Outcome.SKIPPED
    assert fixture.state("1.0.0") is VersionState.ACTIVE
    assert fixture.state("0.9.0") is VersionState.EVICTED


def test_evict_oldest_project_versions_keeps_newest_releases():
    fixture = Fixture(
        [
            _record("1.0.0"),
            _record("1.1.0"),
            _record("2.0.0"),
            _record("2.1.0"),
            _record("master-SNAPSHOT"),
            _record("0.1.0", artifact_id="other"),
        ]
    )

    response = fixture.service.evict_oldest_project_versions(GROUP, ARTIFACT, 2)

    assert set(response.coordinates_with(Outcome.EVICTED)) == {_coordinate("1.0.0"), _coordinate("1.1.0")}
    assert fixture.state("2.0.0") is VersionState.ACTIVE
    assert fixture.state("2.1.0") is VersionState.ACTIVE
    assert fixture.state("master-SNAPSHOT") is VersionState.ACTIVE
    assert fixture.projects.get(_coordinate("0.1.0", "other")).state is VersionState.ACTIVE


def test_evict_oldest_project_versions_edge_cases():
    fixture = Fixture([_record("1.0.0"), _record("2.0.0")])

    assert fixture.service.evict_oldest_project_versions(GROUP, ARTIFACT, 5).attempted == 0
    with pytest.raises(InvalidArgumentError):
        fixture.service.evict_oldest_project_versions(GROUP, ARTIFACT, -1)
    assert fixture.state("1.0.0") is VersionState.ACTIVE


def test_evict_single_version():
    fixture = Fixture([_record("1.0.0")])

    fixture.service.evict(GROUP, ARTIFACT, "1.0.0")

    record = fixture.projects.get(_coordinate("1.0.0"))
    assert record.state is VersionState.EVICTED
    assert record.updated_at == NOW


def test_single_version_operations_raise():
    fixture = Fixture()

    with pytest.raises(NotFoundError):
        fixture.service.evict(GROUP, ARTIFACT, "1.0.0")
    with pytest.raises(NotFoundError):
        fixture.service.delete(GROUP, ARTIFACT, "1.0.0")
    with pytest.raises(NotFoundError):
        fixture.service.deprecate(GROUP, ARTIFACT, "1.0.0")
    with pytest.raises(InvalidArgumentError):
        fixture.service.evict(GROUP, ARTIFACT, "not a version")


def test_delete_removes_version_and_metrics():
    fixture = Fixture([_record("1.0.0"), _record("2.0.0")])
    fixture.metrics_store.insert(_metric("1.0.0", NOW))
    fixture.metrics_store.insert(_metric("2.0.0", NOW))

    fixture.service.delete(GROUP, ARTIFACT, "1.0.0")

    assert fixture.projects.get(_coordinate("1.0.0")) is None
    assert fixture.metrics_store.get(GROUP, ARTIFACT, "1.0.0") == []
    assert len(fixture.metrics_store.get(GROUP, ARTIFACT, "2.0.0")) == 1
    with pytest.raises(NotFoundError):
        fixture.service.delete(GROUP, ARTIFACT, "1.0.0")


def test_deprecate_single_version():
    fixture = Fixture([_record("1.0.0")])

    first = fixture.service.deprecate(GROUP, ARTIFACT, "1.0.0")
    second = fixture.service.deprecate(GROUP, ARTIFACT, "1.0.0")

    assert first.results[_coordinate("1.0.0")].outcome is Outcome.DEPRECATED
    assert second.results[_coordinate("1.0.0")].outcome is Outcome.SKIPPED
    assert fixture.state("1.0.0") is VersionState.DEPRECATED


def test_deprecated_version_can_still_be_deleted():
    fixture = Fixture([_record("1.0.0", VersionState.DEPRECATED)])

    fixture.service.delete(GROUP, ARTIFACT, "1.0.0")

    assert fixture.projects.get(_coordinate("1.0.0")) is None


def test_deprecate_versions_not_in_repository():
    repository = InMemoryArtifactRepository({(GROUP, ARTIFACT): ["1.0.0"]})
    fixture = Fixture([_record("1.0.0"), _record("2.0.0"), _record("master-SNAPSHOT")], repository=repository)

    response = fixture.service.deprecate_versions_not_in_repository()

    assert response.coordinates_with(Outcome.DEPRECATED) == [_coordinate("2.0.0")]
    assert fixture.state("1.0.0") is VersionState.ACTIVE
    assert fixture.state("2.0.0") is VersionState.DEPRECATED
    assert fixture.state("master-SNAPSHOT") is VersionState.ACTIVE


def test_deprecate_versions_not_in_repository_survives_unreachable_lookups():
    repository = FlakyRepository({(GROUP, ARTIFACT): ["1.0.0"]}, unreachable={"3.0.0"})
    fixture = Fixture([_record("1.0.0"), _record("2.0.0"), _record("3.0.0")], repository=repository)

    response = fixture.service.deprecate_versions_not_in_repository()

    assert response.attempted == 3
    assert response.failed == 1
    assert response.results[_coordinate("3.0.0")].label == "failed:repository_unavailable"
    assert fixture.state("3.0.0") is VersionState.ACTIVE
    assert fixture.state("2.0.0") is VersionState.DEPRECATED


def test_sweep_timeout_returns_partial_results():
    import threading

    release = threading.Event()

    class SlowRepository(InMemoryArtifactRepository):
        def find_version(self, group_id, artifact_id, version_id):
            if version_id == "9.9.9":
                release.wait(5)
            return super().find_version(group_id, artifact_id, version_id)

    fixture = Fixture(
        [_record("1.0.0"), _record("9.9.9")],
        repository=SlowRepository({(GROUP, ARTIFACT): ["1.0.0", "9.9.9"]}),
        sweep_timeout_seconds=0.5,
    )

    try:
        response = fixture.service.deprecate_versions_not_in_repository()
    finally:
        release.set()

    assert response.results[_coordinate("1.0.0")].outcome is Outcome.SKIPPED
    assert _coordinate("9.9.9") not in response.results
    assert any("timed out" in message for message in response.messages)


def test_response_to_dict():
    repository = InMemoryArtifactRepository({(GROUP, ARTIFACT): []})
    fixture = Fixture([_record("1.0.0")], repository=repository)

    result = fixture.service.deprecate_versions_not_in_repository().to_dict()

    assert result["attempted"] == 1
    assert result["succeeded"] == 1
    assert result["failed"] == 0
    assert result["results"] == {"examples.metadata:test:1.0.0": "deprecated"}


def test_project_operations_accept_short_ids_and_loose_versions():
    records = [
        ProjectVersionRecord("g", "a", version_id, VersionState.ACTIVE, NOW - timedelta(days=400))
        for version_id in ("1.0.0", "1.1.0", "2.0.0", "2.1.0")
    ]
    fixture = Fixture(records + [_record("1.0", artifact_id="lib-2x")])

    response = fixture.service.evict_oldest_project_versions("g", "a", 2)
    fixture.service.evict(GROUP, "lib-2x", "1.0")

    assert set(response.coordinates_with(Outcome.EVICTED)) == {
        ProjectVersionCoordinate("g", "a", "1.0.0"),
        ProjectVersionCoordinate("g", "a", "1.1.0"),
    }
    assert fixture.projects.get(ProjectVersionCoordinate("g", "a", "2.1.0")).state is VersionState.ACTIVE
    assert fixture.projects.get(_coordinate("1.0", "lib-2x")).state is VersionState.EVICTED


def test_naive_registry_timestamps_feed_least_recently_used_sweep():
    fixture = Fixture([_record("1.0.0"), _record("2.0.0")])
    fixture.registry.record(_coordinate("1.0.0"), datetime(2026, 5, 31, 12, 0))
    fixture.registry.record(_coordinate("2.0.0"), datetime(2026, 1, 1, 12, 0))

    fixture.handler.persist_metrics()
    response = fixture.service.evict_least_recently_used(30, 30)

    assert response.failed == 0
    assert response.coordinates_with(Outcome.EVICTED) == [_coordinate("2.0.0")]
    assert fixture.state("1.0.0") is VersionState.ACTIVE
