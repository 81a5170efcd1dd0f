"""Drains recorded queries into the metrics store and consolidates them."""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import List, Optional, Set

from .config import RetentionConfig
from .errors import StoreInconsistencyError
from .models import ItemResult, MetadataEventResponse, Outcome, ProjectVersionCoordinate, VersionQueryMetric
from .policies import summarize_metrics
from .ports import QueryMetricsStore
from .registry import QueryMetricsRegistry
from .sweep import run_sweep
from .versions import is_snapshot_version

logger = logging.getLogger(__name__)


class QueryMetricsHandler:
    """Owns the registry-to-store pipeline and the summary views over it."""

    def __init__(
        self,
        metrics_store: QueryMetricsStore,
        registry: QueryMetricsRegistry,
        config: Optional[RetentionConfig] = None,
    ):
        self.metrics_store = metrics_store
        self.registry = registry
        self.config = config or RetentionConfig()

    def get_summary(self, group_id: str, artifact_id: str, version_id: str) -> Optional[VersionQueryMetric]:
        return summarize_metrics(self.metrics_store.get(group_id, artifact_id, version_id))

    def get_summary_by_project_version(self) -> List[VersionQueryMetric]:
        coordinates = self.stored_coordinates()
        with ThreadPoolExecutor(max_workers=self.config.max_workers) as executor:
            return list(executor.map(self._require_summary, coordinates))

    def find_metrics_for_project_coordinates(self, group_id: str, artifact_id: str) -> List[VersionQueryMetric]:
        return self.metrics_store.find(group_id, artifact_id)

    def find_released_version_metrics_before(self, cutoff: datetime) -> List[VersionQueryMetric]:
        return [
            metric
            for metric in self.metrics_store.find_metrics_before(cutoff)
            if not is_snapshot_version(metric.version_id)
        ]

    def find_snapshot_version_metrics_before(self, cutoff: datetime) -> List[VersionQueryMetric]:
        return [
            metric
            for metric in self.metrics_store.find_metrics_before(cutoff)
            if is_snapshot_version(metric.version_id)
        ]

    def stored_coordinates(self) -> Set[ProjectVersionCoordinate]:
        return self.metrics_store.get_all_stored_entities_coordinates()

    def delete_metrics(self, coordinate: ProjectVersionCoordinate) -> int:
        return self.metrics_store.delete(coordinate.group_id, coordinate.artifact_id, coordinate.version_id)

    def persist_metrics(self) -> int:
        """Move every pending registry event into the store.

        An event is acknowledged only after its insert succeeds, so a failing
        insert leaves it (and everything behind it) for the next run.
        """
        persisted = 0
        event = self.registry.find_first()
        while event is not None:
            self.metrics_store.insert(VersionQueryMetric.from_event(event))
            self.registry.remove(event)
            persisted += 1
            event = self.registry.find_first()
        if persisted:
            logger.info(f"Persisted [{persisted}] query events")
        return persisted

    def consolidate_metrics(self) -> MetadataEventResponse:
        logger.info("Started consolidating metrics for all project versions")
        response = run_sweep(
            "consolidate-metrics",
            self.stored_coordinates(),
            self._consolidate,
            max_workers=self.config.max_workers,
            timeout_seconds=self.config.sweep_timeout_seconds,
        )
        logger.info("Completed consolidating metrics for all project versions")
        return response

    def _consolidate(self, coordinate: ProjectVersionCoordinate) -> ItemResult:
        summary = self._require_summary(coordinate)
        deleted = self.metrics_store.consolidate(summary)
        logger.info(f"Deleted [{deleted}] records for project version: {coordinate}")
        return ItemResult(outcome=Outcome.CONSOLIDATED, message=f"deleted {deleted} records")

    def _require_summary(self, coordinate: ProjectVersionCoordinate) -> VersionQueryMetric:
        summary = self.get_summary(coordinate.group_id, coordinate.artifact_id, coordinate.version_id)
        if summary is None:
            raise StoreInconsistencyError(f"no metric records found for stored coordinate {coordinate}")
        return summary
