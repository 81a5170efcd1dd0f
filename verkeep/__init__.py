"""verkeep - query metrics and retention policies for cached artifact versions."""

from .config import RetentionConfig
from .errors import (
    InvalidArgumentError,
    InvalidStateTransitionError,
    NotFoundError,
    RepositoryUnavailableError,
    RetentionError,
    StoreInconsistencyError,
)
from .metrics import QueryMetricsHandler
from .models import (
    MetadataEventResponse,
    Outcome,
    ProjectVersionCoordinate,
    ProjectVersionRecord,
    VersionQueryMetric,
    VersionState,
)
from .purge import ArtifactsPurgeService
from .registry import QueryMetricsRegistry

__all__ = [
    "ArtifactsPurgeService",
    "QueryMetricsHandler",
    "QueryMetricsRegistry",
    "RetentionConfig",
    "MetadataEventResponse",
    "Outcome",
    "ProjectVersionCoordinate",
    "ProjectVersionRecord",
    "VersionQueryMetric",
    "VersionState",
    "RetentionError",
    "NotFoundError",
    "RepositoryUnavailableError",
    "StoreInconsistencyError",
    "InvalidArgumentError",
    "InvalidStateTransitionError",
]

__version__ = "0.1.0"
