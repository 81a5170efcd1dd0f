"""Adapters for integrating verkeep with storage backends."""

from .memory import InMemoryArtifactRepository, InMemoryProjectVersionStore, InMemoryQueryMetricsStore
from .sqlalchemy_repo import (
    SQLAlchemyProjectVersionStore,
    SQLAlchemyQueryMetricsStore,
    create_session_factory,
    create_tables,
)

__all__ = [
    "InMemoryArtifactRepository",
    "InMemoryProjectVersionStore",
    "InMemoryQueryMetricsStore",
    "SQLAlchemyProjectVersionStore",
    "SQLAlchemyQueryMetricsStore",
    "create_session_factory",
    "create_tables",
]
