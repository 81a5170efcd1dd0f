"""SQLAlchemy adapters for the metrics and project/version stores."""

import logging
from datetime import datetime, timezone
from typing import List, Optional, Set

from sqlalchemy import (
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    and_,
    create_engine,
    delete,
    insert,
    select,
    update,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from ..errors import NotFoundError
from ..models import ProjectVersionCoordinate, ProjectVersionRecord, VersionQueryMetric, VersionState
from ..policies import superseded_record_ids

logger = logging.getLogger(__name__)

metadata = MetaData()

query_metrics = Table(
    "query_metrics",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("group_id", String(255), nullable=False),
    Column("artifact_id", String(255), nullable=False),
    Column("version_id", String(255), nullable=False),
    Column("query_count", Integer, nullable=False),
    Column("last_query_time", DateTime(timezone=True), nullable=False),
    Index("ix_query_metrics_coordinate", "group_id", "artifact_id", "version_id"),
    Index("ix_query_metrics_last_query_time", "last_query_time"),
)

project_versions = Table(
    "project_versions",
    metadata,
    Column("group_id", String(255), primary_key=True),
    Column("artifact_id", String(255), primary_key=True),
    Column("version_id", String(255), primary_key=True),
    Column("state", String(16), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=True),
)


def create_session_factory(database_url: str, echo: bool = False) -> sessionmaker:
    engine = create_engine(database_url, echo=echo, pool_pre_ping=True)
    logger.info(f"Created database engine for: {database_url.split('@')[-1]}")
    return sessionmaker(bind=engine, expire_on_commit=False)


def create_tables(engine: Engine) -> None:
    metadata.create_all(engine)


class SQLAlchemyQueryMetricsStore:
    """Stores metric rows in ``query_metrics``; one session per call so sweeps can share it."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def get(self, group_id: str, artifact_id: str, version_id: str) -> List[VersionQueryMetric]:
        stmt = (
            select(query_metrics)
            .where(_coordinate_clause(query_metrics, group_id, artifact_id, version_id))
            .order_by(query_metrics.c.id)
        )
        with self.session_factory() as db:
            return [_to_metric(row) for row in db.execute(stmt)]

    def find(self, group_id: str, artifact_id: str) -> List[VersionQueryMetric]:
        stmt = (
            select(query_metrics)
            .where(query_metrics.c.group_id == group_id, query_metrics.c.artifact_id == artifact_id)
            .order_by(query_metrics.c.id)
        )
        with self.session_factory() as db:
            return [_to_metric(row) for row in db.execute(stmt)]

    def find_metrics_before(self, cutoff: datetime) -> List[VersionQueryMetric]:
        stmt = (
            select(query_metrics)
            .where(query_metrics.c.last_query_time < _to_utc(cutoff))
            .order_by(query_metrics.c.id)
        )
        with self.session_factory() as db:
            return [_to_metric(row) for row in db.execute(stmt)]

    def get_all_stored_entities_coordinates(self) -> Set[ProjectVersionCoordinate]:
        stmt = select(query_metrics.c.group_id, query_metrics.c.artifact_id, query_metrics.c.version_id).distinct()
        with self.session_factory() as db:
            return {ProjectVersionCoordinate(row.group_id, row.artifact_id, row.version_id) for row in db.execute(stmt)}

    def insert(self, metric: VersionQueryMetric) -> VersionQueryMetric:
        with self.session_factory.begin() as db:
            return self._insert(db, metric)

    def consolidate(self, canonical: VersionQueryMetric) -> int:
        clause = _coordinate_clause(query_metrics, canonical.group_id, canonical.artifact_id, canonical.version_id)
        with self.session_factory.begin() as db:
            current = [row.id for row in db.execute(select(query_metrics.c.id).where(clause))]
            superseded = superseded_record_ids(canonical, current)
            if not superseded:
                return 0
            self._insert(db, canonical)
            result = db.execute(delete(query_metrics).where(query_metrics.c.id.in_(superseded)))
            if canonical.record_id is not None:
                db.execute(delete(query_metrics).where(query_metrics.c.id == canonical.record_id))
            return result.rowcount

    def delete(self, group_id: str, artifact_id: str, version_id: str) -> int:
        with self.session_factory.begin() as db:
            result = db.execute(
                delete(query_metrics).where(_coordinate_clause(query_metrics, group_id, artifact_id, version_id))
            )
            return result.rowcount

    def _insert(self, db, metric: VersionQueryMetric) -> VersionQueryMetric:
        result = db.execute(
            insert(query_metrics).values(
                group_id=metric.group_id,
                artifact_id=metric.artifact_id,
                version_id=metric.version_id,
                query_count=metric.query_count,
                last_query_time=_to_utc(metric.last_query_time),
            )
        )
        return VersionQueryMetric(
            group_id=metric.group_id,
            artifact_id=metric.artifact_id,
            version_id=metric.version_id,
            query_count=metric.query_count,
            last_query_time=_to_utc(metric.last_query_time),
            record_id=result.inserted_primary_key[0],
        )


class SQLAlchemyProjectVersionStore:
    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def get(self, coordinate: ProjectVersionCoordinate) -> Optional[ProjectVersionRecord]:
        stmt = select(project_versions).where(
            _coordinate_clause(project_versions, coordinate.group_id, coordinate.artifact_id, coordinate.version_id)
        )
        with self.session_factory() as db:
            row = db.execute(stmt).first()
        return _to_record(row) if row is not None else None

    def find(self, group_id: str, artifact_id: str) -> List[ProjectVersionRecord]:
        stmt = select(project_versions).where(
            project_versions.c.group_id == group_id, project_versions.c.artifact_id == artifact_id
        )
        with self.session_factory() as db:
            return [_to_record(row) for row in db.execute(stmt)]

    def get_all(self) -> List[ProjectVersionRecord]:
        with self.session_factory() as db:
            return [_to_record(row) for row in db.execute(select(project_versions))]

    def insert(self, record: ProjectVersionRecord) -> ProjectVersionRecord:
        coordinate = record.coordinate
        with self.session_factory.begin() as db:
            db.execute(
                delete(project_versions).where(
                    _coordinate_clause(
                        project_versions, coordinate.group_id, coordinate.artifact_id, coordinate.version_id
                    )
                )
            )
            db.execute(
                insert(project_versions).values(
                    group_id=record.group_id,
                    artifact_id=record.artifact_id,
                    version_id=record.version_id,
                    state=record.state.value,
                    created_at=_to_utc(record.created_at),
                    updated_at=_to_utc(record.updated_at) if record.updated_at else None,
                )
            )
        return record

    def update_state(
        self,
        coordinate: ProjectVersionCoordinate,
        state: VersionState,
        updated_at: datetime,
    ) -> ProjectVersionRecord:
        clause = _coordinate_clause(
            project_versions, coordinate.group_id, coordinate.artifact_id, coordinate.version_id
        )
        with self.session_factory.begin() as db:
            result = db.execute(
                update(project_versions).where(clause).values(state=state.value, updated_at=_to_utc(updated_at))
            )
            if result.rowcount == 0:
                raise NotFoundError(f"project version {coordinate} not found")
            row = db.execute(select(project_versions).where(clause)).first()
        return _to_record(row)

    def delete(self, coordinate: ProjectVersionCoordinate) -> bool:
        with self.session_factory.begin() as db:
            result = db.execute(
                delete(project_versions).where(
                    _coordinate_clause(
                        project_versions, coordinate.group_id, coordinate.artifact_id, coordinate.version_id
                    )
                )
            )
            return result.rowcount > 0


def _coordinate_clause(table: Table, group_id: str, artifact_id: str, version_id: str):
    return and_(
        table.c.group_id == group_id,
        table.c.artifact_id == artifact_id,
        table.c.version_id == version_id,
    )


def _to_metric(row) -> VersionQueryMetric:
    return VersionQueryMetric(
        group_id=row.group_id,
        artifact_id=row.artifact_id,
        version_id=row.version_id,
        query_count=int(row.query_count),
        last_query_time=_as_utc(row.last_query_time),
        record_id=row.id,
    )


def _to_record(row) -> ProjectVersionRecord:
    return ProjectVersionRecord(
        group_id=row.group_id,
        artifact_id=row.artifact_id,
        version_id=row.version_id,
        state=VersionState(row.state),
        created_at=_as_utc(row.created_at),
        updated_at=_as_utc(row.updated_at) if row.updated_at is not None else None,
    )


def _to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # Backends without timezone support (SQLite) hand back naive UTC values.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
