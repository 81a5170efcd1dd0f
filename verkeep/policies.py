"""Pure retention decisions that work on plain metric and version values."""

from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Sequence

from .errors import InvalidArgumentError
from .models import VersionQueryMetric
from .versions import is_snapshot_version, sort_release_versions


def summarize_metrics(records: Iterable[VersionQueryMetric]) -> Optional[VersionQueryMetric]:
    """Collapse the records of one coordinate into a single summary.

    The summary takes its identity and ``last_query_time`` from the most
    recently queried record; ties go to the lowest ``record_id`` (records
    without an id sort after stored ones, in iteration order). Its
    ``query_count`` is the sum over every record. ``merged_record_ids`` lists
    the stored records folded into it, so consolidation removes exactly those.
    """
    records_list = list(records)
    if not records_list:
        return None

    latest = records_list[0]
    for record in records_list[1:]:
        if record.last_query_time > latest.last_query_time:
            latest = record
        elif record.last_query_time == latest.last_query_time and _id_key(record) < _id_key(latest):
            latest = record

    total = sum(record.query_count for record in records_list)
    return VersionQueryMetric(
        group_id=latest.group_id,
        artifact_id=latest.artifact_id,
        version_id=latest.version_id,
        query_count=total,
        last_query_time=latest.last_query_time,
        record_id=latest.record_id,
        merged_record_ids=tuple(record.record_id for record in records_list if record.record_id is not None),
    )


def superseded_record_ids(canonical: VersionQueryMetric, current_ids: Sequence[int]) -> List[int]:
    """Ids of stored records, other than the summary's own, that ``canonical`` replaces.

    Only records the summary was built from are replaced; anything persisted
    after it was read stays for the next pass whatever its timestamp. A
    canonical without merged ids replaces nothing when it is itself stored,
    and every current record when it is not.
    """
    if canonical.merged_record_ids:
        merged = set(canonical.merged_record_ids)
    elif canonical.record_id is not None:
        merged = {canonical.record_id}
    else:
        merged = set(current_ids)
    return [record_id for record_id in current_ids if record_id in merged and record_id != canonical.record_id]


def ttl_for_version(version_id: str, ttl_for_versions_days: int, ttl_for_snapshots_days: int) -> int:
    return ttl_for_snapshots_days if is_snapshot_version(version_id) else ttl_for_versions_days


def is_expired(last_query_time: datetime, now: datetime, ttl_days: int) -> bool:
    """A version expires once strictly more than ``ttl_days`` have passed."""
    return now - last_query_time > timedelta(days=ttl_days)


def is_past_grace_period(created_at: Optional[datetime], now: datetime, grace_period_days: int) -> bool:
    if grace_period_days <= 0:
        return True
    if created_at is None:
        return False
    return now - created_at >= timedelta(days=grace_period_days)


def select_versions_to_evict(version_ids: Iterable[str], versions_to_keep: int) -> List[str]:
    """Return the release versions that fall outside the newest ``versions_to_keep``.

    Snapshot and unparsable version ids are never selected.
    """
    if versions_to_keep < 0:
        raise InvalidArgumentError(f"versionsToKeep must be >= 0, got {versions_to_keep}")
    ordered = sort_release_versions(version_ids, descending=True)
    return ordered[versions_to_keep:]


def _id_key(record: VersionQueryMetric) -> float:
    return record.record_id if record.record_id is not None else float("inf")
