"""Version classification, ordering and coordinate validation."""

import re
from typing import Iterable, List, Optional, Tuple

from .errors import InvalidArgumentError
from .models import SNAPSHOT_SUFFIX, ProjectVersionCoordinate

GROUP_ID_PATTERN = re.compile(r"^[a-z][a-z0-9_]*(\.[a-z][a-z0-9_]*)*$")
ARTIFACT_ID_PATTERN = re.compile(r"^[a-z][a-z0-9_]*(-[a-z0-9][a-z0-9_]*)*$")
RELEASE_VERSION_PATTERN = re.compile(r"^(\d+)\.(\d+)\.(\d+)$")
# Any well-formed version token; strict x.y.z is only needed for ordering.
VERSION_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.\-]*$")


def is_snapshot_version(version_id: str) -> bool:
    return version_id.endswith(SNAPSHOT_SUFFIX)


def parse_release_version(version_id: str) -> Optional[Tuple[int, int, int]]:
    """Return ``(major, minor, patch)`` or ``None`` if not a release version."""
    match = RELEASE_VERSION_PATTERN.match(version_id)
    if match is None:
        return None
    major, minor, patch = match.groups()
    return int(major), int(minor), int(patch)


def sort_release_versions(version_ids: Iterable[str], descending: bool = True) -> List[str]:
    """Sort release versions numerically, dropping snapshots and unparsable ids."""
    releases = [version_id for version_id in version_ids if parse_release_version(version_id) is not None]
    return sorted(releases, key=parse_release_version, reverse=descending)


def validate_project(group_id: str, artifact_id: str) -> None:
    if not group_id or not GROUP_ID_PATTERN.match(group_id):
        raise InvalidArgumentError(f"invalid groupId: {group_id!r}")
    if not artifact_id or not ARTIFACT_ID_PATTERN.match(artifact_id):
        raise InvalidArgumentError(f"invalid artifactId: {artifact_id!r}")


def validate_coordinate(group_id: str, artifact_id: str, version_id: str) -> ProjectVersionCoordinate:
    """Build a coordinate, raising ``InvalidArgumentError`` on malformed fields."""
    validate_project(group_id, artifact_id)
    if not version_id or not VERSION_ID_PATTERN.match(version_id):
        raise InvalidArgumentError(f"invalid versionId: {version_id!r}")
    return ProjectVersionCoordinate(group_id, artifact_id, version_id)
