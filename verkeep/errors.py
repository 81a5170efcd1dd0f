"""Error taxonomy shared by the metrics handler and the retention engine."""


class RetentionError(Exception):
    """Base class for every error raised by verkeep."""

    kind = "internal"


class NotFoundError(RetentionError):
    """No metric or project version record matches the coordinate."""

    kind = "not_found"


class RepositoryUnavailableError(RetentionError):
    """The upstream artifact repository could not answer a lookup."""

    kind = "repository_unavailable"


class StoreInconsistencyError(RetentionError):
    """A store invariant was violated, e.g. a listed coordinate has no records."""

    kind = "store_inconsistency"


class InvalidArgumentError(RetentionError, ValueError):
    """Malformed coordinate fields or out-of-range parameters."""

    kind = "invalid_argument"


class InvalidStateTransitionError(InvalidArgumentError):
    """The requested lifecycle change is not allowed from the current state."""

    kind = "invalid_state_transition"


def error_kind(exc: BaseException) -> str:
    """Classify an exception for batch results; unknown errors are ``internal``."""
    if isinstance(exc, RetentionError):
        return exc.kind
    return RetentionError.kind
