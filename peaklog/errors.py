"""Error taxonomy for Peaklog.

Remote failures never propagate out of the sync orchestrator: they are
caught at its boundary, logged, and surfaced through the sync status
tracker. Local validation failures (malformed imports, clock regressions,
missing records) are raised to the caller.
"""

from typing import Any, Optional


class PeaklogError(Exception):
    """Base class for all Peaklog errors."""


class RemoteUnavailable(PeaklogError):
    """No remote store or no signed-in user.

    This is a mode, not a failure: the engine keeps working local-only.
    """


class RemoteError(PeaklogError):
    """A remote channel call failed.

    Args:
        message: Human-readable description.
        status_code: HTTP status when the channel is HTTP based.
        retryable: Whether repeating the call may succeed (network errors,
            rate limiting, server errors).
    """

    def __init__(
        self, message: str, *, status_code: Optional[int] = None, retryable: bool = True
    ):
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable


class SyncOperationError(PeaklogError):
    """A sync operation failed; kept as the cause of an ``error`` status."""

    operation = "sync"

    def __init__(self, collection: str, detail: str, record_ids: Optional[list] = None):
        self.collection = collection
        self.detail = detail
        self.record_ids = list(record_ids or [])
        super().__init__(f"{self.operation} failed on {collection}: {detail}")


class WriteFailed(SyncOperationError):
    operation = "write"


class DeleteFailed(SyncOperationError):
    operation = "delete"


class BatchFailed(SyncOperationError):
    operation = "batch"


class SnapshotError(SyncOperationError):
    """The subscription itself failed, or a snapshot could not be processed."""

    operation = "snapshot"


class MalformedImport(PeaklogError, ValueError):
    """An import payload is missing required arrays or holds invalid records."""

    def __init__(self, reason: str, payload: Any = None):
        super().__init__(f"Malformed import: {reason}")
        self.reason = reason
        self.payload = payload


class StaleWriteError(PeaklogError, ValueError):
    """A local mutation did not advance the record's logical clock."""

    def __init__(self, record_id: str, previous: str, attempted: str):
        self.record_id = record_id
        self.previous = previous
        self.attempted = attempted
        super().__init__(
            f"Stale write on {record_id}: last_modified {attempted!r} "
            f"does not advance past {previous!r}"
        )


class RecordNotFound(PeaklogError, KeyError):
    """No local record with the given id."""

    def __init__(self, kind: str, record_id: str):
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind} not found: {record_id}")

    def __str__(self) -> str:
        return self.args[0]
