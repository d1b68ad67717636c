"""Sync status state machine."""

import logging
from typing import Callable, List, Optional

from peaklog.types import SyncStatus

logger = logging.getLogger(__name__)

# Worst first; the combined status of several collections is the worst one
_SEVERITY = {
    SyncStatus.IDLE: 0,
    SyncStatus.SYNCED: 1,
    SyncStatus.SYNCING: 2,
    SyncStatus.ERROR: 3,
}


def combine_status(*statuses: SyncStatus) -> SyncStatus:
    """Combine several collection statuses into one user-facing status."""
    if not statuses:
        return SyncStatus.IDLE
    return max(statuses, key=lambda s: _SEVERITY[s])


class SyncStatusTracker:
    """Tracks ``idle``/``syncing``/``synced``/``error`` for one collection.

    ``error`` is sticky: starting another operation does not leave it, only
    a successful completion does. The cause of the last failure is kept in
    :attr:`last_error` until then.
    """

    def __init__(self, name: str = ""):
        self.name = name
        self._status = SyncStatus.IDLE
        self.last_error: Optional[BaseException] = None
        self._listeners: List[Callable[[SyncStatus], None]] = []

    @property
    def status(self) -> SyncStatus:
        return self._status

    def subscribe(self, listener: Callable[[SyncStatus], None]) -> Callable[[], None]:
        """Call ``listener`` on every status change. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set(self, status: SyncStatus) -> None:
        if status == self._status:
            return
        logger.debug("Sync status %s: %s -> %s", self.name, self._status.value, status.value)
        self._status = status
        for listener in list(self._listeners):
            listener(status)

    def begin(self) -> None:
        """A remote operation was issued."""
        if self._status != SyncStatus.ERROR:
            self._set(SyncStatus.SYNCING)

    def succeed(self) -> None:
        """A remote operation completed or a snapshot was processed."""
        self.last_error = None
        self._set(SyncStatus.SYNCED)

    def fail(self, cause: BaseException) -> None:
        """A remote operation failed."""
        self.last_error = cause
        self._set(SyncStatus.ERROR)

    def reset(self) -> None:
        """No identity: back to ``idle`` and forget any error."""
        self.last_error = None
        self._set(SyncStatus.IDLE)
