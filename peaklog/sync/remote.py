"""Remote channel contract.

A remote channel is the only way the sync engine talks to the per-user
remote store. Records cross the channel as wire dicts; the orchestrator
decodes and encodes them with its record kind.

Contract:

- ``subscribe`` delivers the full current snapshot once immediately and
  again on every change to the scope, including changes this device made.
  Snapshots are delivered one at a time, never re-entrantly.
- ``upsert`` and ``delete`` are idempotent per id; deleting an absent id
  is not an error.
- ``batch_upsert`` writes all records or none.
- Failures raise :class:`~peaklog.errors.RemoteError`.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List

WireRecord = Dict[str, Any]
Snapshot = Dict[str, WireRecord]
SnapshotCallback = Callable[[Snapshot], None]
ErrorCallback = Callable[[Exception], None]


@dataclass(frozen=True)
class UserScope:
    """One user's collection in the remote store."""

    user_id: str
    collection: str

    def __str__(self) -> str:
        return f"{self.user_id}/{self.collection}"


class Subscription(ABC):
    """Handle returned by :meth:`RemoteChannel.subscribe`."""

    @abstractmethod
    def close(self) -> None:
        """Stop delivering snapshots. Safe to call more than once."""

    @property
    @abstractmethod
    def active(self) -> bool:
        """False once closed."""


class RemoteChannel(ABC):
    """Abstract per-user remote document store."""

    @abstractmethod
    def subscribe(
        self, scope: UserScope, on_snapshot: SnapshotCallback, on_error: ErrorCallback
    ) -> Subscription:
        """Watch ``scope``; ``on_error`` receives subscription failures."""

    @abstractmethod
    def upsert(self, scope: UserScope, record: WireRecord) -> None:
        """Create or replace one record."""

    @abstractmethod
    def delete(self, scope: UserScope, record_id: str) -> None:
        """Delete one record; absent ids are not an error."""

    @abstractmethod
    def batch_upsert(self, scope: UserScope, records: List[WireRecord]) -> None:
        """Create or replace several records atomically."""

    def close(self) -> None:
        """Release any resources (connections, pollers)."""
