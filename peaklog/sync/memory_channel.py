"""In-process remote store.

:class:`InMemoryDocumentStore` plays the part of the shared remote
database; each device attaches its own :class:`InMemoryRemoteChannel`.
Writes from any channel notify every subscription on the same scope,
which makes it possible to run several devices against one store in a
single process.
"""

import copy
import logging
from collections import defaultdict, deque
from typing import Deque, Dict, List, Optional, Tuple

from peaklog.errors import RemoteError
from peaklog.sync.remote import (
    ErrorCallback,
    RemoteChannel,
    Snapshot,
    SnapshotCallback,
    Subscription,
    UserScope,
    WireRecord,
)

logger = logging.getLogger(__name__)


class InMemoryDocumentStore:
    """Per-scope record maps with a revision counter and change watchers."""

    def __init__(self):
        self._collections: Dict[UserScope, Dict[str, WireRecord]] = defaultdict(dict)
        self._revisions: Dict[UserScope, int] = defaultdict(int)
        self._watchers: Dict[UserScope, List["MemorySubscription"]] = defaultdict(list)

    def snapshot(self, scope: UserScope) -> Snapshot:
        """Deep copy of the scope's current records keyed by id."""
        return copy.deepcopy(self._collections[scope])

    def revision(self, scope: UserScope) -> int:
        return self._revisions[scope]

    def put_many(self, scope: UserScope, records: List[WireRecord]) -> None:
        collection = self._collections[scope]
        for record in records:
            collection[record["id"]] = copy.deepcopy(record)
        self._changed(scope)

    def delete(self, scope: UserScope, record_id: str) -> bool:
        if self._collections[scope].pop(record_id, None) is None:
            return False
        self._changed(scope)
        return True

    def watch(self, subscription: "MemorySubscription") -> None:
        self._watchers[subscription.scope].append(subscription)

    def unwatch(self, subscription: "MemorySubscription") -> None:
        watchers = self._watchers[subscription.scope]
        if subscription in watchers:
            watchers.remove(subscription)

    def _changed(self, scope: UserScope) -> None:
        self._revisions[scope] += 1
        for subscription in list(self._watchers[scope]):
            subscription.channel._enqueue(subscription, self.snapshot(scope))


class MemorySubscription(Subscription):
    def __init__(
        self,
        channel: "InMemoryRemoteChannel",
        scope: UserScope,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ):
        self.channel = channel
        self.scope = scope
        self.on_snapshot = on_snapshot
        self.on_error = on_error
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def close(self) -> None:
        if self._active:
            self._active = False
            self.channel.store.unwatch(self)


class InMemoryRemoteChannel(RemoteChannel):
    """One device's connection to an :class:`InMemoryDocumentStore`.

    Args:
        store: The shared store; a private one is created when omitted.
        auto_deliver: Deliver snapshots as soon as they are produced. When
            False, snapshots queue up until :meth:`deliver` is called, which
            lets tests interleave local actions with late snapshots.
    """

    def __init__(self, store: Optional[InMemoryDocumentStore] = None, auto_deliver: bool = True):
        self.store = store if store is not None else InMemoryDocumentStore()
        self.auto_deliver = auto_deliver
        self._queue: Deque[Tuple[MemorySubscription, Snapshot]] = deque()
        self._delivering = False
        self._failures: Dict[str, Deque[Exception]] = defaultdict(deque)
        self.offline = False
        self.calls: List[Tuple[str, str, int]] = []  # (operation, scope, record count)

    # === Failure injection ===

    def fail_next(self, operation: str, error: Optional[Exception] = None) -> None:
        """Make the next ``operation`` call fail.

        ``operation`` is one of ``subscribe``, ``upsert``, ``delete`` or
        ``batch_upsert``.
        """
        self._failures[operation].append(
            error or RemoteError(f"injected {operation} failure", retryable=True)
        )

    def _check(self, operation: str) -> None:
        if self.offline:
            raise RemoteError(f"{operation}: remote store unreachable", retryable=True)
        pending = self._failures.get(operation)
        if pending:
            raise pending.popleft()

    # === Delivery ===

    @property
    def pending_deliveries(self) -> int:
        return len(self._queue)

    def _enqueue(self, subscription: MemorySubscription, snapshot: Snapshot) -> None:
        self._queue.append((subscription, snapshot))
        if self.auto_deliver:
            self.deliver()

    def deliver(self, limit: Optional[int] = None) -> int:
        """Deliver queued snapshots in order.

        Snapshots produced while one is being handled are appended to the
        queue and handled afterwards by this same loop, never re-entrantly.

        Returns:
            The number of snapshots handed to a subscriber.
        """
        if self._delivering:
            return 0
        delivered = 0
        self._delivering = True
        try:
            while self._queue and (limit is None or delivered < limit):
                subscription, snapshot = self._queue.popleft()
                if not subscription.active:
                    continue
                subscription.on_snapshot(snapshot)
                delivered += 1
        finally:
            self._delivering = False
        return delivered

    def drop_pending(self) -> int:
        """Discard queued snapshots without delivering them."""
        dropped = len(self._queue)
        self._queue.clear()
        return dropped

    # === RemoteChannel ===

    def subscribe(
        self, scope: UserScope, on_snapshot: SnapshotCallback, on_error: ErrorCallback
    ) -> Subscription:
        self.calls.append(("subscribe", str(scope), 0))
        subscription = MemorySubscription(self, scope, on_snapshot, on_error)
        try:
            self._check("subscribe")
        except RemoteError as e:
            subscription._active = False
            on_error(e)
            return subscription
        self.store.watch(subscription)
        self._enqueue(subscription, self.store.snapshot(scope))
        return subscription

    def upsert(self, scope: UserScope, record: WireRecord) -> None:
        self.calls.append(("upsert", str(scope), 1))
        self._check("upsert")
        self.store.put_many(scope, [record])

    def delete(self, scope: UserScope, record_id: str) -> None:
        self.calls.append(("delete", str(scope), 1))
        self._check("delete")
        self.store.delete(scope, record_id)

    def batch_upsert(self, scope: UserScope, records: List[WireRecord]) -> None:
        self.calls.append(("batch_upsert", str(scope), len(records)))
        self._check("batch_upsert")
        if records:
            self.store.put_many(scope, records)
