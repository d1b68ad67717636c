"""Sync orchestrator.

One :class:`SyncOrchestrator` keeps one record kind's local store in step
with the signed-in user's remote collection. It is written once against
the :class:`~peaklog.types.SyncableRecord` capability and instantiated per
kind through a :class:`~peaklog.serializers.RecordKind`.

Lifecycle::

    DISCONNECTED --start(user)--> INITIAL_RECONCILING --first snapshot--> STEADY
         ^                                                                   |
         +------------------------------ stop() -----------------------------+

Local mutations always land in the local store first. While a session is
open they are then written to the remote store with an echo ticket armed,
so the snapshot that reflects them can be recognised and skipped. Remote
failures are caught here, logged, and surfaced through :attr:`tracker`;
local data is never rolled back.
"""

import logging
from functools import partial
from typing import Any, Callable, Dict, Generic, Iterable, List, Optional, Set, Type, TypeVar

from peaklog.errors import (
    BatchFailed,
    DeleteFailed,
    SnapshotError,
    SyncOperationError,
    WriteFailed,
)
from peaklog.serializers import RecordKind
from peaklog.storage.local import LocalStore
from peaklog.sync.dedup import dedup_records, supports_dedup
from peaklog.sync.echo import EchoSuppressor
from peaklog.sync.merge import is_foreign_change, merge_records
from peaklog.sync.remote import RemoteChannel, Snapshot, Subscription, UserScope
from peaklog.sync.retry import NO_RETRY, RetryPolicy
from peaklog.sync.status import SyncStatusTracker
from peaklog.types import SyncState, SyncStatus

logger = logging.getLogger(__name__)

T = TypeVar("T")

# (event_type, details) -> None; see Peaklog._on_sync_event
SyncEventHook = Callable[[str, Dict[str, Any]], None]


class SyncOrchestrator(Generic[T]):
    """Reconciles one local collection with one remote collection.

    Args:
        kind: Record kind (codec, collection and slot names).
        store: The local collection.
        channel: Remote channel; ``None`` means local-only mode.
        retry: Retry policy for each remote operation.
        event_hook: Optional callback for sync events (reconcile results and
            remote operation outcomes).
    """

    def __init__(
        self,
        kind: RecordKind[T],
        store: LocalStore[T],
        channel: Optional[RemoteChannel] = None,
        *,
        retry: RetryPolicy = NO_RETRY,
        event_hook: Optional[SyncEventHook] = None,
    ):
        self.kind = kind
        self.store = store
        self.channel = channel
        self.retry = retry
        self.event_hook = event_hook
        self.tracker = SyncStatusTracker(kind.collection)
        self.echo = EchoSuppressor()

        self._state = SyncState.DISCONNECTED
        self._user_id: Optional[str] = None
        self._scope: Optional[UserScope] = None
        self._subscription: Optional[Subscription] = None
        self._session = 0
        self._last_snapshot_ids: Set[str] = set()

    # === Introspection ===

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def status(self) -> SyncStatus:
        return self.tracker.status

    @property
    def last_error(self) -> Optional[BaseException]:
        return self.tracker.last_error

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def connected(self) -> bool:
        return self._state != SyncState.DISCONNECTED

    # === Session lifecycle ===

    def start(self, user_id: str) -> None:
        """Open a sync session for ``user_id``.

        Without a channel this is a no-op and the collection stays local-only.
        """
        if self.connected and user_id == self._user_id:
            return
        if self.connected:
            self.stop()
        if self.channel is None:
            logger.info(f"No remote store configured; {self.kind.collection} stays local-only")
            return

        self._session += 1
        session = self._session
        self._user_id = user_id
        self._scope = UserScope(user_id, self.kind.collection)
        self._state = SyncState.INITIAL_RECONCILING
        self._last_snapshot_ids = set()
        self.tracker.begin()
        logger.info(f"Starting sync of {self.kind.collection} for user {user_id}")

        try:
            subscription = self.retry.call(
                self.channel.subscribe,
                self._scope,
                partial(self._on_snapshot, session),
                partial(self._on_subscription_error, session),
                description=f"subscribe {self._scope}",
            )
        except Exception as e:
            if session == self._session:
                self._fail(SnapshotError(self.kind.collection, str(e)), e)
            return

        if session != self._session:
            # stop() ran while subscribing
            subscription.close()
            return
        self._subscription = subscription

    def stop(self) -> None:
        """Close the session. Local data is left untouched."""
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None
        if self.connected:
            logger.info(f"Stopping sync of {self.kind.collection} for user {self._user_id}")
        self._session += 1
        self.echo.reset()
        self._state = SyncState.DISCONNECTED
        self._user_id = None
        self._scope = None
        self._last_snapshot_ids = set()
        self.tracker.reset()

    def on_identity_changed(self, user_id: Optional[str]) -> None:
        """React to sign-in, sign-out or a user switch."""
        if user_id is None:
            if self.connected:
                self.stop()
            return
        self.start(user_id)

    # === Snapshots ===

    def _decode(self, raw: Snapshot) -> Dict[str, T]:
        records: Dict[str, T] = {}
        for record_id, item in raw.items():
            try:
                record = self.kind.from_dict(item)
            except ValueError as e:
                logger.warning(f"Ignoring unreadable remote {self.kind.name} {record_id}: {e}")
                continue
            records[record.id] = record
        return records

    def _visible(self, snapshot: Dict[str, T]) -> Dict[str, T]:
        if not self.echo.pending_deletes():
            return snapshot
        return {
            rid: record for rid, record in snapshot.items() if not self.echo.hides(rid, record)
        }

    def _on_snapshot(self, session: int, raw: Snapshot) -> None:
        if session != self._session or not self.connected:
            logger.debug(f"Ignoring snapshot of {self.kind.collection} from a closed session")
            return
        try:
            snapshot = self._decode(raw)
            if self._state == SyncState.INITIAL_RECONCILING:
                self._initial_reconcile(snapshot)
            else:
                self._apply_snapshot(snapshot)
        except Exception as e:
            self._fail(SnapshotError(self.kind.collection, f"processing failed: {e}"), e)

    def _on_subscription_error(self, session: int, error: Exception) -> None:
        if session != self._session:
            return
        self._fail(SnapshotError(self.kind.collection, str(error)), error)

    def _initial_reconcile(self, snapshot: Dict[str, T]) -> None:
        self._last_snapshot_ids = set(snapshot)
        self.echo.settle(snapshot)
        visible = self._visible(snapshot)

        merged = merge_records(self.store.all(), visible)
        removed_ids: Set[str] = set()
        if any(supports_dedup(record) for record in merged):
            result = dedup_records(merged)
            merged = result.survivors
            removed_ids = result.removed_ids

        local_only = [record for record in merged if record.id not in snapshot]
        self.store.replace_all(merged)

        # Steady before issuing writes so their echoes take the normal path
        self._state = SyncState.STEADY
        self.tracker.succeed()
        logger.info(
            f"Initial reconcile of {self.kind.collection}: {len(merged)} records, "
            f"{len(removed_ids)} duplicates removed, {len(local_only)} to upload"
        )
        self._emit(
            "reconcile",
            merged=len(merged),
            removed=len(removed_ids),
            uploaded=len(local_only),
        )

        session = self._session
        for record_id in sorted(removed_ids):
            if session != self._session:
                return
            if record_id in snapshot:
                self.sync_delete(snapshot[record_id])
        if local_only and session == self._session:
            self.sync_batch_write(local_only)

    def _apply_snapshot(self, snapshot: Dict[str, T]) -> None:
        self._last_snapshot_ids = set(snapshot)
        local_index = {record.id: record for record in self.store.all()}

        def foreign(record_id: str, record: T) -> bool:
            return is_foreign_change(record_id, record, local_index)

        if self.echo.observe(snapshot, foreign):
            self.tracker.succeed()
            return

        visible = self._visible(snapshot)
        changed = [rid for rid, record in visible.items() if foreign(rid, record)]
        if changed:
            self.store.replace_all(merge_records(local_index.values(), visible))
            logger.info(f"Merged {len(changed)} remote changes into {self.kind.collection}")
        self.tracker.succeed()

    # === Remote operations ===

    def _emit(self, event_type: str, **details: Any) -> None:
        if self.event_hook is None:
            return
        details.setdefault("collection", self.kind.collection)
        details.setdefault("user_id", self._user_id)
        try:
            self.event_hook(event_type, details)
        except OSError as e:
            logger.warning(f"Failed to record sync event {event_type}: {e}")

    def _fail(self, error: SyncOperationError, cause: BaseException) -> None:
        error.__cause__ = cause
        logger.error(f"Sync error: {error}", exc_info=cause)
        self.tracker.fail(error)

    def _remote(
        self,
        operation: str,
        error_cls: Type[SyncOperationError],
        ticket: int,
        fn: Callable[..., None],
        payload: Any,
        record_ids: List[str],
    ) -> bool:
        session = self._session
        self.tracker.begin()
        try:
            self.retry.call(
                fn, self._scope, payload, description=f"{operation} {self._scope}"
            )
        except Exception as e:
            if session != self._session:
                logger.debug(f"Ignoring late {operation} failure from a closed session: {e}")
                return False
            self.echo.disarm(ticket)
            self._fail(error_cls(self.kind.collection, str(e), record_ids), e)
            self._emit(operation, count=len(record_ids), ok=False)
            return False

        if session != self._session:
            logger.debug(f"Ignoring late {operation} completion from a closed session")
            return False
        self.tracker.succeed()
        self._emit(operation, count=len(record_ids), ok=True)
        return True

    def sync_write(self, record: T) -> bool:
        """Upsert one record remotely. Returns True on success."""
        if not self.connected:
            return False
        ticket = self.echo.arm_upsert([record])
        return self._remote(
            "write", WriteFailed, ticket, self.channel.upsert, self.kind.to_dict(record), [record.id]
        )

    def sync_delete(self, record: T) -> bool:
        """Delete one record remotely. Returns True on success.

        Remote versions stamped at or before ``record`` stay hidden until the
        delete is confirmed; newer ones are saves from another device and merge.
        """
        if not self.connected:
            return False
        ticket = self.echo.arm_delete([record])
        return self._remote(
            "delete", DeleteFailed, ticket, self.channel.delete, record.id, [record.id]
        )

    def sync_batch_write(self, records: Iterable[T]) -> bool:
        """Upsert several records remotely as one atomic batch."""
        records = list(records)
        if not self.connected or not records:
            return False
        ticket = self.echo.arm_upsert(records, operation="batch")
        return self._remote(
            "batch",
            BatchFailed,
            ticket,
            self.channel.batch_upsert,
            self.kind.encode_many(records),
            [record.id for record in records],
        )

    # === Local mutations ===

    def put(self, record: T) -> T:
        """Store one record locally, then write it remotely when connected."""
        self.store.upsert(record)
        self.sync_write(record)
        return record

    def put_many(self, records: Iterable[T]) -> List[T]:
        """Store several records locally, then upload them as one batch."""
        records = self.store.upsert_many(records)
        self.sync_batch_write(records)
        return records

    def remove(self, record_id: str) -> bool:
        """Delete a record locally, then remotely. Returns False if it was absent."""
        record = self.store.get(record_id)
        if record is None:
            return False
        self.store.delete(record_id)
        self.sync_delete(record)
        return True

    def fold_in(self, records: Iterable[T]) -> List[T]:
        """Add records whose ids are new locally and upload them as one batch.

        Used for imports and preset loads. Records whose id already exists
        locally are skipped.

        Returns:
            The records that were added.
        """
        fresh: Dict[str, T] = {}
        for record in records:
            if record.id not in self.store and record.id not in fresh:
                fresh[record.id] = record
        if not fresh:
            return []
        added = self.store.upsert_many(fresh.values())
        self.sync_batch_write(added)
        return added

    def push_local_only(self) -> int:
        """Re-upload local records missing from the last snapshot.

        Manual retry after a failed batch. Upserts are idempotent per id, so
        records that did reach the store are not duplicated.

        Returns:
            Number of records uploaded, 0 when nothing was missing or the
            upload failed.
        """
        if self._state != SyncState.STEADY:
            return 0
        missing = [r for r in self.store.all() if r.id not in self._last_snapshot_ids]
        if not missing:
            return 0
        return len(missing) if self.sync_batch_write(missing) else 0
