"""Tests for the in-memory remote store binding."""

import pytest

from peaklog.errors import RemoteError
from peaklog.sync import InMemoryDocumentStore, InMemoryRemoteChannel, UserScope

SCOPE = UserScope("u1", "mountains")


def _collect(channel, scope=SCOPE):
    snapshots, errors = [], []
    sub = channel.subscribe(scope, snapshots.append, errors.append)
    return sub, snapshots, errors


class TestSubscribe:
    def test_delivers_current_snapshot_immediately(self, remote_store):
        remote_store.put_many(SCOPE, [{"id": "a"}])
        _, snapshots, _ = _collect(InMemoryRemoteChannel(remote_store))
        assert snapshots == [{"a": {"id": "a"}}]

    def test_every_write_delivers_a_snapshot(self, channel):
        _, snapshots, _ = _collect(channel)
        channel.upsert(SCOPE, {"id": "a"})
        channel.delete(SCOPE, "a")
        assert snapshots == [{}, {"a": {"id": "a"}}, {}]

    def test_other_devices_see_writes(self, remote_store):
        device_a = InMemoryRemoteChannel(remote_store)
        device_b = InMemoryRemoteChannel(remote_store)
        _, snapshots, _ = _collect(device_b)
        device_a.upsert(SCOPE, {"id": "a"})
        assert snapshots[-1] == {"a": {"id": "a"}}

    def test_scopes_are_isolated(self, channel):
        _, snapshots, _ = _collect(channel)
        channel.upsert(UserScope("u2", "mountains"), {"id": "a"})
        channel.upsert(UserScope("u1", "gpxTracks"), {"id": "t"})
        assert snapshots == [{}]

    def test_closed_subscription_gets_nothing(self, channel):
        sub, snapshots, _ = _collect(channel)
        sub.close()
        sub.close()
        channel.upsert(SCOPE, {"id": "a"})
        assert snapshots == [{}]
        assert not sub.active

    def test_snapshots_are_copies(self, channel):
        _, snapshots, _ = _collect(channel)
        record = {"id": "a", "notes": "x"}
        channel.upsert(SCOPE, record)
        record["notes"] = "mutated"
        snapshots[-1]["a"]["notes"] = "also mutated"
        assert channel.store.snapshot(SCOPE)["a"]["notes"] == "x"


class TestDelivery:
    def test_deferred_delivery(self, remote_store):
        channel = InMemoryRemoteChannel(remote_store, auto_deliver=False)
        _, snapshots, _ = _collect(channel)
        channel.upsert(SCOPE, {"id": "a"})
        assert snapshots == []
        assert channel.pending_deliveries == 2
        assert channel.deliver(limit=1) == 1
        assert snapshots == [{}]
        channel.deliver()
        assert snapshots == [{}, {"a": {"id": "a"}}]

    def test_writes_during_delivery_are_queued_not_reentrant(self, channel):
        order = []

        def handler(snapshot):
            order.append(sorted(snapshot))
            if "a" in snapshot and "b" not in snapshot:
                channel.upsert(SCOPE, {"id": "b"})
                # The echo of "b" has not been handled yet
                assert order[-1] == ["a"]

        channel.subscribe(SCOPE, handler, lambda e: None)
        channel.upsert(SCOPE, {"id": "a"})
        assert order == [[], ["a"], ["a", "b"]]

    def test_drop_pending(self, remote_store):
        channel = InMemoryRemoteChannel(remote_store, auto_deliver=False)
        _collect(channel)
        assert channel.drop_pending() == 1
        assert channel.deliver() == 0


class TestWrites:
    def test_delete_absent_is_not_an_error(self, channel):
        channel.delete(SCOPE, "missing")
        assert channel.store.revision(SCOPE) == 0

    def test_batch_upsert(self, channel):
        channel.batch_upsert(SCOPE, [{"id": "a"}, {"id": "b"}])
        assert set(channel.store.snapshot(SCOPE)) == {"a", "b"}
        assert channel.store.revision(SCOPE) == 1

    def test_upsert_is_idempotent(self, channel):
        channel.upsert(SCOPE, {"id": "a"})
        channel.upsert(SCOPE, {"id": "a"})
        assert list(channel.store.snapshot(SCOPE)) == ["a"]

    def test_calls_are_recorded(self, channel):
        channel.batch_upsert(SCOPE, [{"id": "a"}, {"id": "b"}])
        assert channel.calls == [("batch_upsert", "u1/mountains", 2)]


class TestFailureInjection:
    def test_fail_next_fails_once(self, channel):
        channel.fail_next("batch_upsert")
        with pytest.raises(RemoteError):
            channel.batch_upsert(SCOPE, [{"id": "a"}])
        assert channel.store.snapshot(SCOPE) == {}
        channel.batch_upsert(SCOPE, [{"id": "a"}])
        assert list(channel.store.snapshot(SCOPE)) == ["a"]

    def test_custom_error(self, channel):
        channel.fail_next("upsert", RemoteError("denied", retryable=False))
        with pytest.raises(RemoteError, match="denied"):
            channel.upsert(SCOPE, {"id": "a"})

    def test_offline_fails_everything(self, channel):
        channel.offline = True
        with pytest.raises(RemoteError):
            channel.delete(SCOPE, "a")

    def test_subscribe_failure_goes_to_error_callback(self, channel):
        channel.fail_next("subscribe")
        sub, snapshots, errors = _collect(channel)
        assert snapshots == []
        assert len(errors) == 1
        assert not sub.active


class TestDocumentStore:
    def test_revision_counts_changes(self):
        store = InMemoryDocumentStore()
        store.put_many(SCOPE, [{"id": "a"}])
        store.delete(SCOPE, "a")
        assert store.revision(SCOPE) == 2
