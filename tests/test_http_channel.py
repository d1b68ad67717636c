"""Tests for the REST remote channel, against an httpx.MockTransport backend."""

import json

import httpx
import pytest

from peaklog.errors import RemoteError
from peaklog.sync import HttpRemoteChannel, UserScope

BASE = "https://sync.example.com/api"
SCOPE = UserScope("u1", "mountains")
RECORDS_PATH = "/api/users/u1/collections/mountains/records"


class FakeBackend:
    """Minimal in-memory implementation of the records API."""

    def __init__(self):
        self.records = {}
        self.revision = 0
        self.requests = []
        self.fail_with = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with is not None:
            status, self.fail_with = self.fail_with, None
            return httpx.Response(status, text="backend unhappy")
        path = request.url.path

        if request.method == "GET" and path == RECORDS_PATH:
            return httpx.Response(
                200, json={"records": list(self.records.values()), "revision": self.revision}
            )
        if request.method == "POST" and path == RECORDS_PATH + ":batch":
            for record in json.loads(request.content)["records"]:
                self.records[record["id"]] = record
            self.revision += 1
            return httpx.Response(200, json={"ok": True})
        if path.startswith(RECORDS_PATH + "/"):
            record_id = path.rsplit("/", 1)[1]
            if request.method == "PUT":
                self.records[record_id] = json.loads(request.content)
                self.revision += 1
                return httpx.Response(200, json={"ok": True})
            if request.method == "DELETE":
                if self.records.pop(record_id, None) is None:
                    return httpx.Response(404, json={"detail": "not found"})
                self.revision += 1
                return httpx.Response(204)
        return httpx.Response(404)


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def http_channel(backend):
    client = httpx.Client(transport=httpx.MockTransport(backend))
    channel = HttpRemoteChannel(BASE, "secret-token", client=client)
    yield channel
    channel.close()


def _collect(channel):
    snapshots, errors = [], []
    sub = channel.subscribe(SCOPE, snapshots.append, errors.append)
    return sub, snapshots, errors


class TestConstruction:
    def test_rejects_plain_http_for_remote_hosts(self):
        with pytest.raises(ValueError):
            HttpRemoteChannel("http://sync.example.com", "t")

    def test_allows_localhost_http(self):
        channel = HttpRemoteChannel("http://localhost:8000/", "t")
        assert channel.backend_url == "http://localhost:8000"
        channel.close()


class TestRequests:
    def test_sends_bearer_token(self, http_channel, backend):
        http_channel.upsert(SCOPE, {"id": "a"})
        assert backend.requests[0].headers["Authorization"] == "Bearer secret-token"

    def test_upsert_puts_record(self, http_channel, backend):
        http_channel.upsert(SCOPE, {"id": "a", "name": "Fuji"})
        assert backend.records == {"a": {"id": "a", "name": "Fuji"}}
        assert backend.requests[0].method == "PUT"

    def test_batch_posts_all_records(self, http_channel, backend):
        http_channel.batch_upsert(SCOPE, [{"id": "a"}, {"id": "b"}])
        assert set(backend.records) == {"a", "b"}
        assert backend.requests[0].url.path.endswith("records:batch")

    def test_delete_of_absent_record_is_success(self, http_channel):
        http_channel.delete(SCOPE, "missing")

    def test_ids_are_url_quoted(self, http_channel, backend):
        http_channel.upsert(SCOPE, {"id": "a/b"})
        assert "a%2Fb" in str(backend.requests[0].url)


class TestErrors:
    def test_server_error_is_retryable(self, http_channel, backend):
        backend.fail_with = 503
        with pytest.raises(RemoteError) as exc:
            http_channel.upsert(SCOPE, {"id": "a"})
        assert exc.value.status_code == 503
        assert exc.value.retryable is True

    def test_rate_limit_is_retryable(self, http_channel, backend):
        backend.fail_with = 429
        with pytest.raises(RemoteError) as exc:
            http_channel.batch_upsert(SCOPE, [{"id": "a"}])
        assert exc.value.retryable is True

    def test_client_error_is_not_retryable(self, http_channel, backend):
        backend.fail_with = 403
        with pytest.raises(RemoteError) as exc:
            http_channel.upsert(SCOPE, {"id": "a"})
        assert exc.value.retryable is False

    def test_connection_error_becomes_remote_error(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = httpx.Client(transport=httpx.MockTransport(refuse))
        channel = HttpRemoteChannel(BASE, "t", client=client)
        with pytest.raises(RemoteError) as exc:
            channel.delete(SCOPE, "a")
        assert exc.value.retryable is True
        assert isinstance(exc.value.__cause__, httpx.ConnectError)

    def test_malformed_listing_is_reported_to_subscriber(self):
        client = httpx.Client(
            transport=httpx.MockTransport(lambda r: httpx.Response(200, json={"items": []}))
        )
        channel = HttpRemoteChannel(BASE, "t", client=client)
        _, snapshots, errors = _collect(channel)
        assert snapshots == []
        assert isinstance(errors[0], RemoteError)


class TestSubscriptions:
    def test_initial_fetch_on_subscribe(self, http_channel, backend):
        backend.records["a"] = {"id": "a"}
        _, snapshots, _ = _collect(http_channel)
        assert snapshots == [{"a": {"id": "a"}}]

    def test_poll_only_delivers_on_revision_change(self, http_channel, backend):
        sub, snapshots, _ = _collect(http_channel)
        assert sub.poll() is False
        backend.records["b"] = {"id": "b"}
        backend.revision += 1
        assert sub.poll() is True
        assert snapshots[-1] == {"b": {"id": "b"}}
        assert http_channel.poll_all() == 0

    def test_own_writes_are_echoed(self, http_channel):
        _, snapshots, _ = _collect(http_channel)
        http_channel.upsert(SCOPE, {"id": "a"})
        assert snapshots == [{}, {"a": {"id": "a"}}]

    def test_write_inside_handler_is_polled_after_it(self, http_channel):
        order = []

        def handler(snapshot):
            order.append(sorted(snapshot))
            if not snapshot:
                http_channel.upsert(SCOPE, {"id": "a"})
                assert order == [[]]

        http_channel.subscribe(SCOPE, handler, lambda e: None)
        assert order == [[], ["a"]]

    def test_closed_subscription_is_not_polled(self, http_channel, backend):
        sub, snapshots, _ = _collect(http_channel)
        sub.close()
        http_channel.upsert(SCOPE, {"id": "a"})
        assert snapshots == [{}]
        assert sub.poll() is False

    def test_malformed_records_are_skipped(self, backend):
        backend.records["ok"] = {"id": "ok"}
        backend.records["bad"] = {"name": "no id"}
        client = httpx.Client(transport=httpx.MockTransport(backend))
        channel = HttpRemoteChannel(BASE, "t", client=client)
        _, snapshots, _ = _collect(channel)
        assert list(snapshots[0]) == ["ok"]
