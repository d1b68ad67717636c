"""REST binding of the remote channel.

Endpoints, relative to the backend URL::

    GET    /users/{uid}/collections/{col}/records        -> {"records": [...], "revision": ...}
    PUT    /users/{uid}/collections/{col}/records/{id}   body: record
    DELETE /users/{uid}/collections/{col}/records/{id}   404 counts as success
    POST   /users/{uid}/collections/{col}/records:batch  body: {"records": [...]}

The backend has no push channel, so subscriptions poll: one fetch when the
subscription opens, then :meth:`HttpSubscription.poll` delivers a new
snapshot whenever the revision changed. After every successful write the
channel polls the scope's open subscriptions, so this device sees its own
echo the same way it would with a push-based store.
"""

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from peaklog.config import validate_backend_url
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

DEFAULT_TIMEOUT = 10.0


def _is_retryable_status(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


class HttpSubscription(Subscription):
    """Polling subscription to one scope."""

    def __init__(
        self,
        channel: "HttpRemoteChannel",
        scope: UserScope,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ):
        self.channel = channel
        self.scope = scope
        self.on_snapshot = on_snapshot
        self.on_error = on_error
        self.revision: Any = None
        self._active = True
        self._delivering = False
        self._poll_again = False

    @property
    def active(self) -> bool:
        return self._active

    def close(self) -> None:
        if self._active:
            self._active = False
            self.channel._forget(self)

    def poll(self) -> bool:
        """Fetch the scope and deliver it if the revision changed.

        A poll requested while a snapshot is being handled runs right after
        that handler returns.

        Returns:
            True if at least one snapshot was delivered.
        """
        if not self._active:
            return False
        if self._delivering:
            self._poll_again = True
            return False

        delivered = False
        self._delivering = True
        try:
            while True:
                self._poll_again = False
                try:
                    snapshot, revision = self.channel.fetch(self.scope)
                except RemoteError as e:
                    self.on_error(e)
                    break
                if revision is None or revision != self.revision:
                    self.revision = revision
                    self.on_snapshot(snapshot)
                    delivered = True
                if not (self._poll_again and self._active):
                    break
        finally:
            self._delivering = False
        return delivered


class HttpRemoteChannel(RemoteChannel):
    """Remote channel backed by the Peaklog REST API.

    Args:
        backend_url: Base URL; must pass :func:`validate_backend_url`.
        auth_token: Bearer token.
        timeout: Per-request timeout in seconds.
        client: Pre-built ``httpx.Client`` (tests pass one with a
            ``MockTransport``).
    """

    def __init__(
        self,
        backend_url: str,
        auth_token: str,
        timeout: float = DEFAULT_TIMEOUT,
        client: Optional[httpx.Client] = None,
    ):
        validated = validate_backend_url(backend_url)
        if not validated:
            raise ValueError(f"Unsafe or invalid backend URL: {backend_url}")
        self.backend_url = validated.rstrip("/")
        self._client = client or httpx.Client(timeout=timeout)
        self._headers = {
            "Authorization": f"Bearer {auth_token}",
            "Content-Type": "application/json",
        }
        self._subscriptions: List[HttpSubscription] = []

    def _records_url(self, scope: UserScope) -> str:
        return (
            f"{self.backend_url}/users/{quote(scope.user_id, safe='')}"
            f"/collections/{quote(scope.collection, safe='')}/records"
        )

    def _request(self, method: str, url: str, *, allow_404: bool = False, **kwargs) -> httpx.Response:
        try:
            response = self._client.request(method, url, headers=self._headers, **kwargs)
        except httpx.TimeoutException as e:
            raise RemoteError(f"{method} {url} timed out") from e
        except httpx.HTTPError as e:
            raise RemoteError(f"{method} {url} failed: {e}") from e

        if allow_404 and response.status_code == 404:
            return response
        if response.status_code >= 400:
            detail = response.text[:200]
            raise RemoteError(
                f"{method} {url} returned HTTP {response.status_code}: {detail}",
                status_code=response.status_code,
                retryable=_is_retryable_status(response.status_code),
            )
        return response

    def fetch(self, scope: UserScope):
        """GET the scope. Returns ``(snapshot, revision)``."""
        response = self._request("GET", self._records_url(scope))
        try:
            body = response.json()
        except ValueError as e:
            raise RemoteError("Backend returned invalid JSON", retryable=False) from e

        if not isinstance(body, dict) or not isinstance(body.get("records"), list):
            raise RemoteError("Backend response has no records array", retryable=False)

        snapshot: Snapshot = {}
        for item in body["records"]:
            if isinstance(item, dict) and isinstance(item.get("id"), str):
                snapshot[item["id"]] = item
            else:
                logger.warning(f"Ignoring malformed record in {scope}: {item!r:.80}")
        return snapshot, body.get("revision")

    def _forget(self, subscription: HttpSubscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    def _refresh(self, scope: UserScope) -> None:
        for subscription in list(self._subscriptions):
            if subscription.scope == scope:
                subscription.poll()

    def poll_all(self) -> int:
        """Poll every open subscription. Returns how many delivered a snapshot."""
        return sum(1 for subscription in list(self._subscriptions) if subscription.poll())

    # === RemoteChannel ===

    def subscribe(
        self, scope: UserScope, on_snapshot: SnapshotCallback, on_error: ErrorCallback
    ) -> Subscription:
        subscription = HttpSubscription(self, scope, on_snapshot, on_error)
        self._subscriptions.append(subscription)
        subscription.poll()
        return subscription

    def upsert(self, scope: UserScope, record: WireRecord) -> None:
        url = f"{self._records_url(scope)}/{quote(record['id'], safe='')}"
        self._request("PUT", url, json=record)
        self._refresh(scope)

    def delete(self, scope: UserScope, record_id: str) -> None:
        url = f"{self._records_url(scope)}/{quote(record_id, safe='')}"
        self._request("DELETE", url, allow_404=True)
        self._refresh(scope)

    def batch_upsert(self, scope: UserScope, records: List[WireRecord]) -> None:
        payload: Dict[str, Any] = {"records": records}
        self._request("POST", f"{self._records_url(scope)}:batch", json=payload)
        self._refresh(scope)

    def close(self) -> None:
        for subscription in list(self._subscriptions):
            subscription.close()
        self._client.close()
