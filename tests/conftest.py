"""
Pytest fixtures and test configuration for Peaklog tests.
"""

import logging

import pytest

from peaklog import Peaklog
from peaklog.serializers import PEAKS, TRACKS
from peaklog.storage import JsonSlot, LocalStore
from peaklog.sync import InMemoryDocumentStore, InMemoryRemoteChannel
from peaklog.types import Peak, Track

ENV_KEYS = (
    "PEAKLOG_BACKEND_URL",
    "PEAKLOG_AUTH_TOKEN",
    "PEAKLOG_USER_ID",
    "PEAKLOG_LOG_LEVEL",
    "PEAKLOG_SYNC_RETRIES",
)


@pytest.fixture(autouse=True)
def peaklog_home(tmp_path, monkeypatch):
    """Point the Peaklog home at a temp dir and clear remote settings."""
    home = tmp_path / "peaklog-home"
    monkeypatch.setenv("PEAKLOG_DATA_DIR", str(home))
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    return home


@pytest.fixture(autouse=True)
def clean_peaklog_logger():
    """Remove handlers added by setup_peaklog_logging between tests."""
    logger = logging.getLogger("peaklog")
    saved_level = logger.level
    yield
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)
    logger.setLevel(saved_level)


@pytest.fixture
def make_peak():
    """Factory for peaks with fixed, canonical stamps."""

    def _make(
        id="p1",
        name="富士山",
        lat=35.3606,
        lng=138.7274,
        stamp="2024-01-01T00:00:00.000Z",
        **kwargs,
    ) -> Peak:
        kwargs.setdefault("elevation", 3776)
        kwargs.setdefault("category", "百名山")
        return Peak(
            id=id,
            name=name,
            lat=lat,
            lng=lng,
            created_at=kwargs.pop("created_at", stamp),
            updated_at=stamp,
            **kwargs,
        )

    return _make


@pytest.fixture
def make_track():
    def _make(id="t1", name="Yoshida trail", stamp="2024-01-01T00:00:00.000Z", **kwargs) -> Track:
        kwargs.setdefault("coordinates", [[35.39, 138.73], [35.36, 138.73]])
        return Track(id=id, name=name, created_at=stamp, updated_at=stamp, **kwargs)

    return _make


@pytest.fixture
def peak_store(tmp_path):
    return LocalStore(PEAKS, JsonSlot(tmp_path / "slots", PEAKS.slot))


@pytest.fixture
def track_store(tmp_path):
    return LocalStore(TRACKS, JsonSlot(tmp_path / "slots", TRACKS.slot))


@pytest.fixture
def remote_store():
    """Shared in-memory remote store; attach one channel per device."""
    return InMemoryDocumentStore()


@pytest.fixture
def channel(remote_store):
    return InMemoryRemoteChannel(remote_store)


@pytest.fixture
def app(tmp_path, channel):
    """A Peaklog wired to the in-memory remote, not yet signed in."""
    inst = Peaklog(tmp_path / "device-a", channel)
    yield inst
    inst.close()


@pytest.fixture
def local_app(tmp_path):
    """A Peaklog without any remote store."""
    inst = Peaklog(tmp_path / "local")
    yield inst
    inst.close()
