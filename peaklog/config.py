"""Configuration loading for Peaklog.

Settings come from, highest priority first:

1. Environment variables (``PEAKLOG_BACKEND_URL``, ``PEAKLOG_AUTH_TOKEN``,
   ``PEAKLOG_USER_ID``, ``PEAKLOG_LOG_LEVEL``, ``PEAKLOG_SYNC_RETRIES``)
2. ``~/.peaklog/credentials.json``
3. ``~/.peaklog/config.json``

``PEAKLOG_DATA_DIR`` relocates the whole home directory (local slots,
logs and the files above).
"""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

CREDENTIALS_FILE = "credentials.json"
CONFIG_FILE = "config.json"


def get_peaklog_home() -> Path:
    """Return the Peaklog home directory (not created)."""
    override = os.environ.get("PEAKLOG_DATA_DIR")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".peaklog"


def validate_backend_url(url: str, *, allow_localhost_http: bool = True) -> Optional[str]:
    """Validate a backend URL before sending a bearer token to it.

    Only ``https`` is accepted, plus plain ``http`` for localhost when
    ``allow_localhost_http`` is set.

    Returns:
        The URL unchanged if valid, or ``None`` if rejected (a warning is logged).
    """
    if not url:
        return None

    parsed = urlparse(url)
    if parsed.scheme not in {"https", "http"}:
        logger.warning("Invalid backend_url scheme; only http/https allowed.")
        return None
    if not parsed.netloc:
        logger.warning("Invalid backend_url; missing host.")
        return None
    if parsed.scheme == "http":
        host = parsed.hostname or ""
        if not allow_localhost_http or host not in {"localhost", "127.0.0.1"}:
            logger.warning("Refusing non-local http backend_url for security.")
            return None
    return url


def _read_json(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        logger.debug(f"Failed to read {path.name}: {e}")
        return {}
    return data if isinstance(data, dict) else {}


@dataclass
class PeaklogConfig:
    """Resolved runtime settings."""

    data_dir: Path
    backend_url: Optional[str] = None
    auth_token: Optional[str] = None
    user_id: Optional[str] = None
    log_level: str = "INFO"
    sync_retries: int = 1  # Attempts per remote operation; 1 means no retry
    auto_sync: bool = True

    @property
    def has_remote(self) -> bool:
        """True when enough is configured to talk to the remote store."""
        return bool(self.backend_url and self.auth_token and self.user_id)


def load_config(data_dir: Optional[Path] = None) -> PeaklogConfig:
    """Resolve configuration from environment and config files.

    Args:
        data_dir: Home directory override (``--data-dir`` on the CLI).
    """
    home = Path(data_dir).expanduser() if data_dir else get_peaklog_home()
    creds = _read_json(home / CREDENTIALS_FILE)
    config = _read_json(home / CONFIG_FILE)

    def pick(env_key: str, *keys: str) -> Optional[str]:
        value = os.environ.get(env_key)
        if value:
            return value
        for source in (creds, config):
            for key in keys:
                if source.get(key):
                    return source[key]
        return None

    backend_url = pick("PEAKLOG_BACKEND_URL", "backend_url")
    if backend_url:
        backend_url = validate_backend_url(backend_url)

    retries_raw = pick("PEAKLOG_SYNC_RETRIES", "sync_retries")
    try:
        sync_retries = max(1, int(retries_raw)) if retries_raw is not None else 1
    except (TypeError, ValueError):
        logger.warning("Ignoring invalid sync_retries value %r", retries_raw)
        sync_retries = 1

    auto_sync = config.get("auto_sync", True)

    return PeaklogConfig(
        data_dir=home,
        backend_url=backend_url.rstrip("/") if backend_url else None,
        # "token" is accepted for credentials files written by older clients
        auth_token=pick("PEAKLOG_AUTH_TOKEN", "auth_token", "token"),
        user_id=pick("PEAKLOG_USER_ID", "user_id"),
        log_level=(pick("PEAKLOG_LOG_LEVEL", "log_level") or "INFO").upper(),
        sync_retries=sync_retries,
        auto_sync=bool(auto_sync),
    )


def save_credentials(
    backend_url: str, auth_token: str, user_id: str, data_dir: Optional[Path] = None
) -> Path:
    """Write credentials.json with owner-only permissions.

    Raises:
        ValueError: If the backend URL is rejected by :func:`validate_backend_url`.
    """
    if not validate_backend_url(backend_url):
        raise ValueError(f"Unsafe or invalid backend URL: {backend_url}")

    home = Path(data_dir).expanduser() if data_dir else get_peaklog_home()
    home.mkdir(parents=True, exist_ok=True)
    path = home / CREDENTIALS_FILE
    with open(path, "w", encoding="utf-8") as f:
        json.dump(
            {"backend_url": backend_url, "auth_token": auth_token, "user_id": user_id},
            f,
            indent=2,
        )
    path.chmod(0o600)
    return path
