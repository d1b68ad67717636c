"""Logging setup for Peaklog.

Two outputs live under ``<home>/logs``:

- ``local-YYYY-MM-DD.log``: the regular ``peaklog`` logger output.
- ``sync-events-YYYY-MM-DD.log``: one line per sync event (reconciles,
  remote writes, failures) for after-the-fact diagnosis of sync problems.
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from peaklog.config import get_peaklog_home

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def _log_dir() -> Path:
    log_dir = get_peaklog_home() / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir


def _today() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d")


def setup_peaklog_logging(user_id: str = "default", level: str = "INFO") -> logging.Logger:
    """Configure the ``peaklog`` logger with a dated file handler.

    Safe to call repeatedly: handlers are only added once. At DEBUG level a
    console handler is added as well.

    Args:
        user_id: Recorded in the first log line for context.
        level: Logging level name; unknown names fall back to INFO.
    """
    logger = logging.getLogger("peaklog")
    numeric_level = getattr(logging, str(level).upper(), None)
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO
    logger.setLevel(numeric_level)

    if any(isinstance(h, logging.FileHandler) for h in logger.handlers):
        return logger

    formatter = logging.Formatter(LOG_FORMAT)
    file_handler = logging.FileHandler(_log_dir() / f"local-{_today()}.log", encoding="utf-8")
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    if numeric_level <= logging.DEBUG:
        console = logging.StreamHandler()
        console.setFormatter(formatter)
        logger.addHandler(console)

    logger.debug("Logging initialised for user=%s", user_id)
    return logger


def log_sync_event(event_type: str, details: str, user_id: Optional[str] = None) -> None:
    """Append one line to the sync events log."""
    timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
    line = f"{timestamp} | {event_type} | user={user_id or 'local'} | {details}\n"
    path = _log_dir() / f"sync-events-{_today()}.log"
    with open(path, "a", encoding="utf-8") as f:
        f.write(line)


def log_reconcile(
    user_id: Optional[str], collection: str, merged: int, removed: int, uploaded: int
) -> None:
    """Record the outcome of an initial reconciliation."""
    log_sync_event(
        "reconcile",
        f"collection={collection}, merged={merged}, removed={removed}, uploaded={uploaded}",
        user_id=user_id,
    )


def log_remote_op(
    user_id: Optional[str], collection: str, operation: str, count: int, ok: bool = True
) -> None:
    """Record one remote write, delete or batch."""
    log_sync_event(
        operation,
        f"collection={collection}, count={count}, ok={ok}",
        user_id=user_id,
    )
