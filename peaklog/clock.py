"""Logical clock helpers.

Every syncable record carries a ``last_modified`` stamp. Stamps are UTC,
zero padded and fixed width (``2024-01-02T03:04:05.678Z``), so comparing
two stamps as plain strings gives the same answer as comparing the instants
they encode. All conflict resolution in Peaklog reduces to :func:`newer`.
"""

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

logger = logging.getLogger(__name__)

STAMP_FORMAT = "%Y-%m-%dT%H:%M:%S"

# Milliseconds are mandatory: "...:05Z" sorts after "...:05.500Z"
_CANONICAL_STAMP = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$")


def format_stamp(dt: datetime) -> str:
    """Format an aware or naive-UTC datetime as a canonical stamp."""
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)
    return f"{dt.strftime(STAMP_FORMAT)}.{dt.microsecond // 1000:03d}Z"


def utc_stamp() -> str:
    """Current time as a canonical stamp."""
    return format_stamp(datetime.now(timezone.utc))


def parse_stamp(stamp: str) -> datetime:
    """Parse a stamp (or any ISO-8601 string with an offset) into an aware datetime.

    Raises:
        ValueError: If the string is not an ISO-8601 timestamp.
    """
    if not isinstance(stamp, str) or not stamp:
        raise ValueError(f"Invalid timestamp: {stamp!r}")
    dt = datetime.fromisoformat(stamp.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def is_canonical_stamp(stamp: Any) -> bool:
    """Return True if ``stamp`` is already in the canonical, lexically sortable form."""
    return isinstance(stamp, str) and bool(_CANONICAL_STAMP.match(stamp))


def normalize_stamp(stamp: str) -> str:
    """Convert an ISO-8601 timestamp into the canonical UTC form.

    Every stamp is re-emitted through :func:`format_stamp`, so records read
    from disk or the wire all share one width. Canonical stamps come back
    unchanged.
    """
    normalized = format_stamp(parse_stamp(stamp))
    if normalized != stamp:
        logger.debug("Normalized timestamp %r -> %r", stamp, normalized)
    return normalized


def next_stamp(previous: Optional[str] = None) -> str:
    """Return a stamp strictly greater than ``previous``.

    Uses the wall clock when it is ahead of ``previous``. When the local clock
    lags (skew between devices, or two edits within one millisecond) the new
    stamp is ``previous`` plus one millisecond, which keeps every mutation
    advancing the record's clock.
    """
    now = datetime.now(timezone.utc)
    candidate = format_stamp(now)
    if previous is None:
        return candidate
    previous = normalize_stamp(previous)
    if candidate > previous:
        return candidate

    bumped = format_stamp(parse_stamp(previous) + timedelta(milliseconds=1))
    logger.debug("Local clock behind %s, advancing to %s", previous, bumped)
    return bumped


def newer(a: Any, b: Any) -> bool:
    """True iff record ``a`` was modified strictly after record ``b``.

    Equal stamps are not newer, so ties keep whichever record the caller
    already holds.
    """
    return a.last_modified > b.last_modified
