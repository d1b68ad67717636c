"""
Shared record types for Peaklog.

Peaks and tracks are the two concrete record kinds. The sync engine never
looks at their payload: it only needs the :class:`SyncableRecord`
capability (a stable ``id`` and a comparable ``last_modified`` stamp), and
optionally :class:`SemanticallyKeyed` for deduplication.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, Protocol, Tuple, runtime_checkable

# === Record capabilities ===


@runtime_checkable
class SyncableRecord(Protocol):
    """Anything with a stable identity and a lexically comparable logical clock."""

    id: str

    @property
    def last_modified(self) -> str: ...


@runtime_checkable
class SemanticallyKeyed(Protocol):
    """Records that know which real-world entity they describe.

    Two records with the same ``dedup_key()`` are the same entity even when
    their ids differ (double imports, concurrent preset loads).
    """

    def dedup_key(self) -> Tuple[Any, ...]: ...


# === Enums ===


class PeakCategory(str, Enum):
    """Peak lists a peak belongs to."""

    HYAKUMEIZAN = "百名山"
    NIHYAKUMEIZAN = "二百名山"
    SANBYAKUMEIZAN = "三百名山"
    OTHER = "その他"


VALID_CATEGORY_VALUES = frozenset(c.value for c in PeakCategory)


class SyncStatus(str, Enum):
    """User-facing sync status of one or more collections."""

    IDLE = "idle"  # No signed-in user, local-only
    SYNCING = "syncing"  # A remote operation is in flight
    SYNCED = "synced"  # Last remote operation succeeded
    ERROR = "error"  # Last remote operation failed


class SyncState(str, Enum):
    """Lifecycle of one collection's sync session."""

    DISCONNECTED = "disconnected"  # No identity or no remote store
    INITIAL_RECONCILING = "initial_reconciling"  # Waiting for the first snapshot
    STEADY = "steady"


class ClimbedFilter(str, Enum):
    ALL = "all"
    CLIMBED = "climbed"
    UNCLIMBED = "unclimbed"


# Colours assigned to tracks in creation order
TRACK_COLORS = [
    "#e74c3c",
    "#3498db",
    "#2ecc71",
    "#f39c12",
    "#9b59b6",
    "#1abc9c",
    "#e67e22",
    "#34495e",
    "#16a085",
    "#c0392b",
]


# === Records ===


@dataclass
class Peak:
    """A mountain peak the user tracks."""

    id: str
    name: str
    lat: float
    lng: float
    elevation: float = 0
    category: str = PeakCategory.OTHER.value
    is_climbed: bool = False
    climb_date: Optional[str] = None  # YYYY-MM-DD
    notes: str = ""
    gpx_track_ids: List[str] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""

    @property
    def last_modified(self) -> str:
        return self.updated_at

    def dedup_key(self) -> Tuple[str, float, float]:
        return (self.name, round(self.lat, 2), round(self.lng, 2))


@dataclass
class Track:
    """A recorded GPX track, already parsed into coordinates and metrics."""

    id: str
    name: str
    file_name: str = ""
    coordinates: List[List[float]] = field(default_factory=list)  # [lat, lng] pairs
    total_distance: Optional[float] = None  # metres
    elevation_gain: Optional[float] = None  # metres
    track_date: Optional[str] = None
    color: str = TRACK_COLORS[0]
    raw_gpx: str = ""
    peak_id: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""

    def __post_init__(self):
        # Tracks written before updated_at existed used created_at as their clock
        if not self.updated_at:
            self.updated_at = self.created_at

    @property
    def last_modified(self) -> str:
        return self.updated_at
