"""Wire codecs for peaks and tracks.

Records are stored locally and remotely as JSON objects using the camelCase
keys of the Peaklog web client, so data written by either side can be read
by the other. ``*_from_dict`` functions validate their input and raise
``ValueError`` with the offending field name.
"""

import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, List, Optional, Type, TypeVar

from peaklog.clock import normalize_stamp
from peaklog.types import Peak, Track

T = TypeVar("T")

PEAK_COLLECTION = "mountains"
TRACK_COLLECTION = "gpxTracks"
PEAK_SLOT = "mountain-tracker-mountains"
TRACK_SLOT = "mountain-tracker-gpx-tracks"


def _require_str(data: Dict[str, Any], key: str, *, allow_empty: bool = False) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        raise ValueError(f"{key} must be a string, got {type(value).__name__}")
    if not allow_empty and not value.strip():
        raise ValueError(f"{key} cannot be empty")
    return value


def _optional_str(data: Dict[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"{key} must be a string or null, got {type(value).__name__}")
    return value


def _number(data: Dict[str, Any], key: str, *, required: bool = True, default: Any = None):
    value = data.get(key, default)
    if value is None:
        if required:
            raise ValueError(f"{key} is required")
        return None
    # bool is an int subclass; a flag is never a valid coordinate or metric
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be a number, got {type(value).__name__}")
    if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
        raise ValueError(f"{key} must be finite")
    return value


def _stamp(data: Dict[str, Any], key: str, fallback: Optional[str] = None) -> str:
    value = data.get(key) or fallback
    if not isinstance(value, str) or not value:
        raise ValueError(f"{key} must be an ISO-8601 timestamp")
    try:
        return normalize_stamp(value)
    except ValueError as e:
        raise ValueError(f"{key} is not a valid timestamp: {value!r}") from e


# === Peaks ===


def peak_to_dict(peak: Peak) -> Dict[str, Any]:
    return {
        "id": peak.id,
        "name": peak.name,
        "elevation": peak.elevation,
        "lat": peak.lat,
        "lng": peak.lng,
        "category": peak.category,
        "isClimbed": peak.is_climbed,
        "climbDate": peak.climb_date,
        "notes": peak.notes,
        "gpxTrackIds": list(peak.gpx_track_ids),
        "createdAt": peak.created_at,
        "updatedAt": peak.updated_at,
    }


def peak_from_dict(data: Dict[str, Any]) -> Peak:
    """Build a Peak from its wire form.

    Raises:
        ValueError: If a required field is missing or has the wrong type.
    """
    if not isinstance(data, dict):
        raise ValueError(f"peak must be an object, got {type(data).__name__}")

    lat = _number(data, "lat")
    lng = _number(data, "lng")
    if not -90 <= lat <= 90:
        raise ValueError(f"lat out of range: {lat}")
    if not -180 <= lng <= 180:
        raise ValueError(f"lng out of range: {lng}")

    track_ids = data.get("gpxTrackIds") or []
    if not isinstance(track_ids, list) or not all(isinstance(t, str) for t in track_ids):
        raise ValueError("gpxTrackIds must be a list of strings")

    updated_at = _stamp(data, "updatedAt", fallback=data.get("createdAt"))
    return Peak(
        id=_require_str(data, "id"),
        name=_require_str(data, "name"),
        lat=lat,
        lng=lng,
        elevation=_number(data, "elevation", required=False, default=0),
        category=_require_str(data, "category") if "category" in data else "その他",
        is_climbed=bool(data.get("isClimbed", False)),
        climb_date=_optional_str(data, "climbDate"),
        notes=data.get("notes") or "",
        gpx_track_ids=list(track_ids),
        created_at=_stamp(data, "createdAt", fallback=updated_at),
        updated_at=updated_at,
    )


# === Tracks ===


def track_to_dict(track: Track) -> Dict[str, Any]:
    return {
        "id": track.id,
        "name": track.name,
        "fileName": track.file_name,
        "coordinates": [list(c) for c in track.coordinates],
        "totalDistance": track.total_distance,
        "elevationGain": track.elevation_gain,
        "trackDate": track.track_date,
        "color": track.color,
        "rawGpx": track.raw_gpx,
        "mountainId": track.peak_id,
        "createdAt": track.created_at,
        "updatedAt": track.updated_at,
    }


def track_from_dict(data: Dict[str, Any]) -> Track:
    """Build a Track from its wire form.

    Raises:
        ValueError: If a required field is missing or has the wrong type.
    """
    if not isinstance(data, dict):
        raise ValueError(f"track must be an object, got {type(data).__name__}")

    coordinates = data.get("coordinates") or []
    if not isinstance(coordinates, list):
        raise ValueError("coordinates must be a list of [lat, lng] pairs")
    for point in coordinates:
        if (
            not isinstance(point, (list, tuple))
            or len(point) != 2
            or not all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in point)
        ):
            raise ValueError(f"invalid coordinate: {point!r}")

    created_at = _stamp(data, "createdAt", fallback=data.get("updatedAt"))
    return Track(
        id=_require_str(data, "id"),
        name=_require_str(data, "name", allow_empty=True),
        file_name=data.get("fileName") or "",
        coordinates=[list(p) for p in coordinates],
        total_distance=_number(data, "totalDistance", required=False),
        elevation_gain=_number(data, "elevationGain", required=False),
        track_date=_optional_str(data, "trackDate"),
        color=data.get("color") or "#e74c3c",
        raw_gpx=data.get("rawGpx") or "",
        peak_id=_optional_str(data, "mountainId"),
        created_at=created_at,
        updated_at=_stamp(data, "updatedAt", fallback=created_at),
    )


# === Record kinds ===


@dataclass(frozen=True)
class RecordKind(Generic[T]):
    """Everything the generic sync engine needs to know about one record kind."""

    name: str  # Human-facing name ("peak", "track")
    record_type: Type[T]
    collection: str  # Remote collection name
    slot: str  # Local persistence slot name
    to_dict: Callable[[T], Dict[str, Any]]
    from_dict: Callable[[Dict[str, Any]], T]

    def decode_many(self, items: List[Dict[str, Any]]) -> List[T]:
        return [self.from_dict(item) for item in items]

    def encode_many(self, records: List[T]) -> List[Dict[str, Any]]:
        return [self.to_dict(record) for record in records]


PEAKS: RecordKind[Peak] = RecordKind(
    name="peak",
    record_type=Peak,
    collection=PEAK_COLLECTION,
    slot=PEAK_SLOT,
    to_dict=peak_to_dict,
    from_dict=peak_from_dict,
)

TRACKS: RecordKind[Track] = RecordKind(
    name="track",
    record_type=Track,
    collection=TRACK_COLLECTION,
    slot=TRACK_SLOT,
    to_dict=track_to_dict,
    from_dict=track_from_dict,
)
