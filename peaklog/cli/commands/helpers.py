"""Shared helper functions for CLI commands."""

import argparse
import json
from typing import Any, Iterable, List

from peaklog.errors import RecordNotFound
from peaklog.serializers import peak_to_dict, track_to_dict
from peaklog.types import Peak, Track


def print_json(data: Any) -> None:
    """Print data as formatted JSON."""
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def parse_point(value: str) -> List[float]:
    """argparse type for ``LAT,LNG``."""
    try:
        lat, lng = (float(part) for part in value.split(","))
    except ValueError:
        raise argparse.ArgumentTypeError(f"Point must be LAT,LNG, got '{value}'")
    return [lat, lng]


def short_id(record_id: str) -> str:
    return record_id[:8]


def format_peak(peak: Peak) -> str:
    mark = "✓" if peak.is_climbed else "·"
    line = f"{mark} {peak.name} ({peak.elevation:g} m, {peak.category}) [{short_id(peak.id)}]"
    if peak.climb_date:
        line += f" climbed {peak.climb_date}"
    return line


def format_track(track: Track) -> str:
    parts = [track.name or track.file_name or "(unnamed)"]
    if track.total_distance is not None:
        parts.append(f"{track.total_distance / 1000:.1f} km")
    if track.elevation_gain is not None:
        parts.append(f"+{track.elevation_gain:g} m")
    if track.track_date:
        parts.append(track.track_date)
    return f"{' · '.join(parts)} [{short_id(track.id)}]"


def peak_json(peak: Peak) -> dict:
    return peak_to_dict(peak)


def track_json(track: Track, include_gpx: bool = False) -> dict:
    data = track_to_dict(track)
    if not include_gpx:
        data.pop("rawGpx", None)
    return data


def resolve_id(ids: Iterable[str], prefix: str, kind: str) -> str:
    """Expand an id prefix (as printed by ``list``) to the full id.

    Raises:
        RecordNotFound: If no id starts with ``prefix``.
        ValueError: If several ids do.
    """
    ids = list(ids)
    if prefix in ids:
        return prefix
    matches = [record_id for record_id in ids if record_id.startswith(prefix)]
    if not matches:
        raise RecordNotFound(kind, prefix)
    if len(matches) > 1:
        raise ValueError(f"Ambiguous {kind} id '{prefix}' matches {len(matches)} records")
    return matches[0]
