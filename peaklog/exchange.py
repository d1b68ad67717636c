"""Backup export and import.

A backup is one JSON document::

    {"mountains": [...peaks...], "gpxTracks": [...tracks...], "version": 1}

using the same wire form as the local slots and the remote store, so a
backup written by any Peaklog client can be read by any other.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from peaklog.errors import MalformedImport
from peaklog.serializers import PEAK_COLLECTION, PEAKS, TRACK_COLLECTION, TRACKS
from peaklog.types import Peak, Track

logger = logging.getLogger(__name__)

EXPORT_VERSION = 1


@dataclass
class ImportBundle:
    """Validated contents of a backup."""

    peaks: List[Peak] = field(default_factory=list)
    tracks: List[Track] = field(default_factory=list)
    version: int = EXPORT_VERSION


def default_export_name(today: Optional[datetime] = None) -> str:
    today = today or datetime.now(timezone.utc)
    return f"peaklog-backup-{today.strftime('%Y-%m-%d')}.json"


def build_export(peaks: List[Peak], tracks: List[Track]) -> Dict[str, Any]:
    return {
        PEAK_COLLECTION: PEAKS.encode_many(peaks),
        TRACK_COLLECTION: TRACKS.encode_many(tracks),
        "version": EXPORT_VERSION,
    }


def write_export(payload: Dict[str, Any], path: Union[str, Path]) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(payload, f, ensure_ascii=False, indent=2)
    logger.info(
        f"Exported {len(payload[PEAK_COLLECTION])} peaks and "
        f"{len(payload[TRACK_COLLECTION])} tracks to {path}"
    )
    return path


def parse_import(data: Any) -> ImportBundle:
    """Validate a decoded backup document.

    Every record is decoded before anything is returned, so a single bad
    record rejects the whole backup.

    Raises:
        MalformedImport: If either array is missing, the version is newer
            than this client understands, or a record is invalid.
    """
    if not isinstance(data, dict):
        raise MalformedImport("backup must be a JSON object", data)
    for key in (PEAK_COLLECTION, TRACK_COLLECTION):
        if not isinstance(data.get(key), list):
            raise MalformedImport(f"'{key}' array is missing", data)

    version = data.get("version", EXPORT_VERSION)
    if isinstance(version, bool) or not isinstance(version, int):
        raise MalformedImport(f"version must be an integer, got {version!r}", data)
    if version > EXPORT_VERSION:
        raise MalformedImport(
            f"backup version {version} is newer than supported version {EXPORT_VERSION}", data
        )

    bundle = ImportBundle(version=version)
    for key, kind, target in (
        (PEAK_COLLECTION, PEAKS, bundle.peaks),
        (TRACK_COLLECTION, TRACKS, bundle.tracks),
    ):
        for index, item in enumerate(data[key]):
            try:
                target.append(kind.from_dict(item))
            except ValueError as e:
                raise MalformedImport(f"{key}[{index}]: {e}", data) from e
    return bundle


def read_import(path: Union[str, Path]) -> ImportBundle:
    """Read and validate a backup file.

    Raises:
        MalformedImport: If the file is not valid JSON or fails validation.
        OSError: If the file cannot be read.
    """
    path = Path(path)
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MalformedImport(f"{path.name} is not valid JSON: {e}") from e
    return parse_import(data)
