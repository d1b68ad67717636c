"""Bundled catalogue of well-known peaks."""

import json
import logging
import uuid
from importlib import resources
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from peaklog.clock import utc_stamp
from peaklog.serializers import peak_from_dict
from peaklog.types import Peak

logger = logging.getLogger(__name__)

PRESET_RESOURCE = "presets.json"


def load_catalogue() -> List[Dict[str, Any]]:
    """Read the bundled catalogue as wire dicts without ids or stamps."""
    text = resources.files("peaklog.data").joinpath(PRESET_RESOURCE).read_text(encoding="utf-8")
    return json.loads(text)


def build_preset_peaks(
    existing_keys: Iterable[Tuple[Any, ...]] = (),
    catalogue: Optional[List[Dict[str, Any]]] = None,
) -> List[Peak]:
    """Materialise catalogue entries as new peaks.

    Entries whose dedup key is already in ``existing_keys`` are skipped, so
    loading presets twice on one device adds nothing. Each new peak gets a
    fresh id and the same creation stamp.
    """
    skip: Set[Tuple[Any, ...]] = set(existing_keys)
    now = utc_stamp()
    peaks: List[Peak] = []
    for entry in catalogue if catalogue is not None else load_catalogue():
        peak = peak_from_dict(
            {
                "isClimbed": False,
                "climbDate": None,
                "notes": "",
                "gpxTrackIds": [],
                **entry,
                "id": str(uuid.uuid4()),
                "createdAt": now,
                "updatedAt": now,
            }
        )
        key = peak.dedup_key()
        if key in skip:
            continue
        skip.add(key)
        peaks.append(peak)
    logger.debug(f"Built {len(peaks)} preset peaks")
    return peaks
