"""
Peaklog Core - offline-first peak and GPX track log.

This module provides the main Peaklog class, the primary interface for
reading and changing peaks and tracks. Every change lands in the local
store first; when a user is signed in and a remote store is configured,
the per-kind sync orchestrators carry it to the remote collection.
"""

import dataclasses
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from peaklog.clock import next_stamp, utc_stamp
from peaklog.config import PeaklogConfig, get_peaklog_home
from peaklog.exchange import (
    ImportBundle,
    build_export,
    default_export_name,
    parse_import,
    read_import,
    write_export,
)
from peaklog.logging_config import log_reconcile, log_remote_op
from peaklog.presets import build_preset_peaks
from peaklog.serializers import PEAKS, TRACKS
from peaklog.storage import JsonSlot, LocalStore
from peaklog.sync.http_channel import HttpRemoteChannel
from peaklog.sync.orchestrator import SyncOrchestrator
from peaklog.sync.remote import RemoteChannel
from peaklog.sync.retry import NO_RETRY, RetryPolicy
from peaklog.sync.status import combine_status
from peaklog.types import (
    TRACK_COLORS,
    ClimbedFilter,
    Peak,
    PeakCategory,
    SyncStatus,
    Track,
)
from peaklog.validation import (
    MAX_NAME_LENGTH,
    MAX_NOTES_LENGTH,
    sanitize_number,
    sanitize_string,
    validate_category,
    validate_coordinates,
    validate_date,
)

logger = logging.getLogger(__name__)

# Fields update_peak() accepts
EDITABLE_PEAK_FIELDS = frozenset(
    {"name", "elevation", "lat", "lng", "category", "is_climbed", "climb_date", "notes"}
)


@dataclass
class ImportSummary:
    """What an import added and skipped."""

    peaks_added: int = 0
    tracks_added: int = 0
    peaks_skipped: int = 0
    tracks_skipped: int = 0


def _today() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d")


class Peaklog:
    """Peak and track log with optional remote sync.

    Args:
        data_dir: Home directory holding the local slots. Defaults to
            :func:`~peaklog.config.get_peaklog_home`.
        channel: Remote channel shared by both collections; ``None`` keeps
            everything local.
        retry: Retry policy applied to every remote operation.
        record_events: Append sync events to the sync events log.
    """

    def __init__(
        self,
        data_dir: Optional[Path] = None,
        channel: Optional[RemoteChannel] = None,
        *,
        retry: RetryPolicy = NO_RETRY,
        record_events: bool = True,
    ):
        self.data_dir = Path(data_dir) if data_dir else get_peaklog_home()
        self.channel = channel

        self.peak_store: LocalStore[Peak] = LocalStore(PEAKS, JsonSlot(self.data_dir, PEAKS.slot))
        self.track_store: LocalStore[Track] = LocalStore(
            TRACKS, JsonSlot(self.data_dir, TRACKS.slot)
        )

        hook = self._on_sync_event if record_events else None
        self.peaks_sync = SyncOrchestrator(
            PEAKS, self.peak_store, channel, retry=retry, event_hook=hook
        )
        self.tracks_sync = SyncOrchestrator(
            TRACKS, self.track_store, channel, retry=retry, event_hook=hook
        )

    @classmethod
    def from_config(cls, config: PeaklogConfig, *, sync: bool = True) -> "Peaklog":
        """Build a Peaklog from resolved configuration.

        With ``sync`` and a complete remote configuration, an HTTP channel is
        attached and, when ``auto_sync`` is on, the configured user is signed
        in straight away.
        """
        channel = None
        if sync and config.has_remote:
            channel = HttpRemoteChannel(config.backend_url, config.auth_token)
        app = cls(
            config.data_dir,
            channel,
            retry=RetryPolicy(max_attempts=config.sync_retries),
        )
        if channel is not None and config.auto_sync:
            app.sign_in(config.user_id)
        return app

    # === Identity and status ===

    def sign_in(self, user_id: str) -> None:
        user_id = sanitize_string(user_id, "user_id", max_length=200)
        logger.info(f"Signing in as {user_id}")
        self.peaks_sync.on_identity_changed(user_id)
        self.tracks_sync.on_identity_changed(user_id)

    def sign_out(self) -> None:
        logger.info("Signing out; continuing local-only")
        self.peaks_sync.on_identity_changed(None)
        self.tracks_sync.on_identity_changed(None)

    @property
    def user_id(self) -> Optional[str]:
        return self.peaks_sync.user_id

    @property
    def sync_status(self) -> SyncStatus:
        """Worst status across both collections."""
        return combine_status(self.peaks_sync.status, self.tracks_sync.status)

    def status_summary(self) -> Dict[str, Any]:
        collections = {}
        for orchestrator, store in (
            (self.peaks_sync, self.peak_store),
            (self.tracks_sync, self.track_store),
        ):
            error = orchestrator.last_error
            collections[orchestrator.kind.collection] = {
                "records": len(store),
                "state": orchestrator.state.value,
                "status": orchestrator.status.value,
                "pending_echoes": orchestrator.echo.pending,
                "last_error": str(error) if error else None,
            }
        return {
            "user_id": self.user_id,
            "remote": self.channel is not None,
            "status": self.sync_status.value,
            "collections": collections,
        }

    def sync_now(self) -> Dict[str, int]:
        """Poll the remote store and re-upload anything it is missing."""
        self.poll()
        return {
            PEAKS.collection: self.peaks_sync.push_local_only(),
            TRACKS.collection: self.tracks_sync.push_local_only(),
        }

    def poll(self) -> int:
        """Ask a polling channel for fresh snapshots. Returns snapshots delivered."""
        if isinstance(self.channel, HttpRemoteChannel):
            return self.channel.poll_all()
        return 0

    def close(self) -> None:
        self.peaks_sync.stop()
        self.tracks_sync.stop()
        if self.channel is not None:
            self.channel.close()

    def _on_sync_event(self, event_type: str, details: Dict[str, Any]) -> None:
        if event_type == "reconcile":
            log_reconcile(
                details["user_id"],
                details["collection"],
                details["merged"],
                details["removed"],
                details["uploaded"],
            )
        else:
            log_remote_op(
                details["user_id"],
                details["collection"],
                event_type,
                details["count"],
                ok=details["ok"],
            )

    # === Peaks ===

    @property
    def peaks(self) -> List[Peak]:
        return self.peak_store.all()

    def get_peak(self, peak_id: str) -> Peak:
        return self.peak_store.require(peak_id)

    def _validated_peak(self, peak: Peak) -> Peak:
        peak.name = sanitize_string(peak.name, "name", MAX_NAME_LENGTH)
        peak.lat = sanitize_number(peak.lat, "lat", -90, 90)
        peak.lng = sanitize_number(peak.lng, "lng", -180, 180)
        peak.elevation = sanitize_number(peak.elevation, "elevation", -500, 9000)
        peak.category = validate_category(peak.category)
        peak.notes = sanitize_string(peak.notes, "notes", MAX_NOTES_LENGTH, required=False)
        peak.climb_date = validate_date(peak.climb_date, "climb_date") if peak.is_climbed else None
        return peak

    def add_peak(
        self,
        name: str,
        lat: float,
        lng: float,
        elevation: float = 0,
        category: str = PeakCategory.OTHER.value,
        is_climbed: bool = False,
        climb_date: Optional[str] = None,
        notes: str = "",
    ) -> Peak:
        """Create a peak.

        ``climb_date`` is only kept for climbed peaks.

        Raises:
            ValueError: If a field is invalid.
        """
        now = utc_stamp()
        peak = self._validated_peak(
            Peak(
                id=str(uuid.uuid4()),
                name=name,
                lat=lat,
                lng=lng,
                elevation=elevation,
                category=category,
                is_climbed=is_climbed,
                climb_date=climb_date,
                notes=notes,
                created_at=now,
                updated_at=now,
            )
        )
        self.peaks_sync.put(peak)
        logger.info(f"Added peak {peak.name} ({peak.id})")
        return peak

    def update_peak(self, peak_id: str, **changes: Any) -> Peak:
        """Change a peak's editable fields.

        Raises:
            RecordNotFound: If no peak has this id.
            ValueError: If a field is unknown or invalid.
        """
        unknown = set(changes) - EDITABLE_PEAK_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")
        existing = self.peak_store.require(peak_id)
        updated = self._validated_peak(
            dataclasses.replace(
                existing,
                **changes,
                gpx_track_ids=list(existing.gpx_track_ids),
                updated_at=next_stamp(existing.updated_at),
            )
        )
        return self.peaks_sync.put(updated)

    def delete_peak(self, peak_id: str) -> bool:
        removed = self.peaks_sync.remove(peak_id)
        if removed:
            logger.info(f"Deleted peak {peak_id}")
        return removed

    def toggle_climbed(self, peak_id: str) -> Peak:
        """Flip a peak's climbed flag; climbing it records today's date."""
        existing = self.peak_store.require(peak_id)
        climbed = not existing.is_climbed
        updated = dataclasses.replace(
            existing,
            is_climbed=climbed,
            climb_date=_today() if climbed else None,
            gpx_track_ids=list(existing.gpx_track_ids),
            updated_at=next_stamp(existing.updated_at),
        )
        return self.peaks_sync.put(updated)

    def link_track(self, peak_id: str, track_id: str) -> Peak:
        """Attach a track to a peak. Linking twice is a no-op."""
        existing = self.peak_store.require(peak_id)
        self.track_store.require(track_id)
        if track_id in existing.gpx_track_ids:
            return existing
        updated = dataclasses.replace(
            existing,
            gpx_track_ids=[*existing.gpx_track_ids, track_id],
            updated_at=next_stamp(existing.updated_at),
        )
        return self.peaks_sync.put(updated)

    def find_peaks(
        self,
        search_text: str = "",
        categories: Optional[Iterable[str]] = None,
        climbed_status: Union[ClimbedFilter, str] = ClimbedFilter.ALL,
    ) -> List[Peak]:
        """Filter peaks by name substring, category and climbed status."""
        climbed_status = ClimbedFilter(climbed_status)
        wanted = set(categories or [])
        needle = search_text.casefold()
        results = []
        for peak in self.peak_store:
            if needle and needle not in peak.name.casefold():
                continue
            if wanted and peak.category not in wanted:
                continue
            if climbed_status == ClimbedFilter.CLIMBED and not peak.is_climbed:
                continue
            if climbed_status == ClimbedFilter.UNCLIMBED and peak.is_climbed:
                continue
            results.append(peak)
        return results

    def load_presets(self) -> int:
        """Add catalogue peaks this device does not have yet, as one batch.

        Returns:
            Number of peaks added.
        """
        existing_keys = {peak.dedup_key() for peak in self.peak_store}
        added = self.peaks_sync.fold_in(build_preset_peaks(existing_keys))
        logger.info(f"Loaded {len(added)} preset peaks")
        return len(added)

    # === Tracks ===

    @property
    def tracks(self) -> List[Track]:
        return self.track_store.all()

    def get_track(self, track_id: str) -> Track:
        return self.track_store.require(track_id)

    def add_track(
        self,
        name: str,
        coordinates: List[List[float]],
        file_name: str = "",
        total_distance: Optional[float] = None,
        elevation_gain: Optional[float] = None,
        track_date: Optional[str] = None,
        raw_gpx: str = "",
        peak_id: Optional[str] = None,
    ) -> Track:
        """Store an already-parsed GPX track, optionally linked to a peak.

        Raises:
            RecordNotFound: If ``peak_id`` is given but unknown.
            ValueError: If a field is invalid.
        """
        if peak_id is not None:
            self.peak_store.require(peak_id)
        now = utc_stamp()
        track = Track(
            id=str(uuid.uuid4()),
            name=sanitize_string(name, "name", MAX_NAME_LENGTH, required=False),
            file_name=sanitize_string(file_name, "file_name", 500, required=False),
            coordinates=validate_coordinates(coordinates),
            total_distance=(
                sanitize_number(total_distance, "total_distance", 0)
                if total_distance is not None
                else None
            ),
            elevation_gain=(
                sanitize_number(elevation_gain, "elevation_gain", 0)
                if elevation_gain is not None
                else None
            ),
            track_date=track_date,
            color=TRACK_COLORS[len(self.track_store) % len(TRACK_COLORS)],
            raw_gpx=raw_gpx,
            peak_id=peak_id,
            created_at=now,
            updated_at=now,
        )
        self.tracks_sync.put(track)
        logger.info(f"Added track {track.name or track.file_name} ({track.id})")
        if peak_id is not None:
            self.link_track(peak_id, track.id)
        return track

    def delete_track(self, track_id: str) -> bool:
        removed = self.tracks_sync.remove(track_id)
        if removed:
            logger.info(f"Deleted track {track_id}")
        return removed

    # === Export / import ===

    def export_data(self) -> Dict[str, Any]:
        return build_export(self.peak_store.all(), self.track_store.all())

    def export_to(self, path: Optional[Union[str, Path]] = None) -> Path:
        """Write a backup file; defaults to a dated name in the working directory."""
        return write_export(self.export_data(), path or Path.cwd() / default_export_name())

    def import_data(self, data: Union[Dict[str, Any], ImportBundle]) -> ImportSummary:
        """Fold a backup into the local collections.

        The whole backup is validated first; a malformed one changes
        nothing. Records whose id already exists locally are skipped.

        Raises:
            MalformedImport: If the backup is invalid.
        """
        bundle = data if isinstance(data, ImportBundle) else parse_import(data)
        peaks_added = self.peaks_sync.fold_in(bundle.peaks)
        tracks_added = self.tracks_sync.fold_in(bundle.tracks)
        summary = ImportSummary(
            peaks_added=len(peaks_added),
            tracks_added=len(tracks_added),
            peaks_skipped=len(bundle.peaks) - len(peaks_added),
            tracks_skipped=len(bundle.tracks) - len(tracks_added),
        )
        logger.info(
            f"Imported {summary.peaks_added} peaks and {summary.tracks_added} tracks "
            f"({summary.peaks_skipped + summary.tracks_skipped} already present)"
        )
        return summary

    def import_from(self, path: Union[str, Path]) -> ImportSummary:
        return self.import_data(read_import(path))
