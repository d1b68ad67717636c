"""Track commands for Peaklog CLI."""

import json
from pathlib import Path
from typing import TYPE_CHECKING

from peaklog.cli.commands.helpers import format_track, print_json, resolve_id, track_json

if TYPE_CHECKING:
    from peaklog import Peaklog


def _load_coordinates(path: str) -> list:
    with open(Path(path).expanduser(), encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("coordinates")
    if not isinstance(data, list):
        raise ValueError(f"{path} must hold a [[lat, lng], ...] list")
    return data


def cmd_track(args, app: "Peaklog"):
    """Handle track subcommands."""
    if args.track_action == "list":
        tracks = app.tracks
        if args.json:
            print_json([track_json(t) for t in tracks])
            return
        if not tracks:
            print("No tracks recorded yet.")
            return
        print(f"Tracks ({len(tracks)}):")
        print("-" * 50)
        for track in tracks:
            print(f"  {format_track(track)}")

    elif args.track_action == "add":
        coordinates = list(args.point or [])
        if args.coords_file:
            coordinates.extend(_load_coordinates(args.coords_file))
        peak_id = resolve_id(app.peak_store.ids(), args.peak, "peak") if args.peak else None
        track = app.add_track(
            name=args.name,
            coordinates=coordinates,
            file_name=args.file_name or "",
            total_distance=args.distance,
            elevation_gain=args.gain,
            track_date=args.date,
            peak_id=peak_id,
        )
        if args.json:
            print_json(track_json(track))
        else:
            print(f"✓ Track added: {track.name} [{track.id}] ({len(track.coordinates)} points)")

    elif args.track_action == "delete":
        track_id = resolve_id(app.track_store.ids(), args.id, "track")
        app.delete_track(track_id)
        print(f"✓ Track deleted: {track_id}")
