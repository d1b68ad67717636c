"""Peak commands for Peaklog CLI."""

from typing import TYPE_CHECKING

from peaklog.cli.commands.helpers import format_peak, peak_json, print_json, resolve_id

if TYPE_CHECKING:
    from peaklog import Peaklog


def cmd_peak(args, app: "Peaklog"):
    """Handle peak subcommands."""
    if args.peak_action == "list":
        peaks = app.find_peaks(
            search_text=args.search or "",
            categories=args.category,
            climbed_status=args.status,
        )
        if args.json:
            print_json([peak_json(p) for p in peaks])
            return
        if not peaks:
            print("No peaks found.")
            print("\nAdd one with: peaklog peak add <name> --lat <lat> --lng <lng>")
            print("Or load the bundled catalogue with: peaklog preset load")
            return
        climbed = sum(1 for p in peaks if p.is_climbed)
        print(f"Peaks ({climbed}/{len(peaks)} climbed):")
        print("-" * 50)
        for peak in sorted(peaks, key=lambda p: -p.elevation):
            print(f"  {format_peak(peak)}")

    elif args.peak_action == "add":
        peak = app.add_peak(
            name=args.name,
            lat=args.lat,
            lng=args.lng,
            elevation=args.elevation,
            category=args.category,
            is_climbed=args.climbed,
            climb_date=args.climb_date,
            notes=args.notes or "",
        )
        if args.json:
            print_json(peak_json(peak))
        else:
            print(f"✓ Peak added: {peak.name} [{peak.id}]")

    elif args.peak_action == "show":
        peak = app.get_peak(resolve_id(app.peak_store.ids(), args.id, "peak"))
        if args.json:
            print_json(peak_json(peak))
            return
        print(format_peak(peak))
        print(f"  id:       {peak.id}")
        print(f"  location: {peak.lat}, {peak.lng}")
        if peak.notes:
            print(f"  notes:    {peak.notes}")
        for track_id in peak.gpx_track_ids:
            track = app.track_store.get(track_id)
            label = track.name if track else "(missing)"
            print(f"  track:    {label} [{track_id[:8]}]")
        print(f"  updated:  {peak.updated_at}")

    elif args.peak_action == "update":
        changes = {
            field: getattr(args, field)
            for field in ("name", "lat", "lng", "elevation", "category", "notes", "climb_date")
            if getattr(args, field) is not None
        }
        if args.climbed is not None:
            changes["is_climbed"] = args.climbed
        if not changes:
            print("✗ Nothing to update; pass at least one field option")
            return
        peak_id = resolve_id(app.peak_store.ids(), args.id, "peak")
        peak = app.update_peak(peak_id, **changes)
        print(f"✓ Peak updated: {peak.name}")

    elif args.peak_action == "delete":
        peak_id = resolve_id(app.peak_store.ids(), args.id, "peak")
        app.delete_peak(peak_id)
        print(f"✓ Peak deleted: {peak_id}")

    elif args.peak_action == "climb":
        peak = app.toggle_climbed(resolve_id(app.peak_store.ids(), args.id, "peak"))
        if peak.is_climbed:
            print(f"✓ {peak.name} climbed on {peak.climb_date}")
        else:
            print(f"✓ {peak.name} marked as not climbed")

    elif args.peak_action == "link":
        peak_id = resolve_id(app.peak_store.ids(), args.peak_id, "peak")
        track_id = resolve_id(app.track_store.ids(), args.track_id, "track")
        peak = app.link_track(peak_id, track_id)
        print(f"✓ Track {track_id[:8]} linked to {peak.name}")
