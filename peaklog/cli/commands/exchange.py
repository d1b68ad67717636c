"""Backup export/import and preset commands for Peaklog CLI."""

from typing import TYPE_CHECKING

from peaklog.cli.commands.helpers import print_json

if TYPE_CHECKING:
    from peaklog import Peaklog


def cmd_export(args, app: "Peaklog"):
    """Write a backup of all peaks and tracks."""
    path = app.export_to(args.path)
    print(f"✓ Exported {len(app.peaks)} peaks and {len(app.tracks)} tracks to {path}")


def cmd_import(args, app: "Peaklog"):
    """Fold a backup into the local collections."""
    summary = app.import_from(args.path)
    if args.json:
        print_json(summary.__dict__)
        return
    print(f"✓ Imported {summary.peaks_added} peaks and {summary.tracks_added} tracks")
    skipped = summary.peaks_skipped + summary.tracks_skipped
    if skipped:
        print(f"  {skipped} records already present were skipped")


def cmd_preset(args, app: "Peaklog"):
    """Handle preset subcommands."""
    if args.preset_action == "load":
        count = app.load_presets()
        if count:
            print(f"✓ Loaded {count} preset peaks")
        else:
            print("All preset peaks are already present.")
