"""
Peaklog CLI - command-line interface for the peak and track log.

Usage:
    peaklog peak add 富士山 --lat 35.3606 --lng 138.7274 --elevation 3776 --category 百名山
    peaklog peak list --status unclimbed
    peaklog peak climb <id>
    peaklog track add "Yoshida trail" --point 35.39,138.73 --point 35.36,138.73 --peak <id>
    peaklog export backup.json
    peaklog import backup.json
    peaklog preset load
    peaklog sync run
    peaklog status
"""

import argparse
import logging
import os
import sys

from peaklog import Peaklog
from peaklog.cli.commands import (
    cmd_export,
    cmd_import,
    cmd_peak,
    cmd_preset,
    cmd_status,
    cmd_sync,
    cmd_track,
)
from peaklog.cli.commands.helpers import parse_point
from peaklog.config import load_config
from peaklog.errors import PeaklogError
from peaklog.logging_config import setup_peaklog_logging
from peaklog.types import ClimbedFilter, PeakCategory

logger = logging.getLogger(__name__)

CATEGORY_CHOICES = [c.value for c in PeakCategory]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="peaklog",
        description="Offline-first peak and GPX track log",
    )
    parser.add_argument("--data-dir", help="Data directory (default: ~/.peaklog)")
    parser.add_argument("--no-sync", dest="no_sync", action="store_true",
                        help="Stay local-only even if a remote store is configured")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # peak
    p_peak = subparsers.add_parser("peak", help="Manage peaks")
    peak_sub = p_peak.add_subparsers(dest="peak_action", required=True)

    peak_add = peak_sub.add_parser("add", help="Add a peak")
    peak_add.add_argument("name", help="Peak name")
    peak_add.add_argument("--lat", type=float, required=True, help="Latitude")
    peak_add.add_argument("--lng", type=float, required=True, help="Longitude")
    peak_add.add_argument("--elevation", "-e", type=float, default=0, help="Elevation in metres")
    peak_add.add_argument("--category", "-c", choices=CATEGORY_CHOICES,
                          default=PeakCategory.OTHER.value)
    peak_add.add_argument("--climbed", action="store_true", help="Already climbed")
    peak_add.add_argument("--climb-date", help="Climb date (YYYY-MM-DD)")
    peak_add.add_argument("--notes", "-n", help="Free-text notes")
    peak_add.add_argument("--json", "-j", action="store_true")

    peak_list = peak_sub.add_parser("list", help="List peaks")
    peak_list.add_argument("--search", "-s", help="Name contains")
    peak_list.add_argument("--category", "-c", action="append", choices=CATEGORY_CHOICES,
                           help="Category (repeatable)")
    peak_list.add_argument("--status", choices=[f.value for f in ClimbedFilter],
                           default=ClimbedFilter.ALL.value)
    peak_list.add_argument("--json", "-j", action="store_true")

    peak_show = peak_sub.add_parser("show", help="Show one peak")
    peak_show.add_argument("id", help="Peak id or id prefix")
    peak_show.add_argument("--json", "-j", action="store_true")

    peak_update = peak_sub.add_parser("update", help="Update a peak")
    peak_update.add_argument("id", help="Peak id or id prefix")
    peak_update.add_argument("--name")
    peak_update.add_argument("--lat", type=float)
    peak_update.add_argument("--lng", type=float)
    peak_update.add_argument("--elevation", "-e", type=float)
    peak_update.add_argument("--category", "-c", choices=CATEGORY_CHOICES)
    peak_update.add_argument("--notes", "-n")
    peak_update.add_argument("--climb-date")
    peak_update.add_argument("--climbed", dest="climbed", action="store_true", default=None)
    peak_update.add_argument("--not-climbed", dest="climbed", action="store_false")

    peak_delete = peak_sub.add_parser("delete", help="Delete a peak")
    peak_delete.add_argument("id", help="Peak id or id prefix")

    peak_climb = peak_sub.add_parser("climb", help="Toggle climbed (records today's date)")
    peak_climb.add_argument("id", help="Peak id or id prefix")

    peak_link = peak_sub.add_parser("link", help="Link a track to a peak")
    peak_link.add_argument("peak_id", help="Peak id or id prefix")
    peak_link.add_argument("track_id", help="Track id or id prefix")

    # track
    p_track = subparsers.add_parser("track", help="Manage GPX tracks")
    track_sub = p_track.add_subparsers(dest="track_action", required=True)

    track_add = track_sub.add_parser("add", help="Add an already-parsed track")
    track_add.add_argument("name", help="Track name")
    track_add.add_argument("--point", "-p", type=parse_point, action="append",
                           help="Track point LAT,LNG (repeatable)")
    track_add.add_argument("--coords-file", help="JSON file with [[lat, lng], ...]")
    track_add.add_argument("--file-name", help="Original GPX file name")
    track_add.add_argument("--distance", type=float, help="Total distance in metres")
    track_add.add_argument("--gain", type=float, help="Elevation gain in metres")
    track_add.add_argument("--date", help="Track date")
    track_add.add_argument("--peak", help="Peak id or prefix to link the track to")
    track_add.add_argument("--json", "-j", action="store_true")

    track_list = track_sub.add_parser("list", help="List tracks")
    track_list.add_argument("--json", "-j", action="store_true")

    track_delete = track_sub.add_parser("delete", help="Delete a track")
    track_delete.add_argument("id", help="Track id or id prefix")

    # export / import
    p_export = subparsers.add_parser("export", help="Write a backup file")
    p_export.add_argument("path", nargs="?", help="Output path (default: dated file in cwd)")

    p_import = subparsers.add_parser("import", help="Import a backup file")
    p_import.add_argument("path", help="Backup file")
    p_import.add_argument("--json", "-j", action="store_true")

    # preset
    p_preset = subparsers.add_parser("preset", help="Bundled peak catalogue")
    preset_sub = p_preset.add_subparsers(dest="preset_action", required=True)
    preset_sub.add_parser("load", help="Add catalogue peaks not already present")

    # sync
    p_sync = subparsers.add_parser("sync", help="Remote sync")
    sync_sub = p_sync.add_subparsers(dest="sync_action", required=True)

    sync_login = sync_sub.add_parser("login", help="Save backend credentials")
    sync_login.add_argument("backend_url", help="Backend URL (https, or http for localhost)")
    sync_login.add_argument("token", help="Bearer token")
    sync_login.add_argument("user_id", help="Remote user id")

    sync_run = sync_sub.add_parser("run", help="Reconcile now and re-upload missing records")
    sync_run.add_argument("--json", "-j", action="store_true")

    sync_status = sync_sub.add_parser("status", help="Show sync status")
    sync_status.add_argument("--json", "-j", action="store_true")

    sync_watch = sync_sub.add_parser("watch", help="Poll for remote changes")
    sync_watch.add_argument("--interval", "-i", type=float, default=30.0,
                            help="Seconds between polls")
    sync_watch.add_argument("--count", type=int, help="Stop after this many polls")

    # status
    p_status = subparsers.add_parser("status", help="Show records and sync status")
    p_status.add_argument("--json", "-j", action="store_true")

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.data_dir:
        # Logging and config both resolve the home directory from here
        os.environ["PEAKLOG_DATA_DIR"] = args.data_dir

    # Initialize Peaklog with error handling
    try:
        config = load_config()
        setup_peaklog_logging(config.user_id or "local", config.log_level)
        app = Peaklog.from_config(config, sync=not args.no_sync)
    except (ValueError, OSError) as e:
        logger.error(f"Failed to initialize Peaklog: {e}")
        print(f"✗ Failed to initialize Peaklog: {e}", file=sys.stderr)
        sys.exit(1)

    # Dispatch with error handling
    try:
        if args.command == "peak":
            cmd_peak(args, app)
        elif args.command == "track":
            cmd_track(args, app)
        elif args.command == "export":
            cmd_export(args, app)
        elif args.command == "import":
            cmd_import(args, app)
        elif args.command == "preset":
            cmd_preset(args, app)
        elif args.command == "sync":
            cmd_sync(args, app)
        elif args.command == "status":
            cmd_status(args, app)
    except (ValueError, TypeError, PeaklogError) as e:
        logger.error(f"Command failed: {e}")
        print(f"✗ {e}", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        logger.error(f"Command failed: {e}", exc_info=True)
        print(f"✗ Command failed: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        app.close()


if __name__ == "__main__":
    main()
