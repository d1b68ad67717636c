"""Sync commands for Peaklog CLI."""

import logging
import time
from typing import TYPE_CHECKING

from peaklog.cli.commands.helpers import print_json
from peaklog.config import save_credentials
from peaklog.types import SyncStatus

if TYPE_CHECKING:
    from peaklog import Peaklog

logger = logging.getLogger(__name__)

STATUS_MARKS = {
    SyncStatus.IDLE: "○",
    SyncStatus.SYNCING: "…",
    SyncStatus.SYNCED: "✓",
    SyncStatus.ERROR: "✗",
}


def _print_status(app: "Peaklog") -> None:
    summary = app.status_summary()
    status = SyncStatus(summary["status"])
    print(f"{STATUS_MARKS[status]} Sync: {status.value}")
    if summary["user_id"]:
        print(f"  User: {summary['user_id']}")
    elif not summary["remote"]:
        print("  Remote sync not configured (local-only)")
    for name, info in summary["collections"].items():
        print(f"  {name}: {info['records']} records, {info['status']}")
        if info["last_error"]:
            print(f"    error: {info['last_error']}")


def cmd_status(args, app: "Peaklog"):
    """Show local record counts and sync status."""
    if args.json:
        print_json(app.status_summary())
        return
    _print_status(app)


def cmd_sync(args, app: "Peaklog"):
    """Handle sync subcommands."""
    if args.sync_action == "login":
        path = save_credentials(args.backend_url, args.token, args.user_id, app.data_dir)
        print(f"✓ Credentials saved to {path}")
        print("  Run 'peaklog sync run' to reconcile now")
        return

    if args.sync_action == "status":
        cmd_status(args, app)
        return

    if app.channel is None:
        print("✗ Remote sync not configured")
        print("  Run: peaklog sync login <backend_url> <token> <user_id>")
        return

    if app.user_id is None:
        print("✗ Auto sync is disabled; no user signed in")
        return

    if args.sync_action == "run":
        uploaded = app.sync_now()
        if args.json:
            print_json({"uploaded": uploaded, **app.status_summary()})
            return
        total = sum(uploaded.values())
        if total:
            print(f"  Re-uploaded {total} records missing remotely")
        _print_status(app)

    elif args.sync_action == "watch":
        print(f"Watching for remote changes every {args.interval:g}s (Ctrl-C to stop)")
        rounds = 0
        try:
            while args.count is None or rounds < args.count:
                time.sleep(args.interval)
                delivered = app.poll()
                rounds += 1
                if delivered:
                    logger.info(f"Received {delivered} remote snapshots")
                    _print_status(app)
        except KeyboardInterrupt:
            print("\nStopped watching.")
