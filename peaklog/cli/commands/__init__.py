"""CLI command modules for Peaklog.

Each module contains related command handlers used by __main__.py.
"""

from peaklog.cli.commands.exchange import cmd_export, cmd_import, cmd_preset
from peaklog.cli.commands.peak import cmd_peak
from peaklog.cli.commands.sync import cmd_status, cmd_sync
from peaklog.cli.commands.track import cmd_track

__all__ = [
    "cmd_export",
    "cmd_import",
    "cmd_peak",
    "cmd_preset",
    "cmd_status",
    "cmd_sync",
    "cmd_track",
]
