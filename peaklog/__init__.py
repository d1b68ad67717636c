"""
Peaklog - offline-first peak and GPX track log.

Records live locally and sync with a per-user remote store when signed in.
"""

from .core import ImportSummary, Peaklog
from .types import Peak, SyncStatus, Track

try:
    from importlib.metadata import version

    __version__ = version("peaklog")
except Exception:
    __version__ = "0.0.0"

__all__ = ["ImportSummary", "Peak", "Peaklog", "SyncStatus", "Track"]
