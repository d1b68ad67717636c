"""Local persistence for Peaklog records."""

from peaklog.storage.local import JsonSlot, LocalStore

__all__ = ["JsonSlot", "LocalStore"]
