"""Local/remote reconciliation engine."""

from peaklog.sync.dedup import DedupResult, dedup_records, supports_dedup
from peaklog.sync.echo import EchoSuppressor
from peaklog.sync.http_channel import HttpRemoteChannel
from peaklog.sync.memory_channel import InMemoryDocumentStore, InMemoryRemoteChannel
from peaklog.sync.merge import is_foreign_change, merge_records
from peaklog.sync.orchestrator import SyncOrchestrator
from peaklog.sync.remote import RemoteChannel, Subscription, UserScope
from peaklog.sync.retry import RetryPolicy
from peaklog.sync.status import SyncStatusTracker, combine_status

__all__ = [
    "DedupResult",
    "EchoSuppressor",
    "HttpRemoteChannel",
    "InMemoryDocumentStore",
    "InMemoryRemoteChannel",
    "RemoteChannel",
    "RetryPolicy",
    "Subscription",
    "SyncOrchestrator",
    "SyncStatusTracker",
    "UserScope",
    "combine_status",
    "dedup_records",
    "is_foreign_change",
    "merge_records",
    "supports_dedup",
]
