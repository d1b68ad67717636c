"""Semantic deduplication.

Two devices bulk-loading the same preset catalogue at the same time each
mint fresh ids for the same peaks. After they reconcile, both copies exist.
:func:`dedup_records` collapses records that describe the same real-world
entity (same :meth:`~peaklog.types.SemanticallyKeyed.dedup_key`) down to the
most recently modified one.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, Generic, Iterable, List, Set, Tuple, TypeVar

from peaklog.types import SemanticallyKeyed

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class DedupResult(Generic[T]):
    """Outcome of a dedup pass."""

    survivors: List[T] = field(default_factory=list)
    removed_ids: Set[str] = field(default_factory=set)

    @property
    def removed_count(self) -> int:
        return len(self.removed_ids)


def supports_dedup(record: Any) -> bool:
    """Capability check: does this record expose a semantic key?"""
    return isinstance(record, SemanticallyKeyed)


def dedup_records(records: Iterable[T]) -> DedupResult[T]:
    """Keep one record per dedup key, preferring the newest.

    Records without a semantic key pass through untouched. Within a group
    the greatest ``last_modified`` survives; on equal stamps the greater id
    wins, so every device picks the same survivor.

    Returns:
        Survivors in first-seen order and the ids of the removed duplicates.
    """
    result: DedupResult[T] = DedupResult()
    groups: Dict[Tuple[Any, ...], List[T]] = defaultdict(list)
    order: List[Any] = []  # keys and pass-through records, in first-seen order

    for record in records:
        if not supports_dedup(record):
            order.append(("record", record))
            continue
        key = record.dedup_key()
        if key not in groups:
            order.append(("group", key))
        groups[key].append(record)

    for entry_type, value in order:
        if entry_type == "record":
            result.survivors.append(value)
            continue

        group = groups[value]
        if len(group) == 1:
            result.survivors.append(group[0])
            continue

        ranked = sorted(group, key=lambda r: (r.last_modified, r.id), reverse=True)
        result.survivors.append(ranked[0])
        duplicates = {r.id for r in ranked[1:]}
        result.removed_ids.update(duplicates)
        logger.info(
            "Collapsed %d duplicates of %r into %s",
            len(duplicates),
            value,
            ranked[0].id,
        )

    return result
