"""Last-writer-wins merge of a local collection with a remote snapshot."""

from typing import Dict, Iterable, List, Mapping, TypeVar

from peaklog.clock import newer

T = TypeVar("T")


def merge_records(local: Iterable[T], remote: Mapping[str, T]) -> List[T]:
    """Reconcile local records with a remote snapshot, per identity.

    For every remote record: if no local record shares its id it is added,
    otherwise the one with the greater ``last_modified`` wins as a whole
    (ties keep the local copy). Records are never merged field by field.

    Args:
        local: Current local collection.
        remote: Remote snapshot keyed by id.

    Returns:
        Every identity from either input exactly once, local order first
        followed by remote-only records.
    """
    merged: Dict[str, T] = {record.id: record for record in local}

    for record_id, remote_record in remote.items():
        local_record = merged.get(record_id)
        if local_record is None or newer(remote_record, local_record):
            merged[record_id] = remote_record

    return list(merged.values())


def is_foreign_change(record_id: str, remote_record: T, local_index: Mapping[str, T]) -> bool:
    """True if ``remote_record`` would change the local collection when merged.

    A remote record is foreign when the device does not hold that id at all,
    or holds an older version of it.
    """
    local_record = local_index.get(record_id)
    return local_record is None or newer(remote_record, local_record)
