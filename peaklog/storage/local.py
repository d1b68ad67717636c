"""Local collection storage.

A :class:`LocalStore` holds one record kind in memory, keyed by id, and
mirrors every mutation to a :class:`JsonSlot` on disk. The slot is read
once when the store is opened; after that the in-memory copy is the
source of truth.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Dict, Generic, Iterable, Iterator, List, Optional, TypeVar

from peaklog.clock import is_canonical_stamp
from peaklog.errors import RecordNotFound, StaleWriteError
from peaklog.serializers import RecordKind

logger = logging.getLogger(__name__)

T = TypeVar("T")


class JsonSlot:
    """A single named JSON file holding a list of serialized records.

    Args:
        directory: Directory that holds the slot file.
        name: Slot name; the file is ``<name>.json``.
    """

    def __init__(self, directory: Path, name: str):
        self.directory = Path(directory)
        self.name = name
        self.path = self.directory / f"{name}.json"

    def read(self) -> List[Dict[str, Any]]:
        """Read the slot. A missing slot is empty; a corrupt one is moved aside."""
        if not self.path.exists():
            return []
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            backup = self.path.with_name(self.path.name + ".corrupt")
            logger.warning(f"Local slot {self.name} is corrupt ({e}); moved to {backup.name}")
            os.replace(self.path, backup)
            return []
        if not isinstance(data, list):
            logger.warning(f"Local slot {self.name} does not hold a list; ignoring it")
            return []
        return data

    def write(self, items: List[Dict[str, Any]]) -> None:
        """Atomically replace the slot contents."""
        self.directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self.name}.", dir=self.directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(items, f, ensure_ascii=False)
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, self.path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise


class LocalStore(Generic[T]):
    """In-memory collection of one record kind, unique by id.

    Args:
        kind: Record kind descriptor (codec and names).
        slot: Persistence slot; ``None`` keeps the store purely in memory.
    """

    def __init__(self, kind: RecordKind[T], slot: Optional[JsonSlot] = None):
        self.kind = kind
        self.slot = slot
        self._records: Dict[str, T] = {}
        self._listeners: List[Callable[[List[T]], None]] = []
        if slot is not None:
            self._load()

    def _load(self) -> None:
        skipped = 0
        for item in self.slot.read():
            try:
                record = self.kind.from_dict(item)
            except ValueError as e:
                skipped += 1
                logger.warning(f"Skipping unreadable {self.kind.name} in {self.slot.name}: {e}")
                continue
            self._records[record.id] = record
        if skipped:
            logger.warning(f"Skipped {skipped} unreadable {self.kind.name} records on load")
        logger.debug(f"Loaded {len(self._records)} {self.kind.name} records from {self.slot.name}")

    def _persist(self) -> None:
        if self.slot is not None:
            self.slot.write(self.kind.encode_many(list(self._records.values())))
        snapshot = list(self._records.values())
        for listener in list(self._listeners):
            listener(snapshot)

    # === Reads ===

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._records

    def __iter__(self) -> Iterator[T]:
        return iter(list(self._records.values()))

    def all(self) -> List[T]:
        return list(self._records.values())

    def ids(self) -> set:
        return set(self._records)

    def get(self, record_id: str) -> Optional[T]:
        return self._records.get(record_id)

    def require(self, record_id: str) -> T:
        """Like :meth:`get` but raises :class:`RecordNotFound`."""
        record = self._records.get(record_id)
        if record is None:
            raise RecordNotFound(self.kind.name, record_id)
        return record

    def on_change(self, listener: Callable[[List[T]], None]) -> None:
        """Register a callback invoked with the full collection after every mutation."""
        self._listeners.append(listener)

    # === Mutations ===

    def _check_clock(self, record: T) -> None:
        if not is_canonical_stamp(record.last_modified):
            raise ValueError(
                f"{self.kind.name} {record.id} has a non-canonical last_modified "
                f"{record.last_modified!r}"
            )
        existing = self._records.get(record.id)
        if existing is not None and not record.last_modified > existing.last_modified:
            raise StaleWriteError(record.id, existing.last_modified, record.last_modified)

    def upsert(self, record: T, *, enforce_clock: bool = True) -> T:
        """Insert or replace one record.

        Args:
            record: The record to store.
            enforce_clock: Require a canonical stamp that advances past the
                stored copy. User mutations keep this on; merge results turn
                it off because they carry remote stamps.

        Raises:
            StaleWriteError: If the write would not advance the logical clock.
        """
        if enforce_clock:
            self._check_clock(record)
        self._records[record.id] = record
        self._persist()
        return record

    def upsert_many(self, records: Iterable[T], *, enforce_clock: bool = True) -> List[T]:
        """Insert or replace several records with a single persist."""
        records = list(records)
        if enforce_clock:
            for record in records:
                self._check_clock(record)
        for record in records:
            self._records[record.id] = record
        if records:
            self._persist()
        return records

    def delete(self, record_id: str) -> bool:
        """Remove a record. Returns False if it was not present."""
        if record_id not in self._records:
            return False
        del self._records[record_id]
        self._persist()
        return True

    def delete_many(self, record_ids: Iterable[str]) -> int:
        removed = 0
        for record_id in record_ids:
            if self._records.pop(record_id, None) is not None:
                removed += 1
        if removed:
            self._persist()
        return removed

    def replace_all(self, records: Iterable[T]) -> None:
        """Replace the whole collection (used for merge results)."""
        self._records = {record.id: record for record in records}
        self._persist()
