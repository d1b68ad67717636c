"""Echo suppression for remote snapshots.

Every write this device sends to the remote store comes back through its
own subscription. Re-merging that echo is wasted work and, if the local
collection changed in the meantime, can undo newer local state.

A single "skip the next snapshot" flag is not enough: several writes can be
in flight before any snapshot arrives, and a snapshot carrying another
device's change can arrive between them. Each write therefore arms its own
ticket describing what the snapshot must look like once the write has
landed. A snapshot is suppressed only if it settles at least one ticket and
carries nothing the device does not already have.

Writes from one device reach the remote store in issue order, so once a
ticket settles every older ticket has landed too. An older ticket that is
still unsettled at that point was overtaken by another device (the record
was deleted, or saved again, elsewhere) and expires.
"""

import itertools
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Mapping, Set, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class EchoTicket:
    """Expected effect of one remote operation."""

    ticket_id: int
    operation: str  # "upsert", "delete" or "batch"
    # id -> last_modified written, or of the copy that was deleted
    expectations: Dict[str, str] = field(default_factory=dict)

    @property
    def is_delete(self) -> bool:
        return self.operation == "delete"

    def settled_by(self, snapshot: Mapping[str, T]) -> bool:
        for record_id, stamp in self.expectations.items():
            remote = snapshot.get(record_id)
            if self.is_delete:
                # A newer version was saved after the delete; nothing left to wait for
                if remote is not None and remote.last_modified <= stamp:
                    return False
            elif remote is None or remote.last_modified < stamp:
                return False
        return True

    def hides(self, record_id: str, record: T) -> bool:
        """True if ``record`` is the stale copy this delete removed."""
        stamp = self.expectations.get(record_id)
        return self.is_delete and stamp is not None and record.last_modified <= stamp


class EchoSuppressor:
    """Tracks in-flight writes and recognises the snapshots that echo them."""

    def __init__(self):
        self._counter = itertools.count(1)
        self._tickets: Dict[int, EchoTicket] = {}

    @property
    def pending(self) -> int:
        """Number of writes whose echo has not arrived yet."""
        return len(self._tickets)

    def pending_deletes(self) -> Set[str]:
        """Ids this device deleted whose removal the remote has not confirmed yet."""
        return {
            record_id
            for ticket in self._tickets.values()
            if ticket.is_delete
            for record_id in ticket.expectations
        }

    def hides(self, record_id: str, record: T) -> bool:
        """True if ``record`` is a copy this device deleted and must not resurrect."""
        return any(ticket.hides(record_id, record) for ticket in self._tickets.values())

    def arm_upsert(self, records: Iterable[T], operation: str = "upsert") -> int:
        """Expect a snapshot holding these records (or newer versions)."""
        expectations = {record.id: record.last_modified for record in records}
        return self._arm(operation, expectations)

    def arm_delete(self, records: Iterable[T]) -> int:
        """Expect a snapshot without these records, or with newer versions of them."""
        return self._arm("delete", {record.id: record.last_modified for record in records})

    def _arm(self, operation: str, expectations: Dict[str, str]) -> int:
        ticket = EchoTicket(next(self._counter), operation, expectations)
        self._tickets[ticket.ticket_id] = ticket
        logger.debug(
            "Armed echo ticket %d (%s, %d ids)", ticket.ticket_id, operation, len(expectations)
        )
        return ticket.ticket_id

    def disarm(self, ticket_id: int) -> None:
        """Forget a ticket whose operation failed; no echo will come."""
        self._tickets.pop(ticket_id, None)

    def reset(self) -> None:
        """Drop every ticket (identity lost, subscription closed)."""
        if self._tickets:
            logger.debug("Discarding %d pending echo tickets", len(self._tickets))
        self._tickets.clear()

    def settle(self, snapshot: Mapping[str, T]) -> List[int]:
        """Clear every ticket whose effect ``snapshot`` reflects. Returns their ids.

        Unsettled tickets older than the newest settled one expire and are
        not included in the result.
        """
        settled = [t.ticket_id for t in self._tickets.values() if t.settled_by(snapshot)]
        for ticket_id in settled:
            del self._tickets[ticket_id]
        if settled:
            newest = max(settled)
            expired = [ticket_id for ticket_id in self._tickets if ticket_id < newest]
            for ticket_id in expired:
                del self._tickets[ticket_id]
            if expired:
                logger.debug("Expired echo tickets %s overtaken by other devices", expired)
        return settled

    def observe(
        self, snapshot: Mapping[str, T], is_foreign: Callable[[str, T], bool]
    ) -> bool:
        """Settle tickets reflected in ``snapshot`` and decide whether to suppress it.

        Args:
            snapshot: Remote records keyed by id.
            is_foreign: Predicate telling whether a remote record would change
                local state (absent locally, or newer than the local copy).

        Returns:
            True if the snapshot is purely an echo of this device's writes
            and must not be merged.
        """
        settled = self.settle(snapshot)
        if not settled:
            return False

        for record_id, record in snapshot.items():
            if self.hides(record_id, record):
                continue
            if is_foreign(record_id, record):
                logger.debug(
                    "Snapshot settles %d tickets but carries a foreign change to %s; merging",
                    len(settled),
                    record_id,
                )
                return False

        logger.debug("Suppressed echo snapshot (settled tickets %s)", settled)
        return True
