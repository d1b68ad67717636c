"""Tests for the per-write echo suppressor."""

from peaklog.sync.echo import EchoSuppressor
from peaklog.sync.merge import is_foreign_change


def _foreign_against(local_records):
    index = {r.id: r for r in local_records}
    return lambda rid, rec: is_foreign_change(rid, rec, index)


class TestEchoSuppressor:
    def test_nothing_armed_never_suppresses(self, make_peak):
        echo = EchoSuppressor()
        p = make_peak()
        assert echo.observe({"p1": p}, _foreign_against([p])) is False

    def test_exact_echo_is_suppressed_once(self, make_peak):
        echo = EchoSuppressor()
        p = make_peak()
        echo.arm_upsert([p])
        foreign = _foreign_against([p])
        assert echo.observe({"p1": p}, foreign) is True
        assert echo.pending == 0
        # The next identical snapshot is not an expected echo any more
        assert echo.observe({"p1": p}, foreign) is False

    def test_snapshot_before_write_lands_settles_nothing(self, make_peak):
        echo = EchoSuppressor()
        old = make_peak(stamp="2024-01-01T00:00:00.000Z")
        new = make_peak(stamp="2024-01-02T00:00:00.000Z")
        echo.arm_upsert([new])
        assert echo.observe({"p1": old}, _foreign_against([new])) is False
        assert echo.pending == 1

    def test_two_writes_each_accounted_for(self, make_peak):
        echo = EchoSuppressor()
        a, b = make_peak(id="a"), make_peak(id="b", name="B")
        echo.arm_upsert([a])
        echo.arm_upsert([b])
        foreign = _foreign_against([a, b])
        assert echo.observe({"a": a}, foreign) is True
        assert echo.pending == 1
        assert echo.observe({"a": a, "b": b}, foreign) is True
        assert echo.pending == 0

    def test_interleaved_foreign_change_is_never_suppressed(self, make_peak):
        """An echo that also carries another device's record must be merged."""
        echo = EchoSuppressor()
        mine = make_peak(id="a")
        theirs = make_peak(id="x", name="Other")
        echo.arm_upsert([mine])
        assert echo.observe({"a": mine, "x": theirs}, _foreign_against([mine])) is False
        # The ticket was still settled by that snapshot
        assert echo.pending == 0

    def test_newer_remote_version_of_own_write_is_merged(self, make_peak):
        echo = EchoSuppressor()
        mine = make_peak(stamp="2024-01-01T00:00:00.000Z")
        theirs = make_peak(stamp="2024-01-05T00:00:00.000Z", notes="edited elsewhere")
        echo.arm_upsert([mine])
        assert echo.observe({"p1": theirs}, _foreign_against([mine])) is False

    def test_delete_ticket_settles_when_id_absent(self, make_peak):
        echo = EchoSuppressor()
        ticket = echo.arm_delete([make_peak(id="gone")])
        assert echo.pending_deletes() == {"gone"}
        assert echo.observe({}, _foreign_against([])) is True
        assert echo.pending_deletes() == set()
        assert ticket == 1

    def test_pending_delete_is_not_counted_as_foreign(self, make_peak):
        echo = EchoSuppressor()
        a = make_peak(id="a")
        echo.arm_upsert([a])
        stale = make_peak(id="gone", name="Gone")
        echo.arm_delete([stale])
        # Snapshot reflects the upsert but not yet the delete
        assert echo.observe({"a": a, "gone": stale}, _foreign_against([a])) is True
        assert echo.pending_deletes() == {"gone"}
        assert echo.hides("gone", stale)

    def test_newer_save_elsewhere_releases_delete(self, make_peak):
        """Another device saving the id after our delete is a real change."""
        echo = EchoSuppressor()
        echo.arm_delete([make_peak(id="m1", stamp="2024-01-01T00:00:00.000Z")])
        edited = make_peak(id="m1", stamp="2024-06-01T00:00:00.000Z")
        assert not echo.hides("m1", edited)
        assert echo.observe({"m1": edited}, _foreign_against([])) is False
        assert echo.pending_deletes() == set()

    def test_delete_hides_only_versions_up_to_deleted_stamp(self, make_peak):
        echo = EchoSuppressor()
        echo.arm_delete([make_peak(id="m1", stamp="2024-01-02T00:00:00.000Z")])
        assert echo.hides("m1", make_peak(id="m1", stamp="2024-01-01T00:00:00.000Z"))
        assert echo.hides("m1", make_peak(id="m1", stamp="2024-01-02T00:00:00.000Z"))
        assert not echo.hides("m1", make_peak(id="m1", stamp="2024-01-03T00:00:00.000Z"))
        assert not echo.hides("other", make_peak(id="other"))

    def test_overtaken_upsert_expires_when_later_ticket_settles(self, make_peak):
        """A record deleted elsewhere before its echo arrives does not stay pending."""
        echo = EchoSuppressor()
        a, b = make_peak(id="a"), make_peak(id="b", name="B")
        echo.arm_upsert([a])
        echo.arm_upsert([b])
        # Another device deleted "a" before any snapshot reached us
        assert echo.settle({"b": b}) == [2]
        assert echo.pending == 0

    def test_newer_tickets_survive_settling_older_ones(self, make_peak):
        echo = EchoSuppressor()
        a, b = make_peak(id="a"), make_peak(id="b", name="B")
        echo.arm_upsert([a])
        echo.arm_upsert([b])
        assert echo.settle({"a": a}) == [1]
        assert echo.pending == 1

    def test_disarm_forgets_failed_write(self, make_peak):
        echo = EchoSuppressor()
        p = make_peak()
        ticket = echo.arm_upsert([p])
        echo.disarm(ticket)
        assert echo.pending == 0
        assert echo.observe({"p1": p}, _foreign_against([p])) is False

    def test_reset_clears_everything(self, make_peak):
        echo = EchoSuppressor()
        echo.arm_upsert([make_peak()])
        echo.arm_delete([make_peak(id="x")])
        echo.reset()
        assert echo.pending == 0
        assert echo.pending_deletes() == set()

    def test_batch_ticket_needs_every_record(self, make_peak):
        echo = EchoSuppressor()
        a, b = make_peak(id="a"), make_peak(id="b", name="B")
        echo.arm_upsert([a, b], operation="batch")
        assert echo.settle({"a": a}) == []
        assert echo.settle({"a": a, "b": b}) == [1]

    def test_ticket_ids_increase(self, make_peak):
        echo = EchoSuppressor()
        assert echo.arm_upsert([make_peak()]) < echo.arm_delete([make_peak(id="x")])
