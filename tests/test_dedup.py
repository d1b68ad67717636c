"""Tests for semantic deduplication."""

import pytest

from peaklog.sync.dedup import dedup_records, supports_dedup


class TestDedupRecords:
    def test_scenario_b_newest_survives(self, make_peak):
        newer = make_peak(id="m1", name="Fuji", lat=35.36, lng=138.73, stamp="2024-01-02T00:00:00.000Z")
        older = make_peak(id="m2", name="Fuji", lat=35.36, lng=138.73, stamp="2024-01-01T00:00:00.000Z")
        result = dedup_records([older, newer])
        assert [r.id for r in result.survivors] == ["m1"]
        assert result.removed_ids == {"m2"}

    @pytest.mark.parametrize("n", [2, 3, 7])
    def test_group_of_n_yields_one_survivor(self, make_peak, n):
        records = [
            make_peak(id=f"m{i}", stamp=f"2024-01-{i + 1:02d}T00:00:00.000Z") for i in range(n)
        ]
        result = dedup_records(records)
        assert [r.id for r in result.survivors] == [f"m{n - 1}"]
        assert result.removed_count == n - 1

    def test_equal_stamps_pick_greater_id(self, make_peak):
        result = dedup_records([make_peak(id="b"), make_peak(id="a"), make_peak(id="c")])
        assert [r.id for r in result.survivors] == ["c"]
        assert result.removed_ids == {"a", "b"}

    def test_nearby_coordinates_share_a_key(self, make_peak):
        a = make_peak(id="a", lat=35.3606, lng=138.7274)
        b = make_peak(id="b", lat=35.3598, lng=138.7301, stamp="2024-02-01T00:00:00.000Z")
        result = dedup_records([a, b])
        assert [r.id for r in result.survivors] == ["b"]

    def test_different_names_are_distinct(self, make_peak):
        result = dedup_records([make_peak(id="a", name="A"), make_peak(id="b", name="B")])
        assert len(result.survivors) == 2
        assert result.removed_ids == set()

    def test_survivors_keep_first_seen_order(self, make_peak):
        records = [
            make_peak(id="x", name="X"),
            make_peak(id="y1", name="Y"),
            make_peak(id="z", name="Z"),
            make_peak(id="y2", name="Y", stamp="2024-03-01T00:00:00.000Z"),
        ]
        result = dedup_records(records)
        assert [r.id for r in result.survivors] == ["x", "y2", "z"]

    def test_records_without_semantic_key_pass_through(self, make_track):
        tracks = [make_track(id="t1"), make_track(id="t2")]
        result = dedup_records(tracks)
        assert result.survivors == tracks
        assert result.removed_ids == set()

    def test_supports_dedup(self, make_peak, make_track):
        assert supports_dedup(make_peak())
        assert not supports_dedup(make_track())
