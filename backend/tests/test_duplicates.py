"""
Tests for duplicates.py - identity bucketing, greedy grouping, search operation
"""
import pytest

import duplicates
import store
from duplicates import (
    SIMILARITY_THRESHOLD,
    bucket_by_identity,
    find_duplicate_groups,
    group_duplicates,
    group_identities,
)
from errors import InvalidSearchQuery, SearchFailure
from tests.conftest import make_episode


def _names(group):
    return [m.patientName for m in group.members]


# =============================================================================
# TEST: bucket_by_identity()
# =============================================================================
class TestBucketByIdentity:

    def test_exact_key_is_case_insensitive_name_plus_dob(self):
        records = [
            make_episode("1", "John Smith", "1980-01-01"),
            make_episode("2", "JOHN SMITH", "1980-01-01"),
            make_episode("3", "John Smith", "1980-01-02"),
        ]
        buckets = bucket_by_identity(records)
        assert len(buckets) == 2
        assert buckets[0].episodeIds == ["1", "2"]
        assert buckets[0].episodeCount == 2
        assert buckets[1].episodeIds == ["3"]

    def test_display_name_is_first_seen(self):
        records = [
            make_episode("1", "jane doe", "1970-01-01"),
            make_episode("2", "Jane Doe", "1970-01-01"),
        ]
        assert bucket_by_identity(records)[0].patientName == "jane doe"

    def test_insertion_order_preserved(self):
        records = [
            make_episode("1", "Zed", "2000-01-01"),
            make_episode("2", "Amy", "2000-01-01"),
            make_episode("3", "Zed", "2000-01-01"),
        ]
        assert [b.patientName for b in bucket_by_identity(records)] == ["Zed", "Amy"]


# =============================================================================
# TEST: group_duplicates()
# =============================================================================
class TestGroupDuplicates:

    def test_smith_scenario(self, smith_records):
        """John Smith x2 + Jon Smith x1 group together; Alice Jones excluded"""
        groups = group_duplicates(smith_records)
        assert len(groups) == 1
        group = groups[0]
        assert sorted(_names(group)) == ["John Smith", "Jon Smith"]
        assert group.totalEpisodes == 3
        assert "Alice Jones" not in _names(group)

    def test_same_name_different_dob_never_grouped(self):
        records = [
            make_episode("1", "Bob Lee", "1990-03-03"),
            make_episode("2", "Bob Lee", "1991-03-03"),
        ]
        assert group_duplicates(records) == []

    def test_empty_input(self):
        assert group_duplicates([]) == []

    def test_all_unique_names(self):
        records = [
            make_episode("1", "Alice Jones", "1975-05-05"),
            make_episode("2", "Bob Lee", "1975-05-05"),
            make_episode("3", "Carmen Ortiz", "1975-05-05"),
        ]
        assert group_duplicates(records) == []

    def test_single_identity_is_not_a_duplicate(self):
        records = [make_episode(str(i), "Only Me", "1999-09-09") for i in range(4)]
        assert group_duplicates(records) == []

    def test_every_group_has_at_least_two_identities(self, smith_records):
        extra = [
            make_episode("m1", "Maria Chen", "2000-07-20"),
            make_episode("m2", "Maria Chenn", "2000-07-20"),
        ]
        for group in group_duplicates(smith_records + extra):
            assert len(group.members) >= 2

    def test_output_in_anchor_insertion_order(self):
        records = [
            make_episode("m1", "Maria Chen", "2000-07-20"),
            make_episode("s1", "John Smith", "1980-01-01"),
            make_episode("m2", "Maria Chenn", "2000-07-20"),
            make_episode("s2", "Jon Smith", "1980-01-01"),
        ]
        groups = group_duplicates(records)
        assert [_names(g)[0] for g in groups] == ["Maria Chen", "John Smith"]

    def test_real_strings_above_threshold_grouped(self):
        """4 characters, one edit: 0.75"""
        records = [make_episode("1", "abcd", "2000-01-01"), make_episode("2", "abce", "2000-01-01")]
        assert len(group_duplicates(records)) == 1

    def test_real_strings_below_threshold_not_grouped(self):
        """3 characters, one edit: 0.667"""
        records = [make_episode("1", "abc", "2000-01-01"), make_episode("2", "abd", "2000-01-01")]
        assert group_duplicates(records) == []


class TestThresholdBoundary:
    """Threshold is exclusive: exactly 0.7 does not group, anything above does"""

    def _pair(self):
        return [make_episode("1", "Pat One", "1960-06-06"), make_episode("2", "Pat Two", "1960-06-06")]

    def test_threshold_constant(self):
        assert SIMILARITY_THRESHOLD == 0.7

    def test_exactly_threshold_not_grouped(self, monkeypatch):
        monkeypatch.setattr(duplicates, "name_similarity", lambda a, b: 0.7)
        assert group_duplicates(self._pair()) == []

    def test_just_above_threshold_grouped(self, monkeypatch):
        monkeypatch.setattr(duplicates, "name_similarity", lambda a, b: 0.70001)
        assert len(group_duplicates(self._pair())) == 1

    def test_real_strings_exactly_at_threshold_not_grouped(self):
        """10 characters, three edits: 1 - 3/10 == 0.7 exactly"""
        records = [make_episode("1", "abcdefghij", "2000-01-01"), make_episode("2", "abcdefgxyz", "2000-01-01")]
        assert group_duplicates(records) == []

    def test_dob_gate_even_at_full_similarity(self, monkeypatch):
        monkeypatch.setattr(duplicates, "name_similarity", lambda a, b: 1.0)
        records = [make_episode("1", "Pat", "1960-06-06"), make_episode("2", "Pat", "1960-06-07")]
        assert group_duplicates(records) == []


class TestGreedyGrouping:
    """
    Single-pass greedy grouping, not transitive closure.
    A~B (0.8), B~C (0.8), A!~C (0.6), all with the same DOB.
    """

    A = "aaaaaaaaaa"
    B = "aaaaaaaabb"
    C = "aaaaaabbbb"

    def _records(self, *names):
        return [make_episode(str(i), name, "1985-05-05") for i, name in enumerate(names)]

    def test_chain_missed_when_endpoint_is_anchor(self):
        groups = group_duplicates(self._records(self.A, self.B, self.C))
        assert len(groups) == 1
        assert _names(groups[0]) == [self.A, self.B]

    def test_chain_captured_when_middle_is_anchor(self):
        groups = group_duplicates(self._records(self.B, self.A, self.C))
        assert len(groups) == 1
        assert _names(groups[0]) == [self.B, self.A, self.C]

    def test_claimed_identity_never_in_two_groups(self):
        records = self._records(self.A, self.B, self.C, self.A.upper())
        groups = group_duplicates(records)
        seen = [id(m) for g in groups for m in g.members]
        assert len(seen) == len(set(seen))


class TestNoDataLoss:
    """Groups plus discarded singleton buckets account for every input record exactly once"""

    def test_every_record_accounted_for(self, smith_records):
        records = smith_records + [
            make_episode("b1", "Bob Lee", "1990-03-03"),
            make_episode("b2", "Bob Lee", "1991-03-03"),
            make_episode("g1", "aaaaaaaaaa", "1985-05-05"),
            make_episode("g2", "aaaaaaaabb", "1985-05-05"),
            make_episode("g3", "aaaaaabbbb", "1985-05-05"),
        ]
        identities = bucket_by_identity(records)
        groups = group_identities(identities)

        grouped = [m for g in groups for m in g.members]
        singletons = [i for i in identities if all(i is not m for m in grouped)]

        accounted = [ep.episodeId for i in grouped + singletons for ep in i.episodes]
        assert sorted(accounted) == sorted(ep.episodeId for ep in records)
        assert len(accounted) == len(set(accounted))


# =============================================================================
# TEST: find_duplicate_groups()
# =============================================================================
class TestFindDuplicateGroups:

    def test_seeded_smith_search(self):
        groups = find_duplicate_groups("smith", clinic_id="A")
        assert len(groups) == 1
        assert sorted(_names(groups[0])) == ["John Smith", "Jon Smith"]
        assert groups[0].totalEpisodes == 3

    def test_no_matching_records_is_not_an_error(self):
        assert find_duplicate_groups("Zzyzx", clinic_id="A") == []

    @pytest.mark.parametrize("query", ["", "a", "  b  ", None])
    def test_short_query_rejected(self, query):
        with pytest.raises(InvalidSearchQuery):
            find_duplicate_groups(query)

    def test_query_is_trimmed(self):
        assert len(find_duplicate_groups("  smith  ", clinic_id="A")) == 1

    def test_clinic_scope_hides_other_clinics(self):
        assert find_duplicate_groups("chen", clinic_id="A") == []
        assert len(find_duplicate_groups("chen", clinic_id="B")) == 1

    def test_store_failure_becomes_search_failure(self, monkeypatch):
        def broken(fragment, clinic_id=None):
            raise store.StoreError("connection reset")

        monkeypatch.setattr(store, "search_records_by_name_substring", broken)
        with pytest.raises(SearchFailure):
            find_duplicate_groups("smith", clinic_id="A")
