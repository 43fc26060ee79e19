"""Ростер проекта: смешанные legacy-записи id/username."""
from novelhub.paywall.roster import UserId, UserName, is_listed, is_member, parse_roster


class TestParseRoster:
    def test_each_entry_yields_both_forms(self):
        assert parse_roster(["abc"]) == [UserId("abc"), UserName("abc")]

    def test_skips_empty_and_reads_dicts(self):
        roster = parse_roster([None, "", "  ", {"_id": "507f"}, {"id": 42}])
        assert UserId("507f") in roster
        assert UserId("42") in roster
        assert len(roster) == 4

    def test_none_roster(self):
        assert parse_roster(None) == []


class TestMembership:
    def test_match_by_id(self):
        assert is_listed(["u1", "someone"], "u1", "nick") is True

    def test_match_by_username(self):
        assert is_listed(["u9", "nick"], "u1", "nick") is True

    def test_no_match(self):
        assert is_listed(["u9", "other"], "u1", "nick") is False

    def test_no_candidates(self):
        assert is_member(parse_roster(["u1"]), None, None) is False
        assert is_member(parse_roster(["u1"]), "", "") is False
