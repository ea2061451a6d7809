"""
Tests for change_feed.filters

Pure unit tests — no transport, no mocking required.
"""
import pytest

from change_feed.filters import FilterError, matches_spec, parse_filter
from change_feed.models import ChangePayload, ChannelConfig


def _payload(event="INSERT", table="requests", new=None, old=None, schema="public"):
    return ChangePayload(schema=schema, table=table, event_type=event, new=new or {}, old=old or {})


class TestParseFilter:
    def test_eq(self):
        f = parse_filter("emergency=eq.true")
        assert (f.column, f.op, f.values) == ("emergency", "eq", ("true",))

    def test_value_may_contain_dots(self):
        f = parse_filter("email=eq.a.b@example.com")
        assert f.values == ("a.b@example.com",)

    def test_in_list(self):
        f = parse_filter("status=in.(open, matched)")
        assert f.op == "in"
        assert f.values == ("open", "matched")

    @pytest.mark.parametrize("expression", ["emergency", "emergency=true", "=eq.1", "a=like.x"])
    def test_malformed_raises(self, expression):
        with pytest.raises(FilterError):
            parse_filter(expression)

    def test_in_without_parens_raises(self):
        with pytest.raises(FilterError, match="parenthesised"):
            parse_filter("status=in.open,matched")

    def test_filter_error_is_value_error(self):
        with pytest.raises(ValueError):
            parse_filter("nope")


class TestRowFilterMatches:
    def test_bool_rendered_lowercase(self):
        assert parse_filter("emergency=eq.true").matches({"emergency": True})
        assert not parse_filter("emergency=eq.true").matches({"emergency": False})

    def test_none_is_null(self):
        assert parse_filter("match_id=eq.null").matches({"match_id": None})

    def test_neq(self):
        assert parse_filter("status=neq.cancelled").matches({"status": "open"})
        assert not parse_filter("status=neq.cancelled").matches({"status": "cancelled"})

    def test_numeric_ordering(self):
        # "9" < "10" numerically, not lexically
        assert parse_filter("max_reward=lt.10").matches({"max_reward": 9})
        assert parse_filter("max_reward=gte.10").matches({"max_reward": 10})
        assert not parse_filter("max_reward=gt.10").matches({"max_reward": 10})

    def test_lexical_ordering_for_strings(self):
        assert parse_filter("name=lte.m").matches({"name": "alice"})

    def test_in(self):
        f = parse_filter("status=in.(open,matched)")
        assert f.matches({"status": "matched"})
        assert not f.matches({"status": "delivered"})

    def test_missing_column_never_matches(self):
        assert not parse_filter("status=neq.open").matches({"id": 1})


class TestMatchesSpec:
    def test_table_and_schema_must_match(self):
        spec = ChannelConfig(table="requests").filter_spec()
        assert matches_spec(spec, _payload())
        assert not matches_spec(spec, _payload(table="trips"))
        assert not matches_spec(spec, _payload(schema="audit"))

    def test_event_all_matches_every_type(self):
        spec = ChannelConfig(table="requests").filter_spec()
        for event in ("INSERT", "UPDATE", "DELETE"):
            assert matches_spec(spec, _payload(event=event))

    def test_specific_event(self):
        spec = ChannelConfig(table="requests", event="INSERT").filter_spec()
        assert matches_spec(spec, _payload(event="INSERT"))
        assert not matches_spec(spec, _payload(event="UPDATE"))

    def test_predicate_uses_old_row_for_deletes(self):
        spec = ChannelConfig(table="messages", filter="match_id=eq.m1").filter_spec()
        assert matches_spec(spec, _payload(event="DELETE", table="messages", old={"match_id": "m1"}))
        assert not matches_spec(spec, _payload(event="DELETE", table="messages", new={"match_id": "m1"}))
