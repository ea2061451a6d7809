"""
Tests for change_feed.models
"""
import pytest

from change_feed.models import ChangeEvent, ChangePayload, ChannelConfig, channel_name


# ── ChannelConfig ─────────────────────────────────────────────────────────────

def test_defaults():
    config = ChannelConfig(table="requests")
    assert config.schema == "public"
    assert config.event is ChangeEvent.ALL
    assert config.filter is None


def test_event_string_is_coerced_to_enum():
    assert ChannelConfig(table="requests", event="INSERT").event is ChangeEvent.INSERT


def test_empty_table_raises():
    with pytest.raises(ValueError, match="table"):
        ChannelConfig(table="")


def test_coerce_string_shorthand():
    assert ChannelConfig.coerce("messages") == ChannelConfig(table="messages")


def test_event_member_names_are_accepted():
    assert ChannelConfig(table="requests", event="ALL").event is ChangeEvent.ALL
    assert ChannelConfig(table="requests", event="insert").event is ChangeEvent.INSERT
    assert ChannelConfig.coerce({"table": "requests", "event": "ALL"}).event is ChangeEvent.ALL


def test_unknown_event_raises():
    with pytest.raises(ValueError):
        ChannelConfig(table="requests", event="TRUNCATE")


def test_coerce_mapping_fills_defaults():
    config = ChannelConfig.coerce({"table": "requests", "event": "INSERT", "schema": None})
    assert config == ChannelConfig(table="requests", event=ChangeEvent.INSERT)


def test_coerce_returns_same_instance():
    config = ChannelConfig(table="trips")
    assert ChannelConfig.coerce(config) is config


def test_coerce_rejects_other_types():
    with pytest.raises(TypeError):
        ChannelConfig.coerce(42)


def test_filter_spec():
    spec = ChannelConfig(table="requests", event="DELETE", filter="id=eq.1").filter_spec()
    assert spec == {"event": "DELETE", "schema": "public", "table": "requests", "filter": "id=eq.1"}


# ── channel_name() ────────────────────────────────────────────────────────────

def test_name_is_table_without_filter():
    assert channel_name(ChannelConfig(table="messages")) == "messages"


def test_filter_is_sanitized():
    config = ChannelConfig(table="requests", filter="emergency=eq.true")
    assert channel_name(config) == "requests:emergency_eq_true"


def test_explicit_name_wins():
    config = ChannelConfig(table="requests", filter="emergency=eq.true")
    assert channel_name(config, "emergency-requests:user1") == "emergency-requests:user1"


def test_event_does_not_affect_derived_name():
    a = ChannelConfig(table="requests", event="INSERT", filter="id=eq.1")
    b = ChannelConfig(table="requests", event="UPDATE", filter="id=eq.1")
    assert channel_name(a) == channel_name(b)


# ── ChangePayload ─────────────────────────────────────────────────────────────

def test_record_is_new_row_for_insert():
    payload = ChangePayload("public", "trips", "INSERT", new={"id": 1})
    assert payload.record == {"id": 1}


def test_record_is_old_row_for_delete():
    payload = ChangePayload("public", "trips", "DELETE", new={}, old={"id": 1})
    assert payload.record == {"id": 1}


def test_payload_rejects_wildcard_event():
    with pytest.raises(ValueError):
        ChangePayload("public", "trips", "*")


def test_from_dict_accepts_wire_keys():
    payload = ChangePayload.from_dict(
        {"schema": "public", "table": "trips", "eventType": "UPDATE", "new": {"id": 2}, "old": None}
    )
    assert payload.event_type is ChangeEvent.UPDATE
    assert payload.old == {}
