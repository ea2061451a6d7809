"""
Tests for change_feed.memory
"""
from change_feed.interface import POSTGRES_CHANGES, ChangeFeedTransport, ChannelHandle
from change_feed.memory import InMemoryChangeFeed
from change_feed.models import ChannelConfig, ChannelStatus


def _open(feed, name="requests", config=None, handler=None, statuses=None):
    config = config or ChannelConfig(table="requests")
    channel = feed.open_channel(name)
    channel.on(POSTGRES_CHANGES, config.filter_spec(), handler or (lambda p: None))
    channel.subscribe((lambda s, e: statuses.append(s)) if statuses is not None else None)
    return channel


def test_satisfies_protocols():
    feed = InMemoryChangeFeed()
    assert isinstance(feed, ChangeFeedTransport)
    assert isinstance(feed.open_channel("x"), ChannelHandle)


def test_subscribe_reports_subscribed():
    statuses = []
    _open(InMemoryChangeFeed(), statuses=statuses)
    assert statuses == [ChannelStatus.SUBSCRIBED]


def test_fail_subscribe_reports_channel_error_and_delivers_nothing():
    feed = InMemoryChangeFeed()
    feed.fail_subscribe = True
    statuses, received = [], []
    _open(feed, handler=received.append, statuses=statuses)

    assert statuses == [ChannelStatus.CHANNEL_ERROR]
    assert feed.emit_change("requests", "INSERT", {"id": 1}) == 0
    assert received == []


def test_emit_delivers_only_matching_changes():
    feed = InMemoryChangeFeed()
    received = []
    _open(feed, config=ChannelConfig(table="requests", event="INSERT", filter="emergency=eq.true"),
          handler=received.append)

    feed.emit_change("requests", "INSERT", {"id": 1, "emergency": True})
    feed.emit_change("requests", "INSERT", {"id": 2, "emergency": False})
    feed.emit_change("requests", "UPDATE", {"id": 3, "emergency": True})
    feed.emit_change("trips", "INSERT", {"id": 4, "emergency": True})

    assert [p.new["id"] for p in received] == [1]


def test_unsubscribe_stops_delivery_and_is_idempotent():
    feed = InMemoryChangeFeed()
    received, statuses = [], []
    channel = _open(feed, handler=received.append, statuses=statuses)

    channel.unsubscribe()
    channel.unsubscribe()
    feed.emit_change("requests", "INSERT", {"id": 1})

    assert received == []
    assert channel.closed
    assert channel.unsubscribe_calls == 2
    assert statuses == [ChannelStatus.SUBSCRIBED, ChannelStatus.CLOSED]
    assert feed.open_channels == []


def test_opened_tracks_history():
    feed = InMemoryChangeFeed()
    a = _open(feed, name="a")
    _open(feed, name="b")
    a.unsubscribe()
    assert [c.name for c in feed.opened] == ["a", "b"]
    assert feed.open_channels == ["b"]
    assert feed.channel("a") is None


def test_invalid_filter_does_not_block_other_channels(caplog):
    feed = InMemoryChangeFeed()
    broken, good = [], []
    _open(feed, name="requests:garbage",
          config=ChannelConfig(table="requests", filter="garbage"), handler=broken.append)
    _open(feed, name="requests", handler=good.append)

    delivered = feed.emit_change("requests", "INSERT", {"id": 1})

    assert delivered == 1
    assert broken == []
    assert [p.new["id"] for p in good] == [1]
    assert "invalid filter" in caplog.text
