"""
change_feed — Row-level change-feed transports.

Public API:
    ChangeFeedTransport, ChannelHandle — transport protocols
    InMemoryChangeFeed                 — process-local transport (dev/tests)
    RedisChangeFeed                    — Redis pub/sub transport
    ChangePublisher                    — publish changes to Redis topics
    ChannelConfig, ChangePayload       — data models
    channel_name                       — deterministic channel naming
    parse_filter, matches_spec         — row predicate matching
"""
from .filters import FilterError, RowFilter, matches_spec, parse_filter
from .interface import POSTGRES_CHANGES, ChangeFeedTransport, ChannelHandle
from .memory import InMemoryChangeFeed
from .models import ChangeEvent, ChangePayload, ChannelConfig, ChannelStatus, channel_name
from .publisher import ChangePublisher, PublisherError
from .redis_feed import RedisChangeFeed
from .serializer import SerializationError, deserialize, serialize, topic_for

__all__ = [
    "POSTGRES_CHANGES",
    "ChangeEvent",
    "ChangeFeedTransport",
    "ChangePayload",
    "ChangePublisher",
    "ChannelConfig",
    "ChannelHandle",
    "ChannelStatus",
    "FilterError",
    "InMemoryChangeFeed",
    "PublisherError",
    "RedisChangeFeed",
    "RowFilter",
    "SerializationError",
    "channel_name",
    "deserialize",
    "matches_spec",
    "parse_filter",
    "serialize",
    "topic_for",
]
