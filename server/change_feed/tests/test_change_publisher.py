"""
Tests for change_feed.publisher

All Redis I/O is replaced with AsyncMock — no live Redis required.
"""
import json
from unittest.mock import AsyncMock, patch

import pytest
from redis.exceptions import RedisError

from change_feed.models import ChangePayload
from change_feed.publisher import ChangePublisher, PublisherError

PAYLOAD = ChangePayload(schema="public", table="requests", event_type="INSERT", new={"id": "r1"})


# ── Fixtures ──────────────────────────────────────────────────────────────────

@pytest.fixture
def mock_redis():
    """
    Patch change_feed.publisher.Redis so that Redis.from_url() returns
    an AsyncMock instance. Yields the mock Redis instance.
    """
    with patch("change_feed.publisher.Redis") as mock_cls:
        instance = AsyncMock()
        instance.ping = AsyncMock(return_value=True)
        instance.publish = AsyncMock(return_value=1)
        mock_cls.from_url.return_value = instance
        yield instance


@pytest.fixture
async def connected_publisher(mock_redis):
    publisher = ChangePublisher(redis_url="redis://localhost:6379/0")
    await publisher.connect()
    yield publisher
    await publisher.close()


# ── connect() ────────────────────────────────────────────────────────────────

async def test_connect_ping_failure_raises_publisher_error(mock_redis):
    mock_redis.ping.side_effect = RedisError("connection refused")

    publisher = ChangePublisher(redis_url="redis://localhost:6379/0")
    with pytest.raises(PublisherError, match="Cannot connect"):
        await publisher.connect()


# ── publish() ─────────────────────────────────────────────────────────────────

async def test_publish_before_connect_raises():
    publisher = ChangePublisher(redis_url="redis://localhost:6379/0")
    with pytest.raises(PublisherError, match="not connected"):
        await publisher.publish(PAYLOAD)


async def test_publish_targets_table_topic(connected_publisher, mock_redis):
    await connected_publisher.publish(PAYLOAD)

    topic, message = mock_redis.publish.call_args.args
    assert topic == "realtime:public:requests"
    envelope = json.loads(message)
    assert envelope["data"]["new"] == {"id": "r1"}


async def test_publish_returns_delivery_count(connected_publisher, mock_redis):
    mock_redis.publish.return_value = 3
    assert await connected_publisher.publish(PAYLOAD) == 3


async def test_publish_redis_error_raises_publisher_error(connected_publisher, mock_redis):
    mock_redis.publish.side_effect = RedisError("timeout")

    with pytest.raises(PublisherError, match="Redis publish failed"):
        await connected_publisher.publish(PAYLOAD)


# ── context manager ───────────────────────────────────────────────────────────

async def test_context_manager_connects_and_closes(mock_redis):
    async with ChangePublisher(redis_url="redis://localhost:6379/0") as pub:
        assert pub._redis is not None

    mock_redis.aclose.assert_called_once()
