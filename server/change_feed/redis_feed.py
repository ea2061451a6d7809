"""
Redis Change Feed

ChangeFeedTransport backed by Redis pub/sub. Row changes are published
(see ChangePublisher) to one topic per table:

    realtime:{schema}:{table}

Each RedisChannel owns one PubSub connection. subscribe() returns at once
and spawns a reader task on the running loop; the status callback reports
SUBSCRIBED when the Redis subscription is live, or CHANNEL_ERROR if it
fails. unsubscribe() cancels the task, whose cleanup closes the PubSub.

Usage:
    feed = RedisChangeFeed(redis_url="redis://localhost:6379/0")
    channel = feed.open_channel("requests")
    channel.on(POSTGRES_CHANGES, {"event": "*", "schema": "public",
                                  "table": "requests", "filter": None}, handler)
    channel.subscribe(lambda status, err: print(status))
    ...
    channel.unsubscribe()
    await feed.close()
"""
from __future__ import annotations

import asyncio
import logging

from redis.asyncio import Redis
from redis.asyncio.client import PubSub
from redis.exceptions import RedisError

from .filters import FilterError, matches_spec
from .interface import ChangeHandler, FilterSpec, StatusCallback
from .models import ChangePayload, ChannelStatus
from .serializer import SerializationError, deserialize, topic_for

logger = logging.getLogger(__name__)


class RedisChannel:
    """A ChannelHandle reading one or more Redis topics."""

    def __init__(self, name: str, redis: Redis, poll_timeout: float = 1.0) -> None:
        self._name = name
        self._redis = redis
        self._poll_timeout = poll_timeout
        self._handlers: list[tuple[str, FilterSpec, ChangeHandler]] = []
        self._status_callback: StatusCallback | None = None
        self._task: asyncio.Task[None] | None = None
        self._closed = False

    @property
    def name(self) -> str:
        return self._name

    @property
    def topics(self) -> list[str]:
        """Redis topics this channel reads, derived from its handlers."""
        return sorted(
            {topic_for(spec.get("schema") or "public", spec["table"]) for _, spec, _ in self._handlers}
        )

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def closed(self) -> bool:
        return self._closed

    # ── ChannelHandle ─────────────────────────────────────────────────────────

    def on(
        self,
        event_kind: str,
        filter_spec: FilterSpec,
        handler: ChangeHandler,
    ) -> RedisChannel:
        self._handlers.append((event_kind, dict(filter_spec), handler))
        return self

    def subscribe(self, status_callback: StatusCallback | None = None) -> RedisChannel:
        self._status_callback = status_callback
        if self._closed:
            self._report(ChannelStatus.CLOSED, None)
            return self
        if not self._handlers:
            self._report(ChannelStatus.CHANNEL_ERROR, ValueError("no handlers registered"))
            return self
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as exc:
            self._report(ChannelStatus.CHANNEL_ERROR, exc)
            return self

        self._task = loop.create_task(self._run(), name=f"realtime-channel:{self._name}")
        return self

    def unsubscribe(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
        logger.debug("RedisChannel %s unsubscribed", self._name)

    async def wait_closed(self) -> None:
        """Wait for the reader task to finish its cleanup."""
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    # ── Reader task ───────────────────────────────────────────────────────────

    async def _run(self) -> None:
        topics = self.topics
        pubsub: PubSub = self._redis.pubsub(ignore_subscribe_messages=True)
        try:
            try:
                await pubsub.subscribe(*topics)
            except RedisError as exc:
                logger.error("RedisChannel %s failed to subscribe to %s: %s", self._name, topics, exc)
                self._report(ChannelStatus.CHANNEL_ERROR, exc)
                return

            logger.info("RedisChannel %s subscribed to %s", self._name, topics)
            self._report(ChannelStatus.SUBSCRIBED, None)

            while True:
                try:
                    message = await pubsub.get_message(
                        ignore_subscribe_messages=True,
                        timeout=self._poll_timeout,
                    )
                except RedisError as exc:
                    logger.error("RedisChannel %s lost its subscription: %s", self._name, exc)
                    self._report(ChannelStatus.CHANNEL_ERROR, exc)
                    return

                if message is None or message.get("type") != "message":
                    continue
                raw = message.get("data")
                if raw is None:
                    continue
                self._dispatch(raw)
        finally:
            await self._close_pubsub(pubsub)
            self._report(ChannelStatus.CLOSED, None)

    async def _close_pubsub(self, pubsub: PubSub) -> None:
        try:
            await pubsub.unsubscribe()
            await pubsub.aclose()
        except RedisError as exc:
            logger.warning("RedisChannel %s: error closing pubsub: %s", self._name, exc)

    def _dispatch(self, raw: str | bytes) -> None:
        try:
            payload: ChangePayload = deserialize(raw)
        except SerializationError as exc:
            logger.warning("RedisChannel %s dropped undecodable message: %s", self._name, exc)
            return

        for _kind, spec, handler in list(self._handlers):
            try:
                if not matches_spec(spec, payload):
                    continue
            except FilterError as exc:
                logger.error("RedisChannel %s has an invalid filter: %s", self._name, exc)
                continue
            try:
                handler(payload)
            except Exception:
                logger.exception("RedisChannel %s handler failed", self._name)

    def _report(self, status: ChannelStatus, error: Exception | None) -> None:
        if self._status_callback is None:
            return
        try:
            self._status_callback(status, error)
        except Exception:
            logger.exception("RedisChannel %s status callback failed", self._name)


class RedisChangeFeed:
    """
    Opens RedisChannels that share one Redis client.

    Args:
        redis_url:    Redis connection URL (e.g. "redis://localhost:6379/0").
        poll_timeout: Seconds each reader waits for a message per poll.
    """

    def __init__(self, redis_url: str, *, poll_timeout: float = 1.0) -> None:
        self._redis_url = redis_url
        self._poll_timeout = poll_timeout
        self._redis: Redis = Redis.from_url(redis_url, decode_responses=False)
        self._channels: list[RedisChannel] = []

    def open_channel(self, name: str) -> RedisChannel:
        self._channels = [c for c in self._channels if not c.closed or c.running]
        channel = RedisChannel(name, self._redis, poll_timeout=self._poll_timeout)
        self._channels.append(channel)
        return channel

    async def close(self) -> None:
        """Close every channel, wait for their readers, then close the shared client."""
        for channel in self._channels:
            channel.unsubscribe()
        await asyncio.gather(*(channel.wait_closed() for channel in self._channels))
        self._channels.clear()
        await self._redis.aclose()
        logger.info("RedisChangeFeed disconnected from Redis")
