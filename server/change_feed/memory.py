"""
In-Memory Change Feed

Synchronous, process-local implementation of the change-feed protocols for
local development and tests. emit() plays the role of the database: every
subscribed channel whose filter spec matches the payload receives it.
Swap for RedisChangeFeed with zero changes to registry code.
"""
from __future__ import annotations

import logging
from typing import Any

from .filters import FilterError, matches_spec
from .interface import ChangeHandler, FilterSpec, StatusCallback
from .models import ChangePayload, ChannelStatus

logger = logging.getLogger(__name__)


class InMemoryChannel:
    """A ChannelHandle backed by plain Python lists."""

    def __init__(self, name: str, feed: InMemoryChangeFeed) -> None:
        self._name = name
        self._feed = feed
        self._handlers: list[tuple[str, FilterSpec, ChangeHandler]] = []
        self._status_callback: StatusCallback | None = None
        self.subscribed = False
        self.closed = False
        self.unsubscribe_calls = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def handlers(self) -> list[tuple[str, FilterSpec, ChangeHandler]]:
        return list(self._handlers)

    def on(
        self,
        event_kind: str,
        filter_spec: FilterSpec,
        handler: ChangeHandler,
    ) -> InMemoryChannel:
        self._handlers.append((event_kind, dict(filter_spec), handler))
        return self

    def subscribe(self, status_callback: StatusCallback | None = None) -> InMemoryChannel:
        self._status_callback = status_callback
        if self._feed.fail_subscribe:
            status = ChannelStatus.CHANNEL_ERROR
            error: Exception | None = RuntimeError("subscription rejected")
        else:
            self.subscribed = True
            status, error = ChannelStatus.SUBSCRIBED, None
        if status_callback is not None:
            status_callback(status, error)
        return self

    def unsubscribe(self) -> None:
        self.unsubscribe_calls += 1
        if self.closed:
            return
        self.closed = True
        self.subscribed = False
        self._handlers.clear()
        self._feed._release(self)
        if self._status_callback is not None:
            self._status_callback(ChannelStatus.CLOSED, None)

    def deliver(self, payload: ChangePayload) -> int:
        """Dispatch payload to every matching handler. Returns handlers invoked."""
        if not self.subscribed:
            return 0
        invoked = 0
        for _kind, spec, handler in list(self._handlers):
            try:
                if not matches_spec(spec, payload):
                    continue
            except FilterError as exc:
                logger.error("InMemoryChannel %s has an invalid filter: %s", self._name, exc)
                continue
            handler(payload)
            invoked += 1
        return invoked


class InMemoryChangeFeed:
    """
    Dev transport that satisfies ChangeFeedTransport.

    Tracks every channel it ever opened so tests can assert on how many
    transport channels a sequence of listen() calls produced.
    """

    def __init__(self) -> None:
        self._open: dict[str, InMemoryChannel] = {}
        self._opened: list[InMemoryChannel] = []
        self.fail_subscribe = False

    def open_channel(self, name: str) -> InMemoryChannel:
        channel = InMemoryChannel(name, self)
        self._open[name] = channel
        self._opened.append(channel)
        logger.debug("Opened in-memory channel %s", name)
        return channel

    def _release(self, channel: InMemoryChannel) -> None:
        if self._open.get(channel.name) is channel:
            del self._open[channel.name]

    def emit(self, payload: ChangePayload) -> int:
        """
        Deliver a change to every open channel.

        Returns the number of handlers invoked across all channels.
        """
        delivered = 0
        for channel in list(self._open.values()):
            delivered += channel.deliver(payload)
        logger.debug(
            "Emitted %s on %s.%s to %d handler(s)",
            payload.event_type.value,
            payload.schema,
            payload.table,
            delivered,
        )
        return delivered

    def emit_change(
        self,
        table: str,
        event_type: str,
        new: dict[str, Any] | None = None,
        old: dict[str, Any] | None = None,
        schema: str = "public",
    ) -> int:
        """Shorthand for emit(ChangePayload(...))."""
        return self.emit(
            ChangePayload(
                schema=schema,
                table=table,
                event_type=event_type,
                new=new or {},
                old=old or {},
            )
        )

    # ------------------------------------------------------------------
    # Introspection (for tests)
    # ------------------------------------------------------------------

    def channel(self, name: str) -> InMemoryChannel | None:
        """The currently open channel called name, if any."""
        return self._open.get(name)

    @property
    def opened(self) -> list[InMemoryChannel]:
        """Every channel ever opened, in order."""
        return list(self._opened)

    @property
    def open_channels(self) -> list[str]:
        return list(self._open.keys())
