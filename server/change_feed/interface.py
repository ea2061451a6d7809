"""
Change Feed Protocol Definitions

Abstract interfaces every change-feed backend must satisfy. The channel
registry depends only on these protocols; the in-memory transport and the
Redis transport are interchangeable behind them.
"""
from __future__ import annotations

from typing import Any, Callable, Optional, Protocol, runtime_checkable

from .models import ChangePayload, ChannelStatus

# Event kind for row-level changes
POSTGRES_CHANGES = "postgres_changes"

FilterSpec = dict[str, Any]
ChangeHandler = Callable[[ChangePayload], None]
StatusCallback = Callable[[ChannelStatus, Optional[Exception]], None]


@runtime_checkable
class ChannelHandle(Protocol):
    """One open duplex channel on the change feed."""

    @property
    def name(self) -> str:
        ...

    def on(
        self,
        event_kind: str,
        filter_spec: FilterSpec,
        handler: ChangeHandler,
    ) -> ChannelHandle:
        """
        Register handler for events of event_kind matching filter_spec.

        Must be called before subscribe(). Returns self for chaining.
        """
        ...

    def subscribe(self, status_callback: StatusCallback | None = None) -> ChannelHandle:
        """
        Activate the channel.

        Returns immediately; status_callback(status, error) is invoked later
        with SUBSCRIBED once live, or CHANNEL_ERROR / TIMED_OUT on failure.
        """
        ...

    def unsubscribe(self) -> None:
        """Close the channel. Safe to call more than once."""
        ...


@runtime_checkable
class ChangeFeedTransport(Protocol):
    """Factory for named channels on a change-feed backend."""

    def open_channel(self, name: str) -> ChannelHandle:
        ...
