"""
Subscription Handles

Owner-side wrapper around ChannelRegistry.listen()/remove(). A Subscription
remembers the channel name it was given and removes exactly the callback it
registered, so callers never juggle names by hand.

    with Subscription(registry, {"table": "messages"}, on_message) as sub:
        if not sub.active:
            fall_back_to_polling()
        ...

The callback registered with the registry is a stable trampoline bound to
this Subscription; retarget() swaps where events go without touching the
channel.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from change_feed.models import ChangePayload, ChannelConfig

from .errors import ConnectionLimitExceeded
from .registry import ChangeCallback, ChannelRegistry, ConfigLike

logger = logging.getLogger(__name__)


class Subscription:
    """One caller's registration on a registry channel."""

    def __init__(
        self,
        registry: ChannelRegistry,
        config: ConfigLike,
        callback: ChangeCallback,
        *,
        name: Optional[str] = None,
        enabled: bool = True,
    ) -> None:
        self._registry = registry
        self._config = ChannelConfig.coerce(config)
        self._target = callback
        self._explicit_name = name
        self._enabled = enabled
        self._channel_name: Optional[str] = None
        # Bound once: the registry keys callbacks by identity
        self._trampoline: ChangeCallback = self._deliver

    def _deliver(self, payload: ChangePayload) -> None:
        self._target(payload)

    @property
    def active(self) -> bool:
        return self._channel_name is not None

    @property
    def channel_name(self) -> Optional[str]:
        return self._channel_name

    @property
    def config(self) -> ChannelConfig:
        return self._config

    def retarget(self, callback: ChangeCallback) -> None:
        """Route future events to callback; the channel registration is kept."""
        self._target = callback

    def open(self) -> bool:
        """
        Register with the registry.

        Returns False when disabled or when the registry is at its channel
        limit; callers should degrade (e.g. poll) instead of failing.
        """
        if not self._enabled:
            return False
        if self._channel_name is not None:
            return True
        try:
            self._channel_name = self._registry.listen(
                self._config, self._trampoline, self._explicit_name
            )
        except ConnectionLimitExceeded as exc:
            logger.error("Error subscribing to %s: %s", self._config.table, exc)
            return False
        return True

    def close(self) -> None:
        """Remove this subscription's callback. Safe to call more than once."""
        if self._channel_name is None:
            return
        name, self._channel_name = self._channel_name, None
        self._registry.remove(name, self._trampoline)

    def __enter__(self) -> Subscription:
        self.open()
        return self

    def __exit__(self, *_: object) -> None:
        self.close()


def invalidate_on_change(
    registry: ChannelRegistry,
    table: str,
    invalidate: Callable[[], Any],
    *,
    filter: Optional[str] = None,
    name: Optional[str] = None,
    enabled: bool = True,
) -> Subscription:
    """
    Open a subscription that calls invalidate() on any change to table.

    Meant for cache invalidation: the payload is ignored, every change just
    marks the cached view stale.
    """
    subscription = Subscription(
        registry,
        ChannelConfig(table=table, filter=filter),
        lambda _payload: invalidate(),
        name=name,
        enabled=enabled,
    )
    subscription.open()
    return subscription
