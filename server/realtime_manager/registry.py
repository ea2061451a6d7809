"""
Channel Registry

Multiplexes in-process "listen to changes on X" requests onto a bounded set
of change-feed channels.

- Deduplication: listen() calls that resolve to the same channel name share
  one transport channel; each caller's callback joins its fan-out set.
- Connection cap: at most max_channels channels exist at once. A listen()
  that would open one more raises ConnectionLimitExceeded.
- Reference counting: remove() closes the channel synchronously when its
  last callback goes away.
- Idle reclamation: a periodic sweep closes channels with no activity for
  longer than inactive_timeout.

Every public method runs to completion without awaiting, so check-then-act
on the channel map cannot interleave with another caller on the same loop.

Usage:
    registry = ChannelRegistry(RedisChangeFeed(redis_url))
    registry.start()                                   # from a running loop

    name = registry.listen({"table": "requests", "event": "INSERT"}, on_change)
    ...
    registry.remove(name, on_change)

    registry.destroy_all()                             # on shutdown
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional

from change_feed.interface import POSTGRES_CHANGES, ChangeFeedTransport, ChannelHandle
from change_feed.models import ChangePayload, ChannelConfig, ChannelStatus, channel_name

from .config import (
    DEFAULT_INACTIVE_TIMEOUT_MS,
    DEFAULT_MAX_CHANNELS,
    DEFAULT_SWEEP_INTERVAL_MS,
    RegistryConfig,
)
from .errors import ConnectionLimitExceeded, RealtimeError

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[ChangePayload], Any]
ConfigLike = ChannelConfig | Mapping[str, Any] | str


@dataclass
class ChannelEntry:
    """Live state for one channel name."""

    handle: ChannelHandle
    config: ChannelConfig
    created_at: float
    last_used: float
    # id(callback) -> callback; insertion-ordered, identity-unique
    callbacks: dict[int, ChangeCallback] = field(default_factory=dict)


class ChannelRegistry:
    """
    Owns the mapping from channel names to open transport channels.

    Args:
        transport:         Change-feed backend that opens channels.
        max_channels:      Hard cap on concurrently open channels.
        inactive_timeout:  Seconds without activity before the sweep reclaims
                           a channel.
        sweep_interval:    Seconds between idle sweeps.
        clock:             Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        transport: ChangeFeedTransport,
        *,
        max_channels: int = DEFAULT_MAX_CHANNELS,
        inactive_timeout: float = DEFAULT_INACTIVE_TIMEOUT_MS / 1000,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL_MS / 1000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_channels <= 0:
            raise ValueError("max_channels must be positive")
        self._transport = transport
        self._max_channels = max_channels
        self._inactive_timeout = inactive_timeout
        self._sweep_interval = sweep_interval
        self._clock = clock
        self._channels: dict[str, ChannelEntry] = {}
        self._sweep_task: Optional[asyncio.Task[None]] = None
        self._logging_enabled = True

    @classmethod
    def from_config(
        cls,
        transport: ChangeFeedTransport,
        config: RegistryConfig,
        **kwargs: Any,
    ) -> ChannelRegistry:
        """Build a registry from a RegistryConfig."""
        registry = cls(
            transport,
            max_channels=config.max_channels,
            inactive_timeout=config.inactive_timeout,
            sweep_interval=config.sweep_interval,
            **kwargs,
        )
        registry.set_logging(config.logging_enabled)
        return registry

    # ── Configuration ─────────────────────────────────────────────────────────

    @property
    def max_channels(self) -> int:
        return self._max_channels

    @property
    def inactive_timeout(self) -> float:
        return self._inactive_timeout

    def set_logging(self, enabled: bool) -> None:
        """Enable or disable channel lifecycle logging."""
        self._logging_enabled = enabled

    def set_transport(self, transport: ChangeFeedTransport) -> None:
        """Swap the change-feed backend. Only allowed while no channels are open."""
        if self._channels:
            raise RealtimeError(
                "Cannot swap transport while channels are open",
                {"active": len(self._channels)},
            )
        self._transport = transport

    def _log(self, message: str, *args: Any, level: int = logging.INFO, **kwargs: Any) -> None:
        if self._logging_enabled:
            logger.log(level, message, *args, **kwargs)

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    def start(self) -> None:
        """
        Start the periodic idle sweep on the running event loop.

        Calling start() while the sweep is already running is a no-op.
        """
        if self._sweep_task is not None and not self._sweep_task.done():
            return
        loop = asyncio.get_running_loop()
        self._sweep_task = loop.create_task(self._sweep_loop(), name="realtime-idle-sweep")
        self._log("idle sweep started (every %.0fs, timeout %.0fs)",
                  self._sweep_interval, self._inactive_timeout)

    @property
    def sweeping(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            try:
                self.sweep_idle()
            except Exception:
                logger.exception("Idle sweep failed")

    def destroy_all(self) -> None:
        """
        Close every channel and stop the idle sweep.

        Per-channel close failures are logged and do not stop the rest.
        Calling destroy_all() again is a no-op.
        """
        if self._channels:
            self._log("destroying all channels (%d active)", len(self._channels))

        for name, entry in list(self._channels.items()):
            try:
                entry.handle.unsubscribe()
                self._log("channel destroyed: %s", name)
            except Exception:
                logger.exception("Error destroying channel %s", name)

        self._channels.clear()

        if self._sweep_task is not None:
            self._sweep_task.cancel()
            self._sweep_task = None

    # ── Listen / remove ───────────────────────────────────────────────────────

    def listen(
        self,
        config: ConfigLike,
        callback: ChangeCallback,
        explicit_name: str | None = None,
    ) -> str:
        """
        Register callback for changes matching config.

        Reuses the open channel with the same resolved name when there is
        one; otherwise opens a new channel. Returns the channel name to pass
        to remove().

        Raises:
            ConnectionLimitExceeded: If a new channel is needed and
                                     max_channels are already open.
        """
        full_config = ChannelConfig.coerce(config)
        name = channel_name(full_config, explicit_name)

        existing = self._channels.get(name)
        if existing is not None:
            existing.callbacks.setdefault(id(callback), callback)
            existing.last_used = self._clock()
            self._log("channel reused: %s (%d callbacks)", name, len(existing.callbacks))
            return name

        if len(self._channels) >= self._max_channels:
            active = self.get_active_channels()
            logger.error(
                "Connection limit reached",
                extra={"limit": self._max_channels, "active": active, "requested": name},
            )
            raise ConnectionLimitExceeded(self._max_channels, active)

        handle = self._transport.open_channel(name)
        try:
            handle.on(POSTGRES_CHANGES, full_config.filter_spec(), self._make_dispatcher(name, handle))
        except Exception:
            self._close_handle(name, handle)
            raise

        now = self._clock()
        self._channels[name] = ChannelEntry(
            handle=handle,
            config=full_config,
            created_at=now,
            last_used=now,
            callbacks={id(callback): callback},
        )
        self._log("channel created: %s (total: %d)", name, len(self._channels))

        try:
            handle.subscribe(self._make_status_callback(name))
        except Exception:
            logger.exception("Transport subscribe failed for channel %s", name)

        return name

    def remove(self, name: str, callback: ChangeCallback) -> None:
        """
        Drop callback from a channel; close the channel if none remain.

        Unknown names are logged and ignored.
        """
        entry = self._channels.get(name)
        if entry is None:
            self._log("attempted to remove non-existent channel: %s", name, level=logging.WARNING)
            return

        entry.callbacks.pop(id(callback), None)

        if entry.callbacks:
            self._log("callback removed from: %s (%d callbacks remaining)",
                      name, len(entry.callbacks))
            return

        self._log("channel unsubscribed: %s (no callbacks remaining)", name)
        del self._channels[name]
        self._close_handle(name, entry.handle)

    def remove_channel(self, name: str) -> None:
        """Close a channel regardless of its callbacks. Unknown names are ignored."""
        entry = self._channels.pop(name, None)
        if entry is None:
            return
        self._log("channel force removed: %s", name)
        self._close_handle(name, entry.handle)

    def sweep_idle(self) -> list[str]:
        """
        Close every channel idle for longer than inactive_timeout.

        Channels are reclaimed on elapsed time alone, including channels that
        still have callbacks. Returns the names that were closed.
        """
        now = self._clock()
        stale = [
            (name, now - entry.last_used)
            for name, entry in self._channels.items()
            if now - entry.last_used > self._inactive_timeout
        ]
        for name, idle in stale:
            self._log("channel auto-cleaned: %s (inactive for %ds)", name, round(idle))
            self.remove_channel(name)
        return [name for name, _ in stale]

    # ── Transport glue ────────────────────────────────────────────────────────

    def _make_dispatcher(self, name: str, handle: ChannelHandle) -> Callable[[ChangePayload], None]:
        def dispatch(payload: ChangePayload) -> None:
            entry = self._channels.get(name)
            # Channel closed or replaced while the event was in flight
            if entry is None or entry.handle is not handle:
                return
            entry.last_used = self._clock()
            for callback in list(entry.callbacks.values()):
                try:
                    callback(payload)
                except Exception:
                    logger.exception("Error in callback for %s", name)

        return dispatch

    def _make_status_callback(self, name: str) -> Callable[[ChannelStatus, Optional[Exception]], None]:
        def on_status(status: ChannelStatus, error: Optional[Exception] = None) -> None:
            if status is ChannelStatus.SUBSCRIBED:
                self._log("channel subscribed: %s", name)
            elif status in (ChannelStatus.CHANNEL_ERROR, ChannelStatus.TIMED_OUT):
                logger.error(
                    "channel error: %s (%s)",
                    name,
                    status.value,
                    extra={"channel": name, "error": str(error) if error else None},
                )
            else:
                self._log("channel status: %s %s", name, status.value, level=logging.DEBUG)

        return on_status

    def _close_handle(self, name: str, handle: ChannelHandle) -> None:
        try:
            handle.unsubscribe()
        except Exception:
            logger.exception("Error closing channel %s", name)

    # ── Diagnostics ───────────────────────────────────────────────────────────

    def get_connection_count(self) -> int:
        return len(self._channels)

    def get_active_channels(self) -> list[str]:
        return list(self._channels.keys())

    def get_debug_info(self) -> dict[str, Any]:
        """Snapshot of every open channel for monitoring. Read-only."""
        now = self._clock()
        wall_now = time.time()

        def _iso(ts: float) -> str:
            return datetime.fromtimestamp(wall_now - (now - ts), tz=timezone.utc).isoformat()

        return {
            "total_channels": len(self._channels),
            "max_channels": self._max_channels,
            "channels": [
                {
                    "name": name,
                    "callbacks": len(entry.callbacks),
                    "created_at": _iso(entry.created_at),
                    "last_used": _iso(entry.last_used),
                    "inactive_time_ms": int((now - entry.last_used) * 1000),
                    "config": entry.config.to_dict(),
                }
                for name, entry in self._channels.items()
            ],
        }
