"""
Connection Monitor

Dev tool that periodically snapshots the registry and logs it. Warns when
the number of open channels climbs past warn_threshold so runaway
subscriptions are noticed before the hard cap starts rejecting listen().
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from .registry import ChannelRegistry

logger = logging.getLogger(__name__)

FILTER_PREVIEW_CHARS = 30


def format_debug_info(info: dict[str, Any]) -> str:
    """Render ChannelRegistry.get_debug_info() as a human-readable block."""
    lines = [f"Active Channels: {info['total_channels']} / {info['max_channels']}"]
    for channel in info["channels"]:
        config = channel["config"]
        detail = (
            f"  {channel['name']}: Callbacks: {channel['callbacks']} | "
            f"Inactive: {round(channel['inactive_time_ms'] / 1000)}s | "
            f"Table: {config['table']}"
        )
        if config.get("filter"):
            detail += f" | Filter: {config['filter'][:FILTER_PREVIEW_CHARS]}..."
        lines.append(detail)
    return "\n".join(lines)


class ConnectionMonitor:
    """
    Polls a ChannelRegistry on an interval.

    Args:
        registry:        The registry to observe.
        interval:        Seconds between snapshots.
        warn_threshold:  Log a warning while more than this many channels
                         are open.
    """

    def __init__(
        self,
        registry: ChannelRegistry,
        interval: float = 2.0,
        warn_threshold: int = 6,
    ) -> None:
        self._registry = registry
        self._interval = interval
        self._warn_threshold = warn_threshold
        self._task: Optional[asyncio.Task[None]] = None

    def check(self) -> dict[str, Any]:
        """Take one snapshot, log it, and return it."""
        info = self._registry.get_debug_info()
        if info["total_channels"] > self._warn_threshold:
            logger.warning(
                "High realtime connection count: %d / %d",
                info["total_channels"],
                info["max_channels"],
                extra={"channels": [c["name"] for c in info["channels"]]},
            )
        logger.debug("Realtime channels\n%s", format_debug_info(info))
        return info

    def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name="realtime-connection-monitor"
        )

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _run(self) -> None:
        while True:
            self.check()
            await asyncio.sleep(self._interval)
