"""
realtime_manager — bounded, deduplicating change-feed channel manager.

Public API:
    ChannelRegistry          — listen/remove/remove_channel/destroy_all
    ConnectionLimitExceeded  — raised when the channel cap is reached
    Subscription             — owner-side handle around listen/remove
    invalidate_on_change     — subscription that just calls invalidate()
    ConnectionMonitor        — periodic debug snapshots
"""
from .errors import ConnectionLimitExceeded, RealtimeError
from .monitor import ConnectionMonitor, format_debug_info
from .registry import ChannelEntry, ChannelRegistry
from .subscription import Subscription, invalidate_on_change

__all__ = [
    "ChannelEntry",
    "ChannelRegistry",
    "ConnectionLimitExceeded",
    "ConnectionMonitor",
    "RealtimeError",
    "Subscription",
    "format_debug_info",
    "invalidate_on_change",
]
