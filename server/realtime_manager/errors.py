"""
Realtime Manager Exceptions

Only ConnectionLimitExceeded ever reaches callers of the registry; every
other failure (callback errors, transport errors) is logged and absorbed.
"""
from __future__ import annotations

from typing import Any, Optional, Sequence


class RealtimeError(Exception):
    """Base exception for all realtime manager errors."""

    def __init__(
        self,
        message: str,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} [{ctx_str}]"
        return self.message


class ConnectionLimitExceeded(RealtimeError):
    """Raised by listen() when opening a new channel would exceed the cap."""

    def __init__(
        self,
        limit: int,
        active_channels: Sequence[str],
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        message = (
            f"Maximum channel limit ({limit}) reached. "
            f"Active channels: {', '.join(active_channels)}"
        )
        super().__init__(message, context)
        self.limit = limit
        self.active_channels = list(active_channels)
