"""
Change Serializer

Converts between ChangePayload objects and the JSON strings carried over
Redis pub/sub.

Wire format (envelope):
  {
    "topic": "realtime:public:requests",
    "data": { "schema": ..., "table": ..., "eventType": ..., "new": {...}, "old": {...} }
  }
"""
from __future__ import annotations

import json
from typing import Any

from .models import ChangePayload

TOPIC_PREFIX = "realtime"


class SerializationError(Exception):
    """Raised when serialization or deserialization fails."""


def topic_for(schema: str, table: str) -> str:
    """Redis channel that carries every change for schema.table."""
    return f"{TOPIC_PREFIX}:{schema}:{table}"


def serialize(payload: ChangePayload) -> str:
    """
    Encode a change payload into a JSON envelope for Redis.

    Raises SerializationError if encoding fails.
    """
    envelope: dict[str, Any] = {
        "topic": topic_for(payload.schema, payload.table),
        "data": payload.to_dict(),
    }
    try:
        return json.dumps(envelope, default=str)
    except (TypeError, ValueError) as exc:
        raise SerializationError(f"Failed to serialize change payload: {exc}") from exc


def deserialize(raw: str | bytes) -> ChangePayload:
    """
    Decode a JSON envelope from Redis into a ChangePayload.

    Raises SerializationError if decoding fails or the envelope is malformed.
    """
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8")
    try:
        envelope = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise SerializationError(f"Failed to deserialize change payload: {exc}") from exc

    if not isinstance(envelope, dict) or "topic" not in envelope or "data" not in envelope:
        got = list(envelope.keys()) if isinstance(envelope, dict) else type(envelope).__name__
        raise SerializationError(
            f"Malformed change envelope — expected {{topic, data}}, got: {got}"
        )

    try:
        return ChangePayload.from_dict(envelope["data"])
    except (KeyError, TypeError, ValueError) as exc:
        raise SerializationError(f"Malformed change payload: {exc}") from exc
