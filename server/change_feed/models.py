"""
Change Feed Models

Plain data types shared by every transport and by the channel registry.

A ChannelConfig describes *what* to listen to (table, schema, event type,
row predicate). A ChangePayload is one row-level change delivered by the
backend. channel_name() turns a config into the deterministic key the
registry deduplicates on.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

DEFAULT_SCHEMA = "public"

_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]")


class ChangeEvent(str, Enum):
    """Row-level event types a channel can listen to."""

    ALL = "*"
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"

    @classmethod
    def _missing_(cls, value: object) -> ChangeEvent | None:
        # Member names ("ALL", "insert") resolve as well as wire values ("*")
        return cls.__members__.get(str(value).upper())


class ChannelStatus(str, Enum):
    """Statuses reported by a transport through the subscribe callback."""

    SUBSCRIBED = "SUBSCRIBED"
    CHANNEL_ERROR = "CHANNEL_ERROR"
    TIMED_OUT = "TIMED_OUT"
    CLOSED = "CLOSED"


@dataclass(frozen=True)
class ChannelConfig:
    """What a channel listens to."""

    table: str
    schema: str = DEFAULT_SCHEMA
    event: ChangeEvent = ChangeEvent.ALL
    filter: str | None = None

    def __post_init__(self) -> None:
        if not self.table:
            raise ValueError("ChannelConfig.table must be a non-empty string")
        # Accept "INSERT" / "*" as well as the enum member
        if not isinstance(self.event, ChangeEvent):
            object.__setattr__(self, "event", ChangeEvent(self.event))

    @classmethod
    def coerce(cls, value: ChannelConfig | Mapping[str, Any] | str) -> ChannelConfig:
        """
        Build a ChannelConfig from any of the accepted shapes.

        A bare string is shorthand for {"table": value}. Mappings may omit
        every key except "table"; None values fall back to the defaults.
        """
        if isinstance(value, ChannelConfig):
            return value
        if isinstance(value, str):
            return cls(table=value)
        if isinstance(value, Mapping):
            return cls(
                table=value.get("table") or "",
                schema=value.get("schema") or DEFAULT_SCHEMA,
                event=value.get("event") or ChangeEvent.ALL,
                filter=value.get("filter"),
            )
        raise TypeError(f"Unsupported channel config type: {type(value).__name__}")

    def filter_spec(self) -> dict[str, Any]:
        """The filter spec handed to ChannelHandle.on()."""
        return {
            "event": self.event.value,
            "schema": self.schema,
            "table": self.table,
            "filter": self.filter,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "table": self.table,
            "schema": self.schema,
            "event": self.event.value,
            "filter": self.filter,
        }


@dataclass(frozen=True)
class ChangePayload:
    """One row-level change emitted by the backend."""

    schema: str
    table: str
    event_type: ChangeEvent
    new: dict[str, Any] = field(default_factory=dict)
    old: dict[str, Any] = field(default_factory=dict)
    commit_timestamp: str | None = None
    errors: list[str] | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.event_type, ChangeEvent):
            object.__setattr__(self, "event_type", ChangeEvent(self.event_type))
        if self.event_type is ChangeEvent.ALL:
            raise ValueError("ChangePayload.event_type must be INSERT, UPDATE or DELETE")

    @property
    def record(self) -> dict[str, Any]:
        """The row the change is about: old row for deletes, new row otherwise."""
        if self.event_type is ChangeEvent.DELETE:
            return self.old
        return self.new

    def to_dict(self) -> dict[str, Any]:
        return {
            "schema": self.schema,
            "table": self.table,
            "eventType": self.event_type.value,
            "new": self.new,
            "old": self.old,
            "commit_timestamp": self.commit_timestamp,
            "errors": self.errors,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ChangePayload:
        return cls(
            schema=data["schema"],
            table=data["table"],
            event_type=ChangeEvent(data["eventType"]),
            new=dict(data.get("new") or {}),
            old=dict(data.get("old") or {}),
            commit_timestamp=data.get("commit_timestamp"),
            errors=data.get("errors"),
        )


def channel_name(config: ChannelConfig, explicit_name: str | None = None) -> str:
    """
    Resolve the channel name for a config.

    An explicit name is used verbatim. Otherwise the name is the table,
    followed by ":" and the filter with every non-alphanumeric character
    replaced by "_". Identical (table, filter) pairs always collide.
    """
    if explicit_name:
        return explicit_name
    if config.filter:
        return f"{config.table}:{_NON_ALNUM.sub('_', config.filter)}"
    return config.table
