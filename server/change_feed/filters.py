"""
Row Filters

Parses the PostgREST-style predicate strings carried by ChannelConfig.filter
and matches them against change payloads.

Syntax:
    column=op.value          e.g. emergency=eq.true, price=gte.10
    column=in.(a,b,c)        e.g. status=in.(open,matched)

Supported operators: eq, neq, lt, lte, gt, gte, in.
"""
from __future__ import annotations

import operator
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from .models import ChangeEvent, ChangePayload


class FilterError(ValueError):
    """Raised when a filter string cannot be parsed."""


_ORDERING: dict[str, Callable[[Any, Any], bool]] = {
    "lt": operator.lt,
    "lte": operator.le,
    "gt": operator.gt,
    "gte": operator.ge,
}

OPERATORS = frozenset({"eq", "neq", "in", *_ORDERING})


def _as_text(value: Any) -> str:
    """Render a row value the way it appears in a filter string."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _as_number(text: str) -> float | None:
    try:
        return float(text)
    except ValueError:
        return None


@dataclass(frozen=True)
class RowFilter:
    """A parsed `column=op.value` predicate."""

    column: str
    op: str
    values: tuple[str, ...]

    def matches(self, record: Mapping[str, Any]) -> bool:
        if self.column not in record:
            return False
        actual = _as_text(record[self.column])

        if self.op == "eq":
            return actual == self.values[0]
        if self.op == "neq":
            return actual != self.values[0]
        if self.op == "in":
            return actual in self.values

        expected = self.values[0]
        compare = _ORDERING[self.op]
        left, right = _as_number(actual), _as_number(expected)
        if left is not None and right is not None:
            return compare(left, right)
        return compare(actual, expected)


def parse_filter(expression: str) -> RowFilter:
    """
    Parse a filter string into a RowFilter.

    Raises:
        FilterError: If the expression is not `column=op.value` or the
                     operator is unknown.
    """
    column, sep, rest = expression.partition("=")
    op, dot, raw_value = rest.partition(".")
    if not sep or not dot or not column.strip():
        raise FilterError(f"Malformed filter '{expression}' — expected column=op.value")

    op = op.strip()
    if op not in OPERATORS:
        raise FilterError(f"Unsupported filter operator '{op}' in '{expression}'")

    if op == "in":
        if not (raw_value.startswith("(") and raw_value.endswith(")")):
            raise FilterError(f"Filter 'in' expects a parenthesised list: '{expression}'")
        values = tuple(v.strip() for v in raw_value[1:-1].split(",") if v.strip())
        if not values:
            raise FilterError(f"Filter 'in' list is empty: '{expression}'")
    else:
        values = (raw_value,)

    return RowFilter(column=column.strip(), op=op, values=values)


def matches_spec(filter_spec: Mapping[str, Any], payload: ChangePayload) -> bool:
    """
    Return True when payload should be delivered to a handler registered
    with filter_spec (as produced by ChannelConfig.filter_spec()).
    """
    if filter_spec.get("schema", "public") != payload.schema:
        return False
    if filter_spec.get("table") != payload.table:
        return False

    event = filter_spec.get("event") or ChangeEvent.ALL.value
    if event != ChangeEvent.ALL.value and event != payload.event_type.value:
        return False

    expression = filter_spec.get("filter")
    if not expression:
        return True
    return parse_filter(expression).matches(payload.record)
