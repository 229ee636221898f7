"""
Typed attribute values (``governance_kernel.domain.values``).

Responsibility
--------------
Change payloads are open-ended mappings of attribute id to value.  Before
any rule is evaluated, every value is converted into one member of a small
tagged variant so that the condition evaluator can dispatch on the value's
kind instead of probing arbitrary Python objects.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* ``NumberValue`` always holds a finite ``Decimal`` (never ``float``,
  never ``bool``).
* ``DateValue`` always holds a timezone-aware UTC ``datetime`` so that
  dates compare by instant.
* Choice values are restricted to the attribute's option set when one is
  supplied.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Union


class AttributeType(str, Enum):
    """Declared type of a configurable attribute."""

    TEXT = "text"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    SINGLE_CHOICE = "single_choice"
    MULTI_CHOICE = "multi_choice"


CHOICE_TYPES: frozenset[AttributeType] = frozenset({
    AttributeType.SINGLE_CHOICE,
    AttributeType.MULTI_CHOICE,
})

ORDERED_TYPES: frozenset[AttributeType] = frozenset({
    AttributeType.NUMBER,
    AttributeType.DATE,
})

TEXTUAL_TYPES: frozenset[AttributeType] = frozenset({
    AttributeType.TEXT,
    AttributeType.SINGLE_CHOICE,
    AttributeType.MULTI_CHOICE,
})


# =========================================================================
# Tagged value variant
# =========================================================================


@dataclass(frozen=True)
class TextValue:
    value: str


@dataclass(frozen=True)
class NumberValue:
    value: Decimal


@dataclass(frozen=True)
class BooleanValue:
    value: bool


@dataclass(frozen=True)
class DateValue:
    value: datetime


@dataclass(frozen=True)
class StringSetValue:
    value: frozenset[str]


AttributeValue = Union[TextValue, NumberValue, BooleanValue, DateValue, StringSetValue]

_KIND_NAMES: dict[type, str] = {
    TextValue: "text",
    NumberValue: "number",
    BooleanValue: "boolean",
    DateValue: "date",
    StringSetValue: "string_set",
}


def value_kind(value: AttributeValue) -> str:
    """Return the tag name of a typed value (for error messages and logs)."""
    return _KIND_NAMES[type(value)]


# =========================================================================
# Coercion
# =========================================================================

_TRUE_STRINGS = frozenset({"true", "yes", "1"})
_FALSE_STRINGS = frozenset({"false", "no", "0"})


def coerce_value(
    attribute_type: AttributeType,
    raw: Any,
    options: Iterable[str] = (),
) -> AttributeValue:
    """Convert a raw value into the tagged variant for ``attribute_type``.

    Args:
        attribute_type: The attribute's declared type.
        raw: Value as supplied by the caller or read from configuration.
        options: Allowed choices for single-/multi-choice attributes.

    Returns:
        The typed value.

    Raises:
        ValueError: if ``raw`` cannot represent a value of this type, or a
            choice falls outside ``options``.
    """
    attribute_type = AttributeType(attribute_type)
    allowed = frozenset(options)

    if attribute_type is AttributeType.TEXT:
        return TextValue(_to_text(raw))
    if attribute_type is AttributeType.NUMBER:
        return NumberValue(to_decimal(raw))
    if attribute_type is AttributeType.BOOLEAN:
        return BooleanValue(to_bool(raw))
    if attribute_type is AttributeType.DATE:
        return DateValue(to_instant(raw))
    if attribute_type is AttributeType.SINGLE_CHOICE:
        choice = _to_text(raw)
        _check_choice(choice, allowed)
        return TextValue(choice)

    # MULTI_CHOICE
    if isinstance(raw, str):
        items = [raw]
    elif isinstance(raw, (list, tuple, set, frozenset)):
        items = [_to_text(item) for item in raw]
    else:
        raise ValueError(f"Expected a list of choices, got {type(raw).__name__}")
    for item in items:
        _check_choice(item, allowed)
    return StringSetValue(frozenset(items))


def infer_value(raw: Any) -> AttributeValue:
    """Type a payload value whose key is not a catalogued attribute."""
    if isinstance(raw, bool):
        return BooleanValue(raw)
    if isinstance(raw, (int, float, Decimal)):
        return NumberValue(to_decimal(raw))
    if isinstance(raw, (date, datetime)):
        return DateValue(to_instant(raw))
    if isinstance(raw, (list, tuple, set, frozenset)):
        return StringSetValue(frozenset(str(item) for item in raw))
    return TextValue(str(raw))


def to_decimal(raw: Any) -> Decimal:
    """Convert to a finite Decimal, rejecting booleans."""
    if isinstance(raw, bool):
        raise ValueError("Boolean is not a number")
    if isinstance(raw, Decimal):
        result = raw
    elif isinstance(raw, int):
        result = Decimal(raw)
    elif isinstance(raw, float):
        result = Decimal(str(raw))
    elif isinstance(raw, str):
        try:
            result = Decimal(raw.strip())
        except InvalidOperation as exc:
            raise ValueError(f"Not a number: {raw!r}") from exc
    else:
        raise ValueError(f"Not a number: {raw!r}")
    if not result.is_finite():
        raise ValueError(f"Number must be finite: {raw!r}")
    return result


def to_bool(raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, int) and raw in (0, 1):
        return bool(raw)
    if isinstance(raw, str):
        lowered = raw.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise ValueError(f"Not a boolean: {raw!r}")


def to_instant(raw: Any) -> datetime:
    """Convert a date, datetime or ISO string to an aware UTC datetime.

    Naive datetimes and bare dates are taken to be UTC.
    """
    if isinstance(raw, datetime):
        moment = raw
    elif isinstance(raw, date):
        moment = datetime.combine(raw, time.min)
    elif isinstance(raw, str):
        try:
            moment = datetime.fromisoformat(raw.strip())
        except ValueError as exc:
            raise ValueError(f"Not an ISO date: {raw!r}") from exc
    else:
        raise ValueError(f"Not a date: {raw!r}")
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def _to_text(raw: Any) -> str:
    if isinstance(raw, str):
        return raw
    if isinstance(raw, (int, Decimal)) and not isinstance(raw, bool):
        return str(raw)
    raise ValueError(f"Not a text value: {raw!r}")


def _check_choice(choice: str, allowed: frozenset[str]) -> None:
    if allowed and choice not in allowed:
        raise ValueError(
            f"{choice!r} is not one of the allowed options {sorted(allowed)}"
        )
