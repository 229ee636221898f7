"""
governance_engines.conditions -- Pure condition evaluation and validation.

Responsibility:
    Evaluate one rule condition against one typed payload value, and
    validate a condition against the attribute it references at rule-save
    time.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import governance_kernel/domain/ types and exceptions.

Invariants enforced:
    - Missing attribute: only ``not_equals`` and ``not_in`` are satisfied.
    - Ordering operators apply to number and date values only; dates
      compare by instant.
    - ``like`` is case-insensitive substring containment; ``regex`` uses
      search semantics (a match anywhere in the value).
    - Invalid regular expressions are reported by ``validate_condition``
      and never reach evaluation.

Failure modes:
    - TypeMismatchError when an operator is evaluated against a value of
      an incompatible kind (only possible for rules that bypassed or
      outlived validation).
"""

from __future__ import annotations

import operator as _op
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Callable

from governance_kernel.domain.attributes import AttributeDefinition
from governance_kernel.domain.rules import (
    ABSENCE_SATISFIES,
    MEMBERSHIP_OPERATORS,
    ORDERING_OPERATORS,
    PATTERN_OPERATORS,
    ConditionOperator,
    RuleCondition,
)
from governance_kernel.domain.values import (
    ORDERED_TYPES,
    TEXTUAL_TYPES,
    AttributeType,
    AttributeValue,
    BooleanValue,
    DateValue,
    NumberValue,
    StringSetValue,
    TextValue,
    coerce_value,
    value_kind,
)
from governance_kernel.exceptions import TypeMismatchError

_ORDERING: dict[ConditionOperator, Callable[[Any, Any], bool]] = {
    ConditionOperator.GREATER_THAN: _op.gt,
    ConditionOperator.LESS_THAN: _op.lt,
    ConditionOperator.GREATER_THAN_EQUAL: _op.ge,
    ConditionOperator.LESS_THAN_EQUAL: _op.le,
}

_OPERAND_TYPES: dict[type, AttributeType] = {
    TextValue: AttributeType.TEXT,
    NumberValue: AttributeType.NUMBER,
    BooleanValue: AttributeType.BOOLEAN,
    DateValue: AttributeType.DATE,
}


# =========================================================================
# Validation (rule-save time)
# =========================================================================


@dataclass(frozen=True)
class ConditionIssue:
    """A problem found in one condition of a rule."""

    position: int
    attribute_id: str
    message: str
    type_mismatch: bool = False

    def __str__(self) -> str:
        return f"condition {self.position + 1} ({self.attribute_id}): {self.message}"


def operator_supports(operator: ConditionOperator, attribute_type: AttributeType) -> bool:
    """Whether ``operator`` is defined for attributes of ``attribute_type``."""
    if operator in ORDERING_OPERATORS:
        return attribute_type in ORDERED_TYPES
    if operator in PATTERN_OPERATORS:
        return attribute_type in TEXTUAL_TYPES
    return True


def validate_condition(
    condition: RuleCondition,
    attribute: AttributeDefinition | None,
    position: int,
) -> list[ConditionIssue]:
    """Validate one condition at ``position`` in its rule's condition list.

    Args:
        condition: The condition to check.
        attribute: The referenced attribute, or None if it is not in the
            catalog.
        position: Zero-based index in the rule's condition list.

    Returns:
        All issues found; empty when the condition is valid.
    """
    issues: list[ConditionIssue] = []

    def issue(message: str, type_mismatch: bool = False) -> None:
        issues.append(
            ConditionIssue(position, condition.attribute_id, message, type_mismatch)
        )

    if position == 0 and condition.connector is not None:
        issue("the first condition must not have a connector")
    if position > 0 and condition.connector is None:
        issue("a connector (and/or) is required after the first condition")

    if not condition.values:
        issue("at least one comparison value is required")
    elif len(condition.values) > 1 and condition.operator not in MEMBERSHIP_OPERATORS:
        issue(f"operator '{condition.operator.value}' takes exactly one value")

    if attribute is None:
        issue("references an unknown attribute")
        return issues

    if not operator_supports(condition.operator, attribute.attribute_type):
        issue(
            f"operator '{condition.operator.value}' is not valid for "
            f"{attribute.attribute_type.value} attributes",
            type_mismatch=True,
        )
        return issues

    for raw in condition.values:
        if condition.operator in PATTERN_OPERATORS:
            if not isinstance(raw, str) or not raw:
                issue(f"pattern must be a non-empty string, got {raw!r}")
            elif condition.operator is ConditionOperator.REGEX:
                try:
                    _compile_pattern(raw)
                except re.error as exc:
                    issue(f"invalid regular expression {raw!r}: {exc}")
            continue
        try:
            _coerce_operand(attribute, raw)
        except ValueError as exc:
            issue(f"invalid value {raw!r}: {exc}")

    return issues


def _coerce_operand(attribute: AttributeDefinition, raw: Any) -> None:
    # A multi-choice comparison value is a single option.
    if attribute.attribute_type is AttributeType.MULTI_CHOICE:
        coerce_value(AttributeType.SINGLE_CHOICE, raw, attribute.options)
    else:
        attribute.coerce(raw)


# =========================================================================
# Evaluation
# =========================================================================


def evaluate_condition(condition: RuleCondition, value: AttributeValue | None) -> bool:
    """Evaluate a condition against the payload's typed value.

    Args:
        condition: A validated rule condition.
        value: The typed payload value, or None when the attribute is
            absent from the payload.

    Returns:
        Whether the condition holds.

    Raises:
        TypeMismatchError: if the operator is not defined for the value.
    """
    op = condition.operator

    if value is None:
        return op in ABSENCE_SATISFIES

    if isinstance(value, StringSetValue):
        return _evaluate_set(condition, value)

    if op in ORDERING_OPERATORS:
        if not isinstance(value, (NumberValue, DateValue)):
            raise TypeMismatchError(condition.attribute_id, value_kind(value), op.value)
        return _ORDERING[op](value.value, _operand(condition, value, condition.values[0]))

    if op in (ConditionOperator.EQUALS, ConditionOperator.NOT_EQUALS):
        equal = value.value == _operand(condition, value, condition.values[0])
        return equal if op is ConditionOperator.EQUALS else not equal

    if op in MEMBERSHIP_OPERATORS:
        member = any(
            value.value == _operand(condition, value, raw) for raw in condition.values
        )
        return member if op is ConditionOperator.IN else not member

    if not isinstance(value, TextValue):
        raise TypeMismatchError(condition.attribute_id, value_kind(value), op.value)
    return _matches_pattern(op, str(condition.values[0]), value.value)


def _evaluate_set(condition: RuleCondition, value: StringSetValue) -> bool:
    op = condition.operator
    expected = frozenset(str(raw) for raw in condition.values)

    if op is ConditionOperator.EQUALS:
        return value.value == expected
    if op is ConditionOperator.NOT_EQUALS:
        return value.value != expected
    if op is ConditionOperator.IN:
        return bool(value.value & expected)
    if op is ConditionOperator.NOT_IN:
        return not (value.value & expected)
    if op in PATTERN_OPERATORS:
        pattern = str(condition.values[0])
        return any(_matches_pattern(op, pattern, item) for item in value.value)
    raise TypeMismatchError(condition.attribute_id, value_kind(value), op.value)


def _operand(condition: RuleCondition, value: AttributeValue, raw: Any) -> Any:
    """Coerce a comparison value to the kind of the payload value."""
    try:
        return coerce_value(_OPERAND_TYPES[type(value)], raw).value
    except ValueError as exc:
        raise TypeMismatchError(
            condition.attribute_id, value_kind(value), condition.operator.value,
        ) from exc


def _matches_pattern(op: ConditionOperator, pattern: str, text: str) -> bool:
    if op is ConditionOperator.LIKE:
        return pattern.lower() in text.lower()
    return _compile_pattern(pattern).search(text) is not None


@lru_cache(maxsize=512)
def _compile_pattern(pattern: str) -> re.Pattern[str]:
    return re.compile(pattern)
