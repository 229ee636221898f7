"""
Attribute definitions (``governance_kernel.domain.attributes``).

Attributes are the field-level metadata that rule conditions reference and
change payloads are keyed by.  Identity is immutable; everything else about
a definition may be edited through the attribute catalog.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from governance_kernel.domain.values import (
    CHOICE_TYPES,
    AttributeType,
    AttributeValue,
    coerce_value,
)


@dataclass(frozen=True)
class AttributeDefinition:
    """A configurable attribute.

    Contract:
        ``options`` is required and non-empty for single-/multi-choice
        attributes and must be empty for every other type.  Enforced by
        ``validate_attribute``, not by construction.
    """

    attribute_id: str
    name: str
    attribute_type: AttributeType
    options: tuple[str, ...] = ()
    default_value: Any = None
    required: bool = False
    description: str | None = None

    @property
    def is_choice(self) -> bool:
        return self.attribute_type in CHOICE_TYPES

    def coerce(self, raw: Any) -> AttributeValue:
        """Type a raw value against this definition (raises ValueError)."""
        return coerce_value(self.attribute_type, raw, self.options)


def validate_attribute(attribute: AttributeDefinition) -> list[str]:
    """Return every problem with an attribute definition (empty when valid)."""
    issues: list[str] = []

    if not attribute.attribute_id or not attribute.attribute_id.strip():
        issues.append("attribute id is required")
    if not attribute.name or not attribute.name.strip():
        issues.append("attribute name is required")

    try:
        attribute_type = AttributeType(attribute.attribute_type)
    except ValueError:
        issues.append(f"unknown attribute type {attribute.attribute_type!r}")
        return issues

    if attribute_type in CHOICE_TYPES:
        if not attribute.options:
            issues.append(f"{attribute_type.value} attribute requires a non-empty option set")
        elif len(set(attribute.options)) != len(attribute.options):
            issues.append("options must not contain duplicates")
        if any(not str(opt).strip() for opt in attribute.options):
            issues.append("options must not be blank")
    elif attribute.options:
        issues.append(f"{attribute_type.value} attribute must not declare options")

    if attribute.default_value is not None and not issues:
        try:
            attribute.coerce(attribute.default_value)
        except ValueError as exc:
            issues.append(f"default value is invalid: {exc}")

    return issues
