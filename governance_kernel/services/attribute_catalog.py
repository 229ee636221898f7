"""
governance_kernel.services.attribute_catalog -- Attribute definitions CRUD.

Responsibility:
    Owns the attribute catalog: the declared type and option set of every
    attribute that rule conditions reference and payloads are keyed by.

Architecture position:
    Kernel > Services.  May import from domain/ and exceptions.

Invariants enforced:
    - Only valid definitions are stored (``validate_attribute``).
    - An attribute referenced by a stored rule, or by an entity according
      to the external reference checker, cannot be deleted.
    - A change of type or options is pushed to every registered rule
      store, which re-validates and flags referencing rules.

Failure modes:
    - ValidationError on a malformed or duplicate definition.
    - AttributeNotFoundError for unknown ids.
    - ReferentialIntegrityError on a blocked delete.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from dataclasses import replace
from typing import Any, Protocol

from governance_kernel.domain.approval import EntityReferenceChecker
from governance_kernel.domain.attributes import AttributeDefinition, validate_attribute
from governance_kernel.domain.values import AttributeType
from governance_kernel.exceptions import (
    AttributeNotFoundError,
    ReferentialIntegrityError,
    ValidationError,
)
from governance_kernel.logging_config import get_logger

logger = get_logger("attribute_catalog")


class AttributeDependent(Protocol):
    """A component holding references to attributes (the rule store)."""

    def rules_referencing(self, attribute_id: str) -> tuple[str, ...]:
        ...

    def attribute_changed(self, attribute: AttributeDefinition) -> None:
        ...


class AttributeCatalog:
    """In-memory attribute catalog.

    The catalog's lock is re-entrant and shared with the rule stores bound
    to it, so attribute and rule edits are serialized together.
    """

    def __init__(
        self,
        attributes: Iterable[AttributeDefinition] = (),
        reference_checker: EntityReferenceChecker | None = None,
    ) -> None:
        self.lock = threading.RLock()
        self._attributes: dict[str, AttributeDefinition] = {}
        self._dependents: list[AttributeDependent] = []
        self._reference_checker = reference_checker
        for attribute in attributes:
            self.create(attribute)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, attribute_id: str) -> AttributeDefinition:
        attribute = self.find(attribute_id)
        if attribute is None:
            raise AttributeNotFoundError(attribute_id)
        return attribute

    def find(self, attribute_id: str) -> AttributeDefinition | None:
        with self.lock:
            return self._attributes.get(attribute_id)

    def list_attributes(self) -> list[AttributeDefinition]:
        with self.lock:
            return list(self._attributes.values())

    def __contains__(self, attribute_id: object) -> bool:
        with self.lock:
            return attribute_id in self._attributes

    def __len__(self) -> int:
        with self.lock:
            return len(self._attributes)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def register_dependent(self, dependent: AttributeDependent) -> None:
        with self.lock:
            self._dependents.append(dependent)

    def create(self, attribute: AttributeDefinition) -> AttributeDefinition:
        """Add a new attribute definition."""
        attribute = _normalize(attribute)
        issues = validate_attribute(attribute)
        with self.lock:
            if attribute.attribute_id in self._attributes:
                issues.append(f"attribute id {attribute.attribute_id!r} already exists")
            if issues:
                raise ValidationError("attribute", issues)
            self._attributes[attribute.attribute_id] = attribute

        logger.info(
            "attribute_created",
            extra={
                "attribute_id": attribute.attribute_id,
                "attribute_type": attribute.attribute_type.value,
            },
        )
        return attribute

    def update(self, attribute_id: str, **changes: Any) -> AttributeDefinition:
        """Edit an attribute definition. The id cannot change."""
        if "attribute_id" in changes and changes["attribute_id"] != attribute_id:
            raise ValidationError("attribute", ["attribute id is immutable"])

        with self.lock:
            current = self.get(attribute_id)
            updated = _normalize(replace(current, **changes))
            issues = validate_attribute(updated)
            if issues:
                raise ValidationError("attribute", issues)
            self._attributes[attribute_id] = updated

            definition_changed = (
                updated.attribute_type != current.attribute_type
                or updated.options != current.options
            )
            if definition_changed:
                for dependent in self._dependents:
                    dependent.attribute_changed(updated)

        logger.info(
            "attribute_updated",
            extra={
                "attribute_id": attribute_id,
                "attribute_type": updated.attribute_type.value,
                "definition_changed": definition_changed,
            },
        )
        return updated

    def delete(self, attribute_id: str) -> None:
        """Remove an attribute that nothing references."""
        with self.lock:
            self.get(attribute_id)

            referenced_by: list[str] = []
            for dependent in self._dependents:
                referenced_by.extend(
                    f"rule:{rule_id}" for rule_id in dependent.rules_referencing(attribute_id)
                )
            if self._reference_checker is not None:
                referenced_by.extend(
                    self._reference_checker.references_to("attribute", attribute_id)
                )
            if referenced_by:
                raise ReferentialIntegrityError("attribute", attribute_id, referenced_by)

            del self._attributes[attribute_id]

        logger.info("attribute_deleted", extra={"attribute_id": attribute_id})


def _normalize(attribute: AttributeDefinition) -> AttributeDefinition:
    try:
        attribute_type = AttributeType(attribute.attribute_type)
    except ValueError:
        return attribute
    return replace(
        attribute,
        attribute_type=attribute_type,
        options=tuple(str(opt) for opt in attribute.options),
    )
