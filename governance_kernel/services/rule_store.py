"""
governance_kernel.services.rule_store -- Rule configuration store.

Responsibility:
    Owns approval rule definitions: validated CRUD, ordering, activation,
    an attribute -> rule index for referential checks, and stale-rule
    flagging when referenced attributes change.

Architecture position:
    Kernel > Services.  May import from domain/, engines (for condition
    validation), and exceptions.

Invariants enforced:
    - Only valid rules are stored; a failed create/update leaves the store
      unchanged.
    - Store order is insertion order unless changed with ``move``; the
      matcher's first-match tie-break depends on it.
    - An active rule names at least one checker role or user.
    - With a directory bound, checker users must be known users.
    - Deactivating never fails on condition problems, so a stale rule can
      be taken out of matching.
    - ``snapshot`` returns immutable rules, so readers never observe a
      half-applied edit.
    - The attribute index is maintained on every create/update/delete.

Failure modes:
    - ValidationError / TypeMismatchError on invalid rules.
    - RuleNotFoundError for unknown ids.
    - ReferentialIntegrityError when an entity still references the rule.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from typing import Any
from uuid import uuid4

from governance_engines.conditions import ConditionIssue, validate_condition
from governance_kernel.domain.approval import EntityReferenceChecker, RoleDirectory
from governance_kernel.domain.attributes import AttributeDefinition
from governance_kernel.domain.rules import (
    ApprovalRule,
    ConditionOperator,
    LogicalConnector,
    QuorumPolicy,
    RuleCondition,
)
from governance_kernel.exceptions import (
    ReferentialIntegrityError,
    RuleNotFoundError,
    TypeMismatchError,
    ValidationError,
)
from governance_kernel.logging_config import get_logger
from governance_kernel.services.attribute_catalog import AttributeCatalog
from governance_kernel.utils.hashing import hash_payload

logger = get_logger("rule_store")


def rule_fingerprint(rule: ApprovalRule) -> str:
    """SHA-256 of the rule's canonical form."""
    return hash_payload(rule.to_dict())


@dataclass(frozen=True)
class RuleSnapshot:
    """Consistent read view of the store."""

    rules: tuple[ApprovalRule, ...] = ()
    stale: Mapping[str, tuple[str, ...]] = field(default_factory=dict)


class RuleConfigurationStore:
    """In-memory, ordered catalog of approval rules."""

    def __init__(
        self,
        catalog: AttributeCatalog,
        entity_types: Iterable[str] = (),
        reference_checker: EntityReferenceChecker | None = None,
        directory: RoleDirectory | None = None,
    ) -> None:
        self._catalog = catalog
        self._directory = directory
        self._lock = catalog.lock
        self._entity_types = frozenset(entity_types)
        self._reference_checker = reference_checker
        self._rules: dict[str, ApprovalRule] = {}
        self._by_attribute: dict[str, set[str]] = {}
        self._stale: dict[str, tuple[str, ...]] = {}
        catalog.register_dependent(self)

    @property
    def entity_types(self) -> frozenset[str]:
        return self._entity_types

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, rule_id: str) -> ApprovalRule:
        with self._lock:
            rule = self._rules.get(rule_id)
        if rule is None:
            raise RuleNotFoundError(rule_id)
        return rule

    def list_rules(
        self,
        entity_type: str | None = None,
        active_only: bool = False,
    ) -> list[ApprovalRule]:
        with self._lock:
            rules = list(self._rules.values())
        return [
            r for r in rules
            if (entity_type is None or r.entity_type == entity_type)
            and (not active_only or r.active)
        ]

    def snapshot(self) -> RuleSnapshot:
        with self._lock:
            return RuleSnapshot(
                rules=tuple(self._rules.values()),
                stale=dict(self._stale),
            )

    def rules_referencing(self, attribute_id: str) -> tuple[str, ...]:
        """Ids of stored rules whose conditions use ``attribute_id``, in store order."""
        with self._lock:
            ids = self._by_attribute.get(attribute_id, set())
            return tuple(rule_id for rule_id in self._rules if rule_id in ids)

    @property
    def stale_rule_ids(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._stale)

    def is_stale(self, rule_id: str) -> bool:
        with self._lock:
            return rule_id in self._stale

    def stale_issues(self, rule_id: str) -> tuple[str, ...]:
        with self._lock:
            return self._stale.get(rule_id, ())

    def __len__(self) -> int:
        with self._lock:
            return len(self._rules)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create(self, rule: ApprovalRule) -> ApprovalRule:
        """Validate and append a rule. An empty ``rule_id`` gets a generated one."""
        if not rule.rule_id:
            rule = replace(rule, rule_id=uuid4().hex)
        rule = _normalize(rule)

        with self._lock:
            if rule.rule_id in self._rules:
                raise ValidationError("rule", [f"rule id {rule.rule_id!r} already exists"])
            self._check(rule)
            self._rules[rule.rule_id] = rule
            self._index(rule)

        logger.info(
            "rule_created",
            extra={
                "rule_id": rule.rule_id,
                "rule_name": rule.name,
                "entity_type": rule.entity_type,
                "condition_count": len(rule.conditions),
                "quorum": rule.quorum.value,
                "active": rule.active,
            },
        )
        return rule

    def update(self, rule_id: str, **changes: Any) -> ApprovalRule:
        """Edit a rule in place (position unchanged). The id cannot change."""
        if "rule_id" in changes and changes["rule_id"] != rule_id:
            raise ValidationError("rule", ["rule id is immutable"])

        with self._lock:
            current = self.get(rule_id)
            updated = _normalize(replace(current, **changes))
            if updated.active or "conditions" in changes:
                self._check(updated)
                cleared = self._stale.pop(rule_id, None) is not None
            else:
                # Conditions of an inactive rule are re-checked on reactivation;
                # any stale flag stays until then.
                issues = self._rule_issues(updated)
                if issues:
                    raise ValidationError("rule", issues)
                cleared = False
            self._unindex(current)
            self._rules[rule_id] = updated
            self._index(updated)

        logger.info(
            "rule_updated",
            extra={
                "rule_id": rule_id,
                "fields": sorted(changes),
                "stale_cleared": cleared,
            },
        )
        return updated

    def set_active(self, rule_id: str, active: bool) -> ApprovalRule:
        """Activate or deactivate a rule.

        Deactivation only affects future matching; requests already bound
        to the rule keep their snapshot.  A stale rule can always be
        deactivated; reactivating it re-validates its conditions.
        """
        return self.update(rule_id, active=active)

    def move(self, rule_id: str, position: int) -> None:
        """Move a rule to ``position`` in store order (clamped to the ends)."""
        with self._lock:
            rule = self.get(rule_id)
            order = [rid for rid in self._rules if rid != rule_id]
            position = max(0, min(position, len(order)))
            order.insert(position, rule_id)
            self._rules = {rid: (rule if rid == rule_id else self._rules[rid]) for rid in order}

        logger.info("rule_moved", extra={"rule_id": rule_id, "position": position})

    def delete(self, rule_id: str) -> None:
        with self._lock:
            rule = self.get(rule_id)
            if self._reference_checker is not None:
                referenced_by = self._reference_checker.references_to("rule", rule_id)
                if referenced_by:
                    raise ReferentialIntegrityError("rule", rule_id, referenced_by)
            self._unindex(rule)
            del self._rules[rule_id]
            self._stale.pop(rule_id, None)

        logger.info("rule_deleted", extra={"rule_id": rule_id, "rule_name": rule.name})

    # ------------------------------------------------------------------
    # Attribute catalog notifications
    # ------------------------------------------------------------------

    def attribute_changed(self, attribute: AttributeDefinition) -> None:
        """Re-validate every rule referencing ``attribute`` and flag failures."""
        with self._lock:
            for rule_id in self.rules_referencing(attribute.attribute_id):
                issues = self._condition_issues(self._rules[rule_id])
                if issues:
                    self._stale[rule_id] = tuple(str(i) for i in issues)
                    logger.warning(
                        "rule_flagged_stale",
                        extra={
                            "rule_id": rule_id,
                            "attribute_id": attribute.attribute_id,
                            "issues": [str(i) for i in issues],
                        },
                    )
                elif self._stale.pop(rule_id, None) is not None:
                    logger.info("rule_stale_cleared", extra={"rule_id": rule_id})

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self, rule: ApprovalRule) -> list[str]:
        """Every problem with ``rule`` against the current catalogs."""
        rule = _normalize(rule)
        with self._lock:
            return self._rule_issues(rule) + [str(i) for i in self._condition_issues(rule)]

    def _check(self, rule: ApprovalRule) -> None:
        issues = self._rule_issues(rule)
        condition_issues = self._condition_issues(rule)
        mismatch = next((i for i in condition_issues if i.type_mismatch), None)
        if mismatch is not None and not issues:
            attribute = self._catalog.get(mismatch.attribute_id)
            raise TypeMismatchError(
                mismatch.attribute_id,
                attribute.attribute_type.value,
                rule.conditions[mismatch.position].operator.value,
            )
        issues.extend(str(i) for i in condition_issues)
        if issues:
            raise ValidationError("rule", issues)

    def _rule_issues(self, rule: ApprovalRule) -> list[str]:
        issues: list[str] = []
        if not rule.name or not rule.name.strip():
            issues.append("rule name is required")
        if not rule.entity_type:
            issues.append("entity type is required")
        elif self._entity_types and rule.entity_type not in self._entity_types:
            issues.append(f"unknown entity type {rule.entity_type!r}")
        if rule.active and not rule.has_checkers:
            issues.append("an active rule needs at least one checker role or checker user")
        if self._directory is not None:
            issues.extend(
                f"unknown checker user {user!r}"
                for user in sorted(rule.checker_users)
                if user not in self._directory
            )
        return issues

    def _condition_issues(self, rule: ApprovalRule) -> list[ConditionIssue]:
        issues: list[ConditionIssue] = []
        for position, condition in enumerate(rule.conditions):
            attribute = self._catalog.find(condition.attribute_id)
            issues.extend(validate_condition(condition, attribute, position))
        return issues

    # ------------------------------------------------------------------
    # Index maintenance
    # ------------------------------------------------------------------

    def _index(self, rule: ApprovalRule) -> None:
        for attribute_id in rule.referenced_attributes:
            self._by_attribute.setdefault(attribute_id, set()).add(rule.rule_id)

    def _unindex(self, rule: ApprovalRule) -> None:
        for attribute_id in rule.referenced_attributes:
            ids = self._by_attribute.get(attribute_id)
            if ids is not None:
                ids.discard(rule.rule_id)
                if not ids:
                    del self._by_attribute[attribute_id]


def _normalize(rule: ApprovalRule) -> ApprovalRule:
    """Coerce enum strings and collection types supplied by callers."""
    try:
        conditions = tuple(
            RuleCondition(
                attribute_id=c.attribute_id,
                operator=ConditionOperator(c.operator),
                values=tuple(c.values) if isinstance(c.values, (list, tuple, set, frozenset)) else (c.values,),
                connector=LogicalConnector(c.connector) if c.connector is not None else None,
            )
            for c in rule.conditions
        )
        quorum = QuorumPolicy(rule.quorum)
    except ValueError as exc:
        raise ValidationError("rule", [str(exc)]) from exc

    return replace(
        rule,
        conditions=conditions,
        checker_roles=frozenset(rule.checker_roles),
        checker_users=frozenset(rule.checker_users),
        maker_roles=frozenset(rule.maker_roles),
        quorum=quorum,
    )
