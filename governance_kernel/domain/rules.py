"""
Approval rule types (``governance_kernel.domain.rules``).

Responsibility
--------------
Pure value objects describing which changes need approval and who may
approve them: conditions over attributes, the logical connectors that
chain them, checker assignment and quorum policy.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Conditions combine strictly left to right: ``((c1) OP2 c2) OP3 c3``.
  The first condition carries no connector; every later one does.
* An active rule names at least one checker role or checker user.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ConditionOperator(str, Enum):
    """Predicate operators available to rule conditions."""

    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    GREATER_THAN_EQUAL = "greater_than_equal"
    LESS_THAN_EQUAL = "less_than_equal"
    IN = "in"
    NOT_IN = "not_in"
    LIKE = "like"
    REGEX = "regex"


ORDERING_OPERATORS: frozenset[ConditionOperator] = frozenset({
    ConditionOperator.GREATER_THAN,
    ConditionOperator.LESS_THAN,
    ConditionOperator.GREATER_THAN_EQUAL,
    ConditionOperator.LESS_THAN_EQUAL,
})

MEMBERSHIP_OPERATORS: frozenset[ConditionOperator] = frozenset({
    ConditionOperator.IN,
    ConditionOperator.NOT_IN,
})

PATTERN_OPERATORS: frozenset[ConditionOperator] = frozenset({
    ConditionOperator.LIKE,
    ConditionOperator.REGEX,
})

# Absence of the attribute counts as "not equal to anything".
ABSENCE_SATISFIES: frozenset[ConditionOperator] = frozenset({
    ConditionOperator.NOT_EQUALS,
    ConditionOperator.NOT_IN,
})


class LogicalConnector(str, Enum):
    """How a condition combines with the accumulated result before it."""

    AND = "and"
    OR = "or"


class QuorumPolicy(str, Enum):
    """How many checker approvals finalize a request."""

    ANY_ONE_CHECKER = "any_one_checker"
    ALL_ASSIGNED_CHECKERS = "all_assigned_checkers"


@dataclass(frozen=True)
class RuleCondition:
    """One predicate over a payload attribute.

    ``values`` holds one comparison value, or several for ``in``/``not_in``.
    """

    attribute_id: str
    operator: ConditionOperator
    values: tuple[Any, ...]
    connector: LogicalConnector | None = None


@dataclass(frozen=True)
class ApprovalRule:
    """A configured approval rule.

    Eligible checkers are the union of ``checker_roles`` membership and
    ``checker_users``.  ``maker_roles`` restricts who may submit changes
    governed by the rule; empty means any role.
    """

    rule_id: str
    name: str
    entity_type: str
    conditions: tuple[RuleCondition, ...] = ()
    checker_roles: frozenset[str] = field(default_factory=frozenset)
    checker_users: frozenset[str] = field(default_factory=frozenset)
    maker_roles: frozenset[str] = field(default_factory=frozenset)
    quorum: QuorumPolicy = QuorumPolicy.ANY_ONE_CHECKER
    active: bool = True
    description: str | None = None

    @property
    def has_checkers(self) -> bool:
        return bool(self.checker_roles or self.checker_users)

    @property
    def referenced_attributes(self) -> frozenset[str]:
        return frozenset(c.attribute_id for c in self.conditions)

    def to_dict(self) -> dict[str, Any]:
        """Canonical dict form (stable ordering) for hashing and display."""
        return {
            "rule_id": self.rule_id,
            "name": self.name,
            "entity_type": self.entity_type,
            "conditions": [
                {
                    "attribute_id": c.attribute_id,
                    "operator": c.operator.value,
                    "values": [str(v) for v in c.values],
                    "connector": c.connector.value if c.connector else None,
                }
                for c in self.conditions
            ],
            "checker_roles": sorted(self.checker_roles),
            "checker_users": sorted(self.checker_users),
            "maker_roles": sorted(self.maker_roles),
            "quorum": self.quorum.value,
            "active": self.active,
            "description": self.description,
        }
