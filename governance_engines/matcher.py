"""
governance_engines.matcher -- Pure rule matching.

Responsibility:
    Given an entity type and a typed change payload, select the rule that
    governs the change.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import governance_kernel/domain/ types and engines.

Invariants enforced:
    - Candidate order: active rules for the entity type, in store order.
    - Left-to-right fold: ``[A AND B OR C]`` is ``(A AND B) OR C``.  There
      is no operator precedence.  Every condition is evaluated, so a
      condition that cannot be evaluated always surfaces.
    - Zero conditions: the rule matches unconditionally.
    - Tie-break: the first matching candidate wins; rules are never merged.

Failure modes:
    - StaleRuleError when a stale candidate is reached before a match.
      Matching fails closed rather than skipping the rule.
    - TypeMismatchError propagated from condition evaluation.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from governance_engines.conditions import evaluate_condition
from governance_kernel.domain.rules import (
    ApprovalRule,
    ConditionOperator,
    LogicalConnector,
    RuleCondition,
)
from governance_kernel.domain.values import AttributeValue
from governance_kernel.exceptions import StaleRuleError


@dataclass(frozen=True)
class ConditionOutcome:
    """Result of one condition during a fold, for diagnostics."""

    position: int
    attribute_id: str
    operator: ConditionOperator
    connector: LogicalConnector | None
    result: bool


@dataclass(frozen=True)
class MatchResult:
    """Outcome of ``select_matching_rule``."""

    rule: ApprovalRule | None
    outcomes: tuple[ConditionOutcome, ...] = ()
    candidates_evaluated: int = 0

    @property
    def matched(self) -> bool:
        return self.rule is not None


def fold_conditions(
    conditions: Sequence[RuleCondition],
    payload: Mapping[str, AttributeValue],
) -> tuple[bool, tuple[ConditionOutcome, ...]]:
    """Fold an ordered condition list left to right.

    Returns:
        The combined result and the per-condition outcomes.
    """
    if not conditions:
        return True, ()

    outcomes: list[ConditionOutcome] = []
    accumulator = False
    for position, condition in enumerate(conditions):
        result = evaluate_condition(condition, payload.get(condition.attribute_id))
        outcomes.append(
            ConditionOutcome(
                position=position,
                attribute_id=condition.attribute_id,
                operator=condition.operator,
                connector=condition.connector,
                result=result,
            )
        )
        if position == 0:
            accumulator = result
        elif condition.connector is LogicalConnector.OR:
            accumulator = accumulator or result
        else:
            accumulator = accumulator and result

    return accumulator, tuple(outcomes)


def rule_matches(rule: ApprovalRule, payload: Mapping[str, AttributeValue]) -> bool:
    """Whether ``rule``'s condition list holds for ``payload``."""
    result, _ = fold_conditions(rule.conditions, payload)
    return result


def candidate_rules(
    rules: Sequence[ApprovalRule],
    entity_type: str,
) -> list[ApprovalRule]:
    """Active rules targeting ``entity_type``, preserving store order."""
    return [r for r in rules if r.active and r.entity_type == entity_type]


def select_matching_rule(
    rules: Sequence[ApprovalRule],
    entity_type: str,
    payload: Mapping[str, AttributeValue],
    stale: Mapping[str, Sequence[str]] | None = None,
) -> MatchResult:
    """Select the first active rule for ``entity_type`` whose conditions hold.

    Args:
        rules: All rules in store order (a snapshot).
        entity_type: The entity type tag of the proposed change.
        payload: Typed payload values keyed by attribute id.
        stale: Rule id -> issues for rules flagged stale by the store.

    Returns:
        MatchResult with the winning rule (or None) and the outcomes of
        the winning rule's conditions.
    """
    stale = stale or {}
    evaluated = 0

    for rule in candidate_rules(rules, entity_type):
        if rule.rule_id in stale:
            raise StaleRuleError(rule.rule_id, list(stale[rule.rule_id]))
        evaluated += 1
        result, outcomes = fold_conditions(rule.conditions, payload)
        if result:
            return MatchResult(rule=rule, outcomes=outcomes, candidates_evaluated=evaluated)

    return MatchResult(rule=None, candidates_evaluated=evaluated)
