"""
Module: governance_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    calculation engines: condition evaluation, rule matching and quorum
    evaluation.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import governance_kernel/domain (and sibling engine modules).
    MUST NOT import governance_kernel.services or governance_config.

Invariants enforced:
    - Purity: engines never read the clock or touch shared state.
      Timestamps are supplied by the calling service.
    - Determinism: identical inputs always produce identical outputs.

Usage:
    from governance_engines import select_matching_rule, evaluate_quorum
"""

from governance_engines.conditions import (
    ConditionIssue,
    evaluate_condition,
    operator_supports,
    validate_condition,
)
from governance_engines.matcher import (
    ConditionOutcome,
    MatchResult,
    candidate_rules,
    fold_conditions,
    rule_matches,
    select_matching_rule,
)
from governance_engines.quorum import (
    evaluate_quorum,
    resolve_checkers,
    validate_actor_authority,
)

__all__ = [
    "ConditionIssue",
    "ConditionOutcome",
    "MatchResult",
    "candidate_rules",
    "evaluate_condition",
    "evaluate_quorum",
    "fold_conditions",
    "operator_supports",
    "resolve_checkers",
    "rule_matches",
    "select_matching_rule",
    "validate_actor_authority",
    "validate_condition",
]
