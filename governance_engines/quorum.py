"""
governance_engines.quorum -- Pure checker eligibility and quorum evaluation.

Responsibility:
    Resolve a rule's checker assignment into an eligibility snapshot at
    match time, and decide whether a decision log satisfies the rule's
    quorum policy.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Roles and explicit users stay separate sets; they are combined by
      union only when authorizing or resolving identities.
    - The maker is never part of the resolved identity set.
    - A single rejection is final regardless of quorum policy.
    - An actor's approval counts once, however many entries they logged.
"""

from __future__ import annotations

from collections.abc import Sequence

from governance_kernel.domain.approval import (
    ApprovalDecision,
    ApprovalDecisionRecord,
    CheckerEligibility,
    QuorumEvaluation,
    RoleDirectory,
)
from governance_kernel.domain.rules import ApprovalRule, QuorumPolicy


def resolve_checkers(
    rule: ApprovalRule,
    directory: RoleDirectory,
    maker_id: str,
) -> CheckerEligibility:
    """Snapshot the rule's checker set, expanding roles via ``directory``."""
    identities: set[str] = set(rule.checker_users)
    for role in sorted(rule.checker_roles):
        identities |= directory.members_of(role)
    identities.discard(maker_id)

    return CheckerEligibility(
        roles=frozenset(rule.checker_roles),
        users=frozenset(rule.checker_users),
        identities=frozenset(identities),
    )


def validate_actor_authority(
    eligibility: CheckerEligibility,
    actor_id: str,
    actor_role: str | None,
) -> bool:
    """True if the actor holds a checker role or is an assigned checker user."""
    return eligibility.admits(actor_id, actor_role)


def evaluate_quorum(
    policy: QuorumPolicy,
    eligibility: CheckerEligibility,
    decisions: Sequence[ApprovalDecisionRecord],
) -> QuorumEvaluation:
    """Given the decision log, determine whether the request is finalized.

    Args:
        policy: The quorum policy captured at match time.
        eligibility: The checker snapshot captured at match time.
        decisions: The full decision log, in order.

    Returns:
        QuorumEvaluation with ``is_approved``/``is_rejected`` and the
        approvers counted so far.
    """
    for d in decisions:
        if d.decision is ApprovalDecision.REJECT:
            return QuorumEvaluation(
                is_rejected=True,
                required=eligibility.identities,
                reason=f"Rejected by {d.actor_id}",
            )

    approvers: list[str] = []
    for d in decisions:
        if d.decision is ApprovalDecision.APPROVE and d.actor_id not in approvers:
            approvers.append(d.actor_id)

    if policy is QuorumPolicy.ANY_ONE_CHECKER:
        is_approved = bool(approvers)
        return QuorumEvaluation(
            is_approved=is_approved,
            approved_by=tuple(approvers),
            reason=f"Approved by {approvers[0]}" if is_approved else "Awaiting a checker",
        )

    required = eligibility.identities
    counted = tuple(a for a in approvers if a in required)
    is_approved = bool(required) and required <= frozenset(counted)
    return QuorumEvaluation(
        is_approved=is_approved,
        required=required,
        approved_by=counted,
        reason=(
            "Approved by all assigned checkers"
            if is_approved
            else f"{len(counted)}/{len(required)} assigned checkers approved"
        ),
    )
