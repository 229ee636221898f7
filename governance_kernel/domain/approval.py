"""
Approval domain types (``governance_kernel.domain.approval``).

Responsibility
--------------
Pure value objects for the maker-checker engine.  Defines the approval
lifecycle state machine, request/decision records, the checker
eligibility snapshot, submission and quorum results, and the protocols
through which the engine talks to its external collaborators.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``services/``, ``models/`` or outer layers.

Invariants enforced
-------------------
* Lifecycle -- ``APPROVAL_TRANSITIONS`` defines the only valid status
  transitions.  Terminal states have no outgoing edges.
* Rule snapshot -- ``ApprovalRequest`` captures the matched rule's id,
  fingerprint, quorum policy and checker eligibility at submission, so
  later rule edits never alter an in-flight request.
* Decision log order -- ``decisions`` is append-only, in insertion order.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Protocol
from uuid import UUID

from governance_kernel.domain.rules import QuorumPolicy


# =========================================================================
# Approval Status Lifecycle
# =========================================================================


class ApprovalStatus(str, Enum):
    """Approval request lifecycle states."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"


APPROVAL_TRANSITIONS: dict[ApprovalStatus, frozenset[ApprovalStatus]] = {
    ApprovalStatus.PENDING: frozenset({
        ApprovalStatus.APPROVED,
        ApprovalStatus.REJECTED,
        ApprovalStatus.WITHDRAWN,
    }),
    ApprovalStatus.APPROVED: frozenset(),
    ApprovalStatus.REJECTED: frozenset(),
    ApprovalStatus.WITHDRAWN: frozenset(),
}

TERMINAL_APPROVAL_STATUSES: frozenset[ApprovalStatus] = frozenset({
    ApprovalStatus.APPROVED,
    ApprovalStatus.REJECTED,
    ApprovalStatus.WITHDRAWN,
})


class ChangeAction(str, Enum):
    """Kind of change a maker proposes."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class ApprovalDecision(str, Enum):
    """Entries an actor can add to a request's decision log."""

    APPROVE = "approve"
    REJECT = "reject"
    COMMENT = "comment"


# =========================================================================
# Actors and eligibility
# =========================================================================


@dataclass(frozen=True)
class ActorContext:
    """The current actor as supplied by the caller's session layer."""

    actor_id: str
    role: str


@dataclass(frozen=True)
class CheckerEligibility:
    """Checker set captured when a rule is matched.

    ``roles`` and ``users`` are the rule's assignments; ``identities`` is
    their union resolved into concrete user ids at match time, with the
    maker removed.  Authorization uses roles and users; the
    all-assigned-checkers quorum counts against ``identities``.
    """

    roles: frozenset[str] = field(default_factory=frozenset)
    users: frozenset[str] = field(default_factory=frozenset)
    identities: frozenset[str] = field(default_factory=frozenset)

    def admits(self, actor_id: str, actor_role: str | None) -> bool:
        return actor_id in self.users or (
            actor_role is not None and actor_role in self.roles
        )


# =========================================================================
# Request and Decision Records
# =========================================================================


@dataclass(frozen=True)
class ApprovalDecisionRecord:
    """Record of a single decision-log entry. Immutable."""

    decision_id: UUID
    request_id: UUID
    actor_id: str
    actor_role: str
    decision: ApprovalDecision
    comment: str = ""
    decided_at: datetime | None = None


def freeze_payload(payload: Mapping[str, Any] | None) -> Mapping[str, Any] | None:
    """Read-only shallow copy of a payload mapping."""
    if payload is None:
        return None
    return MappingProxyType(dict(payload))


@dataclass(frozen=True)
class ApprovalRequest:
    """Immutable snapshot of an approval request.

    Every state change produces a new instance via ``dataclasses.replace``;
    only the approval service does so.
    """

    request_id: UUID
    entity_type: str
    action: ChangeAction
    payload: Mapping[str, Any]
    maker_id: str
    maker_role: str
    submitted_at: datetime
    rule_id: str
    rule_name: str
    quorum: QuorumPolicy
    eligibility: CheckerEligibility
    entity_id: str | None = None
    previous_payload: Mapping[str, Any] | None = None
    rule_fingerprint: str | None = None
    status: ApprovalStatus = ApprovalStatus.PENDING
    decisions: tuple[ApprovalDecisionRecord, ...] = ()
    resolved_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_APPROVAL_STATUSES

    @property
    def approved_by(self) -> tuple[str, ...]:
        """Distinct approving actors in the order they approved."""
        seen: list[str] = []
        for d in self.decisions:
            if d.decision is ApprovalDecision.APPROVE and d.actor_id not in seen:
                seen.append(d.actor_id)
        return tuple(seen)

    @property
    def checker_entries(self) -> tuple[ApprovalDecisionRecord, ...]:
        """Log entries made by anyone other than the maker."""
        return tuple(d for d in self.decisions if d.actor_id != self.maker_id)

    def changed_attributes(self) -> dict[str, tuple[Any, Any]]:
        """Attribute id -> (previous, proposed) for an update with a snapshot."""
        if self.previous_payload is None:
            return {}
        changes: dict[str, tuple[Any, Any]] = {}
        for key in sorted(set(self.payload) | set(self.previous_payload)):
            before = self.previous_payload.get(key)
            after = self.payload.get(key)
            if before != after:
                changes[key] = (before, after)
        return changes


# =========================================================================
# Results
# =========================================================================


@dataclass(frozen=True)
class SubmissionResult:
    """Outcome of ``submit``.

    ``auto_commit=True`` means no rule governs the change: no request was
    created and the caller may persist ``payload`` directly.
    """

    auto_commit: bool
    payload: Mapping[str, Any]
    request: ApprovalRequest | None = None
    reason: str = ""


@dataclass(frozen=True)
class QuorumEvaluation:
    """Result of evaluating a decision log against a quorum policy."""

    is_approved: bool = False
    is_rejected: bool = False
    required: frozenset[str] = field(default_factory=frozenset)
    approved_by: tuple[str, ...] = ()
    reason: str = ""

    @property
    def outstanding(self) -> frozenset[str]:
        return self.required - frozenset(self.approved_by)


# =========================================================================
# Collaborator protocols
# =========================================================================


class RoleDirectory(Protocol):
    """Resolves role membership into user ids."""

    def members_of(self, role: str) -> frozenset[str]:
        ...

    def __contains__(self, user_id: object) -> bool:
        ...


class EntityReferenceChecker(Protocol):
    """External entity store lookup used to block unsafe deletes.

    ``target_kind`` is ``"attribute"`` or ``"rule"``.  Returns descriptions
    of the entities still referencing the target (empty when none).
    """

    def references_to(self, target_kind: str, target_id: str) -> list[str]:
        ...


CommitCallback = Callable[[ApprovalRequest], None]
