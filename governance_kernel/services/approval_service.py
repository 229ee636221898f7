"""
governance_kernel.services.approval_service -- Maker-checker state machine.

Responsibility:
    Accepts change proposals from makers, binds each to the first matching
    approval rule, and drives the resulting approval request through
    checker decisions to a terminal outcome.  Delegates rule matching and
    quorum arithmetic to the pure engines.

Architecture position:
    Kernel > Services.  May import from domain/, engines, and other
    kernel services.

Invariants enforced:
    - Lifecycle state machine (``APPROVAL_TRANSITIONS``) enforced before
      every transition; terminal requests never change again.
    - The matched rule's quorum policy, fingerprint and checker
      eligibility are snapshotted at submission.  Later rule edits or
      deactivation never affect an in-flight request.
    - The maker can never approve or reject their own request, whatever
      role they hold.
    - All transitions on one request are linearized by that request's
      lock; distinct requests proceed in parallel.
    - An all-assigned-checkers request is only created when every
      snapshotted identity is a known user, so the quorum is reachable.
    - The commit callback runs exactly once per request, when it reaches
      ``approved``.  If it raises, the request is left untouched.

Failure modes:
    - PayloadValidationError / ValidationError on malformed submissions.
    - StaleRuleError / TypeMismatchError from rule matching.
    - MakerNotPermittedError, NoEligibleCheckersError on submission.
    - ApprovalNotFoundError, AlreadyFinalizedError,
      SelfApprovalForbiddenError, NotAuthorizedError,
      CommentRequiredError, DuplicateDecisionError on ``decide``.
    - WithdrawalNotAllowedError on ``withdraw`` after review started.
"""

from __future__ import annotations

import threading
from collections.abc import Mapping
from dataclasses import replace
from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from governance_engines.matcher import select_matching_rule
from governance_engines.quorum import (
    evaluate_quorum,
    resolve_checkers,
    validate_actor_authority,
)
from governance_kernel.domain.approval import (
    APPROVAL_TRANSITIONS,
    ActorContext,
    ApprovalDecision,
    ApprovalDecisionRecord,
    ApprovalRequest,
    ApprovalStatus,
    ChangeAction,
    CommitCallback,
    RoleDirectory,
    SubmissionResult,
    freeze_payload,
)
from governance_kernel.domain.clock import Clock, SystemClock
from governance_kernel.domain.rules import ApprovalRule, QuorumPolicy
from governance_kernel.domain.settings import FALLBACK_RULE_ID, EngineSettings
from governance_kernel.domain.values import AttributeValue, infer_value
from governance_kernel.exceptions import (
    AlreadyFinalizedError,
    ApprovalNotFoundError,
    CommentRequiredError,
    DuplicateDecisionError,
    MakerNotPermittedError,
    NoEligibleCheckersError,
    NotAuthorizedError,
    PayloadValidationError,
    SelfApprovalForbiddenError,
    ValidationError,
    WithdrawalNotAllowedError,
)
from governance_kernel.logging_config import LogContext, get_logger
from governance_kernel.services.attribute_catalog import AttributeCatalog
from governance_kernel.services.rule_store import RuleConfigurationStore, rule_fingerprint

logger = get_logger("approval_service")


class ApprovalService:
    """Manages the approval request lifecycle, in memory."""

    def __init__(
        self,
        rule_store: RuleConfigurationStore,
        catalog: AttributeCatalog,
        directory: RoleDirectory,
        commit_callback: CommitCallback | None = None,
        clock: Clock | None = None,
        settings: EngineSettings | None = None,
    ) -> None:
        self._rule_store = rule_store
        self._catalog = catalog
        self._directory = directory
        self._commit_callback = commit_callback
        self._clock = clock or SystemClock()
        self._settings = settings or EngineSettings()
        self._registry_lock = threading.Lock()
        self._requests: dict[UUID, ApprovalRequest] = {}
        self._locks: dict[UUID, threading.Lock] = {}

    @property
    def settings(self) -> EngineSettings:
        return self._settings

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit(
        self,
        entity_type: str,
        action: ChangeAction | str,
        payload: Mapping[str, Any],
        maker: ActorContext,
        entity_id: str | None = None,
        previous_payload: Mapping[str, Any] | None = None,
    ) -> SubmissionResult:
        """Propose a change and bind it to the governing rule.

        Returns:
            ``SubmissionResult(auto_commit=True)`` when no rule governs the
            change (and no fallback is configured); otherwise the result
            carries the new pending ``ApprovalRequest``.
        """
        try:
            action = ChangeAction(action)
        except ValueError as exc:
            raise ValidationError("submission", [str(exc)]) from exc

        if action is ChangeAction.CREATE and entity_id is not None:
            raise ValidationError("submission", ["a create must not name an entity id"])
        if action is not ChangeAction.CREATE and not entity_id:
            raise ValidationError("submission", [f"{action.value} must name an entity id"])

        with LogContext.bind(actor_id=maker.actor_id, entity_type=entity_type):
            typed = self.coerce_payload(payload)
            snapshot = self._rule_store.snapshot()
            match = select_matching_rule(snapshot.rules, entity_type, typed, snapshot.stale)

            rule = match.rule
            if rule is None:
                if not self._settings.require_approval_fallback:
                    logger.info(
                        "approval_not_required",
                        extra={
                            "action": action.value,
                            "candidates_evaluated": match.candidates_evaluated,
                        },
                    )
                    return SubmissionResult(
                        auto_commit=True,
                        payload=freeze_payload(payload),
                        reason="No approval rule governs this change",
                    )
                rule = self._fallback_rule(entity_type)

            if rule.maker_roles and maker.role not in rule.maker_roles:
                raise MakerNotPermittedError(rule.rule_id, maker.actor_id, maker.role)

            eligibility = resolve_checkers(rule, self._directory, maker.actor_id)
            if not rule.has_checkers or (
                rule.quorum is QuorumPolicy.ALL_ASSIGNED_CHECKERS
                and not eligibility.identities
            ):
                raise NoEligibleCheckersError(rule.rule_id, maker.actor_id)
            if rule.quorum is QuorumPolicy.ALL_ASSIGNED_CHECKERS:
                unknown = sorted(u for u in eligibility.identities if u not in self._directory)
                if unknown:
                    raise NoEligibleCheckersError(rule.rule_id, maker.actor_id, unknown)

            request = ApprovalRequest(
                request_id=uuid4(),
                entity_type=entity_type,
                action=action,
                payload=freeze_payload(payload),
                maker_id=maker.actor_id,
                maker_role=maker.role,
                submitted_at=self._clock.now(),
                rule_id=rule.rule_id,
                rule_name=rule.name,
                quorum=rule.quorum,
                eligibility=eligibility,
                entity_id=entity_id,
                previous_payload=freeze_payload(previous_payload),
                rule_fingerprint=rule_fingerprint(rule),
            )

            with self._registry_lock:
                self._requests[request.request_id] = request
                self._locks[request.request_id] = threading.Lock()

            logger.info(
                "approval_submitted",
                extra={
                    "request_id": str(request.request_id),
                    "rule_id": rule.rule_id,
                    "action": action.value,
                    "entity_id": entity_id,
                    "quorum": rule.quorum.value,
                    "eligible_checkers": sorted(eligibility.identities),
                },
            )
            return SubmissionResult(
                auto_commit=False,
                payload=request.payload,
                request=request,
                reason=f"Requires approval under rule '{rule.name}'",
            )

    def coerce_payload(self, payload: Mapping[str, Any]) -> dict[str, AttributeValue]:
        """Type every payload value against the attribute catalog.

        Keys unknown to the catalog are typed by their Python type.  A
        ``None`` value is treated as absent.

        Raises:
            PayloadValidationError: listing every value that does not fit
                its attribute.
        """
        typed: dict[str, AttributeValue] = {}
        issues: list[str] = []
        for key, raw in payload.items():
            if raw is None:
                continue
            attribute = self._catalog.find(key)
            try:
                typed[key] = attribute.coerce(raw) if attribute is not None else infer_value(raw)
            except ValueError as exc:
                issues.append(f"{key}: {exc}")
        if issues:
            raise PayloadValidationError("payload", issues)
        return typed

    def _fallback_rule(self, entity_type: str) -> ApprovalRule:
        return ApprovalRule(
            rule_id=FALLBACK_RULE_ID,
            name="Fallback approval",
            entity_type=entity_type,
            checker_roles=self._settings.fallback_checker_roles,
            checker_users=self._settings.fallback_checker_users,
            quorum=self._settings.fallback_quorum,
            description="Applied when no configured rule matches",
        )

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def decide(
        self,
        request_id: UUID | str,
        actor_id: str,
        actor_role: str | None,
        decision: ApprovalDecision | str,
        comment: str | None = None,
    ) -> ApprovalRequest:
        """Record a decision-log entry and apply the quorum policy.

        Preconditions are checked in this order, each with its own error:
        pending status, not the maker, eligible checker, comment present
        for a rejection, no earlier approval by the same actor.

        Returns:
            The updated request.
        """
        try:
            decision = ApprovalDecision(decision)
        except ValueError as exc:
            raise ValidationError("decision", [str(exc)]) from exc

        key = _request_key(request_id)
        text = (comment or "").strip()

        with self._lock_for(key), LogContext.bind(request_id=str(key), actor_id=actor_id):
            request = self._requests[key]
            if request.is_terminal:
                raise AlreadyFinalizedError(str(key), request.status.value)

            authorized = validate_actor_authority(request.eligibility, actor_id, actor_role)
            if decision is ApprovalDecision.COMMENT:
                if actor_id != request.maker_id and not authorized:
                    raise NotAuthorizedError(str(key), actor_id, actor_role)
                if not text:
                    raise CommentRequiredError(str(key), decision.value)
            else:
                if actor_id == request.maker_id:
                    raise SelfApprovalForbiddenError(str(key), actor_id)
                if not authorized:
                    raise NotAuthorizedError(str(key), actor_id, actor_role)
                if decision is ApprovalDecision.REJECT and not text:
                    raise CommentRequiredError(str(key), decision.value)
                if decision is ApprovalDecision.APPROVE and actor_id in request.approved_by:
                    raise DuplicateDecisionError(str(key), actor_id)

            now = self._clock.now()
            record = ApprovalDecisionRecord(
                decision_id=uuid4(),
                request_id=key,
                actor_id=actor_id,
                actor_role=actor_role or "",
                decision=decision,
                comment=text,
                decided_at=now,
            )
            decisions = request.decisions + (record,)

            new_status = ApprovalStatus.PENDING
            if decision is not ApprovalDecision.COMMENT:
                evaluation = evaluate_quorum(request.quorum, request.eligibility, decisions)
                if evaluation.is_rejected:
                    new_status = ApprovalStatus.REJECTED
                elif evaluation.is_approved:
                    new_status = ApprovalStatus.APPROVED

            updated = self._transition(request, new_status, now, decisions=decisions)

            if new_status is ApprovalStatus.APPROVED:
                self._commit(updated)

            self._publish(updated)

            logger.info(
                "approval_decision_recorded",
                extra={
                    "decision": decision.value,
                    "actor_role": actor_role,
                    "has_comment": bool(text),
                    "old_status": request.status.value,
                    "new_status": new_status.value,
                    "approvals": len(updated.approved_by),
                },
            )
            return updated

    def withdraw(self, request_id: UUID | str, actor_id: str) -> ApprovalRequest:
        """Withdraw a pending request before any checker has acted on it."""
        key = _request_key(request_id)

        with self._lock_for(key), LogContext.bind(request_id=str(key), actor_id=actor_id):
            request = self._requests[key]
            if request.is_terminal:
                raise AlreadyFinalizedError(str(key), request.status.value)
            if actor_id != request.maker_id:
                raise NotAuthorizedError(str(key), actor_id, None)
            if request.checker_entries:
                raise WithdrawalNotAllowedError(str(key), len(request.checker_entries))

            updated = self._transition(request, ApprovalStatus.WITHDRAWN, self._clock.now())
            self._publish(updated)

            logger.info("approval_withdrawn", extra={"rule_id": request.rule_id})
            return updated

    def _transition(
        self,
        request: ApprovalRequest,
        new_status: ApprovalStatus,
        at: datetime,
        **changes: Any,
    ) -> ApprovalRequest:
        """Apply ``changes``; a terminal status is stamped ``resolved_at=at``."""
        if new_status is not request.status:
            if new_status not in APPROVAL_TRANSITIONS[request.status]:
                raise AlreadyFinalizedError(str(request.request_id), request.status.value)
            changes["status"] = new_status
            if new_status is not ApprovalStatus.PENDING:
                changes["resolved_at"] = at
        return replace(request, **changes)

    def _commit(self, request: ApprovalRequest) -> None:
        if self._commit_callback is not None:
            try:
                self._commit_callback(request)
            except Exception:
                logger.exception(
                    "approval_commit_failed",
                    extra={"rule_id": request.rule_id, "entity_id": request.entity_id},
                )
                raise
        logger.info(
            "approval_committed",
            extra={
                "rule_id": request.rule_id,
                "action": request.action.value,
                "entity_id": request.entity_id,
                "approved_by": list(request.approved_by),
            },
        )

    def _publish(self, request: ApprovalRequest) -> None:
        with self._registry_lock:
            self._requests[request.request_id] = request

    def _lock_for(self, key: UUID) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(key)
        if lock is None:
            raise ApprovalNotFoundError(str(key))
        return lock

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_request(self, request_id: UUID | str) -> ApprovalRequest:
        key = _request_key(request_id)
        with self._registry_lock:
            request = self._requests.get(key)
        if request is None:
            raise ApprovalNotFoundError(str(key))
        return request

    def list_requests(
        self,
        status: ApprovalStatus | str | None = None,
        entity_type: str | None = None,
        maker_id: str | None = None,
    ) -> list[ApprovalRequest]:
        """Requests in submission order, optionally filtered."""
        wanted = ApprovalStatus(status) if status is not None else None
        with self._registry_lock:
            requests = list(self._requests.values())
        return [
            r for r in requests
            if (wanted is None or r.status is wanted)
            and (entity_type is None or r.entity_type == entity_type)
            and (maker_id is None or r.maker_id == maker_id)
        ]

    def pending_for(self, actor: ActorContext) -> list[ApprovalRequest]:
        """Pending requests ``actor`` can still approve or reject."""
        return [
            r for r in self.list_requests(status=ApprovalStatus.PENDING)
            if r.maker_id != actor.actor_id
            and r.eligibility.admits(actor.actor_id, actor.role)
            and actor.actor_id not in r.approved_by
        ]

    def status_counts(self) -> dict[ApprovalStatus, int]:
        """Number of requests in each status (every status present)."""
        counts = {status: 0 for status in ApprovalStatus}
        for request in self.list_requests():
            counts[request.status] += 1
        return counts


def _request_key(request_id: UUID | str) -> UUID:
    if isinstance(request_id, UUID):
        return request_id
    try:
        return UUID(str(request_id))
    except ValueError as exc:
        raise ApprovalNotFoundError(str(request_id)) from exc
