"""
Tests for the approval service (maker-checker lifecycle).

Tests cover:
- submit: auto-commit when no rule governs, rule binding, payload typing,
  maker role restriction, snapshot of checker eligibility
- decide: approval, rejection, comments, quorum policies and the
  precondition order (finalized, self-approval, authority, comment,
  duplicate)
- withdraw: allowed only before any checker entry
- commit callback: runs once on approval; a failing callback leaves the
  request pending
- queries: list_requests, pending_for, status_counts
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from governance_kernel.domain.approval import (
    ActorContext,
    ApprovalDecision,
    ApprovalStatus,
    ChangeAction,
)
from governance_kernel.domain.clock import DeterministicClock
from governance_kernel.domain.rules import QuorumPolicy
from governance_kernel.domain.settings import FALLBACK_RULE_ID, EngineSettings
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
    StaleRuleError,
    ValidationError,
    WithdrawalNotAllowedError,
)
from governance_kernel.services.approval_service import ApprovalService
from tests.factories import cond, make_rule

ADMIN = ActorContext(actor_id="admin", role="admin")
PREMIUM_PAYLOAD = {"price": 1500, "category": "Electronics"}


@pytest.fixture
def premium_rule(rule_store):
    return rule_store.create(make_rule(
        "premium",
        name="Premium Category",
        entity_type="Category",
        conditions=(
            cond("price", "greater_than", 1000),
            cond("category", "in", "Electronics", "Luxury", connector="and"),
        ),
        checker_roles=("checker",),
    ))


@pytest.fixture
def all_assigned_rule(rule_store):
    return rule_store.create(make_rule(
        "dual",
        name="Dual Control",
        entity_type="Geography",
        checker_roles=("checker",),
        quorum=QuorumPolicy.ALL_ASSIGNED_CHECKERS,
    ))


def submit_premium(service, maker):
    return service.submit("Category", ChangeAction.CREATE, PREMIUM_PAYLOAD, maker).request


class TickingClock(DeterministicClock):
    """Every reading is one second later than the last."""

    def now(self):
        self.advance(1)
        return super().now()


# =========================================================================
# End-to-end
# =========================================================================


class TestMakerCheckerFlow:
    def test_jane_submits_and_bob_approves(self, service, premium_rule, jane, commits, clock):
        result = service.submit("Category", "create", PREMIUM_PAYLOAD, jane)

        assert not result.auto_commit
        request = result.request
        assert request.status is ApprovalStatus.PENDING
        assert request.rule_id == "premium"
        assert request.maker_id == "jane"
        assert request.eligibility.identities == {"bob", "carol"}
        assert dict(request.payload) == PREMIUM_PAYLOAD
        assert commits == []

        clock.advance(60)
        approved = service.decide(request.request_id, "bob", "checker", "approve")

        assert approved.status is ApprovalStatus.APPROVED
        assert approved.approved_by == ("bob",)
        assert approved.resolved_at == clock.now()
        assert [d.decision for d in approved.decisions] == [ApprovalDecision.APPROVE]
        assert commits == [approved]
        assert service.get_request(request.request_id) == approved

    def test_resolution_time_matches_final_decision(self, rule_store, catalog, directory, premium_rule, jane):
        service = ApprovalService(rule_store, catalog, directory, clock=TickingClock())
        approved = service.decide(submit_premium(service, jane).request_id, "bob", "checker", "approve")
        assert approved.resolved_at == approved.decisions[-1].decided_at

        rejected = service.decide(
            submit_premium(service, jane).request_id, "carol", "checker", "reject", comment="no",
        )
        assert rejected.resolved_at == rejected.decisions[-1].decided_at

    def test_unmatched_change_auto_commits(self, service, premium_rule, jane, commits):
        result = service.submit("Category", "create", {"price": 500, "category": "Electronics"}, jane)
        assert result.auto_commit
        assert result.request is None
        assert result.payload["price"] == 500
        assert service.list_requests() == []
        assert commits == []

    def test_rejection_requires_a_comment(self, service, premium_rule, jane):
        request = submit_premium(service, jane)

        with pytest.raises(CommentRequiredError):
            service.decide(request.request_id, "bob", "checker", "reject")
        with pytest.raises(CommentRequiredError):
            service.decide(request.request_id, "bob", "checker", "reject", comment="   ")
        assert service.get_request(request.request_id).decisions == ()

        rejected = service.decide(
            request.request_id, "bob", "checker", "reject", comment="Price looks wrong",
        )
        assert rejected.status is ApprovalStatus.REJECTED
        assert rejected.decisions[-1].comment == "Price looks wrong"

    def test_rejection_does_not_commit(self, service, premium_rule, jane, commits):
        request = submit_premium(service, jane)
        service.decide(request.request_id, "bob", "checker", "reject", comment="no")
        assert commits == []


# =========================================================================
# Submission
# =========================================================================


class TestSubmit:
    def test_invalid_payload_value(self, service, premium_rule, jane):
        with pytest.raises(PayloadValidationError) as exc_info:
            service.submit("Category", "create", {"price": "lots", "category": "Toys"}, jane)
        assert len(exc_info.value.issues) == 2
        assert exc_info.value.code == "PAYLOAD_VALIDATION_ERROR"

    def test_none_values_are_treated_as_absent(self, service, rule_store, jane):
        rule_store.create(make_rule("no-price", conditions=(cond("price", "not_equals", 5),)))
        result = service.submit("Category", "create", {"price": None}, jane)
        assert result.request.rule_id == "no-price"

    def test_unknown_keys_are_typed_by_value(self, service, rule_store, jane):
        result = service.submit("Category", "create", {"notes": "anything", "count": 3}, jane)
        assert result.auto_commit

    def test_invalid_action(self, service, jane):
        with pytest.raises(ValidationError):
            service.submit("Category", "archive", {}, jane)

    def test_create_must_not_name_entity(self, service, jane):
        with pytest.raises(ValidationError):
            service.submit("Category", "create", {}, jane, entity_id="42")

    def test_update_must_name_entity(self, service, jane):
        with pytest.raises(ValidationError) as exc_info:
            service.submit("Category", "update", {}, jane)
        assert exc_info.value.issues == ["update must name an entity id"]

    def test_update_keeps_previous_payload(self, service, premium_rule, jane):
        request = service.submit(
            "Category", "update", PREMIUM_PAYLOAD, jane,
            entity_id="cat-7",
            previous_payload={"price": 900, "category": "Electronics"},
        ).request
        assert request.entity_id == "cat-7"
        assert request.changed_attributes() == {"price": (900, 1500)}

    def test_maker_role_restriction(self, service, rule_store):
        rule_store.create(make_rule("makers-only", maker_roles=("maker",)))
        with pytest.raises(MakerNotPermittedError) as exc_info:
            service.submit("Category", "create", {}, ADMIN)
        assert exc_info.value.maker_role == "admin"

    def test_all_assigned_with_nobody_but_the_maker(self, service, rule_store, jane):
        rule_store.create(make_rule(
            "solo", checker_roles=(), checker_users=("jane",),
            quorum=QuorumPolicy.ALL_ASSIGNED_CHECKERS,
        ))
        with pytest.raises(NoEligibleCheckersError):
            service.submit("Category", "create", {}, jane)
        assert service.list_requests() == []

    def test_stale_rule_blocks_submission(self, service, catalog, premium_rule, jane):
        catalog.update("category", options=["Electronics", "Books"])
        with pytest.raises(StaleRuleError) as exc_info:
            service.submit("Category", "create", PREMIUM_PAYLOAD, jane)
        assert exc_info.value.rule_id == "premium"

    def test_deactivated_stale_rule_no_longer_blocks(self, service, catalog, rule_store, premium_rule, jane):
        catalog.update("category", options=["Electronics", "Books"])
        rule_store.set_active("premium", False)

        result = service.submit("Category", "create", PREMIUM_PAYLOAD, jane)
        assert result.auto_commit
        assert service.list_requests() == []

    def test_fallback_rule_when_nothing_matches(self, rule_store, catalog, directory, clock, jane):
        service = ApprovalService(
            rule_store, catalog, directory, clock=clock,
            settings=EngineSettings(
                require_approval_fallback=True,
                fallback_checker_roles=frozenset({"admin"}),
            ),
        )
        result = service.submit("Category", "create", {"price": 10}, jane)
        assert not result.auto_commit
        assert result.request.rule_id == FALLBACK_RULE_ID
        assert result.request.eligibility.identities == {"admin"}

    def test_submission_is_logged_with_context(self, service, premium_rule, jane, captured_logs):
        request = submit_premium(service, jane)
        record = next(r for r in captured_logs() if r["message"] == "approval_submitted")
        assert record["request_id"] == str(request.request_id)
        assert record["actor_id"] == "jane"
        assert record["entity_type"] == "Category"
        assert record["eligible_checkers"] == ["bob", "carol"]


class TestRuleSnapshot:
    def test_rule_edits_do_not_touch_pending_request(self, service, rule_store, premium_rule, jane):
        request = submit_premium(service, jane)
        rule_store.update("premium", checker_roles=frozenset({"admin"}))

        with pytest.raises(NotAuthorizedError):
            service.decide(request.request_id, "admin", "admin", "approve")
        approved = service.decide(request.request_id, "bob", "checker", "approve")
        assert approved.status is ApprovalStatus.APPROVED

    def test_deactivation_does_not_touch_pending_request(self, service, rule_store, premium_rule, jane):
        request = submit_premium(service, jane)
        rule_store.set_active("premium", False)
        approved = service.decide(request.request_id, "bob", "checker", "approve")
        assert approved.status is ApprovalStatus.APPROVED

    def test_fingerprint_recorded(self, service, premium_rule, jane):
        request = submit_premium(service, jane)
        assert request.rule_fingerprint is not None
        assert len(request.rule_fingerprint) == 64


# =========================================================================
# Decisions
# =========================================================================


class TestDecidePreconditions:
    def test_maker_cannot_approve_own_request(self, service, rule_store):
        rule_store.create(make_rule("admins", checker_roles=("admin", "checker")))
        request = service.submit("Category", "create", {}, ADMIN).request
        assert "admin" not in request.eligibility.identities

        with pytest.raises(SelfApprovalForbiddenError):
            service.decide(request.request_id, "admin", "admin", "approve")
        with pytest.raises(SelfApprovalForbiddenError):
            service.decide(request.request_id, "admin", "admin", "reject", comment="oops")

    def test_non_checker_cannot_decide(self, service, premium_rule, jane):
        request = submit_premium(service, jane)
        with pytest.raises(NotAuthorizedError):
            service.decide(request.request_id, "alice", "viewer", "approve")

    def test_assigned_user_may_decide_regardless_of_role(self, service, rule_store, jane):
        rule_store.create(make_rule("named", checker_roles=(), checker_users=("alice",)))
        request = service.submit("Category", "create", {}, jane).request
        approved = service.decide(request.request_id, "alice", "viewer", "approve")
        assert approved.status is ApprovalStatus.APPROVED

    def test_finalized_request_cannot_change(self, service, premium_rule, jane):
        request = submit_premium(service, jane)
        service.decide(request.request_id, "bob", "checker", "approve")
        with pytest.raises(AlreadyFinalizedError):
            service.decide(request.request_id, "carol", "checker", "reject", comment="late")
        with pytest.raises(AlreadyFinalizedError):
            service.decide(request.request_id, "carol", "checker", "comment", comment="late")

    def test_finalized_checked_before_self_approval(self, service, premium_rule, jane):
        request = submit_premium(service, jane)
        service.decide(request.request_id, "bob", "checker", "approve")
        with pytest.raises(AlreadyFinalizedError):
            service.decide(request.request_id, "jane", "maker", "approve")

    def test_unknown_request(self, service):
        with pytest.raises(ApprovalNotFoundError):
            service.decide(uuid4(), "bob", "checker", "approve")
        with pytest.raises(ApprovalNotFoundError):
            service.decide("not-a-uuid", "bob", "checker", "approve")

    def test_invalid_decision(self, service, premium_rule, jane):
        request = submit_premium(service, jane)
        with pytest.raises(ValidationError):
            service.decide(request.request_id, "bob", "checker", "escalate")

    def test_string_request_id_accepted(self, service, premium_rule, jane):
        request = submit_premium(service, jane)
        approved = service.decide(str(request.request_id), "bob", "checker", "approve")
        assert approved.status is ApprovalStatus.APPROVED


class TestAllAssignedCheckers:
    def test_unknown_assigned_user_refused_at_submission(self, service, rule_store, jane):
        rule_store.create(make_rule(
            "typo", checker_roles=(), checker_users=("bob", "b0b_typo"),
            quorum=QuorumPolicy.ALL_ASSIGNED_CHECKERS,
        ))
        with pytest.raises(NoEligibleCheckersError) as exc_info:
            service.submit("Category", "create", {}, jane)
        assert exc_info.value.unknown_users == ["b0b_typo"]
        assert service.list_requests() == []

    def test_unknown_user_is_fine_under_any_one_checker(self, service, rule_store, jane):
        rule_store.create(make_rule(
            "typo", checker_roles=(), checker_users=("bob", "b0b_typo"),
        ))
        request = service.submit("Category", "create", {}, jane).request
        approved = service.decide(request.request_id, "bob", "checker", "approve")
        assert approved.status is ApprovalStatus.APPROVED

    def test_every_checker_must_approve(self, service, all_assigned_rule, jane, commits):
        request = service.submit("Geography", "update", {}, jane, entity_id="eu").request
        assert request.quorum is QuorumPolicy.ALL_ASSIGNED_CHECKERS

        after_bob = service.decide(request.request_id, "bob", "checker", "approve")
        assert after_bob.status is ApprovalStatus.PENDING
        assert commits == []

        after_carol = service.decide(request.request_id, "carol", "checker", "approve")
        assert after_carol.status is ApprovalStatus.APPROVED
        assert after_carol.approved_by == ("bob", "carol")
        assert len(commits) == 1

    def test_repeat_approval_rejected(self, service, all_assigned_rule, jane):
        request = service.submit("Geography", "update", {}, jane, entity_id="eu").request
        service.decide(request.request_id, "bob", "checker", "approve")
        with pytest.raises(DuplicateDecisionError):
            service.decide(request.request_id, "bob", "checker", "approve")

    def test_one_rejection_ends_the_request(self, service, all_assigned_rule, jane):
        request = service.submit("Geography", "update", {}, jane, entity_id="eu").request
        service.decide(request.request_id, "bob", "checker", "approve")
        rejected = service.decide(request.request_id, "carol", "checker", "reject", comment="no")
        assert rejected.status is ApprovalStatus.REJECTED

    def test_checker_joining_later_is_not_required(self, service, directory, all_assigned_rule, jane):
        request = service.submit("Geography", "update", {}, jane, entity_id="eu").request
        directory.update("alice", role="checker")

        service.decide(request.request_id, "bob", "checker", "approve")
        approved = service.decide(request.request_id, "carol", "checker", "approve")
        assert approved.status is ApprovalStatus.APPROVED


class TestComments:
    def test_checker_comment_keeps_request_pending(self, service, premium_rule, jane):
        request = submit_premium(service, jane)
        updated = service.decide(request.request_id, "bob", "checker", "comment", comment="Source?")
        assert updated.status is ApprovalStatus.PENDING
        assert updated.decisions[0].decision is ApprovalDecision.COMMENT

    def test_maker_may_comment(self, service, premium_rule, jane):
        request = submit_premium(service, jane)
        updated = service.decide(request.request_id, "jane", "maker", "comment", comment="Supplier quote")
        assert updated.decisions[0].actor_id == "jane"

    def test_comment_needs_text(self, service, premium_rule, jane):
        request = submit_premium(service, jane)
        with pytest.raises(CommentRequiredError):
            service.decide(request.request_id, "bob", "checker", "comment")

    def test_outsider_cannot_comment(self, service, premium_rule, jane):
        request = submit_premium(service, jane)
        with pytest.raises(NotAuthorizedError):
            service.decide(request.request_id, "alice", "viewer", "comment", comment="hi")

    def test_decision_log_keeps_insertion_order(self, service, premium_rule, jane, clock):
        request = submit_premium(service, jane)
        service.decide(request.request_id, "bob", "checker", "comment", comment="first")
        clock.tick()
        service.decide(request.request_id, "jane", "maker", "comment", comment="second")
        clock.tick()
        final = service.decide(request.request_id, "carol", "checker", "approve")
        assert [d.comment for d in final.decisions] == ["first", "second", ""]
        assert [d.decided_at for d in final.decisions] == sorted(d.decided_at for d in final.decisions)


# =========================================================================
# Withdrawal
# =========================================================================


class TestWithdraw:
    def test_maker_withdraws_untouched_request(self, service, premium_rule, jane, commits):
        request = submit_premium(service, jane)
        withdrawn = service.withdraw(request.request_id, "jane")
        assert withdrawn.status is ApprovalStatus.WITHDRAWN
        assert withdrawn.resolved_at is not None
        assert commits == []

    def test_own_comment_does_not_block_withdrawal(self, service, premium_rule, jane):
        request = submit_premium(service, jane)
        service.decide(request.request_id, "jane", "maker", "comment", comment="wrong price")
        assert service.withdraw(request.request_id, "jane").status is ApprovalStatus.WITHDRAWN

    def test_checker_entry_blocks_withdrawal(self, service, premium_rule, jane):
        request = submit_premium(service, jane)
        service.decide(request.request_id, "bob", "checker", "comment", comment="checking")
        with pytest.raises(WithdrawalNotAllowedError) as exc_info:
            service.withdraw(request.request_id, "jane")
        assert exc_info.value.decision_count == 1

    def test_only_the_maker_may_withdraw(self, service, premium_rule, jane):
        request = submit_premium(service, jane)
        with pytest.raises(NotAuthorizedError):
            service.withdraw(request.request_id, "bob")

    def test_withdrawn_request_is_final(self, service, premium_rule, jane):
        request = submit_premium(service, jane)
        service.withdraw(request.request_id, "jane")
        with pytest.raises(AlreadyFinalizedError):
            service.decide(request.request_id, "bob", "checker", "approve")
        with pytest.raises(AlreadyFinalizedError):
            service.withdraw(request.request_id, "jane")


# =========================================================================
# Commit callback
# =========================================================================


class TestCommitCallback:
    def test_failing_callback_leaves_request_pending(
        self, rule_store, catalog, directory, clock, premium_rule, jane, captured_logs,
    ):
        calls = []
        failures = [RuntimeError("entity store unavailable")]

        def commit(request):
            calls.append(request)
            if failures:
                raise failures.pop()

        service = ApprovalService(rule_store, catalog, directory, commit_callback=commit, clock=clock)
        request = submit_premium(service, jane)

        with pytest.raises(RuntimeError):
            service.decide(request.request_id, "bob", "checker", "approve")
        stored = service.get_request(request.request_id)
        assert stored.status is ApprovalStatus.PENDING
        assert stored.decisions == ()
        failed = [r for r in captured_logs() if r["message"] == "approval_commit_failed"]
        assert failed[0]["exc_type"] == "RuntimeError"

        approved = service.decide(request.request_id, "bob", "checker", "approve")
        assert approved.status is ApprovalStatus.APPROVED
        assert len(calls) == 2

    def test_no_callback_configured(self, rule_store, catalog, directory, premium_rule, jane):
        service = ApprovalService(rule_store, catalog, directory)
        request = submit_premium(service, jane)
        approved = service.decide(request.request_id, "bob", "checker", "approve")
        assert approved.status is ApprovalStatus.APPROVED


# =========================================================================
# Queries
# =========================================================================


class TestQueries:
    def test_list_requests_filters(self, service, premium_rule, all_assigned_rule, jane):
        first = submit_premium(service, jane)
        second = service.submit("Geography", "delete", {}, jane, entity_id="eu").request
        service.decide(first.request_id, "bob", "checker", "approve")

        assert [r.request_id for r in service.list_requests()] == [first.request_id, second.request_id]
        assert [r.request_id for r in service.list_requests(status="pending")] == [second.request_id]
        assert service.list_requests(entity_type="Category")[0].request_id == first.request_id
        assert service.list_requests(maker_id="bob") == []

    def test_pending_for_checker(self, service, all_assigned_rule, jane):
        request = service.submit("Geography", "update", {}, jane, entity_id="eu").request
        bob = ActorContext("bob", "checker")
        assert [r.request_id for r in service.pending_for(bob)] == [request.request_id]

        service.decide(request.request_id, "bob", "checker", "approve")
        assert service.pending_for(bob) == []
        assert len(service.pending_for(ActorContext("carol", "checker"))) == 1
        assert service.pending_for(jane) == []

    def test_status_counts(self, service, premium_rule, jane):
        first = submit_premium(service, jane)
        submit_premium(service, jane)
        service.withdraw(first.request_id, "jane")
        counts = service.status_counts()
        assert counts[ApprovalStatus.PENDING] == 1
        assert counts[ApprovalStatus.WITHDRAWN] == 1
        assert counts[ApprovalStatus.APPROVED] == 0

    def test_payload_is_read_only(self, service, premium_rule, jane):
        request = submit_premium(service, jane)
        with pytest.raises(TypeError):
            request.payload["price"] = Decimal("1")
