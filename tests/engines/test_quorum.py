"""
Tests for the pure quorum engine.

Tests cover:
- resolve_checkers: role expansion, explicit users, maker exclusion
- validate_actor_authority: role or user admission
- evaluate_quorum: any-one-checker, all-assigned-checkers, rejection
  finality, duplicate approvals
"""

from uuid import uuid4

from governance_engines.quorum import (
    evaluate_quorum,
    resolve_checkers,
    validate_actor_authority,
)
from governance_kernel.domain.approval import (
    ApprovalDecision,
    ApprovalDecisionRecord,
    CheckerEligibility,
)
from governance_kernel.domain.rules import QuorumPolicy
from tests.factories import make_rule


class StaticDirectory:
    def __init__(self, members: dict[str, set[str]]):
        self._members = members

    def members_of(self, role: str) -> frozenset[str]:
        return frozenset(self._members.get(role, ()))

    def __contains__(self, user_id: object) -> bool:
        return any(user_id in users for users in self._members.values())


DIRECTORY = StaticDirectory({"checker": {"bob", "carol"}, "admin": {"john", "jane"}})
REQUEST_ID = uuid4()


def make_decision(actor_id: str, decision=ApprovalDecision.APPROVE, role="checker", comment=""):
    return ApprovalDecisionRecord(
        decision_id=uuid4(),
        request_id=REQUEST_ID,
        actor_id=actor_id,
        actor_role=role,
        decision=decision,
        comment=comment,
    )


# =========================================================================
# resolve_checkers
# =========================================================================


class TestResolveCheckers:
    def test_roles_are_expanded_to_members(self):
        rule = make_rule(checker_roles=("checker",))
        eligibility = resolve_checkers(rule, DIRECTORY, maker_id="jane")
        assert eligibility.identities == {"bob", "carol"}
        assert eligibility.roles == {"checker"}

    def test_users_and_roles_are_unioned(self):
        rule = make_rule(checker_roles=("checker",), checker_users=("dave",))
        eligibility = resolve_checkers(rule, DIRECTORY, maker_id="jane")
        assert eligibility.identities == {"bob", "carol", "dave"}
        assert eligibility.users == {"dave"}

    def test_maker_is_never_an_identity(self):
        rule = make_rule(checker_roles=("admin",), checker_users=("jane",))
        eligibility = resolve_checkers(rule, DIRECTORY, maker_id="jane")
        assert eligibility.identities == {"john"}
        # The assignment itself is kept as configured.
        assert eligibility.users == {"jane"}

    def test_unknown_role_resolves_to_nobody(self):
        rule = make_rule(checker_roles=("auditor",))
        assert resolve_checkers(rule, DIRECTORY, maker_id="jane").identities == frozenset()


class TestValidateActorAuthority:
    eligibility = CheckerEligibility(roles=frozenset({"checker"}), users=frozenset({"dave"}))

    def test_role_holder_is_admitted(self):
        assert validate_actor_authority(self.eligibility, "anyone", "checker")

    def test_assigned_user_is_admitted_whatever_their_role(self):
        assert validate_actor_authority(self.eligibility, "dave", "viewer")
        assert validate_actor_authority(self.eligibility, "dave", None)

    def test_others_are_refused(self):
        assert not validate_actor_authority(self.eligibility, "alice", "viewer")
        assert not validate_actor_authority(self.eligibility, "alice", None)


# =========================================================================
# evaluate_quorum
# =========================================================================


class TestAnyOneChecker:
    eligibility = CheckerEligibility(roles=frozenset({"checker"}), identities=frozenset({"bob", "carol"}))

    def test_empty_log_is_pending(self):
        result = evaluate_quorum(QuorumPolicy.ANY_ONE_CHECKER, self.eligibility, [])
        assert not result.is_approved
        assert not result.is_rejected

    def test_one_approval_finalizes(self):
        result = evaluate_quorum(QuorumPolicy.ANY_ONE_CHECKER, self.eligibility, [make_decision("bob")])
        assert result.is_approved
        assert result.approved_by == ("bob",)

    def test_comments_do_not_count(self):
        log = [make_decision("bob", ApprovalDecision.COMMENT, comment="looks fine")]
        assert not evaluate_quorum(QuorumPolicy.ANY_ONE_CHECKER, self.eligibility, log).is_approved


class TestAllAssignedCheckers:
    eligibility = CheckerEligibility(roles=frozenset({"checker"}), identities=frozenset({"bob", "carol"}))

    def test_partial_approval_stays_pending(self):
        result = evaluate_quorum(QuorumPolicy.ALL_ASSIGNED_CHECKERS, self.eligibility, [make_decision("bob")])
        assert not result.is_approved
        assert result.outstanding == {"carol"}
        assert result.reason == "1/2 assigned checkers approved"

    def test_every_identity_approving_finalizes(self):
        log = [make_decision("bob"), make_decision("carol")]
        result = evaluate_quorum(QuorumPolicy.ALL_ASSIGNED_CHECKERS, self.eligibility, log)
        assert result.is_approved
        assert result.approved_by == ("bob", "carol")
        assert result.outstanding == frozenset()

    def test_repeated_approval_counts_once(self):
        log = [make_decision("bob"), make_decision("bob")]
        result = evaluate_quorum(QuorumPolicy.ALL_ASSIGNED_CHECKERS, self.eligibility, log)
        assert not result.is_approved
        assert result.approved_by == ("bob",)

    def test_approvals_outside_the_snapshot_do_not_count(self):
        log = [make_decision("bob"), make_decision("newcomer")]
        result = evaluate_quorum(QuorumPolicy.ALL_ASSIGNED_CHECKERS, self.eligibility, log)
        assert not result.is_approved
        assert result.approved_by == ("bob",)

    def test_empty_identity_set_never_approves(self):
        empty = CheckerEligibility(roles=frozenset({"checker"}))
        result = evaluate_quorum(QuorumPolicy.ALL_ASSIGNED_CHECKERS, empty, [make_decision("bob")])
        assert not result.is_approved


class TestRejection:
    eligibility = CheckerEligibility(roles=frozenset({"checker"}), identities=frozenset({"bob", "carol"}))

    def test_single_rejection_is_final_under_any_policy(self):
        for policy in QuorumPolicy:
            log = [make_decision("bob"), make_decision("carol", ApprovalDecision.REJECT, comment="no")]
            result = evaluate_quorum(policy, self.eligibility, log)
            assert result.is_rejected
            assert not result.is_approved
            assert result.reason == "Rejected by carol"
