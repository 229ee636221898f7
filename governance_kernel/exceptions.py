"""
Typed Exception Hierarchy for the Governance Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Every failure the approval engine can report is a user-actionable decision
("you cannot approve your own change", "a rejection needs a reason").
Callers must be able to branch on the failure without parsing messages:

    try:
        service.decide(request_id, "bob", "checker", ApprovalDecision.REJECT)
    except CommentRequiredError as e:
        prompt_for_reason(e.request_id)
    except AlreadyFinalizedError as e:
        refresh_view(e.request_id, e.status)

Every exception therefore:
  1. Has its own class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA as attributes

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    GovernanceKernelError (base)
    |
    +-- ConfigurationError
    |   +-- ValidationError
    |   |   +-- PayloadValidationError
    |   +-- TypeMismatchError
    |   +-- StaleRuleError
    |   +-- ReferentialIntegrityError
    |   +-- RuleNotFoundError
    |   +-- AttributeNotFoundError
    |
    +-- ApprovalError
    |   +-- ApprovalNotFoundError
    |   +-- AlreadyFinalizedError
    |   +-- SelfApprovalForbiddenError
    |   +-- NotAuthorizedError
    |   +-- MakerNotPermittedError
    |   +-- CommentRequiredError
    |   +-- DuplicateDecisionError
    |   +-- WithdrawalNotAllowedError
    |   +-- NoEligibleCheckersError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Configuration   | VALIDATION_ERROR            | Malformed rule/attribute at save time
                | PAYLOAD_VALIDATION_ERROR    | Submitted value does not fit attribute
                | TYPE_MISMATCH               | Operator incompatible with attribute type
                | STALE_RULE                  | Rule invalidated by an attribute edit
                | REFERENTIAL_INTEGRITY       | Delete blocked by a live reference
                | RULE_NOT_FOUND              | Rule ID doesn't exist
                | ATTRIBUTE_NOT_FOUND         | Attribute ID doesn't exist
----------------|-----------------------------|-----------------------------------------
Approval        | APPROVAL_NOT_FOUND          | Request ID doesn't exist
                | ALREADY_FINALIZED           | Request is no longer pending
                | SELF_APPROVAL_FORBIDDEN     | Maker acting on their own request
                | NOT_AUTHORIZED              | Actor is not an eligible checker
                | MAKER_NOT_PERMITTED         | Maker role may not submit under rule
                | COMMENT_REQUIRED            | Rejection/comment without text
                | DUPLICATE_DECISION          | Same actor approving twice
                | WITHDRAWAL_NOT_ALLOWED      | Withdrawal after review started
                | NO_ELIGIBLE_CHECKERS        | Quorum set resolves to nobody
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Modifying an archived decision

===============================================================================
"""


class GovernanceKernelError(Exception):
    """
    Base exception for all governance kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "GOVERNANCE_KERNEL_ERROR"


# Configuration-time exceptions


class ConfigurationError(GovernanceKernelError):
    """Base exception for rule and attribute configuration errors."""

    code: str = "CONFIGURATION_ERROR"


class ValidationError(ConfigurationError):
    """
    A rule, condition or attribute definition is malformed.

    Raised at creation/update time; the offending definition is never
    stored.  ``issues`` lists every problem found, not just the first.
    """

    code: str = "VALIDATION_ERROR"

    def __init__(self, subject: str, issues: list[str]):
        self.subject = subject
        self.issues = list(issues)
        super().__init__(f"Invalid {subject}: " + "; ".join(self.issues))


class PayloadValidationError(ValidationError):
    """A submitted change carries a value that does not fit its attribute."""

    code: str = "PAYLOAD_VALIDATION_ERROR"


class TypeMismatchError(ConfigurationError):
    """Operator is not defined for the attribute's declared type."""

    code: str = "TYPE_MISMATCH"

    def __init__(self, attribute_id: str, attribute_type: str, operator: str):
        self.attribute_id = attribute_id
        self.attribute_type = attribute_type
        self.operator = operator
        super().__init__(
            f"Operator '{operator}' is not valid for attribute "
            f"'{attribute_id}' of type {attribute_type}"
        )


class StaleRuleError(ConfigurationError):
    """
    A candidate rule no longer validates against the attribute catalog.

    Rules are flagged stale when an attribute they reference changes type
    or options.  Matching fails closed on a stale rule until the rule is
    corrected or deactivated.
    """

    code: str = "STALE_RULE"

    def __init__(self, rule_id: str, issues: list[str]):
        self.rule_id = rule_id
        self.issues = list(issues)
        super().__init__(
            f"Rule {rule_id} is stale and must be re-validated: "
            + "; ".join(self.issues)
        )


class ReferentialIntegrityError(ConfigurationError):
    """Delete blocked because the target is still referenced."""

    code: str = "REFERENTIAL_INTEGRITY"

    def __init__(self, target_kind: str, target_id: str, referenced_by: list[str]):
        self.target_kind = target_kind
        self.target_id = target_id
        self.referenced_by = list(referenced_by)
        super().__init__(
            f"Cannot delete {target_kind} {target_id}: referenced by "
            + ", ".join(self.referenced_by)
        )


class RuleNotFoundError(ConfigurationError):
    """Rule with given ID was not found."""

    code: str = "RULE_NOT_FOUND"

    def __init__(self, rule_id: str):
        self.rule_id = rule_id
        super().__init__(f"Rule not found: {rule_id}")


class AttributeNotFoundError(ConfigurationError):
    """Attribute with given ID was not found."""

    code: str = "ATTRIBUTE_NOT_FOUND"

    def __init__(self, attribute_id: str):
        self.attribute_id = attribute_id
        super().__init__(f"Attribute not found: {attribute_id}")


# Approval lifecycle exceptions


class ApprovalError(GovernanceKernelError):
    """Base exception for approval request lifecycle errors."""

    code: str = "APPROVAL_ERROR"


class ApprovalNotFoundError(ApprovalError):
    """Approval request with given ID was not found."""

    code: str = "APPROVAL_NOT_FOUND"

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Approval request not found: {request_id}")


class AlreadyFinalizedError(ApprovalError):
    """The request has reached a terminal status and cannot change."""

    code: str = "ALREADY_FINALIZED"

    def __init__(self, request_id: str, status: str):
        self.request_id = request_id
        self.status = status
        super().__init__(
            f"Approval request {request_id} is already {status}"
        )


class SelfApprovalForbiddenError(ApprovalError):
    """
    The maker attempted to decide on their own request.

    Enforced regardless of any checker role the maker also holds.
    """

    code: str = "SELF_APPROVAL_FORBIDDEN"

    def __init__(self, request_id: str, actor_id: str):
        self.request_id = request_id
        self.actor_id = actor_id
        super().__init__(
            f"Actor {actor_id} submitted request {request_id} and cannot decide on it"
        )


class NotAuthorizedError(ApprovalError):
    """Actor is neither in a checker role nor an assigned checker user."""

    code: str = "NOT_AUTHORIZED"

    def __init__(self, request_id: str, actor_id: str, actor_role: str | None):
        self.request_id = request_id
        self.actor_id = actor_id
        self.actor_role = actor_role
        super().__init__(
            f"Actor {actor_id} (role {actor_role}) is not authorized "
            f"to act on request {request_id}"
        )


class MakerNotPermittedError(ApprovalError):
    """The maker's role may not submit changes governed by the matched rule."""

    code: str = "MAKER_NOT_PERMITTED"

    def __init__(self, rule_id: str, maker_id: str, maker_role: str):
        self.rule_id = rule_id
        self.maker_id = maker_id
        self.maker_role = maker_role
        super().__init__(
            f"Role '{maker_role}' of {maker_id} may not submit changes "
            f"governed by rule {rule_id}"
        )


class CommentRequiredError(ApprovalError):
    """Rejections and comment entries must carry non-empty text."""

    code: str = "COMMENT_REQUIRED"

    def __init__(self, request_id: str, decision: str):
        self.request_id = request_id
        self.decision = decision
        super().__init__(
            f"A comment is required to {decision} request {request_id}"
        )


class DuplicateDecisionError(ApprovalError):
    """The same actor already approved this request."""

    code: str = "DUPLICATE_DECISION"

    def __init__(self, request_id: str, actor_id: str):
        self.request_id = request_id
        self.actor_id = actor_id
        super().__init__(
            f"Actor {actor_id} has already approved request {request_id}"
        )


class WithdrawalNotAllowedError(ApprovalError):
    """Withdrawal attempted after a checker has acted on the request."""

    code: str = "WITHDRAWAL_NOT_ALLOWED"

    def __init__(self, request_id: str, decision_count: int):
        self.request_id = request_id
        self.decision_count = decision_count
        super().__init__(
            f"Request {request_id} cannot be withdrawn: "
            f"{decision_count} checker decision(s) already recorded"
        )


class NoEligibleCheckersError(ApprovalError):
    """
    The matched rule requires all assigned checkers, but the set resolves
    to no identity other than the maker, or names users the directory does
    not know (who could never approve).
    """

    code: str = "NO_ELIGIBLE_CHECKERS"

    def __init__(self, rule_id: str, maker_id: str, unknown_users: list[str] | None = None):
        self.rule_id = rule_id
        self.maker_id = maker_id
        self.unknown_users = list(unknown_users or [])
        if self.unknown_users:
            message = (
                f"Rule {rule_id} assigns unknown checker user(s) "
                + ", ".join(self.unknown_users)
            )
        else:
            message = f"Rule {rule_id} has no eligible checkers besides maker {maker_id}"
        super().__init__(message)


# Immutability exceptions


class ImmutabilityError(GovernanceKernelError):
    """Base exception for immutability violations."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )
