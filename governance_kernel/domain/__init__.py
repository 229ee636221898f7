"""
Pure domain layer.

This module contains immutable value objects with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- Time/clock (except the injectable Clock interface)
- I/O
"""

from governance_kernel.domain.approval import (
    APPROVAL_TRANSITIONS,
    TERMINAL_APPROVAL_STATUSES,
    ActorContext,
    ApprovalDecision,
    ApprovalDecisionRecord,
    ApprovalRequest,
    ApprovalStatus,
    ChangeAction,
    CheckerEligibility,
    QuorumEvaluation,
    SubmissionResult,
)
from governance_kernel.domain.attributes import AttributeDefinition, validate_attribute
from governance_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from governance_kernel.domain.rules import (
    ApprovalRule,
    ConditionOperator,
    LogicalConnector,
    QuorumPolicy,
    RuleCondition,
)
from governance_kernel.domain.settings import FALLBACK_RULE_ID, EngineSettings
from governance_kernel.domain.values import (
    AttributeType,
    AttributeValue,
    BooleanValue,
    DateValue,
    NumberValue,
    StringSetValue,
    TextValue,
    coerce_value,
    infer_value,
)

__all__ = [
    "APPROVAL_TRANSITIONS",
    "FALLBACK_RULE_ID",
    "TERMINAL_APPROVAL_STATUSES",
    "ActorContext",
    "ApprovalDecision",
    "ApprovalDecisionRecord",
    "ApprovalRequest",
    "ApprovalRule",
    "ApprovalStatus",
    "AttributeDefinition",
    "AttributeType",
    "AttributeValue",
    "BooleanValue",
    "ChangeAction",
    "CheckerEligibility",
    "Clock",
    "ConditionOperator",
    "DateValue",
    "DeterministicClock",
    "EngineSettings",
    "LogicalConnector",
    "NumberValue",
    "QuorumEvaluation",
    "QuorumPolicy",
    "RuleCondition",
    "StringSetValue",
    "SubmissionResult",
    "SystemClock",
    "TextValue",
    "coerce_value",
    "infer_value",
    "validate_attribute",
]
