"""
Config -> Kernel Bridges.

Functions that convert configuration schema objects into kernel domain
objects.  These live in governance_config (the producer) because the
kernel must never import governance_config.

Every function raises ``ValueError`` when an authored enum value (type,
operator, connector, quorum) is unknown.
"""

from __future__ import annotations

from governance_config.schema import (
    AttributeDef,
    ConditionDef,
    RuleDef,
    SettingsDef,
    UserDef,
)
from governance_kernel.domain.attributes import AttributeDefinition
from governance_kernel.domain.rules import (
    ApprovalRule,
    ConditionOperator,
    LogicalConnector,
    QuorumPolicy,
    RuleCondition,
)
from governance_kernel.domain.settings import EngineSettings
from governance_kernel.domain.values import AttributeType
from governance_kernel.services.directory import User


def attribute_from_def(attr: AttributeDef) -> AttributeDefinition:
    return AttributeDefinition(
        attribute_id=attr.attribute_id,
        name=attr.name,
        attribute_type=AttributeType(attr.attribute_type),
        options=attr.options,
        default_value=attr.default_value,
        required=attr.required,
        description=attr.description,
    )


def user_from_def(user: UserDef) -> User:
    return User(user_id=user.user_id, name=user.name, email=user.email, role=user.role)


def condition_from_def(condition: ConditionDef) -> RuleCondition:
    return RuleCondition(
        attribute_id=condition.attribute_id,
        operator=ConditionOperator(condition.operator),
        values=condition.values,
        connector=LogicalConnector(condition.connector) if condition.connector else None,
    )


def rule_from_def(rule: RuleDef) -> ApprovalRule:
    return ApprovalRule(
        rule_id=rule.rule_id,
        name=rule.name,
        entity_type=rule.entity_type,
        conditions=tuple(condition_from_def(c) for c in rule.conditions),
        checker_roles=frozenset(rule.checker_roles),
        checker_users=frozenset(rule.checker_users),
        maker_roles=frozenset(rule.maker_roles),
        quorum=QuorumPolicy(rule.quorum),
        active=rule.active,
        description=rule.description,
    )


def settings_from_def(settings: SettingsDef) -> EngineSettings:
    return EngineSettings(
        require_approval_fallback=settings.require_approval_fallback,
        fallback_checker_roles=frozenset(settings.fallback_checker_roles),
        fallback_checker_users=frozenset(settings.fallback_checker_users),
        fallback_quorum=QuorumPolicy(settings.fallback_quorum),
    )
