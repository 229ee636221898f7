"""
Configuration Validator (``governance_config.validator``).

Responsibility
--------------
Validates a ``GovernanceConfigurationSet`` before an engine is built from
it, reporting every problem at once instead of failing on the first.

Architecture position
---------------------
**Config layer** -- build-time validation.  Reuses the kernel's attribute
and condition validation so that a configuration that passes here is
accepted by the attribute catalog and the rule store.

Invariants enforced
-------------------
* Identifier uniqueness for entity types, roles, attributes, users, rules.
* Referential closure: rules name declared entity types, roles, users and
  attributes.
* Every condition validates against its attribute (operator/type
  compatibility, option sets, regex syntax, connectors).
* Active rules and an enabled fallback name at least one checker.

Failure modes
-------------
* Validation errors (``ConfigValidationResult.errors``) -> the
  configuration MUST NOT be used.
* Validation warnings -> usable, but worth a review (shadowed rules,
  checker roles with no members).
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field

from governance_config.bridges import attribute_from_def, condition_from_def
from governance_config.schema import GovernanceConfigurationSet, RuleDef
from governance_engines.conditions import validate_condition
from governance_kernel.domain.attributes import AttributeDefinition, validate_attribute
from governance_kernel.domain.rules import QuorumPolicy


@dataclass
class ConfigValidationResult:
    """
    Result of configuration validation.

    ``is_valid`` is ``True`` only when ``errors`` is empty.
    """

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def validate_configuration(config: GovernanceConfigurationSet) -> ConfigValidationResult:
    """Validate a configuration set."""
    result = ConfigValidationResult()

    _check_unique("entity type", config.entity_types, result)
    _check_unique("role", config.roles, result)

    attributes = _validate_attributes(config, result)
    _validate_users(config, result)
    _validate_rules(config, attributes, result)
    _validate_settings(config, result)

    return result


def _check_unique(kind: str, ids: Iterable[str], result: ConfigValidationResult) -> None:
    for value, count in Counter(ids).items():
        if count > 1:
            result.add_error(f"Duplicate {kind} '{value}'")


def _validate_attributes(
    config: GovernanceConfigurationSet,
    result: ConfigValidationResult,
) -> dict[str, AttributeDefinition]:
    _check_unique("attribute id", (a.attribute_id for a in config.attributes), result)

    valid: dict[str, AttributeDefinition] = {}
    for attr in config.attributes:
        try:
            definition = attribute_from_def(attr)
        except ValueError:
            result.add_error(
                f"Attribute '{attr.attribute_id}': unknown type '{attr.attribute_type}'"
            )
            continue
        issues = validate_attribute(definition)
        for issue in issues:
            result.add_error(f"Attribute '{attr.attribute_id}': {issue}")
        if not issues:
            valid[attr.attribute_id] = definition
    return valid


def _validate_users(config: GovernanceConfigurationSet, result: ConfigValidationResult) -> None:
    _check_unique("user id", (u.user_id for u in config.users), result)
    roles = set(config.roles)
    for user in config.users:
        if not user.name:
            result.add_error(f"User '{user.user_id}': name is required")
        if roles and user.role not in roles:
            result.add_error(f"User '{user.user_id}': unknown role '{user.role}'")


def _validate_rules(
    config: GovernanceConfigurationSet,
    attributes: dict[str, AttributeDefinition],
    result: ConfigValidationResult,
) -> None:
    _check_unique("rule id", (r.rule_id for r in config.rules), result)

    entity_types = set(config.entity_types)
    user_ids = {u.user_id for u in config.users}
    declared_attributes = {a.attribute_id for a in config.attributes}
    unconditional: dict[str, str] = {}

    for rule in config.rules:
        prefix = f"Rule '{rule.rule_id}'"

        if not rule.name:
            result.add_error(f"{prefix}: name is required")
        if entity_types and rule.entity_type not in entity_types:
            result.add_error(f"{prefix}: unknown entity type '{rule.entity_type}'")
        _check_roles(prefix, "checker", rule.checker_roles, config.roles, result)
        _check_roles(prefix, "maker", rule.maker_roles, config.roles, result)
        for user_id in rule.checker_users:
            if user_ids and user_id not in user_ids:
                result.add_error(f"{prefix}: unknown checker user '{user_id}'")

        try:
            quorum = QuorumPolicy(rule.quorum)
        except ValueError:
            result.add_error(f"{prefix}: unknown quorum policy '{rule.quorum}'")
            quorum = None

        if rule.active and not (rule.checker_roles or rule.checker_users):
            result.add_error(
                f"{prefix}: an active rule needs at least one checker role or checker user"
            )

        _validate_conditions(prefix, rule, attributes, declared_attributes, result)

        if rule.active:
            _warn_reachability(rule, quorum, config, unconditional, result)


def _check_roles(
    prefix: str,
    kind: str,
    roles: Iterable[str],
    declared: Iterable[str],
    result: ConfigValidationResult,
) -> None:
    declared = set(declared)
    for role in roles:
        if declared and role not in declared:
            result.add_error(f"{prefix}: unknown {kind} role '{role}'")


def _validate_conditions(
    prefix: str,
    rule: RuleDef,
    attributes: dict[str, AttributeDefinition],
    declared_attributes: set[str],
    result: ConfigValidationResult,
) -> None:
    for position, condition in enumerate(rule.conditions):
        try:
            kernel_condition = condition_from_def(condition)
        except ValueError as exc:
            result.add_error(f"{prefix}: condition {position + 1}: {exc}")
            continue
        if condition.attribute_id in declared_attributes and condition.attribute_id not in attributes:
            # The attribute itself is invalid and already reported.
            continue
        for issue in validate_condition(
            kernel_condition, attributes.get(condition.attribute_id), position,
        ):
            result.add_error(f"{prefix}: {issue}")


def _warn_reachability(
    rule: RuleDef,
    quorum: QuorumPolicy | None,
    config: GovernanceConfigurationSet,
    unconditional: dict[str, str],
    result: ConfigValidationResult,
) -> None:
    shadowing = unconditional.get(rule.entity_type)
    if shadowing is not None:
        result.add_warning(
            f"Rule '{rule.rule_id}' can never match: rule '{shadowing}' "
            f"matches every {rule.entity_type} change first"
        )
    elif not rule.conditions:
        unconditional[rule.entity_type] = rule.rule_id

    if config.users:
        checker_roles = set(rule.checker_roles)
        members = {u.user_id for u in config.users if u.role in checker_roles}
        for role in rule.checker_roles:
            if not any(u.role == role for u in config.users):
                result.add_warning(f"Rule '{rule.rule_id}': checker role '{role}' has no members")
        if quorum is QuorumPolicy.ALL_ASSIGNED_CHECKERS and not (members | set(rule.checker_users)):
            result.add_warning(
                f"Rule '{rule.rule_id}': all assigned checkers are required "
                f"but the checker set resolves to nobody"
            )


def _validate_settings(config: GovernanceConfigurationSet, result: ConfigValidationResult) -> None:
    settings = config.settings
    try:
        QuorumPolicy(settings.fallback_quorum)
    except ValueError:
        result.add_error(f"Settings: unknown fallback quorum policy '{settings.fallback_quorum}'")

    _check_roles("Settings", "fallback checker", settings.fallback_checker_roles, config.roles, result)
    user_ids = {u.user_id for u in config.users}
    for user_id in settings.fallback_checker_users:
        if user_ids and user_id not in user_ids:
            result.add_error(f"Settings: unknown fallback checker user '{user_id}'")

    if settings.require_approval_fallback and not (
        settings.fallback_checker_roles or settings.fallback_checker_users
    ):
        result.add_error(
            "Settings: require_approval_fallback needs at least one fallback "
            "checker role or checker user"
        )

