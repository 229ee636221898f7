"""
Engine Builder (``governance_config.builder``).

Turns a validated ``GovernanceConfigurationSet`` into a ready-to-use,
in-memory approval engine: attribute catalog, rule store (rules in file
order), user directory and approval service, wired together.
"""

from __future__ import annotations

from dataclasses import dataclass

from governance_config.bridges import (
    attribute_from_def,
    rule_from_def,
    settings_from_def,
    user_from_def,
)
from governance_config.loader import InvalidConfigurationError
from governance_config.schema import GovernanceConfigurationSet
from governance_config.validator import validate_configuration
from governance_kernel.domain.approval import CommitCallback, EntityReferenceChecker
from governance_kernel.domain.clock import Clock
from governance_kernel.logging_config import get_logger
from governance_kernel.services.approval_service import ApprovalService
from governance_kernel.services.attribute_catalog import AttributeCatalog
from governance_kernel.services.directory import DEFAULT_ROLES, UserDirectory
from governance_kernel.services.rule_store import RuleConfigurationStore

logger = get_logger("config.builder")


@dataclass(frozen=True)
class GovernanceEngine:
    """The assembled collaborators of one engine instance."""

    config_id: str
    catalog: AttributeCatalog
    rule_store: RuleConfigurationStore
    directory: UserDirectory
    service: ApprovalService


def build_engine(
    config: GovernanceConfigurationSet,
    commit_callback: CommitCallback | None = None,
    clock: Clock | None = None,
    reference_checker: EntityReferenceChecker | None = None,
) -> GovernanceEngine:
    """
    Build an engine from ``config``.

    Raises:
        InvalidConfigurationError: if the configuration does not validate.
    """
    validation = validate_configuration(config)
    if not validation.is_valid:
        raise InvalidConfigurationError(config.config_id, validation.errors)
    for warning in validation.warnings:
        logger.warning("config_warning", extra={"config_id": config.config_id, "detail": warning})

    catalog = AttributeCatalog(
        (attribute_from_def(a) for a in config.attributes),
        reference_checker=reference_checker,
    )
    directory = UserDirectory(
        (user_from_def(u) for u in config.users),
        roles=config.roles or DEFAULT_ROLES,
    )
    rule_store = RuleConfigurationStore(
        catalog,
        entity_types=config.entity_types,
        reference_checker=reference_checker,
        directory=directory,
    )
    for rule in config.rules:
        rule_store.create(rule_from_def(rule))
    service = ApprovalService(
        rule_store,
        catalog,
        directory,
        commit_callback=commit_callback,
        clock=clock,
        settings=settings_from_def(config.settings),
    )

    logger.info(
        "engine_built",
        extra={
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "attribute_count": len(config.attributes),
            "rule_count": len(config.rules),
            "user_count": len(config.users),
        },
    )
    return GovernanceEngine(
        config_id=config.config_id,
        catalog=catalog,
        rule_store=rule_store,
        directory=directory,
        service=service,
    )
