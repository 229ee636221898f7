"""
GovernanceConfigurationSet schema.

Defines the human-authored, reviewable source artifact for approval
governance.  YAML is parsed into these types by the loader, checked by the
validator, and turned into kernel objects by the bridges when an engine is
built.

Values stay as authored (strings for enum-like fields) so that the
validator can report every problem instead of failing on the first
conversion.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class AttributeDef:
    """An attribute definition as authored."""

    attribute_id: str
    name: str
    attribute_type: str
    options: tuple[str, ...] = ()
    default_value: Any = None
    required: bool = False
    description: str | None = None


@dataclass(frozen=True)
class UserDef:
    user_id: str
    name: str
    role: str
    email: str = ""


@dataclass(frozen=True)
class ConditionDef:
    """One rule condition; ``connector`` joins it to the previous one."""

    attribute_id: str
    operator: str
    values: tuple[Any, ...] = ()
    connector: str | None = None


@dataclass(frozen=True)
class RuleDef:
    """An approval rule as authored.  Order in the file is store order."""

    rule_id: str
    name: str
    entity_type: str
    conditions: tuple[ConditionDef, ...] = ()
    checker_roles: tuple[str, ...] = ()
    checker_users: tuple[str, ...] = ()
    maker_roles: tuple[str, ...] = ()
    quorum: str = "any_one_checker"
    active: bool = True
    description: str | None = None


@dataclass(frozen=True)
class SettingsDef:
    require_approval_fallback: bool = False
    fallback_checker_roles: tuple[str, ...] = ()
    fallback_checker_users: tuple[str, ...] = ()
    fallback_quorum: str = "any_one_checker"


@dataclass(frozen=True)
class GovernanceConfigurationSet:
    """
    A complete configuration set: catalogs, users, ordered rules and
    engine settings.  ``checksum`` is the SHA-256 of the canonical source.
    """

    config_id: str
    version: int
    checksum: str
    entity_types: tuple[str, ...] = ()
    roles: tuple[str, ...] = ()
    attributes: tuple[AttributeDef, ...] = ()
    users: tuple[UserDef, ...] = ()
    rules: tuple[RuleDef, ...] = ()
    settings: SettingsDef = field(default_factory=SettingsDef)
    description: str = ""
