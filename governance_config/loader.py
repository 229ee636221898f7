"""
Configuration Loader (``governance_config.loader``).

Responsibility
--------------
Loads YAML configuration (one file, or a fragment directory composed by
the assembler) and parses it into typed ``governance_config.schema``
dataclass instances.

Architecture position
---------------------
**Config layer** -- infrastructure tooling.  Depends on the kernel only
for the exception base class.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* Missing required keys are reported, never silently defaulted.
* ``compute_checksum`` is deterministic for identical content.

Failure modes
-------------
* Missing file or directory -> ``InvalidConfigurationError``.
* Malformed YAML or missing required keys -> ``InvalidConfigurationError``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from governance_config.schema import (
    AttributeDef,
    ConditionDef,
    GovernanceConfigurationSet,
    RuleDef,
    SettingsDef,
    UserDef,
)
from governance_kernel.exceptions import ConfigurationError
from governance_kernel.utils.hashing import hash_payload


class InvalidConfigurationError(ConfigurationError):
    """A configuration set could not be loaded or failed validation.

    ``errors`` carries every message found.
    """

    code: str = "INVALID_CONFIGURATION"

    def __init__(self, source: str, errors: list[str]):
        self.source = source
        self.errors = list(errors)
        super().__init__(
            f"Invalid configuration {source}:\n"
            + "\n".join(f"  - {e}" for e in self.errors)
        )


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file and return its contents as a dict."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise InvalidConfigurationError(str(path), ["top level must be a mapping"])
    return data


def load_configuration(path: Path | str) -> GovernanceConfigurationSet:
    """
    Load a configuration set from a YAML file or a fragment directory.

    Raises:
        InvalidConfigurationError: if the source is missing, is not valid
            YAML, or lacks required keys.
    """
    from governance_config.assembler import assemble_from_directory

    path = Path(path)
    if path.is_dir():
        return assemble_from_directory(path)
    if not path.exists():
        raise InvalidConfigurationError(str(path), ["file not found"])
    try:
        data = load_yaml_file(path)
    except yaml.YAMLError as exc:
        raise InvalidConfigurationError(str(path), [f"malformed YAML: {exc}"]) from exc
    return parse_configuration(data, source=str(path))


def parse_configuration(data: dict[str, Any], source: str = "<memory>") -> GovernanceConfigurationSet:
    """Parse a fully composed configuration mapping."""
    try:
        return GovernanceConfigurationSet(
            config_id=str(data["config_id"]),
            version=int(data.get("version", 1)),
            checksum=compute_checksum(data),
            entity_types=tuple(str(t) for t in data.get("entity_types", ())),
            roles=tuple(str(r) for r in data.get("roles", ())),
            attributes=tuple(parse_attribute(a) for a in data.get("attributes", ())),
            users=tuple(parse_user(u) for u in data.get("users", ())),
            rules=tuple(parse_rule(r) for r in data.get("rules", ())),
            settings=parse_settings(data.get("settings") or {}),
            description=str(data.get("description", "")),
        )
    except KeyError as exc:
        raise InvalidConfigurationError(source, [f"missing required key {exc}"]) from exc
    except (TypeError, ValueError, AttributeError) as exc:
        raise InvalidConfigurationError(source, [str(exc)]) from exc


def parse_attribute(data: dict[str, Any]) -> AttributeDef:
    return AttributeDef(
        attribute_id=str(data["id"]),
        name=data["name"],
        attribute_type=data["type"],
        options=tuple(str(o) for o in data.get("options", ())),
        default_value=data.get("default"),
        required=bool(data.get("required", False)),
        description=data.get("description"),
    )


def parse_user(data: dict[str, Any]) -> UserDef:
    return UserDef(
        user_id=str(data["id"]),
        name=data["name"],
        role=data["role"],
        email=data.get("email", ""),
    )


def parse_condition(data: dict[str, Any]) -> ConditionDef:
    """
    Parse one condition.  ``value`` (scalar) and ``values`` (list) are both
    accepted.
    """
    if "values" in data:
        values = data["values"]
        values = tuple(values) if isinstance(values, (list, tuple)) else (values,)
    else:
        values = (data["value"],)
    return ConditionDef(
        attribute_id=str(data["attribute"]),
        operator=data["operator"],
        values=values,
        connector=data.get("connector"),
    )


def parse_rule(data: dict[str, Any]) -> RuleDef:
    return RuleDef(
        rule_id=str(data["id"]),
        name=data["name"],
        entity_type=data["entity_type"],
        conditions=tuple(parse_condition(c) for c in data.get("conditions", ())),
        checker_roles=tuple(data.get("checker_roles", ())),
        checker_users=tuple(str(u) for u in data.get("checker_users", ())),
        maker_roles=tuple(data.get("maker_roles", ())),
        quorum=data.get("quorum", "any_one_checker"),
        active=bool(data.get("active", True)),
        description=data.get("description"),
    )


def parse_settings(data: dict[str, Any]) -> SettingsDef:
    return SettingsDef(
        require_approval_fallback=bool(data.get("require_approval_fallback", False)),
        fallback_checker_roles=tuple(data.get("fallback_checker_roles", ())),
        fallback_checker_users=tuple(str(u) for u in data.get("fallback_checker_users", ())),
        fallback_quorum=data.get("fallback_quorum", "any_one_checker"),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    return hash_payload(data)
