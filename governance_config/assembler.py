"""
Fragment Assembler (``governance_config.assembler``).

Responsibility
--------------
Composes a configuration set from a directory of YAML fragments into a
single ``GovernanceConfigurationSet``.

Fragment layout::

    <set>/
        root.yaml          config_id, version, entity_types, roles, settings
        attributes.yaml    attributes: [...]
        users.yaml         users: [...]
        rules/*.yaml       rules: [...]   (files in name order, rules in file order)

``root.yaml`` is required; every other fragment is optional.  Rule order
across files is significant: it becomes the store order that decides the
first-match tie-break.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from governance_config.loader import (
    InvalidConfigurationError,
    load_yaml_file,
    parse_configuration,
)
from governance_config.schema import GovernanceConfigurationSet


def assemble_from_directory(fragment_dir: Path) -> GovernanceConfigurationSet:
    """Compose fragments from a directory into one configuration set.

    Raises:
        InvalidConfigurationError: if the directory or ``root.yaml`` is
            missing, or a fragment is malformed.
    """
    if not fragment_dir.is_dir():
        raise InvalidConfigurationError(str(fragment_dir), ["fragment directory not found"])

    root_path = fragment_dir / "root.yaml"
    if not root_path.exists():
        raise InvalidConfigurationError(str(fragment_dir), ["root.yaml not found"])

    try:
        data: dict[str, Any] = dict(load_yaml_file(root_path))

        attributes_path = fragment_dir / "attributes.yaml"
        if attributes_path.exists():
            data["attributes"] = load_yaml_file(attributes_path).get("attributes", [])

        users_path = fragment_dir / "users.yaml"
        if users_path.exists():
            data["users"] = load_yaml_file(users_path).get("users", [])

        rules: list[dict[str, Any]] = list(data.get("rules", []))
        rules_dir = fragment_dir / "rules"
        if rules_dir.is_dir():
            for rule_file in sorted(rules_dir.glob("*.yaml")):
                rules.extend(load_yaml_file(rule_file).get("rules", []))
        data["rules"] = rules
    except yaml.YAMLError as exc:
        raise InvalidConfigurationError(str(fragment_dir), [f"malformed YAML: {exc}"]) from exc

    return parse_configuration(data, source=str(fragment_dir))
