"""
governance_config -- single public entrypoint for approval configuration.

Responsibility:
    Provides ``get_active_config()``, which loads and validates a
    configuration set, and ``build_engine()``, which turns it into a
    wired, in-memory approval engine.

Architecture position:
    Configuration -- YAML-driven, validated before use.  Sits above
    ``governance_kernel`` and ``governance_engines``.  The kernel MUST
    NEVER import from ``governance_config``; bridges in this package
    translate configuration objects into kernel inputs.

Invariants enforced:
    - A configuration returned by ``get_active_config()`` has passed
      ``validate_configuration()``.
    - Same YAML content always yields the same checksum.

Failure modes:
    - ``InvalidConfigurationError`` -- missing set, malformed YAML, missing
      keys, or validation errors (all messages attached).
"""

from __future__ import annotations

from pathlib import Path

from governance_config.builder import GovernanceEngine, build_engine
from governance_config.loader import InvalidConfigurationError, load_configuration
from governance_config.schema import GovernanceConfigurationSet
from governance_config.validator import ConfigValidationResult, validate_configuration
from governance_kernel.logging_config import get_logger

_logger = get_logger("config")

# Bundled configuration sets
_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"
DEFAULT_CONFIG_ID = "default"


def get_active_config(
    config_id: str = DEFAULT_CONFIG_ID,
    config_dir: Path | None = None,
) -> GovernanceConfigurationSet:
    """Load and validate the configuration set named ``config_id``.

    Args:
        config_id: Name of a set under ``config_dir`` (a fragment
            directory or a ``<config_id>.yaml`` file).
        config_dir: Override path to configuration sets directory.
            Defaults to governance_config/sets/.

    Raises:
        InvalidConfigurationError: if no such set exists or it fails
            validation.
    """
    sets_dir = config_dir or _DEFAULT_CONFIG_DIR

    source = sets_dir / config_id
    if not source.is_dir():
        source = sets_dir / f"{config_id}.yaml"
    if not source.exists():
        raise InvalidConfigurationError(
            config_id, [f"no configuration set '{config_id}' in {sets_dir}"],
        )

    config = load_configuration(source)
    validation = validate_configuration(config)
    if not validation.is_valid:
        raise InvalidConfigurationError(str(source), validation.errors)

    _logger.info(
        "GOVERNANCE_CONFIG_TRACE",
        extra={
            "trace_type": "GOVERNANCE_CONFIG_TRACE",
            "config_set_id": config.config_id,
            "config_set_version": config.version,
            "checksum": config.checksum,
            "rule_count": len(config.rules),
            "warning_count": len(validation.warnings),
        },
    )
    return config


__all__ = [
    "DEFAULT_CONFIG_ID",
    "ConfigValidationResult",
    "GovernanceConfigurationSet",
    "GovernanceEngine",
    "InvalidConfigurationError",
    "build_engine",
    "get_active_config",
    "load_configuration",
    "validate_configuration",
]
