#!/usr/bin/env python3
"""
Validate a governance configuration set.

Usage:
    python scripts/check_config.py [path] [--strict]

``path`` is a fragment directory or a single YAML file.  If omitted,
defaults to governance_config/sets/default/.

Exit status is 0 when the set is valid, 1 when it has errors (or, with
--strict, warnings), and 2 when it cannot be loaded at all.
"""

import argparse
import logging
import sys
from pathlib import Path

# Add project root to path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from governance_config import (
    InvalidConfigurationError,
    load_configuration,
    validate_configuration,
)
from governance_kernel.logging_config import configure_logging


def check(target: Path, strict: bool = False) -> int:
    """Load and validate ``target``; return the process exit status."""
    print(f"Loading configuration from: {target}")
    try:
        config = load_configuration(target)
    except InvalidConfigurationError as exc:
        print("LOAD FAILED:")
        for err in exc.errors:
            print(f"  ERROR: {err}")
        return 2

    print(f"  config_id:  {config.config_id}")
    print(f"  version:    {config.version}")
    print(f"  checksum:   {config.checksum[:16]}...")
    print(f"  attributes: {len(config.attributes)}")
    print(f"  users:      {len(config.users)}")
    print(f"  rules:      {len(config.rules)}")

    print("Validating...")
    result = validate_configuration(config)
    for err in result.errors:
        print(f"  ERROR: {err}")
    for w in result.warnings:
        print(f"  WARNING: {w}")

    if not result.is_valid:
        print("VALIDATION FAILED")
        return 1
    if strict and result.warnings:
        print("VALIDATION FAILED (warnings treated as errors)")
        return 1
    print("OK")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Validate a governance configuration set")
    parser.add_argument(
        "path",
        nargs="?",
        type=Path,
        default=ROOT / "governance_config" / "sets" / "default",
        help="fragment directory or YAML file",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="treat warnings as errors",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="emit JSON log lines on stderr",
    )
    args = parser.parse_args(argv)
    configure_logging(level=logging.INFO if args.verbose else logging.WARNING)
    return check(args.path, strict=args.strict)


if __name__ == "__main__":
    sys.exit(main())
