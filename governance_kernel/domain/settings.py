"""
Engine settings (``governance_kernel.domain.settings``).

Deployment-level switches for the approval service.  Built from the
``settings`` block of a configuration set.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from governance_kernel.domain.rules import QuorumPolicy

FALLBACK_RULE_ID = "__fallback__"


@dataclass(frozen=True)
class EngineSettings:
    """
    ``require_approval_fallback`` -- when no rule matches a change, bind it
    to a synthetic fallback rule instead of signalling auto-commit.  The
    fallback rule's checkers and quorum come from the ``fallback_*`` fields.
    """

    require_approval_fallback: bool = False
    fallback_checker_roles: frozenset[str] = field(default_factory=frozenset)
    fallback_checker_users: frozenset[str] = field(default_factory=frozenset)
    fallback_quorum: QuorumPolicy = QuorumPolicy.ANY_ONE_CHECKER
