"""Services for the governance kernel (write side)."""

from governance_kernel.services.approval_archive import ApprovalArchive
from governance_kernel.services.approval_service import ApprovalService
from governance_kernel.services.attribute_catalog import AttributeCatalog
from governance_kernel.services.directory import DEFAULT_ROLES, User, UserDirectory
from governance_kernel.services.rule_store import (
    RuleConfigurationStore,
    RuleSnapshot,
    rule_fingerprint,
)

__all__ = [
    "DEFAULT_ROLES",
    "ApprovalArchive",
    "ApprovalService",
    "AttributeCatalog",
    "RuleConfigurationStore",
    "RuleSnapshot",
    "User",
    "UserDirectory",
    "rule_fingerprint",
]
