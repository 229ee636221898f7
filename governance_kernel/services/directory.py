"""
governance_kernel.services.directory -- In-memory user directory.

Responsibility:
    Holds the known users and their roles, and expands a role into the
    identities that currently hold it.  Used by the approval service to
    resolve checker sets at match time.

Architecture position:
    Kernel > Services.  May import from domain/ and exceptions.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from dataclasses import dataclass, replace
from typing import Any

from governance_kernel.domain.approval import ActorContext
from governance_kernel.exceptions import ValidationError
from governance_kernel.logging_config import get_logger

logger = get_logger("directory")

DEFAULT_ROLES: tuple[str, ...] = ("admin", "maker", "checker", "viewer")


@dataclass(frozen=True)
class User:
    user_id: str
    name: str
    email: str = ""
    role: str = "viewer"


class UserDirectory:
    """Users keyed by id, each holding exactly one role."""

    def __init__(
        self,
        users: Iterable[User] = (),
        roles: Iterable[str] = DEFAULT_ROLES,
    ) -> None:
        self._lock = threading.Lock()
        self._roles = frozenset(roles)
        self._users: dict[str, User] = {}
        for user in users:
            self.add(user)

    @property
    def roles(self) -> frozenset[str]:
        return self._roles

    def add(self, user: User) -> User:
        issues = self._issues(user)
        with self._lock:
            if user.user_id in self._users:
                issues.append(f"user id {user.user_id!r} already exists")
            if issues:
                raise ValidationError("user", issues)
            self._users[user.user_id] = user
        logger.info("user_added", extra={"user_id": user.user_id, "role": user.role})
        return user

    def update(self, user_id: str, **changes: Any) -> User:
        if "user_id" in changes and changes["user_id"] != user_id:
            raise ValidationError("user", ["user id is immutable"])
        with self._lock:
            current = self._users.get(user_id)
            if current is None:
                raise ValidationError("user", [f"unknown user {user_id!r}"])
            updated = replace(current, **changes)
            issues = self._issues(updated)
            if issues:
                raise ValidationError("user", issues)
            self._users[user_id] = updated
        if updated.role != current.role:
            logger.info(
                "user_role_changed",
                extra={"user_id": user_id, "old_role": current.role, "new_role": updated.role},
            )
        return updated

    def remove(self, user_id: str) -> None:
        with self._lock:
            if self._users.pop(user_id, None) is None:
                raise ValidationError("user", [f"unknown user {user_id!r}"])
        logger.info("user_removed", extra={"user_id": user_id})

    def find(self, user_id: str) -> User | None:
        with self._lock:
            return self._users.get(user_id)

    def list_users(self, role: str | None = None) -> list[User]:
        with self._lock:
            users = list(self._users.values())
        return [u for u in users if role is None or u.role == role]

    def members_of(self, role: str) -> frozenset[str]:
        """Ids of users currently holding ``role``."""
        with self._lock:
            return frozenset(u.user_id for u in self._users.values() if u.role == role)

    def role_of(self, user_id: str) -> str | None:
        user = self.find(user_id)
        return user.role if user is not None else None

    def actor(self, user_id: str) -> ActorContext:
        """Build the actor context for a known user."""
        user = self.find(user_id)
        if user is None:
            raise ValidationError("user", [f"unknown user {user_id!r}"])
        return ActorContext(actor_id=user.user_id, role=user.role)

    def __contains__(self, user_id: object) -> bool:
        with self._lock:
            return user_id in self._users

    def _issues(self, user: User) -> list[str]:
        issues: list[str] = []
        if not user.user_id:
            issues.append("user id is required")
        if not user.name or not user.name.strip():
            issues.append("user name is required")
        if self._roles and user.role not in self._roles:
            issues.append(f"unknown role {user.role!r}")
        return issues
