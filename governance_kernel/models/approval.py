"""
Module: governance_kernel.models.approval
Responsibility: ORM persistence for approval requests and their decision logs.

Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ value objects.

Invariants enforced:
    - Decision log order is preserved by the ``sequence`` column.
    - Decisions are append-only (ORM listeners block UPDATE/DELETE).
    - A request in a terminal status cannot be modified.
    - Payload values keep their Python type across a round trip (Decimal,
      date, datetime and sets are stored as tagged JSON objects).

Failure modes:
    - ImmutabilityViolationError on decision UPDATE/DELETE.
    - ImmutabilityViolationError on modifying a terminal request.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    event,
    inspect,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.orm.attributes import get_history

from governance_kernel.db.base import Base, UUIDString, as_utc
from governance_kernel.exceptions import ImmutabilityViolationError
from governance_kernel.logging_config import get_logger

if TYPE_CHECKING:
    from governance_kernel.domain.approval import (
        ApprovalDecisionRecord,
        ApprovalRequest,
    )

logger = get_logger("models.approval")

_TERMINAL_STATUSES = frozenset({"approved", "rejected", "withdrawn"})


# =============================================================================
# Payload encoding
# =============================================================================


def encode_payload_value(value: Any) -> Any:
    """Convert a payload value into JSON-safe form, tagging non-JSON types."""
    if value is None or isinstance(value, (str, bool, int, float)):
        return value
    if isinstance(value, Decimal):
        return {"__type__": "decimal", "value": str(value)}
    if isinstance(value, datetime):
        return {"__type__": "datetime", "value": value.isoformat()}
    if isinstance(value, date):
        return {"__type__": "date", "value": value.isoformat()}
    if isinstance(value, (set, frozenset)):
        return {"__type__": "set", "value": sorted((encode_payload_value(v) for v in value), key=str)}
    if isinstance(value, (list, tuple)):
        return [encode_payload_value(v) for v in value]
    if isinstance(value, dict):
        return {str(k): encode_payload_value(v) for k, v in value.items()}
    return str(value)


def decode_payload_value(value: Any) -> Any:
    """Inverse of ``encode_payload_value``."""
    if isinstance(value, list):
        return [decode_payload_value(v) for v in value]
    if not isinstance(value, dict):
        return value
    tag = value.get("__type__")
    if tag == "decimal":
        return Decimal(value["value"])
    if tag == "datetime":
        return datetime.fromisoformat(value["value"])
    if tag == "date":
        return date.fromisoformat(value["value"])
    if tag == "set":
        return frozenset(decode_payload_value(v) for v in value["value"])
    return {k: decode_payload_value(v) for k, v in value.items()}


def _encode_payload(payload) -> dict | None:
    if payload is None:
        return None
    return {str(k): encode_payload_value(v) for k, v in payload.items()}


def _decode_payload(payload: dict | None) -> dict | None:
    if payload is None:
        return None
    return {k: decode_payload_value(v) for k, v in payload.items()}


# =============================================================================
# Models
# =============================================================================


class ApprovalRequestModel(Base):
    """Persistent approval request with its rule snapshot."""

    __tablename__ = "approval_requests"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected', 'withdrawn')",
            name="ck_approval_requests_valid_status",
        ),
        CheckConstraint(
            "action IN ('create', 'update', 'delete')",
            name="ck_approval_requests_valid_action",
        ),
        Index("ix_approval_requests_status", "status", "submitted_at"),
        Index("ix_approval_requests_entity", "entity_type", "entity_id"),
    )

    request_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False, unique=True)
    entity_type: Mapped[str] = mapped_column(String(100), nullable=False)
    action: Mapped[str] = mapped_column(String(20), nullable=False)
    entity_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    previous_payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    maker_id: Mapped[str] = mapped_column(String(200), nullable=False)
    maker_role: Mapped[str] = mapped_column(String(100), nullable=False)
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    rule_id: Mapped[str] = mapped_column(String(200), nullable=False)
    rule_name: Mapped[str] = mapped_column(String(200), nullable=False)
    rule_fingerprint: Mapped[str | None] = mapped_column(String(64), nullable=True)
    quorum: Mapped[str] = mapped_column(String(50), nullable=False)
    checker_roles: Mapped[list] = mapped_column(JSON, nullable=False)
    checker_users: Mapped[list] = mapped_column(JSON, nullable=False)
    checker_identities: Mapped[list] = mapped_column(JSON, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    resolved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    decisions: Mapped[list["ApprovalDecisionModel"]] = relationship(
        "ApprovalDecisionModel",
        back_populates="request",
        primaryjoin="ApprovalRequestModel.request_id == ApprovalDecisionModel.request_id",
        order_by="ApprovalDecisionModel.sequence",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return (
            f"<ApprovalRequest {self.request_id} "
            f"{self.entity_type}/{self.action} status={self.status}>"
        )

    def to_dto(self) -> ApprovalRequest:
        """Convert ORM model to frozen domain DTO."""
        from governance_kernel.domain.approval import (
            ApprovalRequest as ApprovalRequestDTO,
            ApprovalStatus,
            ChangeAction,
            CheckerEligibility,
            freeze_payload,
        )
        from governance_kernel.domain.rules import QuorumPolicy

        return ApprovalRequestDTO(
            request_id=self.request_id,
            entity_type=self.entity_type,
            action=ChangeAction(self.action),
            payload=freeze_payload(_decode_payload(self.payload)),
            maker_id=self.maker_id,
            maker_role=self.maker_role,
            submitted_at=as_utc(self.submitted_at),
            rule_id=self.rule_id,
            rule_name=self.rule_name,
            quorum=QuorumPolicy(self.quorum),
            eligibility=CheckerEligibility(
                roles=frozenset(self.checker_roles),
                users=frozenset(self.checker_users),
                identities=frozenset(self.checker_identities),
            ),
            entity_id=self.entity_id,
            previous_payload=freeze_payload(_decode_payload(self.previous_payload)),
            rule_fingerprint=self.rule_fingerprint,
            status=ApprovalStatus(self.status),
            decisions=tuple(d.to_dto() for d in self.decisions),
            resolved_at=as_utc(self.resolved_at),
        )

    @classmethod
    def from_dto(cls, dto: ApprovalRequest) -> ApprovalRequestModel:
        """Create ORM model from domain DTO (decisions are added separately)."""
        return cls(
            request_id=dto.request_id,
            entity_type=dto.entity_type,
            action=dto.action.value,
            entity_id=dto.entity_id,
            payload=_encode_payload(dto.payload),
            previous_payload=_encode_payload(dto.previous_payload),
            maker_id=dto.maker_id,
            maker_role=dto.maker_role,
            submitted_at=dto.submitted_at,
            rule_id=dto.rule_id,
            rule_name=dto.rule_name,
            rule_fingerprint=dto.rule_fingerprint,
            quorum=dto.quorum.value,
            checker_roles=sorted(dto.eligibility.roles),
            checker_users=sorted(dto.eligibility.users),
            checker_identities=sorted(dto.eligibility.identities),
            status=dto.status.value,
            resolved_at=dto.resolved_at,
        )


class ApprovalDecisionModel(Base):
    """Persistent decision-log entry. Append-only."""

    __tablename__ = "approval_decisions"

    __table_args__ = (
        Index("ix_approval_decisions_request_id", "request_id"),
        UniqueConstraint("request_id", "sequence", name="uq_approval_decisions_sequence"),
    )

    decision_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False, unique=True)
    request_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("approval_requests.request_id"),
        nullable=False,
    )
    sequence: Mapped[int] = mapped_column(nullable=False)
    actor_id: Mapped[str] = mapped_column(String(200), nullable=False)
    actor_role: Mapped[str] = mapped_column(String(100), nullable=False)
    decision: Mapped[str] = mapped_column(String(20), nullable=False)
    comment: Mapped[str] = mapped_column(Text, default="", nullable=False)
    decided_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    request: Mapped["ApprovalRequestModel"] = relationship(
        "ApprovalRequestModel",
        back_populates="decisions",
        foreign_keys=[request_id],
        primaryjoin="ApprovalDecisionModel.request_id == ApprovalRequestModel.request_id",
    )

    def __repr__(self) -> str:
        return (
            f"<ApprovalDecision {self.decision_id} "
            f"request={self.request_id} #{self.sequence} "
            f"decision={self.decision}>"
        )

    def to_dto(self) -> ApprovalDecisionRecord:
        """Convert ORM model to frozen domain DTO."""
        from governance_kernel.domain.approval import (
            ApprovalDecision as ApprovalDecisionEnum,
            ApprovalDecisionRecord as DecisionDTO,
        )

        return DecisionDTO(
            decision_id=self.decision_id,
            request_id=self.request_id,
            actor_id=self.actor_id,
            actor_role=self.actor_role,
            decision=ApprovalDecisionEnum(self.decision),
            comment=self.comment,
            decided_at=as_utc(self.decided_at),
        )

    @classmethod
    def from_dto(cls, dto: ApprovalDecisionRecord, sequence: int) -> ApprovalDecisionModel:
        """Create ORM model from domain DTO at log position ``sequence``."""
        return cls(
            decision_id=dto.decision_id,
            request_id=dto.request_id,
            sequence=sequence,
            actor_id=dto.actor_id,
            actor_role=dto.actor_role,
            decision=dto.decision.value,
            comment=dto.comment,
            decided_at=dto.decided_at,
        )


# =============================================================================
# ORM-Level Immutability
# =============================================================================


@event.listens_for(ApprovalDecisionModel, "before_update")
def prevent_decision_update(mapper, connection, target):
    """Prevent updates to decision-log entries."""
    raise ImmutabilityViolationError(
        entity_type="ApprovalDecision",
        entity_id=str(target.decision_id),
        reason="Approval decisions are immutable -- cannot modify",
    )


@event.listens_for(ApprovalDecisionModel, "before_delete")
def prevent_decision_delete(mapper, connection, target):
    """Prevent deletion of decision-log entries."""
    raise ImmutabilityViolationError(
        entity_type="ApprovalDecision",
        entity_id=str(target.decision_id),
        reason="Approval decisions are immutable -- cannot delete",
    )


@event.listens_for(ApprovalRequestModel, "before_update")
def prevent_terminal_request_update(mapper, connection, target):
    """Block any column change on a request that was already terminal.

    The transition pending -> terminal is itself allowed; the old status
    is read from attribute history to tell the two apart.
    """
    status_history = get_history(target, "status")
    old_status = status_history.deleted[0] if status_history.deleted else target.status
    if old_status not in _TERMINAL_STATUSES:
        return

    insp = inspect(target)
    for attr in insp.mapper.column_attrs:
        if insp.attrs[attr.key].history.has_changes():
            logger.error(
                "immutability_violation_blocked",
                extra={
                    "entity_type": "ApprovalRequest",
                    "entity_id": str(target.request_id),
                    "operation": "UPDATE",
                    "field": attr.key,
                },
            )
            raise ImmutabilityViolationError(
                entity_type="ApprovalRequest",
                entity_id=str(target.request_id),
                reason=f"Cannot modify field '{attr.key}' on a {old_status} request",
            )


@event.listens_for(ApprovalRequestModel, "before_delete")
def prevent_request_delete(mapper, connection, target):
    """Archived requests are never deleted."""
    raise ImmutabilityViolationError(
        entity_type="ApprovalRequest",
        entity_id=str(target.request_id),
        reason="Archived approval requests cannot be deleted",
    )
