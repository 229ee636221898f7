"""
governance_kernel.services.approval_archive -- Durable copy of approval requests.

Responsibility:
    Writes approval request snapshots produced by the in-memory approval
    service to the database, and reads them back as domain DTOs.  The
    approval service never calls the archive; callers decide when to save.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/.

Invariants enforced:
    - ``save`` appends only the decisions not yet stored, at their log
      position, so the stored decision log stays in insertion order.
    - Archived decisions and terminal requests are never modified (ORM
      listeners in models/approval.py).
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from governance_kernel.domain.approval import ApprovalRequest, ApprovalStatus
from governance_kernel.exceptions import ApprovalNotFoundError
from governance_kernel.logging_config import get_logger
from governance_kernel.models.approval import (
    ApprovalDecisionModel,
    ApprovalRequestModel,
)

logger = get_logger("approval_archive")


class ApprovalArchive:
    """Persists approval requests through a caller-owned session."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def save(self, request: ApprovalRequest) -> None:
        """Insert or bring up to date the stored copy of ``request``."""
        model = self._find(request.request_id)
        if model is None:
            model = ApprovalRequestModel.from_dto(request)
            self._session.add(model)
            stored: set[UUID] = set()
        else:
            if model.status != request.status.value:
                model.status = request.status.value
                model.resolved_at = request.resolved_at
            stored = {d.decision_id for d in model.decisions}

        appended = 0
        for sequence, record in enumerate(request.decisions):
            if record.decision_id not in stored:
                model.decisions.append(ApprovalDecisionModel.from_dto(record, sequence))
                appended += 1

        self._session.flush()
        logger.info(
            "approval_archived",
            extra={
                "request_id": str(request.request_id),
                "status": request.status.value,
                "decisions_appended": appended,
            },
        )

    def load(self, request_id: UUID) -> ApprovalRequest:
        model = self._find(request_id)
        if model is None:
            raise ApprovalNotFoundError(str(request_id))
        return model.to_dto()

    def list(self, status: ApprovalStatus | str | None = None) -> list[ApprovalRequest]:
        """Archived requests in submission order, optionally by status."""
        stmt = select(ApprovalRequestModel).order_by(
            ApprovalRequestModel.submitted_at, ApprovalRequestModel.request_id,
        )
        if status is not None:
            stmt = stmt.where(ApprovalRequestModel.status == ApprovalStatus(status).value)
        return [m.to_dto() for m in self._session.execute(stmt).scalars()]

    def _find(self, request_id: UUID) -> ApprovalRequestModel | None:
        return self._session.execute(
            select(ApprovalRequestModel).where(
                ApprovalRequestModel.request_id == request_id,
            )
        ).scalar_one_or_none()
