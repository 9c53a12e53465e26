"""
Module: dealdesk_kernel.models.approval
Responsibility: ORM persistence for per-department / per-role approval records.

Architecture position: Kernel > Models.  May import from db/base.py and
    exceptions only.

Invariants enforced:
    - Status values limited by a check constraint.
    - A decision is written with ``UPDATE ... WHERE status = 'pending'``
      (ApprovalService.record_decision).  Decided records are immutable and
      no record is ever deleted (ORM listeners below).
    - Covering index for the open-queue query (status, department).

Failure modes:
    - IntegrityError on an out-of-enum status.
    - ImmutabilityViolationError on UPDATE of a decided record or any DELETE.

Audit relevance:
    Prior review rounds are retained; ``revision_round`` tells them apart.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    JSON,
    CheckConstraint,
    ForeignKey,
    Index,
    String,
    Text,
    event,
    inspect,
)
from sqlalchemy.orm import Mapped, mapped_column

from dealdesk_kernel.db.base import Base, UUIDString
from dealdesk_kernel.exceptions import ImmutabilityViolationError

if TYPE_CHECKING:
    from dealdesk_kernel.domain.approval import Approval


class ApprovalModel(Base):
    """Persistent approval record.

    Contract:
        Created ``pending``; leaves ``pending`` exactly once.

    Guarantees:
        - ``revision_round`` equals the deal's ``revision_count`` at creation.
        - ``department`` is NULL only for business approvals.
    """

    __tablename__ = "deal_approvals"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected', 'revision_requested')",
            name="ck_deal_approvals_valid_status",
        ),
        CheckConstraint(
            "priority IN ('normal', 'high', 'urgent')",
            name="ck_deal_approvals_valid_priority",
        ),
        CheckConstraint("approval_stage >= 1", name="ck_deal_approvals_stage"),
        Index(
            "ix_deal_approvals_deal_round",
            "deal_id", "revision_round", "approval_stage",
        ),
        Index("ix_deal_approvals_queue", "status", "department", "due_date"),
        Index("ix_deal_approvals_completed", "status", "completed_at"),
    )

    deal_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("deals.id"),
        nullable=False,
    )
    department: Mapped[str | None] = mapped_column(String(30), nullable=True)
    approval_stage: Mapped[int] = mapped_column(nullable=False)
    required_role: Mapped[str] = mapped_column(String(30), nullable=False)
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="pending")
    priority: Mapped[str] = mapped_column(String(20), nullable=False, default="normal")
    revision_round: Mapped[int] = mapped_column(nullable=False, default=0)
    required_for: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    due_date: Mapped[datetime] = mapped_column(nullable=False)
    reviewer_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    reviewed_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return (
            f"<Approval {self.id} deal={self.deal_id} "
            f"stage={self.approval_stage} dept={self.department} "
            f"status={self.status}>"
        )

    def to_dto(self) -> Approval:
        """Convert ORM model to frozen domain DTO."""
        from dealdesk_kernel.domain.approval import (
            Approval as ApprovalDTO,
            ApprovalStatus,
        )
        from dealdesk_kernel.domain.deal import DealPriority
        from dealdesk_kernel.domain.roles import Department, Role

        return ApprovalDTO(
            approval_id=self.id,
            deal_id=self.deal_id,
            approval_stage=self.approval_stage,
            required_role=Role(self.required_role),
            status=ApprovalStatus(self.status),
            priority=DealPriority(self.priority),
            created_at=self.created_at,
            due_date=self.due_date,
            department=Department(self.department) if self.department else None,
            revision_round=self.revision_round,
            required_for=tuple(self.required_for or ()),
            reviewer_notes=self.reviewer_notes,
            reviewed_by=self.reviewed_by,
            completed_at=self.completed_at,
        )

    @classmethod
    def from_dto(cls, dto: Approval) -> ApprovalModel:
        """Create ORM model from domain DTO."""
        return cls(
            id=dto.approval_id,
            deal_id=dto.deal_id,
            department=dto.department.value if dto.department else None,
            approval_stage=dto.approval_stage,
            required_role=dto.required_role.value,
            status=dto.status.value,
            priority=dto.priority.value,
            revision_round=dto.revision_round,
            required_for=list(dto.required_for),
            created_at=dto.created_at,
            due_date=dto.due_date,
            reviewer_notes=dto.reviewer_notes,
            reviewed_by=dto.reviewed_by,
            completed_at=dto.completed_at,
        )


# =============================================================================
# ORM-Level Immutability for Decided Approvals
# =============================================================================


@event.listens_for(ApprovalModel, "before_update")
def prevent_decided_approval_update(mapper, connection, target):
    """Prevent ORM updates to approvals that have already been decided."""
    history = inspect(target).attrs.status.history
    previous = history.deleted[0] if history.deleted else target.status
    if previous != "pending":
        raise ImmutabilityViolationError(
            entity_type="Approval",
            entity_id=str(target.id),
            reason=f"Approval already decided ({previous}) -- cannot modify",
        )


@event.listens_for(ApprovalModel, "before_delete")
def prevent_approval_delete(mapper, connection, target):
    """Prevent deletion of approval records."""
    raise ImmutabilityViolationError(
        entity_type="Approval",
        entity_id=str(target.id),
        reason="Approvals are never deleted",
    )
