"""
dealdesk_kernel.services.approval_service -- Approval record store.

Responsibility:
    Creates approval records when a review stage opens, records decisions
    with compare-and-set, and serves the reads the aggregation and queue
    engines need.  Does not decide who may review what; the executor checks
    authority before calling ``record_decision``.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/.

Invariants enforced:
    - Every approval is created ``pending``.
    - A decision is written with ``UPDATE ... WHERE id = :id AND status =
      'pending'``.  Exactly one of two concurrent deciders wins; the loser
      sees AlreadyDecidedError carrying the winning status.
    - Approvals are never deleted (ORM listener on ApprovalModel).

Failure modes:
    - ApprovalNotFoundError if approval_id not found.
    - AlreadyDecidedError if the approval left ``pending`` before this write.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from dealdesk_kernel.domain.approval import Approval, ApprovalStatus
from dealdesk_kernel.domain.clock import Clock, SystemClock
from dealdesk_kernel.domain.deal import REVIEW_STATUSES, DealPriority
from dealdesk_kernel.domain.roles import Department, Role
from dealdesk_kernel.exceptions import AlreadyDecidedError, ApprovalNotFoundError
from dealdesk_kernel.logging_config import get_logger
from dealdesk_kernel.models.approval import ApprovalModel
from dealdesk_kernel.models.deal import DealModel

logger = get_logger("services.approval")


class ApprovalService:
    """Persistence for approval records."""

    def __init__(self, session: Session, clock: Clock | None = None) -> None:
        self._session = session
        self._clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_approval(
        self,
        deal_id: UUID,
        *,
        stage: int,
        required_role: Role,
        revision_round: int,
        priority: DealPriority,
        due_date: datetime,
        department: Department | None = None,
        required_for: Sequence[str] = (),
    ) -> Approval:
        """Create one pending approval for a deal."""
        model = ApprovalModel.from_dto(Approval(
            approval_id=uuid4(),
            deal_id=deal_id,
            approval_stage=stage,
            required_role=required_role,
            status=ApprovalStatus.PENDING,
            priority=priority,
            created_at=self._clock.now(),
            due_date=due_date,
            department=department,
            revision_round=revision_round,
            required_for=tuple(required_for),
        ))
        self._session.add(model)
        self._session.flush()

        logger.info(
            "approval_created",
            extra={
                "approval_id": str(model.id),
                "deal_id": str(deal_id),
                "stage": stage,
                "department": model.department,
                "revision_round": revision_round,
                "due_date": due_date,
            },
        )
        return model.to_dto()

    def record_decision(
        self,
        approval_id: UUID,
        *,
        status: ApprovalStatus,
        reviewed_by: str,
        notes: str | None = None,
    ) -> Approval:
        """Move a pending approval to a decided status.

        Preconditions: ``status`` is not PENDING.

        Raises:
            ApprovalNotFoundError: approval does not exist.
            AlreadyDecidedError: approval is no longer pending.
        """
        if status is ApprovalStatus.PENDING:
            raise ValueError("A decision must leave the pending status")

        model = self._load_model(approval_id)
        if model.status != ApprovalStatus.PENDING.value:
            raise AlreadyDecidedError(str(approval_id), model.status)

        result = self._session.execute(
            update(ApprovalModel)
            .where(
                ApprovalModel.id == approval_id,
                ApprovalModel.status == ApprovalStatus.PENDING.value,
            )
            .values(
                status=status.value,
                reviewed_by=reviewed_by,
                reviewer_notes=notes,
                completed_at=self._clock.now(),
            )
            .execution_options(synchronize_session=False)
        )
        self._session.refresh(model)

        if result.rowcount != 1:
            logger.warning(
                "approval_decision_conflict",
                extra={
                    "approval_id": str(approval_id),
                    "requested_status": status.value,
                    "actual_status": model.status,
                },
            )
            raise AlreadyDecidedError(str(approval_id), model.status)

        logger.info(
            "approval_decided",
            extra={
                "approval_id": str(approval_id),
                "deal_id": str(model.deal_id),
                "status": status.value,
                "reviewed_by": reviewed_by,
            },
        )
        return model.to_dto()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_approval(self, approval_id: UUID) -> Approval:
        """Get an approval by ID."""
        return self._load_model(approval_id).to_dto()

    def list_for_deal(
        self,
        deal_id: UUID,
        revision_round: int | None = None,
    ) -> list[Approval]:
        """Approvals for a deal, optionally limited to one revision round.

        Ordered by round, stage, then creation.
        """
        stmt = select(ApprovalModel).where(ApprovalModel.deal_id == deal_id)
        if revision_round is not None:
            stmt = stmt.where(ApprovalModel.revision_round == revision_round)
        models = self._session.execute(
            stmt.order_by(
                ApprovalModel.revision_round,
                ApprovalModel.approval_stage,
                ApprovalModel.created_at,
                ApprovalModel.department,
            )
        ).scalars().all()
        return [m.to_dto() for m in models]

    def list_open_pending(self) -> list[Approval]:
        """Pending approvals of the current round on deals still in review."""
        models = self._session.execute(
            select(ApprovalModel)
            .join(DealModel, DealModel.id == ApprovalModel.deal_id)
            .where(
                ApprovalModel.status == ApprovalStatus.PENDING.value,
                ApprovalModel.revision_round == DealModel.revision_count,
                DealModel.status.in_([s.value for s in REVIEW_STATUSES]),
            )
            .order_by(ApprovalModel.due_date, ApprovalModel.id)
        ).scalars().all()
        return [m.to_dto() for m in models]

    def list_completed_since(self, since: datetime) -> list[Approval]:
        """Decided approvals whose ``completed_at`` is at or after ``since``."""
        models = self._session.execute(
            select(ApprovalModel)
            .where(
                ApprovalModel.status != ApprovalStatus.PENDING.value,
                ApprovalModel.completed_at.is_not(None),
                ApprovalModel.completed_at >= since,
            )
            .order_by(ApprovalModel.completed_at)
        ).scalars().all()
        return [m.to_dto() for m in models]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load_model(self, approval_id: UUID) -> ApprovalModel:
        model = self._session.execute(
            select(ApprovalModel).where(ApprovalModel.id == approval_id)
        ).scalar_one_or_none()
        if model is None:
            raise ApprovalNotFoundError(str(approval_id))
        return model
