"""
dealdesk_kernel.services.deal_service -- Durable deal record store.

Responsibility:
    Point reads, list-by-filter, creation, term edits, and the conditional
    status write for deals, plus the append-only status history.  Knows
    nothing about who may do what: legality and authorization are decided
    by the pure engines before this service is called.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/.

Invariants enforced:
    - Compare-and-set status writes: ``UPDATE deals SET status = :new
      WHERE id = :id AND status = :expected``.  Zero rows means another
      writer moved the deal first.
    - Every status change appends exactly one history row in the same
      transaction.
    - ``revision_count`` increments by exactly 1 when requested.

Failure modes:
    - DealNotFoundError if deal_id not found.
    - OptimisticLockError if the deal's status changed since it was read.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from dealdesk_kernel.domain.approval import DEPARTMENT_REVIEW_STAGE
from dealdesk_kernel.domain.clock import Clock, SystemClock
from dealdesk_kernel.domain.deal import (
    Deal,
    DealPriority,
    DealStatus,
    DraftType,
    Incentive,
    StatusChange,
)
from dealdesk_kernel.domain.roles import Department
from dealdesk_kernel.exceptions import DealNotFoundError, OptimisticLockError
from dealdesk_kernel.logging_config import get_logger
from dealdesk_kernel.models.approval import ApprovalModel
from dealdesk_kernel.models.deal import DealModel, DealStatusHistoryModel

logger = get_logger("services.deal")


class DealService:
    """Persistence for deals and their status history."""

    def __init__(self, session: Session, clock: Clock | None = None) -> None:
        self._session = session
        self._clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_deal(
        self,
        *,
        deal_name: str,
        created_by: str,
        deal_value: Decimal,
        created_by_role: str,
        priority: DealPriority = DealPriority.NORMAL,
        draft_type: DraftType | None = None,
        incentives: Sequence[Incentive] = (),
        discount_percent: Decimal | None = None,
        contract_term_months: int | None = None,
    ) -> Deal:
        """Create a deal in ``draft`` and record the initial history row."""
        now = self._clock.now()
        model = DealModel.from_dto(Deal(
            deal_id=uuid4(),
            deal_name=deal_name,
            status=DealStatus.DRAFT,
            created_by=created_by,
            deal_value=deal_value,
            created_at=now,
            last_status_change=now,
            priority=priority,
            draft_type=draft_type,
            incentives=tuple(incentives),
            discount_percent=discount_percent,
            contract_term_months=contract_term_months,
        ))
        self._session.add(model)
        self._session.flush()

        self._append_history(
            deal_id=model.id,
            status=DealStatus.DRAFT,
            previous_status=None,
            changed_by=created_by,
            changed_by_role=created_by_role,
            comments="Deal created",
            changed_at=now,
        )

        logger.info(
            "deal_created",
            extra={
                "deal_id": str(model.id),
                "created_by": created_by,
                "deal_value": deal_value,
                "draft_type": draft_type.value if draft_type else None,
            },
        )
        return model.to_dto()

    def apply_status_change(
        self,
        deal_id: UUID,
        *,
        expected_status: DealStatus,
        new_status: DealStatus,
        changed_by: str,
        changed_by_role: str,
        comments: str = "",
        increment_revision: bool = False,
        assigned_to: str | None = None,
        required_department_reviews: dict[Department, tuple[str, ...]] | None = None,
    ) -> Deal:
        """Move a deal from ``expected_status`` to ``new_status`` atomically.

        Leaving ``draft`` clears ``draft_type``.  ``assigned_to`` and
        ``required_department_reviews`` are only written when given.

        Raises:
            DealNotFoundError: deal does not exist.
            OptimisticLockError: status is no longer ``expected_status``.
        """
        model = self._load_model(deal_id)
        now = self._clock.now()

        values: dict = {
            "status": new_status.value,
            "last_status_change": now,
        }
        if increment_revision:
            values["revision_count"] = DealModel.revision_count + 1
        if expected_status is DealStatus.DRAFT:
            values["draft_type"] = None
        if assigned_to is not None:
            values["assigned_to"] = assigned_to
        if required_department_reviews is not None:
            values["required_department_reviews"] = {
                dept.value: list(reasons)
                for dept, reasons in required_department_reviews.items()
            }

        result = self._session.execute(
            update(DealModel)
            .where(
                DealModel.id == deal_id,
                DealModel.status == expected_status.value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self._session.refresh(model)
            logger.warning(
                "deal_status_conflict",
                extra={
                    "deal_id": str(deal_id),
                    "expected_status": expected_status.value,
                    "actual_status": model.status,
                    "requested_status": new_status.value,
                },
            )
            raise OptimisticLockError("Deal", str(deal_id))

        self._session.refresh(model)
        self._append_history(
            deal_id=deal_id,
            status=new_status,
            previous_status=expected_status,
            changed_by=changed_by,
            changed_by_role=changed_by_role,
            comments=comments,
            changed_at=now,
        )

        logger.info(
            "deal_status_changed",
            extra={
                "deal_id": str(deal_id),
                "from_status": expected_status.value,
                "to_status": new_status.value,
                "revision_count": model.revision_count,
            },
        )
        return model.to_dto(self._completed_departments(model))

    def update_terms(
        self,
        deal_id: UUID,
        *,
        deal_name: str | None = None,
        deal_value: Decimal | None = None,
        priority: DealPriority | None = None,
        incentives: Sequence[Incentive] | None = None,
        discount_percent: Decimal | None = None,
        contract_term_months: int | None = None,
    ) -> Deal:
        """Overwrite the given deal terms; None leaves a field unchanged."""
        model = self._load_model(deal_id)
        changed: list[str] = []

        if deal_name is not None:
            model.deal_name = deal_name
            changed.append("deal_name")
        if deal_value is not None:
            model.deal_value = deal_value
            changed.append("deal_value")
        if priority is not None:
            model.priority = priority.value
            changed.append("priority")
        if incentives is not None:
            model.incentives = [
                {"category": i.category, "name": i.name} for i in incentives
            ]
            changed.append("incentives")
        if discount_percent is not None:
            model.discount_percent = discount_percent
            changed.append("discount_percent")
        if contract_term_months is not None:
            model.contract_term_months = contract_term_months
            changed.append("contract_term_months")

        self._session.flush()
        logger.info(
            "deal_terms_updated",
            extra={"deal_id": str(deal_id), "fields": changed},
        )
        return model.to_dto(self._completed_departments(model))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_deal(self, deal_id: UUID) -> Deal:
        """Get a deal by ID."""
        model = self._load_model(deal_id)
        return model.to_dto(self._completed_departments(model))

    def list_deals(
        self,
        *,
        statuses: Iterable[DealStatus] | None = None,
        created_by: str | None = None,
        deal_ids: Iterable[UUID] | None = None,
    ) -> list[Deal]:
        """List deals matching every given filter, oldest first."""
        stmt = select(DealModel)
        if statuses is not None:
            stmt = stmt.where(DealModel.status.in_([s.value for s in statuses]))
        if created_by is not None:
            stmt = stmt.where(DealModel.created_by == created_by)
        if deal_ids is not None:
            ids = list(deal_ids)
            if not ids:
                return []
            stmt = stmt.where(DealModel.id.in_(ids))

        models = self._session.execute(
            stmt.order_by(DealModel.created_at, DealModel.id)
        ).scalars().all()
        return [m.to_dto(self._completed_departments(m)) for m in models]

    def get_status_history(self, deal_id: UUID) -> list[StatusChange]:
        """Status history for a deal, oldest first."""
        self._load_model(deal_id)
        rows = self._session.execute(
            select(DealStatusHistoryModel)
            .where(DealStatusHistoryModel.deal_id == deal_id)
            .order_by(DealStatusHistoryModel.sequence)
        ).scalars().all()
        return [r.to_dto() for r in rows]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load_model(self, deal_id: UUID) -> DealModel:
        model = self._session.execute(
            select(DealModel).where(DealModel.id == deal_id)
        ).scalar_one_or_none()
        if model is None:
            raise DealNotFoundError(str(deal_id))
        return model

    def _completed_departments(self, model: DealModel) -> frozenset[Department]:
        """Departments that approved stage 1 in the deal's current round."""
        departments = self._session.execute(
            select(ApprovalModel.department).where(
                ApprovalModel.deal_id == model.id,
                ApprovalModel.revision_round == model.revision_count,
                ApprovalModel.approval_stage == DEPARTMENT_REVIEW_STAGE,
                ApprovalModel.status == "approved",
            )
        ).scalars().all()
        return frozenset(Department(d) for d in departments if d is not None)

    def _append_history(
        self,
        *,
        deal_id: UUID,
        status: DealStatus,
        previous_status: DealStatus | None,
        changed_by: str,
        changed_by_role: str,
        comments: str,
        changed_at: datetime,
    ) -> None:
        last = self._session.execute(
            select(func.max(DealStatusHistoryModel.sequence))
            .where(DealStatusHistoryModel.deal_id == deal_id)
        ).scalar()
        self._session.add(
            DealStatusHistoryModel(
                id=uuid4(),
                deal_id=deal_id,
                sequence=(last or 0) + 1,
                status=status.value,
                previous_status=previous_status.value if previous_status else None,
                changed_by=changed_by,
                changed_by_role=changed_by_role,
                comments=comments,
                changed_at=changed_at,
            )
        )
        self._session.flush()
