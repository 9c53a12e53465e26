"""
Module: dealdesk_kernel.models.deal
Responsibility: ORM persistence for deals and their append-only status history.

Architecture position: Kernel > Models.  May import from db/base.py and
    exceptions only (domain types are imported lazily inside to_dto).

Invariants enforced:
    - Status values limited by a check constraint; the service layer enforces
      the transition graph and writes status with compare-and-set.
    - Status history rows are append-only (ORM listeners below).

Failure modes:
    - IntegrityError on an out-of-enum status or priority.
    - ImmutabilityViolationError on history UPDATE/DELETE.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    CheckConstraint,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column

from dealdesk_kernel.db.base import Base, UUIDString
from dealdesk_kernel.exceptions import ImmutabilityViolationError

if TYPE_CHECKING:
    from dealdesk_kernel.domain.deal import Deal, StatusChange
    from dealdesk_kernel.domain.roles import Department

_STATUS_VALUES = (
    "'draft', 'scoping', 'submitted', 'under_review', 'revision_requested', "
    "'negotiating', 'approved', 'contract_drafting', 'client_review', "
    "'signed', 'lost'"
)


class DealModel(Base):
    """Persistent deal.

    Contract:
        ``status`` only changes through DealService.apply_status_change,
        which issues ``UPDATE ... WHERE status = <status read>``.

    Guarantees:
        - ``revision_count`` never decreases.
        - ``incentives`` is stored as a JSON list of {category, name}.
        - ``required_department_reviews`` is stored as a JSON object
          department -> list of reason tags.
    """

    __tablename__ = "deals"

    __table_args__ = (
        CheckConstraint(
            f"status IN ({_STATUS_VALUES})",
            name="ck_deals_valid_status",
        ),
        CheckConstraint(
            "priority IN ('normal', 'high', 'urgent')",
            name="ck_deals_valid_priority",
        ),
        CheckConstraint(
            "draft_type IS NULL OR draft_type IN ('scoping_draft', 'submission_draft')",
            name="ck_deals_valid_draft_type",
        ),
        CheckConstraint("revision_count >= 0", name="ck_deals_revision_count"),
        Index("ix_deals_status", "status"),
        Index("ix_deals_created_by_status", "created_by", "status"),
    )

    deal_name: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="draft")
    draft_type: Mapped[str | None] = mapped_column(String(30), nullable=True)
    created_by: Mapped[str] = mapped_column(String(100), nullable=False)
    assigned_to: Mapped[str | None] = mapped_column(String(100), nullable=True)
    deal_value: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    priority: Mapped[str] = mapped_column(String(20), nullable=False, default="normal")
    revision_count: Mapped[int] = mapped_column(nullable=False, default=0)
    incentives: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON, nullable=False, default=list,
    )
    discount_percent: Mapped[Decimal | None] = mapped_column(
        Numeric(5, 2), nullable=True,
    )
    contract_term_months: Mapped[int | None] = mapped_column(nullable=True)
    required_department_reviews: Mapped[dict[str, list[str]]] = mapped_column(
        JSON, nullable=False, default=dict,
    )
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    last_status_change: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<Deal {self.id} {self.deal_name!r} status={self.status}>"

    def to_dto(
        self,
        completed_departments: frozenset[Department] = frozenset(),
    ) -> Deal:
        """Convert ORM model to frozen domain DTO.

        ``completed_departments`` is derived from the current round's
        approvals by the caller; it is not stored on the deal row.
        """
        from dealdesk_kernel.domain.deal import (
            Deal as DealDTO,
            DealPriority,
            DealStatus,
            DraftType,
            Incentive,
        )
        from dealdesk_kernel.domain.roles import Department

        return DealDTO(
            deal_id=self.id,
            deal_name=self.deal_name,
            status=DealStatus(self.status),
            created_by=self.created_by,
            deal_value=Decimal(self.deal_value),
            created_at=self.created_at,
            last_status_change=self.last_status_change,
            priority=DealPriority(self.priority),
            draft_type=DraftType(self.draft_type) if self.draft_type else None,
            assigned_to=self.assigned_to,
            revision_count=self.revision_count,
            incentives=tuple(
                Incentive(category=i["category"], name=i.get("name", ""))
                for i in (self.incentives or [])
            ),
            discount_percent=(
                Decimal(self.discount_percent)
                if self.discount_percent is not None else None
            ),
            contract_term_months=self.contract_term_months,
            required_department_reviews={
                Department(dept): tuple(reasons)
                for dept, reasons in (self.required_department_reviews or {}).items()
            },
            completed_department_reviews=completed_departments,
        )

    @classmethod
    def from_dto(cls, dto: Deal) -> DealModel:
        """Create ORM model from domain DTO."""
        return cls(
            id=dto.deal_id,
            deal_name=dto.deal_name,
            status=dto.status.value,
            draft_type=dto.draft_type.value if dto.draft_type else None,
            created_by=dto.created_by,
            assigned_to=dto.assigned_to,
            deal_value=dto.deal_value,
            priority=dto.priority.value,
            revision_count=dto.revision_count,
            incentives=[
                {"category": i.category, "name": i.name} for i in dto.incentives
            ],
            discount_percent=dto.discount_percent,
            contract_term_months=dto.contract_term_months,
            required_department_reviews={
                dept.value: list(reasons)
                for dept, reasons in dto.required_department_reviews.items()
            },
            created_at=dto.created_at,
            last_status_change=dto.last_status_change,
        )


class DealStatusHistoryModel(Base):
    """Persistent status history entry. Append-only.

    Contract:
        One row per successful status change (plus the initial ``draft``
        row written at creation).  No UPDATE, no DELETE.  ``sequence``
        orders rows within a deal; the unique constraint rejects two
        writers appending the same position.
    """

    __tablename__ = "deal_status_history"

    __table_args__ = (
        UniqueConstraint("deal_id", "sequence", name="uq_deal_status_history_seq"),
        Index("ix_deal_status_history_deal", "deal_id", "changed_at"),
    )

    deal_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("deals.id"),
        nullable=False,
    )
    sequence: Mapped[int] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    previous_status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    changed_by: Mapped[str] = mapped_column(String(100), nullable=False)
    changed_by_role: Mapped[str] = mapped_column(String(50), nullable=False)
    comments: Mapped[str] = mapped_column(Text, nullable=False, default="")
    changed_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return (
            f"<DealStatusHistory deal={self.deal_id} "
            f"{self.previous_status}->{self.status}>"
        )

    def to_dto(self) -> StatusChange:
        """Convert ORM model to frozen domain DTO."""
        from dealdesk_kernel.domain.deal import DealStatus, StatusChange as ChangeDTO

        return ChangeDTO(
            change_id=self.id,
            deal_id=self.deal_id,
            status=DealStatus(self.status),
            previous_status=(
                DealStatus(self.previous_status) if self.previous_status else None
            ),
            changed_by=self.changed_by,
            changed_by_role=self.changed_by_role,
            changed_at=self.changed_at,
            comments=self.comments,
            sequence=self.sequence,
        )


# =============================================================================
# ORM-Level Immutability for Status History (Append-Only)
# =============================================================================


@event.listens_for(DealStatusHistoryModel, "before_update")
def prevent_history_update(mapper, connection, target):
    """Prevent updates to status history records."""
    raise ImmutabilityViolationError(
        entity_type="DealStatusHistory",
        entity_id=str(target.id),
        reason="Status history is append-only -- cannot modify",
    )


@event.listens_for(DealStatusHistoryModel, "before_delete")
def prevent_history_delete(mapper, connection, target):
    """Prevent deletion of status history records."""
    raise ImmutabilityViolationError(
        entity_type="DealStatusHistory",
        entity_id=str(target.id),
        reason="Status history is append-only -- cannot delete",
    )
