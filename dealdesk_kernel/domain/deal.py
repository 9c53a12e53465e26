"""
Deal domain types (``dealdesk_kernel.domain.deal``).

Responsibility
--------------
Pure value objects for deals: the status lifecycle state machine, display
metadata for each status, the frozen ``Deal`` DTO and its status history
record.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``models/``, ``services/``, or outer layers.

Invariants enforced
-------------------
* ``DEAL_STATUS_TRANSITIONS`` defines the only legal status edges.
  Terminal statuses (``signed``, ``lost``) have no outgoing edges and
  ``lost`` is reachable from every non-terminal status after submission.
* ``draft_type`` is only meaningful while ``status == draft``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from dealdesk_kernel.domain.roles import Department


# =========================================================================
# Deal Status Lifecycle
# =========================================================================


class DealStatus(str, Enum):
    """Deal lifecycle states."""

    DRAFT = "draft"
    SCOPING = "scoping"
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    REVISION_REQUESTED = "revision_requested"
    NEGOTIATING = "negotiating"
    APPROVED = "approved"
    CONTRACT_DRAFTING = "contract_drafting"
    CLIENT_REVIEW = "client_review"
    SIGNED = "signed"
    LOST = "lost"


DEAL_STATUS_TRANSITIONS: dict[DealStatus, frozenset[DealStatus]] = {
    DealStatus.DRAFT: frozenset({
        DealStatus.SCOPING,
        DealStatus.SUBMITTED,
    }),
    DealStatus.SCOPING: frozenset({
        DealStatus.SUBMITTED,
    }),
    DealStatus.SUBMITTED: frozenset({
        DealStatus.UNDER_REVIEW,
        DealStatus.LOST,
    }),
    DealStatus.UNDER_REVIEW: frozenset({
        DealStatus.REVISION_REQUESTED,
        DealStatus.NEGOTIATING,
        DealStatus.APPROVED,
        DealStatus.LOST,
    }),
    DealStatus.REVISION_REQUESTED: frozenset({
        DealStatus.UNDER_REVIEW,
        DealStatus.LOST,
    }),
    DealStatus.NEGOTIATING: frozenset({
        DealStatus.REVISION_REQUESTED,
        DealStatus.APPROVED,
        DealStatus.LOST,
    }),
    DealStatus.APPROVED: frozenset({
        DealStatus.CONTRACT_DRAFTING,
        DealStatus.LOST,
    }),
    DealStatus.CONTRACT_DRAFTING: frozenset({
        DealStatus.CLIENT_REVIEW,
        DealStatus.LOST,
    }),
    DealStatus.CLIENT_REVIEW: frozenset({
        DealStatus.SIGNED,
        DealStatus.NEGOTIATING,
        DealStatus.LOST,
    }),
    DealStatus.SIGNED: frozenset(),
    DealStatus.LOST: frozenset(),
}

TERMINAL_DEAL_STATUSES: frozenset[DealStatus] = frozenset({
    DealStatus.SIGNED,
    DealStatus.LOST,
})

# Statuses in which the owning seller (or an admin) may edit deal terms.
EDITABLE_DEAL_STATUSES: frozenset[DealStatus] = frozenset({
    DealStatus.DRAFT,
    DealStatus.SCOPING,
    DealStatus.REVISION_REQUESTED,
})

# Statuses in which approvals of the current round can still be decided.
REVIEW_STATUSES: frozenset[DealStatus] = frozenset({
    DealStatus.UNDER_REVIEW,
    DealStatus.NEGOTIATING,
})

# Statuses visible only to legal reviewers (and admins) for contract work.
LEGAL_ONLY_STATUSES: frozenset[DealStatus] = frozenset({
    DealStatus.CONTRACT_DRAFTING,
    DealStatus.CLIENT_REVIEW,
})


class DraftType(str, Enum):
    """Sub-tag of a draft deal; drives dashboard visibility only."""

    SCOPING_DRAFT = "scoping_draft"
    SUBMISSION_DRAFT = "submission_draft"


class DealPriority(str, Enum):
    """Deal and approval priority."""

    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


@dataclass(frozen=True)
class StatusInfo:
    """Display metadata for a status.  ``rank`` orders dashboards (1 = earliest)."""

    label: str
    description: str
    rank: int


STATUS_INFO: dict[DealStatus, StatusInfo] = {
    DealStatus.DRAFT: StatusInfo("Draft", "Deal is being prepared", 1),
    DealStatus.SCOPING: StatusInfo("Scoping", "Requirements being defined", 2),
    DealStatus.SUBMITTED: StatusInfo("Submitted", "Awaiting initial review", 3),
    DealStatus.UNDER_REVIEW: StatusInfo(
        "Under Review", "Being evaluated by approvers", 4,
    ),
    DealStatus.REVISION_REQUESTED: StatusInfo(
        "Revision Requested", "Changes requested by approver", 5,
    ),
    DealStatus.NEGOTIATING: StatusInfo("Negotiating", "Terms being negotiated", 6),
    DealStatus.APPROVED: StatusInfo(
        "Approved", "Deal approved, awaiting contract", 7,
    ),
    DealStatus.CONTRACT_DRAFTING: StatusInfo(
        "Contract Drafting", "Legal team preparing contract", 8,
    ),
    DealStatus.CLIENT_REVIEW: StatusInfo(
        "Client Review", "Client reviewing contract", 9,
    ),
    DealStatus.SIGNED: StatusInfo("Signed", "Deal completed successfully", 10),
    DealStatus.LOST: StatusInfo("Lost", "Deal was not successful", 11),
}


# =========================================================================
# Deal value objects
# =========================================================================


@dataclass(frozen=True)
class Incentive:
    """One component of a deal's incentive/benefit structure."""

    category: str
    name: str = ""


@dataclass(frozen=True)
class Deal:
    """Immutable snapshot of a deal.

    ``required_department_reviews`` maps each stage-1 department to the
    reason tags that put it there.  ``completed_department_reviews`` holds
    the departments that approved in the current round.
    """

    deal_id: UUID
    deal_name: str
    status: DealStatus
    created_by: str
    deal_value: Decimal
    created_at: datetime
    last_status_change: datetime
    priority: DealPriority = DealPriority.NORMAL
    draft_type: DraftType | None = None
    assigned_to: str | None = None
    revision_count: int = 0
    incentives: tuple[Incentive, ...] = ()
    discount_percent: Decimal | None = None
    contract_term_months: int | None = None
    required_department_reviews: dict[Department, tuple[str, ...]] = field(
        default_factory=dict,
    )
    completed_department_reviews: frozenset[Department] = frozenset()

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_DEAL_STATUSES

    @property
    def is_editable(self) -> bool:
        return self.status in EDITABLE_DEAL_STATUSES


@dataclass(frozen=True)
class StatusChange:
    """One entry in a deal's append-only status history."""

    change_id: UUID
    deal_id: UUID
    status: DealStatus
    previous_status: DealStatus | None
    changed_by: str
    changed_by_role: str
    changed_at: datetime
    comments: str = ""
    sequence: int = 0
