"""
Approval domain types (``dealdesk_kernel.domain.approval``).

Responsibility
--------------
Pure value objects for the approval aggregation engine.  Defines the
approval lifecycle, reviewer decisions, approval records, and the
aggregate per-stage / overall approval state of a deal.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, or outer layers.

Invariants enforced
-------------------
* ``APPROVAL_TRANSITIONS`` -- an approval leaves ``pending`` exactly once;
  decided statuses have no outgoing edges.  A new review round creates new
  pending records instead of reopening old ones.
* Stage numbering -- stage 1 is the parallel department review, stage 2
  the business approval; higher numbers are later gates.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID

from dealdesk_kernel.domain.deal import DealPriority
from dealdesk_kernel.domain.roles import Department, Role


DEPARTMENT_REVIEW_STAGE = 1
BUSINESS_APPROVAL_STAGE = 2


# =========================================================================
# Approval Status Lifecycle
# =========================================================================


class ApprovalStatus(str, Enum):
    """Approval record lifecycle states."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    REVISION_REQUESTED = "revision_requested"


APPROVAL_TRANSITIONS: dict[ApprovalStatus, frozenset[ApprovalStatus]] = {
    ApprovalStatus.PENDING: frozenset({
        ApprovalStatus.APPROVED,
        ApprovalStatus.REJECTED,
        ApprovalStatus.REVISION_REQUESTED,
    }),
    ApprovalStatus.APPROVED: frozenset(),
    ApprovalStatus.REJECTED: frozenset(),
    ApprovalStatus.REVISION_REQUESTED: frozenset(),
}

DECIDED_APPROVAL_STATUSES: frozenset[ApprovalStatus] = frozenset({
    ApprovalStatus.APPROVED,
    ApprovalStatus.REJECTED,
    ApprovalStatus.REVISION_REQUESTED,
})


class ApprovalDecision(str, Enum):
    """Decisions a reviewer can record."""

    APPROVE = "approve"
    REJECT = "reject"
    REQUEST_REVISION = "request_revision"


DECISION_OUTCOMES: dict[ApprovalDecision, ApprovalStatus] = {
    ApprovalDecision.APPROVE: ApprovalStatus.APPROVED,
    ApprovalDecision.REJECT: ApprovalStatus.REJECTED,
    ApprovalDecision.REQUEST_REVISION: ApprovalStatus.REVISION_REQUESTED,
}


class BusinessApprovalLevel(str, Enum):
    """Who signs off the business approval stage."""

    MD = "MD"
    EXECUTIVE = "Executive"


# =========================================================================
# Approval record
# =========================================================================


@dataclass(frozen=True)
class Approval:
    """One department/role review record against a deal.

    ``department`` is None for business approvals, which are routed by
    ``required_role`` alone.  ``revision_round`` equals the deal's
    ``revision_count`` when the record was created.
    """

    approval_id: UUID
    deal_id: UUID
    approval_stage: int
    required_role: Role
    status: ApprovalStatus
    priority: DealPriority
    created_at: datetime
    due_date: datetime
    department: Department | None = None
    revision_round: int = 0
    required_for: tuple[str, ...] = ()
    reviewer_notes: str | None = None
    reviewed_by: str | None = None
    completed_at: datetime | None = None

    @property
    def is_pending(self) -> bool:
        return self.status is ApprovalStatus.PENDING


# =========================================================================
# Aggregate state
# =========================================================================


class StageStatus(str, Enum):
    """Derived status of one approval stage."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    BLOCKED = "blocked"
    REVISION_REQUESTED = "revision_requested"


class OverallApprovalState(str, Enum):
    """Derived approval state of a deal across all stages."""

    PENDING_DEPARTMENT_REVIEW = "pending_department_review"
    PENDING_BUSINESS_APPROVAL = "pending_business_approval"
    FULLY_APPROVED = "fully_approved"
    REVISION_REQUESTED = "revision_requested"


@dataclass(frozen=True)
class StageSummary:
    """Per-stage rollup of the current round."""

    stage: int
    status: StageStatus
    total: int = 0
    approved: int = 0
    pending: int = 0
    progress_percent: int = 0
    completed_at: datetime | None = None


@dataclass(frozen=True)
class ApprovalState:
    """Result of ``get_approval_state``."""

    deal_id: UUID
    revision_round: int
    stages: tuple[StageSummary, ...]
    overall: OverallApprovalState
    can_advance: bool
    current_stage: int

    def stage(self, number: int) -> StageSummary | None:
        """Return the summary for a stage number, or None."""
        for s in self.stages:
            if s.stage == number:
                return s
        return None
