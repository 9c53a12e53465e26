"""
Tests for approval aggregation.

Tests cover:
- decision_outcome: decision -> status mapping, already decided approvals
- compute_stage_status: tie-break rejected > revision_requested >
  completed > in_progress
- compute_overall_state: the stage ladder
- can_advance_deal: pending, completed, rejected, open business approval
- summarize_approvals: revision round filtering, progress, completed_at
"""

from datetime import datetime, timedelta, timezone
from uuid import UUID, uuid4

import pytest

from dealdesk_engines.aggregation import (
    can_advance_deal,
    compute_overall_state,
    compute_stage_status,
    decision_outcome,
    summarize_approvals,
)
from dealdesk_kernel.domain.approval import (
    Approval,
    ApprovalDecision,
    ApprovalStatus,
    OverallApprovalState,
    StageStatus,
)
from dealdesk_kernel.domain.deal import DealPriority
from dealdesk_kernel.domain.roles import Department, Role
from dealdesk_kernel.exceptions import AlreadyDecidedError

NOW = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
DEAL_ID = UUID("00000000-0000-0000-0000-0000000000d1")

APPROVED = ApprovalStatus.APPROVED
PENDING = ApprovalStatus.PENDING
REJECTED = ApprovalStatus.REJECTED
REVISION = ApprovalStatus.REVISION_REQUESTED


# =========================================================================
# Factory helpers
# =========================================================================


def make_approval(
    status: ApprovalStatus = PENDING,
    stage: int = 1,
    department: Department | None = Department.FINANCE,
    revision_round: int = 0,
    completed_at: datetime | None = None,
) -> Approval:
    if completed_at is None and status is not PENDING:
        completed_at = NOW + timedelta(hours=2)
    return Approval(
        approval_id=uuid4(),
        deal_id=DEAL_ID,
        approval_stage=stage,
        required_role=Role.DEPARTMENT_REVIEWER if stage == 1 else Role.APPROVER,
        status=status,
        priority=DealPriority.NORMAL,
        created_at=NOW,
        due_date=NOW + timedelta(hours=48),
        department=department if stage == 1 else None,
        revision_round=revision_round,
        completed_at=completed_at,
    )


def stage_one(*statuses: ApprovalStatus, revision_round: int = 0) -> list[Approval]:
    departments = list(Department)
    return [
        make_approval(s, department=departments[i], revision_round=revision_round)
        for i, s in enumerate(statuses)
    ]


# =========================================================================
# Decisions
# =========================================================================


class TestDecisionOutcome:
    @pytest.mark.parametrize(
        "decision,expected",
        [
            (ApprovalDecision.APPROVE, APPROVED),
            (ApprovalDecision.REJECT, REJECTED),
            (ApprovalDecision.REQUEST_REVISION, REVISION),
            ("approve", APPROVED),
        ],
    )
    def test_mapping(self, decision, expected):
        assert decision_outcome(make_approval(), decision) is expected

    def test_decided_approval_raises(self):
        approval = make_approval(APPROVED)
        with pytest.raises(AlreadyDecidedError) as exc_info:
            decision_outcome(approval, ApprovalDecision.REJECT)
        assert exc_info.value.current_status == "approved"


# =========================================================================
# Stage status
# =========================================================================


class TestStageStatus:
    def test_no_approvals_not_started(self):
        assert compute_stage_status([], 1) is StageStatus.NOT_STARTED

    def test_other_stage_ignored(self):
        approvals = [make_approval(stage=2)]
        assert compute_stage_status(approvals, 1) is StageStatus.NOT_STARTED

    def test_all_approved_completed(self):
        assert compute_stage_status(stage_one(APPROVED, APPROVED), 1) is StageStatus.COMPLETED

    def test_mixed_pending_in_progress(self):
        assert compute_stage_status(stage_one(APPROVED, PENDING), 1) is StageStatus.IN_PROGRESS

    def test_rejection_blocks(self):
        approvals = stage_one(APPROVED, REJECTED, REVISION, PENDING)
        assert compute_stage_status(approvals, 1) is StageStatus.BLOCKED

    def test_revision_beats_completed_and_pending(self):
        approvals = stage_one(APPROVED, REVISION, PENDING)
        assert compute_stage_status(approvals, 1) is StageStatus.REVISION_REQUESTED


class TestOverallState:
    def test_department_review_pending(self):
        state = compute_overall_state({1: StageStatus.IN_PROGRESS})
        assert state is OverallApprovalState.PENDING_DEPARTMENT_REVIEW

    def test_blocked_department_review_still_pending(self):
        state = compute_overall_state({1: StageStatus.BLOCKED})
        assert state is OverallApprovalState.PENDING_DEPARTMENT_REVIEW

    def test_unopened_business_stage(self):
        state = compute_overall_state({1: StageStatus.COMPLETED})
        assert state is OverallApprovalState.PENDING_BUSINESS_APPROVAL

    def test_fully_approved(self):
        state = compute_overall_state({1: StageStatus.COMPLETED, 2: StageStatus.COMPLETED})
        assert state is OverallApprovalState.FULLY_APPROVED

    def test_revision_in_any_stage(self):
        state = compute_overall_state(
            {1: StageStatus.COMPLETED, 2: StageStatus.REVISION_REQUESTED},
        )
        assert state is OverallApprovalState.REVISION_REQUESTED

    def test_higher_stage_must_complete(self):
        state = compute_overall_state({
            1: StageStatus.COMPLETED,
            2: StageStatus.COMPLETED,
            3: StageStatus.IN_PROGRESS,
        })
        assert state is OverallApprovalState.PENDING_BUSINESS_APPROVAL


class TestCanAdvance:
    def test_no_approvals(self):
        assert not can_advance_deal([])

    def test_pending_blocks(self):
        assert not can_advance_deal(stage_one(APPROVED, PENDING))

    def test_all_department_approvals(self):
        assert can_advance_deal(stage_one(APPROVED, APPROVED, APPROVED))

    def test_rejection_blocks_even_when_rest_approved(self):
        assert not can_advance_deal(stage_one(APPROVED, REJECTED, APPROVED))

    def test_open_business_approval_blocks(self):
        approvals = stage_one(APPROVED, APPROVED) + [make_approval(stage=2)]
        assert not can_advance_deal(approvals)

    def test_completed_business_approval(self):
        approvals = stage_one(APPROVED, APPROVED) + [make_approval(APPROVED, stage=2)]
        assert can_advance_deal(approvals)


# =========================================================================
# Summary
# =========================================================================


class TestSummarizeApprovals:
    def test_empty_deal(self):
        state = summarize_approvals(DEAL_ID, [], 0)
        assert [s.stage for s in state.stages] == [1, 2]
        assert state.overall is OverallApprovalState.PENDING_DEPARTMENT_REVIEW
        assert not state.can_advance
        assert state.current_stage == 1

    def test_progress_and_counts(self):
        state = summarize_approvals(DEAL_ID, stage_one(APPROVED, PENDING, PENDING), 0)
        summary = state.stage(1)
        assert summary.total == 3
        assert summary.approved == 1
        assert summary.pending == 2
        assert summary.progress_percent == 33
        assert summary.completed_at is None

    def test_completed_at_is_latest_decision(self):
        first = make_approval(APPROVED, completed_at=NOW + timedelta(hours=1))
        last = make_approval(
            APPROVED,
            department=Department.TRADING,
            completed_at=NOW + timedelta(hours=5),
        )
        state = summarize_approvals(DEAL_ID, [first, last], 0)
        assert state.stage(1).completed_at == NOW + timedelta(hours=5)
        assert state.overall is OverallApprovalState.PENDING_BUSINESS_APPROVAL
        assert state.can_advance

    def test_earlier_rounds_ignored(self):
        old = stage_one(REJECTED, REVISION, revision_round=0)
        new = stage_one(APPROVED, PENDING, revision_round=1)
        state = summarize_approvals(DEAL_ID, old + new, 1)
        assert state.revision_round == 1
        assert state.stage(1).status is StageStatus.IN_PROGRESS
        assert state.stage(1).total == 2

    def test_other_deals_ignored(self):
        foreign = Approval(
            approval_id=uuid4(),
            deal_id=uuid4(),
            approval_stage=1,
            required_role=Role.DEPARTMENT_REVIEWER,
            status=REJECTED,
            priority=DealPriority.NORMAL,
            created_at=NOW,
            due_date=NOW,
            department=Department.FINANCE,
        )
        state = summarize_approvals(DEAL_ID, stage_one(APPROVED) + [foreign], 0)
        assert state.stage(1).status is StageStatus.COMPLETED

    def test_current_stage_tracks_business_approval(self):
        approvals = stage_one(APPROVED) + [make_approval(stage=2)]
        state = summarize_approvals(DEAL_ID, approvals, 0)
        assert state.current_stage == 2
        assert state.stage(2).status is StageStatus.IN_PROGRESS
        assert state.overall is OverallApprovalState.PENDING_BUSINESS_APPROVAL
