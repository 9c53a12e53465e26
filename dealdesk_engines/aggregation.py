"""
Module: dealdesk_engines.aggregation
Responsibility:
    Roll individual approval records up into per-stage statuses, the
    deal's overall approval state, and the ``can_advance`` flag that gates
    the deal's own status changes.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import dealdesk_kernel/domain and sibling engine modules.

Invariants enforced:
    - Only approvals of the deal's current revision round are aggregated;
      earlier rounds stay queryable but never influence the result.
    - Stage status tie-break: rejected (``blocked``) > revision_requested
      > completed > in_progress.
    - ``can_advance`` is False while any approval of the current stage is
      pending, and stays False once any approval is rejected.
    - Aggregation never changes a deal's status.

Failure modes:
    - AlreadyDecidedError from ``decision_outcome`` when the approval is
      no longer pending.

Usage:
    from dealdesk_engines.aggregation import summarize_approvals

    state = summarize_approvals(deal.deal_id, approvals, deal.revision_count)
    state.overall, state.can_advance
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from uuid import UUID

from dealdesk_kernel.domain.approval import (
    BUSINESS_APPROVAL_STAGE,
    DECISION_OUTCOMES,
    DEPARTMENT_REVIEW_STAGE,
    Approval,
    ApprovalDecision,
    ApprovalState,
    ApprovalStatus,
    OverallApprovalState,
    StageStatus,
    StageSummary,
)
from dealdesk_kernel.exceptions import AlreadyDecidedError
from dealdesk_engines.tracer import traced_engine


def decision_outcome(approval: Approval, decision: ApprovalDecision) -> ApprovalStatus:
    """Status a pending approval moves to under ``decision``.

    Raises:
        AlreadyDecidedError: approval is not pending.
    """
    if not approval.is_pending:
        raise AlreadyDecidedError(str(approval.approval_id), approval.status.value)
    return DECISION_OUTCOMES[ApprovalDecision(decision)]


def current_round_approvals(
    approvals: Iterable[Approval],
    revision_round: int,
) -> list[Approval]:
    return [a for a in approvals if a.revision_round == revision_round]


def compute_stage_status(approvals: Iterable[Approval], stage: int) -> StageStatus:
    """Derived status of one stage from the approvals given."""
    statuses = [a.status for a in approvals if a.approval_stage == stage]
    if not statuses:
        return StageStatus.NOT_STARTED
    if ApprovalStatus.REJECTED in statuses:
        return StageStatus.BLOCKED
    if ApprovalStatus.REVISION_REQUESTED in statuses:
        return StageStatus.REVISION_REQUESTED
    if all(s is ApprovalStatus.APPROVED for s in statuses):
        return StageStatus.COMPLETED
    return StageStatus.IN_PROGRESS


def compute_overall_state(
    stage_statuses: Mapping[int, StageStatus],
) -> OverallApprovalState:
    """Overall state as a ladder over stage completion.

    A missing stage 2 counts as not started, so a deal whose department
    review is complete reads ``pending_business_approval``.
    """
    if StageStatus.REVISION_REQUESTED in stage_statuses.values():
        return OverallApprovalState.REVISION_REQUESTED

    department = stage_statuses.get(DEPARTMENT_REVIEW_STAGE, StageStatus.NOT_STARTED)
    if department is not StageStatus.COMPLETED:
        return OverallApprovalState.PENDING_DEPARTMENT_REVIEW

    higher = {
        stage: status
        for stage, status in stage_statuses.items()
        if stage > DEPARTMENT_REVIEW_STAGE
    }
    higher.setdefault(BUSINESS_APPROVAL_STAGE, StageStatus.NOT_STARTED)
    if any(status is not StageStatus.COMPLETED for status in higher.values()):
        return OverallApprovalState.PENDING_BUSINESS_APPROVAL
    return OverallApprovalState.FULLY_APPROVED


def can_advance_deal(approvals: Sequence[Approval]) -> bool:
    """True when the highest opened stage and every stage below it are completed.

    ``approvals`` must already be limited to the current round.  With no
    approvals at all there is nothing to advance on.
    """
    if not approvals:
        return False
    current = max(a.approval_stage for a in approvals)
    return all(
        compute_stage_status(approvals, stage) is StageStatus.COMPLETED
        for stage in range(DEPARTMENT_REVIEW_STAGE, current + 1)
    )


def _summarize_stage(approvals: Sequence[Approval], stage: int) -> StageSummary:
    in_stage = [a for a in approvals if a.approval_stage == stage]
    status = compute_stage_status(in_stage, stage)
    approved = sum(1 for a in in_stage if a.status is ApprovalStatus.APPROVED)
    pending = sum(1 for a in in_stage if a.is_pending)
    total = len(in_stage)

    completed_at = None
    if status is StageStatus.COMPLETED:
        completed_at = max(
            (a.completed_at for a in in_stage if a.completed_at is not None),
            default=None,
        )

    return StageSummary(
        stage=stage,
        status=status,
        total=total,
        approved=approved,
        pending=pending,
        progress_percent=round(approved * 100 / total) if total else 0,
        completed_at=completed_at,
    )


@traced_engine("aggregation", "1.0", fingerprint_fields=("deal_id", "revision_round"))
def summarize_approvals(
    deal_id: UUID,
    approvals: Iterable[Approval],
    revision_round: int,
) -> ApprovalState:
    """Approval state of one deal for its current revision round.

    ``approvals`` may contain every round; only ``revision_round`` counts.
    Stages 1 and 2 are always listed, plus any higher stage present.
    """
    active = [
        a for a in current_round_approvals(approvals, revision_round)
        if a.deal_id == deal_id
    ]

    stage_numbers = {DEPARTMENT_REVIEW_STAGE, BUSINESS_APPROVAL_STAGE}
    stage_numbers.update(a.approval_stage for a in active)
    stages = tuple(_summarize_stage(active, n) for n in sorted(stage_numbers))

    current_stage = max(
        (a.approval_stage for a in active),
        default=DEPARTMENT_REVIEW_STAGE,
    )

    return ApprovalState(
        deal_id=deal_id,
        revision_round=revision_round,
        stages=stages,
        overall=compute_overall_state({s.stage: s.status for s in stages}),
        can_advance=can_advance_deal(active),
        current_stage=current_stage,
    )
