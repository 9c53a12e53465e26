"""
dealdesk_services.workflow_executor -- Deal workflow execution.

Responsibility:
    The external surface of the workflow core: status transitions with
    legality, authority and approval-gate enforcement; approval decisions;
    the approval state read; and the work queue read.  Thin coordinator --
    delegates decisions to the pure engines and persistence to DealService
    and ApprovalService.

Architecture position:
    Services layer.  May import from dealdesk_engines/ (pure engines),
    dealdesk_kernel/ (domain, services, exceptions) and dealdesk_config/.

Invariants enforced:
    - Checks run in a fixed order before any write: existence, legality
      (InvalidTransitionError), authority (ForbiddenError), approval gate
      (ApprovalGateClosedError).
    - Status and decision writes are compare-and-set; a lost race surfaces
      as OptimisticLockError or AlreadyDecidedError, never as an overwrite.
    - Recording a decision never changes the deal's status.
    - The executor flushes but never commits; callers own the transaction
      (``session_scope``), so a rejected operation leaves no partial write.

Failure modes:
    - Every DealDeskError raised here is traced with its outcome code and
      re-raised unchanged.
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from datetime import timedelta
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable
from uuid import UUID

from sqlalchemy.orm import Session

from dealdesk_config import get_active_config
from dealdesk_config.bridges import build_workflow_policies
from dealdesk_engines.aggregation import (
    compute_stage_status,
    decision_outcome,
    summarize_approvals,
)
from dealdesk_engines.permissions import (
    allowed_targets,
    can_review_approval,
    capabilities_for,
)
from dealdesk_engines.queue import build_queue
from dealdesk_engines.routing import business_approval_level, required_departments
from dealdesk_engines.transitions import (
    TransitionOutcome,
    legal_targets,
    requires_approval_gate,
    validate_transition,
)
from dealdesk_kernel.domain.approval import (
    BUSINESS_APPROVAL_STAGE,
    DEPARTMENT_REVIEW_STAGE,
    Approval,
    ApprovalDecision,
    ApprovalState,
    StageStatus,
)
from dealdesk_kernel.domain.clock import Clock, SystemClock
from dealdesk_kernel.domain.deal import (
    REVIEW_STATUSES,
    Deal,
    DealPriority,
    DealStatus,
    DraftType,
    Incentive,
    StatusChange,
)
from dealdesk_kernel.domain.policy import WorkflowPolicies
from dealdesk_kernel.domain.queue import WorkQueue
from dealdesk_kernel.domain.roles import Actor, CapabilitySet, Role
from dealdesk_kernel.exceptions import (
    ApprovalGateClosedError,
    ApprovalSupersededError,
    BusinessApprovalOpenError,
    DealDeskError,
    DealNotEditableError,
    ForbiddenError,
    InvalidTransitionError,
)
from dealdesk_kernel.logging_config import LogContext, get_logger
from dealdesk_kernel.services.approval_service import ApprovalService
from dealdesk_kernel.services.deal_service import DealService

logger = get_logger("services.workflow_executor")

# Trace types and outcome codes for structured logging and traceability
TRACE_TYPE_WORKFLOW_TRANSITION = "DEAL_WORKFLOW_TRANSITION"
TRACE_TYPE_APPROVAL_DECISION = "DEAL_APPROVAL_DECISION"
OUTCOME_SUCCESS = "success"

ASSIGNED_DEPARTMENT_REVIEW = "department_review"
ASSIGNED_LEGAL = "legal"

OutcomeSink = Callable[[dict], None]


def _outcome_for(exc: DealDeskError) -> str:
    """Outcome code of a rejected operation, e.g. ``invalid_transition``."""
    return exc.code.lower()


def _forbidden(actor: Actor, action: str, required: str) -> ForbiddenError:
    department = actor.department.value if actor.department else None
    return ForbiddenError(actor.role.value, department, action, required)


def _emit_trace(
    message: str,
    trace_type: str,
    action: str,
    entity_type: str,
    entity_id: UUID,
    outcome: str,
    reason: str,
    duration_ms: float,
    ts: str,
    from_state: str | None = None,
    to_state: str | None = None,
    outcome_sink: OutcomeSink | None = None,
) -> None:
    """Emit a structured workflow record for traceability and lookback."""
    record: dict[str, Any] = {
        "trace_type": trace_type,
        "ts": ts,
        "action": action,
        "entity_type": entity_type,
        "entity_id": str(entity_id),
        "outcome": outcome,
        "reason": reason,
        "duration_ms": round(duration_ms, 3),
    }
    if from_state is not None:
        record["from_state"] = from_state
    if to_state is not None:
        record["to_state"] = to_state
    record.update(LogContext.get_all())
    if outcome == OUTCOME_SUCCESS:
        logger.info(message, extra=record)
    else:
        logger.warning(message, extra=record)
    record["message"] = message
    if outcome_sink is not None:
        outcome_sink(record)


class DealWorkflowExecutor:
    """Executes deal status transitions and approval decisions.

    Thin coordinator -- all rules live in dealdesk_engines, all persistence
    in DealService / ApprovalService.
    """

    def __init__(
        self,
        deal_service: DealService,
        approval_service: ApprovalService,
        policies: WorkflowPolicies | None = None,
        clock: Clock | None = None,
        outcome_sink: OutcomeSink | None = None,
    ) -> None:
        self._deals = deal_service
        self._approvals = approval_service
        self._policies = policies or WorkflowPolicies()
        self._clock = clock or SystemClock()
        self._outcome_sink = outcome_sink

    @property
    def policies(self) -> WorkflowPolicies:
        return self._policies

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def attempt_transition(
        self,
        deal_id: UUID,
        actor: Actor,
        target_status: DealStatus | str,
        comments: str = "",
    ) -> Deal:
        """Move a deal to ``target_status`` on behalf of ``actor``.

        Raises:
            DealNotFoundError: unknown deal.
            InvalidTransitionError: the edge is not in the status graph.
            ForbiddenError: the actor does not hold the edge, or a seller
                acts on another seller's deal.
            ApprovalGateClosedError: the edge needs ``can_advance``.
            OptimisticLockError: another writer moved the deal first.
        """
        target = DealStatus(target_status)
        t0 = time.monotonic()
        from_state: str | None = None

        with LogContext.bind_actor(actor, deal_id=str(deal_id)):
            try:
                deal = self._deals.get_deal(deal_id)
                from_state = deal.status.value

                check = validate_transition(deal.status, target, actor)
                if check.outcome is TransitionOutcome.INVALID_TRANSITION:
                    raise InvalidTransitionError(deal.status.value, target.value)
                if check.outcome is TransitionOutcome.FORBIDDEN:
                    raise _forbidden(
                        actor,
                        f"move a deal from {deal.status.value} to {target.value}",
                        check.required,
                    )
                self._check_ownership(
                    deal, actor, f"move deal {deal_id} to {target.value}",
                )

                if requires_approval_gate(deal.status, target):
                    state = self._approval_state(deal)
                    if not state.can_advance:
                        raise ApprovalGateClosedError(
                            str(deal_id),
                            target.value,
                            f"approval state is {state.overall.value}",
                        )

                updated = self._apply_transition(deal, actor, target, comments)
            except DealDeskError as exc:
                _emit_trace(
                    "workflow_transition",
                    TRACE_TYPE_WORKFLOW_TRANSITION,
                    action=f"transition:{target.value}",
                    entity_type="Deal",
                    entity_id=deal_id,
                    from_state=from_state,
                    to_state=target.value,
                    outcome=_outcome_for(exc),
                    reason=str(exc),
                    duration_ms=(time.monotonic() - t0) * 1000,
                    ts=self._clock.now().isoformat(),
                    outcome_sink=self._outcome_sink,
                )
                raise

            _emit_trace(
                "workflow_transition",
                TRACE_TYPE_WORKFLOW_TRANSITION,
                action=f"transition:{target.value}",
                entity_type="Deal",
                entity_id=deal_id,
                from_state=from_state,
                to_state=target.value,
                outcome=OUTCOME_SUCCESS,
                reason=check.reason,
                duration_ms=(time.monotonic() - t0) * 1000,
                ts=self._clock.now().isoformat(),
                outcome_sink=self._outcome_sink,
            )
            return updated

    def allowed_transitions(self, deal_id: UUID, actor: Actor) -> frozenset[DealStatus]:
        """Targets the actor could move the deal to right now.

        Combines the status graph, the actor's edges, seller ownership and
        the approval gate.
        """
        deal = self._deals.get_deal(deal_id)
        if not self._owns(deal, actor):
            return frozenset()
        targets = allowed_targets(actor, deal.status) & legal_targets(deal.status)
        gated = {t for t in targets if requires_approval_gate(deal.status, t)}
        if gated and not self._approval_state(deal).can_advance:
            targets = targets - gated
        return frozenset(targets)

    def _apply_transition(
        self,
        deal: Deal,
        actor: Actor,
        target: DealStatus,
        comments: str,
    ) -> Deal:
        if target is DealStatus.UNDER_REVIEW:
            return self._enter_review(deal, actor, comments)

        assigned_to = None
        if target is DealStatus.CONTRACT_DRAFTING:
            assigned_to = ASSIGNED_LEGAL
        elif target is DealStatus.REVISION_REQUESTED:
            assigned_to = deal.created_by

        return self._deals.apply_status_change(
            deal.deal_id,
            expected_status=deal.status,
            new_status=target,
            changed_by=actor.identity,
            changed_by_role=actor.label,
            comments=comments,
            assigned_to=assigned_to,
        )

    def _enter_review(self, deal: Deal, actor: Actor, comments: str) -> Deal:
        """Enter ``under_review`` and open a fresh stage-1 approval round."""
        routing = required_departments(deal.incentives, self._policies.routing)
        for category in routing.unmapped_categories:
            logger.warning(
                "unmapped_incentive_category",
                extra={"deal_id": str(deal.deal_id), "category": category},
            )

        updated = self._deals.apply_status_change(
            deal.deal_id,
            expected_status=deal.status,
            new_status=DealStatus.UNDER_REVIEW,
            changed_by=actor.identity,
            changed_by_role=actor.label,
            comments=comments,
            increment_revision=deal.status is DealStatus.REVISION_REQUESTED,
            assigned_to=ASSIGNED_DEPARTMENT_REVIEW,
            required_department_reviews=routing.departments,
        )

        now = self._clock.now()
        for department, reasons in routing.departments.items():
            sla = self._policies.sla.for_department(department)
            self._approvals.create_approval(
                deal.deal_id,
                stage=DEPARTMENT_REVIEW_STAGE,
                required_role=Role.DEPARTMENT_REVIEWER,
                revision_round=updated.revision_count,
                priority=deal.priority,
                due_date=now + timedelta(hours=sla.target_hours),
                department=department,
                required_for=reasons,
            )

        logger.info(
            "department_review_opened",
            extra={
                "deal_id": str(deal.deal_id),
                "revision_round": updated.revision_count,
                "departments": [d.value for d in routing.departments],
            },
        )
        return updated

    # ------------------------------------------------------------------
    # Approvals
    # ------------------------------------------------------------------

    def record_approval_decision(
        self,
        approval_id: UUID,
        actor: Actor,
        decision: ApprovalDecision | str,
        notes: str | None = None,
    ) -> Approval:
        """Record a reviewer's decision on one approval.

        Raises:
            ApprovalNotFoundError: unknown approval.
            ForbiddenError: the actor may not review this approval.
            ApprovalSupersededError: the deal is no longer under review or
                negotiating, or the approval belongs to a closed round.
            AlreadyDecidedError: the approval is no longer pending.
        """
        decision = ApprovalDecision(decision)
        t0 = time.monotonic()
        from_state: str | None = None
        to_state: str | None = None

        with LogContext.bind_actor(actor, approval_id=str(approval_id)):
            try:
                approval = self._approvals.get_approval(approval_id)
                from_state = approval.status.value

                allowed, required = can_review_approval(actor, approval)
                if not allowed:
                    raise _forbidden(
                        actor,
                        f"decide approval {approval_id}",
                        required,
                    )

                deal = self._deals.get_deal(approval.deal_id)
                if deal.status not in REVIEW_STATUSES:
                    raise ApprovalSupersededError(
                        str(approval_id),
                        approval.status.value,
                        f"deal is {deal.status.value}",
                    )
                if approval.revision_round != deal.revision_count:
                    raise ApprovalSupersededError(
                        str(approval_id),
                        approval.status.value,
                        f"round {approval.revision_round} closed; "
                        f"deal is in round {deal.revision_count}",
                    )

                status = decision_outcome(approval, decision)
                to_state = status.value
                result = self._approvals.record_decision(
                    approval_id,
                    status=status,
                    reviewed_by=actor.identity,
                    notes=notes,
                )
            except DealDeskError as exc:
                _emit_trace(
                    "approval_decision",
                    TRACE_TYPE_APPROVAL_DECISION,
                    action=f"decide:{decision.value}",
                    entity_type="Approval",
                    entity_id=approval_id,
                    from_state=from_state,
                    to_state=to_state,
                    outcome=_outcome_for(exc),
                    reason=str(exc),
                    duration_ms=(time.monotonic() - t0) * 1000,
                    ts=self._clock.now().isoformat(),
                    outcome_sink=self._outcome_sink,
                )
                raise

            _emit_trace(
                "approval_decision",
                TRACE_TYPE_APPROVAL_DECISION,
                action=f"decide:{decision.value}",
                entity_type="Approval",
                entity_id=approval_id,
                from_state=from_state,
                to_state=to_state,
                outcome=OUTCOME_SUCCESS,
                reason=f"decided by {actor.identity}",
                duration_ms=(time.monotonic() - t0) * 1000,
                ts=self._clock.now().isoformat(),
                outcome_sink=self._outcome_sink,
            )
            return result

    def request_business_approval(self, deal_id: UUID, actor: Actor) -> Approval:
        """Open the stage-2 business approval for the deal's current round.

        Raises:
            ForbiddenError: actor is neither approver nor admin.
            ApprovalGateClosedError: deal is not under review or negotiating,
                or stage 1 is not completed.
            BusinessApprovalOpenError: the round already has a stage-2 approval.
        """
        t0 = time.monotonic()
        with LogContext.bind_actor(actor, deal_id=str(deal_id)):
            try:
                deal = self._deals.get_deal(deal_id)
                if actor.role not in (Role.APPROVER, Role.ADMIN):
                    raise _forbidden(actor, "request business approval", "approver or admin")
                if deal.status not in (DealStatus.UNDER_REVIEW, DealStatus.NEGOTIATING):
                    raise ApprovalGateClosedError(
                        str(deal_id),
                        "business_approval",
                        f"deal is {deal.status.value}",
                    )

                approvals = self._approvals.list_for_deal(deal_id, deal.revision_count)
                stage_one = compute_stage_status(approvals, DEPARTMENT_REVIEW_STAGE)
                if stage_one is not StageStatus.COMPLETED:
                    raise ApprovalGateClosedError(
                        str(deal_id),
                        "business_approval",
                        f"department review is {stage_one.value}",
                    )
                if any(a.approval_stage == BUSINESS_APPROVAL_STAGE for a in approvals):
                    raise BusinessApprovalOpenError(str(deal_id), deal.revision_count)

                level = business_approval_level(deal, self._policies.business_approval)
                sla = self._policies.sla.for_department(None)
                approval = self._approvals.create_approval(
                    deal_id,
                    stage=BUSINESS_APPROVAL_STAGE,
                    required_role=Role.APPROVER,
                    revision_round=deal.revision_count,
                    priority=deal.priority,
                    due_date=self._clock.now() + timedelta(hours=sla.target_hours),
                    department=None,
                    required_for=(level.value,),
                )
            except DealDeskError as exc:
                _emit_trace(
                    "business_approval_requested",
                    TRACE_TYPE_APPROVAL_DECISION,
                    action="open:business_approval",
                    entity_type="Deal",
                    entity_id=deal_id,
                    outcome=_outcome_for(exc),
                    reason=str(exc),
                    duration_ms=(time.monotonic() - t0) * 1000,
                    ts=self._clock.now().isoformat(),
                    outcome_sink=self._outcome_sink,
                )
                raise

            _emit_trace(
                "business_approval_requested",
                TRACE_TYPE_APPROVAL_DECISION,
                action="open:business_approval",
                entity_type="Deal",
                entity_id=deal_id,
                outcome=OUTCOME_SUCCESS,
                reason=f"{level.value} sign-off required",
                duration_ms=(time.monotonic() - t0) * 1000,
                ts=self._clock.now().isoformat(),
                outcome_sink=self._outcome_sink,
            )
            return approval

    def get_approval_state(self, deal_id: UUID) -> ApprovalState:
        """Stage statuses, overall state and ``can_advance`` for a deal."""
        return self._approval_state(self._deals.get_deal(deal_id))

    def list_approvals(
        self,
        deal_id: UUID,
        include_history: bool = False,
    ) -> list[Approval]:
        """Approvals of the current round, or of every round with history."""
        deal = self._deals.get_deal(deal_id)
        if include_history:
            return self._approvals.list_for_deal(deal_id)
        return self._approvals.list_for_deal(deal_id, deal.revision_count)

    def _approval_state(self, deal: Deal) -> ApprovalState:
        approvals = self._approvals.list_for_deal(deal.deal_id, deal.revision_count)
        return summarize_approvals(deal.deal_id, approvals, deal.revision_count)

    # ------------------------------------------------------------------
    # Queue
    # ------------------------------------------------------------------

    def get_queue(self, actor: Actor) -> WorkQueue:
        """Outstanding approvals for the actor, ordered by SLA risk."""
        now = self._clock.now()
        pending = self._approvals.list_open_pending()
        deals = self._deals.list_deals(deal_ids={a.deal_id for a in pending})
        completed = self._approvals.list_completed_since(
            now - timedelta(days=self._policies.sla.processing_window_days),
        )

        queue = build_queue(
            actor,
            deals,
            pending,
            now=now,
            sla_policy=self._policies.sla,
            urgency_policy=self._policies.urgency,
            completed=completed,
        )
        logger.debug(
            "queue_built",
            extra={
                "actor": actor.label,
                "total_pending": queue.metrics.total_pending,
                "overdue_count": queue.metrics.overdue_count,
            },
        )
        return queue

    # ------------------------------------------------------------------
    # Deals
    # ------------------------------------------------------------------

    def create_deal(
        self,
        actor: Actor,
        *,
        deal_name: str,
        deal_value: Decimal,
        incentives: Sequence[Incentive] = (),
        priority: DealPriority = DealPriority.NORMAL,
        draft_type: DraftType | None = None,
        discount_percent: Decimal | None = None,
        contract_term_months: int | None = None,
    ) -> Deal:
        """Create a draft deal owned by the actor.

        Raises:
            ForbiddenError: actor lacks ``can_create_deals``, or is a seller
                without an ``actor_id``.
        """
        if not capabilities_for(actor.role, actor.department).can_create_deals:
            raise _forbidden(actor, "create deals", "seller or admin")
        if actor.role is Role.SELLER and actor.actor_id is None:
            raise _forbidden(actor, "create deals anonymously", "a seller actor_id")
        return self._deals.create_deal(
            deal_name=deal_name,
            created_by=actor.identity,
            created_by_role=actor.label,
            deal_value=deal_value,
            priority=priority,
            draft_type=draft_type,
            incentives=incentives,
            discount_percent=discount_percent,
            contract_term_months=contract_term_months,
        )

    def update_deal_terms(self, deal_id: UUID, actor: Actor, **terms: Any) -> Deal:
        """Edit the terms of a deal in an editable status.

        Accepts the keyword arguments of ``DealService.update_terms``.

        Raises:
            ForbiddenError: actor lacks ``can_edit_deals`` or does not own
                the deal.
            DealNotEditableError: deal is past the editable statuses.
        """
        deal = self._deals.get_deal(deal_id)
        if not capabilities_for(actor.role, actor.department).can_edit_deals:
            raise _forbidden(actor, "edit deals", "seller or admin")
        self._check_ownership(deal, actor, f"edit deal {deal_id}")
        if not deal.is_editable:
            raise DealNotEditableError(str(deal_id), deal.status.value)
        return self._deals.update_terms(deal_id, **terms)

    def get_status_history(self, deal_id: UUID) -> list[StatusChange]:
        return self._deals.get_status_history(deal_id)

    def capabilities(self, actor: Actor) -> CapabilitySet:
        return capabilities_for(actor.role, actor.department)

    # ------------------------------------------------------------------
    # Ownership
    # ------------------------------------------------------------------

    @staticmethod
    def _owns(deal: Deal, actor: Actor) -> bool:
        """Sellers act only on deals they created; without an identity, on none."""
        if actor.role is not Role.SELLER:
            return True
        return actor.actor_id is not None and actor.actor_id == deal.created_by

    def _check_ownership(self, deal: Deal, actor: Actor, action: str) -> None:
        if not self._owns(deal, actor):
            raise _forbidden(actor, action, "the deal's creator or admin")


def build_workflow_executor(
    session: Session,
    clock: Clock | None = None,
    config_path: Path | str | None = None,
    outcome_sink: OutcomeSink | None = None,
) -> DealWorkflowExecutor:
    """Wire services, configuration and clock into an executor.

    The caller owns ``session`` and its transaction.
    """
    clock = clock or SystemClock()
    policies = build_workflow_policies(get_active_config(config_path))
    return DealWorkflowExecutor(
        deal_service=DealService(session, clock),
        approval_service=ApprovalService(session, clock),
        policies=policies,
        clock=clock,
        outcome_sink=outcome_sink,
    )
