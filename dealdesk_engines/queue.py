"""
Module: dealdesk_engines.queue
Responsibility:
    Read-side projection of outstanding approvals for one actor: selection,
    SLA risk classification, ordering, summary metrics, and per-department
    workload.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import dealdesk_kernel/domain and sibling engine modules.

Invariants enforced:
    - Purity: ``now`` is a parameter; no clock access.  Results are never
      cached, so a decision is visible on the next read.
    - Ordering: overdue first (most overdue first), then ascending time
      remaining, ties broken by descending deal value, then approval id.
      Ordering uses the exact due date; ``time_remaining_hours`` is rounded
      for display only.
    - ``current_load_percent`` is not capped; ``display_load_percent`` is
      clamped to the configured display bound.
    - Approvals whose deal is missing from the snapshot are skipped.

Failure modes:
    - None.  Empty snapshots produce an empty queue with zeroed metrics.

Usage:
    from dealdesk_engines.queue import build_queue

    queue = build_queue(
        actor, deals, pending, now=clock.now(), sla_policy=policies.sla,
    )
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import datetime, timedelta
from decimal import Decimal

from dealdesk_kernel.domain.approval import Approval
from dealdesk_kernel.domain.deal import Deal, DealPriority
from dealdesk_kernel.domain.policy import SlaPolicy, UrgencyPolicy
from dealdesk_kernel.domain.queue import (
    DepartmentWorkload,
    QueueItem,
    QueueMetrics,
    RiskLevel,
    Urgency,
    WorkQueue,
)
from dealdesk_kernel.domain.roles import Actor, Department, Role
from dealdesk_engines.permissions import can_review_approval
from dealdesk_engines.tracer import traced_engine

_SECONDS_PER_HOUR = 3600.0
_SECONDS_PER_DAY = 86400.0


def _hours(delta: timedelta) -> float:
    return delta.total_seconds() / _SECONDS_PER_HOUR


def classify_risk(
    now: datetime,
    created_at: datetime,
    due_date: datetime,
    warning_fraction: float,
    critical_fraction: float,
) -> RiskLevel:
    """SLA risk from the fraction of the allotted window still remaining."""
    if now > due_date:
        return RiskLevel.OVERDUE
    allotted = (due_date - created_at).total_seconds()
    if allotted <= 0:
        return RiskLevel.CRITICAL
    remaining_fraction = (due_date - now).total_seconds() / allotted
    if remaining_fraction <= critical_fraction:
        return RiskLevel.CRITICAL
    if remaining_fraction <= warning_fraction:
        return RiskLevel.WARNING
    return RiskLevel.SAFE


def deal_urgency(deal: Deal, now: datetime, policy: UrgencyPolicy) -> Urgency:
    """Urgency from days in the current status and deal value."""
    days_in_status = (now - deal.last_status_change).total_seconds() / _SECONDS_PER_DAY
    if days_in_status >= policy.high_days_in_status or deal.deal_value >= policy.high_value:
        return Urgency.HIGH
    if (
        days_in_status >= policy.medium_days_in_status
        or deal.deal_value >= policy.medium_value
    ):
        return Urgency.MEDIUM
    return Urgency.LOW


def is_visible_to(actor: Actor, approval: Approval) -> bool:
    """Whether an approval belongs to the actor's queue (status aside)."""
    allowed, _ = can_review_approval(actor, approval)
    return allowed


def select_queue_approvals(
    actor: Actor,
    approvals: Iterable[Approval],
) -> list[Approval]:
    """Pending approvals the actor may act on."""
    return [a for a in approvals if a.is_pending and is_visible_to(actor, a)]


def _queue_item(
    approval: Approval,
    deal: Deal,
    now: datetime,
    sla_policy: SlaPolicy,
    urgency_policy: UrgencyPolicy,
) -> QueueItem:
    sla = sla_policy.for_department(approval.department)
    return QueueItem(
        approval_id=approval.approval_id,
        deal_id=deal.deal_id,
        deal_name=deal.deal_name,
        deal_status=deal.status,
        deal_value=deal.deal_value,
        approval_stage=approval.approval_stage,
        department=approval.department,
        required_role=approval.required_role,
        priority=approval.priority,
        created_at=approval.created_at,
        due_date=approval.due_date,
        sla_target_hours=sla.target_hours,
        time_remaining_hours=round(_hours(approval.due_date - now), 2),
        risk_level=classify_risk(
            now,
            approval.created_at,
            approval.due_date,
            sla.warning_fraction,
            sla.critical_fraction,
        ),
        days_since_created=max(0, (now - approval.created_at).days),
        urgency=deal_urgency(deal, now, urgency_policy),
    )


def _avg_processing_hours(completed: Sequence[Approval]) -> float:
    durations = [
        _hours(a.completed_at - a.created_at)
        for a in completed
        if a.completed_at is not None
    ]
    if not durations:
        return 0.0
    return round(sum(durations) / len(durations), 2)


def _capacity_for(actor: Actor, sla_policy: SlaPolicy) -> int:
    if actor.department is not None:
        return sla_policy.for_department(actor.department).capacity
    if actor.role is Role.APPROVER:
        return sla_policy.business_approval.capacity
    return (
        sum(entry.capacity for entry in sla_policy.departments)
        + sla_policy.business_approval.capacity
    )


def _load_percent(pending: int, capacity: int) -> float:
    if capacity <= 0:
        return 0.0
    return round(pending * 100 / capacity, 1)


def _workload(
    items: Sequence[QueueItem],
    completed: Sequence[Approval],
    sla_policy: SlaPolicy,
) -> tuple[DepartmentWorkload, ...]:
    groups: set[Department | None] = {i.department for i in items}
    groups.update(a.department for a in completed)

    rows: list[DepartmentWorkload] = []
    ordered = sorted((d for d in groups if d is not None), key=lambda d: d.value)
    if None in groups:
        ordered.append(None)

    for department in ordered:
        pending = [i for i in items if i.department == department]
        capacity = sla_policy.for_department(department).capacity
        rows.append(
            DepartmentWorkload(
                department=department,
                pending_count=len(pending),
                overdue_count=sum(1 for i in pending if i.is_overdue),
                avg_processing_hours=_avg_processing_hours(
                    [a for a in completed if a.department == department]
                ),
                capacity=capacity,
                load_percent=_load_percent(len(pending), capacity),
            )
        )
    return tuple(rows)


@traced_engine("queue", "1.0", fingerprint_fields=("actor", "now"))
def build_queue(
    actor: Actor,
    deals: Iterable[Deal],
    approvals: Iterable[Approval],
    now: datetime,
    sla_policy: SlaPolicy,
    urgency_policy: UrgencyPolicy | None = None,
    completed: Iterable[Approval] = (),
) -> WorkQueue:
    """Ordered work queue plus metrics for one actor over a snapshot.

    Args:
        actor: Requesting role/department pairing.
        deals: Deals referenced by ``approvals``; missing deals skip items.
        approvals: Open approvals snapshot (non-pending ones are ignored).
        now: Evaluation time.
        sla_policy: Per-department targets, thresholds and capacity.
        urgency_policy: Deal urgency thresholds.
        completed: Decided approvals used for processing-time metrics.
    """
    urgency_policy = urgency_policy or UrgencyPolicy()
    deals_by_id = {d.deal_id: d for d in deals}

    items = [
        _queue_item(a, deals_by_id[a.deal_id], now, sla_policy, urgency_policy)
        for a in select_queue_approvals(actor, approvals)
        if a.deal_id in deals_by_id
    ]
    # Same ``now`` for every item, so due date orders exact time remaining.
    items.sort(key=lambda i: (i.due_date, -i.deal_value, str(i.approval_id)))

    window_start = now - timedelta(days=sla_policy.processing_window_days)
    visible_completed = [
        a for a in completed
        if not a.is_pending
        and a.completed_at is not None
        and is_visible_to(actor, a)
    ]
    in_window = [a for a in visible_completed if a.completed_at >= window_start]

    capacity = _capacity_for(actor, sla_policy)
    load = _load_percent(len(items), capacity)
    avg_value = Decimal("0")
    if items:
        avg_value = (sum(i.deal_value for i in items) / len(items)).quantize(Decimal("0.01"))

    metrics = QueueMetrics(
        total_pending=len(items),
        overdue_count=sum(1 for i in items if i.is_overdue),
        urgent_count=sum(1 for i in items if i.priority is DealPriority.URGENT),
        high_priority_count=sum(1 for i in items if i.priority is DealPriority.HIGH),
        upcoming_deadlines=sum(
            1 for i in items
            if not i.is_overdue
            and i.time_remaining_hours <= sla_policy.upcoming_window_hours
        ),
        completed_today=sum(
            1 for a in visible_completed if a.completed_at.date() == now.date()
        ),
        avg_processing_hours=_avg_processing_hours(in_window),
        avg_deal_value=avg_value,
        capacity=capacity,
        current_load_percent=load,
        display_load_percent=min(load, float(sla_policy.max_display_load_percent)),
    )

    return WorkQueue(
        items=tuple(items),
        metrics=metrics,
        workload=_workload(items, in_window, sla_policy),
        generated_at=now,
    )
