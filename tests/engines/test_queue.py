"""
Tests for the queue and SLA projection.

Tests cover:
- classify_risk: safe / warning / critical / overdue boundaries
- deal_urgency: days in status and value thresholds
- Selection: department match, business approvals, admin, non-pending
- Ordering: overdue first, then time remaining, deal value, approval id
- Metrics: counts, averages, capacity and load (uncapped and clamped)
- Workload distribution per department
"""

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import UUID, uuid4

import pytest

from dealdesk_engines.queue import (
    build_queue,
    classify_risk,
    deal_urgency,
    select_queue_approvals,
)
from dealdesk_kernel.domain.approval import Approval, ApprovalStatus
from dealdesk_kernel.domain.deal import Deal, DealPriority, DealStatus
from dealdesk_kernel.domain.policy import DepartmentSla, SlaPolicy, UrgencyPolicy
from dealdesk_kernel.domain.queue import RiskLevel, Urgency
from dealdesk_kernel.domain.roles import Actor, Department, Role

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)

FINANCE = Actor(Role.DEPARTMENT_REVIEWER, department=Department.FINANCE)
MARKETING = Actor(Role.DEPARTMENT_REVIEWER, department=Department.MARKETING)
APPROVER = Actor(Role.APPROVER)
ADMIN = Actor(Role.ADMIN)

SLA = SlaPolicy(
    departments=(
        DepartmentSla(Department.FINANCE, target_hours=48, capacity=4),
        DepartmentSla(Department.MARKETING, target_hours=24, capacity=2),
    ),
    business_approval=DepartmentSla(None, target_hours=48, capacity=5),
)


# =========================================================================
# Factory helpers
# =========================================================================


def make_deal(
    deal_value: str = "50000",
    days_in_status: float = 0,
    deal_id: UUID | None = None,
) -> Deal:
    return Deal(
        deal_id=deal_id or uuid4(),
        deal_name="Queue test deal",
        status=DealStatus.UNDER_REVIEW,
        created_by="seller-1",
        deal_value=Decimal(deal_value),
        created_at=NOW - timedelta(days=30),
        last_status_change=NOW - timedelta(days=days_in_status),
    )


def make_approval(
    deal: Deal,
    hours_remaining: float = 24,
    allotted_hours: float = 48,
    department: Department | None = Department.FINANCE,
    status: ApprovalStatus = ApprovalStatus.PENDING,
    priority: DealPriority = DealPriority.NORMAL,
    completed_at: datetime | None = None,
    approval_id: UUID | None = None,
) -> Approval:
    due = NOW + timedelta(hours=hours_remaining)
    return Approval(
        approval_id=approval_id or uuid4(),
        deal_id=deal.deal_id,
        approval_stage=1 if department is not None else 2,
        required_role=Role.DEPARTMENT_REVIEWER if department is not None else Role.APPROVER,
        status=status,
        priority=priority,
        created_at=due - timedelta(hours=allotted_hours),
        due_date=due,
        department=department,
        completed_at=completed_at,
    )


# =========================================================================
# Risk and urgency
# =========================================================================


class TestClassifyRisk:
    CREATED = NOW
    DUE = NOW + timedelta(hours=48)

    @pytest.mark.parametrize(
        "elapsed_hours,expected",
        [
            (1, RiskLevel.SAFE),
            (35, RiskLevel.SAFE),
            (37, RiskLevel.WARNING),
            (44, RiskLevel.CRITICAL),
            (48, RiskLevel.CRITICAL),
            (49, RiskLevel.OVERDUE),
        ],
    )
    def test_thresholds(self, elapsed_hours, expected):
        now = self.CREATED + timedelta(hours=elapsed_hours)
        assert classify_risk(now, self.CREATED, self.DUE, 0.25, 0.10) is expected

    def test_zero_window_is_critical_until_due(self):
        assert classify_risk(NOW, NOW, NOW, 0.25, 0.10) is RiskLevel.CRITICAL


class TestDealUrgency:
    POLICY = UrgencyPolicy()

    def test_low(self):
        assert deal_urgency(make_deal(), NOW, self.POLICY) is Urgency.LOW

    def test_medium_by_days(self):
        assert deal_urgency(make_deal(days_in_status=3), NOW, self.POLICY) is Urgency.MEDIUM

    def test_medium_by_value(self):
        assert deal_urgency(make_deal("500000"), NOW, self.POLICY) is Urgency.MEDIUM

    def test_high_by_days(self):
        assert deal_urgency(make_deal(days_in_status=7), NOW, self.POLICY) is Urgency.HIGH

    def test_high_by_value(self):
        assert deal_urgency(make_deal("1000000"), NOW, self.POLICY) is Urgency.HIGH


# =========================================================================
# Selection
# =========================================================================


class TestSelection:
    def setup_method(self):
        self.deal = make_deal()
        self.finance = make_approval(self.deal, department=Department.FINANCE)
        self.marketing = make_approval(self.deal, department=Department.MARKETING)
        self.business = make_approval(self.deal, department=None)
        self.decided = make_approval(
            self.deal,
            status=ApprovalStatus.APPROVED,
            completed_at=NOW,
        )
        self.all = [self.finance, self.marketing, self.business, self.decided]

    def test_department_reviewer_sees_own_department(self):
        assert select_queue_approvals(FINANCE, self.all) == [self.finance]

    def test_approver_sees_business_approvals(self):
        assert select_queue_approvals(APPROVER, self.all) == [self.business]

    def test_admin_sees_every_pending(self):
        assert select_queue_approvals(ADMIN, self.all) == [
            self.finance, self.marketing, self.business,
        ]

    def test_seller_sees_nothing(self):
        assert select_queue_approvals(Actor(Role.SELLER), self.all) == []


# =========================================================================
# Ordering
# =========================================================================


class TestOrdering:
    def test_overdue_first_then_time_remaining(self):
        deal = make_deal()
        later = make_approval(deal, hours_remaining=30)
        sooner = make_approval(deal, hours_remaining=2)
        overdue = make_approval(deal, hours_remaining=-5)
        very_overdue = make_approval(deal, hours_remaining=-20)

        queue = build_queue(FINANCE, [deal], [later, sooner, overdue, very_overdue], NOW, SLA)

        assert [i.approval_id for i in queue.items] == [
            very_overdue.approval_id,
            overdue.approval_id,
            sooner.approval_id,
            later.approval_id,
        ]
        assert queue.items[0].risk_level is RiskLevel.OVERDUE
        assert queue.items[0].time_remaining_hours == -20

    def test_equal_deadline_prefers_higher_value(self):
        small, large = make_deal("10000"), make_deal("900000")
        a_small = make_approval(small, hours_remaining=10)
        a_large = make_approval(large, hours_remaining=10)

        queue = build_queue(FINANCE, [small, large], [a_small, a_large], NOW, SLA)

        assert [i.deal_id for i in queue.items] == [large.deal_id, small.deal_id]

    def test_seconds_apart_is_not_a_tie(self):
        small, large = make_deal("1000"), make_deal("900000")
        sooner = make_approval(small, hours_remaining=5)
        ten_seconds_later = make_approval(large, hours_remaining=5 + 10 / 3600)

        queue = build_queue(ADMIN, [small, large], [ten_seconds_later, sooner], NOW, SLA)

        assert [i.deal_id for i in queue.items] == [small.deal_id, large.deal_id]
        assert queue.items[0].time_remaining_hours == queue.items[1].time_remaining_hours

    def test_full_tie_broken_by_approval_id(self):
        deal = make_deal()
        first = make_approval(deal, approval_id=UUID(int=1))
        second = make_approval(deal, approval_id=UUID(int=2))

        queue = build_queue(FINANCE, [deal], [second, first], NOW, SLA)

        assert [i.approval_id for i in queue.items] == [UUID(int=1), UUID(int=2)]

    def test_missing_deal_skipped(self):
        known = make_deal()
        orphan = make_approval(make_deal())
        queue = build_queue(FINANCE, [known], [orphan, make_approval(known)], NOW, SLA)
        assert len(queue.items) == 1


# =========================================================================
# Metrics and workload
# =========================================================================


class TestMetrics:
    def test_empty_queue(self):
        queue = build_queue(FINANCE, [], [], NOW, SLA)
        assert queue.items == ()
        assert queue.metrics.total_pending == 0
        assert queue.metrics.avg_deal_value == Decimal("0")
        assert queue.metrics.avg_processing_hours == 0.0
        assert queue.metrics.current_load_percent == 0.0
        assert queue.generated_at == NOW

    def test_counts(self):
        deal = make_deal("100000")
        big = make_deal("300000")
        approvals = [
            make_approval(deal, hours_remaining=-1, priority=DealPriority.URGENT),
            make_approval(deal, hours_remaining=3, priority=DealPriority.HIGH),
            make_approval(big, hours_remaining=20),
        ]

        metrics = build_queue(FINANCE, [deal, big], approvals, NOW, SLA).metrics

        assert metrics.total_pending == 3
        assert metrics.overdue_count == 1
        assert metrics.urgent_count == 1
        assert metrics.high_priority_count == 1
        assert metrics.upcoming_deadlines == 1
        assert metrics.avg_deal_value == Decimal("166666.67")

    def test_processing_time_and_completed_today(self):
        deal = make_deal()
        today = make_approval(
            deal,
            status=ApprovalStatus.APPROVED,
            hours_remaining=40,
            allotted_hours=48,
            completed_at=NOW - timedelta(hours=2),
        )
        last_week = make_approval(
            deal,
            status=ApprovalStatus.REJECTED,
            hours_remaining=-120,
            allotted_hours=48,
            completed_at=NOW - timedelta(hours=158),
        )
        stale = make_approval(
            deal,
            status=ApprovalStatus.APPROVED,
            hours_remaining=-2000,
            completed_at=NOW - timedelta(days=60),
        )
        foreign = make_approval(
            deal,
            department=Department.MARKETING,
            status=ApprovalStatus.APPROVED,
            completed_at=NOW,
        )

        metrics = build_queue(
            FINANCE, [deal], [], NOW, SLA, completed=[today, last_week, stale, foreign],
        ).metrics

        assert metrics.completed_today == 1
        # 6h for today, 10h for last week; stale is outside the window
        assert metrics.avg_processing_hours == 8.0

    def test_capacity_and_load(self):
        deal = make_deal()
        approvals = [
            make_approval(deal, department=Department.MARKETING) for _ in range(5)
        ]

        metrics = build_queue(MARKETING, [deal], approvals, NOW, SLA).metrics

        assert metrics.capacity == 2
        assert metrics.current_load_percent == 250.0
        assert metrics.display_load_percent == 200.0

    def test_approver_capacity_is_business_approval(self):
        metrics = build_queue(APPROVER, [], [], NOW, SLA).metrics
        assert metrics.capacity == 5

    def test_admin_capacity_sums_everything(self):
        metrics = build_queue(ADMIN, [], [], NOW, SLA).metrics
        assert metrics.capacity == 4 + 2 + 5

    def test_no_caching_between_reads(self):
        deal = make_deal()
        pending = make_approval(deal)
        first = build_queue(FINANCE, [deal], [pending], NOW, SLA)
        decided = replace(pending, status=ApprovalStatus.APPROVED)
        second = build_queue(FINANCE, [deal], [decided], NOW, SLA)
        assert first.metrics.total_pending == 1
        assert second.metrics.total_pending == 0


class TestWorkload:
    def test_rows_per_department_with_business_last(self):
        deal = make_deal()
        approvals = [
            make_approval(deal, department=Department.MARKETING),
            make_approval(deal, department=Department.FINANCE, hours_remaining=-1),
            make_approval(deal, department=Department.FINANCE),
            make_approval(deal, department=None),
        ]

        workload = build_queue(ADMIN, [deal], approvals, NOW, SLA).workload

        assert [row.department for row in workload] == [
            Department.FINANCE, Department.MARKETING, None,
        ]
        finance = workload[0]
        assert finance.pending_count == 2
        assert finance.overdue_count == 1
        assert finance.capacity == 4
        assert finance.load_percent == 50.0
        assert workload[2].capacity == 5
