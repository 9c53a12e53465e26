"""
Race tests for compare-and-set writes.

Two sessions on the same file-backed SQLite database stand in for two
concurrent requests.  Each test interleaves them explicitly so the losing
write always runs against a row the winner has already committed.

Tests cover:
- Two reviewers deciding the same approval: one wins, the other sees
  AlreadyDecidedError carrying the winning status
- Two actors moving the same deal out of one status: the loser sees
  OptimisticLockError and writes no history row
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from dealdesk_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from dealdesk_kernel.domain.approval import ApprovalStatus
from dealdesk_kernel.domain.clock import DeterministicClock
from dealdesk_kernel.domain.deal import DealPriority, DealStatus
from dealdesk_kernel.domain.roles import Department, Role
from dealdesk_kernel.exceptions import AlreadyDecidedError, OptimisticLockError
from dealdesk_kernel.services.approval_service import ApprovalService
from dealdesk_kernel.services.deal_service import DealService


@pytest.fixture
def session_factory(tmp_path):
    """Session factory on a fresh file database shared by every session."""
    init_engine_from_url(f"sqlite:///{tmp_path / 'races.db'}")
    create_tables()
    yield get_session_factory()
    reset_engine()


@pytest.fixture
def clock():
    return DeterministicClock()


@pytest.fixture
def seeded(session_factory, clock):
    """A submitted deal with one pending finance approval, committed."""
    session = session_factory()
    deals = DealService(session, clock)
    approvals = ApprovalService(session, clock)

    deal = deals.create_deal(
        deal_name="Race deal",
        created_by="seller-1",
        deal_value=Decimal("50000"),
        created_by_role="seller",
    )
    deal = deals.apply_status_change(
        deal.deal_id,
        expected_status=DealStatus.DRAFT,
        new_status=DealStatus.SUBMITTED,
        changed_by="seller-1",
        changed_by_role="seller",
    )
    approval = approvals.create_approval(
        deal.deal_id,
        stage=1,
        required_role=Role.DEPARTMENT_REVIEWER,
        revision_round=0,
        priority=DealPriority.NORMAL,
        due_date=clock.now() + timedelta(hours=48),
        department=Department.FINANCE,
    )
    session.commit()
    session.close()
    return deal, approval


class TestApprovalDecisionRace:
    def test_loser_sees_winning_status(self, session_factory, clock, seeded):
        _, approval = seeded
        first, second = session_factory(), session_factory()
        try:
            # Both requests read the approval while it is pending.
            assert ApprovalService(first, clock).get_approval(approval.approval_id).is_pending
            assert ApprovalService(second, clock).get_approval(approval.approval_id).is_pending

            ApprovalService(first, clock).record_decision(
                approval.approval_id,
                status=ApprovalStatus.REJECTED,
                reviewed_by="reviewer-a",
            )
            first.commit()

            with pytest.raises(AlreadyDecidedError) as exc_info:
                ApprovalService(second, clock).record_decision(
                    approval.approval_id,
                    status=ApprovalStatus.APPROVED,
                    reviewed_by="reviewer-b",
                )
            second.rollback()
            assert exc_info.value.current_status == "rejected"
        finally:
            first.close()
            second.close()

        check = session_factory()
        stored = ApprovalService(check, clock).get_approval(approval.approval_id)
        assert stored.status is ApprovalStatus.REJECTED
        assert stored.reviewed_by == "reviewer-a"
        check.close()


class TestDealStatusRace:
    def test_stale_status_write_rejected(self, session_factory, clock, seeded):
        deal, _ = seeded
        first, second = session_factory(), session_factory()
        try:
            stale = DealService(second, clock).get_deal(deal.deal_id)
            assert stale.status is DealStatus.SUBMITTED

            DealService(first, clock).apply_status_change(
                deal.deal_id,
                expected_status=DealStatus.SUBMITTED,
                new_status=DealStatus.UNDER_REVIEW,
                changed_by="approver-1",
                changed_by_role="approver",
            )
            first.commit()

            with pytest.raises(OptimisticLockError):
                DealService(second, clock).apply_status_change(
                    deal.deal_id,
                    expected_status=stale.status,
                    new_status=DealStatus.LOST,
                    changed_by="approver-2",
                    changed_by_role="approver",
                )
            second.rollback()
        finally:
            first.close()
            second.close()

        check = session_factory()
        service = DealService(check, clock)
        assert service.get_deal(deal.deal_id).status is DealStatus.UNDER_REVIEW
        assert [h.status for h in service.get_status_history(deal.deal_id)] == [
            DealStatus.DRAFT, DealStatus.SUBMITTED, DealStatus.UNDER_REVIEW,
        ]
        check.close()
