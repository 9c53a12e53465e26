"""
Pytest fixtures for the deal workflow test suite.

Provides:
- Structured logging configuration and log capture
- A fresh database per test (in-memory SQLite by default)
- Deterministic clock, services and a wired workflow executor
- Actors for every role and helpers that drive deals through the workflow

Environment Variables:
- DATABASE_URL: connection URL for the test database.  If not set, each test
  runs against its own in-memory SQLite database.
"""

import json
import logging
import os
from collections.abc import Callable, Generator, Sequence
from decimal import Decimal
from io import StringIO

import pytest
from sqlalchemy.orm import Session

from dealdesk_config import get_active_config
from dealdesk_config.bridges import build_workflow_policies
from dealdesk_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from dealdesk_kernel.domain.approval import (
    DEPARTMENT_REVIEW_STAGE,
    ApprovalDecision,
)
from dealdesk_kernel.domain.clock import DeterministicClock
from dealdesk_kernel.domain.deal import Deal, DealStatus, Incentive
from dealdesk_kernel.domain.policy import WorkflowPolicies
from dealdesk_kernel.domain.roles import Actor, Department, Role
from dealdesk_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from dealdesk_kernel.services.approval_service import ApprovalService
from dealdesk_kernel.services.deal_service import DealService
from dealdesk_services.workflow_executor import DealWorkflowExecutor

DEFAULT_TEST_DATABASE_URL = "sqlite:///:memory:"

SELLER_ID = "seller-1"
OTHER_SELLER_ID = "seller-2"


def get_database_url() -> str:
    """Get database URL from environment, or use in-memory SQLite."""
    return os.environ.get("DATABASE_URL", DEFAULT_TEST_DATABASE_URL)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture dealdesk logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, executor):
            executor.attempt_transition(...)
            logs = captured_logs()
            assert any(r["message"] == "workflow_transition" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("dealdesk")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def db_engine():
    """Engine with a freshly created schema, disposed after the test."""
    engine = init_engine_from_url(get_database_url(), echo=False)
    create_tables()
    yield engine
    drop_tables()
    reset_engine()


@pytest.fixture
def session(db_engine) -> Generator[Session, None, None]:
    """Session on the test database; uncommitted work is rolled back."""
    sess = get_session()
    yield sess
    sess.rollback()
    sess.close()


@pytest.fixture
def deterministic_clock():
    """Provide a deterministic clock for testing."""
    return DeterministicClock()


# =============================================================================
# Service fixtures
# =============================================================================


@pytest.fixture
def deal_service(session: Session, deterministic_clock) -> DealService:
    return DealService(session, deterministic_clock)


@pytest.fixture
def approval_service(session: Session, deterministic_clock) -> ApprovalService:
    return ApprovalService(session, deterministic_clock)


@pytest.fixture(scope="session")
def workflow_policies() -> WorkflowPolicies:
    """Policies built from the shipped default configuration."""
    return build_workflow_policies(get_active_config())


@pytest.fixture
def trace_records() -> list[dict]:
    """Outcome sink target: every trace record the executor emits."""
    return []


@pytest.fixture
def executor(
    deal_service,
    approval_service,
    workflow_policies,
    deterministic_clock,
    trace_records,
) -> DealWorkflowExecutor:
    return DealWorkflowExecutor(
        deal_service=deal_service,
        approval_service=approval_service,
        policies=workflow_policies,
        clock=deterministic_clock,
        outcome_sink=trace_records.append,
    )


# =============================================================================
# Actors
# =============================================================================


@pytest.fixture
def seller() -> Actor:
    return Actor(Role.SELLER, actor_id=SELLER_ID)


@pytest.fixture
def other_seller() -> Actor:
    return Actor(Role.SELLER, actor_id=OTHER_SELLER_ID)


@pytest.fixture
def approver() -> Actor:
    return Actor(Role.APPROVER, actor_id="approver-1")


@pytest.fixture
def legal() -> Actor:
    return Actor(Role.LEGAL, actor_id="legal-1")


@pytest.fixture
def admin() -> Actor:
    return Actor(Role.ADMIN, actor_id="admin-1")


@pytest.fixture
def reviewer() -> Callable[[Department], Actor]:
    """Factory for department reviewers."""

    def _make(department: Department) -> Actor:
        return Actor(
            Role.DEPARTMENT_REVIEWER,
            department=department,
            actor_id=f"reviewer-{department.value}",
        )

    return _make


# =============================================================================
# Workflow helpers
# =============================================================================


@pytest.fixture
def make_deal(executor, seller) -> Callable[..., Deal]:
    """Create a draft deal owned by ``seller``."""

    def _make(
        categories: Sequence[str] = (),
        deal_value: Decimal = Decimal("50000"),
        **kwargs,
    ) -> Deal:
        return executor.create_deal(
            seller,
            deal_name=kwargs.pop("deal_name", "Acme Q3 campaign"),
            deal_value=deal_value,
            incentives=[Incentive(category=c, name=f"{c} incentive") for c in categories],
            **kwargs,
        )

    return _make


@pytest.fixture
def deal_under_review(executor, make_deal, seller, approver) -> Callable[..., Deal]:
    """Create a deal and drive it to ``under_review``."""

    def _make(categories: Sequence[str] = (), **kwargs) -> Deal:
        deal = make_deal(categories, **kwargs)
        executor.attempt_transition(deal.deal_id, seller, DealStatus.SUBMITTED)
        return executor.attempt_transition(deal.deal_id, approver, DealStatus.UNDER_REVIEW)

    return _make


@pytest.fixture
def approve_department_review(executor, reviewer) -> Callable[[Deal], None]:
    """Approve every pending stage-1 approval of the deal's current round."""

    def _approve(deal: Deal) -> None:
        for approval in executor.list_approvals(deal.deal_id):
            if approval.approval_stage == DEPARTMENT_REVIEW_STAGE and approval.is_pending:
                executor.record_approval_decision(
                    approval.approval_id,
                    reviewer(approval.department),
                    ApprovalDecision.APPROVE,
                )

    return _approve
