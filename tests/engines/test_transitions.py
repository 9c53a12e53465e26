"""
Tests for the status transition engine.

Tests cover:
- is_legal_transition: the full 11x11 grid against the status graph
- Terminal statuses, self transitions and skipped stages
- validate_transition: legality before authority, outcome codes
- Approval-gated edges and status display metadata
"""

import itertools

import pytest

from dealdesk_engines.transitions import (
    APPROVAL_GATED_TRANSITIONS,
    TransitionOutcome,
    is_legal_transition,
    is_terminal,
    legal_targets,
    requires_approval_gate,
    status_info,
    validate_transition,
)
from dealdesk_kernel.domain.deal import DEAL_STATUS_TRANSITIONS, DealStatus
from dealdesk_kernel.domain.roles import Actor, Department, Role

ALL_ACTORS = (
    Actor(Role.SELLER),
    Actor(Role.APPROVER),
    Actor(Role.LEGAL),
    Actor(Role.ADMIN),
    Actor(Role.DEPARTMENT_REVIEWER, department=Department.FINANCE),
    Actor(Role.DEPARTMENT_REVIEWER, department=Department.LEGAL),
)

LEGAL_EDGES = {
    (DealStatus.DRAFT, DealStatus.SCOPING),
    (DealStatus.DRAFT, DealStatus.SUBMITTED),
    (DealStatus.SCOPING, DealStatus.SUBMITTED),
    (DealStatus.SUBMITTED, DealStatus.UNDER_REVIEW),
    (DealStatus.SUBMITTED, DealStatus.LOST),
    (DealStatus.UNDER_REVIEW, DealStatus.REVISION_REQUESTED),
    (DealStatus.UNDER_REVIEW, DealStatus.NEGOTIATING),
    (DealStatus.UNDER_REVIEW, DealStatus.APPROVED),
    (DealStatus.UNDER_REVIEW, DealStatus.LOST),
    (DealStatus.REVISION_REQUESTED, DealStatus.UNDER_REVIEW),
    (DealStatus.REVISION_REQUESTED, DealStatus.LOST),
    (DealStatus.NEGOTIATING, DealStatus.REVISION_REQUESTED),
    (DealStatus.NEGOTIATING, DealStatus.APPROVED),
    (DealStatus.NEGOTIATING, DealStatus.LOST),
    (DealStatus.APPROVED, DealStatus.CONTRACT_DRAFTING),
    (DealStatus.APPROVED, DealStatus.LOST),
    (DealStatus.CONTRACT_DRAFTING, DealStatus.CLIENT_REVIEW),
    (DealStatus.CONTRACT_DRAFTING, DealStatus.LOST),
    (DealStatus.CLIENT_REVIEW, DealStatus.SIGNED),
    (DealStatus.CLIENT_REVIEW, DealStatus.NEGOTIATING),
    (DealStatus.CLIENT_REVIEW, DealStatus.LOST),
}


class TestStatusGraph:
    """Legality of every (from, to) pair."""

    def test_graph_matches_edge_list(self):
        graph = {
            (s, t) for s, targets in DEAL_STATUS_TRANSITIONS.items() for t in targets
        }
        assert graph == LEGAL_EDGES

    @pytest.mark.parametrize(
        "source,target", list(itertools.product(DealStatus, DealStatus)),
    )
    def test_every_pair(self, source, target):
        assert is_legal_transition(source, target) == ((source, target) in LEGAL_EDGES)

    @pytest.mark.parametrize("status", list(DealStatus))
    def test_self_transition_illegal(self, status):
        assert not is_legal_transition(status, status)

    def test_skipped_stage_illegal(self):
        assert not is_legal_transition(DealStatus.DRAFT, DealStatus.UNDER_REVIEW)
        assert not is_legal_transition(DealStatus.SUBMITTED, DealStatus.APPROVED)
        assert not is_legal_transition(DealStatus.APPROVED, DealStatus.SIGNED)

    def test_terminal_statuses(self):
        assert is_terminal(DealStatus.SIGNED)
        assert is_terminal(DealStatus.LOST)
        assert legal_targets(DealStatus.SIGNED) == frozenset()
        assert legal_targets(DealStatus.LOST) == frozenset()
        assert not is_terminal(DealStatus.CLIENT_REVIEW)

    def test_lost_reachable_after_submission(self):
        for status in DealStatus:
            if status in (DealStatus.DRAFT, DealStatus.SCOPING) or is_terminal(status):
                continue
            assert is_legal_transition(status, DealStatus.LOST), status


class TestValidateTransition:
    """Legality is checked before authority."""

    @pytest.mark.parametrize("actor", ALL_ACTORS, ids=lambda a: a.label)
    def test_illegal_pair_is_invalid_for_every_role(self, actor):
        check = validate_transition(DealStatus.DRAFT, DealStatus.SIGNED, actor)
        assert check.outcome is TransitionOutcome.INVALID_TRANSITION
        assert not check.allowed

    def test_terminal_reason(self):
        check = validate_transition(
            DealStatus.SIGNED, DealStatus.NEGOTIATING, Actor(Role.ADMIN),
        )
        assert check.outcome is TransitionOutcome.INVALID_TRANSITION
        assert "terminal" in check.reason

    def test_legal_but_unauthorized_is_forbidden(self):
        check = validate_transition(
            DealStatus.UNDER_REVIEW, DealStatus.APPROVED, Actor(Role.SELLER),
        )
        assert check.outcome is TransitionOutcome.FORBIDDEN
        assert "approver" in check.required

    def test_authorized(self):
        check = validate_transition(
            DealStatus.DRAFT, DealStatus.SUBMITTED, Actor(Role.SELLER),
        )
        assert check.allowed
        assert check.required == ""

    def test_seller_legal_edges_only(self):
        """A seller succeeds on exactly the seller edges of the graph."""
        seller = Actor(Role.SELLER)
        allowed = {
            (s, t) for s, t in LEGAL_EDGES
            if validate_transition(s, t, seller).allowed
        }
        assert allowed == {
            (DealStatus.DRAFT, DealStatus.SCOPING),
            (DealStatus.DRAFT, DealStatus.SUBMITTED),
            (DealStatus.SCOPING, DealStatus.SUBMITTED),
            (DealStatus.REVISION_REQUESTED, DealStatus.UNDER_REVIEW),
            (DealStatus.REVISION_REQUESTED, DealStatus.LOST),
        }


class TestGateAndMetadata:
    def test_gated_edges(self):
        assert APPROVAL_GATED_TRANSITIONS == {
            (DealStatus.UNDER_REVIEW, DealStatus.NEGOTIATING),
            (DealStatus.UNDER_REVIEW, DealStatus.APPROVED),
            (DealStatus.NEGOTIATING, DealStatus.APPROVED),
        }
        assert requires_approval_gate(DealStatus.NEGOTIATING, DealStatus.APPROVED)
        assert not requires_approval_gate(DealStatus.UNDER_REVIEW, DealStatus.LOST)

    def test_status_info_ranks_are_unique(self):
        ranks = [status_info(s).rank for s in DealStatus]
        assert sorted(ranks) == list(range(1, 12))
        assert status_info(DealStatus.CONTRACT_DRAFTING).label == "Contract Drafting"
